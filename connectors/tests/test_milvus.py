from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure repo root on sys.path
ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from connectors.llm_infrastructure.errors import ConfigError, ShapeMismatchError, VendorError  # noqa: E402
from connectors.llm_infrastructure.indexer import get_indexer  # noqa: E402
from connectors.llm_infrastructure.indexer.engines.milvus_index import (  # noqa: E402
    load_state_name,
    normalize_consistency_level,
)
from connectors.llm_infrastructure.retriever import get_retriever  # noqa: E402
from connectors.llm_infrastructure.retriever.adapters.milvus import default_document_converter  # noqa: E402
from connectors.llm_infrastructure.retriever.engines.milvus_search_mode import (  # noqa: E402
    ApproximateSearch,
    AutoSearch,
    Grouping,
    HybridSearch,
    IteratorSearch,
    RangeSearch,
    ScalarSearch,
    SearchParamsBuilder,
    SparseSearch,
    extract_search_params,
)
from connectors.schema import Document  # noqa: E402


class _FakeEmbedder:
    def __init__(self, drop: int = 0) -> None:
        self.drop = drop
        self.calls: list[list[str]] = []

    def embed_strings(self, texts):
        self.calls.append(list(texts))
        vectors = [[0.1 * (i + 1), 0.2, 0.3] for i in range(len(texts))]
        return vectors[: len(vectors) - self.drop]


class _FakeIterator:
    def __init__(self, pages):
        self.pages = list(pages)
        self.closed = False

    def next(self):
        return self.pages.pop(0) if self.pages else []

    def close(self):
        self.closed = True


class _FakeMilvusClient:
    """Records calls and answers with canned hits."""

    def __init__(self, exists: bool = True, state: str = "Loaded") -> None:
        self.exists = exists
        self.state = state
        self.calls: list[tuple[str, dict]] = []
        self.hits = [
            {"id": "doc1", "distance": 0.9, "entity": {"content": "first", "metadata": {"lang": "en"}}},
            {"id": "doc2", "distance": 0.4, "entity": {"content": "second", "metadata": '{"lang": "fr"}'}},
        ]
        self.iterator = _FakeIterator([self.hits[:1], self.hits[1:]])

    def has_collection(self, name):
        self.calls.append(("has_collection", {"name": name}))
        return self.exists

    def get_load_state(self, name):
        return {"state": self.state}

    def load_collection(self, name):
        self.calls.append(("load_collection", {"name": name}))

    def insert(self, **kwargs):
        self.calls.append(("insert", kwargs))
        return {"ids": [row["id"] for row in kwargs["data"]]}

    def flush(self, name):
        self.calls.append(("flush", {"name": name}))

    def search(self, **kwargs):
        self.calls.append(("search", kwargs))
        return [self.hits]

    def hybrid_search(self, **kwargs):
        self.calls.append(("hybrid_search", kwargs))
        return [self.hits]

    def query(self, **kwargs):
        self.calls.append(("query", kwargs))
        return [{"id": "doc3", "content": "third", "metadata": {}, "year": 2024}]

    def search_iterator(self, **kwargs):
        self.calls.append(("search_iterator", kwargs))
        return self.iterator

    def last(self, name):
        return [kwargs for call, kwargs in self.calls if call == name][-1]


def _retriever(client, search_mode, **kwargs):
    return get_retriever("milvus2", client=client, search_mode=search_mode, collection="docs", **kwargs)


def test_consistency_level_and_load_state_helpers():
    assert normalize_consistency_level("strong") == "Strong"
    assert normalize_consistency_level("unknown") == "Bounded"
    assert normalize_consistency_level(None) == "Bounded"
    assert load_state_name({"state": "Loaded"}) == "Loaded"


def test_indexer_requires_client_or_config():
    with pytest.raises(ConfigError, match="client or client config"):
        get_indexer("milvus2")


def test_indexer_loads_collection_when_not_loaded(monkeypatch):
    client = _FakeMilvusClient(state="NotLoad")
    monkeypatch.setattr(
        "connectors.llm_infrastructure.indexer.adapters.milvus.MilvusIndexer._create_indexes",
        lambda self: None,
    )

    get_indexer("milvus2", client=client, collection="docs", dimension=3)

    assert ("load_collection", {"name": "docs"}) in client.calls


def test_indexer_store_embeds_once_in_input_order():
    client = _FakeMilvusClient()
    embedder = _FakeEmbedder()
    indexer = get_indexer("milvus2", client=client, collection="docs", dimension=3, sparse_vector_field="")
    docs = [
        Document(id="a", content="alpha", meta_data={"k": 1}),
        Document(id="b", content="beta"),
    ]

    ids = indexer.store(docs, embedding=embedder)

    assert ids == ["a", "b"]
    assert embedder.calls == [["alpha", "beta"]]
    rows = client.last("insert")["data"]
    assert rows[0]["vector"] == pytest.approx([0.1, 0.2, 0.3])
    assert rows[0]["metadata"] == {"k": 1}
    assert ("flush", {"name": "docs"}) in client.calls


def test_indexer_store_rejects_short_embedding_result():
    indexer = get_indexer("milvus2", client=_FakeMilvusClient(), collection="docs", dimension=3)

    with pytest.raises(ShapeMismatchError, match="length mismatch"):
        indexer.store([Document(id="a", content="x"), Document(id="b", content="y")], embedding=_FakeEmbedder(drop=1))


def test_indexer_store_falls_back_to_document_vectors():
    client = _FakeMilvusClient()
    indexer = get_indexer("milvus2", client=client, collection="docs", dimension=2)
    doc = Document(id="a", content="alpha").with_dense_vector([1.0, 2.0])

    indexer.store([doc])

    row = client.last("insert")["data"][0]
    assert row["vector"] == [1.0, 2.0]
    assert "_dense_vector" not in row["metadata"]


def test_retriever_rejects_missing_collection():
    with pytest.raises(ConfigError, match="not found"):
        _retriever(_FakeMilvusClient(exists=False), AutoSearch())


def test_document_converter_handles_hits_and_rows():
    docs = default_document_converter(
        [
            {"id": 7, "distance": 0.5, "entity": {"content": "hit", "metadata": '{"a": 1}', "tag": "x"}},
            {"id": "row", "content": None, "metadata": b""},
        ]
    )

    assert docs[0].id == "7"
    assert docs[0].score() == 0.5
    assert docs[0].meta_data["a"] == 1
    assert docs[0].meta_data["tag"] == "x"
    assert docs[1].content == ""
    assert "_score" not in docs[1].meta_data


def test_search_params_builder_and_extraction():
    params = SearchParamsBuilder().with_nprobe(16).with_ef(64).build()

    assert extract_search_params({"vector": params}, "vector") == {"nprobe": "16", "ef": "64"}
    assert extract_search_params({"vector": params}, "other") == {}
    assert extract_search_params(None, "vector") == {}


def test_auto_search_resolves_by_configured_fields():
    client = _FakeMilvusClient()

    both = AutoSearch().resolve(_retriever(client, AutoSearch()))
    dense = AutoSearch().resolve(_retriever(client, AutoSearch(), sparse_vector_field=""))
    sparse = AutoSearch().resolve(_retriever(client, AutoSearch(), vector_field=""))

    assert isinstance(both, HybridSearch)
    assert [sub.vector_type for sub in both.sub_requests] == ["dense", "sparse"]
    assert isinstance(dense, ApproximateSearch)
    assert isinstance(sparse, SparseSearch)
    with pytest.raises(ConfigError, match="no vector fields"):
        AutoSearch().resolve(_retriever(client, AutoSearch(), vector_field="", sparse_vector_field=""))


def test_approximate_search_sends_embedded_query():
    client = _FakeMilvusClient()
    embedder = _FakeEmbedder()
    retriever = _retriever(
        client,
        ApproximateSearch(metric_type="COSINE"),
        embedding=embedder,
        search_params={"vector": {"nprobe": 8}},
        partitions=["p1"],
    )

    docs = retriever.retrieve("hello", top_k=2, filter="lang == 'en'", grouping=Grouping("lang", group_size=2))

    call = client.last("search")
    assert embedder.calls == [["hello"]]
    assert call["anns_field"] == "vector"
    assert call["limit"] == 2
    assert call["search_params"] == {"params": {"nprobe": "8"}, "metric_type": "COSINE"}
    assert call["filter"] == "lang == 'en'"
    assert call["group_by_field"] == "lang"
    assert call["partition_names"] == ["p1"]
    assert [d.id for d in docs] == ["doc1", "doc2"]
    assert docs[1].meta_data["lang"] == "fr"


def test_approximate_search_requires_embedding():
    retriever = _retriever(_FakeMilvusClient(), ApproximateSearch())

    with pytest.raises(ConfigError, match="embedding is required"):
        retriever.retrieve("hello")


def test_score_threshold_filters_results():
    retriever = _retriever(_FakeMilvusClient(), ApproximateSearch(), embedding=_FakeEmbedder())

    docs = retriever.retrieve("hello", score_threshold=0.5)

    assert [d.id for d in docs] == ["doc1"]


def test_sparse_search_sends_raw_query_text():
    client = _FakeMilvusClient()
    retriever = _retriever(client, SparseSearch(metric_type="BM25"))

    retriever.retrieve("full text")

    call = client.last("search")
    assert call["data"] == ["full text"]
    assert call["anns_field"] == "sparse_vector"
    assert call["limit"] == 5


def test_range_search_sets_radius_and_range_filter():
    client = _FakeMilvusClient()
    retriever = _retriever(client, RangeSearch(metric_type="L2", radius=1.0, range_filter=0.2), embedding=_FakeEmbedder())

    retriever.retrieve("hello")

    assert client.last("search")["search_params"]["params"] == {"radius": 1.0, "range_filter": 0.2}


def test_hybrid_search_fuses_dense_and_sparse_requests():
    client = _FakeMilvusClient()
    embedder = _FakeEmbedder()
    retriever = _retriever(client, AutoSearch(), embedding=embedder)

    docs = retriever.retrieve("hello", top_k=3)

    call = client.last("hybrid_search")
    assert embedder.calls == [["hello"]]
    assert len(call["reqs"]) == 2
    assert call["limit"] == 3
    assert len(docs) == 2


def test_scalar_search_combines_expression_with_filter():
    client = _FakeMilvusClient()
    retriever = _retriever(client, ScalarSearch())

    docs = retriever.retrieve("year > 2000", filter="lang == 'en'")

    assert client.last("query")["filter"] == "(year > 2000) and (lang == 'en')"
    assert docs[0].id == "doc3"
    assert docs[0].meta_data["year"] == 2024


def test_scalar_search_rejects_empty_expression():
    with pytest.raises(ConfigError, match="empty"):
        _retriever(_FakeMilvusClient(), ScalarSearch()).retrieve("")


def test_iterator_search_pages_until_top_k():
    client = _FakeMilvusClient()
    retriever = _retriever(client, IteratorSearch(batch_size=1), embedding=_FakeEmbedder())

    docs = retriever.retrieve("hello", top_k=2)

    assert [d.id for d in docs] == ["doc1", "doc2"]
    assert client.iterator.closed is True
    assert client.last("search_iterator")["batch_size"] == 1


def test_iterator_search_rejects_non_positive_batch():
    with pytest.raises(ConfigError, match="batch size"):
        IteratorSearch(batch_size=0)


def test_search_failure_is_wrapped():
    client = _FakeMilvusClient()

    def _boom(**kwargs):
        raise RuntimeError("down")

    client.search = _boom
    retriever = _retriever(client, SparseSearch())

    with pytest.raises(VendorError, match="failed to search"):
        retriever.retrieve("hello")
