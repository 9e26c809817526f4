"""Tests for the binary-vector Milvus indexer."""

from __future__ import annotations

import sys
from pathlib import Path

import numpy as np
import pytest

# Ensure repo root on sys.path
ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from connectors.llm_infrastructure.errors import ConfigError, ShapeMismatchError, VendorError  # noqa: E402
from connectors.llm_infrastructure.indexer import get_indexer  # noqa: E402
from connectors.llm_infrastructure.indexer.adapters import milvus_new  # noqa: E402
from connectors.llm_infrastructure.indexer.adapters.milvus_new import (  # noqa: E402
    MilvusBinaryIndexer,
    check_collection_schema,
    default_fields,
)
from connectors.llm_infrastructure.indexer.engines.milvus_index import vector_to_bytes  # noqa: E402
from connectors.schema import Document  # noqa: E402


def _described(fields=None):
    return [{"name": f["field_name"], "type": f["datatype"]} for f in (fields or default_fields())]


class _FakeEmbedder:
    def __init__(self) -> None:
        self.calls: list[list[str]] = []

    def embed_strings(self, texts):
        self.calls.append(list(texts))
        return [[0.1 * (i + 1), 0.2, 0.3] for i in range(len(texts))]


class _FakeSchema:
    def __init__(self, **kwargs) -> None:
        self.kwargs = kwargs
        self.fields: list[dict] = []

    def add_field(self, **field):
        self.fields.append(field)


class _FakeIndexParams:
    def __init__(self) -> None:
        self.indexes: list[dict] = []

    def add_index(self, **kwargs):
        self.indexes.append(kwargs)


class _FakeBinaryClient:
    """Answers the collection lifecycle calls of ``MilvusBinaryIndexer``."""

    def __init__(self, exists=True, states=("Loaded",), fields=None, indexes=None, fail_insert=False) -> None:
        self.exists = exists
        self.states = list(states)
        self.fields = fields if fields is not None else _described()
        self.indexes = indexes if indexes is not None else ["vector"]
        self.fail_insert = fail_insert
        self.calls: list[tuple[str, dict]] = []
        self.schema: _FakeSchema | None = None
        self.index_params: _FakeIndexParams | None = None

    def has_collection(self, name):
        return self.exists

    def create_schema(self, **kwargs):
        self.schema = _FakeSchema(**kwargs)
        return self.schema

    def create_collection(self, **kwargs):
        self.calls.append(("create_collection", kwargs))
        self.exists = True

    def describe_collection(self, name):
        return {"collection_name": name, "fields": self.fields}

    def get_load_state(self, name):
        state = self.states.pop(0) if len(self.states) > 1 else self.states[0]
        return {"state": state}

    def list_indexes(self, name, field_name=None):
        return self.indexes

    def prepare_index_params(self):
        self.index_params = _FakeIndexParams()
        return self.index_params

    def create_index(self, name, index_params):
        self.calls.append(("create_index", {"name": name}))

    def load_collection(self, name):
        self.calls.append(("load_collection", {"name": name}))

    def has_partition(self, name, partition):
        return False

    def create_partition(self, name, partition):
        self.calls.append(("create_partition", {"name": name, "partition": partition}))

    def load_partitions(self, name, partition_names=None):
        self.calls.append(("load_partitions", {"name": name, "partition_names": partition_names}))

    def insert(self, **kwargs):
        if self.fail_insert:
            raise RuntimeError("insert refused")
        self.calls.append(("insert", kwargs))
        return {"ids": [row["id"] for row in kwargs["data"]]}

    def flush(self, name):
        self.calls.append(("flush", {"name": name}))

    def last(self, name):
        return [kwargs for call, kwargs in self.calls if call == name][-1]


def _indexer(client, **kwargs) -> MilvusBinaryIndexer:
    return get_indexer("milvus_new", client=client, embedding=_FakeEmbedder(), collection="bin_docs", **kwargs)


# --------------------------------------------------------------------------- schema check


def test_schema_check_accepts_matching_fields():
    check_collection_schema(_described(), default_fields())


def test_schema_check_rejects_field_count():
    with pytest.raises(ShapeMismatchError, match="field count mismatch: existing=3, expected=4"):
        check_collection_schema(_described()[:3], default_fields())


def test_schema_check_rejects_missing_field_name():
    existing = _described()
    existing[2] = {**existing[2], "name": "body"}

    with pytest.raises(ShapeMismatchError, match="field 'content' not found"):
        check_collection_schema(existing, default_fields())


def test_schema_check_rejects_field_type():
    from pymilvus import DataType

    existing = _described()
    existing[1] = {**existing[1], "type": DataType.FLOAT_VECTOR}

    with pytest.raises(ShapeMismatchError, match="field 'vector' type mismatch: existing=FLOAT_VECTOR, expected=BINARY_VECTOR"):
        check_collection_schema(existing, default_fields())


# --------------------------------------------------------------------------- provisioning


def test_indexer_requires_client_and_embedding():
    with pytest.raises(ConfigError, match="milvus client not provided"):
        get_indexer("milvus_new", embedding=_FakeEmbedder())
    with pytest.raises(ConfigError, match="embedding not provided"):
        get_indexer("milvus_new", client=_FakeBinaryClient())


def test_indexer_rejects_partition_name_with_partition_key():
    with pytest.raises(ConfigError, match="partition key mode"):
        _indexer(_FakeBinaryClient(), partition_num=4, partition_name="p1")


def test_indexer_creates_collection_and_default_index():
    client = _FakeBinaryClient(exists=False, states=("NotLoad",), indexes=[])

    _indexer(client)

    created = client.last("create_collection")
    assert created["collection_name"] == "bin_docs"
    assert created["consistency_level"] == "Bounded"
    assert [f["field_name"] for f in client.schema.fields] == ["id", "vector", "content", "metadata"]
    assert client.index_params.indexes == [
        {"field_name": "vector", "index_type": "BIN_IVF_FLAT", "metric_type": "HAMMING", "params": {"nlist": 128}}
    ]
    assert ("load_collection", {"name": "bin_docs"}) in client.calls


def test_indexer_rejects_mismatched_existing_collection():
    client = _FakeBinaryClient(fields=_described()[:2])

    with pytest.raises(ShapeMismatchError, match="collection schema not match"):
        _indexer(client)
    assert not any(call == "create_collection" for call, _ in client.calls)


def test_indexer_waits_for_loading_collection(monkeypatch):
    sleeps = []
    monkeypatch.setattr(milvus_new.time, "sleep", lambda s: sleeps.append(s))
    client = _FakeBinaryClient(states=("Loading", "Loading", "Loaded"))

    _indexer(client)

    assert sleeps == [0.2, 0.2]
    assert ("load_collection", {"name": "bin_docs"}) not in client.calls


def test_indexer_times_out_while_loading(monkeypatch):
    now = [0.0]
    sleeps = []

    def _sleep(seconds):
        sleeps.append(seconds)
        now[0] += 1.0

    monkeypatch.setattr(milvus_new.time, "monotonic", lambda: now[0])
    monkeypatch.setattr(milvus_new.time, "sleep", _sleep)

    with pytest.raises(VendorError, match="timed out waiting for collection bin_docs to load"):
        _indexer(_FakeBinaryClient(states=("Loading",)), load_timeout=1.5)
    assert len(sleeps) == 2


def test_indexer_prepares_named_partition():
    client = _FakeBinaryClient()

    _indexer(client, partition_name="p1")

    assert ("create_partition", {"name": "bin_docs", "partition": "p1"}) in client.calls
    assert client.last("load_partitions") == {"name": "bin_docs", "partition_names": ["p1"]}


# --------------------------------------------------------------------------- store


def test_vector_to_bytes_packs_little_endian_float32():
    packed = vector_to_bytes([1.0, -2.5])

    assert len(packed) == 8
    assert packed == np.array([1.0, -2.5], dtype="<f4").tobytes()
    assert np.frombuffer(packed, dtype="<f4").tolist() == [1.0, -2.5]


def test_store_packs_vectors_as_float32_bytes():
    client = _FakeBinaryClient()
    indexer = _indexer(client, partition_name="p1")
    docs = [
        Document(id="a", content="alpha", meta_data={"k": 1}),
        Document(id="b", content="beta"),
    ]

    ids = indexer.store(docs)

    assert ids == ["a", "b"]
    insert = client.last("insert")
    assert insert["collection_name"] == "bin_docs"
    assert insert["partition_name"] == "p1"
    rows = insert["data"]
    assert rows[0]["vector"] == np.array([0.1, 0.2, 0.3], dtype="<f4").tobytes()
    assert len(rows[1]["vector"]) == 12
    assert rows[0]["metadata"] == {"k": 1}
    assert rows[1]["content"] == "beta"
    assert ("flush", {"name": "bin_docs"}) in client.calls


def test_store_wraps_insert_failure():
    indexer = _indexer(_FakeBinaryClient(fail_insert=True))

    with pytest.raises(VendorError, match="failed to insert rows: insert refused"):
        indexer.store([Document(id="a", content="alpha")])
