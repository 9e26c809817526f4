"""Request builders for the Elasticsearch 8 retriever.

Every search mode turns a query into a ``_search`` request body. A query may
be plain text or the JSON produced by ``SearchModeQuery.to_retriever_query()``,
which carries a field/value pair and extra filters:

    query = SearchModeQuery(
        field_kv=FieldKV(field_name="title", value="milvus"),
        filters=[{"term": {"lang": "en"}}],
    ).to_retriever_query()
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any

from ...errors import ConfigError
from ...indexer.engines.es8_fields import DOC_FIELD_CONTENT, default_vector_field
from ..base import BaseRetriever

if TYPE_CHECKING:
    from ...embedding.base import BaseEmbedder

SIMILARITY_COSINE = "cosineSimilarity"
SIMILARITY_DOT_PRODUCT = "dotProduct"
SIMILARITY_L1_NORM = "l1norm"
SIMILARITY_L2_NORM = "l2norm"

DENSE_VECTOR_SCRIPTS = {
    SIMILARITY_COSINE: "cosineSimilarity(params.embedding, '{field}') + 1.0",
    SIMILARITY_DOT_PRODUCT: (
        "double value = dotProduct(params.embedding, '{field}');\n"
        "return sigmoid(1, Math.E, -value);"
    ),
    SIMILARITY_L1_NORM: "1 / (1 + l1norm(params.embedding, '{field}'))",
    SIMILARITY_L2_NORM: "1 / (1 + l2norm(params.embedding, '{field}'))",
}


@dataclass
class FieldKV:
    field_name: str = DOC_FIELD_CONTENT
    field_name_vector: str = ""
    value: str = ""


@dataclass
class SearchModeQuery:
    field_kv: FieldKV | None = None
    filters: list[dict[str, Any]] = field(default_factory=list)

    def to_retriever_query(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False)


def parse_query(query: str) -> SearchModeQuery:
    """Decode a structured query; plain text becomes a bare ``SearchModeQuery``."""
    if query.lstrip().startswith("{"):
        try:
            raw = json.loads(query)
        except ValueError:
            raw = None
        if isinstance(raw, dict) and ("field_kv" in raw or "filters" in raw):
            kv = raw.get("field_kv")
            return SearchModeQuery(
                field_kv=FieldKV(**kv) if isinstance(kv, dict) else None,
                filters=list(raw.get("filters") or []),
            )
    return SearchModeQuery(field_kv=FieldKV(field_name="", value=query))


@dataclass
class RequestContext:
    top_k: int
    score_threshold: float | None = None
    embedding: BaseEmbedder | None = None
    filters: list[dict[str, Any]] = field(default_factory=list)


def _embed(embedding: BaseEmbedder | None, text: str, mode: str) -> list[float]:
    return BaseRetriever.embed_query(text, embedding, context=f"[SearchMode.build_request][{mode}]")


def _finish(body: dict[str, Any], ctx: RequestContext) -> dict[str, Any]:
    body["size"] = ctx.top_k
    if ctx.score_threshold is not None:
        body["min_score"] = ctx.score_threshold
    return body


class SearchMode(ABC):
    @abstractmethod
    def build_request(self, query: str, ctx: RequestContext) -> dict[str, Any]:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.__dict__})"


class ApproximateSearchMode(SearchMode):
    """kNN search, optionally combined with a match query (and RRF ranking)."""

    def __init__(
        self,
        query_field: str = DOC_FIELD_CONTENT,
        vector_field: str = "",
        hybrid: bool = False,
        rrf: bool = False,
        rrf_rank_constant: int | None = None,
        rrf_window_size: int | None = None,
        query_vector_builder_model_id: str | None = None,
        boost: float | None = None,
        k: int | None = None,
        num_candidates: int | None = None,
        similarity: float | None = None,
    ) -> None:
        self.query_field = query_field
        self.vector_field = vector_field or default_vector_field(query_field)
        self.hybrid = hybrid
        self.rrf = rrf
        self.rrf_rank_constant = rrf_rank_constant
        self.rrf_window_size = rrf_window_size
        self.query_vector_builder_model_id = query_vector_builder_model_id
        self.boost = boost
        self.k = k
        self.num_candidates = num_candidates
        self.similarity = similarity

    def build_request(self, query: str, ctx: RequestContext) -> dict[str, Any]:
        parsed = parse_query(query)
        kv = parsed.field_kv or FieldKV()
        query_field = kv.field_name or self.query_field
        vector_field = kv.field_name_vector or (
            default_vector_field(kv.field_name) if kv.field_name else self.vector_field
        )
        filters = parsed.filters + ctx.filters

        knn: dict[str, Any] = {"field": vector_field}
        for key, value in (
            ("k", self.k),
            ("num_candidates", self.num_candidates),
            ("boost", self.boost),
            ("similarity", self.similarity),
        ):
            if value is not None:
                knn[key] = value
        if filters:
            knn["filter"] = filters
        if self.query_vector_builder_model_id:
            knn["query_vector_builder"] = {
                "text_embedding": {"model_id": self.query_vector_builder_model_id, "model_text": kv.value}
            }
        else:
            knn["query_vector"] = _embed(ctx.embedding, kv.value, "SearchModeApproximate")

        body: dict[str, Any] = {"knn": knn}
        if self.hybrid:
            bool_query: dict[str, Any] = {"must": [{"match": {query_field: {"query": kv.value}}}]}
            if filters:
                bool_query["filter"] = filters
            body["query"] = {"bool": bool_query}
            if self.rrf:
                rrf: dict[str, Any] = {}
                if self.rrf_rank_constant is not None:
                    rrf["rank_constant"] = self.rrf_rank_constant
                if self.rrf_window_size is not None:
                    rrf["rank_window_size"] = self.rrf_window_size
                body["rank"] = {"rrf": rrf}
        return _finish(body, ctx)


class DenseVectorSimilaritySearchMode(SearchMode):
    """Exact ``script_score`` over every (filtered) document."""

    def __init__(self, similarity_type: str = SIMILARITY_COSINE, vector_field: str = "") -> None:
        if similarity_type not in DENSE_VECTOR_SCRIPTS:
            raise ConfigError(f"[DenseVectorSimilaritySearchMode] unknown similarity type: {similarity_type}")
        self.similarity_type = similarity_type
        self.vector_field = vector_field or default_vector_field(DOC_FIELD_CONTENT)

    def build_request(self, query: str, ctx: RequestContext) -> dict[str, Any]:
        parsed = parse_query(query)
        kv = parsed.field_kv or FieldKV()
        vector_field = kv.field_name_vector or (
            default_vector_field(kv.field_name) if kv.field_name else self.vector_field
        )
        filters = parsed.filters + ctx.filters
        vector = _embed(ctx.embedding, kv.value, "SearchModeDenseVectorSimilarity")

        inner = {"bool": {"filter": filters}} if filters else {"match_all": {}}
        body = {
            "query": {
                "script_score": {
                    "query": inner,
                    "script": {
                        "source": DENSE_VECTOR_SCRIPTS[self.similarity_type].format(field=vector_field),
                        "params": {"embedding": vector},
                    },
                }
            }
        }
        return _finish(body, ctx)


class ExactMatchSearchMode(SearchMode):
    """Full-text ``match`` on one field."""

    def __init__(self, query_field: str = DOC_FIELD_CONTENT) -> None:
        self.query_field = query_field

    def build_request(self, query: str, ctx: RequestContext) -> dict[str, Any]:
        parsed = parse_query(query)
        kv = parsed.field_kv or FieldKV()
        match = {"match": {kv.field_name or self.query_field: {"query": kv.value}}}
        filters = parsed.filters + ctx.filters
        body = {"query": {"bool": {"must": [match], "filter": filters}} if filters else match}
        return _finish(body, ctx)


class RawStringSearchMode(SearchMode):
    """The query is already a JSON request body; it is sent as-is."""

    def build_request(self, query: str, ctx: RequestContext) -> dict[str, Any]:
        try:
            body = json.loads(query)
        except ValueError as exc:
            raise ConfigError(f"[SearchMode.build_request][RawStringSearchMode] parse query failed, {exc}") from exc
        if not isinstance(body, dict):
            raise ConfigError("[SearchMode.build_request][RawStringSearchMode] query must be a JSON object")
        return body


class SparseVectorTextExpansionSearchMode(SearchMode):
    """ELSER-style ``text_expansion`` on ``<vector_field>.tokens``."""

    def __init__(self, model_id: str, vector_field: str = "") -> None:
        if not model_id:
            raise ConfigError("[SparseVectorTextExpansionSearchMode] model id not provided")
        self.model_id = model_id
        self.vector_field = vector_field or default_vector_field(DOC_FIELD_CONTENT)

    def build_request(self, query: str, ctx: RequestContext) -> dict[str, Any]:
        parsed = parse_query(query)
        kv = parsed.field_kv or FieldKV()
        vector_field = kv.field_name_vector or (
            default_vector_field(kv.field_name) if kv.field_name else self.vector_field
        )
        bool_query: dict[str, Any] = {
            "must": [
                {
                    "text_expansion": {
                        f"{vector_field}.tokens": {"model_id": self.model_id, "model_text": kv.value}
                    }
                }
            ]
        }
        filters = parsed.filters + ctx.filters
        if filters:
            bool_query["filter"] = filters
        return _finish({"query": {"bool": bool_query}}, ctx)


__all__ = [
    "SIMILARITY_COSINE",
    "SIMILARITY_DOT_PRODUCT",
    "SIMILARITY_L1_NORM",
    "SIMILARITY_L2_NORM",
    "DENSE_VECTOR_SCRIPTS",
    "FieldKV",
    "SearchModeQuery",
    "parse_query",
    "RequestContext",
    "SearchMode",
    "ApproximateSearchMode",
    "DenseVectorSimilaritySearchMode",
    "ExactMatchSearchMode",
    "RawStringSearchMode",
    "SparseVectorTextExpansionSearchMode",
]
