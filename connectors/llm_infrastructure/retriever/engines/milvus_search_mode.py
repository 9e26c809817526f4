"""Search strategies for the Milvus 2.x retriever.

Each mode turns a query into one ``pymilvus.MilvusClient`` call and hands the
raw hits to the retriever's document converter:

    retriever = MilvusRetriever(client=client, search_mode=HybridSearch(
        SubRequest(vector_field="vector", metric_type="COSINE"),
        SubRequest(vector_field="sparse_vector", vector_type="sparse", metric_type="BM25"),
    ))
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ...errors import ConfigError, VendorError

if TYPE_CHECKING:
    from connectors.schema import Document

    from ...embedding.base import BaseEmbedder
    from ..adapters.milvus import MilvusRetriever

logger = logging.getLogger(__name__)

PARAM_NPROBE = "nprobe"
PARAM_EF = "ef"
PARAM_RADIUS = "radius"
PARAM_RANGE_FILTER = "range_filter"
PARAM_LEVEL = "level"
PARAM_DROP_RATIO_SEARCH = "drop_ratio_search"

DENSE_VECTOR = "dense"
SPARSE_VECTOR = "sparse"


class SearchParamsBuilder:
    """Fluent builder for per-field search params.

    Example:
        ```python
        params = SearchParamsBuilder().with_nprobe(16).with_ef(64).build()
        retriever = MilvusRetriever(..., search_params={"vector": params})
        ```
    """

    def __init__(self) -> None:
        self._params: dict[str, Any] = {}

    def with_nprobe(self, nprobe: int) -> SearchParamsBuilder:
        return self.with_param(PARAM_NPROBE, nprobe)

    def with_ef(self, ef: int) -> SearchParamsBuilder:
        return self.with_param(PARAM_EF, ef)

    def with_radius(self, radius: float) -> SearchParamsBuilder:
        return self.with_param(PARAM_RADIUS, radius)

    def with_range_filter(self, range_filter: float) -> SearchParamsBuilder:
        return self.with_param(PARAM_RANGE_FILTER, range_filter)

    def with_level(self, level: int) -> SearchParamsBuilder:
        return self.with_param(PARAM_LEVEL, level)

    def with_drop_ratio_search(self, ratio: float) -> SearchParamsBuilder:
        return self.with_param(PARAM_DROP_RATIO_SEARCH, ratio)

    def with_param(self, key: str, value: Any) -> SearchParamsBuilder:
        self._params[key] = value
        return self

    def build(self) -> dict[str, Any]:
        return dict(self._params)


def extract_search_params(search_params: dict[str, dict[str, Any]] | None, field_name: str) -> dict[str, str]:
    """Stringified params configured for ``field_name`` (empty when none)."""
    if not search_params or field_name not in search_params:
        return {}
    return {k: str(v) for k, v in search_params[field_name].items()}


@dataclass
class Grouping:
    group_by_field: str
    group_size: int = 1
    strict_group_size: bool = False


@dataclass
class SearchOptions:
    """Per-call options resolved by the retriever."""

    top_k: int
    filter: str = ""
    grouping: Grouping | None = None
    embedding: BaseEmbedder | None = None


def _search_params(metric_type: str, params: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {"params": dict(params)}
    if metric_type:
        out["metric_type"] = metric_type
    return out


def _common_kwargs(retriever: MilvusRetriever, options: SearchOptions) -> dict[str, Any]:
    kwargs: dict[str, Any] = {"output_fields": list(retriever.output_fields)}
    if retriever.partitions:
        kwargs["partition_names"] = list(retriever.partitions)
    if retriever.consistency_level:
        kwargs["consistency_level"] = retriever.consistency_level
    return kwargs


def _search(retriever: MilvusRetriever, data: list[Any], anns_field: str, metric_type: str,
            params: dict[str, Any], options: SearchOptions) -> list[Document]:
    kwargs = _common_kwargs(retriever, options)
    if options.filter:
        kwargs["filter"] = options.filter
    if options.grouping is not None:
        kwargs["group_by_field"] = options.grouping.group_by_field
        kwargs["group_size"] = options.grouping.group_size
        if options.grouping.strict_group_size:
            kwargs["strict_group_size"] = True
    try:
        result = retriever.client.search(
            collection_name=retriever.collection,
            data=data,
            anns_field=anns_field,
            limit=options.top_k,
            search_params=_search_params(metric_type, params),
            **kwargs,
        )
    except Exception as exc:
        raise VendorError(f"[MilvusRetriever.retrieve] failed to search: {exc}") from exc
    if not result:
        return []
    return retriever.document_converter(result[0])


class SearchMode(ABC):
    """One way of querying a Milvus collection."""

    @abstractmethod
    def retrieve(self, retriever: MilvusRetriever, query: str, options: SearchOptions) -> list[Document]:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.__dict__})"


class ApproximateSearch(SearchMode):
    """ANN search over the dense vector field with the embedded query."""

    def __init__(self, metric_type: str = "", search_params: dict[str, Any] | None = None) -> None:
        self.metric_type = metric_type
        self.search_params = search_params or {}

    def build_search_params(self, retriever: MilvusRetriever) -> dict[str, Any]:
        params: dict[str, Any] = extract_search_params(retriever.search_params, retriever.vector_field)
        params.update(self.search_params)
        return _search_params(self.metric_type, params)

    def retrieve(self, retriever: MilvusRetriever, query: str, options: SearchOptions) -> list[Document]:
        if options.embedding is None:
            raise ConfigError("[MilvusRetriever.retrieve] embedding is required for approximate search")
        vector = retriever.embed_query(query, options.embedding)
        built = self.build_search_params(retriever)
        return _search(retriever, [vector], retriever.vector_field, self.metric_type, built["params"], options)


class SparseSearch(SearchMode):
    """Full-text search: the raw query against the sparse (BM25 function) field."""

    def __init__(self, metric_type: str = "") -> None:
        self.metric_type = metric_type

    def retrieve(self, retriever: MilvusRetriever, query: str, options: SearchOptions) -> list[Document]:
        params = extract_search_params(retriever.search_params, retriever.sparse_vector_field)
        return _search(retriever, [query], retriever.sparse_vector_field, self.metric_type, params, options)


class RangeSearch(SearchMode):
    """Dense search keeping hits whose distance lies between ``range_filter`` and ``radius``."""

    def __init__(self, metric_type: str = "", radius: float = 0.0, range_filter: float | None = None) -> None:
        self.metric_type = metric_type
        self.radius = radius
        self.range_filter = range_filter

    def retrieve(self, retriever: MilvusRetriever, query: str, options: SearchOptions) -> list[Document]:
        vector = retriever.embed_query(query, options.embedding)
        params: dict[str, Any] = extract_search_params(retriever.search_params, retriever.vector_field)
        params[PARAM_RADIUS] = self.radius
        if self.range_filter is not None:
            params[PARAM_RANGE_FILTER] = self.range_filter
        return _search(retriever, [vector], retriever.vector_field, self.metric_type, params, options)


@dataclass
class SubRequest:
    """One leg of a hybrid search.

    ``top_k`` of 0 means the retriever's top_k for this call.
    """

    vector_field: str
    vector_type: str = DENSE_VECTOR
    metric_type: str = ""
    top_k: int = 0
    search_params: dict[str, Any] = field(default_factory=dict)
    filter: str = ""


class HybridSearch(SearchMode):
    """Runs every sub-request and fuses the rankings (RRF by default)."""

    def __init__(self, *sub_requests: SubRequest, reranker: Any = None) -> None:
        if not sub_requests:
            raise ConfigError("[HybridSearch] at least one sub request is required")
        self.sub_requests = list(sub_requests)
        self.reranker = reranker

    def build_requests(self, retriever: MilvusRetriever, query: str, vector: list[float] | None,
                       options: SearchOptions) -> list[Any]:
        from pymilvus import AnnSearchRequest

        requests = []
        for sub in self.sub_requests:
            data = [query] if sub.vector_type == SPARSE_VECTOR else [vector]
            requests.append(
                AnnSearchRequest(
                    data=data,
                    anns_field=sub.vector_field,
                    param=_search_params(sub.metric_type, sub.search_params),
                    limit=sub.top_k if sub.top_k > 0 else options.top_k,
                    expr=sub.filter or options.filter or None,
                )
            )
        return requests

    def retrieve(self, retriever: MilvusRetriever, query: str, options: SearchOptions) -> list[Document]:
        from pymilvus import RRFRanker

        vector = None
        if any(sub.vector_type != SPARSE_VECTOR for sub in self.sub_requests):
            vector = retriever.embed_query(query, options.embedding)
        requests = self.build_requests(retriever, query, vector, options)
        try:
            result = retriever.client.hybrid_search(
                collection_name=retriever.collection,
                reqs=requests,
                ranker=self.reranker or RRFRanker(),
                limit=options.top_k,
                **_common_kwargs(retriever, options),
            )
        except Exception as exc:
            raise VendorError(f"[MilvusRetriever.retrieve] failed to hybrid search: {exc}") from exc
        if not result:
            return []
        return retriever.document_converter(result[0])


class AutoSearch(SearchMode):
    """Picks hybrid, dense or sparse search from the configured fields."""

    def resolve(self, retriever: MilvusRetriever) -> SearchMode:
        has_dense = bool(retriever.vector_field)
        has_sparse = bool(retriever.sparse_vector_field)
        if has_dense and has_sparse:
            return HybridSearch(
                SubRequest(
                    vector_field=retriever.vector_field,
                    vector_type=DENSE_VECTOR,
                    search_params=extract_search_params(retriever.search_params, retriever.vector_field),
                ),
                SubRequest(
                    vector_field=retriever.sparse_vector_field,
                    vector_type=SPARSE_VECTOR,
                    metric_type="BM25",
                    search_params=extract_search_params(retriever.search_params, retriever.sparse_vector_field),
                ),
            )
        if has_dense:
            return ApproximateSearch()
        if has_sparse:
            return SparseSearch()
        raise ConfigError("[AutoSearch] no vector fields configured; set VectorField or SparseVectorField")

    def retrieve(self, retriever: MilvusRetriever, query: str, options: SearchOptions) -> list[Document]:
        return self.resolve(retriever).retrieve(retriever, query, options)


class ScalarSearch(SearchMode):
    """Filter-only query; the query text is the boolean expression unless ``expr`` is set."""

    def __init__(self, expr: str = "") -> None:
        self.expr = expr

    def retrieve(self, retriever: MilvusRetriever, query: str, options: SearchOptions) -> list[Document]:
        expr = self.expr or query
        if options.filter:
            expr = f"({expr}) and ({options.filter})" if expr else options.filter
        if not expr:
            raise ConfigError("[ScalarSearch] filter expression is empty")
        try:
            rows = retriever.client.query(
                collection_name=retriever.collection,
                filter=expr,
                limit=options.top_k,
                **_common_kwargs(retriever, options),
            )
        except Exception as exc:
            raise VendorError(f"[MilvusRetriever.retrieve] failed to query: {exc}") from exc
        return retriever.document_converter(rows)


class IteratorSearch(SearchMode):
    """Dense search paged through ``search_iterator`` until top_k hits are read."""

    def __init__(self, metric_type: str = "", batch_size: int = 100) -> None:
        if batch_size <= 0:
            raise ConfigError(f"[IteratorSearch] batch size must be positive, got {batch_size}")
        self.metric_type = metric_type
        self.batch_size = batch_size

    def retrieve(self, retriever: MilvusRetriever, query: str, options: SearchOptions) -> list[Document]:
        vector = retriever.embed_query(query, options.embedding)
        params = extract_search_params(retriever.search_params, retriever.vector_field)
        kwargs = _common_kwargs(retriever, options)
        if options.filter:
            kwargs["filter"] = options.filter
        try:
            iterator = retriever.client.search_iterator(
                collection_name=retriever.collection,
                data=[vector],
                batch_size=self.batch_size,
                limit=options.top_k,
                anns_field=retriever.vector_field,
                search_params=_search_params(self.metric_type, params),
                **kwargs,
            )
        except Exception as exc:
            raise VendorError(f"[MilvusRetriever.retrieve] failed to create search iterator: {exc}") from exc

        hits: list[Any] = []
        try:
            while len(hits) < options.top_k:
                page = iterator.next()
                if not page:
                    break
                hits.extend(page)
        except Exception as exc:
            raise VendorError(f"[MilvusRetriever.retrieve] search iterator failed: {exc}") from exc
        finally:
            iterator.close()
        logger.debug("Iterator search read %d hits from %s", len(hits), retriever.collection)
        return retriever.document_converter(hits[: options.top_k])


__all__ = [
    "PARAM_NPROBE",
    "PARAM_EF",
    "PARAM_RADIUS",
    "PARAM_RANGE_FILTER",
    "PARAM_LEVEL",
    "PARAM_DROP_RATIO_SEARCH",
    "DENSE_VECTOR",
    "SPARSE_VECTOR",
    "SearchParamsBuilder",
    "extract_search_params",
    "Grouping",
    "SearchOptions",
    "SearchMode",
    "ApproximateSearch",
    "SparseSearch",
    "RangeSearch",
    "SubRequest",
    "HybridSearch",
    "AutoSearch",
    "ScalarSearch",
    "IteratorSearch",
]
