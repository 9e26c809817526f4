"""Search strategies used by the retriever adapters."""

from .es8_search_mode import (
    ApproximateSearchMode,
    DenseVectorSimilaritySearchMode,
    ExactMatchSearchMode,
    FieldKV,
    RawStringSearchMode,
    SearchModeQuery,
    SparseVectorTextExpansionSearchMode,
)
from .milvus_search_mode import (
    ApproximateSearch,
    AutoSearch,
    HybridSearch,
    IteratorSearch,
    RangeSearch,
    ScalarSearch,
    SearchParamsBuilder,
    SparseSearch,
    SubRequest,
    extract_search_params,
)

__all__ = [
    "ApproximateSearchMode",
    "DenseVectorSimilaritySearchMode",
    "ExactMatchSearchMode",
    "FieldKV",
    "RawStringSearchMode",
    "SearchModeQuery",
    "SparseVectorTextExpansionSearchMode",
    "ApproximateSearch",
    "AutoSearch",
    "HybridSearch",
    "IteratorSearch",
    "RangeSearch",
    "ScalarSearch",
    "SearchParamsBuilder",
    "SparseSearch",
    "SubRequest",
    "extract_search_params",
]
