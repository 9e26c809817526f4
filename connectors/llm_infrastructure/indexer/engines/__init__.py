"""Store-specific helpers shared by indexers and retrievers."""

from .es8_fields import DOC_FIELD_CONTENT, FieldValue, default_vector_field
from .milvus_index import (
    AutoIndexBuilder,
    BinFlatIndexBuilder,
    BinIVFFlatIndexBuilder,
    DiskANNIndexBuilder,
    FlatIndexBuilder,
    HNSWIndexBuilder,
    IndexBuilder,
    IVFFlatIndexBuilder,
    IVFPQIndexBuilder,
    IVFSQ8IndexBuilder,
    SCANNIndexBuilder,
    SparseInvertedIndexBuilder,
    SparseWANDIndexBuilder,
)
from .pgvector_sql import distance_operator, format_vector, validate_identifier

__all__ = [
    "DOC_FIELD_CONTENT",
    "FieldValue",
    "default_vector_field",
    "IndexBuilder",
    "AutoIndexBuilder",
    "FlatIndexBuilder",
    "HNSWIndexBuilder",
    "IVFFlatIndexBuilder",
    "IVFSQ8IndexBuilder",
    "IVFPQIndexBuilder",
    "SCANNIndexBuilder",
    "DiskANNIndexBuilder",
    "BinFlatIndexBuilder",
    "BinIVFFlatIndexBuilder",
    "SparseInvertedIndexBuilder",
    "SparseWANDIndexBuilder",
    "distance_operator",
    "format_vector",
    "validate_identifier",
]
