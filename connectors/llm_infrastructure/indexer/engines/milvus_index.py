"""Milvus index builders and shared collection constants.

Builders produce the keyword arguments of ``IndexParams.add_index`` so they
stay independent of a live pymilvus client:

    params = client.prepare_index_params()
    params.add_index(field_name="vector", **HNSWIndexBuilder(16, 200).build("COSINE"))
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

import numpy as np

DEFAULT_COLLECTION = "eino_collection"
DEFAULT_DESCRIPTION = "the collection for eino"
DEFAULT_ID_FIELD = "id"
DEFAULT_CONTENT_FIELD = "content"
DEFAULT_METADATA_FIELD = "metadata"
DEFAULT_VECTOR_FIELD = "vector"
DEFAULT_SPARSE_VECTOR_FIELD = "sparse_vector"
DEFAULT_MAX_ID_LEN = 255
DEFAULT_MAX_CONTENT_LEN = 65535

# Binary collections created by the ``milvus_new`` indexer.
DEFAULT_BINARY_DIM = 81920
DEFAULT_BINARY_CONTENT_LEN = 1024

METRIC_TYPES = ("L2", "IP", "COSINE", "HAMMING", "JACCARD", "BM25")
CONSISTENCY_LEVELS = ("Strong", "Session", "Bounded", "Eventually", "Customized")
DEFAULT_CONSISTENCY_LEVEL = "Bounded"


def normalize_consistency_level(level: str | None) -> str:
    """Return a valid consistency level name, ``Bounded`` when unset or unknown."""
    if not level:
        return DEFAULT_CONSISTENCY_LEVEL
    for name in CONSISTENCY_LEVELS:
        if name.lower() == str(level).lower():
            return name
    return DEFAULT_CONSISTENCY_LEVEL


def load_state_name(state: Any) -> str:
    """Name of a pymilvus ``LoadState`` (``Loaded``, ``Loading``, ``NotLoad``...)."""
    if isinstance(state, dict):
        state = state.get("state")
    return getattr(state, "name", None) or str(state)


def is_index_exists_error(exc: BaseException) -> bool:
    msg = str(exc).lower()
    return "already exists" in msg or "already exist" in msg


def vector_to_bytes(vector: list[float]) -> bytes:
    """Pack a float vector as little-endian float32 bytes."""
    return np.asarray(vector, dtype="<f4").tobytes()


class IndexBuilder(ABC):
    """Builds the index definition for one vector field."""

    index_type: str = ""

    @abstractmethod
    def params(self) -> dict[str, Any]:
        raise NotImplementedError

    def build(self, metric_type: str) -> dict[str, Any]:
        return {
            "index_type": self.index_type,
            "metric_type": metric_type,
            "params": self.params(),
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.params()})"


def _check_range(name: str, value: int, low: int, high: int) -> None:
    if value < low or value > high:
        raise ValueError(f"{name} must be in range [{low}, {high}], got {value}")


class AutoIndexBuilder(IndexBuilder):
    index_type = "AUTOINDEX"

    def params(self) -> dict[str, Any]:
        return {}


class FlatIndexBuilder(IndexBuilder):
    """Brute force search with 100% recall."""

    index_type = "FLAT"

    def params(self) -> dict[str, Any]:
        return {}


class HNSWIndexBuilder(IndexBuilder):
    index_type = "HNSW"

    def __init__(self, m: int = 16, ef_construction: int = 200) -> None:
        _check_range("M", m, 4, 64)
        _check_range("efConstruction", ef_construction, 8, 512)
        self.m = m
        self.ef_construction = ef_construction

    def params(self) -> dict[str, Any]:
        return {"M": self.m, "efConstruction": self.ef_construction}


class IVFFlatIndexBuilder(IndexBuilder):
    index_type = "IVF_FLAT"

    def __init__(self, nlist: int = 128) -> None:
        _check_range("nlist", nlist, 1, 65536)
        self.nlist = nlist

    def params(self) -> dict[str, Any]:
        return {"nlist": self.nlist}


class IVFSQ8IndexBuilder(IVFFlatIndexBuilder):
    index_type = "IVF_SQ8"


class IVFPQIndexBuilder(IndexBuilder):
    index_type = "IVF_PQ"

    def __init__(self, nlist: int = 128, m: int = 8, nbits: int = 8) -> None:
        _check_range("nlist", nlist, 1, 65536)
        _check_range("nbits", nbits, 1, 16)
        if m <= 0:
            raise ValueError(f"m must be positive, got {m}")
        self.nlist = nlist
        self.m = m
        self.nbits = nbits

    def params(self) -> dict[str, Any]:
        return {"nlist": self.nlist, "m": self.m, "nbits": self.nbits}


class SCANNIndexBuilder(IVFFlatIndexBuilder):
    index_type = "SCANN"


class DiskANNIndexBuilder(IndexBuilder):
    index_type = "DISKANN"

    def params(self) -> dict[str, Any]:
        return {}


class BinFlatIndexBuilder(IndexBuilder):
    index_type = "BIN_FLAT"

    def params(self) -> dict[str, Any]:
        return {}


class BinIVFFlatIndexBuilder(IVFFlatIndexBuilder):
    index_type = "BIN_IVF_FLAT"


class SparseInvertedIndexBuilder(IndexBuilder):
    index_type = "SPARSE_INVERTED_INDEX"

    def __init__(self, drop_ratio_build: float = 0.2) -> None:
        if not 0 <= drop_ratio_build < 1:
            raise ValueError(f"drop_ratio_build must be in range [0, 1), got {drop_ratio_build}")
        self.drop_ratio_build = drop_ratio_build

    def params(self) -> dict[str, Any]:
        return {"drop_ratio_build": self.drop_ratio_build}


class SparseWANDIndexBuilder(SparseInvertedIndexBuilder):
    index_type = "SPARSE_WAND"


__all__ = [
    "DEFAULT_COLLECTION",
    "DEFAULT_DESCRIPTION",
    "DEFAULT_ID_FIELD",
    "DEFAULT_CONTENT_FIELD",
    "DEFAULT_METADATA_FIELD",
    "DEFAULT_VECTOR_FIELD",
    "DEFAULT_SPARSE_VECTOR_FIELD",
    "DEFAULT_MAX_ID_LEN",
    "DEFAULT_MAX_CONTENT_LEN",
    "DEFAULT_BINARY_DIM",
    "DEFAULT_BINARY_CONTENT_LEN",
    "DEFAULT_CONSISTENCY_LEVEL",
    "METRIC_TYPES",
    "normalize_consistency_level",
    "load_state_name",
    "is_index_exists_error",
    "vector_to_bytes",
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
]
