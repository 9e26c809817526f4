"""Common document model shared by indexers and retrievers."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any

SCORE_KEY = "_score"
DENSE_VECTOR_KEY = "_dense_vector"
SPARSE_VECTOR_KEY = "_sparse_vector"
EXTRA_INFO_KEY = "_extra_info"


@dataclass
class Document:
    """A piece of text with metadata.

    Vectors and the retrieval score are kept in ``meta_data`` under reserved
    keys so they travel with the document through every converter.
    """

    id: str = ""
    content: str = ""
    meta_data: dict[str, Any] = field(default_factory=dict)

    def with_score(self, score: float) -> "Document":
        self.meta_data[SCORE_KEY] = float(score)
        return self

    def score(self) -> float:
        return float(self.meta_data.get(SCORE_KEY, 0.0))

    def with_dense_vector(self, vector: list[float] | None) -> "Document":
        self.meta_data[DENSE_VECTOR_KEY] = list(vector) if vector is not None else None
        return self

    def dense_vector(self) -> list[float] | None:
        return self.meta_data.get(DENSE_VECTOR_KEY)

    def with_sparse_vector(self, vector: dict[int, float] | None) -> "Document":
        self.meta_data[SPARSE_VECTOR_KEY] = dict(vector) if vector is not None else None
        return self

    def sparse_vector(self) -> dict[int, float] | None:
        return self.meta_data.get(SPARSE_VECTOR_KEY)

    def with_extra_info(self, info: str) -> "Document":
        self.meta_data[EXTRA_INFO_KEY] = info
        return self

    def extra_info(self) -> str:
        return self.meta_data.get(EXTRA_INFO_KEY, "")

    def copy(self) -> "Document":
        return Document(id=self.id, content=self.content, meta_data=copy.deepcopy(self.meta_data))

    def __repr__(self) -> str:
        return f"Document(id={self.id}, content={self.content[:40]!r}, score={self.score():.4f})"


__all__ = [
    "Document",
    "SCORE_KEY",
    "DENSE_VECTOR_KEY",
    "SPARSE_VECTOR_KEY",
    "EXTRA_INFO_KEY",
]
