"""Base class for vector-store retrievers."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from ..errors import ConfigError, ShapeMismatchError, VendorError

if TYPE_CHECKING:
    from connectors.schema import Document

    from ..embedding.base import BaseEmbedder

logger = logging.getLogger(__name__)


class BaseRetriever(ABC):
    """Common interface for all retrievers.

    Each retriever should:
    1. Inherit from this class
    2. Implement ``retrieve()``
    3. Register itself using the @register_retriever decorator

    Example:
        ```python
        @register_retriever("my_store", version="v1")
        class MyRetriever(BaseRetriever):
            type_name = "MyStore"

            def retrieve(self, query, *, top_k=None, score_threshold=None, embedding=None, **options):
                vector = self.embed_query(query, embedding or self.embedding)
                ...
                return [Document(id="doc1", content="...").with_score(0.95)]
        ```
    """

    type_name: str = ""

    def __init__(self, **kwargs: Any) -> None:
        self.config = kwargs

    @abstractmethod
    def retrieve(
        self,
        query: str,
        *,
        top_k: int | None = None,
        score_threshold: float | None = None,
        embedding: BaseEmbedder | None = None,
        **options: Any,
    ) -> list[Document]:
        """Retrieve documents relevant to ``query``.

        Args:
            query: Query text (or a raw request body for some search modes)
            top_k: Number of results; the adapter default when omitted
            score_threshold: Drop results scoring below this value
            embedding: Overrides the configured embedder for this call
            **options: Adapter-specific options

        Returns:
            Documents with their score attached, best first
        """
        raise NotImplementedError

    def get_type(self) -> str:
        return self.type_name or self.__class__.__name__

    def is_callbacks_enabled(self) -> bool:
        return True

    @staticmethod
    def embed_query(
        query: str,
        embedding: BaseEmbedder | None,
        context: str = "[BaseRetriever.retrieve]",
    ) -> list[float]:
        """Embed the query text with one ``embed_strings`` call."""
        if embedding is None:
            raise ConfigError(f"{context} embedding not provided")
        try:
            vectors = embedding.embed_strings([query])
        except Exception as exc:
            logger.error("%s failed to embed query: %s", context, exc)
            raise VendorError(f"{context} failed to embed query: {exc}") from exc
        if len(vectors) != 1:
            raise ShapeMismatchError(f"{context} invalid return length of vector, got={len(vectors)}, expected=1")
        return [float(v) for v in vectors[0]]

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(config={self.config})"


__all__ = ["BaseRetriever"]
