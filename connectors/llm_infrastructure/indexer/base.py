"""Base class for vector-store indexers."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Sequence

from ..errors import ShapeMismatchError, VendorError

if TYPE_CHECKING:
    from connectors.schema import Document

    from ..embedding.base import BaseEmbedder

logger = logging.getLogger(__name__)


class BaseIndexer(ABC):
    """Common interface for all indexers.

    Each indexer should:
    1. Inherit from this class
    2. Implement ``store()``
    3. Register itself using the @register_indexer decorator

    Example:
        ```python
        @register_indexer("my_store", version="v1")
        class MyIndexer(BaseIndexer):
            type_name = "MyStore"

            def store(self, docs, *, embedding=None, **options):
                vectors = self.embed_documents(docs, embedding)
                ...
                return [d.id for d in docs]
        ```
    """

    type_name: str = ""

    def __init__(self, **kwargs: Any) -> None:
        self.config = kwargs

    @abstractmethod
    def store(
        self,
        docs: Sequence[Document],
        *,
        embedding: BaseEmbedder | None = None,
        **options: Any,
    ) -> list[str]:
        """Store documents and return their ids in input order."""
        raise NotImplementedError

    def get_type(self) -> str:
        return self.type_name or self.__class__.__name__

    def is_callbacks_enabled(self) -> bool:
        return True

    @staticmethod
    def embed_documents(
        docs: Sequence[Document],
        embedding: BaseEmbedder,
        context: str = "[BaseIndexer.store]",
    ) -> list[list[float]]:
        """Embed document contents with one ``embed_strings`` call.

        Raises:
            VendorError: If the embedder fails.
            ShapeMismatchError: If the embedder returns a different number of
                vectors than documents.
        """
        return BaseIndexer.embed_texts([doc.content for doc in docs], embedding, context)

    @staticmethod
    def embed_texts(
        texts: list[str],
        embedding: BaseEmbedder,
        context: str = "[BaseIndexer.store]",
    ) -> list[list[float]]:
        try:
            vectors = embedding.embed_strings(texts)
        except Exception as exc:
            logger.error("%s failed to embed %d texts: %s", context, len(texts), exc)
            raise VendorError(f"{context} failed to embed documents: {exc}") from exc
        if len(vectors) != len(texts):
            raise ShapeMismatchError(
                f"{context} embedding result length mismatch: need {len(texts)}, got {len(vectors)}"
            )
        return vectors

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(config={self.config})"


__all__ = ["BaseIndexer"]
