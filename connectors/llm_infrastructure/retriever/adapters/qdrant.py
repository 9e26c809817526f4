"""Qdrant retriever."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable

from connectors.config.settings import qdrant_settings
from connectors.schema import Document

from ...errors import ConfigError, VendorError
from ...indexer.adapters.qdrant import CONTENT_KEY, METADATA_KEY
from ..base import BaseRetriever
from ..registry import register_retriever

if TYPE_CHECKING:
    from qdrant_client import QdrantClient
    from qdrant_client.http import models as qmodels

    from ...embedding.base import BaseEmbedder

logger = logging.getLogger(__name__)


def default_document_converter(point: Any) -> Document:
    """Map a ``ScoredPoint`` written by the qdrant indexer back to a document."""
    payload = point.payload or {}
    doc = Document(
        id=str(point.id),
        content=str(payload.get(CONTENT_KEY) or ""),
        meta_data=dict(payload.get(METADATA_KEY) or {}),
    )
    return doc.with_score(float(point.score))


@register_retriever("qdrant", version="v1")
class QdrantRetriever(BaseRetriever):
    type_name = "Qdrant"

    def __init__(
        self,
        client: QdrantClient | None = None,
        collection: str = "",
        embedding: BaseEmbedder | None = None,
        top_k: int | None = None,
        score_threshold: float | None = None,
        document_converter: Callable[[Any], Document] | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        if embedding is None:
            raise ConfigError("[QdrantRetriever] embedding not provided for qdrant retriever")
        if not collection:
            raise ConfigError("[QdrantRetriever] qdrant collection not provided")
        if client is None:
            raise ConfigError("[QdrantRetriever] qdrant client not provided")
        self.client = client
        self.collection = collection
        self.embedding = embedding
        self.top_k = top_k or qdrant_settings.top_k
        self.score_threshold = score_threshold
        self.document_converter = document_converter or default_document_converter

    def retrieve(
        self,
        query: str,
        *,
        top_k: int | None = None,
        score_threshold: float | None = None,
        embedding: BaseEmbedder | None = None,
        filter: qmodels.Filter | None = None,
        **options: Any,
    ) -> list[Document]:
        vector = self.embed_query(query, embedding or self.embedding, context="[qdrant retriever]")
        threshold = score_threshold if score_threshold is not None else self.score_threshold
        try:
            response = self.client.query_points(
                collection_name=self.collection,
                query=vector,
                limit=top_k or self.top_k,
                with_payload=True,
                score_threshold=threshold,
                query_filter=filter,
            )
        except Exception as exc:
            logger.error("Qdrant search on %s failed: %s", self.collection, exc)
            raise VendorError(f"[QdrantRetriever.retrieve] qdrant search failed: {exc}") from exc
        return [self.document_converter(point) for point in response.points]


__all__ = ["QdrantRetriever", "default_document_converter"]
