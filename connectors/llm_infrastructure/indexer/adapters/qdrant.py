"""Qdrant indexer."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Sequence

from connectors.config.settings import qdrant_settings

from ...errors import ConfigError, VendorError
from ..base import BaseIndexer
from ..registry import register_indexer

if TYPE_CHECKING:
    from qdrant_client import QdrantClient

    from connectors.schema import Document

    from ...embedding.base import BaseEmbedder

logger = logging.getLogger(__name__)

CONTENT_KEY = "content"
METADATA_KEY = "metadata"


@dataclass
class QdrantFields:
    """What a document contributes to one Qdrant point."""

    id: str
    content: str
    metadata: dict[str, Any] = field(default_factory=dict)


def default_document_to_fields(doc: Document) -> QdrantFields:
    if not doc.id:
        raise ValueError("[default_document_to_fields] doc id not set")
    return QdrantFields(id=doc.id, content=doc.content, metadata=dict(doc.meta_data))


@register_indexer("qdrant", version="v1")
class QdrantIndexer(BaseIndexer):
    """Upserts documents as points with payload ``{content, metadata}``.

    When ``vector_dim`` is given the collection is created on first store if
    it does not exist yet, using ``distance`` (cosine by default).
    """

    type_name = "Qdrant"

    def __init__(
        self,
        client: QdrantClient | None = None,
        embedding: BaseEmbedder | None = None,
        collection: str | None = None,
        vector_dim: int = 0,
        distance: Any = None,
        batch_size: int | None = None,
        document_to_fields: Callable[[Document], QdrantFields] | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        if embedding is None:
            raise ConfigError("[QdrantIndexer] embedding not provided for qdrant indexer")
        if client is None:
            raise ConfigError("[QdrantIndexer] qdrant client not provided")
        self.client = client
        self.embedding = embedding
        self.collection = collection or qdrant_settings.collection
        self.vector_dim = vector_dim
        self.distance = distance
        self.batch_size = batch_size or qdrant_settings.batch_size
        self.document_to_fields = document_to_fields or default_document_to_fields

    def _ensure_collection(self) -> None:
        from qdrant_client.http import models as qmodels

        try:
            if self.client.collection_exists(self.collection):
                return
            self.client.create_collection(
                collection_name=self.collection,
                vectors_config=qmodels.VectorParams(
                    size=self.vector_dim,
                    distance=self.distance or qmodels.Distance.COSINE,
                ),
            )
        except Exception as exc:
            raise VendorError(f"[QdrantIndexer.store] failed to ensure collection: {exc}") from exc
        logger.info("Created qdrant collection %s (dim=%d)", self.collection, self.vector_dim)

    def store(
        self,
        docs: Sequence[Document],
        *,
        embedding: BaseEmbedder | None = None,
        **options: Any,
    ) -> list[str]:
        from qdrant_client.http import models as qmodels

        emb = embedding or self.embedding
        if self.vector_dim > 0:
            self._ensure_collection()

        for start in range(0, len(docs), self.batch_size):
            batch = docs[start : start + self.batch_size]
            fields = [self.document_to_fields(doc) for doc in batch]
            vectors = self.embed_documents(batch, emb)
            points = [
                qmodels.PointStruct(
                    id=f.id,
                    vector=[float(v) for v in vectors[idx]],
                    payload={CONTENT_KEY: f.content, METADATA_KEY: f.metadata},
                )
                for idx, f in enumerate(fields)
            ]
            try:
                self.client.upsert(collection_name=self.collection, points=points, wait=True)
            except Exception as exc:
                logger.error("Qdrant upsert into %s failed: %s", self.collection, exc)
                raise VendorError(f"[QdrantIndexer.store] failed to upsert points: {exc}") from exc

        return [doc.id for doc in docs]


__all__ = ["QdrantIndexer", "QdrantFields", "default_document_to_fields"]
