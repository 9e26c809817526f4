"""Pinecone serverless indexer with parallel batch upserts."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import TYPE_CHECKING, Any, Callable, Sequence

from connectors.config.settings import pinecone_settings
from connectors.schema.document import DENSE_VECTOR_KEY, SPARSE_VECTOR_KEY

from ...errors import ConfigError, ShapeMismatchError, VendorError
from ..base import BaseIndexer
from ..registry import register_indexer

if TYPE_CHECKING:
    from pinecone import Pinecone

    from connectors.schema import Document

    from ...embedding.base import BaseEmbedder

logger = logging.getLogger(__name__)

CONTENT_KEY = "content"
DEFAULT_VECTOR_TYPE = "dense"
DEFAULT_DELETION_PROTECTION = "disabled"

DocumentConverter = Callable[["Sequence[Document]", "list[list[float]]"], "list[dict[str, Any]]"]


def _field(model: Any, name: str) -> Any:
    if isinstance(model, dict):
        return model.get(name)
    return getattr(model, name, None)


def _plain(value: Any) -> str:
    """Enum-ish SDK values compare by their string value."""
    value = getattr(value, "value", value)
    return "" if value is None else str(value)


def validate_index_schema(
    index: Any,
    dimension: int,
    metric: str,
    deletion_protection: str,
    tags: dict[str, str] | None,
) -> None:
    """Check a described index against the configured settings.

    Raises:
        ShapeMismatchError: On the first differing property.
    """
    got_dimension = _field(index, "dimension")
    if got_dimension is not None and int(got_dimension) != dimension:
        raise ShapeMismatchError(f"index dimension mismatch: expected {dimension}, got {got_dimension}")
    got_metric = _plain(_field(index, "metric"))
    if got_metric != metric:
        raise ShapeMismatchError(f"index metric mismatch: expected {metric}, got {got_metric}")
    got_protection = _plain(_field(index, "deletion_protection"))
    if got_protection != deletion_protection:
        raise ShapeMismatchError(
            f"index deletion protection mismatch: expected {deletion_protection}, got {got_protection}"
        )
    existing_tags = _field(index, "tags") or {}
    for key, value in (tags or {}).items():
        if existing_tags and existing_tags.get(key) != value:
            raise ShapeMismatchError(
                f"index tag mismatch for key {key}: expected {value}, got {existing_tags.get(key)}"
            )


def default_document_converter(dimension: int) -> DocumentConverter:
    """Vectors ``{id, values, metadata}``; ``content`` is kept in metadata."""

    def convert(docs: Sequence[Document], vectors: list[list[float]]) -> list[dict[str, Any]]:
        if len(docs) != len(vectors):
            raise ShapeMismatchError(f"docs count mismatch: expected {len(vectors)}, got {len(docs)}")
        result = []
        for doc, vector in zip(docs, vectors):
            if len(vector) != dimension:
                raise ShapeMismatchError(f"vector dimension mismatch: expected {dimension}, got {len(vector)}")
            metadata = {
                k: v for k, v in doc.meta_data.items() if k not in (DENSE_VECTOR_KEY, SPARSE_VECTOR_KEY)
            }
            metadata[CONTENT_KEY] = doc.content
            result.append({"id": doc.id, "values": [float(v) for v in vector], "metadata": metadata})
        return result

    return convert


@register_indexer("pinecone", version="v1")
class PineconeIndexer(BaseIndexer):
    type_name = "Pinecone"

    def __init__(
        self,
        client: Pinecone | None = None,
        embedding: BaseEmbedder | None = None,
        index_name: str | None = None,
        cloud: str | None = None,
        region: str | None = None,
        metric: str | None = None,
        dimension: int = 0,
        vector_type: str = DEFAULT_VECTOR_TYPE,
        namespace: str = "",
        tags: dict[str, str] | None = None,
        deletion_protection: str = DEFAULT_DELETION_PROTECTION,
        document_converter: DocumentConverter | None = None,
        batch_size: int = 0,
        max_concurrency: int = 0,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        if client is None:
            raise ConfigError("[PineconeIndexer] pinecone client not provided")
        if embedding is None:
            raise ConfigError("[PineconeIndexer] embedding not provided")
        if dimension < 0:
            raise ConfigError("[PineconeIndexer] dimension must be positive")

        self.client = client
        self.embedding = embedding
        self.index_name = index_name or pinecone_settings.index_name
        self.cloud = cloud or pinecone_settings.cloud
        self.region = region or pinecone_settings.region
        self.metric = metric or pinecone_settings.metric
        self.dimension = dimension or pinecone_settings.dimension
        self.vector_type = vector_type or DEFAULT_VECTOR_TYPE
        self.namespace = namespace
        self.tags = tags
        self.deletion_protection = deletion_protection or DEFAULT_DELETION_PROTECTION
        self.document_converter = document_converter or default_document_converter(self.dimension)
        self.batch_size = batch_size if batch_size > 0 else pinecone_settings.batch_size
        self.max_concurrency = max_concurrency if max_concurrency > 0 else pinecone_settings.max_concurrency

        self._provision()

    def _provision(self) -> None:
        try:
            existing = set(self.client.list_indexes().names())
        except Exception as exc:
            raise VendorError(f"[PineconeIndexer] failed to list indexes: {exc}") from exc

        if self.index_name not in existing:
            from pinecone import ServerlessSpec

            try:
                self.client.create_index(
                    name=self.index_name,
                    dimension=self.dimension,
                    metric=self.metric,
                    spec=ServerlessSpec(cloud=self.cloud, region=self.region),
                    deletion_protection=self.deletion_protection,
                    vector_type=self.vector_type,
                    tags=self.tags,
                )
            except Exception as exc:
                raise VendorError(f"[PineconeIndexer] failed to create index: {exc}") from exc
            logger.info("Created pinecone index %s (dim=%d, metric=%s)", self.index_name, self.dimension, self.metric)

        try:
            described = self.client.describe_index(self.index_name)
        except Exception as exc:
            raise VendorError(f"[PineconeIndexer] failed to describe index: {exc}") from exc
        try:
            validate_index_schema(described, self.dimension, self.metric, self.deletion_protection, self.tags)
        except ShapeMismatchError as exc:
            raise ShapeMismatchError(f"[PineconeIndexer] index schema validation failed: {exc}") from exc

    def _index(self) -> Any:
        try:
            host = _field(self.client.describe_index(self.index_name), "host")
            return self.client.Index(host=host)
        except Exception as exc:
            raise VendorError(f"[PineconeIndexer.store] failed to connect to index: {exc}") from exc

    def _parallel_upsert(self, vectors: list[dict[str, Any]]) -> None:
        index = self._index()
        batches = [vectors[i : i + self.batch_size] for i in range(0, len(vectors), self.batch_size)]
        errors: list[str] = []
        with ThreadPoolExecutor(max_workers=min(self.max_concurrency, len(batches)) or 1) as pool:
            futures = {
                pool.submit(index.upsert, vectors=batch, namespace=self.namespace): batch_id
                for batch_id, batch in enumerate(batches)
            }
            for future in as_completed(futures):
                exc = future.exception()
                if exc is not None:
                    logger.error("Pinecone upsert batch %d failed: %s", futures[future], exc)
                    errors.append(f"batch {futures[future]} failed: {exc}")
        if errors:
            raise VendorError(f"[PineconeIndexer.store] failed to insert documents: {errors[0]}")

    def store(
        self,
        docs: Sequence[Document],
        *,
        embedding: BaseEmbedder | None = None,
        **options: Any,
    ) -> list[str]:
        emb = embedding or self.embedding
        if emb is None:
            raise ConfigError("[PineconeIndexer.store] embedding not provided")
        if not docs:
            return []

        vectors = self.embed_documents(docs, emb, context="[PineconeIndexer.store]")
        pc_vectors = self.document_converter(docs, vectors)
        try:
            self._parallel_upsert(pc_vectors)
        except VendorError as exc:
            raise VendorError(f"[PineconeIndexer.store] failed to insert document: {exc}") from exc
        return [doc.id for doc in docs]


__all__ = ["PineconeIndexer", "default_document_converter", "validate_index_schema"]
