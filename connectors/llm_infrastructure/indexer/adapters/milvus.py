"""Milvus 2.x indexer built on ``pymilvus.MilvusClient``."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, Sequence

from connectors.config.settings import milvus_settings
from connectors.schema.document import DENSE_VECTOR_KEY, SPARSE_VECTOR_KEY

from ...errors import ConfigError, VendorError
from ..base import BaseIndexer
from ..engines.milvus_index import (
    DEFAULT_CONTENT_FIELD,
    DEFAULT_ID_FIELD,
    DEFAULT_MAX_CONTENT_LEN,
    DEFAULT_MAX_ID_LEN,
    DEFAULT_METADATA_FIELD,
    DEFAULT_VECTOR_FIELD,
    IndexBuilder,
    AutoIndexBuilder,
    SparseInvertedIndexBuilder,
    is_index_exists_error,
    load_state_name,
    normalize_consistency_level,
)
from ..registry import register_indexer

if TYPE_CHECKING:
    from pymilvus import MilvusClient

    from connectors.schema import Document

    from ...embedding.base import BaseEmbedder

logger = logging.getLogger(__name__)

DocumentConverter = Callable[[Sequence["Document"], "list[list[float]] | None"], "list[dict[str, Any]]"]


def default_document_converter(vector_field: str, sparse_vector_field: str) -> DocumentConverter:
    """Build rows ``{id, content, metadata, <vector_field>[, <sparse_field>]}``.

    Vectors come from the embedder when it returned one per document, else
    from each document's stored dense vector.
    """

    def convert(docs: Sequence[Document], vectors: list[list[float]] | None) -> list[dict[str, Any]]:
        rows = []
        for idx, doc in enumerate(docs):
            metadata = {
                k: v for k, v in doc.meta_data.items() if k not in (DENSE_VECTOR_KEY, SPARSE_VECTOR_KEY)
            }
            row: dict[str, Any] = {
                DEFAULT_ID_FIELD: doc.id,
                DEFAULT_CONTENT_FIELD: doc.content,
                DEFAULT_METADATA_FIELD: metadata,
            }
            if vector_field:
                source = vectors[idx] if vectors is not None and len(vectors) == len(docs) else doc.dense_vector()
                if not source:
                    raise ValueError(f"vector data missing for document {idx} (id: {doc.id})")
                row[vector_field] = [float(v) for v in source]
            sparse = doc.sparse_vector()
            if sparse_vector_field and sparse:
                row[sparse_vector_field] = {int(k): float(v) for k, v in sparse.items()}
            rows.append(row)
        return rows

    return convert


@register_indexer("milvus2", version="v1")
class MilvusIndexer(BaseIndexer):
    """Stores documents in a Milvus collection, provisioning it on first use.

    Args:
        client: A ``pymilvus.MilvusClient``. Either this or ``client_config``
            (``{"uri", "token", "db_name"}``) is required.
        dimension: Dense vector dimension; required when the collection has
            to be created.
        sparse_vector_field: Adds a ``SPARSE_FLOAT_VECTOR`` field (e.g. the
            output of a BM25 function passed in ``functions``).
        index_builder / sparse_index_builder: Index definitions; AutoIndex and
            SPARSE_INVERTED_INDEX by default.
    """

    type_name = "Milvus2"

    def __init__(
        self,
        client: MilvusClient | None = None,
        client_config: dict[str, Any] | None = None,
        collection: str | None = None,
        description: str | None = None,
        dimension: int = 0,
        partition_name: str = "",
        consistency_level: str | None = None,
        enable_dynamic_schema: bool = False,
        metric_type: str | None = None,
        index_builder: IndexBuilder | None = None,
        sparse_index_builder: IndexBuilder | None = None,
        vector_field: str | None = None,
        sparse_vector_field: str = "",
        sparse_metric_type: str | None = None,
        document_converter: DocumentConverter | None = None,
        embedding: BaseEmbedder | None = None,
        functions: list[Any] | None = None,
        field_params: dict[str, dict[str, Any]] | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        if client is None and client_config is None:
            raise ConfigError("[MilvusIndexer] milvus client or client config not provided")

        self.collection = collection or milvus_settings.collection
        self.description = description or milvus_settings.description
        self.dimension = dimension
        self.partition_name = partition_name
        self.consistency_level = normalize_consistency_level(consistency_level or milvus_settings.consistency_level)
        self.enable_dynamic_schema = enable_dynamic_schema
        self.metric_type = metric_type or milvus_settings.metric_type
        self.index_builder = index_builder
        self.sparse_index_builder = sparse_index_builder
        if vector_field is None:
            # A sparse-only collection has no dense field unless a dimension is given.
            vector_field = DEFAULT_VECTOR_FIELD if dimension > 0 or not sparse_vector_field else ""
        self.vector_field = vector_field
        self.sparse_vector_field = sparse_vector_field
        self.sparse_metric_type = sparse_metric_type or milvus_settings.sparse_metric_type
        self.document_converter = document_converter or default_document_converter(
            self.vector_field, self.sparse_vector_field
        )
        self.embedding = embedding
        self.functions = list(functions or [])
        self.field_params = field_params or {}

        self._client = client if client is not None else self._create_client(client_config or {})
        self._provision()

    @staticmethod
    def _create_client(client_config: dict[str, Any]) -> MilvusClient:
        from pymilvus import MilvusClient

        try:
            return MilvusClient(
                uri=client_config.get("uri") or milvus_settings.uri,
                token=client_config.get("token", milvus_settings.token),
                db_name=client_config.get("db_name", milvus_settings.db_name),
            )
        except Exception as exc:
            raise VendorError(f"[MilvusIndexer] failed to create milvus client: {exc}") from exc

    def _provision(self) -> None:
        try:
            has_collection = self._client.has_collection(self.collection)
        except Exception as exc:
            raise VendorError(f"[MilvusIndexer] failed to check collection: {exc}") from exc

        if not has_collection:
            if self.dimension <= 0 and self.vector_field:
                raise ConfigError("[MilvusIndexer] dimension is required when collection does not exist")
            self._create_collection()

        try:
            state = load_state_name(self._client.get_load_state(self.collection))
        except Exception as exc:
            raise VendorError(f"[MilvusIndexer] failed to get load state: {exc}") from exc

        if state != "Loaded":
            self._create_indexes()
            try:
                self._client.load_collection(self.collection)
            except Exception as exc:
                raise VendorError(f"[MilvusIndexer] failed to load collection: {exc}") from exc
            logger.info("Loaded milvus collection %s", self.collection)

    def _field_kwargs(self, name: str, **kwargs: Any) -> dict[str, Any]:
        kwargs.update(self.field_params.get(name, {}))
        return kwargs

    def _create_collection(self) -> None:
        from pymilvus import DataType

        if not self.vector_field and not self.sparse_vector_field:
            raise ConfigError("[MilvusIndexer] at least one vector field (dense or sparse) is required")

        schema = self._client.create_schema(
            auto_id=False,
            enable_dynamic_field=self.enable_dynamic_schema,
            description=self.description,
        )
        schema.add_field(
            field_name=DEFAULT_ID_FIELD,
            **self._field_kwargs(
                DEFAULT_ID_FIELD, datatype=DataType.VARCHAR, max_length=DEFAULT_MAX_ID_LEN, is_primary=True
            ),
        )
        schema.add_field(
            field_name=DEFAULT_CONTENT_FIELD,
            **self._field_kwargs(DEFAULT_CONTENT_FIELD, datatype=DataType.VARCHAR, max_length=DEFAULT_MAX_CONTENT_LEN),
        )
        schema.add_field(
            field_name=DEFAULT_METADATA_FIELD,
            **self._field_kwargs(DEFAULT_METADATA_FIELD, datatype=DataType.JSON),
        )
        if self.vector_field:
            schema.add_field(
                field_name=self.vector_field,
                **self._field_kwargs(self.vector_field, datatype=DataType.FLOAT_VECTOR, dim=self.dimension),
            )
        if self.sparse_vector_field:
            schema.add_field(
                field_name=self.sparse_vector_field,
                **self._field_kwargs(self.sparse_vector_field, datatype=DataType.SPARSE_FLOAT_VECTOR),
            )
        for fn in self.functions:
            schema.add_function(fn)

        try:
            self._client.create_collection(
                collection_name=self.collection,
                schema=schema,
                consistency_level=self.consistency_level,
            )
        except Exception as exc:
            raise VendorError(f"[MilvusIndexer] failed to create collection: {exc}") from exc
        logger.info("Created milvus collection %s (dim=%d)", self.collection, self.dimension)

    def _create_index(self, field_name: str, builder: IndexBuilder, metric_type: str, label: str) -> None:
        index_params = self._client.prepare_index_params()
        index_params.add_index(field_name=field_name, **builder.build(metric_type))
        try:
            self._client.create_index(self.collection, index_params)
        except Exception as exc:
            if is_index_exists_error(exc):
                logger.debug("Index on %s.%s already exists", self.collection, field_name)
                return
            raise VendorError(f"[MilvusIndexer] failed to create {label}: {exc}") from exc

    def _create_indexes(self) -> None:
        if self.vector_field:
            self._create_index(
                self.vector_field, self.index_builder or AutoIndexBuilder(), self.metric_type, "index"
            )
        if self.sparse_vector_field:
            self._create_index(
                self.sparse_vector_field,
                self.sparse_index_builder or SparseInvertedIndexBuilder(),
                self.sparse_metric_type,
                "sparse index",
            )

    def store(
        self,
        docs: Sequence[Document],
        *,
        embedding: BaseEmbedder | None = None,
        partition: str | None = None,
        **options: Any,
    ) -> list[str]:
        emb = embedding or self.embedding
        partition = partition or self.partition_name

        vectors = self.embed_documents(docs, emb) if emb is not None else None
        try:
            rows = self.document_converter(docs, vectors)
        except Exception as exc:
            raise VendorError(f"[MilvusIndexer.store] failed to convert documents: {exc}") from exc

        try:
            result = self._client.insert(
                collection_name=self.collection,
                data=rows,
                partition_name=partition or "",
            )
        except Exception as exc:
            logger.error("Milvus insert into %s failed: %s", self.collection, exc)
            raise VendorError(f"[MilvusIndexer.store] failed to insert documents: {exc}") from exc

        try:
            self._client.flush(self.collection)
        except Exception as exc:
            raise VendorError(f"[MilvusIndexer.store] failed to flush collection: {exc}") from exc

        return [str(i) for i in result.get("ids", [])]


__all__ = ["MilvusIndexer", "default_document_converter"]
