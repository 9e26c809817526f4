"""Milvus indexer for binary-vector collections.

Documents are embedded, packed to bytes and stored in a ``BINARY_VECTOR``
field searched with the HAMMING metric. Unlike ``milvus2`` this indexer never
alters an existing collection: its schema must match the expected fields.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any, Callable, Sequence

from connectors.config.settings import milvus_settings

from ...errors import ConfigError, ShapeMismatchError, VendorError
from ..base import BaseIndexer
from ..engines.milvus_index import (
    DEFAULT_BINARY_CONTENT_LEN,
    DEFAULT_BINARY_DIM,
    DEFAULT_CONTENT_FIELD,
    DEFAULT_ID_FIELD,
    DEFAULT_MAX_ID_LEN,
    DEFAULT_METADATA_FIELD,
    DEFAULT_VECTOR_FIELD,
    BinIVFFlatIndexBuilder,
    IndexBuilder,
    load_state_name,
    normalize_consistency_level,
    vector_to_bytes,
)
from ..registry import register_indexer

if TYPE_CHECKING:
    from pymilvus import MilvusClient

    from connectors.schema import Document

    from ...embedding.base import BaseEmbedder

logger = logging.getLogger(__name__)

DEFAULT_METRIC_TYPE = "HAMMING"


def default_fields() -> list[dict[str, Any]]:
    """Expected collection fields as ``schema.add_field`` keyword dicts."""
    from pymilvus import DataType

    return [
        {
            "field_name": DEFAULT_ID_FIELD,
            "datatype": DataType.VARCHAR,
            "max_length": DEFAULT_MAX_ID_LEN,
            "is_primary": True,
            "description": "the unique id of the document",
        },
        {
            "field_name": DEFAULT_VECTOR_FIELD,
            "datatype": DataType.BINARY_VECTOR,
            "dim": DEFAULT_BINARY_DIM,
            "description": "the vector of the document",
        },
        {
            "field_name": DEFAULT_CONTENT_FIELD,
            "datatype": DataType.VARCHAR,
            "max_length": DEFAULT_BINARY_CONTENT_LEN,
            "description": "the content of the document",
        },
        {
            "field_name": DEFAULT_METADATA_FIELD,
            "datatype": DataType.JSON,
            "description": "the metadata of the document",
        },
    ]


def _type_name(datatype: Any) -> str:
    return getattr(datatype, "name", None) or str(datatype)


def check_collection_schema(existing: list[dict[str, Any]], expected: list[dict[str, Any]]) -> None:
    """Compare ``describe_collection()["fields"]`` against the expected fields.

    Raises:
        ShapeMismatchError: On a field count, name or type difference.
    """
    existing_names = [f.get("name") for f in existing]
    if len(existing) != len(expected):
        raise ShapeMismatchError(
            f"field count mismatch: existing={len(existing)}, expected={len(expected)}. "
            f"Existing fields: {existing_names}"
        )
    by_name = {f.get("name"): f for f in existing}
    mismatches = []
    for field in expected:
        name = field["field_name"]
        current = by_name.get(name)
        if current is None:
            mismatches.append(f"field '{name}' not found in existing schema")
            continue
        have, want = _type_name(current.get("type")), _type_name(field["datatype"])
        if have != want:
            mismatches.append(f"field '{name}' type mismatch: existing={have}, expected={want}")
    if mismatches:
        raise ShapeMismatchError(f"schema mismatches found: {mismatches}")


@register_indexer("milvus_new", version="v1")
class MilvusBinaryIndexer(BaseIndexer):
    """Stores documents in a HAMMING-searched binary collection.

    The default index is BIN_IVF_FLAT (nlist=128) rather than AUTOINDEX.
    """

    type_name = "Milvus"

    def __init__(
        self,
        client: MilvusClient | None = None,
        embedding: BaseEmbedder | None = None,
        collection: str | None = None,
        description: str | None = None,
        partition_num: int = 0,
        partition_name: str = "",
        fields: list[dict[str, Any]] | None = None,
        shard_num: int = 1,
        consistency_level: str | None = None,
        enable_dynamic_schema: bool = False,
        metric_type: str = DEFAULT_METRIC_TYPE,
        index_builder: IndexBuilder | None = None,
        document_converter: Callable[[Sequence[Document], list[list[float]]], list[dict[str, Any]]] | None = None,
        load_timeout: float = 60.0,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        if client is None:
            raise ConfigError("[MilvusBinaryIndexer] milvus client not provided")
        if embedding is None:
            raise ConfigError("[MilvusBinaryIndexer] embedding not provided")
        if partition_num > 1 and partition_name:
            raise ConfigError(
                "[MilvusBinaryIndexer] not support manually specifying the partition names if partition key mode is used"
            )

        self._client = client
        self.embedding = embedding
        self.collection = collection or milvus_settings.collection
        self.description = description or milvus_settings.description
        self.partition_num = partition_num if partition_num > 1 else 0
        self.partition_name = partition_name
        self.fields = fields if fields is not None else default_fields()
        self.shard_num = shard_num if shard_num > 0 else 1
        self.consistency_level = normalize_consistency_level(consistency_level or milvus_settings.consistency_level)
        self.enable_dynamic_schema = enable_dynamic_schema
        self.metric_type = metric_type or DEFAULT_METRIC_TYPE
        self.index_builder = index_builder or BinIVFFlatIndexBuilder(nlist=128)
        self.document_converter = document_converter or self._default_document_converter
        self.load_timeout = load_timeout

        self._provision()

    def _provision(self) -> None:
        try:
            if not self._client.has_collection(self.collection):
                self._create_collection()
            described = self._client.describe_collection(self.collection)
        except VendorError:
            raise
        except Exception as exc:
            raise VendorError(f"[MilvusBinaryIndexer] failed to describe collection: {exc}") from exc

        try:
            check_collection_schema(described.get("fields", []), self.fields)
        except ShapeMismatchError as exc:
            raise ShapeMismatchError(f"[MilvusBinaryIndexer] collection schema not match: {exc}") from exc

        self._load_collection()

        if self.partition_num == 0 and self.partition_name:
            try:
                if not self._client.has_partition(self.collection, self.partition_name):
                    self._client.create_partition(self.collection, self.partition_name)
                    logger.info("Created partition %s in %s", self.partition_name, self.collection)
                self._client.load_partitions(self.collection, partition_names=[self.partition_name])
            except Exception as exc:
                raise VendorError(f"[MilvusBinaryIndexer] failed to prepare partition: {exc}") from exc

    def _create_collection(self) -> None:
        schema = self._client.create_schema(
            auto_id=False,
            enable_dynamic_field=self.enable_dynamic_schema,
            description=self.description,
        )
        for field in self.fields:
            schema.add_field(**field)
        create_kwargs: dict[str, Any] = {
            "shards_num": self.shard_num,
            "consistency_level": self.consistency_level,
        }
        if self.partition_num:
            create_kwargs["num_partitions"] = self.partition_num
        try:
            self._client.create_collection(collection_name=self.collection, schema=schema, **create_kwargs)
        except Exception as exc:
            raise VendorError(f"[MilvusBinaryIndexer] failed to create collection: {exc}") from exc
        logger.info("Created binary milvus collection %s", self.collection)

    def _create_default_index(self) -> None:
        index_params = self._client.prepare_index_params()
        index_params.add_index(field_name=DEFAULT_VECTOR_FIELD, **self.index_builder.build(self.metric_type))
        try:
            self._client.create_index(self.collection, index_params)
        except Exception as exc:
            raise VendorError(f"[MilvusBinaryIndexer] failed to create index: {exc}") from exc

    def _load_collection(self) -> None:
        try:
            state = load_state_name(self._client.get_load_state(self.collection))
        except Exception as exc:
            raise VendorError(f"[MilvusBinaryIndexer] failed to get load state: {exc}") from exc

        if state == "NotLoad":
            if not self._client.list_indexes(self.collection, field_name=DEFAULT_VECTOR_FIELD):
                self._create_default_index()
            try:
                self._client.load_collection(self.collection)
            except Exception as exc:
                raise VendorError(f"[MilvusBinaryIndexer] failed to load collection: {exc}") from exc
            return

        deadline = time.monotonic() + self.load_timeout
        while state == "Loading":
            if time.monotonic() > deadline:
                raise VendorError(f"[MilvusBinaryIndexer] timed out waiting for collection {self.collection} to load")
            time.sleep(0.2)
            state = load_state_name(self._client.get_load_state(self.collection))

    @staticmethod
    def _default_document_converter(docs: Sequence[Document], vectors: list[list[float]]) -> list[dict[str, Any]]:
        return [
            {
                DEFAULT_ID_FIELD: doc.id,
                DEFAULT_CONTENT_FIELD: doc.content,
                DEFAULT_VECTOR_FIELD: vector_to_bytes(vectors[idx]),
                DEFAULT_METADATA_FIELD: dict(doc.meta_data),
            }
            for idx, doc in enumerate(docs)
        ]

    def store(
        self,
        docs: Sequence[Document],
        *,
        embedding: BaseEmbedder | None = None,
        partition: str | None = None,
        **options: Any,
    ) -> list[str]:
        emb = embedding or self.embedding
        if emb is None:
            raise ConfigError("[MilvusBinaryIndexer.store] embedding not provided")
        partition = partition or self.partition_name

        vectors = self.embed_documents(docs, emb)
        try:
            rows = self.document_converter(docs, vectors)
        except Exception as exc:
            raise VendorError(f"[MilvusBinaryIndexer.store] failed to convert documents: {exc}") from exc

        try:
            result = self._client.insert(collection_name=self.collection, data=rows, partition_name=partition or "")
            self._client.flush(self.collection)
        except Exception as exc:
            logger.error("Milvus insert into %s failed: %s", self.collection, exc)
            raise VendorError(f"[MilvusBinaryIndexer.store] failed to insert rows: {exc}") from exc

        return [str(i) for i in result.get("ids", [])]


__all__ = ["MilvusBinaryIndexer", "check_collection_schema", "default_fields"]
