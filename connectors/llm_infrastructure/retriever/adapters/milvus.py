"""Milvus 2.x retriever with pluggable search modes."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, Callable

from connectors.config.settings import milvus_settings
from connectors.schema import Document

from ...errors import ConfigError, VendorError
from ...indexer.engines.milvus_index import (
    DEFAULT_CONTENT_FIELD,
    DEFAULT_ID_FIELD,
    DEFAULT_METADATA_FIELD,
    load_state_name,
)
from ..base import BaseRetriever
from ..engines.milvus_search_mode import Grouping, SearchMode, SearchOptions
from ..registry import register_retriever

if TYPE_CHECKING:
    from pymilvus import MilvusClient

    from ...embedding.base import BaseEmbedder

logger = logging.getLogger(__name__)

DocumentConverter = Callable[[list[Any]], "list[Document]"]


def _decode_metadata(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        return value
    if isinstance(value, (bytes, str)) and value:
        try:
            decoded = json.loads(value)
        except ValueError:
            return {}
        return decoded if isinstance(decoded, dict) else {}
    return {}


def default_document_converter(results: list[Any]) -> list[Document]:
    """Map search hits or query rows to documents.

    Search hits look like ``{"id", "distance", "entity": {...}}`` and carry a
    score; query rows are plain field dicts. ``metadata`` is merged into the
    document metadata, every other output field is copied as-is.
    """
    docs = []
    for item in results:
        entity = item.get("entity")
        if entity is None:
            row, score = dict(item), None
        else:
            row, score = dict(entity), item.get("distance")
            row.setdefault(DEFAULT_ID_FIELD, item.get("id"))

        meta: dict[str, Any] = {}
        for key, value in row.items():
            if key in (DEFAULT_ID_FIELD, DEFAULT_CONTENT_FIELD):
                continue
            if key == DEFAULT_METADATA_FIELD:
                meta.update(_decode_metadata(value))
            else:
                meta[key] = value

        content = row.get(DEFAULT_CONTENT_FIELD)
        doc = Document(
            id=str(row.get(DEFAULT_ID_FIELD, "")),
            content="" if content is None else str(content),
            meta_data=meta,
        )
        if score is not None:
            doc = doc.with_score(float(score))
        docs.append(doc)
    return docs


@register_retriever("milvus2", version="v1")
class MilvusRetriever(BaseRetriever):
    """Retrieves documents from an existing Milvus collection.

    Args:
        client / client_config: As for the ``milvus2`` indexer.
        search_mode: A ``SearchMode`` (``AutoSearch()``, ``ApproximateSearch``,
            ``HybridSearch``...). Required.
        search_params: Per-field params, e.g. ``{"vector": {"nprobe": 16}}``.
    """

    type_name = "Milvus2"

    def __init__(
        self,
        client: MilvusClient | None = None,
        client_config: dict[str, Any] | None = None,
        search_mode: SearchMode | None = None,
        collection: str | None = None,
        partitions: list[str] | None = None,
        vector_field: str | None = None,
        sparse_vector_field: str | None = None,
        output_fields: list[str] | None = None,
        top_k: int | None = None,
        consistency_level: str = "",
        search_params: dict[str, dict[str, Any]] | None = None,
        document_converter: DocumentConverter | None = None,
        embedding: BaseEmbedder | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        if client is None and client_config is None:
            raise ConfigError("[MilvusRetriever] milvus client or client config not provided")
        if search_mode is None:
            raise ConfigError("[MilvusRetriever] search mode not provided")

        self.search_mode = search_mode
        self.collection = collection or milvus_settings.collection
        self.partitions = list(partitions or [])
        self.vector_field = milvus_settings.vector_field if vector_field is None else vector_field
        self.sparse_vector_field = (
            milvus_settings.sparse_vector_field if sparse_vector_field is None else sparse_vector_field
        )
        self.output_fields = list(output_fields or ["*"])
        self.top_k = top_k if top_k and top_k > 0 else milvus_settings.top_k
        self.consistency_level = consistency_level
        self.search_params = search_params or {}
        self.document_converter = document_converter or default_document_converter
        self.embedding = embedding

        self.client = client if client is not None else self._create_client(client_config or {})
        self._load_collection()

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
            raise VendorError(f"[MilvusRetriever] failed to create milvus client: {exc}") from exc

    def _load_collection(self) -> None:
        try:
            exists = self.client.has_collection(self.collection)
        except Exception as exc:
            raise VendorError(f"[MilvusRetriever] failed to check collection: {exc}") from exc
        if not exists:
            raise ConfigError(f"[MilvusRetriever] collection {self.collection!r} not found")

        try:
            state = load_state_name(self.client.get_load_state(self.collection))
            if state != "Loaded":
                self.client.load_collection(self.collection)
                logger.info("Loaded milvus collection %s", self.collection)
        except Exception as exc:
            raise VendorError(f"[MilvusRetriever] failed to load collection: {exc}") from exc

    def retrieve(
        self,
        query: str,
        *,
        top_k: int | None = None,
        score_threshold: float | None = None,
        embedding: BaseEmbedder | None = None,
        filter: str = "",
        grouping: Grouping | None = None,
        **options: Any,
    ) -> list[Document]:
        search_options = SearchOptions(
            top_k=top_k if top_k and top_k > 0 else self.top_k,
            filter=filter,
            grouping=grouping,
            embedding=embedding or self.embedding,
        )
        docs = self.search_mode.retrieve(self, query, search_options)
        if score_threshold is not None:
            docs = [doc for doc in docs if doc.score() >= score_threshold]
        return docs


__all__ = ["MilvusRetriever", "default_document_converter"]
