"""Elasticsearch 8 indexer using the bulk helper."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, Sequence

from connectors.config.settings import es_settings

from ...errors import ConfigError, VendorError
from ..base import BaseIndexer
from ..engines.es8_fields import FieldValue
from ..registry import register_indexer

if TYPE_CHECKING:
    from elasticsearch import Elasticsearch

    from connectors.schema import Document

    from ...embedding.base import BaseEmbedder

logger = logging.getLogger(__name__)


@register_indexer("es8", version="v1")
class ES8Indexer(BaseIndexer):
    """Indexes documents into an Elasticsearch 8 index.

    ``document_to_fields`` maps each document to its source fields. Fields
    with an ``embed_key`` are embedded batch by batch, one embedder call per
    batch, and written as ``index`` bulk actions with the document id.

    Example:
        ```python
        def to_fields(doc):
            return {
                DOC_FIELD_CONTENT: FieldValue(doc.content, embed_key="vector_content"),
                "source": FieldValue(doc.meta_data.get("source", "")),
            }

        indexer = ES8Indexer(client=es, index="docs", document_to_fields=to_fields, embedding=emb)
        ```
    """

    type_name = "ES8"

    def __init__(
        self,
        client: Elasticsearch | None = None,
        index: str = "",
        document_to_fields: Callable[[Document], dict[str, FieldValue]] | None = None,
        batch_size: int | None = None,
        embedding: BaseEmbedder | None = None,
        refresh: bool | str = False,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        if client is None:
            raise ConfigError("[ES8Indexer] es client not provided")
        if not index:
            raise ConfigError("[ES8Indexer] index not provided")
        if document_to_fields is None:
            raise ConfigError("[ES8Indexer] document_to_fields method not provided")
        self.client = client
        self.index = index
        self.document_to_fields = document_to_fields
        self.batch_size = batch_size or es_settings.batch_size
        self.embedding = embedding
        self.refresh = refresh

    def _make_actions(self, docs: Sequence[Document], emb: BaseEmbedder | None) -> list[dict[str, Any]]:
        sources: list[dict[str, Any]] = []
        pending: list[tuple[int, str]] = []
        texts: list[str] = []
        for doc in docs:
            try:
                fields = self.document_to_fields(doc)
            except Exception as exc:
                raise ValueError(f"[ES8Indexer.store] document_to_fields failed: {exc}") from exc
            source: dict[str, Any] = {}
            for key, field in fields.items():
                source[key] = field.value
                if field.embed_key:
                    pending.append((len(sources), field.embed_key))
                    texts.append(field.embedding_text())
            sources.append(source)

        if texts:
            if emb is None:
                raise ConfigError("[ES8Indexer.store] embedding method not provided")
            vectors = self.embed_texts(texts, emb)
            for (pos, embed_key), vector in zip(pending, vectors):
                sources[pos][embed_key] = [float(v) for v in vector]

        return [
            {"_op_type": "index", "_index": self.index, "_id": doc.id, "_source": source}
            for doc, source in zip(docs, sources)
        ]

    def store(
        self,
        docs: Sequence[Document],
        *,
        embedding: BaseEmbedder | None = None,
        **options: Any,
    ) -> list[str]:
        from elasticsearch import helpers

        emb = embedding or self.embedding
        actions: list[dict[str, Any]] = []
        for start in range(0, len(docs), self.batch_size):
            actions.extend(self._make_actions(docs[start : start + self.batch_size], emb))
        if not actions:
            return []

        try:
            success, errors = helpers.bulk(
                self.client,
                actions,
                chunk_size=self.batch_size,
                raise_on_error=False,
                refresh=self.refresh,
            )
        except Exception as exc:
            logger.error("Bulk index into %s failed: %s", self.index, exc)
            raise VendorError(f"[ES8Indexer.store] bulk index failed: {exc}") from exc

        if errors:
            logger.error("Bulk index into %s: %d succeeded, %d failed", self.index, success, len(errors))
            raise VendorError(f"[ES8Indexer.store] {len(errors)} bulk items failed: {errors[:3]}")
        return [doc.id for doc in docs]


__all__ = ["ES8Indexer"]
