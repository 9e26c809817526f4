"""Elasticsearch 8 retriever."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable

from connectors.config.settings import es_settings
from connectors.schema import Document

from ...errors import ConfigError, VendorError
from ...indexer.engines.es8_fields import DOC_FIELD_CONTENT
from ..base import BaseRetriever
from ..engines.es8_search_mode import RequestContext, SearchMode
from ..registry import register_retriever

if TYPE_CHECKING:
    from elasticsearch import Elasticsearch

    from ...embedding.base import BaseEmbedder

logger = logging.getLogger(__name__)


def default_hit_to_document(hit: dict[str, Any]) -> Document:
    source = dict(hit.get("_source") or {})
    content = source.pop(DOC_FIELD_CONTENT, None)
    if not isinstance(content, str):
        raise ValueError(f"[default_hit_to_document] content type not string, raw={hit.get('_source')}")
    doc = Document(id=str(hit.get("_id") or ""), content=content, meta_data=source)
    if hit.get("_score") is not None:
        doc.with_score(float(hit["_score"]))
    return doc


@register_retriever("es8", version="v1")
class ES8Retriever(BaseRetriever):
    """Searches one index with the request body built by ``search_mode``.

    Example:
        ```python
        retriever = ES8Retriever(
            client=Elasticsearch("http://localhost:9200"),
            index="docs",
            search_mode=ApproximateSearchMode(hybrid=True, rrf=True),
            embedding=embedder,
        )
        docs = retriever.retrieve("how do I tune HNSW?", filters=[{"term": {"lang": "en"}}])
        ```
    """

    type_name = "ES8"

    def __init__(
        self,
        client: Elasticsearch | None = None,
        index: str = "",
        search_mode: SearchMode | None = None,
        top_k: int | None = None,
        score_threshold: float | None = None,
        embedding: BaseEmbedder | None = None,
        hit_to_document: Callable[[dict[str, Any]], Document] | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        if client is None:
            raise ConfigError("[ES8Retriever] es client not provided")
        if not index:
            raise ConfigError("[ES8Retriever] index not provided")
        if search_mode is None:
            raise ConfigError("[ES8Retriever] search mode not provided")
        self.client = client
        self.index = index
        self.search_mode = search_mode
        self.top_k = top_k or es_settings.top_k
        self.score_threshold = score_threshold
        self.embedding = embedding
        self.hit_to_document = hit_to_document or default_hit_to_document

    def retrieve(
        self,
        query: str,
        *,
        top_k: int | None = None,
        score_threshold: float | None = None,
        embedding: BaseEmbedder | None = None,
        filters: list[dict[str, Any]] | None = None,
        **options: Any,
    ) -> list[Document]:
        ctx = RequestContext(
            top_k=top_k or self.top_k,
            score_threshold=score_threshold if score_threshold is not None else self.score_threshold,
            embedding=embedding or self.embedding,
            filters=list(filters or []),
        )
        body = self.search_mode.build_request(query, ctx)
        try:
            resp = self.client.search(index=self.index, body=body)
        except Exception as exc:
            logger.error("ES search on %s failed: %s", self.index, exc)
            raise VendorError(f"[ES8Retriever.retrieve] es search failed: {exc}") from exc
        return [self.hit_to_document(hit) for hit in resp["hits"]["hits"]]


__all__ = ["ES8Retriever", "default_hit_to_document"]
