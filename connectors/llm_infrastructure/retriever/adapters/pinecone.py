"""Pinecone retriever."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable

from connectors.config.settings import pinecone_settings
from connectors.schema import Document

from ...errors import ConfigError, VendorError
from ...indexer.adapters.pinecone import CONTENT_KEY
from ..base import BaseRetriever
from ..registry import register_retriever

if TYPE_CHECKING:
    from pinecone import Pinecone

    from ...embedding.base import BaseEmbedder

logger = logging.getLogger(__name__)


def _get(obj: Any, name: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def to_sparse_values(sparse: dict[int, float] | None) -> dict[str, list] | None:
    if sparse is None:
        return None
    return {
        "indices": [int(i) for i in sparse],
        "values": [float(v) for v in sparse.values()],
    }


def from_sparse_values(values: Any) -> dict[int, float] | None:
    if not values:
        return None
    return {int(i): float(v) for i, v in zip(_get(values, "indices") or [], _get(values, "values") or [])}


def default_scored_vector_to_document(match: Any) -> Document:
    metadata = dict(_get(match, "metadata") or {})
    content = metadata.get(CONTENT_KEY)
    if not isinstance(content, str):
        raise ValueError(
            f"[default_scored_vector_to_document] pinecone retrieve content not found in metadata, key={CONTENT_KEY}"
        )
    doc = Document(id=str(_get(match, "id")), content=content, meta_data=metadata)
    doc.with_score(float(_get(match, "score") or 0.0))
    values = _get(match, "values")
    if values:
        doc.with_dense_vector([float(v) for v in values])
    sparse = from_sparse_values(_get(match, "sparse_values"))
    if sparse is not None:
        doc.with_sparse_vector(sparse)
    return doc


@register_retriever("pinecone", version="v1")
class PineconeRetriever(BaseRetriever):
    """Queries a Pinecone index by dense (and optionally sparse) vector.

    Either ``client`` or ``api_key`` must be given. Results are converted
    with ``scored_vector_to_document``, which by default expects the
    document text in metadata ``content``.
    """

    type_name = "Pinecone"

    def __init__(
        self,
        client: Pinecone | None = None,
        api_key: str | None = None,
        index_name: str | None = None,
        namespace: str = "",
        embedding: BaseEmbedder | None = None,
        top_k: int | None = None,
        scored_vector_to_document: Callable[[Any], Document] | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.index_name = index_name or pinecone_settings.index_name
        self.namespace = namespace
        self.embedding = embedding
        self.top_k = top_k or pinecone_settings.top_k
        self.scored_vector_to_document = scored_vector_to_document or default_scored_vector_to_document

        if client is None:
            key = api_key or pinecone_settings.api_key
            if not key:
                raise ConfigError("[PineconeRetriever] pinecone client or api key not provided")
            from pinecone import Pinecone

            client = Pinecone(api_key=key)
        self.client = client

        try:
            host = _get(self.client.describe_index(self.index_name), "host")
            self.index = self.client.Index(host=host)
        except Exception as exc:
            raise VendorError(f"[PineconeRetriever] failed to connect to index {self.index_name}: {exc}") from exc

    def retrieve(
        self,
        query: str,
        *,
        top_k: int | None = None,
        score_threshold: float | None = None,
        embedding: BaseEmbedder | None = None,
        dense_vector: list[float] | None = None,
        sparse_vector: dict[int, float] | None = None,
        metadata_filter: dict[str, Any] | None = None,
        **options: Any,
    ) -> list[Document]:
        if dense_vector is None:
            emb = embedding or self.embedding
            if emb is None:
                raise ConfigError(
                    "[PineconeRetriever.retrieve] embedding is required when no dense vector is given"
                )
            dense_vector = self.embed_query(query, emb, context="[PineconeRetriever.retrieve]")

        request: dict[str, Any] = {
            "vector": [float(v) for v in dense_vector],
            "top_k": top_k or self.top_k,
            "include_values": True,
            "include_metadata": True,
            "namespace": self.namespace,
        }
        if metadata_filter:
            request["filter"] = metadata_filter
        sparse = to_sparse_values(sparse_vector)
        if sparse is not None:
            request["sparse_vector"] = sparse

        try:
            response = self.index.query(**request)
        except Exception as exc:
            logger.error("Pinecone query on %s failed: %s", self.index_name, exc)
            raise VendorError(f"[PineconeRetriever.retrieve] pinecone query failed: {exc}") from exc

        docs = []
        for match in _get(response, "matches") or []:
            try:
                docs.append(self.scored_vector_to_document(match))
            except Exception as exc:
                raise ValueError(f"[PineconeRetriever.retrieve] pinecone retriever match conversion failed, {exc}") from exc
        if score_threshold is not None:
            docs = [doc for doc in docs if doc.score() >= score_threshold]
        return docs


__all__ = [
    "PineconeRetriever",
    "default_scored_vector_to_document",
    "from_sparse_values",
    "to_sparse_values",
]
