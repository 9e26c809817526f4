"""PostgreSQL + pgvector retriever."""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Any

from connectors.config.settings import pgvector_settings
from connectors.schema import Document

from ...errors import ConfigError, VendorError
from ...indexer.adapters.pgvector import borrow_connection
from ...indexer.engines.pgvector_sql import (
    DEFAULT_CONTENT_FIELD,
    DEFAULT_ID_FIELD,
    DEFAULT_METADATA_FIELD,
    DEFAULT_VECTOR_FIELD,
    distance_operator,
    format_vector,
    quote_identifier,
    validate_identifier,
)
from ..base import BaseRetriever
from ..registry import register_retriever

if TYPE_CHECKING:
    from ...embedding.base import BaseEmbedder

logger = logging.getLogger(__name__)


def calculate_score(distance_function: str, distance: float) -> float:
    """Similarity score for a pgvector distance (higher is better).

    ``<#>`` returns the negated inner product, so an inner-product distance of
    -1.0 is an exact match of unit vectors and scores ``math.inf``.
    """
    if distance_function in ("l2", "inner_product"):
        if distance == 0:
            return 1.0
        if 1.0 + distance == 0:
            return math.inf
        return 1.0 / (1.0 + distance)
    return 1.0 - distance


def threshold_distance(distance_function: str, score_threshold: float) -> float:
    """Distance bound equivalent to a minimum score."""
    if distance_function == "cosine":
        return 1.0 - score_threshold
    return score_threshold


@register_retriever("pgvector", version="v1")
class PGVectorRetriever(BaseRetriever):
    type_name = "PGVector"

    def __init__(
        self,
        conn: Any = None,
        embedding: BaseEmbedder | None = None,
        table_name: str | None = None,
        distance_function: str | None = None,
        top_k: int | None = None,
        score_threshold: float | None = None,
        id_field: str = DEFAULT_ID_FIELD,
        content_field: str = DEFAULT_CONTENT_FIELD,
        metadata_field: str = DEFAULT_METADATA_FIELD,
        vector_field: str = DEFAULT_VECTOR_FIELD,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        if embedding is None:
            raise ConfigError("[PGVectorRetriever] embedding not provided for pgvector retriever")
        if conn is None:
            raise ConfigError("[PGVectorRetriever] database connection not provided")

        self.conn = conn
        self.embedding = embedding
        self.table_name = table_name or pgvector_settings.table_name
        self.distance_function = distance_function or pgvector_settings.distance_function
        self.top_k = top_k or pgvector_settings.top_k
        self.score_threshold = score_threshold
        self.id_field = id_field
        self.content_field = content_field
        self.metadata_field = metadata_field
        self.vector_field = vector_field

        try:
            distance_operator(self.distance_function)
        except ConfigError as exc:
            raise ConfigError(f"[PGVectorRetriever] {exc}") from exc
        try:
            validate_identifier(self.table_name)
        except ConfigError as exc:
            raise ConfigError(f"[PGVectorRetriever] invalid table name: {exc}") from exc
        for name in (id_field, content_field, metadata_field, vector_field):
            try:
                validate_identifier(name)
            except ConfigError as exc:
                raise ConfigError(f"[PGVectorRetriever] invalid field name: {exc}") from exc

        try:
            with borrow_connection(self.conn) as c, c.cursor() as cur:
                cur.execute("SELECT 1")
        except Exception as exc:
            raise VendorError(f"[PGVectorRetriever] failed to ping database: {exc}") from exc

    def build_search_query(
        self,
        distance_function: str,
        where_clause: str = "",
        score_threshold: float | None = None,
    ) -> str:
        """SELECT ordered by distance; ``where_clause`` is trusted SQL."""
        op = distance_operator(distance_function)
        vector_col = quote_identifier(self.vector_field)
        distance = f"({vector_col} {op} %(query_vector)s::vector)"
        query = (
            f"SELECT {quote_identifier(self.id_field)}, {quote_identifier(self.content_field)}, "
            f"{quote_identifier(self.metadata_field)}, {distance} AS distance "
            f"FROM {quote_identifier(self.table_name)}"
        )
        conditions = []
        if where_clause:
            conditions.append(where_clause)
        if score_threshold is not None:
            conditions.append(f"{distance} < %(max_distance)s")
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        return query + " ORDER BY distance ASC LIMIT %(top_k)s"

    def retrieve(
        self,
        query: str,
        *,
        top_k: int | None = None,
        score_threshold: float | None = None,
        embedding: BaseEmbedder | None = None,
        where_clause: str = "",
        distance_function: str | None = None,
        **options: Any,
    ) -> list[Document]:
        top_k = top_k or self.top_k
        score_threshold = score_threshold if score_threshold is not None else self.score_threshold
        distance_function = distance_function or self.distance_function

        query_vector = self.embed_query(query, embedding or self.embedding, context="[PGVectorRetriever.retrieve]")
        sql = self.build_search_query(distance_function, where_clause, score_threshold)
        params: dict[str, Any] = {"query_vector": format_vector(query_vector), "top_k": top_k}
        if score_threshold is not None:
            params["max_distance"] = threshold_distance(distance_function, score_threshold)

        try:
            with borrow_connection(self.conn) as conn, conn.cursor() as cur:
                cur.execute(sql, params)
                rows = cur.fetchall()
        except Exception as exc:
            logger.error("pgvector search on %s failed: %s", self.table_name, exc)
            raise VendorError(f"[PGVectorRetriever.retrieve] query failed: {exc}") from exc

        docs = []
        for doc_id, content, metadata, distance in rows:
            doc = Document(id=str(doc_id), content=content or "", meta_data=dict(metadata or {}))
            doc.with_score(calculate_score(distance_function, float(distance)))
            doc.with_dense_vector(query_vector)
            docs.append(doc)
        return docs


__all__ = ["PGVectorRetriever", "calculate_score", "threshold_distance"]
