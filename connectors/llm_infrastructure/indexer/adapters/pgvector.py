"""PostgreSQL + pgvector indexer (psycopg 3)."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Iterator, Sequence

from connectors.config.settings import pgvector_settings
from connectors.schema.document import DENSE_VECTOR_KEY, SPARSE_VECTOR_KEY

from ...errors import ConfigError, VendorError
from ..base import BaseIndexer
from ..engines.pgvector_sql import (
    DEFAULT_CONTENT_FIELD,
    DEFAULT_ID_FIELD,
    DEFAULT_METADATA_FIELD,
    DEFAULT_VECTOR_FIELD,
    format_vector,
    quote_identifier,
    suitable_vector_type,
    validate_identifier,
)
from ..registry import register_indexer

if TYPE_CHECKING:
    import psycopg

    from connectors.schema import Document

    from ...embedding.base import BaseEmbedder

logger = logging.getLogger(__name__)


@contextmanager
def borrow_connection(conn: Any) -> Iterator[psycopg.Connection]:
    """Yield a connection from either a psycopg connection or a pool."""
    if hasattr(conn, "cursor"):
        yield conn
    else:
        with conn.connection() as pooled:
            yield pooled


@register_indexer("pgvector", version="v1")
class PGVectorIndexer(BaseIndexer):
    """Upserts documents into a pgvector table.

    The table holds ``id TEXT PRIMARY KEY``, ``content TEXT``,
    ``metadata JSONB`` and ``embedding vector(n)`` columns; names can be
    overridden and are validated as plain identifiers. Pass
    ``create_table=True`` with a ``dimension`` to provision it.
    """

    type_name = "PGVector"

    def __init__(
        self,
        conn: Any = None,
        table_name: str | None = None,
        embedding: BaseEmbedder | None = None,
        batch_size: int | None = None,
        id_field: str = DEFAULT_ID_FIELD,
        content_field: str = DEFAULT_CONTENT_FIELD,
        metadata_field: str = DEFAULT_METADATA_FIELD,
        vector_field: str = DEFAULT_VECTOR_FIELD,
        create_table: bool = False,
        dimension: int = 0,
        vector_type: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        if conn is None:
            raise ConfigError("[PGVectorIndexer] connection not provided")
        self.conn = conn
        self.table_name = table_name or pgvector_settings.table_name
        self.embedding = embedding
        self.batch_size = batch_size if batch_size is not None else pgvector_settings.batch_size
        self.id_field = id_field
        self.content_field = content_field
        self.metadata_field = metadata_field
        self.vector_field = vector_field

        try:
            validate_identifier(self.table_name)
        except ConfigError as exc:
            raise ConfigError(f"[PGVectorIndexer] invalid table name: {exc}") from exc
        for name in (id_field, content_field, metadata_field, vector_field):
            try:
                validate_identifier(name)
            except ConfigError as exc:
                raise ConfigError(f"[PGVectorIndexer] invalid field name: {exc}") from exc

        self._ping()
        if create_table:
            if dimension <= 0:
                raise ConfigError("[PGVectorIndexer] dimension is required to create the table")
            self._ensure_table(dimension, vector_type or suitable_vector_type(dimension))

    def _ping(self) -> None:
        try:
            with borrow_connection(self.conn) as conn, conn.cursor() as cur:
                cur.execute("SELECT 1")
        except Exception as exc:
            raise VendorError(f"[PGVectorIndexer] failed to ping database: {exc}") from exc

    def _ensure_table(self, dimension: int, vector_type: str) -> None:
        table = quote_identifier(self.table_name)
        ddl = (
            f"CREATE TABLE IF NOT EXISTS {table} ("
            f"{quote_identifier(self.id_field)} TEXT PRIMARY KEY, "
            f"{quote_identifier(self.content_field)} TEXT NOT NULL, "
            f"{quote_identifier(self.metadata_field)} JSONB, "
            f"{quote_identifier(self.vector_field)} {vector_type}({int(dimension)}) NOT NULL)"
        )
        with borrow_connection(self.conn) as conn:
            try:
                with conn.cursor() as cur:
                    cur.execute("CREATE EXTENSION IF NOT EXISTS vector")
                    cur.execute(ddl)
                conn.commit()
            except Exception as exc:
                conn.rollback()
                raise VendorError(f"[PGVectorIndexer] failed to create table: {exc}") from exc
        logger.info("Ensured pgvector table %s (%s(%d))", self.table_name, vector_type, dimension)

    def _upsert_sql(self) -> str:
        cols = [
            quote_identifier(self.id_field),
            quote_identifier(self.content_field),
            quote_identifier(self.metadata_field),
            quote_identifier(self.vector_field),
        ]
        updates = ", ".join(f"{c} = EXCLUDED.{c}" for c in cols[1:])
        return (
            f"INSERT INTO {quote_identifier(self.table_name)} ({', '.join(cols)}) "
            f"VALUES (%s, %s, %s, %s::vector) "
            f"ON CONFLICT ({cols[0]}) DO UPDATE SET {updates}"
        )

    def store(
        self,
        docs: Sequence[Document],
        *,
        embedding: BaseEmbedder | None = None,
        **options: Any,
    ) -> list[str]:
        if not docs:
            raise ValueError("[PGVectorIndexer.store] documents list is empty")
        for i, doc in enumerate(docs):
            if doc is None:
                raise ValueError(f"[PGVectorIndexer.store] document at index {i} is None")
        batch_size = int(options.get("batch_size", self.batch_size))
        if batch_size <= 0:
            raise ValueError(f"[PGVectorIndexer.store] invalid batch size: {batch_size}")
        emb = embedding or self.embedding
        if emb is None:
            raise ConfigError("[PGVectorIndexer.store] embedding not provided")

        from psycopg.types.json import Jsonb

        sql = self._upsert_sql()
        ids: list[str] = []
        for start in range(0, len(docs), batch_size):
            batch = docs[start : start + batch_size]
            vectors = self.embed_documents(batch, emb)
            rows = []
            for doc, vector in zip(batch, vectors):
                metadata = {
                    k: v for k, v in doc.meta_data.items() if k not in (DENSE_VECTOR_KEY, SPARSE_VECTOR_KEY)
                }
                rows.append((doc.id, doc.content, Jsonb(metadata), format_vector(vector)))

            with borrow_connection(self.conn) as conn:
                try:
                    with conn.cursor() as cur:
                        cur.executemany(sql, rows)
                    conn.commit()
                except Exception as exc:
                    conn.rollback()
                    logger.error("pgvector upsert into %s failed: %s", self.table_name, exc)
                    raise VendorError(f"[PGVectorIndexer.store] failed to insert batch at offset {start}: {exc}") from exc
            ids.extend(doc.id for doc in batch)
        return ids


__all__ = ["PGVectorIndexer", "borrow_connection"]
