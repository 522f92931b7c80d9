"""PostgreSQL document store.

Content and embedding share one row of the ``documents`` table, and both the
lexical index and the HNSW index are built on that row. Writing or deleting the
row therefore updates both indexes in the same transaction, with no separate
sync step.
"""

from typing import Dict, List, Sequence

import asyncpg
import structlog

from .base import ContentStore, DistanceMetric, Document, DocumentId, IndexUnavailable, as_embedding
from .lexical import LEXICAL_BACKENDS
from .postgres import DATABASE_ERRORS, PgPool

logger = structlog.get_logger("indexes.documents")

OPERATOR_CLASSES = {
    DistanceMetric.COSINE: "vector_cosine_ops",
    DistanceMetric.INNER_PRODUCT: "vector_ip_ops",
    DistanceMetric.L2: "vector_l2_ops",
}


def schema_statements(
    dimension: int,
    metric: DistanceMetric = DistanceMetric.COSINE,
    lexical_backend: str = "bm25",
    text_search_config: str = "english",
    hnsw_m: int = 16,
    hnsw_ef_construction: int = 64,
    table: str = "documents",
) -> List[str]:
    """DDL for the documents table and both indexes, in execution order."""
    if lexical_backend not in LEXICAL_BACKENDS:
        raise ValueError(f"Unsupported lexical backend: {lexical_backend}")

    statements = ["CREATE EXTENSION IF NOT EXISTS vector"]
    if lexical_backend == "bm25":
        statements.append("CREATE EXTENSION IF NOT EXISTS pg_search")

    statements.append(f"""
        CREATE TABLE IF NOT EXISTS {table} (
            id TEXT PRIMARY KEY,
            content TEXT NOT NULL,
            embedding vector({int(dimension)}) NOT NULL,
            created_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP
        )
    """)

    operator_class = OPERATOR_CLASSES[DistanceMetric(metric)]
    statements.append(
        f"CREATE INDEX IF NOT EXISTS idx_{table}_embedding ON {table} "
        f"USING hnsw (embedding {operator_class}) "
        f"WITH (m = {int(hnsw_m)}, ef_construction = {int(hnsw_ef_construction)})"
    )

    if lexical_backend == "bm25":
        statements.append(
            f"CREATE INDEX IF NOT EXISTS idx_{table}_content_bm25 ON {table} "
            f"USING bm25 (id, content) WITH (key_field = 'id')"
        )
    else:
        config = text_search_config.replace("'", "")
        statements.append(
            f"CREATE INDEX IF NOT EXISTS idx_{table}_content_fts ON {table} "
            f"USING gin (to_tsvector('{config}', content))"
        )
    return statements


class PgDocumentStore(ContentStore):
    """Content store and ingestion path over the ``documents`` table."""

    def __init__(self, pool: PgPool, dimension: int, table: str = "documents"):
        self.pool = pool
        self.dimension = dimension
        self.table = table

    async def fetch_content(self, doc_ids: Sequence[DocumentId]) -> Dict[DocumentId, str]:
        """Fetch content for ``doc_ids`` with a single ``ANY`` query."""
        if not doc_ids:
            return {}

        rows = await self.pool.execute(
            f"SELECT id, content FROM {self.table} WHERE id = ANY($1::text[])",
            [str(doc_id) for doc_id in doc_ids],
            fetch=True,
        )
        return {row["id"]: row["content"] for row in rows}

    async def upsert(self, documents: Sequence[Document]) -> int:
        """Insert or replace documents in one transaction."""
        if not documents:
            return 0

        batch = []
        for doc in documents:
            embedding = as_embedding(doc.embedding, self.dimension)
            batch.append((str(doc.doc_id), doc.content, embedding))

        query = f"""
            INSERT INTO {self.table} (id, content, embedding)
            VALUES ($1, $2, $3)
            ON CONFLICT (id)
            DO UPDATE SET
                content = EXCLUDED.content,
                embedding = EXCLUDED.embedding,
                updated_at = CURRENT_TIMESTAMP
        """

        pool = await self.pool.get_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    await conn.executemany(query, batch)
        except DATABASE_ERRORS as e:
            logger.error("Batch upsert failed", count=len(batch), error=str(e))
            raise IndexUnavailable(None, f"upsert failed: {e}") from e

        logger.info("Upserted documents", count=len(batch))
        return len(batch)

    async def delete(self, doc_ids: Sequence[DocumentId]) -> int:
        """Delete documents; returns how many rows existed."""
        if not doc_ids:
            return 0

        result = await self.pool.execute(
            f"DELETE FROM {self.table} WHERE id = ANY($1::text[])",
            [str(doc_id) for doc_id in doc_ids],
        )
        # asyncpg returns the command tag, e.g. "DELETE 3"
        deleted = int(result.split()[-1])

        logger.info("Deleted documents", requested=len(doc_ids), deleted=deleted)
        return deleted

    async def count(self) -> int:
        result = await self.pool.execute(f"SELECT COUNT(*) FROM {self.table}", fetch_val=True)
        return int(result or 0)

    async def health_check(self) -> bool:
        """Check if the database answers."""
        try:
            await self.pool.execute("SELECT 1", fetch_val=True)
            return True
        except IndexUnavailable as e:
            logger.error("Health check failed", error=str(e))
            return False

    async def close(self) -> None:
        await self.pool.close()


async def ensure_schema(dsn: str, statements: Sequence[str]) -> None:
    """Run schema DDL on a dedicated connection.

    A plain connection is used because the pooled connections register the
    pgvector codec, which needs the ``vector`` extension to exist already.
    """
    try:
        conn = await asyncpg.connect(dsn)
    except DATABASE_ERRORS as e:
        raise IndexUnavailable(None, f"failed to connect: {e}") from e

    try:
        async with conn.transaction():
            for statement in statements:
                await conn.execute(statement)
        logger.info("Schema ensured", statements=len(statements))
    except DATABASE_ERRORS as e:
        logger.error("Schema bootstrap failed", error=str(e))
        raise IndexUnavailable(None, f"schema bootstrap failed: {e}") from e
    finally:
        await conn.close()

