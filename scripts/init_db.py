#!/usr/bin/env python3
"""Initialize the documents table and its lexical and vector indexes."""

import asyncio

from retrieval_libs.common.config import get_config
from retrieval_libs.common.logging import configure_logging
from retrieval_libs.indexes.documents import ensure_schema, schema_statements


async def init_database():
    """Create extensions, the documents table and both indexes."""
    config = get_config("indexer")
    configure_logging("retrieval-indexer", config.retrieval_log_level, "console")

    statements = schema_statements(
        dimension=config.retrieval_vector_dimension,
        metric=config.retrieval_vector_metric,
        lexical_backend=config.retrieval_lexical_backend,
        text_search_config=config.retrieval_text_search_config,
        hnsw_m=config.retrieval_hnsw_m,
        hnsw_ef_construction=config.retrieval_hnsw_ef_construction,
    )

    print(f"Initializing database with vector dimension: {config.retrieval_vector_dimension}")
    await ensure_schema(config.retrieval_db_dsn, statements)
    print("Database initialization completed successfully!")


if __name__ == "__main__":
    asyncio.run(init_database())
