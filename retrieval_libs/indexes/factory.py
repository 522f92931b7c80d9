"""Index backend factory.

Centralizes creation of the lexical scorer, vector scorer and content store
so callers don't depend on backend details. All three members of a backend
share one underlying corpus (one asyncpg pool, or one in-memory mapping).
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict

import structlog

from .base import ContentStore, DistanceMetric, LexicalScorer, VectorScorer
from .documents import PgDocumentStore
from .lexical import PgBM25Scorer
from .memory import InMemoryBM25Scorer, InMemoryCorpus, InMemoryVectorScorer
from .pgvector import PgVectorScorer
from .postgres import PgPool

logger = structlog.get_logger("indexes.factory")


class IndexBackendType(Enum):
    """Supported index backends."""
    POSTGRES = "postgres"
    MEMORY = "memory"


@dataclass
class IndexBackend:
    """The three collaborators the retrieval service needs."""
    lexical: LexicalScorer
    vector: VectorScorer
    store: ContentStore


def create_index_backend(backend_type: str, config: Dict[str, Any]) -> IndexBackend:
    """Create an index backend.

    Parameters
    - backend_type: ``postgres`` or ``memory``
    - config: Backend parameters (``dsn``, ``vector_dimension``, ``metric``, ...)
    """
    try:
        backend = IndexBackendType(backend_type)
    except ValueError:
        raise ValueError(f"Unsupported index backend: {backend_type}")

    dimension = int(config.get("vector_dimension", 1536))
    metric = DistanceMetric(config.get("metric", "cosine"))

    if backend == IndexBackendType.POSTGRES:
        dsn = config.get("dsn")
        if not dsn:
            raise ValueError("PostgreSQL backend requires 'dsn' in config")

        pool = PgPool(
            dsn=dsn,
            pool_size=int(config.get("pool_size", 10)),
            command_timeout=float(config.get("command_timeout", 30.0)),
        )
        index_backend = IndexBackend(
            lexical=PgBM25Scorer(
                pool,
                backend=config.get("lexical_backend", "bm25"),
                text_search_config=config.get("text_search_config", "english"),
            ),
            vector=PgVectorScorer(pool, dimension=dimension, metric=metric),
            store=PgDocumentStore(pool, dimension=dimension),
        )
    else:
        corpus = InMemoryCorpus(dimension=dimension)
        index_backend = IndexBackend(
            lexical=InMemoryBM25Scorer(corpus),
            vector=InMemoryVectorScorer(corpus, metric=metric),
            store=corpus,
        )

    logger.info(
        "Index backend created",
        backend=backend.value,
        vector_dimension=dimension,
        metric=metric.value
    )
    return index_backend


def create_index_backend_from_config(config) -> IndexBackend:
    """Create the backend described by a ``BaseConfig``."""
    return create_index_backend(
        config.retrieval_index_backend,
        {
            "dsn": config.retrieval_db_dsn,
            "pool_size": config.retrieval_db_pool_size,
            "command_timeout": config.retrieval_db_command_timeout,
            "vector_dimension": config.retrieval_vector_dimension,
            "metric": config.retrieval_vector_metric,
            "lexical_backend": config.retrieval_lexical_backend,
            "text_search_config": config.retrieval_text_search_config,
        },
    )
