"""PgVector implementation of the vector scorer.

Nearest neighbours are read from the ``documents`` table using the pgvector
distance operator matching the metric the HNSW index was built with:
``<=>`` (cosine), ``<#>`` (negative inner product) and ``<->`` (L2). All three
sort ascending, so the closest document gets rank 1.
"""

from typing import List, Sequence

import structlog

from .base import DistanceMetric, RankedHit, VectorScorer, ranked
from .postgres import PgPool

logger = structlog.get_logger("indexes.pgvector")

DISTANCE_OPERATORS = {
    DistanceMetric.COSINE: "<=>",
    DistanceMetric.INNER_PRODUCT: "<#>",
    DistanceMetric.L2: "<->",
}


class PgVectorScorer(VectorScorer):
    """Vector scorer backed by pgvector."""

    def __init__(
        self,
        pool: PgPool,
        dimension: int,
        metric: DistanceMetric = DistanceMetric.COSINE,
        table: str = "documents",
    ):
        super().__init__(dimension, metric)
        self.pool = pool
        self.table = table
        operator = DISTANCE_OPERATORS[self.metric]
        self._query = f"""
            SELECT id, embedding {operator} $1 AS distance
            FROM {self.table}
            ORDER BY embedding {operator} $1, id
            LIMIT $2
        """

    async def score(self, query_embedding: Sequence[float], limit: int) -> List[RankedHit]:
        """Search for nearest neighbours of ``query_embedding``."""
        vector = self.check_dimension(query_embedding)

        rows = await self.pool.execute(self._query, vector, limit, source=self.source, fetch=True)

        hits = ranked(
            (row["id"] for row in rows),
            self.source,
            scores=(row["distance"] for row in rows),
        )

        logger.debug(
            "Vector similarity search completed",
            metric=self.metric.value,
            limit=limit,
            results_count=len(hits)
        )
        return hits
