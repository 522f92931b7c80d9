"""PostgreSQL implementation of the lexical scorer.

Two backends are supported:

- ``bm25``: the ParadeDB ``pg_search`` extension. Matching goes through
  ``paradedb.match`` on the ``content`` field and ranking through
  ``paradedb.score(id)``, which is true BM25.
- ``tsvector``: built-in full-text search ranked with ``ts_rank_cd``, for
  databases where the extension is not installed. Relevance is cover density
  rather than BM25, but the ranked-id contract is the same.
"""

from typing import List

import structlog

from .base import LexicalScorer, RankedHit, ranked
from .postgres import PgPool

logger = structlog.get_logger("indexes.lexical")

LEXICAL_BACKENDS = ("bm25", "tsvector")


class PgBM25Scorer(LexicalScorer):
    """Lexical scorer over the ``documents`` table."""

    def __init__(
        self,
        pool: PgPool,
        backend: str = "bm25",
        text_search_config: str = "english",
        table: str = "documents",
    ):
        if backend not in LEXICAL_BACKENDS:
            raise ValueError(f"Unsupported lexical backend: {backend}")
        self.pool = pool
        self.backend = backend
        self.text_search_config = text_search_config
        self.table = table
        self._query = self._build_query()

    def _build_query(self) -> str:
        if self.backend == "bm25":
            return f"""
                SELECT id, paradedb.score(id) AS score
                FROM {self.table}
                WHERE id @@@ paradedb.match('content', $1)
                ORDER BY score DESC, id
                LIMIT $2
            """
        # The regconfig is a literal so the expression matches the GIN index.
        config = self.text_search_config.replace("'", "")
        return f"""
            SELECT id,
                   ts_rank_cd(to_tsvector('{config}', content), plainto_tsquery('{config}', $1)) AS score
            FROM {self.table}
            WHERE to_tsvector('{config}', content) @@ plainto_tsquery('{config}', $1)
            ORDER BY score DESC, id
            LIMIT $2
        """

    async def score(self, query_text: str, limit: int) -> List[RankedHit]:
        """Rank documents by keyword relevance to ``query_text``."""
        if not query_text or not query_text.strip():
            return []

        rows = await self.pool.execute(self._query, query_text, limit, source=self.source, fetch=True)

        hits = ranked(
            (row["id"] for row in rows),
            self.source,
            scores=(row["score"] for row in rows),
        )

        logger.debug(
            "Lexical search completed",
            backend=self.backend,
            limit=limit,
            results_count=len(hits)
        )
        return hits
