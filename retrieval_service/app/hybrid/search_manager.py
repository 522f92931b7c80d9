"""Search manager for hybrid lexical and vector retrieval.

Runs a BM25 lexical scorer and a nearest-neighbour vector scorer
concurrently, merges their ranked id lists with Reciprocal Rank Fusion (RRF)
and hydrates the fused ids with document content in a single lookup.

Failure handling
- Each scorer call has its own timeout; a timeout counts as that source
  failing.
- One source failing is a ``PartialSourceFailure``: under the ``degrade``
  policy the surviving list is fused alone and the outcome is flagged as
  degraded, under ``fail`` the error is raised.
- Both sources failing raises ``BothSourcesFailed``.
- A ``DimensionMismatch`` is a caller bug and is always raised.
"""

import asyncio
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

import structlog

from retrieval_libs.common.config import SearchConfig
from retrieval_libs.common.logging import log_performance
from retrieval_libs.common.metrics import MetricsCollector
from retrieval_libs.indexes.base import (
    ContentStore,
    DimensionMismatch,
    Document,
    DocumentId,
    IndexUnavailable,
    LexicalScorer,
    RankedHit,
    RetrievalError,
    Source,
    VectorScorer,
)
from retrieval_libs.indexes.factory import IndexBackend, create_index_backend_from_config
from ..ranking.fusion import ReciprocalRankFusion
from .errors import BothSourcesFailed, InvalidOptions, PartialSourceFailure

logger = structlog.get_logger("retrieval_service.search_manager")


class PartialFailurePolicy(str, Enum):
    """What to do when exactly one scorer fails."""
    DEGRADE = "degrade"
    FAIL = "fail"


@dataclass
class SearchOptions:
    """Per-request knobs. Unset weights mean 1.0 for every source."""
    per_source_limit: int = 20
    final_limit: int = 10
    weights: Optional[Dict[Union[Source, str], float]] = None
    smoothing_k: float = 60.0
    partial_failure_policy: PartialFailurePolicy = PartialFailurePolicy.DEGRADE

    def validate(self) -> "SearchOptions":
        """Return a copy with the policy coerced, raising ``InvalidOptions`` on bad values."""
        if not isinstance(self.per_source_limit, int) or self.per_source_limit < 1:
            raise InvalidOptions(f"per_source_limit must be a positive integer, got {self.per_source_limit!r}")
        if not isinstance(self.final_limit, int) or self.final_limit < 1:
            raise InvalidOptions(f"final_limit must be a positive integer, got {self.final_limit!r}")
        try:
            policy = PartialFailurePolicy(self.partial_failure_policy)
        except ValueError:
            raise InvalidOptions(f"Unknown partial_failure_policy: {self.partial_failure_policy!r}")
        return replace(self, partial_failure_policy=policy)


@dataclass(frozen=True)
class SearchHit:
    """A fused result with its content attached."""
    doc_id: DocumentId
    content: str
    score: float
    sources: tuple
    ranks: Dict[Source, int] = field(default_factory=dict, compare=False)


@dataclass
class SearchOutcome:
    """Ranked hits plus whether any source was missing from the fusion."""
    hits: List[SearchHit]
    degraded: bool = False
    missing_sources: List[Source] = field(default_factory=list)
    failures: Dict[Source, RetrievalError] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.hits)


class SearchManager:
    """Manages hybrid search operations.

    Responsibilities
    - Fan out to the lexical and vector scorers concurrently
    - Classify scorer failures under the partial-failure policy
    - Fuse with RRF and hydrate content in one round trip
    - Route document ingestion and removal to the content store
    """

    def __init__(
        self,
        lexical: LexicalScorer,
        vector: VectorScorer,
        store: ContentStore,
        default_options: Optional[SearchOptions] = None,
        lexical_timeout: float = 2.0,
        vector_timeout: float = 2.0,
        metrics_collector: Optional[MetricsCollector] = None,
        slow_search_ms: Optional[float] = None,
    ):
        """Construct a search manager.

        Parameters
        - lexical / vector: the two scorers; they must read the same corpus as ``store``
        - store: content lookup and ingestion
        - default_options: used when ``search`` is called without options
        - lexical_timeout / vector_timeout: per-source deadlines in seconds
        - metrics_collector: optional Prometheus collector
        - slow_search_ms: searches slower than this are logged at warning level
        """
        self.lexical = lexical
        self.vector = vector
        self.store = store
        self.default_options = (default_options or SearchOptions()).validate()
        self.timeouts = {Source.LEXICAL: lexical_timeout, Source.VECTOR: vector_timeout}
        self.metrics = metrics_collector
        self.slow_search_ms = slow_search_ms

    @classmethod
    def from_config(
        cls,
        config: SearchConfig,
        backend: Optional[IndexBackend] = None,
        metrics_collector: Optional[MetricsCollector] = None,
    ) -> "SearchManager":
        """Build a manager (and, unless given, its index backend) from config."""
        backend = backend or create_index_backend_from_config(config)
        defaults = SearchOptions(
            per_source_limit=config.retrieval_per_source_limit,
            final_limit=config.retrieval_final_limit,
            weights={
                Source.LEXICAL: config.retrieval_lexical_weight,
                Source.VECTOR: config.retrieval_vector_weight,
            },
            smoothing_k=config.retrieval_rrf_k,
            partial_failure_policy=PartialFailurePolicy(config.retrieval_partial_failure_policy),
        )
        return cls(
            lexical=backend.lexical,
            vector=backend.vector,
            store=backend.store,
            default_options=defaults,
            lexical_timeout=config.retrieval_lexical_timeout,
            vector_timeout=config.retrieval_vector_timeout,
            metrics_collector=metrics_collector,
            slow_search_ms=config.retrieval_slow_search_ms,
        )

    async def search(
        self,
        query_text: str,
        query_embedding: Sequence[float],
        options: Optional[SearchOptions] = None,
    ) -> SearchOutcome:
        """Perform hybrid search.

        Returns a ``SearchOutcome`` whose hits are sorted by fused RRF score.
        The score is a relative ranking signal, not a probability.
        """
        start_time = time.perf_counter()
        try:
            outcome = await self._search(query_text, query_embedding, options)
        except RetrievalError as e:
            self._record_search("failed", start_time)
            logger.error("Search failed", code=e.code, error=str(e))
            raise

        self._record_search("degraded" if outcome.degraded else "ok", start_time)
        log_performance(
            "hybrid_search",
            (time.perf_counter() - start_time) * 1000,
            slow_threshold_ms=self.slow_search_ms,
            results_count=len(outcome.hits),
            degraded=outcome.degraded,
            missing_sources=[s.value for s in outcome.missing_sources],
        )
        return outcome

    async def _search(
        self,
        query_text: str,
        query_embedding: Sequence[float],
        options: Optional[SearchOptions],
    ) -> SearchOutcome:
        # Everything below up to the fan-out runs before any I/O.
        options = (options or self.default_options).validate()
        fusion = ReciprocalRankFusion(k=options.smoothing_k, weights=options.weights)
        self.vector.check_dimension(query_embedding)

        limit = options.per_source_limit
        lexical_hits, vector_hits = await asyncio.gather(
            self._run_scorer(Source.LEXICAL, self.lexical.score, query_text, limit),
            self._run_scorer(Source.VECTOR, self.vector.score, query_embedding, limit),
        )
        outcomes = {Source.LEXICAL: lexical_hits, Source.VECTOR: vector_hits}

        failures = {
            source: result
            for source, result in outcomes.items()
            if isinstance(result, RetrievalError)
        }
        for error in failures.values():
            if isinstance(error, DimensionMismatch):
                raise error

        if len(failures) == len(outcomes):
            raise BothSourcesFailed(failures)

        if failures:
            missing, cause = next(iter(failures.items()))
            partial = PartialSourceFailure(missing, cause)
            if options.partial_failure_policy == PartialFailurePolicy.FAIL:
                raise partial
            logger.warning(
                "Search degraded, fusing surviving source only",
                missing_source=missing.value,
                code=cause.code,
                error=str(cause)
            )

        def ids(source: Source) -> List[DocumentId]:
            result = outcomes[source]
            return [] if source in failures else [hit.doc_id for hit in result]

        fused = fusion.fuse_results(ids(Source.LEXICAL), ids(Source.VECTOR))
        hits = await self._hydrate(fused, options.final_limit)

        return SearchOutcome(
            hits=hits,
            degraded=bool(failures),
            missing_sources=list(failures),
            failures=failures,
        )

    async def _run_scorer(
        self,
        source: Source,
        call: Callable[..., Awaitable[List[RankedHit]]],
        query: Any,
        limit: int,
    ) -> Union[List[RankedHit], RetrievalError]:
        """Await one scorer under its timeout, returning a classified error on failure.

        Cancellation is not caught, so cancelling the search cancels the call.
        """
        timeout = self.timeouts[source]
        start_time = time.perf_counter()
        try:
            hits = await asyncio.wait_for(call(query, limit), timeout=timeout)
        except asyncio.TimeoutError:
            error: RetrievalError = IndexUnavailable(source, f"timed out after {timeout:g}s")
        except RetrievalError as e:
            error = e
        except Exception as e:
            # Anything unclassified from a scorer is treated as its index being unreachable.
            error = IndexUnavailable(source, f"{type(e).__name__}: {e}")
        else:
            if self.metrics:
                self.metrics.record_scorer_call(source.value, time.perf_counter() - start_time)
            logger.debug("Scorer completed", source=source.value, results_count=len(hits))
            return hits

        if self.metrics:
            self.metrics.record_scorer_failure(source.value, error.code)
        logger.warning("Scorer failed", source=source.value, code=error.code, error=str(error))
        return error

    async def _hydrate(self, fused, final_limit: int) -> List[SearchHit]:
        """Attach content to fused results with one batched lookup.

        All fused candidates are fetched so ids deleted since scoring can be
        skipped without leaving the page short.
        """
        if not fused:
            return []

        contents = await self.store.fetch_content([result.doc_id for result in fused])

        hits: List[SearchHit] = []
        missing = []
        for result in fused:
            content = contents.get(result.doc_id)
            if content is None:
                missing.append(result.doc_id)
                continue
            hits.append(SearchHit(
                doc_id=result.doc_id,
                content=content,
                score=result.score,
                sources=result.sources,
                ranks=result.ranks,
            ))
            if len(hits) == final_limit:
                break

        if missing:
            logger.warning("Fused ids without content were skipped", missing_ids=missing)
        return hits

    async def index_documents(self, documents: Sequence[Document]) -> int:
        """Insert or replace documents in both indexes."""
        count = await self.store.upsert(documents)
        if self.metrics:
            self.metrics.record_document_operation("upsert", count)
        logger.info("Documents indexed", count=count)
        return count

    async def remove_documents(self, doc_ids: Sequence[DocumentId]) -> int:
        """Remove documents from both indexes."""
        count = await self.store.delete(doc_ids)
        if self.metrics:
            self.metrics.record_document_operation("delete", count)
        logger.info("Documents removed from index", requested=len(doc_ids), deleted=count)
        return count

    async def get_index_stats(self) -> Dict[str, Any]:
        """Get search index statistics."""
        return {
            "total_documents": await self.store.count(),
            "vector_dimension": self.vector.dimension,
            "vector_metric": self.vector.metric.value,
        }

    async def health_check(self) -> bool:
        """Check if the search manager is healthy."""
        return await self.store.health_check()

    async def cleanup(self):
        """Cleanup resources."""
        await self.store.close()
        logger.info("Search manager cleanup completed")

    def _record_search(self, outcome: str, start_time: float) -> None:
        if self.metrics:
            self.metrics.record_search(outcome, time.perf_counter() - start_time)
