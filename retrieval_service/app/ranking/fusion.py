"""Reciprocal Rank Fusion for hybrid search.

RRF merges ranked lists by rank position only, so a BM25 score and a vector
distance never have to be put on a common scale::

    score(d) = sum over sources s containing d of  weight[s] / (k + rank_s(d))

Equal fused scores are ordered by, in turn:

1. more contributing sources first;
2. earlier position in the first source list, then the next one (the service
   passes lexical before vector); an id missing from a list sorts after ids
   present in it;
3. id ascending.

The result is fully deterministic for identical inputs.
"""

import math
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import structlog

from retrieval_libs.indexes.base import DocumentId, Source
from ..hybrid.errors import InvalidOptions

logger = structlog.get_logger("retrieval_service.fusion")

DEFAULT_K = 60.0
MIN_K = 1.0
MAX_K = 1000.0


@dataclass(frozen=True)
class FusedResult:
    """A fused entry: id, RRF score and the ranks that produced it."""
    doc_id: DocumentId
    score: float
    sources: Tuple[Source, ...]
    ranks: Dict[Source, int] = field(default_factory=dict, compare=False)


def normalize_weights(weights: Optional[Mapping]) -> Dict[Source, float]:
    """Map weight keys to ``Source`` and check every value is finite and >= 0."""
    normalized = {source: 1.0 for source in Source}
    if not weights:
        return normalized

    for key, value in weights.items():
        try:
            source = Source(key)
        except ValueError:
            raise InvalidOptions(f"Unknown source in weights: {key!r}")
        try:
            weight = float(value)
        except (TypeError, ValueError):
            raise InvalidOptions(f"Weight for {source.value} must be a number, got {value!r}")
        if not math.isfinite(weight) or weight < 0:
            raise InvalidOptions(f"Weight for {source.value} must be finite and non-negative, got {value!r}")
        normalized[source] = weight
    return normalized


def validate_k(k: float) -> float:
    try:
        k = float(k)
    except (TypeError, ValueError):
        raise InvalidOptions(f"smoothing_k must be a number, got {k!r}")
    if not math.isfinite(k) or not MIN_K <= k <= MAX_K:
        raise InvalidOptions(f"smoothing_k must be within [{MIN_K:g}, {MAX_K:g}], got {k:g}")
    return k


def _id_key(doc_id: DocumentId) -> Tuple[int, object]:
    # Integers before strings so mixed id types still compare.
    if isinstance(doc_id, int) and not isinstance(doc_id, bool):
        return (0, doc_id)
    return (1, str(doc_id))


def reciprocal_rank_fusion(
    rank_lists: Mapping[Source, Sequence[DocumentId]],
    weights: Optional[Mapping] = None,
    k: float = DEFAULT_K,
    limit: Optional[int] = None,
) -> List[FusedResult]:
    """Fuse ranked id lists with weighted RRF.

    ``rank_lists`` maps each source to its ids, best first. Iteration order of
    the mapping is the tie-break priority. A repeated id keeps its first
    position. A source with weight 0 contributes nothing and does not count as
    a contributing source.
    """
    k = validate_k(k)
    source_weights = normalize_weights(weights)
    if limit is not None and limit < 1:
        raise InvalidOptions(f"limit must be >= 1, got {limit}")

    order = list(rank_lists.keys())
    scores: Dict[DocumentId, float] = {}
    ranks: Dict[DocumentId, Dict[Source, int]] = {}

    for source in order:
        weight = source_weights.get(Source(source), 1.0)
        if weight == 0:
            continue
        seen = set()
        rank = 0
        for doc_id in rank_lists[source]:
            if doc_id in seen:
                continue
            seen.add(doc_id)
            rank += 1
            scores[doc_id] = scores.get(doc_id, 0.0) + weight * 1.0 / (k + rank)
            ranks.setdefault(doc_id, {})[Source(source)] = rank

    def sort_key(doc_id: DocumentId):
        doc_ranks = ranks[doc_id]
        positions = tuple(doc_ranks.get(Source(source), math.inf) for source in order)
        return (-scores[doc_id], -len(doc_ranks), positions, _id_key(doc_id))

    ordered = sorted(scores, key=sort_key)
    if limit is not None:
        ordered = ordered[:limit]

    results = [
        FusedResult(
            doc_id=doc_id,
            score=scores[doc_id],
            sources=tuple(Source(s) for s in order if Source(s) in ranks[doc_id]),
            ranks=dict(ranks[doc_id]),
        )
        for doc_id in ordered
    ]

    logger.debug(
        "RRF fusion completed",
        input_counts={Source(s).value: len(rank_lists[s]) for s in order},
        fused_count=len(results),
        k_parameter=k
    )
    return results


class ReciprocalRankFusion:
    """Reciprocal Rank Fusion (RRF) with per-source weights."""

    def __init__(self, k: float = DEFAULT_K, weights: Optional[Mapping] = None):
        self.k = validate_k(k)
        self.weights = normalize_weights(weights)

    def fuse_results(
        self,
        lexical_results: Sequence[DocumentId],
        vector_results: Sequence[DocumentId],
        limit: Optional[int] = None,
    ) -> List[FusedResult]:
        """Fuse a lexical and a vector id list, lexical taking tie-break priority."""
        return reciprocal_rank_fusion(
            {Source.LEXICAL: lexical_results, Source.VECTOR: vector_results},
            weights=self.weights,
            k=self.k,
            limit=limit,
        )
