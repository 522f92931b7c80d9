"""Base scorer and content store interfaces.

Defines the abstract contracts the retrieval service depends on, independent
of the backing implementation (PostgreSQL with pg_search + pgvector, or the
in-process backend used for local development and tests).

All methods are asynchronous so both scorers can be awaited concurrently.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Union

import numpy as np

DocumentId = Union[int, str]


class Source(str, Enum):
    """Ranked list a hit came from."""
    LEXICAL = "lexical"
    VECTOR = "vector"


class DistanceMetric(str, Enum):
    """Distance metric a vector index was built with."""
    COSINE = "cosine"
    INNER_PRODUCT = "inner_product"
    L2 = "l2"


@dataclass(frozen=True)
class RankedHit:
    """One entry of a scorer's ranked list.

    ``rank`` is 1-based. ``score`` is the backend's raw relevance or distance
    and is kept for diagnostics only; fusion works on ranks.
    """
    doc_id: DocumentId
    rank: int
    source: Source
    score: Optional[float] = None


@dataclass
class Document:
    """A stored document: content plus its embedding."""
    doc_id: DocumentId
    content: str
    embedding: np.ndarray = field(repr=False)


def ranked(doc_ids: Iterable[DocumentId], source: Source, scores: Optional[Iterable[float]] = None) -> List[RankedHit]:
    """Number ids 1..n in the order given."""
    if scores is None:
        return [RankedHit(doc_id=d, rank=i, source=source) for i, d in enumerate(doc_ids, start=1)]
    return [
        RankedHit(doc_id=d, rank=i, source=source, score=float(s))
        for i, (d, s) in enumerate(zip(doc_ids, scores), start=1)
    ]


def as_embedding(vector: Sequence[float], dimension: Optional[int]) -> np.ndarray:
    """Coerce to a 1-D float32 array and validate its length against ``dimension``."""
    array = np.asarray(vector, dtype=np.float32)
    if array.ndim != 1:
        raise DimensionMismatch(dimension, int(array.size), detail="embedding must be one-dimensional")
    if dimension is not None and array.shape[0] != dimension:
        raise DimensionMismatch(dimension, array.shape[0])
    return array


class LexicalScorer(ABC):
    """Keyword relevance over a text index (BM25 semantics)."""

    source = Source.LEXICAL

    @abstractmethod
    async def score(self, query_text: str, limit: int) -> List[RankedHit]:
        """Return up to ``limit`` hits ordered by descending relevance.

        An empty list means no term matched. Raises ``IndexUnavailable`` when
        the text index cannot be reached.
        """
        pass


class VectorScorer(ABC):
    """Nearest-neighbour search over an embedding index."""

    source = Source.VECTOR

    def __init__(self, dimension: Optional[int], metric: DistanceMetric = DistanceMetric.COSINE):
        self.dimension = dimension
        self.metric = DistanceMetric(metric)

    @abstractmethod
    async def score(self, query_embedding: Sequence[float], limit: int) -> List[RankedHit]:
        """Return up to ``limit`` hits ordered by ascending distance.

        Raises ``DimensionMismatch`` when the embedding length differs from the
        index dimensionality and ``IndexUnavailable`` on connectivity loss.
        """
        pass

    def check_dimension(self, query_embedding: Sequence[float]) -> np.ndarray:
        return as_embedding(query_embedding, self.dimension)


class ContentStore(ABC):
    """Document content lookup and ingestion.

    Implementations keep a document's lexical and vector entries in lockstep:
    both present after ``upsert`` and both absent after ``delete``.
    """

    @abstractmethod
    async def fetch_content(self, doc_ids: Sequence[DocumentId]) -> Dict[DocumentId, str]:
        """Return content for the ids that exist, in a single round trip."""
        pass

    @abstractmethod
    async def upsert(self, documents: Sequence[Document]) -> int:
        """Insert or replace documents atomically. Returns the number written."""
        pass

    @abstractmethod
    async def delete(self, doc_ids: Sequence[DocumentId]) -> int:
        """Remove documents atomically. Returns the number removed."""
        pass

    @abstractmethod
    async def count(self) -> int:
        """Number of stored documents."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if the backing store is reachable."""
        pass

    async def close(self) -> None:
        """Release held resources."""
        return None


class RetrievalError(Exception):
    """Base exception for retrieval operations.

    ``code`` is a stable identifier surfaced to API callers.
    """
    code = "retrieval_error"
    retryable = False


class IndexUnavailable(RetrievalError):
    """A scorer's backing index could not be reached or timed out."""
    code = "index_unavailable"
    retryable = True

    def __init__(self, source: Optional[Source], message: str):
        self.source = source
        label = source.value if source is not None else "content"
        super().__init__(f"{label} index unavailable: {message}")


class DimensionMismatch(RetrievalError):
    """Query embedding length differs from the index dimensionality."""
    code = "dimension_mismatch"

    def __init__(self, expected: Optional[int], actual: int, detail: str = ""):
        self.expected = expected
        self.actual = actual
        message = f"Expected vector dimension {expected}, got {actual}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
