"""In-process backend.

Mirrors the PostgreSQL backend's contracts over a process-local corpus so the
service can run without a database (local development, tests). One mapping
backs the content store and both scorers, so a document's lexical and vector
entries appear and disappear together.

The lexical scorer implements Okapi BM25; the vector scorer is brute force
over a ``numpy`` matrix. Both sort stably, so equal scores keep corpus
insertion order.
"""

import math
import re
from collections import Counter
from typing import Dict, List, Optional, Sequence

import numpy as np
import structlog

from .base import (
    ContentStore,
    DistanceMetric,
    Document,
    DocumentId,
    LexicalScorer,
    RankedHit,
    VectorScorer,
    as_embedding,
    ranked,
)

logger = structlog.get_logger("indexes.memory")

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


def tokenize(text: str) -> List[str]:
    return _TOKEN_RE.findall(text.lower())


class _Entry:
    __slots__ = ("content", "embedding", "term_counts", "length")

    def __init__(self, content: str, embedding: np.ndarray):
        self.content = content
        self.embedding = embedding
        tokens = tokenize(content)
        self.term_counts = Counter(tokens)
        self.length = len(tokens)


class InMemoryCorpus(ContentStore):
    """Process-local document store shared by the in-memory scorers."""

    def __init__(self, dimension: Optional[int] = None):
        self.dimension = dimension
        self._entries: Dict[DocumentId, _Entry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def items(self):
        return self._entries.items()

    async def fetch_content(self, doc_ids: Sequence[DocumentId]) -> Dict[DocumentId, str]:
        return {doc_id: self._entries[doc_id].content for doc_id in doc_ids if doc_id in self._entries}

    async def upsert(self, documents: Sequence[Document]) -> int:
        # Validate the whole batch before touching the corpus.
        prepared = [
            (doc.doc_id, _Entry(doc.content, as_embedding(doc.embedding, self.dimension)))
            for doc in documents
        ]
        for doc_id, entry in prepared:
            self._entries[doc_id] = entry
        logger.info("Upserted documents", count=len(prepared))
        return len(prepared)

    def _resolve(self, doc_id: DocumentId) -> DocumentId:
        # Ids from text sources (URL paths) may name an integer-keyed document.
        if doc_id not in self._entries and isinstance(doc_id, str) and doc_id.isascii() and doc_id.isdigit():
            return int(doc_id)
        return doc_id

    async def delete(self, doc_ids: Sequence[DocumentId]) -> int:
        deleted = 0
        for doc_id in doc_ids:
            if self._entries.pop(self._resolve(doc_id), None) is not None:
                deleted += 1
        logger.info("Deleted documents", requested=len(doc_ids), deleted=deleted)
        return deleted

    async def count(self) -> int:
        return len(self._entries)

    async def health_check(self) -> bool:
        return True


class InMemoryBM25Scorer(LexicalScorer):
    """Okapi BM25 over an ``InMemoryCorpus``.

    ``idf = ln(1 + (N - n + 0.5) / (n + 0.5))`` keeps every matching term's
    weight positive, so a document matching any query term always scores > 0.
    """

    def __init__(self, corpus: InMemoryCorpus, k1: float = 1.2, b: float = 0.75):
        self.corpus = corpus
        self.k1 = k1
        self.b = b

    async def score(self, query_text: str, limit: int) -> List[RankedHit]:
        terms = list(dict.fromkeys(tokenize(query_text or "")))
        if not terms or not len(self.corpus):
            return []

        entries = list(self.corpus.items())
        total = len(entries)
        avg_length = sum(entry.length for _, entry in entries) / total or 1.0

        idf = {}
        for term in terms:
            doc_freq = sum(1 for _, entry in entries if term in entry.term_counts)
            if doc_freq:
                idf[term] = math.log(1.0 + (total - doc_freq + 0.5) / (doc_freq + 0.5))

        if not idf:
            return []

        scored = []
        for doc_id, entry in entries:
            norm = self.k1 * (1.0 - self.b + self.b * entry.length / avg_length)
            score = 0.0
            for term, weight in idf.items():
                tf = entry.term_counts.get(term, 0)
                if tf:
                    score += weight * tf * (self.k1 + 1.0) / (tf + norm)
            if score > 0.0:
                scored.append((doc_id, score))

        # Stable sort keeps insertion order among equal scores.
        scored.sort(key=lambda item: item[1], reverse=True)
        top = scored[:limit]
        return ranked((doc_id for doc_id, _ in top), self.source, scores=(s for _, s in top))


class InMemoryVectorScorer(VectorScorer):
    """Brute-force nearest neighbours over an ``InMemoryCorpus``."""

    def __init__(self, corpus: InMemoryCorpus, metric: DistanceMetric = DistanceMetric.COSINE):
        super().__init__(corpus.dimension, metric)
        self.corpus = corpus

    async def score(self, query_embedding: Sequence[float], limit: int) -> List[RankedHit]:
        query = self.check_dimension(query_embedding)
        if not len(self.corpus):
            return []

        doc_ids = []
        rows = []
        for doc_id, entry in self.corpus.items():
            doc_ids.append(doc_id)
            rows.append(entry.embedding)
        matrix = np.vstack(rows)

        distances = self._distances(matrix, query)
        order = np.argsort(distances, kind="stable")[:limit]
        return ranked((doc_ids[i] for i in order), self.source, scores=(distances[i] for i in order))

    def _distances(self, matrix: np.ndarray, query: np.ndarray) -> np.ndarray:
        if self.metric == DistanceMetric.INNER_PRODUCT:
            return -(matrix @ query)
        if self.metric == DistanceMetric.L2:
            return np.linalg.norm(matrix - query, axis=1)

        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        dots = matrix @ query
        similarity = np.divide(dots, norms, out=np.zeros_like(dots), where=norms > 0)
        return 1.0 - similarity
