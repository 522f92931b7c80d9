"""Tests for the in-memory BM25 scorer, vector scorer and corpus."""

import numpy as np
import pytest

from retrieval_libs.indexes.base import DimensionMismatch, DistanceMetric, Document, Source
from retrieval_libs.indexes.factory import IndexBackend, create_index_backend
from retrieval_libs.indexes.memory import (
    InMemoryBM25Scorer,
    InMemoryCorpus,
    InMemoryVectorScorer,
    tokenize,
)


async def make_corpus(docs, dimension=3):
    corpus = InMemoryCorpus(dimension=dimension)
    await corpus.upsert([Document(doc_id, text, np.asarray(vec, dtype=np.float32)) for doc_id, text, vec in docs])
    return corpus


DOCS = [
    (1, "the quick brown fox", [1.0, 0.0, 0.0]),
    (2, "quick quick quick fox jumps", [0.0, 1.0, 0.0]),
    (3, "lazy dog", [0.9, 0.1, 0.0]),
]


def test_tokenize_lowercases_and_splits_on_punctuation():
    assert tokenize("Hybrid-Search, RRF!") == ["hybrid", "search", "rrf"]


@pytest.mark.asyncio
async def test_bm25_rewards_term_frequency():
    scorer = InMemoryBM25Scorer(await make_corpus(DOCS))

    hits = await scorer.score("quick", limit=10)

    assert [h.doc_id for h in hits] == [2, 1]
    assert [h.rank for h in hits] == [1, 2]
    assert all(h.source == Source.LEXICAL for h in hits)
    assert hits[0].score > hits[1].score > 0


@pytest.mark.asyncio
async def test_bm25_normalizes_document_length():
    corpus = await make_corpus([
        ("long", "cat sat on the mat with a hat today", [1.0, 0.0, 0.0]),
        ("short", "cat sat", [0.0, 1.0, 0.0]),
    ])

    hits = await InMemoryBM25Scorer(corpus).score("cat", limit=10)

    assert [h.doc_id for h in hits] == ["short", "long"]


@pytest.mark.asyncio
async def test_bm25_rare_terms_weigh_more():
    corpus = await make_corpus([
        ("common", "postgres postgres", [1.0, 0.0, 0.0]),
        ("rare", "pgvector", [0.0, 1.0, 0.0]),
        ("other", "postgres tuning", [0.0, 0.0, 1.0]),
    ])

    hits = await InMemoryBM25Scorer(corpus).score("postgres pgvector", limit=10)

    assert hits[0].doc_id == "rare"


@pytest.mark.asyncio
async def test_bm25_no_match_returns_empty():
    scorer = InMemoryBM25Scorer(await make_corpus(DOCS))

    assert await scorer.score("elephant", limit=10) == []
    assert await scorer.score("   ", limit=10) == []


@pytest.mark.asyncio
async def test_bm25_respects_limit():
    scorer = InMemoryBM25Scorer(await make_corpus(DOCS))

    hits = await scorer.score("quick fox", limit=1)

    assert len(hits) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("metric", [DistanceMetric.COSINE, DistanceMetric.L2, DistanceMetric.INNER_PRODUCT])
async def test_vector_scorer_orders_by_distance(metric):
    scorer = InMemoryVectorScorer(await make_corpus(DOCS), metric=metric)

    hits = await scorer.score([1.0, 0.0, 0.0], limit=10)

    assert [h.doc_id for h in hits] == [1, 3, 2]
    assert all(h.source == Source.VECTOR for h in hits)


@pytest.mark.asyncio
async def test_vector_scorer_rejects_wrong_dimension():
    scorer = InMemoryVectorScorer(await make_corpus(DOCS))

    with pytest.raises(DimensionMismatch) as exc_info:
        await scorer.score([1.0, 0.0], limit=10)

    assert exc_info.value.expected == 3
    assert exc_info.value.actual == 2


@pytest.mark.asyncio
async def test_vector_scorer_on_empty_corpus():
    scorer = InMemoryVectorScorer(InMemoryCorpus(dimension=3))

    assert await scorer.score([1.0, 0.0, 0.0], limit=5) == []


@pytest.mark.asyncio
async def test_upsert_with_bad_embedding_leaves_corpus_untouched():
    corpus = await make_corpus(DOCS)

    with pytest.raises(DimensionMismatch):
        await corpus.upsert([
            Document(4, "fine", np.zeros(3)),
            Document(5, "broken", np.zeros(768)),
        ])

    assert await corpus.count() == 3
    assert await corpus.fetch_content([4, 5]) == {}


@pytest.mark.asyncio
async def test_delete_removes_from_both_scorers():
    corpus = await make_corpus(DOCS)
    lexical = InMemoryBM25Scorer(corpus)
    vector = InMemoryVectorScorer(corpus)

    assert await corpus.delete([2, 99]) == 1

    assert [h.doc_id for h in await lexical.score("quick", 10)] == [1]
    assert 2 not in [h.doc_id for h in await vector.score([0.0, 1.0, 0.0], 10)]
    assert await corpus.fetch_content([1, 2]) == {1: "the quick brown fox"}


@pytest.mark.asyncio
async def test_delete_accepts_textual_ids():
    corpus = await make_corpus(DOCS + [("42", "string keyed", [0.0, 0.0, 1.0])])

    assert await corpus.delete(["42"]) == 1
    assert await corpus.delete(["3"]) == 1
    assert await corpus.delete(["²", "1.0"]) == 0
    assert await corpus.fetch_content([1, 2, 3, "42"]) == {1: "the quick brown fox", 2: "quick quick quick fox jumps"}


@pytest.mark.asyncio
async def test_upsert_replaces_content_and_embedding():
    corpus = await make_corpus(DOCS)
    await corpus.upsert([Document(3, "quick update", np.array([0.0, 0.0, 1.0]))])

    lexical_hits = await InMemoryBM25Scorer(corpus).score("update", 10)
    vector_hits = await InMemoryVectorScorer(corpus).score([0.0, 0.0, 1.0], 1)

    assert [h.doc_id for h in lexical_hits] == [3]
    assert vector_hits[0].doc_id == 3
    assert await corpus.count() == 3


def test_memory_backend_from_factory_shares_one_corpus():
    backend = create_index_backend("memory", {"vector_dimension": 3, "metric": "l2"})

    assert isinstance(backend, IndexBackend)
    assert backend.lexical.corpus is backend.store
    assert backend.vector.corpus is backend.store
    assert backend.vector.metric == DistanceMetric.L2
    assert backend.vector.dimension == 3


def test_factory_rejects_unknown_backend():
    with pytest.raises(ValueError):
        create_index_backend("pinecone", {})
