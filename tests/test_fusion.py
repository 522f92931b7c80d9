"""Tests for Reciprocal Rank Fusion."""

import math

import pytest

from retrieval_libs.indexes.base import Source
from retrieval_service.app.hybrid.errors import InvalidOptions
from retrieval_service.app.ranking.fusion import ReciprocalRankFusion, reciprocal_rank_fusion


LEXICAL = ["A", "B", "C"]
VECTOR = ["B", "A", "D"]


def ids(results):
    return [r.doc_id for r in results]


def test_equal_weights_scores_and_tie_order():
    """Equal weights, k=60: A and B tie, C and D tie; tie-breaks fix A, B, C, D."""
    results = ReciprocalRankFusion(k=60).fuse_results(LEXICAL, VECTOR)

    assert ids(results) == ["A", "B", "C", "D"]
    scores = {r.doc_id: r.score for r in results}
    assert scores["A"] == pytest.approx(1 / 61 + 1 / 62)
    assert scores["A"] == pytest.approx(0.03253, abs=1e-5)
    assert scores["A"] == scores["B"]
    assert scores["C"] == pytest.approx(1 / 63)
    assert scores["C"] == scores["D"]


def test_sources_and_ranks_are_reported():
    results = {r.doc_id: r for r in ReciprocalRankFusion().fuse_results(LEXICAL, VECTOR)}

    assert results["A"].sources == (Source.LEXICAL, Source.VECTOR)
    assert results["A"].ranks == {Source.LEXICAL: 1, Source.VECTOR: 2}
    assert results["C"].sources == (Source.LEXICAL,)
    assert results["D"].sources == (Source.VECTOR,)
    assert results["D"].ranks == {Source.VECTOR: 3}


def test_weights_scale_each_source_linearly():
    results = ReciprocalRankFusion(weights={"lexical": 0.3, "vector": 0.7}).fuse_results(LEXICAL, VECTOR)
    scores = {r.doc_id: r.score for r in results}

    assert scores["A"] == pytest.approx(0.3 / 61 + 0.7 / 62)
    assert scores["A"] == pytest.approx(0.01621, abs=1e-5)
    assert scores["B"] == pytest.approx(0.3 / 62 + 0.7 / 61)
    assert scores["D"] == pytest.approx(0.7 / 63)
    assert ids(results) == ["B", "A", "D", "C"]


def test_repeated_runs_are_identical():
    first = reciprocal_rank_fusion({Source.LEXICAL: LEXICAL, Source.VECTOR: VECTOR})
    second = reciprocal_rank_fusion({Source.LEXICAL: LEXICAL, Source.VECTOR: VECTOR})

    assert first == second
    assert [r.ranks for r in first] == [r.ranks for r in second]


@pytest.mark.parametrize("weights", [None, {"lexical": 0.3, "vector": 0.7}, {"lexical": 0.0, "vector": 2.0}])
@pytest.mark.parametrize("k", [1, 60, 1000])
def test_fusing_a_list_with_itself_preserves_order(weights, k):
    single = ["d5", "d1", "d9", "d2", "d7"]
    results = reciprocal_rank_fusion({Source.LEXICAL: single, Source.VECTOR: single}, weights=weights, k=k)

    assert ids(results) == single


def test_presence_in_both_lists_never_scores_lower():
    both = reciprocal_rank_fusion({Source.LEXICAL: ["X"], Source.VECTOR: ["X"]})
    one = reciprocal_rank_fusion({Source.LEXICAL: ["X"], Source.VECTOR: []})

    assert both[0].score > one[0].score


def test_empty_lexical_list_yields_vector_ranking():
    vector = ["v3", "v1", "v2", "v4"]
    results = ReciprocalRankFusion().fuse_results([], vector, limit=3)

    assert ids(results) == vector[:3]


def test_empty_inputs_give_empty_result():
    assert ReciprocalRankFusion().fuse_results([], []) == []


def test_limit_truncates_after_sorting():
    results = ReciprocalRankFusion().fuse_results(LEXICAL, VECTOR, limit=2)

    assert ids(results) == ["A", "B"]


def test_zero_weight_disables_source():
    results = ReciprocalRankFusion(weights={"lexical": 0, "vector": 1}).fuse_results(LEXICAL, VECTOR)

    assert ids(results) == VECTOR
    assert all(r.sources == (Source.VECTOR,) for r in results)


def test_duplicate_ids_keep_first_position():
    results = reciprocal_rank_fusion({Source.LEXICAL: ["A", "B", "A"], Source.VECTOR: []})

    assert ids(results) == ["A", "B"]
    assert results[1].ranks == {Source.LEXICAL: 2}


def test_lexical_position_beats_vector_position_on_tie():
    results = reciprocal_rank_fusion({Source.LEXICAL: ["b"], Source.VECTOR: ["a"]})

    # Both score 1/61 from one source; b is in the lexical list.
    assert ids(results) == ["b", "a"]


def test_integer_ids_are_supported():
    results = reciprocal_rank_fusion({Source.LEXICAL: [3, 1, 2], Source.VECTOR: [1, 3]})

    assert ids(results) == [3, 1, 2]


@pytest.mark.parametrize("k", [0, -5, 0.5, 1001, math.inf, math.nan])
def test_invalid_k_rejected(k):
    with pytest.raises(InvalidOptions):
        ReciprocalRankFusion(k=k)


@pytest.mark.parametrize("weights", [{"lexical": -0.1}, {"vector": math.inf}, {"keyword": 1.0}, {"lexical": "heavy"}])
def test_invalid_weights_rejected(weights):
    with pytest.raises(InvalidOptions):
        ReciprocalRankFusion(weights=weights)


def test_invalid_limit_rejected():
    with pytest.raises(InvalidOptions):
        ReciprocalRankFusion().fuse_results(LEXICAL, VECTOR, limit=0)
