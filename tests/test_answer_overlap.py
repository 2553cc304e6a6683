# Tests for answer-option overlap and count compatibility.

import pytest

from answer_overlap import AnswerOverlapEvaluator, OverlapInfo
from matcher_config import OverlapConfig

GREEK = ["alpha", "beta", "gamma", "delta", "epsilon", "zeta", "theta", "kappa"]


@pytest.fixture
def evaluator():
    return AnswerOverlapEvaluator(OverlapConfig())


def test_sentinel_options_are_ignored(evaluator):
    info = evaluator.evaluate(["3", "4", "5", "22"], ["3", "4", "5", "22", "I don't know"])
    assert info.overlap == 1.0
    assert info.matched_pairs == 4
    assert info.current_count == 4
    assert info.stored_count == 4
    assert info.original_stored_count == 5
    assert evaluator.assess(info).reason == 'acceptable'


@pytest.mark.parametrize("option", ["i dont know", "idk", "not sure", "skip this question"])
def test_is_sentinel(evaluator, option):
    assert evaluator.is_sentinel(option)


def test_options_match_rules(evaluator):
    assert evaluator.options_match("4", "4")
    assert not evaluator.options_match("4", "14")
    assert evaluator.options_match("mitochondria", "the mitochondria")
    assert evaluator.options_match("powerhouse of the cell", "the powerhouse cell")
    assert not evaluator.options_match("red blood cell", "white blood cell")


def test_letter_markers_do_not_block_matching(evaluator):
    info = evaluator.evaluate(["A. Mitochondria", "B. Nucleus"], ["(a) Mitochondria", "(b) Nucleus"])
    assert info.overlap == 1.0


def test_missing_and_insufficient_options(evaluator):
    missing = evaluator.evaluate_overlap(evaluator.evaluate(["a", "b"], []))
    assert not missing.is_sufficient
    assert missing.reason == 'missing-answer-data'

    neither = evaluator.evaluate_overlap(evaluator.evaluate([], ["only one"]))
    assert neither.is_sufficient
    assert neither.reason == 'insufficient-options'


def test_no_matched_answers(evaluator):
    evaluation = evaluator.assess(evaluator.evaluate(["alpha", "beta"], ["gamma", "delta"]))
    assert not evaluation.is_sufficient
    assert evaluation.reason == 'no-matched-answers'


def test_low_answer_overlap(evaluator):
    current = ["red", "orange", "yellow", "green", "blue", "indigo", "violet", "black", "white", "grey"]
    stored = ["red", "cat", "dog", "cow", "pig", "hen", "elk", "owl", "bat", "ant"]
    evaluation = evaluator.assess(evaluator.evaluate(current, stored))
    assert evaluation.reason == 'low-answer-overlap'
    assert evaluation.actual == pytest.approx(0.1)
    assert evaluation.required == pytest.approx(0.2)


def test_required_overlap_formula(evaluator):
    assert evaluator.required_overlap(1) == pytest.approx(0.3)
    assert evaluator.required_overlap(2) == pytest.approx(0.3)
    assert evaluator.required_overlap(4) == pytest.approx(0.25)
    assert evaluator.required_overlap(5) == pytest.approx(0.2)
    assert evaluator.required_overlap(20) == pytest.approx(0.2)


def test_required_matched_pairs_never_decreases(evaluator):
    pairs = [evaluator.required_matched_pairs(n) for n in range(2, 51)]
    assert pairs == sorted(pairs)
    assert evaluator.required_matched_pairs(5) == 1
    assert evaluator.required_matched_pairs(6) == 2


@pytest.mark.parametrize("current,stored,reason", [
    (GREEK[:4], GREEK[:5], 'acceptable'),
    (GREEK[:3], GREEK[:2] + ["kiwi", "mango"], 'answer-count-mismatch'),
    (GREEK[:3] + ["plum"], GREEK[:6], 'answer-count-mismatch'),
    (GREEK[:4], GREEK[:6], 'acceptable'),
    (GREEK[:2], GREEK[:5], 'answer-count-mismatch'),
])
def test_count_compatibility(evaluator, current, stored, reason):
    assert evaluator.assess(evaluator.evaluate(current, stored)).reason == reason


def test_equal_counts_are_always_compatible(evaluator):
    info = OverlapInfo(overlap=0.5, matched_pairs=2, current_count=4, stored_count=4,
                       original_current_count=4, original_stored_count=4)
    evaluation = evaluator.evaluate_overlap(info)
    assert evaluator.is_count_compatible(info, evaluation)
