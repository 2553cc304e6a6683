# Tests for the cascading matcher: acceptance, rejection, fallback, timeouts and caching.

import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from cascading_matcher import CascadingMatcher, MatchStrategy
from matcher_config import MatcherConfig, StrategyConfig

from conftest import make_entry, make_observed

MATH_OPTIONS = ["3", "4", "5", "22"]


def _all_thresholds(value, **extra):
    names = [s.name for s in MatcherConfig().strategies]
    data = {"strategies": [{"name": name, "threshold": value} for name in names]}
    data.update(extra)
    return MatcherConfig.from_dict(data)


class SlowStrategy(MatchStrategy):
    def score(self, observed, entry, overlap_info):
        time.sleep(0.2)
        return 0.99, {'slow': 0.99}


class BrokenStrategy(MatchStrategy):
    def score(self, observed, entry, overlap_info):
        raise RuntimeError("scoring failed")


class FixedStrategy(MatchStrategy):
    def prefilter(self, observed, entry):
        return entry.entry_id == 'math-1'

    def score(self, observed, entry, overlap_info):
        return 0.9, {'fixed': 0.9}


class SleepyStrategy(MatchStrategy):
    def score(self, observed, entry, overlap_info):
        time.sleep(0.01)
        if entry.entry_id == 'math-1':
            return 0.9, {'sleepy': 0.9}
        return 0.0, {}


def test_exact_match_short_circuits(matcher, sample_corpus):
    result, trace = matcher.match_with_trace(make_observed("What is 2+2?", MATH_OPTIONS), sample_corpus)
    assert result.entry.entry_id == 'math-1'
    assert result.confidence == 1.0
    assert result.strategy_name == 'exact_hash'
    assert not result.is_fallback
    assert [a.status for a in trace.attempts] == ['accepted']


def test_sentinel_option_does_not_block_match(matcher, sample_corpus):
    observed = make_observed("What is 2+2?", MATH_OPTIONS + ["I don't know"])
    result = matcher.match(observed, sample_corpus)
    assert result is not None
    assert result.entry.entry_id == 'math-1'


def test_contradicting_options_are_rejected(matcher, sample_corpus):
    observed = make_observed("Which planet is known as the red planet",
                             ["Mercury", "Neptune", "Pluto", "Uranus"])
    result, trace = matcher.match_with_trace(observed, sample_corpus)
    assert result is None
    rejected = {r.entry.entry_id for r in trace.rejections}
    assert 'astro-1' in rejected
    assert {r.reason for r in trace.rejections} == {'no-matched-answers'}


def test_large_corpus_exact_match_runs_one_strategy(sample_corpus):
    corpus = [make_entry(f"Filler question number {i} about topic {i}", ["a", "b"], entry_id=f"f-{i}")
              for i in range(10000)]
    corpus.insert(5000, sample_corpus[0])
    config = MatcherConfig.from_dict({"strategies": [{"name": "exact_hash", "timeout_ms": 60000}]})
    with CascadingMatcher(config) as matcher:
        result, trace = matcher.match_with_trace(make_observed("What is 2+2?", MATH_OPTIONS), corpus)
        assert result.entry.entry_id == 'math-1'
        assert len(trace.attempts) == 1
        assert matcher.get_performance_stats()['strategy_runs'] == 1


def test_fallback_returns_best_candidate(sample_corpus):
    with CascadingMatcher(_all_thresholds(0.99)) as matcher:
        result, trace = matcher.match_with_trace(
            make_observed("What is 2 + 2 equal to?", MATH_OPTIONS), sample_corpus)
        assert result is not None
        assert result.is_fallback
        assert result.entry.entry_id == 'math-1'
        assert trace.fallback_used
        assert matcher.get_performance_stats()['fallback_matches'] == 1


def test_no_fallback_when_disabled(sample_corpus):
    with CascadingMatcher(_all_thresholds(0.99, enable_fallback=False)) as matcher:
        result, trace = matcher.match_with_trace(
            make_observed("What is 2 + 2 equal to?", MATH_OPTIONS), sample_corpus)
        assert result is None
        assert 'below_threshold' in {a.status for a in trace.attempts}
        assert not trace.fallback_used


def test_global_floor_applies_after_strategy_threshold(sample_corpus):
    config = MatcherConfig.from_dict({
        "strategies": [{"name": "content_similarity", "threshold": 0.1}],
        "min_confidence": 0.99,
        "enable_fallback": False,
    })
    with CascadingMatcher(config) as matcher:
        result, trace = matcher.match_with_trace(
            make_observed("What is 2 + 2 equal to?", MATH_OPTIONS), sample_corpus)
        assert result is None
        statuses = {a.name: a.status for a in trace.attempts}
        assert statuses['content_similarity'] == 'below_global_floor'


def test_fallback_ignores_global_floor(sample_corpus):
    config = MatcherConfig.from_dict({
        "strategies": [{"name": "content_similarity", "threshold": 0.1}],
        "min_confidence": 0.99,
    })
    with CascadingMatcher(config) as matcher:
        result = matcher.match(make_observed("What is 2 + 2 equal to?", MATH_OPTIONS), sample_corpus)
        assert result is not None
        assert result.is_fallback
        assert result.confidence < 0.99


def test_timed_out_strategy_is_skipped(sample_corpus):
    strategies = [SlowStrategy(StrategyConfig('slow', 1.0, 0.1, timeout_ms=50), None),
                  FixedStrategy(StrategyConfig('fixed', 0.9, 0.5, timeout_ms=5000), None)]
    with CascadingMatcher(MatcherConfig(), strategies=strategies) as matcher:
        result, trace = matcher.match_with_trace(make_observed("What is 2+2?", MATH_OPTIONS), sample_corpus)
        assert result.strategy_name == 'fixed'
        assert trace.attempts[0].status == 'timeout'
        assert matcher.get_performance_stats()['strategies']['slow']['timeouts'] == 1


def test_failing_strategy_is_skipped(sample_corpus):
    strategies = [BrokenStrategy(StrategyConfig('broken', 1.0, 0.1, timeout_ms=5000), None),
                  FixedStrategy(StrategyConfig('fixed', 0.9, 0.5, timeout_ms=5000), None)]
    with CascadingMatcher(MatcherConfig(), strategies=strategies) as matcher:
        result, trace = matcher.match_with_trace(make_observed("What is 2+2?", MATH_OPTIONS), sample_corpus)
        assert result.strategy_name == 'fixed'
        assert trace.attempts[0].status == 'error'
        assert matcher.get_performance_stats()['strategies']['broken']['errors'] == 1


def test_cached_result_is_reused(matcher, sample_corpus):
    observed = make_observed("What is 2+2?", MATH_OPTIONS)
    first = matcher.match(observed, sample_corpus)
    runs = matcher.get_performance_stats()['strategy_runs']

    second, trace = matcher.match_with_trace(make_observed("what is 2+2?", MATH_OPTIONS), sample_corpus)
    assert second is first
    assert trace.cache_hit
    assert matcher.get_performance_stats()['strategy_runs'] == runs


def test_no_match_is_cached(matcher, sample_corpus):
    observed = make_observed("Which planet is known as the red planet",
                             ["Mercury", "Neptune", "Pluto", "Uranus"])
    assert matcher.match(observed, sample_corpus) is None
    runs = matcher.get_performance_stats()['strategy_runs']
    result, trace = matcher.match_with_trace(observed, sample_corpus)
    assert result is None
    assert trace.cache_hit
    assert matcher.get_performance_stats()['strategy_runs'] == runs


def test_stale_cache_entry_is_recomputed(matcher, sample_corpus):
    observed = make_observed("What is 2+2?", MATH_OPTIONS)
    assert matcher.match(observed, sample_corpus) is not None

    result, trace = matcher.match_with_trace(observed, sample_corpus[1:])
    assert result is None
    assert not trace.cache_hit
    assert matcher.cache.stats()['hits'] == 0


@pytest.mark.parametrize("observed", [None, "What is 2+2?", make_observed(""), make_observed("<p></p>")])
def test_malformed_input_returns_none(matcher, sample_corpus, observed):
    assert matcher.match(observed, sample_corpus) is None


def test_empty_corpus_returns_none(matcher):
    assert matcher.match(make_observed("What is 2+2?", MATH_OPTIONS), []) is None


def test_ties_resolve_to_corpus_order(matcher):
    corpus = [make_entry("What is 2+2?", MATH_OPTIONS, correct=[1], entry_id="first"),
              make_entry("What is 2+2?", MATH_OPTIONS, correct=[1], entry_id="second")]
    assert matcher.match(make_observed("What is 2+2?", MATH_OPTIONS), corpus).entry.entry_id == 'first'


def test_ties_prefer_matching_course_and_test(matcher):
    corpus = [make_entry("What is 2+2?", MATH_OPTIONS, correct=[1], entry_id="other",
                         course_name="MATH 101", test_name="Quiz 2"),
              make_entry("What is 2+2?", MATH_OPTIONS, correct=[1], entry_id="same",
                         course_name="MATH 101", test_name="Quiz 1")]
    observed = make_observed("What is 2+2?", MATH_OPTIONS, course_name="MATH 101", test_name="Quiz 1")
    assert matcher.match(observed, corpus).entry.entry_id == 'same'


def test_per_call_config_override(matcher, sample_corpus):
    config = MatcherConfig.from_dict({"max_strategies": 0, "enable_fallback": False})
    observed = make_observed("What is 2+2?", MATH_OPTIONS)
    assert matcher.find_best_match(observed, sample_corpus, config) is None
    assert matcher.find_best_match(observed, sample_corpus) is not None


def test_cached_match_respects_per_call_config(matcher, sample_corpus):
    override = MatcherConfig.from_dict({"max_strategies": 0, "enable_fallback": False})
    observed = make_observed("What is 2+2?", MATH_OPTIONS)

    assert matcher.match(observed, sample_corpus, override) is None
    assert len(matcher.cache) == 0

    result = matcher.match(observed, sample_corpus)
    assert result is not None
    assert result.entry.entry_id == 'math-1'
    assert matcher.match(observed, sample_corpus, override) is None
    assert matcher.match(observed, sample_corpus) is result


def test_concurrent_searches_do_not_time_out_each_other(sample_corpus):
    corpus = list(sample_corpus) + [make_entry(f"Filler question {i}", ["a", "b"], entry_id=f"f-{i}")
                                    for i in range(26)]
    strategies = [SleepyStrategy(StrategyConfig('sleepy', 1.0, 0.5, timeout_ms=1000), None)]
    observed = make_observed("What is 2+2?", MATH_OPTIONS)
    with CascadingMatcher(MatcherConfig(), strategies=strategies) as matcher:
        with ThreadPoolExecutor(max_workers=8) as pool:
            outcomes = list(pool.map(lambda _: matcher.search(observed, corpus), range(8)))

    for result, trace in outcomes:
        assert [a.status for a in trace.attempts] == ['accepted']
        assert result.entry.entry_id == 'math-1'


def test_performance_stats(matcher, sample_corpus):
    matcher.match(make_observed("What is 2+2?", MATH_OPTIONS), sample_corpus)
    stats = matcher.get_performance_stats()
    assert stats['total_matches'] == 1
    assert stats['successful_matches'] == 1
    assert stats['strategies']['exact_hash']['successful'] == 1
    assert stats['cache']['size'] == 1

    matcher.reset()
    stats = matcher.get_performance_stats()
    assert stats['total_matches'] == 0
    assert stats['cache']['size'] == 0
