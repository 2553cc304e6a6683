#!/usr/bin/env python3
"""
Cascading Matching Module for Quiz Questions

Finds the corpus entry that represents the same question as an observed one
by trying strategies from most to least reliable:
1. exact_hash          - identical normalized text
2. content_similarity  - character, word and positional agreement
3. semantic_analysis   - keywords, taxonomy context and structure
4. keyword_overlap     - shared keywords only
5. fuzzy_matching      - edit distance only

Each strategy scores the whole corpus within its own time budget. Candidates
whose answer options contradict the observed options are rejected before
ranking. The first strategy whose best candidate clears both its threshold
and the global floor wins; otherwise an optional fallback returns the best
candidate seen by any strategy, tagged as a fallback.
"""

import time
import logging
import threading
import traceback
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple, Any

from answer_overlap import AnswerOverlapEvaluator, OverlapInfo
from confidence_blender import ConfidenceBlender
from matcher_config import MatcherConfig, StrategyConfig
from quiz_models import CorpusEntry, MatchCandidate, MatchResult, ObservedQuestion
from result_cache import ResultCache

logger = logging.getLogger('QuizMatch-Matcher')

# (corpus position, candidate)
RankedCandidate = Tuple[int, MatchCandidate]


class StrategyCancelled(Exception):
    """Raised inside a strategy worker once its time budget has expired"""


@dataclass
class StrategyAttempt:
    name: str
    status: str = 'pending'
    best_confidence: Optional[float] = None
    candidate_count: int = 0
    elapsed_ms: float = 0.0
    fallback_phase: bool = False


@dataclass
class Rejection:
    entry: CorpusEntry
    strategy_name: str
    reason: str
    text_confidence: float


@dataclass
class MatchTrace:
    attempts: List[StrategyAttempt] = field(default_factory=list)
    rejections: List[Rejection] = field(default_factory=list)
    fallback_used: bool = False
    cache_hit: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'cache_hit': self.cache_hit,
            'fallback_used': self.fallback_used,
            'attempts': [{
                'strategy': a.name,
                'status': a.status,
                'best_confidence': round(a.best_confidence, 4) if a.best_confidence is not None else None,
                'candidates': a.candidate_count,
                'elapsed_ms': round(a.elapsed_ms, 2),
                'fallback_phase': a.fallback_phase,
            } for a in self.attempts],
            'rejections': [{
                'question': r.entry.question_text[:80],
                'strategy': r.strategy_name,
                'reason': r.reason,
                'text_confidence': round(r.text_confidence, 4),
            } for r in self.rejections],
        }


class MatchStrategy:
    """One way of scoring an observed question against a corpus entry"""

    def __init__(self, settings: StrategyConfig, blender: ConfidenceBlender):
        self.settings = settings
        self.blender = blender

    @property
    def name(self) -> str:
        return self.settings.name

    @property
    def threshold(self) -> float:
        return self.settings.threshold

    @property
    def timeout_ms(self) -> int:
        return self.settings.timeout_ms

    @property
    def weight(self) -> float:
        return self.settings.weight

    def prefilter(self, observed: ObservedQuestion, entry: CorpusEntry) -> bool:
        return True

    def score(self, observed: ObservedQuestion, entry: CorpusEntry,
              overlap_info: OverlapInfo) -> Optional[Tuple[float, Dict[str, float]]]:
        raise NotImplementedError


class ExactHashStrategy(MatchStrategy):
    """Confidence 1.0 exactly when the normalized texts are identical"""

    def prefilter(self, observed, entry):
        return observed.text_hash == entry.text_hash and observed.normalized_text == entry.normalized_text

    def score(self, observed, entry, overlap_info):
        return 1.0, {'exact_hash': 1.0}


class BlendedStrategy(MatchStrategy):
    """Blend of the strategy's configured signals plus the feedback adjustment"""

    def score(self, observed, entry, overlap_info):
        blended = self.blender.blend(observed, entry, weights=self.settings.signal_weights,
                                     overlap_info=overlap_info)
        return blended.score, blended.breakdown


STRATEGY_TYPES = {
    'exact_hash': ExactHashStrategy,
}


def build_strategies(config: MatcherConfig, blender: ConfidenceBlender) -> List[MatchStrategy]:
    return [STRATEGY_TYPES.get(settings.name, BlendedStrategy)(settings, blender)
            for settings in config.strategies]


class MatchStatistics:
    """Per-strategy and overall counters, safe to update from request threads"""

    def __init__(self):
        self._lock = threading.Lock()
        self.reset()

    def reset(self):
        with self._lock:
            self.total_matches = 0
            self.successful_matches = 0
            self.fallback_matches = 0
            self.total_time_ms = 0.0
            self.strategy_runs = 0
            self.strategies: Dict[str, Dict[str, float]] = {}

    def record_attempt(self, attempt: StrategyAttempt):
        with self._lock:
            self.strategy_runs += 1
            stats = self.strategies.setdefault(attempt.name, {
                'used': 0, 'successful': 0, 'timeouts': 0, 'errors': 0,
                'total_time_ms': 0.0, 'total_confidence': 0.0,
            })
            stats['used'] += 1
            stats['total_time_ms'] += attempt.elapsed_ms
            if attempt.status == 'timeout':
                stats['timeouts'] += 1
            elif attempt.status == 'error':
                stats['errors'] += 1

    def record_match(self, result: Optional[MatchResult], elapsed_ms: float):
        with self._lock:
            self.total_matches += 1
            self.total_time_ms += elapsed_ms
            if result is None:
                return
            self.successful_matches += 1
            if result.is_fallback:
                self.fallback_matches += 1
            stats = self.strategies.get(result.strategy_name)
            if stats is not None:
                stats['successful'] += 1
                stats['total_confidence'] += result.confidence

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            strategies = {}
            for name, stats in self.strategies.items():
                strategies[name] = {
                    'used': stats['used'],
                    'successful': stats['successful'],
                    'timeouts': stats['timeouts'],
                    'errors': stats['errors'],
                    'success_rate': stats['successful'] / stats['used'] if stats['used'] else 0.0,
                    'average_time_ms': stats['total_time_ms'] / stats['used'] if stats['used'] else 0.0,
                    'average_confidence': (stats['total_confidence'] / stats['successful']
                                           if stats['successful'] else 0.0),
                }
            return {
                'total_matches': self.total_matches,
                'successful_matches': self.successful_matches,
                'fallback_matches': self.fallback_matches,
                'success_rate': self.successful_matches / self.total_matches if self.total_matches else 0.0,
                'average_time_ms': self.total_time_ms / self.total_matches if self.total_matches else 0.0,
                'strategy_runs': self.strategy_runs,
                'strategies': strategies,
            }


def _context_rank(observed: ObservedQuestion, entry: CorpusEntry) -> int:
    """0 for same course and test, 1 for same course, 2 otherwise"""
    if observed.course_name and entry.course_name == observed.course_name:
        if observed.test_name and entry.test_name == observed.test_name:
            return 0
        return 1
    return 2


class CascadingMatcher:
    def __init__(self, config: Optional[MatcherConfig] = None, feedback_store=None,
                 cache: Optional[ResultCache] = None,
                 strategies: Optional[Sequence[MatchStrategy]] = None):
        self.config = config or MatcherConfig()
        self.feedback_store = feedback_store
        self.evaluator = AnswerOverlapEvaluator(self.config.overlap)
        self.blender = ConfidenceBlender(self.config, feedback_store, self.evaluator)
        self.strategies = list(strategies) if strategies else build_strategies(self.config, self.blender)
        if cache is None:
            cache = ResultCache(self.config.cache.max_size, self.config.cache.ttl_ms)
        self.cache = cache
        self.stats = MatchStatistics()
        self._closed = threading.Event()
        logger.info(f"Initialized CascadingMatcher with strategies: "
                    f"{[s.name for s in self.strategies]}")

    def close(self):
        """Stop in-flight strategy workers at their next corpus entry"""
        self._closed.set()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _components(self, config: Optional[MatcherConfig]):
        """Strategies and evaluator for a per-call config override"""
        if config is None or config is self.config:
            return self.config, self.strategies, self.evaluator
        evaluator = AnswerOverlapEvaluator(config.overlap)
        blender = ConfidenceBlender(config, self.feedback_store, evaluator)
        return config, build_strategies(config, blender), evaluator

    def _collect_candidates(self, strategy: MatchStrategy, observed: ObservedQuestion,
                            corpus: Tuple[CorpusEntry, ...], evaluator: AnswerOverlapEvaluator,
                            overlap_memo: Dict[int, OverlapInfo],
                            cancel: threading.Event,
                            started: threading.Event) -> Tuple[List[RankedCandidate], List[Rejection]]:
        # The time budget starts when the worker does, not when it was submitted
        deadline = time.monotonic() + strategy.timeout_ms / 1000.0
        started.set()
        candidates: List[RankedCandidate] = []
        rejections: List[Rejection] = []

        for position, entry in enumerate(corpus):
            if cancel.is_set() or self._closed.is_set() or time.monotonic() > deadline:
                raise StrategyCancelled(strategy.name)
            if not strategy.prefilter(observed, entry):
                continue

            info = overlap_memo.get(position)
            if info is None:
                info = evaluator.evaluate_normalized(observed.normalized_options, entry.normalized_options)
                overlap_memo[position] = info

            scored = strategy.score(observed, entry, info)
            if scored is None:
                continue
            confidence, breakdown = scored
            if confidence <= 0:
                continue

            evaluation = evaluator.assess(info)
            if not evaluation.is_sufficient:
                rejections.append(Rejection(entry, strategy.name, evaluation.reason, confidence))
                continue

            candidates.append((position, MatchCandidate(entry, confidence, strategy.name,
                                                        breakdown, evaluation)))

        candidates.sort(key=lambda item: (-item[1].confidence,
                                          _context_rank(observed, item[1].entry),
                                          item[0]))
        return candidates, rejections

    def _run_strategy(self, strategy: MatchStrategy, observed: ObservedQuestion,
                      corpus: Tuple[CorpusEntry, ...], evaluator: AnswerOverlapEvaluator,
                      overlap_memo: Dict[int, OverlapInfo], trace: MatchTrace,
                      fallback_phase: bool = False) -> List[RankedCandidate]:
        attempt = StrategyAttempt(strategy.name, fallback_phase=fallback_phase)
        trace.attempts.append(attempt)
        cancel = threading.Event()
        started = threading.Event()
        start = time.time()
        candidates: List[RankedCandidate] = []

        # One worker per run, so concurrent searches never queue behind each other
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix='quizmatch-strategy')
        try:
            future = executor.submit(self._collect_candidates, strategy, observed,
                                     corpus, evaluator, overlap_memo, cancel, started)
            started.wait()
            candidates, rejections = future.result(timeout=strategy.timeout_ms / 1000.0)
            trace.rejections.extend(rejections)
            attempt.status = 'scored' if candidates else 'no_candidates'
        except (FutureTimeout, StrategyCancelled):
            cancel.set()
            attempt.status = 'timeout'
            logger.warning(f"Strategy {strategy.name} exceeded {strategy.timeout_ms}ms, skipping")
        except Exception as e:
            cancel.set()
            attempt.status = 'error'
            logger.error(f"Strategy {strategy.name} failed: {e}")
            logger.error(traceback.format_exc())
        finally:
            # A timed-out worker exits on its own at the next corpus entry
            executor.shutdown(wait=False)

        attempt.elapsed_ms = (time.time() - start) * 1000.0
        attempt.candidate_count = len(candidates)
        if candidates:
            attempt.best_confidence = candidates[0][1].confidence
        self.stats.record_attempt(attempt)
        logger.debug(f"{strategy.name}: {attempt.status}, {attempt.candidate_count} candidates "
                     f"in {attempt.elapsed_ms:.1f}ms")
        return candidates

    def _fallback(self, observed, corpus, strategies, evaluator, overlap_memo,
                  computed: Dict[str, List[RankedCandidate]], trace: MatchTrace) -> Optional[MatchResult]:
        pool = []
        for order, strategy in enumerate(strategies):
            candidates = computed.get(strategy.name)
            if candidates is None:
                candidates = self._run_strategy(strategy, observed, corpus, evaluator,
                                                overlap_memo, trace, fallback_phase=True)
            for position, candidate in candidates:
                if candidate.confidence > 0:
                    pool.append((candidate, strategy.weight, order, position))

        if not pool:
            return None

        pool.sort(key=lambda item: (-item[0].confidence, -item[1],
                                    _context_rank(observed, item[0].entry), item[2], item[3]))
        best = pool[0][0]
        trace.fallback_used = True
        logger.info(f"Fallback match via {best.strategy_name} with confidence {best.confidence:.3f}")
        return MatchResult(best.entry, best.confidence, best.strategy_name,
                           is_fallback=True, breakdown=dict(best.breakdown))

    def search(self, observed: ObservedQuestion, corpus: Sequence[CorpusEntry],
               config: Optional[MatcherConfig] = None) -> Tuple[Optional[MatchResult], MatchTrace]:
        """Run the cascade and return the result together with its diagnostics"""
        trace = MatchTrace()
        if not isinstance(observed, ObservedQuestion) or not observed.normalized_text:
            return None, trace
        corpus = tuple(corpus or ())
        if not corpus:
            return None, trace

        config, strategies, evaluator = self._components(config)
        overlap_memo: Dict[int, OverlapInfo] = {}
        computed: Dict[str, List[RankedCandidate]] = {}

        for strategy in strategies[:max(0, config.max_strategies)]:
            candidates = self._run_strategy(strategy, observed, corpus, evaluator, overlap_memo, trace)
            computed[strategy.name] = candidates
            attempt = trace.attempts[-1]
            if not candidates:
                continue

            best = candidates[0][1]
            if best.confidence < strategy.threshold:
                attempt.status = 'below_threshold'
                continue
            if best.confidence < config.min_confidence:
                attempt.status = 'below_global_floor'
                continue

            attempt.status = 'accepted'
            logger.info(f"Accepted {strategy.name} match with confidence {best.confidence:.3f}")
            return MatchResult(best.entry, best.confidence, best.strategy_name,
                               is_fallback=False, breakdown=dict(best.breakdown)), trace

        if config.enable_fallback:
            return self._fallback(observed, corpus, strategies, evaluator, overlap_memo,
                                  computed, trace), trace

        logger.info("No strategy produced an acceptable match")
        return None, trace

    def find_best_match(self, observed: ObservedQuestion, corpus: Sequence[CorpusEntry],
                        config: Optional[MatcherConfig] = None) -> Optional[MatchResult]:
        try:
            result, _ = self.search(observed, corpus, config)
            return result
        except Exception as e:
            logger.error(f"Error finding best match: {e}")
            logger.error(traceback.format_exc())
            return None

    def match_with_trace(self, observed: ObservedQuestion, corpus: Sequence[CorpusEntry],
                         config: Optional[MatcherConfig] = None) -> Tuple[Optional[MatchResult], MatchTrace]:
        """Cached lookup (per-call config overrides bypass the cache); never raises"""
        start = time.time()
        trace = MatchTrace()
        try:
            if not isinstance(observed, ObservedQuestion) or not observed.normalized_text:
                return None, trace
            corpus = tuple(corpus or ())
            if not corpus:
                return None, trace

            # Cached results are only valid for the matcher's own config
            if config is not None and config is not self.config:
                result, trace = self.search(observed, corpus, config)
                self.stats.record_match(result, (time.time() - start) * 1000.0)
                return result, trace

            key = observed.text_hash
            cached = self.cache.get(key)
            if cached is not None:
                if cached.result is None or cached.result.entry in corpus:
                    trace.cache_hit = True
                    return cached.result, trace
                # Entry was removed from the corpus since it was cached
                logger.info(f"Cached match for {key[:12]} is no longer in the corpus")
                self.cache.invalidate(key, stale=True)

            result, trace = self.search(observed, corpus, config)
            self.cache.put(key, result)
            self.stats.record_match(result, (time.time() - start) * 1000.0)
            return result, trace
        except Exception as e:
            logger.error(f"Error matching question: {e}")
            logger.error(traceback.format_exc())
            return None, trace

    def match(self, observed: ObservedQuestion, corpus: Sequence[CorpusEntry],
              config: Optional[MatcherConfig] = None) -> Optional[MatchResult]:
        result, _ = self.match_with_trace(observed, corpus, config)
        return result

    def clear_cache(self):
        self.cache.clear()

    def reset(self):
        self.cache.clear()
        self.stats.reset()

    def get_performance_stats(self) -> Dict[str, Any]:
        stats = self.stats.snapshot()
        stats['cache'] = self.cache.stats()
        return stats
