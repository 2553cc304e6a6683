#!/usr/bin/env python3
"""
Quiz Match Service

Facade over the cascading matcher: loads configuration, owns the corpus
provider, the feedback store and the matcher, and turns a match into what a
UI needs (correct answers, which on-screen options to highlight, confidence
level and recommendation).
"""

import time
import logging
import traceback
from typing import Any, Dict, List, Optional, Sequence

from cascading_matcher import CascadingMatcher
from confidence_blender import confidence_level, recommendation
from corpus_adapter import JsonCorpusProvider
from feedback_store import FeedbackStore
from matcher_config import MatcherConfig, load_config, configure_logging
from quiz_models import CorpusEntry, ObservedQuestion
from text_normalizer import normalize_option, question_hash

logger = logging.getLogger('QuizMatch-Service')


class QuizMatchService:
    """Core quiz matching service with answer surfacing and feedback learning"""

    def __init__(self, config: Optional[Dict[str, Any]] = None, corpus_provider=None,
                 feedback_store: Optional[FeedbackStore] = None):
        self.config = config if config is not None else load_config()
        configure_logging(self.config)

        data_config = self.config.get('data', {})
        self.matcher_config = MatcherConfig.from_dict(self.config.get('matcher'))
        self.corpus_provider = corpus_provider or JsonCorpusProvider(
            data_config.get('corpus_file', 'data/corpus.json'))
        if feedback_store is None:
            feedback_store = FeedbackStore(data_config.get('feedback_file'))
        self.feedback_store = feedback_store
        self.matcher = CascadingMatcher(self.matcher_config, feedback_store=self.feedback_store)
        self.initialized = False
        self.started_at = time.time()

    def initialize(self) -> bool:
        """Load the corpus once so the first request does not pay for it"""
        try:
            logger.info("Initializing Quiz Match Service...")
            corpus = self.corpus_provider.snapshot()
            if not corpus:
                logger.warning("Corpus is empty; every lookup will return no match until data arrives")
            else:
                logger.info(f"Corpus ready with {len(corpus)} entries")
            self.initialized = True
            return True
        except Exception as e:
            logger.error(f"Error initializing service: {e}")
            logger.error(traceback.format_exc())
            return False

    def highlight_indices(self, observed: ObservedQuestion, entry: CorpusEntry) -> List[int]:
        """Positions of the on-screen options that correspond to the entry's correct answers"""
        correct = [normalize_option(text) for text in entry.correct_answers()]
        correct = [text for text in correct if text]
        evaluator = self.matcher.evaluator
        indices = []
        for i, option in enumerate(observed.normalized_options):
            if option and any(evaluator.options_match(option, answer) for answer in correct):
                indices.append(i)
        return indices

    def answer_question(self, question_text: str, answer_options: Optional[Sequence[str]] = None,
                        course_name: Optional[str] = None, test_name: Optional[str] = None,
                        debug: bool = False) -> Dict[str, Any]:
        if not self.initialized:
            logger.error("Quiz Match Service not initialized. Call initialize() first.")
            return {"found": False, "message": "System not initialized"}

        try:
            observed = ObservedQuestion(question_text, tuple(answer_options or ()),
                                        course_name=course_name, test_name=test_name)
            corpus = self.corpus_provider.snapshot()
            match, trace = self.matcher.match_with_trace(observed, corpus)

            result: Dict[str, Any] = {"found": False, "confidence": 0.0}
            if match:
                entry = match.entry
                result.update({
                    "found": True,
                    "confidence": match.confidence,
                    "confidence_level": confidence_level(match.confidence),
                    "recommendation": recommendation(match.confidence, match.is_fallback),
                    "matched_question": entry.question_text,
                    "entry_key": entry.key,
                    "correct_answers": list(entry.correct_answers()),
                    "highlight_indices": self.highlight_indices(observed, entry),
                    "strategy": match.strategy_name,
                    "is_fallback": match.is_fallback,
                    "breakdown": dict(match.breakdown),
                })
                logger.info(f"Found match with confidence {match.confidence:.3f} via {match.strategy_name}")
            else:
                result["confidence_level"] = 'NONE'
                result["recommendation"] = 'no_highlight'
                if trace.rejections:
                    reasons = sorted({r.reason for r in trace.rejections})
                    result["message"] = "Similar questions were found but their answer options disagree"
                    result["rejection_reasons"] = reasons
                else:
                    result["message"] = "No matching question found"

            if debug:
                result["trace"] = trace.to_dict()
            return result

        except Exception as e:
            logger.error(f"Error answering question: {e}")
            logger.error(traceback.format_exc())
            return {"found": False, "message": f"Error processing question: {str(e)}"}

    def record_feedback(self, question_text: str, entry_key: str, was_correct: bool) -> Dict[str, Any]:
        """Record whether the surfaced entry really was the observed question"""
        shape_key = question_hash(question_text)
        record = self.feedback_store.record(shape_key, entry_key, was_correct)
        self.feedback_store.save()
        # The cached confidence no longer reflects the feedback
        self.matcher.cache.invalidate(shape_key)
        return {
            "entry_key": entry_key,
            "correct_count": record.correct_count,
            "incorrect_count": record.incorrect_count,
        }

    def clear_cache(self):
        self.matcher.clear_cache()

    def get_system_stats(self) -> Dict[str, Any]:
        try:
            corpus = self.corpus_provider.snapshot()
            return {
                "initialized": self.initialized,
                "corpus_entries": len(corpus),
                "courses": len({e.course_name for e in corpus if e.course_name}),
                "feedback_records": len(self.feedback_store),
                "uptime_seconds": round(time.time() - self.started_at, 1),
                "performance": self.matcher.get_performance_stats(),
            }
        except Exception as e:
            logger.error(f"Error getting system stats: {e}")
            return {"error": str(e)}

    def health_check(self) -> Dict[str, Any]:
        try:
            if not self.initialized:
                return {"status": "error", "message": "Service not initialized"}
            corpus = self.corpus_provider.snapshot()
            status = "healthy" if corpus else "degraded"
            return {"status": status, "corpus_entries": len(corpus)}
        except Exception as e:
            return {"status": "error", "message": f"Health check failed: {e}"}

    def close(self):
        self.feedback_store.save()
        self.matcher.close()
