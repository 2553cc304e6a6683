#!/usr/bin/env python3
"""
Answer-Overlap Evaluation for Quiz Question Matching

Two questions with near-identical wording can still be different questions
if their answer options disagree. This module measures how many of the
observed options also appear among a stored entry's options and decides
whether that overlap (and the option counts) is consistent with "same
question".

Reason codes reported by the evaluator:
    acceptable            - overlap meets the dynamic threshold
    insufficient-options  - neither side has enough options to compare
    missing-answer-data   - one side has options, the other does not
    no-matched-answers    - options exist on both sides but none pair up
    low-answer-overlap    - some pairs, below the dynamic threshold
    answer-count-mismatch - overlap fine, option counts too far apart
"""

import re
import math
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from matcher_config import OverlapConfig
from text_normalizer import normalize_option, content_words

logger = logging.getLogger('QuizMatch-Overlap')


@dataclass(frozen=True)
class OverlapInfo:
    overlap: Optional[float]
    matched_pairs: int
    current_count: int
    stored_count: int
    original_current_count: int
    original_stored_count: int
    matched_options: Tuple[str, ...] = ()


@dataclass(frozen=True)
class OverlapEvaluation:
    is_sufficient: bool
    reason: str
    actual: Optional[float] = None
    required: Optional[float] = None
    coverage: Optional[float] = None
    matched_pairs: int = 0


class AnswerOverlapEvaluator:
    def __init__(self, config: Optional[OverlapConfig] = None):
        self.config = config or OverlapConfig()
        self.sentinel_patterns = [re.compile(p) for p in self.config.sentinel_patterns]

    def is_sentinel(self, option: str) -> bool:
        """True for "I don't know" / skip style options"""
        return any(pattern.search(option) for pattern in self.sentinel_patterns)

    def clean_options(self, normalized_options: Sequence[str]) -> List[str]:
        return [option for option in normalized_options
                if option and not self.is_sentinel(option)]

    def options_match(self, first: str, second: str) -> bool:
        """Equal, contained at a word boundary, or sharing most content words"""
        if first == second:
            return True
        if f' {first} ' in f' {second} ' or f' {second} ' in f' {first} ':
            return True

        words1 = set(content_words(first))
        words2 = set(content_words(second))
        if not words1 or not words2:
            return False
        common = len(words1 & words2)
        return common / max(len(words1), len(words2)) >= self.config.word_overlap_ratio

    def evaluate(self, current_options: Sequence[str], stored_options: Sequence[str]) -> OverlapInfo:
        """Overlap between raw option lists"""
        return self.evaluate_normalized(
            [normalize_option(option) for option in current_options or ()],
            [normalize_option(option) for option in stored_options or ()]
        )

    def evaluate_normalized(self, current_options: Sequence[str],
                            stored_options: Sequence[str]) -> OverlapInfo:
        current = self.clean_options(current_options)
        stored = self.clean_options(stored_options)

        if len(current) < 2 or len(stored) < 2:
            return OverlapInfo(
                overlap=None,
                matched_pairs=0,
                current_count=len(current),
                stored_count=len(stored),
                original_current_count=len(current_options),
                original_stored_count=len(stored_options),
            )

        # Greedy pairing, each stored option used at most once
        used = [False] * len(stored)
        matched = []
        for option in current:
            for j, candidate in enumerate(stored):
                if not used[j] and self.options_match(option, candidate):
                    used[j] = True
                    matched.append(option)
                    break

        unique_matched = set(matched)
        denominator = min(len(set(current)), len(set(stored)))
        overlap = min(1.0, len(unique_matched) / denominator) if denominator else 0.0

        return OverlapInfo(
            overlap=overlap,
            matched_pairs=len(matched),
            current_count=len(current),
            stored_count=len(stored),
            original_current_count=len(current_options),
            original_stored_count=len(stored_options),
            matched_options=tuple(matched),
        )

    def required_overlap(self, min_count: int) -> float:
        """Dynamic threshold: min(minimum_overlap, max(floor, 1 / min_count))"""
        choice_count = max(2, min_count)
        return min(self.config.minimum_overlap,
                   max(self.config.threshold_floor, 1.0 / choice_count))

    def required_matched_pairs(self, min_count: int) -> int:
        """Matched pairs the dynamic threshold demands for a set of min_count options"""
        choice_count = max(2, min_count)
        return max(1, math.ceil(self.required_overlap(choice_count) * choice_count - 1e-9))

    def evaluate_overlap(self, info: OverlapInfo) -> OverlapEvaluation:
        if info.overlap is None:
            requires_comparison = info.current_count >= 2 or info.stored_count >= 2
            if requires_comparison:
                return OverlapEvaluation(False, 'missing-answer-data')
            return OverlapEvaluation(True, 'insufficient-options')

        if info.matched_pairs == 0:
            return OverlapEvaluation(False, 'no-matched-answers', actual=info.overlap,
                                     coverage=0.0)

        min_count = min(info.current_count, info.stored_count)
        required = self.required_overlap(min_count)
        coverage = info.matched_pairs / min_count if min_count else 0.0
        sufficient = info.overlap >= required

        return OverlapEvaluation(
            is_sufficient=sufficient,
            reason='acceptable' if sufficient else 'low-answer-overlap',
            actual=info.overlap,
            required=required,
            coverage=coverage,
            matched_pairs=info.matched_pairs,
        )

    def is_count_compatible(self, info: OverlapInfo, evaluation: OverlapEvaluation) -> bool:
        current, stored = info.current_count, info.stored_count
        if current == 0 or stored == 0 or current == stored:
            return True

        coverage = evaluation.coverage or 0.0
        difference = abs(current - stored)
        if difference == 1:
            return coverage >= self.config.coverage_delta_one
        if difference == 2:
            return coverage >= self.config.coverage_delta_two
        return False

    def assess(self, info: OverlapInfo) -> OverlapEvaluation:
        """Overlap decision combined with the count-compatibility policy"""
        evaluation = self.evaluate_overlap(info)
        if not evaluation.is_sufficient:
            return evaluation
        if not self.is_count_compatible(info, evaluation):
            logger.debug(f"Option counts incompatible: {info.current_count} vs {info.stored_count} "
                         f"(coverage {evaluation.coverage})")
            return OverlapEvaluation(
                is_sufficient=False,
                reason='answer-count-mismatch',
                actual=evaluation.actual,
                required=evaluation.required,
                coverage=evaluation.coverage,
                matched_pairs=evaluation.matched_pairs,
            )
        return evaluation
