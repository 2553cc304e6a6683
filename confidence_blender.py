#!/usr/bin/env python3
"""
Confidence Blending Module

Combines lexical similarity signals and the answer-overlap signal into one
confidence score per (observed question, corpus entry) pair:

    base  = sum(weight * signal) / sum(weight)     (signals that are present)
    final = clamp(base + learning_adjustment, 0, 1)

The learning adjustment comes from historical feedback for the pair:
    clamp((correct / (correct + incorrect) - 0.5) * 0.4, -0.2, +0.2)
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

import numpy as np

from answer_overlap import AnswerOverlapEvaluator, OverlapInfo
from matcher_config import MatcherConfig
from similarity import SIMILARITY_FUNCTIONS, keyword_overlap

logger = logging.getLogger('QuizMatch-Blender')

CONFIDENCE_LEVELS = {
    'HIGH': 0.8,
    'MEDIUM': 0.6,
    'LOW': 0.4,
    'NONE': 0.2,
}


@dataclass
class BlendResult:
    score: float
    base_score: float
    learning_adjustment: float
    breakdown: Dict[str, float] = field(default_factory=dict)


def confidence_level(score: float) -> str:
    if score >= CONFIDENCE_LEVELS['HIGH']:
        return 'HIGH'
    if score >= CONFIDENCE_LEVELS['MEDIUM']:
        return 'MEDIUM'
    if score >= CONFIDENCE_LEVELS['LOW']:
        return 'LOW'
    return 'NONE'


def recommendation(score: float, is_fallback: bool = False) -> str:
    """What a UI should do with a match of this confidence"""
    level = confidence_level(score)
    if level == 'NONE':
        return 'no_highlight'
    if is_fallback or level == 'LOW':
        return 'prompt_user'
    if level == 'MEDIUM':
        return 'highlight_with_warning'
    return 'highlight'


class ConfidenceBlender:
    def __init__(self, config: Optional[MatcherConfig] = None, feedback_store=None,
                 evaluator: Optional[AnswerOverlapEvaluator] = None):
        self.config = config or MatcherConfig()
        self.feedback_store = feedback_store
        self.evaluator = evaluator or AnswerOverlapEvaluator(self.config.overlap)
        logger.debug(f"Initialized ConfidenceBlender with weights: {self.config.blend_weights}")

    def signal(self, name: str, observed, entry, overlap_info: Optional[OverlapInfo] = None) -> Optional[float]:
        """Raw score of one signal; None when the signal has no evidence for this pair"""
        if name == 'answer_overlap':
            if overlap_info is None:
                overlap_info = self.evaluator.evaluate_normalized(observed.normalized_options,
                                                                  entry.normalized_options)
            return overlap_info.overlap
        if name == 'keyword':
            return keyword_overlap(observed.normalized_text, entry.normalized_text,
                                   self.config.keyword_top_n)
        if name not in SIMILARITY_FUNCTIONS:
            raise KeyError(f"Unknown signal: {name}")
        return SIMILARITY_FUNCTIONS[name](observed.normalized_text, entry.normalized_text)

    def learning_adjustment(self, observed, entry, feedback=None) -> float:
        if feedback is None:
            feedback = self.feedback_store
        if feedback is None:
            return 0.0

        record = feedback.lookup(observed.text_hash, entry.key)
        if record is None or record.total == 0:
            return 0.0

        accuracy = record.correct_count / record.total
        adjustment = (accuracy - 0.5) * self.config.learning_scale
        cap = self.config.learning_cap
        return float(max(-cap, min(cap, adjustment)))

    def blend(self, observed, entry, feedback=None, weights: Optional[Dict[str, float]] = None,
              overlap_info: Optional[OverlapInfo] = None) -> BlendResult:
        weights = weights if weights is not None else self.config.blend_weights

        breakdown: Dict[str, float] = {}
        active_weights = []
        active_scores = []
        for name, weight in weights.items():
            if weight <= 0:
                continue
            score = self.signal(name, observed, entry, overlap_info)
            if score is None:
                continue
            breakdown[name] = score
            active_weights.append(weight)
            active_scores.append(score)

        if active_weights:
            weight_vector = np.array(active_weights, dtype=float)
            base = float(np.dot(weight_vector, np.array(active_scores)) / weight_vector.sum())
        else:
            base = 0.0
        base = max(0.0, min(1.0, base))

        adjustment = self.learning_adjustment(observed, entry, feedback)
        breakdown['learning_adjustment'] = adjustment
        final = max(0.0, min(1.0, base + adjustment))

        return BlendResult(score=final, base_score=base,
                           learning_adjustment=adjustment, breakdown=breakdown)
