#!/usr/bin/env python3
"""
Data model for the quiz question matching engine.

Corpus entries and observed questions are immutable value objects. The
normalized text and option forms are computed lazily and memoized on the
instance, so a corpus snapshot can be scored by several strategies without
re-normalizing every entry.
"""

from dataclasses import dataclass, field
from datetime import datetime
from functools import cached_property
from typing import Dict, FrozenSet, Optional, Tuple, Any

from text_normalizer import normalize, normalize_option, question_hash


class InvalidCorpusEntry(ValueError):
    """Raised when a corpus record carries no usable correct-answer data"""


@dataclass(frozen=True)
class CorpusEntry:
    question_text: str
    answer_options: Tuple[str, ...] = ()
    correct_answer_indices: FrozenSet[int] = frozenset()
    correct_answer_texts: Tuple[str, ...] = ()
    course_name: Optional[str] = None
    test_name: Optional[str] = None
    captured_at: Optional[datetime] = None
    entry_id: Optional[str] = None

    def __post_init__(self):
        # Coerce list inputs so entries stay hashable
        object.__setattr__(self, 'answer_options', tuple(self.answer_options or ()))
        object.__setattr__(self, 'correct_answer_indices', frozenset(self.correct_answer_indices or ()))
        object.__setattr__(self, 'correct_answer_texts', tuple(self.correct_answer_texts or ()))

        if not self.correct_answer_indices and not self.correct_answer_texts:
            raise InvalidCorpusEntry(
                f"Entry '{self.question_text[:50]}' has neither correct indices nor correct texts"
            )
        if self.answer_options:
            out_of_range = [i for i in self.correct_answer_indices
                            if i < 0 or i >= len(self.answer_options)]
            if out_of_range:
                raise InvalidCorpusEntry(
                    f"Correct indices {sorted(out_of_range)} out of range for "
                    f"{len(self.answer_options)} options"
                )

    @cached_property
    def normalized_text(self) -> str:
        return normalize(self.question_text)

    @cached_property
    def normalized_options(self) -> Tuple[str, ...]:
        return tuple(normalize_option(option) for option in self.answer_options)

    @cached_property
    def text_hash(self) -> str:
        return question_hash(self.question_text)

    @property
    def key(self) -> str:
        """Stable identity used for feedback lookups"""
        return self.entry_id or self.text_hash

    def correct_answers(self) -> Tuple[str, ...]:
        """Correct answer texts, resolved from indices when texts were not captured"""
        if self.correct_answer_texts:
            return self.correct_answer_texts
        return tuple(self.answer_options[i] for i in sorted(self.correct_answer_indices)
                     if i < len(self.answer_options))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'entry_id': self.entry_id,
            'question_text': self.question_text,
            'answer_options': list(self.answer_options),
            'correct_answer_indices': sorted(self.correct_answer_indices),
            'correct_answer_texts': list(self.correct_answer_texts),
            'course_name': self.course_name,
            'test_name': self.test_name,
            'captured_at': self.captured_at.isoformat() if self.captured_at else None,
        }


@dataclass(frozen=True)
class ObservedQuestion:
    question_text: str
    answer_options: Tuple[str, ...] = ()
    course_name: Optional[str] = None
    test_name: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, 'answer_options', tuple(self.answer_options or ()))

    @cached_property
    def normalized_text(self) -> str:
        return normalize(self.question_text)

    @cached_property
    def normalized_options(self) -> Tuple[str, ...]:
        return tuple(normalize_option(option) for option in self.answer_options)

    @cached_property
    def text_hash(self) -> str:
        return question_hash(self.question_text)


@dataclass
class FeedbackRecord:
    correct_count: int = 0
    incorrect_count: int = 0

    @property
    def total(self) -> int:
        return self.correct_count + self.incorrect_count


@dataclass(frozen=True)
class MatchCandidate:
    entry: CorpusEntry
    confidence: float
    strategy_name: str
    breakdown: Dict[str, float] = field(default_factory=dict)
    overlap: Optional[Any] = None


@dataclass(frozen=True)
class MatchResult:
    entry: CorpusEntry
    confidence: float
    strategy_name: str
    is_fallback: bool = False
    breakdown: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'entry': self.entry.to_dict(),
            'confidence': round(self.confidence, 4),
            'strategy': self.strategy_name,
            'is_fallback': self.is_fallback,
            'breakdown': {k: round(v, 4) for k, v in self.breakdown.items()},
        }


@dataclass(frozen=True)
class CacheEntry:
    key: str
    result: Optional[MatchResult]
    created_at: float
