# Shared builders for matcher tests.

import pytest

from cascading_matcher import CascadingMatcher
from corpus_adapter import InMemoryCorpusProvider
from feedback_store import FeedbackStore
from matcher_config import MatcherConfig
from quiz_match_service import QuizMatchService
from quiz_models import CorpusEntry, ObservedQuestion


def make_entry(text, options=(), correct=(0,), correct_texts=(), **kwargs):
    return CorpusEntry(
        question_text=text,
        answer_options=tuple(options),
        correct_answer_indices=frozenset(correct),
        correct_answer_texts=tuple(correct_texts),
        **kwargs
    )


def make_observed(text, options=(), **kwargs):
    return ObservedQuestion(text, tuple(options), **kwargs)


@pytest.fixture
def sample_corpus():
    return [
        make_entry("What is 2+2?", ["3", "4", "5", "22"], correct=[1],
                   course_name="MATH 101", entry_id="math-1"),
        make_entry("Which organelle produces most of the cell's energy?",
                   ["Nucleus", "Mitochondria", "Ribosome", "Golgi apparatus"], correct=[1],
                   course_name="BIO 110", entry_id="bio-1"),
        make_entry("What is the boiling point of water at sea level in celsius?",
                   ["0", "50", "100", "212"], correct=[2],
                   course_name="CHEM 100", entry_id="chem-1"),
        make_entry("Which planet is known as the red planet?",
                   ["Mars", "Venus", "Jupiter", "Saturn"], correct=[0],
                   course_name="ASTRO 101", entry_id="astro-1"),
    ]


@pytest.fixture
def matcher():
    instance = CascadingMatcher(MatcherConfig())
    yield instance
    instance.close()


@pytest.fixture
def service(sample_corpus):
    config = {
        "matcher": {},
        "data": {},
        "system": {"max_batch_size": 5},
        "logging": {"level": "WARNING"},
    }
    instance = QuizMatchService(config=config,
                                corpus_provider=InMemoryCorpusProvider(sample_corpus),
                                feedback_store=FeedbackStore())
    instance.initialize()
    yield instance
    instance.close()
