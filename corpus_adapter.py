#!/usr/bin/env python3
"""
Corpus ingestion: turns loosely structured capture records into canonical
CorpusEntry values, and provides corpus snapshots to the matcher.

Capture records come from several page layouts, so field names vary:
question / questionText / text, options / answers / answerOptions, correct
answers as indices, as texts, or as flags on option objects. Records that
carry no usable correct-answer data are logged and skipped.
"""

import os
import json
import hashlib
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from quiz_models import CorpusEntry, InvalidCorpusEntry

logger = logging.getLogger('QuizMatch-Corpus')

QUESTION_FIELDS = ('question_text', 'questionText', 'question', 'text', 'title')
OPTION_FIELDS = ('answer_options', 'answerOptions', 'allAnswers', 'options', 'answers', 'choices')
INDEX_FIELDS = ('correct_answer_indices', 'correctAnswerIndices', 'correctIndices')
TEXT_FIELDS = ('correct_answer_texts', 'correctAnswerTexts', 'correctAnswerText', 'selectedAnswer')
OPTION_TEXT_FIELDS = ('text', 'answerText', 'label', 'value')


def _first(record: Dict[str, Any], fields: Tuple[str, ...]):
    for name in fields:
        value = record.get(name)
        if value not in (None, '', []):
            return value
    return None


def _option_text(option) -> str:
    if isinstance(option, dict):
        value = _first(option, OPTION_TEXT_FIELDS)
        return str(value) if value is not None else ''
    return str(option) if option is not None else ''


def _parse_timestamp(value) -> Optional[datetime]:
    if value in (None, ''):
        return None
    if isinstance(value, (int, float)):
        # Capture timestamps are epoch milliseconds
        seconds = value / 1000.0 if value > 1e11 else value
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    try:
        return datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        logger.debug(f"Unparseable timestamp: {value}")
        return None


def _entry_id(record: Dict[str, Any], question: str, options: List[str]) -> str:
    explicit = record.get('id') or record.get('entry_id')
    if explicit:
        return str(explicit)
    digest = hashlib.md5()
    digest.update(question.encode('utf-8'))
    for option in options:
        digest.update(b'\x1f')
        digest.update(option.encode('utf-8'))
    return digest.hexdigest()


def adapt_record(record: Dict[str, Any]) -> CorpusEntry:
    """Canonical CorpusEntry from one capture record; raises InvalidCorpusEntry"""
    if not isinstance(record, dict):
        raise InvalidCorpusEntry(f"Record must be an object, got {type(record).__name__}")

    question = _first(record, QUESTION_FIELDS)
    if not isinstance(question, str) or not question.strip():
        raise InvalidCorpusEntry("Record has no question text")

    raw_options = _first(record, OPTION_FIELDS) or []
    if not isinstance(raw_options, list):
        raise InvalidCorpusEntry("Answer options must be a list")
    options = [_option_text(option) for option in raw_options]

    indices = set()
    texts: List[str] = []

    raw_indices = _first(record, INDEX_FIELDS)
    if isinstance(raw_indices, int) and not isinstance(raw_indices, bool):
        raw_indices = [raw_indices]
    for value in raw_indices or []:
        if isinstance(value, int) and not isinstance(value, bool):
            indices.add(value)

    raw_texts = _first(record, TEXT_FIELDS)
    if isinstance(raw_texts, str):
        raw_texts = [raw_texts]
    texts.extend(str(t) for t in raw_texts or [] if t)

    # "correctAnswers" may hold either indices or texts
    for value in record.get('correctAnswers') or []:
        if isinstance(value, int) and not isinstance(value, bool):
            indices.add(value)
        elif isinstance(value, str) and value:
            texts.append(value)

    # Option objects flagged as correct
    for i, option in enumerate(raw_options):
        if isinstance(option, dict) and (option.get('isCorrect') or option.get('correct')):
            indices.add(i)

    return CorpusEntry(
        question_text=question,
        answer_options=tuple(options),
        correct_answer_indices=frozenset(indices),
        correct_answer_texts=tuple(dict.fromkeys(texts)),
        course_name=record.get('course_name') or record.get('courseName'),
        test_name=record.get('test_name') or record.get('testName'),
        captured_at=_parse_timestamp(_first(record, ('captured_at', 'capturedAt', 'timestamp'))),
        entry_id=_entry_id(record, question, options),
    )


def adapt_records(records: Iterable[Dict[str, Any]]) -> List[CorpusEntry]:
    entries = []
    skipped = 0
    for i, record in enumerate(records):
        try:
            entries.append(adapt_record(record))
        except InvalidCorpusEntry as e:
            skipped += 1
            logger.warning(f"Skipping record {i}: {e}")
    if skipped:
        logger.info(f"Adapted {len(entries)} records, skipped {skipped}")
    return entries


def _flatten(data) -> List[Dict[str, Any]]:
    """Accept a list of records, {"questions": [...]}, or {test name: {"questions": [...]}}"""
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        if isinstance(data.get('questions'), list):
            return data['questions']
        records = []
        for test_name, section in data.items():
            if isinstance(section, dict) and isinstance(section.get('questions'), list):
                for record in section['questions']:
                    if isinstance(record, dict):
                        record = dict(record)
                        record.setdefault('testName', section.get('testName', test_name))
                        record.setdefault('courseName', section.get('courseName'))
                    records.append(record)
        return records
    return []


def load_corpus_file(path: str) -> List[CorpusEntry]:
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    entries = adapt_records(_flatten(data))
    logger.info(f"Loaded {len(entries)} corpus entries from {path}")
    return entries


class InMemoryCorpusProvider:
    def __init__(self, entries: Iterable[CorpusEntry] = ()):
        self._lock = threading.Lock()
        self._entries: Tuple[CorpusEntry, ...] = tuple(entries)

    def snapshot(self) -> Tuple[CorpusEntry, ...]:
        with self._lock:
            return self._entries

    def add(self, entry: CorpusEntry):
        with self._lock:
            self._entries = self._entries + (entry,)

    def replace(self, entries: Iterable[CorpusEntry]):
        with self._lock:
            self._entries = tuple(entries)


class JsonCorpusProvider:
    """Corpus backed by a JSON file, reloaded when the file's MD5 changes"""

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()
        self._entries: Tuple[CorpusEntry, ...] = ()
        self._file_hash: Optional[str] = None
        self.reload_count = 0

    def _calculate_file_hash(self) -> Optional[str]:
        try:
            with open(self.path, 'rb') as f:
                return hashlib.md5(f.read()).hexdigest()
        except Exception as e:
            logger.error(f"Error calculating hash for {self.path}: {e}")
            return None

    def snapshot(self) -> Tuple[CorpusEntry, ...]:
        with self._lock:
            if not os.path.exists(self.path):
                logger.warning(f"Corpus file '{self.path}' does not exist.")
                return self._entries

            current_hash = self._calculate_file_hash()
            if current_hash is not None and current_hash != self._file_hash:
                try:
                    self._entries = tuple(load_corpus_file(self.path))
                    self._file_hash = current_hash
                    self.reload_count += 1
                except Exception as e:
                    # Keep serving the previous snapshot
                    logger.error(f"Error loading corpus from {self.path}: {e}")
            return self._entries
