#!/usr/bin/env python3
"""
Feedback provider: per (observed question shape, corpus entry) counts of
confirmed-correct and confirmed-incorrect matches, optionally persisted to
a JSON file.
"""

import os
import json
import logging
import threading
from typing import Dict, Optional, Tuple

from quiz_models import FeedbackRecord

logger = logging.getLogger('QuizMatch-Feedback')


class FeedbackStore:
    def __init__(self, path: Optional[str] = None):
        self.path = path
        self._records: Dict[Tuple[str, str], FeedbackRecord] = {}
        self._lock = threading.Lock()
        if path:
            self._load()

    def _load(self):
        if not os.path.exists(self.path):
            return
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                raw = json.load(f)
            for item in raw:
                key = (item['shape_key'], item['entry_key'])
                self._records[key] = FeedbackRecord(int(item.get('correct', 0)),
                                                    int(item.get('incorrect', 0)))
            logger.info(f"Loaded {len(self._records)} feedback records from {self.path}")
        except Exception as e:
            logger.error(f"Error loading feedback records: {e}")

    def save(self):
        if not self.path:
            return
        with self._lock:
            raw = [{'shape_key': shape_key, 'entry_key': entry_key,
                    'correct': record.correct_count, 'incorrect': record.incorrect_count}
                   for (shape_key, entry_key), record in self._records.items()]
        try:
            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(self.path, 'w', encoding='utf-8') as f:
                json.dump(raw, f, ensure_ascii=False, indent=2)
        except Exception as e:
            logger.error(f"Error saving feedback records: {e}")

    def lookup(self, shape_key: str, entry_key: str) -> Optional[FeedbackRecord]:
        with self._lock:
            record = self._records.get((shape_key, entry_key))
            if record is None:
                return None
            return FeedbackRecord(record.correct_count, record.incorrect_count)

    def record(self, shape_key: str, entry_key: str, was_correct: bool) -> FeedbackRecord:
        """Increment exactly one counter for the pair"""
        with self._lock:
            record = self._records.setdefault((shape_key, entry_key), FeedbackRecord())
            if was_correct:
                record.correct_count += 1
            else:
                record.incorrect_count += 1
            snapshot = FeedbackRecord(record.correct_count, record.incorrect_count)
        logger.info(f"Recorded {'correct' if was_correct else 'incorrect'} feedback for "
                    f"{entry_key[:12]} ({snapshot.correct_count}/{snapshot.total})")
        return snapshot

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
