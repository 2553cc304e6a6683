#!/usr/bin/env python3
"""
Configuration for the quiz matching engine.

Every weight, threshold, timeout and floor lives here. Defaults can be
overridden field by field from config.json (path from QUIZMATCH_CONFIG),
and the .env file is loaded so deployments can set those variables.
"""

import os
import json
import copy
import logging
from dataclasses import dataclass, field, asdict
from typing import Dict, List, Any, Optional

from dotenv import load_dotenv

load_dotenv(verbose=False)

logger = logging.getLogger('QuizMatch-Config')

DEFAULT_CONFIG_PATH = 'config.json'
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

DEFAULT_SENTINEL_PATTERNS = [
    r"i\s*do\s*n\s*o?\s*t\s*know",
    r"^idk$",
    r"^i\s*am\s*not\s*sure$",
    r"^im\s*not\s*sure$",
    r"^not\s*sure$",
    r"^skip(\s*this)?(\s*question)?$",
]


@dataclass
class StrategyConfig:
    name: str
    weight: float
    threshold: float
    timeout_ms: int
    signal_weights: Dict[str, float] = field(default_factory=dict)


def default_strategies() -> List[StrategyConfig]:
    return [
        StrategyConfig('exact_hash', weight=1.0, threshold=0.95, timeout_ms=1000),
        StrategyConfig('content_similarity', weight=0.9, threshold=0.8, timeout_ms=2000,
                       signal_weights={'character': 0.4, 'word_set': 0.4, 'positional': 0.2,
                                       'answer_overlap': 0.25}),
        StrategyConfig('semantic_analysis', weight=0.8, threshold=0.7, timeout_ms=3000,
                       signal_weights={'word_set': 0.3, 'keyword': 0.4, 'semantic_context': 0.2,
                                       'structural': 0.1, 'answer_overlap': 0.25}),
        StrategyConfig('keyword_overlap', weight=0.7, threshold=0.6, timeout_ms=1500,
                       signal_weights={'keyword': 1.0, 'answer_overlap': 0.25}),
        StrategyConfig('fuzzy_matching', weight=0.5, threshold=0.4, timeout_ms=2500,
                       signal_weights={'character': 1.0, 'answer_overlap': 0.25}),
    ]


def default_blend_weights() -> Dict[str, float]:
    return {
        'character': 0.15,
        'word_set': 0.2,
        'positional': 0.1,
        'keyword': 0.2,
        'semantic_context': 0.05,
        'structural': 0.05,
        'answer_overlap': 0.25,
    }


@dataclass
class OverlapConfig:
    minimum_overlap: float = 0.3
    threshold_floor: float = 0.2
    coverage_delta_one: float = 0.75
    coverage_delta_two: float = 0.85
    word_overlap_ratio: float = 0.7
    sentinel_patterns: List[str] = field(default_factory=lambda: list(DEFAULT_SENTINEL_PATTERNS))


@dataclass
class CacheConfig:
    max_size: int = 200
    ttl_ms: int = 300000


@dataclass
class MatcherConfig:
    strategies: List[StrategyConfig] = field(default_factory=default_strategies)
    blend_weights: Dict[str, float] = field(default_factory=default_blend_weights)
    similarity_weights: Dict[str, float] = field(
        default_factory=lambda: {'character': 0.4, 'word_set': 0.4, 'positional': 0.2})
    overlap: OverlapConfig = field(default_factory=OverlapConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    max_strategies: int = 5
    min_confidence: float = 0.3
    enable_fallback: bool = True
    learning_scale: float = 0.4
    learning_cap: float = 0.2
    keyword_top_n: int = 8

    def strategy(self, name: str) -> Optional[StrategyConfig]:
        for settings in self.strategies:
            if settings.name == name:
                return settings
        return None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'MatcherConfig':
        """Build a config from a (possibly partial) dict; absent fields keep their defaults"""
        config = cls()
        if not data:
            return config

        # Strategies are overridden by name so a partial entry only touches its own fields
        for override in data.get('strategies', []):
            settings = config.strategy(override.get('name', ''))
            if settings is None:
                logger.warning(f"Ignoring override for unknown strategy: {override.get('name')}")
                continue
            for key in ('weight', 'threshold', 'timeout_ms'):
                if key in override:
                    setattr(settings, key, override[key])
            if 'signal_weights' in override:
                settings.signal_weights.update(override['signal_weights'])

        if 'blend_weights' in data:
            config.blend_weights.update(data['blend_weights'])
        if 'similarity_weights' in data:
            config.similarity_weights = dict(data['similarity_weights'])

        for key, value in data.get('overlap', {}).items():
            if hasattr(config.overlap, key):
                setattr(config.overlap, key, value)
        for key, value in data.get('cache', {}).items():
            if hasattr(config.cache, key):
                setattr(config.cache, key, value)

        for key in ('max_strategies', 'min_confidence', 'enable_fallback',
                    'learning_scale', 'learning_cap', 'keyword_top_n'):
            if key in data:
                setattr(config, key, data[key])

        return config


FALLBACK_CONFIG = {
    "matcher": {},
    "data": {
        "corpus_file": "data/corpus.json",
        "feedback_file": "cache/feedback.json"
    },
    "system": {
        "max_batch_size": 100
    },
    "logging": {
        "level": "INFO"
    }
}


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from config.json"""
    path = path or os.getenv('QUIZMATCH_CONFIG', DEFAULT_CONFIG_PATH)
    try:
        with open(path, 'r', encoding='utf-8') as f:
            loaded = json.load(f)
    except Exception as e:
        logger.warning(f"Error loading {path}: {e}; using built-in defaults")
        return copy.deepcopy(FALLBACK_CONFIG)

    # Missing sections come from the fallback configuration
    config = copy.deepcopy(FALLBACK_CONFIG)
    for section, values in loaded.items():
        if isinstance(values, dict) and isinstance(config.get(section), dict):
            config[section].update(values)
        else:
            config[section] = values
    return config


def configure_logging(config: Optional[Dict[str, Any]] = None):
    """Configure root logging once, level from QUIZMATCH_LOG_LEVEL or the config's logging.level"""
    level_name = os.getenv('QUIZMATCH_LOG_LEVEL') or (config or {}).get('logging', {}).get('level', 'INFO')
    logging.basicConfig(
        level=getattr(logging, str(level_name).upper(), logging.INFO),
        format=LOG_FORMAT
    )
