# Tests for matcher configuration and config.json loading.

import json

from matcher_config import MatcherConfig, FALLBACK_CONFIG, load_config


def test_defaults():
    config = MatcherConfig()
    assert [s.name for s in config.strategies] == [
        'exact_hash', 'content_similarity', 'semantic_analysis', 'keyword_overlap', 'fuzzy_matching']
    assert config.strategy('exact_hash').threshold == 0.95
    assert config.strategy('fuzzy_matching').timeout_ms == 2500
    assert config.min_confidence == 0.3
    assert config.strategy('missing') is None


def test_from_dict_overrides_by_name():
    config = MatcherConfig.from_dict({
        "strategies": [
            {"name": "content_similarity", "threshold": 0.5,
             "signal_weights": {"answer_overlap": 0.5}},
            {"name": "does_not_exist", "threshold": 0.1},
        ],
        "overlap": {"coverage_delta_one": 0.6},
        "cache": {"max_size": 10},
        "min_confidence": 0.4,
    })
    content = config.strategy('content_similarity')
    assert content.threshold == 0.5
    assert content.timeout_ms == 2000
    assert content.signal_weights['answer_overlap'] == 0.5
    assert content.signal_weights['character'] == 0.4
    assert len(config.strategies) == 5
    assert config.overlap.coverage_delta_one == 0.6
    assert config.overlap.coverage_delta_two == 0.85
    assert config.cache.max_size == 10
    assert config.min_confidence == 0.4


def test_from_dict_does_not_leak_between_instances():
    MatcherConfig.from_dict({"strategies": [{"name": "exact_hash", "threshold": 0.5}]})
    assert MatcherConfig().strategy('exact_hash').threshold == 0.95


def test_to_dict():
    data = MatcherConfig().to_dict()
    assert data['strategies'][0]['name'] == 'exact_hash'
    assert data['cache']['ttl_ms'] == 300000


def test_load_config_missing_file_uses_fallback(tmp_path):
    config = load_config(str(tmp_path / "absent.json"))
    assert config == FALLBACK_CONFIG
    config["system"]["max_batch_size"] = 1
    assert FALLBACK_CONFIG["system"]["max_batch_size"] == 100


def test_load_config_merges_sections(tmp_path, monkeypatch):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"system": {"max_batch_size": 7}, "matcher": {"min_confidence": 0.5}}),
                    encoding="utf-8")
    monkeypatch.setenv("QUIZMATCH_CONFIG", str(path))
    config = load_config()
    assert config["system"]["max_batch_size"] == 7
    assert config["data"]["corpus_file"] == "data/corpus.json"
    assert MatcherConfig.from_dict(config["matcher"]).min_confidence == 0.5
