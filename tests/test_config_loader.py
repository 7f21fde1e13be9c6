from pathlib import Path

import pytest
import yaml

from conftest import base_config_dict
from newsdesk.models.source import SourceKind
from newsdesk.utils.config_loader import AppConfig, load_config
from newsdesk.utils.error_monitoring import ConfigurationError

SHIPPED_CONFIG = Path(__file__).resolve().parents[1] / "config" / "newsdesk.yaml"


def test_defaults_are_valid(config):
    assert config.scoring.weights["thematic"] == 0.4
    assert config.filters.max_age_hours == 48
    assert config.filters.duplicate_threshold == 0.85
    assert config.cache.ttl == {"rss": 21600.0, "newsapi": 86400.0, "processed": 86400.0}
    assert config.diversity.max_per_source == 3


def test_weights_must_sum_to_one():
    raw = base_config_dict()
    raw["scoring"]["weights"]["thematic"] = 0.9

    with pytest.raises(ConfigurationError, match="sum to 1.0"):
        AppConfig.from_dict(raw, env={})


def test_missing_weight_is_fatal():
    raw = base_config_dict()
    del raw["scoring"]["weights"]["innovation"]
    raw["scoring"]["weights"]["thematic"] = 0.55

    with pytest.raises(ConfigurationError, match="innovation"):
        AppConfig.from_dict(raw, env={})


def test_missing_scoring_section_is_fatal():
    raw = base_config_dict()
    del raw["scoring"]

    with pytest.raises(ConfigurationError, match="scoring.weights"):
        AppConfig.from_dict(raw, env={})


@pytest.mark.parametrize("key", ["weights", "min_relevance_score", "max_articles"])
def test_missing_scoring_key_is_fatal(key):
    raw = base_config_dict()
    del raw["scoring"][key]

    with pytest.raises(ConfigurationError, match=f"scoring.{key}"):
        AppConfig.from_dict(raw, env={})


def test_semantic_weight_requires_topics():
    raw = base_config_dict()
    raw["scoring"]["weights"] = {
        "thematic": 0.3, "authority": 0.25, "timeliness": 0.2, "innovation": 0.15, "semantic": 0.1,
    }

    with pytest.raises(ConfigurationError, match="semantic_topics"):
        AppConfig.from_dict(raw, env={})


def test_unknown_matching_mode_is_fatal():
    raw = base_config_dict()
    raw["keywords"]["matching"] = {"mode": "psychic"}

    with pytest.raises(ConfigurationError, match="mode"):
        AppConfig.from_dict(raw, env={})


def test_unresolved_placeholder_in_engine_section_is_fatal():
    raw = base_config_dict()
    raw["scoring"]["max_articles"] = "${MAX_ARTICLES}"

    with pytest.raises(ConfigurationError, match="MAX_ARTICLES"):
        AppConfig.from_dict(raw, env={})


def test_unresolved_placeholder_in_source_is_recorded():
    raw = base_config_dict(sources=[{
        "id": "newsapi",
        "name": "NewsAPI",
        "kind": "paginated-api",
        "settings": {"api_key": "${NEWSAPI_KEY}"},
    }])

    missing = AppConfig.from_dict(raw, env={}).sources[0]
    resolved = AppConfig.from_dict(raw, env={"NEWSAPI_KEY": "secret"}).sources[0]

    assert missing.unresolved == ["NEWSAPI_KEY"]
    assert resolved.unresolved == []
    assert resolved.settings["api_key"] == "secret"
    assert resolved.kind == SourceKind.PAGINATED_API
    assert resolved.cache_class == "newsapi"


def test_unknown_source_kind_and_duplicate_ids_are_fatal():
    bad_kind = base_config_dict(sources=[{"id": "x", "name": "X", "kind": "carrier-pigeon"}])
    with pytest.raises(ConfigurationError, match="carrier-pigeon"):
        AppConfig.from_dict(bad_kind, env={})

    duplicate = base_config_dict(sources=[
        {"id": "x", "name": "X", "kind": "generic-feed", "settings": {"feed_url": "https://a.example/rss"}},
        {"id": "x", "name": "X2", "kind": "generic-feed", "settings": {"feed_url": "https://b.example/rss"}},
    ])
    with pytest.raises(ConfigurationError, match="Duplicate source id"):
        AppConfig.from_dict(duplicate, env={})


def test_environment_overrides():
    env = {
        "MAX_NEWS_ITEMS": "5",
        "CACHE_TTL_RSS": "60",
        "CACHE_ENABLED": "false",
        "KEYWORD_MATCHING_MODE": "exact",
        "KEYWORD_FUZZY_THRESHOLD": "0.9",
    }
    config = AppConfig.from_dict(base_config_dict(), env=env)

    assert config.scoring.max_articles == 5
    assert config.cache.ttl["rss"] == 60.0
    assert config.cache.enabled is False
    assert config.keywords.mode == "exact"
    assert config.keywords.fuzzy_threshold == 0.9


def test_non_numeric_override_is_fatal():
    with pytest.raises(ConfigurationError, match="MAX_NEWS_ITEMS"):
        AppConfig.from_dict(base_config_dict(), env={"MAX_NEWS_ITEMS": "lots"})


def test_load_config_from_yaml(tmp_path):
    path = tmp_path / "newsdesk.yaml"
    path.write_text(yaml.safe_dump(base_config_dict(diversity={"target": 6, "max_per_source": 2})))

    config = load_config(str(path), env={})

    assert config.diversity.target == 6
    assert config.keywords.tier1[0] == "robotics"


def test_load_config_errors(tmp_path):
    with pytest.raises(ConfigurationError, match="not found"):
        load_config(str(tmp_path / "missing.yaml"), env={})

    broken = tmp_path / "broken.yaml"
    broken.write_text("scoring: [unclosed")
    with pytest.raises(ConfigurationError, match="Invalid YAML"):
        load_config(str(broken), env={})


def test_shipped_config_loads_and_disables_keyless_api():
    config = load_config(str(SHIPPED_CONFIG), env={})

    by_id = {s.id: s for s in config.sources}
    assert by_id["newsapi"].unresolved == ["NEWSAPI_KEY"]
    assert {s.kind for s in config.sources} == set(SourceKind)
    assert abs(sum(config.scoring.weights.values()) - 1.0) < 0.01
