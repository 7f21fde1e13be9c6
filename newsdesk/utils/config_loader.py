"""
Typed configuration for the newsdesk pipeline.

The YAML file is read once at startup and turned into an AppConfig. `${VAR}`
placeholders are resolved against the environment as a validation step:
placeholders inside a source's settings that cannot be resolved disable that
source, anywhere else they are fatal.
"""

import os
import re
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from newsdesk.models.source import SourceConfig, SourceKind
from newsdesk.utils.error_monitoring import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[2] / "config" / "newsdesk.yaml"

REQUIRED_WEIGHTS = ("thematic", "authority", "timeliness", "innovation")
REQUIRED_SCORING_KEYS = ("weights", "min_relevance_score", "max_articles")
KEYWORD_MODES = ("exact", "variations", "fuzzy", "hybrid")
WEIGHT_TOLERANCE = 0.01

_PLACEHOLDER = re.compile(r'\$\{([A-Za-z_][A-Za-z0-9_]*)\}')


@dataclass
class CacheSettings:
    enabled: bool = True
    check_period: float = 600.0
    cache_processed: bool = False
    ttl: Dict[str, float] = field(default_factory=lambda: {
        "rss": 21600.0,
        "newsapi": 86400.0,
        "processed": 86400.0,
    })


@dataclass
class CircuitBreakerSettings:
    failure_threshold: float = 0.5
    window_size: int = 10
    min_samples: int = 3
    cooldown_seconds: float = 900.0
    half_open_max_trials: int = 1
    max_cooldown_multiplier: int = 4


@dataclass
class RetrySettings:
    retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    timeout: float = 30.0


@dataclass
class ScoringSettings:
    weights: Dict[str, float] = field(default_factory=lambda: {
        "thematic": 0.40,
        "authority": 0.25,
        "timeliness": 0.20,
        "innovation": 0.15,
    })
    min_relevance_score: float = 0.5
    max_articles: int = 10
    # Optional semantic scorer: topic name -> {description, weight}
    semantic_topics: Dict[str, Dict[str, Any]] = field(default_factory=dict)


@dataclass
class SpamSettings:
    patterns: List[str] = field(default_factory=lambda: [
        r"you\s+won'?t\s+believe",
        r"shocking",
        r"this\s+one\s+trick",
        r"what\s+happened\s+next",
        r"number\s+\d+\s+will\s+shock\s+you",
        r"doctors\s+hate\s+(him|her|them)",
        r"\d+\s+reasons\s+why",
        r"the\s+truth\s+about",
        r"what\s+.*\s+doesn'?t\s+want\s+you\s+to\s+know",
        r"mind.?blown",
        r"jaw.?dropping",
    ])
    max_caps_ratio: float = 0.5
    max_exclamations: int = 2
    max_questions: int = 2


@dataclass
class QualitySettings:
    min_word_count: int = 15
    min_title_length: int = 10
    min_alnum_ratio: float = 0.6
    allowed_languages: List[str] = field(default_factory=lambda: ["en", "de"])


@dataclass
class FilterSettings:
    spam: SpamSettings = field(default_factory=SpamSettings)
    quality: QualitySettings = field(default_factory=QualitySettings)
    duplicate_threshold: float = 0.85
    max_age_hours: float = 48.0


@dataclass
class KeywordSettings:
    tier1: List[str] = field(default_factory=list)
    tier2: List[str] = field(default_factory=list)
    tier3: List[str] = field(default_factory=list)
    variations: Dict[str, List[str]] = field(default_factory=dict)
    synonyms: Dict[str, Dict[str, List[str]]] = field(default_factory=lambda: {"en-de": {}})
    mode: str = "hybrid"
    fuzzy_threshold: float = 0.8
    auto_plural: bool = True
    auto_hyphen: bool = True

    def all_keywords(self) -> List[str]:
        return [*self.tier1, *self.tier2, *self.tier3]


@dataclass
class DiversitySettings:
    target: int = 10
    max_per_source: int = 3
    min_sources: int = 2


@dataclass
class AuthoritySettings:
    default: float = 0.4
    domains: Dict[str, float] = field(default_factory=dict)


@dataclass
class AppConfig:
    """Complete pipeline configuration"""
    cache: CacheSettings = field(default_factory=CacheSettings)
    circuit_breaker: CircuitBreakerSettings = field(default_factory=CircuitBreakerSettings)
    retry: RetrySettings = field(default_factory=RetrySettings)
    scoring: ScoringSettings = field(default_factory=ScoringSettings)
    filters: FilterSettings = field(default_factory=FilterSettings)
    keywords: KeywordSettings = field(default_factory=KeywordSettings)
    diversity: DiversitySettings = field(default_factory=DiversitySettings)
    authority: AuthoritySettings = field(default_factory=AuthoritySettings)
    aggregation_similarity: float = 0.8
    sources: List[SourceConfig] = field(default_factory=list)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any], env: Optional[Dict[str, str]] = None) -> "AppConfig":
        """Build and validate configuration from an already-parsed mapping."""
        env = dict(os.environ) if env is None else env
        raw = raw or {}

        engine_section = {k: v for k, v in raw.items() if k != "sources"}
        resolved_engine, missing = _resolve_placeholders(engine_section, env)
        if missing:
            raise ConfigurationError(
                f"Unresolved environment placeholders in configuration: {', '.join(sorted(set(missing)))}"
            )

        config = cls(
            cache=_build_cache(resolved_engine.get("cache", {})),
            circuit_breaker=_build(CircuitBreakerSettings, resolved_engine.get("circuit_breaker", {})),
            retry=_build(RetrySettings, resolved_engine.get("retry", {})),
            scoring=_build_scoring(resolved_engine.get("scoring", {})),
            filters=_build_filters(resolved_engine.get("filters", {})),
            keywords=_build_keywords(resolved_engine.get("keywords", {})),
            diversity=_build(DiversitySettings, resolved_engine.get("diversity", {})),
            authority=_build_authority(resolved_engine.get("authority", {})),
            aggregation_similarity=float(
                resolved_engine.get("aggregation", {}).get("similarity_threshold", 0.8)
            ),
            sources=[_build_source(entry, env) for entry in raw.get("sources", []) or []],
        )
        _apply_env_overrides(config, env)
        validate_config(config)
        return config


def load_config(path: Optional[str] = None, env: Optional[Dict[str, str]] = None) -> AppConfig:
    """
    Load configuration from a YAML file.

    Raises:
        ConfigurationError: If the file is missing, unparseable or invalid
    """
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except FileNotFoundError as e:
        raise ConfigurationError(f"Configuration file not found: {config_path}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigurationError(f"Configuration root must be a mapping: {config_path}")

    config = AppConfig.from_dict(raw, env=env)
    logger.info(
        f"✅ Loaded configuration from {config_path}: {len(config.sources)} sources, "
        f"{len(config.keywords.all_keywords())} keywords"
    )
    return config


def validate_config(config: AppConfig) -> None:
    """Engine configuration errors are fatal; never default silently mid-run."""
    weights = config.scoring.weights
    missing = [name for name in REQUIRED_WEIGHTS if name not in weights]
    if missing:
        raise ConfigurationError(f"Missing scoring weights: {', '.join(missing)}")

    total = sum(float(w) for w in weights.values())
    if abs(total - 1.0) > WEIGHT_TOLERANCE:
        raise ConfigurationError(f"Scoring weights must sum to 1.0 (got {total:.3f})")
    if any(float(w) < 0 for w in weights.values()):
        raise ConfigurationError("Scoring weights must be non-negative")
    if "semantic" in weights and not config.scoring.semantic_topics:
        raise ConfigurationError("Semantic weight configured without semantic_topics")

    if not 0.0 <= config.scoring.min_relevance_score <= 1.0:
        raise ConfigurationError("scoring.min_relevance_score must be within [0, 1]")
    if config.scoring.max_articles < 1:
        raise ConfigurationError("scoring.max_articles must be at least 1")

    if not 0.0 < config.filters.duplicate_threshold <= 1.0:
        raise ConfigurationError("filters.duplicate_threshold must be within (0, 1]")
    if config.filters.max_age_hours <= 0:
        raise ConfigurationError("filters.max_age_hours must be positive")

    breaker = config.circuit_breaker
    if not 0.0 < breaker.failure_threshold <= 1.0:
        raise ConfigurationError("circuit_breaker.failure_threshold must be within (0, 1]")
    if breaker.window_size < 1 or breaker.min_samples < 1:
        raise ConfigurationError("circuit_breaker window_size and min_samples must be positive")

    if config.retry.retries < 0 or config.retry.base_delay < 0:
        raise ConfigurationError("retry settings must be non-negative")

    diversity = config.diversity
    if diversity.target < 1 or diversity.max_per_source < 1:
        raise ConfigurationError("diversity.target and diversity.max_per_source must be at least 1")

    if not config.keywords.all_keywords():
        raise ConfigurationError("At least one keyword tier must be configured")
    if config.keywords.mode not in KEYWORD_MODES:
        raise ConfigurationError(f"keywords.matching.mode must be one of {KEYWORD_MODES}, got {config.keywords.mode!r}")
    if not 0.0 < config.keywords.fuzzy_threshold <= 1.0:
        raise ConfigurationError("keywords.matching.fuzzy_threshold must be within (0, 1]")

    seen = set()
    for source in config.sources:
        if source.id in seen:
            raise ConfigurationError(f"Duplicate source id: {source.id}")
        seen.add(source.id)


def _resolve_placeholders(value: Any, env: Dict[str, str]) -> Tuple[Any, List[str]]:
    """Return a copy with ${VAR} replaced plus the names that were not found."""
    missing: List[str] = []

    def resolve(node: Any) -> Any:
        if isinstance(node, str):
            def substitute(match):
                name = match.group(1)
                if name in env and env[name] != "":
                    return env[name]
                missing.append(name)
                return match.group(0)
            return _PLACEHOLDER.sub(substitute, node)
        if isinstance(node, dict):
            return {k: resolve(v) for k, v in node.items()}
        if isinstance(node, list):
            return [resolve(v) for v in node]
        return node

    return resolve(value), missing


def _build(cls, data: Dict[str, Any]):
    known = {k: v for k, v in (data or {}).items() if k in cls.__dataclass_fields__}
    unknown = set(data or {}) - set(known)
    if unknown:
        logger.warning(f"⚠️ Ignoring unknown {cls.__name__} keys: {', '.join(sorted(unknown))}")
    return cls(**known)


def _build_cache(data: Dict[str, Any]) -> CacheSettings:
    data = dict(data or {})
    ttl = {**CacheSettings().ttl, **{k: float(v) for k, v in (data.pop("ttl", {}) or {}).items()}}
    settings = _build(CacheSettings, data)
    settings.ttl = ttl
    return settings


def _build_scoring(data: Dict[str, Any]) -> ScoringSettings:
    data = dict(data or {})
    # Weights and thresholds have no defaults
    missing = [f"scoring.{key}" for key in REQUIRED_SCORING_KEYS if data.get(key) is None]
    if missing:
        raise ConfigurationError(f"Missing required settings: {', '.join(missing)}")
    if not isinstance(data["weights"], dict):
        raise ConfigurationError("scoring.weights must be a mapping")
    data["weights"] = {k: float(v) for k, v in data["weights"].items()}
    return _build(ScoringSettings, data)


def _build_filters(data: Dict[str, Any]) -> FilterSettings:
    data = dict(data or {})
    spam = _build(SpamSettings, data.pop("spam", {}) or {})
    quality = _build(QualitySettings, data.pop("quality", {}) or {})
    settings = _build(FilterSettings, data)
    settings.spam = spam
    settings.quality = quality
    return settings


def _build_keywords(data: Dict[str, Any]) -> KeywordSettings:
    data = dict(data or {})
    matching = data.pop("matching", {}) or {}
    settings = _build(KeywordSettings, {**data, **matching})
    if "en-de" not in settings.synonyms:
        settings.synonyms["en-de"] = {}
    return settings


def _build_authority(data: Dict[str, Any]) -> AuthoritySettings:
    data = dict(data or {})
    domains = {str(k).lower(): float(v) for k, v in (data.get("domains") or {}).items()}
    return AuthoritySettings(default=float(data.get("default", 0.4)), domains=domains)


def _build_source(entry: Dict[str, Any], env: Dict[str, str]) -> SourceConfig:
    for required in ("id", "name", "kind"):
        if not entry.get(required):
            raise ConfigurationError(f"Source entry missing '{required}': {entry}")
    try:
        kind = SourceKind(entry["kind"])
    except ValueError as e:
        allowed = ", ".join(k.value for k in SourceKind)
        raise ConfigurationError(f"Unknown source kind '{entry['kind']}' (expected one of: {allowed})") from e

    settings, missing = _resolve_placeholders(entry.get("settings", {}) or {}, env)
    if missing:
        logger.warning(
            f"⚠️ Source {entry['id']}: unresolved placeholders {', '.join(sorted(set(missing)))}; source will be disabled"
        )

    return SourceConfig(
        id=str(entry["id"]),
        name=str(entry["name"]),
        kind=kind,
        enabled=bool(entry.get("enabled", True)),
        priority=int(entry.get("priority", 1)),
        authority=float(entry.get("authority", 0.4)),
        settings=settings,
        unresolved=sorted(set(missing)),
    )


def _env_float(env: Dict[str, str], name: str) -> Optional[float]:
    value = env.get(name)
    if value in (None, ""):
        return None
    try:
        return float(value)
    except ValueError as e:
        raise ConfigurationError(f"Environment variable {name} must be numeric (got {value!r})") from e


def _apply_env_overrides(config: AppConfig, env: Dict[str, str]) -> None:
    for cache_class, var in (("rss", "CACHE_TTL_RSS"), ("newsapi", "CACHE_TTL_NEWSAPI"), ("processed", "CACHE_TTL_PROCESSED")):
        ttl = _env_float(env, var)
        if ttl is not None:
            config.cache.ttl[cache_class] = ttl

    if env.get("CACHE_ENABLED"):
        config.cache.enabled = env["CACHE_ENABLED"].lower() not in ("0", "false", "no")

    max_items = _env_float(env, "MAX_NEWS_ITEMS")
    if max_items is not None:
        config.scoring.max_articles = int(max_items)

    if env.get("KEYWORD_MATCHING_MODE"):
        config.keywords.mode = env["KEYWORD_MATCHING_MODE"]
    fuzzy = _env_float(env, "KEYWORD_FUZZY_THRESHOLD")
    if fuzzy is not None:
        config.keywords.fuzzy_threshold = fuzzy
