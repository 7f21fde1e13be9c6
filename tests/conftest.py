from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Union

import pytest

from newsdesk.models.article import Article, Relevance
from newsdesk.models.source import SourceConfig, SourceKind
from newsdesk.services.cache_service import CacheService
from newsdesk.services.circuit_breaker import CircuitBreaker
from newsdesk.services.source_context import SourceContext
from newsdesk.utils.config_loader import AppConfig
from newsdesk.utils.error_monitoring import ErrorMonitor

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def make_article(
    title: str = "Retailer pilots autonomous delivery robots downtown",
    link: Optional[str] = None,
    source: str = "Example News",
    description: str = "",
    published: Optional[datetime] = None,
    hours_ago: Optional[float] = None,
    source_id: str = "example",
    score: Optional[float] = None,
) -> Article:
    if published is None and hours_ago is not None:
        published = NOW - timedelta(hours=hours_ago)
    article = Article(
        title=title,
        link=link or f"https://example.com/{abs(hash(title))}",
        source=source,
        published_date=published,
        description=description,
        source_id=source_id,
    )
    if score is not None:
        article = article.with_relevance(Relevance(score=score))
    return article


def base_config_dict(**overrides: Any) -> Dict[str, Any]:
    raw: Dict[str, Any] = {
        "scoring": {
            "weights": {"thematic": 0.4, "authority": 0.25, "timeliness": 0.2, "innovation": 0.15},
            "min_relevance_score": 0.0,
            "max_articles": 10,
        },
        "keywords": {
            "tier1": ["robotics", "warehouse", "drone", "checkout", "grocery"],
            "tier2": ["blockchain", "payments", "fashion", "pharmacy", "furniture"],
            "tier3": ["weather", "sports", "music", "cinema", "travel"],
        },
        "authority": {"default": 0.4, "domains": {"reuters.com": 0.95, "techcrunch.com": 0.85}},
        "sources": [],
    }
    raw.update(overrides)
    return raw


@pytest.fixture
def config() -> AppConfig:
    return AppConfig.from_dict(base_config_dict(), env={})


class StubHttpClient:
    """Stands in for HttpClient; responses are keyed by URL prefix or produced by a callable."""

    def __init__(self, responses: Union[Dict[str, Any], Callable[..., Any], None] = None):
        self.responses = responses or {}
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    def _respond(self, url: str, params: Optional[Dict[str, Any]]) -> Any:
        self.calls.append({"url": url, "params": dict(params or {})})
        if callable(self.responses):
            result = self.responses(url, params or {})
        else:
            result = next((v for k, v in self.responses.items() if url.startswith(k)), None)
            if result is None:
                raise AssertionError(f"Unexpected URL {url}")
        if isinstance(result, Exception):
            raise result
        return result

    async def get_text(self, url, params=None, headers=None, policy=None):
        return self._respond(url, params)

    async def get_json(self, url, params=None, headers=None, policy=None):
        return self._respond(url, params)

    async def close(self):
        self.closed = True


@pytest.fixture
def stub_http() -> StubHttpClient:
    return StubHttpClient()


def make_context(http: Any = None, **breaker_kwargs: Any) -> SourceContext:
    return SourceContext(
        cache=CacheService(),
        breaker=CircuitBreaker(**breaker_kwargs),
        http=http or StubHttpClient(),
        errors=ErrorMonitor(),
    )


def source_config(
    id: str = "feed",
    kind: SourceKind = SourceKind.GENERIC_FEED,
    settings: Optional[Dict[str, Any]] = None,
    **kwargs: Any,
) -> SourceConfig:
    return SourceConfig(id=id, name=kwargs.pop("name", id.title()), kind=kind, settings=settings or {}, **kwargs)


RSS_SAMPLE = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Sample Feed</title>
    <link>https://example.com</link>
    <description>Sample</description>
    <item>
      <title>Robots deliver groceries across Berlin - Reuters</title>
      <link>https://example.com/robots-berlin</link>
      <pubDate>Wed, 02 Oct 2024 13:00:00 GMT</pubDate>
      <description><![CDATA[<p>Delivery robots &amp; drones now serve <b>three</b> districts.</p>]]></description>
      <enclosure url="https://example.com/robot.jpg" type="image/jpeg" length="1000"/>
    </item>
    <item>
      <title>Warehouse automation spending climbs - TechCrunch</title>
      <link>https://example.com/warehouse-spending</link>
      <description>Operators are buying more sorting systems.</description>
    </item>
    <item>
      <title></title>
      <link>https://example.com/untitled</link>
      <description>No title here</description>
    </item>
  </channel>
</rss>
"""
