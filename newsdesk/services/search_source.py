"""
Query-search adapter backed by the Google News RSS search endpoint.

Keywords are folded into a handful of OR-queries by QueryBuilder; optional
topic feeds are fetched alongside. All requests for one fetch run
concurrently and the source only fails when every request failed.
"""

import asyncio
import logging
import re
from dataclasses import replace
from typing import Any, List, Optional
from urllib.parse import urlencode

from newsdesk.models.article import Article
from newsdesk.models.source import SourceConfig
from newsdesk.services.feed_source import parse_feed_entries
from newsdesk.services.query_builder import QueryBuilder
from newsdesk.services.source_context import SourceContext

BASE_URL = "https://news.google.com/rss"
_PUBLISHER_SUFFIX = re.compile(r"\s+-\s+([^-]+)$")


def split_publisher(title: str):
    """Split 'Headline - Publisher' into (headline, publisher)."""
    match = _PUBLISHER_SUFFIX.search(title or "")
    if not match:
        return title, None
    return title[:match.start()].strip(), match.group(1).strip()


class SearchSource:
    """Search-query source producing articles for the requested keywords."""

    def __init__(self, config: SourceConfig, context: SourceContext):
        self.config = config
        self.context = context
        self.base_url: str = config.setting("base_url", BASE_URL).rstrip("/")
        self.language: str = config.setting("language", "en-US")
        self.country: str = config.setting("country", "US")
        self.max_items: int = int(config.setting("max_items", 30))
        self.topics: List[str] = list(config.setting("topics", []) or [])
        self.max_articles_per_topic: int = int(config.setting("max_articles_per_topic", 15))
        self.query_builder = QueryBuilder(
            max_queries=int(config.setting("max_queries", 5)),
            similarity_threshold=float(config.setting("similarity_threshold", 0.4)),
            exclude_terms=config.setting("exclude_terms"),
            date_range_days=config.setting("date_range_days", 7),
        )
        self.logger = logging.getLogger(__name__)

    @property
    def id(self) -> str:
        return self.config.id

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    @property
    def priority(self) -> int:
        return self.config.priority

    def validate(self) -> bool:
        if self.config.unresolved:
            self.logger.warning(f"⚠️ {self.name}: unresolved settings {', '.join(self.config.unresolved)}")
            return False
        if not self.base_url.startswith(("http://", "https://")):
            self.logger.warning(f"⚠️ {self.name}: invalid base_url {self.base_url!r}")
            return False
        return True

    def _locale_params(self) -> dict:
        return {
            "hl": self.language,
            "gl": self.country,
            "ceid": f"{self.country}:{self.language[:2]}",
        }

    def search_url(self, query: str) -> str:
        return f"{self.base_url}/search?{urlencode({'q': query, **self._locale_params()})}"

    def topic_url(self, topic: str) -> str:
        return f"{self.base_url}/headlines/section/topic/{topic.upper()}?{urlencode(self._locale_params())}"

    async def fetch(self, keywords: List[str]) -> List[Article]:
        return await self.context.guarded_fetch(
            self.config,
            keywords,
            lambda: self._search(keywords),
            cache_params={"language": self.language, "country": self.country, "topics": self.topics},
        )

    @staticmethod
    def _publisher(entry: Any) -> Optional[str]:
        source = entry.get("source") if hasattr(entry, "get") else None
        if isinstance(source, dict) and source.get("title"):
            return source["title"]
        return split_publisher(getattr(entry, "title", ""))[1]

    async def _fetch_url(self, url: str, limit: Optional[int] = None) -> List[Article]:
        content = await self.context.http.get_text(url)
        articles = parse_feed_entries(
            content,
            self.config,
            max_items=limit,
            source_name_from_entry=self._publisher,
        )
        cleaned = []
        for article in articles:
            headline, _ = split_publisher(article.title)
            cleaned.append(article if headline == article.title or not headline else replace(article, title=headline))
        return cleaned

    async def _search(self, keywords: List[str]) -> List[Article]:
        queries = self.query_builder.build_queries(keywords)
        requests = [self._fetch_url(self.search_url(q)) for q in queries]
        requests += [self._fetch_url(self.topic_url(t), self.max_articles_per_topic) for t in self.topics]
        if not requests:
            self.logger.info(f"{self.name}: no keywords or topics to search")
            return []

        results = await asyncio.gather(*requests, return_exceptions=True)
        failures = [r for r in results if isinstance(r, BaseException)]
        if failures and len(failures) == len(results):
            raise failures[0]
        for failure in failures:
            self.logger.warning(f"⚠️ {self.name}: one search request failed: {failure}")

        seen_links = set()
        articles: List[Article] = []
        for result in results:
            if isinstance(result, BaseException):
                continue
            for article in result:
                if article.link in seen_links:
                    continue
                seen_links.add(article.link)
                articles.append(article)

        articles = articles[:self.max_items]
        self.logger.info(
            f"✅ {self.name}: {len(articles)} articles from {len(queries)} queries and {len(self.topics)} topics"
        )
        return articles
