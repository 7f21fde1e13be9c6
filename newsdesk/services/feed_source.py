"""
Generic RSS/Atom feed adapter.
"""

import logging
from typing import Any, List, Optional

import feedparser

from newsdesk.models.article import Article
from newsdesk.models.source import SourceConfig
from newsdesk.services.source_context import SourceContext, build_article
from newsdesk.utils.date_extraction import best_available_date
from newsdesk.utils.error_monitoring import MalformedPayloadError

logger = logging.getLogger(__name__)


def _entry_image(entry: Any) -> Optional[str]:
    """Image URL from enclosure, media:content or media:thumbnail."""
    for enclosure in getattr(entry, "enclosures", None) or []:
        if str(enclosure.get("type", "")).startswith("image") and enclosure.get("href"):
            return enclosure["href"]
    for media in getattr(entry, "media_content", None) or []:
        if media.get("url") and str(media.get("medium", media.get("type", "image"))).startswith("image"):
            return media["url"]
    for thumb in getattr(entry, "media_thumbnail", None) or []:
        if thumb.get("url"):
            return thumb["url"]
    image = entry.get("image") if hasattr(entry, "get") else None
    if isinstance(image, dict):
        return image.get("href") or image.get("url")
    return None


def _entry_date(entry: Any, link: str):
    for parsed_field in ("published_parsed", "updated_parsed"):
        value = getattr(entry, parsed_field, None)
        if value:
            return best_available_date(value, link)
    raw = getattr(entry, "published", None) or getattr(entry, "updated", None)
    return best_available_date(raw, link)


def parse_feed_entries(
    content: str,
    source: SourceConfig,
    max_items: Optional[int] = None,
    source_name_from_entry=None,
) -> List[Article]:
    """
    Parse RSS/Atom content into Articles, preserving upstream order.

    Raises:
        MalformedPayloadError: If the payload is not a feed at all
    """
    parsed = feedparser.parse(content)
    if parsed.bozo and not parsed.entries:
        raise MalformedPayloadError(
            f"Unparseable feed for {source.id}: {getattr(parsed, 'bozo_exception', 'unknown error')}"
        )
    if parsed.bozo:
        logger.debug(f"Feed for {source.id} parsed with warnings: {getattr(parsed, 'bozo_exception', '')}")

    articles: List[Article] = []
    for entry in parsed.entries:
        title = getattr(entry, "title", "")
        link = getattr(entry, "link", "") or ""
        if not link and str(getattr(entry, "id", "")).startswith("http"):
            link = entry.id
        description = getattr(entry, "summary", None) or getattr(entry, "description", "")

        article = build_article(
            source,
            title=title,
            link=link,
            published=_entry_date(entry, link),
            description=description,
            image=_entry_image(entry),
            source_name=source_name_from_entry(entry) if source_name_from_entry else None,
        )
        if article is None:
            logger.debug(f"Skipping entry without title or link from {source.id}")
            continue
        articles.append(article)
        if max_items and len(articles) >= max_items:
            break

    return articles


class FeedSource:
    """Fetches a configured RSS/Atom feed, optionally filtered by the requested keywords."""

    def __init__(self, config: SourceConfig, context: SourceContext):
        self.config = config
        self.context = context
        self.feed_url: str = config.setting("feed_url", "")
        self.max_items: int = int(config.setting("max_items", 20))
        self.keyword_filter: bool = bool(config.setting("keyword_filter", False))
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
        if not self.feed_url or not self.feed_url.startswith(("http://", "https://")):
            self.logger.warning(f"⚠️ {self.name}: feed_url missing or invalid ({self.feed_url!r})")
            return False
        return True

    async def fetch(self, keywords: List[str]) -> List[Article]:
        return await self.context.guarded_fetch(
            self.config,
            keywords if self.keyword_filter else [],
            lambda: self._fetch_feed(keywords),
            cache_params={"feed_url": self.feed_url, "max_items": self.max_items},
        )

    async def _fetch_feed(self, keywords: List[str]) -> List[Article]:
        content = await self.context.http.get_text(self.feed_url)
        articles = parse_feed_entries(content, self.config)

        if self.keyword_filter and keywords:
            lowered = [k.lower() for k in keywords if k]
            articles = [a for a in articles if any(k in a.text.lower() for k in lowered)]

        articles = articles[:self.max_items]
        self.logger.info(f"✅ {self.name}: {len(articles)} articles from feed")
        return articles
