"""
Paginated JSON API adapter (NewsAPI `everything` endpoint).
"""

import logging
from typing import Any, Dict, List

from newsdesk.models.article import Article
from newsdesk.models.source import SourceConfig
from newsdesk.services.source_context import SourceContext, build_article
from newsdesk.utils.date_extraction import best_available_date
from newsdesk.utils.error_monitoring import MalformedPayloadError, SourceFetchError

BASE_URL = "https://newsapi.org/v2/everything"
PLACEHOLDER_KEYS = {"", "your_api_key_here", "YOUR_API_KEY"}


class ApiSource:
    """
    Walks result pages of a keyword search API.

    Pages are requested in order until `max_pages` is reached, a page comes
    back short, or the reported total is exhausted.
    """

    def __init__(self, config: SourceConfig, context: SourceContext):
        self.config = config
        self.context = context
        self.base_url: str = config.setting("base_url", BASE_URL)
        self.api_key: str = str(config.setting("api_key", "") or "")
        self.language: str = config.setting("language", "en")
        self.page_size: int = int(config.setting("page_size", 20))
        self.max_pages: int = max(1, int(config.setting("max_pages", 1)))
        self.sort_by: str = config.setting("sort_by", "publishedAt")
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
            self.logger.warning(
                f"⚠️ {self.name}: credential placeholder(s) {', '.join(self.config.unresolved)} not set; disabling"
            )
            return False
        if self.api_key in PLACEHOLDER_KEYS or self.api_key.startswith("${"):
            self.logger.warning(f"⚠️ {self.name}: no API key configured; disabling")
            return False
        if self.page_size < 1:
            self.logger.warning(f"⚠️ {self.name}: page_size must be positive")
            return False
        return True

    async def fetch(self, keywords: List[str]) -> List[Article]:
        return await self.context.guarded_fetch(
            self.config,
            keywords,
            lambda: self._fetch_pages(keywords),
            cache_params={"language": self.language, "page_size": self.page_size, "max_pages": self.max_pages},
        )

    def _params(self, keywords: List[str], page: int) -> Dict[str, Any]:
        return {
            "q": " OR ".join(keywords),
            "language": self.language,
            "sortBy": self.sort_by,
            "pageSize": self.page_size,
            "page": page,
        }

    def _normalize(self, raw: Dict[str, Any]) -> Any:
        if not isinstance(raw, dict):
            return None
        publisher = (raw.get("source") or {}).get("name") if isinstance(raw.get("source"), dict) else None
        link = raw.get("url")
        return build_article(
            self.config,
            title=raw.get("title"),
            link=link,
            published=best_available_date(raw.get("publishedAt"), link),
            description=raw.get("description") or raw.get("content"),
            image=raw.get("urlToImage"),
            source_name=publisher,
        )

    async def _fetch_pages(self, keywords: List[str]) -> List[Article]:
        if not keywords:
            return []

        headers = {"X-Api-Key": self.api_key}
        articles: List[Article] = []
        total_results = None

        for page in range(1, self.max_pages + 1):
            data = await self.context.http.get_json(self.base_url, params=self._params(keywords, page), headers=headers)
            if not isinstance(data, dict):
                raise MalformedPayloadError(f"{self.name}: expected a JSON object")
            if data.get("status") == "error":
                raise SourceFetchError(f"{self.name} API error: {data.get('code')}: {data.get('message')}")

            raw_articles = data.get("articles")
            if not isinstance(raw_articles, list):
                raise MalformedPayloadError(f"{self.name}: response has no article list")

            total_results = data.get("totalResults", total_results)
            for raw in raw_articles:
                article = self._normalize(raw)
                if article is not None:
                    articles.append(article)

            if len(raw_articles) < self.page_size:
                break
            if isinstance(total_results, int) and page * self.page_size >= total_results:
                break

        self.logger.info(f"✅ {self.name}: {len(articles)} articles (total reported: {total_results})")
        return articles
