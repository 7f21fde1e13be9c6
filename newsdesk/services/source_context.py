"""
Shared context handed to every source adapter, plus the fetch boundary.

The context bundles the process-wide collaborators (cache, circuit breaker,
HTTP client, error monitor). It is built explicitly at startup and injected,
so independent pipelines can coexist in one process.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol

from newsdesk.models.article import Article
from newsdesk.models.source import SourceConfig
from newsdesk.services.cache_service import CacheService
from newsdesk.services.circuit_breaker import CircuitBreaker
from newsdesk.services.http_client import HttpClient
from newsdesk.services.retry import RetryPolicy
from newsdesk.utils.config_loader import AppConfig
from newsdesk.utils.error_monitoring import CircuitOpenError, ErrorMonitor
from newsdesk.utils.text_cleaning import clean_description, strip_markup


class NewsSource(Protocol):
    """Capability every adapter provides to the orchestrator."""

    config: SourceConfig

    @property
    def id(self) -> str: ...

    @property
    def name(self) -> str: ...

    @property
    def enabled(self) -> bool: ...

    @property
    def priority(self) -> int: ...

    def validate(self) -> bool: ...

    async def fetch(self, keywords: List[str]) -> List[Article]: ...


@dataclass
class SourceContext:
    cache: CacheService
    breaker: CircuitBreaker
    http: HttpClient
    errors: ErrorMonitor = field(default_factory=ErrorMonitor)
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)

    @classmethod
    def from_config(cls, config: AppConfig) -> "SourceContext":
        policy = RetryPolicy(
            retries=config.retry.retries,
            base_delay=config.retry.base_delay,
            max_delay=config.retry.max_delay,
            timeout=config.retry.timeout,
        )
        breaker_settings = config.circuit_breaker
        return cls(
            cache=CacheService(
                ttls=config.cache.ttl,
                check_period=config.cache.check_period,
                enabled=config.cache.enabled,
            ),
            breaker=CircuitBreaker(
                failure_threshold=breaker_settings.failure_threshold,
                window_size=breaker_settings.window_size,
                min_samples=breaker_settings.min_samples,
                cooldown_seconds=breaker_settings.cooldown_seconds,
                half_open_max_trials=breaker_settings.half_open_max_trials,
                max_cooldown_multiplier=breaker_settings.max_cooldown_multiplier,
            ),
            http=HttpClient(policy),
            errors=ErrorMonitor(),
            retry_policy=policy,
        )

    async def guarded_fetch(
        self,
        source: SourceConfig,
        keywords: List[str],
        producer: Callable[[], Awaitable[List[Article]]],
        cache_params: Optional[Dict[str, Any]] = None,
    ) -> List[Article]:
        """
        Run one source fetch behind cache, breaker and error containment.

        The cache is consulted first; on a miss the breaker decides whether the
        upstream is called at all. Any failure is recorded against the breaker
        and the error monitor and resolves to an empty list.
        """
        logger = logging.getLogger(__name__)
        params = {"keywords": list(keywords), **(cache_params or {})}
        key = self.cache.generate_key(source.id, params)

        async def breaker_guarded() -> List[Article]:
            if not self.breaker.allow_request(source.id):
                raise CircuitOpenError(f"Circuit open for {source.id}")
            try:
                articles = await producer()
            except asyncio.CancelledError:
                self.breaker.release_trial(source.id)
                raise
            self.breaker.record_success(source.id)
            return articles

        try:
            return list(await self.cache.wrap(source.cache_class, key, breaker_guarded))
        except asyncio.CancelledError:
            raise
        except CircuitOpenError:
            logger.info(f"⏭️ Skipping {source.name}: circuit open", extra={"source_id": source.id})
            return []
        except Exception as e:
            self.breaker.record_failure(source.id, e)
            self.errors.record(e, source.id, "fetch", {"keywords": list(keywords)})
            logger.warning(f"⚠️ {source.name} fetch failed, continuing without it: {e}", extra={"source_id": source.id})
            return []

    async def close(self) -> None:
        await self.http.close()
        await self.cache.stop_sweeper()


def build_article(
    source: SourceConfig,
    title: Optional[str],
    link: Optional[str],
    published: Optional[datetime] = None,
    description: Optional[str] = None,
    image: Optional[str] = None,
    source_name: Optional[str] = None,
) -> Optional[Article]:
    """Normalize raw fields into an Article; None when title or link is missing."""
    clean_title = strip_markup(title)
    clean_link = (link or "").strip()
    if not clean_title or not clean_link:
        return None
    return Article(
        title=clean_title,
        link=clean_link,
        source=source_name or source.name,
        published_date=published,
        description=clean_description(description),
        source_id=source.id,
        image=image or None,
    )


def describe_source(source: SourceConfig) -> Dict[str, Any]:
    return {
        "id": source.id,
        "name": source.name,
        "kind": source.kind.value,
        "priority": source.priority,
    }
