"""
Pipeline orchestration: concurrent fetch, aggregation, relevance, diversification.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from newsdesk.models.article import Article
from newsdesk.pipeline.aggregator import Aggregator
from newsdesk.pipeline.diversifier import DiversificationResult, SourceDiversifier
from newsdesk.pipeline.relevance_engine import RelevanceEngine
from newsdesk.services.circuit_breaker import CircuitState
from newsdesk.services.source_context import NewsSource, SourceContext, describe_source
from newsdesk.services.source_factory import SourceFactory
from newsdesk.utils.config_loader import AppConfig
from newsdesk.utils.logging_config import log_pipeline_metrics


@dataclass
class FetchOutcome:
    """Settled result of one source fetch"""
    source_id: str
    source_name: str
    status: str  # 'ok', 'failed', 'skipped'
    articles: List[Article] = field(default_factory=list)
    fetch_time: float = 0.0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_id": self.source_id,
            "source_name": self.source_name,
            "status": self.status,
            "count": len(self.articles),
            "fetch_time": round(self.fetch_time, 3),
            "error": self.error,
        }


@dataclass
class PipelineResult:
    """Everything one run produced; only `articles` goes to delivery"""
    articles: List[Article]
    keywords: List[str]
    distribution: Optional[DiversificationResult] = None
    outcomes: List[FetchOutcome] = field(default_factory=list)
    filtering: Dict[str, Any] = field(default_factory=dict)
    timings: Dict[str, float] = field(default_factory=dict)
    from_cache: bool = False
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "generated_at": self.generated_at.isoformat(),
            "keywords": list(self.keywords),
            "from_cache": self.from_cache,
            "articles": [a.to_dict() for a in self.articles],
            "distribution": self.distribution.to_dict() if self.distribution else None,
            "sources": [o.to_dict() for o in self.outcomes],
            "filtering": self.filtering,
            "timings": {k: round(v, 1) for k, v in self.timings.items()},
        }


class NewsPipeline:
    """
    Fetches every enabled source concurrently, then aggregates, scores and
    diversifies the combined result.

    A failing source never fails the run: every fetch is settled and recorded
    as a FetchOutcome, and only configuration errors abort construction.
    """

    def __init__(
        self,
        config: AppConfig,
        context: Optional[SourceContext] = None,
        sources: Optional[List[NewsSource]] = None,
        engine: Optional[RelevanceEngine] = None,
    ) -> None:
        self.config = config
        self.context = context or SourceContext.from_config(config)
        self.sources = sources if sources is not None else SourceFactory.load_sources(config.sources, self.context)
        self.aggregator = Aggregator(config.aggregation_similarity)
        self.engine = engine or RelevanceEngine(config)
        self.diversifier = SourceDiversifier()
        self.logger = logging.getLogger(__name__)

    async def __aenter__(self):
        if self.config.cache.enabled:
            self.context.cache.start_sweeper()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def get_enabled_sources(self) -> List[Dict[str, Any]]:
        return [describe_source(source.config) for source in self.sources]

    async def _fetch_one(self, source: NewsSource, keywords: List[str]) -> FetchOutcome:
        start = time.perf_counter()
        errors_before = self.context.errors.source_counts.get(source.id, 0)
        was_open = self.context.breaker.get_state(source.id) == CircuitState.OPEN

        articles = await source.fetch(keywords)
        elapsed = time.perf_counter() - start

        if self.context.errors.source_counts.get(source.id, 0) > errors_before:
            last_error = self.context.errors.last_error[source.id]
            return FetchOutcome(source.id, source.name, "failed", [], elapsed, last_error.error_message)
        if was_open and not articles and self.context.breaker.get_state(source.id) == CircuitState.OPEN:
            return FetchOutcome(source.id, source.name, "skipped", [], elapsed, "circuit open")
        return FetchOutcome(source.id, source.name, "ok", list(articles or []), elapsed)

    async def fetch_all(self, keywords: List[str]) -> List[FetchOutcome]:
        """Fire every fetch, wait for all of them to settle."""
        if not self.sources:
            self.logger.warning("⚠️ No enabled sources to fetch from")
            return []

        start = time.perf_counter()
        self.logger.info(f"🔄 Fetching {len(self.sources)} sources for keywords: {', '.join(keywords)}")
        results = await asyncio.gather(
            *(self._fetch_one(source, keywords) for source in self.sources),
            return_exceptions=True,
        )

        outcomes: List[FetchOutcome] = []
        for source, result in zip(self.sources, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, Exception):
                self.logger.error(f"❌ {source.name} raised past its boundary: {result}")
                self.context.errors.record(result, source.id, "fetch")
                outcomes.append(FetchOutcome(source.id, source.name, "failed", error=str(result)))
            else:
                outcomes.append(result)

        fetched = sum(len(o.articles) for o in outcomes)
        failed = [o.source_id for o in outcomes if o.status == "failed"]
        if failed:
            self.logger.warning(f"⚠️ {len(failed)} source(s) failed to fetch: {', '.join(failed)}")
        log_pipeline_metrics(
            self.logger, "fetch", len(self.sources), fetched, (time.perf_counter() - start) * 1000,
            failed_sources=failed,
        )
        return outcomes

    def _processed_key(self, keywords: List[str]) -> str:
        return self.context.cache.generate_key(
            "processed",
            {"keywords": list(keywords), "sources": sorted(s.id for s in self.sources)},
        )

    async def run(self, keywords: Optional[List[str]] = None) -> PipelineResult:
        keywords = list(keywords or self.config.keywords.tier1 or self.config.keywords.all_keywords())

        cache_key = None
        if self.config.cache.cache_processed:
            cache_key = self._processed_key(keywords)
            cached = self.context.cache.get("processed", cache_key)
            if cached is not None:
                self.logger.info(f"✅ Using cached selection ({len(cached.articles)} articles)")
                return replace(cached, from_cache=True)

        timings: Dict[str, float] = {}
        run_start = time.perf_counter()

        outcomes = await self.fetch_all(keywords)
        timings["fetch_ms"] = (time.perf_counter() - run_start) * 1000

        stage = time.perf_counter()
        aggregated = self.aggregator.aggregate([o.articles for o in outcomes])
        timings["aggregate_ms"] = (time.perf_counter() - stage) * 1000

        stage = time.perf_counter()
        ranked = self.engine.rank(aggregated)
        timings["relevance_ms"] = (time.perf_counter() - stage) * 1000

        # The diversifier is the limiting stage: it never returns more than max_articles
        stage = time.perf_counter()
        target = min(self.config.diversity.target, self.config.scoring.max_articles)
        diversified = self.diversifier.diversify(
            ranked,
            target=target,
            max_per_source=self.config.diversity.max_per_source,
            min_sources=self.config.diversity.min_sources,
        )
        timings["diversify_ms"] = (time.perf_counter() - stage) * 1000
        timings["total_ms"] = (time.perf_counter() - run_start) * 1000

        filtering = self.engine.get_filtering_stats(aggregated, diversified.articles)
        filtering["stages"] = dict(self.engine.last_report)

        result = PipelineResult(
            articles=diversified.articles,
            keywords=keywords,
            distribution=diversified,
            outcomes=outcomes,
            filtering=filtering,
            timings=timings,
        )
        if cache_key is not None and result.articles:
            self.context.cache.set("processed", cache_key, result)

        self.logger.info(
            f"✅ Pipeline complete: {len(result.articles)} articles from "
            f"{diversified.distinct_sources} sources in {timings['total_ms']:.0f}ms"
        )
        return result

    def health_report(self) -> Dict[str, Any]:
        return {
            "sources": self.get_enabled_sources(),
            "circuits": self.context.breaker.get_all_stats(),
            "cache": self.context.cache.get_stats(),
            "errors": self.context.errors.summary(),
        }

    async def close(self) -> None:
        await self.context.close()
