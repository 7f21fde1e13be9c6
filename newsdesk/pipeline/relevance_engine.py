"""
Relevance Engine

Runs articles through a fixed five-stage pipeline:
1. Hard filters (spam, near-duplicates, quality, age)
2. Multi-dimensional weighted scoring
3. Soft threshold on the total score
4. Stable ranking by score
5. Limiting to the configured maximum

Ranking always precedes limiting so the best articles survive regardless of
arrival order.
"""

import logging
import time
from datetime import datetime
from typing import Any, Dict, List, Optional

import numpy as np

from newsdesk.models.article import Article, Relevance
from newsdesk.pipeline.filters import AgeFilter, DuplicateFilter, QualityFilter, SpamFilter
from newsdesk.pipeline.scorers import (
    AuthorityScorer,
    InnovationScorer,
    SemanticScorer,
    ThematicScorer,
    TimelinessScorer,
    clamp,
)
from newsdesk.services.source_authority_service import SourceAuthorityService
from newsdesk.utils.config_loader import REQUIRED_WEIGHTS, AppConfig
from newsdesk.utils.error_monitoring import ConfigurationError
from newsdesk.utils.logging_config import log_pipeline_metrics


class RelevanceEngine:
    """Filters, scores, ranks and limits a batch of normalized articles."""

    def __init__(
        self,
        config: AppConfig,
        authority: Optional[SourceAuthorityService] = None,
        now: Optional[datetime] = None,
    ):
        self.logger = logging.getLogger(__name__)
        self.config = config

        weights = dict(config.scoring.weights or {})
        missing = [name for name in REQUIRED_WEIGHTS if name not in weights]
        if missing:
            raise ConfigurationError(f"Missing scoring weights: {', '.join(missing)}")
        if config.scoring.min_relevance_score is None or config.scoring.max_articles is None:
            raise ConfigurationError("Relevance thresholds must be configured")
        self.weights = {name: float(value) for name, value in weights.items()}

        self.spam_filter = SpamFilter(config.filters.spam)
        self.duplicate_filter = DuplicateFilter(config.filters.duplicate_threshold)
        self.quality_filter = QualityFilter(config.filters.quality)
        self.age_filter = AgeFilter(config.filters.max_age_hours, now=now)

        authority = authority or SourceAuthorityService(
            domains=config.authority.domains,
            default=config.authority.default,
            sources=config.sources,
        )
        self.scorers: Dict[str, Any] = {
            "thematic": ThematicScorer(config.keywords),
            "authority": AuthorityScorer(authority),
            "timeliness": TimelinessScorer(now=now),
            "innovation": InnovationScorer(),
        }
        if "semantic" in self.weights:
            try:
                self.scorers["semantic"] = SemanticScorer(config.scoring.semantic_topics)
            except ValueError as e:
                raise ConfigurationError(f"Invalid semantic topics: {e}") from e

        unknown = [name for name in self.weights if name not in self.scorers]
        if unknown:
            raise ConfigurationError(f"No scorer for weight(s): {', '.join(unknown)}")

        self.last_report: Dict[str, Any] = {}
        self.logger.info(
            f"✅ Relevance engine initialized (weights: {self.weights}, "
            f"min score: {config.scoring.min_relevance_score}, max articles: {config.scoring.max_articles})"
        )

    def score_article(self, article: Article) -> Relevance:
        breakdown = {name: clamp(scorer.score(article)) for name, scorer in self.scorers.items()}
        total = clamp(sum(breakdown[name] * weight for name, weight in self.weights.items()))

        timeliness: TimelinessScorer = self.scorers["timeliness"]
        authority: AuthorityScorer = self.scorers["authority"]
        return Relevance(
            score=total,
            breakdown=breakdown,
            confidence=self.calculate_confidence(breakdown),
            reasoning=self.generate_reasoning(
                breakdown,
                authority_tier=authority.service.tier(breakdown["authority"]),
                age_category=timeliness.age_category(article),
            ),
            source=authority.service.source_name(article),
            age=timeliness.formatted_age(article),
        )

    @staticmethod
    def calculate_confidence(breakdown: Dict[str, float]) -> float:
        """1 - variance of the dimension scores, clamped to [0, 1]."""
        if not breakdown:
            return 0.0
        return clamp(1.0 - float(np.var(list(breakdown.values()))))

    @staticmethod
    def generate_reasoning(breakdown: Dict[str, float], authority_tier: str, age_category: str) -> str:
        reasons = []

        thematic = breakdown.get("thematic", 0.0)
        if thematic >= 0.7:
            reasons.append("highly relevant topic")
        elif thematic >= 0.4:
            reasons.append("relevant topic")

        if authority_tier == "excellent":
            reasons.append("top-tier source")
        elif authority_tier == "good":
            reasons.append("reputable source")

        if age_category == "breaking":
            reasons.append("breaking news")
        elif age_category == "recent":
            reasons.append("recent news")

        innovation = breakdown.get("innovation", 0.0)
        if innovation >= 0.7:
            reasons.append("high innovation impact")
        elif innovation >= 0.5:
            reasons.append("innovation-related")

        return ", ".join(reasons) if reasons else "meets basic relevance criteria"

    def apply_hard_filters(self, articles: List[Article]) -> List[Article]:
        current = articles
        for stage in (self.spam_filter, self.duplicate_filter, self.quality_filter, self.age_filter):
            started = time.perf_counter()
            before = len(current)
            current = stage.filter(current)
            self.last_report[stage.name] = {"input": before, "output": len(current)}
            log_pipeline_metrics(
                self.logger, f"filter:{stage.name}", before, len(current),
                (time.perf_counter() - started) * 1000,
            )
        return current

    def rank(self, articles: List[Article]) -> List[Article]:
        """Filter, score, threshold and rank without limiting."""
        self.last_report = {"input": len(articles)}
        if not articles:
            return []

        candidates = self.apply_hard_filters(articles)

        started = time.perf_counter()
        scored = [article.with_relevance(self.score_article(article)) for article in candidates]
        log_pipeline_metrics(self.logger, "score", len(candidates), len(scored), (time.perf_counter() - started) * 1000)

        min_score = self.config.scoring.min_relevance_score
        passing = [article for article in scored if article.score >= min_score]
        self.last_report["threshold"] = {"input": len(scored), "output": len(passing)}

        # sorted() is stable: equal scores keep arrival order
        ranked = sorted(passing, key=lambda a: a.score, reverse=True)
        self.last_report["ranked"] = len(ranked)
        return ranked

    def score_and_filter(self, articles: List[Article]) -> List[Article]:
        """Run all five stages and return the ranked, limited selection."""
        run_started = time.perf_counter()
        ranked = self.rank(articles)
        if not ranked:
            self.last_report["output"] = 0
            return []
        limited = ranked[:self.config.scoring.max_articles]
        self.last_report["limit"] = {"input": len(ranked), "output": len(limited)}
        self.last_report["output"] = len(limited)

        log_pipeline_metrics(
            self.logger, "relevance", len(articles), len(limited), (time.perf_counter() - run_started) * 1000,
            min_score=self.config.scoring.min_relevance_score, max_articles=self.config.scoring.max_articles,
        )
        return limited

    @staticmethod
    def get_filtering_stats(original: List[Article], filtered: List[Article]) -> Dict[str, Any]:
        scores = [a.score for a in filtered]
        return {
            "original": len(original),
            "filtered": len(filtered),
            "removed": len(original) - len(filtered),
            "filter_rate": (len(original) - len(filtered)) / len(original) if original else 0.0,
            "average_score": sum(scores) / len(scores) if scores else 0.0,
            "top_score": max(scores) if scores else 0.0,
        }
