"""
Source diversification for the final selection.

Bounds per-source representation while still delivering a full batch when
sources are scarce.
"""

import logging
import time
from collections import Counter, OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from newsdesk.models.article import Article
from newsdesk.utils.logging_config import log_pipeline_metrics


class DiversificationError(Exception):
    """Raised for invalid diversification arguments"""
    pass


@dataclass
class DiversificationResult:
    articles: List[Article]
    distribution: Dict[str, int] = field(default_factory=dict)
    cap_used: int = 0
    relaxed: bool = False
    distinct_sources: int = 0
    meets_min_sources: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "count": len(self.articles),
            "distribution": dict(self.distribution),
            "cap_used": self.cap_used,
            "relaxed": self.relaxed,
            "distinct_sources": self.distinct_sources,
            "meets_min_sources": self.meets_min_sources,
        }


def source_key(article: Article) -> str:
    """Articles are grouped by publisher name, falling back to the source id."""
    return article.source or article.source_id or "unknown"


class SourceDiversifier:
    """
    Round-robin selection across sources with progressive cap relaxation.

    Each round takes the next highest-scoring unconsumed article from every
    source still under its cap. When a pass cannot reach the target, the cap
    is relaxed through cap+1, cap+2, cap+3 and finally the target itself.
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def relaxation_caps(max_per_source: int, target: int) -> List[int]:
        caps = [max_per_source, max_per_source + 1, max_per_source + 2, max_per_source + 3, target]
        ordered: List[int] = []
        for cap in caps:
            if cap >= max_per_source and cap not in ordered:
                ordered.append(cap)
        return ordered

    @staticmethod
    def group_by_source(articles: List[Article]) -> "OrderedDict[str, List[Article]]":
        """Per-source score-ordered queues, sources ordered by their best article."""
        ranked = sorted(articles, key=lambda a: a.score, reverse=True)
        groups: "OrderedDict[str, List[Article]]" = OrderedDict()
        for article in ranked:
            groups.setdefault(source_key(article), []).append(article)
        return groups

    @staticmethod
    def round_robin(groups: "OrderedDict[str, List[Article]]", target: int, cap: int) -> List[Article]:
        positions = {key: 0 for key in groups}
        selected: List[Article] = []

        while len(selected) < target:
            progressed = False
            for key, queue in groups.items():
                if len(selected) >= target:
                    break
                taken = positions[key]
                if taken >= cap or taken >= len(queue):
                    continue
                selected.append(queue[taken])
                positions[key] = taken + 1
                progressed = True
            if not progressed:
                break
        return selected

    def diversify(
        self,
        articles: List[Article],
        target: int = 10,
        max_per_source: int = 3,
        min_sources: Optional[int] = None,
    ) -> DiversificationResult:
        if target < 1:
            raise DiversificationError(f"target must be at least 1, got {target}")
        if max_per_source < 1:
            raise DiversificationError(f"max_per_source must be at least 1, got {max_per_source}")

        started = time.perf_counter()
        groups = self.group_by_source(articles)

        selected: List[Article] = []
        cap_used = max_per_source
        for cap in self.relaxation_caps(max_per_source, target):
            cap_used = cap
            selected = self.round_robin(groups, target, cap)
            if len(selected) >= target:
                break
            self.logger.debug(f"Cap {cap} yielded {len(selected)}/{target} articles")

        selected = sorted(selected, key=lambda a: a.score, reverse=True)
        distribution = dict(Counter(source_key(a) for a in selected).most_common())
        distinct = len(distribution)
        meets_min = min_sources is None or distinct >= min_sources

        if cap_used > max_per_source:
            self.logger.info(f"Relaxed per-source cap from {max_per_source} to {cap_used} to fill {len(selected)}/{target}")
        if not meets_min:
            self.logger.warning(f"⚠️ Only {distinct} distinct sources (minimum: {min_sources})")

        log_pipeline_metrics(
            self.logger, "diversify", len(articles), len(selected),
            (time.perf_counter() - started) * 1000,
            cap_used=cap_used, distinct_sources=distinct,
        )
        return DiversificationResult(
            articles=selected,
            distribution=distribution,
            cap_used=cap_used,
            relaxed=cap_used > max_per_source,
            distinct_sources=distinct,
            meets_min_sources=meets_min,
        )
