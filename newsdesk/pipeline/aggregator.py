"""
Article aggregation: flatten adapter outputs, deduplicate and sort.
"""

import logging
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from newsdesk.models.article import Article
from newsdesk.services.deduplication_service import Deduplicator

SORT_KEYS = ("date", "score", "source")
_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


class Aggregator:
    """Merges per-source article lists into one deduplicated list."""

    def __init__(self, similarity_threshold: float = 0.8, deduplicator: Optional[Deduplicator] = None):
        self.deduplicator = deduplicator or Deduplicator(similarity_threshold)
        self.logger = logging.getLogger(__name__)

    def aggregate(self, results: List[List[Article]]) -> List[Article]:
        flattened: List[Article] = []
        for batch in results:
            if batch:
                flattened.extend(batch)

        unique = self.deduplicator.deduplicate(flattened)
        self.logger.info(
            f"📊 Aggregated {len(flattened)} articles from {len(results)} sources into {len(unique)} unique"
        )
        return unique

    @staticmethod
    def sort(articles: List[Article], by: str = "date") -> List[Article]:
        """
        Return a new list sorted for downstream stages.

        date: newest first, undated last. score: highest first.
        source: by source name, then newest first within a source.
        """
        if by == "date":
            return sorted(articles, key=lambda a: a.published_date or _OLDEST, reverse=True)
        if by == "score":
            return sorted(articles, key=lambda a: a.score, reverse=True)
        if by == "source":
            by_date = sorted(articles, key=lambda a: a.published_date or _OLDEST, reverse=True)
            return sorted(by_date, key=lambda a: (a.source or "").lower())
        raise ValueError(f"Unknown sort key '{by}', expected one of {SORT_KEYS}")

    @staticmethod
    def filter_by_time(articles: List[Article], hours: float, now: Optional[datetime] = None) -> List[Article]:
        """Keep articles newer than the cutoff; undated articles are kept."""
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(hours=hours)
        return [a for a in articles if a.published_date is None or a.published_date >= cutoff]

    @staticmethod
    def get_stats(articles: List[Article]) -> Dict[str, Any]:
        dates = [a.published_date for a in articles if a.published_date is not None]
        by_source = Counter(a.source or a.source_id or "unknown" for a in articles)
        return {
            "total": len(articles),
            "sources": len(by_source),
            "by_source": dict(by_source.most_common()),
            "oldest": min(dates).isoformat() if dates else None,
            "newest": max(dates).isoformat() if dates else None,
        }
