"""
Search query construction for query-search sources.
"""

import logging
from typing import List, Optional

from fuzzywuzzy import fuzz

DEFAULT_EXCLUDE_TERMS = ["sale", "discount", "recipe", "cooking"]


class QueryBuilder:
    """
    Folds a keyword list into a small number of OR-queries.

    Similar keywords share a query so one request covers a whole family of
    terms; multi-word keywords are quoted for exact phrase matching.
    """

    def __init__(
        self,
        max_queries: int = 5,
        similarity_threshold: float = 0.4,
        exclude_terms: Optional[List[str]] = None,
        date_range_days: Optional[int] = 7,
        exact_phrases: bool = True,
    ):
        self.max_queries = max(1, max_queries)
        self.similarity_threshold = similarity_threshold
        self.exclude_terms = DEFAULT_EXCLUDE_TERMS if exclude_terms is None else exclude_terms
        self.date_range_days = date_range_days
        self.exact_phrases = exact_phrases
        self.logger = logging.getLogger(__name__)

    def format_keyword(self, keyword: str) -> str:
        trimmed = (keyword or "").strip()
        if self.exact_phrases and " " in trimmed:
            return f'"{trimmed}"'
        return trimmed

    @staticmethod
    def similarity(a: str, b: str) -> float:
        return fuzz.ratio(a.replace('"', '').lower(), b.replace('"', '').lower()) / 100.0

    def group_keywords(self, keywords: List[str]) -> List[List[str]]:
        if len(keywords) <= self.max_queries:
            return [[kw] for kw in keywords]

        groups: List[List[str]] = []
        used = set()
        # Longer keywords first: they are the more specific anchors
        ordered = sorted(keywords, key=len, reverse=True)

        for keyword in ordered:
            if keyword in used:
                continue
            group = [keyword]
            used.add(keyword)
            for other in ordered:
                if other in used:
                    continue
                if self.similarity(keyword, other) >= self.similarity_threshold:
                    group.append(other)
                    used.add(other)
            groups.append(group)
            if len(groups) >= self.max_queries:
                break

        remaining = [kw for kw in ordered if kw not in used]
        if remaining:
            groups[-1].extend(remaining)
        return groups

    def build_query(self, group: List[str]) -> str:
        parts = [" OR ".join(group)]
        if self.exclude_terms:
            parts.append(" ".join(f"-{term}" for term in self.exclude_terms))
        if self.date_range_days:
            parts.append(f"when:{self.date_range_days}d")
        return " ".join(parts)

    def build_queries(self, keywords: List[str]) -> List[str]:
        formatted = [self.format_keyword(kw) for kw in keywords if kw and kw.strip()]
        # Preserve order while dropping repeats
        formatted = list(dict.fromkeys(formatted))
        if not formatted:
            return []
        queries = [self.build_query(group) for group in self.group_keywords(formatted)]
        self.logger.debug(f"Built {len(queries)} queries from {len(formatted)} keywords")
        return queries
