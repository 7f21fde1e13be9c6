"""
Source Authority Service for credibility scoring.
Looks up article domains in the configured authority map and assigns tiers.
"""

import logging
from typing import Dict, List, Optional
from urllib.parse import urlparse

from newsdesk.models.article import Article
from newsdesk.models.source import SourceConfig

DEFAULT_AUTHORITY = 0.4

TIER_THRESHOLDS = (
    ("excellent", 0.9),
    ("good", 0.8),
    ("fair", 0.6),
)


class SourceAuthorityService:
    """
    Maps article origins to an authority value in [0, 1].

    Lookup order: the article link's domain, then the source id or display
    name, then the configured weight of the source the article came from.
    Anything unknown gets the default.
    """

    def __init__(
        self,
        domains: Optional[Dict[str, float]] = None,
        default: float = DEFAULT_AUTHORITY,
        sources: Optional[List[SourceConfig]] = None,
    ):
        self.logger = logging.getLogger(__name__)
        self.default = default
        self.domain_scores = self._build_score_map(domains or {})
        self.source_weights = {s.id: s.authority for s in (sources or [])}
        self.logger.info(f"Source authority service initialized with {len(self.domain_scores)} scored domains")

    @staticmethod
    def _build_score_map(domains: Dict[str, float]) -> Dict[str, float]:
        scores = {}
        for domain, score in domains.items():
            key = domain.lower().strip()
            if key.startswith("www."):
                key = key[4:]
            scores[key] = max(0.0, min(1.0, float(score)))
        return scores

    def _extract_domain(self, url: str) -> str:
        """Extract the domain from a URL, without a www. prefix."""
        if not url:
            return ""
        parsed = urlparse(url)
        domain = parsed.netloc or parsed.path.split("/")[0]
        domain = domain.split(":")[0]
        if domain.startswith("www."):
            domain = domain[4:]
        return domain.lower()

    def _lookup_domain(self, domain: str) -> Optional[float]:
        # Subdomains inherit the registered domain's score
        while domain:
            if domain in self.domain_scores:
                return self.domain_scores[domain]
            if "." not in domain:
                return None
            domain = domain.split(".", 1)[1]
        return None

    def score(self, article: Article) -> float:
        found = self._lookup_domain(self._extract_domain(article.link))
        if found is not None:
            return found

        for key in (article.source_id, article.source):
            if key and key.lower() in self.domain_scores:
                return self.domain_scores[key.lower()]

        if article.source_id in self.source_weights:
            return self.source_weights[article.source_id]
        return self.default

    @staticmethod
    def tier(score: float) -> str:
        for name, threshold in TIER_THRESHOLDS:
            if score >= threshold:
                return name
        return "low"

    def source_name(self, article: Article) -> str:
        return article.source or self._extract_domain(article.link) or "unknown"

    def get_preferred_domains(self, min_score: float = 0.8) -> List[str]:
        return sorted(d for d, s in self.domain_scores.items() if s >= min_score)
