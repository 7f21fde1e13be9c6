"""
Relevance scorers. Each returns a value in [0, 1] for one dimension.
"""

import logging
import math
from datetime import datetime
from typing import Dict, List, Optional

import numpy as np
from sklearn.feature_extraction.text import TfidfVectorizer
from sklearn.metrics.pairwise import cosine_similarity

from newsdesk.models.article import Article
from newsdesk.services.keyword_matcher import KeywordMatcher
from newsdesk.services.source_authority_service import SourceAuthorityService
from newsdesk.utils.config_loader import KeywordSettings
from newsdesk.utils.date_extraction import hours_since

TIER_WEIGHTS = {"tier1": 2.0, "tier2": 1.0, "tier3": 0.5}


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


class ThematicScorer:
    """
    Keyword-tier matching normalized by the best achievable score.

    Every configured keyword contributes its tier weight times its match
    similarity; the sum is divided by the score an article matching the whole
    vocabulary exactly would get.
    """

    def __init__(self, keywords: KeywordSettings, matcher: Optional[KeywordMatcher] = None):
        self.tiers: Dict[str, List[str]] = {
            "tier1": list(keywords.tier1),
            "tier2": list(keywords.tier2),
            "tier3": list(keywords.tier3),
        }
        self.matcher = matcher or KeywordMatcher(
            mode=keywords.mode,
            fuzzy_threshold=keywords.fuzzy_threshold,
            auto_plural=keywords.auto_plural,
            auto_hyphen=keywords.auto_hyphen,
            variations=keywords.variations,
            synonyms=keywords.synonyms,
        )
        self.max_score = sum(TIER_WEIGHTS[tier] * len(words) for tier, words in self.tiers.items())
        self.logger = logging.getLogger(__name__)

    def matched_keywords(self, article: Article) -> Dict[str, List[str]]:
        text = article.text
        found: Dict[str, List[str]] = {}
        for tier, words in self.tiers.items():
            found[tier] = [kw for kw in words if self.matcher.matches(text, kw).matched]
        return found

    def score(self, article: Article) -> float:
        if self.max_score <= 0:
            return 0.0
        text = article.text
        total = 0.0
        for tier, words in self.tiers.items():
            weight = TIER_WEIGHTS[tier]
            for keyword in words:
                result = self.matcher.matches(text, keyword)
                if result.matched:
                    total += weight * result.similarity
        return clamp(total / self.max_score)


class AuthorityScorer:
    def __init__(self, service: SourceAuthorityService):
        self.service = service

    def score(self, article: Article) -> float:
        return clamp(self.service.score(article))

    def tier(self, article: Article) -> str:
        return self.service.tier(self.score(article))


class TimelinessScorer:
    """Exponential decay on article age: max(floor, e^(-decay * hours))."""

    def __init__(self, decay_rate: float = 0.03, floor: float = 0.1, neutral: float = 0.5,
                 now: Optional[datetime] = None):
        self.decay_rate = decay_rate
        self.floor = floor
        self.neutral = neutral
        self.now = now

    def _age_hours(self, article: Article) -> Optional[float]:
        if not isinstance(article.published_date, datetime):
            return None
        return hours_since(article.published_date, self.now)

    def score(self, article: Article) -> float:
        age = self._age_hours(article)
        if age is None:
            return self.neutral
        if age < 0:
            return 1.0
        return max(self.floor, math.exp(-self.decay_rate * age))

    def age_category(self, article: Article) -> str:
        if self._age_hours(article) is None:
            return "unknown"
        value = self.score(article)
        if value >= 0.9:
            return "breaking"
        if value >= 0.7:
            return "recent"
        if value >= 0.5:
            return "today"
        return "older"

    def formatted_age(self, article: Article) -> str:
        age = self._age_hours(article)
        if age is None:
            return "unknown"
        if age < 0:
            return "just now"
        if age < 1:
            minutes = int(age * 60)
            return f"{minutes} minute{'s' if minutes != 1 else ''} ago"
        if age < 24:
            hours = int(age)
            return f"{hours} hour{'s' if hours != 1 else ''} ago"
        days = int(age // 24)
        return f"{days} day{'s' if days != 1 else ''} ago"


class InnovationScorer:
    """
    Lexical scan for announcement language.

    Each positive family adds 0.1 per matched signal up to 0.2; commentary
    and earnings language subtract 0.15 per signal, at most 0.3 in total.
    """

    POSITIVE_SIGNALS = {
        "launch": ["launches", "announces", "unveils", "introduces", "debuts", "rolls out", "expands", "pilot program"],
        "funding": ["funding", "investment", "series a", "series b", "series c", "acquisition"],
        "partnership": ["partnership", "partners with", "collaboration", "joint venture"],
        "novelty": ["breakthrough", "world's first", "first", "revolutionary", "disrupts", "game-changer",
                    "new technology", "innovation", "patented"],
    }
    NEGATIVE_SIGNALS = {
        "commentary": ["opinion", "analysis", "commentary", "editorial"],
        "financial": ["earnings", "quarterly results", "stock price", "shares fall", "shares rise", "revenue", "profit"],
    }

    BASE_SCORE = 0.5
    SIGNAL_BONUS = 0.1
    FAMILY_CAP = 0.2
    SIGNAL_PENALTY = 0.15
    PENALTY_CAP = 0.3

    def get_signals(self, article: Article) -> Dict[str, List[str]]:
        text = article.text.lower()
        positive = [s for family in self.POSITIVE_SIGNALS.values() for s in family if s in text]
        negative = [s for family in self.NEGATIVE_SIGNALS.values() for s in family if s in text]
        return {"positive": positive, "negative": negative}

    def score(self, article: Article) -> float:
        text = article.text.lower()
        bonus = 0.0
        for signals in self.POSITIVE_SIGNALS.values():
            hits = sum(1 for s in signals if s in text)
            bonus += min(self.FAMILY_CAP, hits * self.SIGNAL_BONUS)

        negatives = sum(1 for family in self.NEGATIVE_SIGNALS.values() for s in family if s in text)
        penalty = min(self.PENALTY_CAP, negatives * self.SIGNAL_PENALTY)

        return clamp(self.BASE_SCORE + bonus - penalty)


class SemanticScorer:
    """
    TF-IDF cosine similarity against configured topic descriptions.

    score = max over topics of (similarity * topic weight) / MAX_EXPECTED
    """

    MAX_EXPECTED = 2.0

    def __init__(self, topics: Dict[str, Dict]):
        if not topics:
            raise ValueError("SemanticScorer requires at least one topic")
        self.topic_names = list(topics)
        self.topic_weights = np.array([float(topics[n].get("weight", 1.0)) for n in self.topic_names])
        descriptions = [str(topics[n].get("description", n)) for n in self.topic_names]
        self.vectorizer = TfidfVectorizer(stop_words="english", sublinear_tf=True)
        self.topic_vectors = self.vectorizer.fit_transform(descriptions)
        self.logger = logging.getLogger(__name__)
        self.logger.info(f"Semantic scorer initialized with {len(self.topic_names)} topics")

    def similarities(self, article: Article) -> Dict[str, float]:
        vector = self.vectorizer.transform([article.text])
        sims = cosine_similarity(vector, self.topic_vectors)[0]
        return {name: float(sim) for name, sim in zip(self.topic_names, sims)}

    def score(self, article: Article) -> float:
        vector = self.vectorizer.transform([article.text])
        sims = cosine_similarity(vector, self.topic_vectors)[0]
        if sims.size == 0:
            return 0.0
        return clamp(float(np.max(sims * self.topic_weights)) / self.MAX_EXPECTED)
