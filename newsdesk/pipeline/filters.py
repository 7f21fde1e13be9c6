"""
Hard filters applied before scoring.

Each filter removes articles outright, independent of topic. Data-quality
gaps (missing description, unknown date, undetectable language) pass through
instead of rejecting the article.
"""

import logging
import re
from datetime import datetime
from typing import Dict, List, Optional

from newsdesk.models.article import Article
from newsdesk.services.deduplication_service import Deduplicator
from newsdesk.utils.config_loader import QualitySettings, SpamSettings
from newsdesk.utils.date_extraction import hours_since
from newsdesk.utils.text_cleaning import strip_markup, word_count

STOP_WORDS = {
    "en": {"the", "and", "of", "to", "in", "is", "for", "that", "with", "on", "as", "are", "this", "by", "from", "it", "was", "be", "has", "have"},
    "de": {"der", "die", "das", "und", "ist", "nicht", "mit", "von", "den", "für", "auf", "ein", "eine", "dem", "des", "im", "sich", "auch", "wird", "zu"},
}
MIN_STOP_WORD_HITS = 2


class BaseFilter:
    """Shared pass/reject bookkeeping."""

    name = "filter"

    def __init__(self):
        self.stats: Dict[str, int] = {"checked": 0, "passed": 0, "rejected": 0}
        self.logger = logging.getLogger(__name__)

    def passes(self, article: Article) -> bool:
        raise NotImplementedError

    def filter(self, articles: List[Article]) -> List[Article]:
        kept = []
        for article in articles:
            self.stats["checked"] += 1
            if self.passes(article):
                self.stats["passed"] += 1
                kept.append(article)
            else:
                self.stats["rejected"] += 1
                self.logger.debug(f"{self.name} rejected: {article.title[:80]}")
        return kept


class SpamFilter(BaseFilter):
    """Sensational phrasing, shouting titles and punctuation runs."""

    name = "spam"

    def __init__(self, settings: Optional[SpamSettings] = None):
        super().__init__()
        self.settings = settings or SpamSettings()
        self.patterns = [re.compile(p, re.IGNORECASE) for p in self.settings.patterns]

    def caps_ratio(self, text: str) -> float:
        letters = [c for c in text if c.isalpha()]
        if not letters:
            return 0.0
        return sum(1 for c in letters if c.isupper()) / len(letters)

    def is_spam(self, article: Article) -> bool:
        title = article.title or ""
        # Headline only; descriptions may quote these phrases
        if any(p.search(title) for p in self.patterns):
            return True
        if len(title) >= 10 and self.caps_ratio(title) > self.settings.max_caps_ratio:
            return True
        if title.count("!") > self.settings.max_exclamations:
            return True
        if title.count("?") > self.settings.max_questions:
            return True
        return False

    def passes(self, article: Article) -> bool:
        return not self.is_spam(article)


class DuplicateFilter(BaseFilter):
    """Near-duplicate removal keeping the better version."""

    name = "duplicate"

    def __init__(self, threshold: float = 0.85):
        super().__init__()
        self.deduplicator = Deduplicator(threshold)

    def passes(self, article: Article) -> bool:
        return True

    def filter(self, articles: List[Article]) -> List[Article]:
        kept = self.deduplicator.deduplicate(articles)
        self.stats["checked"] += len(articles)
        self.stats["passed"] += len(kept)
        self.stats["rejected"] += len(articles) - len(kept)
        return kept


class QualityFilter(BaseFilter):
    """Structural quality gate: title, link, body length, language."""

    name = "quality"

    def __init__(self, settings: Optional[QualitySettings] = None):
        super().__init__()
        self.settings = settings or QualitySettings()

    @staticmethod
    def detect_language(text: str) -> Optional[str]:
        words = re.findall(r"\w+", text.lower())
        hits = {lang: sum(1 for w in words if w in stop) for lang, stop in STOP_WORDS.items()}
        lang, count = max(hits.items(), key=lambda kv: kv[1])
        if count < MIN_STOP_WORD_HITS:
            return None
        return lang

    def title_ok(self, title: str) -> bool:
        title = (title or "").strip()
        if len(title) < self.settings.min_title_length:
            return False
        visible = [c for c in title if not c.isspace()]
        alnum = sum(1 for c in visible if c.isalnum())
        return bool(visible) and alnum / len(visible) >= self.settings.min_alnum_ratio

    def passes(self, article: Article) -> bool:
        if not article.title or not article.link:
            return False
        if not self.title_ok(article.title):
            return False

        description = strip_markup(article.description)
        if description and word_count(f"{article.title} {description}") < self.settings.min_word_count:
            return False

        if self.settings.allowed_languages:
            language = self.detect_language(f"{article.title} {description}")
            if language is not None and language not in self.settings.allowed_languages:
                return False
        return True


class AgeFilter(BaseFilter):
    """Drops articles older than max_age_hours; unknown or future dates pass."""

    name = "age"

    def __init__(self, max_age_hours: float = 48.0, now: Optional[datetime] = None):
        super().__init__()
        self.max_age_hours = max_age_hours
        self.now = now

    def passes(self, article: Article) -> bool:
        if not isinstance(article.published_date, datetime):
            return True
        age = hours_since(article.published_date, self.now)
        if age is None or age < 0:
            return True
        return age <= self.max_age_hours
