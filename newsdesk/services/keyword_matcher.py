"""
Keyword matching with variations, synonyms and fuzzy fallback.

Modes:
- exact: case-insensitive substring
- variations: exact, then manual variations, plural/singular, hyphenation and synonyms
- fuzzy: best fuzzy ratio over single words and n-word windows
- hybrid: variations first, fuzzy as fallback (default)
"""

import logging
import re
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, List, Optional

from fuzzywuzzy import fuzz

MATCH_MODES = ("exact", "variations", "fuzzy", "hybrid")
VARIATION_SIMILARITY = 0.95
_TOKEN = re.compile(r"[\w'-]+", re.UNICODE)


@dataclass(frozen=True)
class MatchResult:
    matched: bool
    match_type: str = "none"
    similarity: float = 0.0
    matched_text: Optional[str] = None


NO_MATCH = MatchResult(matched=False)


class KeywordMatcher:
    """Similarity-weighted keyword matcher used by the thematic scorer."""

    def __init__(
        self,
        mode: str = "hybrid",
        fuzzy_threshold: float = 0.8,
        auto_plural: bool = True,
        auto_hyphen: bool = True,
        variations: Optional[Dict[str, List[str]]] = None,
        synonyms: Optional[Dict[str, Dict[str, List[str]]]] = None,
        max_cache_size: int = 500,
    ):
        if mode not in MATCH_MODES:
            raise ValueError(f"Unknown keyword matching mode: {mode}")
        self.mode = mode
        self.fuzzy_threshold = fuzzy_threshold
        self.auto_plural = auto_plural
        self.auto_hyphen = auto_hyphen
        self.variations = {k.lower(): [v.lower() for v in vs] for k, vs in (variations or {}).items()}
        en_de = (synonyms or {}).get("en-de", {})
        self.synonyms = {k.lower(): [v.lower() for v in vs] for k, vs in en_de.items()}
        self.max_cache_size = max_cache_size
        self._cache: "OrderedDict[tuple, MatchResult]" = OrderedDict()
        self.cache_hits = 0
        self.cache_misses = 0
        self.logger = logging.getLogger(__name__)

    def matches(self, text: str, keyword: str, language: str = "en", mode: Optional[str] = None) -> MatchResult:
        if not text or not keyword:
            return NO_MATCH

        text_lower = text.lower()
        keyword_lower = keyword.lower().strip()
        mode = mode or self.mode
        cache_key = (text_lower, keyword_lower, mode, language)

        cached = self._cache.get(cache_key)
        if cached is not None:
            self.cache_hits += 1
            return cached
        self.cache_misses += 1

        if mode == "exact":
            result = self._exact_match(text_lower, keyword_lower)
        elif mode == "variations":
            result = self._variations_match(text_lower, keyword_lower, language)
        elif mode == "fuzzy":
            result = self._fuzzy_match(text_lower, keyword_lower)
        else:
            result = self._variations_match(text_lower, keyword_lower, language)
            if not result.matched:
                fuzzy = self._fuzzy_match(text_lower, keyword_lower)
                if fuzzy.matched:
                    result = fuzzy

        if len(self._cache) >= self.max_cache_size:
            self._cache.popitem(last=False)
        self._cache[cache_key] = result
        return result

    def _exact_match(self, text: str, keyword: str) -> MatchResult:
        if keyword in text:
            return MatchResult(True, "exact", 1.0, keyword)
        return NO_MATCH

    def _variations_match(self, text: str, keyword: str, language: str) -> MatchResult:
        if keyword in text:
            return MatchResult(True, "exact", 1.0, keyword)
        for variation in self.get_variations(keyword, language):
            if variation != keyword and variation in text:
                return MatchResult(True, "variation", VARIATION_SIMILARITY, variation)
        return NO_MATCH

    def _fuzzy_match(self, text: str, keyword: str) -> MatchResult:
        words = _TOKEN.findall(text)
        if not words:
            return NO_MATCH

        window = len(keyword.split())
        candidates = words if window <= 1 else [
            " ".join(words[i:i + window]) for i in range(0, len(words) - window + 1)
        ] + words

        best_similarity = 0.0
        best_text = None
        for candidate in candidates:
            similarity = fuzz.ratio(keyword, candidate) / 100.0
            if similarity > best_similarity:
                best_similarity = similarity
                best_text = candidate

        if best_similarity >= self.fuzzy_threshold:
            return MatchResult(True, "fuzzy", best_similarity, best_text)
        return MatchResult(False, "none", best_similarity, best_text)

    def get_variations(self, keyword: str, language: str = "en") -> List[str]:
        keyword = keyword.lower()
        variations: List[str] = [keyword]

        def add(value: str) -> None:
            if value and value not in variations:
                variations.append(value)

        for manual in self.variations.get(keyword, []):
            add(manual)

        if self.auto_plural:
            words = keyword.split(" ")
            head, last = words[:-1], words[-1]
            if last.endswith("s") and len(last) > 2:
                add(" ".join(head + [last[:-1]]))
            elif last.endswith("y") and len(last) > 2:
                add(" ".join(head + [last[:-1] + "ies"]))
            elif not last.endswith("s"):
                add(" ".join(head + [last + "s"]))
            if language == "de" and (last.endswith("er") or last.endswith("en")) and len(last) > 4:
                add(" ".join(head + [last[:-2]]))

        if self.auto_hyphen:
            if " " in keyword and "-" not in keyword:
                add(keyword.replace(" ", "-"))
                add(keyword.replace(" ", ""))
            if "-" in keyword:
                add(keyword.replace("-", " "))
                add(keyword.replace("-", ""))

        # en -> de translations and de -> en reverse lookups
        for english, german_words in self.synonyms.items():
            if keyword == english:
                for german in german_words:
                    add(german)
            elif keyword in german_words:
                add(english)
            elif english in keyword:
                for german in german_words:
                    add(keyword.replace(english, german))

        return variations

    def clear_cache(self) -> None:
        self._cache.clear()
        self.cache_hits = 0
        self.cache_misses = 0

    def get_cache_stats(self) -> Dict[str, float]:
        lookups = self.cache_hits + self.cache_misses
        return {
            "size": len(self._cache),
            "max_size": self.max_cache_size,
            "hits": self.cache_hits,
            "misses": self.cache_misses,
            "hit_rate": (self.cache_hits / lookups) if lookups else 0.0,
        }
