import logging
from typing import Dict, List, Optional

from fuzzywuzzy import fuzz

from newsdesk.models.article import Article
from newsdesk.utils.text_cleaning import normalize_title


class Deduplicator:
    """
    Title-similarity deduplication.

    Two articles are duplicates when their links are equal or their normalized
    titles are at least `threshold` similar. When a later article duplicates a
    kept one and is a better version, it takes the kept article's position.
    """

    def __init__(self, threshold: float = 0.8) -> None:
        if not 0.0 <= threshold <= 1.0:
            raise ValueError(f"Similarity threshold must be within [0, 1], got {threshold}")
        self.threshold = threshold
        self.stats: Dict[str, int] = {
            "total_processed": 0,
            "link_duplicates": 0,
            "title_duplicates": 0,
            "replaced": 0,
        }
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def similarity(a: str, b: str) -> float:
        """Symmetric title similarity in [0, 1]."""
        left, right = normalize_title(a), normalize_title(b)
        if not left and not right:
            return 1.0
        if not left or not right:
            return 0.0
        if left == right:
            return 1.0
        return fuzz.token_sort_ratio(left, right) / 100.0

    def _match_kind(self, a: Article, b: Article) -> Optional[str]:
        if a.link == b.link:
            return "link"
        if self.similarity(a.title, b.title) >= self.threshold:
            return "title"
        return None

    def is_duplicate(self, a: Article, b: Article) -> bool:
        return self._match_kind(a, b) is not None

    @staticmethod
    def is_better_version(candidate: Article, existing: Article) -> bool:
        """
        Prefer a description over none, then a substantially longer
        description, then the more recent publication date.
        """
        candidate_desc = (candidate.description or "").strip()
        existing_desc = (existing.description or "").strip()

        if candidate_desc and not existing_desc:
            return True
        if existing_desc and not candidate_desc:
            return False
        if len(candidate_desc) > len(existing_desc) * 1.5:
            return True
        if len(existing_desc) > len(candidate_desc) * 1.5:
            return False

        if candidate.published_date and existing.published_date:
            return candidate.published_date > existing.published_date
        return False

    def deduplicate(self, articles: List[Article]) -> List[Article]:
        """Return unique articles, keeping first-seen positions."""
        unique: List[Article] = []

        for article in articles:
            self.stats["total_processed"] += 1
            duplicate_index = None
            for index, kept in enumerate(unique):
                kind = self._match_kind(article, kept)
                if kind:
                    self.stats[f"{kind}_duplicates"] += 1
                    duplicate_index = index
                    break

            if duplicate_index is None:
                unique.append(article)
            elif self.is_better_version(article, unique[duplicate_index]):
                self.logger.debug(f"Replacing '{unique[duplicate_index].title[:60]}' with better version")
                unique[duplicate_index] = article
                self.stats["replaced"] += 1
                self._absorb(unique, duplicate_index)

        removed = len(articles) - len(unique)
        if removed:
            self.logger.info(f"🔄 Removed {removed} duplicates ({len(unique)} unique)")
        return unique

    def _absorb(self, unique: List[Article], index: int) -> None:
        """
        Merge a replacement with any other kept article it now duplicates.

        The survivor of each merge takes the earlier position, so the kept list
        stays pairwise distinct and a second pass returns it unchanged.
        """
        while True:
            current = unique[index]
            for other_index, other in enumerate(unique):
                if other_index == index:
                    continue
                kind = self._match_kind(current, other)
                if kind:
                    break
            else:
                return

            self.stats[f"{kind}_duplicates"] += 1
            survivor = other if self.is_better_version(other, current) else current
            first, second = sorted((index, other_index))
            unique[first] = survivor
            del unique[second]
            if survivor is other:
                # other was already distinct from every remaining entry
                return
            index = first

    def find_duplicate_groups(self, articles: List[Article]) -> List[List[Article]]:
        """Groups of two or more mutually-duplicate articles, anchored on the first seen."""
        groups: List[List[Article]] = []
        grouped = set()

        for i, anchor in enumerate(articles):
            if i in grouped:
                continue
            group = [anchor]
            for j in range(i + 1, len(articles)):
                if j not in grouped and self.is_duplicate(anchor, articles[j]):
                    group.append(articles[j])
                    grouped.add(j)
            if len(group) > 1:
                grouped.add(i)
                groups.append(group)
        return groups

    def get_statistics(self) -> Dict[str, int]:
        return dict(self.stats)

    def reset_statistics(self) -> None:
        for key in self.stats:
            self.stats[key] = 0
