"""
Article models shared by every pipeline stage.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class Relevance:
    """Derived relevance record attached by the relevance engine."""

    score: float
    breakdown: Dict[str, float] = field(default_factory=dict)
    confidence: float = 0.0
    reasoning: str = ""
    source: str = ""
    age: str = "unknown"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": round(self.score, 4),
            "breakdown": {k: round(v, 4) for k, v in self.breakdown.items()},
            "metadata": {
                "confidence": round(self.confidence, 4),
                "reasoning": self.reasoning,
                "source": self.source,
                "age": self.age,
            },
        }


@dataclass(frozen=True)
class Article:
    """Represents a normalized article from any source."""

    title: str
    link: str
    source: str
    published_date: Optional[datetime] = None
    description: str = ""
    source_id: str = ""
    image: Optional[str] = None
    relevance: Optional[Relevance] = None

    def __post_init__(self):
        if not self.title or not self.title.strip():
            raise ValueError("Article requires a non-empty title")
        if not self.link or not self.link.strip():
            raise ValueError("Article requires a non-empty link")

    def __hash__(self):
        """Identity for deduplication is link plus lowercased title."""
        return hash((self.link, self.title.strip().lower()))

    def __eq__(self, other):
        if not isinstance(other, Article):
            return False
        return (
            self.link == other.link
            and self.title.strip().lower() == other.title.strip().lower()
        )

    @property
    def text(self) -> str:
        """Title and description combined, as scanned by scorers and filters."""
        return f"{self.title} {self.description or ''}".strip()

    @property
    def score(self) -> float:
        return self.relevance.score if self.relevance else 0.0

    def with_relevance(self, relevance: Relevance) -> "Article":
        return replace(self, relevance=relevance)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "title": self.title,
            "link": self.link,
            "source": self.source,
            "source_id": self.source_id,
            "published_date": self.published_date.isoformat() if self.published_date else None,
            "description": self.description,
            "image": self.image,
        }
        if self.relevance:
            data["relevance"] = self.relevance.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Article":
        published = data.get("published_date")
        if isinstance(published, str):
            published = datetime.fromisoformat(published)
        return cls(
            title=data["title"],
            link=data["link"],
            source=data.get("source", ""),
            published_date=published,
            description=data.get("description", ""),
            source_id=data.get("source_id", ""),
            image=data.get("image"),
        )
