"""
Source configuration models.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List


class SourceKind(Enum):
    """Closed set of adapter kinds"""
    GENERIC_FEED = "generic-feed"
    QUERY_SEARCH = "query-search"
    PAGINATED_API = "paginated-api"


# Cache TTL class used for each adapter kind
CACHE_CLASS_BY_KIND = {
    SourceKind.GENERIC_FEED: "rss",
    SourceKind.QUERY_SEARCH: "rss",
    SourceKind.PAGINATED_API: "newsapi",
}


@dataclass
class SourceConfig:
    """A configured origin of candidate articles. Immutable during a run."""
    id: str
    name: str
    kind: SourceKind
    enabled: bool = True
    priority: int = 1
    authority: float = 0.4
    settings: Dict[str, Any] = field(default_factory=dict)
    # Environment placeholders in settings that did not resolve
    unresolved: List[str] = field(default_factory=list)

    @property
    def cache_class(self) -> str:
        return CACHE_CLASS_BY_KIND[self.kind]

    def setting(self, key: str, default: Any = None) -> Any:
        return self.settings.get(key, default)
