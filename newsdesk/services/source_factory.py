#!/usr/bin/env python3
"""
Source Adapter Factory

Creates source adapters from configuration by dispatching on the source's
`kind` tag, and loads the set of usable sources for a run.
"""

import logging
from typing import Dict, List, Type

from newsdesk.models.source import SourceConfig, SourceKind
from newsdesk.services.api_source import ApiSource
from newsdesk.services.feed_source import FeedSource
from newsdesk.services.search_source import SearchSource
from newsdesk.services.source_context import NewsSource, SourceContext


ADAPTERS: Dict[SourceKind, Type] = {
    SourceKind.GENERIC_FEED: FeedSource,
    SourceKind.QUERY_SEARCH: SearchSource,
    SourceKind.PAGINATED_API: ApiSource,
}


class SourceFactory:
    """
    Factory for source adapters.

    Supports adapter kinds:
    - "generic-feed": FeedSource (any RSS/Atom URL)
    - "query-search": SearchSource (Google News RSS search)
    - "paginated-api": ApiSource (NewsAPI-style JSON paging)
    """

    @staticmethod
    def create_adapter(config: SourceConfig, context: SourceContext) -> NewsSource:
        """
        Create a source adapter for the given configuration.

        Raises:
            ValueError: If the kind has no adapter
        """
        adapter_cls = ADAPTERS.get(config.kind)
        if adapter_cls is None:
            raise ValueError(f"Unknown adapter kind: {config.kind}")
        return adapter_cls(config, context)

    @staticmethod
    def load_sources(configs: List[SourceConfig], context: SourceContext) -> List[NewsSource]:
        """
        Instantiate enabled sources that pass validation, highest priority first.

        Disabled or invalid sources are logged once and skipped for the run.
        """
        logger = logging.getLogger(__name__)
        sources: List[NewsSource] = []

        for config in configs:
            if not config.enabled:
                logger.info(f"Source {config.id} disabled in configuration")
                continue
            adapter = SourceFactory.create_adapter(config, context)
            if not adapter.validate():
                logger.warning(f"⚠️ Source {config.id} failed validation; disabled for this run")
                continue
            sources.append(adapter)
            logger.info(f"✅ Loaded source {config.name} ({config.kind.value}, priority {config.priority})")

        sources.sort(key=lambda s: s.priority, reverse=True)
        logger.info(f"Loaded {len(sources)}/{len(configs)} sources")
        return sources
