"""
Date extraction utilities for publication timestamps.

Upstream dates arrive as RFC 822 strings, ISO strings, feedparser struct_time
tuples or not at all. Every helper here returns a timezone-aware UTC datetime
or None; a missing date is never replaced with "now".
"""

import re
import calendar
import time
from datetime import datetime, timezone
from typing import Any, Optional
import logging

from dateutil import parser as dateutil_parser

logger = logging.getLogger(__name__)

_URL_DATE_PATTERNS = [
    # /2025/10/28/article-title
    (re.compile(r'/(\d{4})/(\d{1,2})/(\d{1,2})/'), "/YYYY/MM/DD/"),
    # /2025-10-28/article-title or /2025-10-28-article
    (re.compile(r'/(\d{4})-(\d{1,2})-(\d{1,2})[-/]'), "/YYYY-MM-DD/"),
    # /article-title-2025-10-28
    (re.compile(r'-(\d{4})-(\d{1,2})-(\d{1,2})'), "-YYYY-MM-DD"),
]
_COMPACT_URL_DATE = re.compile(r'/(\d{4})(\d{2})(\d{2})/')


def to_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_published_date(value: Any) -> Optional[datetime]:
    """
    Parse a publication date from whatever the upstream provided.

    Args:
        value: datetime, time.struct_time, epoch number or date string

    Returns:
        Aware UTC datetime, or None when the value is missing or unparseable
    """
    if value is None or value == "":
        return None

    try:
        if isinstance(value, datetime):
            return to_utc(value)
        if isinstance(value, time.struct_time):
            # feedparser *_parsed fields are always UTC
            return datetime.fromtimestamp(calendar.timegm(value), tz=timezone.utc)
        if isinstance(value, (int, float)):
            return datetime.fromtimestamp(value, tz=timezone.utc)
        if isinstance(value, str):
            if not value.strip():
                return None
            return to_utc(dateutil_parser.parse(value))
    except (ValueError, TypeError, OverflowError, OSError) as e:
        logger.debug(f"Unparseable publication date {value!r}: {e}")
        return None

    logger.debug(f"Unsupported publication date type: {type(value).__name__}")
    return None


def extract_date_from_url(url: str) -> Optional[datetime]:
    """
    Extract publication date from URL patterns commonly used by news sites.

    Supports /2025/10/28/, /2025-10-28/, -2025-10-28 and /20251028/.
    """
    if not url:
        return None

    for pattern, label in _URL_DATE_PATTERNS:
        match = pattern.search(url)
        if match:
            year, month, day = match.groups()
            try:
                dt = datetime(int(year), int(month), int(day), tzinfo=timezone.utc)
                logger.debug(f"Extracted date from URL pattern {label}: {dt.date()}")
                return dt
            except ValueError:
                continue  # Invalid date, try next pattern

    match = _COMPACT_URL_DATE.search(url)
    if match:
        try:
            year, month, day = (int(part) for part in match.groups())
            return datetime(year, month, day, tzinfo=timezone.utc)
        except ValueError:
            pass

    return None


def best_available_date(raw: Any, url: Optional[str] = None) -> Optional[datetime]:
    """Prefer the upstream date, fall back to a date embedded in the URL, else None."""
    parsed = parse_published_date(raw)
    if parsed:
        return parsed
    return extract_date_from_url(url) if url else None


def hours_since(published: Optional[datetime], now: Optional[datetime] = None) -> Optional[float]:
    """Age in hours, negative for future timestamps, None when unknown."""
    if published is None:
        return None
    now = now or datetime.now(timezone.utc)
    return (to_utc(now) - to_utc(published)).total_seconds() / 3600
