"""
Text helpers shared by the source adapters and hard filters.
"""

import html
import re
import warnings
from typing import Optional

from bs4 import BeautifulSoup, MarkupResemblesLocatorWarning

# Feed descriptions are frequently plain text or bare URLs
warnings.filterwarnings("ignore", category=MarkupResemblesLocatorWarning)

DESCRIPTION_MAX_LENGTH = 200
_WHITESPACE = re.compile(r'\s+')
_NON_ALNUM = re.compile(r'[^a-z0-9\s]')


def strip_markup(text: Optional[str]) -> str:
    """Remove HTML tags and decode entities, collapsing whitespace."""
    if not text:
        return ""
    if '<' in text and '>' in text:
        soup = BeautifulSoup(text, 'html.parser')
        for element in soup(['script', 'style']):
            element.decompose()
        text = soup.get_text(' ', strip=True)
    text = html.unescape(text)
    return _WHITESPACE.sub(' ', text).strip()


def truncate(text: str, max_length: int = DESCRIPTION_MAX_LENGTH) -> str:
    if len(text) <= max_length:
        return text
    return text[:max_length - 3].rstrip() + "..."


def clean_description(text: Optional[str], max_length: int = DESCRIPTION_MAX_LENGTH) -> str:
    """Markup-free, entity-decoded, length-capped description."""
    return truncate(strip_markup(text), max_length)


def normalize_title(title: Optional[str], max_length: int = 100) -> str:
    """Lowercase, drop punctuation and collapse whitespace for similarity checks."""
    if not title:
        return ""
    cleaned = _NON_ALNUM.sub(' ', html.unescape(title).lower())
    return _WHITESPACE.sub(' ', cleaned).strip()[:max_length]


def word_count(text: Optional[str]) -> int:
    """Whitespace-split token count after stripping markup."""
    stripped = strip_markup(text)
    return len(stripped.split()) if stripped else 0
