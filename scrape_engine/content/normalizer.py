"""Markup sanitization and text/number/date/duration extraction.

Handles:
- Removal of script-like elements (script, iframe, object, embed, style)
- Attribute stripping down to a per-element allow-list
- HTML tag stripping and whitespace normalization
- Best-effort number, date and duration extraction

Extraction helpers return ``None`` when nothing matches; callers treat that
as an expected outcome.
"""

from __future__ import annotations

import re
from datetime import date

from bs4 import BeautifulSoup, Comment

# Regex for stripping HTML tags
_HTML_TAG_RE = re.compile(r"<[^>]+>")
_WHITESPACE_RE = re.compile(r"\s+")

REMOVED_TAGS: tuple[str, ...] = ("script", "noscript", "iframe", "object", "embed", "style")

ALLOWED_ATTRIBUTES: dict[str, frozenset[str]] = {
    "a": frozenset({"href", "title"}),
    "img": frozenset({"src", "alt", "title"}),
    "div": frozenset({"id", "class"}),
    "span": frozenset({"id", "class"}),
    "p": frozenset({"id", "class"}),
}

_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")

_DATE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"(?<!\d)(\d{4})-(\d{1,2})-(\d{1,2})(?!\d)"),
    re.compile(r"(?<!\d)(\d{4})/(\d{1,2})/(\d{1,2})(?!\d)"),
    re.compile(r"(?<!\d)(\d{4})\.(\d{1,2})\.(\d{1,2})(?!\d)"),
    re.compile(r"(\d{4})\s*年\s*(\d{1,2})\s*月\s*(\d{1,2})\s*日"),
)

_HOURS_RE = re.compile(r"(\d+)\s*(?:小时|小時|時間|hours?|hrs?|h(?![a-z]))", re.IGNORECASE)
_MINUTES_RE = re.compile(r"(\d+)\s*(?:分钟|分鐘|分|minutes?|mins?|m(?![a-z]))", re.IGNORECASE)
_CLOCK_RE = re.compile(r"(?<!\d)(\d{1,2}):(\d{2}):(\d{2})(?!\d)")
_BARE_NUMBER_RE = re.compile(r"\d+")


def strip_html(text: str) -> str:
    """Strip HTML tags from a string."""
    return _HTML_TAG_RE.sub("", text)


def clean_text(text: str | None) -> str:
    """Collapse runs of whitespace into a single space and trim."""
    if not text:
        return ""
    return _WHITESPACE_RE.sub(" ", text).strip()


def sanitize(markup: str) -> str:
    """Remove script-like elements and disallowed attributes from *markup*."""
    soup = BeautifulSoup(markup, "html.parser")

    for tag in soup.find_all(REMOVED_TAGS):
        tag.decompose()

    for comment in soup.find_all(string=lambda node: isinstance(node, Comment)):
        comment.extract()

    for tag in soup.find_all(True):
        allowed = ALLOWED_ATTRIBUTES.get(tag.name, frozenset())
        tag.attrs = {name: value for name, value in tag.attrs.items() if name in allowed}

    return str(soup)


def extract_text(markup: str) -> str:
    """Sanitize *markup*, drop all tags and return whitespace-normalized text."""
    soup = BeautifulSoup(sanitize(markup), "html.parser")
    return clean_text(soup.get_text(" "))


def extract_number(text: str | None) -> float | None:
    """Return the first number in *text*, or None."""
    if not text:
        return None
    match = _NUMBER_RE.search(text)
    return float(match.group(0)) if match else None


def extract_date(text: str | None) -> str | None:
    """Return the first valid date in *text* as ``YYYY-MM-DD``, or None."""
    if not text:
        return None
    for pattern in _DATE_PATTERNS:
        for match in pattern.finditer(text):
            year, month, day = (int(group) for group in match.groups())
            try:
                return date(year, month, day).isoformat()
            except ValueError:
                continue
    return None


def extract_duration(text: str | None) -> int | None:
    """Return a duration in whole minutes, or None.

    Understands ``2小时30分钟``, ``120分``, ``1h30m``, ``95 min``,
    ``01:58:00`` and a bare number (taken as minutes).
    """
    if not text:
        return None

    clock = _CLOCK_RE.search(text)
    if clock:
        hours, minutes, seconds = (int(group) for group in clock.groups())
        return hours * 60 + minutes + (1 if seconds >= 30 else 0)

    hours_match = _HOURS_RE.search(text)
    minutes_match = _MINUTES_RE.search(text)
    if hours_match or minutes_match:
        hours = int(hours_match.group(1)) if hours_match else 0
        minutes = int(minutes_match.group(1)) if minutes_match else 0
        return hours * 60 + minutes

    bare = _BARE_NUMBER_RE.search(text)
    return int(bare.group(0)) if bare else None
