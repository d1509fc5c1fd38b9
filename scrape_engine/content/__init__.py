"""Content normalization: decoding, sanitization and field extraction."""

from scrape_engine.content.encoding import charset_from_headers, decode, sniff_charset
from scrape_engine.content.normalizer import (
    ALLOWED_ATTRIBUTES,
    REMOVED_TAGS,
    clean_text,
    extract_date,
    extract_duration,
    extract_number,
    extract_text,
    sanitize,
    strip_html,
)

__all__ = [
    "ALLOWED_ATTRIBUTES",
    "REMOVED_TAGS",
    "charset_from_headers",
    "clean_text",
    "decode",
    "extract_date",
    "extract_duration",
    "extract_number",
    "extract_text",
    "sanitize",
    "sniff_charset",
    "strip_html",
]
