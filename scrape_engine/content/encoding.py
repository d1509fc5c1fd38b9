"""Charset detection and byte-to-text decoding.

``decode()`` never raises: a missing or unknown charset falls back to the
default charset and undecodable bytes are replaced. Detection order:

1. explicit override (domain policy)
2. ``Content-Type`` header ``charset=`` parameter
3. byte-order mark
4. strict decode with the default charset
5. ``<meta charset>`` sniff, then chardet (confidence > 0.7)
6. default charset with replacement characters
"""

from __future__ import annotations

import codecs
import logging
import re
from collections.abc import Mapping

import chardet

logger = logging.getLogger(__name__)

DEFAULT_CHARSET = "utf-8"

_HEADER_CHARSET_RE = re.compile(r"charset\s*=\s*[\"']?([\w.:-]+)", re.IGNORECASE)
_META_CHARSET_RE = re.compile(rb"<meta[^>]+charset\s*=\s*[\"']?([\w.:-]+)", re.IGNORECASE)

_BOMS: tuple[tuple[bytes, str], ...] = (
    (codecs.BOM_UTF8, "utf-8-sig"),
    (codecs.BOM_UTF16_LE, "utf-16"),
    (codecs.BOM_UTF16_BE, "utf-16"),
)

_SNIFF_BYTES = 2048


def normalize_charset(name: str | None) -> str | None:
    """Return Python's canonical codec name for *name*, or None if unknown."""
    if not name:
        return None
    try:
        return codecs.lookup(name.strip().strip("\"'")).name
    except LookupError:
        return None


def charset_from_headers(headers: Mapping[str, str] | None) -> str | None:
    """Extract the raw charset parameter from a Content-Type header."""
    if not headers:
        return None
    content_type = next(
        (value for key, value in headers.items() if key.lower() == "content-type"),
        "",
    )
    match = _HEADER_CHARSET_RE.search(content_type)
    return match.group(1) if match else None


def bom_charset(body: bytes) -> str | None:
    for bom, name in _BOMS:
        if body.startswith(bom):
            return name
    return None


def sniff_charset(body: bytes) -> str | None:
    """Guess a charset from the body: BOM, then meta tag, then chardet."""
    bom = bom_charset(body)
    if bom:
        return bom

    sample = body[:_SNIFF_BYTES]
    match = _META_CHARSET_RE.search(sample)
    if match:
        meta = normalize_charset(match.group(1).decode("ascii", errors="ignore"))
        if meta:
            return meta

    detected = chardet.detect(sample)
    if detected and detected.get("encoding") and (detected.get("confidence") or 0) > 0.7:
        return normalize_charset(detected["encoding"])
    return None


def decode(
    body: bytes | str | None,
    headers: Mapping[str, str] | None = None,
    default_charset: str = DEFAULT_CHARSET,
    *,
    override: str | None = None,
) -> str:
    """Decode a response body to text without ever raising."""
    if body is None:
        return ""
    if isinstance(body, str):
        return body
    if not body:
        return ""

    default = normalize_charset(default_charset) or DEFAULT_CHARSET

    declared = override or charset_from_headers(headers)
    charset = normalize_charset(declared)
    if declared and charset is None:
        logger.debug("Unknown charset %r; falling back to detection", declared)

    if charset is not None:
        if charset == "utf-8":
            # Tolerates a leading BOM, identical otherwise
            charset = "utf-8-sig"
        try:
            return body.decode(charset)
        except (UnicodeDecodeError, LookupError):
            logger.debug("Body is not valid %s; decoding as %s with replacement", charset, default)
            return body.decode(default, errors="replace")

    bom = bom_charset(body)
    if bom:
        return body.decode(bom, errors="replace")

    try:
        return body.decode(default)
    except UnicodeDecodeError:
        pass

    sniffed = sniff_charset(body)
    if sniffed:
        try:
            return body.decode(sniffed)
        except (UnicodeDecodeError, LookupError):
            logger.debug("Sniffed charset %s did not decode cleanly", sniffed)

    return body.decode(default, errors="replace")
