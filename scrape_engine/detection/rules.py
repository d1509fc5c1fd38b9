"""Versioned anti-bot heuristic tables.

Bump RULESET_VERSION whenever a table below changes so detection results
recorded in logs can be traced back to the rules that produced them.
"""

from __future__ import annotations

import re

RULESET_VERSION = "2024.1"

# Check weights; contributions are summed and clamped to 1.0
STATUS_WEIGHT = 0.4
CONTENT_WEIGHT = 0.3
HEADER_WEIGHT = 0.2

PROTECTION_STATUS_REASONS: dict[int, str] = {
    403: "Forbidden: access denied by the server",
    429: "Too Many Requests: rate limit exceeded",
    503: "Service Unavailable: possible challenge page",
    520: "Cloudflare: web server returned an unknown error",
    521: "Cloudflare: web server is down",
    522: "Cloudflare: connection timed out",
    523: "Cloudflare: origin is unreachable",
    524: "Cloudflare: a timeout occurred",
}

BOT_PROTECTION_PATTERNS: dict[str, re.Pattern[str]] = {
    name: re.compile(pattern, re.IGNORECASE)
    for name, pattern in {
        "cloudflare": r"cf-browser-verification|cloudflare[-\s]?ray[-\s]?id|checking your browser",
        "recaptcha": r"g-recaptcha|recaptcha",
        "generic": r"bot[-\s]?detect|anti[-\s]?bot|robot[-\s]?check|automated[-\s]?request",
        "blocked": r"access[-\s]?denied|\bbanned\b|\bblacklisted\b|you have been blocked",
        "verification": r"please[-\s]?verify|human[-\s]?verification|prove[-\s]?you[-\s]?are[-\s]?human",
        "rate_limit": r"too[-\s]?many[-\s]?requests|rate[-\s]?limit(?:ed)?\b|quota exceeded",
        "js_challenge": r"javascript[-\s]?(?:is\s)?required|enable[-\s]?javascript|js[-\s]?challenge",
        "browser_check": r"browser[-\s]?check|unsupported[-\s]?browser|update[-\s]?your[-\s]?browser",
    }.items()
}

# Markers of an interstitial challenge page that a browser must wait out
CHALLENGE_MARKERS: re.Pattern[str] = re.compile(
    r"cf-browser-verification|challenge-platform|cf-challenge|checking your browser|just a moment\.\.\.",
    re.IGNORECASE,
)

# Response header names set by bot-protection and rate-limiting layers
SUSPICIOUS_HEADERS: frozenset[str] = frozenset(
    {
        "cf-mitigated",
        "cf-chl-bypass",
        "cf-ray",
        "x-sucuri-id",
        "x-sucuri-block",
        "x-datadome",
        "x-datadome-cid",
        "x-amzn-waf-action",
        "x-iinfo",
        "x-ratelimit-remaining",
        "x-ratelimit-limit",
        "retry-after",
    }
)

# Recommendation vocabulary, in the order recommend() emits them
INCREASE_SPACING = "increase request spacing"
ROTATE_PROXY = "rotate proxy"
CHANGE_HEADERS = "change identifying headers"
ROTATE_IDENTITY = "rotate identity string"

RECOMMENDATIONS: dict[str, tuple[str, ...]] = {
    "status": (INCREASE_SPACING, ROTATE_PROXY),
    "content": (CHANGE_HEADERS, ROTATE_IDENTITY),
    "header": (CHANGE_HEADERS,),
}
