"""Error taxonomy for the scraping engine.

All engine-specific errors extend ScrapeEngineError. Transport attempts never
raise for expected failures: they return a ``TransportFailure`` value tagged
with a ``FailureKind`` which the orchestrator classifies before deciding to
retry. Only the terminal outcome is raised to callers, as a ``FetchError``.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from scrape_engine.detection.antibot import DetectionResult


class FailureKind(str, Enum):
    """Classified failure kinds."""

    NETWORK = "network"
    TIMEOUT = "timeout"
    HTTP_ERROR = "http_error"
    CHALLENGE_BLOCKED = "challenge_blocked"
    BOT_DETECTED = "bot_detected"
    CACHE_CORRUPT = "cache_corrupt"
    DECODE_FAILURE = "decode_failure"


# ---------------------------------------------------------------------------
# Error hierarchy
# ---------------------------------------------------------------------------


class ScrapeEngineError(Exception):
    """Base error for all scraping engine errors."""

    message: str = "Scraping engine error"

    def __init__(self, message: str | None = None, **kwargs: object) -> None:
        self.message = message or self.__class__.message
        self.details = kwargs
        super().__init__(self.message)


class InvalidUrlError(ScrapeEngineError):
    """URL is not an absolute http(s) URL or targets a blocked host."""

    message = "Invalid target URL"


class FetchError(ScrapeEngineError):
    """Terminal outcome of a fetch.

    Carries the final failure kind, a human-readable reason, how many
    transport attempts were made, the total elapsed time and, when the
    last response was classified, the anti-bot detection result.
    """

    message = "Fetch failed"

    def __init__(
        self,
        kind: FailureKind,
        reason: str,
        *,
        url: str | None = None,
        attempts: int = 0,
        elapsed_ms: float = 0.0,
        status_code: int | None = None,
        detection: "DetectionResult | None" = None,
    ) -> None:
        self.kind = kind
        self.reason = reason
        self.url = url
        self.attempts = attempts
        self.elapsed_ms = elapsed_ms
        self.status_code = status_code
        self.detection = detection
        super().__init__(
            f"{kind.value}: {reason} (attempts={attempts}, elapsed_ms={elapsed_ms:.0f})",
            url=url,
            status_code=status_code,
        )
