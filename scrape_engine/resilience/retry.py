"""Retry classification and backoff timing.

``classify()`` is a pure function of one attempt's outcome: it never looks
at attempt counts or clocks. The bounded attempt loop in the engine owns
those. ``RetryPolicy`` computes how long to wait before the next attempt.

Backoff:
- with a base delay D configured, attempt k waits D * k ms
- without one, each wait is uniformly random in [1000, 3000] ms
- a Retry-After header on 429/503 raises the wait to the advertised value
- every wait is capped at max_delay_ms
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from email.utils import parsedate_to_datetime

from scrape_engine.detection.antibot import DetectionResult
from scrape_engine.errors import FailureKind
from scrape_engine.models.responses import ResponseEnvelope
from scrape_engine.transport.base import TransportFailure

logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES: frozenset[int] = frozenset({408, 429, 500, 502, 503, 504})
RETRY_AFTER_STATUS_CODES: frozenset[int] = frozenset({429, 503})

RANDOM_DELAY_RANGE_MS = (1000, 3000)


@dataclass(frozen=True)
class RetryDecision:
    """Whether an attempt's failure is worth another attempt, and why."""

    retryable: bool
    kind: FailureKind
    reason: str


def classify(
    failure: TransportFailure | None,
    detection: DetectionResult | None = None,
    block_threshold: float = 0.7,
) -> RetryDecision:
    """Decide whether to retry after one attempt.

    A detection at or above *block_threshold* is terminal whatever the
    transport outcome, including 2xx responses.
    """
    if detection is not None and detection.confidence >= block_threshold:
        return RetryDecision(
            retryable=False,
            kind=FailureKind.BOT_DETECTED,
            reason=f"blocked by bot protection (confidence={detection.confidence:.2f}): {detection.reason}",
        )

    if failure is None:
        raise ValueError("classify() needs a failure or a blocking detection")

    if failure.kind in (FailureKind.NETWORK, FailureKind.TIMEOUT):
        return RetryDecision(retryable=True, kind=failure.kind, reason=failure.message)

    if failure.kind == FailureKind.HTTP_ERROR:
        status = failure.status_code
        if status in TRANSIENT_STATUS_CODES:
            return RetryDecision(retryable=True, kind=failure.kind, reason=f"transient HTTP {status}")
        return RetryDecision(retryable=False, kind=failure.kind, reason=f"HTTP {status}")

    return RetryDecision(retryable=False, kind=failure.kind, reason=failure.message)


def parse_retry_after(value: str | None) -> float | None:
    """Parse a Retry-After header (delta seconds or HTTP-date) into seconds."""
    if not value:
        return None
    value = value.strip()
    if value.isdigit():
        return float(value)
    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if retry_at is None:
        return None
    return max(0.0, retry_at.timestamp() - time.time())


class RetryPolicy:
    """Backoff schedule for the engine's bounded attempt loop.

    Args:
        max_attempts: Total transport attempts per fetch, first one included.
        base_delay_ms: Linear base delay; None selects the randomized range.
        max_delay_ms: Cap for any single wait.
        rng: Random source, injectable for tests.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay_ms: int | None = None,
        max_delay_ms: int = 30000,
        rng: random.Random | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms
        self._rng = rng or random.Random()

    def delay_for(self, attempt: int, envelope: ResponseEnvelope | None = None) -> float:
        """Seconds to wait after failed attempt number *attempt* (1-based)."""
        if self.base_delay_ms is not None:
            delay_ms = float(self.base_delay_ms * attempt)
        else:
            delay_ms = self._rng.uniform(*RANDOM_DELAY_RANGE_MS)

        if envelope is not None and envelope.status_code in RETRY_AFTER_STATUS_CODES:
            retry_after = parse_retry_after(envelope.headers.get("retry-after"))
            if retry_after is not None:
                delay_ms = max(delay_ms, retry_after * 1000)
                logger.debug("Honoring Retry-After of %.1fs", retry_after)

        return min(delay_ms, float(self.max_delay_ms)) / 1000
