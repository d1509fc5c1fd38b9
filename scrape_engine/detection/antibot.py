"""Anti-bot heuristic engine.

Scores a response with three independent checks (status code, body
phrases, response header names). Each check that fires adds its weight; the
sum is clamped to [0, 1] and rounded to two decimals. The detector keeps
running statistics and a bounded history but never feeds them back into the
verdict: the same response always yields the same result.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

from scrape_engine.detection import rules

logger = logging.getLogger(__name__)

DetectionListener = Callable[["DetectionResult"], None]

_HISTORY_SIZE = 100


@dataclass(frozen=True)
class DetectionResult:
    """Verdict for one response."""

    is_bot: bool
    reason: str
    confidence: float
    status_code: int | None = None
    timestamp: float = field(default_factory=time.time)
    signals: tuple[str, ...] = ()
    ruleset_version: str = rules.RULESET_VERSION


class AntiBotDetector:
    """Stateless verdicts plus aggregated detection statistics."""

    def __init__(self) -> None:
        self._listeners: list[DetectionListener] = []
        self._history: deque[DetectionResult] = deque(maxlen=_HISTORY_SIZE)
        self._total_checks = 0
        self._bot_detected = 0
        self._rate_limit_hits = 0

    def subscribe(self, listener: DetectionListener) -> None:
        """Register a callback invoked with every positive detection."""
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    def detect(
        self,
        body: str | bytes | None,
        headers: Mapping[str, str] | None,
        status_code: int | None,
    ) -> DetectionResult:
        signals: list[str] = []
        reasons: list[str] = []
        confidence = 0.0

        if status_code in rules.PROTECTION_STATUS_REASONS:
            signals.append("status")
            reasons.append(rules.PROTECTION_STATUS_REASONS[status_code])
            confidence += rules.STATUS_WEIGHT

        matched = self._match_content(body)
        if matched:
            signals.append("content")
            reasons.append("protection phrases in body: " + ", ".join(matched))
            confidence += rules.CONTENT_WEIGHT

        flagged = sorted(
            name for name in (key.lower() for key in (headers or {})) if name in rules.SUSPICIOUS_HEADERS
        )
        if flagged:
            signals.append("header")
            reasons.append("protection headers: " + ", ".join(flagged))
            confidence += rules.HEADER_WEIGHT

        result = DetectionResult(
            is_bot=bool(signals),
            reason="; ".join(reasons),
            confidence=round(min(confidence, 1.0), 2),
            status_code=status_code,
            signals=tuple(signals),
        )
        self._record(result)
        return result

    @staticmethod
    def _match_content(body: str | bytes | None) -> list[str]:
        if not body:
            return []
        text = body.decode("utf-8", errors="replace") if isinstance(body, bytes) else body
        return [name for name, pattern in rules.BOT_PROTECTION_PATTERNS.items() if pattern.search(text)]

    def _record(self, result: DetectionResult) -> None:
        self._total_checks += 1
        if result.status_code == 429:
            self._rate_limit_hits += 1
        if not result.is_bot:
            return

        self._bot_detected += 1
        self._history.append(result)
        logger.warning(
            "Bot protection detected: %s",
            result.reason,
            extra={"status_code": result.status_code, "confidence": result.confidence},
        )
        for listener in list(self._listeners):
            try:
                listener(result)
            except Exception:  # noqa: BLE001
                logger.exception("Detection listener failed")

    # ------------------------------------------------------------------
    # Recommendations
    # ------------------------------------------------------------------

    @staticmethod
    def recommend(result: DetectionResult) -> list[str]:
        """Map the fired checks to an ordered, de-duplicated action list."""
        actions: list[str] = []
        for signal in result.signals:
            for action in rules.RECOMMENDATIONS.get(signal, ()):
                if action not in actions:
                    actions.append(action)
        return actions

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def get_stats(self) -> dict:
        return {
            "total_checks": self._total_checks,
            "bot_detected": self._bot_detected,
            "rate_limit_hits": self._rate_limit_hits,
            "detection_rate": self._bot_detected / self._total_checks if self._total_checks else 0.0,
            "recent": len(self._history),
            "ruleset_version": rules.RULESET_VERSION,
        }

    def history(self) -> list[DetectionResult]:
        return list(self._history)

    def reset_stats(self) -> None:
        self._history.clear()
        self._total_checks = 0
        self._bot_detected = 0
        self._rate_limit_hits = 0
