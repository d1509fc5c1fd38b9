"""Structured JSON logging configuration.

Configures Python logging to emit JSON-formatted log entries with required
fields: level, timestamp, logger, message. Fetch-specific fields are added
contextually through ``extra``: target_url, target_domain, proxy_used,
attempt, failure_kind, status_code for attempts; duration_ms and confidence
for completions and detections.

SECURITY: Never logs proxy passwords, cookie values or auth tokens.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone


# Patterns that should be redacted from log output
_SENSITIVE_PATTERNS = re.compile(
    r"(api.key|secret|password|token|credential|authorization|cookie)"
    r"[\s]*[=:]\s*\S+",
    re.IGNORECASE,
)

# user:password@ in proxy URLs
_URL_CREDENTIALS = re.compile(r"(?P<scheme>[a-z0-9+.-]+://)[^/@\s:]+:[^/@\s]+@", re.IGNORECASE)

_CONTEXT_FIELDS = (
    "target_url",
    "target_domain",
    "proxy_used",
    "attempt",
    "failure_kind",
    "status_code",
    "duration_ms",
    "confidence",
)


class JsonFormatter(logging.Formatter):
    """Formats log records as JSON with structured fields.

    Each entry contains at minimum: level, timestamp, logger, message.
    Additional fields can be attached via the ``extra`` dict on log calls.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": self._sanitize(record.getMessage()),
        }

        for name in _CONTEXT_FIELDS:
            if hasattr(record, name):
                value = getattr(record, name)
                entry[name] = self._sanitize(value) if isinstance(value, str) else value

        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self._sanitize(
                self.formatException(record.exc_info)
            )

        return json.dumps(entry, default=str)

    @staticmethod
    def _sanitize(text: str) -> str:
        """Remove sensitive values from log text."""
        text = _URL_CREDENTIALS.sub(r"\g<scheme>[REDACTED]@", text)
        return _SENSITIVE_PATTERNS.sub("[REDACTED]", text)


def configure_logging(level: str = "INFO") -> None:
    """Configure the root logger with JSON formatting.

    Parameters
    ----------
    level:
        Log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    root.handlers.clear()

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root.addHandler(handler)
