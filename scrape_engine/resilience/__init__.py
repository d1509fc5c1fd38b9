"""Resilience components: retry classification, backoff and rate limiting."""

from scrape_engine.resilience.rate_limiter import DomainRateLimiter, TokenBucket
from scrape_engine.resilience.retry import (
    TRANSIENT_STATUS_CODES,
    RetryDecision,
    RetryPolicy,
    classify,
    parse_retry_after,
)

__all__ = [
    "DomainRateLimiter",
    "RetryDecision",
    "RetryPolicy",
    "TRANSIENT_STATUS_CODES",
    "TokenBucket",
    "classify",
    "parse_retry_after",
]
