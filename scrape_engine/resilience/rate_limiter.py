"""Per-domain token bucket rate limiter.

Enforces per-domain request spacing using a token bucket algorithm. Each
domain gets its own bucket sized from its ``DomainPolicy`` (or the default
policy). Supports adaptive backoff when a domain answers 429.

Key behaviors:
- acquire() blocks (async sleep) until a token is available and returns
  how long it waited
- reduce_rate() lowers the refill rate for a cooldown window; reductions
  never compound because they are applied to the original rate
- After the cooldown expires, the original rate is restored
- Rate limiting on one domain does not affect other domains
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass

from scrape_engine.config.domain_policies import DomainPolicy, load_domain_policies, policy_for

logger = logging.getLogger(__name__)


@dataclass
class TokenBucket:
    """Token bucket state for a single domain."""

    domain: str
    tokens: float
    max_tokens: int
    refill_rate: float  # tokens per second
    last_refill: float  # time.monotonic()
    reduced_until: float | None = None
    original_refill_rate: float = 0.0
    waits: int = 0

    def __post_init__(self) -> None:
        if self.original_refill_rate == 0.0:
            self.original_refill_rate = self.refill_rate


class DomainRateLimiter:
    """Per-domain token buckets driven by domain policies.

    Args:
        policies: Domain → policy map; the ``default`` key covers unknown domains.
        backoff_seconds: Default cooldown window for reduce_rate().
    """

    def __init__(
        self,
        policies: dict[str, DomainPolicy] | None = None,
        backoff_seconds: float = 60,
    ) -> None:
        self._policies: dict[str, DomainPolicy] = dict(policies or {})
        self._policies.setdefault("default", DomainPolicy())
        self._backoff_seconds = backoff_seconds
        self._buckets: dict[str, TokenBucket] = {}
        self._lock = asyncio.Lock()

    def _get_or_create_bucket(self, domain: str) -> TokenBucket:
        if domain not in self._buckets:
            policy = policy_for(self._policies, domain)
            tokens = policy.tokens_per_interval
            interval = policy.interval_seconds
            refill_rate = tokens / interval if interval > 0 else float(tokens)

            self._buckets[domain] = TokenBucket(
                domain=domain,
                tokens=float(tokens),
                max_tokens=tokens,
                refill_rate=refill_rate,
                last_refill=time.monotonic(),
                original_refill_rate=refill_rate,
            )

        return self._buckets[domain]

    def _refill(self, bucket: TokenBucket) -> None:
        now = time.monotonic()

        if bucket.reduced_until is not None and now >= bucket.reduced_until:
            bucket.refill_rate = bucket.original_refill_rate
            bucket.reduced_until = None
            logger.info(
                "Rate restored for domain %s to %.4f tokens/s",
                bucket.domain,
                bucket.refill_rate,
                extra={"target_domain": bucket.domain},
            )

        elapsed = now - bucket.last_refill
        if elapsed <= 0:
            return

        bucket.tokens = min(bucket.tokens + elapsed * bucket.refill_rate, float(bucket.max_tokens))
        bucket.last_refill = now

    async def acquire(self, domain: str) -> float:
        """Block until a token is available for *domain*; return seconds waited."""
        waited = 0.0
        while True:
            async with self._lock:
                bucket = self._get_or_create_bucket(domain)
                self._refill(bucket)

                if bucket.tokens >= 1.0:
                    bucket.tokens -= 1.0
                    return waited

                wait_time = (1.0 - bucket.tokens) / bucket.refill_rate if bucket.refill_rate > 0 else 1.0
                bucket.waits += 1

            # Sleep outside the lock so other domains can proceed
            await asyncio.sleep(wait_time)
            waited += wait_time

    def reduce_rate(
        self,
        domain: str,
        factor: float = 0.5,
        duration_seconds: float | None = None,
    ) -> None:
        """Lower the refill rate for *domain* for a cooldown window (429 backoff)."""
        duration = self._backoff_seconds if duration_seconds is None else duration_seconds
        bucket = self._get_or_create_bucket(domain)

        bucket.refill_rate = bucket.original_refill_rate * factor
        bucket.reduced_until = time.monotonic() + duration

        logger.warning(
            "Rate reduced for domain %s: %.4f → %.4f tokens/s for %.0fs",
            domain,
            bucket.original_refill_rate,
            bucket.refill_rate,
            duration,
            extra={"target_domain": domain},
        )

    def get_stats(self, domain: str | None = None) -> dict:
        """Stats for one domain, or for every tracked domain when omitted."""
        if domain is None:
            return {name: self.get_stats(name) for name in list(self._buckets)}

        if domain not in self._buckets:
            policy = policy_for(self._policies, domain)
            return {
                "current_tokens": float(policy.tokens_per_interval),
                "max_tokens": policy.tokens_per_interval,
                "refill_rate": policy.tokens_per_interval / policy.interval_seconds,
                "is_reduced": False,
                "waits": 0,
            }

        bucket = self._buckets[domain]
        self._refill(bucket)
        return {
            "current_tokens": bucket.tokens,
            "max_tokens": bucket.max_tokens,
            "refill_rate": bucket.refill_rate,
            "is_reduced": bucket.reduced_until is not None,
            "waits": bucket.waits,
        }

    def set_policies(self, policies: dict[str, DomainPolicy]) -> None:
        """Replace policies; buckets of affected domains are rebuilt lazily."""
        self._policies = dict(policies)
        self._policies.setdefault("default", DomainPolicy())
        for domain in list(self._buckets):
            if domain in self._policies:
                del self._buckets[domain]

    def load_policies(self, yaml_path: str) -> None:
        """Load per-domain overrides from a YAML file."""
        self.set_policies(load_domain_policies(yaml_path))
        logger.info("Loaded rate limit policies for %d domains from %s", len(self._policies), yaml_path)
