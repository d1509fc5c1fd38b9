"""Scraping engine: orchestrates a single fetch and batches of fetches.

Coordinates the full lifecycle of one fetch through the pipeline:
URL validation → cache lookup → per-domain rate-limit token → transport
dispatch (proxy selection, cookie injection) → anti-bot classification →
retry/backoff decision → cookie capture → decode → cache store.

Every collaborator (proxy pool, cookie store, cache, detector, rate limiter,
identity, transports) is owned by the engine instance and can be injected
through the constructor, so engines never share state and tests run without
network access.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections.abc import Iterable
from dataclasses import replace
from typing import Any

from scrape_engine.cache.response_cache import ResponseCache, make_cache_key
from scrape_engine.config.domain_policies import DomainPolicy, load_domain_policies, policy_for
from scrape_engine.config.settings import EngineSettings
from scrape_engine.content.encoding import decode
from scrape_engine.detection.antibot import AntiBotDetector, DetectionResult
from scrape_engine.detection.rules import ROTATE_IDENTITY
from scrape_engine.errors import FailureKind, FetchError, InvalidUrlError, ScrapeEngineError
from scrape_engine.models.requests import FetchOptions, RequestDescriptor
from scrape_engine.models.responses import FetchResult, ResponseEnvelope
from scrape_engine.proxy.manager import ProxyPool
from scrape_engine.resilience.rate_limiter import DomainRateLimiter
from scrape_engine.resilience.retry import RetryPolicy, classify
from scrape_engine.session.cookies import CookieStore
from scrape_engine.transport.base import Transport, TransportFailure
from scrape_engine.transport.browser import BrowserTransport
from scrape_engine.transport.direct import DirectTransport
from scrape_engine.transport.identity import IdentityRotator
from scrape_engine.transport.policy import TransportPolicy
from scrape_engine.validators.url_validator import validate_url

logger = logging.getLogger(__name__)


class ScrapingEngine:
    """Resilient fetcher for metadata scraping.

    Usage::

        async with ScrapingEngine() as engine:
            result = await engine.fetch("https://www.javbus.com/ABC-123")
            print(result.body)
    """

    def __init__(
        self,
        settings: EngineSettings | None = None,
        *,
        transport: Transport | None = None,
        challenge_transport: Transport | None = None,
        proxy_pool: ProxyPool | None = None,
        cookie_store: CookieStore | None = None,
        cache: ResponseCache | None = None,
        detector: AntiBotDetector | None = None,
        rate_limiter: DomainRateLimiter | None = None,
        identity: IdentityRotator | None = None,
        domain_policies: dict[str, DomainPolicy] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._settings = settings or EngineSettings()
        s = self._settings

        default_policy = DomainPolicy(
            tokens_per_interval=s.rate_limit_tokens,
            interval_seconds=s.rate_limit_interval_seconds,
        )
        if domain_policies is None:
            domain_policies = load_domain_policies(s.domain_policies_path, default=default_policy)
        self._policies: dict[str, DomainPolicy] = {"default": default_policy, **domain_policies}

        if proxy_pool is None:
            proxy_pool = ProxyPool(failure_threshold=s.proxy_failure_threshold)
            if s.proxy_endpoints:
                proxy_pool.initialize(s.proxy_endpoints)
        self._proxy_pool = proxy_pool
        self._cookies = cookie_store or CookieStore(max_age_seconds=s.cookie_max_age_days * 86400)
        self._cache = cache or ResponseCache(ttl_seconds=s.cache_ttl_seconds, max_entries=s.cache_max_entries)
        self._detector = detector or AntiBotDetector()
        self._rate_limiter = rate_limiter or DomainRateLimiter(
            self._policies,
            backoff_seconds=s.rate_limit_backoff_seconds,
        )
        self._identity = identity or IdentityRotator(rng=rng)
        self._retry = RetryPolicy(
            max_attempts=s.max_attempts,
            base_delay_ms=s.retry_base_delay_ms,
            max_delay_ms=s.max_retry_delay_ms,
            rng=rng,
        )

        self._direct = self._wrap(transport or DirectTransport())
        self._challenge_transport = challenge_transport
        self._challenge: TransportPolicy | None = None

        self._stats = {
            "requests": 0,
            "cache_hits": 0,
            "successes": 0,
            "failures": 0,
            "retries": 0,
            "attempts": 0,
        }
        self._closed = False

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    @property
    def proxy_pool(self) -> ProxyPool:
        return self._proxy_pool

    @property
    def cookies(self) -> CookieStore:
        return self._cookies

    @property
    def cache(self) -> ResponseCache:
        return self._cache

    @property
    def detector(self) -> AntiBotDetector:
        return self._detector

    @property
    def rate_limiter(self) -> DomainRateLimiter:
        return self._rate_limiter

    @property
    def identity(self) -> IdentityRotator:
        return self._identity

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def fetch(self, url: str, options: FetchOptions | None = None, **overrides: Any) -> FetchResult:
        """Fetch *url* and return its decoded result.

        Keyword overrides are applied on top of *options*, e.g.
        ``fetch(url, use_cache=False)``.

        Raises:
            InvalidUrlError: *url* is not an absolute http(s) URL.
            FetchError: every attempt failed, or the failure was terminal.
        """
        options = self._resolve_options(options, overrides)
        deadline = time.monotonic() + options.deadline_seconds if options.deadline_seconds else None
        return await self._fetch(url, options, deadline)

    async def fetch_many(
        self,
        urls: Iterable[str],
        *,
        batch_size: int | None = None,
        options: FetchOptions | None = None,
        deadline_seconds: float | None = None,
    ) -> list[FetchResult | ScrapeEngineError]:
        """Fetch *urls* in chunks; one entry per URL, in input order.

        Failures are returned in place as the raised error object instead of
        aborting the batch. Chunks run concurrently internally and are
        separated by ``batch_delay_ms``. With a deadline, URLs whose next
        attempt would start after it fail with a ``timeout`` FetchError.
        """
        size = batch_size or self._settings.batch_size
        if size < 1:
            raise ValueError("batch_size must be at least 1")

        options = options or FetchOptions()
        deadline_seconds = deadline_seconds or options.deadline_seconds
        deadline = time.monotonic() + deadline_seconds if deadline_seconds else None

        url_list = list(urls)
        results: list[FetchResult | ScrapeEngineError] = []
        total_batches = (len(url_list) + size - 1) // size

        for index, start in enumerate(range(0, len(url_list), size), start=1):
            if start and self._settings.batch_delay_ms:
                await asyncio.sleep(self._settings.batch_delay_ms / 1000)

            chunk = url_list[start : start + size]
            outcomes = await asyncio.gather(*(self._fetch_captured(url, options, deadline) for url in chunk))
            results.extend(outcomes)

            failed = sum(1 for outcome in outcomes if isinstance(outcome, ScrapeEngineError))
            logger.info("Batch %d/%d finished: %d ok, %d failed", index, total_batches, len(chunk) - failed, failed)

        return results

    def get_stats(self) -> dict:
        """Return engine, cache, proxy, detection and rate-limit statistics."""
        stats: dict[str, Any] = {
            "engine": dict(self._stats),
            "cache": self._cache.get_stats(),
            "proxies": self._proxy_pool.get_stats(),
            "detection": self._detector.get_stats(),
            "rate_limits": self._rate_limiter.get_stats(),
            "cookie_domains": len(self._cookies.domains()),
            "identity_rotations": self._identity.rotations,
        }
        return stats

    async def close(self) -> None:
        """Close every transport, including injected ones."""
        if self._closed:
            return
        self._closed = True
        await self._direct.transport.close()
        if self._challenge is not None:
            await self._challenge.transport.close()
        elif self._challenge_transport is not None:
            await self._challenge_transport.close()
        logger.info("Scraping engine closed")

    async def __aenter__(self) -> ScrapingEngine:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Internal pipeline
    # ------------------------------------------------------------------

    @staticmethod
    def _resolve_options(options: FetchOptions | None, overrides: dict[str, Any]) -> FetchOptions:
        if not overrides:
            return options or FetchOptions()
        base = dict(options) if options is not None else {}
        return FetchOptions.model_validate({**base, **overrides})

    def _wrap(self, transport: Transport) -> TransportPolicy:
        return TransportPolicy(
            transport,
            proxy_pool=self._proxy_pool,
            cookie_store=self._cookies,
            identity=self._identity,
        )

    def _transport_for(self, options: FetchOptions, policy: DomainPolicy) -> TransportPolicy:
        use_challenge = options.use_challenge_transport
        if use_challenge is None:
            use_challenge = policy.use_challenge_transport
        if use_challenge is None:
            use_challenge = self._settings.use_challenge_transport
        if not use_challenge:
            return self._direct

        if self._challenge is None:
            transport = self._challenge_transport or BrowserTransport(
                navigation_timeout_ms=self._settings.navigation_timeout_ms,
                challenge_wait_seconds=self._settings.challenge_wait_seconds,
                page_limit=self._settings.browser_page_limit,
            )
            self._challenge = self._wrap(transport)
        return self._challenge

    async def _fetch_captured(
        self,
        url: str,
        options: FetchOptions,
        deadline: float | None,
    ) -> FetchResult | ScrapeEngineError:
        try:
            return await self._fetch(url, options, deadline)
        except ScrapeEngineError as exc:
            return exc

    async def _fetch(self, url: str, options: FetchOptions, deadline: float | None) -> FetchResult:
        started = time.monotonic()
        self._stats["requests"] += 1

        if not await validate_url(url, block_private_hosts=self._settings.block_private_hosts):
            self._stats["failures"] += 1
            raise InvalidUrlError(f"Invalid target URL: {url}", url=url)

        descriptor = RequestDescriptor.build(url, options, self._settings.request_timeout_seconds)
        domain = descriptor.domain
        policy = policy_for(self._policies, domain)

        cache_key = None
        if self._settings.cache_enabled and options.use_cache:
            cache_key = make_cache_key(descriptor.method, descriptor.url, descriptor.headers, descriptor.body)
            cached = self._lookup_cache(cache_key)
            if cached is not None:
                self._stats["cache_hits"] += 1
                logger.debug("Cache hit for %s", url, extra={"target_url": url})
                return cached

        transport = self._transport_for(options, policy)
        threshold = self._settings.bot_block_confidence

        attempts = 0
        last_status: int | None = None
        last_detection: DetectionResult | None = None

        while True:
            if not await self._acquire_token(domain, deadline):
                raise self._fail(
                    FailureKind.TIMEOUT, "deadline exceeded before next attempt", url, attempts, started,
                    last_status, last_detection,
                )
            attempts += 1
            self._stats["attempts"] += 1

            outcome = await transport.send(descriptor, proxy=options.proxy, deadline=deadline)
            envelope = outcome if isinstance(outcome, ResponseEnvelope) else outcome.envelope
            failure = outcome if isinstance(outcome, TransportFailure) else None

            detection = None
            if envelope is not None:
                detection = self._detector.detect(envelope.body, envelope.headers, envelope.status_code)
                last_status = envelope.status_code
            elif failure is not None:
                last_status = failure.status_code
            last_detection = detection

            blocked = detection is not None and detection.confidence >= threshold
            if failure is None and not blocked:
                return self._complete(url, envelope, detection, policy, cache_key, attempts, started)

            decision = classify(failure, detection, threshold)
            if detection is not None and detection.is_bot:
                self._mitigate(domain, detection)

            logger.warning(
                "Attempt %d/%d for %s failed: %s",
                attempts,
                self._retry.max_attempts,
                url,
                decision.reason,
                extra={
                    "target_url": url,
                    "target_domain": domain,
                    "attempt": attempts,
                    "failure_kind": decision.kind.value,
                    "status_code": last_status,
                    "proxy_used": envelope.proxy_id if envelope is not None else None,
                },
            )

            if not decision.retryable:
                raise self._fail(decision.kind, decision.reason, url, attempts, started, last_status, last_detection)
            if attempts >= self._retry.max_attempts:
                raise self._fail(
                    decision.kind,
                    f"gave up after {attempts} attempts: {decision.reason}",
                    url, attempts, started, last_status, last_detection,
                )

            delay = self._retry.delay_for(attempts, envelope)
            if deadline is not None and time.monotonic() + delay >= deadline:
                raise self._fail(
                    FailureKind.TIMEOUT,
                    f"deadline exceeded while backing off after: {decision.reason}",
                    url, attempts, started, last_status, last_detection,
                )
            self._stats["retries"] += 1
            await asyncio.sleep(delay)

    async def _acquire_token(self, domain: str, deadline: float | None) -> bool:
        """Take a rate-limit token; False when the deadline passes first."""
        if deadline is None:
            await self._rate_limiter.acquire(domain)
            return True
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return False
        try:
            await asyncio.wait_for(self._rate_limiter.acquire(domain), timeout=remaining)
        except asyncio.TimeoutError:
            return False
        return True

    def _lookup_cache(self, key: str) -> FetchResult | None:
        cached = self._cache.get(key)
        if cached is None:
            return None
        if not isinstance(cached, FetchResult):
            logger.warning(
                "Discarding malformed cache entry (%s)",
                type(cached).__name__,
                extra={"failure_kind": FailureKind.CACHE_CORRUPT.value},
            )
            self._cache.delete(key)
            return None
        return replace(cached, from_cache=True)

    def _mitigate(self, domain: str, detection: DetectionResult) -> None:
        if detection.status_code == 429:
            self._rate_limiter.reduce_rate(domain)
        if ROTATE_IDENTITY in self._detector.recommend(detection):
            user_agent = self._identity.rotate()
            logger.info("Rotated identity for %s: %s", domain, user_agent, extra={"target_domain": domain})

    def _complete(
        self,
        url: str,
        envelope: ResponseEnvelope,
        detection: DetectionResult | None,
        policy: DomainPolicy,
        cache_key: str | None,
        attempts: int,
        started: float,
    ) -> FetchResult:
        elapsed_ms = (time.monotonic() - started) * 1000
        result = FetchResult(
            url=envelope.url or url,
            status=envelope.status_code,
            body=decode(envelope.body, envelope.headers, self._settings.default_charset, override=policy.charset),
            headers=dict(envelope.headers),
            content=envelope.body,
            from_cache=False,
            attempts=attempts,
            elapsed_ms=elapsed_ms,
            proxy_id=envelope.proxy_id,
            detection=detection,
        )
        if cache_key is not None:
            self._cache.put(cache_key, result)

        self._stats["successes"] += 1
        logger.info(
            "Fetched %s (status=%d, attempts=%d)",
            url,
            envelope.status_code,
            attempts,
            extra={
                "target_url": url,
                "status_code": envelope.status_code,
                "attempt": attempts,
                "duration_ms": round(elapsed_ms, 1),
                "proxy_used": envelope.proxy_id,
            },
        )
        return result

    def _fail(
        self,
        kind: FailureKind,
        reason: str,
        url: str,
        attempts: int,
        started: float,
        status_code: int | None,
        detection: DetectionResult | None,
    ) -> FetchError:
        self._stats["failures"] += 1
        error = FetchError(
            kind,
            reason,
            url=url,
            attempts=attempts,
            elapsed_ms=(time.monotonic() - started) * 1000,
            status_code=status_code,
            detection=detection,
        )
        logger.error(
            "Fetch failed for %s: %s",
            url,
            error.message,
            extra={"target_url": url, "failure_kind": kind.value, "attempt": attempts, "status_code": status_code},
        )
        return error
