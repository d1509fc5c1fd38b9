"""Shared test fixtures for the scraping engine test suite."""

from __future__ import annotations

import random
from collections.abc import Callable

import pytest

from scrape_engine.cache.response_cache import ResponseCache
from scrape_engine.config.domain_policies import DomainPolicy
from scrape_engine.config.settings import EngineSettings
from scrape_engine.errors import FailureKind
from scrape_engine.models.requests import RequestDescriptor
from scrape_engine.models.responses import ResponseEnvelope
from scrape_engine.proxy.manager import ProxyPool
from scrape_engine.proxy.types import ProxyRecord
from scrape_engine.services.engine import ScrapingEngine
from scrape_engine.session.cookies import CookieStore
from scrape_engine.transport.base import Transport, TransportFailure


# ---------------------------------------------------------------------------
# Stub transport
# ---------------------------------------------------------------------------


class StubTransport(Transport):
    """In-process transport that replays queued outcomes and records calls.

    Queued outcomes are consumed in order; once the queue is empty
    ``default`` is returned. An outcome may be a callable taking
    ``(descriptor, proxy)``.
    """

    name = "stub"

    def __init__(self) -> None:
        self.outcomes: list = []
        self.default: ResponseEnvelope | TransportFailure | Callable | None = None
        self.calls: list[tuple[RequestDescriptor, ProxyRecord | None]] = []
        self.closed = False

    def respond(
        self,
        body: str | bytes = "<html><body>ok</body></html>",
        *,
        status: int = 200,
        headers: dict[str, str] | None = None,
        set_cookie: tuple[str, ...] = (),
        times: int = 1,
    ) -> StubTransport:
        content = body.encode("utf-8") if isinstance(body, str) else body
        merged = {"content-type": "text/html; charset=utf-8", **(headers or {})}

        def _build(descriptor: RequestDescriptor, proxy: ProxyRecord | None):
            envelope = ResponseEnvelope(
                status_code=status,
                body=content,
                headers=merged,
                set_cookie=set_cookie,
                proxy_id=proxy.id if proxy else None,
                url=descriptor.url,
            )
            if envelope.ok:
                return envelope
            return TransportFailure(FailureKind.HTTP_ERROR, f"HTTP {status}", status_code=status, envelope=envelope)

        self.outcomes.extend([_build] * times)
        return self

    def fail(self, kind: FailureKind = FailureKind.NETWORK, message: str = "connection refused", *, times: int = 1) -> StubTransport:
        self.outcomes.extend([TransportFailure(kind, message)] * times)
        return self

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def send(self, descriptor, proxy=None):
        self.calls.append((descriptor, proxy))
        outcome = self.outcomes.pop(0) if self.outcomes else self.default
        if outcome is None:
            raise AssertionError("StubTransport has no outcome queued")
        if callable(outcome):
            outcome = outcome(descriptor, proxy)
        return outcome

    async def close(self) -> None:
        self.closed = True


# ---------------------------------------------------------------------------
# Settings fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> EngineSettings:
    """Test settings: no backoff sleeps, no batch pauses, generous rate limits."""
    return EngineSettings(
        retry_base_delay_ms=0,
        batch_delay_ms=0,
        rate_limit_tokens=100,
        rate_limit_interval_seconds=1,
        domain_policies_path="does-not-exist.yaml",
    )


# ---------------------------------------------------------------------------
# Component fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def stub_transport() -> StubTransport:
    return StubTransport()


@pytest.fixture
def challenge_transport() -> StubTransport:
    challenge = StubTransport()
    challenge.name = "challenge-stub"
    return challenge


@pytest.fixture
def proxy_pool() -> ProxyPool:
    pool = ProxyPool(failure_threshold=3)
    pool.initialize(["http://proxy1:8080", "http://proxy2:8080"])
    return pool


@pytest.fixture
def cookie_store() -> CookieStore:
    return CookieStore()


@pytest.fixture
def cache() -> ResponseCache:
    return ResponseCache(ttl_seconds=3600, max_entries=100)


@pytest.fixture
def make_engine(settings: EngineSettings, stub_transport: StubTransport):
    """Factory for engines wired to the stub transport."""

    def _make(**kwargs) -> ScrapingEngine:
        kwargs.setdefault("settings", settings)
        kwargs.setdefault("transport", stub_transport)
        kwargs.setdefault("domain_policies", {"default": DomainPolicy(tokens_per_interval=100, interval_seconds=1)})
        kwargs.setdefault("rng", random.Random(7))
        engine = ScrapingEngine(**kwargs)
        return engine

    return _make

