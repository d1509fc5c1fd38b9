"""Unit tests for ScrapingEngine orchestration against the stub transport."""

from __future__ import annotations

import pytest

from scrape_engine.cache.response_cache import ResponseCache, make_cache_key
from scrape_engine.config.domain_policies import DomainPolicy
from scrape_engine.config.settings import EngineSettings
from scrape_engine.content.normalizer import extract_text
from scrape_engine.errors import FailureKind, FetchError, InvalidUrlError
from scrape_engine.models.requests import FetchOptions
from scrape_engine.models.responses import FetchResult, ResponseEnvelope
from scrape_engine.proxy.manager import ProxyPool
from scrape_engine.session.cookies import CookieStore
from scrape_engine.transport.base import TransportFailure

URL = "https://www.javbus.com/ABC-123"

_FAST_POLICIES = {"default": DomainPolicy(tokens_per_interval=100, interval_seconds=1)}


# ---------------------------------------------------------------------------
# Single fetch
# ---------------------------------------------------------------------------


class TestFetch:
    @pytest.mark.asyncio
    async def test_end_to_end_text(self, make_engine, stub_transport) -> None:
        stub_transport.respond("<html><body><h1>X</h1></body></html>")
        engine = make_engine()

        result = await engine.fetch(URL)

        assert isinstance(result, FetchResult)
        assert result.status == 200
        assert result.attempts == 1
        assert result.from_cache is False
        assert extract_text(result.body) == "X"

    @pytest.mark.asyncio
    async def test_second_fetch_served_from_cache(self, make_engine, stub_transport) -> None:
        stub_transport.respond("<h1>cached</h1>")
        engine = make_engine()

        first = await engine.fetch(URL)
        second = await engine.fetch(URL)

        assert stub_transport.call_count == 1
        assert second.from_cache is True
        assert second.body == first.body
        assert engine.get_stats()["engine"]["cache_hits"] == 1

    @pytest.mark.asyncio
    async def test_use_cache_false_bypasses_cache(self, make_engine, stub_transport) -> None:
        stub_transport.respond(times=2)
        engine = make_engine()

        await engine.fetch(URL, use_cache=False)
        await engine.fetch(URL, use_cache=False)

        assert stub_transport.call_count == 2

    @pytest.mark.asyncio
    async def test_always_failing_network_exhausts_attempts(self, make_engine, stub_transport) -> None:
        stub_transport.default = TransportFailure(FailureKind.NETWORK, "connection refused")
        engine = make_engine()

        with pytest.raises(FetchError) as exc_info:
            await engine.fetch(URL)

        assert stub_transport.call_count == 3
        assert exc_info.value.attempts == 3
        assert exc_info.value.kind == FailureKind.NETWORK
        assert "connection refused" in exc_info.value.reason

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failure(self, make_engine, stub_transport) -> None:
        stub_transport.fail(FailureKind.TIMEOUT).respond("<p>ok</p>")
        engine = make_engine()

        result = await engine.fetch(URL)

        assert result.attempts == 2
        assert engine.get_stats()["engine"]["retries"] == 1

    @pytest.mark.asyncio
    async def test_not_found_is_terminal(self, make_engine, stub_transport) -> None:
        stub_transport.respond("missing", status=404, times=3)
        engine = make_engine()

        with pytest.raises(FetchError) as exc_info:
            await engine.fetch(URL)

        assert stub_transport.call_count == 1
        assert exc_info.value.kind == FailureKind.HTTP_ERROR
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_rate_limited_response_slows_domain(self, make_engine, stub_transport) -> None:
        stub_transport.respond(status=429).respond("<p>ok</p>")
        engine = make_engine()

        result = await engine.fetch(URL)

        assert result.attempts == 2
        assert engine.rate_limiter.get_stats("www.javbus.com")["is_reduced"] is True
        assert engine.detector.get_stats()["rate_limit_hits"] == 1

    @pytest.mark.asyncio
    async def test_high_confidence_block_is_terminal(self, make_engine, stub_transport) -> None:
        stub_transport.respond("<p>Access denied</p>", status=403, headers={"cf-ray": "8a1b"}, times=3)
        engine = make_engine()

        with pytest.raises(FetchError) as exc_info:
            await engine.fetch(URL)

        assert stub_transport.call_count == 1
        assert exc_info.value.kind == FailureKind.BOT_DETECTED
        assert exc_info.value.detection is not None
        assert exc_info.value.detection.confidence == 0.9
        assert engine.identity.rotations == 1

    @pytest.mark.asyncio
    async def test_blocked_success_body_is_not_returned(self, make_engine, stub_transport) -> None:
        stub_transport.respond(
            "<div id='cf-browser-verification'>Checking your browser</div>",
            status=503,
            headers={"cf-mitigated": "challenge"},
        )
        engine = make_engine()

        with pytest.raises(FetchError) as exc_info:
            await engine.fetch(URL)
        assert exc_info.value.kind == FailureKind.BOT_DETECTED

    @pytest.mark.asyncio
    async def test_invalid_url(self, make_engine, stub_transport) -> None:
        engine = make_engine()

        with pytest.raises(InvalidUrlError):
            await engine.fetch("/relative/ABC-123")

        assert stub_transport.call_count == 0

    @pytest.mark.asyncio
    async def test_corrupt_cache_entry_is_refetched(self, make_engine, stub_transport, cache: ResponseCache) -> None:
        cache.put(make_cache_key("GET", URL), {"not": "a result"})
        stub_transport.respond("<p>fresh</p>")
        engine = make_engine(cache=cache)

        result = await engine.fetch(URL)

        assert stub_transport.call_count == 1
        assert result.from_cache is False
        assert isinstance(cache.get(make_cache_key("GET", URL)), FetchResult)

    @pytest.mark.asyncio
    async def test_deadline_stops_backoff(self, stub_transport) -> None:
        from scrape_engine.services.engine import ScrapingEngine

        settings = EngineSettings(retry_base_delay_ms=5000, domain_policies_path="does-not-exist.yaml")
        stub_transport.default = TransportFailure(FailureKind.NETWORK, "connection refused")
        engine = ScrapingEngine(settings, transport=stub_transport, domain_policies=_FAST_POLICIES)

        with pytest.raises(FetchError) as exc_info:
            await engine.fetch(URL, deadline_seconds=0.5)

        assert stub_transport.call_count == 1
        assert exc_info.value.kind == FailureKind.TIMEOUT
        assert exc_info.value.attempts == 1

    @pytest.mark.asyncio
    async def test_deadline_bounds_rate_limit_wait(self, make_engine, stub_transport) -> None:
        stub_transport.respond(times=2)
        engine = make_engine(domain_policies={"default": DomainPolicy(tokens_per_interval=1, interval_seconds=60)})

        results = await engine.fetch_many([URL, f"{URL}?b"], batch_size=2, deadline_seconds=0.3)

        timed_out = [result for result in results if isinstance(result, FetchError)]
        assert stub_transport.call_count == 1
        assert len(timed_out) == 1
        assert timed_out[0].kind == FailureKind.TIMEOUT
        assert timed_out[0].attempts == 0

    @pytest.mark.asyncio
    async def test_expired_cookies_pruned_during_fetch(self, make_engine, stub_transport) -> None:
        store = CookieStore(max_age_seconds=60)
        store.set("stale.example", "old", "1")
        for entry in store._domains["stale.example"].values():
            entry.created_at -= 120
        stub_transport.respond(set_cookie=("existmag=all",))
        engine = make_engine(cookie_store=store)

        await engine.fetch(URL)

        assert engine.cookies.domains() == ["www.javbus.com"]

    @pytest.mark.asyncio
    async def test_proxies_rotate_across_fetches(self, make_engine, stub_transport, proxy_pool: ProxyPool) -> None:
        stub_transport.respond(times=3)
        engine = make_engine(proxy_pool=proxy_pool)

        for index in range(3):
            result = await engine.fetch(f"{URL}?page={index}")
            assert result.proxy_id == ["proxy_0", "proxy_1", "proxy_0"][index]

        assert engine.proxy_pool.get_stats()["successful_requests"] == 3

    @pytest.mark.asyncio
    async def test_cookies_captured_and_replayed(self, make_engine, stub_transport) -> None:
        stub_transport.respond(set_cookie=("existmag=all; Path=/",)).respond()
        engine = make_engine()

        await engine.fetch(URL)
        await engine.fetch("https://www.javbus.com/XYZ-001")

        replayed, _ = stub_transport.calls[1]
        assert replayed.header("Cookie") == "existmag=all"
        assert engine.cookies.header_for("www.javbus.com") == "existmag=all"

    @pytest.mark.asyncio
    async def test_identity_headers_sent(self, make_engine, stub_transport) -> None:
        stub_transport.respond()
        engine = make_engine()

        await engine.fetch(URL, FetchOptions(headers={"Referer": "https://www.javbus.com/"}))

        sent, _ = stub_transport.calls[0]
        assert sent.header("User-Agent") == engine.identity.current
        assert sent.header("Referer") == "https://www.javbus.com/"

    @pytest.mark.asyncio
    async def test_domain_charset_override(self, make_engine, stub_transport) -> None:
        stub_transport.respond("<p>日本語</p>".encode("euc-jp"), headers={"content-type": "text/html"})
        engine = make_engine(
            domain_policies={**_FAST_POLICIES, "www.example.jp": DomainPolicy(charset="euc-jp")},
        )

        result = await engine.fetch("https://www.example.jp/title")
        assert result.body == "<p>日本語</p>"


# ---------------------------------------------------------------------------
# Transport selection
# ---------------------------------------------------------------------------


class TestTransportSelection:
    @pytest.mark.asyncio
    async def test_option_selects_challenge_transport(self, make_engine, stub_transport, challenge_transport) -> None:
        challenge_transport.respond("<h1>solved</h1>")
        engine = make_engine(challenge_transport=challenge_transport)

        result = await engine.fetch(URL, use_challenge_transport=True)

        assert challenge_transport.call_count == 1
        assert stub_transport.call_count == 0
        assert "solved" in result.body

    @pytest.mark.asyncio
    async def test_domain_policy_selects_challenge_transport(
        self, make_engine, stub_transport, challenge_transport
    ) -> None:
        challenge_transport.respond()
        engine = make_engine(
            challenge_transport=challenge_transport,
            domain_policies={**_FAST_POLICIES, "www.javbus.com": DomainPolicy(use_challenge_transport=True)},
        )

        await engine.fetch(URL)
        assert challenge_transport.call_count == 1

    @pytest.mark.asyncio
    async def test_option_overrides_domain_policy(self, make_engine, stub_transport, challenge_transport) -> None:
        stub_transport.respond()
        engine = make_engine(
            challenge_transport=challenge_transport,
            domain_policies={**_FAST_POLICIES, "www.javbus.com": DomainPolicy(use_challenge_transport=True)},
        )

        await engine.fetch(URL, use_challenge_transport=False)
        assert stub_transport.call_count == 1
        assert challenge_transport.call_count == 0

    @pytest.mark.asyncio
    async def test_crashing_challenge_transport_yields_fetch_error(
        self, make_engine, stub_transport, challenge_transport
    ) -> None:
        def crash(descriptor, proxy):
            raise RuntimeError("browser launch failed")

        challenge_transport.default = crash
        engine = make_engine(challenge_transport=challenge_transport)

        with pytest.raises(FetchError) as exc_info:
            await engine.fetch(URL, use_challenge_transport=True)

        assert exc_info.value.kind == FailureKind.NETWORK
        assert "RuntimeError" in exc_info.value.reason
        assert challenge_transport.call_count == 3
        assert stub_transport.call_count == 0


# ---------------------------------------------------------------------------
# Batches
# ---------------------------------------------------------------------------


class TestFetchMany:
    @pytest.mark.asyncio
    async def test_results_in_input_order_with_errors_in_place(self, make_engine, stub_transport) -> None:
        def by_url(descriptor, proxy):
            if descriptor.url.endswith("/missing"):
                envelope = ResponseEnvelope(status_code=404, body=b"", url=descriptor.url)
                return TransportFailure(FailureKind.HTTP_ERROR, "HTTP 404", status_code=404, envelope=envelope)
            return ResponseEnvelope(status_code=200, body=descriptor.url.encode(), url=descriptor.url)

        stub_transport.default = by_url
        engine = make_engine()
        urls = [
            "https://www.javbus.com/A",
            "not a url",
            "https://www.javbus.com/missing",
            "https://www.javbus.com/B",
        ]

        results = await engine.fetch_many(urls, batch_size=2)

        assert len(results) == 4
        assert isinstance(results[0], FetchResult) and results[0].body == urls[0]
        assert isinstance(results[1], InvalidUrlError)
        assert isinstance(results[2], FetchError) and results[2].status_code == 404
        assert isinstance(results[3], FetchResult) and results[3].body == urls[3]

    @pytest.mark.asyncio
    async def test_empty_batch(self, make_engine) -> None:
        assert await make_engine().fetch_many([]) == []

    @pytest.mark.asyncio
    async def test_invalid_batch_size(self, make_engine) -> None:
        with pytest.raises(ValueError):
            await make_engine().fetch_many([URL], batch_size=0)


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_context_manager_closes_transports(self, make_engine, stub_transport, challenge_transport) -> None:
        async with make_engine(challenge_transport=challenge_transport) as engine:
            stub_transport.respond()
            await engine.fetch(URL)

        assert stub_transport.closed is True
        assert challenge_transport.closed is True

    def test_proxy_pool_built_from_settings(self) -> None:
        from scrape_engine.services.engine import ScrapingEngine

        settings = EngineSettings(
            proxy_endpoints=["http://proxy1:8080", "http://proxy2:8080"],
            domain_policies_path="does-not-exist.yaml",
        )
        engine = ScrapingEngine(settings)
        assert len(engine.proxy_pool) == 2

    def test_settings_rate_limits_become_default_policy(self) -> None:
        from scrape_engine.services.engine import ScrapingEngine

        settings = EngineSettings(
            rate_limit_tokens=7,
            rate_limit_interval_seconds=2,
            domain_policies_path="does-not-exist.yaml",
        )
        engine = ScrapingEngine(settings)
        assert engine.rate_limiter.get_stats("any.com")["max_tokens"] == 7

    @pytest.mark.asyncio
    async def test_stats(self, make_engine, stub_transport) -> None:
        stub_transport.respond()
        engine = make_engine()
        await engine.fetch(URL)

        stats = engine.get_stats()
        assert stats["engine"]["requests"] == 1
        assert stats["engine"]["successes"] == 1
        assert stats["engine"]["attempts"] == 1
        assert stats["cache"]["size"] == 1
        assert "www.javbus.com" in stats["rate_limits"]
