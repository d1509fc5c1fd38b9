"""Challenge-capable transport backed by headless Chromium.

Playwright is imported lazily on first use, so the engine runs without
browser binaries installed as long as this transport is never selected.

Each attempt gets a fresh browser context (proxy, user agent and headers
applied at context level) which is closed afterwards. The browser process
is relaunched after ``page_limit`` attempts to bound memory growth, and
after an unexpected disconnect.

After navigation the page is polled until challenge markers disappear. A
challenge that is still present after ``challenge_wait_seconds`` is reported
as ``challenge_blocked``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

from scrape_engine.detection.rules import CHALLENGE_MARKERS
from scrape_engine.errors import FailureKind
from scrape_engine.models.requests import RequestDescriptor
from scrape_engine.models.responses import ResponseEnvelope
from scrape_engine.proxy.types import ProxyRecord
from scrape_engine.transport.base import Transport, TransportFailure

logger = logging.getLogger(__name__)

# Chromium flags for containerized / headless operation
CHROMIUM_ARGS: list[str] = [
    "--no-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--disable-blink-features=AutomationControlled",
]

WEBDRIVER_OVERRIDE_JS = """
() => {
    Object.defineProperty(navigator, 'webdriver', {
        get: () => undefined,
        configurable: true,
    });
    if (!window.chrome) {
        window.chrome = {};
    }
    if (!window.chrome.runtime) {
        window.chrome.runtime = {
            connect: function() {},
            sendMessage: function() {},
        };
    }
}
"""

# Headers Playwright manages itself or that belong in context options
_CONTEXT_MANAGED_HEADERS = frozenset({"user-agent", "cookie", "host", "content-length"})

_POLL_INTERVAL_SECONDS = 0.5


class BrowserTransport(Transport):
    """Navigates with Playwright Chromium and waits out challenge pages."""

    name = "browser"

    def __init__(
        self,
        *,
        navigation_timeout_ms: int = 30000,
        challenge_wait_seconds: float = 15.0,
        page_limit: int = 100,
        headless: bool = True,
    ) -> None:
        self._navigation_timeout_ms = navigation_timeout_ms
        self._challenge_wait_seconds = challenge_wait_seconds
        self._page_limit = page_limit
        self._headless = headless
        self._playwright: Any = None
        self._browser: Any = None
        self._pages_processed = 0
        self._relaunches = 0
        self._lock = asyncio.Lock()

    def time_budget(self, descriptor: RequestDescriptor) -> float:
        return self._navigation_timeout_ms / 1000 + self._challenge_wait_seconds + 5.0

    # ------------------------------------------------------------------
    # Browser lifecycle
    # ------------------------------------------------------------------

    async def _ensure_browser(self) -> Any:
        async with self._lock:
            if self._browser is not None and (
                self._pages_processed >= self._page_limit or not self._browser.is_connected()
            ):
                logger.info("Relaunching browser after %d pages", self._pages_processed)
                await self._close_browser()
                self._relaunches += 1

            if self._browser is None:
                if self._playwright is None:
                    from playwright.async_api import async_playwright

                    self._playwright = await async_playwright().start()
                self._browser = await self._playwright.chromium.launch(
                    headless=self._headless,
                    args=CHROMIUM_ARGS,
                )
                self._pages_processed = 0
                logger.debug("Launched Chromium for challenge transport")
            return self._browser

    async def _close_browser(self) -> None:
        browser, self._browser = self._browser, None
        if browser is None:
            return
        try:
            await browser.close()
        except Exception:  # noqa: BLE001
            logger.debug("Error closing browser (may already be closed)", exc_info=True)

    async def close(self) -> None:
        async with self._lock:
            await self._close_browser()
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None

    def get_stats(self) -> dict:
        return {
            "running": self._browser is not None,
            "pages_processed": self._pages_processed,
            "relaunches": self._relaunches,
        }

    # ------------------------------------------------------------------
    # send
    # ------------------------------------------------------------------

    async def send(
        self,
        descriptor: RequestDescriptor,
        proxy: ProxyRecord | None = None,
    ) -> ResponseEnvelope | TransportFailure:
        from playwright.async_api import Error as PlaywrightError
        from playwright.async_api import TimeoutError as PlaywrightTimeoutError

        started = time.monotonic()
        context_kwargs: dict[str, Any] = {
            "extra_http_headers": {
                name: value
                for name, value in descriptor.headers.items()
                if name.lower() not in _CONTEXT_MANAGED_HEADERS
            },
        }
        user_agent = descriptor.header("user-agent")
        if user_agent:
            context_kwargs["user_agent"] = user_agent
        if proxy is not None:
            context_kwargs["proxy"] = {"server": proxy.display_url}
            if proxy.username:
                context_kwargs["proxy"]["username"] = proxy.username
                context_kwargs["proxy"]["password"] = proxy.password or ""

        context: Any = None
        try:
            browser = await self._ensure_browser()
            context = await browser.new_context(**context_kwargs)
            cookie_header = descriptor.header("cookie")
            if cookie_header:
                await context.add_cookies(_cookie_params(cookie_header, descriptor.url))

            page = await context.new_page()
            await page.add_init_script(WEBDRIVER_OVERRIDE_JS)
            response = await page.goto(
                descriptor.url,
                timeout=self._navigation_timeout_ms,
                wait_until="domcontentloaded",
            )

            challenged, cleared = await self._wait_out_challenge(page)
            if challenged and not cleared:
                return TransportFailure(
                    FailureKind.CHALLENGE_BLOCKED,
                    f"challenge page did not clear within {self._challenge_wait_seconds:.0f}s",
                    status_code=response.status if response is not None else None,
                )

            html = await page.content()
            status = response.status if response is not None else 200
            headers = await response.all_headers() if response is not None else {}
            if challenged:
                # The navigation response was the interstitial itself
                status = 200
            # Body is re-encoded from the DOM, so the charset is always UTF-8
            headers = {**headers, "content-type": "text/html; charset=utf-8"}

            cookies = await context.cookies(descriptor.url)
            envelope = ResponseEnvelope(
                status_code=status,
                body=html.encode("utf-8"),
                headers=headers,
                set_cookie=tuple(f"{c['name']}={c['value']}" for c in cookies),
                elapsed_ms=(time.monotonic() - started) * 1000,
                proxy_id=proxy.id if proxy is not None else None,
                url=page.url,
            )
        except PlaywrightTimeoutError as exc:
            return TransportFailure(FailureKind.TIMEOUT, f"navigation timed out: {exc.message}")
        except PlaywrightError as exc:
            return TransportFailure(FailureKind.NETWORK, f"browser error: {exc.message}")
        finally:
            if context is not None:
                self._pages_processed += 1
                try:
                    await context.close()
                except Exception:  # noqa: BLE001
                    logger.debug("Error closing browser context", exc_info=True)

        if not envelope.ok:
            return TransportFailure(
                FailureKind.HTTP_ERROR,
                f"HTTP {envelope.status_code}",
                status_code=envelope.status_code,
                envelope=envelope,
            )
        return envelope

    async def _wait_out_challenge(self, page: Any) -> tuple[bool, bool]:
        """Return (challenge_seen, challenge_cleared)."""
        deadline = time.monotonic() + self._challenge_wait_seconds
        seen = False
        while True:
            if not CHALLENGE_MARKERS.search(await page.content()):
                return seen, True
            if not seen:
                logger.info("Challenge page detected at %s; waiting", page.url)
                seen = True
            if time.monotonic() >= deadline:
                return True, False
            await asyncio.sleep(_POLL_INTERVAL_SECONDS)


def _cookie_params(cookie_header: str, url: str) -> list[dict[str, str]]:
    params = []
    for pair in cookie_header.split(";"):
        name, sep, value = pair.strip().partition("=")
        if sep and name:
            params.append({"name": name, "value": value, "url": url})
    return params
