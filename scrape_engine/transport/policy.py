"""Transport policy: proxy selection, cookie injection and outcome bookkeeping.

Wraps one ``Transport`` strategy. For every attempt it:

1. picks a proxy (explicit proxy, else the pool's next proxy, else none)
2. layers identity defaults and the domain's ``Cookie`` header under the
   caller's headers
3. enforces a hard per-attempt timeout, capped by the fetch deadline
4. reports the proxy outcome to the pool
5. stores cookies from successful responses in the cookie store and prunes
   expired ones
"""

from __future__ import annotations

import asyncio
import logging
import time

from scrape_engine.errors import FailureKind
from scrape_engine.models.requests import RequestDescriptor
from scrape_engine.models.responses import ResponseEnvelope
from scrape_engine.proxy.manager import ProxyPool
from scrape_engine.proxy.types import ProxyRecord
from scrape_engine.session.cookies import CookieStore
from scrape_engine.transport.base import Transport, TransportFailure
from scrape_engine.transport.identity import IdentityRotator

logger = logging.getLogger(__name__)

# Statuses that say more about the proxy than about the target
PROXY_FAILURE_STATUSES: frozenset[int] = frozenset({403, 407, 429})


def counts_as_proxy_failure(outcome: ResponseEnvelope | TransportFailure) -> bool:
    if not isinstance(outcome, TransportFailure):
        return False
    if outcome.kind in (FailureKind.NETWORK, FailureKind.TIMEOUT):
        return True
    return outcome.kind == FailureKind.HTTP_ERROR and outcome.status_code in PROXY_FAILURE_STATUSES


class TransportPolicy:
    """Runs single attempts through one transport strategy."""

    def __init__(
        self,
        transport: Transport,
        *,
        proxy_pool: ProxyPool | None = None,
        cookie_store: CookieStore | None = None,
        identity: IdentityRotator | None = None,
    ) -> None:
        self._transport = transport
        self._proxy_pool = proxy_pool
        self._cookie_store = cookie_store
        self._identity = identity

    @property
    def transport(self) -> Transport:
        return self._transport

    def _select_proxy(self, proxy: ProxyRecord | None) -> ProxyRecord | None:
        if proxy is not None:
            return proxy
        if self._proxy_pool is not None:
            return self._proxy_pool.next()
        return None

    def prepare(self, descriptor: RequestDescriptor) -> RequestDescriptor:
        """Layer identity defaults and stored cookies under caller headers."""
        defaults: dict[str, str] = {}
        if self._identity is not None:
            defaults.update(self._identity.headers())
        if self._cookie_store is not None and descriptor.header("cookie") is None:
            cookie = self._cookie_store.header_for(descriptor.domain)
            if cookie:
                defaults["Cookie"] = cookie
        if not defaults:
            return descriptor
        return descriptor.with_headers(defaults, override=False)

    async def send(
        self,
        descriptor: RequestDescriptor,
        proxy: ProxyRecord | None = None,
        *,
        deadline: float | None = None,
    ) -> ResponseEnvelope | TransportFailure:
        """Run one attempt. Never raises; unexpected errors become failures.

        *deadline* is a ``time.monotonic()`` instant the attempt must not
        outlive.
        """
        chosen = self._select_proxy(proxy)
        prepared = self.prepare(descriptor)
        budget = self._transport.time_budget(prepared)
        if deadline is not None:
            budget = max(0.0, min(budget, deadline - time.monotonic()))

        try:
            outcome = await asyncio.wait_for(self._transport.send(prepared, chosen), timeout=budget)
        except asyncio.TimeoutError:
            outcome = TransportFailure(FailureKind.TIMEOUT, f"attempt exceeded {budget:.1f}s")
        except OSError as exc:
            outcome = TransportFailure(FailureKind.NETWORK, f"{exc.__class__.__name__}: {exc}")
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Unexpected error from %s transport: %s",
                self._transport.name,
                exc,
                exc_info=True,
                extra={"target_url": prepared.url, "proxy_used": chosen.id if chosen else None},
            )
            outcome = TransportFailure(FailureKind.NETWORK, f"{exc.__class__.__name__}: {exc}")

        if chosen is not None and self._proxy_pool is not None and self._proxy_pool.get(chosen.id) is not None:
            if counts_as_proxy_failure(outcome):
                self._proxy_pool.report_failure(chosen.id, reason=outcome.message)
            else:
                self._proxy_pool.report_success(chosen.id)

        if isinstance(outcome, ResponseEnvelope) and outcome.ok and self._cookie_store is not None:
            self._cookie_store.capture(prepared.domain, outcome.set_cookie)
            self._cookie_store.prune()

        if isinstance(outcome, TransportFailure):
            logger.debug(
                "Attempt failed via %s: %s",
                self._transport.name,
                outcome.message,
                extra={
                    "target_url": prepared.url,
                    "proxy_used": chosen.id if chosen else None,
                    "failure_kind": outcome.kind.value,
                    "status_code": outcome.status_code,
                },
            )
        return outcome
