"""Plain HTTP transport over httpx.

One ``httpx.AsyncClient`` is kept per proxy URL (plus one for direct
connections) so connection pools are reused across attempts. The clients'
own cookie jars are cleared after every response: cookies are owned by the
engine's CookieStore and injected explicitly.
"""

from __future__ import annotations

import logging
import time

import httpx

from scrape_engine.errors import FailureKind
from scrape_engine.models.requests import RequestDescriptor
from scrape_engine.models.responses import ResponseEnvelope
from scrape_engine.proxy.types import ProxyRecord
from scrape_engine.transport.base import Transport, TransportFailure

logger = logging.getLogger(__name__)


class DirectTransport(Transport):
    """Sends requests with httpx, following redirects.

    Args:
        http_transport: Optional httpx transport (e.g. ``httpx.MockTransport``)
            used for every client instead of real network I/O.
    """

    name = "direct"

    def __init__(
        self,
        *,
        follow_redirects: bool = True,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._follow_redirects = follow_redirects
        self._http_transport = http_transport
        self._clients: dict[str | None, httpx.AsyncClient] = {}

    def _client_for(self, proxy: ProxyRecord | None) -> httpx.AsyncClient:
        key = proxy.url if proxy is not None else None
        client = self._clients.get(key)
        if client is None:
            kwargs: dict = {"follow_redirects": self._follow_redirects}
            if self._http_transport is not None:
                kwargs["transport"] = self._http_transport
            elif key is not None:
                kwargs["proxy"] = key
            client = httpx.AsyncClient(**kwargs)
            self._clients[key] = client
        return client

    async def send(
        self,
        descriptor: RequestDescriptor,
        proxy: ProxyRecord | None = None,
    ) -> ResponseEnvelope | TransportFailure:
        try:
            client = self._client_for(proxy)
        except (ImportError, ValueError) as exc:
            # Unsupported proxy scheme, or the SOCKS backend is missing
            target = proxy.display_url if proxy is not None else "direct connection"
            return TransportFailure(FailureKind.NETWORK, f"cannot build client for {target}: {exc}")
        started = time.monotonic()

        try:
            response = await client.request(
                descriptor.method,
                descriptor.url,
                headers=dict(descriptor.headers),
                content=descriptor.body,
                timeout=descriptor.timeout,
            )
        except httpx.TimeoutException as exc:
            return TransportFailure(FailureKind.TIMEOUT, f"request timed out: {exc.__class__.__name__}")
        except httpx.HTTPError as exc:
            return TransportFailure(FailureKind.NETWORK, f"{exc.__class__.__name__}: {exc}")
        finally:
            client.cookies.clear()

        envelope = ResponseEnvelope(
            status_code=response.status_code,
            body=response.content,
            headers=dict(response.headers),
            set_cookie=tuple(response.headers.get_list("set-cookie")),
            elapsed_ms=(time.monotonic() - started) * 1000,
            proxy_id=proxy.id if proxy is not None else None,
            url=str(response.url),
        )

        if not envelope.ok:
            return TransportFailure(
                FailureKind.HTTP_ERROR,
                f"HTTP {response.status_code}",
                status_code=response.status_code,
                envelope=envelope,
            )
        return envelope

    async def close(self) -> None:
        for client in self._clients.values():
            await client.aclose()
        self._clients.clear()
