"""Proxy data models for the proxy pool."""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import quote


@dataclass
class ProxyRecord:
    """A single proxy endpoint with health and usage tracking."""

    id: str
    host: str
    port: int
    protocol: str = "http"  # http, https, socks5
    username: str | None = None
    password: str | None = None
    consecutive_failures: int = 0
    success_rate: float = 1.0
    last_used: float | None = None  # time.monotonic()
    success_count: int = 0
    failure_count: int = 0

    @property
    def url(self) -> str:
        """Proxy URL suitable for httpx, credentials included."""
        auth = ""
        if self.username:
            auth = quote(self.username, safe="")
            if self.password:
                auth += ":" + quote(self.password, safe="")
            auth += "@"
        return f"{self.protocol}://{auth}{self.host}:{self.port}"

    @property
    def display_url(self) -> str:
        """Proxy URL without credentials, safe for logs."""
        return f"{self.protocol}://{self.host}:{self.port}"
