"""Caller-facing fetch options and the immutable per-request descriptor."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field

from scrape_engine.proxy.types import ProxyRecord


class FetchOptions(BaseModel):
    """Per-call options for ``ScrapingEngine.fetch``.

    ``use_challenge_transport=None`` defers to the domain policy and then to
    the engine settings. ``proxy`` pins a specific proxy instead of asking
    the pool for the next one.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    method: str = Field(default="GET", min_length=1)
    headers: dict[str, str] = Field(default_factory=dict)
    body: bytes | str | None = None
    timeout: float | None = Field(default=None, gt=0)
    use_challenge_transport: bool | None = None
    use_cache: bool = True
    proxy: ProxyRecord | None = None
    deadline_seconds: float | None = Field(default=None, gt=0)


def _merge_headers(*sources: Mapping[str, str] | None) -> MappingProxyType:
    """Merge header mappings, unique case-insensitively; the last write wins.

    The key spelling of the winning write is kept.
    """
    merged: dict[str, tuple[str, str]] = {}
    for source in sources:
        if not source:
            continue
        for name, value in source.items():
            merged[name.lower()] = (name, str(value))
    return MappingProxyType({name: value for name, value in merged.values()})


@dataclass(frozen=True)
class RequestDescriptor:
    """Immutable description of one outbound request."""

    url: str
    method: str = "GET"
    body: bytes | None = None
    headers: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    timeout: float = 30.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", self.method.upper())
        object.__setattr__(self, "headers", _merge_headers(self.headers))

    @property
    def domain(self) -> str:
        """Lower-cased hostname of the target, without port."""
        return (urlparse(self.url).hostname or "").lower()

    def header(self, name: str) -> str | None:
        """Case-insensitive header lookup."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None

    def with_headers(self, headers: Mapping[str, str], *, override: bool = True) -> RequestDescriptor:
        """Return a copy with *headers* merged in.

        With ``override=False`` the descriptor's own headers win, which is
        how defaults are layered underneath caller headers.
        """
        if override:
            merged = _merge_headers(self.headers, headers)
        else:
            merged = _merge_headers(headers, self.headers)
        return replace(self, headers=merged)

    @classmethod
    def build(cls, url: str, options: FetchOptions, default_timeout: float) -> RequestDescriptor:
        body = options.body.encode("utf-8") if isinstance(options.body, str) else options.body
        return cls(
            url=url,
            method=options.method,
            body=body,
            headers=_merge_headers(options.headers),
            timeout=options.timeout or default_timeout,
        )
