"""Per-attempt response envelope and the final fetch result."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from scrape_engine.detection.antibot import DetectionResult


@dataclass(frozen=True)
class ResponseEnvelope:
    """Raw outcome of one transport attempt. Never mutated after creation."""

    status_code: int
    body: bytes = b""
    headers: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    set_cookie: tuple[str, ...] = ()
    elapsed_ms: float = 0.0
    proxy_id: str | None = None
    url: str = ""

    def __post_init__(self) -> None:
        lowered = {key.lower(): value for key, value in self.headers.items()}
        object.__setattr__(self, "headers", MappingProxyType(lowered))
        object.__setattr__(self, "set_cookie", tuple(self.set_cookie))

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


@dataclass(frozen=True)
class FetchResult:
    """Successful outcome of ``ScrapingEngine.fetch``."""

    url: str
    status: int
    body: str
    headers: Mapping[str, str]
    content: bytes
    from_cache: bool = False
    attempts: int = 1
    elapsed_ms: float = 0.0
    proxy_id: str | None = None
    detection: DetectionResult | None = None
