"""Transport interface shared by the direct and challenge-capable strategies."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from scrape_engine.errors import FailureKind
from scrape_engine.models.requests import RequestDescriptor
from scrape_engine.models.responses import ResponseEnvelope
from scrape_engine.proxy.types import ProxyRecord


@dataclass(frozen=True)
class TransportFailure:
    """Expected failure of one attempt, returned instead of raised.

    ``envelope`` is attached for ``http_error`` so the response can still be
    classified by the anti-bot engine.
    """

    kind: FailureKind
    message: str
    status_code: int | None = None
    envelope: ResponseEnvelope | None = None


class Transport(ABC):
    """One way of performing a single request attempt."""

    name: str = "transport"

    @abstractmethod
    async def send(
        self,
        descriptor: RequestDescriptor,
        proxy: ProxyRecord | None = None,
    ) -> ResponseEnvelope | TransportFailure:
        """Perform one attempt. Must not raise for network-level failures."""

    def time_budget(self, descriptor: RequestDescriptor) -> float:
        """Hard ceiling in seconds for one attempt."""
        return descriptor.timeout

    async def close(self) -> None:
        """Release pooled connections or browser processes."""
