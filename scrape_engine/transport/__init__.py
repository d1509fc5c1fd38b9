"""Transport strategies and the policy that drives them."""

from scrape_engine.transport.base import Transport, TransportFailure
from scrape_engine.transport.browser import BrowserTransport
from scrape_engine.transport.direct import DirectTransport
from scrape_engine.transport.identity import CURATED_USER_AGENTS, IdentityRotator
from scrape_engine.transport.policy import TransportPolicy

__all__ = [
    "BrowserTransport",
    "CURATED_USER_AGENTS",
    "DirectTransport",
    "IdentityRotator",
    "Transport",
    "TransportFailure",
    "TransportPolicy",
]
