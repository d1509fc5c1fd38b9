"""Proxy pool package: rotation, failure tracking and self-healing."""

from scrape_engine.proxy.manager import ProxyPool
from scrape_engine.proxy.types import ProxyRecord

__all__ = ["ProxyPool", "ProxyRecord"]
