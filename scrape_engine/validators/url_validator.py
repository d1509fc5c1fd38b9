"""URL validation for fetch targets and lookup-URL construction."""

from __future__ import annotations

import asyncio
import ipaddress
import socket
from collections.abc import Iterable
from urllib.parse import quote, urlparse


# Private/reserved IP networks
_PRIVATE_NETWORKS = [
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("127.0.0.0/8"),
    ipaddress.ip_network("169.254.0.0/16"),
    ipaddress.ip_network("0.0.0.0/8"),
    ipaddress.ip_network("::1/128"),
    ipaddress.ip_network("fc00::/7"),
]

_ALLOWED_SCHEMES = {"http", "https"}


def is_private_ip(ip_str: str) -> bool:
    """Check if an IP address is in a private/reserved range."""
    try:
        addr = ipaddress.ip_address(ip_str)
        return any(addr in network for network in _PRIVATE_NETWORKS if addr.version == network.version)
    except ValueError:
        return True  # Invalid IP → reject


def is_absolute_http_url(url: str) -> bool:
    """Return True for absolute http/https URLs with a host."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme.lower() in _ALLOWED_SCHEMES and bool(parsed.hostname)


async def resolves_to_public_host(url: str) -> bool:
    """Return False if the URL's host resolves to any private address.

    DNS resolution runs in the default executor so the event loop is not
    blocked.
    """
    hostname = urlparse(url).hostname
    if not hostname:
        return False
    loop = asyncio.get_running_loop()
    try:
        infos = await loop.getaddrinfo(hostname, None)
    except (socket.gaierror, OSError):
        return False
    return not any(is_private_ip(info[4][0]) for info in infos)


async def validate_url(url: str, *, block_private_hosts: bool = False) -> bool:
    """Validate a fetch target URL.

    Returns True if the URL is absolute http/https and, when
    *block_private_hosts* is set, does not resolve to a private address.
    """
    if not is_absolute_http_url(url):
        return False
    if block_private_hosts:
        return await resolves_to_public_host(url)
    return True


def build_lookup_urls(template: str, identifiers: Iterable[str]) -> list[str]:
    """Expand *template* once per identifier.

    The template carries an ``{id}`` placeholder, e.g.
    ``"https://www.javbus.com/{id}"``. Identifiers are stripped, URL-quoted
    and de-duplicated (first occurrence wins); blank ones are dropped.
    """
    if "{id}" not in template:
        raise ValueError("Lookup URL template must contain an '{id}' placeholder")

    urls: list[str] = []
    seen: set[str] = set()
    for raw in identifiers:
        key = raw.strip()
        if not key or key in seen:
            continue
        seen.add(key)
        urls.append(template.replace("{id}", quote(key, safe="")))
    return urls
