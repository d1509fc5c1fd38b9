"""Client identity: user-agent rotation and browser-like default headers."""

from __future__ import annotations

import random

# ---------------------------------------------------------------------------
# Curated user agent list: real desktop browser UA strings
# ---------------------------------------------------------------------------

CURATED_USER_AGENTS: list[str] = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:121.0) Gecko/20100101 Firefox/121.0",
]

DEFAULT_ACCEPT_LANGUAGE = "zh-CN,zh;q=0.9,en;q=0.8,ja;q=0.7"

_BASE_HEADERS: dict[str, str] = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "DNT": "1",
    "Upgrade-Insecure-Requests": "1",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Sec-Fetch-User": "?1",
    "Cache-Control": "no-cache",
}


class IdentityRotator:
    """Holds the current user agent and produces default request headers.

    The starting user agent is drawn at random; ``rotate()`` then walks the
    list in order so consecutive identities always differ.
    """

    def __init__(
        self,
        user_agents: list[str] | None = None,
        *,
        accept_language: str = DEFAULT_ACCEPT_LANGUAGE,
        rng: random.Random | None = None,
    ) -> None:
        self._user_agents = list(user_agents or CURATED_USER_AGENTS)
        if not self._user_agents:
            raise ValueError("At least one user agent is required")
        self._accept_language = accept_language
        self._index = (rng or random.Random()).randrange(len(self._user_agents))
        self._rotations = 0

    @property
    def current(self) -> str:
        return self._user_agents[self._index]

    @property
    def rotations(self) -> int:
        return self._rotations

    def rotate(self) -> str:
        """Advance to the next user agent and return it."""
        self._index = (self._index + 1) % len(self._user_agents)
        self._rotations += 1
        return self.current

    def headers(self, referer: str | None = None) -> dict[str, str]:
        headers = {"User-Agent": self.current, "Accept-Language": self._accept_language, **_BASE_HEADERS}
        if referer:
            headers["Referer"] = referer
        return headers
