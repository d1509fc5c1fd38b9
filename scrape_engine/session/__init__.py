"""Session state shared across fetches to the same domain."""

from scrape_engine.session.cookies import CookieEntry, CookieStore

__all__ = ["CookieEntry", "CookieStore"]
