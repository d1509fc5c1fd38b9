"""Response caching."""

from scrape_engine.cache.response_cache import CacheEntry, ResponseCache, make_cache_key

__all__ = ["CacheEntry", "ResponseCache", "make_cache_key"]
