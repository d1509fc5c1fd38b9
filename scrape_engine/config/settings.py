"""Pydantic Settings for the scraping engine.

All environment variables use the SCRAPE_ENGINE_ prefix.
Example: SCRAPE_ENGINE_MAX_ATTEMPTS=5, SCRAPE_ENGINE_PROXY_ENDPOINTS='["http://p1:8080"]'
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings


class EngineSettings(BaseSettings):
    """Scraping engine configuration validated from environment variables."""

    log_level: str = "INFO"

    # Retry / backoff
    max_attempts: int = Field(default=3, ge=1, le=10)
    retry_base_delay_ms: int | None = Field(default=None, ge=0)  # None → random 1000–3000ms
    max_retry_delay_ms: int = Field(default=30000, ge=0)
    request_timeout_seconds: float = Field(default=30.0, gt=0)

    # Transport
    use_challenge_transport: bool = False
    block_private_hosts: bool = False
    navigation_timeout_ms: int = Field(default=30000, ge=1000)
    challenge_wait_seconds: float = Field(default=15.0, ge=0)
    browser_page_limit: int = Field(default=100, ge=1)  # Relaunch Chromium after N pages

    # Response cache
    cache_enabled: bool = True
    cache_ttl_seconds: float = Field(default=3600.0, gt=0)
    cache_max_entries: int = Field(default=1000, ge=1)

    # Cookies
    cookie_max_age_days: float = Field(default=30.0, gt=0)

    # Proxy pool
    proxy_endpoints: list[str] = []
    proxy_failure_threshold: int = Field(default=3, ge=1)

    # Batch fetching
    batch_size: int = Field(default=5, ge=1, le=100)
    batch_delay_ms: int = Field(default=1000, ge=0)

    # Content
    default_charset: str = "utf-8"

    # Anti-bot
    bot_block_confidence: float = Field(default=0.7, ge=0.0, le=1.0)

    # Rate limiting defaults
    rate_limit_tokens: int = Field(default=5, ge=1)
    rate_limit_interval_seconds: int = Field(default=1, ge=1)
    rate_limit_backoff_seconds: int = Field(default=60, ge=0)

    # Domain policies
    domain_policies_path: str = "domain_policies.yaml"

    model_config = {"env_prefix": "SCRAPE_ENGINE_"}
