"""Validators for fetch inputs."""

from scrape_engine.validators.url_validator import (
    build_lookup_urls,
    is_absolute_http_url,
    is_private_ip,
    validate_url,
)

__all__ = ["build_lookup_urls", "is_absolute_http_url", "is_private_ip", "validate_url"]
