"""Resilient web-scraping engine for metadata extraction."""

from scrape_engine.config.settings import EngineSettings
from scrape_engine.errors import FailureKind, FetchError, InvalidUrlError, ScrapeEngineError
from scrape_engine.logging_config import configure_logging
from scrape_engine.models.requests import FetchOptions
from scrape_engine.models.responses import FetchResult
from scrape_engine.services.engine import ScrapingEngine
from scrape_engine.validators.url_validator import build_lookup_urls

__version__ = "0.1.0"

__all__ = [
    "EngineSettings",
    "FailureKind",
    "FetchError",
    "FetchOptions",
    "FetchResult",
    "InvalidUrlError",
    "ScrapeEngineError",
    "ScrapingEngine",
    "build_lookup_urls",
    "configure_logging",
]
