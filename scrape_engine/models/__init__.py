"""Public models for the scraping engine."""

from scrape_engine.models.requests import FetchOptions, RequestDescriptor
from scrape_engine.models.responses import FetchResult, ResponseEnvelope

__all__ = [
    "FetchOptions",
    "FetchResult",
    "RequestDescriptor",
    "ResponseEnvelope",
]
