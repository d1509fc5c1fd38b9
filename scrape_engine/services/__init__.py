"""Orchestration services."""

from scrape_engine.services.engine import ScrapingEngine

__all__ = ["ScrapingEngine"]
