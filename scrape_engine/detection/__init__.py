"""Anti-bot detection heuristics."""

from scrape_engine.detection.antibot import AntiBotDetector, DetectionResult
from scrape_engine.detection.rules import RULESET_VERSION

__all__ = ["AntiBotDetector", "DetectionResult", "RULESET_VERSION"]
