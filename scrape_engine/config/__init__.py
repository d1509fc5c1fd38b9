"""Configuration module: settings and domain policies."""

from scrape_engine.config.domain_policies import DomainPolicy, load_domain_policies, policy_for
from scrape_engine.config.settings import EngineSettings

__all__ = [
    "DomainPolicy",
    "EngineSettings",
    "load_domain_policies",
    "policy_for",
]
