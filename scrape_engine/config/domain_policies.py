"""Domain policy models and YAML loader.

Provides typed Pydantic models for per-domain fetch policies and a loader
function that parses the YAML config into those models.

Example file::

    domains:
      default:
        tokens_per_interval: 5
        interval_seconds: 1
      www.javbus.com:
        tokens_per_interval: 1
        interval_seconds: 1
        use_challenge_transport: true
      legacy.example.jp:
        charset: shift_jis
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class DomainPolicy(BaseModel):
    """Rate limiting, transport and decoding policy for a single domain."""

    tokens_per_interval: int = Field(default=5, ge=1)
    interval_seconds: int = Field(default=1, ge=1)
    charset: str | None = None  # Overrides the Content-Type charset
    use_challenge_transport: bool | None = None  # None → engine default


_DEFAULT_POLICY = DomainPolicy()


def load_domain_policies(yaml_path: str, default: DomainPolicy | None = None) -> dict[str, DomainPolicy]:
    """Parse a domain policies YAML file into typed DomainPolicy objects.

    Args:
        yaml_path: Path to the YAML configuration file.
        default: Policy used when the file has no ``default`` entry.

    Returns:
        A dict mapping domain names (and "default") to DomainPolicy instances.
        If the file is missing or malformed, returns just the default policy.
    """
    fallback = default or _DEFAULT_POLICY
    path = Path(yaml_path)

    if not path.exists():
        logger.debug("Domain policies file not found at %s; using built-in defaults", yaml_path)
        return {"default": fallback}

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        logger.error("Failed to parse domain policies YAML at %s: %s", yaml_path, exc)
        return {"default": fallback}

    if not isinstance(raw, dict) or not isinstance(raw.get("domains"), dict):
        logger.warning("Domain policies YAML missing 'domains' mapping; using built-in defaults")
        return {"default": fallback}

    policies: dict[str, DomainPolicy] = {}
    for domain, config in raw["domains"].items():
        try:
            policies[str(domain).lower()] = DomainPolicy.model_validate(config or {})
        except Exception as exc:
            logger.error("Invalid policy for domain '%s': %s; skipping", domain, exc)

    if "default" not in policies:
        policies["default"] = fallback

    return policies


def policy_for(policies: dict[str, DomainPolicy], domain: str) -> DomainPolicy:
    """Return the policy for *domain*, falling back to the default policy."""
    return policies.get(domain) or policies.get("default") or _DEFAULT_POLICY
