"""
OTP rate-limit profiles.

Two static profiles exist:
  • development – lenient, so the OTP flow can be exercised repeatedly
  • production  – strict, since every OTP costs a WhatsApp message

The profile is chosen once at process start from ENVIRONMENT and is
never reloaded; switching requires a restart.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields

from portal import config as app_config

logger = logging.getLogger(__name__)

_SECOND = 1000
_MINUTE = 60 * _SECOND
_HOUR = 60 * _MINUTE


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


@dataclass(frozen=True)
class IpLimits:
    max_requests: int
    window_ms: int
    block_duration_ms: int


@dataclass(frozen=True)
class PhoneLimits:
    max_requests: int
    window_ms: int
    cooldown_ms: int
    daily_limit: int


@dataclass(frozen=True)
class GlobalLimits:
    max_requests_per_hour: int
    suspicious_threshold: int


@dataclass(frozen=True)
class BurstLimits:
    max_requests_per_minute: int
    window_ms: int


@dataclass(frozen=True)
class RateLimitConfig:
    """Thresholds for every rate-limit dimension."""

    name: str
    ip: IpLimits
    phone: PhoneLimits
    global_: GlobalLimits
    burst: BurstLimits

    def to_dict(self) -> dict:
        """JSON-friendly view (camelCase keys, as the admin console expects)."""
        sections = {
            "ip": self.ip,
            "phone": self.phone,
            "global": self.global_,
            "burst": self.burst,
        }
        result: dict = {"profile": self.name}
        for section, limits in sections.items():
            result[section] = {
                _camel(f.name): getattr(limits, f.name)
                for f in fields(limits)
            }
        return result


DEVELOPMENT_RATE_LIMIT_CONFIG = RateLimitConfig(
    name="development",
    ip=IpLimits(
        max_requests=50,
        window_ms=_HOUR,
        block_duration_ms=10 * _MINUTE,
    ),
    phone=PhoneLimits(
        max_requests=20,
        window_ms=_HOUR,
        cooldown_ms=10 * _SECOND,
        daily_limit=100,
    ),
    global_=GlobalLimits(
        max_requests_per_hour=5000,
        suspicious_threshold=500,
    ),
    burst=BurstLimits(
        max_requests_per_minute=10,
        window_ms=_MINUTE,
    ),
)

PRODUCTION_RATE_LIMIT_CONFIG = RateLimitConfig(
    name="production",
    ip=IpLimits(
        max_requests=10,
        window_ms=_HOUR,
        block_duration_ms=2 * _HOUR,
    ),
    phone=PhoneLimits(
        max_requests=5,
        window_ms=_HOUR,
        cooldown_ms=_MINUTE,
        daily_limit=20,
    ),
    global_=GlobalLimits(
        max_requests_per_hour=1000,
        suspicious_threshold=100,
    ),
    burst=BurstLimits(
        max_requests_per_minute=3,
        window_ms=_MINUTE,
    ),
)


def get_rate_limit_config(environment: str | None = None) -> RateLimitConfig:
    """Pick the rate-limit profile for *environment* (defaults to ENVIRONMENT).

    Only "production" selects the strict profile; any other value, including
    an empty one, falls back to the development profile.
    """
    if environment is None:
        environment = app_config.ENVIRONMENT

    if (environment or "").strip().lower() == "production":
        logger.info("🔒 Using PRODUCTION rate limiting config (strict)")
        return PRODUCTION_RATE_LIMIT_CONFIG

    logger.info("🔧 Using DEVELOPMENT rate limiting config (lenient)")
    return DEVELOPMENT_RATE_LIMIT_CONFIG
