"""
Runtime configuration for content access checks.

All values come from environment variables with safe defaults, so the
package works without any configuration (no remote cache, default TTLs).

Configuration (environment variables):
- REDIS_URL:                                  Remote cache URL (default: unset)
- CONTENT_ACCESS_CACHE_FALLBACK:              "none" or "memory" (default: "none")
- CONTENT_ACCESS_REDIS_TIMEOUT_SECONDS:       Socket timeout (default: "2")
- CONTENT_ACCESS_SUBSCRIPTION_TTL_SECONDS:    Subscription/content TTL (default: "300")
- CONTENT_ACCESS_CREATOR_PROFILE_TTL_SECONDS: Creator profile TTL (default: "600")
- CONTENT_ACCESS_MAX_CHECK_INTERVAL_SECONDS:  Playback poll ceiling (default: "300")
- CONTENT_ACCESS_RETRY_AFTER_SECONDS:         Revalidation retry backoff (default: "10")
- CONTENT_ACCESS_MAX_RETRIES:                 Revalidation retry budget (default: "3")
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

CACHE_FALLBACKS = ("none", "memory")


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


@dataclass(frozen=True)
class AccessSettings:
    """Tunables for caching, revalidation and playback polling."""

    redis_url: Optional[str] = None
    cache_fallback: str = "none"
    redis_socket_timeout: float = 2.0

    subscription_status_ttl: int = 5 * 60
    creator_profile_ttl: int = 10 * 60

    max_check_interval: int = 5 * 60
    free_content_expires_in: int = 60 * 60
    free_content_next_check_in: int = 10 * 60
    default_period_horizon: int = 30 * 24 * 60 * 60

    retry_after: int = 10
    max_retries: int = 3

    url_refresh_buffer: int = 60
    batch_limit: int = 100

    def __post_init__(self) -> None:
        if self.cache_fallback not in CACHE_FALLBACKS:
            raise ValueError(f"cache_fallback must be one of: {', '.join(CACHE_FALLBACKS)}")
        if self.subscription_status_ttl <= 0 or self.creator_profile_ttl <= 0:
            raise ValueError("cache TTLs must be positive")
        if self.max_retries < 0:
            raise ValueError("max_retries must not be negative")

    @classmethod
    def from_env(cls) -> "AccessSettings":
        """Load settings from environment variables."""
        redis_url = os.getenv("REDIS_URL") or None
        return cls(
            redis_url=redis_url,
            cache_fallback=os.getenv("CONTENT_ACCESS_CACHE_FALLBACK", "none").strip().lower(),
            redis_socket_timeout=_float_env("CONTENT_ACCESS_REDIS_TIMEOUT_SECONDS", 2.0),
            subscription_status_ttl=_int_env("CONTENT_ACCESS_SUBSCRIPTION_TTL_SECONDS", 5 * 60),
            creator_profile_ttl=_int_env("CONTENT_ACCESS_CREATOR_PROFILE_TTL_SECONDS", 10 * 60),
            max_check_interval=_int_env("CONTENT_ACCESS_MAX_CHECK_INTERVAL_SECONDS", 5 * 60),
            retry_after=_int_env("CONTENT_ACCESS_RETRY_AFTER_SECONDS", 10),
            max_retries=_int_env("CONTENT_ACCESS_MAX_RETRIES", 3),
        )
