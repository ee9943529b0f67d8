"""
Key-value cache used by the access checks.

Three interchangeable stores share one contract: get/set/delete never raise
on backend trouble. Reads degrade to a miss and writes to a no-op, with a
warning logged. A cache outage can therefore only force a fresh database
read, never grant access.

- RedisCacheStore:    shared remote cache (redis-py), JSON payloads
- InMemoryCacheStore: process-local fallback with per-entry expiry
- NullCacheStore:     always miss; used without a backend and in tests
"""

from __future__ import annotations

import fnmatch
import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Tuple, TypeVar

import redis

from .config import AccessSettings
from .errors import CacheDecodeError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CacheTTL:
    """TTL classes in seconds."""

    SUBSCRIPTION_STATUS = 5 * 60
    CREATOR_PROFILE = 10 * 60
    NOTIFICATION_COUNT = 30


def subscription_access_key(user_id: str, creator_id: str) -> str:
    return f"sub:access:{user_id}:{creator_id}"


def creator_subscription_access_pattern(creator_id: str) -> str:
    return f"sub:access:*:{creator_id}"


def content_metadata_key(content_id: str) -> str:
    return f"content:meta:{content_id}"


def creator_profile_key(creator_id: str) -> str:
    return f"profile:{creator_id}"


class CacheStore(ABC):
    """get/set/delete with TTL. Implementations must not raise."""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        ...

    @abstractmethod
    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        ...

    @abstractmethod
    def delete_pattern(self, pattern: str) -> int:
        """Delete keys matching a glob pattern; returns the number deleted."""

    @abstractmethod
    def incr_with_expiry(self, key: str, ttl_seconds: int) -> Optional[int]:
        """Increment a counter, starting its TTL on creation. None on failure."""


class NullCacheStore(CacheStore):
    def get(self, key: str) -> Optional[Any]:
        return None

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        return None

    def delete(self, key: str) -> None:
        return None

    def delete_pattern(self, pattern: str) -> int:
        return 0

    def incr_with_expiry(self, key: str, ttl_seconds: int) -> Optional[int]:
        return None


class InMemoryCacheStore(CacheStore):
    """Process-local cache. Values are stored as JSON text, like the remote store."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: Dict[str, Tuple[float, str]] = {}
        self._lock = threading.Lock()

    def _live_entry(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, raw = entry
        if self._clock() >= expires_at:
            self._entries.pop(key, None)
            return None
        return raw

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            raw = self._live_entry(key)
        if raw is None:
            return None
        return json.loads(raw)

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        try:
            raw = json.dumps(value)
        except (TypeError, ValueError) as exc:
            logger.warning("Cache set skipped: value not serializable", extra={"key": key, "error": str(exc)})
            return
        with self._lock:
            self._entries[key] = (self._clock() + ttl_seconds, raw)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def delete_pattern(self, pattern: str) -> int:
        with self._lock:
            matched = [key for key in self._entries if fnmatch.fnmatchcase(key, pattern)]
            for key in matched:
                del self._entries[key]
        return len(matched)

    def incr_with_expiry(self, key: str, ttl_seconds: int) -> Optional[int]:
        with self._lock:
            raw = self._live_entry(key)
            if raw is None:
                count = 1
                expires_at = self._clock() + ttl_seconds
            else:
                count = int(json.loads(raw)) + 1
                expires_at = self._entries[key][0]
            self._entries[key] = (expires_at, json.dumps(count))
        return count


class RedisCacheStore(CacheStore):
    """Redis-backed store. Connection and command errors degrade to a miss."""

    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, redis_url: str, socket_timeout: float = 2.0) -> "RedisCacheStore":
        client = redis.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=socket_timeout,
            socket_timeout=socket_timeout,
        )
        return cls(client)

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except (redis.RedisError, OSError) as exc:
            logger.warning("Redis ping failed", extra={"error": str(exc), "error_type": type(exc).__name__})
            return False

    def get(self, key: str) -> Optional[Any]:
        try:
            raw = self._client.get(key)
        except (redis.RedisError, OSError) as exc:
            logger.warning(
                "Cache get failed - treating as miss",
                extra={"key": key, "error": str(exc), "error_type": type(exc).__name__},
            )
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as exc:
            logger.warning("Cache payload is not valid JSON - treating as miss", extra={"key": key, "error": str(exc)})
            return None

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as exc:
            logger.warning("Cache set skipped: value not serializable", extra={"key": key, "error": str(exc)})
            return
        try:
            self._client.setex(key, int(ttl_seconds), payload)
        except (redis.RedisError, OSError) as exc:
            logger.warning(
                "Cache set failed",
                extra={"key": key, "error": str(exc), "error_type": type(exc).__name__},
            )

    def delete(self, key: str) -> None:
        try:
            self._client.delete(key)
        except (redis.RedisError, OSError) as exc:
            logger.warning(
                "Cache delete failed",
                extra={"key": key, "error": str(exc), "error_type": type(exc).__name__},
            )

    def delete_pattern(self, pattern: str) -> int:
        try:
            keys = list(self._client.scan_iter(match=pattern, count=500))
            if keys:
                self._client.delete(*keys)
            return len(keys)
        except (redis.RedisError, OSError) as exc:
            logger.warning(
                "Cache pattern delete failed",
                extra={"pattern": pattern, "error": str(exc), "error_type": type(exc).__name__},
            )
            return 0

    def incr_with_expiry(self, key: str, ttl_seconds: int) -> Optional[int]:
        try:
            count = int(self._client.incr(key))
            if count == 1:
                self._client.expire(key, int(ttl_seconds))
            return count
        except (redis.RedisError, OSError) as exc:
            logger.warning(
                "Cache increment failed",
                extra={"key": key, "error": str(exc), "error_type": type(exc).__name__},
            )
            return None


def get_typed(cache: CacheStore, key: str, decoder: Callable[[Any], T]) -> Optional[T]:
    """Read and decode a cached payload; unreadable payloads count as a miss."""
    raw = cache.get(key)
    if raw is None:
        return None
    try:
        return decoder(raw)
    except CacheDecodeError as exc:
        logger.warning("Discarding unreadable cache entry", extra={"key": key, "error": str(exc)})
        return None


def build_cache_store(settings: Optional[AccessSettings] = None) -> CacheStore:
    """Remote store when configured and reachable, else the configured fallback."""
    settings = settings or AccessSettings.from_env()

    if settings.redis_url:
        try:
            store = RedisCacheStore.from_url(settings.redis_url, socket_timeout=settings.redis_socket_timeout)
        except ValueError as exc:
            logger.warning("Invalid REDIS_URL - cache disabled", extra={"error": str(exc)})
        else:
            if store.ping():
                return store
            logger.warning(
                "Redis unreachable - using fallback cache",
                extra={"fallback": settings.cache_fallback},
            )

    if settings.cache_fallback == "memory":
        return InMemoryCacheStore()
    return NullCacheStore()
