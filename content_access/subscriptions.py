"""
Subscription status resolution with caching.

Resolves whether a user holds a currently valid entitlement to a creator.
Results, negative ones included, are cached for the subscription-status
TTL. A cached grant is re-checked against the clock on every read because
a canceled subscription's grace period can end while the entry is cached.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from .cache import CacheStore, CacheTTL, creator_subscription_access_pattern, get_typed, subscription_access_key
from .metadata import CreatorProfileLookup
from .models import AccessVerdict, CachedSubscriptionEntry, SubscriptionRecord, SubscriptionSummary
from .policy import grant_reason, status_to_reason
from .store import AccessStore

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SubscriptionStatusResolver:
    def __init__(
        self,
        store: AccessStore,
        cache: CacheStore,
        creators: CreatorProfileLookup,
        *,
        ttl_seconds: int = CacheTTL.SUBSCRIPTION_STATUS,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._cache = cache
        self._creators = creators
        self._ttl_seconds = ttl_seconds
        self._clock = clock

    def check(self, user_id: str, creator_id: str) -> AccessVerdict:
        """Verdict for (user, creator); ``is_free_content`` is always False."""
        key = subscription_access_key(user_id, creator_id)
        now = self._clock()

        entry = get_typed(self._cache, key, CachedSubscriptionEntry.from_cache)
        if entry is None:
            record = self._store.get_subscription(user_id, creator_id)
            entry = CachedSubscriptionEntry.from_record(record, now)
            self._cache.set(key, entry.to_cache(), self._ttl_seconds)

        if entry.is_active_at(now):
            return AccessVerdict(
                has_access=True,
                reason=grant_reason(entry.status),
                subscription=SubscriptionSummary(
                    id=entry.subscription_id,
                    status=entry.status,
                    expires_at=entry.expires_at,
                ),
            )

        if entry.is_active:
            logger.info(
                "Cached grace period has ended",
                extra={"user_id": user_id, "creator_id": creator_id, "expires_at": str(entry.expires_at)},
            )

        return AccessVerdict(
            has_access=False,
            reason=status_to_reason(entry.status),
            creator=self._creators.paywall_info(creator_id),
        )

    def invalidate(self, user_id: str, creator_id: str) -> None:
        self._cache.delete(subscription_access_key(user_id, creator_id))

    def invalidate_creator(self, creator_id: str) -> int:
        """Drop every cached access entry for one creator."""
        deleted = self._cache.delete_pattern(creator_subscription_access_pattern(creator_id))
        logger.info("Invalidated creator access cache", extra={"creator_id": creator_id, "deleted": deleted})
        return deleted

    def fetch_fresh(self, user_id: str, creator_id: str) -> Optional[SubscriptionRecord]:
        """Store read that bypasses the cache; used by revalidation."""
        return self._store.get_subscription(user_id, creator_id)

