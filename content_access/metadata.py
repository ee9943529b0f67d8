"""
Cache-backed lookups for content metadata and creator profiles.

Content metadata shares the subscription-status TTL so free/paid flips made
by a creator propagate promptly. Any path that changes ``is_free``,
``creator_id`` or ``status`` must call ``ContentMetadataLookup.invalidate``
before returning its response.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from .cache import CacheStore, CacheTTL, content_metadata_key, creator_profile_key, get_typed
from .models import ContentMetadata, CreatorPaywallInfo, CreatorProfile
from .store import AccessStore

logger = logging.getLogger(__name__)


def _unique(ids: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(ids))


class ContentMetadataLookup:
    def __init__(self, store: AccessStore, cache: CacheStore, ttl_seconds: int = CacheTTL.SUBSCRIPTION_STATUS) -> None:
        self._store = store
        self._cache = cache
        self._ttl_seconds = ttl_seconds

    def get(self, content_id: str) -> Optional[ContentMetadata]:
        key = content_metadata_key(content_id)
        cached = get_typed(self._cache, key, ContentMetadata.from_cache)
        if cached is not None:
            return cached

        content = self._store.get_content(content_id)
        if content is None:
            return None

        self._cache.set(key, content.to_cache(), self._ttl_seconds)
        return content

    def get_many(self, content_ids: Iterable[str]) -> Dict[str, ContentMetadata]:
        """Cache lookup per id, then one store query for all misses."""
        found: Dict[str, ContentMetadata] = {}
        missing: List[str] = []
        for content_id in _unique(content_ids):
            cached = get_typed(self._cache, content_metadata_key(content_id), ContentMetadata.from_cache)
            if cached is None:
                missing.append(content_id)
            else:
                found[content_id] = cached

        if missing:
            for content in self._store.get_contents(missing):
                self._cache.set(content_metadata_key(content.id), content.to_cache(), self._ttl_seconds)
                found[content.id] = content
        return found

    def invalidate(self, content_id: str) -> None:
        self._cache.delete(content_metadata_key(content_id))


class CreatorProfileLookup:
    def __init__(self, store: AccessStore, cache: CacheStore, ttl_seconds: int = CacheTTL.CREATOR_PROFILE) -> None:
        self._store = store
        self._cache = cache
        self._ttl_seconds = ttl_seconds

    def get(self, creator_id: str) -> Optional[CreatorProfile]:
        key = creator_profile_key(creator_id)
        cached = get_typed(self._cache, key, CreatorProfile.from_cache)
        if cached is not None:
            return cached

        creator = self._store.get_creator(creator_id)
        if creator is None:
            logger.warning("Creator profile not found", extra={"creator_id": creator_id})
            return None

        self._cache.set(key, creator.to_cache(), self._ttl_seconds)
        return creator

    def get_many(self, creator_ids: Iterable[str]) -> Dict[str, CreatorProfile]:
        found: Dict[str, CreatorProfile] = {}
        missing: List[str] = []
        for creator_id in _unique(creator_ids):
            cached = get_typed(self._cache, creator_profile_key(creator_id), CreatorProfile.from_cache)
            if cached is None:
                missing.append(creator_id)
            else:
                found[creator_id] = cached

        if missing:
            for creator in self._store.get_creators(missing):
                self._cache.set(creator_profile_key(creator.id), creator.to_cache(), self._ttl_seconds)
                found[creator.id] = creator
        return found

    def paywall_info(self, creator_id: str) -> Optional[CreatorPaywallInfo]:
        creator = self.get(creator_id)
        return creator.paywall_info() if creator is not None else None

    def is_owner(self, user_id: Optional[str], creator_id: str) -> bool:
        if not user_id:
            return False
        creator = self.get(creator_id)
        return creator is not None and creator.is_owned_by(user_id)

    def invalidate(self, creator_id: str) -> None:
        self._cache.delete(creator_profile_key(creator_id))
