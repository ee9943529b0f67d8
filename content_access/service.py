from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from .cache import CacheStore, NullCacheStore, build_cache_store
from .config import AccessSettings
from .metadata import ContentMetadataLookup, CreatorProfileLookup
from .models import (
    SERVER_ERROR_CODE,
    AccessReason,
    AccessVerdict,
    ContentMetadata,
    CreatorPaywallInfo,
    RevalidationResult,
    fail_closed_result,
)
from .policy import error_for_verdict, grant_reason, status_to_reason
from .store import AccessStore, SqlAlchemyAccessStore
from .subscriptions import SubscriptionStatusResolver, utcnow

logger = logging.getLogger(__name__)


class ContentAccessService:
    """Decides whether a user may view a piece of content.

    Order: metadata -> free -> authenticated -> creator's own -> subscription.
    Store errors propagate from ``check_content_access``; ``revalidate_access``
    fails closed instead.
    """

    def __init__(
        self,
        *,
        store: AccessStore,
        cache: Optional[CacheStore] = None,
        settings: Optional[AccessSettings] = None,
        clock: Optional[Callable[[], datetime]] = None,
        audit_sink: Optional[Callable[[str, dict], None]] = None,
    ) -> None:
        self.settings = settings or AccessSettings()
        self.cache = cache if cache is not None else NullCacheStore()
        self._store = store
        self._clock = clock or utcnow
        self._audit_sink = audit_sink or (lambda event, payload: None)

        self.contents = ContentMetadataLookup(store, self.cache, self.settings.subscription_status_ttl)
        self.creators = CreatorProfileLookup(store, self.cache, self.settings.creator_profile_ttl)
        self.subscriptions = SubscriptionStatusResolver(
            store,
            self.cache,
            self.creators,
            ttl_seconds=self.settings.subscription_status_ttl,
            clock=self._clock,
        )

    @classmethod
    def from_session(
        cls,
        session: Session,
        *,
        settings: Optional[AccessSettings] = None,
        cache: Optional[CacheStore] = None,
        **kwargs,
    ) -> "ContentAccessService":
        settings = settings or AccessSettings.from_env()
        return cls(
            store=SqlAlchemyAccessStore(session),
            cache=cache if cache is not None else build_cache_store(settings),
            settings=settings,
            **kwargs,
        )

    # -- Single decision ---------------------------------------------------

    def check_content_access(
        self,
        content_id: str,
        user_id: Optional[str] = None,
        content: Optional[ContentMetadata] = None,
    ) -> AccessVerdict:
        metadata = content if content is not None else self.contents.get(content_id)

        if metadata is None:
            return self._denied(content_id, user_id, AccessVerdict(False, AccessReason.CONTENT_NOT_FOUND))

        # Free content needs no authentication.
        if metadata.is_free:
            return AccessVerdict(True, AccessReason.FREE_CONTENT, is_free_content=True)

        if not user_id:
            return self._denied(content_id, user_id, AccessVerdict(False, AccessReason.UNAUTHENTICATED))

        if self.creators.is_owner(user_id, metadata.creator_id):
            return AccessVerdict(True, AccessReason.CREATOR_OWN_CONTENT)

        verdict = replace(self.subscriptions.check(user_id, metadata.creator_id), is_free_content=False)
        if not verdict.has_access:
            return self._denied(content_id, user_id, verdict)
        return verdict

    def require_content_access(
        self,
        content_id: str,
        user_id: Optional[str] = None,
        content: Optional[ContentMetadata] = None,
    ) -> AccessVerdict:
        """Like check_content_access, but raises the matching ContentAccessError on denial."""
        verdict = self.check_content_access(content_id, user_id=user_id, content=content)
        error = error_for_verdict(verdict, content_id)
        if error is not None:
            raise error
        return verdict

    def check_subscription_status(self, user_id: str, creator_id: str) -> AccessVerdict:
        return self.subscriptions.check(user_id, creator_id)

    def _denied(self, content_id: str, user_id: Optional[str], verdict: AccessVerdict) -> AccessVerdict:
        logger.info(
            "Content access denied",
            extra={"content_id": content_id, "user_id": user_id, "reason": verdict.reason.value},
        )
        return verdict

    # -- Batch decision ----------------------------------------------------

    def check_batch_content_access(self, user_id: Optional[str], content_ids: Iterable[str]) -> Dict[str, bool]:
        """Boolean access per content id, for feed rendering.

        Same policy as check_content_access. Unknown ids map to False. Paid
        content is grouped by creator and resolved with one subscription
        query. Raises ValueError above the configured batch limit.
        """
        ids = list(dict.fromkeys(content_ids))
        if len(ids) > self.settings.batch_limit:
            raise ValueError(f"at most {self.settings.batch_limit} content ids per batch")
        access: Dict[str, bool] = {}
        if not ids:
            return access

        contents = self.contents.get_many(ids)
        paid_by_creator: Dict[str, List[str]] = {}
        for content_id in ids:
            content = contents.get(content_id)
            if content is None:
                access[content_id] = False
            elif content.is_free:
                access[content_id] = True
            else:
                paid_by_creator.setdefault(content.creator_id, []).append(content_id)

        if not paid_by_creator:
            return access

        if not user_id:
            for paid_ids in paid_by_creator.values():
                for content_id in paid_ids:
                    access[content_id] = False
            return access

        creators = self.creators.get_many(paid_by_creator)
        owned = {creator_id for creator_id, creator in creators.items() if creator.is_owned_by(user_id)}
        remaining = [creator_id for creator_id in paid_by_creator if creator_id not in owned]
        subscribed = (
            self._store.find_entitling_creator_ids(user_id, remaining, self._clock()) if remaining else set()
        )

        for creator_id, paid_ids in paid_by_creator.items():
            allowed = creator_id in owned or creator_id in subscribed
            for content_id in paid_ids:
                access[content_id] = allowed
        return access

    # -- Revalidation ------------------------------------------------------

    def revalidate_access(self, user_id: Optional[str], content_id: str) -> RevalidationResult:
        """Mid-playback re-check against the store, bypassing the subscription cache.

        Never raises: any failure yields ``valid=False`` with retry guidance.
        """
        try:
            return self._revalidate(user_id, content_id)
        except Exception as exc:  # fail closed
            logger.exception(
                "Access revalidation failed",
                extra={"content_id": content_id, "user_id": user_id},
            )
            self._audit_sink(
                "content_access.revalidation_failed",
                {
                    "content_id": content_id,
                    "user_id": user_id,
                    "error": str(exc),
                    "error_code": SERVER_ERROR_CODE,
                    "occurred_at": datetime.now(timezone.utc).isoformat(),
                },
            )
            return fail_closed_result(self.settings.retry_after, self.settings.max_retries)

    def _revalidate(self, user_id: Optional[str], content_id: str) -> RevalidationResult:
        content = self.contents.get(content_id)
        if content is None:
            return RevalidationResult(valid=False, reason=AccessReason.CONTENT_NOT_FOUND)

        if content.is_free:
            return RevalidationResult(
                valid=True,
                reason=AccessReason.FREE_CONTENT,
                expires_in=self.settings.free_content_expires_in,
                next_check_in=self.settings.free_content_next_check_in,
            )

        if not user_id:
            return RevalidationResult(valid=False, reason=AccessReason.UNAUTHENTICATED)

        if self.creators.is_owner(user_id, content.creator_id):
            return RevalidationResult(
                valid=True,
                reason=AccessReason.CREATOR_OWN_CONTENT,
                expires_in=self.settings.free_content_expires_in,
                next_check_in=self.settings.free_content_next_check_in,
            )

        now = self._clock()
        record = self.subscriptions.fetch_fresh(user_id, content.creator_id)
        if record is None or not record.is_entitling(now):
            return RevalidationResult(
                valid=False,
                reason=status_to_reason(record.status if record is not None else None),
            )

        expires_at = record.current_period_end or now + timedelta(seconds=self.settings.default_period_horizon)
        expires_in = max(0, int((expires_at - now).total_seconds()))
        return RevalidationResult(
            valid=True,
            reason=grant_reason(record.status),
            expires_in=expires_in,
            next_check_in=min(self.settings.max_check_interval, expires_in),
        )

    # -- Paywall display ---------------------------------------------------

    def get_paywall_info(self, content_id: str) -> Optional[CreatorPaywallInfo]:
        content = self.contents.get(content_id)
        if content is None:
            return None
        return self.creators.paywall_info(content.creator_id)

    # -- Invalidation ------------------------------------------------------
    # Mutating collaborators call these before returning their response.

    def invalidate_subscription_access_cache(self, user_id: str, creator_id: str) -> None:
        self.subscriptions.invalidate(user_id, creator_id)

    def invalidate_content_cache(self, content_id: str) -> None:
        self.contents.invalidate(content_id)

    def invalidate_creator_profile_cache(self, creator_id: str) -> None:
        self.creators.invalidate(creator_id)

    def invalidate_creator_access_caches(self, creator_id: str) -> int:
        return self.subscriptions.invalidate_creator(creator_id)
