from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from .errors import CacheDecodeError

CACHE_SCHEMA_VERSION = 2

# Status recorded in the cache when no subscription row exists.
NO_SUBSCRIPTION = "no_subscription"


class SubscriptionStatus(str, enum.Enum):
    """Subscription states written by the billing integration."""

    ACTIVE = "active"
    TRIALING = "trialing"
    CANCELED = "canceled"
    PAST_DUE = "past_due"


ENTITLING_STATUSES = frozenset({SubscriptionStatus.ACTIVE.value, SubscriptionStatus.TRIALING.value})


class AccessReason(str, enum.Enum):
    """Closed set of reasons attached to every access decision."""

    FREE_CONTENT = "free_content"
    ACTIVE_SUBSCRIPTION = "active_subscription"
    TRIALING = "trialing"
    CREATOR_OWN_CONTENT = "creator_own_content"
    NO_SUBSCRIPTION = "no_subscription"
    SUBSCRIPTION_EXPIRED = "subscription_expired"
    SUBSCRIPTION_CANCELED = "subscription_canceled"
    SUBSCRIPTION_PAST_DUE = "subscription_past_due"
    CONTENT_NOT_FOUND = "content_not_found"
    USER_NOT_FOUND = "user_not_found"
    UNAUTHENTICATED = "unauthenticated"

    @property
    def grants_access(self) -> bool:
        return self in GRANT_REASONS


GRANT_REASONS = frozenset(
    {
        AccessReason.FREE_CONTENT,
        AccessReason.ACTIVE_SUBSCRIPTION,
        AccessReason.TRIALING,
        AccessReason.CREATOR_OWN_CONTENT,
    }
)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Return value as an aware UTC datetime; naive values are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def normalize_status(status: Any) -> str:
    """Unwrap enum members. Raw strings are kept verbatim: only exact
    lowercase statuses are recognised, matching the SQL filters."""
    if isinstance(status, enum.Enum):
        return str(status.value)
    return str(status)


def is_entitling_status(status: Optional[str], current_period_end: Optional[datetime], now: datetime) -> bool:
    """active/trialing entitle; canceled entitles until current_period_end."""
    if status is None:
        return False
    normalized = normalize_status(status)
    if normalized in ENTITLING_STATUSES:
        return True
    if normalized == SubscriptionStatus.CANCELED.value:
        period_end = ensure_utc(current_period_end)
        return period_end is not None and period_end > now
    return False


def _require_id(value: Any, field_name: str) -> str:
    normalized = str(value).strip() if value is not None else ""
    if not normalized:
        raise ValueError(f"{field_name} is required")
    return normalized


def _require_bool(value: Any, field_name: str) -> bool:
    if not isinstance(value, bool):
        raise TypeError(f"{field_name} must be a boolean")
    return value


def _check_schema(raw: Any, kind: str) -> Mapping[str, Any]:
    if not isinstance(raw, Mapping):
        raise CacheDecodeError(f"{kind} cache payload must be an object")
    version = raw.get("schema_version")
    if version != CACHE_SCHEMA_VERSION:
        raise CacheDecodeError(f"Unsupported {kind} cache schema version: {version!r}")
    return raw


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    return ensure_utc(datetime.fromisoformat(value))


def _format_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class ContentMetadata:
    """Access-relevant attributes of a piece of content."""

    id: str
    is_free: bool
    creator_id: str
    status: str = "published"

    def __post_init__(self) -> None:
        object.__setattr__(self, "id", _require_id(self.id, "content id"))
        object.__setattr__(self, "creator_id", _require_id(self.creator_id, "creator_id"))
        _require_bool(self.is_free, "is_free")

    def to_cache(self) -> dict:
        return {
            "schema_version": CACHE_SCHEMA_VERSION,
            "id": self.id,
            "is_free": self.is_free,
            "creator_id": self.creator_id,
            "status": self.status,
        }

    @classmethod
    def from_cache(cls, raw: Any) -> "ContentMetadata":
        payload = _check_schema(raw, "content metadata")
        try:
            return cls(
                id=payload["id"],
                is_free=_require_bool(payload["is_free"], "is_free"),
                creator_id=payload["creator_id"],
                status=str(payload["status"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise CacheDecodeError(f"Malformed content metadata cache payload: {exc}") from exc


@dataclass(frozen=True)
class SubscriptionRecord:
    """Durable subscription row for one (user, creator) pair."""

    id: str
    user_id: str
    creator_id: str
    status: str
    current_period_end: Optional[datetime] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "status", normalize_status(self.status))
        object.__setattr__(self, "current_period_end", ensure_utc(self.current_period_end))

    def is_entitling(self, now: datetime) -> bool:
        return is_entitling_status(self.status, self.current_period_end, now)


# Display amount and cents per subscription price tier.
PRICE_DISPLAY = {
    "TIER_FREE": ("Free", 0),
    "TIER_500": ("$5", 500),
    "TIER_1000": ("$10", 1000),
    "TIER_1500": ("$15", 1500),
    "TIER_2000": ("$20", 2000),
    "TIER_2500": ("$25", 2500),
    "TIER_3000": ("$30", 3000),
    "TIER_4000": ("$40", 4000),
    "TIER_5000": ("$50", 5000),
    "TIER_7500": ("$75", 7500),
    "TIER_9900": ("$99", 9900),
}


def price_display(tier: str) -> Optional[dict]:
    """``{"amount", "cents"}`` for a price tier, or None for an unknown tier."""
    entry = PRICE_DISPLAY.get(tier)
    if entry is None:
        return None
    amount, cents = entry
    return {"amount": amount, "cents": cents}


@dataclass(frozen=True)
class CreatorPaywallInfo:
    """Creator fields shown on the paywall upsell."""

    id: str
    handle: str
    display_name: str
    subscription_price: str
    trial_enabled: bool
    avatar_url: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "handle": self.handle,
            "displayName": self.display_name,
            "avatarUrl": self.avatar_url,
            "subscriptionTier": self.subscription_price,
            "subscriptionPrice": price_display(self.subscription_price),
            "trialEnabled": self.trial_enabled,
        }


@dataclass(frozen=True)
class CreatorProfile:
    id: str
    user_id: str
    handle: str
    display_name: str
    subscription_price: str
    trial_enabled: bool = False
    avatar_url: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "id", _require_id(self.id, "creator id"))

    def is_owned_by(self, user_id: Optional[str]) -> bool:
        return bool(user_id) and self.user_id == user_id

    def paywall_info(self) -> CreatorPaywallInfo:
        return CreatorPaywallInfo(
            id=self.id,
            handle=self.handle,
            display_name=self.display_name,
            subscription_price=self.subscription_price,
            trial_enabled=self.trial_enabled,
            avatar_url=self.avatar_url,
        )

    def to_cache(self) -> dict:
        return {
            "schema_version": CACHE_SCHEMA_VERSION,
            "id": self.id,
            "user_id": self.user_id,
            "handle": self.handle,
            "display_name": self.display_name,
            "subscription_price": self.subscription_price,
            "trial_enabled": self.trial_enabled,
            "avatar_url": self.avatar_url,
        }

    @classmethod
    def from_cache(cls, raw: Any) -> "CreatorProfile":
        payload = _check_schema(raw, "creator profile")
        try:
            return cls(
                id=payload["id"],
                user_id=str(payload["user_id"]),
                handle=str(payload["handle"]),
                display_name=str(payload["display_name"]),
                subscription_price=str(payload["subscription_price"]),
                trial_enabled=_require_bool(payload["trial_enabled"], "trial_enabled"),
                avatar_url=payload["avatar_url"],
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise CacheDecodeError(f"Malformed creator profile cache payload: {exc}") from exc


@dataclass(frozen=True)
class SubscriptionSummary:
    """Subscription details attached to a subscription-based grant."""

    id: str
    status: str
    expires_at: Optional[datetime]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "status": self.status,
            "expiresAt": _format_datetime(self.expires_at),
        }


@dataclass(frozen=True)
class CachedSubscriptionEntry:
    """Cached projection of a subscription lookup, negative results included.

    ``is_active`` was computed at ``cached_at``; readers must call
    ``is_active_at`` because a canceled subscription's grace period can end
    while the entry is still cached.
    """

    is_active: bool
    status: str
    subscription_id: str
    expires_at: Optional[datetime]
    cached_at: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "expires_at", ensure_utc(self.expires_at))

    @classmethod
    def from_record(cls, record: Optional[SubscriptionRecord], now: datetime) -> "CachedSubscriptionEntry":
        if record is None:
            return cls(
                is_active=False,
                status=NO_SUBSCRIPTION,
                subscription_id="",
                expires_at=None,
                cached_at=now.timestamp(),
            )
        return cls(
            is_active=record.is_entitling(now),
            status=record.status,
            subscription_id=record.id,
            expires_at=record.current_period_end,
            cached_at=now.timestamp(),
        )

    def is_active_at(self, now: datetime) -> bool:
        if not self.is_active:
            return False
        if self.status == SubscriptionStatus.CANCELED.value:
            return self.expires_at is not None and self.expires_at > now
        return True

    def to_cache(self) -> dict:
        return {
            "schema_version": CACHE_SCHEMA_VERSION,
            "is_active": self.is_active,
            "status": self.status,
            "subscription_id": self.subscription_id,
            "expires_at": _format_datetime(self.expires_at),
            "cached_at": self.cached_at,
        }

    @classmethod
    def from_cache(cls, raw: Any) -> "CachedSubscriptionEntry":
        payload = _check_schema(raw, "subscription status")
        try:
            return cls(
                is_active=_require_bool(payload["is_active"], "is_active"),
                status=str(payload["status"]),
                subscription_id=str(payload["subscription_id"]),
                expires_at=_parse_datetime(payload["expires_at"]),
                cached_at=float(payload["cached_at"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise CacheDecodeError(f"Malformed subscription status cache payload: {exc}") from exc


@dataclass(frozen=True)
class AccessVerdict:
    """Result of a single access decision."""

    has_access: bool
    reason: AccessReason
    is_free_content: bool = False
    subscription: Optional[SubscriptionSummary] = None
    creator: Optional[CreatorPaywallInfo] = None

    def to_dict(self) -> dict:
        body: dict = {
            "hasAccess": self.has_access,
            "reason": self.reason.value,
            "isFreeContent": self.is_free_content,
        }
        if self.subscription is not None:
            body["subscription"] = self.subscription.to_dict()
        if self.creator is not None:
            body["creator"] = self.creator.to_dict()
        return body


@dataclass(frozen=True)
class RevalidationResult:
    """Mid-playback access re-check outcome.

    ``reason`` is None only for infrastructure failures, which carry an
    ``error_code`` and retry guidance instead.
    """

    valid: bool
    reason: Optional[AccessReason]
    expires_in: int = 0
    next_check_in: int = 0
    retryable: bool = False
    retry_after: Optional[int] = None
    max_retries: Optional[int] = None
    error_code: Optional[str] = None
    creator: Optional[CreatorPaywallInfo] = None

    def to_dict(self) -> dict:
        body: dict = {
            "valid": self.valid,
            "expiresIn": self.expires_in,
            "nextCheckIn": self.next_check_in,
        }
        if self.reason is not None:
            body["reason"] = self.reason.value
        if self.error_code is not None:
            body["code"] = self.error_code
        if self.retryable:
            body["retryable"] = True
            body["retryAfter"] = self.retry_after
            body["maxRetries"] = self.max_retries
        if self.creator is not None:
            body["creator"] = self.creator.to_dict()
        return body


SERVER_ERROR_CODE = "SERVER_ERROR"


def fail_closed_result(retry_after: int, max_retries: int) -> RevalidationResult:
    """Revalidation outcome for any infrastructure failure: deny, with retry guidance."""
    return RevalidationResult(
        valid=False,
        reason=None,
        expires_in=0,
        next_check_in=retry_after,
        retryable=True,
        retry_after=retry_after,
        max_retries=max_retries,
        error_code=SERVER_ERROR_CODE,
    )
