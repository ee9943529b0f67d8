"""
Pure access policy functions: status-to-reason mapping, denial messages and
HTTP status translation. No I/O.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from fastapi import status

from .errors import AccessDeniedError, AuthenticationRequiredError, ContentAccessError, ContentNotFoundError
from .models import AccessReason, AccessVerdict, SubscriptionStatus, ensure_utc, normalize_status

_STATUS_REASONS = {
    SubscriptionStatus.ACTIVE.value: AccessReason.ACTIVE_SUBSCRIPTION,
    SubscriptionStatus.TRIALING.value: AccessReason.TRIALING,
    SubscriptionStatus.CANCELED.value: AccessReason.SUBSCRIPTION_CANCELED,
    SubscriptionStatus.PAST_DUE.value: AccessReason.SUBSCRIPTION_PAST_DUE,
}

DENIAL_MESSAGES = {
    AccessReason.NO_SUBSCRIPTION: "Subscribe to access this content",
    AccessReason.SUBSCRIPTION_EXPIRED: "Your subscription has expired. Renew to regain access.",
    AccessReason.SUBSCRIPTION_CANCELED: "Your subscription has ended. Subscribe again to access this content.",
    AccessReason.SUBSCRIPTION_PAST_DUE: "There was an issue with your payment. Please update your payment method.",
    AccessReason.CONTENT_NOT_FOUND: "This content is no longer available.",
    AccessReason.USER_NOT_FOUND: "We couldn't find your account. Please sign in again.",
    AccessReason.UNAUTHENTICATED: "Please sign in to access this content.",
}

DEFAULT_DENIAL_MESSAGE = "You don't have access to this content."


def status_to_reason(subscription_status: Optional[str]) -> AccessReason:
    """Map a raw subscription status (or None for no row) to a reason.

    Total over every input: unknown statuses and the cached
    ``no_subscription`` marker map to NO_SUBSCRIPTION.
    """
    if subscription_status is None:
        return AccessReason.NO_SUBSCRIPTION
    return _STATUS_REASONS.get(normalize_status(subscription_status), AccessReason.NO_SUBSCRIPTION)


def grant_reason(subscription_status: str) -> AccessReason:
    """Reason for a subscription-based grant.

    Canceled subscriptions inside their grace period report
    ACTIVE_SUBSCRIPTION; there is no separate grace-period reason.
    """
    if normalize_status(subscription_status) == SubscriptionStatus.TRIALING.value:
        return AccessReason.TRIALING
    return AccessReason.ACTIVE_SUBSCRIPTION


def is_subscription_expired(
    subscription_status: Optional[str],
    current_period_end: Optional[datetime],
    now: Optional[datetime] = None,
) -> bool:
    """Whether a subscription's paid period is over.

    NOTE: past_due counts as not expired here, while the access check
    denies past_due with SUBSCRIPTION_PAST_DUE. Do not use this function
    to make access decisions.
    """
    if not subscription_status:
        return True

    normalized = normalize_status(subscription_status)
    if normalized in (SubscriptionStatus.ACTIVE.value, SubscriptionStatus.TRIALING.value):
        return False
    if normalized == SubscriptionStatus.PAST_DUE.value:
        return False
    if normalized == SubscriptionStatus.CANCELED.value:
        period_end = ensure_utc(current_period_end)
        if period_end is None:
            return True
        return (now or datetime.now(timezone.utc)) > period_end

    # unknown statuses fail closed
    return True


def get_access_denial_message(reason: AccessReason) -> str:
    return DENIAL_MESSAGES.get(reason, DEFAULT_DENIAL_MESSAGE)


def http_status_for(verdict: AccessVerdict) -> int:
    if verdict.has_access:
        return status.HTTP_200_OK
    if verdict.reason in (AccessReason.CONTENT_NOT_FOUND, AccessReason.USER_NOT_FOUND):
        return status.HTTP_404_NOT_FOUND
    if verdict.reason == AccessReason.UNAUTHENTICATED:
        return status.HTTP_401_UNAUTHORIZED
    return status.HTTP_403_FORBIDDEN


def error_for_verdict(verdict: AccessVerdict, content_id: str) -> Optional[ContentAccessError]:
    """Return the error matching a denial, or None when access is granted."""
    if verdict.has_access:
        return None
    message = get_access_denial_message(verdict.reason)
    if verdict.reason == AccessReason.CONTENT_NOT_FOUND:
        return ContentNotFoundError(content_id, message=message)
    if verdict.reason == AccessReason.USER_NOT_FOUND:
        return ContentAccessError(code="USER_NOT_FOUND", message=message, status_code=status.HTTP_404_NOT_FOUND)
    if verdict.reason == AccessReason.UNAUTHENTICATED:
        return AuthenticationRequiredError(message=message)
    return AccessDeniedError(verdict, message=message)
