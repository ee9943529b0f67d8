from __future__ import annotations

from datetime import timedelta

import pytest

from content_access.models import SERVER_ERROR_CODE, AccessReason
from content_access.service import ContentAccessService


def test_free_content_valid_for_an_hour(service):
    result = service.revalidate_access(None, "free-1")

    assert result.valid is True
    assert result.reason == AccessReason.FREE_CONTENT
    assert result.expires_in == 3600
    assert result.next_check_in == 600


def test_unknown_content_invalid(service):
    result = service.revalidate_access("u1", "missing")

    assert result.valid is False
    assert result.reason == AccessReason.CONTENT_NOT_FOUND


def test_paid_content_without_user_invalid(service):
    result = service.revalidate_access(None, "paid-1")

    assert result.valid is False
    assert result.reason == AccessReason.UNAUTHENTICATED


def test_creator_revalidating_own_content(service, store):
    result = service.revalidate_access("owner-1", "paid-1")

    assert result.valid is True
    assert result.reason == AccessReason.CREATOR_OWN_CONTENT
    assert store.calls["get_subscription"] == 0


def test_active_subscription_polls_at_most_every_five_minutes(service, store, clock):
    store.add_subscription("u1", "creator-1", "active", current_period_end=clock.now + timedelta(days=1))

    result = service.revalidate_access("u1", "paid-1")

    assert result.valid is True
    assert result.reason == AccessReason.ACTIVE_SUBSCRIPTION
    assert result.expires_in == 86400
    assert result.next_check_in == 300


def test_next_check_never_later_than_period_end(service, store, clock):
    store.add_subscription("u1", "creator-1", "canceled", current_period_end=clock.now + timedelta(seconds=120))

    result = service.revalidate_access("u1", "paid-1")

    assert result.valid is True
    assert result.reason == AccessReason.ACTIVE_SUBSCRIPTION
    assert result.expires_in == 120
    assert result.next_check_in == 120


def test_missing_period_end_uses_thirty_day_horizon(service, store):
    store.add_subscription("u1", "creator-1", "trialing")

    result = service.revalidate_access("u1", "paid-1")

    assert result.reason == AccessReason.TRIALING
    assert result.expires_in == 30 * 24 * 60 * 60
    assert result.next_check_in == 300


@pytest.mark.parametrize(
    "status, offset, reason",
    [
        ("past_due", timedelta(days=3), AccessReason.SUBSCRIPTION_PAST_DUE),
        ("canceled", timedelta(seconds=-1), AccessReason.SUBSCRIPTION_CANCELED),
        ("incomplete", timedelta(days=3), AccessReason.NO_SUBSCRIPTION),
    ],
)
def test_inactive_subscription_stops_polling(service, store, clock, status, offset, reason):
    store.add_subscription("u1", "creator-1", status, current_period_end=clock.now + offset)

    result = service.revalidate_access("u1", "paid-1")

    assert result.valid is False
    assert result.reason == reason
    assert (result.expires_in, result.next_check_in) == (0, 0)
    assert result.retryable is False


def test_revalidation_bypasses_subscription_cache(service, store):
    store.add_subscription("u1", "creator-1", "active")
    assert service.check_content_access("paid-1", user_id="u1").has_access is True

    store.add_subscription("u1", "creator-1", "past_due")

    assert service.check_content_access("paid-1", user_id="u1").has_access is True
    assert service.revalidate_access("u1", "paid-1").valid is False


def test_store_failure_fails_closed(service, store):
    store.error = RuntimeError("connection reset")

    result = service.revalidate_access("u1", "paid-1")

    assert result.valid is False
    assert result.reason is None
    assert result.error_code == SERVER_ERROR_CODE
    assert result.retryable is True
    assert result.retry_after == 10
    assert result.max_retries == 3


def test_failure_after_cached_metadata_still_fails_closed(service, store, clock):
    store.add_subscription("u1", "creator-1", "active", current_period_end=clock.now + timedelta(days=1))
    assert service.revalidate_access("u1", "paid-1").valid is True

    store.error = TimeoutError("statement timeout")

    assert service.revalidate_access("u1", "paid-1").valid is False


def test_failure_is_logged_and_audited(store, cache, settings, clock, caplog):
    events = []
    service = ContentAccessService(
        store=store,
        cache=cache,
        settings=settings,
        clock=clock,
        audit_sink=lambda event, payload: events.append((event, payload)),
    )
    store.error = RuntimeError("boom")

    service.revalidate_access("u1", "paid-1")

    assert "Access revalidation failed" in caplog.text
    assert len(events) == 1
    event, payload = events[0]
    assert event == "content_access.revalidation_failed"
    assert payload["content_id"] == "paid-1"
    assert payload["user_id"] == "u1"
    assert payload["error"] == "boom"
    assert payload["error_code"] == SERVER_ERROR_CODE
