from __future__ import annotations

from datetime import timedelta

import pytest
from fastapi import Depends
from fastapi.testclient import TestClient

from content_access.api import MAX_BATCH_SIZE, create_app, get_current_user_id, require_content_access
from content_access.config import AccessSettings
from content_access.service import ContentAccessService


@pytest.fixture
def app(service):
    return create_app(service)


def _as_user(app, user_id):
    app.dependency_overrides[get_current_user_id] = lambda: user_id
    return TestClient(app)


class TestAccessEndpoint:
    def test_free_content_anonymous(self, app):
        response = TestClient(app).get("/api/content/free-1/access")

        assert response.status_code == 200
        assert response.json() == {"hasAccess": True, "reason": "free_content", "isFreeContent": True}

    def test_paid_content_anonymous_is_401(self, app):
        response = TestClient(app).get("/api/content/paid-1/access")

        assert response.status_code == 401
        assert response.json()["reason"] == "unauthenticated"
        assert response.json()["message"] == "Please sign in to access this content."

    def test_unknown_content_is_404(self, app):
        response = _as_user(app, "u1").get("/api/content/missing/access")

        assert response.status_code == 404
        assert response.json()["reason"] == "content_not_found"

    def test_denial_is_403_with_paywall(self, app, store):
        store.add_subscription("u1", "creator-1", "past_due")

        response = _as_user(app, "u1").get("/api/content/paid-1/access")

        body = response.json()
        assert response.status_code == 403
        assert body["reason"] == "subscription_past_due"
        assert "payment method" in body["message"]
        assert body["creator"]["handle"] == "creator-1"
        assert body["creator"]["trialEnabled"] is True
        assert body["creator"]["subscriptionTier"] == "TIER_500"
        assert body["creator"]["subscriptionPrice"] == {"amount": "$5", "cents": 500}

    def test_subscriber_granted(self, app, store, clock):
        store.add_subscription("u1", "creator-1", "active", current_period_end=clock.now + timedelta(days=5))

        response = _as_user(app, "u1").get("/api/content/paid-1/access")

        assert response.status_code == 200
        assert response.json()["subscription"]["status"] == "active"

    def test_user_id_read_from_request_state(self, app):
        @app.middleware("http")
        async def authenticate(request, call_next):
            request.state.user_id = request.headers.get("X-User-Id")
            return await call_next(request)

        response = TestClient(app).get("/api/content/paid-1/access", headers={"X-User-Id": "owner-1"})

        assert response.status_code == 200
        assert response.json()["reason"] == "creator_own_content"

    def test_missing_service_is_503(self):
        response = TestClient(create_app(None)).get("/api/content/free-1/access")

        assert response.status_code == 503


class TestRevalidateEndpoint:
    def test_valid_response_is_not_cacheable(self, app, store, clock):
        store.add_subscription("u1", "creator-1", "active", current_period_end=clock.now + timedelta(days=1))

        response = _as_user(app, "u1").get("/api/content/paid-1/revalidate")

        assert response.status_code == 200
        assert response.json() == {
            "valid": True,
            "reason": "active_subscription",
            "expiresIn": 86400,
            "nextCheckIn": 300,
        }
        assert response.headers["Cache-Control"] == "no-store"
        assert response.headers["X-Next-Check-In"] == "300"

    def test_denial_is_200_with_creator(self, app, store, clock):
        store.add_subscription("u1", "creator-1", "canceled", current_period_end=clock.now - timedelta(hours=1))

        response = _as_user(app, "u1").get("/api/content/paid-1/revalidate")

        body = response.json()
        assert response.status_code == 200
        assert body["valid"] is False
        assert body["reason"] == "subscription_canceled"
        assert body["nextCheckIn"] == 0
        assert body["creator"]["id"] == "creator-1"

    def test_anonymous_paid_is_401(self, app):
        response = TestClient(app).get("/api/content/paid-1/revalidate")

        assert response.status_code == 401
        assert response.json()["valid"] is False

    def test_unknown_content_is_404(self, app):
        response = _as_user(app, "u1").get("/api/content/missing/revalidate")

        assert response.status_code == 404
        assert response.json()["reason"] == "content_not_found"

    def test_server_failure_fails_closed_with_retry_guidance(self, app, store):
        store.error = RuntimeError("database is down")

        response = _as_user(app, "u1").get("/api/content/paid-1/revalidate")

        body = response.json()
        assert response.status_code == 500
        assert body["valid"] is False
        assert body["code"] == "SERVER_ERROR"
        assert (body["retryable"], body["retryAfter"], body["maxRetries"]) == (True, 10, 3)
        assert response.headers["Cache-Control"] == "no-store"

    def test_missing_service_fails_closed(self):
        response = TestClient(create_app(None)).get("/api/content/paid-1/revalidate")

        assert response.status_code == 500
        assert response.json()["valid"] is False


class TestBatchEndpoint:
    def test_batch_access_map(self, app, store):
        store.add_subscription("u1", "creator-2", "trialing")

        response = _as_user(app, "u1").post(
            "/api/content/access/batch",
            json={"contentIds": ["free-1", "paid-1", "paid-3", "missing"]},
        )

        assert response.status_code == 200
        assert response.json() == {
            "access": {"free-1": True, "paid-1": False, "paid-3": True, "missing": False}
        }

    def test_batch_limit_enforced(self, app):
        response = _as_user(app, "u1").post(
            "/api/content/access/batch",
            json={"contentIds": [f"id-{i}" for i in range(101)]},
        )

        assert response.status_code == 422

    def test_limit_matches_settings_default(self):
        assert MAX_BATCH_SIZE == AccessSettings().batch_limit

    def test_service_limit_rejected_as_422(self, store, clock):
        service = ContentAccessService(store=store, settings=AccessSettings(batch_limit=2), clock=clock)
        client = _as_user(create_app(service), "u1")

        response = client.post("/api/content/access/batch", json={"contentIds": ["free-1", "paid-1", "paid-3"]})

        assert response.status_code == 422
        assert response.json()["detail"]["error"] == "BATCH_TOO_LARGE"

    def test_missing_body_field_rejected(self, app):
        response = _as_user(app, "u1").post("/api/content/access/batch", json={})

        assert response.status_code == 422


def test_require_content_access_dependency(app, store):
    @app.get("/media/{content_id}")
    def media(content_id: str, verdict=Depends(require_content_access)):
        return {"reason": verdict.reason.value}

    client = _as_user(app, "u1")

    denied = client.get("/media/paid-1")
    assert denied.status_code == 403
    assert denied.json()["error"]["code"] == "ACCESS_DENIED"
    assert denied.json()["error"]["details"]["reason"] == "no_subscription"

    assert client.get("/media/free-1").json() == {"reason": "free_content"}
    assert client.get("/media/missing").status_code == 404
