"""
HTTP client for the playback revalidation endpoint.

Any failure (transport error, timeout, non-2xx status, unreadable body) is
returned as ``valid=False``. It is never treated as "still valid". Server
errors keep the retry guidance the endpoint sent, or the configured
defaults when it sent none.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

import httpx

from .config import AccessSettings
from .models import AccessReason, CreatorPaywallInfo, RevalidationResult

logger = logging.getLogger(__name__)

NETWORK_ERROR_CODE = "NETWORK_ERROR"
MALFORMED_RESPONSE_CODE = "MALFORMED_RESPONSE"


def _creator_from_body(raw: Any) -> Optional[CreatorPaywallInfo]:
    if not isinstance(raw, Mapping):
        return None
    try:
        return CreatorPaywallInfo(
            id=str(raw["id"]),
            handle=str(raw["handle"]),
            display_name=str(raw["displayName"]),
            subscription_price=str(raw.get("subscriptionTier", "")),
            trial_enabled=bool(raw.get("trialEnabled", False)),
            avatar_url=raw.get("avatarUrl"),
        )
    except KeyError:
        return None


def parse_revalidation_body(data: Any, *, success: bool) -> RevalidationResult:
    """Build a result from a response body; raises ValueError if unreadable."""
    if not isinstance(data, Mapping):
        raise ValueError("revalidation response must be a JSON object")

    reason_raw = data.get("reason")
    reason = AccessReason(reason_raw) if reason_raw else None
    retry_after = data.get("retryAfter")
    max_retries = data.get("maxRetries")

    return RevalidationResult(
        valid=success and data.get("valid") is True,
        reason=reason,
        expires_in=int(data.get("expiresIn", 0)),
        next_check_in=int(data.get("nextCheckIn", 0)),
        retryable=bool(data.get("retryable", False)),
        retry_after=int(retry_after) if retry_after is not None else None,
        max_retries=int(max_retries) if max_retries is not None else None,
        error_code=data.get("code"),
        creator=_creator_from_body(data.get("creator")),
    )


class RevalidationClient:
    """Calls ``GET /api/content/{id}/revalidate`` for a player."""

    def __init__(
        self,
        base_url: str = "",
        *,
        http_client: Optional[httpx.Client] = None,
        settings: Optional[AccessSettings] = None,
        timeout: float = 5.0,
        headers: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.settings = settings or AccessSettings()
        self._http_client = http_client or httpx.Client(
            base_url=base_url,
            timeout=timeout,
            headers=dict(headers or {}),
        )

    def _failure(self, error_code: str) -> RevalidationResult:
        return RevalidationResult(
            valid=False,
            reason=None,
            next_check_in=self.settings.retry_after,
            retryable=True,
            retry_after=self.settings.retry_after,
            max_retries=self.settings.max_retries,
            error_code=error_code,
        )

    def revalidate(self, content_id: str) -> RevalidationResult:
        try:
            response = self._http_client.get(f"/api/content/{content_id}/revalidate")
        except httpx.HTTPError as exc:
            logger.warning(
                "Revalidation request failed - denying access",
                extra={"content_id": content_id, "error": str(exc), "error_type": type(exc).__name__},
            )
            return self._failure(NETWORK_ERROR_CODE)

        try:
            result = parse_revalidation_body(response.json(), success=response.is_success)
        except (TypeError, ValueError) as exc:
            logger.warning(
                "Unreadable revalidation response - denying access",
                extra={"content_id": content_id, "status_code": response.status_code, "error": str(exc)},
            )
            return self._failure(MALFORMED_RESPONSE_CODE)

        if response.status_code >= 500 or response.status_code == 429:
            if not result.retryable:
                result = self._failure(result.error_code or f"HTTP_{response.status_code}")
        return result

    def close(self) -> None:
        self._http_client.close()

    def __enter__(self) -> "RevalidationClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
