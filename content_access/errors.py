"""
Content access error hierarchy.

Provides:
- ContentAccessError: base for all access failures, with an API error shape
- ContentNotFoundError: content does not exist (404)
- AuthenticationRequiredError: paid content requested anonymously (401)
- AccessDeniedError: user lacks an entitlement (403), carries the verdict
- CacheDecodeError: cached payload unreadable; callers treat it as a miss

Store and network failures are not wrapped here. They propagate from the
initial access check and are turned into a fail-closed result during
revalidation.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

from fastapi import status

if TYPE_CHECKING:
    from .models import AccessVerdict


class ContentAccessError(Exception):
    """Base exception for content access failures."""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = status.HTTP_403_FORBIDDEN,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            }
        }


class ContentNotFoundError(ContentAccessError):
    def __init__(self, content_id: str, message: str = "This content is no longer available."):
        self.content_id = content_id
        super().__init__(
            code="CONTENT_NOT_FOUND",
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details={"content_id": content_id},
        )


class AuthenticationRequiredError(ContentAccessError):
    def __init__(self, message: str = "Please sign in to access this content."):
        super().__init__(
            code="UNAUTHENTICATED",
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED,
        )


class AccessDeniedError(ContentAccessError):
    """Raised when a verdict denies access; the verdict feeds the paywall."""

    def __init__(self, verdict: "AccessVerdict", message: str):
        self.verdict = verdict
        super().__init__(
            code="ACCESS_DENIED",
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            details=verdict.to_dict(),
        )


class CacheDecodeError(ValueError):
    """Raised when a cached payload has the wrong schema version or shape."""
