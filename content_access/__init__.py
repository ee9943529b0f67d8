"""
Content access control for a creator subscription platform.

Decides whether a viewer may see a piece of content, caches subscription
status, and re-checks access during playback. The service lives in
``content_access.service``, the HTTP routes in ``content_access.api`` and
the player-side client in ``content_access.client`` and
``content_access.playback``. Importing this package does not load SQLAlchemy.
"""

from .config import AccessSettings
from .errors import AccessDeniedError, AuthenticationRequiredError, ContentAccessError, ContentNotFoundError
from .models import AccessReason, AccessVerdict, ContentMetadata, RevalidationResult, SubscriptionStatus

__all__ = [
    "AccessDeniedError",
    "AccessReason",
    "AccessSettings",
    "AccessVerdict",
    "AuthenticationRequiredError",
    "ContentAccessError",
    "ContentMetadata",
    "ContentNotFoundError",
    "RevalidationResult",
    "SubscriptionStatus",
]
