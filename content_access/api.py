"""
Content access API routes.

Endpoints:
- GET  /api/content/{content_id}/access      single access decision
- GET  /api/content/{content_id}/revalidate  mid-playback re-check, never cached
- POST /api/content/access/batch             boolean access map for feeds

The caller's identity is read from ``request.state.user_id`` (set by the
authentication middleware) and the service from
``request.app.state.access_service``. Both are dependencies so tests can
override them.
"""

import logging
from dataclasses import replace
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from .config import AccessSettings
from .errors import ContentAccessError
from .models import SERVER_ERROR_CODE, AccessReason, AccessVerdict, RevalidationResult, fail_closed_result
from .policy import get_access_denial_message, http_status_for
from .service import ContentAccessService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/content", tags=["content-access"])

NO_STORE_HEADERS = {"Cache-Control": "no-store"}
_NO_PAYWALL_REASONS = (None, AccessReason.UNAUTHENTICATED, AccessReason.CONTENT_NOT_FOUND)
MAX_BATCH_SIZE = AccessSettings().batch_limit


class BatchAccessRequest(BaseModel):
    """Request body for the batch access endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    content_ids: List[str] = Field(
        ...,
        alias="contentIds",
        max_length=MAX_BATCH_SIZE,
        description="Content ids to check",
    )


class BatchAccessResponse(BaseModel):
    access: Dict[str, bool] = Field(..., description="Access per content id")


def get_access_service(request: Request) -> ContentAccessService:
    service = getattr(request.app.state, "access_service", None)
    if service is None:
        logger.error("Content access service is not configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": "SERVICE_UNAVAILABLE", "message": "Content access is unavailable"},
        )
    return service


def get_current_user_id(request: Request) -> Optional[str]:
    return getattr(request.state, "user_id", None) or None


def require_content_access(
    content_id: str,
    user_id: Optional[str] = Depends(get_current_user_id),
    service: ContentAccessService = Depends(get_access_service),
) -> AccessVerdict:
    """Dependency for routes that serve protected content.

    Use on a route with a ``content_id`` path parameter:
    ``verdict = Depends(require_content_access)``. Raises the matching
    ContentAccessError on denial.
    """
    return service.require_content_access(content_id, user_id=user_id)


def _verdict_body(verdict: AccessVerdict) -> dict:
    body = verdict.to_dict()
    if not verdict.has_access:
        body["message"] = get_access_denial_message(verdict.reason)
    return body


@router.get("/{content_id}/access")
def get_content_access(
    content_id: str,
    user_id: Optional[str] = Depends(get_current_user_id),
    service: ContentAccessService = Depends(get_access_service),
):
    """Return the access decision for one piece of content.

    Returns:
        200 when granted, 401 anonymous on paid content, 404 unknown
        content, 403 for every other denial. The body always carries
        ``hasAccess`` and ``reason``; denials add a display message and
        the creator's paywall info where known.
    """
    verdict = service.check_content_access(content_id, user_id=user_id)
    return JSONResponse(status_code=http_status_for(verdict), content=_verdict_body(verdict))


def _revalidation_status(result: RevalidationResult) -> int:
    if result.error_code == SERVER_ERROR_CODE:
        return status.HTTP_500_INTERNAL_SERVER_ERROR
    if result.reason == AccessReason.UNAUTHENTICATED:
        return status.HTTP_401_UNAUTHORIZED
    if result.reason == AccessReason.CONTENT_NOT_FOUND:
        return status.HTTP_404_NOT_FOUND
    return status.HTTP_200_OK


@router.get("/{content_id}/revalidate")
def revalidate_content_access(
    content_id: str,
    request: Request,
    user_id: Optional[str] = Depends(get_current_user_id),
):
    """Re-check access during playback.

    Denials are 200 with ``valid: false`` so the player can show the
    paywall. Infrastructure failures are 500 with retry guidance. The
    response is never cached.
    """
    try:
        service = get_access_service(request)
        result = service.revalidate_access(user_id, content_id)
        if not result.valid and result.reason not in _NO_PAYWALL_REASONS:
            result = replace(result, creator=service.get_paywall_info(content_id))
    except Exception:
        logger.exception("Revalidation endpoint failed", extra={"content_id": content_id, "user_id": user_id})
        service = getattr(request.app.state, "access_service", None)
        settings = service.settings if service is not None else AccessSettings()
        result = fail_closed_result(settings.retry_after, settings.max_retries)

    headers = dict(NO_STORE_HEADERS)
    headers["X-Next-Check-In"] = str(result.next_check_in)
    return JSONResponse(status_code=_revalidation_status(result), content=result.to_dict(), headers=headers)


@router.post("/access/batch", response_model=BatchAccessResponse)
def check_batch_access(
    body: BatchAccessRequest,
    user_id: Optional[str] = Depends(get_current_user_id),
    service: ContentAccessService = Depends(get_access_service),
):
    """Boolean access map for rendering a feed. Unknown ids map to false."""
    try:
        access = service.check_batch_content_access(user_id, body.content_ids)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"error": "BATCH_TOO_LARGE", "message": str(exc)},
        )
    logger.info(
        "Batch access checked",
        extra={"user_id": user_id, "requested": len(body.content_ids), "granted": sum(access.values())},
    )
    return BatchAccessResponse(access=access)


async def _content_access_error_handler(request: Request, exc: ContentAccessError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ContentAccessError, _content_access_error_handler)


def create_app(service: Optional[ContentAccessService] = None) -> FastAPI:
    """Application with the content access routes mounted."""
    app = FastAPI(title="Content Access")
    app.state.access_service = service
    app.include_router(router)
    register_exception_handlers(app)
    return app
