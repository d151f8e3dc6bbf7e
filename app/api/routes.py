"""
FastAPI routes for the Instagram integration.
"""

from __future__ import annotations

import logging
import uuid
from http import HTTPStatus
from typing import Annotated, Any
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import RedirectResponse

from app.core.errors import (
    InstagramIntegrationError,
    NotConnected,
    ProviderAPIError,
    SyncInProgress,
    TokenExpired,
)
from app.dependencies import (
    get_app_settings,
    get_instagram_connect_service,
    get_instagram_sync_service,
)
from app.schemas import (
    AuthorizationUrlResponse,
    ErrorDetail,
    FeedResponse,
    SyncResponse,
    SyncStatusResponse,
)

router = APIRouter()
logger = logging.getLogger(__name__)

_SYNC_ERROR_STATUS = (
    (NotConnected, HTTPStatus.CONFLICT),
    (TokenExpired, HTTPStatus.UNAUTHORIZED),
    (ProviderAPIError, HTTPStatus.BAD_GATEWAY),
    (SyncInProgress, HTTPStatus.SERVICE_UNAVAILABLE),
)


def _sync_error(exc: InstagramIntegrationError) -> HTTPException:
    status_code = HTTPStatus.INTERNAL_SERVER_ERROR
    for error_cls, mapped in _SYNC_ERROR_STATUS:
        if isinstance(exc, error_cls):
            status_code = mapped
            break
    detail = ErrorDetail.model_validate(exc.to_dict()).model_dump()
    return HTTPException(status_code=status_code, detail=detail)


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok"}


@router.get("/instagram/authorize", response_model=AuthorizationUrlResponse)
async def start_instagram_oauth_flow(
    request: Request,
    connect_service: Annotated[Any, Depends(get_instagram_connect_service)],
    redirect: bool = Query(
        default=False,
        description="When true, respond with a redirect to the Instagram consent screen.",
    ),
):
    """Kick off the OAuth flow by generating the consent URL."""
    authorization_url = connect_service.authorization_url(nonce=uuid.uuid4().hex)

    wants_html = "text/html" in request.headers.get("accept", "").lower()
    if redirect or wants_html:
        return RedirectResponse(url=authorization_url, status_code=HTTPStatus.TEMPORARY_REDIRECT)
    return AuthorizationUrlResponse(authorization_url=authorization_url)


@router.get("/instagram/callback")
async def handle_instagram_oauth_callback(
    connect_service: Annotated[Any, Depends(get_instagram_connect_service)],
    sync_service: Annotated[Any, Depends(get_instagram_sync_service)],
    settings: Annotated[Any, Depends(get_app_settings)],
    code: str | None = Query(default=None, description="Authorization code from Instagram."),
    state: str | None = Query(default=None),
    error: str | None = Query(default=None),
    error_reason: str | None = Query(default=None),
    error_description: str | None = Query(default=None),
) -> RedirectResponse:
    """Complete the OAuth exchange and send the admin back to the status page."""
    result = await connect_service.complete_authorization(
        code=code,
        state=state,
        error=error,
        error_reason=error_reason,
        error_description=error_description,
    )

    if result.ok:
        # A new account must not keep serving the previous account's posts.
        await sync_service.clear_cache()
        query = {"success": "connected"}
    else:
        query = {"error": result.message}

    target = f"{settings.site_url(settings.admin_status_path)}?{urlencode(query)}"
    return RedirectResponse(url=target, status_code=HTTPStatus.SEE_OTHER)


@router.post("/instagram/sync", response_model=SyncResponse)
async def sync_instagram_media(
    sync_service: Annotated[Any, Depends(get_instagram_sync_service)],
) -> SyncResponse:
    """Sync the media feed, or return the cached copy while it is fresh."""
    try:
        result = await sync_service.sync()
    except InstagramIntegrationError as exc:
        logger.warning("Instagram sync failed (%s): %s", exc.reason, exc.message)
        raise _sync_error(exc) from exc

    return SyncResponse(
        count=result.count,
        posts=result.preview,
        cached=result.cached,
        synced_at=result.synced_at,
        has_more=result.has_more,
    )


@router.get("/instagram/sync", response_model=SyncStatusResponse)
async def get_instagram_sync_status(
    sync_service: Annotated[Any, Depends(get_instagram_sync_service)],
) -> SyncStatusResponse:
    """Report connection state and token expiry."""
    status = sync_service.status()
    return SyncStatusResponse(
        is_connected=status.is_connected,
        username=status.username,
        last_sync=status.last_sync,
        token_expires_at=status.token_expires_at,
        token_expired=status.token_expired,
        sync_in_progress=status.sync_in_progress,
    )


@router.delete("/instagram/sync", status_code=HTTPStatus.OK)
async def clear_instagram_cache(
    sync_service: Annotated[Any, Depends(get_instagram_sync_service)],
) -> dict:
    """Clear the media cache so the next sync goes to Instagram."""
    cleared = await sync_service.clear_cache()
    message = (
        "Instagram cache cleared successfully"
        if cleared
        else "Cache backend unavailable; nothing was cleared"
    )
    return {"cleared": cleared, "message": message}


@router.get("/instagram/posts", response_model=FeedResponse)
async def list_instagram_posts(
    sync_service: Annotated[Any, Depends(get_instagram_sync_service)],
    limit: int = Query(default=12, ge=1, le=100),
) -> FeedResponse:
    """Public feed: cached or last persisted posts, never a provider call."""
    result = await sync_service.feed()
    return FeedResponse(
        posts=result.items[:limit],
        fetched_at=result.synced_at,
        cached=result.cached,
    )
