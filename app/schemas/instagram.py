"""Request/response schemas for the Instagram endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field

from app.models.instagram import MediaItem


class AuthorizationUrlResponse(BaseModel):
    authorization_url: str = Field(..., description="Instagram consent screen URL.")


class SyncResponse(BaseModel):
    """Returned by ``POST /instagram/sync``."""

    count: int
    posts: List[MediaItem] = Field(
        default_factory=list, description="Preview of the first synced posts."
    )
    cached: bool = Field(..., description="True when served from the media cache.")
    synced_at: Optional[datetime] = None
    has_more: bool = Field(
        False, description="The provider reported media beyond the single synced page."
    )


class SyncStatusResponse(BaseModel):
    """Returned by ``GET /instagram/sync``."""

    is_connected: bool
    username: Optional[str] = None
    last_sync: Optional[datetime] = None
    token_expires_at: Optional[datetime] = None
    token_expired: Optional[bool] = None
    sync_in_progress: bool = False


class FeedResponse(BaseModel):
    """Public feed payload."""

    posts: List[MediaItem] = Field(default_factory=list)
    fetched_at: Optional[datetime] = None
    cached: bool = False


class ErrorDetail(BaseModel):
    reason: str
    message: str
    provider_error: Optional[Any] = None
    status_code: Optional[int] = None


__all__ = [
    "AuthorizationUrlResponse",
    "ErrorDetail",
    "FeedResponse",
    "SyncResponse",
    "SyncStatusResponse",
]
