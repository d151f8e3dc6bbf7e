"""
Domain models for the Instagram connection and its media feed.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.utils.clock import ensure_aware


class Credential(BaseModel):
    """The single stored connection to the provider account."""

    provider_user_id: str = Field(..., description="Instagram account id.")
    username: str = Field(..., description="Display handle, refreshed on connect.")
    access_token: Optional[str] = Field(None, repr=False)
    token_expires_at: Optional[datetime] = None
    is_connected: bool = False
    last_sync: Optional[datetime] = None
    connected_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("token_expires_at", "last_sync", "connected_at", "updated_at")
    @classmethod
    def _aware(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_aware(value) if value is not None else None

    def has_usable_token(self) -> bool:
        return bool(self.is_connected and self.access_token and self.token_expires_at)

    def token_expired(self, now: datetime, window: timedelta = timedelta(0)) -> bool:
        """True once ``now`` reaches the expiry (minus ``window``)."""
        if self.token_expires_at is None:
            return True
        return self.token_expires_at <= now + window


class MediaType(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    CAROUSEL = "carousel"

    @classmethod
    def from_provider(cls, value: str) -> "MediaType":
        normalized = (value or "").strip().upper()
        mapping = {
            "IMAGE": cls.IMAGE,
            "VIDEO": cls.VIDEO,
            "REELS": cls.VIDEO,
            "CAROUSEL_ALBUM": cls.CAROUSEL,
            "CAROUSEL": cls.CAROUSEL,
        }
        if normalized not in mapping:
            raise ValueError(f"Unsupported media type: {value!r}")
        return mapping[normalized]


class RawMediaItem(BaseModel):
    """A media object as returned by the Graph API ``/me/media`` edge."""

    model_config = ConfigDict(extra="ignore")

    id: str
    media_type: str
    media_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    permalink: Optional[str] = None
    caption: Optional[str] = None
    timestamp: Optional[datetime] = None

    @field_validator("timestamp", mode="before")
    @classmethod
    def _graph_offset(cls, value):
        # Graph API timestamps use a "+0000" offset without a colon.
        if isinstance(value, str) and re.search(r"[+-]\d{4}$", value):
            return f"{value[:-2]}:{value[-2:]}"
        return value


class MediaItem(BaseModel):
    """Normalized media item served to the public site."""

    id: str
    media_type: MediaType
    media_url: str
    thumbnail_url: Optional[str] = None
    permalink: str
    caption: str = ""
    timestamp: datetime

    @model_validator(mode="after")
    def _video_needs_thumbnail(self) -> "MediaItem":
        if self.media_type is MediaType.VIDEO and not self.thumbnail_url:
            raise ValueError("Video items require a thumbnail_url.")
        return self


class MediaCollection(BaseModel):
    """The persisted result of the latest successful sync."""

    generation: int = Field(..., ge=1)
    fetched_at: datetime
    items: List[MediaItem] = Field(default_factory=list)


__all__ = [
    "Credential",
    "MediaCollection",
    "MediaItem",
    "MediaType",
    "RawMediaItem",
]
