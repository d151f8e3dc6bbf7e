"""Client for the Instagram ``/me/media`` listing edge."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from pydantic import ValidationError

from app.clients.instagram_graph import InstagramGraphClient
from app.core.errors import ProviderAPIError
from app.models.instagram import RawMediaItem

logger = logging.getLogger(__name__)


@dataclass
class MediaPage:
    """One page of the provider feed."""

    items: List[RawMediaItem] = field(default_factory=list)
    next_cursor: Optional[str] = None
    has_more: bool = False


class InstagramMediaClient(InstagramGraphClient):
    """Read-only access to the connected account's media."""

    MEDIA_FIELDS = "id,media_type,media_url,permalink,caption,timestamp,thumbnail_url"

    async def list_media(self, access_token: str, limit: int) -> MediaPage:
        """
        Fetch the most recent ``limit`` media objects.

        Only the first page is read. When the provider reports more pages the
        result is flagged with ``has_more`` instead of silently truncating.
        """
        payload = await self._graph_get(
            "/me/media",
            {
                "fields": self.MEDIA_FIELDS,
                "limit": str(limit),
                "access_token": access_token,
            },
            error_cls=ProviderAPIError,
            action="Media listing",
        )

        raw_items = payload.get("data")
        if raw_items is None:
            raw_items = []
        if not isinstance(raw_items, list):
            raise ProviderAPIError(
                "Media listing returned an unexpected payload.", provider_error=payload
            )

        items: List[RawMediaItem] = []
        for raw in raw_items:
            try:
                items.append(RawMediaItem.model_validate(raw))
            except ValidationError as exc:
                logger.warning(
                    "Skipping malformed media object %r: %s",
                    raw.get("id") if isinstance(raw, dict) else raw,
                    exc.errors(include_url=False),
                )

        paging = payload.get("paging") or {}
        next_cursor = (paging.get("cursors") or {}).get("after")
        has_more = bool(paging.get("next"))
        if has_more:
            logger.warning(
                "Instagram reported more media beyond the first %d items; only one page is synced.",
                limit,
            )
        return MediaPage(items=items, next_cursor=next_cursor, has_more=has_more)


__all__ = ["InstagramMediaClient", "MediaPage"]
