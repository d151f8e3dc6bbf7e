"""Public schema exports."""

from .instagram import (
    AuthorizationUrlResponse,
    ErrorDetail,
    FeedResponse,
    SyncResponse,
    SyncStatusResponse,
)

__all__ = [
    "AuthorizationUrlResponse",
    "ErrorDetail",
    "FeedResponse",
    "SyncResponse",
    "SyncStatusResponse",
]
