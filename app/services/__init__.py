"""Service layer exports."""

from .credential_store import CredentialStore
from .instagram_connect import AuthorizationResult, InstagramConnectService
from .instagram_sync import InstagramSyncService, SyncResult, SyncStatus
from .instagram_tokens import InstagramTokenService
from .token_cipher import TokenCipherService

__all__ = [
    "AuthorizationResult",
    "CredentialStore",
    "InstagramConnectService",
    "InstagramSyncService",
    "InstagramTokenService",
    "SyncResult",
    "SyncStatus",
    "TokenCipherService",
]
