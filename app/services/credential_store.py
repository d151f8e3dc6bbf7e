"""
Durable storage for the Instagram credential and the synced media collection.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from app.clients.sqlite_store import SQLiteStore
from app.models.instagram import Credential, MediaCollection, MediaItem
from app.services.token_cipher import TokenCipherService, TokenDecryptError

logger = logging.getLogger(__name__)


class CredentialStore:
    """
    Single-account store for the provider connection.

    Exactly one credential record is meaningful per deployment. Disconnecting
    flips ``is_connected`` rather than deleting the record, so ``last_sync``
    and ``username`` survive failed reconnection attempts.
    """

    PARTITION_KEY = "integration#instagram"
    CREDENTIAL_SORT_KEY = "credential"
    MEDIA_SORT_KEY = "media"

    def __init__(self, store: SQLiteStore, cipher: TokenCipherService) -> None:
        self._store = store
        self._cipher = cipher

    @property
    def credential_id(self) -> str:
        return f"{self.PARTITION_KEY}/{self.CREDENTIAL_SORT_KEY}"

    def load(self) -> Optional[Credential]:
        record = self._store.get_item(
            partition_key=self.PARTITION_KEY, sort_key=self.CREDENTIAL_SORT_KEY
        )
        if not record:
            return None

        data = {k: v for k, v in record.items() if k not in ("pk", "sk", "access_token_encrypted")}
        try:
            data["access_token"] = self._cipher.decrypt(record.get("access_token_encrypted"))
        except TokenDecryptError:
            logger.error("Stored Instagram token is unreadable; treating the account as disconnected")
            data["access_token"] = None
            data["is_connected"] = False
        return Credential.model_validate(data)

    def save(self, credential: Credential) -> Credential:
        self._store.put_item(self._credential_record(credential))
        return credential

    def load_media(self) -> Optional[MediaCollection]:
        record = self._store.get_item(
            partition_key=self.PARTITION_KEY, sort_key=self.MEDIA_SORT_KEY
        )
        if not record:
            return None
        return MediaCollection.model_validate(
            {k: v for k, v in record.items() if k not in ("pk", "sk")}
        )

    def record_sync(self, items: List[MediaItem], *, synced_at: datetime) -> MediaCollection:
        """
        Replace the media collection and stamp ``last_sync`` atomically.

        Both records are written in one transaction, so readers see either the
        previous collection or the new one, never an empty gap.
        """
        previous = self.load_media()
        collection = MediaCollection(
            generation=(previous.generation + 1) if previous else 1,
            fetched_at=synced_at,
            items=items,
        )
        records: List[Dict[str, Any]] = [
            {
                "pk": self.PARTITION_KEY,
                "sk": self.MEDIA_SORT_KEY,
                **collection.model_dump(mode="json"),
            }
        ]

        credential = self.load()
        if credential is not None:
            credential = credential.model_copy(update={"last_sync": synced_at, "updated_at": synced_at})
            records.append(self._credential_record(credential))

        self._store.put_items(records)
        return collection

    def _credential_record(self, credential: Credential) -> Dict[str, Any]:
        data = credential.model_dump(mode="json", exclude={"access_token"})
        return {
            "pk": self.PARTITION_KEY,
            "sk": self.CREDENTIAL_SORT_KEY,
            **data,
            "access_token_encrypted": self._cipher.encrypt(credential.access_token),
        }


__all__ = ["CredentialStore"]
