"""
Key-value storage media for the file store.

Both backends expose the same four operations (``get``, ``set``, ``remove``,
``clear``) over string values and enforce an optional byte quota across all
keys they hold. A write that would exceed the quota raises
``StorageQuotaExceeded``; any other medium failure raises ``StorageError``.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, Optional

from pymongo.errors import DocumentTooLarge, PyMongoError

from configs.config import get_config
from src.database.connection import get_db
from src.transcription.errors import StorageError, StorageQuotaExceeded

logger = logging.getLogger(__name__)

cfg = get_config()


class StorageBackend(ABC):
    """Abstract key-value medium with a byte quota."""

    name = "storage"

    def __init__(self, quota_bytes: Optional[int] = None) -> None:
        self.quota_bytes = quota_bytes

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    def remove(self, key: str) -> None:
        ...

    @abstractmethod
    def clear(self) -> None:
        ...

    def _check_quota(self, key: str, value: str, used_by_others: int) -> None:
        if self.quota_bytes is None:
            return
        needed = used_by_others + len(value.encode("utf-8"))
        if needed > self.quota_bytes:
            raise StorageQuotaExceeded(
                f"{self.name}: writing '{key}' needs {needed} bytes, "
                f"quota is {self.quota_bytes}"
            )


class MemoryStorageBackend(StorageBackend):
    """Process-local dictionary medium; the file store's fallback."""

    name = "memory"

    def __init__(self, quota_bytes: Optional[int] = None) -> None:
        super().__init__(quota_bytes)
        self._items: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set(self, key: str, value: str) -> None:
        used = sum(
            len(v.encode("utf-8")) for k, v in self._items.items() if k != key
        )
        self._check_quota(key, value, used)
        self._items[key] = value

    def remove(self, key: str) -> None:
        self._items.pop(key, None)

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)


class MongoStorageBackend(StorageBackend):
    """MongoDB collection holding one document per key."""

    name = "mongodb"

    def __init__(
        self,
        collection_name: str = cfg.STORAGE_COLLECTION,
        quota_bytes: Optional[int] = cfg.STORAGE_QUOTA_BYTES,
    ) -> None:
        super().__init__(quota_bytes)
        self._collection_name = collection_name

    def _collection(self):
        try:
            return get_db()[self._collection_name]
        except PyMongoError as exc:
            raise StorageError(f"mongodb unavailable: {exc}") from exc

    def get(self, key: str) -> Optional[str]:
        try:
            doc = self._collection().find_one({"_id": key})
        except PyMongoError as exc:
            raise StorageError(f"mongodb read of '{key}' failed: {exc}") from exc
        return doc["value"] if doc else None

    def set(self, key: str, value: str) -> None:
        collection = self._collection()
        try:
            used = sum(
                len(doc.get("value", "").encode("utf-8"))
                for doc in collection.find({"_id": {"$ne": key}}, {"value": 1})
            )
            self._check_quota(key, value, used)
            collection.replace_one(
                {"_id": key},
                {
                    "_id": key,
                    "value": value,
                    "updated_at": datetime.now(timezone.utc),
                },
                upsert=True,
            )
        except DocumentTooLarge as exc:
            raise StorageQuotaExceeded(
                f"mongodb: value for '{key}' exceeds the document size limit"
            ) from exc
        except PyMongoError as exc:
            raise StorageError(f"mongodb write of '{key}' failed: {exc}") from exc
        logger.debug("Stored %d bytes under %s", len(value), key)

    def remove(self, key: str) -> None:
        try:
            self._collection().delete_one({"_id": key})
        except PyMongoError as exc:
            raise StorageError(f"mongodb delete of '{key}' failed: {exc}") from exc

    def clear(self) -> None:
        try:
            self._collection().delete_many({})
        except PyMongoError as exc:
            raise StorageError(f"mongodb clear failed: {exc}") from exc
