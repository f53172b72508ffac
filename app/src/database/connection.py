"""
MongoDB connection management.

Provides a singleton DatabaseManager and a convenience ``get_db()`` helper.
The connection is opened lazily on first use. After a failed attempt, further
attempts are refused for ``MONGODB_RETRY_SECONDS`` so that a store running on
its in-memory fallback does not wait out a server-selection timeout on
every read.
"""

import logging
import time
from typing import Optional

from pymongo import MongoClient
from pymongo.database import Database
from pymongo.errors import ConnectionFailure, PyMongoError

from configs.config import get_config

logger = logging.getLogger(__name__)

cfg = get_config()


class DatabaseManager:
    """Process-wide owner of the MongoClient."""

    _instance: Optional["DatabaseManager"] = None
    _client: Optional[MongoClient] = None
    _db: Optional[Database] = None
    _failed_at: Optional[float] = None

    def __new__(cls) -> "DatabaseManager":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    # ── Connection ───────────────────────────────────────────────────────

    def connect(self) -> None:
        """Open the client, verify it with a ping and create indexes."""
        try:
            client = MongoClient(
                cfg.MONGODB_URL, serverSelectionTimeoutMS=cfg.MONGODB_TIMEOUT_MS
            )
            client.admin.command("ping")
            db = client[cfg.DATABASE_NAME]
            db[cfg.STORAGE_COLLECTION].create_index("updated_at")
        except PyMongoError as exc:
            self._failed_at = time.monotonic()
            logger.error(
                "Failed to connect to MongoDB (next attempt in %ds): %s",
                cfg.MONGODB_RETRY_SECONDS, exc,
            )
            raise ConnectionFailure(str(exc)) from exc

        self._client, self._db, self._failed_at = client, db, None
        logger.info("Connected to MongoDB database %s", cfg.DATABASE_NAME)

    def get_db(self) -> Database:
        """Return the database handle, connecting if necessary."""
        if self._db is not None:
            return self._db
        if self._failed_at is not None:
            waited = time.monotonic() - self._failed_at
            if waited < cfg.MONGODB_RETRY_SECONDS:
                raise ConnectionFailure(
                    f"MongoDB unavailable; retrying in {cfg.MONGODB_RETRY_SECONDS - waited:.0f}s"
                )
        self.connect()
        return self._db

    @classmethod
    def reset(cls) -> None:
        """Forget the client and any recorded failure."""
        if cls._instance is not None and cls._instance._client is not None:
            cls._instance._client.close()
        cls._instance = None
        cls._client = None
        cls._db = None
        cls._failed_at = None


# ── Convenience function ─────────────────────────────────────────────────


def get_db() -> Database:
    """Shortcut to obtain the database handle."""
    return DatabaseManager().get_db()
