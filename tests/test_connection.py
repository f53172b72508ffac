"""
Tests for MongoDB connection handling and the Mongo storage backend.

``MongoClient`` is patched; no server is contacted.
"""

from unittest.mock import MagicMock

import pytest
from pymongo.errors import ConnectionFailure, DocumentTooLarge, ServerSelectionTimeoutError

from src.database import connection, storage_backends
from src.database.connection import DatabaseManager, get_db
from src.database.storage_backends import MongoStorageBackend
from src.transcription.errors import StorageError, StorageQuotaExceeded


@pytest.fixture(autouse=True)
def fresh_manager():
    DatabaseManager.reset()
    yield
    DatabaseManager.reset()


def test_failed_connect_backs_off(monkeypatch):
    client_factory = MagicMock(side_effect=ServerSelectionTimeoutError("no servers"))
    monkeypatch.setattr(connection, "MongoClient", client_factory)

    with pytest.raises(ConnectionFailure):
        get_db()
    with pytest.raises(ConnectionFailure, match="retrying"):
        get_db()
    assert client_factory.call_count == 1


def test_connect_creates_storage_index(monkeypatch):
    client = MagicMock()
    monkeypatch.setattr(connection, "MongoClient", MagicMock(return_value=client))

    db = get_db()

    assert db is client.__getitem__.return_value
    client.admin.command.assert_called_once_with("ping")
    db.__getitem__.return_value.create_index.assert_called_once_with("updated_at")
    assert get_db() is db


class _FakeCollection:
    """Just enough of a pymongo collection for the storage backend."""

    def __init__(self):
        self.docs = {}

    def find_one(self, query):
        return self.docs.get(query["_id"])

    def find(self, query, projection=None):
        excluded = query["_id"]["$ne"]
        return [doc for key, doc in self.docs.items() if key != excluded]

    def replace_one(self, query, doc, upsert=False):
        self.docs[query["_id"]] = doc

    def delete_one(self, query):
        self.docs.pop(query["_id"], None)

    def delete_many(self, query):
        self.docs.clear()


@pytest.fixture
def collection(monkeypatch):
    coll = _FakeCollection()
    monkeypatch.setattr(storage_backends, "get_db", lambda: {"storage": coll})
    return coll


def test_mongo_backend_round_trip(collection):
    backend = MongoStorageBackend("storage", quota_bytes=None)

    backend.set("uploadedFiles", "[]")
    assert backend.get("uploadedFiles") == "[]"
    assert collection.docs["uploadedFiles"]["updated_at"] is not None

    backend.remove("uploadedFiles")
    assert backend.get("uploadedFiles") is None


def test_mongo_backend_enforces_quota_across_keys(collection):
    backend = MongoStorageBackend("storage", quota_bytes=10)
    backend.set("a", "123456")

    with pytest.raises(StorageQuotaExceeded):
        backend.set("b", "123456")


def test_mongo_backend_maps_document_too_large(collection, monkeypatch):
    def too_large(*args, **kwargs):
        raise DocumentTooLarge("BSON document too large")

    monkeypatch.setattr(collection, "replace_one", too_large)

    with pytest.raises(StorageQuotaExceeded):
        MongoStorageBackend("storage", quota_bytes=None).set("k", "v")


def test_mongo_backend_unavailable_is_storage_error(monkeypatch):
    def unavailable():
        raise ConnectionFailure("down")

    monkeypatch.setattr(storage_backends, "get_db", unavailable)

    with pytest.raises(StorageError):
        MongoStorageBackend("storage").get("uploadedFiles")
