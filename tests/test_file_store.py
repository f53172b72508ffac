"""
Tests for the capped, newest-first job record store.
"""

import json
import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from conftest import FailingBackend
from src.database.file_store import PROBE_KEY, FileStore, RetentionPolicy, UploadedAudio
from src.database.storage_backends import MemoryStorageBackend
from src.transcription.errors import StorageError, StorageFailure, StorageQuotaExceeded
from src.transcription.models import JobStatus


def _upload(name="a.mp3", size=1536, mime_type="audio/mpeg"):
    return UploadedAudio(file_name=name, size=size, mime_type=mime_type, content=b"\x00" * 8)


def _stored(backend, key="uploadedFiles"):
    return json.loads(backend.get(key))


# ---------------------------------------------------------------------------
# save / list / get
# ---------------------------------------------------------------------------

def test_save_creates_processing_record(store, primary):
    job = store.save(_upload(), "user-1")

    assert job.status == JobStatus.PROCESSING
    assert job.file_size == "1.5 KB"
    assert job.duration == "01:15"
    assert job.transcript == ""
    assert job.utterances == []
    assert job.original_file.type == "audio/mpeg"

    raw = _stored(primary)
    assert raw[0]["id"] == job.id
    assert raw[0]["fileName"] == "a.mp3"
    assert raw[0]["userId"] == "user-1"
    assert raw[0]["status"] == "processing"


def test_save_then_list_returns_record_first(store):
    store.save(_upload("older.mp3"), "user-1")
    newest = store.save(_upload("newer.mp3"), "user-1")

    jobs = store.list("user-1")
    assert jobs[0].id == newest.id
    assert [j.file_name for j in jobs] == ["newer.mp3", "older.mp3"]


def test_list_is_scoped_to_user(store):
    store.save(_upload("mine.mp3"), "user-1")
    store.save(_upload("theirs.mp3"), "user-2")

    assert [j.file_name for j in store.list("user-1")] == ["mine.mp3"]
    assert [j.file_name for j in store.list("user-2")] == ["theirs.mp3"]


def test_get_respects_owner(store):
    job = store.save(_upload(), "user-1")

    assert store.get(job.id).id == job.id
    assert store.get(job.id, user_id="user-1") is not None
    assert store.get(job.id, user_id="user-2") is None
    assert store.get("job_0000000000000_zzzz") is None


def test_ids_are_unique(store):
    ids = {store.save(_upload(), "user-1").id for _ in range(10)}
    assert len(ids) == 10


def test_unknown_duration_is_zeroed(primary, fallback):
    store = FileStore(primary, fallback, duration_probe=lambda content, name: 0.0)
    assert store.save(_upload(), "user-1").duration == "00:00"


# ---------------------------------------------------------------------------
# Retention
# ---------------------------------------------------------------------------

def test_eleventh_save_evicts_oldest(store, primary):
    saved = [store.save(_upload(f"f{i}.mp3"), "user-1") for i in range(11)]

    raw = _stored(primary)
    assert len(raw) == 10
    assert raw[0]["id"] == saved[-1].id
    assert saved[0].id not in {r["id"] for r in raw}


def test_collection_never_exceeds_limit_with_mixed_owners(store, primary):
    for i in range(25):
        store.save(_upload(), f"user-{i % 3}")
    assert len(_stored(primary)) == 10


def test_retention_policy_keeps_head():
    policy = RetentionPolicy(limit=2)
    assert policy.retain([{"id": 1}, {"id": 2}, {"id": 3}]) == [{"id": 1}, {"id": 2}]


# ---------------------------------------------------------------------------
# update_status
# ---------------------------------------------------------------------------

def test_update_status_completed_merges_result(store):
    job = store.save(_upload(), "user-1")
    updated = store.update_status(job.id, JobStatus.COMPLETED, {
        "transcript": "hello world",
        "utterances": [{"speaker": "A", "start": 0, "end": 900, "text": "hello world", "confidence": 0.9}],
        "provider": "assemblyai",
        "model": "assemblyai",
    })

    assert updated is True
    stored = store.get(job.id)
    assert stored.status == JobStatus.COMPLETED
    assert stored.transcript == "hello world"
    assert stored.utterances[0].speaker == "A"
    assert stored.provider == "assemblyai"
    assert stored.completed_at is not None


def test_update_status_failed_keeps_transcript_empty(store):
    job = store.save(_upload(), "user-1")
    store.update_status(job.id, JobStatus.FAILED)

    stored = store.get(job.id)
    assert stored.status == JobStatus.FAILED
    assert stored.transcript == ""
    assert stored.completed_at is None


def test_update_status_unknown_id_is_noop(store, primary):
    store.save(_upload(), "user-1")
    before = primary.get("uploadedFiles")

    assert store.update_status("job_0000000000000_none", JobStatus.COMPLETED, {"transcript": "x"}) is False
    assert primary.get("uploadedFiles") == before


def test_terminal_status_is_not_overwritten(store):
    job = store.save(_upload(), "user-1")
    store.update_status(job.id, JobStatus.FAILED)

    assert store.update_status(job.id, JobStatus.COMPLETED, {"transcript": "late"}) is False
    assert store.get(job.id).status == JobStatus.FAILED


# ---------------------------------------------------------------------------
# delete / clear / stats
# ---------------------------------------------------------------------------

def test_delete_removes_only_that_record(store):
    keep = store.save(_upload("keep.mp3"), "user-1")
    drop = store.save(_upload("drop.mp3"), "user-1")

    assert store.delete(drop.id) is True
    assert store.delete(drop.id) is False
    assert [j.id for j in store.list("user-1")] == [keep.id]


def test_clear_all_empties_both_media(store, primary, fallback):
    store.save(_upload(), "user-1")
    fallback.set("uploadedFiles", "[]")

    store.clear_all()

    assert primary.get("uploadedFiles") is None
    assert len(fallback) == 0
    assert store.list("user-1") == []


def test_stats_counts_by_status(store):
    a = store.save(_upload(), "user-1")
    b = store.save(_upload(), "user-1")
    store.save(_upload(), "user-1")
    store.save(_upload(), "user-2")
    store.update_status(a.id, JobStatus.COMPLETED, {"transcript": "x"})
    store.update_status(b.id, JobStatus.FAILED)

    assert store.stats("user-1") == {"processing": 1, "completed": 1, "failed": 1, "total": 3}


def test_corrupt_payload_reads_as_empty(store, primary):
    primary.set("uploadedFiles", "{not json")
    assert store.list("user-1") == []


# ---------------------------------------------------------------------------
# Capacity handling
# ---------------------------------------------------------------------------

class _QuotaOnceBackend(MemoryStorageBackend):
    """Rejects the first write with a quota error, accepts the rest."""

    def __init__(self):
        super().__init__()
        self.attempts = []

    def set(self, key, value):
        self.attempts.append(len(json.loads(value)))
        if len(self.attempts) == 1:
            raise StorageQuotaExceeded("full")
        super().set(key, value)


def test_quota_error_trims_and_retries_once(fallback):
    primary = _QuotaOnceBackend()
    store = FileStore(
        primary, fallback, policy=RetentionPolicy(limit=2), duration_probe=lambda c, n: 0
    )
    store._write([{"id": "job_0"}, {"id": "job_1"}, {"id": "job_2"}])

    assert primary.attempts == [3, 2]
    assert [r["id"] for r in _stored(primary)] == ["job_0", "job_1"]
    assert store.degraded is False


def test_primary_failure_switches_to_fallback(fallback):
    primary = FailingBackend(StorageError("mongodb unavailable"))
    store = FileStore(primary, fallback, duration_probe=lambda c, n: 0)

    job = store.save(_upload(), "user-1")

    assert store.degraded is True
    assert _stored(fallback)[0]["id"] == job.id
    assert store.get(job.id) is not None

    store.save(_upload(), "user-1")
    assert primary.set_calls == 1


def test_both_media_failing_raises_storage_failure():
    store = FileStore(
        FailingBackend(StorageQuotaExceeded("full")),
        FailingBackend(StorageQuotaExceeded("full")),
        duration_probe=lambda c, n: 0,
    )
    with pytest.raises(StorageFailure, match="Storage may be full"):
        store.save(_upload(), "user-1")


def test_check_capacity_probe(store, primary):
    assert store.check_capacity() is True
    assert primary.get("__storage_probe__") is None

    tight = FileStore(MemoryStorageBackend(quota_bytes=10), MemoryStorageBackend())
    assert tight.check_capacity() is False


def test_memory_backend_quota_counts_all_keys():
    backend = MemoryStorageBackend(quota_bytes=10)
    backend.set("a", "12345")
    with pytest.raises(StorageQuotaExceeded):
        backend.set("b", "123456")
    backend.set("a", "1234567890")


# ---------------------------------------------------------------------------
# Primary read failures
# ---------------------------------------------------------------------------

class _FlakyReadBackend(MemoryStorageBackend):
    """Raises ``StorageError`` on the next ``failures`` reads."""

    name = "flaky"

    def __init__(self):
        super().__init__()
        self.failures = 0

    def get(self, key):
        if self.failures:
            self.failures -= 1
            raise StorageError("mongodb read of 'uploadedFiles' failed: connection reset")
        return super().get(key)


def test_failed_read_never_overwrites_primary(fallback):
    primary = _FlakyReadBackend()
    store = FileStore(primary, fallback, duration_probe=lambda c, n: 0)
    for i in range(5):
        store.save(_upload(f"f{i}.wav"), "u")
    before = primary.get("uploadedFiles")

    primary.failures = 1
    with pytest.raises(StorageFailure, match="Storage is unavailable"):
        store.save(_upload("new.wav"), "u")

    assert primary.get("uploadedFiles") == before
    assert store.degraded is False

    store.save(_upload("new.wav"), "u")
    names = [j.file_name for j in store.list("u")]
    assert len(names) == 6
    assert names[0] == "new.wav"


def test_failed_read_blocks_update_and_delete(fallback):
    primary = _FlakyReadBackend()
    store = FileStore(primary, fallback, duration_probe=lambda c, n: 0)
    job = store.save(_upload(), "u")
    before = primary.get("uploadedFiles")

    primary.failures = 2
    with pytest.raises(StorageFailure):
        store.update_status(job.id, JobStatus.COMPLETED, {"transcript": "x"})
    with pytest.raises(StorageFailure):
        store.delete(job.id)

    assert primary.get("uploadedFiles") == before
    assert store.get(job.id).status == JobStatus.PROCESSING


def test_failed_read_lists_nothing_without_writing(fallback):
    primary = _FlakyReadBackend()
    store = FileStore(primary, fallback, duration_probe=lambda c, n: 0)
    store.save(_upload(), "u")

    primary.failures = 1
    assert store.list("u") == []
    assert len(store.list("u")) == 1
    assert fallback.get("uploadedFiles") is None


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------

class _SlowBackend(MemoryStorageBackend):
    """Widens the read-modify-write window."""

    def get(self, key):
        value = super().get(key)
        time.sleep(0.002)
        return value


@pytest.mark.parametrize("count", [6, 25])
def test_concurrent_saves_lose_nothing(fallback, count):
    primary = _SlowBackend()
    store = FileStore(primary, fallback, duration_probe=lambda c, n: 0)

    with ThreadPoolExecutor(max_workers=8) as pool:
        jobs = list(pool.map(lambda i: store.save(_upload(f"f{i}.mp3"), "u"), range(count)))

    stored_ids = [r["id"] for r in _stored(primary)]
    assert len({job.id for job in jobs}) == count
    assert len(stored_ids) == min(count, store.policy.limit)
    assert len(set(stored_ids)) == len(stored_ids)
    assert set(stored_ids) <= {job.id for job in jobs}
    assert store.degraded is False


class _ProbeHookBackend(MemoryStorageBackend):
    """Calls ``on_probe`` once, right after the capacity probe is written."""

    def __init__(self):
        super().__init__()
        self.on_probe = None

    def set(self, key, value):
        super().set(key, value)
        if key == PROBE_KEY and self.on_probe is not None:
            hook, self.on_probe = self.on_probe, None
            hook()


def test_capacity_check_does_not_collide_with_save(fallback):
    primary = _ProbeHookBackend()
    store = FileStore(
        primary, fallback,
        policy=RetentionPolicy(limit=10, probe_bytes=1_000),
        duration_probe=lambda c, n: 0,
    )
    store.save(_upload("first.mp3"), "u")
    primary.quota_bytes = 1_000 + len(primary.get("uploadedFiles").encode("utf-8")) + 50

    saver = threading.Thread(target=store.save, args=(_upload("second.mp3"), "u"))

    def save_while_probe_is_stored():
        saver.start()
        saver.join(timeout=0.2)

    primary.on_probe = save_while_probe_is_stored

    assert store.check_capacity() is True
    saver.join()

    assert store.degraded is False
    assert primary.get(PROBE_KEY) is None
    assert [j.file_name for j in store.list("u")] == ["second.mp3", "first.mp3"]


def test_quota_retry_clears_stale_probe(fallback):
    primary = MemoryStorageBackend(quota_bytes=2_000)
    primary.set(PROBE_KEY, "x" * 1_800)
    store = FileStore(primary, fallback, duration_probe=lambda c, n: 0)

    store.save(_upload(), "u")

    assert primary.get(PROBE_KEY) is None
    assert len(_stored(primary)) == 1
    assert store.degraded is False
