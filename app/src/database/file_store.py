"""
File store for transcription job records.

The whole collection is one JSON array (newest first) kept under a single
key of a key-value medium. Writes go to the primary medium; on a capacity
error the collection is trimmed to the retention limit and the write retried
once. If the primary still refuses, the store switches to the injected
in-memory fallback for the rest of its life and reports ``degraded``.
"""

import json
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from pydantic import ValidationError as ModelValidationError

from commons import generate_job_id
from src.database.storage_backends import StorageBackend
from src.transcription.audio import format_duration, format_file_size, probe_duration
from src.transcription.errors import StorageError, StorageFailure, StorageQuotaExceeded
from src.transcription.models import (
    TERMINAL_STATUSES,
    JobStatus,
    OriginalFile,
    TranscriptionJob,
    Utterance,
)

logger = logging.getLogger(__name__)

PROBE_KEY = "__storage_probe__"


@dataclass(frozen=True)
class RetentionPolicy:
    """Single source of truth for how many records are kept and how capacity is probed."""

    limit: int = 10
    probe_bytes: int = 100_000

    def retain(self, records: List[Dict]) -> List[Dict]:
        """Keep the ``limit`` newest records (the head of the list)."""
        return records[: self.limit]


@dataclass(frozen=True)
class UploadedAudio:
    file_name: str
    size: int
    mime_type: str
    content: bytes = b""


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class FileStore:
    """Capped, newest-first collection of ``TranscriptionJob`` records."""

    def __init__(
        self,
        primary: StorageBackend,
        fallback: StorageBackend,
        key: str = "uploadedFiles",
        policy: Optional[RetentionPolicy] = None,
        duration_probe: Callable[[bytes, str], float] = probe_duration,
    ) -> None:
        self._primary = primary
        self._fallback = fallback
        self._key = key
        self.policy = policy or RetentionPolicy()
        self._duration_probe = duration_probe
        self._lock = threading.RLock()
        self._degraded = False

    @property
    def degraded(self) -> bool:
        """True once writes have moved to the in-memory fallback."""
        return self._degraded

    # ── Raw persistence ──────────────────────────────────────────────────

    def _read(self, for_update: bool = False) -> List[Dict]:
        """
        Load the record list from the active medium.

        A failed primary read yields an empty view for plain reads. Inside a
        mutation it raises ``StorageFailure`` so the short list is never
        written back over the stored records.
        """
        if self._degraded:
            raw = self._fallback.get(self._key)
        else:
            try:
                raw = self._primary.get(self._key)
            except StorageError as exc:
                logger.error("Reading %s from %s failed: %s", self._key, self._primary.name, exc)
                if for_update:
                    raise StorageFailure(
                        "Failed to read file metadata. Storage is unavailable."
                    ) from exc
                return []
        if not raw:
            return []
        try:
            records = json.loads(raw)
        except ValueError as exc:
            logger.error("Stored job records are corrupt, starting fresh: %s", exc)
            return []
        return records if isinstance(records, list) else []

    def _write(self, records: List[Dict]) -> None:
        if not self._degraded:
            try:
                self._primary.set(self._key, json.dumps(records))
                return
            except StorageQuotaExceeded as exc:
                logger.warning("Storage quota exceeded (%s); keeping %d most recent records", exc, self.policy.limit)
                records = self.policy.retain(records)
                self._discard_probe()
                try:
                    self._primary.set(self._key, json.dumps(records))
                    return
                except StorageError as retry_exc:
                    logger.error("Retry after cleanup failed: %s", retry_exc)
            except StorageError as exc:
                logger.error("Writing to %s failed: %s", self._primary.name, exc)

            self._degraded = True
            logger.warning(
                "Switching file store to %s fallback; records will not survive a restart",
                self._fallback.name,
            )

        try:
            self._fallback.set(self._key, json.dumps(records))
        except StorageError as exc:
            logger.error("Fallback storage write failed: %s", exc)
            raise StorageFailure(
                "Failed to save file metadata. Storage may be full."
            ) from exc

    def _discard_probe(self) -> None:
        try:
            self._primary.remove(PROBE_KEY)
        except StorageError as exc:
            logger.warning("Could not remove storage probe: %s", exc)

    @staticmethod
    def _parse(record: Dict) -> Optional[TranscriptionJob]:
        try:
            return TranscriptionJob.model_validate(record)
        except ModelValidationError as exc:
            logger.warning("Skipping malformed job record %s: %s", record.get("id"), exc)
            return None

    # ── Operations ───────────────────────────────────────────────────────

    def save(self, upload: UploadedAudio, user_id: str) -> TranscriptionJob:
        """Create a ``processing`` record for an upload and persist it at the head."""
        duration = format_duration(self._duration_probe(upload.content, upload.file_name))

        with self._lock:
            records = self._read(for_update=True)
            existing_ids = {r.get("id") for r in records}
            job_id = generate_job_id()
            while job_id in existing_ids:
                job_id = generate_job_id()

            job = TranscriptionJob(
                id=job_id,
                file_name=upload.file_name,
                file_size=format_file_size(upload.size),
                duration=duration,
                upload_date=_utcnow_iso(),
                status=JobStatus.PROCESSING,
                user_id=user_id,
                original_file=OriginalFile(
                    name=upload.file_name, size=upload.size, type=upload.mime_type
                ),
            )
            updated = self.policy.retain([job.to_storage()] + records)
            evicted = len(records) + 1 - len(updated)
            if evicted > 0:
                logger.info("Evicted %d oldest job record(s)", evicted)
            self._write(updated)

        logger.info("Job %s saved for %s (%s, %s)", job.id, upload.file_name, job.file_size, duration)
        return job

    def list(self, user_id: str) -> List[TranscriptionJob]:
        """Return the records owned by ``user_id``, newest first."""
        with self._lock:
            records = self._read()
        jobs = (self._parse(r) for r in records if r.get("userId") == user_id)
        return [job for job in jobs if job is not None]

    def get(self, job_id: str, user_id: Optional[str] = None) -> Optional[TranscriptionJob]:
        with self._lock:
            records = self._read()
        for record in records:
            if record.get("id") != job_id:
                continue
            if user_id is not None and record.get("userId") != user_id:
                return None
            return self._parse(record)
        return None

    def update_status(self, job_id: str, status: JobStatus, data: Optional[Dict] = None) -> bool:
        """
        Move a ``processing`` record to ``status`` and merge result data.

        ``data`` may carry ``transcript``, ``utterances``, ``provider`` and
        ``model``. Unknown ids and already-terminal records are left untouched.
        """
        data = data or {}
        status = JobStatus(status)
        with self._lock:
            records = self._read(for_update=True)
            for record in records:
                if record.get("id") == job_id:
                    break
            else:
                logger.warning("Job %s not found; status update to %s ignored", job_id, status.value)
                return False

            if JobStatus(record.get("status", JobStatus.PROCESSING)) in TERMINAL_STATUSES:
                logger.warning(
                    "Job %s is already %s; status update to %s ignored",
                    job_id, record.get("status"), status.value,
                )
                return False

            record["status"] = status.value
            if data.get("transcript") is not None:
                record["transcript"] = data["transcript"]
            if isinstance(data.get("utterances"), list):
                record["utterances"] = [
                    Utterance.model_validate(u).model_dump(mode="json", by_alias=True)
                    for u in data["utterances"]
                ]
            for tag in ("provider", "model"):
                if data.get(tag):
                    record[tag] = data[tag]
            if status == JobStatus.COMPLETED:
                record["completedAt"] = _utcnow_iso()
            self._write(records)

        logger.info("Job %s status updated to %s", job_id, status.value)
        return True

    def delete(self, job_id: str) -> bool:
        with self._lock:
            records = self._read(for_update=True)
            remaining = [r for r in records if r.get("id") != job_id]
            if len(remaining) == len(records):
                logger.warning("Job %s delete failed, no match", job_id)
                return False
            self._write(remaining)
        logger.info("Job %s deleted", job_id)
        return True

    def clear_all(self) -> None:
        """Remove every record from both media."""
        with self._lock:
            if not self._degraded:
                try:
                    self._primary.remove(self._key)
                except StorageError as exc:
                    logger.error("Error clearing %s: %s", self._primary.name, exc)
            self._fallback.clear()
        logger.info("All files cleared from storage")

    def stats(self, user_id: str) -> Dict[str, int]:
        jobs = self.list(user_id)
        counts = {status.value: 0 for status in JobStatus}
        for job in jobs:
            counts[job.status.value] += 1
        counts["total"] = len(jobs)
        return counts

    def check_capacity(self) -> bool:
        """
        Probe the primary medium with a throwaway write.

        Returns False when the probe is rejected, so callers can warn the user.
        The probe runs under the store lock, so no save ever sees the probe
        bytes counted against the quota.
        """
        if self._degraded:
            return False
        with self._lock:
            try:
                self._primary.set(PROBE_KEY, "x" * self.policy.probe_bytes)
            except StorageError as exc:
                logger.warning("Storage capacity probe failed: %s", exc)
                return False
            self._discard_probe()
        return True
