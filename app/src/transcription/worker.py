"""
Background transcription worker.

Runs the gateway for a single stored job and records the outcome with
exactly one ``update_status`` call on the file store.
"""

import logging

from src.database.file_store import FileStore
from src.transcription.errors import ExhaustionError, ValidationError
from src.transcription.gateway import TranscriptionGateway
from src.transcription.models import JobStatus, TranscriptionCompleted

logger = logging.getLogger(__name__)


def transcribe_job(
    store: FileStore,
    gateway: TranscriptionGateway,
    job_id: str,
    buffer: bytes,
    mime_type: str,
    file_name: str,
) -> JobStatus:
    """
    End-to-end transcription pipeline for a single job.

    1. Send the audio through the provider chain
    2. Mark the job ``completed`` with transcript and utterances, or ``failed``
    """
    logger.info("Starting transcription for job %s", job_id)
    try:
        result = gateway.transcribe(buffer, mime_type, file_name=file_name)
    except ValidationError as exc:
        logger.warning("Job %s rejected: %s", job_id, exc)
        result = None
    except ExhaustionError as exc:
        logger.error("Job %s exhausted all providers: %s", job_id, exc)
        result = None
    except Exception as exc:
        logger.error("Job %s failed: %s", job_id, exc, exc_info=True)
        result = None

    if isinstance(result, TranscriptionCompleted):
        store.update_status(
            job_id,
            JobStatus.COMPLETED,
            {
                "transcript": result.text,
                "utterances": result.utterances,
                "provider": result.provider,
                "model": result.model_used,
            },
        )
        logger.info("Job %s completed via %s (%s)", job_id, result.provider, result.model_used)
        return JobStatus.COMPLETED

    if result is not None:
        logger.error("Job %s failed: %s (%s)", job_id, result.reason, result.details)
    store.update_status(job_id, JobStatus.FAILED)
    return JobStatus.FAILED
