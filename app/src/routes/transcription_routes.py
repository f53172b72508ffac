"""
Transcription API routes.

Endpoints:
    POST   /api/transcribe          — transcribe an upload synchronously
    POST   /api/jobs                — upload audio & create a job record
    GET    /api/jobs                — list the caller's jobs
    GET    /api/jobs/{job_id}       — fetch one job
    DELETE /api/jobs/{job_id}       — delete a job
    DELETE /api/jobs                — clear every stored job
"""

import logging

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    File,
    HTTPException,
    Request,
    UploadFile,
)
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from commons import get_file_store, get_gateway, limiter
from configs.config import get_config
from security import safe_error_response, validate_job_id
from src.auth.tokens import get_current_user
from src.database.file_store import FileStore, UploadedAudio
from src.transcription.errors import ExhaustionError, ValidationError
from src.transcription.gateway import TranscriptionGateway, validate_upload
from src.transcription.models import TranscriptionFailed
from src.transcription.worker import transcribe_job

logger = logging.getLogger(__name__)

cfg = get_config()

router = APIRouter(prefix="/api", tags=["transcription"])

_CHUNK_SIZE = 1024 * 1024


async def read_upload(file: UploadFile, max_size: int = cfg.MAX_UPLOAD_SIZE) -> bytes:
    """Read an upload in 1 MB chunks, stopping as soon as it exceeds ``max_size``."""
    if file is None or not file.filename:
        raise ValidationError("No file provided")
    validate_upload(file.content_type, 0)

    buffer = bytearray()
    while True:
        chunk = await file.read(_CHUNK_SIZE)
        if not chunk:
            break
        buffer.extend(chunk)
        if len(buffer) > max_size:
            validate_upload(file.content_type, len(buffer), max_size=max_size)
    logger.debug("Read upload %s (%d bytes)", file.filename, len(buffer))
    return bytes(buffer)


def _failed_response(result: TranscriptionFailed) -> JSONResponse:
    status_code = 504 if result.status == "timeout" else 502
    return JSONResponse(status_code=status_code, content=result.to_response())


# ── Synchronous transcription ────────────────────────────────────────────


@router.post("/transcribe")
@limiter.limit(cfg.RATE_LIMIT_TRANSCRIBE)
async def transcribe_endpoint(
    request: Request,
    file: UploadFile = File(...),
    current_user: dict = Depends(get_current_user),
    gateway: TranscriptionGateway = Depends(get_gateway),
):
    """Run the provider chain for one upload and return the normalized result."""
    content = await read_upload(file)
    logger.info(
        "Transcription requested by %s for %s (%d bytes, %s)",
        current_user["id"], file.filename, len(content), file.content_type,
    )

    try:
        result = await run_in_threadpool(
            gateway.transcribe, content, file.content_type, file.filename
        )
    except (ValidationError, ExhaustionError):
        raise
    except Exception as exc:
        safe_error_response(exc, context="transcription")

    if isinstance(result, TranscriptionFailed):
        return _failed_response(result)
    return result.to_response()


# ── Upload & Create ──────────────────────────────────────────────────────


@router.post("/jobs", status_code=201)
@limiter.limit(cfg.RATE_LIMIT_UPLOAD)
async def create_job_endpoint(
    request: Request,
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    current_user: dict = Depends(get_current_user),
    store: FileStore = Depends(get_file_store),
    gateway: TranscriptionGateway = Depends(get_gateway),
) -> dict:
    """Save a ``processing`` record for the upload and queue its transcription."""
    content = await read_upload(file)

    upload = UploadedAudio(
        file_name=file.filename,
        size=len(content),
        mime_type=file.content_type,
        content=content,
    )
    job = await run_in_threadpool(store.save, upload, current_user["id"])
    logger.info("Creating new job %s for file: %s", job.id, file.filename)

    background_tasks.add_task(
        transcribe_job, store, gateway, job.id, content, file.content_type, file.filename
    )
    logger.info("Background task queued for job %s", job.id)
    return job.to_storage()


# ── List / Status ────────────────────────────────────────────────────────


@router.get("/jobs")
@limiter.limit(cfg.RATE_LIMIT_READ)
def list_jobs(
    request: Request,
    current_user: dict = Depends(get_current_user),
    store: FileStore = Depends(get_file_store),
) -> dict:
    """List the current user's jobs, newest first."""
    jobs = [job.to_storage() for job in store.list(current_user["id"])]
    logger.debug("Retrieved %d jobs for user %s", len(jobs), current_user["id"])
    return {"jobs": jobs, "total": len(jobs)}


@router.get("/jobs/{job_id}")
@limiter.limit(cfg.RATE_LIMIT_READ)
def get_job(
    request: Request,
    job_id: str,
    current_user: dict = Depends(get_current_user),
    store: FileStore = Depends(get_file_store),
) -> dict:
    """Return one job record."""
    validate_job_id(job_id)
    job = store.get(job_id, user_id=current_user["id"])
    if not job:
        logger.warning("Job %s not found for user %s", job_id, current_user["id"])
        raise HTTPException(status_code=404, detail="Job not found")
    return job.to_storage()


# ── Delete ───────────────────────────────────────────────────────────────


@router.delete("/jobs/{job_id}")
@limiter.limit(cfg.RATE_LIMIT_DELETE)
def delete_job_endpoint(
    request: Request,
    job_id: str,
    current_user: dict = Depends(get_current_user),
    store: FileStore = Depends(get_file_store),
) -> dict:
    """Delete a job by ID, ensuring ownership."""
    validate_job_id(job_id)
    logger.info("Deleting job %s for user %s", job_id, current_user["id"])
    if not store.get(job_id, user_id=current_user["id"]):
        raise HTTPException(status_code=404, detail="Job not found")
    store.delete(job_id)
    return {"message": f"Job {job_id} deleted successfully", "job_id": job_id}


@router.delete("/jobs")
@limiter.limit(cfg.RATE_LIMIT_DELETE)
def clear_jobs(
    request: Request,
    current_user: dict = Depends(get_current_user),
    store: FileStore = Depends(get_file_store),
) -> dict:
    """Remove every stored job record."""
    logger.info("Clearing all job records (requested by %s)", current_user["id"])
    store.clear_all()
    return {"message": "All files cleared"}
