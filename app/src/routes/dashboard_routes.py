"""
Dashboard API routes.

Endpoints:
    GET /api/dashboard — the caller's jobs, status counts and storage health
    GET /api/services  — which transcription providers are configured
"""

import logging

from fastapi import APIRouter, Depends, Request

from commons import get_file_store, get_gateway, limiter
from configs.config import get_config
from src.auth.tokens import get_current_user
from src.database.file_store import FileStore
from src.transcription.gateway import TranscriptionGateway, remediation
from src.transcription.providers.huggingface import is_valid_api_key

logger = logging.getLogger(__name__)

cfg = get_config()

router = APIRouter(prefix="/api", tags=["dashboard"])


@router.get("/dashboard")
@limiter.limit(cfg.RATE_LIMIT_READ)
def dashboard(
    request: Request,
    current_user: dict = Depends(get_current_user),
    store: FileStore = Depends(get_file_store),
) -> dict:
    """Jobs plus counts; ``storage_warning`` is set when the capacity probe fails."""
    jobs = store.list(current_user["id"])
    storage_ok = store.check_capacity()
    if not storage_ok:
        logger.warning("Storage space is running low")
    return {
        "files": [job.to_storage() for job in jobs],
        "stats": store.stats(current_user["id"]),
        "storage_warning": not storage_ok,
        "degraded": store.degraded,
        "retention_limit": store.policy.limit,
    }


@router.get("/services")
@limiter.limit(cfg.RATE_LIMIT_READ)
def services(
    request: Request,
    current_user: dict = Depends(get_current_user),
    gateway: TranscriptionGateway = Depends(get_gateway),
) -> dict:
    """Describe the provider chain and how to enable what is missing."""
    errors, instructions = remediation(
        cfg.HUGGINGFACE_API_KEY, cfg.ASSEMBLYAI_API_KEY, cfg.GOOGLE_CLOUD_API_KEY
    )
    return {
        "providers": [
            {"provider": adapter.provider, "model": adapter.model}
            for adapter in gateway.providers
        ],
        "huggingface": {
            "configured": bool(cfg.HUGGINGFACE_API_KEY),
            "valid_key_format": is_valid_api_key(cfg.HUGGINGFACE_API_KEY),
        },
        "assemblyai": {"configured": bool(cfg.ASSEMBLYAI_API_KEY)},
        "google_cloud": {"configured": bool(cfg.GOOGLE_CLOUD_API_KEY)},
        "local_whisper": {"model": cfg.LOCAL_WHISPER_MODEL or None},
        "exhaustion_policy": gateway.exhaustion_policy,
        "issues": errors if not gateway.providers else [],
        "instructions": instructions,
    }
