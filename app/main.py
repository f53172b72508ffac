import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from commons import limiter
from configs.config import get_config
from logging_config import setup_logging
from security import (
    SecurityHeadersMiddleware,
    RequestIdMiddleware,
    UploadSizeLimitMiddleware,
)
from src.database.file_store import FileStore, RetentionPolicy
from src.database.storage_backends import MemoryStorageBackend, MongoStorageBackend
from src.routes import dashboard_routes, transcription_routes
from src.transcription.errors import ExhaustionError, StorageFailure, ValidationError
from src.transcription.gateway import build_gateway

cfg = get_config()

# ── Logging ──────────────────────────────────────────────────────────────────
setup_logging()
logger = logging.getLogger(__name__)

# ── App Factory ──────────────────────────────────────────────────────────────
app = FastAPI(
    title="Audio Transcriber API",
    docs_url="/docs" if cfg.DOCS_ENABLED else None,
    redoc_url="/redoc" if cfg.DOCS_ENABLED else None,
    openapi_url="/openapi.json" if cfg.DOCS_ENABLED else None,
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# ── Services ─────────────────────────────────────────────────────────────────
app.state.file_store = FileStore(
    MongoStorageBackend(),
    MemoryStorageBackend(),
    key=cfg.STORAGE_KEY,
    policy=RetentionPolicy(cfg.STORE_RETENTION_LIMIT, cfg.STORE_PROBE_BYTES),
)
app.state.gateway = build_gateway()
logger.info(
    "Transcription chain: %s",
    ", ".join(f"{p.provider}:{p.model}" for p in app.state.gateway.providers) or "none",
)

# ── Middleware Stack (order matters – outermost first) ───────────────────────

# 1. Request-ID tracking
app.add_middleware(RequestIdMiddleware)

# 2. Security response headers
app.add_middleware(SecurityHeadersMiddleware)

# 3. Oversized uploads are refused before the body is read
app.add_middleware(UploadSizeLimitMiddleware)

# 4. Trusted hosts
app.add_middleware(TrustedHostMiddleware, allowed_hosts=cfg.ALLOWED_HOSTS)

# 5. CORS – explicit methods & headers instead of wildcards
app.add_middleware(
    CORSMiddleware,
    allow_origins=cfg.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=cfg.CORS_METHODS,
    allow_headers=cfg.CORS_HEADERS,
)


# ── Error Handlers ───────────────────────────────────────────────────────────

@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    logger.warning("Rejected upload: %s", exc)
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(ExhaustionError)
async def exhaustion_error_handler(request: Request, exc: ExhaustionError):
    return JSONResponse(
        status_code=500,
        content={
            "error": str(exc),
            "status": "all_services_failed",
            "errors": exc.errors,
            "instructions": exc.instructions,
            "suggestion": "Configure at least one transcription service API key",
        },
    )


@app.exception_handler(StorageFailure)
async def storage_failure_handler(request: Request, exc: StorageFailure):
    logger.error("Storage failure: %s", exc)
    return JSONResponse(status_code=507, content={"error": str(exc)})


# ── Routers ──────────────────────────────────────────────────────────────────
app.include_router(transcription_routes.router)
app.include_router(dashboard_routes.router)


@app.get("/health")
async def health(request: Request):
    """Liveness probe; reports whether the store has fallen back to memory."""
    return {
        "status": "ok",
        "storage": "degraded" if request.app.state.file_store.degraded else "ok",
        "providers": len(request.app.state.gateway.providers),
    }


# ═══════════════════════════════════════════════════════════════════════════
#  ENTRY POINT
# ═══════════════════════════════════════════════════════════════════════════

if __name__ == "__main__":
    import uvicorn
    import argparse

    parser = argparse.ArgumentParser(description="Run Audio Transcriber")
    parser.add_argument("--host", default="0.0.0.0", help="Host to bind to (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to (default: 8000)")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload on code changes")
    parser.add_argument("--cert-file", default=None, help="Path to SSL certificate file (enables HTTPS)")
    parser.add_argument("--key-file", default=None, help="Path to SSL private key file (required with --cert-file)")

    args = parser.parse_args()

    if (args.cert_file and not args.key_file) or (args.key_file and not args.cert_file):
        logger.error("Both --cert-file and --key-file must be provided together")
        raise SystemExit(1)

    protocol = "HTTPS" if args.cert_file else "HTTP"
    logger.info("Starting %s server on %s:%d", protocol, args.host, args.port)

    uvicorn.run(
        "main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level="info",
        ssl_certfile=args.cert_file,
        ssl_keyfile=args.key_file,
        limit_concurrency=1000,
        limit_max_requests=10000,
    )
