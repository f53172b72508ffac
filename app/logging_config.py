"""
Centralized logging configuration.

Sets up:
- Console handler (``LOG_LEVEL``, INFO by default)
- Rotating file handler for app.log (DEBUG level)
- Rotating file handler for errors.log (ERROR level)

Every record carries the ``X-Request-ID`` of the request that produced it,
or ``-`` outside a request (startup, background work scheduled elsewhere).
"""

import contextvars
import logging
import logging.config
import os

from configs.config import get_config

cfg = get_config()

request_id_var: contextvars.ContextVar = contextvars.ContextVar("request_id", default="-")

# Third-party loggers that are chatty at DEBUG
_QUIET_LOGGERS = ("pymongo", "urllib3", "multipart", "python_multipart", "faster_whisper")


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()
        return True


def _rotating(filename: str, level: str) -> dict:
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "level": level,
        "formatter": "default",
        "filters": ["request_id"],
        "filename": os.path.join(cfg.LOG_DIR, filename),
        "maxBytes": cfg.LOG_MAX_BYTES,
        "backupCount": cfg.LOG_BACKUP_COUNT,
        "encoding": "utf8",
    }


def setup_logging() -> None:
    """Configure logging once at application startup."""
    os.makedirs(cfg.LOG_DIR, exist_ok=True)

    logging_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "request_id": {"()": RequestIdFilter},
        },
        "formatters": {
            "default": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": cfg.LOG_LEVEL,
                "formatter": "default",
                "filters": ["request_id"],
            },
            "app_log_handler": _rotating(cfg.LOG_FILE_APP, "DEBUG"),
            "error_log_handler": _rotating(cfg.LOG_FILE_ERRORS, "ERROR"),
        },
        "loggers": {
            name: {"level": "WARNING"} for name in _QUIET_LOGGERS
        },
        "root": {
            "level": "DEBUG",
            "handlers": ["console", "app_log_handler", "error_log_handler"],
        },
    }

    logging.config.dictConfig(logging_config)
    logging.getLogger(__name__).info(
        "Logging configured (console=%s, dir=%s)", cfg.LOG_LEVEL, cfg.LOG_DIR
    )
