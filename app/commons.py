"""
Shared utility functions and singletons used across multiple modules.
"""

import random
import string
import time

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from configs.config import get_config

cfg = get_config()

# ── Shared rate-limiter instance ─────────────────────────────────────────
# Created here (not in main.py) so that route modules can import it
# without a circular dependency.
limiter = Limiter(key_func=get_remote_address, enabled=cfg.RATE_LIMIT_ENABLED)


def generate_job_id() -> str:
    """Generate a unique job ID from the current time plus a random suffix (e.g., 'job_1718000000000_a1b2')."""
    chars = string.ascii_lowercase + string.digits
    random_part = "".join(random.choices(chars, k=4))
    return f"job_{int(time.time() * 1000)}_{random_part}"


# ── Request-scoped accessors for app-owned services ──────────────────────
# main.py constructs the file store and gateway once and hangs them on
# app.state; tests replace them there.


def get_file_store(request: Request):
    return request.app.state.file_store


def get_gateway(request: Request):
    return request.app.state.gateway
