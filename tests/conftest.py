"""
pytest fixtures for the audio transcriber test suite.

Environment variables are pinned before any application module is imported,
because the configuration namespace is built once at import time.
"""

import os
import sys
import tempfile
from unittest.mock import MagicMock

import pytest

os.environ["ENVIRONMENT"] = "development"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["LOG_DIR"] = tempfile.mkdtemp(prefix="transcriber-logs-")
os.environ["HUGGINGFACE_API_KEY"] = ""
os.environ["ASSEMBLYAI_API_KEY"] = ""
os.environ["GOOGLE_CLOUD_API_KEY"] = ""
os.environ["LOCAL_WHISPER_MODEL"] = ""
os.environ["EXHAUSTION_POLICY"] = "placeholder"
os.environ["AUTH_SECRET"] = "test-secret"

APP_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "app")
if APP_DIR not in sys.path:
    sys.path.insert(0, APP_DIR)

from src.database.file_store import FileStore, RetentionPolicy  # noqa: E402
from src.database.storage_backends import MemoryStorageBackend  # noqa: E402
from src.transcription.errors import ProviderError  # noqa: E402
from src.transcription.models import RecognitionResult  # noqa: E402
from src.transcription.providers.base import SpeechProvider  # noqa: E402


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

def http_response(payload=None, ok=True, status_code=200, reason="OK", text=""):
    """A stand-in for ``requests.Response``."""
    response = MagicMock()
    response.ok = ok
    response.status_code = status_code
    response.reason = reason
    response.text = text
    response.json.return_value = payload
    return response


class FakeProvider(SpeechProvider):
    """Scripted adapter: returns ``text`` or raises ``error``, counting calls."""

    def __init__(self, provider="fake", model="fake-model", text="hello world", error=None, utterances=None):
        super().__init__(model)
        self.provider = provider
        self.text = text
        self.error = error
        self.utterances = utterances or []
        self.calls = 0

    def _recognize(self, buffer, mime_type, **options):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return RecognitionResult(text=self.text, utterances=self.utterances)


def failing_provider(model="broken", provider="huggingface"):
    return FakeProvider(provider=provider, model=model, error=ProviderError(provider, f"{model} is loading"))


class FailingBackend(MemoryStorageBackend):
    """Medium whose writes always raise ``error``."""

    name = "failing"

    def __init__(self, error):
        super().__init__()
        self.error = error
        self.set_calls = 0

    def set(self, key, value):
        self.set_calls += 1
        raise self.error


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def primary():
    return MemoryStorageBackend()


@pytest.fixture
def fallback():
    return MemoryStorageBackend()


@pytest.fixture
def store(primary, fallback):
    return FileStore(
        primary,
        fallback,
        policy=RetentionPolicy(limit=10, probe_bytes=1_000),
        duration_probe=lambda content, name: 75.0,
    )


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def app(store):
    """The FastAPI app with an in-memory store and an empty provider chain."""
    import main
    from src.transcription.gateway import TranscriptionGateway

    original_store = main.app.state.file_store
    original_gateway = main.app.state.gateway
    main.app.state.file_store = store
    main.app.state.gateway = TranscriptionGateway([])
    yield main.app
    main.app.state.file_store = original_store
    main.app.state.gateway = original_gateway


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers():
    from src.auth.tokens import create_access_token
    token = create_access_token({"sub": "user-1", "email": "user@example.com", "name": "Test User"})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def other_auth_headers():
    from src.auth.tokens import create_access_token
    token = create_access_token({"sub": "user-2"})
    return {"Authorization": f"Bearer {token}"}
