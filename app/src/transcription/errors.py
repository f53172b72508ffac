"""
Exception hierarchy for the transcription pipeline and the file store.

Only the terminal outcome of the provider chain reaches the HTTP layer;
individual ``ProviderError``s are logged and swallowed by the gateway.
"""

from typing import List, Optional


class TranscriptionError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(TranscriptionError):
    """Upload rejected before any provider was contacted (type or size)."""


class ProviderError(TranscriptionError):
    """A single model/provider attempt failed; the next candidate is tried."""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(f"[{provider}] {message}")


class EmptyTranscriptionError(ProviderError):
    """Provider answered, but with empty or whitespace-only text."""


class ProviderJobError(ProviderError):
    """Asynchronous provider job reported ``error``. Ends the chain."""


class TranscriptionTimeoutError(ProviderError):
    """Poll ceiling reached before the provider job finished. Ends the chain."""


class ExhaustionError(TranscriptionError):
    """Every provider was tried and none produced a transcript."""

    def __init__(
        self,
        message: str,
        errors: Optional[List[str]] = None,
        instructions: Optional[List[str]] = None,
    ):
        self.errors = errors or []
        self.instructions = instructions or []
        super().__init__(message)


class StorageError(TranscriptionError):
    """A storage medium rejected a read or write."""


class StorageQuotaExceeded(StorageError):
    """The write would exceed the medium's capacity."""


class StorageFailure(TranscriptionError):
    """Both the primary and the fallback medium rejected a write."""


HARD_PROVIDER_ERRORS = (ProviderJobError, TranscriptionTimeoutError)
