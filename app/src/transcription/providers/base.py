"""
Provider adapter base class.

Every adapter translates the common ``recognize(buffer, mime_type)`` call
into one vendor's protocol and returns a ``RecognitionResult``.
"""

from abc import ABC, abstractmethod

from src.transcription.errors import EmptyTranscriptionError
from src.transcription.models import RecognitionResult


class SpeechProvider(ABC):
    """One entry of the provider chain: a vendor plus a specific model."""

    provider = "unknown"

    def __init__(self, model: str) -> None:
        self.model = model

    def recognize(self, buffer: bytes, mime_type: str, **options) -> RecognitionResult:
        """Run the vendor call; blank text counts as a recoverable failure."""
        result = self._recognize(buffer, mime_type, **options)
        if not result.text or not result.text.strip():
            raise EmptyTranscriptionError(self.provider, f"{self.model} returned no text")
        return result

    @abstractmethod
    def _recognize(self, buffer: bytes, mime_type: str, **options) -> RecognitionResult:
        ...

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(provider='{self.provider}', model='{self.model}')"
