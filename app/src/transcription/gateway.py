"""
Transcription gateway.

Validates an upload, walks the provider chain in priority order and returns
the first non-empty transcript. Recoverable provider errors move on to the
next candidate; a hard failure (provider job error, poll timeout) ends the
chain. When every provider fails recoverably, or none is configured, the
exhaustion policy decides between a placeholder success and an
``ExhaustionError``.
"""

import logging
from typing import List, Optional, Sequence, Union

from configs.config import get_config
from src.transcription.errors import (
    HARD_PROVIDER_ERRORS,
    ExhaustionError,
    ProviderError,
    ProviderJobError,
    ValidationError,
)
from src.transcription.models import TranscriptionCompleted, TranscriptionFailed
from src.transcription.providers.base import SpeechProvider
from src.transcription.providers.chain import build_default_chain
from src.transcription.providers.huggingface import is_valid_api_key
from src.transcription.providers.placeholder import (
    PLACEHOLDER_MODEL,
    PLACEHOLDER_NOTE,
    PLACEHOLDER_PROVIDER,
    build_placeholder,
)

logger = logging.getLogger(__name__)
cfg = get_config()

POLICY_PLACEHOLDER = "placeholder"
POLICY_ERROR = "error"

TranscriptionResult = Union[TranscriptionCompleted, TranscriptionFailed]


def validate_upload(
    mime_type: Optional[str],
    size: int,
    allowed_mime_types=cfg.ALLOWED_MIME_TYPES,
    max_size: int = cfg.MAX_UPLOAD_SIZE,
) -> None:
    """Raise ``ValidationError`` for a disallowed type or an oversized file."""
    if mime_type not in allowed_mime_types:
        logger.warning("Rejected upload with disallowed type: %r", mime_type)
        raise ValidationError(
            "Invalid file type. Please upload MP3, WAV, M4A, MP4, WebM, OGG, FLAC, or AAC files."
        )
    if size > max_size:
        logger.warning("Rejected upload of %d bytes (limit %d)", size, max_size)
        raise ValidationError(
            f"File too large. Maximum size is {max_size // (1024 * 1024)}MB."
        )


def remediation(
    huggingface_api_key: Optional[str],
    assemblyai_api_key: Optional[str],
    google_api_key: Optional[str] = None,
):
    """Aggregate what is misconfigured and how to fix it."""
    errors: List[str] = []
    instructions: List[str] = []

    if not huggingface_api_key:
        errors.append("Hugging Face API key not configured")
        instructions.append("Get a Hugging Face API key from https://huggingface.co/settings/tokens")
    elif not is_valid_api_key(huggingface_api_key):
        errors.append("Invalid Hugging Face API key format")
        instructions.append(f'Hugging Face API keys start with "{cfg.HUGGINGFACE_KEY_PREFIX}"')

    if not assemblyai_api_key:
        errors.append("AssemblyAI API key not configured")
        instructions.append("Get an AssemblyAI API key from https://www.assemblyai.com/")

    if not google_api_key:
        instructions.append(
            "Optionally set GOOGLE_CLOUD_API_KEY with the Speech-to-Text API enabled in Google Cloud Console"
        )

    if not errors:
        errors.append("All transcription services failed")
        instructions.extend([
            "Check your API keys are valid",
            "Verify you have credits/quota available",
            "Try a different audio file",
        ])

    instructions.extend([
        "Set the API keys in the server environment",
        "Restart the server",
    ])
    return errors, instructions


class TranscriptionGateway:
    """Ordered, first-success-wins walk over the provider chain."""

    def __init__(
        self,
        providers: Sequence[SpeechProvider],
        exhaustion_policy: str = POLICY_PLACEHOLDER,
        huggingface_api_key: Optional[str] = None,
        assemblyai_api_key: Optional[str] = None,
        google_api_key: Optional[str] = None,
    ) -> None:
        if exhaustion_policy not in (POLICY_PLACEHOLDER, POLICY_ERROR):
            raise ValueError(f"Unknown exhaustion policy: {exhaustion_policy!r}")
        self.providers = list(providers)
        self.exhaustion_policy = exhaustion_policy
        self._huggingface_api_key = huggingface_api_key
        self._assemblyai_api_key = assemblyai_api_key
        self._google_api_key = google_api_key

    def transcribe(
        self,
        buffer: bytes,
        mime_type: str,
        file_name: Optional[str] = None,
        **options,
    ) -> TranscriptionResult:
        validate_upload(mime_type, len(buffer))
        logger.info("Processing file: %s Size: %d Type: %s", file_name, len(buffer), mime_type)

        for adapter in self.providers:
            logger.info("Trying %s model: %s", adapter.provider, adapter.model)
            try:
                result = adapter.recognize(buffer, mime_type, **options)
            except HARD_PROVIDER_ERRORS as exc:
                logger.error("%s transcription failed: %s", adapter.provider, exc)
                return TranscriptionFailed(
                    reason=f"{adapter.provider} transcription failed",
                    status="provider_failed" if isinstance(exc, ProviderJobError) else "timeout",
                    provider=adapter.provider,
                    details=str(exc),
                )
            except ProviderError as exc:
                logger.warning("Failed with %s model %s: %s", adapter.provider, adapter.model, exc)
                continue

            logger.info("Success with %s model: %s", adapter.provider, adapter.model)
            return TranscriptionCompleted.from_recognition(
                result, provider=adapter.provider, model_used=adapter.model
            )

        return self._exhausted(buffer, mime_type, file_name)

    def _exhausted(self, buffer: bytes, mime_type: str, file_name: Optional[str]) -> TranscriptionCompleted:
        if self.exhaustion_policy == POLICY_ERROR:
            errors, instructions = remediation(
                self._huggingface_api_key, self._assemblyai_api_key, self._google_api_key
            )
            logger.error("All transcription services failed: %s", "; ".join(errors))
            raise ExhaustionError(
                "Transcription failed. All available services are not configured or failed.",
                errors=errors,
                instructions=instructions,
            )

        logger.warning("No provider produced a transcript; returning placeholder for %s", file_name)
        result = build_placeholder(file_name, len(buffer), mime_type)
        return TranscriptionCompleted.from_recognition(
            result,
            provider=PLACEHOLDER_PROVIDER,
            model_used=PLACEHOLDER_MODEL,
            placeholder=True,
            note=PLACEHOLDER_NOTE,
        )


def build_gateway() -> TranscriptionGateway:
    """Gateway wired from environment configuration."""
    return TranscriptionGateway(
        build_default_chain(),
        exhaustion_policy=cfg.EXHAUSTION_POLICY,
        huggingface_api_key=cfg.HUGGINGFACE_API_KEY,
        assemblyai_api_key=cfg.ASSEMBLYAI_API_KEY,
        google_api_key=cfg.GOOGLE_CLOUD_API_KEY,
    )
