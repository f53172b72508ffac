"""
AssemblyAI adapter (secondary provider).

Protocol: upload the raw audio, submit a transcript job for the returned
URL, then poll the job every ``poll_interval`` seconds. ``completed`` is
success, ``error`` is a hard failure that ends the provider chain, and
running out of attempts raises ``TranscriptionTimeoutError``.
"""

import logging
import time
from typing import Any, Callable, Dict, Optional

import requests

from configs.config import get_config
from src.transcription.errors import (
    ProviderError,
    ProviderJobError,
    TranscriptionTimeoutError,
)
from src.transcription.models import RecognitionResult
from src.transcription.providers.base import SpeechProvider

logger = logging.getLogger(__name__)
cfg = get_config()


class AssemblyAIProvider(SpeechProvider):

    provider = "assemblyai"

    def __init__(
        self,
        api_key: str,
        api_url: str = cfg.ASSEMBLYAI_API_URL,
        poll_interval: float = cfg.ASSEMBLYAI_POLL_INTERVAL_SECONDS,
        max_attempts: int = cfg.ASSEMBLYAI_MAX_POLL_ATTEMPTS,
        timeout: int = cfg.ASSEMBLYAI_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        super().__init__("assemblyai")
        self._api_key = api_key
        self._api_url = api_url.rstrip("/")
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self._timeout = timeout
        self._session = session or requests.Session()
        self._sleep = sleep

    # ── HTTP helpers ─────────────────────────────────────────────────────

    def _request(self, method: str, path: str, step: str, **kwargs) -> Dict[str, Any]:
        headers = {"Authorization": self._api_key}
        headers.update(kwargs.pop("headers", {}))
        try:
            response = self._session.request(
                method,
                f"{self._api_url}{path}",
                headers=headers,
                timeout=self._timeout,
                **kwargs,
            )
        except requests.RequestException as exc:
            raise ProviderError(self.provider, f"{step} failed: {exc}") from exc
        if not response.ok:
            raise ProviderError(
                self.provider,
                f"{step} failed: {response.status_code} {response.reason}",
            )
        try:
            return response.json()
        except ValueError as exc:
            raise ProviderError(self.provider, f"{step} returned invalid JSON") from exc

    # ── Protocol ─────────────────────────────────────────────────────────

    def upload(self, buffer: bytes) -> str:
        data = self._request(
            "POST", "/upload", "Upload",
            headers={"Content-Type": "application/octet-stream"},
            data=buffer,
        )
        audio_url = data.get("upload_url")
        if not audio_url:
            raise ProviderError(self.provider, "Upload response had no upload_url")
        logger.info("File uploaded to AssemblyAI: %s", audio_url)
        return audio_url

    def submit(self, audio_url: str, language_code: str = "en") -> str:
        data = self._request(
            "POST", "/transcript", "Transcription request",
            json={
                "audio_url": audio_url,
                "language_code": language_code,
                "punctuate": True,
                "format_text": True,
                "speaker_labels": True,
            },
        )
        transcript_id = data.get("id")
        if not transcript_id:
            raise ProviderError(self.provider, "Transcription request returned no id")
        logger.info("AssemblyAI transcription started, ID: %s", transcript_id)
        return transcript_id

    def poll(self, transcript_id: str) -> Dict[str, Any]:
        """Block until the job completes, fails, or the attempt ceiling is hit."""
        for attempt in range(1, self.max_attempts + 1):
            self._sleep(self.poll_interval)
            data = self._request("GET", f"/transcript/{transcript_id}", "Status check")
            status = data.get("status")
            if status == "completed":
                logger.info("AssemblyAI transcription %s completed", transcript_id)
                return data
            if status == "error":
                raise ProviderJobError(
                    self.provider, f"Transcription failed: {data.get('error')}"
                )
            logger.debug(
                "Transcription status: %s (attempt %d/%d)",
                status, attempt, self.max_attempts,
            )
        raise TranscriptionTimeoutError(
            self.provider,
            f"Transcription {transcript_id} timed out after {self.max_attempts} attempts",
        )

    def _recognize(self, buffer: bytes, mime_type: str, **options) -> RecognitionResult:
        audio_url = self.upload(buffer)
        transcript_id = self.submit(audio_url, options.get("language_code", "en"))
        data = self.poll(transcript_id)
        words = data.get("words") or []
        return RecognitionResult(
            text=data.get("text") or "",
            language=data.get("language_code") or "en",
            duration_seconds=float(data.get("audio_duration") or 0),
            segments=words,
            words=words,
            utterances=[
                {
                    "speaker": u.get("speaker", ""),
                    "start": u.get("start", 0),
                    "end": u.get("end", 0),
                    "text": u.get("text", ""),
                    "confidence": u.get("confidence"),
                }
                for u in data.get("utterances") or []
            ],
            confidence=data.get("confidence") or 0,
        )
