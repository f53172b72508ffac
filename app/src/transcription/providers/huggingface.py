"""
Hugging Face Inference API adapter (primary provider).

Whisper models are asked for chunk timestamps, which requires a JSON body
with base64 audio; wav2vec2 models take the raw bytes.
"""

import base64
import logging
from typing import Any, Dict, List, Optional

import requests

from configs.config import get_config
from src.transcription.errors import ProviderError
from src.transcription.models import RecognitionResult
from src.transcription.providers.base import SpeechProvider

logger = logging.getLogger(__name__)
cfg = get_config()


def is_valid_api_key(api_key: Optional[str]) -> bool:
    return bool(api_key) and api_key.startswith(cfg.HUGGINGFACE_KEY_PREFIX)


class HuggingFaceProvider(SpeechProvider):

    provider = "huggingface"

    def __init__(
        self,
        api_key: str,
        model: str,
        api_url: str = cfg.HUGGINGFACE_API_URL,
        timeout: int = cfg.HUGGINGFACE_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ) -> None:
        super().__init__(model)
        self._api_key = api_key
        self._url = f"{api_url.rstrip('/')}/{model}"
        self._timeout = timeout
        self._session = session or requests.Session()

    @property
    def wants_timestamps(self) -> bool:
        return "whisper" in self.model

    def _recognize(self, buffer: bytes, mime_type: str, **options) -> RecognitionResult:
        headers = {"Authorization": f"Bearer {self._api_key}"}
        try:
            if self.wants_timestamps:
                response = self._session.post(
                    self._url,
                    headers=headers,
                    json={
                        "inputs": base64.b64encode(buffer).decode("ascii"),
                        "parameters": {"return_timestamps": True},
                    },
                    timeout=self._timeout,
                )
            else:
                headers["Content-Type"] = mime_type
                response = self._session.post(
                    self._url, headers=headers, data=buffer, timeout=self._timeout
                )
        except requests.RequestException as exc:
            raise ProviderError(self.provider, f"{self.model} request failed: {exc}") from exc

        if not response.ok:
            raise ProviderError(
                self.provider,
                f"{self.model} returned {response.status_code}: {response.text[:200]}",
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise ProviderError(self.provider, f"{self.model} returned invalid JSON") from exc
        if not isinstance(payload, dict):
            raise ProviderError(self.provider, f"{self.model} returned unexpected payload")

        return RecognitionResult(
            text=payload.get("text") or "",
            language=payload.get("language") or "en",
            duration_seconds=float(payload.get("duration") or 0),
            segments=_normalize_chunks(payload.get("chunks") or []),
            words=payload.get("words") or [],
        )


def _normalize_chunks(chunks: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """``{"timestamp": [start, end], "text": ...}`` -> ``{"start", "end", "text"}``."""
    segments = []
    for chunk in chunks:
        start, end = (list(chunk.get("timestamp") or []) + [None, None])[:2]
        segments.append({
            "start": start,
            "end": end,
            "text": (chunk.get("text") or "").strip(),
        })
    return segments
