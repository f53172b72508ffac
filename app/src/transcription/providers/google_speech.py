"""
Google Cloud Speech-to-Text adapter.

One synchronous ``speech:recognize`` call with the audio inlined as base64.
Word time offsets come back as duration strings (``"1.500s"``).
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

# m4a/mp4/aac have no native encoding; the API is asked to treat them as MP3
ENCODINGS = {
    "audio/wav": "LINEAR16",
    "audio/mpeg": "MP3",
    "audio/mp3": "MP3",
    "audio/m4a": "MP3",
    "audio/mp4": "MP3",
    "audio/aac": "MP3",
    "audio/webm": "WEBM_OPUS",
    "audio/ogg": "OGG_OPUS",
    "audio/flac": "FLAC",
}


def encoding_for(mime_type: str) -> str:
    return ENCODINGS.get(mime_type, "LINEAR16")


def _seconds(offset: Any) -> Optional[float]:
    if offset is None:
        return None
    if isinstance(offset, (int, float)):
        return float(offset)
    try:
        return float(str(offset).rstrip("s"))
    except ValueError:
        return None


class GoogleSpeechProvider(SpeechProvider):

    provider = "google-cloud"

    def __init__(
        self,
        api_key: str,
        model: str = cfg.GOOGLE_SPEECH_MODEL,
        api_url: str = cfg.GOOGLE_SPEECH_API_URL,
        language: str = cfg.GOOGLE_SPEECH_LANGUAGE,
        sample_rate: int = cfg.GOOGLE_SPEECH_SAMPLE_RATE,
        timeout: int = cfg.GOOGLE_SPEECH_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ) -> None:
        super().__init__(model)
        self._api_key = api_key
        self._url = api_url
        self._language = language
        self._sample_rate = sample_rate
        self._timeout = timeout
        self._session = session or requests.Session()

    def _recognize(self, buffer: bytes, mime_type: str, **options) -> RecognitionResult:
        body = {
            "config": {
                "encoding": encoding_for(mime_type),
                "sampleRateHertz": self._sample_rate,
                "languageCode": self._language,
                "enableAutomaticPunctuation": True,
                "enableWordTimeOffsets": True,
                "enableWordConfidence": True,
                "model": self.model,
            },
            "audio": {"content": base64.b64encode(buffer).decode("ascii")},
        }
        try:
            response = self._session.post(
                self._url,
                params={"key": self._api_key},
                json=body,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise ProviderError(self.provider, f"request failed: {exc}") from exc

        if not response.ok:
            raise ProviderError(
                self.provider,
                f"returned {response.status_code}: {_error_message(response)}",
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise ProviderError(self.provider, "returned invalid JSON") from exc

        results = (payload or {}).get("results") or []
        if not results:
            raise ProviderError(self.provider, "no transcription results received")

        alternatives = [(r.get("alternatives") or [{}])[0] for r in results]
        text = " ".join(alt.get("transcript") or "" for alt in alternatives).strip()
        words = [
            {
                "word": w.get("word"),
                "start": _seconds(w.get("startTime")),
                "end": _seconds(w.get("endTime")),
                "confidence": w.get("confidence"),
            }
            for alt in alternatives
            for w in alt.get("words") or []
        ]
        return RecognitionResult(
            text=text,
            language=self._language,
            segments=_segments(alternatives),
            words=words,
            confidence=alternatives[0].get("confidence"),
        )


def _segments(alternatives: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """One segment per result, bounded by its first and last word."""
    segments = []
    for index, alt in enumerate(alternatives):
        words = alt.get("words") or []
        start = _seconds(words[0].get("startTime")) if words else None
        end = _seconds(words[-1].get("endTime")) if words else None
        segments.append({
            "start": start if start is not None else float(index),
            "end": end if end is not None else float(index + 1),
            "text": (alt.get("transcript") or "").strip(),
        })
    return segments


def _error_message(response) -> str:
    try:
        return (response.json() or {}).get("error", {}).get("message") or response.reason
    except (ValueError, AttributeError):
        return response.text[:200]
