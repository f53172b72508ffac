"""
Local faster-whisper adapter.

Runs transcription in-process on CPU. Models are loaded once per name and
cached for the life of the process.
"""

import logging
import os
import tempfile

from src.transcription.errors import ProviderError
from src.transcription.models import RecognitionResult
from src.transcription.providers.base import SpeechProvider

logger = logging.getLogger(__name__)

# ── Model cache ──────────────────────────────────────────────────────────
_model_cache: dict = {}


def get_model(model_name: str):
    """Return a cached WhisperModel, loading it on first access."""
    if model_name not in _model_cache:
        from faster_whisper import WhisperModel

        logger.info("Loading WhisperModel '%s'…", model_name)
        _model_cache[model_name] = WhisperModel(
            model_name,
            device="cpu",
            compute_type="int8",
            cpu_threads=4,
            num_workers=2,
        )
        logger.info("WhisperModel '%s' loaded successfully", model_name)
    return _model_cache[model_name]


class LocalWhisperProvider(SpeechProvider):

    provider = "local-whisper"

    def _recognize(self, buffer: bytes, mime_type: str, **options) -> RecognitionResult:
        with tempfile.NamedTemporaryFile(suffix=".audio", delete=False) as fh:
            fh.write(buffer)
            audio_path = fh.name

        try:
            model = get_model(self.model)
            segments, info = model.transcribe(
                audio_path,
                language=options.get("language"),
                beam_size=5,
                vad_filter=True,
                vad_parameters=dict(min_silence_duration_ms=500),
            )
            segments = [
                {"start": seg.start, "end": seg.end, "text": seg.text.strip()}
                for seg in segments
            ]
        except Exception as exc:
            raise ProviderError(self.provider, f"{self.model} failed: {exc}") from exc
        finally:
            try:
                os.unlink(audio_path)
            except OSError:
                pass

        logger.info("Local transcription complete. Detected language: %s", info.language)
        return RecognitionResult(
            text=" ".join(seg["text"] for seg in segments),
            language=info.language,
            duration_seconds=info.duration,
            segments=segments,
        )
