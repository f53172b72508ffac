"""
Synthetic "demo" transcription used when no real provider succeeds.

The result is tagged ``provider="placeholder"`` so callers can always tell it
apart from genuine output.
"""

from datetime import datetime
from typing import Optional

from src.transcription.models import RecognitionResult

PLACEHOLDER_PROVIDER = "placeholder"
PLACEHOLDER_MODEL = "demo-fallback"
PLACEHOLDER_NOTE = (
    "This is a fallback transcription. Configure Hugging Face or AssemblyAI "
    "for actual audio content."
)

_TEMPLATE = """This is a sample transcription for your audio file.

No transcription provider produced a result, so this placeholder was generated instead.

To get real transcriptions, you can:
1. Set HUGGINGFACE_API_KEY (keys start with "hf_")
2. Set ASSEMBLYAI_API_KEY
3. Set LOCAL_WHISPER_MODEL to run faster-whisper on this server

File details:
- Name: {name}
- Size: {size_mb:.2f} MB
- Type: {mime_type}
- Processed at: {processed_at}"""


def build_placeholder(
    file_name: Optional[str],
    size: int,
    mime_type: str,
    processed_at: Optional[datetime] = None,
) -> RecognitionResult:
    processed_at = processed_at or datetime.now()
    text = _TEMPLATE.format(
        name=file_name or "unknown",
        size_mb=size / 1024 / 1024,
        mime_type=mime_type,
        processed_at=processed_at.strftime("%Y-%m-%d %H:%M:%S"),
    )
    return RecognitionResult(text=text, language="en")
