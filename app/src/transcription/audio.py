"""
Audio helpers: duration probing via ffprobe and human-readable formatting.
"""

import logging
import math
import os
import subprocess
import tempfile

logger = logging.getLogger(__name__)

_SIZE_UNITS = ("Bytes", "KB", "MB", "GB")


def get_audio_duration(audio_path: str) -> float:
    """Return audio duration in seconds via ffprobe, or 0 on failure."""
    try:
        result = subprocess.run(
            [
                "ffprobe", "-v", "error",
                "-show_entries", "format=duration",
                "-of", "default=noprint_wrappers=1:nokey=1",
                audio_path,
            ],
            capture_output=True,
            text=True,
            check=True,
        )
        duration = float(result.stdout.strip())
        logger.info("Audio duration: %.2f seconds", duration)
        return duration
    except Exception as exc:
        logger.warning("Could not get audio duration: %s", exc)
        return 0.0


def probe_duration(content: bytes, file_name: str = "") -> float:
    """Decode an in-memory upload and return its duration in seconds."""
    suffix = os.path.splitext(file_name)[1].lower()
    with tempfile.NamedTemporaryFile(suffix=suffix, delete=False) as fh:
        fh.write(content)
        temp_path = fh.name
    try:
        return get_audio_duration(temp_path)
    finally:
        try:
            os.unlink(temp_path)
        except OSError:
            pass


def format_duration(seconds: float) -> str:
    """Format seconds as ``mm:ss``; unknown or invalid durations become 00:00."""
    if not seconds or math.isnan(seconds) or seconds < 0:
        return "00:00"
    minutes = int(seconds // 60)
    secs = int(seconds % 60)
    return f"{minutes:02d}:{secs:02d}"


def format_file_size(size: int) -> str:
    """Human-readable size, e.g. ``1.5 MB``."""
    if size <= 0:
        return "0 Bytes"
    value = float(size)
    exponent = 0
    while value >= 1024 and exponent < len(_SIZE_UNITS) - 1:
        value /= 1024
        exponent += 1
    return f"{round(value, 2):g} {_SIZE_UNITS[exponent]}"
