"""
Data models for the transcription module.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class JobStatus(str, Enum):
    """Possible states of a transcription job."""

    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})


# ── Persisted job record ─────────────────────────────────────────────────


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Utterance(_CamelModel):
    """One diarized stretch of speech; offsets are milliseconds."""

    speaker: str = ""
    start: int = 0
    end: int = 0
    text: str = ""
    confidence: Optional[float] = None


class OriginalFile(_CamelModel):
    name: str
    size: int
    type: str = ""


class TranscriptionJob(_CamelModel):
    """Persisted record of one upload's transcription lifecycle."""

    id: str
    file_name: str
    file_size: str
    duration: str = "00:00"
    upload_date: str
    status: JobStatus = JobStatus.PROCESSING
    transcript: str = ""
    utterances: List[Utterance] = Field(default_factory=list)
    user_id: str
    completed_at: Optional[str] = None
    original_file: Optional[OriginalFile] = None
    provider: Optional[str] = None
    model: Optional[str] = None

    def to_storage(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# ── Provider / gateway results ───────────────────────────────────────────


@dataclass
class RecognitionResult:
    """Common shape every provider adapter returns."""

    text: str
    language: str = "en"
    duration_seconds: float = 0.0
    segments: List[Dict[str, Any]] = field(default_factory=list)
    words: List[Dict[str, Any]] = field(default_factory=list)
    utterances: List[Dict[str, Any]] = field(default_factory=list)
    confidence: Optional[float] = None


@dataclass
class TranscriptionCompleted:
    text: str
    language: str
    duration: float
    segments: List[Dict[str, Any]]
    words: List[Dict[str, Any]]
    utterances: List[Dict[str, Any]]
    model_used: str
    provider: str
    confidence: Optional[float] = None
    placeholder: bool = False
    note: Optional[str] = None

    @classmethod
    def from_recognition(
        cls,
        result: RecognitionResult,
        provider: str,
        model_used: str,
        placeholder: bool = False,
        note: Optional[str] = None,
    ) -> "TranscriptionCompleted":
        return cls(
            text=result.text,
            language=result.language,
            duration=result.duration_seconds,
            segments=result.segments,
            words=result.words,
            utterances=result.utterances,
            model_used=model_used,
            provider=provider,
            confidence=result.confidence,
            placeholder=placeholder,
            note=note,
        )

    def to_response(self) -> Dict[str, Any]:
        body = {
            "text": self.text,
            "language": self.language,
            "duration": self.duration,
            "segments": self.segments,
            "words": self.words,
            "utterances": self.utterances,
            "model": self.model_used,
            "service": self.provider,
        }
        if self.confidence is not None:
            body["confidence"] = self.confidence
        if self.placeholder:
            body["placeholder"] = True
            body["note"] = self.note
        return body


@dataclass
class TranscriptionFailed:
    reason: str
    status: str
    provider: Optional[str] = None
    details: Optional[str] = None

    def to_response(self) -> Dict[str, Any]:
        return {
            "error": self.reason,
            "status": self.status,
            "details": self.details,
        }
