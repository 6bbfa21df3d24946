"""Core data models for the dictation controller."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from dictation.errors import DictationError


class RecordingState(str, Enum):
    IDLE = "IDLE"
    AWAITING_PERMISSION = "AWAITING_PERMISSION"
    RECORDING = "RECORDING"
    PROCESSING = "PROCESSING"
    ERRORED = "ERRORED"


class PermissionStatus(str, Enum):
    GRANTED = "GRANTED"
    DENIED = "DENIED"


class PipelineStage(str, Enum):
    PERMISSION = "Permission"
    CAPTURE = "Capture"
    TRANSCRIPTION = "Transcription"
    POLISH = "Polish"


@dataclass(frozen=True)
class Credential:
    """Bearer token for the upstream API. The token never appears in repr()."""

    token: str = field(repr=False)

    def __bool__(self) -> bool:
        return bool(self.token.strip())

    def authorization_header(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token.strip()}"}


@dataclass
class AudioBlob:
    data: bytes
    mime_type: str
    filename: str = "recording.wav"

    def __len__(self) -> int:
        return len(self.data)


@dataclass
class RecordingSession:
    state: RecordingState = RecordingState.IDLE
    codec: str = ""
    chunks: list[bytes] = field(default_factory=list)


@dataclass(frozen=True)
class PipelineError:
    stage: PipelineStage
    message: str

    @classmethod
    def from_exception(cls, exc: DictationError) -> "PipelineError":
        return cls(stage=PipelineStage(exc.stage), message=str(exc))


@dataclass
class PipelineResult:
    """Outcome of one transcribe -> polish run.

    ``None`` means the stage produced nothing (not run, or failed); an empty
    string is a real, if unlikely, result.
    """

    raw: str | None = None
    polished: str | None = None
    error: PipelineError | None = None
    failure: DictationError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None
