"""Error taxonomy for capture and pipeline failures.

Every error carries the pipeline stage it belongs to so the controller can
file it into its single error slot.
"""

from __future__ import annotations

STAGE_PERMISSION = "Permission"
STAGE_CAPTURE = "Capture"
STAGE_TRANSCRIPTION = "Transcription"
STAGE_POLISH = "Polish"


class DictationError(Exception):
    """Base class for all recoverable dictation errors."""

    stage = STAGE_CAPTURE
    default_message = "Dictation failed."

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)


class PermissionDenied(DictationError):
    stage = STAGE_PERMISSION
    default_message = "Microphone access was denied or no input device is available."


class UnsupportedFormat(DictationError):
    default_message = "No supported audio format found for this host."


class DeviceError(DictationError):
    default_message = "Audio device failed."


class MissingCredential(DictationError):
    stage = STAGE_TRANSCRIPTION
    default_message = "An API key is required."


class _HttpStageError(DictationError):
    label = "Request"

    def __init__(self, status_code: int | None = None, message: str | None = None):
        self.status_code = status_code
        if message is None:
            if status_code is not None:
                message = f"{self.label} failed: {status_code}"
            else:
                message = f"{self.label} failed."
        super().__init__(message)


class TranscriptionFailed(_HttpStageError):
    stage = STAGE_TRANSCRIPTION
    label = "Transcription"


class EmptyAudio(TranscriptionFailed):
    def __init__(self, message: str = "Transcription failed: empty audio, nothing was recorded."):
        super().__init__(None, message)


class PolishFailed(_HttpStageError):
    stage = STAGE_POLISH
    label = "Polishing"


class InvalidTransition(DictationError):
    """Raised when a controller event is not valid in the current state."""

    def __init__(self, event: str, state: str):
        self.event = event
        self.state = state
        super().__init__(f"Cannot {event} while {state}.")
