"""Public dictation APIs for composition roots and external integrations."""

from dictation.app_config import AppConfig
from dictation.audio_format import FormatNegotiator, select_format
from dictation.capture import CaptureSession, SoundDeviceStream
from dictation.http_client import close_shared_client, get_shared_client
from dictation.models import Credential, PipelineResult, RecordingState
from dictation.permission import PermissionGate
from dictation.pipeline import PipelineOrchestrator
from dictation.polish_client import PolishClient
from dictation.recording_controller import RecordingStateMachine
from dictation.transcription_client import TranscriptionClient

__all__ = [
    "AppConfig",
    "CaptureSession",
    "Credential",
    "FormatNegotiator",
    "PermissionGate",
    "PipelineOrchestrator",
    "PipelineResult",
    "PolishClient",
    "RecordingState",
    "RecordingStateMachine",
    "SoundDeviceStream",
    "TranscriptionClient",
    "select_format",
    "get_shared_client",
    "close_shared_client",
]
