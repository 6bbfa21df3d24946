"""Recording state machine: permission -> capture -> transcribe -> polish.

Pure asyncio, no UI imports. Driven from the presentation layer through
``request_start()`` / ``stop()`` / ``acknowledge_error()`` and observed via
callbacks for state changes, results and errors.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Callable, Optional

from dictation.audio_format import FormatNegotiator
from dictation.capture import CaptureSession, SoundDeviceStream
from dictation.errors import (
    DeviceError,
    DictationError,
    InvalidTransition,
    MissingCredential,
    PermissionDenied,
    UnsupportedFormat,
)
from dictation.models import (
    AudioBlob,
    Credential,
    PermissionStatus,
    PipelineError,
    PipelineResult,
    PipelineStage,
    RecordingSession,
    RecordingState,
)
from dictation.permission import PermissionGate
from dictation.pipeline import PipelineOrchestrator
from dictation.polish_client import PolishClient
from dictation.transcription_client import TranscriptionClient

if TYPE_CHECKING:
    from dictation.app_config import AppConfig

logger = logging.getLogger(__name__)


class RecordingStateMachine:
    """Single owner of the recording session and its one error slot."""

    def __init__(
        self,
        config: "AppConfig",
        credential: Credential | None,
        orchestrator: Optional[PipelineOrchestrator] = None,
        permission_gate: Optional[PermissionGate] = None,
        format_negotiator: Optional[FormatNegotiator] = None,
        stream_factory: Optional[Callable[[], object]] = None,
        on_state_changed: Optional[Callable[[RecordingState], None]] = None,
        on_result: Optional[Callable[[PipelineResult], None]] = None,
        on_error: Optional[Callable[[PipelineError], None]] = None,
    ):
        self._config = config
        self._credential = credential
        self._orchestrator = orchestrator or PipelineOrchestrator(
            TranscriptionClient(config=config),
            PolishClient(config=config),
        )
        self._permission_gate = permission_gate or PermissionGate(
            device=config.input_device,
            samplerate=config.sample_rate,
            channels=config.channels,
        )
        self._negotiator = format_negotiator or FormatNegotiator(config.audio_formats)
        self._stream_factory = stream_factory or (
            lambda: SoundDeviceStream(config.sample_rate, config.channels, config.input_device)
        )
        self._on_state_changed = on_state_changed
        self._on_result = on_result
        self._on_error = on_error

        self._session = RecordingSession()
        self._capture: Optional[CaptureSession] = None
        self._pipeline_task: Optional[asyncio.Task] = None
        self._abort_task: Optional[asyncio.Task] = None

        self.error: PipelineError | None = None
        self.raw_text: str | None = None
        self.polished_text: str | None = None
        self.last_result: PipelineResult | None = None

    # -- Observed state --

    @property
    def state(self) -> RecordingState:
        return self._session.state

    @property
    def session(self) -> RecordingSession:
        return self._session

    @property
    def can_record(self) -> bool:
        """False disables the record control: no usable credential in direct mode."""
        if self._config.requires_credential and not self._credential:
            return False
        return True

    @property
    def pipeline_in_flight(self) -> bool:
        return self._pipeline_task is not None and not self._pipeline_task.done()

    @property
    def status_text(self) -> str:
        state = self._session.state
        if state == RecordingState.RECORDING:
            return "Recording..."
        if state == RecordingState.PROCESSING:
            return "Processing audio..."
        if state == RecordingState.AWAITING_PERMISSION:
            return "Waiting for microphone access..."
        if state == RecordingState.ERRORED and self.error:
            return f"{self.error.stage.value} error: {self.error.message}"
        if not self.can_record:
            return "Enter your OpenAI API key to start"
        if self._permission_gate.status == PermissionStatus.GRANTED:
            return "Ready to record"
        return "Microphone access will be requested when you start"

    # -- Events --

    async def request_start(self):
        """Idle -> AwaitingPermission -> Recording (or Errored)."""
        state = self._session.state
        if state != RecordingState.IDLE:
            raise InvalidTransition("start recording", state.value)
        if self.pipeline_in_flight:
            raise InvalidTransition("start recording", "a previous recording is still processing")
        if self._abort_task is not None and not self._abort_task.done():
            raise InvalidTransition("start recording", "the audio device is still being released")
        if not self.can_record:
            logger.info("Start ignored: no API key configured")
            raise MissingCredential("An API key is required before recording can start.")

        self._clear_error()
        self.raw_text = None
        self.polished_text = None
        self.last_result = None
        self._set_state(RecordingState.AWAITING_PERMISSION)

        status = await self._permission_gate.check_permission()
        if self._session.state != RecordingState.AWAITING_PERMISSION:
            return
        if status != PermissionStatus.GRANTED:
            self._fail(PermissionDenied())
            return

        try:
            audio_format = self._negotiator.select()
        except UnsupportedFormat as e:
            self._fail(e)
            return

        # Each capture owns a fresh list; releasing an older one never touches it.
        capture = CaptureSession(
            audio_format,
            chunks=[],
            sample_rate=self._config.sample_rate,
            channels=self._config.channels,
            on_device_lost=self._on_device_lost,
        )
        self._session.chunks = capture.chunks
        try:
            await capture.start(self._stream_factory())
        except DeviceError as e:
            self._fail(e)
            return
        if self._session.state != RecordingState.AWAITING_PERMISSION:
            # Failed while the device was opening.
            await self._release(capture)
            return

        self._session.codec = audio_format.mime_type
        self._capture = capture
        self._set_state(RecordingState.RECORDING)
        logger.info("Recording started (%s)", audio_format.mime_type)

    async def stop(self) -> Optional[asyncio.Task]:
        """Recording -> Processing. Returns the pipeline task without awaiting it.

        Any other state makes this a no-op, so a second stop never releases
        the stream twice or starts a second pipeline.
        """
        if self._session.state != RecordingState.RECORDING:
            logger.debug("Stop ignored in state %s", self._session.state.value)
            return None

        capture, self._capture = self._capture, None
        self._set_state(RecordingState.PROCESSING)
        try:
            blob = await capture.stop()
        except DictationError as e:
            self._session.chunks.clear()
            self._fail(e)
            return None
        if self._session.state != RecordingState.PROCESSING:
            return None

        self._pipeline_task = asyncio.create_task(self._run_pipeline(blob))
        return self._pipeline_task

    async def fail(self, exc: DictationError):
        """Fatal internal failure: release the device and move to Errored."""
        if self._session.state == RecordingState.IDLE:
            raise InvalidTransition("fail", RecordingState.IDLE.value)
        capture, self._capture = self._capture, None
        self._fail(exc)
        await self._release(capture)

    def acknowledge_error(self):
        """Errored -> Idle."""
        if self._session.state != RecordingState.ERRORED:
            raise InvalidTransition("acknowledge an error", self._session.state.value)
        self._clear_error()
        self._set_state(RecordingState.IDLE)

    async def wait_until_settled(self):
        """Wait for any in-flight pipeline or device-loss cleanup to finish."""
        for task in (self._abort_task, self._pipeline_task):
            if task is not None and not task.done():
                await task

    # -- Internals --

    async def _run_pipeline(self, blob: AudioBlob):
        result: PipelineResult | None = None
        try:
            result = await self._orchestrator.run(blob, self._credential)
            if self._session.state != RecordingState.PROCESSING:
                # The attempt already failed; its error slot belongs to that failure.
                logger.warning("Discarding pipeline result: state is %s", self._session.state.value)
                return
            self._apply_result(result)
        except Exception as e:
            logger.exception("Pipeline task crashed")
            got_raw = result is not None and result.raw is not None
            stage = PipelineStage.POLISH if got_raw else PipelineStage.TRANSCRIPTION
            if self._session.state == RecordingState.PROCESSING:
                self._record_error(PipelineError(stage, f"Processing failed: {e}"))
        finally:
            self._session.chunks.clear()
            if self._session.state == RecordingState.PROCESSING:
                self._set_state(RecordingState.IDLE)

    def _apply_result(self, result: PipelineResult):
        self.last_result = result
        self.raw_text = result.raw
        self.polished_text = result.polished
        if result.error is not None:
            self._record_error(result.error)
        if self._on_result:
            self._on_result(result)

    def _on_device_lost(self, reason: str):
        # Runs inside the capture pump; cleanup has to happen in its own task.
        if self._session.state != RecordingState.RECORDING:
            return
        self._permission_gate.revoke()
        capture, self._capture = self._capture, None
        self._fail(DeviceError(reason))
        self._abort_task = asyncio.create_task(self._release(capture))

    async def _release(self, capture: Optional[CaptureSession]):
        if capture is None:
            return
        try:
            await capture.release()
        except DeviceError as e:
            logger.error("Failed to release audio input cleanly: %s", e)

    def _fail(self, exc: DictationError):
        self._session.chunks.clear()
        self._session.codec = ""
        self._record_error(PipelineError.from_exception(exc))
        self._set_state(RecordingState.ERRORED)

    def _record_error(self, error: PipelineError):
        self.error = error
        logger.error("%s error: %s", error.stage.value, error.message)
        if self._on_error:
            self._on_error(error)

    def _clear_error(self):
        self.error = None

    def _set_state(self, new_state: RecordingState):
        old_state = self._session.state
        if old_state == new_state:
            return
        self._session.state = new_state
        logger.debug("Recording state %s -> %s", old_state.value, new_state.value)
        if self._on_state_changed:
            self._on_state_changed(new_state)
