"""Microphone capture: the device stream and the per-recording chunk buffer.

PortAudio invokes the stream callbacks on its own thread. Nothing there
touches session state directly; every buffer and the end-of-stream notice is
posted onto the event loop with ``call_soon_threadsafe`` and consumed in
order by the session's pump task.
"""

from __future__ import annotations

import asyncio
import io
import logging
from typing import Any, Callable, Optional

import numpy as np

from dictation.audio_format import AudioFormat
from dictation.errors import DeviceError, UnsupportedFormat
from dictation.models import AudioBlob

logger = logging.getLogger(__name__)

SAMPLE_RATE = 16000
CHANNELS = 1
DTYPE = "int16"

_DATA = "data"
_LOST = "lost"
_END = "end"


class SoundDeviceStream:
    """Raw PCM16 input stream on the default (or configured) microphone."""

    def __init__(self, sample_rate: int = SAMPLE_RATE, channels: int = CHANNELS, device=None):
        self.sample_rate = sample_rate
        self.channels = channels
        self.device = device
        self._stream: Any = None
        self._closing = False
        self._on_chunk: Optional[Callable[[bytes], None]] = None
        self._on_lost: Optional[Callable[[str], None]] = None

    @property
    def active(self) -> bool:
        return self._stream is not None

    def open(self, on_chunk: Callable[[bytes], None], on_lost: Callable[[str], None]):
        import sounddevice as sd

        self._on_chunk = on_chunk
        self._on_lost = on_lost
        self._closing = False
        self._stream = sd.InputStream(
            samplerate=self.sample_rate,
            channels=self.channels,
            dtype=DTYPE,
            device=self.device,
            callback=self._audio_callback,
            finished_callback=self._finished_callback,
        )
        self._stream.start()

    def close(self):
        if self._stream is None:
            return
        self._closing = True
        stream, self._stream = self._stream, None
        try:
            stream.stop()
        finally:
            stream.close()

    def _audio_callback(self, indata, frames, time_info, status):
        if status:
            logger.debug("Input stream status: %s", status)
        if self._on_chunk is not None:
            self._on_chunk(indata.copy().tobytes())

    def _finished_callback(self):
        if not self._closing and self._on_lost is not None:
            self._on_lost("Audio input stream ended unexpectedly.")


def encode_chunks(chunks: list[bytes], audio_format: AudioFormat, sample_rate: int, channels: int) -> bytes:
    """Concatenate PCM16 chunks in capture order and encode them into the container."""
    if not chunks:
        return b""
    if audio_format.container is None:
        raise UnsupportedFormat(f"Cannot encode {audio_format.mime_type} on this host.")
    import soundfile as sf

    pcm = np.frombuffer(b"".join(chunks), dtype=np.int16)
    usable = len(pcm) - (len(pcm) % channels)
    audio = pcm[:usable].reshape(-1, channels)
    buf = io.BytesIO()
    sf.write(buf, audio, sample_rate, format=audio_format.container, subtype=audio_format.subtype)
    return buf.getvalue()


class CaptureSession:
    """One recording: owns the open stream and appends buffers in arrival order."""

    def __init__(
        self,
        audio_format: AudioFormat,
        chunks: list[bytes] | None = None,
        sample_rate: int = SAMPLE_RATE,
        channels: int = CHANNELS,
        on_device_lost: Optional[Callable[[str], None]] = None,
    ):
        self.audio_format = audio_format
        self.chunks = chunks if chunks is not None else []
        self.sample_rate = sample_rate
        self.channels = channels
        self._on_device_lost = on_device_lost
        self._stream: Any = None
        self._events: asyncio.Queue | None = None
        self._pump_task: asyncio.Task | None = None
        self._released = False
        self._blob: AudioBlob | None = None

    @property
    def active(self) -> bool:
        return self._stream is not None and not self._released

    async def start(self, stream):
        if self._stream is not None:
            raise DeviceError("Capture session was already started.")
        loop = asyncio.get_running_loop()
        events: asyncio.Queue = asyncio.Queue()
        self._events = events
        self.chunks.clear()

        def post(kind: str, payload):
            try:
                loop.call_soon_threadsafe(events.put_nowait, (kind, payload))
            except RuntimeError:
                # Loop already closed; the session is gone.
                pass

        try:
            await asyncio.to_thread(
                stream.open,
                lambda buffer: post(_DATA, buffer),
                lambda reason: post(_LOST, reason),
            )
        except Exception as e:
            raise DeviceError(f"Could not open audio input: {e}") from e
        self._stream = stream
        self._pump_task = asyncio.create_task(self._pump())
        logger.info("Capture started (%s, %d Hz)", self.audio_format.mime_type, self.sample_rate)

    def on_data(self, buffer: bytes):
        if buffer:
            self.chunks.append(bytes(buffer))

    async def stop(self) -> AudioBlob:
        """Release the stream and return the finalized recording."""
        if self._blob is not None:
            return self._blob
        try:
            await self._close_stream()
        finally:
            await self._drain()
        try:
            data = await asyncio.to_thread(
                encode_chunks, list(self.chunks), self.audio_format, self.sample_rate, self.channels
            )
        except UnsupportedFormat:
            raise
        except Exception as e:
            raise DeviceError(f"Could not encode recording: {e}") from e
        self._blob = AudioBlob(data=data, mime_type=self.audio_format.mime_type, filename=self.audio_format.filename)
        logger.info("Capture stopped (%d chunks, %d bytes)", len(self.chunks), len(data))
        return self._blob

    async def release(self):
        """Close the stream and discard the recording. Safe to call more than once."""
        try:
            await self._close_stream()
        finally:
            await self._drain()
            self.chunks.clear()

    async def _close_stream(self):
        if self._stream is None or self._released:
            return
        self._released = True
        try:
            await asyncio.to_thread(self._stream.close)
        except Exception as e:
            raise DeviceError(f"Could not release audio input: {e}") from e

    async def _drain(self):
        if self._pump_task is None or self._events is None:
            return
        # Scheduled behind every buffer the stream posted before close() returned.
        asyncio.get_running_loop().call_soon(self._events.put_nowait, (_END, None))
        await self._pump_task
        self._pump_task = None

    async def _pump(self):
        while True:
            kind, payload = await self._events.get()
            if kind == _END:
                return
            if kind == _DATA:
                self.on_data(payload)
            elif kind == _LOST:
                logger.warning("Audio device lost: %s", payload)
                if self._on_device_lost:
                    self._on_device_lost(payload)
