"""Microphone authorization gate."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from dictation.models import PermissionStatus

logger = logging.getLogger(__name__)


def probe_default_input(device=None, samplerate: int = 16000, channels: int = 1):
    """Raise if the input device cannot be opened with the given settings.

    Opens and starts a stream briefly; validating settings alone does not
    reach the OS microphone consent check.
    """
    import sounddevice as sd

    sd.query_devices(device, kind="input")
    sd.check_input_settings(device=device, channels=channels, dtype="int16", samplerate=samplerate)
    with sd.InputStream(device=device, channels=channels, dtype="int16", samplerate=samplerate):
        pass


class PermissionGate:
    """Tracks whether the microphone may be used.

    A granted answer is cached so the platform is consulted once. A denied
    answer is not: the next ``check_permission()`` probes again, which is how
    a user retries after fixing their settings.
    """

    def __init__(
        self,
        probe: Optional[Callable[[], None]] = None,
        device=None,
        samplerate: int = 16000,
        channels: int = 1,
    ):
        self._probe = probe or (lambda: probe_default_input(device, samplerate, channels))
        self._status: PermissionStatus | None = None

    @property
    def status(self) -> PermissionStatus | None:
        return self._status

    async def check_permission(self) -> PermissionStatus:
        if self._status is PermissionStatus.GRANTED:
            return self._status
        try:
            await asyncio.to_thread(self._probe)
        except Exception as e:
            logger.warning("Microphone unavailable: %s", e)
            self._status = PermissionStatus.DENIED
        else:
            logger.info("Microphone access granted")
            self._status = PermissionStatus.GRANTED
        return self._status

    def revoke(self):
        """Forget a cached grant, e.g. after the device disappeared mid-session."""
        self._status = None
