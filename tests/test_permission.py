"""Tests for PermissionGate caching and failure reporting."""

import sys
import unittest
from unittest.mock import MagicMock, patch

from dictation.models import PermissionStatus
from dictation.permission import PermissionGate, probe_default_input


class _Probe:
    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    def __call__(self):
        self.calls += 1
        outcome = self.outcomes.pop(0) if self.outcomes else None
        if isinstance(outcome, Exception):
            raise outcome


class PermissionGateTests(unittest.IsolatedAsyncioTestCase):
    async def test_grant_is_cached(self):
        probe = _Probe(None)
        gate = PermissionGate(probe=probe)

        self.assertIsNone(gate.status)
        self.assertEqual(await gate.check_permission(), PermissionStatus.GRANTED)
        self.assertEqual(await gate.check_permission(), PermissionStatus.GRANTED)
        self.assertEqual(probe.calls, 1)

    async def test_denied_is_reported_not_raised_and_probed_again(self):
        probe = _Probe(OSError("PortAudio library not found"), None)
        gate = PermissionGate(probe=probe)

        with self.assertLogs("dictation.permission", level="WARNING"):
            self.assertEqual(await gate.check_permission(), PermissionStatus.DENIED)
        self.assertEqual(await gate.check_permission(), PermissionStatus.GRANTED)
        self.assertEqual(probe.calls, 2)

    async def test_revoke_forgets_grant(self):
        probe = _Probe(None, ValueError("No input device matching"))
        gate = PermissionGate(probe=probe)

        await gate.check_permission()
        gate.revoke()
        with self.assertLogs("dictation.permission", level="WARNING"):
            self.assertEqual(await gate.check_permission(), PermissionStatus.DENIED)


class ProbeDefaultInputTests(unittest.IsolatedAsyncioTestCase):
    def _fake_sounddevice(self):
        fake = MagicMock()
        patcher = patch.dict(sys.modules, {"sounddevice": fake})
        patcher.start()
        self.addCleanup(patcher.stop)
        return fake

    async def test_probe_opens_and_closes_an_input_stream(self):
        sd = self._fake_sounddevice()

        probe_default_input(device=3, samplerate=16000, channels=1)

        sd.InputStream.assert_called_once_with(device=3, channels=1, dtype="int16", samplerate=16000)
        sd.InputStream.return_value.__enter__.assert_called_once_with()
        sd.InputStream.return_value.__exit__.assert_called_once()

    async def test_stream_open_failure_is_reported_as_denied(self):
        sd = self._fake_sounddevice()
        sd.InputStream.side_effect = RuntimeError("Error opening InputStream")
        gate = PermissionGate(device=3)

        with self.assertLogs("dictation.permission", level="WARNING"):
            self.assertEqual(await gate.check_permission(), PermissionStatus.DENIED)


if __name__ == "__main__":
    unittest.main()
