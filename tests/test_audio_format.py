"""Unit tests for audio format negotiation and sniffing helpers."""

import unittest

from dictation.audio_format import (
    FormatNegotiator,
    detect_audio_format,
    lookup_format,
    mime_type_for_bytes,
    select_format,
)
from dictation.errors import UnsupportedFormat


class DetectAudioFormatTests(unittest.TestCase):
    def test_detect_wav(self):
        payload = b"RIFF\x00\x00\x00\x00WAVEfmt "
        self.assertEqual(detect_audio_format(payload), "wav")

    def test_detect_flac(self):
        self.assertEqual(detect_audio_format(b"fLaC\x00\x00\x00"), "flac")

    def test_detect_ogg(self):
        self.assertEqual(detect_audio_format(b"OggS\x00\x02"), "ogg")

    def test_detect_webm(self):
        self.assertEqual(detect_audio_format(b"\x1a\x45\xdf\xa3\x9f\x42\x86\x81"), "webm")

    def test_detect_mp4(self):
        self.assertEqual(detect_audio_format(b"\x00\x00\x00\x20ftypM4A "), "mp4")

    def test_detect_mp3_frame_sync(self):
        self.assertEqual(detect_audio_format(bytes([0xFF, 0xFB, 0x90, 0x64])), "mp3")

    def test_unknown_or_empty(self):
        self.assertEqual(detect_audio_format(b""), "unknown")
        self.assertEqual(detect_audio_format(b"\x00\x11\x22\x33"), "unknown")

    def test_mime_type_for_bytes(self):
        self.assertEqual(mime_type_for_bytes(b"OggS\x00\x02"), "audio/ogg")
        self.assertEqual(mime_type_for_bytes(b"\x00\x11"), "application/octet-stream")


class SelectFormatTests(unittest.TestCase):
    def test_returns_first_supported_in_priority_order(self):
        candidates = ["audio/webm", "audio/mp4", "audio/ogg;codecs=opus", "audio/wav"]
        supported = {"audio/ogg;codecs=opus", "audio/wav"}
        self.assertEqual(select_format(candidates, supported.__contains__), "audio/ogg;codecs=opus")

    def test_priority_order_wins_over_predicate_order(self):
        candidates = ["audio/wav", "audio/flac"]
        self.assertEqual(select_format(candidates, lambda _m: True), "audio/wav")

    def test_stops_at_first_match(self):
        asked = []

        def is_supported(mime_type):
            asked.append(mime_type)
            return mime_type == "audio/mp4"

        select_format(["audio/webm", "audio/mp4", "audio/wav"], is_supported)
        self.assertEqual(asked, ["audio/webm", "audio/mp4"])

    def test_raises_when_nothing_supported(self):
        candidates = ["audio/webm", "audio/mp4"]
        with self.assertRaises(UnsupportedFormat):
            select_format(candidates, lambda _m: False)
        self.assertEqual(candidates, ["audio/webm", "audio/mp4"])

    def test_raises_on_empty_candidate_list(self):
        with self.assertRaises(UnsupportedFormat):
            select_format([], lambda _m: True)


class FormatNegotiatorTests(unittest.TestCase):
    def test_select_returns_container_details(self):
        negotiator = FormatNegotiator(["audio/webm", "audio/wav"], is_supported=lambda m: m == "audio/wav")
        fmt = negotiator.select()
        self.assertEqual(fmt.mime_type, "audio/wav")
        self.assertEqual(fmt.container, "WAV")
        self.assertEqual(fmt.filename, "recording.wav")

    def test_select_rejects_unknown_mime_accepted_by_predicate(self):
        negotiator = FormatNegotiator(["audio/x-unknown"], is_supported=lambda _m: True)
        with self.assertRaises(UnsupportedFormat):
            negotiator.select()

    def test_report_lists_every_candidate(self):
        negotiator = FormatNegotiator(["audio/webm", "audio/wav"], is_supported=lambda m: m == "audio/wav")
        self.assertEqual(negotiator.report(), [("audio/webm", False), ("audio/wav", True)])

    def test_lookup_normalizes_mime_parameters(self):
        self.assertEqual(lookup_format("Audio/Ogg; Codecs=Opus").subtype, "OPUS")


if __name__ == "__main__":
    unittest.main()
