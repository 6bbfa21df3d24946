"""Audio container negotiation and lightweight format detection."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from dictation.errors import UnsupportedFormat

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AudioFormat:
    mime_type: str
    container: str | None
    subtype: str | None
    extension: str

    @property
    def filename(self) -> str:
        return f"recording.{self.extension}"


# MIME identifier -> libsndfile container/subtype. Containers libsndfile cannot
# write are listed with container=None so they negotiate as unsupported.
AUDIO_FORMATS = {
    "audio/webm": AudioFormat("audio/webm", None, None, "webm"),
    "audio/mp4": AudioFormat("audio/mp4", None, None, "mp4"),
    "audio/ogg;codecs=opus": AudioFormat("audio/ogg;codecs=opus", "OGG", "OPUS", "ogg"),
    "audio/ogg;codecs=vorbis": AudioFormat("audio/ogg;codecs=vorbis", "OGG", "VORBIS", "ogg"),
    "audio/ogg": AudioFormat("audio/ogg", "OGG", "VORBIS", "ogg"),
    "audio/flac": AudioFormat("audio/flac", "FLAC", "PCM_16", "flac"),
    "audio/wav": AudioFormat("audio/wav", "WAV", "PCM_16", "wav"),
    "audio/mpeg": AudioFormat("audio/mpeg", "MP3", "MPEG_LAYER_III", "mp3"),
}

_SNIFFED_MIME_TYPES = {
    "wav": "audio/wav",
    "flac": "audio/flac",
    "ogg": "audio/ogg",
    "mp3": "audio/mpeg",
    "webm": "audio/webm",
    "mp4": "audio/mp4",
}


def normalize_mime_type(mime_type: str) -> str:
    parts = [p.strip().lower() for p in str(mime_type or "").split(";") if p.strip()]
    return ";".join(parts)


def lookup_format(mime_type: str) -> AudioFormat | None:
    return AUDIO_FORMATS.get(normalize_mime_type(mime_type))


def soundfile_supports(mime_type: str) -> bool:
    """Return True when libsndfile on this host can write the given container."""
    fmt = lookup_format(mime_type)
    if fmt is None or fmt.container is None:
        return False
    try:
        import soundfile as sf
    except OSError as e:  # libsndfile missing
        logger.warning("soundfile unavailable, cannot encode %s: %s", mime_type, e)
        return False
    return bool(sf.check_format(fmt.container, fmt.subtype))


def select_format(candidates: Iterable[str], is_supported: Callable[[str], bool]) -> str:
    """Return the first candidate, in priority order, accepted by ``is_supported``."""
    tried = []
    for candidate in candidates:
        tried.append(candidate)
        if is_supported(candidate):
            logger.debug("Negotiated audio format %s", candidate)
            return candidate
    raise UnsupportedFormat(
        "No supported audio format found (tried: %s)." % (", ".join(tried) or "nothing")
    )


class FormatNegotiator:
    """Binds a configurable priority list to a host support predicate."""

    def __init__(
        self,
        candidates: Iterable[str],
        is_supported: Callable[[str], bool] = soundfile_supports,
    ):
        self.candidates = list(candidates)
        self.is_supported = is_supported

    def select(self) -> AudioFormat:
        mime_type = select_format(self.candidates, self.is_supported)
        fmt = lookup_format(mime_type)
        if fmt is None:
            # A custom predicate accepted a MIME type with no known container.
            raise UnsupportedFormat(f"Audio format '{mime_type}' has no known container.")
        return fmt

    def report(self) -> list[tuple[str, bool]]:
        return [(candidate, bool(self.is_supported(candidate))) for candidate in self.candidates]


def detect_audio_format(audio_bytes: bytes) -> str:
    """Return best-effort format label from container/file signatures."""
    if not audio_bytes:
        return "unknown"

    head = bytes(audio_bytes[:16])

    # RIFF/WAVE
    if len(head) >= 12 and head[:4] == b"RIFF" and head[8:12] == b"WAVE":
        return "wav"
    if head.startswith(b"fLaC"):
        return "flac"
    # OGG / Opus-in-Ogg / Vorbis-in-Ogg
    if head.startswith(b"OggS"):
        return "ogg"
    # EBML header (WebM / Matroska)
    if head.startswith(b"\x1a\x45\xdf\xa3"):
        return "webm"
    # ISO base media (MP4 / M4A)
    if len(head) >= 8 and head[4:8] == b"ftyp":
        return "mp4"
    # MP3 with ID3 tag
    if head.startswith(b"ID3"):
        return "mp3"
    # MP3 frame sync (common fallback)
    if len(head) >= 2 and head[0] == 0xFF and (head[1] & 0xE0) == 0xE0:
        return "mp3"

    return "unknown"


def mime_type_for_bytes(audio_bytes: bytes, default: str = "application/octet-stream") -> str:
    return _SNIFFED_MIME_TYPES.get(detect_audio_format(audio_bytes), default)
