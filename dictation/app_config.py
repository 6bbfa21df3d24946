"""Application configuration as an injectable dataclass."""

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from dictation.models import Credential

API_MODE_DIRECT = "direct"
API_MODE_PROXY = "proxy"

DEFAULT_TRANSCRIPTION_URL = "https://api.openai.com/v1/audio/transcriptions"
DEFAULT_CHAT_URL = "https://api.openai.com/v1/chat/completions"
DEFAULT_PROXY_URL = "http://localhost:4000"

# Most broadly supported container first.
DEFAULT_AUDIO_FORMATS = (
    "audio/webm",
    "audio/mp4",
    "audio/ogg;codecs=opus",
    "audio/flac",
    "audio/wav",
)

DEFAULT_POLISH_PROMPT = (
    "You are a helpful assistant that polishes transcribed speech. Clean up filler words, "
    "fix grammar, add proper punctuation, and format text into readable sentences and "
    "paragraphs while preserving the original meaning."
)


def _split_formats(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _optional_int(value: str):
    value = (value or "").strip()
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        return value


@dataclass
class AppConfig:
    """Application configuration loaded from environment variables."""

    # API
    api_key: str = ""
    api_mode: str = API_MODE_DIRECT
    proxy_url: str = DEFAULT_PROXY_URL
    transcription_url: str = DEFAULT_TRANSCRIPTION_URL
    chat_url: str = DEFAULT_CHAT_URL
    http_timeout: float = 120.0

    # STT
    transcription_model: str = "whisper-1"
    language: str = ""

    # Polish
    chat_model: str = "gpt-3.5-turbo"
    polish_temperature: float = 0.3
    polish_system_prompt: str = DEFAULT_POLISH_PROMPT

    # Capture
    audio_formats: list[str] = field(default_factory=lambda: list(DEFAULT_AUDIO_FORMATS))
    sample_rate: int = 16000
    channels: int = 1
    input_device: int | str | None = None

    # Logging
    log_level: str = "INFO"
    log_file: str = ""

    @staticmethod
    def from_env() -> "AppConfig":
        """Load config from .env file and environment variables."""
        load_dotenv()
        formats = _split_formats(os.getenv("DICTATION_AUDIO_FORMATS", ""))
        return AppConfig(
            api_key=os.getenv("OPENAI_API_KEY", "").strip(),
            api_mode=os.getenv("DICTATION_API_MODE", API_MODE_DIRECT).strip().lower() or API_MODE_DIRECT,
            proxy_url=os.getenv("DICTATION_PROXY_URL", DEFAULT_PROXY_URL).strip(),
            transcription_url=os.getenv("DICTATION_TRANSCRIPTION_URL", DEFAULT_TRANSCRIPTION_URL).strip(),
            chat_url=os.getenv("DICTATION_CHAT_URL", DEFAULT_CHAT_URL).strip(),
            http_timeout=float(os.getenv("DICTATION_HTTP_TIMEOUT", "120")),
            transcription_model=os.getenv("DICTATION_TRANSCRIPTION_MODEL", "whisper-1").strip(),
            language=os.getenv("DICTATION_LANGUAGE", "").strip(),
            chat_model=os.getenv("DICTATION_CHAT_MODEL", "gpt-3.5-turbo").strip(),
            polish_temperature=float(os.getenv("DICTATION_POLISH_TEMPERATURE", "0.3")),
            audio_formats=formats or list(DEFAULT_AUDIO_FORMATS),
            sample_rate=int(os.getenv("DICTATION_SAMPLE_RATE", "16000")),
            channels=int(os.getenv("DICTATION_CHANNELS", "1")),
            input_device=_optional_int(os.getenv("DICTATION_INPUT_DEVICE", "")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_file=os.getenv("LOG_FILE", "").strip(),
        )

    @property
    def uses_proxy(self) -> bool:
        return self.api_mode == API_MODE_PROXY

    @property
    def requires_credential(self) -> bool:
        # The proxy injects the key server-side.
        return not self.uses_proxy

    def effective_transcription_url(self) -> str:
        if self.uses_proxy:
            return self.proxy_url.rstrip("/") + "/api/transcribe"
        return self.transcription_url

    def effective_chat_url(self) -> str:
        if self.uses_proxy:
            return self.proxy_url.rstrip("/") + "/api/polish"
        return self.chat_url

    def credential(self, override: str | None = None) -> Credential | None:
        """Return the configured credential, or None when none is set."""
        token = (override if override is not None else self.api_key) or ""
        token = token.strip()
        return Credential(token) if token else None
