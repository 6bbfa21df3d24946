import logging
from typing import TYPE_CHECKING, Optional

import httpx

from dictation.errors import EmptyAudio, MissingCredential, TranscriptionFailed
from dictation.http_client import get_shared_client
from dictation.models import AudioBlob, Credential

if TYPE_CHECKING:
    from dictation.app_config import AppConfig

logger = logging.getLogger(__name__)


def auth_headers(credential: "Credential | str | None", required: bool, error_cls=MissingCredential) -> dict:
    """Build the Authorization header, rejecting a missing credential when one is required."""
    if isinstance(credential, str):
        credential = Credential(credential)
    if credential:
        return credential.authorization_header()
    if required:
        raise error_cls()
    return {}


class TranscriptionClient:
    """Speech-to-text client for an OpenAI-compatible transcription endpoint or the local proxy."""

    def __init__(
        self,
        config: "AppConfig | None" = None,
        url: str | None = None,
        model: str | None = None,
        language: str | None = None,
        proxy: bool | None = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        if config is None:
            from dictation.app_config import AppConfig

            config = AppConfig()
        self.url = url or config.effective_transcription_url()
        self.model = model or config.transcription_model
        self.language = language if language is not None else config.language
        self.proxy = config.uses_proxy if proxy is None else bool(proxy)
        self.timeout = config.http_timeout
        self._http_client = http_client

    @staticmethod
    def _extract_text_from_payload(payload) -> str:
        if not isinstance(payload, dict):
            raise TranscriptionFailed(None, "Transcription response is not a JSON object.")
        if "error" in payload and "text" not in payload:
            raise TranscriptionFailed(None, f"Transcription failed: {payload['error']}")
        text_value = payload.get("text")
        if not isinstance(text_value, str):
            raise TranscriptionFailed(None, "Transcription response did not contain a 'text' field.")
        # An empty string is a legitimate (silent) transcription.
        return text_value.strip()

    def _form_fields(self) -> dict:
        if self.proxy:
            # The proxy picks the model and language itself.
            return {}
        data = {"model": self.model}
        if self.language:
            data["language"] = self.language
        return data

    async def transcribe(self, blob: AudioBlob, credential: "Credential | str | None") -> str:
        """Send the recording to the transcription endpoint and return the raw text."""
        headers = auth_headers(credential, required=not self.proxy)
        if not blob.data:
            raise EmptyAudio()

        client = self._http_client or get_shared_client(self.timeout)
        data = self._form_fields()
        files = {"file": (blob.filename, blob.data, blob.mime_type)}
        logger.debug(
            "STT request -> %s | model=%s language=%s bytes=%d",
            self.url,
            data.get("model", "<proxy>"),
            data.get("language", ""),
            len(blob.data),
        )
        try:
            resp = await client.post(self.url, headers=headers, data=data, files=files)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning("STT request failed on %s: HTTP %d", self.url, e.response.status_code)
            raise TranscriptionFailed(e.response.status_code) from e
        except httpx.HTTPError as e:
            logger.warning("STT request failed on %s: %s", self.url, e)
            raise TranscriptionFailed(None, f"Transcription failed: {e}") from e

        try:
            payload = resp.json()
        except ValueError as e:
            raise TranscriptionFailed(None, f"Transcription response was not valid JSON: {e}") from e
        return self._extract_text_from_payload(payload)
