"""Wrapper for the chat-completions call that polishes a raw transcription."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

import httpx

from dictation.errors import STAGE_POLISH, MissingCredential, PolishFailed
from dictation.http_client import get_shared_client
from dictation.models import Credential
from dictation.transcription_client import auth_headers

if TYPE_CHECKING:
    from dictation.app_config import AppConfig

logger = logging.getLogger(__name__)

USER_PREFIX = "Polish this raw transcription: "


class _MissingPolishCredential(MissingCredential):
    stage = STAGE_POLISH


class PolishClient:
    """Turns a raw transcription into readable prose with one chat-completions call."""

    def __init__(
        self,
        config: "AppConfig | None" = None,
        url: str | None = None,
        model: str | None = None,
        temperature: float | None = None,
        system_prompt: str | None = None,
        proxy: bool | None = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        if config is None:
            from dictation.app_config import AppConfig

            config = AppConfig()
        self.url = url or config.effective_chat_url()
        self.model = model or config.chat_model
        self.temperature = config.polish_temperature if temperature is None else float(temperature)
        self.system_prompt = system_prompt or config.polish_system_prompt
        self.proxy = config.uses_proxy if proxy is None else bool(proxy)
        self.timeout = config.http_timeout
        self._http_client = http_client

    def build_payload(self, raw_text: str) -> dict:
        if self.proxy:
            return {"text": raw_text}
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": self.system_prompt},
                {"role": "user", "content": USER_PREFIX + raw_text},
            ],
            "temperature": self.temperature,
        }

    async def polish(self, raw_text: str, credential: "Credential | str | None") -> str:
        headers = auth_headers(credential, required=not self.proxy, error_cls=_MissingPolishCredential)
        payload = self.build_payload(raw_text or "")
        client = self._http_client or get_shared_client(self.timeout)
        logger.debug(
            "Polish request -> %s | model=%s chars=%d",
            self.url,
            payload.get("model", "<proxy>"),
            len(raw_text or ""),
        )
        try:
            resp = await client.post(self.url, headers=headers, json=payload)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning("Polish request failed on %s: HTTP %d", self.url, e.response.status_code)
            raise PolishFailed(e.response.status_code) from e
        except httpx.HTTPError as e:
            logger.warning("Polish request failed on %s: %s", self.url, e)
            raise PolishFailed(None, f"Polishing failed: {e}") from e

        try:
            body = resp.json()
        except ValueError as e:
            raise PolishFailed(None, f"Polish response was not valid JSON: {e}") from e
        return self._extract_assistant_content(body)

    @staticmethod
    def _extract_assistant_content(payload) -> str:
        if not isinstance(payload, dict):
            raise PolishFailed(None, "Polish response payload is not a JSON object.")
        choices = payload.get("choices")
        if not isinstance(choices, list) or not choices:
            raise PolishFailed(None, "Polish response is missing a valid 'choices' list.")

        first = choices[0]
        if not isinstance(first, dict):
            raise PolishFailed(None, "Polish response choice is malformed.")
        message = first.get("message")
        if not isinstance(message, dict):
            raise PolishFailed(None, "Polish response choice is missing 'message'.")
        content = message.get("content")
        if content is None:
            raise PolishFailed(None, "Polish response did not include assistant content.")
        return PolishClient._coerce_content(content)

    @staticmethod
    def _coerce_content(content) -> str:
        if isinstance(content, str):
            return content.strip()
        if isinstance(content, list):
            parts = []
            for item in content:
                if isinstance(item, dict):
                    text = str(item.get("text", "")).strip()
                    if text:
                        parts.append(text)
            return "\n".join(parts).strip()
        return str(content).strip()
