"""Transcribe -> polish pipeline with partial-failure handling.

A transcription failure stops the run: there is nothing to polish and no raw
text to show. A polish failure does not discard the raw transcription, which
stays in the result next to the polish-stage error.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from dictation.errors import DictationError, PolishFailed, TranscriptionFailed
from dictation.models import AudioBlob, Credential, PipelineError, PipelineResult

if TYPE_CHECKING:
    from dictation.polish_client import PolishClient
    from dictation.transcription_client import TranscriptionClient

logger = logging.getLogger(__name__)


class PipelineOrchestrator:
    def __init__(self, transcription_client: "TranscriptionClient", polish_client: "PolishClient"):
        self.transcription_client = transcription_client
        self.polish_client = polish_client

    async def run(self, blob: AudioBlob, credential: "Credential | str | None") -> PipelineResult:
        """Run both stages in order. Never raises; failures land in ``result.error``."""
        try:
            raw = await self.transcription_client.transcribe(blob, credential)
        except DictationError as e:
            logger.error("Transcription stage failed: %s", e)
            return self._failed(e)
        except Exception as e:
            logger.exception("Unexpected transcription error")
            return self._failed(TranscriptionFailed(None, f"Transcription failed: {e}"))

        logger.info("Transcription complete (%d chars)", len(raw))
        try:
            polished = await self.polish_client.polish(raw, credential)
        except DictationError as e:
            logger.error("Polish stage failed, keeping raw transcription: %s", e)
            return self._failed(e, raw=raw)
        except Exception as e:
            logger.exception("Unexpected polish error")
            return self._failed(PolishFailed(None, f"Polishing failed: {e}"), raw=raw)

        logger.info("Polish complete (%d chars)", len(polished))
        return PipelineResult(raw=raw, polished=polished)

    @staticmethod
    def _failed(exc: DictationError, raw: str | None = None) -> PipelineResult:
        return PipelineResult(raw=raw, error=PipelineError.from_exception(exc), failure=exc)
