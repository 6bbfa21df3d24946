"""Unit tests for TranscriptionClient request building and failure mapping."""

import unittest

import httpx

from dictation.app_config import AppConfig
from dictation.errors import EmptyAudio, MissingCredential, TranscriptionFailed
from dictation.models import AudioBlob, Credential
from dictation.transcription_client import TranscriptionClient


def _blob(data: bytes = b"RIFF\x00\x00\x00\x00WAVEfmt ") -> AudioBlob:
    return AudioBlob(data=data, mime_type="audio/wav", filename="recording.wav")


class TranscriptionClientTests(unittest.IsolatedAsyncioTestCase):
    def _client(self, handler, config: AppConfig | None = None) -> TranscriptionClient:
        self.requests: list[httpx.Request] = []

        def recording_handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        http = httpx.AsyncClient(transport=httpx.MockTransport(recording_handler))
        self.addAsyncCleanup(http.aclose)
        return TranscriptionClient(config=config or AppConfig(), http_client=http)

    async def test_transcribe_returns_text_and_sends_multipart_fields(self):
        client = self._client(lambda _r: httpx.Response(200, json={"text": " hello world "}))

        text = await client.transcribe(_blob(), Credential("sk-test"))

        self.assertEqual(text, "hello world")
        request = self.requests[0]
        self.assertEqual(str(request.url), "https://api.openai.com/v1/audio/transcriptions")
        self.assertEqual(request.headers["Authorization"], "Bearer sk-test")
        self.assertTrue(request.headers["Content-Type"].startswith("multipart/form-data"))
        body = request.content
        self.assertIn(b'name="model"', body)
        self.assertIn(b"whisper-1", body)
        self.assertIn(b'name="file"; filename="recording.wav"', body)
        self.assertNotIn(b'name="language"', body)

    async def test_language_hint_is_sent_when_configured(self):
        client = self._client(
            lambda _r: httpx.Response(200, json={"text": "hi"}),
            config=AppConfig(language="en"),
        )
        await client.transcribe(_blob(), "sk-test")
        self.assertIn(b'name="language"', self.requests[0].content)

    async def test_empty_text_is_a_valid_result(self):
        client = self._client(lambda _r: httpx.Response(200, json={"text": ""}))
        self.assertEqual(await client.transcribe(_blob(), "sk-test"), "")

    async def test_non_success_status_raises_with_status_code(self):
        client = self._client(lambda _r: httpx.Response(401, json={"error": {"message": "bad key"}}))

        with self.assertRaises(TranscriptionFailed) as ctx:
            await client.transcribe(_blob(), "sk-test")

        self.assertEqual(ctx.exception.status_code, 401)
        self.assertEqual(str(ctx.exception), "Transcription failed: 401")
        self.assertEqual(len(self.requests), 1)

    async def test_missing_credential_rejected_before_any_request(self):
        client = self._client(lambda _r: httpx.Response(200, json={"text": "x"}))

        for credential in (None, "", Credential("  ")):
            with self.assertRaises(MissingCredential):
                await client.transcribe(_blob(), credential)

        self.assertEqual(self.requests, [])

    async def test_empty_audio_rejected_before_any_request(self):
        client = self._client(lambda _r: httpx.Response(200, json={"text": "x"}))

        with self.assertRaises(EmptyAudio) as ctx:
            await client.transcribe(_blob(b""), "sk-test")

        self.assertIsInstance(ctx.exception, TranscriptionFailed)
        self.assertIsNone(ctx.exception.status_code)
        self.assertIn("empty audio", str(ctx.exception))
        self.assertEqual(self.requests, [])

    async def test_response_without_text_field_fails(self):
        client = self._client(lambda _r: httpx.Response(200, json={"segments": []}))
        with self.assertRaises(TranscriptionFailed) as ctx:
            await client.transcribe(_blob(), "sk-test")
        self.assertIsNone(ctx.exception.status_code)

    async def test_transport_error_maps_to_transcription_failed(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = self._client(handler)
        with self.assertRaises(TranscriptionFailed) as ctx:
            await client.transcribe(_blob(), "sk-test")
        self.assertIsNone(ctx.exception.status_code)

    async def test_proxy_mode_posts_file_only_and_credential_is_optional(self):
        config = AppConfig(api_mode="proxy", proxy_url="http://localhost:4000/")
        client = self._client(lambda _r: httpx.Response(200, json={"text": "via proxy"}), config=config)

        text = await client.transcribe(_blob(), None)

        self.assertEqual(text, "via proxy")
        request = self.requests[0]
        self.assertEqual(str(request.url), "http://localhost:4000/api/transcribe")
        self.assertNotIn("Authorization", request.headers)
        self.assertNotIn(b'name="model"', request.content)

    async def test_proxy_error_body_with_success_status_fails(self):
        config = AppConfig(api_mode="proxy")
        client = self._client(
            lambda _r: httpx.Response(200, json={"error": {"message": "Invalid file format."}}),
            config=config,
        )
        with self.assertRaises(TranscriptionFailed):
            await client.transcribe(_blob(), None)


if __name__ == "__main__":
    unittest.main()
