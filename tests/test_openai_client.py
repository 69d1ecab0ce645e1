"""Tests for the hosted transcription client and its retry policy."""

import asyncio
from unittest.mock import AsyncMock

import aiohttp
import pytest
from aiohttp import web
from aiohttp import test_utils

from pipeline.errors import EmptyTranscriptionError, TranscriptionError
from transcription.openai_client import ConnectivityRetryPolicy, TranscriptionClient


@pytest.fixture
def audio_file(tmp_path):
    path = tmp_path / "audio.ogg"
    path.write_bytes(b"OggS" + b"\x00" * 60)
    return str(path)


async def start_server(handler):
    app = web.Application()
    app.router.add_post("/v1/audio/transcriptions", handler)
    server = test_utils.TestServer(app)
    await server.start_server()
    return server


class TestConnectivityRetryPolicy:
    @pytest.mark.asyncio
    async def test_linear_backoff_then_success(self):
        sleep = AsyncMock()
        policy = ConnectivityRetryPolicy(max_attempts=3, base_delay=1.5, sleep=sleep)
        op = AsyncMock(side_effect=[aiohttp.ClientConnectionError("reset"), asyncio.TimeoutError(), "ok"])

        assert await policy.run(op) == "ok"

        assert op.await_count == 3
        assert [c.args[0] for c in sleep.await_args_list] == [1.5, 3.0]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        sleep = AsyncMock()
        policy = ConnectivityRetryPolicy(max_attempts=2, base_delay=1.0, sleep=sleep)
        op = AsyncMock(side_effect=aiohttp.ClientConnectionError("dns"))

        with pytest.raises(aiohttp.ClientConnectionError):
            await policy.run(op)

        assert op.await_count == 2
        assert sleep.await_count == 1

    @pytest.mark.asyncio
    async def test_other_errors_are_not_retried(self):
        sleep = AsyncMock()
        policy = ConnectivityRetryPolicy(max_attempts=5, sleep=sleep)
        op = AsyncMock(side_effect=TranscriptionError("HTTP 400"))

        with pytest.raises(TranscriptionError):
            await policy.run(op)

        assert op.await_count == 1
        sleep.assert_not_awaited()

    def test_is_retryable(self):
        assert ConnectivityRetryPolicy.is_retryable(aiohttp.ServerDisconnectedError())
        assert ConnectivityRetryPolicy.is_retryable(asyncio.TimeoutError())
        assert not ConnectivityRetryPolicy.is_retryable(ValueError("bad"))


class TestTranscriptionClient:
    @pytest.mark.asyncio
    async def test_uploads_with_deterministic_settings(self, audio_file):
        received = {}

        async def handler(request):
            received["auth"] = request.headers.get("Authorization")
            form = await request.post()
            received["model"] = form["model"]
            received["temperature"] = form["temperature"]
            received["filename"] = form["file"].filename
            received["size"] = len(form["file"].file.read())
            return web.json_response({"text": "  Hello world.  "})

        server = await start_server(handler)
        try:
            client = TranscriptionClient(api_key="sk-test", base_url=str(server.make_url("/v1")))
            transcript = await client.transcribe(audio_file)
        finally:
            await server.close()

        assert transcript.text == "Hello world."
        assert received == {
            "auth": "Bearer sk-test",
            "model": "whisper-1",
            "temperature": "0",
            "filename": "audio.ogg",
            "size": 64,
        }

    @pytest.mark.asyncio
    async def test_empty_text(self, audio_file):
        async def handler(request):
            await request.post()
            return web.json_response({"text": "   "})

        server = await start_server(handler)
        try:
            client = TranscriptionClient(api_key="k", base_url=str(server.make_url("/v1")))
            with pytest.raises(EmptyTranscriptionError):
                await client.transcribe(audio_file)
        finally:
            await server.close()

    @pytest.mark.asyncio
    async def test_http_error_is_not_retried(self, audio_file):
        hits = []

        async def handler(request):
            hits.append(1)
            await request.post()
            return web.json_response({"error": {"message": "Invalid file format."}}, status=400)

        server = await start_server(handler)
        try:
            client = TranscriptionClient(
                api_key="k",
                base_url=str(server.make_url("/v1")),
                retry_policy=ConnectivityRetryPolicy(max_attempts=3, sleep=AsyncMock()),
            )
            with pytest.raises(TranscriptionError, match="HTTP 400") as excinfo:
                await client.transcribe(audio_file)
        finally:
            await server.close()

        assert len(hits) == 1
        assert "format" in str(excinfo.value)
        assert not isinstance(excinfo.value, EmptyTranscriptionError)

    @pytest.mark.asyncio
    async def test_connectivity_failures_exhaust_into_transcription_error(self, audio_file):
        client = TranscriptionClient(
            api_key="k",
            retry_policy=ConnectivityRetryPolicy(max_attempts=3, base_delay=0.5, sleep=AsyncMock()),
        )
        client._request = AsyncMock(side_effect=aiohttp.ClientConnectionError("connection reset"))

        with pytest.raises(TranscriptionError, match="Could not reach"):
            await client.transcribe(audio_file)

        assert client._request.await_count == 3

    @pytest.mark.asyncio
    async def test_single_attempt_without_policy(self, audio_file):
        client = TranscriptionClient(api_key="k")
        client._request = AsyncMock(side_effect=aiohttp.ClientConnectionError("dns"))

        with pytest.raises(TranscriptionError):
            await client.transcribe(audio_file)

        assert client._request.await_count == 1

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failure(self, audio_file):
        client = TranscriptionClient(
            api_key="k",
            retry_policy=ConnectivityRetryPolicy(max_attempts=3, sleep=AsyncMock()),
        )
        client._request = AsyncMock(side_effect=[asyncio.TimeoutError(), {"text": "recovered"}])

        transcript = await client.transcribe(audio_file)

        assert transcript.text == "recovered"

    @pytest.mark.asyncio
    async def test_html_body_is_reported_as_unusable(self, audio_file):
        async def handler(request):
            await request.post()
            return web.Response(text="<html>gateway</html>", content_type="text/html")

        server = await start_server(handler)
        try:
            client = TranscriptionClient(api_key="k", base_url=str(server.make_url("/v1")))
            with pytest.raises(TranscriptionError, match="unusable content") as excinfo:
                await client.transcribe(audio_file)
        finally:
            await server.close()

        assert "gateway" in str(excinfo.value)
        assert excinfo.value.stage == "transcribe"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [["not", "a", "dict"], {"text": ["nested"]}])
    async def test_unexpected_json_shape(self, audio_file, body):
        async def handler(request):
            await request.post()
            return web.json_response(body)

        server = await start_server(handler)
        try:
            client = TranscriptionClient(api_key="k", base_url=str(server.make_url("/v1")))
            with pytest.raises(TranscriptionError, match="unusable content"):
                await client.transcribe(audio_file)
        finally:
            await server.close()
