"""Tests for the Workers AI client."""

from __future__ import annotations

import json

import httpx
import pytest

from src.inference.workers_ai import InferenceError, WorkersAIClient
from src.models import ChatMessage, ChatRole

MODEL = "@cf/meta/llama-2-7b-chat-int8"


def _client(handler) -> WorkersAIClient:  # type: ignore[no-untyped-def]
    return WorkersAIClient(
        account_id="acct",
        api_token="cf-token",
        base_url="https://ai.test/client/v4/",
        transport=httpx.MockTransport(handler),
    )


def _messages() -> list[ChatMessage]:
    return [
        ChatMessage(role=ChatRole.SYSTEM, content="be nice"),
        ChatMessage(role=ChatRole.USER, content="hello"),
    ]


class TestRun:
    @pytest.mark.asyncio
    async def test_returns_response_text(self) -> None:
        captured: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            return httpx.Response(
                200, json={"result": {"response": "Hi!"}, "success": True, "errors": []},
            )

        text = await _client(handler).run(MODEL, _messages(), max_tokens=256)

        assert text == "Hi!"
        request = captured[0]
        assert str(request.url) == f"https://ai.test/client/v4/accounts/acct/ai/run/{MODEL}"
        assert request.headers["authorization"] == "Bearer cf-token"
        assert json.loads(request.content) == {
            "messages": [
                {"role": "system", "content": "be nice"},
                {"role": "user", "content": "hello"},
            ],
            "stream": False,
            "max_tokens": 256,
        }

    @pytest.mark.asyncio
    async def test_omits_max_tokens_when_unset(self) -> None:
        bodies: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"result": {"response": "ok"}, "success": True})

        await _client(handler).run(MODEL, _messages())
        assert "max_tokens" not in bodies[0]

    @pytest.mark.asyncio
    async def test_http_error_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, text="unavailable")

        with pytest.raises(InferenceError) as exc_info:
            await _client(handler).run(MODEL, _messages())
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_unsuccessful_envelope_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, json={"success": False, "errors": [{"code": 5006, "message": "bad"}]},
            )

        with pytest.raises(InferenceError):
            await _client(handler).run(MODEL, _messages())

    @pytest.mark.asyncio
    async def test_empty_response_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"result": {"response": "  "}, "success": True})

        with pytest.raises(InferenceError):
            await _client(handler).run(MODEL, _messages())

    @pytest.mark.asyncio
    async def test_invalid_json_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>oops</html>")

        with pytest.raises(InferenceError):
            await _client(handler).run(MODEL, _messages())

    @pytest.mark.asyncio
    async def test_connection_error_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(InferenceError):
            await _client(handler).run(MODEL, _messages())


class TestOpenStream:
    @pytest.mark.asyncio
    async def test_streams_raw_body(self) -> None:
        sse = b'data: {"response":"Hi"}\n\ndata: [DONE]\n\n'
        bodies: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(
                200, content=sse, headers={"content-type": "text/event-stream"},
            )

        stream = await _client(handler).open_stream(MODEL, _messages(), max_tokens=1024)
        assert stream.status_code == 200
        assert stream.headers["content-type"] == "text/event-stream"
        chunks = [chunk async for chunk in stream.iter_bytes()]
        assert b"".join(chunks) == sse
        assert bodies[0]["stream"] is True
        assert bodies[0]["max_tokens"] == 1024

    @pytest.mark.asyncio
    async def test_upstream_error_status_passed_through(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429, json={"errors": ["rate limited"]})

        stream = await _client(handler).open_stream(MODEL, _messages())
        assert stream.status_code == 429
        await stream.aclose()

    @pytest.mark.asyncio
    async def test_connection_error_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        with pytest.raises(InferenceError):
            await _client(handler).open_stream(MODEL, _messages())
