"""Cloudflare Workers AI REST client.

Two call shapes are supported:

- ``run``: a single non-streamed completion, returning the generated text.
- ``open_stream``: a streamed completion whose raw upstream response is handed
  back to the caller for passthrough.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Sequence
from typing import Any

import httpx

from src.models import ChatMessage

logger = logging.getLogger(__name__)


class InferenceError(Exception):
    """Raised when the inference service cannot produce a result."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class InferenceStream:
    """An open streaming response from the inference service.

    The underlying client and response are closed once the body is fully
    consumed, or on ``aclose``.
    """

    def __init__(self, response: httpx.Response, client: httpx.AsyncClient) -> None:
        self._response = response
        self._client = client

    @property
    def status_code(self) -> int:
        return self._response.status_code

    @property
    def headers(self) -> httpx.Headers:
        return self._response.headers

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._response.aiter_bytes():
                yield chunk
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        await self._response.aclose()
        await self._client.aclose()


class WorkersAIClient:
    """Thin async client for ``/accounts/{id}/ai/run/{model}``."""

    def __init__(
        self,
        account_id: str,
        api_token: str,
        base_url: str = "https://api.cloudflare.com/client/v4",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._account_id = account_id
        self._api_token = api_token
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    def _url(self, model: str) -> str:
        return f"{self._base_url}/accounts/{self._account_id}/ai/run/{model}"

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_token}",
            "Content-Type": "application/json",
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=self._timeout)

    @staticmethod
    def _body(
        messages: Sequence[ChatMessage], max_tokens: int | None, stream: bool,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "messages": [m.model_dump() for m in messages],
            "stream": stream,
        }
        if max_tokens is not None:
            body["max_tokens"] = max_tokens
        return body

    async def run(
        self,
        model: str,
        messages: Sequence[ChatMessage],
        max_tokens: int | None = None,
    ) -> str:
        """Run a non-streamed completion and return the generated text."""
        body = self._body(messages, max_tokens, stream=False)
        try:
            async with self._client() as client:
                resp = await client.post(
                    self._url(model), json=body, headers=self._headers(),
                )
        except httpx.HTTPError as exc:
            raise InferenceError(f"Inference request failed: {exc}") from exc

        if resp.status_code >= 400:
            raise InferenceError(
                f"Inference service returned HTTP {resp.status_code}",
                status_code=resp.status_code,
            )

        try:
            data = resp.json()
        except json.JSONDecodeError as exc:
            raise InferenceError("Inference service returned invalid JSON") from exc

        if not isinstance(data, dict) or data.get("success") is False:
            errors = data.get("errors") if isinstance(data, dict) else None
            raise InferenceError(f"Inference service reported failure: {errors}")

        result = data.get("result") or {}
        text = result.get("response") if isinstance(result, dict) else None
        if not isinstance(text, str) or not text.strip():
            raise InferenceError("Inference service returned an empty response")
        return text

    async def open_stream(
        self,
        model: str,
        messages: Sequence[ChatMessage],
        max_tokens: int | None = None,
    ) -> InferenceStream:
        """Start a streamed completion; the caller owns the returned stream."""
        body = self._body(messages, max_tokens, stream=True)
        client = self._client()
        try:
            req = client.build_request(
                "POST", self._url(model), json=body, headers=self._headers(),
            )
            resp = await client.send(req, stream=True)
        except httpx.HTTPError as exc:
            await client.aclose()
            raise InferenceError(f"Inference stream failed to open: {exc}") from exc

        if resp.status_code >= 400:
            logger.warning("Inference stream opened with HTTP %s", resp.status_code)
        return InferenceStream(resp, client)
