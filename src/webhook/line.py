"""LINE Messaging API webhook support.

Signature verification runs over the raw request body before any JSON
parsing. Replies go through the reply endpoint, addressed by the single-use
reply token of the inbound event.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging

import httpx

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-line-signature"

# LINE rejects text messages longer than this
MAX_TEXT_LENGTH = 5000


class LineApiError(Exception):
    """Raised when the LINE Messaging API rejects a request."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


def sign_body(body: bytes, channel_secret: str) -> str:
    """Return the base64 HMAC-SHA256 of ``body`` keyed with the channel secret."""
    digest = hmac.new(channel_secret.encode(), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


def verify_signature(body: bytes, signature: str | None, channel_secret: str) -> bool:
    """Return True iff ``signature`` is exactly the signature of ``body``.

    Constant-time comparison via hmac.compare_digest.
    """
    if not signature:
        return False
    expected = sign_body(body, channel_secret)
    return hmac.compare_digest(signature.encode(), expected.encode())


class LineRelay:
    """Verifies LINE webhooks and delivers text replies."""

    def __init__(
        self,
        channel_secret: str,
        channel_access_token: str,
        api_base_url: str = "https://api.line.me",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._channel_secret = channel_secret
        self._channel_access_token = channel_access_token
        self._api_base_url = api_base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    def verify_webhook(self, headers: dict[str, str], body: bytes) -> bool:
        """Verify the ``x-line-signature`` header against the raw body."""
        return verify_signature(body, headers.get(SIGNATURE_HEADER), self._channel_secret)

    async def reply_text(self, reply_token: str, text: str) -> None:
        """Send a single text message addressed to ``reply_token``."""
        url = f"{self._api_base_url}/v2/bot/message/reply"
        payload = {
            "replyToken": reply_token,
            "messages": [{"type": "text", "text": text[:MAX_TEXT_LENGTH]}],
        }
        headers = {"Authorization": f"Bearer {self._channel_access_token}"}

        try:
            async with httpx.AsyncClient(
                transport=self._transport, timeout=self._timeout, verify=True,
            ) as client:
                resp = await client.post(url, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            raise LineApiError(f"LINE reply request failed: {exc}") from exc

        if resp.status_code >= 400:
            raise LineApiError(
                f"LINE API returned HTTP {resp.status_code}: {resp.text[:200]}",
                status_code=resp.status_code,
            )
        logger.debug("Reply delivered for token %s", reply_token)
