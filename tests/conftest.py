"""Shared test fixtures for the chat router."""

from __future__ import annotations

from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.audit.logger import AuditLogger
from src.config import Settings
from src.inference.workers_ai import WorkersAIClient
from src.webhook.line import LineRelay

CHANNEL_SECRET = "test-channel-secret"
ACCESS_TOKEN = "test-access-token"


@pytest.fixture
def mock_audit_logger() -> MagicMock:
    return MagicMock(spec=AuditLogger)


@pytest.fixture
def mock_inference() -> MagicMock:
    inference = MagicMock(spec=WorkersAIClient)
    inference.run = AsyncMock(return_value="assistant reply")
    inference.open_stream = AsyncMock()
    return inference


@pytest.fixture
def mock_line() -> MagicMock:
    """LineRelay with real signature checks and a mocked reply call."""
    line = MagicMock(wraps=LineRelay(CHANNEL_SECRET, ACCESS_TOKEN))
    line.reply_text = AsyncMock(return_value=None)
    return line


@pytest.fixture
def assets_dir(tmp_path: Path) -> Path:
    public = tmp_path / "public"
    public.mkdir()
    (public / "index.html").write_text("<html>chat</html>")
    return public


# --- Factory functions for test data ---


def make_settings(**kwargs: Any) -> Settings:
    """Factory for Settings with sensible defaults."""
    defaults: dict[str, Any] = {
        "line_channel_secret": CHANNEL_SECRET,
        "line_channel_access_token": ACCESS_TOKEN,
        "cloudflare_account_id": "acct-123",
        "cloudflare_api_token": "cf-token",
        "assets_dir": "/nonexistent/public",
    }
    defaults.update(kwargs)
    return Settings(**defaults)


def make_text_event(
    text: str = "hello",
    reply_token: str = "tok1",
    user_id: str = "U123",
) -> dict[str, Any]:
    """A LINE text-message event as it appears in a webhook body."""
    return {
        "type": "message",
        "mode": "active",
        "timestamp": 1700000000000,
        "webhookEventId": f"evt-{reply_token}",
        "replyToken": reply_token,
        "source": {"type": "user", "userId": user_id},
        "message": {"id": "m1", "type": "text", "text": text},
    }


def make_sticker_event(reply_token: str = "tok-sticker") -> dict[str, Any]:
    return {
        "type": "message",
        "replyToken": reply_token,
        "source": {"type": "user", "userId": "U123"},
        "message": {"id": "m2", "type": "sticker", "packageId": "1", "stickerId": "1"},
    }


def make_follow_event(reply_token: str = "tok-follow") -> dict[str, Any]:
    return {
        "type": "follow",
        "replyToken": reply_token,
        "source": {"type": "user", "userId": "U123"},
    }
