"""Shared Pydantic data models for the LINE / Workers AI chat router."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# --- Enums ---


class ChatRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class AuditEventType(str, Enum):
    SIGNATURE_FAILURE = "signature_failure"
    EVENT_REPLIED = "event_replied"
    EVENT_FAILED = "event_failed"
    CHAT_FAILURE = "chat_failure"


class RiskLevel(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


# --- Chat Models ---


class ChatMessage(BaseModel):
    model_config = ConfigDict(frozen=True, use_enum_values=True)

    role: ChatRole
    content: str


class ChatRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    messages: list[ChatMessage] = Field(default_factory=list)


# --- LINE Webhook Models ---


class LineMessageContent(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    type: str
    id: str | None = None
    text: str | None = None


class LineEventSource(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    type: str | None = None
    user_id: str | None = Field(default=None, alias="userId")


class LineEvent(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    type: str
    reply_token: str | None = Field(default=None, alias="replyToken")
    message: LineMessageContent | None = None
    source: LineEventSource | None = None

    @property
    def is_text_message(self) -> bool:
        return (
            self.type == "message"
            and self.message is not None
            and self.message.type == "text"
        )


class LineWebhookPayload(BaseModel):
    """Webhook envelope. Events stay raw and are validated one at a time."""

    model_config = ConfigDict(extra="ignore")

    destination: str | None = None
    events: list[Any] = Field(default_factory=list)


# --- Audit Models ---


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class AuditEvent(BaseModel):
    timestamp: str = Field(default_factory=_now_iso)
    event_type: AuditEventType
    source_ip: str | None = None
    action: str
    result: str  # "success" | "failure" | "rejected"
    risk_level: RiskLevel
    details: dict[str, object] | None = None
