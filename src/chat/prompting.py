"""System-prompt handling for chat message lists."""

from __future__ import annotations

from collections.abc import Sequence

from src.models import ChatMessage, ChatRole


def ensure_system_prompt(
    messages: Sequence[ChatMessage], system_prompt: str,
) -> list[ChatMessage]:
    """Return ``messages`` with the default system prompt prepended if none is present.

    An existing system message is left alone; the input is not mutated.
    """
    if any(m.role == ChatRole.SYSTEM for m in messages):
        return list(messages)
    return [ChatMessage(role=ChatRole.SYSTEM, content=system_prompt), *messages]


def single_turn(system_prompt: str, user_text: str) -> list[ChatMessage]:
    """Build a context-free exchange: the system prompt, then one user message."""
    return [
        ChatMessage(role=ChatRole.SYSTEM, content=system_prompt),
        ChatMessage(role=ChatRole.USER, content=user_text),
    ]
