"""Data models for webhook event dispatch."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class EventStatus(str, Enum):
    REPLIED = "replied"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class EventOutcome:
    """Result of handling one webhook event."""

    index: int
    status: EventStatus
    reply_token: str | None = None
    error: str | None = None


@dataclass
class DispatchReport:
    """Per-event outcomes for one webhook payload, in payload order."""

    outcomes: list[EventOutcome] = field(default_factory=list)

    def _count(self, status: EventStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def replied(self) -> int:
        return self._count(EventStatus.REPLIED)

    @property
    def skipped(self) -> int:
        return self._count(EventStatus.SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(EventStatus.FAILED)
