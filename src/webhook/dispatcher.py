"""LINE event dispatcher.

Each text-message event is answered independently: the message text goes to
the inference service as a single-turn exchange and the result is sent back
through the event's reply token. A failure in one event is recorded in the
report and never aborts its siblings.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from src.chat.prompting import single_turn
from src.inference.workers_ai import InferenceError
from src.models import AuditEvent, AuditEventType, LineEvent, RiskLevel
from src.webhook.line import LineApiError
from src.webhook.models import DispatchReport, EventOutcome, EventStatus

if TYPE_CHECKING:
    from src.audit.logger import AuditLogger
    from src.inference.workers_ai import WorkersAIClient
    from src.webhook.line import LineRelay

logger = logging.getLogger(__name__)


class EventDispatcher:
    """Dispatches authenticated LINE events with bounded concurrency."""

    def __init__(
        self,
        inference: WorkersAIClient,
        line: LineRelay,
        model: str,
        system_prompt: str,
        max_tokens: int | None = None,
        max_concurrency: int = 4,
        event_timeout: float = 25.0,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self._inference = inference
        self._line = line
        self._model = model
        self._system_prompt = system_prompt
        self._max_tokens = max_tokens
        self._max_concurrency = max_concurrency
        self._event_timeout = event_timeout
        self._audit = audit_logger

    async def dispatch(self, events: Sequence[LineEvent | Any]) -> DispatchReport:
        """Handle every event and return outcomes in payload order.

        Events may be raw webhook items; each is validated on its own so one
        malformed item only affects its own outcome.
        """
        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def guarded(index: int, event: LineEvent | Any) -> EventOutcome:
            async with semaphore:
                return await self._handle(index, event)

        outcomes = await asyncio.gather(
            *(guarded(i, e) for i, e in enumerate(events)),
        )
        report = DispatchReport(outcomes=list(outcomes))
        if report.failed:
            logger.warning(
                "Dispatched %d events: %d replied, %d skipped, %d failed",
                len(report.outcomes), report.replied, report.skipped, report.failed,
            )
        return report

    async def _handle(self, index: int, event: LineEvent | Any) -> EventOutcome:
        if not isinstance(event, LineEvent):
            try:
                event = LineEvent.model_validate(event)
            except ValidationError as exc:
                logger.info("Event %d skipped: not a valid LINE event", index)
                return EventOutcome(
                    index=index,
                    status=EventStatus.SKIPPED,
                    error=f"invalid event: {exc.error_count()} validation error(s)",
                )

        if not event.is_text_message:
            return EventOutcome(index=index, status=EventStatus.SKIPPED)

        reply_token = event.reply_token
        if not reply_token:
            return self._failed(index, None, "event has no reply token")

        try:
            await asyncio.wait_for(
                self._answer(reply_token, event.message.text or ""),  # type: ignore[union-attr]
                timeout=self._event_timeout,
            )
        except (InferenceError, LineApiError, TimeoutError) as exc:
            return self._failed(index, reply_token, str(exc) or type(exc).__name__)
        except Exception as exc:
            logger.exception("Unexpected error handling event %d", index)
            return self._failed(index, reply_token, f"{type(exc).__name__}: {exc}")

        self._log_outcome(AuditEventType.EVENT_REPLIED, reply_token, None)
        return EventOutcome(index=index, status=EventStatus.REPLIED, reply_token=reply_token)

    def _failed(self, index: int, reply_token: str | None, error: str) -> EventOutcome:
        logger.warning("Event %d (reply token %s) failed: %s", index, reply_token, error)
        self._log_outcome(AuditEventType.EVENT_FAILED, reply_token, error)
        return EventOutcome(
            index=index,
            status=EventStatus.FAILED,
            reply_token=reply_token,
            error=error,
        )

    async def _answer(self, reply_token: str, text: str) -> None:
        messages = single_turn(self._system_prompt, text)
        answer = await self._inference.run(
            self._model, messages, max_tokens=self._max_tokens,
        )
        await self._line.reply_text(reply_token, answer)

    def _log_outcome(
        self, event_type: AuditEventType, reply_token: str | None, error: str | None,
    ) -> None:
        if not self._audit:
            return
        failed = event_type == AuditEventType.EVENT_FAILED
        details: dict[str, object] = {"reply_token": reply_token}
        if error:
            details["error"] = error
        self._audit.log(AuditEvent(
            event_type=event_type,
            action="line_reply",
            result="failure" if failed else "success",
            risk_level=RiskLevel.MEDIUM if failed else RiskLevel.INFO,
            details=details,
        ))
