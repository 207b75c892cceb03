"""FastAPI application: chat streaming endpoint, LINE webhook, static frontend."""

from __future__ import annotations

import logging
import os

import httpx
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.staticfiles import StaticFiles

from src.audit.logger import AuditLogger
from src.chat.prompting import ensure_system_prompt
from src.config import Settings
from src.inference.workers_ai import InferenceError, WorkersAIClient
from src.models import (
    AuditEvent,
    AuditEventType,
    ChatRequest,
    LineWebhookPayload,
    RiskLevel,
)
from src.webhook.dispatcher import EventDispatcher
from src.webhook.line import LineRelay

logger = logging.getLogger(__name__)

_OTHER_METHODS = ["GET", "HEAD", "PUT", "DELETE", "PATCH", "OPTIONS"]
_ALL_METHODS = ["POST", *_OTHER_METHODS]

_STATUS_TEXT = {404: "Not found", 405: "Method not allowed"}


def create_app_from_env() -> FastAPI:
    """Factory for uvicorn --factory: reads config from environment variables."""
    settings = Settings.from_env()
    audit_logger = None
    if settings.audit_log_path:
        audit_logger = AuditLogger(
            log_path=settings.audit_log_path,
            max_bytes=settings.audit_log_max_bytes,
            backup_count=settings.audit_log_backup_count,
        )
    return create_app(settings, audit_logger=audit_logger)


def create_app(
    settings: Settings,
    inference: WorkersAIClient | None = None,
    line: LineRelay | None = None,
    audit_logger: AuditLogger | None = None,
) -> FastAPI:
    """Create the router app. Collaborators default to real HTTP clients."""
    if inference is None:
        inference = WorkersAIClient(
            account_id=settings.cloudflare_account_id,
            api_token=settings.cloudflare_api_token,
            base_url=settings.workers_ai_base_url,
            timeout=settings.inference_timeout_seconds,
        )
    if line is None:
        line = LineRelay(
            channel_secret=settings.line_channel_secret,
            channel_access_token=settings.line_channel_access_token,
            api_base_url=settings.line_api_base_url,
            timeout=settings.line_api_timeout_seconds,
        )
    dispatcher = EventDispatcher(
        inference=inference,
        line=line,
        model=settings.webhook_model,
        system_prompt=settings.system_prompt,
        max_tokens=settings.max_tokens,
        max_concurrency=settings.dispatch_max_concurrency,
        event_timeout=settings.event_timeout_seconds,
        audit_logger=audit_logger,
    )

    app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> Response:
        text = _STATUS_TEXT.get(exc.status_code, str(exc.detail))
        return PlainTextResponse(text, status_code=exc.status_code, headers=exc.headers)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/api/chat")
    async def chat(request: Request) -> Response:
        try:
            chat_request = ChatRequest.model_validate_json(await request.body())
        except ValidationError:
            return JSONResponse({"error": "Invalid request body"}, status_code=400)

        messages = ensure_system_prompt(chat_request.messages, settings.system_prompt)
        try:
            stream = await inference.open_stream(
                settings.chat_model, messages, max_tokens=settings.max_tokens,
            )
        except InferenceError as exc:
            logger.exception("Error processing chat request")
            if audit_logger:
                audit_logger.log(AuditEvent(
                    event_type=AuditEventType.CHAT_FAILURE,
                    source_ip=request.client.host if request.client else None,
                    action="POST /api/chat",
                    result="failure",
                    risk_level=RiskLevel.LOW,
                    details={"error": str(exc)},
                ))
            return JSONResponse({"error": "Failed to process request"}, status_code=500)

        return StreamingResponse(
            content=stream.iter_bytes(),
            status_code=stream.status_code,
            headers=_strip_hop_by_hop(stream.headers),
            media_type=stream.headers.get("content-type", "text/event-stream"),
        )

    @app.post("/webhook/line")
    async def line_webhook(request: Request) -> Response:
        # Signature is checked against the untouched body, before parsing
        body = await request.body()
        headers = dict(request.headers)
        if not line.verify_webhook(headers, body):
            if audit_logger:
                audit_logger.log(AuditEvent(
                    event_type=AuditEventType.SIGNATURE_FAILURE,
                    source_ip=request.client.host if request.client else None,
                    action="POST /webhook/line",
                    result="rejected",
                    risk_level=RiskLevel.HIGH,
                    details={
                        "reason": "mismatch" if headers.get("x-line-signature") else "missing",
                    },
                ))
            return PlainTextResponse("Invalid signature", status_code=400)

        try:
            payload = LineWebhookPayload.model_validate_json(body)
        except ValidationError:
            return PlainTextResponse("Invalid payload", status_code=400)

        await dispatcher.dispatch(payload.events)
        return PlainTextResponse("OK")

    @app.api_route("/api/chat", methods=_OTHER_METHODS)
    @app.api_route("/webhook/line", methods=_OTHER_METHODS)
    async def method_not_allowed() -> Response:
        return PlainTextResponse("Method not allowed", status_code=405)

    @app.api_route("/api/{path:path}", methods=_ALL_METHODS)
    async def api_not_found(path: str) -> Response:
        return PlainTextResponse("Not found", status_code=404)

    # Registered last so API and webhook routes take precedence
    if os.path.isdir(settings.assets_dir):
        app.mount("/", StaticFiles(directory=settings.assets_dir, html=True), name="assets")
    else:
        logger.info("Assets directory %s not found; frontend disabled", settings.assets_dir)

    return app


def _strip_hop_by_hop(headers: httpx.Headers) -> dict[str, str]:
    return {
        k: v for k, v in headers.items()
        if k.lower() not in (
            "content-length", "content-encoding", "transfer-encoding",
            "connection", "keep-alive",
        )
    }
