"""Process configuration read from the environment at startup."""

from __future__ import annotations

import os
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful, friendly assistant. Provide concise and accurate responses."
)
DEFAULT_CHAT_MODEL = "@cf/meta/llama-3.3-70b-instruct-fp8-fast"
DEFAULT_WEBHOOK_MODEL = "@cf/meta/llama-2-7b-chat-int8"

_REQUIRED = (
    "LINE_CHANNEL_SECRET",
    "LINE_CHANNEL_ACCESS_TOKEN",
    "CLOUDFLARE_ACCOUNT_ID",
    "CLOUDFLARE_API_TOKEN",
)


class ConfigError(Exception):
    """Raised when required configuration is missing or invalid."""

    def __init__(self, message: str, missing: list[str] | None = None) -> None:
        self.missing = missing or []
        super().__init__(message)


class Settings(BaseModel):
    """Immutable runtime settings. Secrets never have defaults."""

    model_config = ConfigDict(frozen=True)

    line_channel_secret: str = Field(min_length=1, repr=False)
    line_channel_access_token: str = Field(min_length=1, repr=False)
    cloudflare_account_id: str = Field(min_length=1)
    cloudflare_api_token: str = Field(min_length=1, repr=False)

    chat_model: str = DEFAULT_CHAT_MODEL
    webhook_model: str = DEFAULT_WEBHOOK_MODEL
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    max_tokens: int = Field(default=1024, gt=0)

    workers_ai_base_url: str = "https://api.cloudflare.com/client/v4"
    line_api_base_url: str = "https://api.line.me"
    inference_timeout_seconds: float = Field(default=30.0, gt=0)
    line_api_timeout_seconds: float = Field(default=10.0, gt=0)
    event_timeout_seconds: float = Field(default=25.0, gt=0)
    dispatch_max_concurrency: int = Field(default=4, ge=1)

    assets_dir: str = "public"
    audit_log_path: str | None = None
    audit_log_max_bytes: int = Field(default=10_485_760, gt=0)
    audit_log_backup_count: int = Field(default=5, ge=0)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        """Build settings from environment variables (``os.environ`` by default)."""
        env = os.environ if environ is None else environ
        missing = [name for name in _REQUIRED if not env.get(name)]
        if missing:
            raise ConfigError(
                f"Missing required environment variables: {', '.join(missing)}",
                missing=missing,
            )

        values: dict[str, object] = {name.lower(): env[name] for name in _REQUIRED}
        optional = (
            "CHAT_MODEL",
            "WEBHOOK_MODEL",
            "SYSTEM_PROMPT",
            "MAX_TOKENS",
            "WORKERS_AI_BASE_URL",
            "LINE_API_BASE_URL",
            "INFERENCE_TIMEOUT_SECONDS",
            "LINE_API_TIMEOUT_SECONDS",
            "EVENT_TIMEOUT_SECONDS",
            "DISPATCH_MAX_CONCURRENCY",
            "ASSETS_DIR",
            "AUDIT_LOG_PATH",
            "AUDIT_LOG_MAX_BYTES",
            "AUDIT_LOG_BACKUP_COUNT",
        )
        for name in optional:
            if env.get(name):
                values[name.lower()] = env[name]
        try:
            return cls.model_validate(values)
        except ValidationError as exc:
            invalid = sorted({str(err["loc"][0]).upper() for err in exc.errors() if err["loc"]})
            raise ConfigError(
                f"Invalid environment variables: {', '.join(invalid)}",
            ) from exc
