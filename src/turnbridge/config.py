"""Configuration management for turnbridge."""

from __future__ import annotations

from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from turnbridge.errors import EngineNotConfiguredError
from turnbridge.protocol.adapter import DEFAULT_ENGINE_HOST
from turnbridge.protocol.completion import CompletionPolicy


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Engine connection
    worker_id: str | None = Field(default=None, description="Engine worker id")
    flow_id: str | None = Field(default=None, description="Engine flow id")
    api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("brainbase_api_key", "api_key"),
        description="Engine API key, sent as the api_key query parameter",
    )
    engine_host: str = Field(default=DEFAULT_ENGINE_HOST, description="Engine WebSocket base URL")
    deployment_type: str = Field(default="production", description="Deployment tag sent on initialize")

    # Job store
    supabase_url: str | None = Field(default=None, description="Supabase project URL")
    supabase_key: str | None = Field(default=None, description="Supabase service key")
    job_store: Literal["auto", "supabase", "memory", "none"] = Field(
        default="auto", description="Job store backend"
    )

    # HTTP server
    host: str = Field(default="0.0.0.0", description="Bind address")  # noqa: S104
    port: int = Field(default=3000, description="Bind port")
    cors_origins: list[str] = Field(default_factory=lambda: ["*"], description="Allowed CORS origins")

    # Completion timing
    reply_grace_seconds: float = Field(default=0.5, description="Earliest content check for replies")
    reply_ceiling_seconds: float = Field(default=30.0, description="Upper bound for a reply wait")
    long_form_quiet_seconds: float = Field(default=10.0, description="Inactivity window for long-form turns")
    long_form_ceiling_seconds: float = Field(default=300.0, description="Upper bound for a long-form wait")

    # Logging
    log_level: str = Field(default="INFO", description="Log level")

    def require_engine(self) -> tuple[str, str, str]:
        """Return worker id, flow id and API key, or raise when any is missing."""
        values = {"WORKER_ID": self.worker_id, "FLOW_ID": self.flow_id, "BRAINBASE_API_KEY": self.api_key}
        missing = [name for name, value in values.items() if not value]
        if missing:
            raise EngineNotConfiguredError(missing)
        return self.worker_id or "", self.flow_id or "", self.api_key or ""

    @property
    def engine_configured(self) -> bool:
        return bool(self.worker_id and self.flow_id and self.api_key)

    @property
    def supabase_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)

    def reply_policy(self) -> CompletionPolicy:
        return CompletionPolicy(
            ceiling_seconds=self.reply_ceiling_seconds,
            grace_seconds=self.reply_grace_seconds,
        )

    def long_form_policy(self) -> CompletionPolicy:
        return CompletionPolicy(
            ceiling_seconds=self.long_form_ceiling_seconds,
            quiet_seconds=self.long_form_quiet_seconds,
            fail_on_remote_error=True,
        )


def load_settings(**overrides: object) -> Settings:
    """Load settings from the environment and `.env`, applying explicit overrides."""
    return Settings(**overrides)  # type: ignore[arg-type]
