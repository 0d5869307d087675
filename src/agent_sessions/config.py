"""Configuration module for agent-sessions using pydantic-settings."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AgentSessionsSettings(BaseSettings):
    """Main configuration settings for agent-sessions.

    All settings can be overridden via environment variables with the
    AGENT_SESSIONS_ prefix. For example, AGENT_SESSIONS_RUNTIME_URL will
    override the runtime_url setting.
    """

    # Server
    host: str = "127.0.0.1"
    port: int = 8000

    # Host runtime
    runtime_url: str = "http://127.0.0.1:8765"
    runtime_request_timeout: float = 30.0

    # Session start deadline in seconds (None waits indefinitely)
    start_timeout: float | None = None

    # CORS
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    # Logging
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_prefix="AGENT_SESSIONS_")
