"""Configuration management for MCP Fleet."""

import logging
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class Settings(BaseSettings):
    """Fleet settings."""

    # Connection Settings
    mcp_connect_timeout_ms: int = Field(default=10000, alias="MCP_CONNECT_TIMEOUT_MS")
    mcp_max_retries: int = Field(default=3, alias="MCP_MAX_RETRIES")
    mcp_retry_delay_ms: int = Field(default=1000, alias="MCP_RETRY_DELAY_MS")

    # Auto-reconnect after retries are exhausted on a transient failure
    mcp_auto_reconnect: bool = Field(default=True, alias="MCP_AUTO_RECONNECT")
    mcp_auto_reconnect_delay_ms: int = Field(default=5000, alias="MCP_AUTO_RECONNECT_DELAY_MS")

    # Tool call timeout, None leaves it to the transport
    mcp_tool_timeout_ms: int | None = Field(default=None, alias="MCP_TOOL_TIMEOUT_MS")

    # Logging Settings
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default=DEFAULT_LOG_FORMAT, alias="LOG_FORMAT")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value: str | None) -> str:
        """Normalize log level value from environment."""
        if value is None:
            return "INFO"
        normalized = str(value).strip().upper()
        if normalized in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            return normalized
        raise ValueError("LOG_LEVEL must be one of: DEBUG, INFO, WARNING, ERROR, CRITICAL")

    @field_validator(
        "mcp_connect_timeout_ms",
        "mcp_max_retries",
        "mcp_retry_delay_ms",
        "mcp_auto_reconnect_delay_ms",
    )
    @classmethod
    def non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("must be >= 0")
        return value


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def configure_logging(settings: Settings | None = None) -> None:
    """Configure root logging from settings."""
    settings = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format=settings.log_format,
    )
