"""
MCP Transport Configuration Models.

Defines how to reach one MCP server: a locally spawned process talking over
stdio, or a remote server streaming over SSE. Both are immutable and selected
through the ``type`` discriminator.

Example:
    {
        "transport": {"type": "stdio", "command": "uvx", "args": ["mcp-server-fetch"]},
        "timeout_ms": 10000,
        "max_retries": 3,
        "retry_delay_ms": 1000
    }
"""

from typing import TYPE_CHECKING, Annotated, Any, Literal, Union
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field

from mcp_fleet.domain.exceptions.mcp import MCPConnectionError

if TYPE_CHECKING:
    from mcp_fleet.configuration.config import Settings


class ProcessTransportConfig(BaseModel):
    """Configuration for a local MCP server spawned as a subprocess (stdio transport)."""

    model_config = ConfigDict(frozen=True)

    type: Literal["stdio"] = "stdio"
    command: str = Field(..., description="Executable used to start the MCP server")
    args: list[str] = Field(default_factory=list, description="Arguments passed to the command")
    env: dict[str, str] | None = Field(
        default=None, description="Environment variables for the server process"
    )
    cwd: str | None = Field(default=None, description="Working directory for the server process")

    @property
    def endpoint(self) -> str:
        return " ".join([self.command, *self.args]).strip()


class RemoteTransportConfig(BaseModel):
    """Configuration for a remote MCP server reached over Server-Sent Events."""

    model_config = ConfigDict(frozen=True)

    type: Literal["sse"] = "sse"
    url: str = Field(..., description="SSE endpoint of the MCP server")
    headers: dict[str, str] = Field(
        default_factory=dict, description="HTTP headers sent with every request"
    )

    @property
    def endpoint(self) -> str:
        return self.url


TransportConfig = Annotated[
    Union[ProcessTransportConfig, RemoteTransportConfig],
    Field(discriminator="type"),
]


def validate_transport(config: ProcessTransportConfig | RemoteTransportConfig) -> None:
    """
    Check that a transport config can be dialed.

    Raises:
        MCPConnectionError: If the process command is empty or the remote URL
            does not parse as an http(s) URL with a host.
    """
    if isinstance(config, RemoteTransportConfig):
        if not config.url:
            raise MCPConnectionError("URL is required for SSE transport")
        try:
            parsed = urlparse(config.url)
        except ValueError as e:
            raise MCPConnectionError(f"Invalid URL: {config.url}", original_error=e) from e
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise MCPConnectionError(f"Invalid URL: {config.url}")
        return

    if not config.command or not config.command.strip():
        raise MCPConnectionError("Command is required for stdio transport")


class ClientConfig(BaseModel):
    """
    Configuration for one MCP server connection.

    Bundles the transport with the tuning parameters of the connect/retry
    state machine. All durations are in milliseconds.
    """

    model_config = ConfigDict(frozen=True)

    transport: TransportConfig
    timeout_ms: int = Field(default=10000, ge=0, description="Per-attempt connect timeout")
    max_retries: int = Field(default=3, ge=0, description="Retries after the first attempt")
    retry_delay_ms: int = Field(default=1000, ge=0, description="Base delay for backoff")
    display_name: str | None = None
    auto_reconnect: bool = Field(
        default=True, description="Schedule a reconnect after transient exhausted failures"
    )
    auto_reconnect_delay_ms: int = Field(default=5000, ge=0)
    tool_timeout_ms: int | None = Field(default=None, ge=0)

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0

    @property
    def retry_delay_seconds(self) -> float:
        return self.retry_delay_ms / 1000.0

    @property
    def auto_reconnect_delay_seconds(self) -> float:
        return self.auto_reconnect_delay_ms / 1000.0

    @property
    def tool_timeout_seconds(self) -> float | None:
        if self.tool_timeout_ms is None:
            return None
        return self.tool_timeout_ms / 1000.0

    def backoff_seconds(self, attempt: int) -> float:
        """Sleep between attempt ``attempt`` and the next one."""
        return self.retry_delay_ms * (2**attempt) / 1000.0

    def describe(self, server_id: str) -> str:
        return self.display_name or server_id

    @classmethod
    def from_settings(
        cls,
        transport: ProcessTransportConfig | RemoteTransportConfig | dict[str, Any],
        settings: "Settings | None" = None,
        **overrides: Any,
    ) -> "ClientConfig":
        """Create a config whose tuning defaults come from application settings."""
        if settings is None:
            from mcp_fleet.configuration.config import get_settings

            settings = get_settings()
        values: dict[str, Any] = {
            "transport": transport,
            "timeout_ms": settings.mcp_connect_timeout_ms,
            "max_retries": settings.mcp_max_retries,
            "retry_delay_ms": settings.mcp_retry_delay_ms,
            "auto_reconnect": settings.mcp_auto_reconnect,
            "auto_reconnect_delay_ms": settings.mcp_auto_reconnect_delay_ms,
            "tool_timeout_ms": settings.mcp_tool_timeout_ms,
        }
        values.update(overrides)
        return cls.model_validate(values)
