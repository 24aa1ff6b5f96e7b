"""
MCP Connection Domain Models.

Defines connection status, server metadata and the observable state of one
connection.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any

from mcp_fleet.domain.model.tool import ToolDefinition


class ConnectionStatus(str, Enum):
    """MCP connection status."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


# Allowed status transitions of a connection.
ALLOWED_TRANSITIONS: frozenset[tuple[ConnectionStatus, ConnectionStatus]] = frozenset(
    {
        (ConnectionStatus.DISCONNECTED, ConnectionStatus.CONNECTING),
        (ConnectionStatus.CONNECTING, ConnectionStatus.CONNECTED),
        (ConnectionStatus.CONNECTING, ConnectionStatus.ERROR),
        (ConnectionStatus.CONNECTING, ConnectionStatus.DISCONNECTED),
        (ConnectionStatus.CONNECTED, ConnectionStatus.DISCONNECTED),
        (ConnectionStatus.CONNECTED, ConnectionStatus.ERROR),
        (ConnectionStatus.ERROR, ConnectionStatus.CONNECTING),
        (ConnectionStatus.ERROR, ConnectionStatus.DISCONNECTED),
        (ConnectionStatus.DISCONNECTED, ConnectionStatus.DISCONNECTED),
    }
)


@dataclass(frozen=True)
class ServerInfo:
    """Server metadata reported during the handshake."""

    name: str
    version: str
    protocol_version: str | None = None
    capabilities: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "protocol_version": self.protocol_version,
            "capabilities": self.capabilities,
        }


@dataclass
class ConnectionState:
    """
    Observable state of one connection.

    ``available_tools`` is non-empty only while connected, and
    ``retry_count`` resets to 0 on every successful connect.
    """

    status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    server_info: ServerInfo | None = None
    available_tools: list[ToolDefinition] = field(default_factory=list)
    last_connected_at: datetime | None = None
    last_error: str | None = None
    retry_count: int = 0

    @property
    def is_connected(self) -> bool:
        return self.status == ConnectionStatus.CONNECTED

    def snapshot(self) -> "ConnectionState":
        """Copy safe to hand to observers."""
        return replace(self, available_tools=list(self.available_tools))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "status": self.status.value,
            "server_info": self.server_info.to_dict() if self.server_info else None,
            "available_tools": [tool.to_dict() for tool in self.available_tools],
            "last_connected_at": (
                self.last_connected_at.isoformat() if self.last_connected_at else None
            ),
            "last_error": self.last_error,
            "retry_count": self.retry_count,
        }


@dataclass(frozen=True)
class HealthCheck:
    """Result of a liveness probe against one server."""

    server_id: str
    status: ConnectionStatus
    healthy: bool
    checked_at: datetime = field(default_factory=datetime.now)
    latency_ms: float | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "server_id": self.server_id,
            "status": self.status.value,
            "healthy": self.healthy,
            "checked_at": self.checked_at.isoformat(),
            "latency_ms": self.latency_ms,
            "error": self.error,
        }


@dataclass(frozen=True)
class ConnectionTestResult:
    """Outcome of dialing a configuration without registering it."""

    success: bool
    error: str | None = None
    tool_count: int | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"success": self.success}
        if self.error is not None:
            result["error"] = self.error
        if self.tool_count is not None:
            result["tool_count"] = self.tool_count
        return result
