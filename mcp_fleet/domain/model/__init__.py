"""
MCP Domain Models.

Key entities:
- Transport: how to reach a server and how to tune the connect loop
- Connection: status, server metadata and observable state
- Tool: tool definitions, calls, results and registry entries
"""

from mcp_fleet.domain.model.connection import (
    ConnectionState,
    ConnectionStatus,
    ConnectionTestResult,
    HealthCheck,
    ServerInfo,
)
from mcp_fleet.domain.model.tool import RegisteredTool, ToolCall, ToolDefinition, ToolResult
from mcp_fleet.domain.model.transport import (
    ClientConfig,
    ProcessTransportConfig,
    RemoteTransportConfig,
    TransportConfig,
    validate_transport,
)

__all__ = [
    # Transport
    "ClientConfig",
    "ProcessTransportConfig",
    "RemoteTransportConfig",
    "TransportConfig",
    "validate_transport",
    # Connection
    "ConnectionState",
    "ConnectionStatus",
    "ConnectionTestResult",
    "HealthCheck",
    "ServerInfo",
    # Tool
    "RegisteredTool",
    "ToolCall",
    "ToolDefinition",
    "ToolResult",
]
