"""
MCP connection and tool-orchestration infrastructure.

- client: Connection to one server (connect/retry state machine, tool calls)
- manager: MCPFleetManager owning every connection
- error_handler: error classification and retry policy
- guard: loop-level suppression of transport background errors
- transport: MCP SDK transport handles
"""

from mcp_fleet.infrastructure.mcp.client import Connection
from mcp_fleet.infrastructure.mcp.error_handler import (
    ClassifiedError,
    MCPErrorClassifier,
    MCPErrorCode,
)
from mcp_fleet.infrastructure.mcp.guard import TransportErrorGuard, install_transport_error_guard
from mcp_fleet.infrastructure.mcp.manager import MCPFleetManager

__all__ = [
    "Connection",
    "MCPFleetManager",
    "ClassifiedError",
    "MCPErrorClassifier",
    "MCPErrorCode",
    "TransportErrorGuard",
    "install_transport_error_guard",
]
