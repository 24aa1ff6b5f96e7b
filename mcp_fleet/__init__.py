"""
MCP Fleet - connection and tool orchestration for Model Context Protocol servers.

Typical use:

    manager = MCPFleetManager()
    manager.add_server("fetch", ClientConfig(transport={"type": "stdio", "command": "uvx",
                                                       "args": ["mcp-server-fetch"]}))
    await manager.connect_all()
    tools = await manager.get_all_tools()
"""

from mcp_fleet.domain.events import EventType, ToolExecutionPhase
from mcp_fleet.domain.exceptions.mcp import (
    MCPConnectionError,
    MCPError,
    MCPServerAlreadyExistsError,
    MCPServerNotFoundError,
    MCPTimeoutError,
    MCPToolExecutionError,
)
from mcp_fleet.domain.model.connection import ConnectionState, ConnectionStatus
from mcp_fleet.domain.model.tool import ToolCall, ToolDefinition, ToolResult
from mcp_fleet.domain.model.transport import (
    ClientConfig,
    ProcessTransportConfig,
    RemoteTransportConfig,
)
from mcp_fleet.infrastructure.mcp.client import Connection
from mcp_fleet.infrastructure.mcp.manager import MCPFleetManager

__version__ = "0.1.0"

__all__ = [
    "ClientConfig",
    "Connection",
    "ConnectionState",
    "ConnectionStatus",
    "EventType",
    "MCPConnectionError",
    "MCPError",
    "MCPFleetManager",
    "MCPServerAlreadyExistsError",
    "MCPServerNotFoundError",
    "MCPTimeoutError",
    "MCPToolExecutionError",
    "ProcessTransportConfig",
    "RemoteTransportConfig",
    "ToolCall",
    "ToolDefinition",
    "ToolExecutionPhase",
    "ToolResult",
]
