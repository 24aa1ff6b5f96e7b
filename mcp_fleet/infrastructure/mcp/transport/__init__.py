"""
MCP Transport Layer.

Transport handles built on the official MCP SDK:
- stdio: Subprocess communication (local MCP servers)
- sse: Server-Sent Events (remote MCP servers)

All transports implement the MCPTransportPort interface from the domain layer.
"""

from mcp_fleet.infrastructure.mcp.transport.base import (
    BaseTransport,
    MCPTransportClosedError,
    MCPTransportError,
)
from mcp_fleet.infrastructure.mcp.transport.factory import TransportFactory, open_transport
from mcp_fleet.infrastructure.mcp.transport.sse import SSETransport
from mcp_fleet.infrastructure.mcp.transport.stdio import StdioTransport

__all__ = [
    "BaseTransport",
    "MCPTransportError",
    "MCPTransportClosedError",
    "TransportFactory",
    "open_transport",
    "StdioTransport",
    "SSETransport",
]
