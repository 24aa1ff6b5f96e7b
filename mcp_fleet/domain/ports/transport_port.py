"""
MCPTransportPort - Capability interface for one open MCP server handle.

A transport factory turns a transport config into an open, handshaken handle.
Connections only talk to servers through this narrow interface, which keeps
the wire protocol out of the connection state machine.
"""

from abc import abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any, Protocol, runtime_checkable

from mcp_fleet.domain.model.connection import ServerInfo
from mcp_fleet.domain.model.tool import ToolDefinition, ToolResult
from mcp_fleet.domain.model.transport import ProcessTransportConfig, RemoteTransportConfig


@runtime_checkable
class MCPTransportPort(Protocol):
    """
    Open handle to one MCP server.

    Implementations are returned already connected and initialized.
    """

    @property
    @abstractmethod
    def server_info(self) -> ServerInfo | None:
        """Server metadata reported by the handshake, if any."""
        ...

    @property
    @abstractmethod
    def is_alive(self) -> bool:
        """Whether the underlying transport is still usable."""
        ...

    @abstractmethod
    async def list_tools(self) -> list[ToolDefinition]:
        """
        List the server's tools.

        Raises:
            Exception: Transport or protocol failure.
        """
        ...

    @abstractmethod
    async def call_tool(
        self,
        name: str,
        arguments: dict[str, Any],
        timeout: float | None = None,
    ) -> ToolResult:
        """
        Call a tool on the server.

        Args:
            name: Tool name.
            arguments: Tool arguments.
            timeout: Optional deadline in seconds.

        Raises:
            TimeoutError: If the call exceeds its deadline.
            Exception: Any other transport or protocol failure.
        """
        ...

    @abstractmethod
    async def ping(self) -> None:
        """Round-trip a liveness probe."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """
        Release the transport.

        Should be idempotent - safe to call multiple times.
        """
        ...


TransportFactoryPort = Callable[
    [ProcessTransportConfig | RemoteTransportConfig], Awaitable[MCPTransportPort]
]
