"""
MCP Fleet Manager.

Owns every server connection, fans out bulk operations, merges tool
registries across connected servers and re-broadcasts connection events to
global listeners.
"""

import asyncio
import logging
from collections.abc import Callable

from mcp_fleet.domain.events import EventEmitter, EventListener, EventSubscription, EventType
from mcp_fleet.domain.exceptions.mcp import MCPServerAlreadyExistsError, MCPServerNotFoundError
from mcp_fleet.domain.model.connection import (
    ConnectionState,
    ConnectionStatus,
    ConnectionTestResult,
)
from mcp_fleet.domain.model.tool import RegisteredTool
from mcp_fleet.domain.model.transport import ClientConfig, validate_transport
from mcp_fleet.domain.ports.transport_port import TransportFactoryPort
from mcp_fleet.infrastructure.mcp.client import Connection
from mcp_fleet.infrastructure.mcp.error_handler import handle_general_error, handle_timeout_error
from mcp_fleet.infrastructure.mcp.guard import TransportErrorGuard, install_transport_error_guard
from mcp_fleet.infrastructure.mcp.transport.factory import open_transport

logger = logging.getLogger(__name__)


class MCPFleetManager:
    """
    Manager for a fleet of MCP server connections.

    Servers are only added and removed through this object. Adding a server
    never connects it.
    """

    def __init__(
        self,
        transport_factory: TransportFactoryPort | None = None,
        install_guard: bool = True,
    ) -> None:
        """
        Initialize the manager.

        Args:
            transport_factory: Transport factory handed to every connection
            install_guard: Install the transport error guard on the running loop
        """
        self._transport_factory = transport_factory
        self._install_guard = install_guard
        self._connections: dict[str, Connection] = {}
        self._unsubscribers: dict[str, list[Callable[[], None]]] = {}
        self._events = EventEmitter()
        self._guard: TransportErrorGuard | None = None

    def _ensure_guard(self) -> None:
        if not self._install_guard:
            return
        if self._guard is not None and self._guard.installed:
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return
        self._guard = install_transport_error_guard()

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def add_server(self, server_id: str, config: ClientConfig) -> Connection:
        """
        Register a server without connecting it.

        Raises:
            MCPServerAlreadyExistsError: If the id is already registered
        """
        if server_id in self._connections:
            raise MCPServerAlreadyExistsError(server_id)

        self._ensure_guard()
        connection = Connection(server_id, config, transport_factory=self._transport_factory)
        self._unsubscribers[server_id] = [
            connection.add_event_listener(event_type, self._events.emit)
            for event_type in EventType
        ]
        self._connections[server_id] = connection
        logger.info(f"Added MCP server: {server_id}")
        return connection

    async def remove_server(self, server_id: str) -> None:
        """
        Disconnect and unregister a server.

        Raises:
            MCPServerNotFoundError: If the id is unknown
        """
        connection = self._connections.get(server_id)
        if connection is None:
            raise MCPServerNotFoundError(server_id)

        await connection.disconnect()
        for unsubscribe in self._unsubscribers.pop(server_id, []):
            unsubscribe()
        del self._connections[server_id]
        logger.info(f"Removed MCP server: {server_id}")

    def get_connection(self, server_id: str) -> Connection | None:
        return self._connections.get(server_id)

    def get_all_connections(self) -> dict[str, Connection]:
        return dict(self._connections)

    def has_server(self, server_id: str) -> bool:
        return server_id in self._connections

    @property
    def connected_count(self) -> int:
        return sum(1 for connection in self._connections.values() if connection.is_connected)

    @property
    def total_count(self) -> int:
        return len(self._connections)

    # ------------------------------------------------------------------
    # Bulk operations
    # ------------------------------------------------------------------

    async def connect_all(self) -> None:
        """
        Connect every server in parallel.

        One server's failure never stops the others; inspect outcomes with
        ``get_all_connection_states()``.
        """
        self._ensure_guard()
        await self._fan_out("connect", [c.connect() for c in self._connections.values()])

    async def disconnect_all(self) -> None:
        """Disconnect every server in parallel."""
        await self._fan_out("disconnect", [c.disconnect() for c in self._connections.values()])

    async def _fan_out(self, operation: str, coros: list) -> None:
        server_ids = list(self._connections)
        results = await asyncio.gather(*coros, return_exceptions=True)
        for server_id, result in zip(server_ids, results):
            if isinstance(result, Exception):
                logger.warning(f"Failed to {operation} MCP server {server_id}: {result}")
            elif isinstance(result, BaseException):
                raise result

    async def get_all_tools(self) -> dict[str, RegisteredTool]:
        """
        Merge the tool registries of all connected servers.

        Servers whose tool fetch fails are logged and left out. On a name
        collision the server registered last wins.
        """
        connected = [c for c in self._connections.values() if c.is_connected]
        results = await asyncio.gather(
            *(c.get_ai_tools() for c in connected), return_exceptions=True
        )

        all_tools: dict[str, RegisteredTool] = {}
        for connection, result in zip(connected, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                handle_general_error(result, f"getting tools from server {connection.server_id}")
                continue
            all_tools.update(result)
        return all_tools

    def get_all_connection_states(self) -> dict[str, ConnectionState]:
        return {server_id: c.state for server_id, c in self._connections.items()}

    async def test_connection(self, config: ClientConfig) -> ConnectionTestResult:
        """
        Dial a configuration, count its tools and close the transport again.

        The server is not registered, no events are emitted and no retries are
        made. Failures are reported in the result instead of raised.

        Args:
            config: Client configuration to try; ``timeout_ms`` bounds both
                the dial and the tool discovery

        Returns:
            ConnectionTestResult with the tool count or the failure message
        """
        factory = self._transport_factory or open_transport
        target = config.transport.endpoint
        try:
            validate_transport(config.transport)
            handle = await asyncio.wait_for(
                factory(config.transport), timeout=config.timeout_seconds
            )
            try:
                tools = await asyncio.wait_for(
                    handle.list_tools(), timeout=config.timeout_seconds
                )
            finally:
                try:
                    await handle.close()
                except Exception as e:
                    logger.warning(f"Error closing test connection to {target}: {e}")
        except TimeoutError as e:
            handle_timeout_error(e, f"testing connection to {target}")
            return ConnectionTestResult(
                success=False, error=f"Connection timeout after {config.timeout_ms}ms"
            )
        except Exception as e:
            logger.info(f"Test connection to {target} failed: {e}")
            return ConnectionTestResult(success=False, error=str(e) or type(e).__name__)

        logger.info(f"Test connection to {target} succeeded with {len(tools)} tools")
        return ConnectionTestResult(success=True, tool_count=len(tools))

    # ------------------------------------------------------------------
    # Per-server toggles
    # ------------------------------------------------------------------

    async def connect_server(self, server_id: str) -> None:
        """
        Connect one server.

        Raises:
            MCPServerNotFoundError: If the id is unknown
        """
        self._ensure_guard()
        await self._require(server_id).connect()

    async def disconnect_server(self, server_id: str) -> None:
        """Disconnect one server if it is not already disconnected; errors are logged."""
        connection = self._connections.get(server_id)
        if connection is None:
            logger.warning(f"Cannot disconnect unknown MCP server: {server_id}")
            return
        if connection.status == ConnectionStatus.DISCONNECTED and not connection.reconnect_pending:
            return
        try:
            await connection.disconnect()
        except Exception as e:
            handle_general_error(e, f"disconnecting server {server_id}")

    async def reconnect_server(self, server_id: str) -> None:
        """
        Reconnect one server, disconnecting it first if connected.

        Raises:
            MCPServerNotFoundError: If the id is unknown
        """
        connection = self._require(server_id)
        self._ensure_guard()
        if connection.status == ConnectionStatus.CONNECTED:
            await connection.disconnect()
        await connection.connect()

    def _require(self, server_id: str) -> Connection:
        connection = self._connections.get(server_id)
        if connection is None:
            raise MCPServerNotFoundError(server_id)
        return connection

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def add_event_listener(
        self, event_type: EventType, listener: EventListener
    ) -> Callable[[], None]:
        """Listen to one event type from every server, present and future."""
        return self._events.add_listener(event_type, listener)

    def remove_event_listener(self, event_type: EventType, listener: EventListener) -> None:
        self._events.remove_listener(event_type, listener)

    def subscribe(self, *event_types: EventType) -> EventSubscription:
        return self._events.subscribe(*event_types)

    async def close(self) -> None:
        """Disconnect every server and release this manager's hold on the error guard."""
        await self.disconnect_all()
        if self._guard is not None:
            self._guard.release()
            self._guard = None
