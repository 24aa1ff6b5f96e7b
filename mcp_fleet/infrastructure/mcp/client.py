"""
MCP Connection - client for a single MCP server.

Owns one transport handle and drives the connect/retry state machine:

    disconnected --connect()--> connecting --success--> connected
    connecting --retries exhausted--> error --connect()/auto-reconnect--> connecting
    connected --disconnect()--> disconnected
    connected --liveness check fails--> error (graceful_reconnect)

Concurrent ``connect()`` calls share one in-flight attempt. ``disconnect()``
cancels an in-flight attempt and any scheduled reconnect; a tool call already
dispatched keeps running against the handle it captured. Starting an attempt,
disconnecting and tearing down a lost transport are serialized per connection,
so a ``connect()`` issued while ``disconnect()`` is closing the transport
starts only after the connection reached ``disconnected``.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from datetime import datetime

from mcp_fleet.domain.events import (
    ConnectionStatusChangedEvent,
    EventEmitter,
    EventListener,
    EventSubscription,
    EventType,
    MCPEvent,
    ToolExecutionEvent,
    ToolExecutionPhase,
    ToolsUpdatedEvent,
)
from mcp_fleet.domain.exceptions.mcp import (
    MCPConnectionError,
    MCPError,
    MCPTimeoutError,
    MCPToolExecutionError,
)
from mcp_fleet.domain.model.connection import ConnectionState, ConnectionStatus, HealthCheck
from mcp_fleet.domain.model.tool import RegisteredTool, ToolCall, ToolDefinition, ToolResult
from mcp_fleet.domain.model.transport import ClientConfig, validate_transport
from mcp_fleet.domain.ports.transport_port import MCPTransportPort, TransportFactoryPort
from mcp_fleet.infrastructure.mcp.error_handler import (
    ClassifiedError,
    handle_connection_error,
    handle_general_error,
    handle_tool_execution_error,
)
from mcp_fleet.infrastructure.mcp.transport.factory import open_transport

logger = logging.getLogger(__name__)


class Connection:
    """
    Connection to one MCP server.

    State is only ever mutated by this object's own operations; observers
    read snapshots through ``state`` or listen to events.
    """

    def __init__(
        self,
        server_id: str,
        config: ClientConfig,
        transport_factory: TransportFactoryPort | None = None,
    ) -> None:
        """
        Initialize a disconnected connection.

        Args:
            server_id: Unique server identifier
            config: Immutable client configuration
            transport_factory: Opens a transport handle for a transport config;
                defaults to the MCP SDK transports
        """
        self._server_id = server_id
        self._config = config
        self._transport_factory = transport_factory or open_transport
        self._handle: MCPTransportPort | None = None
        self._state = ConnectionState()
        self._events = EventEmitter()
        self._connect_task: asyncio.Task | None = None
        self._reconnect_task: asyncio.Task | None = None
        self._lifecycle_lock = asyncio.Lock()

    @property
    def server_id(self) -> str:
        return self._server_id

    @property
    def name(self) -> str:
        return self._config.describe(self._server_id)

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def state(self) -> ConnectionState:
        """Snapshot of the current connection state."""
        return self._state.snapshot()

    @property
    def status(self) -> ConnectionStatus:
        return self._state.status

    @property
    def is_connected(self) -> bool:
        """Connected status backed by a live transport handle."""
        return (
            self._state.status == ConnectionStatus.CONNECTED
            and self._handle is not None
            and self._handle.is_alive
        )

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    def should_be_connected(self) -> bool:
        return self._state.status in (ConnectionStatus.CONNECTED, ConnectionStatus.CONNECTING)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def add_event_listener(
        self, event_type: EventType, listener: EventListener
    ) -> Callable[[], None]:
        return self._events.add_listener(event_type, listener)

    def remove_event_listener(self, event_type: EventType, listener: EventListener) -> None:
        self._events.remove_listener(event_type, listener)

    def subscribe(self, *event_types: EventType) -> EventSubscription:
        return self._events.subscribe(*event_types)

    def _emit(self, event: MCPEvent) -> None:
        self._events.emit(event)

    def _set_status(self, status: ConnectionStatus, error: str | None = None) -> None:
        previous = self._state.status
        self._state.status = status
        if status != ConnectionStatus.CONNECTED:
            self._state.available_tools = []
        if previous != status:
            logger.info(f"MCP server {self._server_id}: {previous.value} -> {status.value}")
        self._emit(
            ConnectionStatusChangedEvent(
                server_id=self._server_id,
                status=status,
                server_info=self._state.server_info,
                error=error,
            )
        )

    # ------------------------------------------------------------------
    # Connect
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """
        Connect to the server, retrying with exponential backoff.

        Concurrent callers share the same in-flight attempt and see the same
        outcome. A no-op when already connected.

        Raises:
            MCPConnectionError: If retries are exhausted or the attempt was
                cancelled by ``disconnect()``
            MCPTimeoutError: If the final attempt timed out
        """
        async with self._lifecycle_lock:
            task = self._connect_task
            if task is None or task.done():
                if self.is_connected:
                    return
                if self._state.status == ConnectionStatus.CONNECTED:
                    await self._mark_connection_lost("transport closed")
                self._cancel_reconnect()
                self._state.server_info = None
                self._set_status(ConnectionStatus.CONNECTING)
                task = asyncio.create_task(
                    self._connect_with_retries(), name=f"mcp-connect:{self._server_id}"
                )
                task.add_done_callback(_retrieve_exception)
                self._connect_task = task

        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if task.cancelled() and (current is None or current.cancelling() == 0):
                raise MCPConnectionError(
                    f"Connection attempt to {self.name} was cancelled",
                    server_id=self._server_id,
                ) from None
            raise

    async def _connect_with_retries(self) -> None:
        config = self._config
        for attempt in range(config.max_retries + 1):
            try:
                await self._attempt()
                return
            except asyncio.CancelledError:
                raise
            except Exception as e:
                error = self._as_connection_error(e)
                self._state.retry_count = attempt + 1
                self._state.last_error = str(error)

                if attempt == config.max_retries:
                    logger.error(
                        f"Failed to connect to MCP server {self._server_id} "
                        f"after {attempt + 1} attempts: {error}"
                    )
                    self._set_status(ConnectionStatus.ERROR, error=str(error))
                    handle_connection_error(
                        error,
                        self._server_id,
                        self.name,
                        retry_callback=self._schedule_reconnect if config.auto_reconnect else None,
                        retry_count=attempt,
                    )
                    if error is e:
                        raise
                    raise error from e

                delay = config.backoff_seconds(attempt)
                logger.debug(
                    f"Connect attempt {attempt + 1}/{config.max_retries + 1} to "
                    f"{self._server_id} failed: {error}; retrying in {delay:.2f}s"
                )
                await asyncio.sleep(delay)

    async def _attempt(self) -> None:
        config = self._config
        validate_transport(config.transport)

        try:
            handle = await asyncio.wait_for(
                self._transport_factory(config.transport), timeout=config.timeout_seconds
            )
        except TimeoutError as e:
            raise MCPTimeoutError(
                f"Connection timeout after {config.timeout_ms}ms",
                server_id=self._server_id,
            ) from e

        try:
            tools = await asyncio.wait_for(handle.list_tools(), timeout=config.timeout_seconds)
        except BaseException as e:
            await self._close_handle(handle)
            if isinstance(e, TimeoutError) and not isinstance(e, MCPError):
                raise MCPTimeoutError(
                    f"Tool discovery timeout after {config.timeout_ms}ms",
                    server_id=self._server_id,
                ) from e
            raise

        self._handle = handle
        self._state.server_info = handle.server_info
        self._state.available_tools = list(tools)
        self._state.last_connected_at = datetime.now()
        self._state.last_error = None
        self._state.retry_count = 0
        self._state.status = ConnectionStatus.CONNECTED
        logger.info(f"MCP server {self._server_id} connected with {len(tools)} tools")

        self._emit(
            ConnectionStatusChangedEvent(
                server_id=self._server_id,
                status=ConnectionStatus.CONNECTED,
                server_info=handle.server_info,
            )
        )
        self._emit(ToolsUpdatedEvent(server_id=self._server_id, tools=list(tools)))

    def _as_connection_error(self, error: Exception) -> MCPError:
        if isinstance(error, MCPError):
            if error.server_id is None:
                error.server_id = self._server_id
            return error
        return MCPConnectionError(
            f"Failed to connect to {self.name}: {error}",
            server_id=self._server_id,
            original_error=error,
        )

    # ------------------------------------------------------------------
    # Auto-reconnect
    # ------------------------------------------------------------------

    def _schedule_reconnect(self, classified: ClassifiedError) -> None:
        self._cancel_reconnect()
        delay = self._config.auto_reconnect_delay_seconds
        logger.info(
            f"Auto-reconnect for {self._server_id} in {delay:.1f}s ({classified.code.value})"
        )
        task = asyncio.create_task(
            self._reconnect_after(delay), name=f"mcp-reconnect:{self._server_id}"
        )
        task.add_done_callback(self._on_reconnect_done)
        self._reconnect_task = task

    async def _reconnect_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        if self._reconnect_task is asyncio.current_task():
            self._reconnect_task = None
        await self.connect()

    def _on_reconnect_done(self, task: asyncio.Task) -> None:
        if self._reconnect_task is task:
            self._reconnect_task = None
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Retry failed for server {self._server_id}: {exc}")
        else:
            logger.info(f"Reconnected to {self.name}")

    def _cancel_reconnect(self) -> None:
        task = self._reconnect_task
        self._reconnect_task = None
        if task is not None and not task.done():
            task.cancel()

    # ------------------------------------------------------------------
    # Disconnect
    # ------------------------------------------------------------------

    async def disconnect(self) -> None:
        """
        Disconnect from the server.

        Always safe to call. Cancels a scheduled reconnect and any in-flight
        connect attempt, closes the transport (close errors are logged), and
        resets the state to disconnected.
        """
        self._cancel_reconnect()

        async with self._lifecycle_lock:
            task = self._connect_task
            self._connect_task = None
            if task is not None and not task.done() and task is not asyncio.current_task():
                task.cancel()
                await asyncio.wait([task])

            handle, self._handle = self._handle, None
            if handle is not None:
                await self._close_handle(handle)

            self._state.server_info = None
            self._state.retry_count = 0
            self._set_status(ConnectionStatus.DISCONNECTED)

    async def _mark_connection_lost(self, reason: str) -> None:
        logger.warning(f"Lost connection to MCP server {self._server_id}: {reason}")
        self._state.last_error = f"Connection lost: {reason}"
        self._set_status(ConnectionStatus.ERROR, error=self._state.last_error)

        handle, self._handle = self._handle, None
        if handle is not None:
            await self._close_handle(handle)

    async def _close_handle(self, handle: MCPTransportPort) -> None:
        try:
            await handle.close()
        except Exception as e:
            logger.warning(f"Error closing MCP client for {self._server_id}: {e}")

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------

    async def execute_tool(self, call: ToolCall) -> ToolResult:
        """
        Execute a tool on the connected server.

        Emits ``started`` and then ``completed`` or ``failed`` events sharing
        one execution id. Failed calls are not retried.

        Raises:
            MCPConnectionError: If not connected; no transport I/O is attempted
            MCPTimeoutError: If the transport reports a timeout
            MCPToolExecutionError: For any other failure
        """
        handle = self._handle
        if not self.is_connected or handle is None:
            raise MCPConnectionError(
                f"Server {self.name} is not connected",
                server_id=self._server_id,
                tool_name=call.name,
            )

        start_ms = int(time.time() * 1000)
        execution_id = f"{self._server_id}-{call.name}-{start_ms}"
        self._emit(
            ToolExecutionEvent(
                server_id=self._server_id,
                tool_name=call.name,
                execution_id=execution_id,
                phase=ToolExecutionPhase.STARTED,
            )
        )

        started = time.perf_counter()
        try:
            result = await handle.call_tool(
                call.name,
                dict(call.arguments),
                timeout=self._config.tool_timeout_seconds,
            )
        except asyncio.CancelledError:
            self._emit_tool_failed(call.name, execution_id, "cancelled", started)
            raise
        except TimeoutError as e:
            error: MCPError = MCPTimeoutError(
                f"Tool execution timed out: {call.name}",
                server_id=self._server_id,
                tool_name=call.name,
                original_error=e,
            )
            self._emit_tool_failed(call.name, execution_id, str(error), started)
            handle_tool_execution_error(error, call.name, self.name)
            raise error from e
        except Exception as e:
            error = MCPToolExecutionError(
                f"Failed to execute tool {call.name}: {e}",
                server_id=self._server_id,
                tool_name=call.name,
                original_error=e,
            )
            self._emit_tool_failed(call.name, execution_id, str(error), started)
            handle_tool_execution_error(error, call.name, self.name)
            raise error from e

        elapsed_ms = (time.perf_counter() - started) * 1000
        self._emit(
            ToolExecutionEvent(
                server_id=self._server_id,
                tool_name=call.name,
                execution_id=execution_id,
                phase=ToolExecutionPhase.COMPLETED,
                result=result,
                elapsed_ms=elapsed_ms,
            )
        )
        return result

    def _emit_tool_failed(
        self, tool_name: str, execution_id: str, error: str, started: float
    ) -> None:
        self._emit(
            ToolExecutionEvent(
                server_id=self._server_id,
                tool_name=tool_name,
                execution_id=execution_id,
                phase=ToolExecutionPhase.FAILED,
                error=error,
                elapsed_ms=(time.perf_counter() - started) * 1000,
            )
        )

    def get_available_tools(self) -> list[ToolDefinition]:
        return list(self._state.available_tools)

    def get_tool_registry(
        self, tools: list[ToolDefinition] | None = None
    ) -> dict[str, RegisteredTool]:
        """Registry of callable tools routed back to this connection."""
        if tools is None:
            tools = self._state.available_tools
        return {
            tool.name: RegisteredTool(
                name=tool.name,
                description=tool.description,
                parameters=tool.input_schema,
                server_id=self._server_id,
                executor=self.execute_tool,
            )
            for tool in tools
        }

    async def get_ai_tools(self) -> dict[str, RegisteredTool]:
        """
        Fetch the server's current tools as a callable registry.

        Returns an empty registry when not connected.

        Raises:
            MCPConnectionError: If the tool list cannot be fetched
        """
        handle = self._handle
        if not self.is_connected or handle is None:
            return {}
        try:
            tools = await handle.list_tools()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise MCPConnectionError(
                f"Failed to list tools from {self.name}: {e}",
                server_id=self._server_id,
                original_error=e,
            ) from e
        return self.get_tool_registry(tools)

    # ------------------------------------------------------------------
    # Liveness
    # ------------------------------------------------------------------

    async def health_check(self) -> HealthCheck:
        """Ping the server without changing connection state."""
        handle = self._handle
        if not self.is_connected or handle is None:
            return HealthCheck(
                server_id=self._server_id,
                status=self._state.status,
                healthy=False,
                error=self._state.last_error,
            )
        started = time.perf_counter()
        try:
            await asyncio.wait_for(handle.ping(), timeout=self._config.timeout_seconds)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            return HealthCheck(
                server_id=self._server_id,
                status=self._state.status,
                healthy=False,
                error=str(e) or type(e).__name__,
            )
        return HealthCheck(
            server_id=self._server_id,
            status=self._state.status,
            healthy=True,
            latency_ms=(time.perf_counter() - started) * 1000,
        )

    async def graceful_reconnect(self) -> bool:
        """
        Reconnect if the recorded status is connected but the transport is not.

        Returns:
            True if a reconnect was performed

        Raises:
            MCPError: If the reconnect fails
        """
        if self._state.status != ConnectionStatus.CONNECTED:
            return False

        handle = self._handle
        if self.is_connected:
            check = await self.health_check()
            if check.healthy:
                return False
            reason = check.error or "ping failed"
        else:
            reason = "transport closed"

        async with self._lifecycle_lock:
            # Another operation replaced or tore down the transport meanwhile.
            if self._state.status != ConnectionStatus.CONNECTED or self._handle is not handle:
                return False
            await self._mark_connection_lost(reason)

        try:
            await self.connect()
        except MCPError as e:
            handle_general_error(e, f"graceful reconnect of {self._server_id}")
            raise
        return True


def _retrieve_exception(task: asyncio.Task) -> None:
    # Outcome is delivered to connect() callers; this only marks it retrieved.
    if not task.cancelled():
        task.exception()
