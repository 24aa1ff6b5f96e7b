"""
Base transport implementation for MCP.

Runs an official MCP SDK ``ClientSession`` inside one supervised runner task.
The SDK's stream contexts use anyio cancel scopes, which must be entered and
exited by the same task, so the runner owns them for the whole lifetime of the
handle and every other caller only talks to the session.
"""

import asyncio
import contextlib
import logging
from abc import ABC, abstractmethod
from datetime import timedelta
from types import TracebackType
from typing import Any

import httpx
from mcp import ClientSession
from mcp.shared.exceptions import McpError

from mcp_fleet.domain.model.connection import ServerInfo
from mcp_fleet.domain.model.tool import ToolDefinition, ToolResult
from mcp_fleet.domain.model.transport import ProcessTransportConfig, RemoteTransportConfig

logger = logging.getLogger(__name__)


class MCPTransportError(Exception):
    """Base exception for transport errors."""

    pass


class MCPTransportClosedError(MCPTransportError):
    """Exception raised when transport is closed."""

    pass


class BaseTransport(ABC):
    """
    Abstract base class for MCP transport handles.

    Subclasses provide the SDK stream context for their protocol; the base
    class drives the session lifecycle and exposes the tool capability.
    """

    def __init__(self, config: ProcessTransportConfig | RemoteTransportConfig) -> None:
        """
        Initialize base transport.

        Args:
            config: Transport configuration.
        """
        self._config = config
        self._session: ClientSession | None = None
        self._server_info: ServerInfo | None = None
        self._runner: asyncio.Task | None = None
        self._ready = asyncio.Event()
        self._stop = asyncio.Event()
        self._error: BaseException | None = None
        self._is_open = False

    @property
    def config(self) -> ProcessTransportConfig | RemoteTransportConfig:
        """Get transport configuration."""
        return self._config

    @property
    def server_info(self) -> ServerInfo | None:
        return self._server_info

    @property
    def is_open(self) -> bool:
        """Check if transport is currently open."""
        return self._is_open

    @property
    def is_alive(self) -> bool:
        return self._is_open and self._runner is not None and not self._runner.done()

    @property
    def error(self) -> BaseException | None:
        """Error that ended the runner, if any."""
        return self._error

    @abstractmethod
    def _open_streams(self) -> contextlib.AbstractAsyncContextManager[Any]:
        """Return the SDK context yielding ``(read_stream, write_stream, ...)``."""
        ...

    @abstractmethod
    def describe(self) -> str:
        """Human readable endpoint for logs."""
        ...

    async def start(self) -> None:
        """
        Open the transport and complete the MCP handshake.

        Raises:
            MCPTransportError: If the transport closes before the handshake completes.
        """
        if self._runner is not None:
            logger.debug(f"Transport already started: {self.describe()}")
            return

        self._runner = asyncio.create_task(self._run(), name=f"mcp-transport:{self.describe()}")
        self._runner.add_done_callback(self._on_runner_done)
        try:
            await self._ready.wait()
        except asyncio.CancelledError:
            await self._cancel_runner()
            raise

        if not self._is_open:
            error = self._error
            if error is not None:
                raise MCPTransportError(f"Failed to start transport: {error}") from error
            raise MCPTransportError(f"Transport closed during handshake: {self.describe()}")

    async def _run(self) -> None:
        try:
            async with self._open_streams() as streams:
                read_stream, write_stream = streams[0], streams[1]
                async with ClientSession(read_stream, write_stream) as session:
                    result = await session.initialize()
                    self._session = session
                    self._server_info = ServerInfo(
                        name=result.serverInfo.name,
                        version=result.serverInfo.version,
                        protocol_version=str(result.protocolVersion),
                        capabilities=result.capabilities.model_dump(exclude_none=True),
                    )
                    self._is_open = True
                    self._ready.set()
                    logger.info(
                        f"MCP transport open: {self.describe()} "
                        f"({self._server_info.name} {self._server_info.version})"
                    )
                    await self._stop.wait()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._error = e
            logger.warning(f"MCP transport {self.describe()} ended with error: {e}")
        finally:
            self._is_open = False
            self._session = None
            self._ready.set()

    def _on_runner_done(self, task: asyncio.Task) -> None:
        # Exceptions are recorded in _run; retrieve anything that slipped past.
        if not task.cancelled() and task.exception() is not None:
            self._error = task.exception()

    async def _cancel_runner(self) -> None:
        runner = self._runner
        if runner is None or runner.done():
            return
        runner.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await runner

    def _require_session(self) -> ClientSession:
        if self._session is None or not self._is_open:
            raise MCPTransportClosedError(f"Transport is closed: {self.describe()}")
        return self._session

    async def list_tools(self) -> list[ToolDefinition]:
        session = self._require_session()
        result = await session.list_tools()
        return [
            ToolDefinition(
                name=tool.name,
                description=tool.description,
                input_schema=dict(tool.inputSchema or {}),
            )
            for tool in result.tools
        ]

    async def call_tool(
        self,
        name: str,
        arguments: dict[str, Any],
        timeout: float | None = None,
    ) -> ToolResult:
        session = self._require_session()
        read_timeout = timedelta(seconds=timeout) if timeout is not None else None
        try:
            result = await session.call_tool(name, arguments, read_timeout_seconds=read_timeout)
        except McpError as e:
            if e.error.code == httpx.codes.REQUEST_TIMEOUT:
                raise TimeoutError(f"Tool call timed out: {name}") from e
            raise
        return ToolResult(
            content=[
                block.model_dump(mode="json", by_alias=True, exclude_none=True)
                for block in result.content
            ],
            is_error=bool(result.isError),
        )

    async def ping(self) -> None:
        session = self._require_session()
        await session.send_ping()

    async def close(self) -> None:
        """
        Close the session and release the transport.

        Idempotent.
        """
        self._stop.set()
        runner = self._runner
        if runner is None or runner.done():
            return
        try:
            await asyncio.wait_for(asyncio.shield(runner), timeout=5.0)
        except TimeoutError:
            logger.warning(f"MCP transport {self.describe()} did not close in time, cancelling")
            await self._cancel_runner()

    async def __aenter__(self) -> "BaseTransport":
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Async context manager exit."""
        await self.close()
