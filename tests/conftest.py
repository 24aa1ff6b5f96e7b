"""Pytest configuration and shared fixtures for testing."""

import asyncio
from typing import Any

import pytest

from mcp_fleet.domain.model.connection import ServerInfo
from mcp_fleet.domain.model.tool import ToolDefinition, ToolResult
from mcp_fleet.domain.model.transport import (
    ClientConfig,
    ProcessTransportConfig,
    RemoteTransportConfig,
)

HANG = "hang"


class FakeTransport:
    """In-memory transport handle implementing MCPTransportPort."""

    def __init__(
        self,
        tools: list[ToolDefinition] | None = None,
        server_info: ServerInfo | None = None,
        result: ToolResult | None = None,
    ) -> None:
        self.tools = tools if tools is not None else [
            ToolDefinition(
                name="search",
                description="Search the web",
                input_schema={"type": "object", "properties": {"q": {"type": "string"}}},
            )
        ]
        self._server_info = server_info or ServerInfo(
            name="fake-server", version="1.0.0", protocol_version="2024-11-05"
        )
        self.result = result or ToolResult(content=[{"type": "text", "text": "ok"}])
        self.alive = True
        self.closed = False
        self.calls: list[tuple[str, dict[str, Any], float | None]] = []
        self.list_tools_error: BaseException | None = None
        self.list_tools_hang = False
        self.call_tool_error: BaseException | None = None
        self.call_tool_gate: asyncio.Event | None = None
        self.ping_error: BaseException | None = None
        self.close_error: BaseException | None = None
        self.close_gate: asyncio.Event | None = None

    @property
    def server_info(self) -> ServerInfo | None:
        return self._server_info

    @property
    def is_alive(self) -> bool:
        return self.alive and not self.closed

    async def list_tools(self) -> list[ToolDefinition]:
        if self.list_tools_hang:
            await asyncio.Event().wait()
        if self.list_tools_error is not None:
            raise self.list_tools_error
        return list(self.tools)

    async def call_tool(
        self, name: str, arguments: dict[str, Any], timeout: float | None = None
    ) -> ToolResult:
        self.calls.append((name, arguments, timeout))
        if self.call_tool_gate is not None:
            await self.call_tool_gate.wait()
        if self.call_tool_error is not None:
            raise self.call_tool_error
        return self.result

    async def ping(self) -> None:
        if self.ping_error is not None:
            raise self.ping_error

    async def close(self) -> None:
        if self.close_gate is not None:
            await self.close_gate.wait()
        self.closed = True
        if self.close_error is not None:
            raise self.close_error


class FakeTransportFactory:
    """
    Transport factory recording every dial.

    Each dial consumes the next queued outcome, falling back to ``default``:
    a FakeTransport is returned, an exception is raised, and ``HANG`` never
    completes.
    """

    def __init__(self, *outcomes: Any, default: Any = None) -> None:
        self.outcomes = list(outcomes)
        self.default = default
        self.dial_count = 0
        self.configs: list[Any] = []
        self.transports: list[FakeTransport] = []
        self.gate: asyncio.Event | None = None

    async def __call__(self, config: Any) -> FakeTransport:
        self.dial_count += 1
        self.configs.append(config)
        outcome = self.outcomes.pop(0) if self.outcomes else self.default
        if self.gate is not None:
            await self.gate.wait()
        if outcome == HANG:
            await asyncio.Event().wait()
        if isinstance(outcome, BaseException):
            raise outcome
        transport = outcome if isinstance(outcome, FakeTransport) else FakeTransport()
        self.transports.append(transport)
        return transport

    @property
    def last_transport(self) -> FakeTransport:
        return self.transports[-1]


@pytest.fixture
def fake_transport_cls():
    """FakeTransport class for building custom handles."""
    return FakeTransport


@pytest.fixture
def fake_factory_cls():
    """FakeTransportFactory class for building custom factories."""
    return FakeTransportFactory


@pytest.fixture
def fake_factory():
    """Factory that always succeeds with a fresh FakeTransport."""
    return FakeTransportFactory()


@pytest.fixture
def make_config():
    """Build a ClientConfig with fast test timings."""

    def _make(transport: Any = None, **overrides: Any) -> ClientConfig:
        values: dict[str, Any] = {
            "transport": transport or RemoteTransportConfig(url="http://localhost:8080/sse"),
            "timeout_ms": 1000,
            "max_retries": 0,
            "retry_delay_ms": 1,
            "auto_reconnect": False,
        }
        values.update(overrides)
        return ClientConfig(**values)

    return _make


@pytest.fixture
def stdio_transport():
    return ProcessTransportConfig(command="uvx", args=["mcp-server-fetch"])


@pytest.fixture
def record_sleeps():
    """Collect delays passed to asyncio.sleep while patched."""
    delays: list[float] = []

    async def mock_sleep(delay, *args, **kwargs):
        delays.append(delay)

    return delays, mock_sleep
