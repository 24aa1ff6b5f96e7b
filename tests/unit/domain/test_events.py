"""Unit tests for connection events and the event emitter."""

import asyncio

import pytest

from mcp_fleet.domain.events import (
    ConnectionStatusChangedEvent,
    EventEmitter,
    EventType,
    ToolExecutionEvent,
    ToolExecutionPhase,
    ToolsUpdatedEvent,
)
from mcp_fleet.domain.model.connection import ConnectionStatus, ServerInfo
from mcp_fleet.domain.model.tool import ToolDefinition, ToolResult


@pytest.mark.unit
class TestEvents:
    """Test event payloads."""

    def test_status_event_to_dict(self):
        event = ConnectionStatusChangedEvent(
            server_id="s1",
            status=ConnectionStatus.CONNECTED,
            server_info=ServerInfo(name="srv", version="1.2.0"),
        )
        data = event.to_dict()

        assert data["type"] == "connection_status_changed"
        assert data["server_id"] == "s1"
        assert data["status"] == "connected"
        assert data["server_info"]["name"] == "srv"
        assert "timestamp" in data

    def test_tools_updated_to_dict(self):
        event = ToolsUpdatedEvent(server_id="s1", tools=[ToolDefinition(name="search")])
        assert event.to_dict()["tools"][0]["name"] == "search"
        assert event.event_type == EventType.TOOLS_UPDATED

    def test_tool_execution_to_dict(self):
        event = ToolExecutionEvent(
            server_id="s1",
            tool_name="search",
            execution_id="s1-search-1",
            phase=ToolExecutionPhase.COMPLETED,
            result=ToolResult(content=[{"type": "text", "text": "hi"}]),
            elapsed_ms=12.5,
        )
        data = event.to_dict()

        assert data["phase"] == "completed"
        assert data["result"]["isError"] is False
        assert data["elapsed_ms"] == 12.5
        assert "error" not in data


@pytest.mark.unit
class TestEventEmitter:
    """Test EventEmitter listener delivery."""

    def _event(self, status=ConnectionStatus.CONNECTING):
        return ConnectionStatusChangedEvent(server_id="s1", status=status)

    def test_listener_receives_matching_type_only(self):
        emitter = EventEmitter()
        received = []
        emitter.add_listener(EventType.CONNECTION_STATUS_CHANGED, received.append)
        emitter.add_listener(EventType.TOOLS_UPDATED, lambda e: received.append("wrong"))

        emitter.emit(self._event())

        assert len(received) == 1
        assert received[0].status == ConnectionStatus.CONNECTING

    def test_throwing_listener_does_not_break_delivery(self):
        emitter = EventEmitter()
        received = []

        def broken(event):
            raise RuntimeError("listener failure")

        emitter.add_listener(EventType.CONNECTION_STATUS_CHANGED, broken)
        emitter.add_listener(EventType.CONNECTION_STATUS_CHANGED, received.append)

        emitter.emit(self._event())

        assert len(received) == 1

    def test_unsubscribe(self):
        emitter = EventEmitter()
        received = []
        unsubscribe = emitter.add_listener(EventType.CONNECTION_STATUS_CHANGED, received.append)

        unsubscribe()
        emitter.emit(self._event())

        assert received == []
        assert emitter.listener_count() == 0

    def test_remove_unknown_listener_is_noop(self):
        emitter = EventEmitter()
        emitter.remove_listener(EventType.TOOL_EXECUTION, print)

    @pytest.mark.asyncio
    async def test_async_listener_is_scheduled(self):
        emitter = EventEmitter()
        received = []

        async def listener(event):
            received.append(event)

        emitter.add_listener(EventType.CONNECTION_STATUS_CHANGED, listener)
        emitter.emit(self._event())
        await asyncio.sleep(0)

        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_subscription_preserves_order(self):
        emitter = EventEmitter()
        subscription = emitter.subscribe(EventType.CONNECTION_STATUS_CHANGED)

        emitter.emit(self._event(ConnectionStatus.CONNECTING))
        emitter.emit(ToolsUpdatedEvent(server_id="s1"))
        emitter.emit(self._event(ConnectionStatus.CONNECTED))
        subscription.close()

        statuses = [event.status async for event in subscription]
        assert statuses == [ConnectionStatus.CONNECTING, ConnectionStatus.CONNECTED]

    @pytest.mark.asyncio
    async def test_closed_subscription_stops_receiving(self):
        emitter = EventEmitter()
        async with emitter.subscribe() as subscription:
            emitter.emit(self._event())
            assert (await subscription.get()).server_id == "s1"

        emitter.emit(self._event())
        assert subscription.closed
        with pytest.raises(StopAsyncIteration):
            await subscription.get()

    def test_subscription_get_nowait(self):
        emitter = EventEmitter()
        subscription = emitter.subscribe()

        with pytest.raises(asyncio.QueueEmpty):
            subscription.get_nowait()

        emitter.emit(self._event(ConnectionStatus.CONNECTED))
        assert subscription.get_nowait().status == ConnectionStatus.CONNECTED

        subscription.close()
        with pytest.raises(asyncio.QueueEmpty):
            subscription.get_nowait()
