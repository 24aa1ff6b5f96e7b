"""
MCP connection events.

Every event carries the originating ``server_id`` and a ``timestamp``. Events
are in-process objects delivered either to callback listeners or to queue
backed subscriptions consumed by the subscriber's own loop.
"""

import asyncio
import inspect
import logging
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Union

from mcp_fleet.domain.model.connection import ConnectionStatus, ServerInfo
from mcp_fleet.domain.model.tool import ToolDefinition, ToolResult

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Categories of connection events."""

    CONNECTION_STATUS_CHANGED = "connection_status_changed"
    TOOLS_UPDATED = "tools_updated"
    TOOL_EXECUTION = "tool_execution"


class ToolExecutionPhase(str, Enum):
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class ConnectionStatusChangedEvent:
    server_id: str
    status: ConnectionStatus
    server_info: ServerInfo | None = None
    error: str | None = None
    timestamp: datetime = field(default_factory=datetime.now)

    event_type = EventType.CONNECTION_STATUS_CHANGED

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.event_type.value,
            "server_id": self.server_id,
            "timestamp": self.timestamp.isoformat(),
            "status": self.status.value,
            "server_info": self.server_info.to_dict() if self.server_info else None,
            "error": self.error,
        }


@dataclass(frozen=True)
class ToolsUpdatedEvent:
    server_id: str
    tools: list[ToolDefinition] = field(default_factory=list)
    timestamp: datetime = field(default_factory=datetime.now)

    event_type = EventType.TOOLS_UPDATED

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.event_type.value,
            "server_id": self.server_id,
            "timestamp": self.timestamp.isoformat(),
            "tools": [tool.to_dict() for tool in self.tools],
        }


@dataclass(frozen=True)
class ToolExecutionEvent:
    server_id: str
    tool_name: str
    execution_id: str
    phase: ToolExecutionPhase
    result: ToolResult | None = None
    error: str | None = None
    elapsed_ms: float | None = None
    timestamp: datetime = field(default_factory=datetime.now)

    event_type = EventType.TOOL_EXECUTION

    def to_dict(self) -> dict[str, Any]:
        result = {
            "type": self.event_type.value,
            "server_id": self.server_id,
            "timestamp": self.timestamp.isoformat(),
            "tool_name": self.tool_name,
            "execution_id": self.execution_id,
            "phase": self.phase.value,
        }
        if self.result is not None:
            result["result"] = self.result.to_dict()
        if self.error is not None:
            result["error"] = self.error
        if self.elapsed_ms is not None:
            result["elapsed_ms"] = self.elapsed_ms
        return result


MCPEvent = Union[ConnectionStatusChangedEvent, ToolsUpdatedEvent, ToolExecutionEvent]
EventListener = Callable[[MCPEvent], Any]


class EventSubscription:
    """
    Queue-backed event stream for one subscriber.

    Iterate with ``async for``; iteration ends once ``close()`` is called and
    the queued events are drained.
    """

    _CLOSED = object()

    def __init__(self, emitter: "EventEmitter", event_types: frozenset[EventType]) -> None:
        self._emitter = emitter
        self._event_types = event_types
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def accepts(self, event: MCPEvent) -> bool:
        return not self._event_types or event.event_type in self._event_types

    def put(self, event: MCPEvent) -> None:
        if not self._closed:
            self._queue.put_nowait(event)

    async def get(self) -> MCPEvent:
        item = await self._queue.get()
        if item is self._CLOSED:
            raise StopAsyncIteration
        return item

    def get_nowait(self) -> MCPEvent:
        item = self._queue.get_nowait()
        if item is self._CLOSED:
            raise asyncio.QueueEmpty
        return item

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._emitter._detach(self)
        self._queue.put_nowait(self._CLOSED)

    def __aiter__(self) -> AsyncIterator[MCPEvent]:
        return self

    async def __anext__(self) -> MCPEvent:
        return await self.get()

    async def __aenter__(self) -> "EventSubscription":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class EventEmitter:
    """
    Publish-subscribe channel for connection events.

    Listeners are isolated from each other: a listener that raises is logged
    and never prevents delivery to the remaining listeners.
    """

    def __init__(self) -> None:
        self._listeners: dict[EventType, list[EventListener]] = {}
        self._subscriptions: list[EventSubscription] = []
        self._pending: set[asyncio.Task] = set()

    def add_listener(self, event_type: EventType, listener: EventListener) -> Callable[[], None]:
        """Register a listener for one event type.

        Returns:
            Unsubscribe function
        """
        self._listeners.setdefault(EventType(event_type), []).append(listener)

        def unsubscribe() -> None:
            self.remove_listener(event_type, listener)

        return unsubscribe

    def remove_listener(self, event_type: EventType, listener: EventListener) -> None:
        listeners = self._listeners.get(EventType(event_type))
        if listeners and listener in listeners:
            listeners.remove(listener)

    def listener_count(self, event_type: EventType | None = None) -> int:
        if event_type is None:
            return sum(len(listeners) for listeners in self._listeners.values())
        return len(self._listeners.get(EventType(event_type), []))

    def subscribe(self, *event_types: EventType) -> EventSubscription:
        """Open a queue-backed subscription, to all event types if none given."""
        subscription = EventSubscription(self, frozenset(EventType(t) for t in event_types))
        self._subscriptions.append(subscription)
        return subscription

    def _detach(self, subscription: EventSubscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def emit(self, event: MCPEvent) -> None:
        """Deliver an event to every listener and subscription of its type."""
        for subscription in list(self._subscriptions):
            if subscription.accepts(event):
                subscription.put(event)

        for listener in list(self._listeners.get(event.event_type, [])):
            try:
                outcome = listener(event)
                if inspect.isawaitable(outcome):
                    self._track(outcome, event)
            except Exception as e:
                logger.error(f"Error in {event.event_type.value} listener: {e}", exc_info=True)

    def _track(self, awaitable: Any, event: MCPEvent) -> None:
        task = asyncio.ensure_future(awaitable)
        self._pending.add(task)

        def _done(t: asyncio.Task) -> None:
            self._pending.discard(t)
            if t.cancelled():
                return
            exc = t.exception()
            if exc is not None:
                logger.error(
                    f"Error in async {event.event_type.value} listener: {exc}", exc_info=exc
                )

        task.add_done_callback(_done)

    def clear(self) -> None:
        self._listeners.clear()
        for subscription in list(self._subscriptions):
            subscription.close()
