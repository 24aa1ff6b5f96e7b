"""
Process-level guard against transport background errors.

Transports can fail in tasks nobody awaits, for example an SSE reader that
notices the peer hung up after its session was already closed. The asyncio
loop reports those through its exception handler. The guard recognizes the
transport-originated ones, logs a warning instead, and passes everything else
to the handler that was installed before it.
"""

import asyncio
import logging
import weakref
from typing import Any

import anyio
import httpx

logger = logging.getLogger(__name__)

TRANSPORT_EXCEPTION_TYPES: tuple[type[BaseException], ...] = (
    ConnectionResetError,
    BrokenPipeError,
    anyio.ClosedResourceError,
    anyio.BrokenResourceError,
    anyio.EndOfStream,
    httpx.RemoteProtocolError,
    httpx.ReadError,
)

TRANSPORT_MESSAGE_PATTERNS: tuple[str, ...] = (
    "terminated",
    "socketerror",
    "socket closed",
    "other side closed",
    "connection reset",
    "peer closed",
    "und_err_socket",
)

_guards: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, TransportErrorGuard]" = (
    weakref.WeakKeyDictionary()
)


def is_transport_error(error: BaseException) -> bool:
    """Whether an exception looks like a transport teardown failure."""
    if isinstance(error, BaseExceptionGroup):
        return all(is_transport_error(e) for e in error.exceptions)
    if isinstance(error, TRANSPORT_EXCEPTION_TYPES):
        return True
    text = f"{type(error).__name__} {error} {getattr(error, 'code', '')}".lower()
    return any(pattern in text for pattern in TRANSPORT_MESSAGE_PATTERNS)


def is_transport_background_error(context: dict[str, Any]) -> bool:
    """Whether a loop exception context was raised by a transport."""
    error = context.get("exception")
    if error is not None:
        return is_transport_error(error)
    message = str(context.get("message", "")).lower()
    return any(pattern in message for pattern in TRANSPORT_MESSAGE_PATTERNS)


class TransportErrorGuard:
    """Loop exception handler suppressing transport background errors."""

    def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop
        self._previous = loop.get_exception_handler()
        self._handler = self._handle
        self._installed = False
        self._owners = 0
        self.suppressed_count = 0

    @property
    def installed(self) -> bool:
        return self._installed

    @property
    def owners(self) -> int:
        return self._owners

    def acquire(self) -> None:
        """Register an owner, installing the handler for the first one."""
        self._owners += 1
        self.install()

    def release(self) -> None:
        """Drop an owner; the handler is uninstalled when the last one leaves."""
        if self._owners == 0:
            return
        self._owners -= 1
        if self._owners == 0:
            self.uninstall()

    def install(self) -> None:
        if self._installed:
            return
        self._previous = self._loop.get_exception_handler()
        self._loop.set_exception_handler(self._handler)
        self._installed = True
        logger.debug("Transport error guard installed")

    def uninstall(self) -> None:
        if not self._installed:
            return
        if self._loop.get_exception_handler() is self._handler:
            self._loop.set_exception_handler(self._previous)
        self._installed = False
        self._owners = 0
        if _guards.get(self._loop) is self:
            del _guards[self._loop]

    def _handle(self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
        if is_transport_background_error(context):
            self.suppressed_count += 1
            error = context.get("exception")
            logger.warning(
                f"Suppressed MCP transport error: {error or context.get('message')}"
            )
            return
        if self._previous is not None:
            self._previous(loop, context)
        else:
            loop.default_exception_handler(context)


def install_transport_error_guard(
    loop: asyncio.AbstractEventLoop | None = None,
) -> TransportErrorGuard:
    """
    Install the guard on a loop, once per loop.

    Every call registers one owner. Owners hand the guard back with
    ``release()``; the handler stays installed until the last one does.

    Args:
        loop: Target loop, defaults to the running loop

    Returns:
        The guard installed on the loop
    """
    loop = loop or asyncio.get_running_loop()
    guard = _guards.get(loop)
    if guard is None:
        guard = TransportErrorGuard(loop)
        _guards[loop] = guard
    guard.acquire()
    return guard
