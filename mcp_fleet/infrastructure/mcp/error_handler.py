"""MCP error handling and classification.

Classifies raw failures from connections and tool calls into error codes with
a retry strategy, user-friendly messages and backoff delays.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, TypeVar

import httpx

from mcp_fleet.domain.exceptions.mcp import MCPError, MCPTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class MCPErrorCode(str, Enum):
    """Classification of MCP errors for handling strategy."""

    # Transient - auto-retry eligible
    CONNECTION_TIMEOUT = "connection_timeout"
    NETWORK_ERROR = "network_error"
    RATE_LIMITED = "rate_limited"

    # Retryable but needs a human
    SERVER_ERROR = "server_error"

    # Not retryable
    CONNECTION_REFUSED = "connection_refused"
    AUTHENTICATION_FAILED = "authentication_failed"
    PERMISSION_DENIED = "permission_denied"
    TOOL_NOT_FOUND = "tool_not_found"
    INVALID_ARGUMENTS = "invalid_arguments"

    UNKNOWN = "unknown"


ERROR_MESSAGES: dict[MCPErrorCode, str] = {
    MCPErrorCode.CONNECTION_TIMEOUT: "Connection to MCP server timed out",
    MCPErrorCode.CONNECTION_REFUSED: "MCP server refused connection",
    MCPErrorCode.AUTHENTICATION_FAILED: "Authentication failed for MCP server",
    MCPErrorCode.PERMISSION_DENIED: "Permission denied accessing MCP server",
    MCPErrorCode.RATE_LIMITED: "Rate limited by MCP server",
    MCPErrorCode.TOOL_NOT_FOUND: "Requested tool not found on MCP server",
    MCPErrorCode.INVALID_ARGUMENTS: "Invalid arguments provided to tool",
    MCPErrorCode.NETWORK_ERROR: "Network error connecting to MCP server",
    MCPErrorCode.SERVER_ERROR: "MCP server returned an error",
    MCPErrorCode.UNKNOWN: "An unknown error occurred",
}

TOOL_ERROR_MESSAGES: dict[MCPErrorCode, str] = {
    MCPErrorCode.TOOL_NOT_FOUND: "Tool not available on this server",
    MCPErrorCode.INVALID_ARGUMENTS: "Invalid parameters provided",
    MCPErrorCode.PERMISSION_DENIED: "Insufficient permissions",
    MCPErrorCode.CONNECTION_TIMEOUT: "Operation took too long",
}

RETRYABLE_CODES = frozenset(
    {
        MCPErrorCode.CONNECTION_TIMEOUT,
        MCPErrorCode.NETWORK_ERROR,
        MCPErrorCode.SERVER_ERROR,
        MCPErrorCode.RATE_LIMITED,
    }
)

TRANSIENT_CODES = frozenset(
    {
        MCPErrorCode.CONNECTION_TIMEOUT,
        MCPErrorCode.NETWORK_ERROR,
        MCPErrorCode.RATE_LIMITED,
    }
)

# Escalating backoff table, indexed by retry count and capped at the last entry
RETRY_DELAYS_MS: tuple[int, ...] = (1000, 2000, 4000, 8000)


def get_retry_delay(retry_count: int) -> float:
    """Backoff delay in seconds for a retry count."""
    index = min(max(retry_count, 0), len(RETRY_DELAYS_MS) - 1)
    return RETRY_DELAYS_MS[index] / 1000.0


@dataclass
class ClassifiedError:
    """
    Structured classification of one failure.

    Carries the policy flags callers need to decide whether to retry.
    """

    code: MCPErrorCode
    message: str
    server_id: str | None = None
    tool_name: str | None = None
    retry_count: int = 0
    timestamp: datetime = field(default_factory=datetime.now)
    original_error: BaseException | None = None

    @property
    def is_retryable(self) -> bool:
        return self.code in RETRYABLE_CODES

    @property
    def is_transient(self) -> bool:
        return self.code in TRANSIENT_CODES

    @property
    def retry_delay(self) -> float:
        return get_retry_delay(self.retry_count)

    def get_user_message(self, server_name: str | None = None) -> str:
        """Get user-friendly error message."""
        base = ERROR_MESSAGES.get(self.code, ERROR_MESSAGES[MCPErrorCode.UNKNOWN])
        if server_name:
            return f"{base}: {server_name}"
        return base

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "code": self.code.value,
            "message": self.message,
            "server_id": self.server_id,
            "tool_name": self.tool_name,
            "retry_count": self.retry_count,
            "is_retryable": self.is_retryable,
            "is_transient": self.is_transient,
            "timestamp": self.timestamp.isoformat(),
        }


class MCPErrorClassifier:
    """
    Classify raw errors into MCP error codes.

    Message patterns are checked in order; the first matching group wins.
    """

    TIMEOUT_PATTERNS = [
        "timeout",
        "timed out",
        "deadline exceeded",
    ]

    REFUSED_PATTERNS = [
        "refused",
        "econnrefused",
    ]

    AUTH_PATTERNS = [
        "auth",
        "401",
    ]

    PERMISSION_PATTERNS = [
        "permission",
        "forbidden",
        "access denied",
        "403",
    ]

    RATE_LIMIT_PATTERNS = [
        "rate limit",
        "too many requests",
        "429",
    ]

    NOT_FOUND_PATTERNS = [
        "not found",
        "unknown tool",
    ]

    INVALID_PATTERNS = [
        "invalid",
        "validation",
    ]

    NETWORK_PATTERNS = [
        "network",
        "connection reset",
        "econnreset",
        "socket",
        "unreachable",
        "name or service not known",
    ]

    SERVER_ERROR_PATTERNS = [
        "internal server error",
        "server error",
        "bad gateway",
        "service unavailable",
    ]

    _ORDERED = (
        ("TIMEOUT_PATTERNS", MCPErrorCode.CONNECTION_TIMEOUT),
        ("REFUSED_PATTERNS", MCPErrorCode.CONNECTION_REFUSED),
        ("AUTH_PATTERNS", MCPErrorCode.AUTHENTICATION_FAILED),
        ("PERMISSION_PATTERNS", MCPErrorCode.PERMISSION_DENIED),
        ("RATE_LIMIT_PATTERNS", MCPErrorCode.RATE_LIMITED),
        ("NOT_FOUND_PATTERNS", MCPErrorCode.TOOL_NOT_FOUND),
        ("INVALID_PATTERNS", MCPErrorCode.INVALID_ARGUMENTS),
        ("NETWORK_PATTERNS", MCPErrorCode.NETWORK_ERROR),
        ("SERVER_ERROR_PATTERNS", MCPErrorCode.SERVER_ERROR),
    )

    @classmethod
    def get_error_code(cls, error: BaseException) -> MCPErrorCode:
        """Map an error to its code from its message, then from its type."""
        error_message = str(error).lower()
        for attr, code in cls._ORDERED:
            if any(pattern in error_message for pattern in getattr(cls, attr)):
                return code
        return cls._code_from_type(error)

    @classmethod
    def _code_from_type(cls, error: BaseException) -> MCPErrorCode:
        if isinstance(error, httpx.HTTPStatusError):
            status = error.response.status_code
            if status == 401:
                return MCPErrorCode.AUTHENTICATION_FAILED
            if status == 403:
                return MCPErrorCode.PERMISSION_DENIED
            if status == 404:
                return MCPErrorCode.TOOL_NOT_FOUND
            if status == 429:
                return MCPErrorCode.RATE_LIMITED
            if status >= 500:
                return MCPErrorCode.SERVER_ERROR
        if isinstance(error, (TimeoutError, httpx.TimeoutException)):
            return MCPErrorCode.CONNECTION_TIMEOUT
        if isinstance(error, ConnectionRefusedError):
            return MCPErrorCode.CONNECTION_REFUSED
        if isinstance(error, (ConnectionError, httpx.TransportError)):
            return MCPErrorCode.NETWORK_ERROR
        cause = getattr(error, "original_error", None) or error.__cause__
        if cause is not None and cause is not error:
            return cls.get_error_code(cause)
        return MCPErrorCode.UNKNOWN

    @classmethod
    def classify(
        cls,
        error: BaseException,
        server_id: str | None = None,
        tool_name: str | None = None,
        retry_count: int = 0,
    ) -> ClassifiedError:
        """
        Classify an error into a ClassifiedError.

        Args:
            error: The exception that occurred
            server_id: Server the error relates to
            tool_name: Tool being executed, if any
            retry_count: Retries already performed

        Returns:
            ClassifiedError with code and retry strategy
        """
        if isinstance(error, MCPError):
            server_id = server_id or error.server_id
            tool_name = tool_name or error.tool_name
        return ClassifiedError(
            code=cls.get_error_code(error),
            message=str(error),
            server_id=server_id,
            tool_name=tool_name,
            retry_count=retry_count,
            original_error=error,
        )


def should_retry(code: MCPErrorCode) -> bool:
    return code in RETRYABLE_CODES


def is_transient_error(code: MCPErrorCode) -> bool:
    return code in TRANSIENT_CODES


def get_tool_error_message(code: MCPErrorCode) -> str:
    return TOOL_ERROR_MESSAGES.get(code, "Execution failed")


def handle_connection_error(
    error: BaseException,
    server_id: str,
    server_name: str,
    retry_callback: Callable[[ClassifiedError], None] | None = None,
    retry_count: int = 0,
) -> ClassifiedError:
    """
    Handle an exhausted connection failure.

    Logs the classified error and, for retryable transient codes, hands the
    classification to ``retry_callback`` so the caller can schedule a
    reconnect.

    Returns:
        The classification of ``error``
    """
    classified = MCPErrorClassifier.classify(error, server_id=server_id, retry_count=retry_count)
    logger.error(
        f"MCP Connection Error [{server_id}]: {classified.get_user_message(server_name)} "
        f"({classified.code.value}: {classified.message})"
    )

    if retry_callback is not None and classified.is_retryable and classified.is_transient:
        logger.info(f"Scheduling reconnect for MCP server {server_id} ({classified.code.value})")
        retry_callback(classified)

    return classified


def handle_tool_execution_error(
    error: BaseException,
    tool_name: str,
    server_name: str,
) -> ClassifiedError:
    """Handle a failed tool call; returns the classification."""
    classified = MCPErrorClassifier.classify(error, tool_name=tool_name)
    message = (
        f'Tool "{tool_name}" failed on {server_name}: {get_tool_error_message(classified.code)}'
    )
    if classified.is_transient:
        logger.warning(f"MCP Tool Execution Error [{tool_name}]: {message} ({error})")
    else:
        logger.error(f"MCP Tool Execution Error [{tool_name}]: {message} ({error})")
    return classified


def handle_timeout_error(error: BaseException, context: str) -> ClassifiedError:
    logger.warning(f"MCP Timeout Error: Operation timed out: {context} ({error})")
    return MCPErrorClassifier.classify(error)


def handle_general_error(error: BaseException, context: str | None = None) -> ClassifiedError:
    """Log any MCP error with optional context; returns the classification."""
    if context:
        logger.error(f"MCP Error in {context}: {error}")
    else:
        logger.error(f"MCP Error: {error}")
    return MCPErrorClassifier.classify(error)


async def with_error_boundary(
    operation: Callable[[], Awaitable[T]],
    context: str,
    fallback: T | None = None,
) -> T | None:
    """
    Await ``operation`` and return ``fallback`` if it fails.

    Failures are logged through the general error handler.
    """
    try:
        return await operation()
    except asyncio.CancelledError:
        raise
    except Exception as e:
        handle_general_error(e, context)
        return fallback


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    context: str | None = None,
    retry_on: Callable[[BaseException], bool] | None = None,
) -> T:
    """
    Await ``operation``, retrying failures with the escalating delay table.

    Args:
        operation: Zero-argument coroutine function to run
        max_retries: Retries after the first attempt
        context: Label used in log messages
        retry_on: Predicate selecting retryable errors; defaults to retryable codes

    Raises:
        The last error once retries are exhausted or the error is not retryable
    """
    if retry_on is None:

        def retry_on(error: BaseException) -> bool:
            return should_retry(MCPErrorClassifier.get_error_code(error))

    attempt = 0
    while True:
        try:
            return await operation()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if attempt >= max_retries or not retry_on(e):
                raise
            delay = get_retry_delay(attempt)
            attempt += 1
            logger.warning(
                f"Retry attempt {attempt}/{max_retries} for {context or 'operation'} "
                f"in {delay:.1f}s: {e}"
            )
            await asyncio.sleep(delay)


def get_error_reporting_data(
    error: BaseException,
    context: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Structured error payload for telemetry."""
    data: dict[str, Any] = {
        "error_type": type(error).__name__,
        "error_message": str(error),
        "error_code": MCPErrorClassifier.get_error_code(error).value,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if isinstance(error, MCPError):
        data["mcp_code"] = error.code
        if error.server_id:
            data["server_id"] = error.server_id
        if error.tool_name:
            data["tool_name"] = error.tool_name
    if isinstance(error, MCPTimeoutError):
        data["timed_out"] = True
    if context:
        data["context"] = context
    return data
