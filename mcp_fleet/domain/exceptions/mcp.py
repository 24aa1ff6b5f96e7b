"""
MCP domain exceptions.

Exception hierarchy for the connection and tool-orchestration layer. Every
error carries a stable ``code`` plus the server and tool it relates to, so
callers and observers can route on it without parsing messages.

Exception Hierarchy:
    MCPError (base)
    ├── MCPConnectionError          - Transport or handshake failure
    ├── MCPToolExecutionError       - Tool call failed
    ├── MCPTimeoutError             - Connect attempt or tool call timed out
    ├── MCPServerAlreadyExistsError - Server id already registered
    └── MCPServerNotFoundError      - Server id unknown
"""

from typing import Any


class MCPError(Exception):
    """Base exception for all MCP-related errors."""

    code = "MCP_ERROR"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        server_id: str | None = None,
        tool_name: str | None = None,
        original_error: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.server_id = server_id
        self.tool_name = tool_name
        self.original_error = original_error

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        result: dict[str, Any] = {
            "name": type(self).__name__,
            "message": self.message,
            "code": self.code,
        }
        if self.server_id is not None:
            result["server_id"] = self.server_id
        if self.tool_name is not None:
            result["tool_name"] = self.tool_name
        if self.original_error is not None:
            result["cause"] = str(self.original_error)
        return result


class MCPConnectionError(MCPError):
    """Raised when a server cannot be reached or is not connected."""

    code = "CONNECTION_ERROR"


class MCPToolExecutionError(MCPError):
    """Raised when a tool call fails on the server or transport."""

    code = "TOOL_EXECUTION_ERROR"


class MCPTimeoutError(MCPError, TimeoutError):
    """Raised when a connect attempt or tool call exceeds its deadline."""

    code = "TIMEOUT_ERROR"


class MCPServerAlreadyExistsError(MCPError):
    """Raised when registering a server id that is already present."""

    code = "DUPLICATE_SERVER"

    def __init__(self, server_id: str, message: str | None = None) -> None:
        super().__init__(
            message or f"Server with ID {server_id} already exists",
            server_id=server_id,
        )


class MCPServerNotFoundError(MCPError):
    """Raised when an operation targets an unknown server id."""

    code = "SERVER_NOT_FOUND"

    def __init__(self, server_id: str, message: str | None = None) -> None:
        super().__init__(
            message or f"Server with ID {server_id} not found",
            server_id=server_id,
        )
