from mcp_fleet.domain.exceptions.mcp import (
    MCPConnectionError,
    MCPError,
    MCPServerAlreadyExistsError,
    MCPServerNotFoundError,
    MCPTimeoutError,
    MCPToolExecutionError,
)

__all__ = [
    "MCPError",
    "MCPConnectionError",
    "MCPToolExecutionError",
    "MCPTimeoutError",
    "MCPServerAlreadyExistsError",
    "MCPServerNotFoundError",
]
