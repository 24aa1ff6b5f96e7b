"""
MCP Tool Domain Models.

Defines tool definitions discovered from servers, tool calls, results, and
the registry entries handed to tool-calling loops.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ToolDefinition:
    """
    Tool exposed by one MCP server.

    ``name`` is unique within a server; ``input_schema`` is the JSON Schema
    of the tool's arguments.
    """

    name: str
    description: str | None = None
    input_schema: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary (MCP protocol format)."""
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ToolDefinition":
        """Create from dictionary (MCP protocol format)."""
        return cls(
            name=data.get("name", ""),
            description=data.get("description"),
            input_schema=data.get("inputSchema", data.get("input_schema", {})) or {},
        )


@dataclass(frozen=True)
class ToolCall:
    """A request to invoke one tool with arguments."""

    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass
class ToolResult:
    """Result of a tool call: content blocks plus the server's error flag."""

    content: list[dict[str, Any]] = field(default_factory=list)
    is_error: bool = False

    @property
    def text(self) -> str:
        """Concatenated text of all text content blocks."""
        return "\n".join(
            block.get("text", "") for block in self.content if block.get("type") == "text"
        )

    def to_dict(self) -> dict[str, Any]:
        return {"content": self.content, "isError": self.is_error}


ToolExecutor = Callable[[ToolCall], Awaitable[ToolResult]]


@dataclass(frozen=True)
class RegisteredTool:
    """
    Callable tool entry in a merged tool registry.

    Calling ``execute`` routes the invocation back to the owning server's
    connection.
    """

    name: str
    description: str | None
    parameters: dict[str, Any]
    server_id: str
    executor: ToolExecutor = field(repr=False, compare=False)

    async def execute(self, **arguments: Any) -> ToolResult:
        return await self.executor(ToolCall(name=self.name, arguments=arguments))

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
            "server_id": self.server_id,
        }
