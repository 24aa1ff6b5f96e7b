"""MCP Fleet infrastructure layer."""
