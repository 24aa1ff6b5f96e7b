"""MCP Fleet domain layer."""
