"""Integration tests against a real stdio MCP server."""

import sys
import textwrap

import pytest

from mcp_fleet.domain.model.connection import ConnectionStatus
from mcp_fleet.domain.model.tool import ToolCall
from mcp_fleet.domain.model.transport import ClientConfig, ProcessTransportConfig
from mcp_fleet.infrastructure.mcp.manager import MCPFleetManager

SERVER_SOURCE = textwrap.dedent(
    """
    from mcp.server.fastmcp import FastMCP

    mcp = FastMCP("echo-server")


    @mcp.tool()
    def echo(text: str) -> str:
        \"\"\"Echo the given text.\"\"\"
        return f"echo: {text}"


    if __name__ == "__main__":
        mcp.run()
    """
)


@pytest.fixture
def echo_server(tmp_path):
    script = tmp_path / "echo_server.py"
    script.write_text(SERVER_SOURCE)
    return ProcessTransportConfig(command=sys.executable, args=[str(script)])


@pytest.mark.integration
class TestStdioFleet:
    """Test the fleet against a spawned FastMCP server."""

    @pytest.mark.asyncio
    async def test_connect_call_disconnect(self, echo_server):
        manager = MCPFleetManager()
        manager.add_server(
            "echo", ClientConfig(transport=echo_server, timeout_ms=30000, max_retries=0)
        )
        try:
            await manager.connect_all()
            connection = manager.get_connection("echo")

            assert connection.status == ConnectionStatus.CONNECTED
            assert connection.state.server_info.name == "echo-server"

            tools = await manager.get_all_tools()
            assert "echo" in tools

            result = await connection.execute_tool(ToolCall(name="echo", arguments={"text": "hi"}))
            assert result.is_error is False
            assert "echo: hi" in result.text
        finally:
            await manager.close()

        assert manager.get_connection("echo").status == ConnectionStatus.DISCONNECTED
