"""
Stdio transport for MCP.

Spawns an MCP server as a subprocess and speaks to it over stdin/stdout via
the official SDK.
"""

import contextlib
import logging
import os
from typing import Any

from mcp import StdioServerParameters
from mcp.client.stdio import stdio_client

from mcp_fleet.domain.model.transport import ProcessTransportConfig
from mcp_fleet.infrastructure.mcp.transport.base import BaseTransport

logger = logging.getLogger(__name__)


class StdioTransport(BaseTransport):
    """MCP transport using stdio (subprocess communication)."""

    def __init__(self, config: ProcessTransportConfig) -> None:
        super().__init__(config)
        self._process_config = config

    def describe(self) -> str:
        return self._process_config.endpoint

    def _open_streams(self) -> contextlib.AbstractAsyncContextManager[Any]:
        config = self._process_config
        env = None
        if config.env:
            env = {**os.environ, **config.env}
        logger.info(f"Starting MCP server: {config.endpoint}")
        params = StdioServerParameters(
            command=config.command,
            args=list(config.args),
            env=env,
            cwd=config.cwd,
        )
        return stdio_client(params)
