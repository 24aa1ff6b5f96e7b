"""
SSE transport for MCP.

Connects to a remote MCP server over Server-Sent Events via the official SDK.
"""

import contextlib
import logging
from typing import Any

from mcp.client.sse import sse_client

from mcp_fleet.domain.model.transport import RemoteTransportConfig
from mcp_fleet.infrastructure.mcp.transport.base import BaseTransport

logger = logging.getLogger(__name__)

# Idle read timeout of the event stream, in seconds
DEFAULT_SSE_READ_TIMEOUT = 300.0


class SSETransport(BaseTransport):
    """MCP transport using Server-Sent Events."""

    def __init__(
        self,
        config: RemoteTransportConfig,
        timeout: float = 30.0,
        sse_read_timeout: float = DEFAULT_SSE_READ_TIMEOUT,
    ) -> None:
        super().__init__(config)
        self._remote_config = config
        self._timeout = timeout
        self._sse_read_timeout = sse_read_timeout

    def describe(self) -> str:
        return self._remote_config.url

    def _open_streams(self) -> contextlib.AbstractAsyncContextManager[Any]:
        config = self._remote_config
        logger.info(f"Connecting to remote MCP server: {config.url}")
        return sse_client(
            config.url,
            headers=dict(config.headers) or None,
            timeout=self._timeout,
            sse_read_timeout=self._sse_read_timeout,
        )
