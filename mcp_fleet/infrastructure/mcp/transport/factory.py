"""
Transport factory for MCP.

Creates transport handles from transport configuration, dispatching on the
config's ``type`` tag.
"""

import logging

from mcp_fleet.domain.model.transport import ProcessTransportConfig, RemoteTransportConfig
from mcp_fleet.infrastructure.mcp.transport.base import BaseTransport, MCPTransportError

logger = logging.getLogger(__name__)


class TransportFactory:
    """
    Factory for creating MCP transport instances.

    Implementations are registered per transport type; the built-in stdio
    and SSE transports are registered lazily on first use.
    """

    _transports: dict[str, type[BaseTransport]] = {}

    @classmethod
    def register(cls, transport_type: str, transport_class: type[BaseTransport]) -> None:
        """
        Register a transport implementation.

        Args:
            transport_type: Value of the config ``type`` tag.
            transport_class: Transport class implementing BaseTransport.
        """
        cls._transports[transport_type] = transport_class
        logger.debug(f"Registered transport: {transport_type} -> {transport_class.__name__}")

    @classmethod
    def create(cls, config: ProcessTransportConfig | RemoteTransportConfig) -> BaseTransport:
        """
        Create an unstarted transport from configuration.

        Raises:
            MCPTransportError: If transport type is not supported.
        """
        cls._lazy_register()
        transport_class = cls._transports.get(config.type)
        if not transport_class:
            raise MCPTransportError(
                f"Unsupported transport type: {config.type}. "
                f"Supported types: {cls.get_supported_types()}"
            )
        return transport_class(config)

    @classmethod
    def supports(cls, transport_type: str) -> bool:
        cls._lazy_register()
        return transport_type in cls._transports

    @classmethod
    def get_supported_types(cls) -> list[str]:
        cls._lazy_register()
        return sorted(cls._transports)

    @classmethod
    def _lazy_register(cls) -> None:
        """Register built-in transports if not already registered."""
        if "stdio" not in cls._transports:
            from mcp_fleet.infrastructure.mcp.transport.stdio import StdioTransport

            cls._transports["stdio"] = StdioTransport
        if "sse" not in cls._transports:
            from mcp_fleet.infrastructure.mcp.transport.sse import SSETransport

            cls._transports["sse"] = SSETransport


async def open_transport(config: ProcessTransportConfig | RemoteTransportConfig) -> BaseTransport:
    """
    Default transport factory: create, start and return an initialized handle.

    If starting fails or is cancelled, the partially opened transport is closed.
    """
    transport = TransportFactory.create(config)
    try:
        await transport.start()
    except BaseException:
        await transport.close()
        raise
    return transport
