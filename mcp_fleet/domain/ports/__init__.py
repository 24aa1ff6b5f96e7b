from mcp_fleet.domain.ports.transport_port import MCPTransportPort, TransportFactoryPort

__all__ = ["MCPTransportPort", "TransportFactoryPort"]
