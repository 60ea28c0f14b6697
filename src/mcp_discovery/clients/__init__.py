"""Upstream MCP clients for mcp-discovery."""

from __future__ import annotations

from mcp_discovery.clients.base import (
	ClientState,
	ConnectError,
	InvokeError,
	ListError,
	NotConnectedError,
	UpstreamClient,
	UpstreamError,
)
from mcp_discovery.clients.streamable_http import create_http_client
from mcp_discovery.clients.session import McpSessionClient
from mcp_discovery.clients.stdio import create_stdio_client
from mcp_discovery.config import HttpTransport, StdioTransport, UpstreamConfig


def create_client(config: UpstreamConfig) -> UpstreamClient:
	"""Build an unconnected client for the upstream's transport type."""
	transport = config.transport
	if isinstance(transport, StdioTransport):
		return create_stdio_client(config.id, transport)
	if isinstance(transport, HttpTransport):
		return create_http_client(config.id, transport)
	raise ValueError(f'Unknown transport type for server "{config.id}"')


__all__ = [
	"ClientState",
	"ConnectError",
	"InvokeError",
	"ListError",
	"McpSessionClient",
	"NotConnectedError",
	"UpstreamClient",
	"UpstreamError",
	"create_client",
]
