"""Streamable HTTP transport."""

from __future__ import annotations

from mcp.client.streamable_http import streamablehttp_client

from mcp_discovery.clients.session import McpSessionClient, TransportOpener
from mcp_discovery.config import HttpTransport


def http_opener(transport: HttpTransport) -> TransportOpener:
	return lambda: streamablehttp_client(transport.url, headers=transport.headers)


def create_http_client(server_id: str, transport: HttpTransport) -> McpSessionClient:
	return McpSessionClient(server_id, http_opener(transport))
