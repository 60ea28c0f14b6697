"""Stdio transport -- spawns the upstream as a subprocess."""

from __future__ import annotations

import os

from mcp import StdioServerParameters
from mcp.client.stdio import stdio_client

from mcp_discovery.clients.session import McpSessionClient, TransportOpener
from mcp_discovery.config import StdioTransport


def stdio_opener(transport: StdioTransport) -> TransportOpener:
	# Configured env is layered over the current environment, not a replacement for it.
	env = {**os.environ, **(transport.env or {})}
	params = StdioServerParameters(
		command=transport.command,
		args=list(transport.args),
		env=env,
		cwd=os.path.expanduser(transport.cwd) if transport.cwd else os.getcwd(),
	)
	return lambda: stdio_client(params)


def create_stdio_client(server_id: str, transport: StdioTransport) -> McpSessionClient:
	return McpSessionClient(server_id, stdio_opener(transport))
