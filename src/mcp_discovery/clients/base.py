"""Contract shared by all upstream MCP client variants."""

from __future__ import annotations

from enum import Enum
from typing import Any, Protocol

from mcp_discovery.models import CapabilityInfo, ToolCallResult


class ClientState(Enum):
	DISCONNECTED = "disconnected"
	CONNECTED = "connected"
	CLOSED = "closed"


class UpstreamError(RuntimeError):
	"""Failure talking to an upstream, tagged with its server id."""

	def __init__(self, server_id: str, message: str) -> None:
		super().__init__(f'[{server_id}] {message}')
		self.server_id = server_id


class ConnectError(UpstreamError):
	pass


class ListError(UpstreamError):
	pass


class InvokeError(UpstreamError):
	pass


class NotConnectedError(UpstreamError):
	def __init__(self, server_id: str) -> None:
		super().__init__(server_id, f'Client not connected for server "{server_id}"')


class UpstreamClient(Protocol):
	"""One live connection to an upstream MCP server.

	Lifecycle: DISCONNECTED -> CONNECTED -> CLOSED. ``list_capabilities`` and
	``invoke`` require CONNECTED and raise NotConnectedError otherwise.
	``close`` is best effort and never raises.
	"""

	server_id: str

	@property
	def connected(self) -> bool:
		...

	async def connect(self) -> None:
		...

	async def list_capabilities(self) -> list[CapabilityInfo]:
		...

	async def invoke(self, name: str, arguments: dict[str, Any]) -> ToolCallResult:
		...

	async def close(self) -> None:
		...
