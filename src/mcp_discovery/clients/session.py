"""Upstream client backed by an ``mcp.ClientSession``.

The SDK transports are anyio context managers whose cancel scopes must be
exited by the task that entered them. Each client therefore keeps its
session open inside a dedicated runner task, which enters the transport,
initializes the session, signals readiness and then parks on a stop event
until ``close()`` is called. ``close()`` may be awaited from any task.

Upstream messages reach the session through a relay task. When the upstream's
read stream ends (process exit, EOF, dropped HTTP stream) the relay moves the
client back to DISCONNECTED and wakes the runner, so the registry reconnects
on next use instead of reusing a dead session.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from typing import Any

import anyio
from mcp import ClientSession
from mcp import types as mcp_types

from mcp_discovery.clients.base import (
	ClientState,
	ConnectError,
	InvokeError,
	ListError,
	NotConnectedError,
)
from mcp_discovery.constants import SERVER_NAME, SERVER_VERSION
from mcp_discovery.models import CapabilityInfo, ToolCallResult

logger = logging.getLogger(__name__)

# Yields (read_stream, write_stream, ...); extra items are transport specific.
TransportOpener = Callable[[], AbstractAsyncContextManager[tuple[Any, ...]]]

CLIENT_INFO = mcp_types.Implementation(name=SERVER_NAME, version=SERVER_VERSION)


def _to_capability(tool: mcp_types.Tool) -> CapabilityInfo:
	return CapabilityInfo(
		name=tool.name,
		title=getattr(tool, "title", None),
		description=tool.description,
		input_schema=dict(tool.inputSchema) if tool.inputSchema is not None else None,
	)


class McpSessionClient:
	"""A single upstream connection; the transport is chosen by ``opener``."""

	def __init__(self, server_id: str, opener: TransportOpener) -> None:
		self.server_id = server_id
		self._opener = opener
		self._state = ClientState.DISCONNECTED
		self._session: ClientSession | None = None
		self._runner: asyncio.Task[None] | None = None
		self._stop: asyncio.Event = asyncio.Event()

	@property
	def state(self) -> ClientState:
		return self._state

	@property
	def connected(self) -> bool:
		return self._state is ClientState.CONNECTED and self._session is not None

	async def connect(self) -> None:
		if self._state is ClientState.CLOSED:
			raise ConnectError(self.server_id, "client is closed")
		if self.connected:
			return

		ready: asyncio.Future[None] = asyncio.get_running_loop().create_future()
		self._stop = asyncio.Event()
		self._runner = asyncio.create_task(
			self._run(ready), name=f"mcp-upstream-{self.server_id}",
		)
		try:
			await ready
		except asyncio.CancelledError:
			self._stop.set()
			raise
		except Exception as exc:
			self._runner = None
			raise ConnectError(
				self.server_id,
				f'Failed to connect to server "{self.server_id}": {exc}',
			) from exc
		logger.info("Connected to upstream %s", self.server_id)

	async def _relay(self, source: Any, sink: Any, stop: asyncio.Event) -> None:
		try:
			async with sink:
				async for message in source:
					await sink.send(message)
		except (anyio.ClosedResourceError, anyio.BrokenResourceError) as exc:
			logger.debug("Relay for upstream %s stopped: %r", self.server_id, exc)
		except Exception as exc:
			logger.warning("Reading from upstream %s failed: %s", self.server_id, exc)

		if self._state is ClientState.CONNECTED:
			logger.warning("Upstream %s transport closed", self.server_id)
			self._state = ClientState.DISCONNECTED
		stop.set()

	async def _run(self, ready: asyncio.Future[None]) -> None:
		stop = self._stop
		try:
			async with self._opener() as streams:
				read_stream, write_stream = streams[0], streams[1]
				relay_send, relay_receive = anyio.create_memory_object_stream(0)
				relay = asyncio.create_task(
					self._relay(read_stream, relay_send, stop), name=f"mcp-relay-{self.server_id}",
				)
				try:
					async with ClientSession(relay_receive, write_stream, client_info=CLIENT_INFO) as session:
						await session.initialize()
						if stop.is_set():
							raise ConnectionError("upstream closed during initialization")
						self._session = session
						self._state = ClientState.CONNECTED
						ready.set_result(None)
						await stop.wait()
				finally:
					relay.cancel()
					await asyncio.wait({relay})
		except Exception as exc:
			if not ready.done():
				ready.set_exception(exc)
			else:
				logger.warning("Upstream %s session ended: %s", self.server_id, exc)
		finally:
			self._session = None
			if self._state is ClientState.CONNECTED:
				self._state = ClientState.DISCONNECTED
			if not ready.done():
				ready.set_exception(ConnectionError("session ended before initialization"))

	def _require_session(self) -> ClientSession:
		if not self.connected or self._session is None:
			raise NotConnectedError(self.server_id)
		return self._session

	async def list_capabilities(self) -> list[CapabilityInfo]:
		session = self._require_session()
		tools: list[mcp_types.Tool] = []
		cursor: str | None = None
		try:
			while True:
				result = await session.list_tools(cursor) if cursor else await session.list_tools()
				tools.extend(result.tools)
				cursor = result.nextCursor
				if not cursor:
					break
		except Exception as exc:
			raise ListError(self.server_id, f"tools/list failed: {exc}") from exc
		return [_to_capability(t) for t in tools]

	async def invoke(self, name: str, arguments: dict[str, Any]) -> ToolCallResult:
		session = self._require_session()
		try:
			result = await session.call_tool(name, arguments)
		except Exception as exc:
			raise InvokeError(self.server_id, f'tools/call "{name}" failed: {exc}') from exc
		return ToolCallResult(content=list(result.content), is_error=bool(result.isError))

	async def close(self) -> None:
		self._state = ClientState.CLOSED
		self._stop.set()
		runner, self._runner = self._runner, None
		if runner is None or runner.done():
			return
		try:
			await runner
		except Exception as exc:
			logger.warning("Error closing upstream %s: %s", self.server_id, exc)
		logger.info("Closed upstream %s", self.server_id)
