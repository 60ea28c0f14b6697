"""Shared pytest fixtures and factory functions for mcp-discovery tests."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from mcp_discovery.clients import ConnectError, ListError, NotConnectedError
from mcp_discovery.config import StdioTransport, UpstreamConfig
from mcp_discovery.models import CapabilityInfo, ToolCallResult


def make_server(**overrides: Any) -> UpstreamConfig:
	"""Create an UpstreamConfig with sensible defaults, overridable via kwargs."""
	defaults: dict[str, Any] = {
		"id": "server1",
		"name": "Server One",
		"description": "First test server",
		"transport": StdioTransport(command="node", args=("./server1.js",)),
		"tags": ("test", "one"),
		"enabled": True,
	}
	defaults.update(overrides)
	return UpstreamConfig(**defaults)


def make_tool(name: str, description: str | None = None, **overrides: Any) -> CapabilityInfo:
	return CapabilityInfo(name=name, description=description, **overrides)


class FakeClient:
	"""In-memory UpstreamClient that counts calls and can be told to fail."""

	def __init__(
		self,
		server_id: str,
		tools: list[CapabilityInfo] | None = None,
		fail_connect: bool = False,
		fail_list: bool = False,
		fail_close: bool = False,
		connect_delay: float = 0.0,
	) -> None:
		self.server_id = server_id
		self.tools = tools or []
		self.fail_connect = fail_connect
		self.fail_list = fail_list
		self.fail_close = fail_close
		self.connect_delay = connect_delay
		self._connected = False
		self.connect_calls = 0
		self.list_calls = 0
		self.close_calls = 0
		self.invocations: list[tuple[str, dict[str, Any]]] = []

	@property
	def connected(self) -> bool:
		return self._connected

	def drop(self) -> None:
		"""Simulate the transport dying."""
		self._connected = False

	async def connect(self) -> None:
		self.connect_calls += 1
		if self.connect_delay:
			await asyncio.sleep(self.connect_delay)
		if self.fail_connect:
			raise ConnectError(self.server_id, "connection refused")
		self._connected = True

	async def list_capabilities(self) -> list[CapabilityInfo]:
		if not self._connected:
			raise NotConnectedError(self.server_id)
		self.list_calls += 1
		if self.fail_list:
			raise ListError(self.server_id, "tools/list failed: boom")
		return list(self.tools)

	async def invoke(self, name: str, arguments: dict[str, Any]) -> ToolCallResult:
		if not self._connected:
			raise NotConnectedError(self.server_id)
		self.invocations.append((name, arguments))
		return ToolCallResult(content=[{"type": "text", "text": f"{name} ok"}])

	async def close(self) -> None:
		self.close_calls += 1
		self._connected = False
		if self.fail_close:
			raise RuntimeError("close exploded")


class FakeClientFactory:
	"""client_factory for UpstreamRegistry that hands out FakeClients per server id."""

	def __init__(self, **client_kwargs: dict[str, Any]) -> None:
		self.client_kwargs = client_kwargs
		self.created: dict[str, list[FakeClient]] = {}

	def __call__(self, config: UpstreamConfig) -> FakeClient:
		client = FakeClient(config.id, **self.client_kwargs.get(config.id, {}))
		self.created.setdefault(config.id, []).append(client)
		return client

	def latest(self, server_id: str) -> FakeClient:
		return self.created[server_id][-1]


class FakeClock:
	def __init__(self, start: float = 1000.0) -> None:
		self.now = start

	def __call__(self) -> float:
		return self.now

	def advance(self, seconds: float) -> None:
		self.now += seconds


@pytest.fixture()
def clock() -> FakeClock:
	return FakeClock()
