"""Upstream registry: lazy connections, TTL-cached tool lists, unified tool calls.

One ``RegisteredUpstream`` slot exists per enabled upstream. Slots are only
ever updated by whole-value replacement of their ``client`` or ``snapshot``
attribute, so concurrent coroutines working on the same upstream can at worst
duplicate a fetch (last write wins); no locking is needed. Of two racing
connects, the one that finishes second is closed and the stored client kept.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from mcp_discovery.clients import ConnectError, UpstreamClient, create_client
from mcp_discovery.config import DiscoveryConfig, UpstreamConfig
from mcp_discovery.constants import DEFAULT_LIMITS
from mcp_discovery.models import CapabilityInfo, CapabilitySnapshot, ToolCallResult

logger = logging.getLogger(__name__)

ClientFactory = Callable[[UpstreamConfig], UpstreamClient]


async def _close_client(server_id: str, client: UpstreamClient) -> None:
	try:
		await client.close()
	except Exception as exc:
		logger.warning('Error closing client for server "%s": %s', server_id, exc)


class UnknownUpstreamError(LookupError):
	"""The server id is not registered (unknown or disabled)."""

	def __init__(self, server_id: str) -> None:
		super().__init__(f'Unknown server: "{server_id}"')
		self.server_id = server_id


@dataclass
class RegisteredUpstream:
	"""Runtime slot for one enabled upstream."""

	config: UpstreamConfig
	client: UpstreamClient | None = None
	snapshot: CapabilitySnapshot | None = None


class UpstreamRegistry:
	"""Owns the enabled upstreams and their clients and tool caches.

	Lifecycle: construct -> operate -> ``close_all()``.
	"""

	def __init__(
		self,
		servers: Iterable[UpstreamConfig],
		cache_ttl_ms: int = DEFAULT_LIMITS["cache_ttl_ms"],
		client_factory: ClientFactory = create_client,
		clock: Callable[[], float] = time.monotonic,
	) -> None:
		self._ttl_seconds = cache_ttl_ms / 1000.0
		self._client_factory = client_factory
		self._clock = clock
		self._upstreams: dict[str, RegisteredUpstream] = {}
		for server in servers:
			if not server.enabled:
				continue
			if server.id in self._upstreams:
				raise ValueError(f"Duplicate server id: {server.id!r}")
			self._upstreams[server.id] = RegisteredUpstream(config=server)

	@classmethod
	def from_config(cls, config: DiscoveryConfig, **kwargs: Any) -> UpstreamRegistry:
		return cls(config.servers, cache_ttl_ms=config.routing.cache_ttl_ms, **kwargs)

	def _slot(self, server_id: str) -> RegisteredUpstream:
		slot = self._upstreams.get(server_id)
		if slot is None:
			raise UnknownUpstreamError(server_id)
		return slot

	def ids(self) -> list[str]:
		return list(self._upstreams)

	def has_upstream(self, server_id: str) -> bool:
		return server_id in self._upstreams

	def descriptor(self, server_id: str) -> UpstreamConfig | None:
		slot = self._upstreams.get(server_id)
		return slot.config if slot is not None else None

	def all_descriptors(self) -> list[UpstreamConfig]:
		return [slot.config for slot in self._upstreams.values()]

	def snapshot(self, server_id: str) -> CapabilitySnapshot | None:
		"""Return the cached tool snapshot if still fresh, without contacting the upstream."""
		snap = self._slot(server_id).snapshot
		if snap is not None and snap.is_fresh(self._clock(), self._ttl_seconds):
			return snap
		return None

	async def get_client(self, server_id: str) -> UpstreamClient:
		"""Return a connected client, connecting lazily on first use.

		Raises:
			UnknownUpstreamError: If the server is not registered.
			ConnectError: If connecting fails; the upstream stays retryable.
		"""
		slot = self._slot(server_id)
		if slot.client is not None and slot.client.connected:
			return slot.client
		if slot.client is not None:
			# Transport dropped since the last call; release it before reconnecting.
			stale, slot.client = slot.client, None
			await _close_client(server_id, stale)

		client = self._client_factory(slot.config)
		try:
			await client.connect()
		except ConnectError:
			raise
		except Exception as exc:
			raise ConnectError(server_id, f"connect failed: {exc}") from exc

		current = slot.client
		if current is not None and current.connected:
			# A concurrent caller connected first; keep the stored client.
			logger.debug("Discarding duplicate connection to %s", server_id)
			await _close_client(server_id, client)
			return current
		slot.client = client
		if current is not None:
			await _close_client(server_id, current)
		return client

	async def list_capabilities(self, server_id: str) -> tuple[CapabilityInfo, ...]:
		"""List tools for a server, served from cache while the snapshot is fresh.

		A failed fetch propagates and leaves any previous snapshot in place.
		"""
		slot = self._slot(server_id)
		now = self._clock()
		snap = slot.snapshot
		if snap is not None and snap.is_fresh(now, self._ttl_seconds):
			logger.debug("Tool cache hit for %s", server_id)
			return snap.capabilities

		client = await self.get_client(server_id)
		capabilities = tuple(await client.list_capabilities())
		slot.snapshot = CapabilitySnapshot(capabilities=capabilities, fetched_at=now)
		logger.debug("Cached %d tool(s) for %s", len(capabilities), server_id)
		return capabilities

	async def list_all_capabilities(self) -> dict[str, tuple[CapabilityInfo, ...]]:
		"""List tools for every server concurrently; a failing server maps to ()."""
		server_ids = self.ids()
		results = await asyncio.gather(
			*(self.list_capabilities(sid) for sid in server_ids),
			return_exceptions=True,
		)
		out: dict[str, tuple[CapabilityInfo, ...]] = {}
		for server_id, result in zip(server_ids, results):
			if isinstance(result, BaseException):
				if not isinstance(result, Exception):
					raise result
				logger.warning('Failed to list tools for server "%s": %s', server_id, result)
				out[server_id] = ()
			else:
				out[server_id] = result
		return out

	async def invoke(self, server_id: str, tool_name: str, arguments: dict[str, Any]) -> ToolCallResult:
		"""Forward a tool call to its upstream. Errors propagate unchanged, no retry."""
		self._slot(server_id)
		client = await self.get_client(server_id)
		return await client.invoke(tool_name, arguments)

	def invalidate(self, server_id: str | None = None) -> None:
		"""Drop the tool snapshot for one server, or for all servers."""
		if server_id is None:
			for slot in self._upstreams.values():
				slot.snapshot = None
			return
		slot = self._upstreams.get(server_id)
		if slot is not None:
			slot.snapshot = None

	async def close_all(self) -> None:
		"""Close every live client concurrently. Close errors are logged, never raised."""
		clients: list[tuple[str, UpstreamClient]] = []
		for server_id, slot in self._upstreams.items():
			if slot.client is not None:
				clients.append((server_id, slot.client))
				slot.client = None

		await asyncio.gather(*(_close_client(sid, c) for sid, c in clients))
