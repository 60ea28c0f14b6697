"""Data models for upstream capabilities and routing results."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class CapabilityInfo:
	"""A tool advertised by an upstream MCP server."""

	name: str
	title: str | None = None
	description: str | None = None
	input_schema: dict[str, Any] | None = None


@dataclass(frozen=True)
class CapabilitySnapshot:
	"""Captured tool list of one upstream plus the monotonic time it was fetched."""

	capabilities: tuple[CapabilityInfo, ...] = ()
	fetched_at: float = 0.0

	def is_fresh(self, now: float, ttl_seconds: float) -> bool:
		return now - self.fetched_at < ttl_seconds


@dataclass
class ToolCallResult:
	"""Result of a tool call forwarded to an upstream.

	``content`` holds the upstream's content blocks unchanged.
	"""

	content: list[Any] = field(default_factory=list)
	is_error: bool = False


@dataclass
class RankedCandidate:
	"""A tool suggested for a free-text query."""

	server_id: str
	server_name: str
	tool_name: str
	tool_description: str | None = None
	score: float = 0.0
	reason: str = ""

	def to_dict(self) -> dict[str, Any]:
		return {
			"serverId": self.server_id,
			"serverName": self.server_name,
			"toolName": self.tool_name,
			"toolDescription": self.tool_description,
			"score": self.score,
			"reason": self.reason,
		}
