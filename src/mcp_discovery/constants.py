"""Centralized scoring weights and default limits."""

from __future__ import annotations

SERVER_NAME = "mcp-discovery"
SERVER_VERSION = "1.0.0"

# Ranking weights (upstream metadata match, tool match)
RANKING_WEIGHTS: tuple[float, float] = (0.4, 0.6)

# Credit for a query token that only matches a target token by substring
PARTIAL_MATCH_CREDIT: float = 0.5

# Matched tokens reported per clause of a ranking reason
MAX_REASON_MATCHES: int = 3

DEFAULT_LIMITS: dict[str, int] = {
	"max_results": 5,
	"cache_ttl_ms": 60_000,
}
