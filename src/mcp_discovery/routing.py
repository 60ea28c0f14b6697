"""Lexical ranking of upstream tools against a free-text query.

Scores are token overlaps between the query and two targets: the server's
name, description and tags, and the tool's name, title and description.
Ranking is pure and deterministic; the ``reason`` on every candidate lists
the tokens that matched so a human can audit the order.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping, Sequence

from mcp_discovery.config import UpstreamConfig
from mcp_discovery.constants import (
	DEFAULT_LIMITS,
	MAX_REASON_MATCHES,
	PARTIAL_MATCH_CREDIT,
	RANKING_WEIGHTS,
)
from mcp_discovery.models import CapabilityInfo, RankedCandidate

_TOKEN_SPLIT_RE = re.compile(r"[\s\-_.,;:!?()\[\]{}'\"/\\]+")


def tokenize(text: str) -> list[str]:
	"""Lowercase and split on whitespace/punctuation, dropping empties."""
	return [t for t in _TOKEN_SPLIT_RE.split(text.lower()) if t]


def _token_set(*parts: str | None) -> dict[str, None]:
	# Insertion-ordered set so "first matching token" is deterministic.
	return dict.fromkeys(tokenize(" ".join(p for p in parts if p)))


def _first_match(query_token: str, targets: dict[str, None]) -> str | None:
	for target in targets:
		if target == query_token or query_token in target or target in query_token:
			return target
	return None


def overlap_score(query_tokens: Sequence[str], targets: dict[str, None]) -> float:
	"""Exact token match earns 1.0, a substring match in either direction earns 0.5.

	Returns the mean credit over query tokens, in [0, 1].
	"""
	if not query_tokens or not targets:
		return 0.0

	credit = 0.0
	for qt in query_tokens:
		if qt in targets:
			credit += 1.0
		elif _first_match(qt, targets) is not None:
			credit += PARTIAL_MATCH_CREDIT
	return credit / len(query_tokens)


def _build_reason(
	query_tokens: Sequence[str],
	server_tokens: dict[str, None],
	tool_tokens: dict[str, None],
) -> str:
	server_matches: dict[str, None] = {}
	tool_matches: dict[str, None] = {}
	for qt in query_tokens:
		hit = _first_match(qt, server_tokens)
		if hit is not None:
			server_matches[hit] = None
		hit = _first_match(qt, tool_tokens)
		if hit is not None:
			tool_matches[hit] = None

	parts: list[str] = []
	if server_matches:
		parts.append("server matches: " + ", ".join(list(server_matches)[:MAX_REASON_MATCHES]))
	if tool_matches:
		parts.append("tool matches: " + ", ".join(list(tool_matches)[:MAX_REASON_MATCHES]))
	return "; ".join(parts) if parts else "low relevance match"


def _round_score(value: float) -> float:
	# Half-up, not banker's rounding.
	return math.floor(value * 100 + 0.5) / 100


def rank_capabilities(
	query: str,
	capabilities_by_server: Mapping[str, Sequence[CapabilityInfo]],
	configs_by_server: Mapping[str, UpstreamConfig],
	limit: int = DEFAULT_LIMITS["max_results"],
) -> list[RankedCandidate]:
	"""Rank tools across all servers by relevance to ``query``.

	Servers missing from ``configs_by_server`` are skipped. Candidates with a
	combined score of 0 are dropped; the rest are sorted by score descending,
	then tool name, and truncated to ``limit``.
	"""
	query_tokens = tokenize(query)
	if not query_tokens:
		return []

	server_weight, tool_weight = RANKING_WEIGHTS
	candidates: list[RankedCandidate] = []

	for server_id, capabilities in capabilities_by_server.items():
		config = configs_by_server.get(server_id)
		if config is None:
			continue

		server_tokens = _token_set(config.name, config.description, *config.tags)
		server_score = overlap_score(query_tokens, server_tokens)

		for cap in capabilities:
			tool_tokens = _token_set(cap.name, cap.title, cap.description)
			tool_score = overlap_score(query_tokens, tool_tokens)
			combined = server_weight * server_score + tool_weight * tool_score
			if combined <= 0:
				continue
			candidates.append(RankedCandidate(
				server_id=server_id,
				server_name=config.name,
				tool_name=cap.name,
				tool_description=cap.description,
				score=_round_score(combined),
				reason=_build_reason(query_tokens, server_tokens, tool_tokens),
			))

	candidates.sort(key=lambda c: (-c.score, c.tool_name))
	return candidates[:max(limit, 0)]
