"""TOML/JSON configuration loader for mcp-discovery."""

from __future__ import annotations

import json
import os
import shutil
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal
from urllib.parse import urlparse

from mcp_discovery.constants import DEFAULT_LIMITS

DEFAULT_CONFIG_FILENAME = "mcp-discovery.config.json"
SEARCH_FILENAMES = ("mcp-discovery.toml", DEFAULT_CONFIG_FILENAME, ".mcp-discovery.json")
SUPPORTED_VERSIONS = ("1.0",)


class ConfigError(ValueError):
	"""Raised when a config file is missing, unparsable or structurally invalid."""


@dataclass(frozen=True)
class StdioTransport:
	"""Spawn the upstream as a subprocess and talk MCP over its stdin/stdout."""

	command: str
	args: tuple[str, ...] = ()
	env: dict[str, str] | None = None
	cwd: str | None = None
	type: Literal["stdio"] = "stdio"


@dataclass(frozen=True)
class HttpTransport:
	"""Talk MCP to an upstream over streamable HTTP."""

	url: str
	headers: dict[str, str] | None = None
	type: Literal["http"] = "http"


Transport = StdioTransport | HttpTransport


@dataclass(frozen=True)
class UpstreamConfig:
	"""A single upstream MCP server."""

	id: str
	name: str
	transport: Transport
	description: str | None = None
	tags: tuple[str, ...] = ()
	enabled: bool = True


@dataclass
class RoutingConfig:
	"""Query routing and tool-cache settings."""

	max_results: int = DEFAULT_LIMITS["max_results"]
	cache_ttl_ms: int = DEFAULT_LIMITS["cache_ttl_ms"]


@dataclass
class DiscoveryConfig:
	"""Top-level mcp-discovery configuration."""

	version: str = "1.0"
	servers: list[UpstreamConfig] = field(default_factory=list)
	routing: RoutingConfig = field(default_factory=RoutingConfig)


def _string_map(value: Any, where: str, issues: list[str]) -> dict[str, str] | None:
	if value is None:
		return None
	if not isinstance(value, dict) or not all(isinstance(v, str) for v in value.values()):
		issues.append(f"{where}: expected a table of strings")
		return None
	return {str(k): v for k, v in value.items()}


def _string_list(value: Any, where: str, issues: list[str]) -> tuple[str, ...]:
	if value is None:
		return ()
	if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
		issues.append(f"{where}: expected a list of strings")
		return ()
	return tuple(value)


def _build_transport(data: Any, where: str, issues: list[str]) -> Transport | None:
	if not isinstance(data, dict):
		issues.append(f"{where}: required")
		return None

	kind = data.get("type")
	if kind == "stdio":
		command = data.get("command")
		if not isinstance(command, str) or not command:
			issues.append(f"{where}.command: required")
			return None
		cwd = data.get("cwd")
		if cwd is not None and not isinstance(cwd, str):
			issues.append(f"{where}.cwd: expected a string")
			cwd = None
		return StdioTransport(
			command=command,
			args=_string_list(data.get("args"), f"{where}.args", issues),
			env=_string_map(data.get("env"), f"{where}.env", issues),
			cwd=cwd,
		)
	if kind == "http":
		url = data.get("url")
		if not isinstance(url, str) or urlparse(url).scheme not in ("http", "https"):
			issues.append(f"{where}.url: expected an http(s) URL")
			return None
		return HttpTransport(
			url=url,
			headers=_string_map(data.get("headers"), f"{where}.headers", issues),
		)

	issues.append(f"{where}.type: expected 'stdio' or 'http', got {kind!r}")
	return None


def _build_server(data: Any, where: str, issues: list[str]) -> UpstreamConfig | None:
	if not isinstance(data, dict):
		issues.append(f"{where}: expected a table")
		return None

	before = len(issues)
	for key in ("id", "name"):
		if not isinstance(data.get(key), str) or not data.get(key):
			issues.append(f"{where}.{key}: required")
	description = data.get("description")
	if description is not None and not isinstance(description, str):
		issues.append(f"{where}.description: expected a string")
	enabled = data.get("enabled", True)
	if not isinstance(enabled, bool):
		issues.append(f"{where}.enabled: expected a boolean")
	tags = _string_list(data.get("tags"), f"{where}.tags", issues)
	transport = _build_transport(data.get("transport"), f"{where}.transport", issues)

	if len(issues) > before or transport is None:
		return None
	return UpstreamConfig(
		id=data["id"],
		name=data["name"],
		transport=transport,
		description=description,
		tags=tags,
		enabled=enabled,
	)


def _int_setting(data: dict[str, Any], keys: tuple[str, str]) -> Any:
	for key in keys:
		if key in data:
			return data[key]
	return None


def _build_routing(data: Any, issues: list[str]) -> RoutingConfig:
	rc = RoutingConfig()
	if not isinstance(data, dict):
		issues.append("routing: expected a table")
		return rc

	max_results = _int_setting(data, ("max_results", "maxResults"))
	if max_results is not None:
		if isinstance(max_results, bool) or not isinstance(max_results, int) or max_results <= 0:
			issues.append("routing.max_results: expected a positive integer")
		else:
			rc.max_results = max_results

	ttl = _int_setting(data, ("cache_ttl_ms", "cacheTtlMs"))
	if ttl is not None:
		if isinstance(ttl, bool) or not isinstance(ttl, int) or ttl < 0:
			issues.append("routing.cache_ttl_ms: expected a non-negative integer")
		else:
			rc.cache_ttl_ms = ttl
	return rc


def parse_config(data: Any) -> DiscoveryConfig:
	"""Build a DiscoveryConfig from already-decoded TOML/JSON data.

	Raises:
		ConfigError: Listing every structural problem found.
	"""
	if not isinstance(data, dict):
		raise ConfigError("Config validation failed:\n  - (root): expected a table")

	issues: list[str] = []
	dc = DiscoveryConfig()

	version = data.get("version", "1.0")
	if version not in SUPPORTED_VERSIONS:
		issues.append(f"version: unsupported version {version!r}")
	else:
		dc.version = version

	servers = data.get("servers")
	if not isinstance(servers, list):
		issues.append("servers: expected a list")
		servers = []

	seen: set[str] = set()
	for i, item in enumerate(servers):
		server = _build_server(item, f"servers.{i}", issues)
		if server is None:
			continue
		if server.id in seen:
			issues.append(f"servers.{i}.id: duplicate server id {server.id!r}")
			continue
		seen.add(server.id)
		dc.servers.append(server)

	if "routing" in data:
		dc.routing = _build_routing(data["routing"], issues)

	if issues:
		details = "\n".join(f"  - {issue}" for issue in issues)
		raise ConfigError(f"Config validation failed:\n{details}")
	return dc


def _find_config(cwd: Path) -> Path:
	candidates = [cwd / name for name in SEARCH_FILENAMES]
	for candidate in candidates:
		if candidate.is_file():
			return candidate
	searched = ", ".join(str(c) for c in candidates)
	raise ConfigError(
		f"Config file not found. Searched: {searched}. "
		f"Create a {DEFAULT_CONFIG_FILENAME} file or specify --config path."
	)


def load_config(path: str | Path | None = None, cwd: str | Path | None = None) -> DiscoveryConfig:
	"""Load an mcp-discovery config file.

	Args:
		path: Explicit config path, resolved against ``cwd``. When omitted the
			default file names are searched in ``cwd``.
		cwd: Base directory (defaults to the process working directory).

	Returns:
		Parsed DiscoveryConfig.

	Raises:
		ConfigError: If the file is missing, not valid TOML/JSON, or invalid.
	"""
	base = Path(cwd) if cwd is not None else Path.cwd()
	if path is None:
		config_path = _find_config(base)
	else:
		config_path = base / Path(path).expanduser()
		if not config_path.is_file():
			raise ConfigError(f"Config file not found: {config_path}")

	try:
		if config_path.suffix == ".toml":
			with open(config_path, "rb") as f:
				data = tomllib.load(f)
		else:
			data = json.loads(config_path.read_text(encoding="utf-8"))
	except (tomllib.TOMLDecodeError, json.JSONDecodeError) as exc:
		raise ConfigError(f"Invalid config file {config_path}: {exc}") from exc

	return parse_config(data)


def validate_config(config: DiscoveryConfig) -> list[tuple[str, str]]:
	"""Perform semantic validation of a loaded DiscoveryConfig.

	Returns a list of (level, message) tuples where level is 'error' or 'warning'.
	"""
	issues: list[tuple[str, str]] = []

	enabled = [s for s in config.servers if s.enabled]
	if not enabled:
		issues.append(("warning", "no enabled servers configured"))

	for server in enabled:
		transport = server.transport
		if not isinstance(transport, StdioTransport):
			continue
		if shutil.which(transport.command) is None and not os.path.isfile(transport.command):
			issues.append(("error", f"{server.id}: command not found: {transport.command}"))
		if transport.cwd and not Path(os.path.expanduser(transport.cwd)).is_dir():
			issues.append(("error", f"{server.id}: cwd does not exist: {transport.cwd}"))

	if config.routing.cache_ttl_ms == 0:
		issues.append(("warning", "cache_ttl_ms is 0: tool lists are refetched on every request"))

	return issues
