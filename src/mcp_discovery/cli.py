"""CLI interface for mcp-discovery."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from mcp_discovery.config import ConfigError, DiscoveryConfig, load_config, validate_config
from mcp_discovery.registry import UpstreamRegistry
from mcp_discovery.routing import rank_capabilities


def _add_config_arg(parser: argparse.ArgumentParser, default: str | None = argparse.SUPPRESS) -> None:
	# Subcommands suppress the default so a top-level --config is not clobbered.
	parser.add_argument(
		"-c", "--config", default=default,
		help="Config file path (default: search mcp-discovery.toml, mcp-discovery.config.json)",
	)


def build_parser() -> argparse.ArgumentParser:
	parser = argparse.ArgumentParser(
		prog="mcp-discovery",
		description="MCP discovery/router server",
	)
	parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
	_add_config_arg(parser, default=None)
	sub = parser.add_subparsers(dest="command")

	# mcp-discovery serve
	serve = sub.add_parser("serve", help="Run the router MCP server on stdio (default)")
	_add_config_arg(serve)

	# mcp-discovery validate-config
	vc = sub.add_parser("validate-config", help="Validate config file semantically")
	_add_config_arg(vc)

	# mcp-discovery servers
	servers = sub.add_parser("servers", help="List configured upstream servers")
	_add_config_arg(servers)

	# mcp-discovery tools
	tools = sub.add_parser("tools", help="List tools on one upstream server")
	tools.add_argument("server_id", help="Server ID")
	tools.add_argument("--json", action="store_true", dest="json_output", help="JSON output")
	_add_config_arg(tools)

	# mcp-discovery route
	route = sub.add_parser("route", help="Suggest tools for a natural language query")
	route.add_argument("query", help="What you want to do")
	route.add_argument("--limit", type=int, default=None, help="Maximum number of results")
	route.add_argument("--json", action="store_true", dest="json_output", help="JSON output")
	_add_config_arg(route)

	return parser


def _load(args: argparse.Namespace) -> DiscoveryConfig:
	return load_config(args.config)


def cmd_serve(args: argparse.Namespace) -> int:
	"""Run the router MCP server on stdio."""
	from mcp_discovery.mcp_server import run_discovery_server

	config = _load(args)
	enabled = sum(1 for s in config.servers if s.enabled)
	logging.getLogger(__name__).info(
		"Loaded config with %d server(s), %d enabled", len(config.servers), enabled,
	)
	try:
		run_discovery_server(config)
	except KeyboardInterrupt:
		pass
	return 0


def cmd_validate_config(args: argparse.Namespace) -> int:
	"""Validate config file semantically."""
	config = _load(args)
	issues = validate_config(config)

	errors = [(lvl, msg) for lvl, msg in issues if lvl == "error"]
	warnings = [(lvl, msg) for lvl, msg in issues if lvl == "warning"]

	for level, msg in issues:
		print(f"[{level.upper()}] {msg}")

	if not issues:
		print("Config OK")

	print(f"\n{len(errors)} error(s), {len(warnings)} warning(s)")
	return 1 if errors else 0


def cmd_servers(args: argparse.Namespace) -> int:
	"""List configured upstream servers."""
	config = _load(args)
	if not config.servers:
		print("No servers configured.")
		return 0

	for s in config.servers:
		state = "" if s.enabled else " (disabled)"
		tags = f" [{', '.join(s.tags)}]" if s.tags else ""
		print(f"  {s.id}{state}: {s.name} via {s.transport.type}{tags}")
		if s.description:
			print(f"      {s.description}")
	return 0


async def _list_tools(registry: UpstreamRegistry, server_id: str) -> list[dict]:
	try:
		tools = await registry.list_capabilities(server_id)
	finally:
		await registry.close_all()
	return [
		{"name": t.name, "title": t.title, "description": t.description, "inputSchema": t.input_schema}
		for t in tools
	]


def cmd_tools(args: argparse.Namespace) -> int:
	"""List tools on one upstream server."""
	registry = UpstreamRegistry.from_config(_load(args))
	if not registry.has_upstream(args.server_id):
		print(f'Unknown server "{args.server_id}". Known: {", ".join(registry.ids()) or "none"}')
		return 1

	try:
		tools = asyncio.run(_list_tools(registry, args.server_id))
	except Exception as exc:
		print(f"Error: {exc}")
		return 1

	if args.json_output:
		print(json.dumps(tools, indent=2))
		return 0
	for t in tools:
		print(f"  {t['name']}: {t['description'] or 'No description'}")
	print(f"\n{len(tools)} tool(s)")
	return 0


async def _route(registry: UpstreamRegistry, query: str, limit: int) -> list:
	try:
		all_tools = await registry.list_all_capabilities()
	finally:
		await registry.close_all()
	configs = {cfg.id: cfg for cfg in registry.all_descriptors()}
	return rank_capabilities(query, all_tools, configs, limit)


def cmd_route(args: argparse.Namespace) -> int:
	"""Suggest tools for a query across all upstream servers."""
	config = _load(args)
	registry = UpstreamRegistry.from_config(config)
	limit = args.limit if args.limit is not None else config.routing.max_results
	ranked = asyncio.run(_route(registry, args.query, limit))

	if args.json_output:
		print(json.dumps([r.to_dict() for r in ranked], indent=2))
		return 0
	if not ranked:
		print(f'No relevant tools found for query: "{args.query}"')
		return 0
	for i, r in enumerate(ranked, start=1):
		print(f"{i}. {r.server_name} / {r.tool_name} (score: {r.score})")
		print(f"   {r.tool_description or 'No description'}")
		print(f"   Reason: {r.reason}")
	return 0


COMMANDS = {
	"serve": cmd_serve,
	"validate-config": cmd_validate_config,
	"servers": cmd_servers,
	"tools": cmd_tools,
	"route": cmd_route,
}


def main(argv: list[str] | None = None) -> int:
	"""Entry point for the `mcp-discovery` console script."""
	parser = build_parser()
	args = parser.parse_args(argv)

	# stdout carries the MCP stdio stream, so logs go to stderr.
	logging.basicConfig(
		level=logging.DEBUG if args.verbose else logging.INFO,
		format="%(asctime)s %(levelname)s %(name)s: %(message)s",
		datefmt="%H:%M:%S",
		stream=sys.stderr,
		force=True,
	)

	command = args.command or "serve"
	handler = COMMANDS.get(command)
	if handler is None:
		print(f"Unknown command: {command}")
		return 1

	try:
		return handler(args)
	except ConfigError as e:
		print(f"Failed to load config: {e}", file=sys.stderr)
		return 1


if __name__ == "__main__":
	sys.exit(main())
