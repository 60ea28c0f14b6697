"""MCP server exposing the upstream registry and query routing over stdio."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import signal
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import CallToolResult, TextContent, Tool
from pydantic import BaseModel, Field, ValidationError

from mcp_discovery.config import DiscoveryConfig
from mcp_discovery.constants import SERVER_NAME, SERVER_VERSION
from mcp_discovery.registry import UpstreamRegistry
from mcp_discovery.routing import rank_capabilities

logger = logging.getLogger(__name__)


class ToolError(Exception):
	"""User-facing tool failure, reported to the MCP client as an error result."""


class ListToolsArgs(BaseModel, extra="ignore"):
	serverId: str


class RouteQueryArgs(BaseModel, extra="ignore"):
	query: str
	maxResults: int | None = Field(default=None, gt=0)


class CallToolArgs(BaseModel, extra="ignore"):
	serverId: str
	toolName: str
	arguments: dict[str, Any] = Field(default_factory=dict)


class RefreshToolsArgs(BaseModel, extra="ignore"):
	serverId: str | None = None


# -- Tool definitions --

TOOLS = [
	Tool(
		name="list-servers",
		description="List all configured upstream MCP servers",
		inputSchema={
			"type": "object",
			"properties": {},
		},
	),
	Tool(
		name="list-tools",
		description="List all tools available on a specific upstream MCP server",
		inputSchema={
			"type": "object",
			"properties": {
				"serverId": {"type": "string", "description": "ID of the server to list tools from"},
			},
			"required": ["serverId"],
		},
	),
	Tool(
		name="route-query",
		description=(
			"Given a natural language query, suggest which server(s) and tool(s) "
			"are most relevant"
		),
		inputSchema={
			"type": "object",
			"properties": {
				"query": {
					"type": "string",
					"description": "Natural language description of what you want to do",
				},
				"maxResults": {
					"type": "integer",
					"minimum": 1,
					"description": "Maximum number of results to return (default: 5)",
				},
			},
			"required": ["query"],
		},
	),
	Tool(
		name="call-tool",
		description="Call a tool on a specific upstream MCP server",
		inputSchema={
			"type": "object",
			"properties": {
				"serverId": {"type": "string", "description": "ID of the server containing the tool"},
				"toolName": {"type": "string", "description": "Name of the tool to call"},
				"arguments": {"type": "object", "description": "Arguments to pass to the tool"},
			},
			"required": ["serverId", "toolName"],
		},
	),
	Tool(
		name="refresh-tools",
		description=(
			"Discard cached tool lists so the next listing refetches them. "
			"Omit serverId to refresh every server."
		),
		inputSchema={
			"type": "object",
			"properties": {
				"serverId": {"type": "string", "description": "ID of the server to refresh"},
			},
		},
	),
]


def _text(payload: Any) -> list[TextContent]:
	if not isinstance(payload, str):
		payload = json.dumps(payload, indent=2)
	return [TextContent(type="text", text=payload)]


def _unknown_server(server_id: str) -> ToolError:
	return ToolError(f'Error: Unknown server "{server_id}". Use list-servers to see available servers.')


def _parse(model: type[BaseModel], name: str, args: dict[str, Any]) -> Any:
	try:
		return model.model_validate(args or {})
	except ValidationError as exc:
		raise ToolError(f"Invalid arguments for {name}: {exc}") from exc


async def _dispatch(
	name: str,
	args: dict[str, Any],
	registry: UpstreamRegistry,
	max_results: int,
) -> list[Any] | CallToolResult:
	if name == "list-servers":
		return _tool_list_servers(registry)
	elif name == "list-tools":
		return await _tool_list_tools(registry, _parse(ListToolsArgs, name, args))
	elif name == "route-query":
		return await _tool_route_query(registry, _parse(RouteQueryArgs, name, args), max_results)
	elif name == "call-tool":
		return await _tool_call_tool(registry, _parse(CallToolArgs, name, args))
	elif name == "refresh-tools":
		return _tool_refresh_tools(registry, _parse(RefreshToolsArgs, name, args))
	raise ToolError(f"Unknown tool: {name}")


def _tool_list_servers(registry: UpstreamRegistry) -> list[TextContent]:
	return _text([
		{
			"id": cfg.id,
			"name": cfg.name,
			"description": cfg.description or "",
			"transport": cfg.transport.type,
			"tags": list(cfg.tags),
		}
		for cfg in registry.all_descriptors()
	])


async def _tool_list_tools(registry: UpstreamRegistry, args: ListToolsArgs) -> list[TextContent]:
	if not registry.has_upstream(args.serverId):
		raise _unknown_server(args.serverId)
	try:
		tools = await registry.list_capabilities(args.serverId)
	except Exception as exc:
		raise ToolError(f'Error listing tools for server "{args.serverId}": {exc}') from exc
	return _text([
		{
			"name": t.name,
			"title": t.title,
			"description": t.description,
			"inputSchema": t.input_schema,
		}
		for t in tools
	])


async def _tool_route_query(
	registry: UpstreamRegistry, args: RouteQueryArgs, max_results: int,
) -> list[TextContent]:
	limit = args.maxResults or max_results
	all_tools = await registry.list_all_capabilities()
	configs = {cfg.id: cfg for cfg in registry.all_descriptors()}
	ranked = rank_capabilities(args.query, all_tools, configs, limit)

	if not ranked:
		return _text(f'No relevant tools found for query: "{args.query}"')

	lines = [f'Top {len(ranked)} tool(s) for query: "{args.query}"', ""]
	for i, r in enumerate(ranked, start=1):
		lines.append(
			f"{i}. {r.server_name} / {r.tool_name} (score: {r.score})\n"
			f"   {r.tool_description or 'No description'}\n"
			f"   Reason: {r.reason}"
		)
	return _text("\n".join(lines))


async def _tool_call_tool(registry: UpstreamRegistry, args: CallToolArgs) -> list[Any] | CallToolResult:
	if not registry.has_upstream(args.serverId):
		raise _unknown_server(args.serverId)
	try:
		result = await registry.invoke(args.serverId, args.toolName, args.arguments)
	except Exception as exc:
		raise ToolError(
			f'Error calling tool "{args.toolName}" on server "{args.serverId}": {exc}'
		) from exc
	if result.is_error:
		# Upstream content (images, resources) passes through unchanged.
		return CallToolResult(content=result.content, isError=True)
	return result.content


def _tool_refresh_tools(registry: UpstreamRegistry, args: RefreshToolsArgs) -> list[TextContent]:
	if args.serverId is not None and not registry.has_upstream(args.serverId):
		raise _unknown_server(args.serverId)
	registry.invalidate(args.serverId)
	refreshed = [args.serverId] if args.serverId else registry.ids()
	return _text({"status": "invalidated", "servers": refreshed})


def create_discovery_server(
	config: DiscoveryConfig,
	registry: UpstreamRegistry | None = None,
) -> tuple[Server, UpstreamRegistry]:
	"""Build the router MCP server and the registry backing it."""
	if registry is None:
		registry = UpstreamRegistry.from_config(config)
	max_results = config.routing.max_results
	server: Server = Server(SERVER_NAME, version=SERVER_VERSION)

	@server.list_tools()
	async def list_tools() -> list[Tool]:
		return TOOLS

	@server.call_tool()
	async def call_tool(name: str, arguments: dict) -> list[Any] | CallToolResult:
		return await _dispatch(name, arguments, registry, max_results)

	return server, registry


async def serve(config: DiscoveryConfig) -> None:
	"""Run the router on stdio until the client disconnects or SIGTERM arrives."""
	server, registry = create_discovery_server(config)
	loop = asyncio.get_running_loop()
	main_task = asyncio.current_task()
	if main_task is not None:
		with contextlib.suppress(NotImplementedError):
			loop.add_signal_handler(signal.SIGTERM, main_task.cancel)

	logger.info("Serving %d upstream server(s) on stdio", len(registry.ids()))
	try:
		async with stdio_server() as (read_stream, write_stream):
			await server.run(read_stream, write_stream, server.create_initialization_options())
	except asyncio.CancelledError:
		logger.info("Shutting down...")
	finally:
		with contextlib.suppress(NotImplementedError):
			loop.remove_signal_handler(signal.SIGTERM)
		await registry.close_all()


def run_discovery_server(config: DiscoveryConfig) -> None:
	"""Entry point for `mcp-discovery serve`."""
	asyncio.run(serve(config))
