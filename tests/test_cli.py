"""Tests for CLI argument parsing and commands."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest
from conftest import FakeClientFactory, make_tool

from mcp_discovery.cli import COMMANDS, build_parser, main
from mcp_discovery.registry import UpstreamRegistry


@pytest.fixture()
def config_file(tmp_path: Path) -> Path:
	path = tmp_path / "mcp-discovery.config.json"
	path.write_text(json.dumps({
		"version": "1.0",
		"servers": [
			{
				"id": "weather",
				"name": "Weather Server",
				"description": "Get weather forecasts and alerts",
				"transport": {"type": "stdio", "command": "sh"},
				"tags": ["weather"],
			},
			{
				"id": "calculator",
				"name": "Calculator Server",
				"transport": {"type": "http", "url": "http://localhost:9000/mcp"},
			},
			{
				"id": "legacy",
				"name": "Legacy",
				"enabled": False,
				"transport": {"type": "stdio", "command": "definitely-not-a-real-binary-xyz"},
			},
		],
		"routing": {"maxResults": 2},
	}))
	return path


@pytest.fixture()
def fake_registry():
	"""Patch registry construction in the CLI so no upstream is spawned."""
	factory = FakeClientFactory(
		weather={"tools": [
			make_tool("get-forecast", "Get weather forecast for a location"),
			make_tool("get-alerts", "Get weather alerts for a state"),
		]},
		calculator={"tools": [make_tool("add", "Add two numbers together")]},
	)
	original = UpstreamRegistry.from_config.__func__

	def from_config(cls, config, **kwargs):
		return original(cls, config, client_factory=factory)

	with patch.object(UpstreamRegistry, "from_config", classmethod(from_config)):
		yield factory


class TestArgParsing:
	def test_commands_registered(self) -> None:
		assert set(COMMANDS) == {"serve", "validate-config", "servers", "tools", "route"}

	def test_no_command(self) -> None:
		args = build_parser().parse_args([])
		assert args.command is None
		assert args.config is None

	def test_top_level_config_survives_subcommand(self) -> None:
		args = build_parser().parse_args(["--config", "a.json", "servers"])
		assert args.command == "servers"
		assert args.config == "a.json"

	def test_subcommand_config(self) -> None:
		args = build_parser().parse_args(["route", "add numbers", "-c", "b.json", "--limit", "3", "--json"])
		assert args.config == "b.json"
		assert args.query == "add numbers"
		assert args.limit == 3
		assert args.json_output is True

	def test_tools_requires_server_id(self) -> None:
		with pytest.raises(SystemExit):
			build_parser().parse_args(["tools"])


class TestConfigErrors:
	def test_missing_config_returns_1(self, tmp_path: Path, capsys) -> None:
		result = main(["servers", "--config", str(tmp_path / "missing.json")])
		assert result == 1
		assert "Failed to load config" in capsys.readouterr().err

	def test_invalid_config_returns_1(self, tmp_path: Path, capsys) -> None:
		bad = tmp_path / "bad.json"
		bad.write_text(json.dumps({"servers": [{"id": "x"}]}))
		assert main(["servers", "--config", str(bad)]) == 1
		assert "Config validation failed" in capsys.readouterr().err

	def test_default_command_is_serve(self, config_file: Path) -> None:
		with patch("mcp_discovery.mcp_server.run_discovery_server") as mock_run:
			result = main(["--config", str(config_file)])
		assert result == 0
		mock_run.assert_called_once()
		assert [s.id for s in mock_run.call_args.args[0].servers] == ["weather", "calculator", "legacy"]


class TestValidateConfig:
	def test_valid(self, config_file: Path, capsys) -> None:
		result = main(["validate-config", "--config", str(config_file)])
		out = capsys.readouterr().out
		assert result == 0
		assert "Config OK" in out
		assert "0 error(s), 0 warning(s)" in out

	def test_errors_reported(self, tmp_path: Path, capsys) -> None:
		path = tmp_path / "c.json"
		path.write_text(json.dumps({"servers": [{
			"id": "x", "name": "X",
			"transport": {"type": "stdio", "command": "definitely-not-a-real-binary-xyz"},
		}]}))
		result = main(["validate-config", "--config", str(path)])
		out = capsys.readouterr().out
		assert result == 1
		assert "[ERROR] x: command not found" in out
		assert "1 error(s)" in out

	def test_warnings_do_not_fail(self, tmp_path: Path, capsys) -> None:
		path = tmp_path / "c.json"
		path.write_text(json.dumps({"servers": []}))
		assert main(["validate-config", "--config", str(path)]) == 0
		assert "[WARNING] no enabled servers configured" in capsys.readouterr().out


class TestServers:
	def test_lists_all_servers(self, config_file: Path, capsys) -> None:
		assert main(["servers", "--config", str(config_file)]) == 0
		out = capsys.readouterr().out
		assert "weather: Weather Server via stdio [weather]" in out
		assert "Get weather forecasts and alerts" in out
		assert "calculator: Calculator Server via http" in out
		assert "legacy (disabled): Legacy via stdio" in out

	def test_empty(self, tmp_path: Path, capsys) -> None:
		path = tmp_path / "c.json"
		path.write_text(json.dumps({"servers": []}))
		assert main(["servers", "--config", str(path)]) == 0
		assert "No servers configured." in capsys.readouterr().out


class TestTools:
	def test_lists_tools(self, config_file: Path, fake_registry, capsys) -> None:
		assert main(["tools", "weather", "--config", str(config_file)]) == 0
		out = capsys.readouterr().out
		assert "get-forecast: Get weather forecast for a location" in out
		assert "2 tool(s)" in out
		assert fake_registry.latest("weather").close_calls == 1

	def test_json_output(self, config_file: Path, fake_registry, capsys) -> None:
		assert main(["tools", "calculator", "--json", "--config", str(config_file)]) == 0
		data = json.loads(capsys.readouterr().out)
		assert data == [{
			"name": "add", "title": None, "description": "Add two numbers together", "inputSchema": None,
		}]

	def test_unknown_server(self, config_file: Path, fake_registry, capsys) -> None:
		assert main(["tools", "legacy", "--config", str(config_file)]) == 1
		assert 'Unknown server "legacy". Known: weather, calculator' in capsys.readouterr().out

	def test_upstream_failure(self, config_file: Path, fake_registry, capsys) -> None:
		fake_registry.client_kwargs["weather"] = {"fail_connect": True}
		assert main(["tools", "weather", "--config", str(config_file)]) == 1
		assert "Error:" in capsys.readouterr().out


class TestRoute:
	def test_text_output(self, config_file: Path, fake_registry, capsys) -> None:
		assert main(["route", "weather forecast", "--config", str(config_file)]) == 0
		out = capsys.readouterr().out
		assert out.startswith("1. Weather Server / get-forecast (score: ")
		assert "Reason: " in out
		assert "3. " not in out

	def test_limit_overrides_config(self, config_file: Path, fake_registry, capsys) -> None:
		assert main(["route", "weather", "--limit", "1", "--json", "--config", str(config_file)]) == 0
		data = json.loads(capsys.readouterr().out)
		assert len(data) == 1
		assert data[0]["serverId"] == "weather"
		assert set(data[0]) == {"serverId", "serverName", "toolName", "toolDescription", "score", "reason"}

	def test_no_matches(self, config_file: Path, fake_registry, capsys) -> None:
		assert main(["route", "xyzzy", "--config", str(config_file)]) == 0
		assert 'No relevant tools found for query: "xyzzy"' in capsys.readouterr().out

	def test_closes_clients(self, config_file: Path, fake_registry) -> None:
		main(["route", "add numbers", "--config", str(config_file)])
		assert fake_registry.latest("weather").close_calls == 1
		assert fake_registry.latest("calculator").close_calls == 1
