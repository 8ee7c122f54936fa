"""
Tests for MCP CLI commands (start, inspect).

Tests cover:
- mcp-inject start with various options
- Configuration loading and override precedence
- Target loading (module:attribute)
- mcp-inject inspect output
- Error handling (bad config, bad target, busy port)
"""

from unittest.mock import MagicMock, patch

import pytest
import yaml
from typer.testing import CliRunner

from mcp_inject.cli.commands.mcp import app, build_server, load_target
from mcp_inject.config import MCPConfig
from mcp_inject.demo import WeatherServer
from mcp_inject.discovery import tool
from mcp_inject.server import McpServer

runner = CliRunner()

EXISTING = WeatherServer(name="Existing", delay_seconds=0)


class Plain:
    """Capability provider that is not a server."""

    @tool(name="echo")
    def echo(self, text: str) -> str:
        return text


@pytest.fixture
def project(tmp_path, monkeypatch):
    for var in ("MCP_SERVER_NAME", "MCP_SERVER_HOST", "MCP_SERVER_PORT", "MCP_SERVER_TRANSPORT", "MCP_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)
    project_path = tmp_path / "project"
    (project_path / ".mcp-inject").mkdir(parents=True)
    monkeypatch.chdir(project_path)
    # start() reconfigures logging; keep it local to each test
    monkeypatch.setattr("mcp_inject.cli.commands.mcp._configure_logging", MagicMock())
    return project_path


class TestMCPStartCommand:
    """Test `mcp-inject start` command."""

    @patch("mcp_inject.cli.commands.mcp.build_server")
    def test_start_default(self, mock_build, project):
        mock_server = MagicMock()
        mock_build.return_value = (mock_server, mock_server)

        result = runner.invoke(app, ["start"])

        assert result.exit_code == 0
        assert "Starting MCP server" in result.output
        assert "Transport: stdio" in result.output
        target, config = mock_build.call_args[0]
        assert target == "mcp_inject.demo:WeatherServer"
        assert config.transport == "stdio"
        mock_server.start.assert_called_once()
        mock_server.inject.assert_not_called()

    @patch("mcp_inject.cli.commands.mcp.build_server")
    def test_start_with_sse_transport(self, mock_build, project):
        mock_server = MagicMock()
        mock_build.return_value = (mock_server, mock_server)

        result = runner.invoke(app, ["start", "--transport", "sse", "--host", "0.0.0.0", "--port", "9000"])

        assert result.exit_code == 0
        assert "Transport: sse" in result.output
        assert "Listening on 0.0.0.0:9000" in result.output
        _, config = mock_build.call_args[0]
        assert (config.host, config.port, config.transport) == ("0.0.0.0", 9000, "sse")

    @patch("mcp_inject.cli.commands.mcp.build_server")
    def test_start_injects_plain_target(self, mock_build, project):
        mock_server, provider = MagicMock(), object()
        mock_build.return_value = (mock_server, provider)

        result = runner.invoke(app, ["start", "--target", "somewhere:Thing"])

        assert result.exit_code == 0
        mock_server.inject.assert_called_once_with(provider)
        mock_server.start.assert_called_once()

    @patch("mcp_inject.cli.commands.mcp.build_server")
    def test_config_file_then_cli_override(self, mock_build, project):
        (project / ".mcp-inject" / "config.yaml").write_text(
            yaml.dump({"port": 9100, "transport": "sse", "name": "FromFile"})
        )
        mock_server = MagicMock()
        mock_build.return_value = (mock_server, mock_server)

        result = runner.invoke(app, ["start", "--port", "9200"])

        assert result.exit_code == 0
        _, config = mock_build.call_args[0]
        assert (config.port, config.transport, config.name) == (9200, "sse", "FromFile")

    @patch("mcp_inject.cli.commands.mcp.build_server")
    def test_no_config_file(self, mock_build, project):
        (project / ".mcp-inject" / "config.yaml").write_text(yaml.dump({"transport": "sse"}))
        mock_server = MagicMock()
        mock_build.return_value = (mock_server, mock_server)

        result = runner.invoke(app, ["start", "--no-config-file"])

        assert result.exit_code == 0
        _, config = mock_build.call_args[0]
        assert config.transport == "stdio"

    def test_invalid_config_file(self, project):
        (project / ".mcp-inject" / "config.yaml").write_text("port: [unclosed")

        result = runner.invoke(app, ["start"])

        assert result.exit_code == 1
        assert "Configuration error" in result.output

    def test_invalid_log_level(self, project):
        result = runner.invoke(app, ["start", "--log-level", "chatty"])

        assert result.exit_code == 1
        assert "Invalid log level" in result.output

    def test_invalid_target(self, project):
        result = runner.invoke(app, ["start", "--target", "no_colon_here"])

        assert result.exit_code == 1
        assert "Invalid target" in result.output

    @patch("mcp_inject.cli.commands.mcp.build_server")
    def test_unsupported_transport(self, mock_build, project):
        mock_build.return_value = (McpServer(transport="http"), None)

        result = runner.invoke(app, ["start", "--transport", "http"])

        assert result.exit_code == 1
        assert "not supported" in result.output

    @patch("mcp_inject.cli.commands.mcp.build_server")
    def test_runtime_error(self, mock_build, project):
        mock_server = MagicMock()
        mock_server.start.side_effect = RuntimeError("Port 8000 already in use.")
        mock_build.return_value = (mock_server, mock_server)

        result = runner.invoke(app, ["start"])

        assert result.exit_code == 1
        assert "Error starting server" in result.output

    @patch("mcp_inject.cli.commands.mcp.build_server")
    def test_keyboard_interrupt(self, mock_build, project):
        mock_server = MagicMock()
        mock_server.start.side_effect = KeyboardInterrupt()
        mock_build.return_value = (mock_server, mock_server)

        result = runner.invoke(app, ["start"])

        assert result.exit_code == 0
        assert "Server stopped by user" in result.output


class TestTargets:
    """Test target loading and server construction."""

    def test_load_target(self):
        assert load_target("mcp_inject.demo:WeatherServer") is WeatherServer

    @pytest.mark.parametrize("target", ["nocolon", ":Attr", "module:"])
    def test_malformed_target(self, target):
        with pytest.raises(ValueError, match="Invalid target"):
            load_target(target)

    def test_unknown_module(self):
        with pytest.raises(ValueError, match="Cannot import module"):
            load_target("definitely_not_a_module_xyz:Thing")

    def test_unknown_attribute(self):
        with pytest.raises(ValueError, match="has no attribute 'Missing'"):
            load_target("mcp_inject.demo:Missing")

    def test_server_subclass_is_the_server(self):
        server, provider = build_server("mcp_inject.demo:WeatherServer", MCPConfig(port=9300))

        assert isinstance(server, WeatherServer)
        assert provider is server
        assert server.name == "MyServer"
        assert server.port == 9300

    def test_config_name_overrides_server_default(self):
        server, _ = build_server("mcp_inject.demo:WeatherServer", MCPConfig(name="Renamed"))

        assert server.name == "Renamed"

    def test_server_instance_is_rebuilt_with_settings(self):
        server, provider = build_server(f"{__name__}:EXISTING", MCPConfig(name="Renamed", transport="sse"))

        assert server is not EXISTING
        assert provider is server
        assert isinstance(server, WeatherServer)
        assert (server.name, server.transport) == ("Renamed", "sse")
        assert server._injector.server_name == "Renamed"
        assert server._app.name == "Renamed"
        assert server.registry is EXISTING.registry
        assert EXISTING.name == "Existing"

    def test_server_instance_transport_is_validated(self):
        with pytest.raises(ValueError, match="Invalid transport"):
            build_server(f"{__name__}:EXISTING", MCPConfig(transport="carrier-pigeon"))

    def test_plain_class_is_instantiated_and_wrapped(self):
        server, provider = build_server(f"{__name__}:Plain", MCPConfig())

        assert type(server) is McpServer
        assert isinstance(provider, Plain)


class TestInspectCommand:
    """Test `mcp-inject inspect` command."""

    def test_inspect_demo(self):
        result = runner.invoke(app, ["inspect"])

        assert result.exit_code == 0
        assert "Capabilities of MyServer" in result.output
        assert "getWeather" in result.output
        assert "getWeatherAsync" in result.output
        assert "weatherReport" in result.output
        assert "weather://cities" in result.output

    def test_inspect_plain_target(self):
        result = runner.invoke(app, ["inspect", "--target", f"{__name__}:Plain", "--name", "Echo"])

        assert result.exit_code == 0
        assert "Capabilities of Echo" in result.output
        assert "echo" in result.output

    def test_inspect_bad_target(self):
        result = runner.invoke(app, ["inspect", "--target", "mcp_inject.demo:Missing"])

        assert result.exit_code == 1
        assert "Configuration error" in result.output
