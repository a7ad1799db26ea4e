"""Unit tests for mock server CLI commands."""

from unittest.mock import Mock, patch

import pytest
import requests
from click.testing import CliRunner

from pseudonym_handler.cli.mock_commands import mock_group


@pytest.fixture
def cli_runner():
    """Create Click CLI runner."""
    return CliRunner()


@pytest.fixture
def isolated_cwd(tmp_path, monkeypatch):
    """Run without a mocks/config.json in the working directory."""
    monkeypatch.chdir(tmp_path)
    for name in ("MOCK_SERVER_PORT", "MOCK_SERVER_USE_CALLBACK", "MOCK_SERVER_HOST"):
        monkeypatch.delenv(name, raising=False)
    return tmp_path


class TestStartCommand:
    """Tests for mock start."""

    def test_start_with_overrides(self, cli_runner, isolated_cwd):
        # Act
        with patch("pseudonym_handler.cli.mock_commands.run_server") as run_server:
            result = cli_runner.invoke(mock_group, [
                "start", "--host", "0.0.0.0", "--port", "9090", "--use-callback", "--token-ttl", "5",
            ])

        # Assert
        assert result.exit_code == 0
        config = run_server.call_args.kwargs["config"]
        assert config.host == "0.0.0.0"
        assert config.port == 9090
        assert config.use_callback is True
        assert config.token_ttl_seconds == 5
        assert run_server.call_args.kwargs["debug"] is False
        assert "Health Check: http://0.0.0.0:9090/health" in result.output

    def test_start_defaults(self, cli_runner, isolated_cwd):
        with patch("pseudonym_handler.cli.mock_commands.run_server") as run_server:
            result = cli_runner.invoke(mock_group, ["start"])

        assert result.exit_code == 0
        assert run_server.call_args.kwargs["config"].port == 8080

    @pytest.mark.parametrize("args, message", [
        (["--port", "0"], "Invalid port 0"),
        (["--token-ttl", "-1"], "Token lifetime"),
    ])
    def test_invalid_options(self, cli_runner, isolated_cwd, args, message):
        with patch("pseudonym_handler.cli.mock_commands.run_server") as run_server:
            result = cli_runner.invoke(mock_group, ["start", *args])

        assert result.exit_code == 1
        assert message in result.output
        run_server.assert_not_called()

    def test_config_file(self, cli_runner, isolated_cwd):
        # Arrange
        config_file = isolated_cwd / "mock.json"
        config_file.write_text('{"port": 9191, "response_delay_ms": 10}')

        # Act
        with patch("pseudonym_handler.cli.mock_commands.run_server") as run_server:
            result = cli_runner.invoke(mock_group, ["start", "--config", str(config_file)])

        # Assert
        assert result.exit_code == 0
        assert run_server.call_args.kwargs["config"].response_delay_ms == 10

    def test_invalid_config_file(self, cli_runner, isolated_cwd):
        config_file = isolated_cwd / "mock.json"
        config_file.write_text('{"port": "x"}')

        with patch("pseudonym_handler.cli.mock_commands.run_server"):
            result = cli_runner.invoke(mock_group, ["start", "--config", str(config_file)])

        assert result.exit_code == 1
        assert "Configuration error" in result.output

    def test_keyboard_interrupt(self, cli_runner, isolated_cwd):
        with patch("pseudonym_handler.cli.mock_commands.run_server", side_effect=KeyboardInterrupt):
            result = cli_runner.invoke(mock_group, ["start"])

        assert "Server stopped by user" in result.output


class TestHealthCommand:
    """Tests for mock health."""

    def test_healthy(self, cli_runner):
        # Arrange
        response = Mock(status_code=200)
        response.json.return_value = {
            "status": "healthy", "uptime_seconds": 12, "request_count": 3, "use_callback": True,
        }

        # Act
        with patch("pseudonym_handler.cli.mock_commands.requests.get", return_value=response) as get:
            result = cli_runner.invoke(mock_group, ["health", "--url", "http://localhost:9090/"])

        # Assert
        assert result.exit_code == 0
        get.assert_called_once_with("http://localhost:9090/health", timeout=5)
        assert "Mock service healthy" in result.output
        assert "Callback: True" in result.output

    def test_unreachable(self, cli_runner):
        with patch(
            "pseudonym_handler.cli.mock_commands.requests.get",
            side_effect=requests.ConnectionError("refused"),
        ):
            result = cli_runner.invoke(mock_group, ["health"])

        assert result.exit_code == 1
        assert "not reachable" in result.output

    def test_unhealthy_status(self, cli_runner):
        with patch("pseudonym_handler.cli.mock_commands.requests.get", return_value=Mock(status_code=503)):
            result = cli_runner.invoke(mock_group, ["health"])

        assert result.exit_code == 1
        assert "HTTP 503" in result.output
