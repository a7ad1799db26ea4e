"""CLI commands for the mock linkage service."""

import logging
from pathlib import Path

import click
import requests

from ..mock_server.app import run_server
from ..mock_server.config import load_config


logger = logging.getLogger(__name__)


@click.group(name="mock")
def mock_group():
    """Run the mock record-linkage service.

    The mock plays token broker, linkage service and medical data backend:
    - /health - Health check endpoint
    - /tokens/addPatient, /tokens/readPatients - Token issuing
    - /patients - Token redemption
    - /patients/send/mdat, /patients/request - Medical data store
    """


@mock_group.command(name="start")
@click.option("--host", type=str, default=None, help="Bind address (overrides config file)")
@click.option("--port", type=int, default=None, help="Server port (overrides config file)")
@click.option(
    "--use-callback",
    is_flag=True,
    help="Issue callback-mediated create tokens",
)
@click.option(
    "--token-ttl",
    type=int,
    default=None,
    help="Token lifetime in seconds, 0 disables expiry (overrides config file)",
)
@click.option(
    "--config",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file (default: mocks/config.json)",
)
@click.option("--debug", is_flag=True, help="Enable debug mode")
def start_server(
    host: str | None,
    port: int | None,
    use_callback: bool,
    token_ttl: int | None,
    config: Path | None,
    debug: bool,
):
    """Start the mock linkage service in the foreground.

    Examples:

        # Start on the configured port\n
        pseudonym-handler mock start

        # Start on a custom port with callback tokens\n
        pseudonym-handler mock start --port 9090 --use-callback
    """
    try:
        server_config = load_config(config)

        updates = {}
        if host is not None:
            updates["host"] = host
        if port is not None:
            if not 1 <= port <= 65535:
                raise click.ClickException(
                    f"Invalid port {port}. Port must be between 1 and 65535."
                )
            updates["port"] = port
        if use_callback:
            updates["use_callback"] = True
        if token_ttl is not None:
            if token_ttl < 0:
                raise click.ClickException("Token lifetime must be >= 0 seconds")
            updates["token_ttl_seconds"] = token_ttl
        if updates:
            server_config = server_config.model_copy(update=updates)

        click.echo("=" * 50)
        click.echo("Mock Linkage Service")
        click.echo("=" * 50)
        click.echo(f"Host: {server_config.host}")
        click.echo(f"Port: {server_config.port}")
        click.echo(f"Callback tokens: {server_config.use_callback}")
        click.echo(f"Token TTL: {server_config.token_ttl_seconds}s")
        click.echo(f"Health Check: http://{server_config.host}:{server_config.port}/health")
        click.echo("=" * 50)
        click.echo("")
        click.echo("Starting server... (Press Ctrl+C to stop)")
        click.echo("")

        run_server(config=server_config, debug=debug)

    except FileNotFoundError as e:
        raise click.ClickException(str(e))
    except ValueError as e:
        raise click.ClickException(f"Configuration error: {e}")
    except KeyboardInterrupt:
        click.echo("\n\nServer stopped by user.")


@mock_group.command(name="health")
@click.option("--url", type=str, default="http://127.0.0.1:8080", help="Base URL of the mock service")
@click.option("--timeout", type=int, default=5, help="Request timeout in seconds")
def check_health(url: str, timeout: int):
    """Query a running mock linkage service's /health endpoint."""
    health_url = f"{url.rstrip('/')}/health"
    try:
        response = requests.get(health_url, timeout=timeout)
    except requests.RequestException as e:
        logger.debug(f"Health check failed: {e}")
        raise click.ClickException(f"Mock service not reachable at {health_url}: {e}")

    if response.status_code != 200:
        raise click.ClickException(f"Health check returned HTTP {response.status_code}")

    health = response.json()
    click.echo(f"✓ Mock service {health.get('status', 'unknown')} at {url}")
    click.echo(f"  Uptime:   {health.get('uptime_seconds', 0)}s")
    click.echo(f"  Requests: {health.get('request_count', 0)}")
    click.echo(f"  Callback: {health.get('use_callback', False)}")
