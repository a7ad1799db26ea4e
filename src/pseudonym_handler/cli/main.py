"""Main CLI entry point for the pseudonym handler.

This module provides the main Click command group for the pseudonym-handler CLI.
"""

from pathlib import Path
from typing import Optional

import click

from pseudonym_handler import __version__
from pseudonym_handler.cli.mock_commands import mock_group
from pseudonym_handler.cli.pseudonym_commands import depseudonymize, patients
from pseudonym_handler.config import load_config
from pseudonym_handler.logging_audit import configure_logging
from pseudonym_handler.utils.exceptions import ConfigurationError


@click.group()
@click.version_option(version=__version__, prog_name="pseudonym-handler")
@click.option(
    "--config",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="Path to configuration file (default: ./config/config.json)",
)
@click.option("--verbose", is_flag=True, help="Enable verbose logging (DEBUG level)")
@click.option(
    "--log-file",
    type=click.Path(path_type=Path),
    default=None,
    help="Path to log file (overrides config file)",
)
@click.option(
    "--redact-pii",
    is_flag=True,
    help="Redact identifying data (names, birth dates) from logs",
)
@click.pass_context
def cli(
    ctx: click.Context,
    config: Optional[Path],
    verbose: bool,
    log_file: Optional[Path],
    redact_pii: bool,
) -> None:
    """Pseudonym Handler - client for Mainzelliste-style record linkage.

    Pseudonymizes patients against a token broker and linkage service,
    exchanges medical data keyed by pseudonym and resolves pseudonyms back
    to identities.

    Common usage:

        # Pseudonymize patients and store their medical data
        pseudonym-handler patients send patients.csv

        # Fetch stored medical data for patients
        pseudonym-handler patients request patients.csv --output results.json

        # Resolve pseudonyms
        pseudonym-handler depseudonymize A1B2C3D4 E5F6A7B8

        # Run against the local mock linkage service
        pseudonym-handler mock start --port 8080

    Use --help with any command for more information.
    """
    # Ensure context object exists for subcommands
    ctx.ensure_object(dict)

    try:
        config_obj = load_config(config)
        ctx.obj["config"] = config_obj
    except ConfigurationError as e:
        click.echo(f"Error loading configuration: {e}", err=True)
        ctx.exit(1)

    ctx.obj["verbose"] = verbose
    ctx.obj["redact_pii"] = redact_pii
    ctx.obj["log_file"] = log_file

    # Precedence: CLI flags > config file > defaults
    log_level = "DEBUG" if verbose else config_obj.logging.level
    log_file_path = log_file if log_file else config_obj.logging.log_file
    redact_pii_setting = redact_pii if redact_pii else config_obj.logging.redact_pii

    configure_logging(
        level=log_level, log_file=log_file_path, redact_pii=redact_pii_setting
    )


# Register command groups
cli.add_command(patients)
cli.add_command(depseudonymize)
cli.add_command(mock_group)


@cli.group()
def config() -> None:
    """Configuration management commands."""
    pass


@config.command()
@click.argument("config_file", type=click.Path(exists=True, path_type=Path))
def validate(config_file: Path) -> None:
    """Validate a configuration file.

    Example:
        pseudonym-handler config validate config/config.json
    """
    try:
        config_obj = load_config(config_file)
    except ConfigurationError as e:
        click.echo(click.style("✗", fg="red", bold=True) + " Configuration validation failed")
        click.echo(f"\n{e}", err=True)
        raise click.exceptions.Exit(1)

    click.echo(click.style("✓", fg="green", bold=True) + " Configuration is valid")
    click.echo(f"\nConfiguration file: {config_file}")
    click.echo("\nEndpoints:")
    click.echo(f"  Server URL:  {config_obj.endpoints.server_url}")
    click.echo(f"  API version: {config_obj.endpoints.linkage_api_version}")

    click.echo("\nTransport:")
    click.echo(f"  Verify TLS:  {config_obj.transport.verify_tls}")
    click.echo(
        f"  Timeouts:    {config_obj.transport.timeout_connect}s connect, "
        f"{config_obj.transport.timeout_read}s read"
    )
    click.echo(f"  Retries:     {config_obj.transport.max_retries} (GET only)")

    click.echo("\nBatch:")
    click.echo(f"  Connections: {config_obj.batch.concurrent_connections}")
    click.echo(f"  Retry synced: {config_obj.batch.retry_succeeded}")
    click.echo(f"  Output dir:  {config_obj.batch.output_dir}")

    click.echo("\nLogging:")
    click.echo(f"  Level:       {config_obj.logging.level}")
    click.echo(f"  Log file:    {config_obj.logging.log_file}")
    click.echo(f"  Redact PII:  {config_obj.logging.redact_pii}")


cli.add_command(config)


@cli.command()
def version() -> None:
    """Display version information."""
    click.echo(f"pseudonym-handler version {__version__}")


if __name__ == "__main__":
    cli()
