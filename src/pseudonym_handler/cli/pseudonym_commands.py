"""Pseudonymization CLI commands module.

This module provides Click-based CLI commands that pseudonymize patients
from CSV files, exchange their medical data with the backend and resolve
pseudonyms back to identifying data.

Exit Codes:
    0: Success (records left in conflict are reported, not fatal)
    1: Validation or configuration error
    2: Record-linkage service unreachable or undefined broker response
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import click

from pseudonym_handler.config.schema import Config
from pseudonym_handler.csv_parser.parser import parse_csv, read_pseudonyms
from pseudonym_handler.linkage.workflows import (
    PseudonymizationWorkflow,
    generate_summary_report,
    save_pseudonymization_results,
)
from pseudonym_handler.models.batch import BatchPseudonymizationResult
from pseudonym_handler.models.patient import PatientRecordSet
from pseudonym_handler.utils.exceptions import (
    ConfigurationError,
    TransportError,
    UnknownServiceResponseError,
    ValidationError,
)

logger = logging.getLogger(__name__)


@click.group(name="patients")
def patients() -> None:
    """Patient pseudonymization and medical data commands.

    Records are read from a CSV file with columns firstname, lastname and
    birthdate, plus optional key, mdat and sureness.
    """
    pass


@patients.command(name="send")
@click.argument("csv_file", type=click.Path(exists=True, path_type=Path))
@click.option(
    "--output",
    "-o",
    type=click.Path(path_type=Path),
    default=None,
    help="Output JSON file path for batch results",
)
@click.pass_context
def send(ctx: click.Context, csv_file: Path, output: Optional[Path]) -> None:
    """Pseudonymize patients and store their medical data.

    Examples:
        # Send with default config
        $ pseudonym-handler patients send examples/patients_sample.csv

        # Save results to JSON file
        $ pseudonym-handler patients send patients.csv --output results.json
    """
    _run_batch(ctx, csv_file, output, operation="send")


@patients.command(name="request")
@click.argument("csv_file", type=click.Path(exists=True, path_type=Path))
@click.option(
    "--output",
    "-o",
    type=click.Path(path_type=Path),
    default=None,
    help="Output JSON file path for batch results",
)
@click.pass_context
def request(ctx: click.Context, csv_file: Path, output: Optional[Path]) -> None:
    """Pseudonymize patients and fetch their stored medical data.

    Example:
        $ pseudonym-handler patients request patients.csv --output found.json
    """
    _run_batch(ctx, csv_file, output, operation="request")


def _run_batch(
    ctx: click.Context,
    csv_file: Path,
    output: Optional[Path],
    operation: str,
) -> None:
    config_obj: Config = ctx.obj["config"]

    try:
        click.echo()
        click.echo(click.style("=" * 80, fg="cyan"))
        click.echo(click.style(f"PATIENTS {operation.upper()}", fg="cyan", bold=True))
        click.echo(click.style("=" * 80, fg="cyan"))
        click.echo()

        records = parse_csv(csv_file)

        click.echo(f"CSV File:       {csv_file}")
        click.echo(f"Total Patients: {len(records)}")
        click.echo(f"Server:         {config_obj.endpoints.server_url}")
        click.echo(f"Connections:    {config_obj.batch.concurrent_connections}")
        click.echo()

        with PseudonymizationWorkflow(config_obj) as workflow:
            if operation == "send":
                result = workflow.send_patients(records)
            else:
                result = workflow.request_patients(records)

        _display_record_results(result, records)
        click.echo()
        click.echo(generate_summary_report(result, records))

        if output:
            save_pseudonymization_results(result, records, output)
            click.echo(f"\nResults saved to: {output}")

        logger.info(
            f"Patients {operation} complete: {len(result.synced)}/{result.total_records} synced "
            f"in {result.duration_seconds:.1f}s"
        )
        sys.exit(0)

    except (ValidationError, FileNotFoundError) as e:
        logger.error(f"Validation error: {e}")
        click.echo(click.style("✗ Validation Error: ", fg="red", bold=True) + str(e), err=True)
        sys.exit(1)

    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        click.echo(click.style("✗ Configuration Error: ", fg="red", bold=True) + str(e), err=True)
        sys.exit(1)

    except (TransportError, UnknownServiceResponseError) as e:
        logger.error(f"Record-linkage error: {e}")
        click.echo(click.style("✗ Record-Linkage Error: ", fg="red", bold=True) + str(e), err=True)
        click.echo(
            "\nRemediation: Check server_url, network connectivity and that the "
            "token broker is running.",
            err=True,
        )
        sys.exit(2)


def _display_record_results(result: BatchPseudonymizationResult, records: PatientRecordSet) -> None:
    """Display one color-coded line per record; pseudonyms only, never IDAT."""
    for key in result.synced:
        record = records.get(key)
        suffix = " (tentative)" if record.tentative else ""
        click.echo(click.style("✓ ", fg="green") + f"{key} -> {record.pseudonym}{suffix} [{record.status.value}]")
    for key in result.not_synced:
        record = records.get(key)
        click.echo(click.style("- ", fg="yellow") + f"{key} -> {record.pseudonym} [{record.status.value}]")
    for key in result.conflicts:
        click.echo(click.style("✗ ", fg="red") + f"{key} [{records.get(key).status.value}]")
    for key in result.failed:
        click.echo(click.style("✗ ", fg="red") + f"{key} [undefined service response]")


@click.command(name="depseudonymize")
@click.argument("pseudonyms", nargs=-1)
@click.option(
    "--file",
    "-f",
    "pseudonym_file",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="Text file with one pseudonym per line",
)
@click.pass_context
def depseudonymize(
    ctx: click.Context,
    pseudonyms: tuple[str, ...],
    pseudonym_file: Optional[Path],
) -> None:
    """Resolve pseudonyms to identifying data.

    Examples:
        $ pseudonym-handler depseudonymize A1B2C3D4 E5F6A7B8
        $ pseudonym-handler depseudonymize --file pseudonyms.txt
    """
    config_obj: Config = ctx.obj["config"]

    requested = list(pseudonyms)
    try:
        if pseudonym_file:
            requested.extend(read_pseudonyms(pseudonym_file))
        if not requested:
            raise ValidationError("No pseudonyms given. Pass them as arguments or with --file.")

        with PseudonymizationWorkflow(config_obj) as workflow:
            result = workflow.depseudonymize(requested)

    except (ValidationError, FileNotFoundError) as e:
        click.echo(click.style("✗ Validation Error: ", fg="red", bold=True) + str(e), err=True)
        sys.exit(1)
    except (TransportError, UnknownServiceResponseError) as e:
        logger.error(f"Record-linkage error: {e}")
        click.echo(click.style("✗ Record-Linkage Error: ", fg="red", bold=True) + str(e), err=True)
        sys.exit(2)

    for pseudonym in result.requested:
        identity = result.depseudonymized.get(pseudonym)
        if identity is None:
            continue
        idat = identity.idat
        suffix = " (tentative)" if identity.tentative else ""
        click.echo(
            click.style("✓ ", fg="green")
            + f"{pseudonym}: {idat.firstname} {idat.lastname}, {idat.birthdate.isoformat()}{suffix}"
        )
    for pseudonym in result.invalid:
        click.echo(click.style("✗ ", fg="red") + f"{pseudonym}: invalid pseudonym")
    for pseudonym in result.unmatched:
        click.echo(click.style("? ", fg="yellow") + f"{pseudonym}: no identity returned")

    click.echo()
    click.echo(
        f"Resolved {len(result.depseudonymized)}/{len(result.requested)} pseudonym(s), "
        f"{len(result.invalid)} invalid"
    )
