"""Unit tests for CLI commands.

This module tests the command-line interface for pseudonym-handler
including the main group, patient batch commands, depseudonymization and
configuration validation.
"""

import json
from datetime import date, datetime, timezone
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from pseudonym_handler import __version__
from pseudonym_handler.cli.main import cli
from pseudonym_handler.models.batch import BatchPseudonymizationResult
from pseudonym_handler.models.patient import IdentifyingData, PatientStatus
from pseudonym_handler.models.responses import DepseudonymizationResult, ResolvedIdentity
from pseudonym_handler.utils.exceptions import (
    TransportUnavailableError,
    UnknownServiceResponseError,
)


WORKFLOW = "pseudonym_handler.cli.pseudonym_commands.PseudonymizationWorkflow"


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def csv_file(tmp_path):
    path = tmp_path / "patients.csv"
    path.write_text(
        "key,firstname,lastname,birthdate,mdat\n"
        "p1,Ada,Lovelace,1815-12-10,diagnosis-a\n"
        "p2,Alan,Turing,1912-06-23,diagnosis-b\n"
        "p3,Grace,Hopper,1906-12-09,diagnosis-c\n"
    )
    return path


def fake_send(records):
    """Pseudonymize p1 and p2, sync p1, leave p3 in conflict."""
    for key, status in (("p1", PatientStatus.PROCESSED), ("p2", PatientStatus.NOT_PROCESSED)):
        record = records.get(key)
        record.pseudonym = f"PSN-{key}"
        record.status = status
    records.get("p3").status = PatientStatus.IDAT_CONFLICT
    now = datetime.now(timezone.utc)
    return BatchPseudonymizationResult(
        batch_id="batch-1",
        operation="send",
        start_timestamp=now,
        end_timestamp=now,
        total_records=3,
        pseudonymized=["p1", "p2"],
        conflicts=["p3"],
        synced=["p1"],
        not_synced=["p2"],
        error_summary={"IDAT_CONFLICT": 1},
    )


class TestMainCLI:
    """Test cases for main CLI entry point."""

    def test_cli_help(self, runner):
        # Act
        result = runner.invoke(cli, ["--help"])

        # Assert
        assert result.exit_code == 0
        assert "Pseudonym Handler" in result.output
        assert "--verbose" in result.output
        assert "--redact-pii" in result.output

    def test_cli_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "pseudonym-handler" in result.output
        assert __version__ in result.output

    def test_cli_version_command(self, runner, config_file):
        result = runner.invoke(cli, ["--config", str(config_file), "version"])
        assert result.exit_code == 0
        assert f"pseudonym-handler version {__version__}" in result.output

    def test_verbose_flag_configures_logging(self, runner, config_file):
        """--verbose wins over the configured level."""
        # Act
        with patch("pseudonym_handler.cli.main.configure_logging") as mock_config:
            result = runner.invoke(cli, ["--config", str(config_file), "--verbose", "patients", "--help"])

        # Assert
        assert result.exit_code == 0
        assert mock_config.call_args.kwargs["level"] == "DEBUG"

    def test_logging_from_config(self, runner, config_file, tmp_path):
        # Act
        with patch("pseudonym_handler.cli.main.configure_logging") as mock_config:
            runner.invoke(cli, [
                "--config", str(config_file),
                "--log-file", str(tmp_path / "cli.log"),
                "--redact-pii",
                "version",
            ])

        # Assert
        kwargs = mock_config.call_args.kwargs
        assert kwargs["level"] == "DEBUG"
        assert kwargs["log_file"] == tmp_path / "cli.log"
        assert kwargs["redact_pii"] is True

    def test_broken_config_exits_1(self, runner, tmp_path):
        # Arrange
        bad = tmp_path / "bad.json"
        bad.write_text("{not json")

        # Act
        result = runner.invoke(cli, ["--config", str(bad), "version"])

        # Assert
        assert result.exit_code == 1
        assert "Error loading configuration" in result.output


class TestPatientsSend:
    """Test cases for patients send."""

    def test_send_success_with_conflicts(self, runner, config_file, csv_file, tmp_path):
        """Records left in conflict are reported but do not fail the command."""
        # Arrange
        output = tmp_path / "out" / "result.json"

        # Act
        with patch(WORKFLOW) as workflow_cls:
            workflow = workflow_cls.return_value.__enter__.return_value
            workflow.send_patients.side_effect = fake_send
            result = runner.invoke(cli, [
                "--config", str(config_file), "patients", "send", str(csv_file), "--output", str(output),
            ])

        # Assert
        assert result.exit_code == 0
        assert "PATIENTS SEND" in result.output
        assert "Total Patients: 3" in result.output
        assert "p1 -> PSN-p1 [PROCESSED]" in result.output
        assert "p3 [IDAT_CONFLICT]" in result.output
        assert "PSEUDONYMIZATION SUMMARY (SEND)" in result.output
        assert "Lovelace" not in result.output
        data = json.loads(output.read_text())
        assert data["batch_id"] == "batch-1"
        workflow.send_patients.assert_called_once()

    def test_no_retry_succeeded_option(self, runner, config_file, csv_file):
        """Records are rebuilt from the CSV in CREATED state, so there is nothing to re-enter."""
        # Act
        with patch(WORKFLOW) as workflow_cls:
            workflow = workflow_cls.return_value.__enter__.return_value
            workflow.send_patients.side_effect = fake_send
            result = runner.invoke(cli, [
                "--config", str(config_file), "patients", "send", str(csv_file), "--retry-succeeded",
            ])

        # Assert
        assert result.exit_code == 2
        assert "No such option" in result.output
        workflow.send_patients.assert_not_called()

    def test_invalid_csv_exits_1(self, runner, config_file, tmp_path):
        # Arrange
        bad_csv = tmp_path / "bad.csv"
        bad_csv.write_text("firstname,lastname\nAda,Lovelace\n")

        # Act
        with patch(WORKFLOW) as workflow_cls:
            result = runner.invoke(cli, ["--config", str(config_file), "patients", "send", str(bad_csv)])

        # Assert
        assert result.exit_code == 1
        assert "Validation Error" in result.output
        workflow_cls.assert_not_called()

    def test_missing_csv_is_usage_error(self, runner, config_file, tmp_path):
        result = runner.invoke(cli, [
            "--config", str(config_file), "patients", "send", str(tmp_path / "none.csv"),
        ])
        assert result.exit_code == 2
        assert "does not exist" in result.output

    @pytest.mark.parametrize("error", [
        TransportUnavailableError("broker unreachable"),
        UnknownServiceResponseError("token batch of wrong size"),
    ])
    def test_linkage_failure_exits_2(self, runner, config_file, csv_file, error):
        # Act
        with patch(WORKFLOW) as workflow_cls:
            workflow_cls.return_value.__enter__.return_value.send_patients.side_effect = error
            result = runner.invoke(cli, ["--config", str(config_file), "patients", "send", str(csv_file)])

        # Assert
        assert result.exit_code == 2
        assert "Record-Linkage Error" in result.output
        assert "Remediation" in result.output


class TestPatientsRequest:
    def test_request(self, runner, config_file, csv_file):
        # Arrange
        def fake_request(records):
            result = fake_send(records)
            result.operation = "request"
            records.get("p1").status = PatientStatus.FOUND
            records.get("p2").status = PatientStatus.NOT_FOUND
            return result

        # Act
        with patch(WORKFLOW) as workflow_cls:
            workflow_cls.return_value.__enter__.return_value.request_patients.side_effect = fake_request
            result = runner.invoke(cli, ["--config", str(config_file), "patients", "request", str(csv_file)])

        # Assert
        assert result.exit_code == 0
        assert "PATIENTS REQUEST" in result.output
        assert "p1 -> PSN-p1 [FOUND]" in result.output
        assert "Found:                1" in result.output


class TestDepseudonymize:
    """Test cases for depseudonymize."""

    def test_resolves_and_reports(self, runner, config_file, tmp_path):
        # Arrange
        pseudonym_file = tmp_path / "pseudonyms.txt"
        pseudonym_file.write_text("X\nZ\n")
        outcome = DepseudonymizationResult(
            requested=["A1", "X", "Z"],
            depseudonymized={
                "A1": ResolvedIdentity(IdentifyingData("Ada", "Lovelace", date(1815, 12, 10)), tentative=True),
            },
            invalid=["X"],
        )

        # Act
        with patch(WORKFLOW) as workflow_cls:
            workflow = workflow_cls.return_value.__enter__.return_value
            workflow.depseudonymize.return_value = outcome
            result = runner.invoke(cli, [
                "--config", str(config_file), "depseudonymize", "A1", "--file", str(pseudonym_file),
            ])

        # Assert
        assert result.exit_code == 0
        workflow.depseudonymize.assert_called_once_with(["A1", "X", "Z"])
        assert "A1: Ada Lovelace, 1815-12-10 (tentative)" in result.output
        assert "X: invalid pseudonym" in result.output
        assert "Z: no identity returned" in result.output
        assert "Resolved 1/3 pseudonym(s), 1 invalid" in result.output

    def test_no_pseudonyms_exits_1(self, runner, config_file):
        result = runner.invoke(cli, ["--config", str(config_file), "depseudonymize"])
        assert result.exit_code == 1
        assert "No pseudonyms given" in result.output

    def test_transport_failure_exits_2(self, runner, config_file):
        with patch(WORKFLOW) as workflow_cls:
            workflow_cls.return_value.__enter__.return_value.depseudonymize.side_effect = (
                TransportUnavailableError("down")
            )
            result = runner.invoke(cli, ["--config", str(config_file), "depseudonymize", "A1"])

        assert result.exit_code == 2


class TestConfigValidate:
    """Test cases for config validate."""

    def test_valid_config(self, runner, config_file):
        # Act
        result = runner.invoke(cli, ["--config", str(config_file), "config", "validate", str(config_file)])

        # Assert
        assert result.exit_code == 0
        assert "Configuration is valid" in result.output
        assert "Server URL:  http://broker.test" in result.output
        assert "Connections: 4" in result.output

    def test_invalid_config(self, runner, config_file, tmp_path):
        # Arrange
        bad = tmp_path / "bad.json"
        bad.write_text(json.dumps({"endpoints": {"server_url": "broker.test"}}))

        # Act
        result = runner.invoke(cli, ["--config", str(config_file), "config", "validate", str(bad)])

        # Assert
        assert result.exit_code == 1
        assert "Configuration validation failed" in result.output
