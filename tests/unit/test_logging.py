"""Unit tests for logging_audit module."""

import logging
from pathlib import Path

import pytest

from pseudonym_handler.logging_audit import (
    PIIRedactingFormatter,
    configure_logging,
    get_logger,
    log_audit_event,
    log_exchange,
)
from pseudonym_handler.logging_audit.logger import BACKUP_COUNT, MAX_LOG_FILE_SIZE


def _record(message: str, *args) -> logging.LogRecord:
    return logging.LogRecord(
        name="test", level=logging.INFO, pathname=__file__, lineno=1,
        msg=message, args=args, exc_info=None,
    )


class TestConfigureLogging:
    """Test logging configuration."""

    def test_configure_logging_creates_file(self, tmp_path):
        # Arrange
        log_file = tmp_path / "test.log"

        # Act
        configure_logging(level="INFO", log_file=log_file)
        get_logger(__name__).info("Test message")

        # Assert
        assert log_file.exists()
        assert "Test message" in log_file.read_text()

    def test_console_level_and_file_debug(self, tmp_path):
        """Console follows the requested level, the file always gets DEBUG."""
        # Arrange
        log_file = tmp_path / "test.log"

        # Act
        configure_logging(level="WARNING", log_file=log_file)
        get_logger(__name__).debug("Debug message")

        # Assert
        root_logger = logging.getLogger()
        console = [h for h in root_logger.handlers if type(h) is logging.StreamHandler]
        assert console[0].level == logging.WARNING
        assert "Debug message" in log_file.read_text()

    def test_creates_directory(self, tmp_path):
        log_file = tmp_path / "nested" / "dir" / "test.log"
        configure_logging(log_file=log_file)
        assert log_file.parent.is_dir()

    def test_invalid_level_raises_error(self, tmp_path):
        with pytest.raises(ValueError, match="Invalid log level"):
            configure_logging(level="CHATTY", log_file=tmp_path / "test.log")

    def test_environment_variable(self, tmp_path, monkeypatch):
        # Arrange
        log_file = tmp_path / "env.log"
        monkeypatch.setenv("PSEUDONYM_HANDLER_LOG_FILE", str(log_file))

        # Act
        configure_logging()
        get_logger(__name__).info("From env")

        # Assert
        assert "From env" in log_file.read_text()

    def test_idempotent(self, tmp_path):
        """Repeated configuration does not stack handlers."""
        configure_logging(log_file=tmp_path / "a.log")
        configure_logging(log_file=tmp_path / "b.log")

        handlers = logging.getLogger().handlers
        file_handlers = [h for h in handlers if hasattr(h, "baseFilename")]
        assert [Path(h.baseFilename).name for h in file_handlers] == ["b.log"]
        assert len([h for h in handlers if type(h) is logging.StreamHandler]) == 1

    def test_rotation_config(self, tmp_path):
        configure_logging(log_file=tmp_path / "test.log")

        file_handler = [h for h in logging.getLogger().handlers if hasattr(h, "baseFilename")][0]
        assert file_handler.maxBytes == MAX_LOG_FILE_SIZE
        assert file_handler.backupCount == BACKUP_COUNT

    def test_urllib3_quieted(self, tmp_path):
        configure_logging(level="DEBUG", log_file=tmp_path / "test.log")
        assert logging.getLogger("urllib3").level == logging.WARNING

    def test_redaction_reaches_file(self, tmp_path):
        # Arrange
        log_file = tmp_path / "test.log"

        # Act
        configure_logging(log_file=log_file, redact_pii=True)
        get_logger(__name__).info("Submitting lastname=Lovelace birthdate=1815-12-10")

        # Assert
        content = log_file.read_text()
        assert "Lovelace" not in content
        assert "lastname=[NAME-REDACTED]" in content


class TestGetLogger:
    def test_uses_module_name(self):
        logger = get_logger("pseudonym_handler.linkage.tokens")
        assert isinstance(logger, logging.Logger)
        assert logger.name == "pseudonym_handler.linkage.tokens"


class TestPIIRedactingFormatter:
    """Test identifying data redaction."""

    def test_redact_names(self):
        # Arrange
        formatter = PIIRedactingFormatter(fmt="%(message)s", redact_pii=True)
        record = _record("firstname=Ada, lastname='Lovelace' vorname=Alan nachname=\"Turing\"")

        # Act
        output = formatter.format(record)

        # Assert
        assert "Ada" not in output
        assert "Lovelace" not in output
        assert "Turing" not in output
        assert output.count("[NAME-REDACTED]") == 4

    def test_redact_dates(self):
        formatter = PIIRedactingFormatter(fmt="%(message)s", redact_pii=True)

        output = formatter.format(_record("born 1815-12-10 or 23.06.1912, birthdate=1906-12-09"))

        assert "1815" not in output
        assert "1912" not in output
        assert "birthdate=[DATE-REDACTED]" in output

    def test_timestamps_left_alone(self):
        formatter = PIIRedactingFormatter(fmt="%(message)s", redact_pii=True)
        output = formatter.format(_record("started 2024-01-31T10:00:00"))
        assert "2024-01-31T10:00:00" in output

    def test_asctime_not_redacted(self):
        """Only the message is redacted, the timestamp prefix stays readable."""
        # Arrange
        formatter = PIIRedactingFormatter(
            fmt="%(asctime)s %(message)s", datefmt="%Y-%m-%d", redact_pii=True
        )
        record = _record("birthdate=%s", "1815-12-10")

        # Act
        output = formatter.format(record)

        # Assert
        prefix = output.split(" ", 1)[0]
        assert "REDACTED" not in prefix
        assert output.endswith("birthdate=[DATE-REDACTED]")

    def test_original_record_untouched(self):
        formatter = PIIRedactingFormatter(fmt="%(message)s", redact_pii=True)
        record = _record("lastname=%s", "Lovelace")

        formatter.format(record)

        assert record.getMessage() == "lastname=Lovelace"

    def test_no_redaction_when_disabled(self):
        formatter = PIIRedactingFormatter(fmt="%(message)s", redact_pii=False)
        output = formatter.format(_record("lastname=Lovelace birthdate=1815-12-10"))
        assert output == "lastname=Lovelace birthdate=1815-12-10"

    def test_pseudonyms_survive(self):
        formatter = PIIRedactingFormatter(fmt="%(message)s", redact_pii=True)
        output = formatter.format(_record("pseudonym=A1B2C3D4 status=PSEUDONYMIZED"))
        assert output == "pseudonym=A1B2C3D4 status=PSEUDONYMIZED"


class TestLogAuditEvent:
    """Test audit trail events."""

    def test_success_logged_at_info(self, caplog):
        # Act
        with caplog.at_level(logging.INFO, logger="pseudonym_handler.logging_audit.audit"):
            log_audit_event("TOKENS_ACQUIRED", {
                "purpose": "CREATE",
                "record_count": 3,
                "status": "success",
                "duration": 0.5,
            })

        # Assert
        record = caplog.records[-1]
        assert record.levelno == logging.INFO
        assert record.getMessage().startswith("AUDIT [TOKENS_ACQUIRED] | status=success")
        assert "duration=0.50s" in record.getMessage()
        assert "purpose=CREATE" in record.getMessage()
        assert "timestamp" not in record.getMessage()

    def test_failure_logged_at_error(self, caplog):
        with caplog.at_level(logging.INFO):
            log_audit_event("PSEUDONYMIZATION_FAILED", {"status": "failure", "error_message": "down"})

        assert caplog.records[-1].levelno == logging.ERROR
        assert "error_message=down" in caplog.text

    def test_adds_correlation_id(self, caplog):
        with caplog.at_level(logging.INFO):
            log_audit_event("MDAT_SENT", {"status": "success"})
        assert "correlation_id=" in caplog.text

    def test_preserves_custom_correlation_id(self, caplog):
        details = {"status": "success", "correlation_id": "corr-42"}

        with caplog.at_level(logging.INFO):
            log_audit_event("MDAT_SENT", details)

        assert "correlation_id=corr-42" in caplog.text
        assert "timestamp" not in details


class TestLogExchange:
    """Test exchange logging."""

    def test_summary_and_body(self, caplog):
        # Act
        with caplog.at_level(logging.DEBUG):
            log_exchange("TOKEN_CREATE", "POST", "http://broker.test/tokens/addPatient", 200, '{"a": 1}')

        # Assert
        info = [r for r in caplog.records if r.levelno == logging.INFO]
        debug = [r for r in caplog.records if r.levelno == logging.DEBUG]
        assert "EXCHANGE [TOKEN_CREATE]" in info[0].getMessage()
        assert "status_code=200" in info[0].getMessage()
        assert "response_size=8 bytes" in info[0].getMessage()
        assert debug[0].getMessage().endswith('{"a": 1}')

    def test_correlation_id_matches(self, caplog):
        with caplog.at_level(logging.DEBUG):
            log_exchange("IDAT_SUBMIT", "POST", "http://broker.test/patients", 201, "[]")

        first = caplog.records[0].getMessage().split("correlation_id=")[1].split(" ")[0]
        assert f"correlation_id={first}" in caplog.records[1].getMessage()

    def test_empty_body_skips_debug(self, caplog):
        with caplog.at_level(logging.DEBUG):
            log_exchange("IDAT_SUBMIT", "POST", "http://broker.test/patients", 500)
        assert len(caplog.records) == 1
