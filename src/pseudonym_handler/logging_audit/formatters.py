"""Custom log formatters for Pseudonym Handler.

This module provides a formatter that masks identifying data (IDAT) in log output.
"""

import logging
import re
from typing import List, Tuple


class PIIRedactingFormatter(logging.Formatter):
    """Formatter that redacts identifying data from log messages.

    Masks first names, last names and birth dates written in the key=value
    form used across the package, the Mainzelliste form field names, and
    free-standing ISO or German formatted dates.

    Attributes:
        redact_pii: Whether to enable redaction
        patterns: List of (regex_pattern, replacement_text) tuples

    Example:
        >>> formatter = PIIRedactingFormatter(redact_pii=True)
        >>> handler = logging.StreamHandler()
        >>> handler.setFormatter(formatter)
    """

    def __init__(
        self,
        fmt: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt: str | None = None,
        redact_pii: bool = False,
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.redact_pii = redact_pii

        self.patterns: List[Tuple[re.Pattern[str], str]] = [
            # firstname=Ada, lastname='Lovelace', vorname=Ada, nachname="Lovelace"
            (re.compile(r'\b(firstname|lastname|vorname|nachname)=["\']?[^"\',\s|]+["\']?'),
             r'\1=[NAME-REDACTED]'),
            # birthdate=1815-12-10
            (re.compile(r'\b(birthdate|geburtsdatum)=["\']?[^"\',\s|]+["\']?'),
             r'\1=[DATE-REDACTED]'),
            # Bare dates: 1815-12-10, 10.12.1815
            (re.compile(r'\b\d{4}-\d{2}-\d{2}\b(?![T:\d])'), '[DATE-REDACTED]'),
            (re.compile(r'\b\d{2}\.\d{2}\.\d{4}\b'), '[DATE-REDACTED]'),
        ]

    def redact(self, message: str) -> str:
        """Apply all redaction patterns to a message."""
        for pattern, replacement in self.patterns:
            message = pattern.sub(replacement, message)
        return message

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record with optional redaction.

        Only the message is redacted so the timestamp prefix stays intact.
        """
        if not self.redact_pii:
            return super().format(record)

        redacted = logging.makeLogRecord(record.__dict__)
        redacted.msg = self.redact(record.getMessage())
        redacted.args = None
        return super().format(redacted)
