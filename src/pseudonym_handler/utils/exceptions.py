"""Custom exception classes for Pseudonym Handler.

All exceptions inherit from PseudonymHandlerError to allow catching all custom exceptions.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

import requests


class PseudonymHandlerError(Exception):
    """Base exception for all Pseudonym Handler custom exceptions."""

    pass


class ValidationError(PseudonymHandlerError):
    """Raised when data validation fails.

    Examples:
        - Malformed CSV rows
        - Invalid configuration values
    """

    pass


class InvalidIdentityError(ValidationError):
    """Raised when identifying data (IDAT) is rejected.

    Examples:
        - Empty first or last name
        - Birth date in the future
        - Identity rejected by the record-linkage service (HTTP 400)
    """

    pass


class TransportError(PseudonymHandlerError):
    """Raised when network/transport issues occur.

    Examples:
        - Connection timeout
        - HTTP error responses
        - Network unreachable
    """

    pass


class TransportUnavailableError(TransportError):
    """Raised when the record-linkage service cannot be used at all.

    Fails the whole enclosing operation; no partial progress is assumed.

    Examples:
        - Token broker unreachable
        - Token request rejected with a non-2xx status
        - Medical data backend unreachable
    """

    pass


class TokenInvalidError(PseudonymHandlerError):
    """Token was rejected as invalid or expired (HTTP 401).

    Recoverable by acquiring a fresh token.
    """

    pass


class IdentityConflictError(PseudonymHandlerError):
    """Submitted identity conflicts with an existing record (HTTP 409).

    Recoverable by resubmitting with the same token once the caller
    has disambiguated, e.g. by setting sureness.
    """

    pass


class UnknownServiceResponseError(PseudonymHandlerError):
    """Raised when the service answers outside the defined outcome set.

    Fatal for the affected record; never defaulted to success.

    Examples:
        - Token redemption answered with HTTP 500
        - Token batch with the wrong number of tokens
        - Success body without an identifier
    """

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ConfigurationError(PseudonymHandlerError):
    """Raised when configuration loading or validation fails.

    Examples:
        - Missing required configuration
        - Invalid configuration file format
        - Configuration value out of range
    """

    pass


class ErrorCategory(Enum):
    """Error categorization for handling strategy.

    Determines how errors should be handled in batch processing workflows.

    Attributes:
        TRANSIENT: Recoverable by a later protocol pass (invalid token, conflict)
        PERMANENT: Skip record, continue batch (invalid identity, unknown response)
        CRITICAL: Halt processing immediately (service unreachable, bad config)

    Example:
        >>> category = categorize_error(TransportUnavailableError("Service unreachable"))
        >>> if category == ErrorCategory.CRITICAL:
        ...     raise  # halt workflow
    """

    TRANSIENT = "TRANSIENT"
    PERMANENT = "PERMANENT"
    CRITICAL = "CRITICAL"


@dataclass
class ErrorInfo:
    """Structured error information for actionable error handling.

    Attributes:
        category: Error category (TRANSIENT, PERMANENT, CRITICAL)
        error_type: Exception class name (e.g., "TransportUnavailableError")
        message: User-friendly error message
        remediation: Actionable guidance for resolving the error
        is_retryable: Whether a later protocol pass can recover the record
        technical_details: Optional technical details for debugging
        record_key: Optional record key if error occurred during record processing
        raw_response: Optional raw response content for malformed responses
    """

    category: ErrorCategory
    error_type: str
    message: str
    remediation: str
    is_retryable: bool
    technical_details: Optional[str] = None
    record_key: Optional[str] = None
    raw_response: Optional[str] = None


def categorize_error(exception: Exception) -> ErrorCategory:
    """Categorize exception for error handling strategy.

    Args:
        exception: The exception to categorize

    Returns:
        ErrorCategory indicating handling strategy

    Example:
        >>> categorize_error(TokenInvalidError("Token expired"))
        ErrorCategory.TRANSIENT
        >>> categorize_error(InvalidIdentityError("Empty lastname"))
        ErrorCategory.PERMANENT
        >>> categorize_error(TransportUnavailableError("Unreachable"))
        ErrorCategory.CRITICAL
    """
    # CRITICAL errors - halt workflow immediately
    if isinstance(exception, (TransportError, ConfigurationError)):
        return ErrorCategory.CRITICAL

    if isinstance(exception, (requests.ConnectionError, requests.Timeout)):
        return ErrorCategory.CRITICAL

    # TRANSIENT errors - a later resolution pass can recover the record
    if isinstance(exception, (TokenInvalidError, IdentityConflictError)):
        return ErrorCategory.TRANSIENT

    # PERMANENT errors - skip, do not retry
    if isinstance(exception, (ValidationError, UnknownServiceResponseError)):
        return ErrorCategory.PERMANENT

    # Default to PERMANENT for unknown errors
    return ErrorCategory.PERMANENT


def create_error_info(
    exception: Exception,
    record_key: Optional[str] = None,
    raw_response: Optional[str] = None
) -> ErrorInfo:
    """Create structured error information from exception.

    Args:
        exception: Exception that occurred
        record_key: Optional record key if error during record processing
        raw_response: Optional raw response if error parsing response

    Returns:
        ErrorInfo with categorization and remediation guidance
    """
    category = categorize_error(exception)

    technical_details = None
    if exception.__cause__ is not None:
        technical_details = f"Caused by: {type(exception.__cause__).__name__}: {exception.__cause__}"

    if isinstance(exception, UnknownServiceResponseError) and exception.status_code is not None:
        status_detail = f"HTTP status {exception.status_code}"
        technical_details = f"{technical_details}; {status_detail}" if technical_details else status_detail

    return ErrorInfo(
        category=category,
        error_type=type(exception).__name__,
        message=str(exception),
        remediation=_generate_remediation(exception, category),
        is_retryable=category == ErrorCategory.TRANSIENT,
        technical_details=technical_details,
        record_key=record_key,
        raw_response=raw_response
    )


def _generate_remediation(exception: Exception, category: ErrorCategory) -> str:
    """Generate actionable remediation message for an error.

    Args:
        exception: Exception that occurred
        category: Error category

    Returns:
        Actionable remediation message
    """
    if isinstance(exception, (TransportUnavailableError, requests.ConnectionError)):
        return (
            "Cannot reach the record-linkage service. Check: 1) Network connectivity, "
            "2) endpoints.server_url in config.json, 3) The token broker is running."
        )

    if isinstance(exception, requests.Timeout):
        return (
            "Request timed out. Consider increasing transport.timeout_read in config.json "
            "or checking the record-linkage service performance."
        )

    if isinstance(exception, TokenInvalidError):
        return (
            "Token is invalid or expired. Run the batch again; the record will be "
            "re-tokenized automatically."
        )

    if isinstance(exception, IdentityConflictError):
        return (
            "Identity conflicts with an existing patient. Verify the identifying data "
            "and set sureness=true to force a new pseudonym, then run the batch again."
        )

    if isinstance(exception, InvalidIdentityError):
        return (
            "Identifying data was rejected. Correct first name, last name or birth date "
            "in the input before resubmitting."
        )

    if isinstance(exception, UnknownServiceResponseError):
        return (
            "The record-linkage service answered with an undefined response. Check the "
            "service logs and the configured linkage_api_version."
        )

    if isinstance(exception, ValidationError):
        return (
            "Data validation failed. Review patient data in the CSV file. "
            "Check examples/patients_sample.csv for correct format."
        )

    if isinstance(exception, ConfigurationError):
        return (
            "Configuration error. Check config.json for missing or invalid values. "
            "Use examples/config.example.json as template."
        )

    return "Review error message and check logs/ for complete details."
