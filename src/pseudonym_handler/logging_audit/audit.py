"""Audit trail functionality for Pseudonym Handler.

This module provides structured audit logging for exchanges with the
record-linkage service. Audit lines carry counts and identifiers, never IDAT.
"""

import time
import uuid
from typing import Any, Dict

from .logger import get_logger

logger = get_logger(__name__)

# Fields rendered first, in this order
AUDIT_FIELD_ORDER = [
    "status",
    "batch_id",
    "record_count",
    "duration",
    "error_count",
    "error_message",
    "correlation_id",
]


def log_audit_event(event_type: str, details: Dict[str, Any]) -> None:
    """Log an audit trail event.

    Args:
        event_type: Type of operation (e.g., "TOKENS_ACQUIRED", "PSEUDONYMIZATION_COMPLETED",
                   "MDAT_SENT", "DEPSEUDONYMIZATION_COMPLETED")
        details: Dictionary with event details. Common fields include:
                - status: "success" or "failure"
                - record_count: Number of records involved
                - duration: Operation duration in seconds
                - error_message: Error details (if status is failure)

    Example:
        >>> log_audit_event("TOKENS_ACQUIRED", {
        ...     "purpose": "CREATE",
        ...     "record_count": 112,
        ...     "status": "success",
        ... })
    """
    details = dict(details)
    details.setdefault("timestamp", time.time())
    details.setdefault("correlation_id", str(uuid.uuid4()))

    message_parts = [f"AUDIT [{event_type}]"]

    for field in AUDIT_FIELD_ORDER:
        if field in details:
            value = details[field]
            if field == "duration" and isinstance(value, (int, float)):
                message_parts.append(f"{field}={value:.2f}s")
            else:
                message_parts.append(f"{field}={value}")

    for key, value in details.items():
        if key not in AUDIT_FIELD_ORDER and key != "timestamp":
            message_parts.append(f"{key}={value}")

    audit_message = " | ".join(message_parts)

    if details.get("status") == "failure":
        logger.error(audit_message)
    else:
        logger.info(audit_message)


def log_exchange(
    exchange_type: str,
    method: str,
    url: str,
    status_code: int,
    response_text: str = "",
) -> None:
    """Log one HTTP exchange with the record-linkage service.

    The summary goes to INFO, the response body to DEBUG. Request bodies
    are never logged since they carry identifying data.

    Args:
        exchange_type: Logical exchange (e.g., "TOKEN_CREATE", "IDAT_SUBMIT")
        method: HTTP method
        url: Request URL
        status_code: HTTP status of the response
        response_text: Raw response body
    """
    correlation_id = str(uuid.uuid4())

    logger.info(
        f"EXCHANGE [{exchange_type}] | "
        f"{method} {url} | "
        f"status_code={status_code} | "
        f"correlation_id={correlation_id} | "
        f"response_size={len(response_text)} bytes"
    )
    if response_text:
        logger.debug(
            f"EXCHANGE RESPONSE [{exchange_type}] | "
            f"correlation_id={correlation_id}\n"
            f"{response_text}"
        )
