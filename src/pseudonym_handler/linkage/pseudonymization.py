"""Pseudonymization engine.

Redeems create tokens with a record's identifying data and moves the record
through the state machine according to the linkage service's verdict:

    201 -> PSEUDONYMIZED   (token discarded)
    400 -> IDAT_INVALID    (token kept)
    401 -> TOKEN_INVALID   (token and callback flag discarded)
    409 -> IDAT_CONFLICT   (token kept)

Any other status raises UnknownServiceResponseError and leaves the record
status untouched; the redeemed token stays on the record. Batches are redeemed by a bounded thread pool in which task i
only ever redeems token i for record i.
"""

import logging
import threading
import time
from collections.abc import Hashable, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Optional

from pseudonym_handler.linkage.submission import (
    build_submission_fields,
    parse_created_identity,
    parse_created_tentative,
    parse_json_body,
    token_id_from_url,
)
from pseudonym_handler.linkage.tokens import TokenBroker
from pseudonym_handler.logging_audit import log_audit_event
from pseudonym_handler.models.patient import PatientRecord, PatientRecordSet, PatientStatus
from pseudonym_handler.models.responses import PseudonymizationOutcome, TokenPurpose
from pseudonym_handler.transport.http_client import LinkageTransport
from pseudonym_handler.utils.exceptions import (
    IdentityConflictError,
    InvalidIdentityError,
    TokenInvalidError,
    UnknownServiceResponseError,
    create_error_info,
)

logger = logging.getLogger(__name__)

# Per-task results
PSEUDONYMIZED = "pseudonymized"
CONFLICT = "conflict"
FAILED = "failed"
CANCELLED = "cancelled"


@dataclass(frozen=True)
class TokenAssignment:
    """Token to redeem for one record.

    Attributes:
        key: Record key
        token_url: Token to redeem; None means the record's retained token
        use_callback: Callback flag that came with token_url
    """

    key: Hashable
    token_url: Optional[str] = None
    use_callback: Optional[bool] = None


class PseudonymizationEngine:
    """Submits identifying data against tokens and applies the verdict.

    Attributes:
        transport: Shared linkage transport
        broker: Token broker used for fresh create tokens
        concurrent_connections: Maximum concurrent redemptions (1 = sequential)

    Example:
        >>> engine = PseudonymizationEngine(transport, TokenBroker(transport))
        >>> outcome = engine.create_pseudonyms(records, records.keys())
        >>> outcome.pseudonymized
        ['p1', 'p2']
    """

    def __init__(
        self,
        transport: LinkageTransport,
        broker: TokenBroker,
        concurrent_connections: int = 1,
    ) -> None:
        if concurrent_connections < 1:
            raise ValueError(
                f"concurrent_connections must be >= 1, got {concurrent_connections}"
            )
        self.transport = transport
        self.broker = broker
        self.concurrent_connections = concurrent_connections

    def pseudonymize(
        self,
        record: PatientRecord,
        token_url: Optional[str] = None,
        use_callback: Optional[bool] = None,
    ) -> bool:
        """Redeem exactly one token for a record.

        Args:
            record: Record to submit
            token_url: Token to redeem (default: the record's retained token)
            use_callback: Callback flag of token_url (default: the record's flag)

        Returns:
            True if the record reached PSEUDONYMIZED

        Raises:
            ValueError: If no token is given and the record holds none
            TransportUnavailableError: If the linkage service is unreachable
            UnknownServiceResponseError: If the response is outside the defined outcomes
        """
        if token_url is not None:
            # Assigned before redemption; an undefined answer leaves it on the record
            record.active_token = token_url
            record.token_uses_callback = use_callback
        token_url = record.active_token
        use_callback = record.token_uses_callback
        if token_url is None:
            raise ValueError(f"Record {record.key} holds no token to redeem")

        fields = build_submission_fields(record.idat, record.sureness)
        response = self.transport.post_form(token_url, fields, exchange_type="IDAT_SUBMIT")
        status_code = response.status_code

        if status_code == 201:
            body = parse_json_body(response.text)
            if use_callback:
                pseudonym = token_id_from_url(token_url)
                tentative = parse_created_tentative(body)
            else:
                pseudonym, tentative = parse_created_identity(body, self.transport.api_version)

            record.pseudonym = pseudonym
            record.tentative = tentative
            record.status = PatientStatus.PSEUDONYMIZED
            record.active_token = None
            record.token_uses_callback = use_callback
            logger.info(f"Record {record.key} pseudonymized (tentative={tentative})")
            return True

        if status_code == 400:
            record.status = PatientStatus.IDAT_INVALID
            record.active_token = token_url
            record.token_uses_callback = use_callback
            _log_outcome(
                InvalidIdentityError(
                    f"Record {record.key} rejected as invalid identity: {response.text[:500]}"
                ),
                record,
            )
            return False

        if status_code == 401:
            record.status = PatientStatus.TOKEN_INVALID
            record.active_token = None
            record.token_uses_callback = None
            _log_outcome(TokenInvalidError(f"Record {record.key}: token invalid or expired"), record)
            return False

        if status_code == 409:
            record.status = PatientStatus.IDAT_CONFLICT
            record.active_token = token_url
            record.token_uses_callback = use_callback
            _log_outcome(
                IdentityConflictError(f"Record {record.key}: identity conflicts with an existing patient"),
                record,
            )
            return False

        raise UnknownServiceResponseError(
            f"Undefined response to identity submission for record {record.key}: "
            f"HTTP {status_code} {response.text[:200]}",
            status_code=status_code,
        )

    def create_pseudonyms(
        self,
        records: PatientRecordSet,
        keys: Sequence[Hashable],
        cancel_event: Optional[threading.Event] = None,
    ) -> PseudonymizationOutcome:
        """Acquire one create token per key and redeem token i for key i.

        Skips the token round trip entirely for an empty key list or when
        the caller has already cancelled.

        Raises:
            TransportUnavailableError: If token acquisition or a redemption fails at transport level
            UnknownServiceResponseError: If the token batch is malformed
        """
        keys = list(keys)
        if not keys:
            return PseudonymizationOutcome()
        if cancel_event is not None and cancel_event.is_set():
            logger.info(f"Cancelled before token acquisition, {len(keys)} record(s) untouched")
            return PseudonymizationOutcome(cancelled=keys)

        batch = self.broker.acquire_tokens(len(keys), TokenPurpose.CREATE)
        assignments = [
            TokenAssignment(key=key, token_url=token_url, use_callback=batch.use_callback)
            for key, token_url in zip(keys, batch.token_urls)
        ]
        return self.redeem(records, assignments, cancel_event)

    def resubmit(
        self,
        records: PatientRecordSet,
        keys: Sequence[Hashable],
        cancel_event: Optional[threading.Event] = None,
    ) -> PseudonymizationOutcome:
        """Redeem each record's retained token again, without a token round trip."""
        assignments = [TokenAssignment(key=key) for key in keys]
        return self.redeem(records, assignments, cancel_event)

    def redeem(
        self,
        records: PatientRecordSet,
        assignments: Sequence[TokenAssignment],
        cancel_event: Optional[threading.Event] = None,
    ) -> PseudonymizationOutcome:
        """Redeem a list of token assignments with bounded concurrency.

        Each assignment is one task and touches only its own record. Results
        are reported in assignment order regardless of completion order.
        Any error other than an undefined service answer stops the remaining
        tasks and propagates once the running ones have finished.
        """
        if not assignments:
            return PseudonymizationOutcome()

        start_time = time.time()
        abort = threading.Event()
        results: dict[int, str] = {}

        def run(index: int, assignment: TokenAssignment) -> str:
            if abort.is_set() or (cancel_event is not None and cancel_event.is_set()):
                return CANCELLED
            record = records.get(assignment.key)
            try:
                ok = self.pseudonymize(record, assignment.token_url, assignment.use_callback)
            except UnknownServiceResponseError as e:
                error_info = create_error_info(e, record_key=str(assignment.key))
                logger.error(
                    f"Record {assignment.key} status left unchanged: {e}. "
                    f"Remediation: {error_info.remediation}"
                )
                return FAILED
            except Exception:
                # Set before this worker can pick up the next queued task
                abort.set()
                raise
            return PSEUDONYMIZED if ok else CONFLICT

        workers = min(self.concurrent_connections, len(assignments))
        batch_error: Optional[Exception] = None

        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {
                executor.submit(run, index, assignment): index
                for index, assignment in enumerate(assignments)
            }
            for completed in as_completed(futures):
                index = futures[completed]
                if completed.cancelled():
                    results[index] = CANCELLED
                    continue
                try:
                    results[index] = completed.result()
                except Exception as e:
                    if batch_error is None:
                        batch_error = e
                        abort.set()
                        for future in futures:
                            future.cancel()
                    results[index] = FAILED

        if batch_error is not None:
            log_audit_event("PSEUDONYMIZATION_ABORTED", {
                "status": "failure",
                "record_count": len(assignments),
                "completed": sum(1 for result in results.values() if result != CANCELLED),
                "error_message": str(batch_error),
            })
            raise batch_error

        outcome = PseudonymizationOutcome()
        buckets = {
            PSEUDONYMIZED: outcome.pseudonymized,
            CONFLICT: outcome.conflicts,
            FAILED: outcome.failed,
            CANCELLED: outcome.cancelled,
        }
        for index, assignment in enumerate(assignments):
            buckets[results[index]].append(assignment.key)

        log_audit_event("PSEUDONYMIZATION_PASS", {
            "status": "success",
            "record_count": len(assignments),
            "duration": time.time() - start_time,
            "pseudonymized": len(outcome.pseudonymized),
            "conflicts": len(outcome.conflicts),
            "failed": len(outcome.failed),
            "cancelled": len(outcome.cancelled),
            "workers": workers,
        })
        return outcome


def _log_outcome(error: Exception, record: PatientRecord) -> None:
    """Log a defined failure outcome with its remediation."""
    error_info = create_error_info(error, record_key=str(record.key))
    logger.warning(f"{error_info.message}. Remediation: {error_info.remediation}")
