"""Pseudonymization workflow orchestration module.

This module partitions a caller-supplied PatientRecordSet by status,
dispatches each partition to the pseudonymization engine or the conflict
resolver, and then drives the medical data exchange for the records that
hold a pseudonym.
"""

import json
import logging
import threading
import uuid
from collections.abc import Hashable, Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from pseudonym_handler.config.schema import Config
from pseudonym_handler.linkage.conflicts import ConflictResolver
from pseudonym_handler.linkage.depseudonymization import DepseudonymizationEngine
from pseudonym_handler.linkage.medical_data import MedicalDataClient
from pseudonym_handler.linkage.pseudonymization import PseudonymizationEngine
from pseudonym_handler.linkage.tokens import TokenBroker
from pseudonym_handler.logging_audit import log_audit_event
from pseudonym_handler.models.batch import BatchPseudonymizationResult
from pseudonym_handler.models.patient import PatientRecordSet, PatientStatus
from pseudonym_handler.models.responses import DepseudonymizationResult, PseudonymizationOutcome
from pseudonym_handler.transport.http_client import LinkageTransport
from pseudonym_handler.utils.exceptions import TransportError, UnknownServiceResponseError

logger = logging.getLogger(__name__)


class PseudonymizationWorkflow:
    """Orchestrator for pseudonymization, medical data exchange and depseudonymization.

    The record set passed to an orchestration call is owned by that call
    until it returns. Concurrent calls on the same set are not supported.

    Attributes:
        config: Application configuration
        transport: Shared linkage transport
        engine: Pseudonymization engine
        resolver: Conflict resolver
        depseudonymizer: Depseudonymization engine
        medical_data: Medical data backend client

    Example:
        >>> workflow = PseudonymizationWorkflow(load_config())
        >>> result = workflow.send_patients(records)
        >>> print(f"Processed: {len(result.synced)}/{result.total_records}")
    """

    def __init__(self, config: Config, transport: Optional[LinkageTransport] = None) -> None:
        """Initialize the orchestrator.

        Args:
            config: Application configuration
            transport: Preconfigured transport (default: pooled transport from config)
        """
        logger.info("Initializing pseudonymization workflow")
        self.config = config
        self.transport = transport or LinkageTransport(config)

        broker = TokenBroker(self.transport)
        self.engine = PseudonymizationEngine(
            self.transport, broker, config.batch.concurrent_connections
        )
        self.resolver = ConflictResolver(self.engine)
        self.depseudonymizer = DepseudonymizationEngine(self.transport, broker)
        self.medical_data = MedicalDataClient(self.transport)

    def handle_pseudonymization(
        self,
        records: PatientRecordSet,
        keys: Optional[Iterable[Hashable]] = None,
        retry_succeeded: Optional[bool] = None,
        cancel_event: Optional[threading.Event] = None,
        operation: str = "pseudonymize",
    ) -> BatchPseudonymizationResult:
        """Bring the selected records to PSEUDONYMIZED where possible.

        Partitioning:
            CREATED                    -> token acquisition + submission
            IDAT_INVALID, TOKEN_INVALID,
            IDAT_CONFLICT              -> one conflict resolution pass
            PSEUDONYMIZED              -> passed through
            PROCESSED, NOT_PROCESSED,
            FOUND, NOT_FOUND           -> skipped, unless retry_succeeded: then
                                          callback-mediated records get a fresh
                                          token and the others pass through

        Args:
            records: Owned record set
            keys: Keys to consider (default: all); duplicates are collapsed
            retry_succeeded: Re-enter already synced records (default: batch.retry_succeeded)
            cancel_event: Set by the caller to stop pending redemptions
            operation: Label stored in the result

        Returns:
            BatchPseudonymizationResult; pseudonymized keys are ordered
            pass-through first, then newly created, then resolved

        Raises:
            TransportUnavailableError: If the linkage service is unreachable
        """
        if retry_succeeded is None:
            retry_succeeded = self.config.batch.retry_succeeded
        keys = records.keys() if keys is None else list(dict.fromkeys(keys))

        result = BatchPseudonymizationResult(
            batch_id=str(uuid.uuid4()),
            operation=operation,
            start_timestamp=datetime.now(timezone.utc),
            total_records=len(keys),
        )

        to_create: list[Hashable] = []
        to_resolve: list[Hashable] = []
        passthrough: list[Hashable] = []

        for key in keys:
            record = records.get(key)
            status = record.status
            if status is PatientStatus.CREATED:
                to_create.append(key)
            elif status in (
                PatientStatus.IDAT_INVALID,
                PatientStatus.TOKEN_INVALID,
                PatientStatus.IDAT_CONFLICT,
            ):
                to_resolve.append(key)
            elif status is PatientStatus.PSEUDONYMIZED:
                passthrough.append(key)
            elif status in (
                PatientStatus.PROCESSED,
                PatientStatus.NOT_PROCESSED,
                PatientStatus.FOUND,
                PatientStatus.NOT_FOUND,
            ):
                if not retry_succeeded:
                    result.skipped.append(key)
                elif record.token_uses_callback:
                    to_create.append(key)
                else:
                    passthrough.append(key)
            else:
                raise ValueError(f"Unhandled patient status {status!r}")

        logger.info(
            f"Starting batch {result.batch_id} ({operation}): {len(to_create)} to create, "
            f"{len(to_resolve)} to resolve, {len(passthrough)} already pseudonymized, "
            f"{len(result.skipped)} skipped"
        )

        try:
            result.absorb(PseudonymizationOutcome(pseudonymized=passthrough))
            result.absorb(self.engine.create_pseudonyms(records, to_create, cancel_event))
            result.absorb(self.resolver.resolve(records, to_resolve, cancel_event))
        except (TransportError, UnknownServiceResponseError) as e:
            result.end_timestamp = datetime.now(timezone.utc)
            logger.error(f"Batch {result.batch_id} halted: {e}")
            log_audit_event("PSEUDONYMIZATION_FAILED", {
                "status": "failure",
                "batch_id": result.batch_id,
                "record_count": result.total_records,
                "error_message": str(e),
            })
            raise

        for key in result.conflicts:
            status_name = records.get(key).status.value
            result.error_summary[status_name] = result.error_summary.get(status_name, 0) + 1
        if result.failed:
            result.error_summary["UNKNOWN_RESPONSE"] = len(result.failed)

        result.end_timestamp = datetime.now(timezone.utc)
        log_audit_event("PSEUDONYMIZATION_COMPLETED", {
            "status": "success",
            "batch_id": result.batch_id,
            "record_count": result.total_records,
            "duration": result.duration_seconds,
            "pseudonymized": len(result.pseudonymized),
            "conflicts": len(result.conflicts),
            "failed": len(result.failed),
            "cancelled": len(result.cancelled),
        })
        return result

    def send_patients(
        self,
        records: PatientRecordSet,
        keys: Optional[Iterable[Hashable]] = None,
        retry_succeeded: Optional[bool] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> BatchPseudonymizationResult:
        """Pseudonymize, then store medical data for every pseudonymized record.

        Records the backend accepted move to PROCESSED, the others to NOT_PROCESSED.

        Raises:
            TransportUnavailableError: If the linkage service or backend is unreachable
        """
        result = self.handle_pseudonymization(
            records, keys, retry_succeeded, cancel_event, operation="send"
        )

        entries = [
            {
                "pseudonym": records.get(key).pseudonym,
                "mdat": records.get(key).mdat,
                "tentative": records.get(key).tentative,
            }
            for key in result.pseudonymized
        ]
        stored = self.medical_data.send(entries)

        for key in result.pseudonymized:
            record = records.get(key)
            if stored.get(record.pseudonym, False):
                record.status = PatientStatus.PROCESSED
                result.synced.append(key)
            else:
                record.status = PatientStatus.NOT_PROCESSED
                result.not_synced.append(key)

        result.end_timestamp = datetime.now(timezone.utc)
        log_audit_event("MDAT_SENT", {
            "status": "success",
            "batch_id": result.batch_id,
            "record_count": len(entries),
            "processed": len(result.synced),
            "not_processed": len(result.not_synced),
        })
        return result

    def request_patients(
        self,
        records: PatientRecordSet,
        keys: Optional[Iterable[Hashable]] = None,
        retry_succeeded: Optional[bool] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> BatchPseudonymizationResult:
        """Pseudonymize, then fetch stored medical data for every pseudonymized record.

        Records the backend knows move to FOUND with their mdat replaced,
        the others to NOT_FOUND.

        Raises:
            TransportUnavailableError: If the linkage service or backend is unreachable
        """
        result = self.handle_pseudonymization(
            records, keys, retry_succeeded, cancel_event, operation="request"
        )

        pseudonyms = list(dict.fromkeys(records.get(key).pseudonym for key in result.pseudonymized))
        found = self.medical_data.request(pseudonyms)

        for key in result.pseudonymized:
            record = records.get(key)
            if record.pseudonym in found:
                record.mdat = found[record.pseudonym]
                record.status = PatientStatus.FOUND
                result.synced.append(key)
            else:
                record.status = PatientStatus.NOT_FOUND
                result.not_synced.append(key)

        result.end_timestamp = datetime.now(timezone.utc)
        log_audit_event("MDAT_REQUESTED", {
            "status": "success",
            "batch_id": result.batch_id,
            "record_count": len(pseudonyms),
            "found": len(result.synced),
            "not_found": len(result.not_synced),
        })
        return result

    def depseudonymize(self, pseudonyms: str | Iterable[str]) -> DepseudonymizationResult:
        """Resolve pseudonyms to identities (see DepseudonymizationEngine)."""
        return self.depseudonymizer.depseudonymize(pseudonyms)

    def close(self) -> None:
        self.transport.close()

    def __enter__(self) -> "PseudonymizationWorkflow":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def save_pseudonymization_results(
    result: BatchPseudonymizationResult,
    records: PatientRecordSet,
    output_path: Path,
) -> None:
    """Save batch outcome and per-record pseudonyms to a JSON file.

    The file carries keys, pseudonyms and statuses only, never IDAT.

    Example:
        >>> save_pseudonymization_results(result, records, Path("output/batch.json"))
    """
    logger.info(f"Saving pseudonymization results to {output_path}")
    output_path.parent.mkdir(parents=True, exist_ok=True)

    output_data = result.to_dict()
    output_data["records"] = [
        {
            "key": str(record.key),
            "pseudonym": record.pseudonym,
            "tentative": record.tentative,
            "status": record.status.value,
        }
        for record in records
    ]

    with output_path.open("w", encoding="utf-8") as f:
        json.dump(output_data, f, indent=2)

    logger.info(f"Saved results for {len(records)} record(s)")


def generate_summary_report(
    result: BatchPseudonymizationResult,
    records: PatientRecordSet,
) -> str:
    """Generate human-readable summary report of a batch.

    Example:
        >>> print(generate_summary_report(result, records))
    """
    lines = []

    lines.append("=" * 80)
    lines.append(f"PSEUDONYMIZATION SUMMARY ({result.operation.upper()})")
    lines.append("=" * 80)
    lines.append("")

    lines.append(f"Batch ID: {result.batch_id}")
    lines.append(f"Started:  {result.start_timestamp.strftime('%Y-%m-%d %H:%M:%S UTC')}")
    if result.end_timestamp:
        lines.append(f"Finished: {result.end_timestamp.strftime('%Y-%m-%d %H:%M:%S UTC')}")
        lines.append(f"Duration: {result.duration_seconds:.1f}s")
    lines.append("")

    lines.append("-" * 80)
    lines.append("RESULTS")
    lines.append("-" * 80)
    lines.append(f"Total Records:        {result.total_records}")
    lines.append(f"✓ Pseudonymized:      {len(result.pseudonymized)} ({result.success_rate:.1f}%)")
    lines.append(f"✗ In conflict:        {len(result.conflicts)}")
    lines.append(f"✗ Unknown response:   {len(result.failed)}")
    if result.cancelled:
        lines.append(f"- Cancelled:          {len(result.cancelled)}")
    if result.skipped:
        lines.append(f"- Skipped (synced):   {len(result.skipped)}")
    if result.operation == "send":
        lines.append(f"Processed:            {len(result.synced)}")
        lines.append(f"Not processed:        {len(result.not_synced)}")
    elif result.operation == "request":
        lines.append(f"Found:                {len(result.synced)}")
        lines.append(f"Not found:            {len(result.not_synced)}")
    lines.append("")

    unresolved = result.conflicts + result.failed
    if unresolved:
        lines.append("-" * 80)
        lines.append("RECORDS NEEDING ATTENTION")
        lines.append("-" * 80)
        for key in result.conflicts:
            lines.append(f"✗ {key} - {records.get(key).status.value}")
        for key in result.failed:
            lines.append(f"✗ {key} - undefined service response, record unchanged")
        lines.append("")

    lines.append("=" * 80)

    return "\n".join(lines)
