"""Batch processing data models.

This module defines the result of one orchestrator invocation over a
PatientRecordSet, including the pseudonymization pass and the optional
medical data exchange that follows it.
"""

from collections.abc import Hashable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from pseudonym_handler.models.responses import PseudonymizationOutcome


@dataclass
class BatchPseudonymizationResult:
    """Outcome of one orchestrator invocation.

    Attributes:
        batch_id: Unique batch identifier (UUID)
        operation: "pseudonymize", "send" or "request"
        start_timestamp: When processing started
        end_timestamp: When processing completed
        total_records: Number of records considered by the partitioning step
        pseudonymized: Keys holding a pseudonym after the pass, in dispatch order
        conflicts: Keys left in a failure state
        failed: Keys whose submission got an undefined response
        cancelled: Keys skipped after cancellation
        skipped: Already-synced keys left alone because retry_succeeded was off
        synced: Keys whose medical data exchange succeeded (PROCESSED or FOUND)
        not_synced: Keys the backend did not accept or did not know (NOT_PROCESSED or NOT_FOUND)
        error_summary: Error type to count, for reporting

    Example:
        >>> result = workflow.send_patients(records)
        >>> print(f"Pseudonymized: {len(result.pseudonymized)}/{result.total_records}")
    """

    batch_id: str
    operation: str
    start_timestamp: datetime
    end_timestamp: Optional[datetime] = None
    total_records: int = 0
    pseudonymized: List[Hashable] = field(default_factory=list)
    conflicts: List[Hashable] = field(default_factory=list)
    failed: List[Hashable] = field(default_factory=list)
    cancelled: List[Hashable] = field(default_factory=list)
    skipped: List[Hashable] = field(default_factory=list)
    synced: List[Hashable] = field(default_factory=list)
    not_synced: List[Hashable] = field(default_factory=list)
    error_summary: Dict[str, int] = field(default_factory=dict)

    def absorb(self, outcome: PseudonymizationOutcome) -> None:
        """Append the keys of a pseudonymization pass to this result."""
        self.pseudonymized.extend(outcome.pseudonymized)
        self.conflicts.extend(outcome.conflicts)
        self.failed.extend(outcome.failed)
        self.cancelled.extend(outcome.cancelled)

    @property
    def duration_seconds(self) -> float:
        if self.end_timestamp is None:
            return 0.0
        return (self.end_timestamp - self.start_timestamp).total_seconds()

    @property
    def success_rate(self) -> float:
        """Percentage of considered records that hold a pseudonym."""
        if self.total_records == 0:
            return 0.0
        return (len(self.pseudonymized) / self.total_records) * 100

    @property
    def is_complete(self) -> bool:
        """True when nothing was left in conflict, failed or cancelled."""
        return not (self.conflicts or self.failed or self.cancelled)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization.

        Keys are rendered with str() since callers may use any hashable key.
        """
        return {
            "batch_id": self.batch_id,
            "operation": self.operation,
            "start_timestamp": self.start_timestamp.isoformat(),
            "end_timestamp": self.end_timestamp.isoformat() if self.end_timestamp else None,
            "duration_seconds": self.duration_seconds,
            "total_records": self.total_records,
            "pseudonymized": [str(key) for key in self.pseudonymized],
            "conflicts": [str(key) for key in self.conflicts],
            "failed": [str(key) for key in self.failed],
            "cancelled": [str(key) for key in self.cancelled],
            "skipped": [str(key) for key in self.skipped],
            "synced": [str(key) for key in self.synced],
            "not_synced": [str(key) for key in self.not_synced],
            "error_summary": dict(self.error_summary),
        }
