"""Models module.

This module provides data models and dataclasses for the application.
"""

from pseudonym_handler.models.batch import BatchPseudonymizationResult
from pseudonym_handler.models.patient import (
    FAILURE_STATUSES,
    SYNCED_STATUSES,
    IdentifyingData,
    PatientRecord,
    PatientRecordSet,
    PatientStatus,
)
from pseudonym_handler.models.responses import (
    CreateTokenBatch,
    DepseudonymizationResult,
    PseudonymizationOutcome,
    ReadToken,
    ResolvedIdentity,
    TokenPurpose,
)

__all__ = [
    "BatchPseudonymizationResult",
    "CreateTokenBatch",
    "DepseudonymizationResult",
    "FAILURE_STATUSES",
    "IdentifyingData",
    "PatientRecord",
    "PatientRecordSet",
    "PatientStatus",
    "PseudonymizationOutcome",
    "ReadToken",
    "ResolvedIdentity",
    "SYNCED_STATUSES",
    "TokenPurpose",
]
