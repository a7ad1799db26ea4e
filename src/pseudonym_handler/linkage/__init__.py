"""Linkage module.

This module implements the token protocol against the record-linkage service.
"""

from pseudonym_handler.linkage.conflicts import ConflictResolver
from pseudonym_handler.linkage.depseudonymization import DepseudonymizationEngine
from pseudonym_handler.linkage.medical_data import MedicalDataClient
from pseudonym_handler.linkage.pseudonymization import PseudonymizationEngine, TokenAssignment
from pseudonym_handler.linkage.tokens import TokenBroker
from pseudonym_handler.linkage.workflows import (
    PseudonymizationWorkflow,
    generate_summary_report,
    save_pseudonymization_results,
)

__all__ = [
    "ConflictResolver",
    "DepseudonymizationEngine",
    "MedicalDataClient",
    "PseudonymizationEngine",
    "PseudonymizationWorkflow",
    "TokenAssignment",
    "TokenBroker",
    "generate_summary_report",
    "save_pseudonymization_results",
]
