"""Pseudonymization Workflow Example.

This example demonstrates the pseudonymization workflow from CSV to stored
medical data, conflict recovery and depseudonymization. Start the mock
linkage service first:

    pseudonym-handler mock start
"""

import threading
from pathlib import Path

from pseudonym_handler.config import load_config
from pseudonym_handler.csv_parser.parser import parse_csv
from pseudonym_handler.identity.validator import update_mdat
from pseudonym_handler.linkage.workflows import (
    PseudonymizationWorkflow,
    generate_summary_report,
    save_pseudonymization_results,
)
from pseudonym_handler.models.patient import PatientStatus
from pseudonym_handler.utils.exceptions import TransportUnavailableError, create_error_info


# Example 1: Send a batch of patients
def example_send_batch(workflow, records):
    """Pseudonymize patients and store their medical data."""
    print("=" * 80)
    print("EXAMPLE 1: Send Batch")
    print("=" * 80)

    result = workflow.send_patients(records)

    print(generate_summary_report(result, records))
    save_pseudonymization_results(result, records, Path("output/example-send.json"))


# Example 2: Recover records left in conflict
def example_conflict_recovery(workflow, records):
    """Resubmit conflicting identities with sureness set."""
    print("\n")
    print("=" * 80)
    print("EXAMPLE 2: Conflict Recovery")
    print("=" * 80)

    conflicted = records.select({PatientStatus.IDAT_CONFLICT, PatientStatus.TOKEN_INVALID})
    print(f"\nRecords in conflict: {conflicted}")

    # The operator confirmed these are distinct patients
    for key in conflicted:
        records.get(key).sureness = True

    result = workflow.send_patients(records, keys=conflicted)
    for key in result.pseudonymized:
        record = records.get(key)
        print(f"  {key} -> {record.pseudonym} (tentative={record.tentative})")


# Example 3: Update medical data and send again
def example_update_mdat(workflow, records):
    """Changed medical data is picked up by the next send."""
    print("\n")
    print("=" * 80)
    print("EXAMPLE 3: Medical Data Update")
    print("=" * 80)

    key = records.keys()[0]
    update_mdat(records.get(key), '{"height": 166}')
    result = workflow.send_patients(records, keys=[key])
    print(f"\nProcessed again: {result.synced}")


# Example 4: Depseudonymize
def example_depseudonymize(workflow, records):
    """Resolve the pseudonyms of the batch back to identities."""
    print("\n")
    print("=" * 80)
    print("EXAMPLE 4: Depseudonymization")
    print("=" * 80)

    pseudonyms = [record.pseudonym for record in records if record.pseudonym]
    result = workflow.depseudonymize(pseudonyms + ["UNKNOWN1"])

    print(f"\nResolved {len(result.depseudonymized)}/{len(result.requested)}")
    print(f"Invalid: {result.invalid}")


# Example 5: Cancellation
def example_cancellation(workflow, records):
    """A cancel event set before the call leaves every record untouched."""
    print("\n")
    print("=" * 80)
    print("EXAMPLE 5: Cancellation")
    print("=" * 80)

    cancel = threading.Event()
    cancel.set()
    result = workflow.handle_pseudonymization(records, cancel_event=cancel)
    print(f"\nCancelled: {len(result.cancelled)} record(s)")


if __name__ == "__main__":
    config = load_config(Path("examples/config.example.json"))
    records = parse_csv(Path("examples/patients_sample.csv"))

    try:
        with PseudonymizationWorkflow(config) as workflow:
            example_send_batch(workflow, records)
            example_conflict_recovery(workflow, records)
            example_update_mdat(workflow, records)
            example_depseudonymize(workflow, records)
            example_cancellation(workflow, parse_csv(Path("examples/patients_sample.csv")))
    except TransportUnavailableError as e:
        error_info = create_error_info(e)
        print(f"\n✗ {error_info.message}")
        print(f"  Remediation: {error_info.remediation}")
