"""Unit tests for patient, response and batch models."""

from datetime import date, datetime, timedelta, timezone

import pytest

from pseudonym_handler.identity.validator import create_idat, create_patient
from pseudonym_handler.models.batch import BatchPseudonymizationResult
from pseudonym_handler.models.patient import (
    FAILURE_STATUSES,
    SYNCED_STATUSES,
    PatientRecordSet,
    PatientStatus,
)
from pseudonym_handler.models.responses import (
    CreateTokenBatch,
    DepseudonymizationResult,
    PseudonymizationOutcome,
    ReadToken,
    ResolvedIdentity,
)


class TestPatientStatus:
    """Tests for PatientStatus helpers."""

    def test_status_partition_is_complete(self):
        """Every status is exactly one of: created, pseudonymized, failure, synced."""
        # Arrange
        other = {PatientStatus.CREATED, PatientStatus.PSEUDONYMIZED}

        # Assert
        assert FAILURE_STATUSES.isdisjoint(SYNCED_STATUSES)
        assert FAILURE_STATUSES | SYNCED_STATUSES | other == set(PatientStatus)

    def test_has_pseudonym(self):
        assert PatientStatus.PSEUDONYMIZED.has_pseudonym
        assert PatientStatus.FOUND.has_pseudonym
        assert not PatientStatus.CREATED.has_pseudonym
        assert not PatientStatus.IDAT_CONFLICT.has_pseudonym

    def test_is_failure(self):
        assert PatientStatus.TOKEN_INVALID.is_failure
        assert not PatientStatus.NOT_PROCESSED.is_failure


class TestPatientRecordSet:
    """Tests for PatientRecordSet."""

    def test_duplicate_key_rejected(self, patient):
        # Arrange
        records = PatientRecordSet([patient])

        # Act & Assert
        with pytest.raises(ValueError, match="Duplicate patient key"):
            records.add(create_patient("p1", "Other", "Person", "2000-01-01"))

    def test_unknown_key(self, records):
        with pytest.raises(KeyError, match="Unknown patient key"):
            records.get("missing")

    def test_keys_keep_insertion_order(self, records):
        assert records.keys() == ["p1", "p2", "p3"]

    def test_select_by_status(self, records):
        """select returns matching keys in search order."""
        # Arrange
        records.get("p2").status = PatientStatus.IDAT_CONFLICT
        records.get("p3").status = PatientStatus.TOKEN_INVALID

        # Act
        failed = records.select(FAILURE_STATUSES)
        created = records.select(PatientStatus.CREATED)
        restricted = records.select(FAILURE_STATUSES, keys=["p3", "p1", "p2"])

        # Assert
        assert failed == ["p2", "p3"]
        assert created == ["p1"]
        assert restricted == ["p3", "p2"]

    def test_container_protocol(self, records):
        assert len(records) == 3
        assert "p2" in records
        assert "p9" not in records
        assert [r.key for r in records] == ["p1", "p2", "p3"]

    def test_non_string_keys(self):
        """Keys are opaque hashables."""
        records = PatientRecordSet([create_patient(7, "Ada", "Lovelace", "1815-12-10")])
        assert records.get(7).key == 7


class TestResponseModels:
    """Tests for token and result models."""

    def test_create_token_batch_len(self):
        batch = CreateTokenBatch(use_callback=False, token_urls=["a", "b"])
        assert len(batch) == 2

    def test_read_token_readability(self):
        assert ReadToken(url="http://x/patients?tokenId=r").is_readable
        assert not ReadToken(url="", invalid_pseudonyms=["X"]).is_readable

    def test_unmatched_excludes_resolved_and_invalid(self):
        # Arrange
        identity = ResolvedIdentity(create_idat("Ada", "Lovelace", date(1815, 12, 10)))
        result = DepseudonymizationResult(
            requested=["A", "B", "C"],
            depseudonymized={"A": identity},
            invalid=["B"],
        )

        # Act & Assert
        assert result.unmatched == ["C"]

    def test_outcome_merge_preserves_order(self):
        # Arrange
        first = PseudonymizationOutcome(pseudonymized=["a"], conflicts=["b"])
        second = PseudonymizationOutcome(pseudonymized=["c"], failed=["d"], cancelled=["e"])

        # Act
        merged = first.merge(second)

        # Assert
        assert merged.pseudonymized == ["a", "c"]
        assert merged.conflicts == ["b"]
        assert merged.failed == ["d"]
        assert merged.cancelled == ["e"]
        assert first.pseudonymized == ["a"]


class TestBatchPseudonymizationResult:
    """Tests for BatchPseudonymizationResult."""

    def _result(self, **kwargs) -> BatchPseudonymizationResult:
        return BatchPseudonymizationResult(
            batch_id="batch-1",
            operation="send",
            start_timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
            **kwargs,
        )

    def test_absorb_and_rates(self):
        # Arrange
        result = self._result(total_records=4)

        # Act
        result.absorb(PseudonymizationOutcome(pseudonymized=["a", "b", "c"], conflicts=["d"]))

        # Assert
        assert result.success_rate == 75.0
        assert result.is_complete is False

    def test_empty_batch_rates(self):
        result = self._result()
        assert result.success_rate == 0.0
        assert result.is_complete is True
        assert result.duration_seconds == 0.0

    def test_duration(self):
        result = self._result()
        result.end_timestamp = result.start_timestamp + timedelta(seconds=2.5)
        assert result.duration_seconds == 2.5

    def test_to_dict_renders_keys_as_strings(self):
        # Arrange
        result = self._result(total_records=2, pseudonymized=[1], skipped=[2])
        result.end_timestamp = result.start_timestamp

        # Act
        data = result.to_dict()

        # Assert
        assert data["pseudonymized"] == ["1"]
        assert data["skipped"] == ["2"]
        assert data["start_timestamp"] == "2024-01-01T00:00:00+00:00"
        assert data["operation"] == "send"
