"""Patient record data model.

This module defines the patient state machine positions, the validated
identifying data (IDAT) value type, the mutable PatientRecord and the
PatientRecordSet collection that is passed into orchestration calls.
"""

from collections.abc import Hashable, Iterable, Iterator
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Optional


class PatientStatus(Enum):
    """Position of a record in the pseudonymization state machine."""

    CREATED = "CREATED"
    PSEUDONYMIZED = "PSEUDONYMIZED"
    IDAT_INVALID = "IDAT_INVALID"
    TOKEN_INVALID = "TOKEN_INVALID"
    IDAT_CONFLICT = "IDAT_CONFLICT"
    PROCESSED = "PROCESSED"
    NOT_PROCESSED = "NOT_PROCESSED"
    FOUND = "FOUND"
    NOT_FOUND = "NOT_FOUND"

    @property
    def is_failure(self) -> bool:
        """True for the three states left behind by a failed submission."""
        return self in FAILURE_STATUSES

    @property
    def is_synced(self) -> bool:
        """True for the states reached through the medical data exchange."""
        return self in SYNCED_STATUSES

    @property
    def has_pseudonym(self) -> bool:
        return self is PatientStatus.PSEUDONYMIZED or self in SYNCED_STATUSES


FAILURE_STATUSES = frozenset({
    PatientStatus.IDAT_INVALID,
    PatientStatus.TOKEN_INVALID,
    PatientStatus.IDAT_CONFLICT,
})

SYNCED_STATUSES = frozenset({
    PatientStatus.PROCESSED,
    PatientStatus.NOT_PROCESSED,
    PatientStatus.FOUND,
    PatientStatus.NOT_FOUND,
})


@dataclass(frozen=True)
class IdentifyingData:
    """Validated identifying data (IDAT).

    Instances are built by pseudonym_handler.identity.validator.create_idat,
    which trims names and rejects empty names and future birth dates.

    Attributes:
        firstname: Trimmed, non-empty first name
        lastname: Trimmed, non-empty last name
        birthdate: Calendar date of birth, not in the future
    """

    firstname: str
    lastname: str
    birthdate: date


@dataclass
class PatientRecord:
    """A patient tracked through the pseudonymization protocol.

    Attributes:
        key: Caller-assigned identifier, opaque to the driver
        idat: Validated identifying data
        mdat: Opaque medical data payload
        pseudonym: Pseudonym assigned by the service (None until assigned)
        sureness: Hint to the external matcher that the identity is certain
        tentative: Set by the service on ambiguous matches
        status: State machine position
        active_token: Token URL currently held for this record
        token_uses_callback: Whether redemption of active_token is callback-mediated
    """

    key: Hashable
    idat: IdentifyingData
    mdat: str = ""
    pseudonym: Optional[str] = None
    sureness: bool = False
    tentative: bool = False
    status: PatientStatus = PatientStatus.CREATED
    active_token: Optional[str] = None
    token_uses_callback: Optional[bool] = None


class PatientRecordSet:
    """Owned collection of patient records keyed by the caller's key.

    The set is handed by reference to one orchestration call at a time.
    Callers must not mutate it while a call is in flight; the driver does
    not lock individual records.

    Example:
        >>> records = PatientRecordSet()
        >>> records.add(create_patient("p1", "Ada", "Lovelace", date(1815, 12, 10)))
        >>> records.select({PatientStatus.CREATED})
        ['p1']
    """

    def __init__(self, records: Optional[Iterable[PatientRecord]] = None) -> None:
        self._records: dict[Hashable, PatientRecord] = {}
        for record in records or ():
            self.add(record)

    def add(self, record: PatientRecord) -> None:
        """Add a record.

        Raises:
            ValueError: If a record with the same key is already present
        """
        if record.key in self._records:
            raise ValueError(f"Duplicate patient key: {record.key!r}")
        self._records[record.key] = record

    def get(self, key: Hashable) -> PatientRecord:
        """Return the record for key; raises KeyError for unknown keys."""
        try:
            return self._records[key]
        except KeyError:
            raise KeyError(f"Unknown patient key: {key!r}") from None

    def keys(self) -> list[Hashable]:
        return list(self._records)

    def select(
        self,
        statuses: PatientStatus | Iterable[PatientStatus],
        keys: Optional[Iterable[Hashable]] = None,
    ) -> list[Hashable]:
        """Return the keys whose record is in one of the given statuses.

        Args:
            statuses: A single status or a collection of statuses
            keys: Restrict the search to these keys (default: all, in insertion order)

        Returns:
            Matching keys, in the order they were searched
        """
        if isinstance(statuses, PatientStatus):
            wanted = {statuses}
        else:
            wanted = set(statuses)
        candidates = self._records if keys is None else keys
        return [key for key in candidates if self.get(key).status in wanted]

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[PatientRecord]:
        return iter(self._records.values())

    def __contains__(self, key: object) -> bool:
        return key in self._records
