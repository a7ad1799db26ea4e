"""Identity validation and patient record construction.

Identifying data enters the protocol only through create_idat, so a record
never holds names that are empty or a birth date in the future. The record
helpers here implement the caller-side mutations that interact with the
state machine (identity and medical data updates).
"""

from collections.abc import Hashable
from datetime import date, datetime
from typing import Optional, Union

from pseudonym_handler.logging_audit import get_logger
from pseudonym_handler.models.patient import IdentifyingData, PatientRecord, PatientStatus
from pseudonym_handler.utils.exceptions import InvalidIdentityError


logger = get_logger(__name__)

# Accepted textual birth date formats, tried in order
BIRTHDATE_FORMATS = ("%Y-%m-%d", "%d.%m.%Y")

BirthdateInput = Union[date, datetime, str]


def parse_birthdate(value: BirthdateInput) -> date:
    """Convert a birth date given as date, datetime or string to a date.

    Args:
        value: date, datetime, or string in YYYY-MM-DD or DD.MM.YYYY format

    Returns:
        Calendar date

    Raises:
        InvalidIdentityError: If the value cannot be interpreted as a date
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        for fmt in BIRTHDATE_FORMATS:
            try:
                return datetime.strptime(text, fmt).date()
            except ValueError:
                continue
        raise InvalidIdentityError(
            f"Invalid birthdate '{value}'. Expected YYYY-MM-DD or DD.MM.YYYY"
        )
    raise InvalidIdentityError(
        f"Invalid birthdate type {type(value).__name__}. Expected date or string"
    )


def _require_name(value: object, field_name: str) -> str:
    if not isinstance(value, str):
        raise InvalidIdentityError(
            f"{field_name} must be a string, got {type(value).__name__}"
        )
    trimmed = value.strip()
    if not trimmed:
        raise InvalidIdentityError(f"{field_name} must not be empty")
    return trimmed


def create_idat(
    firstname: str,
    lastname: str,
    birthdate: BirthdateInput,
    today: Optional[date] = None,
) -> IdentifyingData:
    """Validate and normalize identifying data.

    Args:
        firstname: First name; surrounding whitespace is removed
        lastname: Last name; surrounding whitespace is removed
        birthdate: Date of birth (see parse_birthdate for accepted forms)
        today: Reference date for the future check (default: date.today())

    Returns:
        Validated IdentifyingData

    Raises:
        InvalidIdentityError: If a name is empty or the birth date is invalid or in the future

    Example:
        >>> create_idat("  Ada ", "Lovelace", "1815-12-10")
        IdentifyingData(firstname='Ada', lastname='Lovelace', birthdate=datetime.date(1815, 12, 10))
    """
    first = _require_name(firstname, "firstname")
    last = _require_name(lastname, "lastname")
    born = parse_birthdate(birthdate)

    reference = today or date.today()
    if born > reference:
        raise InvalidIdentityError(
            f"birthdate {born.isoformat()} lies in the future"
        )

    return IdentifyingData(firstname=first, lastname=last, birthdate=born)


def create_patient(
    key: Hashable,
    firstname: str,
    lastname: str,
    birthdate: BirthdateInput,
    mdat: str = "",
    sureness: bool = False,
) -> PatientRecord:
    """Create a record in state CREATED with no pseudonym and no token.

    Raises:
        InvalidIdentityError: If the identifying data is invalid
        TypeError: If mdat is not a string
    """
    if not isinstance(mdat, str):
        raise TypeError(f"mdat must be a string, got {type(mdat).__name__}")

    return PatientRecord(
        key=key,
        idat=create_idat(firstname, lastname, birthdate),
        mdat=mdat,
        sureness=sureness,
    )


def update_idat(
    record: PatientRecord,
    firstname: str,
    lastname: str,
    birthdate: BirthdateInput,
) -> bool:
    """Replace the identifying data of a record.

    A change on a record that already holds a pseudonym invalidates it: the
    pseudonym is dropped and the record returns to CREATED. Records in a
    failure state keep their status and retained token so that the next
    orchestrator invocation resubmits the corrected identity.

    Returns:
        True if the identity changed

    Raises:
        InvalidIdentityError: If the new identifying data is invalid
    """
    new_idat = create_idat(firstname, lastname, birthdate)
    changed = new_idat != record.idat

    if changed and record.status.has_pseudonym:
        logger.info(
            f"Identity of record {record.key} changed after pseudonymization, resetting to CREATED"
        )
        record.pseudonym = None
        record.tentative = False
        record.status = PatientStatus.CREATED

    record.idat = new_idat
    return changed


def update_mdat(record: PatientRecord, mdat: str) -> bool:
    """Replace the medical data of a record.

    A change on a record whose medical data was already exchanged puts it
    back to PSEUDONYMIZED so the next send picks it up. Callback-mediated
    records keep their synced status; they are re-entered through a fresh
    token when the caller sends with retry_succeeded.

    Returns:
        True if the medical data changed
    """
    if not isinstance(mdat, str):
        raise TypeError(f"mdat must be a string, got {type(mdat).__name__}")

    changed = mdat != record.mdat
    if changed and record.status.is_synced and not record.token_uses_callback:
        record.status = PatientStatus.PSEUDONYMIZED

    record.mdat = mdat
    return changed
