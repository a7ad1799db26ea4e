"""CSV parser for patient records.

This module loads patients from CSV files into a PatientRecordSet, collecting
every row-level problem before reporting so the user can fix them at once.
"""

import logging
from pathlib import Path

import pandas as pd

from pseudonym_handler.identity.validator import create_patient
from pseudonym_handler.models.patient import PatientRecordSet
from pseudonym_handler.utils.exceptions import InvalidIdentityError, ValidationError


logger = logging.getLogger(__name__)

# Required CSV columns
REQUIRED_COLUMNS = ["firstname", "lastname", "birthdate"]

# Optional CSV columns
OPTIONAL_COLUMNS = ["key", "mdat", "sureness"]

TRUE_VALUES = ("true", "1", "yes", "y")


def parse_csv(file_path: Path) -> PatientRecordSet:
    """Parse patient records from a CSV file.

    Columns firstname, lastname and birthdate (YYYY-MM-DD or DD.MM.YYYY)
    are required. key defaults to the 1-based data row number, mdat to an
    empty string and sureness to false.

    Args:
        file_path: Path to CSV file containing patient data

    Returns:
        PatientRecordSet with every record in state CREATED

    Raises:
        FileNotFoundError: If CSV file does not exist
        ValidationError: If columns are missing or any row is invalid
    """
    logger.info(f"Loading CSV from {file_path}")

    if not file_path.exists():
        raise FileNotFoundError(f"CSV file not found: {file_path}")

    try:
        # Everything as text; birth dates and keys must not be coerced
        df = pd.read_csv(file_path, encoding="utf-8", dtype=str, keep_default_na=False)
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
        raise ValidationError(
            f"Failed to read CSV file {file_path}. Ensure file is valid CSV with UTF-8 encoding. Error: {e}"
        ) from e

    missing_columns = [col for col in REQUIRED_COLUMNS if col not in df.columns]
    if missing_columns:
        raise ValidationError(
            f"CSV validation failed:\n  - Missing required columns: {', '.join(missing_columns)}. "
            f"Required columns are: {', '.join(REQUIRED_COLUMNS)}"
        )

    unknown_columns = [
        col for col in df.columns if col not in REQUIRED_COLUMNS + OPTIONAL_COLUMNS
    ]
    if unknown_columns:
        logger.warning(
            f"CSV contains unknown columns that will be ignored: {', '.join(unknown_columns)}"
        )

    errors: list[str] = []
    records = PatientRecordSet()

    for idx, row in df.iterrows():
        # +2: header line plus 1-based numbering
        row_num = idx + 2
        key = row.get("key", "").strip() or str(idx + 1)

        try:
            record = create_patient(
                key=key,
                firstname=row["firstname"],
                lastname=row["lastname"],
                birthdate=row["birthdate"],
                mdat=row.get("mdat", ""),
                sureness=row.get("sureness", "").strip().lower() in TRUE_VALUES,
            )
        except InvalidIdentityError as e:
            errors.append(f"Row {row_num}: {e}")
            continue

        if key in records:
            errors.append(f"Row {row_num}: duplicate key '{key}'")
            continue
        records.add(record)

    if errors:
        raise ValidationError(
            f"Found {len(errors)} validation error(s) in CSV:\n  - "
            + "\n  - ".join(errors)
        )

    logger.info(f"Loaded {len(records)} patient record(s) from {file_path}")
    return records


def read_pseudonyms(file_path: Path) -> list[str]:
    """Read pseudonyms from a text file, one per line; blank lines are ignored."""
    if not file_path.exists():
        raise FileNotFoundError(f"Pseudonym file not found: {file_path}")
    with file_path.open("r", encoding="utf-8") as f:
        return [line.strip() for line in f if line.strip()]
