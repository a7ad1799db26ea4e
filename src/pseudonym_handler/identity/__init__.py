"""Identity module.

This module provides identity validation and patient record helpers.
"""

from pseudonym_handler.identity.validator import (
    create_idat,
    create_patient,
    parse_birthdate,
    update_idat,
    update_mdat,
)

__all__ = [
    "create_idat",
    "create_patient",
    "parse_birthdate",
    "update_idat",
    "update_mdat",
]
