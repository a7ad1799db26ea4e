"""Mainzelliste wire format for identity submission and retrieval.

Builds the form fields sent when a create token is redeemed and parses the
bodies the linkage service returns for a successful submission and for a
read token redemption.
"""

import json
from datetime import date
from typing import Any, Optional
from urllib.parse import parse_qs, urlsplit

from pseudonym_handler.identity.validator import create_idat
from pseudonym_handler.models.patient import IdentifyingData
from pseudonym_handler.models.responses import ResolvedIdentity
from pseudonym_handler.utils.exceptions import InvalidIdentityError, UnknownServiceResponseError

# Logical IDAT field -> Mainzelliste form field
FIELD_NAMES = {
    "firstname": "vorname",
    "lastname": "nachname",
    "day": "geburtstag",
    "month": "geburtsmonat",
    "year": "geburtsjahr",
}

# Fields the default Mainzelliste configuration expects but this driver leaves empty
EMPTY_FIELDS = ("geburtsname", "plz", "ort")

# Token id query parameter in token URLs
TOKEN_ID_PARAM = "tokenId"


def build_submission_fields(idat: IdentifyingData, sureness: bool) -> dict[str, str]:
    """Build the form fields for one identity submission.

    Day and month are zero-padded to two digits, sureness is rendered as
    the lowercase literals the service expects.
    """
    fields = {
        FIELD_NAMES["firstname"]: idat.firstname,
        FIELD_NAMES["lastname"]: idat.lastname,
        FIELD_NAMES["day"]: f"{idat.birthdate.day:02d}",
        FIELD_NAMES["month"]: f"{idat.birthdate.month:02d}",
        FIELD_NAMES["year"]: str(idat.birthdate.year),
    }
    for name in EMPTY_FIELDS:
        fields[name] = ""
    fields["sureness"] = "true" if sureness else "false"
    return fields


def token_id_from_url(token_url: str) -> str:
    """Extract the token id from a token URL.

    Raises:
        UnknownServiceResponseError: If the URL carries no tokenId parameter
    """
    values = parse_qs(urlsplit(token_url).query).get(TOKEN_ID_PARAM)
    if not values or not values[0]:
        raise UnknownServiceResponseError(
            f"Token URL carries no {TOKEN_ID_PARAM} parameter: {token_url}"
        )
    return values[0]


def parse_created_identity(
    body: Any,
    api_version: str,
) -> tuple[str, bool]:
    """Extract pseudonym and tentative flag from a 201 submission body.

    API version 1.0 answers {"newId": ...}; later versions answer a list of
    {"idType", "idString", "tentative"} objects of which the first is used.

    Returns:
        (pseudonym, tentative)

    Raises:
        UnknownServiceResponseError: If the body does not carry an identifier
    """
    if api_version == "1.0":
        if isinstance(body, dict) and body.get("newId"):
            return str(body["newId"]), bool(body.get("tentative", False))
        raise UnknownServiceResponseError(
            f"Success response without newId for API version 1.0: {body!r}", status_code=201
        )

    if isinstance(body, list) and body and isinstance(body[0], dict) and body[0].get("idString"):
        return str(body[0]["idString"]), bool(body[0].get("tentative", False))
    raise UnknownServiceResponseError(
        f"Success response without idString: {body!r}", status_code=201
    )


def parse_created_tentative(body: Any) -> bool:
    """Tentative flag of a 201 body whose pseudonym comes from the token."""
    if isinstance(body, list) and body and isinstance(body[0], dict):
        return bool(body[0].get("tentative", False))
    if isinstance(body, dict):
        return bool(body.get("tentative", False))
    return False


def parse_read_entry(entry: Any) -> tuple[str, ResolvedIdentity]:
    """Parse one entry of a read token redemption.

    Entry shape: {"fields": {"vorname", "nachname", "geburtstag",
    "geburtsmonat", "geburtsjahr"}, "ids": [{"idType", "idString", "tentative"}]}.
    The identity is rebuilt through the identity validator.

    Returns:
        (pseudonym, resolved identity)

    Raises:
        UnknownServiceResponseError: If the entry is malformed or carries invalid IDAT
    """
    try:
        fields = entry["fields"]
        first_id = entry["ids"][0]
        pseudonym = str(first_id["idString"])
        birthdate = date(
            int(fields[FIELD_NAMES["year"]]),
            int(fields[FIELD_NAMES["month"]]),
            int(fields[FIELD_NAMES["day"]]),
        )
        idat = create_idat(
            fields[FIELD_NAMES["firstname"]],
            fields[FIELD_NAMES["lastname"]],
            birthdate,
        )
    except (KeyError, IndexError, TypeError, ValueError) as e:
        raise UnknownServiceResponseError(f"Malformed read entry {entry!r}: {e}") from e
    except InvalidIdentityError as e:
        raise UnknownServiceResponseError(
            f"Read entry carries invalid identifying data: {e}"
        ) from e

    return pseudonym, ResolvedIdentity(idat=idat, tentative=bool(first_id.get("tentative", False)))


def parse_json_body(text: str) -> Optional[Any]:
    """Decode a JSON body, returning None for empty or non-JSON text."""
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return None
