"""Medical data (MDAT) exchange with the backend.

The backend stores opaque medical data keyed by pseudonym. This client
sends data for pseudonymized records and requests stored data back.
"""

import logging
from collections.abc import Sequence
from typing import Any

from pseudonym_handler.transport.http_client import LinkageTransport, require_success
from pseudonym_handler.utils.exceptions import UnknownServiceResponseError

logger = logging.getLogger(__name__)

SEND_PATH = "patients/send/mdat"
REQUEST_PATH = "patients/request"


class MedicalDataClient:
    """Sends and requests medical data keyed by pseudonym."""

    def __init__(self, transport: LinkageTransport) -> None:
        self.transport = transport

    def send(self, entries: Sequence[dict[str, Any]]) -> dict[str, bool]:
        """Store medical data for pseudonyms.

        Args:
            entries: [{"pseudonym": str, "mdat": str, "tentative": bool}, ...]

        Returns:
            Pseudonym to whether the backend stored the data

        Raises:
            TransportUnavailableError: If the backend is unreachable or rejects the call
            UnknownServiceResponseError: If the response is not a JSON object
        """
        if not entries:
            return {}

        response = require_success(
            self.transport.post_json(self.transport.url(SEND_PATH), list(entries), exchange_type="MDAT_SEND"),
            "MDAT_SEND",
        )
        body = _decode(response)
        if not isinstance(body, dict):
            raise UnknownServiceResponseError(
                f"MDAT send answered with {type(body).__name__}, expected object"
            )
        logger.info(f"Sent medical data for {len(entries)} pseudonym(s)")
        return {str(pseudonym): bool(stored) for pseudonym, stored in body.items()}

    def request(self, pseudonyms: Sequence[str]) -> dict[str, str]:
        """Fetch stored medical data for pseudonyms.

        Returns:
            Pseudonym to medical data, for the pseudonyms the backend knows

        Raises:
            TransportUnavailableError: If the backend is unreachable or rejects the call
            UnknownServiceResponseError: If the response is not a list of entries
        """
        if not pseudonyms:
            return {}

        response = require_success(
            self.transport.post_json(self.transport.url(REQUEST_PATH), list(pseudonyms), exchange_type="MDAT_REQUEST"),
            "MDAT_REQUEST",
        )
        body = _decode(response)
        if not isinstance(body, list):
            raise UnknownServiceResponseError(
                f"MDAT request answered with {type(body).__name__}, expected list"
            )

        found: dict[str, str] = {}
        for entry in body:
            try:
                found[str(entry["pseudonym"])] = entry["mdat"]
            except (KeyError, TypeError) as e:
                raise UnknownServiceResponseError(f"Malformed MDAT entry {entry!r}") from e
        logger.info(f"Backend returned medical data for {len(found)}/{len(pseudonyms)} pseudonym(s)")
        return found


def _decode(response) -> Any:
    try:
        return response.json()
    except ValueError as e:
        raise UnknownServiceResponseError(
            f"Backend answered with non-JSON body: {response.text[:200]}",
            status_code=response.status_code,
        ) from e
