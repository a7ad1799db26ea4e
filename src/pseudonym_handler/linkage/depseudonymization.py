"""Depseudonymization engine.

Exchanges a set of pseudonyms for one multi-use read token and redeems it
once to recover the identities behind them.
"""

import logging
import time
from collections.abc import Iterable

from pseudonym_handler.linkage.submission import parse_read_entry
from pseudonym_handler.linkage.tokens import TokenBroker
from pseudonym_handler.logging_audit import log_audit_event
from pseudonym_handler.models.responses import DepseudonymizationResult, TokenPurpose
from pseudonym_handler.transport.http_client import LinkageTransport, require_success
from pseudonym_handler.utils.exceptions import UnknownServiceResponseError

logger = logging.getLogger(__name__)


class DepseudonymizationEngine:
    """Resolves pseudonyms to identifying data.

    Example:
        >>> engine = DepseudonymizationEngine(transport, TokenBroker(transport))
        >>> result = engine.depseudonymize(["A1B2C3D4", "A1B2C3D4", "FFFF0000"])
        >>> result.depseudonymized["A1B2C3D4"].idat.lastname
        'Lovelace'
        >>> result.invalid
        ['FFFF0000']
    """

    def __init__(self, transport: LinkageTransport, broker: TokenBroker) -> None:
        self.transport = transport
        self.broker = broker

    def depseudonymize(self, pseudonyms: str | Iterable[str]) -> DepseudonymizationResult:
        """Resolve pseudonyms to identities.

        Args:
            pseudonyms: A single pseudonym or an iterable of pseudonyms;
                duplicates are collapsed, first-seen order is kept

        Returns:
            DepseudonymizationResult sized by distinct pseudonyms

        Raises:
            TransportUnavailableError: If the token broker or linkage service is unreachable
            UnknownServiceResponseError: If the read response is malformed
        """
        if isinstance(pseudonyms, str):
            pseudonyms = [pseudonyms]
        requested = list(dict.fromkeys(pseudonyms))

        result = DepseudonymizationResult(requested=requested)
        if not requested:
            return result

        start_time = time.time()
        token = self.broker.acquire_tokens(len(requested), TokenPurpose.READ, pseudonyms=requested)
        result.invalid = list(token.invalid_pseudonyms)

        if not token.is_readable:
            logger.info(f"No readable pseudonyms among {len(requested)} requested")
            self._audit(result, start_time)
            return result

        response = require_success(
            self.transport.get_linkage(token.url, exchange_type="IDAT_READ"),
            "IDAT_READ",
        )
        try:
            entries = response.json()
        except ValueError as e:
            raise UnknownServiceResponseError(
                f"Read token redemption answered with non-JSON body: {response.text[:200]}",
                status_code=response.status_code,
            ) from e
        if not isinstance(entries, list):
            raise UnknownServiceResponseError(
                f"Read token redemption answered with {type(entries).__name__}, expected list",
                status_code=response.status_code,
            )

        wanted = set(requested)
        for entry in entries:
            pseudonym, identity = parse_read_entry(entry)
            if pseudonym not in wanted:
                logger.warning(f"Ignoring identity for pseudonym {pseudonym} that was not requested")
                continue
            result.depseudonymized[pseudonym] = identity

        self._audit(result, start_time)
        return result

    @staticmethod
    def _audit(result: DepseudonymizationResult, start_time: float) -> None:
        log_audit_event("DEPSEUDONYMIZATION_COMPLETED", {
            "status": "success",
            "record_count": len(result.requested),
            "duration": time.time() - start_time,
            "resolved": len(result.depseudonymized),
            "invalid": len(result.invalid),
            "unmatched": len(result.unmatched),
        })
