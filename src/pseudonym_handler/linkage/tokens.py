"""Token broker client.

Acquires tokens from the token-brokering application server in one round
trip per batch: a list of single-use create tokens for identity submission,
or one multi-use read token for a set of pseudonyms.
"""

import logging
from typing import Optional, Sequence

from pseudonym_handler.logging_audit import log_audit_event
from pseudonym_handler.models.responses import CreateTokenBatch, ReadToken, TokenPurpose
from pseudonym_handler.transport.http_client import LinkageTransport, require_success
from pseudonym_handler.utils.exceptions import UnknownServiceResponseError

logger = logging.getLogger(__name__)

CREATE_TOKENS_PATH = "tokens/addPatient"
READ_TOKEN_PATH = "tokens/readPatients"


class TokenBroker:
    """Acquires create and read tokens from the token broker.

    Example:
        >>> broker = TokenBroker(transport)
        >>> batch = broker.acquire_tokens(3, TokenPurpose.CREATE)
        >>> len(batch.token_urls)
        3
    """

    def __init__(self, transport: LinkageTransport) -> None:
        self.transport = transport

    def acquire_tokens(
        self,
        count: int,
        purpose: TokenPurpose,
        pseudonyms: Optional[Sequence[str]] = None,
    ) -> CreateTokenBatch | ReadToken:
        """Acquire tokens for count records in a single round trip.

        Args:
            count: Number of records the tokens are for
            purpose: CREATE for identity submission, READ for depseudonymization
            pseudonyms: Pseudonyms to read (required for READ, len must equal count)

        Returns:
            CreateTokenBatch with exactly count URLs, or ReadToken

        Raises:
            ValueError: If count is negative or does not match the pseudonyms
            TransportUnavailableError: If the broker is unreachable or rejects the call
            UnknownServiceResponseError: If the broker answers with a malformed body
        """
        if count < 0:
            raise ValueError(f"count must be >= 0, got {count}")

        if purpose is TokenPurpose.CREATE:
            return self._acquire_create_tokens(count)
        if purpose is TokenPurpose.READ:
            if pseudonyms is None or len(pseudonyms) != count:
                raise ValueError("READ tokens need exactly count pseudonyms")
            return self._acquire_read_token(list(pseudonyms))
        raise ValueError(f"Unsupported token purpose: {purpose!r}")

    def _acquire_create_tokens(self, count: int) -> CreateTokenBatch:
        if count == 0:
            return CreateTokenBatch(use_callback=False, token_urls=[])

        logger.info(f"Requesting {count} create token(s)")
        response = require_success(
            self.transport.post_json(
                self.transport.url(CREATE_TOKENS_PATH), count, exchange_type="TOKEN_CREATE"
            ),
            "TOKEN_CREATE",
        )
        body = _json_object(response)

        token_urls = body.get("urlTokens")
        if not isinstance(token_urls, list) or not all(isinstance(url, str) for url in token_urls):
            raise UnknownServiceResponseError(
                f"Token broker answered without a urlTokens list: {body!r}"
            )
        if len(token_urls) != count:
            # Tokens are matched to records by position; a short batch is unusable
            raise UnknownServiceResponseError(
                f"Token broker issued {len(token_urls)} tokens for {count} records"
            )

        batch = CreateTokenBatch(
            use_callback=bool(body.get("useCallback", False)),
            token_urls=token_urls,
        )
        log_audit_event("TOKENS_ACQUIRED", {
            "status": "success",
            "purpose": TokenPurpose.CREATE.value,
            "record_count": count,
            "use_callback": batch.use_callback,
        })
        return batch

    def _acquire_read_token(self, pseudonyms: list[str]) -> ReadToken:
        if not pseudonyms:
            return ReadToken(url="", invalid_pseudonyms=[])

        logger.info(f"Requesting read token for {len(pseudonyms)} pseudonym(s)")
        response = require_success(
            self.transport.post_json(
                self.transport.url(READ_TOKEN_PATH), pseudonyms, exchange_type="TOKEN_READ"
            ),
            "TOKEN_READ",
        )
        body = _json_object(response)

        url = body.get("url") or ""
        invalid = body.get("invalidPseudonyms") or []
        if not isinstance(url, str) or not isinstance(invalid, list):
            raise UnknownServiceResponseError(
                f"Token broker answered with a malformed read token: {body!r}"
            )

        token = ReadToken(url=url, invalid_pseudonyms=[str(p) for p in invalid])
        log_audit_event("TOKENS_ACQUIRED", {
            "status": "success",
            "purpose": TokenPurpose.READ.value,
            "record_count": len(pseudonyms),
            "invalid_count": len(token.invalid_pseudonyms),
        })
        return token


def _json_object(response) -> dict:
    try:
        body = response.json()
    except ValueError as e:
        raise UnknownServiceResponseError(
            f"Token broker answered with non-JSON body: {response.text[:200]}"
        ) from e
    if not isinstance(body, dict):
        raise UnknownServiceResponseError(f"Token broker answered with {type(body).__name__}, expected object")
    return body

