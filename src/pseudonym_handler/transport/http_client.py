"""HTTP client with connection pooling for record-linkage service exchanges.

This module provides the pooled requests session shared by the token broker,
the pseudonymization engines and the medical data client, and the
LinkageTransport wrapper that applies timeouts, TLS settings and the
Mainzelliste API version header, and maps transport failures to
TransportUnavailableError.

Token redemptions are POSTs against single-use tokens and are never retried
automatically; only idempotent GETs are.
"""

import logging
from dataclasses import dataclass
from threading import Lock
from typing import Any, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from pseudonym_handler.config.schema import Config
from pseudonym_handler.logging_audit import log_exchange
from pseudonym_handler.utils.exceptions import TransportUnavailableError

logger = logging.getLogger(__name__)

# Default connection pool settings
DEFAULT_MAX_CONNECTIONS = 10
DEFAULT_POOL_BLOCK = True
DEFAULT_RETRY_COUNT = 3
DEFAULT_BACKOFF_FACTOR = 0.3

# Methods urllib3 may replay on connection errors or 5xx
RETRYABLE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})

API_VERSION_HEADER = "mainzellisteApiVersion"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded; charset=UTF-8"


@dataclass
class ConnectionPoolConfig:
    """Configuration for HTTP connection pooling.

    Attributes:
        max_connections: Maximum number of connections in the pool. Must be >= 1.
        pool_block: Whether to block when pool is exhausted.
        retry_count: Number of retries for failed idempotent requests.
        backoff_factor: Factor for exponential backoff between retries.
    """
    max_connections: int = DEFAULT_MAX_CONNECTIONS
    pool_block: bool = DEFAULT_POOL_BLOCK
    retry_count: int = DEFAULT_RETRY_COUNT
    backoff_factor: float = DEFAULT_BACKOFF_FACTOR

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.max_connections < 1:
            raise ValueError(
                f"max_connections must be >= 1, got {self.max_connections}"
            )
        if self.retry_count < 0:
            raise ValueError(
                f"retry_count must be >= 0, got {self.retry_count}"
            )
        if self.backoff_factor < 0:
            raise ValueError(
                f"backoff_factor must be >= 0, got {self.backoff_factor}"
            )

    @classmethod
    def from_config(cls, config: Config) -> "ConnectionPoolConfig":
        """Size the pool to the batch concurrency plus one spare connection."""
        return cls(
            max_connections=config.batch.concurrent_connections + 1,
            retry_count=config.transport.max_retries,
            backoff_factor=config.transport.backoff_factor,
        )


class ConnectionPool:
    """Manages a lazily created, pooled requests session. Thread-safe.

    Example:
        >>> with ConnectionPool(ConnectionPoolConfig(max_connections=4)) as pool:
        ...     session = pool.get_session()
    """

    def __init__(self, config: Optional[ConnectionPoolConfig] = None) -> None:
        self.config = config or ConnectionPoolConfig()
        self._session: Optional[requests.Session] = None
        self._lock = Lock()
        logger.debug(
            "ConnectionPool initialized with max_connections=%d, pool_block=%s",
            self.config.max_connections,
            self.config.pool_block,
        )

    def get_session(self) -> requests.Session:
        """Get or create the pooled session."""
        with self._lock:
            if self._session is None:
                self._session = self._create_session()
            return self._session

    def _create_session(self) -> requests.Session:
        retry_strategy = Retry(
            total=self.config.retry_count,
            backoff_factor=self.config.backoff_factor,
            status_forcelist=[429, 502, 503, 504],
            allowed_methods=RETRYABLE_METHODS,
            raise_on_status=False,
        )

        adapter = HTTPAdapter(
            pool_connections=self.config.max_connections,
            pool_maxsize=self.config.max_connections,
            pool_block=self.config.pool_block,
            max_retries=retry_strategy,
        )

        session = requests.Session()
        session.mount("http://", adapter)
        session.mount("https://", adapter)

        logger.info(
            "Created HTTP session with pool_maxsize=%d, pool_block=%s, retry_count=%d",
            self.config.max_connections,
            self.config.pool_block,
            self.config.retry_count,
        )
        return session

    def close(self) -> None:
        """Close the session and release pooled connections."""
        with self._lock:
            if self._session is not None:
                self._session.close()
                self._session = None
                logger.debug("ConnectionPool session closed")

    def __enter__(self) -> "ConnectionPool":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class LinkageTransport:
    """Request helper shared by all record-linkage exchanges.

    Attributes:
        config: Application configuration
        server_url: Base URL of the token broker (no trailing slash)
        api_version: Value sent in the mainzellisteApiVersion header

    Example:
        >>> transport = LinkageTransport(config)
        >>> response = transport.post_json(
        ...     transport.url("tokens/addPatient"), 3, exchange_type="TOKEN_CREATE"
        ... )
    """

    def __init__(
        self,
        config: Config,
        session: Optional[requests.Session] = None,
    ) -> None:
        """Initialize the transport.

        Args:
            config: Application configuration
            session: Preconfigured session to use instead of a pooled one
        """
        self.config = config
        self.server_url = config.endpoints.server_url
        self.api_version = config.endpoints.linkage_api_version
        self._pool: Optional[ConnectionPool] = None
        if session is None:
            self._pool = ConnectionPool(ConnectionPoolConfig.from_config(config))
            session = self._pool.get_session()
        self.session = session

    @property
    def timeout(self) -> tuple[int, int]:
        return (self.config.transport.timeout_connect, self.config.transport.timeout_read)

    def url(self, path: str) -> str:
        """Join a path onto the server URL."""
        return f"{self.server_url}/{path.lstrip('/')}"

    def post_json(self, url: str, payload: Any, exchange_type: str) -> requests.Response:
        """POST a JSON payload to the token broker or the medical data backend."""
        return self._send("POST", url, exchange_type, json=payload)

    def post_form(self, url: str, fields: dict[str, str], exchange_type: str) -> requests.Response:
        """POST form-encoded fields to the linkage service (token redemption)."""
        headers = {
            "Content-Type": FORM_CONTENT_TYPE,
            API_VERSION_HEADER: self.api_version,
        }
        return self._send("POST", url, exchange_type, data=fields, headers=headers)

    def get_linkage(self, url: str, exchange_type: str) -> requests.Response:
        """GET from the linkage service (read token redemption)."""
        headers = {API_VERSION_HEADER: self.api_version}
        return self._send("GET", url, exchange_type, headers=headers)

    def _send(self, method: str, url: str, exchange_type: str, **kwargs: Any) -> requests.Response:
        try:
            response = self.session.request(
                method,
                url,
                timeout=self.timeout,
                verify=self.config.transport.verify_tls,
                **kwargs,
            )
        except requests.RequestException as e:
            logger.error(f"{exchange_type}: {method} {url} failed: {e}")
            raise TransportUnavailableError(
                f"Record-linkage service unreachable during {exchange_type} ({method} {url}): {e}"
            ) from e

        log_exchange(exchange_type, method, url, response.status_code, response.text)
        return response

    def close(self) -> None:
        """Close the pooled session if this transport created it."""
        if self._pool is not None:
            self._pool.close()

    def __enter__(self) -> "LinkageTransport":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def require_success(response: requests.Response, exchange_type: str) -> requests.Response:
    """Fail the operation when a broker or backend call is not 2xx.

    Raises:
        TransportUnavailableError: If the response status is not 2xx
    """
    if not response.ok:
        raise TransportUnavailableError(
            f"{exchange_type} rejected with HTTP {response.status_code}: {response.text[:500]}"
        )
    return response
