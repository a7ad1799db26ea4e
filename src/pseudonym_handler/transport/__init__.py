"""Transport module.

This module provides the pooled HTTP transport for record-linkage exchanges.
"""

from pseudonym_handler.transport.http_client import (
    ConnectionPool,
    ConnectionPoolConfig,
    LinkageTransport,
    require_success,
)

__all__ = [
    "ConnectionPool",
    "ConnectionPoolConfig",
    "LinkageTransport",
    "require_success",
]
