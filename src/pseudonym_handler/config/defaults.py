"""Default configuration values.

This module defines the default configuration values used when no configuration
file is provided or when configuration values are not specified.
"""

from typing import Any

# Fallback when no configuration file is present
DEFAULT_CONFIG: dict[str, Any] = {
    "endpoints": {
        # Local mock linkage service
        "server_url": "http://localhost:8080",
        "linkage_api_version": "3.0",
    },
    "transport": {
        "verify_tls": True,
        "timeout_connect": 10,
        "timeout_read": 30,
        # Only GET requests are retried; token redemptions never are
        "max_retries": 3,
        "backoff_factor": 0.3,
    },
    "logging": {
        "level": "INFO",
        "log_file": "logs/pseudonym-handler.log",
        "redact_pii": False,
    },
    "batch": {
        "concurrent_connections": 1,
        "retry_succeeded": False,
        "output_dir": "output",
    },
}

# Default configuration file path
DEFAULT_CONFIG_PATH = "config/config.json"
