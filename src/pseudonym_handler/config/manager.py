"""Configuration manager for loading and managing configuration.

This module provides the main configuration loading functionality,
including support for JSON configuration files, environment variable overrides,
and configuration validation.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import ValidationError

from pseudonym_handler.config.defaults import DEFAULT_CONFIG, DEFAULT_CONFIG_PATH
from pseudonym_handler.config.schema import Config
from pseudonym_handler.utils.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Environment variable prefix for all configuration overrides
ENV_PREFIX = "PSEUDONYM_HANDLER_"

# Keys that belong to the token broker, never to this client
SENSITIVE_ENDPOINT_KEYS = ("api_key", "mainzelliste_api_key")


def load_config(config_path: Optional[Path] = None) -> Config:
    """Load configuration from file and environment variables.

    Configuration is loaded with the following precedence (highest to lowest):
    1. CLI arguments (handled by caller)
    2. Environment variables (PSEUDONYM_HANDLER_* prefix)
    3. Configuration file (JSON)
    4. Default values

    Args:
        config_path: Path to configuration file. If None, uses ./config/config.json

    Returns:
        Validated Config instance

    Raises:
        ConfigurationError: If configuration is invalid or malformed

    Example:
        >>> config = load_config(Path("custom/config.json"))
        >>> server_url = config.endpoints.server_url
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(DEFAULT_CONFIG_PATH)

    config_dict = _load_config_file(config_path)
    config_dict = _apply_env_overrides(config_dict)
    _check_sensitive_values(config_dict)

    try:
        return Config(**config_dict)
    except ValidationError as e:
        raise ConfigurationError(
            f"Configuration validation failed:\n{e}\n\n"
            f"Fix: Check your configuration file at {config_path} and ensure all "
            f"values match the expected format."
        ) from e


def _load_config_file(config_path: Path) -> dict[str, Any]:
    """Load configuration file or return defaults.

    Raises:
        ConfigurationError: If JSON is malformed or the file is unreadable
    """
    if not config_path.exists():
        logger.info(
            f"Config file not found: {config_path}. Using default configuration."
        )
        # Deep copy so callers cannot mutate the defaults
        return json.loads(json.dumps(DEFAULT_CONFIG))

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            config_dict = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(
            f"Invalid JSON in config file: {config_path}\n"
            f"Error: {e}\n"
            f"Fix: Check JSON syntax at line {e.lineno}, column {e.colno}"
        ) from e
    except OSError as e:
        raise ConfigurationError(
            f"Failed to read config file: {config_path}\n"
            f"Error: {e}\n"
            f"Fix: Check file permissions and path"
        ) from e

    if not isinstance(config_dict, dict):
        raise ConfigurationError(
            f"Config file {config_path} must contain a JSON object at top level"
        )

    logger.info(f"Loaded configuration from {config_path}")
    return config_dict


def _apply_env_overrides(config_dict: dict[str, Any]) -> dict[str, Any]:
    """Apply environment variable overrides with PSEUDONYM_HANDLER_ prefix.

    Environment variables follow the pattern: PSEUDONYM_HANDLER_<FIELD>,
    for example PSEUDONYM_HANDLER_SERVER_URL or PSEUDONYM_HANDLER_LOG_LEVEL.

    Raises:
        ConfigurationError: If a numeric override cannot be parsed
    """
    # Endpoints section
    if server_url := os.getenv(f"{ENV_PREFIX}SERVER_URL"):
        config_dict.setdefault("endpoints", {})["server_url"] = server_url
        logger.debug("Override: server_url from environment")

    if api_version := os.getenv(f"{ENV_PREFIX}LINKAGE_API_VERSION"):
        config_dict.setdefault("endpoints", {})["linkage_api_version"] = api_version
        logger.debug("Override: linkage_api_version from environment")

    # Transport section
    if verify_tls := os.getenv(f"{ENV_PREFIX}VERIFY_TLS"):
        config_dict.setdefault("transport", {})["verify_tls"] = _parse_bool(verify_tls)
        logger.debug("Override: verify_tls from environment")

    if timeout_connect := os.getenv(f"{ENV_PREFIX}TIMEOUT_CONNECT"):
        config_dict.setdefault("transport", {})["timeout_connect"] = _parse_number(
            "TIMEOUT_CONNECT", timeout_connect, int
        )
        logger.debug("Override: timeout_connect from environment")

    if timeout_read := os.getenv(f"{ENV_PREFIX}TIMEOUT_READ"):
        config_dict.setdefault("transport", {})["timeout_read"] = _parse_number(
            "TIMEOUT_READ", timeout_read, int
        )
        logger.debug("Override: timeout_read from environment")

    if max_retries := os.getenv(f"{ENV_PREFIX}MAX_RETRIES"):
        config_dict.setdefault("transport", {})["max_retries"] = _parse_number(
            "MAX_RETRIES", max_retries, int
        )
        logger.debug("Override: max_retries from environment")

    if backoff_factor := os.getenv(f"{ENV_PREFIX}BACKOFF_FACTOR"):
        config_dict.setdefault("transport", {})["backoff_factor"] = _parse_number(
            "BACKOFF_FACTOR", backoff_factor, float
        )
        logger.debug("Override: backoff_factor from environment")

    # Logging section
    if log_level := os.getenv(f"{ENV_PREFIX}LOG_LEVEL"):
        config_dict.setdefault("logging", {})["level"] = log_level
        logger.debug("Override: log_level from environment")

    if log_file := os.getenv(f"{ENV_PREFIX}LOG_FILE"):
        config_dict.setdefault("logging", {})["log_file"] = log_file
        logger.debug("Override: log_file from environment")

    if redact_pii := os.getenv(f"{ENV_PREFIX}REDACT_PII"):
        config_dict.setdefault("logging", {})["redact_pii"] = _parse_bool(redact_pii)
        logger.debug("Override: redact_pii from environment")

    # Batch section
    if concurrent := os.getenv(f"{ENV_PREFIX}BATCH_CONCURRENT_CONNECTIONS"):
        config_dict.setdefault("batch", {})["concurrent_connections"] = _parse_number(
            "BATCH_CONCURRENT_CONNECTIONS", concurrent, int
        )
        logger.debug("Override: concurrent_connections from environment")

    if retry_succeeded := os.getenv(f"{ENV_PREFIX}BATCH_RETRY_SUCCEEDED"):
        config_dict.setdefault("batch", {})["retry_succeeded"] = _parse_bool(retry_succeeded)
        logger.debug("Override: retry_succeeded from environment")

    if output_dir := os.getenv(f"{ENV_PREFIX}BATCH_OUTPUT_DIR"):
        config_dict.setdefault("batch", {})["output_dir"] = output_dir
        logger.debug("Override: output_dir from environment")

    return config_dict


def _parse_bool(value: str) -> bool:
    """Parse boolean value from string (case-insensitive)."""
    return value.lower() in ("true", "1", "yes", "on")


def _parse_number(name: str, value: str, kind: type) -> Any:
    try:
        return kind(value)
    except ValueError as e:
        raise ConfigurationError(
            f"Invalid value for {ENV_PREFIX}{name}: '{value}'. "
            f"Must be a {kind.__name__}."
        ) from e


def _check_sensitive_values(config_dict: dict[str, Any]) -> None:
    """Warn when the configuration carries the linkage service API key.

    The API key authorizes token issuance and belongs to the token broker.
    """
    endpoints = config_dict.get("endpoints", {})
    for key in SENSITIVE_ENDPOINT_KEYS:
        if key in endpoints:
            logger.warning(
                f"WARNING: '{key}' found in configuration! The Mainzelliste API key "
                "belongs to the token broker and is ignored by this client. "
                "Remove it from the configuration file."
            )
            endpoints.pop(key)

