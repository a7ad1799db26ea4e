"""Configuration management for the mock linkage service."""

import json
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

DEFAULT_MOCK_CONFIG_PATH = Path("mocks/config.json")

ENV_PREFIX = "MOCK_SERVER_"

_INT_FIELDS = ("port", "token_ttl_seconds", "response_delay_ms", "forced_submission_status")
_BOOL_FIELDS = ("use_callback",)


class MockServerConfig(BaseModel):
    """Mock linkage service configuration model.

    Configuration precedence:
    1. Environment variables (MOCK_SERVER_* prefix)
    2. JSON config file
    3. Default values

    Attributes:
        host: Bind address
        port: HTTP port
        log_level: Logging level
        log_path: Rotating log file path
        use_callback: Issue callback-mediated create tokens
        token_ttl_seconds: Lifetime of issued tokens; 0 disables expiry
        response_delay_ms: Delay before answering token redemptions
        forced_submission_status: Answer every identity submission with this status
            (used to exercise undefined responses)
        public_url: Base URL written into token URLs (default: request host URL)
    """

    host: str = Field(default="127.0.0.1", description="Server host address")
    port: int = Field(default=8080, description="HTTP server port")
    log_level: str = Field(default="INFO", description="Logging level")
    log_path: str = Field(default="mocks/logs/mock-linkage.log", description="Log file path")
    use_callback: bool = Field(default=False, description="Callback-mediated create tokens")
    token_ttl_seconds: int = Field(default=600, ge=0, description="Token lifetime in seconds")
    response_delay_ms: int = Field(
        default=0,
        ge=0,
        le=5000,
        description="Response delay in milliseconds",
    )
    forced_submission_status: Optional[int] = Field(
        default=None,
        description="Fixed HTTP status for identity submissions",
    )
    public_url: Optional[str] = Field(
        default=None,
        description="Base URL used in issued token URLs",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(
                f"Invalid log level '{v}'. Must be one of: {', '.join(valid_levels)}"
            )
        return v_upper

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate port number is in valid range."""
        if not 1 <= v <= 65535:
            raise ValueError(f"Invalid port {v}. Must be between 1 and 65535.")
        return v

    @field_validator("forced_submission_status")
    @classmethod
    def validate_forced_status(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and not 100 <= v <= 599:
            raise ValueError(f"Invalid HTTP status {v}")
        return v


def load_config(config_file: Path | None = None) -> MockServerConfig:
    """Load mock server configuration from file and environment variables.

    Args:
        config_file: Path to configuration JSON file. Defaults to mocks/config.json

    Returns:
        MockServerConfig instance with merged configuration

    Raises:
        FileNotFoundError: If a non-default config file was given but not found
        ValueError: If configuration is invalid
    """
    if config_file is None:
        config_file = DEFAULT_MOCK_CONFIG_PATH

    config_data: dict = {}
    if config_file.exists():
        try:
            with open(config_file, encoding="utf-8") as f:
                config_data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(
                f"Failed to parse configuration file '{config_file}': {e}. "
                f"Ensure the file contains valid JSON."
            ) from e
    elif config_file != DEFAULT_MOCK_CONFIG_PATH:
        raise FileNotFoundError(
            f"Configuration file not found: '{config_file}'. "
            f"Ensure the file exists or check the path."
        )

    for key in MockServerConfig.model_fields:
        env_key = f"{ENV_PREFIX}{key.upper()}"
        if env_key not in os.environ:
            continue
        value: object = os.environ[env_key]
        if key in _INT_FIELDS:
            try:
                value = int(value)
            except ValueError as e:
                raise ValueError(
                    f"Invalid value for {env_key}: '{value}'. Must be an integer."
                ) from e
        elif key in _BOOL_FIELDS:
            value = str(value).lower() in ("true", "1", "yes", "on")
        config_data[key] = value

    try:
        return MockServerConfig(**config_data)
    except ValidationError as e:
        raise ValueError(f"Configuration validation failed: {e}") from e
