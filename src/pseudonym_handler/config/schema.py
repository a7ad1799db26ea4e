"""Configuration schema models using pydantic.

This module defines the configuration structure and validation rules using pydantic.
All configuration values are validated according to the schema defined here.
"""

from pathlib import Path

from pydantic import BaseModel, Field, field_validator

# Mainzelliste API versions the submission parser understands
SUPPORTED_API_VERSIONS = ("1.0", "2.0", "3.0")


class EndpointsConfig(BaseModel):
    """Configuration for the record-linkage service.

    Attributes:
        server_url: Base URL of the token-brokering application server
        linkage_api_version: Mainzelliste API version sent with every linkage call
    """

    server_url: str = Field(..., description="Token broker base URL")
    linkage_api_version: str = Field(
        default="3.0",
        description="Value of the mainzellisteApiVersion header"
    )

    @field_validator("server_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate URL is HTTP/HTTPS and strip trailing slashes.

        Raises:
            ValueError: If URL does not start with http:// or https://
        """
        if not v.startswith(("http://", "https://")):
            raise ValueError(
                f"Invalid URL: {v}. Must start with http:// or https://"
            )
        return v.rstrip("/")

    @field_validator("linkage_api_version")
    @classmethod
    def validate_api_version(cls, v: str) -> str:
        if v not in SUPPORTED_API_VERSIONS:
            raise ValueError(
                f"Invalid linkage_api_version: {v}. "
                f"Must be one of: {', '.join(SUPPORTED_API_VERSIONS)}"
            )
        return v


class TransportConfig(BaseModel):
    """Configuration for HTTP/HTTPS transport.

    Attributes:
        verify_tls: Whether to verify TLS certificates
        timeout_connect: Connection timeout in seconds
        timeout_read: Read timeout in seconds
        max_retries: Retry attempts for idempotent GET requests
        backoff_factor: Exponential backoff factor for retries
    """

    verify_tls: bool = True
    timeout_connect: int = Field(
        default=10,
        ge=1,
        description="Connection timeout in seconds"
    )
    timeout_read: int = Field(
        default=30,
        ge=1,
        description="Read timeout in seconds"
    )
    max_retries: int = Field(
        default=3,
        ge=0,
        description="Maximum retry attempts for GET requests"
    )
    backoff_factor: float = Field(
        default=0.3,
        ge=0.0,
        description="Exponential backoff factor"
    )


class LoggingConfig(BaseModel):
    """Configuration for logging.

    Attributes:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path to log file
        redact_pii: Whether to redact identifying data from logs
    """

    level: str = Field(
        default="INFO",
        description="Log level: DEBUG, INFO, WARNING, ERROR, CRITICAL"
    )
    log_file: Path = Field(
        default=Path("logs/pseudonym-handler.log"),
        description="Log file path"
    )
    redact_pii: bool = Field(
        default=False,
        description="Redact identifying data from logs"
    )

    @field_validator("level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level and normalize it to uppercase.

        Raises:
            ValueError: If log level is not valid
        """
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(
                f"Invalid log level: {v}. Must be one of: {', '.join(valid_levels)}"
            )
        return v_upper


class BatchConfig(BaseModel):
    """Batch processing configuration.

    Attributes:
        concurrent_connections: Maximum concurrent token redemptions (1 = sequential)
        retry_succeeded: Re-enter records already past PSEUDONYMIZED by default
        output_dir: Base output directory for batch results

    Example:
        >>> batch_config = BatchConfig(concurrent_connections=8)
    """

    concurrent_connections: int = Field(
        default=1,
        ge=1,
        le=50,
        description="Maximum concurrent token redemptions"
    )
    retry_succeeded: bool = Field(
        default=False,
        description="Re-enter already synced records into the protocol"
    )
    output_dir: Path = Field(
        default=Path("output"),
        description="Base output directory for batch results"
    )


class Config(BaseModel):
    """Root configuration model.

    Attributes:
        endpoints: Record-linkage service configuration
        transport: HTTP/HTTPS transport configuration
        logging: Logging configuration
        batch: Batch processing configuration

    Example:
        >>> config = Config(
        ...     endpoints=EndpointsConfig(server_url="http://localhost:8080/")
        ... )
        >>> config.endpoints.server_url
        'http://localhost:8080'
    """

    endpoints: EndpointsConfig
    transport: TransportConfig = TransportConfig()
    logging: LoggingConfig = LoggingConfig()
    batch: BatchConfig = BatchConfig()
