"""Config module.

This module provides configuration management functionality.
"""

from pseudonym_handler.config.manager import load_config
from pseudonym_handler.config.schema import (
    BatchConfig,
    Config,
    EndpointsConfig,
    LoggingConfig,
    TransportConfig,
)

__all__ = [
    # Main configuration loading
    "load_config",
    # Configuration models
    "BatchConfig",
    "Config",
    "EndpointsConfig",
    "LoggingConfig",
    "TransportConfig",
]
