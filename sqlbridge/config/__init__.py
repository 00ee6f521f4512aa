"""Configuration management for SQLBridge."""

from sqlbridge.config.models import (
    ClientType,
    ConnectionParams,
    SQLBridgeConfig,
    EnvironmentSettings,
)
from sqlbridge.config.parser import (
    ConfigParser,
    get_config,
    validate_config_file,
    create_sample_config,
)

__all__ = [
    # Models
    "ClientType",
    "ConnectionParams",
    "SQLBridgeConfig",
    "EnvironmentSettings",
    # Parser
    "ConfigParser",
    "get_config",
    "validate_config_file",
    "create_sample_config",
]
