# remsync Configuration Module
# Handles YAML-based configuration loading, validation, and defaults

from remsync.config.defaults import DEFAULT_CONFIG, generate_default_config
from remsync.config.loader import (
    ensure_config_exists,
    get_config_path,
    load_config,
    save_config,
    validate_config_file,
)
from remsync.config.schema import (
    ConflictPolicy,
    DeviceConfig,
    OutputConfig,
    RemsyncConfig,
    RetryConfig,
    ServerConfig,
    ServerKind,
    StaleServerPolicy,
    StoreConfig,
    SyncConfig,
)

__all__ = [
    # Schema
    "RemsyncConfig",
    "DeviceConfig",
    "StoreConfig",
    "ServerConfig",
    "SyncConfig",
    "RetryConfig",
    "OutputConfig",
    "ConflictPolicy",
    "StaleServerPolicy",
    "ServerKind",
    # Loader
    "load_config",
    "save_config",
    "get_config_path",
    "ensure_config_exists",
    "validate_config_file",
    # Defaults
    "DEFAULT_CONFIG",
    "generate_default_config",
]
