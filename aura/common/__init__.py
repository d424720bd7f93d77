"""
Common Utilities

Shared modules used across the client:
- config.py - Configuration dataclasses and loaders
- exceptions.py - Custom exception classes
- logging_setup.py - Structured logging setup
- timestamp.py - Epoch-millisecond helpers
"""

from .config import (
    CounterbalanceMode,
    ParseErrorPolicy,
    CounterbalanceConfig,
    RemoteSettings,
    StorageSettings,
    SyncSettings,
    ExperimentConfig,
    load_counterbalance_config,
    load_experiment_config,
    load_config_file,
)
from .exceptions import (
    AuraError,
    ConfigError,
    NotConfiguredError,
    StorageError,
    RemoteError,
    SyncTimeoutError,
    ParseError,
)
from .logging_setup import (
    setup_logging,
    get_service_logger,
    LogContext,
    log_sync_pass,
)
from .timestamp import now_ms, ms_to_iso

__all__ = [
    # Config
    "CounterbalanceMode",
    "ParseErrorPolicy",
    "CounterbalanceConfig",
    "RemoteSettings",
    "StorageSettings",
    "SyncSettings",
    "ExperimentConfig",
    "load_counterbalance_config",
    "load_experiment_config",
    "load_config_file",
    # Exceptions
    "AuraError",
    "ConfigError",
    "NotConfiguredError",
    "StorageError",
    "RemoteError",
    "SyncTimeoutError",
    "ParseError",
    # Logging
    "setup_logging",
    "get_service_logger",
    "LogContext",
    "log_sync_pass",
    # Timestamps
    "now_ms",
    "ms_to_iso",
]
