"""
Aura - telemetry client for behavioral experiments

Records timestamped events to local JSON Lines files, queues them durably and
syncs them to CouchDB in the background. Also assigns counterbalanced
condition orders to participants.

Usage:
    from aura import ExperimentSession, load_config_file

    session = ExperimentSession()
    session.setup(load_config_file("experiment.yaml"))
    await session.start()

    for condition in session.get_order():
        session.set_condition(condition)
        session.log_event("trial_completed", {"duration_ms": 812})
"""

from .common.config import (
    CounterbalanceMode,
    CounterbalanceConfig,
    ExperimentConfig,
    RemoteSettings,
    StorageSettings,
    SyncSettings,
    load_config_file,
    load_experiment_config,
)
from .common.exceptions import (
    AuraError,
    ConfigError,
    NotConfiguredError,
    StorageError,
    RemoteError,
    ParseError,
)
from .counterbalance import CounterbalanceResult, compute_order
from .session import ExperimentSession, SessionState
from .storage import LogEntry, EventStore, AppendResult
from .sync import CouchDBClient, SyncWorker, SyncScheduler, SyncResult

__version__ = "0.1.0"

__all__ = [
    "CounterbalanceMode",
    "CounterbalanceConfig",
    "ExperimentConfig",
    "RemoteSettings",
    "StorageSettings",
    "SyncSettings",
    "load_config_file",
    "load_experiment_config",
    "AuraError",
    "ConfigError",
    "NotConfiguredError",
    "StorageError",
    "RemoteError",
    "ParseError",
    "CounterbalanceResult",
    "compute_order",
    "ExperimentSession",
    "SessionState",
    "LogEntry",
    "EventStore",
    "AppendResult",
    "CouchDBClient",
    "SyncWorker",
    "SyncScheduler",
    "SyncResult",
]
