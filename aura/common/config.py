"""
Configuration Dataclasses

Type-safe configuration structures for an experiment session.
Configuration is fixed once setup() is called, so every dataclass is frozen.
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigError


class CounterbalanceMode(str, Enum):
    """Supported counterbalancing strategies"""
    LATIN_SQUARE = "latin_square"
    FULL_PERMUTATION = "full_permutation"
    RANDOM = "random"
    CUSTOM = "custom"
    LEGACY = "legacy"

    @classmethod
    def parse(cls, value: "str | CounterbalanceMode") -> "CounterbalanceMode":
        """Accept 'latin_square', 'LATIN_SQUARE', 'LatinSquare' or 'latin-square'"""
        if isinstance(value, cls):
            return value
        key = str(value).replace("_", "").replace("-", "").lower()
        for mode in cls:
            if mode.value.replace("_", "") == key:
                return mode
        raise ConfigError(f"Unknown counterbalance mode: {value!r}")


class ParseErrorPolicy(str, Enum):
    """What the sync worker does with an undecodable queued line"""
    ABORT = "abort"  # fail the file, retry later
    SKIP = "skip"    # log, count and continue


@dataclass(frozen=True)
class CounterbalanceConfig:
    """Counterbalancing strategy and its optional constraints"""
    mode: CounterbalanceMode = CounterbalanceMode.LATIN_SQUARE
    custom_latin_square: tuple[tuple[str, ...], ...] | None = None
    custom_orders: dict[str, tuple[str, ...]] | None = None
    start_condition: str | None = None
    end_condition: str | None = None


@dataclass(frozen=True)
class RemoteSettings:
    """CouchDB endpoint and credentials"""
    couchdb_url: str
    db_name: str
    username: str = ""
    password: str = ""
    insecure_tls: bool = False  # dev only: skip certificate validation


@dataclass(frozen=True)
class StorageSettings:
    """Local file locations"""
    data_dir: Path = Path("aura_data")
    # Queue file rotation size; this many requests must fit in file_timeout_s
    max_entries_per_file: int = 100

    def __post_init__(self):
        if self.max_entries_per_file < 1:
            raise ConfigError("storage.max_entries_per_file must be at least 1")

    @property
    def archive_dir(self) -> Path:
        return self.data_dir / "aura_logs"

    @property
    def queue_dir(self) -> Path:
        return self.data_dir / "aura_queue"


@dataclass(frozen=True)
class SyncSettings:
    """Sync worker timing and failure policy"""
    backoff_step_s: float = 10.0   # linear backoff increment
    max_backoff_s: float = 300.0
    request_timeout_s: float = 30.0
    file_timeout_s: float = 120.0  # max time to upload one queue file
    parse_error_policy: ParseErrorPolicy = ParseErrorPolicy.ABORT


@dataclass(frozen=True)
class ExperimentConfig:
    """Complete session configuration"""
    experiment_id: str
    user_id: str
    remote: RemoteSettings
    available_conditions: tuple[str, ...] = ()
    counterbalance: CounterbalanceConfig = field(default_factory=CounterbalanceConfig)
    storage: StorageSettings = field(default_factory=StorageSettings)
    sync: SyncSettings = field(default_factory=SyncSettings)

    def __post_init__(self):
        if not self.experiment_id:
            raise ConfigError("experiment_id is required")
        if not self.user_id:
            raise ConfigError("user_id is required")
        if len(set(self.available_conditions)) != len(self.available_conditions):
            raise ConfigError(
                f"available_conditions contains duplicates: {list(self.available_conditions)}"
            )


def _as_order(value: Any, what: str) -> tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        raise ConfigError(f"{what} must be a list of condition names")
    return tuple(str(v) for v in value)


def load_counterbalance_config(data: dict) -> CounterbalanceConfig:
    """Load CounterbalanceConfig from dictionary"""
    square = data.get("custom_latin_square")
    orders = data.get("custom_orders")

    if orders is not None and not isinstance(orders, dict):
        raise ConfigError("custom_orders must be a mapping of participant -> order")

    return CounterbalanceConfig(
        mode=CounterbalanceMode.parse(data.get("mode", "latin_square")),
        custom_latin_square=(
            tuple(_as_order(row, "custom_latin_square row") for row in square)
            if square is not None else None
        ),
        custom_orders=(
            {str(k): _as_order(v, f"custom_orders[{k}]") for k, v in orders.items()}
            if orders is not None else None
        ),
        start_condition=data.get("start_condition"),
        end_condition=data.get("end_condition"),
    )


def load_experiment_config(data: dict) -> ExperimentConfig:
    """
    Load ExperimentConfig from dictionary (e.g., from a YAML file).

    Remote credentials may be supplied through AURA_COUCHDB_URL,
    AURA_COUCHDB_USERNAME and AURA_COUCHDB_PASSWORD, which override the file.
    """
    remote_data = data.get("remote", {})
    couchdb_url = os.environ.get("AURA_COUCHDB_URL", remote_data.get("couchdb_url", ""))
    if not couchdb_url:
        raise ConfigError("remote.couchdb_url is required")
    if not remote_data.get("db_name"):
        raise ConfigError("remote.db_name is required")

    remote = RemoteSettings(
        couchdb_url=couchdb_url,
        db_name=remote_data["db_name"],
        username=os.environ.get("AURA_COUCHDB_USERNAME", remote_data.get("username", "")),
        password=os.environ.get("AURA_COUCHDB_PASSWORD", remote_data.get("password", "")),
        insecure_tls=bool(remote_data.get("insecure_tls", False)),
    )

    storage_data = data.get("storage", {})
    storage = StorageSettings(
        data_dir=Path(storage_data.get("data_dir", "aura_data")),
        max_entries_per_file=int(storage_data.get("max_entries_per_file", 100)),
    )

    sync_data = data.get("sync", {})
    try:
        policy = ParseErrorPolicy(sync_data.get("parse_error_policy", "abort"))
    except ValueError as e:
        raise ConfigError(f"Unknown parse_error_policy: {sync_data.get('parse_error_policy')!r}") from e

    sync = SyncSettings(
        backoff_step_s=float(sync_data.get("backoff_step_s", 10.0)),
        max_backoff_s=float(sync_data.get("max_backoff_s", 300.0)),
        request_timeout_s=float(sync_data.get("request_timeout_s", 30.0)),
        file_timeout_s=float(sync_data.get("file_timeout_s", 120.0)),
        parse_error_policy=policy,
    )

    return ExperimentConfig(
        experiment_id=str(data.get("experiment_id", "")),
        user_id=str(data.get("user_id", "")),
        remote=remote,
        available_conditions=_as_order(data.get("available_conditions", []), "available_conditions"),
        counterbalance=load_counterbalance_config(data.get("counterbalance", {})),
        storage=storage,
        sync=sync,
    )


def load_config_file(config_path: str | Path) -> ExperimentConfig:
    """Load ExperimentConfig from a YAML file"""
    path = Path(config_path)
    if not path.exists():
        raise ConfigError(f"Configuration file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping at the top level")

    return load_experiment_config(data)
