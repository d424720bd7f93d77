"""Tests for configuration loading."""
from __future__ import annotations

from pathlib import Path

import pytest

from aura.common.config import (
    CounterbalanceMode,
    ExperimentConfig,
    ParseErrorPolicy,
    RemoteSettings,
    load_config_file,
    load_experiment_config,
)
from aura.common.exceptions import ConfigError

FULL_YAML = """\
experiment_id: fitts
user_id: 12
available_conditions: [Small, Medium, Large]
remote:
  couchdb_url: https://couch.example.org:6984
  db_name: aura
  username: alice
  password: secret
counterbalance:
  mode: Custom
  custom_orders:
    "12": [Large, Medium, Small]
  end_condition: Small
storage:
  data_dir: /tmp/aura-data
sync:
  backoff_step_s: 5
  parse_error_policy: skip
"""


def _minimal(**overrides) -> dict:
    data = {
        "experiment_id": "fitts",
        "user_id": "1",
        "remote": {"couchdb_url": "http://localhost:5984", "db_name": "aura"},
    }
    data.update(overrides)
    return data


def test_load_full_file(tmp_path):
    path = tmp_path / "experiment.yaml"
    path.write_text(FULL_YAML)

    config = load_config_file(path)

    assert config.user_id == "12"
    assert config.available_conditions == ("Small", "Medium", "Large")
    assert config.remote.username == "alice"
    assert not config.remote.insecure_tls
    assert config.counterbalance.mode == CounterbalanceMode.CUSTOM
    assert config.counterbalance.custom_orders == {"12": ("Large", "Medium", "Small")}
    assert config.counterbalance.end_condition == "Small"
    assert config.storage.queue_dir == Path("/tmp/aura-data/aura_queue")
    assert config.storage.archive_dir == Path("/tmp/aura-data/aura_logs")
    assert config.sync.backoff_step_s == 5.0
    assert config.sync.max_backoff_s == 300.0
    assert config.sync.parse_error_policy == ParseErrorPolicy.SKIP


def test_defaults():
    config = load_experiment_config(_minimal())

    assert config.counterbalance.mode == CounterbalanceMode.LATIN_SQUARE
    assert config.sync.file_timeout_s == 120.0
    assert config.sync.parse_error_policy == ParseErrorPolicy.ABORT
    assert config.available_conditions == ()


@pytest.mark.parametrize("raw, expected", [
    ("latin_square", CounterbalanceMode.LATIN_SQUARE),
    ("LatinSquare", CounterbalanceMode.LATIN_SQUARE),
    ("FULL_PERMUTATION", CounterbalanceMode.FULL_PERMUTATION),
    ("full-permutation", CounterbalanceMode.FULL_PERMUTATION),
    ("Legacy", CounterbalanceMode.LEGACY),
])
def test_mode_parsing(raw, expected):
    assert CounterbalanceMode.parse(raw) == expected


def test_unknown_mode_rejected():
    with pytest.raises(ConfigError):
        load_experiment_config(_minimal(counterbalance={"mode": "balanced"}))


def test_environment_overrides_credentials(monkeypatch):
    monkeypatch.setenv("AURA_COUCHDB_URL", "https://override:6984")
    monkeypatch.setenv("AURA_COUCHDB_PASSWORD", "from-env")

    config = load_experiment_config(_minimal())

    assert config.remote.couchdb_url == "https://override:6984"
    assert config.remote.password == "from-env"


def test_environment_supplies_missing_url(monkeypatch):
    monkeypatch.setenv("AURA_COUCHDB_URL", "http://env:5984")
    data = _minimal(remote={"db_name": "aura"})

    assert load_experiment_config(data).remote.couchdb_url == "http://env:5984"


class TestInvalid:
    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config_file(tmp_path / "nope.yaml")

    def test_bad_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("experiment_id: [unterminated\n")

        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config_file(path)

    def test_top_level_list(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ConfigError):
            load_config_file(path)

    def test_missing_couchdb_url(self):
        with pytest.raises(ConfigError, match="couchdb_url"):
            load_experiment_config(_minimal(remote={"db_name": "aura"}))

    def test_missing_user_id(self):
        with pytest.raises(ConfigError, match="user_id"):
            load_experiment_config(_minimal(user_id=""))

    def test_duplicate_conditions(self):
        with pytest.raises(ConfigError, match="duplicates"):
            ExperimentConfig(
                experiment_id="fitts",
                user_id="1",
                remote=RemoteSettings(couchdb_url="http://localhost:5984", db_name="aura"),
                available_conditions=("A", "B", "A"),
            )

    def test_unknown_parse_policy(self):
        with pytest.raises(ConfigError):
            load_experiment_config(_minimal(sync={"parse_error_policy": "ignore"}))

    def test_config_error_is_not_recoverable(self):
        with pytest.raises(ConfigError) as excinfo:
            load_experiment_config(_minimal(experiment_id=""))

        assert not excinfo.value.recoverable
        assert str(excinfo.value).startswith("Config Error")


def test_queue_rotation_size():
    config = load_experiment_config(_minimal(storage={"max_entries_per_file": 25}))
    assert config.storage.max_entries_per_file == 25
    assert load_experiment_config(_minimal()).storage.max_entries_per_file == 100

    with pytest.raises(ConfigError, match="max_entries_per_file"):
        load_experiment_config(_minimal(storage={"max_entries_per_file": 0}))
