"""Shared pytest fixtures."""
from __future__ import annotations

from pathlib import Path

import pytest

from aura.common.config import (
    CounterbalanceConfig,
    ExperimentConfig,
    RemoteSettings,
    StorageSettings,
    SyncSettings,
)
from aura.common.exceptions import RemoteError
from aura.storage.entry import LogEntry
from aura.storage.event_store import EventStore
from aura.sync.couchdb import FindResponse, InsertResult


class FakeRemote:
    """In-memory stand-in for CouchDBClient with scripted failures."""

    def __init__(
        self,
        fail_on: set[int] | None = None,
        fail_always: bool = False,
        docs: list[dict] | None = None,
        find_error: Exception | None = None,
    ):
        self.fail_on = fail_on or set()
        self.fail_always = fail_always
        self.docs = docs or []
        self.find_error = find_error
        self.calls = 0
        self.inserted: list[LogEntry] = []
        self.queries = []
        self.closed = False

    async def insert(self, entry: LogEntry) -> InsertResult:
        self.calls += 1
        if self.fail_always or self.calls in self.fail_on:
            return InsertResult(ok=False, status_code=503, message="HTTP 503: unavailable")
        self.inserted.append(entry)
        return InsertResult(ok=True, status_code=201)

    async def find(self, query) -> FindResponse:
        self.queries.append(query)
        if self.find_error is not None:
            raise self.find_error
        return FindResponse(docs=self.docs)

    async def execute_query(self, query: dict) -> dict:
        self.queries.append(query)
        return {"docs": self.docs}

    async def close(self) -> None:
        self.closed = True


@pytest.fixture(autouse=True)
def clear_remote_env(monkeypatch):
    """Keep developer credentials out of config loading."""
    for name in ("AURA_COUCHDB_URL", "AURA_COUCHDB_USERNAME", "AURA_COUCHDB_PASSWORD"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def make_config(tmp_path: Path):
    """Build an ExperimentConfig rooted in tmp_path."""

    def _make(
        user_id: str = "0",
        conditions: tuple[str, ...] = ("A", "B", "C"),
        counterbalance: CounterbalanceConfig | None = None,
        sync: SyncSettings | None = None,
    ) -> ExperimentConfig:
        return ExperimentConfig(
            experiment_id="fitts",
            user_id=user_id,
            remote=RemoteSettings(couchdb_url="http://couch.test:5984", db_name="aura"),
            available_conditions=conditions,
            counterbalance=counterbalance or CounterbalanceConfig(),
            storage=StorageSettings(data_dir=tmp_path / "data"),
            sync=sync or SyncSettings(backoff_step_s=0.01, max_backoff_s=0.05),
        )

    return _make


@pytest.fixture
def store(tmp_path: Path) -> EventStore:
    return EventStore(
        archive_dir=tmp_path / "data" / "aura_logs",
        queue_dir=tmp_path / "data" / "aura_queue",
        experiment_id="fitts",
        user_id="0",
        fsync=False,
    )


@pytest.fixture
def make_entry():
    def _make(event_name: str = "tap", condition: str = "A", **payload) -> LogEntry:
        return LogEntry.capture("fitts", "0", condition, event_name, payload)

    return _make


@pytest.fixture
def remote_error() -> RemoteError:
    return RemoteError("connection refused")
