"""
Experiment Session

The single entry point used by experiment UIs.

State machine:
    UNINITIALIZED --setup()--> CONFIGURED --set_condition()--> CONDITION_SET

Logging is synchronous to disk and asynchronous to the network: log_event()
returns once the entry is on disk and only *triggers* the sync slot.
"""

from enum import Enum
from typing import Any

from aura.common.config import ExperimentConfig
from aura.common.exceptions import ConfigError, NotConfiguredError, RemoteError
from aura.common.logging_setup import get_service_logger
from aura.counterbalance import CounterbalanceResult, compute_order, format_summary
from aura.storage.entry import LogEntry, Scalar
from aura.storage.event_store import AppendResult, EventStore
from aura.sync.couchdb import CouchDBClient, MangoQuery
from aura.sync.scheduler import SyncScheduler
from aura.sync.worker import SyncResult, SyncWorker

logger = get_service_logger("session")


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    CONFIGURED = "configured"
    CONDITION_SET = "condition_set"


class ExperimentSession:
    """
    One participant's run of one experiment.

    Construct once and pass the instance to every caller; there is no global
    state, so several sessions can coexist (e.g. in tests).
    """

    DEFAULT_CONDITION = "Unknown"
    CONDITION_STARTED = "condition_started"
    QUERY_PAGE_SIZE = 200

    def __init__(self):
        self._state = SessionState.UNINITIALIZED
        self._config: ExperimentConfig | None = None
        self._condition = self.DEFAULT_CONDITION

        self._store: EventStore | None = None
        self._remote: CouchDBClient | None = None
        self._worker: SyncWorker | None = None
        self._scheduler: SyncScheduler | None = None

    # ============================================
    # LIFECYCLE
    # ============================================

    def setup(
        self,
        config: ExperimentConfig,
        remote: CouchDBClient | None = None,
        store: EventStore | None = None,
    ) -> None:
        """
        Configure the session. May be called only once.

        Args:
            config: Experiment configuration (immutable from here on)
            remote: Remote client override (defaults to CouchDBClient)
            store: Event store override (defaults to files under config.storage)
        """
        if self._state != SessionState.UNINITIALIZED:
            raise ConfigError("setup() was already called; session configuration is immutable")

        self._config = config
        self._store = store or EventStore(
            archive_dir=config.storage.archive_dir,
            queue_dir=config.storage.queue_dir,
            experiment_id=config.experiment_id,
            user_id=config.user_id,
            max_entries_per_file=config.storage.max_entries_per_file,
        )
        self._remote = remote or CouchDBClient.from_settings(config.remote, config.sync)
        self._worker = SyncWorker.from_settings(self._store, self._remote, config.sync)
        self._scheduler = SyncScheduler(
            self._worker,
            backoff_step_s=config.sync.backoff_step_s,
            max_backoff_s=config.sync.max_backoff_s,
        )
        self._state = SessionState.CONFIGURED

        logger.info(
            f"Session configured: experiment={config.experiment_id} user={config.user_id}",
            extra={
                "experiment_id": config.experiment_id,
                "user_id": config.user_id,
                "archive_path": str(self._store.archive_path),
                "queue_dir": str(self._store.queue_dir),
            },
        )

    async def start(self) -> None:
        """
        Bind the running event loop to the sync slot.

        Entries queued by a previous process are drained right away.
        """
        self._require("start")
        self._scheduler.attach()
        if self._store.pending_count() > 0:
            logger.info("Found entries queued by a previous run, scheduling sync")
            self._scheduler.trigger()

    async def close(self) -> None:
        """Stop the sync slot and release the HTTP client."""
        if self._state == SessionState.UNINITIALIZED:
            return
        await self._scheduler.stop()
        await self._remote.close()

    def _require(self, operation: str) -> ExperimentConfig:
        if self._config is None:
            raise NotConfiguredError(operation)
        return self._config

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def config(self) -> ExperimentConfig:
        return self._require("config")

    @property
    def current_condition(self) -> str:
        return self._condition

    @property
    def store(self) -> EventStore:
        self._require("store")
        return self._store

    @property
    def scheduler(self) -> SyncScheduler:
        self._require("scheduler")
        return self._scheduler

    # ============================================
    # LOGGING
    # ============================================

    def set_condition(self, condition: str) -> AppendResult:
        """Switch the current condition and log a condition_started event."""
        config = self._require("set_condition")

        if config.available_conditions and condition not in config.available_conditions:
            logger.warning(
                f"Condition {condition!r} is not one of {list(config.available_conditions)}"
            )

        self._condition = condition
        self._state = SessionState.CONDITION_SET
        logger.debug(f"Condition set to: {condition}")
        return self.log_event(self.CONDITION_STARTED, {"new_condition": condition})

    def log_event(self, event_name: str, payload: dict[str, Scalar] | None = None) -> AppendResult:
        """
        Record an event and trigger a background sync.

        Returns:
            AppendResult; `ok` is False only when a local disk write failed.
            Network problems are never reported here.
        """
        config = self._require("log_event")

        entry = LogEntry.capture(
            experiment_id=config.experiment_id,
            user_id=config.user_id,
            condition=self._condition,
            event_name=event_name,
            payload=payload,
        )

        result = self._store.append(entry)
        if result.queued:
            self._scheduler.trigger()
        return result

    # ============================================
    # COUNTERBALANCING
    # ============================================

    def get_counterbalance(self) -> CounterbalanceResult:
        """Full counterbalancing result for this participant."""
        config = self._require("get_counterbalance")
        return compute_order(config.user_id, config.available_conditions, config.counterbalance)

    def get_order(self) -> list[str]:
        """Condition order for this participant, from local config only."""
        return self.get_counterbalance().order

    def get_counterbalance_summary(self) -> str:
        config = self._require("get_counterbalance_summary")
        return format_summary(self.get_counterbalance(), config.available_conditions, config.user_id)

    async def get_completed_conditions(self) -> list[str]:
        """
        Conditions this participant already started, according to the server.

        Raises:
            RemoteError: query failed
        """
        config = self._require("get_completed_conditions")

        query = MangoQuery(
            selector={
                "user_id": config.user_id,
                "experiment_id": config.experiment_id,
                "event_name": self.CONDITION_STARTED,
            },
            fields=["condition", "timestamp"],
            limit=self.QUERY_PAGE_SIZE,
        )

        completed: list[str] = []
        while True:
            response = await self._remote.find(query)
            for doc in response.docs:
                condition = doc.get("condition")
                if condition is not None and condition not in completed:
                    completed.append(condition)

            # _find pages by bookmark; an empty page marks the end
            if not response.docs or not response.bookmark or response.bookmark == query.bookmark:
                break
            query = query.model_copy(update={"bookmark": response.bookmark})

        logger.debug(f"Fetched completed conditions from server: {completed}")
        return completed

    async def get_server_aware_order(self) -> list[str]:
        """
        Local order minus the conditions already completed on the server.

        Falls back to the full local order when the server can't be queried.
        """
        local_order = self.get_order()

        try:
            completed = await self.get_completed_conditions()
        except RemoteError as e:
            logger.warning(f"Failed to get server state, using local order: {e.message}")
            return local_order

        remaining = [c for c in local_order if c not in completed]
        logger.info(
            f"Server-aware order: completed={completed}, remaining={remaining}",
            extra={"completed": completed, "remaining": remaining},
        )
        if not remaining:
            logger.info("Participant has completed all conditions")
        return remaining

    async def execute_query(self, query: dict[str, Any]) -> dict[str, Any]:
        """Run a raw Mango query against the session's database."""
        self._require("execute_query")
        return await self._remote.execute_query(query)

    # ============================================
    # SYNC
    # ============================================

    async def sync_now(self) -> SyncResult:
        """Run one drain pass immediately, sharing the single sync slot."""
        self._require("sync_now")
        return await self._scheduler.run_once()

    def get_status(self) -> dict:
        """Get session status."""
        config = self._require("get_status")
        return {
            "state": self._state.value,
            "experiment_id": config.experiment_id,
            "user_id": config.user_id,
            "condition": self._condition,
            "store": self._store.get_stats(),
            "sync": self._worker.get_status(),
            "scheduler": self._scheduler.get_stats(),
        }
