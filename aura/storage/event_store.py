"""
Local Event Store

Append-only JSON Lines storage for experiment events.

Every entry is written twice:
- the archive file ({experiment}_{user}.jsonl), kept forever for local audit
- the active queue file, drained by the sync worker

Queue files are the unit of upload commit. The active file is sealed
(renamed) at the start of each sync pass so producers never append to a
file that is being uploaded. It is also sealed as soon as it holds
`max_entries_per_file` entries, which bounds the size of every upload unit
however long the client stays offline.
"""

import os
import threading
from dataclasses import dataclass, field
from pathlib import Path

from aura.common.exceptions import StorageError
from aura.common.logging_setup import get_service_logger
from aura.common.timestamp import now_ms
from .entry import LogEntry

logger = get_service_logger("storage.event_store")


@dataclass
class AppendResult:
    """Outcome of writing one entry to the archive and the queue."""
    archived: bool
    queued: bool
    errors: list[StorageError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.archived and self.queued


class EventStore:
    """
    File-backed event log for one (experiment, user) pair.

    Thread-safe for a single process: appends to each file are serialized
    with a per-file lock. Directories and files are created on first write.
    """

    ACTIVE_QUEUE_NAME = "current_queue.jsonl"
    SEALED_PREFIX = "queue_"

    def __init__(
        self,
        archive_dir: Path,
        queue_dir: Path,
        experiment_id: str,
        user_id: str,
        fsync: bool = True,
        max_entries_per_file: int = 100,
    ):
        if max_entries_per_file < 1:
            raise ValueError("max_entries_per_file must be at least 1")

        self.archive_dir = Path(archive_dir)
        self.queue_dir = Path(queue_dir)
        self.experiment_id = experiment_id
        self.user_id = user_id
        self.fsync = fsync
        self.max_entries_per_file = max_entries_per_file

        self._locks: dict[Path, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._seal_seq = 0
        self._active_count: int | None = None  # lines in the active file, counted lazily

    @property
    def archive_path(self) -> Path:
        return self.archive_dir / f"{self.experiment_id}_{self.user_id}.jsonl"

    @property
    def active_queue_path(self) -> Path:
        return self.queue_dir / self.ACTIVE_QUEUE_NAME

    def _lock_for(self, path: Path) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(path)
            if lock is None:
                lock = self._locks[path] = threading.Lock()
            return lock

    # ============================================
    # WRITES
    # ============================================

    def append(self, entry: LogEntry) -> AppendResult:
        """
        Append an entry to the archive and to the active queue file.

        The two writes are independent: a failure in one is logged and
        reported in the result without blocking the other. Never raises.
        """
        line = entry.to_json_line() + "\n"
        result = AppendResult(archived=False, queued=False)

        try:
            self._append_line(self.archive_path, line)
            result.archived = True
        except OSError as e:
            err = StorageError(f"archive append failed: {e}", self.archive_path)
            result.errors.append(err)
            logger.error(err.message, extra={"path": str(self.archive_path)})

        try:
            self._append_queue_line(line)
            result.queued = True
        except OSError as e:
            err = StorageError(f"queue append failed, event will not be uploaded: {e}", self.active_queue_path)
            result.errors.append(err)
            logger.error(err.message, extra={"path": str(self.active_queue_path)})

        return result

    def _write_line(self, path: Path, line: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            f.write(line)
            f.flush()
            if self.fsync:
                os.fsync(f.fileno())

    def _append_line(self, path: Path, line: str) -> None:
        with self._lock_for(path):
            self._write_line(path, line)

    def _append_queue_line(self, line: str) -> None:
        active = self.active_queue_path
        with self._lock_for(active):
            if self._active_count is None:
                self._active_count = self._count_lines(active)

            self._write_line(active, line)
            self._active_count += 1

            if self._active_count >= self.max_entries_per_file:
                try:
                    self._seal_locked()
                except OSError as e:
                    # The entry is on disk; the next sync pass seals the file
                    logger.error(f"Failed to rotate full queue file: {e}")

    def seal_queue(self) -> Path | None:
        """
        Rename the active queue file to a sealed batch file.

        Returns:
            Path of the sealed file, or None if there was nothing to seal
        """
        with self._lock_for(self.active_queue_path):
            return self._seal_locked()

    def _seal_locked(self) -> Path | None:
        active = self.active_queue_path
        try:
            if active.stat().st_size == 0:
                self._active_count = 0
                return None
        except FileNotFoundError:
            self._active_count = 0
            return None

        while True:
            sealed = self.queue_dir / f"{self.SEALED_PREFIX}{now_ms():013d}_{self._seal_seq:04d}.jsonl"
            self._seal_seq += 1
            if not sealed.exists():
                break

        active.rename(sealed)
        self._active_count = 0

        logger.debug(f"Sealed queue file {sealed.name}")
        return sealed

    # ============================================
    # READS
    # ============================================

    def pending_files(self) -> list[Path]:
        """Sealed queue files, oldest first (mtime, then name)."""
        if not self.queue_dir.exists():
            return []

        files = []
        for path in self.queue_dir.glob("*.jsonl"):
            if path.name == self.ACTIVE_QUEUE_NAME:
                continue
            try:
                files.append((path.stat().st_mtime, path.name, path))
            except FileNotFoundError:
                continue

        files.sort()
        return [path for _, _, path in files]

    def pending_count(self) -> int:
        """Number of queued entries not yet confirmed uploaded."""
        paths = self.pending_files()
        if self.active_queue_path.exists():
            paths.append(self.active_queue_path)

        return sum(self._count_lines(path) for path in paths)

    @staticmethod
    def _count_lines(path: Path) -> int:
        try:
            with open(path, "r", encoding="utf-8") as f:
                return sum(1 for line in f if line.strip())
        except FileNotFoundError:
            return 0

    def read_archive(self) -> list[LogEntry]:
        """Every entry ever logged for this (experiment, user) pair."""
        if not self.archive_path.exists():
            return []

        with open(self.archive_path, "r", encoding="utf-8") as f:
            return [LogEntry.from_json_line(line) for line in f if line.strip()]

    def get_stats(self) -> dict:
        """Get store statistics."""
        pending = self.pending_files()
        return {
            "archive_path": str(self.archive_path),
            "archive_bytes": self.archive_path.stat().st_size if self.archive_path.exists() else 0,
            "queue_dir": str(self.queue_dir),
            "pending_files": len(pending) + (1 if self.active_queue_path.exists() else 0),
            "pending_entries": self.pending_count(),
        }
