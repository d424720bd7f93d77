"""
Sync Worker

Drains sealed queue files to the remote store, one pass per call.

Robustness Guarantees:
1. A queue file is deleted only AFTER every line in it was acknowledged
2. The first failed line stops the pass, later files wait (order preserved)
3. A file that fails is retried in full on the next pass (at-least-once)
4. Undecodable lines abort the file by default, never silently dropped
"""

import asyncio
import time
from dataclasses import dataclass
from pathlib import Path

from pydantic import ValidationError

from aura.common.config import ParseErrorPolicy, SyncSettings
from aura.common.exceptions import ParseError, RemoteError, SyncTimeoutError
from aura.common.logging_setup import get_service_logger, log_sync_pass
from aura.common.timestamp import ms_to_iso, now_ms
from aura.storage.entry import LogEntry
from aura.storage.event_store import EventStore
from .couchdb import CouchDBClient

logger = get_service_logger("sync.worker")


@dataclass
class SyncResult:
    """Outcome of one drain pass."""
    files_uploaded: int = 0
    entries_uploaded: int = 0
    retry_needed: bool = False
    error: str | None = None
    parse_errors: int = 0      # lines skipped under the "skip" policy
    delete_failures: int = 0   # uploaded files that could not be removed

    def to_dict(self) -> dict:
        return {
            "files_uploaded": self.files_uploaded,
            "entries_uploaded": self.entries_uploaded,
            "retry_needed": self.retry_needed,
            "error": self.error,
            "parse_errors": self.parse_errors,
            "delete_failures": self.delete_failures,
        }


class SyncWorker:
    """
    Uploads queued entries one at a time, oldest file first.

    Not safe to run concurrently with itself; SyncScheduler provides the
    single execution slot.
    """

    def __init__(
        self,
        store: EventStore,
        remote: CouchDBClient,
        file_timeout_s: float = 120.0,
        parse_error_policy: ParseErrorPolicy = ParseErrorPolicy.ABORT,
    ):
        self.store = store
        self.remote = remote
        self.file_timeout_s = file_timeout_s
        self.parse_error_policy = parse_error_policy

        self._sync_count = 0
        self._error_count = 0
        self._consecutive_failures = 0
        self._last_sync_ms: int | None = None
        self._last_error: str | None = None

    @classmethod
    def from_settings(cls, store: EventStore, remote: CouchDBClient, sync: SyncSettings) -> "SyncWorker":
        return cls(
            store=store,
            remote=remote,
            file_timeout_s=sync.file_timeout_s,
            parse_error_policy=sync.parse_error_policy,
        )

    async def run(self) -> SyncResult:
        """
        Run one drain pass.

        Returns:
            SyncResult; `retry_needed` is set when any file failed
        """
        start = time.monotonic()
        result = SyncResult()

        try:
            self.store.seal_queue()
        except OSError as e:
            # Already sealed files can still be drained
            logger.error(f"Failed to seal active queue file: {e}")

        for path in self.store.pending_files():
            try:
                uploaded = await asyncio.wait_for(
                    self._upload_file(path, result),
                    timeout=self.file_timeout_s,
                )
            except asyncio.TimeoutError:
                self._fail(result, path, SyncTimeoutError(path, self.file_timeout_s).message)
                break
            except (RemoteError, ParseError) as e:
                self._fail(result, path, e.message)
                break
            except OSError as e:
                self._fail(result, path, f"cannot read {path.name}: {e}")
                break

            self._commit(path, result)
            result.files_uploaded += 1
            result.entries_uploaded += uploaded

        if not result.retry_needed:
            self._consecutive_failures = 0
            self._last_sync_ms = now_ms()
        self._sync_count += result.entries_uploaded

        log_sync_pass(
            logger,
            result.files_uploaded,
            result.entries_uploaded,
            result.retry_needed,
            (time.monotonic() - start) * 1000,
        )
        return result

    async def _upload_file(self, path: Path, result: SyncResult) -> int:
        """
        Upload every line of one queue file.

        Raises:
            RemoteError: first insert that was not acknowledged
            ParseError: undecodable line under the "abort" policy
            OSError: file could not be read
        """
        lines = path.read_text(encoding="utf-8").splitlines()
        uploaded = 0

        for line_number, line in enumerate(lines, start=1):
            if not line.strip():
                continue

            try:
                entry = LogEntry.from_json_line(line)
            except ValidationError as e:
                err = ParseError(f"{e.error_count()} validation errors", path, line_number)
                if self.parse_error_policy == ParseErrorPolicy.SKIP:
                    result.parse_errors += 1
                    logger.warning(f"Skipping undecodable line: {err.message}", extra={"queue_file": path.name})
                    continue
                raise err from e

            response = await self.remote.insert(entry)
            if not response.ok:
                raise RemoteError(
                    f"insert of line {line_number} in {path.name} failed: {response.message}",
                    status_code=response.status_code,
                )
            uploaded += 1

        return uploaded

    def _commit(self, path: Path, result: SyncResult) -> None:
        """Delete a fully uploaded queue file."""
        try:
            path.unlink()
            logger.debug(f"Uploaded and deleted {path.name}", extra={"queue_file": path.name})
        except FileNotFoundError:
            pass
        except OSError as e:
            # Left in place: the next pass uploads it again (duplicates accepted)
            result.delete_failures += 1
            logger.error(
                f"Uploaded queue file could not be deleted and will be re-sent: {path.name}: {e}",
                extra={"queue_file": path.name},
            )

    def _fail(self, result: SyncResult, path: Path, message: str) -> None:
        result.retry_needed = True
        result.error = message
        self._error_count += 1
        self._consecutive_failures += 1
        self._last_error = message
        logger.warning(
            f"Stopping sync pass at {path.name}: {message}",
            extra={"queue_file": path.name},
        )

    def get_status(self) -> dict:
        """Get sync status."""
        return {
            "last_sync_at": ms_to_iso(self._last_sync_ms) if self._last_sync_ms else None,
            "last_error": self._last_error,
            "consecutive_failures": self._consecutive_failures,
            "entries_synced": self._sync_count,
            "error_count": self._error_count,
            "pending_entries": self.store.pending_count(),
        }
