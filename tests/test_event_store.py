"""Tests for the local archive/queue store."""
from __future__ import annotations

import json
import os
import threading

from aura.storage.entry import LogEntry
from aura.storage.event_store import EventStore


def _lines(path):
    return [line for line in path.read_text(encoding="utf-8").splitlines() if line]


class TestAppend:
    def test_writes_archive_and_queue(self, store, make_entry):
        entry = make_entry("tap", x=10, hit=True)
        result = store.append(entry)

        assert result.ok
        assert store.archive_path.name == "fitts_0.jsonl"
        assert _lines(store.archive_path) == _lines(store.active_queue_path)

        record = json.loads(_lines(store.archive_path)[0])
        assert record == {
            "experiment_id": "fitts",
            "user_id": "0",
            "condition": "A",
            "event_name": "tap",
            "timestamp": entry.timestamp,
            "payload": {"x": 10, "hit": True},
        }

    def test_files_created_lazily(self, store):
        assert not store.archive_path.exists()
        assert not store.queue_dir.exists()

    def test_archive_failure_does_not_block_queue(self, tmp_path, make_entry):
        blocked = tmp_path / "blocked"
        blocked.write_text("not a directory")
        store = EventStore(blocked, tmp_path / "queue", "fitts", "0", fsync=False)

        result = store.append(make_entry())

        assert not result.archived
        assert result.queued
        assert not result.ok
        assert len(result.errors) == 1
        assert result.errors[0].path == store.archive_path
        assert len(_lines(store.active_queue_path)) == 1

    def test_queue_failure_does_not_block_archive(self, tmp_path, make_entry):
        blocked = tmp_path / "blocked"
        blocked.write_text("not a directory")
        store = EventStore(tmp_path / "logs", blocked, "fitts", "0", fsync=False)

        result = store.append(make_entry("tap"))

        assert result.archived
        assert not result.queued
        assert [e.path for e in result.errors] == [store.active_queue_path]
        assert [e.event_name for e in store.read_archive()] == ["tap"]

    def test_concurrent_appends_do_not_interleave(self, store, make_entry):
        def worker(n):
            for i in range(50):
                store.append(make_entry("tap", thread=n, i=i))

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        lines = _lines(store.archive_path)
        assert len(lines) == 400
        assert all(LogEntry.from_json_line(line).event_name == "tap" for line in lines)
        assert store.pending_count() == 400


class TestQueueRotation:
    def test_seal_moves_active_file(self, store, make_entry):
        store.append(make_entry("first"))
        sealed = store.seal_queue()

        assert sealed is not None
        assert sealed.name.startswith("queue_")
        assert not store.active_queue_path.exists()

        store.append(make_entry("second"))
        assert store.pending_files() == [sealed]
        assert LogEntry.from_json_line(_lines(store.active_queue_path)[0]).event_name == "second"

    def test_seal_with_nothing_queued(self, store, make_entry):
        assert store.seal_queue() is None

        store.active_queue_path.parent.mkdir(parents=True)
        store.active_queue_path.touch()
        assert store.seal_queue() is None

    def test_pending_files_oldest_first(self, store, make_entry):
        store.append(make_entry("one"))
        first = store.seal_queue()
        store.append(make_entry("two"))
        second = store.seal_queue()

        # Make the later file look older on disk
        os.utime(first, (2_000_000_000, 2_000_000_000))
        os.utime(second, (1_000_000_000, 1_000_000_000))

        assert store.pending_files() == [second, first]

    def test_full_active_file_is_sealed(self, tmp_path, make_entry):
        store = EventStore(tmp_path / "logs", tmp_path / "queue", "fitts", "0", fsync=False, max_entries_per_file=10)

        for i in range(25):
            store.append(make_entry(f"e{i}"))

        sealed = store.pending_files()
        assert [len(_lines(p)) for p in sealed] == [10, 10]
        assert len(_lines(store.active_queue_path)) == 5
        assert store.pending_count() == 25
        assert LogEntry.from_json_line(_lines(sealed[1])[0]).event_name == "e10"

    def test_rotation_counts_entries_from_previous_run(self, tmp_path, make_entry):
        def open_store():
            return EventStore(tmp_path / "logs", tmp_path / "queue", "fitts", "0", fsync=False, max_entries_per_file=4)

        first = open_store()
        for i in range(3):
            first.append(make_entry(f"e{i}"))
        assert first.pending_files() == []

        second = open_store()
        second.append(make_entry("e3"))

        assert len(second.pending_files()) == 1
        assert not second.active_queue_path.exists()


def test_read_archive_and_stats(store, make_entry):
    for name in ("a", "b", "c"):
        store.append(make_entry(name))
    store.seal_queue()
    store.append(make_entry("d"))

    assert [e.event_name for e in store.read_archive()] == ["a", "b", "c", "d"]

    stats = store.get_stats()
    assert stats["pending_entries"] == 4
    assert stats["pending_files"] == 2
    assert stats["archive_bytes"] > 0
