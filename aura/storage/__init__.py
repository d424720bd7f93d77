"""
Local Storage

- entry.py - LogEntry model (JSON Lines record)
- event_store.py - Archive and queue files
"""

from .entry import LogEntry
from .event_store import EventStore, AppendResult

__all__ = ["LogEntry", "EventStore", "AppendResult"]
