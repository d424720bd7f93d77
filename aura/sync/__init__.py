"""
Remote Sync

- couchdb.py - CouchDB HTTP client (insert, find)
- worker.py - One drain pass over the queue directory
- scheduler.py - Single coalesced sync slot with linear backoff
"""

from .couchdb import CouchDBClient, InsertResult, MangoQuery, FindResponse, basic_auth_header
from .worker import SyncWorker, SyncResult
from .scheduler import SyncScheduler

__all__ = [
    "CouchDBClient",
    "InsertResult",
    "MangoQuery",
    "FindResponse",
    "basic_auth_header",
    "SyncWorker",
    "SyncResult",
    "SyncScheduler",
]
