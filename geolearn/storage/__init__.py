"""Persistence tiers: local cache, remote store, retry queue."""

from geolearn.storage.local_cache import LocalCache
from geolearn.storage.progress_store import ProgressStore
from geolearn.storage.remote import RemoteStore, SqlRemoteStore, is_stale_project_write
from geolearn.storage.sync_queue import SyncQueue

__all__ = [
    "LocalCache",
    "ProgressStore",
    "RemoteStore",
    "SqlRemoteStore",
    "is_stale_project_write",
    "SyncQueue",
]
