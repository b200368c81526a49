"""Per-device storage for ascend-sync.

Provides the SQLite-backed local store holding:
- One document table per synced collection
- The durable sync queue
- The per-user entitlement cache
"""

from .local_store import CollectionTable, ImportResult, LocalStore, QueueItem

__all__ = ["CollectionTable", "ImportResult", "LocalStore", "QueueItem"]
