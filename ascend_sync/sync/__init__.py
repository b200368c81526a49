"""Sync infrastructure for ascend-sync.

Keeps the per-device store consistent with the remote store across devices
and offline periods: last-write-wins merge, tombstone propagation, and a
durable retry queue with exponential backoff.
"""

from .connectivity import Connectivity, ConnectivityMonitor
from .coordinator import SyncCoordinator
from .engine import ItemSyncOutcome, SyncEngine, SyncFailure, SyncResult
from .queue import QueueResult, RetryQueue, calculate_retry_delay
from .status import StatusSnapshot, SyncState, SyncStatusChannel

__all__ = [
    "Connectivity",
    "ConnectivityMonitor",
    "ItemSyncOutcome",
    "QueueResult",
    "RetryQueue",
    "StatusSnapshot",
    "SyncCoordinator",
    "SyncEngine",
    "SyncFailure",
    "SyncResult",
    "SyncState",
    "SyncStatusChannel",
    "calculate_retry_delay",
]
