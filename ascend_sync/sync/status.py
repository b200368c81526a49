"""Observable sync status shared between the engine and its consumers."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import AsyncIterator, Callable

logger = logging.getLogger(__name__)


class SyncState(Enum):
    """Engine status."""

    IDLE = "idle"
    SYNCING = "syncing"
    ERROR = "error"
    OFFLINE = "offline"


@dataclass(frozen=True)
class StatusSnapshot:
    """Point-in-time view of the sync status."""

    state: SyncState
    last_sync_time: datetime | None = None
    last_error: str | None = None

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "last_sync_time": (
                self.last_sync_time.isoformat() if self.last_sync_time else None
            ),
            "last_error": self.last_error,
        }


StatusCallback = Callable[[SyncState], None]

_CLOSED = object()


class SyncStatusChannel:
    """State container that publishes every status change.

    Consumers either register a callback with ``subscribe`` or consume
    snapshots with ``async for snapshot in channel.listen()``. One channel is
    owned by one engine; ``close`` ends all listeners.
    """

    def __init__(self, initial: SyncState = SyncState.IDLE):
        self._state = initial
        self._last_sync_time: datetime | None = None
        self._last_error: str | None = None
        self._callbacks: list[StatusCallback] = []
        self._queues: list[asyncio.Queue] = []

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def last_sync_time(self) -> datetime | None:
        return self._last_sync_time

    @property
    def last_error(self) -> str | None:
        return self._last_error

    def snapshot(self) -> StatusSnapshot:
        return StatusSnapshot(self._state, self._last_sync_time, self._last_error)

    def set_state(self, state: SyncState, error: str | None = None) -> None:
        """Move to a new state and notify subscribers."""
        self._state = state
        if state == SyncState.ERROR:
            self._last_error = error
        elif state == SyncState.IDLE:
            self._last_error = None
        self._publish()

    def record_sync(self, when: datetime) -> None:
        """Record a successful full sync (published with the next state)."""
        self._last_sync_time = when

    def subscribe(self, callback: StatusCallback) -> Callable[[], None]:
        """Register a callback for state changes.

        Returns:
            A function that removes the callback.
        """
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    async def listen(self) -> AsyncIterator[StatusSnapshot]:
        """Yield a snapshot for every state change until the channel closes."""
        queue: asyncio.Queue = asyncio.Queue()
        self._queues.append(queue)
        try:
            while True:
                item = await queue.get()
                if item is _CLOSED:
                    return
                yield item
        finally:
            if queue in self._queues:
                self._queues.remove(queue)

    def close(self) -> None:
        """End every active ``listen`` iterator and drop callbacks."""
        for queue in self._queues:
            queue.put_nowait(_CLOSED)
        self._callbacks.clear()

    def _publish(self) -> None:
        snapshot = self.snapshot()
        for queue in self._queues:
            queue.put_nowait(snapshot)
        for callback in list(self._callbacks):
            try:
                callback(self._state)
            except Exception as e:
                logger.error(f"Status listener failed: {e}", exc_info=True)
