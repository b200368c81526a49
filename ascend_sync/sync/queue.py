"""Durable retry queue for remote mutations that could not be delivered.

Items are deduplicated per (collection, item id) and replayed oldest first.
Failed replays back off exponentially; an item is dropped after
``max_retry_count`` failed attempts so one poisoned mutation cannot block
the queue forever.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Callable

from ..models import Collection, format_datetime, generate_id, utcnow
from ..remote import RemoteError, RemoteStore
from ..storage import LocalStore, QueueItem
from .transformers import to_remote

if TYPE_CHECKING:
    from .connectivity import Connectivity

logger = logging.getLogger(__name__)

MAX_RETRY_COUNT = 5
RETRY_BASE_MS = 1000
RETRY_MAX_MS = 30000

UPSERT = "upsert"
DELETE = "delete"


def calculate_retry_delay(
    retry_count: int,
    base_ms: int = RETRY_BASE_MS,
    max_ms: int = RETRY_MAX_MS,
) -> int:
    """Delay in milliseconds before the next attempt.

    Args:
        retry_count: Number of failed attempts so far (1-based).
    """
    return min(base_ms * 2 ** (retry_count - 1), max_ms)


@dataclass
class QueueResult:
    """Outcome counts of one pass over the queue."""

    processed: int = 0
    failed: int = 0
    skipped: int = 0


def _payload_of(item: Any) -> dict[str, Any]:
    if hasattr(item, "to_dict"):
        return item.to_dict()
    return dict(item)


class RetryQueue:
    """Queue of pending remote mutations stored in the local database."""

    def __init__(
        self,
        store: LocalStore,
        remote: RemoteStore,
        connectivity: "Connectivity",
        max_retry_count: int = MAX_RETRY_COUNT,
        retry_base_ms: int = RETRY_BASE_MS,
        retry_max_ms: int = RETRY_MAX_MS,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize the retry queue.

        Args:
            store: Local store holding the queue table.
            remote: Remote store to replay mutations against.
            connectivity: Online/offline signal.
            max_retry_count: Failed attempts before an item is dropped.
            retry_base_ms: First backoff delay.
            retry_max_ms: Backoff ceiling.
            clock: Source of the current time.
        """
        self.store = store
        self.remote = remote
        self.connectivity = connectivity
        self.max_retry_count = max_retry_count
        self.retry_base_ms = retry_base_ms
        self.retry_max_ms = retry_max_ms
        self._clock = clock

    def queue_operation(
        self, collection: Collection | str, operation: str, item: Any
    ) -> QueueItem:
        """Queue a mutation, replacing any pending one for the same record.

        Args:
            collection: Collection the record belongs to.
            operation: "upsert" or "delete".
            item: The record (or a dict with at least an "id").

        Returns:
            The queued item.
        """
        collection = Collection(collection)
        payload = _payload_of(item)
        item_id = payload["id"]
        now = self._clock()

        existing = self.store.find_queue_item(collection, item_id)
        if existing:
            self.store.replace_queue_payload(existing.id, operation, payload, now)
            existing.operation = operation
            existing.payload = payload
            existing.created_at = now
            queued = existing
        else:
            queued = QueueItem(
                id=generate_id(),
                collection=collection,
                operation=operation,
                item_id=item_id,
                payload=payload,
                created_at=now,
                retry_count=0,
            )
            self.store.add_queue_item(queued)

        logger.debug(f"Queued {operation} for {collection.value}:{item_id}")
        return queued

    async def _replay(self, item: QueueItem, user_id: str) -> None:
        table = item.collection.value
        if item.operation == UPSERT and item.payload:
            row = to_remote(item.collection, item.payload, user_id)
            await self.remote.upsert(table, row, on_conflict="id")
        elif item.operation == DELETE:
            await self.remote.update(
                table,
                {"deleted_at": format_datetime(self._clock())},
                id=item.item_id,
                user_id=user_id,
            )

    async def process_queue(self, user_id: str) -> QueueResult:
        """Replay queued mutations whose backoff has elapsed.

        Args:
            user_id: Owner stamped on replayed rows.

        Returns:
            QueueResult with processed/failed/skipped counts.
        """
        result = QueueResult()
        if not self.remote.is_configured or not self.connectivity.is_online():
            return result

        current_time = self._clock()

        for item in self.store.list_queue_items():
            if item.next_retry_at and item.next_retry_at > current_time:
                result.skipped += 1
                continue

            try:
                await self._replay(item, user_id)
            except (RemoteError, KeyError, TypeError, ValueError) as e:
                logger.error(f"Queue item {item.id} failed: {e}")
                self._record_failure(item, current_time)
                result.failed += 1
                continue

            self.store.delete_queue_item(item.id)
            result.processed += 1

        if result.processed or result.failed:
            logger.debug(
                f"Queue processed: {result.processed} successful, "
                f"{result.failed} failed, {result.skipped} waiting for retry"
            )
        return result

    def _record_failure(self, item: QueueItem, current_time: datetime) -> None:
        retry_count = item.retry_count + 1
        if retry_count >= self.max_retry_count:
            self.store.delete_queue_item(item.id)
            logger.warning(
                f"Giving up on queue item {item.id} "
                f"({item.collection.value}:{item.item_id}) after {retry_count} retries"
            )
            return

        delay_ms = calculate_retry_delay(
            retry_count, self.retry_base_ms, self.retry_max_ms
        )
        self.store.mark_queue_retry(
            item.id, retry_count, current_time + timedelta(milliseconds=delay_ms)
        )
        logger.debug(
            f"Queue item {item.id} will retry in {delay_ms / 1000}s "
            f"(attempt {retry_count}/{self.max_retry_count})"
        )

    def get_queue_count(self) -> int:
        return self.store.count_queue_items()

    def list_items(self) -> list[QueueItem]:
        return self.store.list_queue_items()
