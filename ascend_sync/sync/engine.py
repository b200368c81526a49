"""Bidirectional reconciliation between the local store and the remote store.

Pull always precedes push in a full sync: remote tombstones are applied
locally first, so a device returning from an offline period cannot push a
record back to life after another device deleted it.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable

from ..models import (
    MULTI_ROW_COLLECTIONS,
    Collection,
    format_datetime,
    parse_datetime,
    utcnow,
)
from ..remote import RemoteError, RemoteStore, is_network_error
from ..storage import LocalStore
from .connectivity import Connectivity
from .queue import DELETE, UPSERT, QueueResult, RetryQueue
from .status import StatusCallback, SyncState, SyncStatusChannel
from .transformers import to_local, to_remote

logger = logging.getLogger(__name__)

LAST_SYNC_KEY = "last_sync_time"


class SyncFailure(Enum):
    """Why a full sync did not run to completion."""

    NOT_CONFIGURED = "not_configured"
    OFFLINE = "offline"
    ERROR = "error"


@dataclass
class SyncResult:
    """Result of a full sync."""

    success: bool
    error: str | None = None
    reason: SyncFailure | None = None
    timestamp: datetime | None = None
    pulled: int = 0
    deleted: int = 0
    pushed: int = 0
    push_failures: list[str] = field(default_factory=list)


class ItemSyncOutcome(Enum):
    """Result of an immediate single-record sync."""

    SYNCED = "synced"
    QUEUED = "queued"  # offline or transient failure; will be retried
    FAILED = "failed"  # rejected by the backend; not retried
    SKIPPED = "skipped"  # remote store not configured


@dataclass
class PullResult:
    merged: int = 0
    deleted: int = 0


@dataclass
class PushResult:
    pushed: int = 0
    failures: list[str] = field(default_factory=list)


class SyncEngine:
    """Keeps the local store consistent with the remote store.

    Supports:
    - Full sync: pull (merge + tombstones) then push
    - Immediate per-record upsert/delete with offline queueing
    - Queue replay and status broadcasting
    """

    def __init__(
        self,
        store: LocalStore,
        remote: RemoteStore,
        queue: RetryQueue,
        connectivity: Connectivity,
        status: SyncStatusChannel | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize the sync engine.

        Args:
            store: Local per-device store.
            remote: Remote store client.
            queue: Retry queue for undelivered mutations.
            connectivity: Online/offline signal.
            status: Status channel to publish to (created if omitted).
            clock: Source of the current time.
        """
        self.store = store
        self.remote = remote
        self.queue = queue
        self.connectivity = connectivity
        self.status = status or SyncStatusChannel(
            SyncState.IDLE if connectivity.is_online() else SyncState.OFFLINE
        )
        self._clock = clock

        stored = store.get_meta(LAST_SYNC_KEY)
        if stored:
            self.status.record_sync(parse_datetime(stored))

        self._unsubscribe_connectivity = connectivity.on_change(
            self._on_connectivity_change
        )

    def close(self) -> None:
        """Detach from connectivity events and end status listeners."""
        self._unsubscribe_connectivity()
        self.status.close()

    def _on_connectivity_change(self, online: bool) -> None:
        self.status.set_state(SyncState.IDLE if online else SyncState.OFFLINE)

    # ==================== Status ====================

    def on_status_change(self, callback: StatusCallback) -> Callable[[], None]:
        """Subscribe to status changes. Returns an unsubscribe function."""
        return self.status.subscribe(callback)

    def get_status(self) -> SyncState:
        return self.status.state

    def get_last_sync_time(self) -> datetime | None:
        return self.status.last_sync_time

    def is_online(self) -> bool:
        return self.connectivity.is_online()

    # ==================== Full Sync ====================

    async def full_sync(self, user_id: str) -> SyncResult:
        """Pull remote changes, then push local records.

        Never raises; failures are reported in the result and the status.
        """
        if not self.remote.is_configured:
            return SyncResult(
                success=False,
                error="Remote store not configured",
                reason=SyncFailure.NOT_CONFIGURED,
            )

        if not self.is_online():
            self.status.set_state(SyncState.OFFLINE)
            return SyncResult(success=False, error="Offline", reason=SyncFailure.OFFLINE)

        self.status.set_state(SyncState.SYNCING)

        try:
            pulled = await self.pull_from_cloud(user_id)
            pushed = await self.push_to_cloud(user_id)
        except Exception as e:
            logger.error(f"Full sync failed: {e}", exc_info=True)
            self.status.set_state(SyncState.ERROR, error=str(e))
            return SyncResult(success=False, error=str(e), reason=SyncFailure.ERROR)

        now = self._clock()
        self.status.record_sync(now)
        self.store.set_meta(LAST_SYNC_KEY, format_datetime(now))
        self.status.set_state(SyncState.IDLE)

        logger.info(
            f"Full sync complete: merged={pulled.merged}, "
            f"deleted={pulled.deleted}, pushed={pushed.pushed}"
        )
        return SyncResult(
            success=True,
            timestamp=now,
            pulled=pulled.merged,
            deleted=pulled.deleted,
            pushed=pushed.pushed,
            push_failures=pushed.failures,
        )

    # ==================== Pull ====================

    async def pull_from_cloud(self, user_id: str) -> PullResult:
        """Merge remote rows into the local store and apply remote deletions.

        Raises:
            RemoteError: If any remote read fails; nothing after the failed
                read is applied.
        """
        result = PullResult()

        live_rows = await asyncio.gather(
            *(
                self.remote.select(c.value, user_id, deleted=False)
                for c in MULTI_ROW_COLLECTIONS
            ),
            self.remote.select(Collection.USER_PREFERENCES.value, user_id),
        )

        for collection, rows in zip(MULTI_ROW_COLLECTIONS, live_rows):
            if collection == Collection.SCHEDULED_WORKOUTS:
                result.merged += self._merge_scheduled_workouts(rows)
            else:
                result.merged += self._merge_rows(collection, rows)
        result.merged += self._merge_user_preferences(live_rows[-1])

        tombstones = await asyncio.gather(
            *(
                self.remote.select(c.value, user_id, deleted=True, columns="id")
                for c in MULTI_ROW_COLLECTIONS
            )
        )

        for collection, rows in zip(MULTI_ROW_COLLECTIONS, tombstones):
            table = self.store.table(collection)
            for row in rows:
                if table.delete(row["id"]):
                    result.deleted += 1

        return result

    def _convert(self, collection: Collection, row: dict[str, Any]):
        try:
            return to_local(collection, row)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(
                f"Skipping malformed {collection.value} row {row.get('id')}: {e}"
            )
            return None

    def _merge_rows(self, collection: Collection, rows: list[dict[str, Any]]) -> int:
        table = self.store.table(collection)
        written = 0

        for row in rows:
            remote = self._convert(collection, row)
            if remote is None:
                continue

            local = table.get(remote.id)
            if local is None:
                table.put(remote)
                written += 1
            elif collection.is_append_only:
                continue
            elif remote.updated_at > local.updated_at:
                table.put(remote)
                written += 1

        return written

    def _merge_scheduled_workouts(self, rows: list[dict[str, Any]]) -> int:
        """Last-write-wins merge that also guards cycle slots against duplicates.

        A remote workout with no local copy whose (cycle, sequence) slot is
        already held by a different local workout replaces it only when the
        remote copy has warm-up sets and the local one does not.
        """
        table = self.store.table(Collection.SCHEDULED_WORKOUTS)
        by_slot = {
            (w.cycle_id, w.sequence_number): w
            for w in table.to_array()
            if not w.is_ad_hoc and w.sequence_number is not None
        }
        written = 0

        for row in rows:
            if row.get("sequence_number") is None:
                continue
            remote = self._convert(Collection.SCHEDULED_WORKOUTS, row)
            if remote is None:
                continue

            slot = (remote.cycle_id, remote.sequence_number)
            local = table.get(remote.id)
            holder = by_slot.get(slot)

            if local is None and holder is not None and holder.id != remote.id:
                if remote.has_warmups() and not holder.has_warmups():
                    logger.debug(
                        f"Replacing local workout {holder.id} with remote "
                        f"{remote.id}: remote has warmups"
                    )
                    table.delete(holder.id)
                    table.put(remote)
                    by_slot[slot] = remote
                    written += 1
                else:
                    logger.debug(
                        f"Skipping remote workout {remote.id}: keeping local {holder.id}"
                    )
                continue

            if local is None or remote.updated_at > local.updated_at:
                table.put(remote)
                by_slot[slot] = remote
                written += 1

        return written

    def _merge_user_preferences(self, rows: list[dict[str, Any]]) -> int:
        if not rows:
            return 0

        remote = self._convert(Collection.USER_PREFERENCES, rows[0])
        if remote is None:
            return 0

        table = self.store.table(Collection.USER_PREFERENCES)
        existing = table.to_array()
        local = existing[0] if existing else None

        if local is None or remote.updated_at > local.updated_at:
            table.clear()
            table.put(remote)
            return 1
        return 0

    # ==================== Push ====================

    async def push_to_cloud(self, user_id: str) -> PushResult:
        """Upsert every local record, one batch per collection.

        A failed batch is logged and does not stop the other collections.
        """
        result = PushResult()

        for collection in Collection:
            records = self.store.table(collection).to_array()
            if collection == Collection.USER_PREFERENCES:
                records = records[:1]
            if not records:
                continue

            rows = [to_remote(collection, r, user_id) for r in records]
            try:
                await self.remote.upsert(collection.value, rows, on_conflict="id")
            except RemoteError as e:
                logger.error(f"Push failed for {collection.value}: {e}")
                result.failures.append(collection.value)
                continue
            result.pushed += len(rows)

        return result

    # ==================== Per-item Sync ====================

    async def sync_item(
        self, collection: Collection | str, item: Any, user_id: str
    ) -> ItemSyncOutcome:
        """Upsert one record right after a local write.

        Offline or on a network failure the mutation is queued for later;
        a rejection by the backend is logged and not retried.
        """
        collection = Collection(collection)
        if not self.remote.is_configured:
            return ItemSyncOutcome.SKIPPED

        try:
            row = to_remote(collection, item, user_id)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.error(f"Cannot convert {collection.value} record: {e}")
            return ItemSyncOutcome.FAILED

        if not self.is_online():
            self.queue.queue_operation(collection, UPSERT, item)
            return ItemSyncOutcome.QUEUED

        try:
            await self.remote.upsert(collection.value, row, on_conflict="id")
        except RemoteError as e:
            if is_network_error(e):
                logger.warning(f"Sync of {collection.value} failed, queued: {e}")
                self.queue.queue_operation(collection, UPSERT, item)
                return ItemSyncOutcome.QUEUED
            logger.error(f"Sync of {collection.value} rejected: {e}")
            return ItemSyncOutcome.FAILED

        return ItemSyncOutcome.SYNCED

    async def delete_item(
        self, collection: Collection | str, item_id: str, user_id: str
    ) -> ItemSyncOutcome:
        """Soft-delete one record remotely by stamping ``deleted_at``."""
        collection = Collection(collection)
        if not self.remote.is_configured:
            return ItemSyncOutcome.SKIPPED

        if not self.is_online():
            self.queue.queue_operation(collection, DELETE, {"id": item_id})
            return ItemSyncOutcome.QUEUED

        try:
            updated = await self.remote.update(
                collection.value,
                {"deleted_at": format_datetime(self._clock())},
                id=item_id,
                user_id=user_id,
            )
        except RemoteError as e:
            if is_network_error(e):
                logger.warning(f"Delete of {collection.value}:{item_id} queued: {e}")
                self.queue.queue_operation(collection, DELETE, {"id": item_id})
                return ItemSyncOutcome.QUEUED
            logger.error(f"Delete of {collection.value}:{item_id} rejected: {e}")
            return ItemSyncOutcome.FAILED

        if not updated:
            logger.debug(
                f"No rows updated for delete {collection.value}:{item_id} "
                "- item may not exist remotely"
            )
        return ItemSyncOutcome.SYNCED

    async def hard_delete_item(
        self, collection: Collection | str, item_id: str, user_id: str
    ) -> ItemSyncOutcome:
        """Physically delete one record remotely.

        Offline, a soft delete is queued instead.
        """
        collection = Collection(collection)
        if not self.remote.is_configured:
            return ItemSyncOutcome.SKIPPED

        if not self.is_online():
            self.queue.queue_operation(collection, DELETE, {"id": item_id})
            return ItemSyncOutcome.QUEUED

        try:
            await self.remote.delete(collection.value, id=item_id, user_id=user_id)
        except RemoteError as e:
            logger.error(f"Hard delete of {collection.value}:{item_id} failed: {e}")
            return ItemSyncOutcome.FAILED

        return ItemSyncOutcome.SYNCED

    # ==================== Queue ====================

    async def process_queue(self, user_id: str) -> QueueResult:
        return await self.queue.process_queue(user_id)

    def get_queue_count(self) -> int:
        return self.queue.get_queue_count()
