"""Drives the sync engine from sign-in, reconnect, interval and manual triggers."""

import asyncio
import logging

from .engine import SyncEngine, SyncResult
from .status import SyncState

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 5 * 60


class SyncCoordinator:
    """Schedules sync passes for one signed-in user.

    Every trigger except the periodic one drains the retry queue before the
    full sync, so this device's pending intent reaches the backend before
    remote state is pulled.
    """

    def __init__(
        self,
        engine: SyncEngine,
        user_id: str,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
    ):
        """Initialize the coordinator.

        Args:
            engine: Sync engine to drive.
            user_id: Signed-in user.
            interval_seconds: Seconds between periodic syncs.
        """
        self.engine = engine
        self.user_id = user_id
        self.interval_seconds = interval_seconds
        self.last_error: str | None = None
        self.queue_count = engine.get_queue_count()
        self._manual_running = False
        self._stop_event: asyncio.Event | None = None
        self._task: asyncio.Task | None = None
        self._pending: set[asyncio.Task] = set()
        self._unsubscribe = engine.connectivity.on_change(self._on_connectivity_change)

    def _refresh(self, result: SyncResult | None) -> None:
        if result is not None:
            self.last_error = None if result.success else result.error
        self.queue_count = self.engine.get_queue_count()

    async def _drain_then_sync(self) -> SyncResult:
        queued = await self.engine.process_queue(self.user_id)
        if queued.processed:
            logger.debug(f"Processed {queued.processed} queued operations")
        if queued.failed:
            logger.warning(f"{queued.failed} queued operations failed")

        result = await self.engine.full_sync(self.user_id)
        self._refresh(result)
        return result

    async def on_sign_in(self) -> SyncResult:
        """Initial sync after the user signs in."""
        return await self._drain_then_sync()

    async def on_online(self) -> SyncResult:
        """Flush queued mutations and resync after reconnecting."""
        logger.debug("Back online - processing sync queue")
        return await self._drain_then_sync()

    async def sync_now(self) -> SyncResult | None:
        """Manual sync. Returns None if a manual sync is already running."""
        if self._manual_running:
            return None

        self._manual_running = True
        self.last_error = None
        try:
            return await self._drain_then_sync()
        finally:
            self._manual_running = False

    async def periodic_tick(self) -> SyncResult | None:
        """One interval trigger: sync only when online and not mid-sync."""
        if not self.engine.is_online():
            return None
        if self.engine.get_status() == SyncState.SYNCING:
            return None

        result = await self.engine.full_sync(self.user_id)
        self._refresh(result)
        return result

    def _on_connectivity_change(self, online: bool) -> None:
        if not online:
            self._refresh(None)
            return

        try:
            task = asyncio.get_running_loop().create_task(self.on_online())
        except RuntimeError:
            logger.debug("No running event loop; reconnect sync deferred")
            return
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def start(self) -> None:
        """Start the periodic sync loop as a background task."""
        if self._task is not None:
            return

        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"Sync loop started ({self.interval_seconds}s interval)")

    async def stop(self) -> None:
        """Stop the periodic loop and detach from connectivity events."""
        self._unsubscribe()
        if self._stop_event:
            self._stop_event.set()
        if self._task:
            await self._task
            self._task = None
        pending = list(self._pending)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        logger.info("Sync loop stopped")

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(
                    self._stop_event.wait(), timeout=self.interval_seconds
                )
                break  # Stop event was set
            except asyncio.TimeoutError:
                pass

            try:
                await self.periodic_tick()
            except Exception as e:
                logger.error(f"Periodic sync error: {e}", exc_info=True)

    def pending_message(self) -> str | None:
        """Human-readable pending count, e.g. "3 changes pending sync"."""
        if not self.queue_count:
            return None
        noun = "change" if self.queue_count == 1 else "changes"
        return f"{self.queue_count} {noun} pending sync"
