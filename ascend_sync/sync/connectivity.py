"""Online/offline signal with edge-triggered change callbacks."""

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

ConnectivityCallback = Callable[[bool], None]


class Connectivity:
    """Current connectivity state.

    The host feeds platform signals in through ``set_online``; listeners are
    notified only when the state actually flips.
    """

    def __init__(self, online: bool = True):
        self._online = online
        self._listeners: list[ConnectivityCallback] = []

    def is_online(self) -> bool:
        return self._online

    def on_change(self, callback: ConnectivityCallback) -> Callable[[], None]:
        """Register a callback for online/offline transitions.

        Returns:
            A function that removes the callback.
        """
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def set_online(self, online: bool) -> None:
        """Update the state, notifying listeners on a transition."""
        if online == self._online:
            return

        self._online = online
        logger.info("Connectivity: %s", "online" if online else "offline")
        for callback in list(self._listeners):
            try:
                callback(online)
            except Exception as e:
                logger.error(f"Connectivity listener failed: {e}", exc_info=True)


class ConnectivityMonitor:
    """Background task that probes the backend and updates a Connectivity."""

    def __init__(
        self,
        connectivity: Connectivity,
        probe: Callable[[], Awaitable[bool]],
        interval_seconds: float = 30.0,
        timeout_seconds: float = 5.0,
    ):
        """Initialize the monitor.

        Args:
            connectivity: State to update.
            probe: Coroutine function returning True when the backend answers.
            interval_seconds: Seconds between probes.
            timeout_seconds: Seconds before a probe counts as offline.
        """
        self._connectivity = connectivity
        self._probe = probe
        self._interval = interval_seconds
        self._timeout = timeout_seconds
        self._task: asyncio.Task | None = None
        self._running = False

    async def check(self) -> bool:
        """Probe once and record the result."""
        try:
            online = await asyncio.wait_for(self._probe(), timeout=self._timeout)
        except Exception as e:
            logger.debug(f"Connectivity probe failed: {e}")
            online = False
        self._connectivity.set_online(online)
        return online

    async def start(self) -> None:
        """Start probing as a background task."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"Connectivity monitor started (interval={self._interval}s)")

    async def stop(self) -> None:
        """Stop probing."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Connectivity monitor stopped")

    async def _run_loop(self) -> None:
        while self._running:
            await self.check()
            await asyncio.sleep(self._interval)
