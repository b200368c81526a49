"""Wiring of the store, remote client, engine and entitlement service."""

import logging
from dataclasses import dataclass
from datetime import timedelta

from .config import Config
from .entitlement import EntitlementCache, EntitlementSync
from .remote import RemoteStore
from .storage import LocalStore
from .sync import (
    Connectivity,
    ConnectivityMonitor,
    RetryQueue,
    SyncEngine,
    SyncStatusChannel,
)

logger = logging.getLogger(__name__)


@dataclass
class SyncRuntime:
    """Process-wide sync components.

    Create one with ``create_runtime`` at startup and release it with
    ``close`` on shutdown.
    """

    config: Config
    store: LocalStore
    remote: RemoteStore
    connectivity: Connectivity
    status: SyncStatusChannel
    queue: RetryQueue
    engine: SyncEngine
    entitlements: EntitlementSync
    monitor: ConnectivityMonitor | None = None

    async def close(self) -> None:
        if self.monitor:
            await self.monitor.stop()
        self.engine.close()
        await self.remote.close()
        self.store.close()


def create_runtime(config: Config, online: bool = True) -> SyncRuntime:
    """Build and connect all sync components from configuration.

    Args:
        config: Loaded configuration.
        online: Initial connectivity state.
    """
    store = LocalStore(config.local.db_path)
    store.connect()

    remote = RemoteStore(config.remote)
    if not remote.is_configured:
        logger.warning("Remote store credentials not configured. Cloud sync disabled.")

    connectivity = Connectivity(online=online)
    queue = RetryQueue(
        store,
        remote,
        connectivity,
        max_retry_count=config.sync.max_retry_count,
        retry_base_ms=config.sync.retry_base_ms,
        retry_max_ms=config.sync.retry_max_ms,
    )
    engine = SyncEngine(store, remote, queue, connectivity)
    cache = EntitlementCache(
        store,
        stale_after=timedelta(days=config.entitlement.stale_after_days),
        max_age=timedelta(days=config.entitlement.max_age_days),
    )

    monitor = None
    if config.connectivity.probe_enabled:
        monitor = ConnectivityMonitor(
            connectivity,
            remote.health_check,
            interval_seconds=config.connectivity.probe_interval_seconds,
            timeout_seconds=config.connectivity.probe_timeout_seconds,
        )

    return SyncRuntime(
        config=config,
        store=store,
        remote=remote,
        connectivity=connectivity,
        status=engine.status,
        queue=queue,
        engine=engine,
        entitlements=EntitlementSync(remote, cache, connectivity),
        monitor=monitor,
    )
