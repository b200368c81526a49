"""Entitlement lookups backed by the remote store with an offline cache.

- Online: read the remote row, cache it, return it if still valid
- Offline or remote error: fall back to the cache
- After a purchase: cache immediately, then upsert remotely (best-effort)
"""

import logging
from datetime import datetime
from typing import Callable

from ..models import PurchaseInfo, utcnow
from ..remote import RemoteError, RemoteStore
from ..sync.connectivity import Connectivity
from ..sync.transformers import local_to_remote_entitlement, remote_to_local_purchase_info
from .cache import EntitlementCache, is_purchase_valid

logger = logging.getLogger(__name__)

ENTITLEMENTS_TABLE = "user_entitlements"


class EntitlementSync:
    """Answers "what may this user access" even while offline."""

    def __init__(
        self,
        remote: RemoteStore,
        cache: EntitlementCache,
        connectivity: Connectivity,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.remote = remote
        self.cache = cache
        self.connectivity = connectivity
        self._clock = clock

    async def _fetch_and_cache(self, user_id: str) -> PurchaseInfo | None:
        """Read the remote row, cache it, and return it only if valid.

        Raises:
            RemoteError: If the remote read fails.
        """
        row = await self.remote.select_one(ENTITLEMENTS_TABLE, user_id=user_id)
        if row is None:
            logger.debug("No entitlement found remotely")
            self.cache.save(user_id, None)
            return None

        purchase_info = remote_to_local_purchase_info(row)
        self.cache.save(user_id, purchase_info)

        if is_purchase_valid(purchase_info, self._clock()):
            return purchase_info
        return None

    async def get_entitlement(self, user_id: str) -> PurchaseInfo | None:
        """Current valid purchase for a user, or None."""
        if self.connectivity.is_online():
            try:
                return await self._fetch_and_cache(user_id)
            except (RemoteError, KeyError, ValueError) as e:
                logger.error(f"Remote entitlement fetch failed, falling back to cache: {e}")

        cached = self.cache.load(user_id)
        if cached and is_purchase_valid(cached.purchase_info, self._clock()):
            logger.debug(f"Using cached entitlement (stale={cached.is_stale})")
            return cached.purchase_info

        return None

    async def sync_to_remote(self, user_id: str, purchase_info: PurchaseInfo) -> None:
        """Record a purchase locally, then push it to the remote store."""
        self.cache.save(user_id, purchase_info)

        if not self.connectivity.is_online():
            logger.debug("Offline, skipping remote entitlement sync (cached locally)")
            return

        try:
            await self.remote.upsert(
                ENTITLEMENTS_TABLE,
                local_to_remote_entitlement(user_id, purchase_info),
                on_conflict="user_id",
            )
        except RemoteError as e:
            logger.error(f"Failed to upsert entitlement: {e}")
            return

        logger.debug("Entitlement synced to remote store")

    async def refresh_from_remote(self, user_id: str) -> PurchaseInfo | None:
        """Force a remote read. Returns None if offline or the read fails."""
        if not self.connectivity.is_online():
            logger.debug("Offline, cannot refresh entitlement")
            return None

        try:
            return await self._fetch_and_cache(user_id)
        except (RemoteError, KeyError, ValueError) as e:
            logger.error(f"Failed to refresh entitlement: {e}")
            return None
