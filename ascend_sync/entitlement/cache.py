"""Local cache of the purchase entitlement, kept per user.

Two age thresholds apply to a cached entry:
- Stale (7 days): still usable, but callers should refresh when online
- Max age (60 days): not trusted at all; loading returns None
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from ..models import PurchaseInfo, PurchaseType, format_datetime, parse_datetime, utcnow
from ..storage import LocalStore

logger = logging.getLogger(__name__)

STALE_THRESHOLD = timedelta(days=7)
MAX_AGE = timedelta(days=60)


@dataclass
class CacheLoadResult:
    """A cache hit."""

    purchase_info: PurchaseInfo | None
    is_stale: bool
    cached_at: datetime


def is_purchase_valid(
    purchase_info: PurchaseInfo | None, now: datetime | None = None
) -> bool:
    """Whether a purchase currently grants access.

    Lifetime purchases and subscriptions without an expiry are always valid;
    other subscriptions are valid until ``expires_at``.
    """
    if purchase_info is None:
        return False
    if purchase_info.type == PurchaseType.LIFETIME.value:
        return True
    if purchase_info.expires_at is None:
        return True
    return purchase_info.expires_at > (now or utcnow())


class EntitlementCache:
    """Entitlement cache stored in the local database, one slot per user."""

    def __init__(
        self,
        store: LocalStore,
        stale_after: timedelta = STALE_THRESHOLD,
        max_age: timedelta = MAX_AGE,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.stale_after = stale_after
        self.max_age = max_age
        self._clock = clock

    def save(self, user_id: str, purchase_info: PurchaseInfo | None) -> None:
        """Cache a user's entitlement (None records "no entitlement")."""
        entry = {
            "user_id": user_id,
            "purchase_info": purchase_info.to_dict() if purchase_info else None,
            "cached_at": format_datetime(self._clock()),
        }
        self.store.put_entitlement_entry(user_id, json.dumps(entry))
        logger.debug(f"Cached entitlement for user {user_id}")

    def load(self, user_id: str) -> CacheLoadResult | None:
        """Load a user's cached entitlement.

        Returns None if there is no entry, the entry belongs to another user,
        its timestamp is unreadable, it is older than ``max_age``, or it is
        otherwise corrupted.
        """
        raw = self.store.get_entitlement_entry(user_id)
        if not raw:
            return None

        try:
            cached = json.loads(raw)
        except json.JSONDecodeError:
            logger.debug("Corrupted entitlement cache entry, ignoring")
            return None
        if not isinstance(cached, dict):
            return None

        if cached.get("user_id") != user_id:
            logger.debug("Cache user ID mismatch, ignoring")
            return None

        try:
            cached_at = parse_datetime(cached.get("cached_at"))
        except (TypeError, ValueError):
            cached_at = None
        if cached_at is None:
            logger.debug("Invalid cached_at date, ignoring")
            return None

        age = self._clock() - cached_at
        if age > self.max_age:
            logger.debug("Cache exceeded max age, ignoring")
            return None

        purchase_info = None
        raw_info = cached.get("purchase_info")
        if raw_info:
            if not isinstance(raw_info, dict):
                logger.debug("Cached purchase info is not an object, ignoring")
                return None
            try:
                purchase_info = PurchaseInfo.from_dict(raw_info)
            except (AttributeError, TypeError, ValueError) as e:
                logger.debug(f"Corrupted cached purchase info, ignoring: {e}")
                return None

        return CacheLoadResult(
            purchase_info=purchase_info,
            is_stale=age > self.stale_after,
            cached_at=cached_at,
        )

    def clear(self, user_id: str | None = None) -> None:
        """Clear one user's cache entry, or all entries (sign-out)."""
        self.store.delete_entitlement_entry(user_id)
        logger.debug("Entitlement cache cleared")
