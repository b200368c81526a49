"""Purchase entitlement cache and sync."""

from .cache import CacheLoadResult, EntitlementCache, is_purchase_valid
from .sync import EntitlementSync

__all__ = ["CacheLoadResult", "EntitlementCache", "EntitlementSync", "is_purchase_valid"]
