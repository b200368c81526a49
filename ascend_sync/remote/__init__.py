"""Remote store access for ascend-sync."""

from .client import RemoteStore
from .errors import (
    NetworkError,
    NotConfiguredError,
    RemoteError,
    RemoteValidationError,
    is_network_error,
)

__all__ = [
    "RemoteStore",
    "RemoteError",
    "NetworkError",
    "NotConfiguredError",
    "RemoteValidationError",
    "is_network_error",
]
