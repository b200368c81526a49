"""ascend-sync - local-first data sync for the Ascend training app."""

__version__ = "0.1.0"
