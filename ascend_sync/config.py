"""Configuration loading for ascend-sync."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml


@dataclass
class RemoteConfig:
    """Connection settings for the hosted backend (PostgREST API)."""

    url: str = ""
    anon_key: str = ""
    access_token: str | None = None
    timeout_seconds: float = 30.0

    @property
    def is_configured(self) -> bool:
        return bool(self.url and self.anon_key)

    @property
    def rest_url(self) -> str:
        return f"{self.url.rstrip('/')}/rest/v1"


@dataclass
class LocalConfig:
    db_path: str = "~/.ascend/ascend.db"


@dataclass
class SyncConfig:
    """Configuration for the sync engine and retry queue."""

    enabled: bool = True
    user_id: str | None = None
    sync_interval_minutes: int = 5
    max_retry_count: int = 5
    retry_base_ms: int = 1000
    retry_max_ms: int = 30000


@dataclass
class EntitlementConfig:
    """Trust windows for the cached purchase entitlement."""

    stale_after_days: int = 7
    max_age_days: int = 60


@dataclass
class ConnectivityConfig:
    probe_enabled: bool = False
    probe_interval_seconds: int = 30
    probe_timeout_seconds: float = 5.0


@dataclass
class Config:
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    local: LocalConfig = field(default_factory=LocalConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    entitlement: EntitlementConfig = field(default_factory=EntitlementConfig)
    connectivity: ConnectivityConfig = field(default_factory=ConnectivityConfig)


def _get_env(key: str, default: Any = None) -> Any:
    """Get environment variable with ASCEND_ prefix."""
    return os.environ.get(f"ASCEND_{key}", default)


def _is_truthy(value: str) -> bool:
    return value.lower() in ("true", "1", "yes")


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to config."""
    # Remote overrides
    if url := _get_env("REMOTE_URL"):
        config.remote.url = url
    if anon_key := _get_env("REMOTE_ANON_KEY"):
        config.remote.anon_key = anon_key
    if access_token := _get_env("REMOTE_ACCESS_TOKEN"):
        config.remote.access_token = access_token
    if timeout := _get_env("REMOTE_TIMEOUT"):
        config.remote.timeout_seconds = float(timeout)

    # Local store overrides
    if db_path := _get_env("DB_PATH"):
        config.local.db_path = db_path

    # Sync overrides
    if sync_enabled := _get_env("SYNC_ENABLED"):
        config.sync.enabled = _is_truthy(sync_enabled)
    if user_id := _get_env("USER_ID"):
        config.sync.user_id = user_id
    if sync_interval := _get_env("SYNC_INTERVAL"):
        config.sync.sync_interval_minutes = int(sync_interval)
    if max_retries := _get_env("SYNC_MAX_RETRIES"):
        config.sync.max_retry_count = int(max_retries)

    # Entitlement overrides
    if stale_days := _get_env("ENTITLEMENT_STALE_DAYS"):
        config.entitlement.stale_after_days = int(stale_days)
    if max_age_days := _get_env("ENTITLEMENT_MAX_AGE_DAYS"):
        config.entitlement.max_age_days = int(max_age_days)

    # Connectivity overrides
    if probe := _get_env("CONNECTIVITY_PROBE"):
        config.connectivity.probe_enabled = _is_truthy(probe)

    return config


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to YAML config file. If None, uses default config.

    Returns:
        Loaded Config object.
    """
    config = Config()

    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                data = yaml.safe_load(f) or {}

            # Parse remote config
            if "remote" in data:
                remote_data = data["remote"]
                config.remote = RemoteConfig(
                    url=remote_data.get("url", config.remote.url),
                    anon_key=remote_data.get("anon_key", config.remote.anon_key),
                    access_token=remote_data.get("access_token"),
                    timeout_seconds=remote_data.get(
                        "timeout_seconds", config.remote.timeout_seconds
                    ),
                )

            # Parse local store config
            if "local" in data:
                config.local = LocalConfig(
                    db_path=data["local"].get("db_path", config.local.db_path)
                )

            # Parse sync config
            if "sync" in data:
                sync_data = data["sync"]
                config.sync = SyncConfig(
                    enabled=sync_data.get("enabled", config.sync.enabled),
                    user_id=sync_data.get("user_id"),
                    sync_interval_minutes=sync_data.get(
                        "sync_interval_minutes", config.sync.sync_interval_minutes
                    ),
                    max_retry_count=sync_data.get(
                        "max_retry_count", config.sync.max_retry_count
                    ),
                    retry_base_ms=sync_data.get(
                        "retry_base_ms", config.sync.retry_base_ms
                    ),
                    retry_max_ms=sync_data.get("retry_max_ms", config.sync.retry_max_ms),
                )

            # Parse entitlement config
            if "entitlement" in data:
                ent_data = data["entitlement"]
                config.entitlement = EntitlementConfig(
                    stale_after_days=ent_data.get(
                        "stale_after_days", config.entitlement.stale_after_days
                    ),
                    max_age_days=ent_data.get(
                        "max_age_days", config.entitlement.max_age_days
                    ),
                )

            # Parse connectivity config
            if "connectivity" in data:
                conn_data = data["connectivity"]
                config.connectivity = ConnectivityConfig(
                    probe_enabled=conn_data.get(
                        "probe_enabled", config.connectivity.probe_enabled
                    ),
                    probe_interval_seconds=conn_data.get(
                        "probe_interval_seconds",
                        config.connectivity.probe_interval_seconds,
                    ),
                    probe_timeout_seconds=conn_data.get(
                        "probe_timeout_seconds",
                        config.connectivity.probe_timeout_seconds,
                    ),
                )

    # Apply environment variable overrides
    config = _apply_env_overrides(config)

    return config
