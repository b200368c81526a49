"""Tests for configuration loading."""

import os

import pytest

from ascend_sync.config import Config, RemoteConfig, load_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Remove ASCEND_* variables from the environment."""
    for key in list(os.environ):
        if key.startswith("ASCEND_"):
            monkeypatch.delenv(key)


class TestDefaults:
    """Tests for default configuration values."""

    def test_load_without_path_uses_defaults(self):
        config = load_config()

        assert isinstance(config, Config)
        assert config.sync.sync_interval_minutes == 5
        assert config.sync.max_retry_count == 5
        assert config.sync.retry_base_ms == 1000
        assert config.sync.retry_max_ms == 30000
        assert config.entitlement.stale_after_days == 7
        assert config.entitlement.max_age_days == 60
        assert config.connectivity.probe_enabled is False

    def test_missing_file_uses_defaults(self, tmp_path):
        config = load_config(tmp_path / "nope.yaml")

        assert config.local.db_path == "~/.ascend/ascend.db"
        assert not config.remote.is_configured


class TestRemoteConfig:
    """Tests for RemoteConfig helpers."""

    def test_is_configured_requires_url_and_key(self):
        assert not RemoteConfig().is_configured
        assert not RemoteConfig(url="https://x.example.co").is_configured
        assert not RemoteConfig(anon_key="key").is_configured
        assert RemoteConfig(url="https://x.example.co", anon_key="key").is_configured

    def test_rest_url_strips_trailing_slash(self):
        config = RemoteConfig(url="https://x.example.co/", anon_key="key")
        assert config.rest_url == "https://x.example.co/rest/v1"


class TestYamlLoading:
    """Tests for loading from a YAML file."""

    def test_load_sections(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            """
remote:
  url: https://abc.example.co
  anon_key: anon
local:
  db_path: /tmp/ascend-test.db
sync:
  user_id: user-42
  sync_interval_minutes: 10
entitlement:
  stale_after_days: 3
connectivity:
  probe_enabled: true
  probe_interval_seconds: 15
"""
        )

        config = load_config(path)

        assert config.remote.url == "https://abc.example.co"
        assert config.remote.is_configured
        assert config.remote.timeout_seconds == 30.0
        assert config.local.db_path == "/tmp/ascend-test.db"
        assert config.sync.user_id == "user-42"
        assert config.sync.sync_interval_minutes == 10
        assert config.sync.max_retry_count == 5
        assert config.entitlement.stale_after_days == 3
        assert config.entitlement.max_age_days == 60
        assert config.connectivity.probe_enabled is True
        assert config.connectivity.probe_interval_seconds == 15

    def test_empty_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")

        config = load_config(path)

        assert config.sync.enabled is True


class TestEnvOverrides:
    """Tests for ASCEND_* environment overrides."""

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text("remote:\n  url: https://file.example.co\n  anon_key: a\n")
        monkeypatch.setenv("ASCEND_REMOTE_URL", "https://env.example.co")
        monkeypatch.setenv("ASCEND_USER_ID", "env-user")
        monkeypatch.setenv("ASCEND_SYNC_INTERVAL", "2")
        monkeypatch.setenv("ASCEND_SYNC_MAX_RETRIES", "3")

        config = load_config(path)

        assert config.remote.url == "https://env.example.co"
        assert config.remote.anon_key == "a"
        assert config.sync.user_id == "env-user"
        assert config.sync.sync_interval_minutes == 2
        assert config.sync.max_retry_count == 3

    def test_boolean_overrides(self, monkeypatch):
        monkeypatch.setenv("ASCEND_SYNC_ENABLED", "false")
        monkeypatch.setenv("ASCEND_CONNECTIVITY_PROBE", "yes")

        config = load_config()

        assert config.sync.enabled is False
        assert config.connectivity.probe_enabled is True

    def test_entitlement_and_db_overrides(self, monkeypatch):
        monkeypatch.setenv("ASCEND_DB_PATH", ":memory:")
        monkeypatch.setenv("ASCEND_ENTITLEMENT_STALE_DAYS", "1")
        monkeypatch.setenv("ASCEND_ENTITLEMENT_MAX_AGE_DAYS", "30")
        monkeypatch.setenv("ASCEND_REMOTE_TIMEOUT", "2.5")

        config = load_config()

        assert config.local.db_path == ":memory:"
        assert config.entitlement.stale_after_days == 1
        assert config.entitlement.max_age_days == 30
        assert config.remote.timeout_seconds == 2.5
