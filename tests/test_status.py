"""Tests for the status channel and connectivity signal."""

import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock

from ascend_sync.sync import (
    Connectivity,
    ConnectivityMonitor,
    StatusSnapshot,
    SyncState,
    SyncStatusChannel,
)

from conftest import T0


class TestSyncStatusChannel:
    """Tests for SyncStatusChannel."""

    def test_initial_snapshot(self):
        channel = SyncStatusChannel()

        assert channel.snapshot() == StatusSnapshot(SyncState.IDLE)
        assert channel.snapshot().to_dict() == {
            "state": "idle",
            "last_sync_time": None,
            "last_error": None,
        }

    def test_subscribe_and_unsubscribe(self):
        channel = SyncStatusChannel()
        callback = MagicMock()

        unsubscribe = channel.subscribe(callback)
        channel.set_state(SyncState.SYNCING)
        unsubscribe()
        channel.set_state(SyncState.IDLE)

        callback.assert_called_once_with(SyncState.SYNCING)

    def test_unsubscribe_twice_is_safe(self):
        channel = SyncStatusChannel()
        unsubscribe = channel.subscribe(MagicMock())
        unsubscribe()
        unsubscribe()

    def test_error_state_records_error(self):
        channel = SyncStatusChannel()

        channel.set_state(SyncState.ERROR, error="boom")
        assert channel.last_error == "boom"

        channel.set_state(SyncState.OFFLINE)
        assert channel.last_error == "boom"

        channel.set_state(SyncState.IDLE)
        assert channel.last_error is None

    def test_failing_callback_does_not_break_others(self):
        channel = SyncStatusChannel()
        channel.subscribe(MagicMock(side_effect=RuntimeError("bad listener")))
        good = MagicMock()
        channel.subscribe(good)

        channel.set_state(SyncState.SYNCING)

        good.assert_called_once_with(SyncState.SYNCING)

    def test_record_sync(self):
        channel = SyncStatusChannel()
        channel.record_sync(T0)
        assert channel.snapshot().to_dict()["last_sync_time"] == T0.isoformat()

    @pytest.mark.asyncio
    async def test_listen_yields_snapshots_until_closed(self):
        channel = SyncStatusChannel()
        received = []

        async def consume():
            async for snapshot in channel.listen():
                received.append(snapshot.state)

        task = asyncio.create_task(consume())
        await asyncio.sleep(0)

        channel.set_state(SyncState.SYNCING)
        channel.set_state(SyncState.ERROR, error="x")
        channel.close()
        await asyncio.wait_for(task, timeout=1)

        assert received == [SyncState.SYNCING, SyncState.ERROR]


class TestConnectivity:
    """Tests for the edge-triggered connectivity signal."""

    def test_notifies_only_on_change(self):
        connectivity = Connectivity(online=True)
        callback = MagicMock()
        connectivity.on_change(callback)

        connectivity.set_online(True)
        connectivity.set_online(False)
        connectivity.set_online(False)
        connectivity.set_online(True)

        assert [c.args[0] for c in callback.call_args_list] == [False, True]

    def test_unsubscribe(self):
        connectivity = Connectivity()
        callback = MagicMock()
        unsubscribe = connectivity.on_change(callback)
        unsubscribe()

        connectivity.set_online(False)

        callback.assert_not_called()
        assert not connectivity.is_online()


class TestConnectivityMonitor:
    """Tests for the background health probe."""

    @pytest.mark.asyncio
    async def test_check_updates_connectivity(self):
        connectivity = Connectivity(online=True)
        monitor = ConnectivityMonitor(connectivity, AsyncMock(return_value=False))

        assert await monitor.check() is False
        assert not connectivity.is_online()

    @pytest.mark.asyncio
    async def test_probe_exception_means_offline(self):
        connectivity = Connectivity(online=True)
        monitor = ConnectivityMonitor(
            connectivity, AsyncMock(side_effect=OSError("no route"))
        )

        assert await monitor.check() is False
        assert not connectivity.is_online()

    @pytest.mark.asyncio
    async def test_slow_probe_times_out_as_offline(self):
        connectivity = Connectivity(online=True)

        async def hang():
            await asyncio.sleep(10)
            return True

        monitor = ConnectivityMonitor(connectivity, hang, timeout_seconds=0.01)

        assert await monitor.check() is False
        assert not connectivity.is_online()

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        connectivity = Connectivity(online=False)
        probe = AsyncMock(return_value=True)
        monitor = ConnectivityMonitor(connectivity, probe, interval_seconds=0.01)

        await monitor.start()
        await asyncio.sleep(0.05)
        await monitor.stop()

        assert probe.await_count >= 1
        assert connectivity.is_online()
        assert monitor._task is None
