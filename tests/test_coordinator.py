"""Tests for the sync coordinator triggers."""

import asyncio

import pytest
from unittest.mock import AsyncMock, patch

from ascend_sync.models import Collection
from ascend_sync.sync import SyncCoordinator, SyncState
from ascend_sync.sync.queue import UPSERT

from conftest import USER_ID, make_exercise, network_error


@pytest.fixture
def coordinator(engine):
    coordinator = SyncCoordinator(engine, USER_ID, interval_seconds=0.01)
    yield coordinator
    coordinator._unsubscribe()


def record_order(engine):
    """Patch the engine so calls to process_queue/full_sync are recorded in order."""
    calls = []
    original_process = engine.process_queue
    original_sync = engine.full_sync

    async def process_queue(user_id):
        calls.append("process_queue")
        return await original_process(user_id)

    async def full_sync(user_id):
        calls.append("full_sync")
        return await original_sync(user_id)

    engine.process_queue = process_queue
    engine.full_sync = full_sync
    return calls


class TestTriggers:
    """Tests for sign-in, reconnect, manual and periodic triggers."""

    @pytest.mark.asyncio
    async def test_sign_in_drains_queue_before_sync(self, coordinator, engine):
        calls = record_order(engine)

        result = await coordinator.on_sign_in()

        assert result.success
        assert calls == ["process_queue", "full_sync"]

    @pytest.mark.asyncio
    async def test_sync_now_drains_queue_before_sync(self, coordinator, engine, remote):
        engine.queue.queue_operation(Collection.EXERCISES, UPSERT, make_exercise())
        calls = record_order(engine)

        result = await coordinator.sync_now()

        assert result.success
        assert calls == ["process_queue", "full_sync"]
        assert coordinator.queue_count == 0
        assert remote.calls[0] == ("upsert", "exercises")

    @pytest.mark.asyncio
    async def test_sync_now_ignored_while_running(self, coordinator, engine):
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow_sync(user_id):
            started.set()
            await release.wait()
            return await type(engine).full_sync(engine, user_id)

        engine.full_sync = slow_sync

        first = asyncio.create_task(coordinator.sync_now())
        await started.wait()
        assert await coordinator.sync_now() is None
        release.set()

        assert (await first).success

    @pytest.mark.asyncio
    async def test_periodic_tick_skips_queue(self, coordinator, engine):
        calls = record_order(engine)

        result = await coordinator.periodic_tick()

        assert result.success
        assert calls == ["full_sync"]

    @pytest.mark.asyncio
    async def test_periodic_tick_skipped_offline(self, coordinator, engine, connectivity):
        connectivity.set_online(False)
        calls = record_order(engine)

        assert await coordinator.periodic_tick() is None
        assert calls == []

    @pytest.mark.asyncio
    async def test_periodic_tick_skipped_while_syncing(self, coordinator, engine):
        engine.status.set_state(SyncState.SYNCING)

        with patch.object(engine, "full_sync", AsyncMock()) as full_sync:
            assert await coordinator.periodic_tick() is None
        full_sync.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reconnect_triggers_drain_and_sync(
        self, coordinator, engine, connectivity, remote
    ):
        connectivity.set_online(False)
        await engine.sync_item(Collection.EXERCISES, make_exercise(), USER_ID)
        assert engine.get_queue_count() == 1
        calls = record_order(engine)

        connectivity.set_online(True)
        await asyncio.gather(*coordinator._pending)

        assert calls == ["process_queue", "full_sync"]
        assert engine.get_queue_count() == 0
        assert coordinator.queue_count == 0

    @pytest.mark.asyncio
    async def test_error_tracked(self, coordinator, remote):
        remote.fail("select", network_error())

        result = await coordinator.on_sign_in()

        assert not result.success
        assert coordinator.last_error == "Connection refused"

        remote.clear_failures()
        await coordinator.sync_now()
        assert coordinator.last_error is None


class TestLoop:
    """Tests for the periodic loop lifecycle."""

    @pytest.mark.asyncio
    async def test_start_runs_periodic_sync(self, coordinator, engine):
        with patch.object(coordinator, "periodic_tick", AsyncMock()) as tick:
            await coordinator.start()
            await asyncio.sleep(0.05)
            await coordinator.stop()

        assert tick.await_count >= 1
        assert coordinator._task is None

    @pytest.mark.asyncio
    async def test_stop_waits_for_reconnect_sync(self, coordinator, engine, connectivity):
        started = asyncio.Event()

        async def slow_process_queue(user_id):
            started.set()
            await asyncio.Event().wait()

        engine.process_queue = slow_process_queue
        connectivity.set_online(False)
        connectivity.set_online(True)
        pending = list(coordinator._pending)
        await started.wait()

        await coordinator.stop()

        assert pending
        assert all(task.done() for task in pending)

    @pytest.mark.asyncio
    async def test_loop_survives_tick_errors(self, coordinator):
        with patch.object(
            coordinator, "periodic_tick", AsyncMock(side_effect=RuntimeError("boom"))
        ) as tick:
            await coordinator.start()
            await asyncio.sleep(0.05)
            await coordinator.stop()

        assert tick.await_count >= 2


class TestPendingMessage:
    """Tests for the pending changes display."""

    def test_no_pending(self, coordinator):
        assert coordinator.pending_message() is None

    def test_pending_counts(self, coordinator):
        coordinator.queue_count = 1
        assert coordinator.pending_message() == "1 change pending sync"

        coordinator.queue_count = 3
        assert coordinator.pending_message() == "3 changes pending sync"
