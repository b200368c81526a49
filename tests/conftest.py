"""Shared fixtures: in-memory local store and a fake remote store."""

import copy
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from ascend_sync.models import (
    Collection,
    CompletedSet,
    Cycle,
    Exercise,
    MaxRecord,
    ScheduledWorkout,
    format_datetime,
)
from ascend_sync.remote import NetworkError, RemoteValidationError
from ascend_sync.storage import LocalStore
from ascend_sync.sync import Connectivity, RetryQueue, SyncEngine
from ascend_sync.sync.transformers import to_remote

USER_ID = "user-1"
T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable clock for time-dependent logic."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeRemoteStore:
    """In-memory stand-in for RemoteStore.

    Tables are dicts of rows keyed by the conflict column. Failures are
    injected per operation name ("select", "upsert", ...) or per table.
    """

    def __init__(self, configured: bool = True):
        self.configured = configured
        self.tables: dict[str, dict[str, dict[str, Any]]] = {}
        self.calls: list[tuple[str, str]] = []
        self._failures: dict[tuple[str, str | None], Exception] = {}

    @property
    def is_configured(self) -> bool:
        return self.configured

    def fail(self, operation: str, error: Exception, table: str | None = None) -> None:
        self._failures[(operation, table)] = error

    def clear_failures(self) -> None:
        self._failures.clear()

    def _check(self, operation: str, table: str) -> None:
        self.calls.append((operation, table))
        error = self._failures.get((operation, table)) or self._failures.get(
            (operation, None)
        )
        if error is not None:
            raise error

    def rows(self, table: str) -> list[dict[str, Any]]:
        return list(self.tables.get(table, {}).values())

    def put_row(self, table: str, row: dict[str, Any], key: str = "id") -> None:
        self.tables.setdefault(table, {})[row[key]] = copy.deepcopy(row)

    async def select(self, table, user_id, deleted=None, columns="*"):
        self._check("select", table)
        result = []
        for row in self.rows(table):
            if row.get("user_id") != user_id:
                continue
            if deleted is False and row.get("deleted_at") is not None:
                continue
            if deleted is True and row.get("deleted_at") is None:
                continue
            if columns == "id":
                result.append({"id": row["id"]})
            else:
                result.append(copy.deepcopy(row))
        return result

    async def select_one(self, table, **filters):
        self._check("select_one", table)
        for row in self.rows(table):
            if all(row.get(k) == v for k, v in filters.items()):
                return copy.deepcopy(row)
        return None

    async def upsert(self, table, rows, on_conflict="id"):
        self._check("upsert", table)
        if isinstance(rows, dict):
            rows = [rows]
        for row in rows:
            existing = self.tables.get(table, {}).get(row[on_conflict], {})
            merged = {**existing, **copy.deepcopy(row)}
            self.tables.setdefault(table, {})[row[on_conflict]] = merged

    async def update(self, table, values, **filters):
        self._check("update", table)
        updated = []
        for row in self.rows(table):
            if all(row.get(k) == v for k, v in filters.items()):
                row.update(values)
                updated.append(row["id"])
        return updated

    async def delete(self, table, **filters):
        self._check("delete", table)
        for key, row in list(self.tables.get(table, {}).items()):
            if all(row.get(k) == v for k, v in filters.items()):
                del self.tables[table][key]


def network_error() -> NetworkError:
    return NetworkError("Connection refused")


def validation_error() -> RemoteValidationError:
    return RemoteValidationError(
        "violates foreign key constraint", status_code=409, code="23503"
    )


# ==================== Record factories ====================


def make_exercise(id="ex-1", name="Pull-ups", updated_at=T0, **kwargs) -> Exercise:
    return Exercise(
        id=id,
        name=name,
        type=kwargs.pop("type", "pull"),
        created_at=kwargs.pop("created_at", T0 - timedelta(days=30)),
        updated_at=updated_at,
        **kwargs,
    )


def make_max_record(id="mr-1", exercise_id="ex-1", max_reps=10, **kwargs) -> MaxRecord:
    return MaxRecord(
        id=id,
        exercise_id=exercise_id,
        max_reps=max_reps,
        recorded_at=kwargs.pop("recorded_at", T0),
        **kwargs,
    )


def make_completed_set(id="cs-1", actual_reps=8, **kwargs) -> CompletedSet:
    return CompletedSet(
        id=id,
        exercise_id=kwargs.pop("exercise_id", "ex-1"),
        target_reps=kwargs.pop("target_reps", 8),
        actual_reps=actual_reps,
        completed_at=kwargs.pop("completed_at", T0),
        **kwargs,
    )


def make_cycle(id="cy-1", updated_at=T0, **kwargs) -> Cycle:
    return Cycle(
        id=id,
        name=kwargs.pop("name", "Cycle 1"),
        start_date=kwargs.pop("start_date", T0),
        number_of_weeks=kwargs.pop("number_of_weeks", 4),
        workout_days_per_week=kwargs.pop("workout_days_per_week", 3),
        created_at=kwargs.pop("created_at", T0 - timedelta(days=1)),
        updated_at=updated_at,
        **kwargs,
    )


def make_workout(
    id="sw-1", cycle_id="cy-1", sequence_number=1, warmups=False, updated_at=T0, **kwargs
) -> ScheduledWorkout:
    sets = [{"id": f"{id}-set-1", "exerciseId": "ex-1", "isWarmup": False}]
    if warmups:
        sets.insert(0, {"id": f"{id}-warm-1", "exerciseId": "ex-1", "isWarmup": True})
    return ScheduledWorkout(
        id=id,
        cycle_id=cycle_id,
        sequence_number=sequence_number,
        week_number=kwargs.pop("week_number", 1),
        day_in_week=kwargs.pop("day_in_week", 1),
        group_id=kwargs.pop("group_id", "A"),
        rfem=kwargs.pop("rfem", 3),
        scheduled_sets=sets,
        updated_at=updated_at,
        **kwargs,
    )


def remote_row(collection: Collection, record, user_id: str = USER_ID, deleted_at=None):
    """Remote row for a local record, optionally tombstoned."""
    row = to_remote(collection, record, user_id)
    row["deleted_at"] = format_datetime(deleted_at)
    return row


# ==================== Fixtures ====================


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    """Create an in-memory LocalStore for testing."""
    store = LocalStore(":memory:")
    store.connect()
    yield store
    store.close()


@pytest.fixture
def remote():
    return FakeRemoteStore()


@pytest.fixture
def connectivity():
    return Connectivity(online=True)


@pytest.fixture
def queue(store, remote, connectivity, clock):
    return RetryQueue(store, remote, connectivity, clock=clock)


@pytest.fixture
def engine(store, remote, queue, connectivity, clock):
    engine = SyncEngine(store, remote, queue, connectivity, clock=clock)
    yield engine
    engine.close()
