"""Local record types for the synced collections and the purchase entitlement.

Local records use snake_case attributes and timezone-aware datetimes. Each
record serializes to a JSON-compatible dict for storage in the local SQLite
database; the remote row shape lives in ``sync.transformers``.
"""

import uuid
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def generate_id() -> str:
    """Generate a client-side record id."""
    return str(uuid.uuid4())


def parse_datetime(value: Any) -> datetime | None:
    """Parse an ISO-8601 string (or pass through a datetime).

    Naive values are assumed to be UTC. Returns None for None/empty input.

    Raises:
        ValueError: If the string is not a valid ISO-8601 timestamp.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_datetime(value: datetime | None) -> str | None:
    """Format a datetime as ISO-8601, passing None through."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


class Collection(str, Enum):
    """Synced collections, named after their remote tables."""

    EXERCISES = "exercises"
    MAX_RECORDS = "max_records"
    COMPLETED_SETS = "completed_sets"
    CYCLES = "cycles"
    SCHEDULED_WORKOUTS = "scheduled_workouts"
    USER_PREFERENCES = "user_preferences"

    @property
    def is_append_only(self) -> bool:
        """Append-only collections are never overwritten by a pull."""
        return self in (Collection.MAX_RECORDS, Collection.COMPLETED_SETS)


# Collections that hold many rows per user and support soft deletion.
MULTI_ROW_COLLECTIONS: tuple[Collection, ...] = (
    Collection.EXERCISES,
    Collection.MAX_RECORDS,
    Collection.COMPLETED_SETS,
    Collection.CYCLES,
    Collection.SCHEDULED_WORKOUTS,
)


class PurchaseTier(str, Enum):
    NONE = "none"
    STANDARD = "standard"
    ADVANCED = "advanced"


class PurchaseType(str, Enum):
    LIFETIME = "lifetime"
    SUBSCRIPTION = "subscription"


class Record:
    """Mixin giving dataclass records dict (de)serialization."""

    datetime_fields: ClassVar[tuple[str, ...]] = ()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        data: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name in self.datetime_fields:
                value = format_datetime(value)
            data[f.name] = value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]):
        """Create from dictionary, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in data.items():
            if key not in known:
                continue
            if key in cls.datetime_fields:
                value = parse_datetime(value)
            kwargs[key] = value
        return cls(**kwargs)


@dataclass
class Exercise(Record):
    """An exercise definition."""

    datetime_fields: ClassVar[tuple[str, ...]] = ("created_at", "updated_at")

    id: str
    name: str
    type: str  # push, pull, legs, core, balance, mobility, other
    mode: str = "standard"  # standard or conditioning
    measurement_type: str = "reps"  # reps or time
    notes: str = ""
    custom_parameters: list[dict[str, Any]] = field(default_factory=list)
    default_conditioning_reps: int | None = None
    default_conditioning_time: int | None = None
    weight_enabled: bool | None = None
    default_weight: float | None = None
    last_cycle_settings: dict[str, Any] | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class MaxRecord(Record):
    """A personal record for an exercise. Immutable once created."""

    datetime_fields: ClassVar[tuple[str, ...]] = ("recorded_at",)

    id: str
    exercise_id: str
    max_reps: int | None = None
    max_time: int | None = None
    weight: float | None = None
    notes: str = ""
    recorded_at: datetime = field(default_factory=utcnow)


@dataclass
class CompletedSet(Record):
    """A logged set. Immutable once created."""

    datetime_fields: ClassVar[tuple[str, ...]] = ("completed_at",)

    id: str
    exercise_id: str
    target_reps: int
    actual_reps: int
    scheduled_set_id: str | None = None
    scheduled_workout_id: str | None = None
    weight: float | None = None
    notes: str = ""
    parameters: dict[str, Any] = field(default_factory=dict)
    completed_at: datetime = field(default_factory=utcnow)


@dataclass
class Cycle(Record):
    """A training cycle."""

    datetime_fields: ClassVar[tuple[str, ...]] = (
        "start_date",
        "created_at",
        "updated_at",
    )

    id: str
    name: str
    start_date: datetime
    number_of_weeks: int
    workout_days_per_week: int
    cycle_type: str = "training"
    progression_mode: str = "rfem"
    previous_cycle_id: str | None = None
    weekly_set_goals: dict[str, int] = field(default_factory=dict)
    groups: list[dict[str, Any]] = field(default_factory=list)
    group_rotation: list[str] = field(default_factory=list)
    rfem_rotation: list[int] = field(default_factory=list)
    conditioning_weekly_rep_increment: int = 0
    conditioning_weekly_time_increment: int | None = None
    include_warmup_sets: bool | None = None
    include_timed_warmups: bool | None = None
    scheduling_mode: str | None = None  # sequence or date
    selected_days: list[int] | None = None
    status: str = "planning"  # planning, active, completed
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class ScheduledWorkout(Record):
    """A workout slot generated from a cycle, or an ad-hoc workout."""

    datetime_fields: ClassVar[tuple[str, ...]] = (
        "completed_at",
        "scheduled_date",
        "updated_at",
    )

    id: str
    cycle_id: str
    sequence_number: int | None
    week_number: int
    day_in_week: int
    group_id: str
    rfem: int
    scheduled_sets: list[dict[str, Any]] = field(default_factory=list)
    status: str = "pending"  # pending, completed, partial, skipped
    completed_at: datetime | None = None
    scheduled_date: datetime | None = None
    skip_reason: str | None = None
    is_ad_hoc: bool | None = None
    custom_name: str | None = None
    updated_at: datetime = field(default_factory=utcnow)

    def has_warmups(self) -> bool:
        return any(s.get("isWarmup") for s in self.scheduled_sets or [])


DEFAULT_WEEKLY_SET_GOALS = {
    "push": 10,
    "pull": 10,
    "legs": 10,
    "core": 10,
    "balance": 10,
    "mobility": 10,
    "other": 10,
}


@dataclass
class UserPreferences(Record):
    """Training preferences shared across devices. One record per user."""

    datetime_fields: ClassVar[tuple[str, ...]] = ("created_at", "updated_at")

    id: str
    app_mode: str = "advanced"
    default_max_reps: int = 10
    default_conditioning_reps: int = 30
    conditioning_weekly_increment: int = 10
    weekly_set_goals: dict[str, int] = field(
        default_factory=lambda: dict(DEFAULT_WEEKLY_SET_GOALS)
    )
    rest_timer_enabled: bool = False
    rest_timer_duration_seconds: int = 180
    max_test_rest_timer_enabled: bool = False
    max_test_rest_timer_duration_seconds: int = 300
    timer_volume: int = 100
    last_scheduling_mode: str | None = None
    health_disclaimer_acknowledged_at: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class PurchaseInfo(Record):
    """Purchase entitlement for a single tier."""

    datetime_fields: ClassVar[tuple[str, ...]] = ("purchased_at", "expires_at")

    tier: str
    type: str  # lifetime or subscription
    purchased_at: datetime
    expires_at: datetime | None = None
    will_renew: bool | None = None
    product_id: str | None = None


RECORD_TYPES: dict[Collection, type] = {
    Collection.EXERCISES: Exercise,
    Collection.MAX_RECORDS: MaxRecord,
    Collection.COMPLETED_SETS: CompletedSet,
    Collection.CYCLES: Cycle,
    Collection.SCHEDULED_WORKOUTS: ScheduledWorkout,
    Collection.USER_PREFERENCES: UserPreferences,
}
