"""Converters between local records and remote rows.

Local records: dataclasses with datetime values.
Remote rows: column dicts with ISO-8601 strings and a ``user_id`` column.
"""

from typing import Any, Callable

from ..models import (
    RECORD_TYPES,
    Collection,
    CompletedSet,
    Cycle,
    Exercise,
    MaxRecord,
    PurchaseInfo,
    ScheduledWorkout,
    UserPreferences,
    format_datetime,
    parse_datetime,
)

# ==================== Remote -> Local ====================


def remote_to_local_exercise(remote: dict[str, Any]) -> Exercise:
    return Exercise(
        id=remote["id"],
        name=remote["name"],
        type=remote["type"],
        mode=remote.get("mode") or "standard",
        measurement_type=remote.get("measurement_type") or "reps",
        notes=remote.get("notes") or "",
        custom_parameters=remote.get("custom_parameters") or [],
        default_conditioning_reps=remote.get("default_conditioning_reps"),
        default_conditioning_time=remote.get("default_conditioning_time"),
        weight_enabled=remote.get("weight_enabled"),
        default_weight=remote.get("default_weight"),
        last_cycle_settings=remote.get("last_cycle_settings"),
        created_at=parse_datetime(remote["created_at"]),
        updated_at=parse_datetime(remote["updated_at"]),
    )


def remote_to_local_max_record(remote: dict[str, Any]) -> MaxRecord:
    return MaxRecord(
        id=remote["id"],
        exercise_id=remote["exercise_id"],
        max_reps=remote.get("max_reps"),
        max_time=remote.get("max_time"),
        weight=remote.get("weight"),
        notes=remote.get("notes") or "",
        recorded_at=parse_datetime(remote["recorded_at"]),
    )


def remote_to_local_completed_set(remote: dict[str, Any]) -> CompletedSet:
    return CompletedSet(
        id=remote["id"],
        scheduled_set_id=remote.get("scheduled_set_id"),
        scheduled_workout_id=remote.get("scheduled_workout_id"),
        exercise_id=remote["exercise_id"],
        target_reps=remote["target_reps"],
        actual_reps=remote["actual_reps"],
        weight=remote.get("weight"),
        completed_at=parse_datetime(remote["completed_at"]),
        notes=remote.get("notes") or "",
        parameters=remote.get("parameters") or {},
    )


def remote_to_local_cycle(remote: dict[str, Any]) -> Cycle:
    return Cycle(
        id=remote["id"],
        name=remote["name"],
        cycle_type=remote.get("cycle_type") or "training",
        progression_mode=remote.get("progression_mode") or "rfem",
        previous_cycle_id=remote.get("previous_cycle_id") or None,
        start_date=parse_datetime(remote["start_date"]),
        number_of_weeks=remote["number_of_weeks"],
        workout_days_per_week=remote["workout_days_per_week"],
        weekly_set_goals=remote.get("weekly_set_goals") or {},
        groups=remote.get("groups") or [],
        group_rotation=remote.get("group_rotation") or [],
        rfem_rotation=remote.get("rfem_rotation") or [],
        conditioning_weekly_rep_increment=remote.get(
            "conditioning_weekly_rep_increment", 0
        ),
        conditioning_weekly_time_increment=remote.get(
            "conditioning_weekly_time_increment"
        ),
        include_warmup_sets=remote.get("include_warmup_sets"),
        include_timed_warmups=remote.get("include_timed_warmups"),
        scheduling_mode=remote.get("scheduling_mode"),
        selected_days=remote.get("selected_days"),
        status=remote["status"],
        created_at=parse_datetime(remote["created_at"]),
        updated_at=parse_datetime(remote["updated_at"]),
    )


def remote_to_local_scheduled_workout(remote: dict[str, Any]) -> ScheduledWorkout:
    # Rows written before updated_at existed fall back to completion time.
    updated_at = parse_datetime(remote.get("updated_at")) or parse_datetime(
        remote.get("completed_at")
    )
    workout = ScheduledWorkout(
        id=remote["id"],
        cycle_id=remote["cycle_id"],
        sequence_number=remote.get("sequence_number"),
        week_number=remote["week_number"],
        day_in_week=remote["day_in_week"],
        group_id=remote["group_id"],
        rfem=remote["rfem"],
        scheduled_sets=remote.get("scheduled_sets") or [],
        status=remote["status"],
        completed_at=parse_datetime(remote.get("completed_at")),
        scheduled_date=parse_datetime(remote.get("scheduled_date")),
        skip_reason=remote.get("skip_reason"),
        is_ad_hoc=remote.get("is_ad_hoc"),
        custom_name=remote.get("custom_name"),
    )
    if updated_at is not None:
        workout.updated_at = updated_at
    return workout


def remote_to_local_user_preferences(remote: dict[str, Any]) -> UserPreferences:
    return UserPreferences(
        id=remote["id"],
        app_mode=remote.get("app_mode") or "standard",
        default_max_reps=remote["default_max_reps"],
        default_conditioning_reps=remote["default_conditioning_reps"],
        conditioning_weekly_increment=remote["conditioning_weekly_increment"],
        weekly_set_goals=remote.get("weekly_set_goals") or {},
        rest_timer_enabled=remote["rest_timer_enabled"],
        rest_timer_duration_seconds=remote["rest_timer_duration_seconds"],
        max_test_rest_timer_enabled=remote["max_test_rest_timer_enabled"],
        max_test_rest_timer_duration_seconds=remote[
            "max_test_rest_timer_duration_seconds"
        ],
        timer_volume=(
            remote["timer_volume"] if remote.get("timer_volume") is not None else 40
        ),
        last_scheduling_mode=remote.get("last_scheduling_mode"),
        health_disclaimer_acknowledged_at=remote.get(
            "health_disclaimer_acknowledged_at"
        ),
        created_at=parse_datetime(remote["created_at"]),
        updated_at=parse_datetime(remote["updated_at"]),
    )


def remote_to_local_purchase_info(remote: dict[str, Any]) -> PurchaseInfo:
    return PurchaseInfo(
        tier=remote["tier"],
        type=remote["purchase_type"],
        purchased_at=parse_datetime(remote["purchased_at"]),
        expires_at=parse_datetime(remote.get("expires_at")),
        will_renew=remote.get("will_renew"),
        product_id=remote.get("product_id"),
    )


# ==================== Local -> Remote ====================


def local_to_remote_exercise(local: Exercise, user_id: str) -> dict[str, Any]:
    return {
        "id": local.id,
        "user_id": user_id,
        "name": local.name,
        "type": local.type,
        "mode": local.mode,
        "measurement_type": local.measurement_type or "reps",
        "notes": local.notes,
        "custom_parameters": local.custom_parameters,
        "default_conditioning_reps": local.default_conditioning_reps,
        "default_conditioning_time": local.default_conditioning_time,
        "weight_enabled": bool(local.weight_enabled),
        "default_weight": local.default_weight,
        "last_cycle_settings": local.last_cycle_settings,
        "created_at": format_datetime(local.created_at),
        "updated_at": format_datetime(local.updated_at),
    }


def local_to_remote_max_record(local: MaxRecord, user_id: str) -> dict[str, Any]:
    return {
        "id": local.id,
        "user_id": user_id,
        "exercise_id": local.exercise_id,
        "max_reps": local.max_reps,
        "max_time": local.max_time,
        "weight": local.weight,
        "notes": local.notes,
        "recorded_at": format_datetime(local.recorded_at),
    }


def local_to_remote_completed_set(local: CompletedSet, user_id: str) -> dict[str, Any]:
    return {
        "id": local.id,
        "user_id": user_id,
        "scheduled_set_id": local.scheduled_set_id,
        "scheduled_workout_id": local.scheduled_workout_id,
        "exercise_id": local.exercise_id,
        "target_reps": local.target_reps,
        "actual_reps": local.actual_reps,
        "weight": local.weight,
        "completed_at": format_datetime(local.completed_at),
        "notes": local.notes,
        "parameters": local.parameters,
    }


def local_to_remote_cycle(local: Cycle, user_id: str) -> dict[str, Any]:
    return {
        "id": local.id,
        "user_id": user_id,
        "name": local.name,
        "cycle_type": local.cycle_type,
        "progression_mode": local.progression_mode or "rfem",
        "previous_cycle_id": local.previous_cycle_id,
        "start_date": format_datetime(local.start_date),
        "number_of_weeks": local.number_of_weeks,
        "workout_days_per_week": local.workout_days_per_week,
        "weekly_set_goals": local.weekly_set_goals,
        "groups": local.groups,
        "group_rotation": local.group_rotation,
        "rfem_rotation": local.rfem_rotation,
        "conditioning_weekly_rep_increment": local.conditioning_weekly_rep_increment,
        "conditioning_weekly_time_increment": local.conditioning_weekly_time_increment,
        "include_warmup_sets": bool(local.include_warmup_sets),
        "include_timed_warmups": bool(local.include_timed_warmups),
        "scheduling_mode": local.scheduling_mode,
        "selected_days": local.selected_days,
        "status": local.status,
        "created_at": format_datetime(local.created_at),
        "updated_at": format_datetime(local.updated_at),
    }


def local_to_remote_scheduled_workout(
    local: ScheduledWorkout, user_id: str
) -> dict[str, Any]:
    return {
        "id": local.id,
        "user_id": user_id,
        "cycle_id": local.cycle_id,
        "sequence_number": local.sequence_number,
        "week_number": local.week_number,
        "day_in_week": local.day_in_week,
        "group_id": local.group_id,
        "rfem": local.rfem,
        "scheduled_sets": local.scheduled_sets,
        "status": local.status,
        "completed_at": format_datetime(local.completed_at),
        "scheduled_date": format_datetime(local.scheduled_date),
        "skip_reason": local.skip_reason,
        "is_ad_hoc": bool(local.is_ad_hoc),
        "custom_name": local.custom_name,
        "updated_at": format_datetime(local.updated_at),
    }


def local_to_remote_user_preferences(
    local: UserPreferences, user_id: str
) -> dict[str, Any]:
    return {
        "id": local.id,
        "user_id": user_id,
        "app_mode": local.app_mode or "standard",
        "default_max_reps": local.default_max_reps,
        "default_conditioning_reps": local.default_conditioning_reps,
        "conditioning_weekly_increment": local.conditioning_weekly_increment,
        "weekly_set_goals": local.weekly_set_goals,
        "rest_timer_enabled": local.rest_timer_enabled,
        "rest_timer_duration_seconds": local.rest_timer_duration_seconds,
        "max_test_rest_timer_enabled": local.max_test_rest_timer_enabled,
        "max_test_rest_timer_duration_seconds": local.max_test_rest_timer_duration_seconds,
        "timer_volume": local.timer_volume,
        "last_scheduling_mode": local.last_scheduling_mode,
        "health_disclaimer_acknowledged_at": local.health_disclaimer_acknowledged_at,
        "created_at": format_datetime(local.created_at),
        "updated_at": format_datetime(local.updated_at),
    }


def local_to_remote_entitlement(user_id: str, info: PurchaseInfo) -> dict[str, Any]:
    return {
        "user_id": user_id,
        "tier": info.tier,
        "purchase_type": info.type,
        "purchased_at": format_datetime(info.purchased_at),
        "expires_at": format_datetime(info.expires_at),
        "will_renew": bool(info.will_renew),
        "product_id": info.product_id,
    }


# ==================== Dispatch ====================

_TO_LOCAL: dict[Collection, Callable[[dict[str, Any]], Any]] = {
    Collection.EXERCISES: remote_to_local_exercise,
    Collection.MAX_RECORDS: remote_to_local_max_record,
    Collection.COMPLETED_SETS: remote_to_local_completed_set,
    Collection.CYCLES: remote_to_local_cycle,
    Collection.SCHEDULED_WORKOUTS: remote_to_local_scheduled_workout,
    Collection.USER_PREFERENCES: remote_to_local_user_preferences,
}

_TO_REMOTE: dict[Collection, Callable[[Any, str], dict[str, Any]]] = {
    Collection.EXERCISES: local_to_remote_exercise,
    Collection.MAX_RECORDS: local_to_remote_max_record,
    Collection.COMPLETED_SETS: local_to_remote_completed_set,
    Collection.CYCLES: local_to_remote_cycle,
    Collection.SCHEDULED_WORKOUTS: local_to_remote_scheduled_workout,
    Collection.USER_PREFERENCES: local_to_remote_user_preferences,
}


def to_local(collection: Collection, remote: dict[str, Any]):
    """Convert a remote row of any collection to its local record."""
    return _TO_LOCAL[Collection(collection)](remote)


def to_remote(collection: Collection, local: Any, user_id: str) -> dict[str, Any]:
    """Convert a local record (or its dict form) to a remote row."""
    collection = Collection(collection)
    if isinstance(local, dict):
        local = RECORD_TYPES[collection].from_dict(local)
    return _TO_REMOTE[collection](local, user_id)
