"""Derived workout metrics.

Fills in heart rate, energy, elevation, pace, power and cadence for a workout
from statistics scoped to the workout's extent. Every derived value is an
estimate built from a fixed fallback chain:

- elevation: metadata elevation ascended (m -> ft), else flights climbed x 10 ft
- pace: duration / distance for runs and walks, else 1 / average running speed
- power: sum of basal energy over the workout (a proxy, not a power sensor)
- cadence: running speed / stride length, else step count / duration
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Awaitable, Callable

from basal.domains.health.connectors import HealthQueryError
from basal.domains.health.domain_logic.sample_models import (
    ELEVATION_ASCENDED_KEY,
    Aggregation,
    MetricKind,
    WorkoutRecord,
)
from basal.domains.health.domain_logic.workout_types import (
    ActivityType,
    WorkoutMetric,
    should_show_metric,
)

logger = logging.getLogger(__name__)

FEET_PER_METER = 3.28084
FEET_PER_FLIGHT = 10.0
STRIDE_LENGTH_METERS = 0.85

# Activities whose pace can be taken straight from duration / distance
_DISTANCE_PACE_TYPES = frozenset({ActivityType.RUNNING, ActivityType.WALKING})

FetchStat = Callable[[MetricKind, Aggregation], Awaitable["float | None"]]
VisibilityPolicy = Callable[[ActivityType, WorkoutMetric], bool]


class _ScopedStats:
    """Wraps a workout-scoped ``fetch_stat`` with error containment and memoization."""

    def __init__(self, workout: WorkoutRecord, fetch_stat: FetchStat) -> None:
        self._workout = workout
        self._fetch_stat = fetch_stat
        self._memo: dict[tuple[MetricKind, Aggregation], float | None] = {}

    async def get(self, kind: MetricKind, aggregation: Aggregation) -> float | None:
        key = (kind, aggregation)
        if key not in self._memo:
            try:
                self._memo[key] = await self._fetch_stat(kind, aggregation)
            except HealthQueryError as exc:
                logger.warning(
                    "Workout %s: %s %s query failed: %s",
                    self._workout.id, kind.value, aggregation.value, exc,
                )
                self._memo[key] = None
        return self._memo[key]


def _elevation_from_metadata(workout: WorkoutRecord) -> float | None:
    raw = workout.metadata.get(ELEVATION_ASCENDED_KEY)
    if raw is None:
        return None
    try:
        return float(raw) * FEET_PER_METER
    except (TypeError, ValueError):
        return None


async def enrich(
    workout: WorkoutRecord,
    fetch_stat: FetchStat,
    policy: VisibilityPolicy = should_show_metric,
) -> WorkoutRecord:
    """Return a copy of ``workout`` with its derived metrics filled in.

    Args:
        workout: Workout as read from the store.
        fetch_stat: Coroutine returning the sum or average of a metric over the
            workout's extent, or ``None`` when there are no samples.
        policy: Decides which metrics are shown for an activity type.

    Metrics hidden for the workout's activity type are not queried.
    """
    stats = _ScopedStats(workout, fetch_stat)
    activity = workout.activity_type
    updates: dict[str, float | None] = {}

    updates["average_heart_rate"] = await stats.get(MetricKind.HEART_RATE, Aggregation.AVERAGE)
    updates["active_energy_kcal"] = await stats.get(MetricKind.ACTIVE_ENERGY, Aggregation.SUM)

    if policy(activity, WorkoutMetric.ELEVATION_GAIN):
        elevation = _elevation_from_metadata(workout)
        if elevation is None:
            flights = await stats.get(MetricKind.FLIGHTS_CLIMBED, Aggregation.SUM)
            if flights is not None:
                elevation = flights * FEET_PER_FLIGHT
        updates["elevation_gain_feet"] = elevation

    if policy(activity, WorkoutMetric.PACE):
        pace = None
        distance = workout.total_distance_meters
        if activity in _DISTANCE_PACE_TYPES and distance is not None and distance > 0:
            pace = workout.duration_seconds / distance
        else:
            speed = await stats.get(MetricKind.RUNNING_SPEED, Aggregation.AVERAGE)
            if speed is not None and speed > 0:
                pace = 1.0 / speed
        updates["average_pace_sec_per_meter"] = pace

    if policy(activity, WorkoutMetric.POWER):
        updates["average_power_watts"] = await stats.get(MetricKind.BASAL_ENERGY, Aggregation.SUM)

    if policy(activity, WorkoutMetric.CADENCE):
        cadence = None
        speed = await stats.get(MetricKind.RUNNING_SPEED, Aggregation.AVERAGE)
        if speed is not None and speed > 0:
            cadence = speed / STRIDE_LENGTH_METERS * 60
        elif workout.duration_seconds > 0:
            steps = await stats.get(MetricKind.STEP_COUNT, Aggregation.SUM)
            if steps is not None:
                cadence = steps / workout.duration_seconds * 60
        updates["average_cadence_spm"] = cadence

    return dataclasses.replace(workout, **updates)
