"""Mock health data generators for development and testing.

Each calendar day gets deterministic synthetic data seeded by the date, so a
day reads the same every time it is fetched. The data represents an ordinary
adult: a 7-8 hour night recorded by a watch, a short nap logged by a
third-party app, hourly heart rate and steps, and a workout on most days.
"""

from __future__ import annotations

import random
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, tzinfo

from basal.domains.health.connectors.apple_health_parser import QuantityRecord
from basal.domains.health.domain_logic.sample_models import (
    ELEVATION_ASCENDED_KEY,
    DeviceKind,
    MetricKind,
    SleepSample,
    WorkoutRecord,
)
from basal.domains.health.domain_logic.workout_types import ActivityType

WATCH_SOURCE = "Apple Watch"
WATCH_BUNDLE_ID = "com.apple.health.7B0E8E52-4C1D-4E0A-9D55-3C2E3A1F9A10"
NAP_SOURCE = "Nap Tracker"
NAP_BUNDLE_ID = "com.example.naptracker"

# Raw sleep-analysis codes (current stage table)
_IN_BED, _AWAKE, _CORE, _DEEP, _REM = 0, 2, 3, 4, 5


@dataclass
class MockDay:
    quantities: dict[MetricKind, list[QuantityRecord]] = field(default_factory=dict)
    sleep: list[SleepSample] = field(default_factory=list)
    workouts: list[WorkoutRecord] = field(default_factory=list)


def _at(day: date, hour: int, minute: int, tz: tzinfo) -> datetime:
    return datetime.combine(day, time(hour, minute), tzinfo=tz)


def _watch_record(value: float, start: datetime, end: datetime | None = None) -> QuantityRecord:
    return QuantityRecord(value, start, end or start, WATCH_SOURCE, DeviceKind.WATCH)


def get_mock_night(day: date, tz: tzinfo, rng: random.Random) -> list[SleepSample]:
    """Staged sleep for the night ending on the morning of ``day``."""
    evening = day - timedelta(days=1)
    bed = _at(evening, 22, 30 + rng.randint(0, 25), tz)
    wake = _at(day, 6, 30 + rng.randint(0, 25), tz)

    samples = [SleepSample(_IN_BED, bed, wake, WATCH_SOURCE, DeviceKind.WATCH, WATCH_BUNDLE_ID)]
    cursor = bed + timedelta(minutes=rng.randint(8, 20))
    cycle = [(_CORE, 25, 45), (_DEEP, 20, 40), (_CORE, 15, 30), (_REM, 15, 30)]
    while cursor < wake - timedelta(minutes=10):
        for code, low, high in cycle:
            end = min(cursor + timedelta(minutes=rng.randint(low, high)), wake)
            samples.append(SleepSample(code, cursor, end, WATCH_SOURCE, DeviceKind.WATCH, WATCH_BUNDLE_ID))
            cursor = end
            if cursor >= wake:
                break
        if cursor < wake and rng.random() < 0.5:
            end = min(cursor + timedelta(minutes=rng.randint(2, 8)), wake)
            samples.append(SleepSample(_AWAKE, cursor, end, WATCH_SOURCE, DeviceKind.WATCH, WATCH_BUNDLE_ID))
            cursor = end

    # Afternoon nap from a third-party app, outside the trusted sources
    nap_start = _at(evening, 14, rng.randint(0, 30), tz)
    samples.append(SleepSample(
        _CORE, nap_start, nap_start + timedelta(minutes=35), NAP_SOURCE, DeviceKind.PHONE, NAP_BUNDLE_ID,
    ))
    return samples


def get_mock_workouts(
    day: date, tz: tzinfo, rng: random.Random
) -> tuple[list[WorkoutRecord], dict[MetricKind, list[QuantityRecord]]]:
    """Zero or one workout for ``day`` plus the samples recorded during it."""
    samples: dict[MetricKind, list[QuantityRecord]] = {
        MetricKind.HEART_RATE: [],
        MetricKind.RUNNING_SPEED: [],
        MetricKind.STEP_COUNT: [],
        MetricKind.BASAL_ENERGY: [],
    }
    ordinal = day.toordinal()
    if ordinal % 3 == 2:
        return [], samples

    if ordinal % 3 == 0:
        activity = ActivityType.RUNNING
        start = _at(day, 7, rng.randint(0, 20), tz)
        minutes = rng.randint(25, 45)
        speed = rng.uniform(2.6, 3.4)
        distance = speed * minutes * 60
        energy = minutes * rng.uniform(10, 13)
        metadata = {ELEVATION_ASCENDED_KEY: round(rng.uniform(5, 60), 1)} if rng.random() < 0.7 else {}
    else:
        activity = ActivityType.TRADITIONAL_STRENGTH_TRAINING
        start = _at(day, 18, rng.randint(0, 30), tz)
        minutes = rng.randint(35, 55)
        speed = 0.0
        distance = None
        energy = minutes * rng.uniform(5, 7)
        metadata = {}

    end = start + timedelta(minutes=minutes)
    for offset in range(0, minutes, 5):
        at = start + timedelta(minutes=offset)
        samples[MetricKind.HEART_RATE].append(_watch_record(rng.uniform(125, 160), at))
        samples[MetricKind.BASAL_ENERGY].append(_watch_record(rng.uniform(6, 9), at))
        if speed:
            samples[MetricKind.RUNNING_SPEED].append(_watch_record(speed + rng.uniform(-0.2, 0.2), at))
            samples[MetricKind.STEP_COUNT].append(_watch_record(speed / 0.85 * 300, at))

    workout = WorkoutRecord(
        id=str(uuid.UUID(int=rng.getrandbits(128))),
        activity_type=activity,
        start=start,
        end=end,
        duration_seconds=minutes * 60.0,
        source=WATCH_SOURCE,
        device_kind=DeviceKind.WATCH,
        total_energy_kcal=round(energy, 1),
        total_distance_meters=round(distance, 1) if distance else None,
        metadata=metadata,
    )
    return [workout], samples


def get_mock_day(day: date, tz: tzinfo) -> MockDay:
    """Return the full synthetic data set for one calendar day."""
    rng = random.Random(day.toordinal())
    quantities: dict[MetricKind, list[QuantityRecord]] = {kind: [] for kind in MetricKind}

    for hour in range(7, 23):
        at = _at(day, hour, rng.randint(0, 59), tz)
        quantities[MetricKind.HEART_RATE].append(_watch_record(rng.uniform(58, 95), at))
        steps_end = at + timedelta(minutes=10)
        quantities[MetricKind.STEP_COUNT].append(
            QuantityRecord(float(rng.randint(150, 1100)), at, steps_end, "iPhone", DeviceKind.PHONE)
        )
        quantities[MetricKind.ACTIVE_ENERGY].append(_watch_record(rng.uniform(8, 40), at))
        quantities[MetricKind.BASAL_ENERGY].append(_watch_record(rng.uniform(60, 75), at))
        if rng.random() < 0.3:
            quantities[MetricKind.FLIGHTS_CLIMBED].append(_watch_record(float(rng.randint(1, 4)), at))

    for hour in (3, 9, 21):
        at = _at(day, hour, rng.randint(0, 59), tz)
        quantities[MetricKind.HRV_SDNN].append(_watch_record(rng.uniform(30, 65), at))
    quantities[MetricKind.RESTING_HEART_RATE].append(
        _watch_record(float(rng.randint(54, 66)), _at(day, 6, 0, tz))
    )

    sleep = get_mock_night(day, tz, rng)
    workouts, workout_samples = get_mock_workouts(day, tz, rng)
    for kind, records in workout_samples.items():
        quantities[kind].extend(records)

    return MockDay(quantities=quantities, sleep=sleep, workouts=workouts)
