"""Tests for derived workout metrics."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from basal.domains.health.connectors import HealthQueryError
from basal.domains.health.domain_logic.sample_models import (
    ELEVATION_ASCENDED_KEY,
    Aggregation,
    MetricKind,
    WorkoutRecord,
)
from basal.domains.health.domain_logic.workout_aggregator import (
    FEET_PER_METER,
    STRIDE_LENGTH_METERS,
    enrich,
)
from basal.domains.health.domain_logic.workout_types import ActivityType
from conftest import TODAY, at


def _run(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _workout(activity: ActivityType, *, seconds: float = 600, distance=None, metadata=None):
    start = at(TODAY, 7)
    return WorkoutRecord(
        id="w-1",
        activity_type=activity,
        start=start,
        end=start + timedelta(seconds=seconds),
        duration_seconds=seconds,
        source="Apple Watch",
        total_distance_meters=distance,
        metadata=metadata or {},
    )


class StatStub:
    """Workout-scoped statistic source with canned values and failures."""

    def __init__(self, values=None, failing=()):
        self.values = values or {}
        self.failing = set(failing)
        self.calls: list[MetricKind] = []

    async def __call__(self, kind: MetricKind, aggregation: Aggregation):
        self.calls.append(kind)
        if kind in self.failing:
            raise HealthQueryError(f"{kind.value} unavailable")
        return self.values.get(kind)


class TestPace:
    def test_run_pace_from_distance(self):
        stats = StatStub()
        result = _run(enrich(_workout(ActivityType.RUNNING, distance=1609.34), stats))
        assert result.average_pace_sec_per_meter == pytest.approx(600 / 1609.34)

    def test_run_without_distance_falls_back_to_speed(self):
        stats = StatStub({MetricKind.RUNNING_SPEED: 3.0})
        result = _run(enrich(_workout(ActivityType.RUNNING), stats))
        assert result.average_pace_sec_per_meter == pytest.approx(1 / 3.0)

    def test_hiking_uses_speed_even_with_distance(self):
        stats = StatStub({MetricKind.RUNNING_SPEED: 1.25})
        result = _run(enrich(_workout(ActivityType.HIKING, distance=5000), stats))
        assert result.average_pace_sec_per_meter == pytest.approx(0.8)

    def test_zero_speed_leaves_pace_unknown(self):
        stats = StatStub({MetricKind.RUNNING_SPEED: 0.0})
        result = _run(enrich(_workout(ActivityType.WALKING, distance=0), stats))
        assert result.average_pace_sec_per_meter is None


class TestElevation:
    def test_metadata_preferred(self):
        stats = StatStub({MetricKind.FLIGHTS_CLIMBED: 5})
        workout = _workout(ActivityType.RUNNING, metadata={ELEVATION_ASCENDED_KEY: 10})
        result = _run(enrich(workout, stats))
        assert result.elevation_gain_feet == pytest.approx(10 * FEET_PER_METER)
        assert MetricKind.FLIGHTS_CLIMBED not in stats.calls

    def test_flights_fallback(self):
        stats = StatStub({MetricKind.FLIGHTS_CLIMBED: 5})
        result = _run(enrich(_workout(ActivityType.HIKING), stats))
        assert result.elevation_gain_feet == pytest.approx(50.0)

    def test_no_source_is_unknown(self):
        result = _run(enrich(_workout(ActivityType.CYCLING), StatStub()))
        assert result.elevation_gain_feet is None


class TestCadence:
    def test_from_running_speed(self):
        stats = StatStub({MetricKind.RUNNING_SPEED: 3.0, MetricKind.STEP_COUNT: 100})
        result = _run(enrich(_workout(ActivityType.RUNNING, distance=1800), stats))
        assert result.average_cadence_spm == pytest.approx(3.0 / STRIDE_LENGTH_METERS * 60)

    def test_steps_fallback(self):
        stats = StatStub({MetricKind.STEP_COUNT: 1500})
        result = _run(enrich(_workout(ActivityType.CYCLING, seconds=600), stats))
        assert result.average_cadence_spm == pytest.approx(150.0)


class TestVisibility:
    def test_strength_gets_power_only(self):
        stats = StatStub({
            MetricKind.BASAL_ENERGY: 42.0,
            MetricKind.RUNNING_SPEED: 3.0,
            MetricKind.FLIGHTS_CLIMBED: 2,
        })
        result = _run(enrich(_workout(ActivityType.TRADITIONAL_STRENGTH_TRAINING), stats))

        assert result.average_power_watts == 42.0
        assert result.average_pace_sec_per_meter is None
        assert result.elevation_gain_feet is None
        assert result.average_cadence_spm is None
        assert MetricKind.RUNNING_SPEED not in stats.calls
        assert MetricKind.FLIGHTS_CLIMBED not in stats.calls

    def test_yoga_reads_heart_rate_and_energy_only(self):
        stats = StatStub({MetricKind.HEART_RATE: 101.0, MetricKind.ACTIVE_ENERGY: 150.0})
        result = _run(enrich(_workout(ActivityType.YOGA), stats))

        assert stats.calls == [MetricKind.HEART_RATE, MetricKind.ACTIVE_ENERGY]
        assert result.average_heart_rate == 101.0
        assert result.active_energy_kcal == 150.0


class TestDegradation:
    def test_failed_query_yields_none(self):
        stats = StatStub({MetricKind.ACTIVE_ENERGY: 300.0}, failing={MetricKind.HEART_RATE})
        result = _run(enrich(_workout(ActivityType.RUNNING, distance=1000), stats))

        assert result.average_heart_rate is None
        assert result.active_energy_kcal == 300.0
        assert result.average_pace_sec_per_meter == pytest.approx(0.6)

    def test_failure_logs_warning(self, caplog):
        stats = StatStub(failing={MetricKind.BASAL_ENERGY})
        with caplog.at_level("WARNING"):
            result = _run(enrich(_workout(ActivityType.CYCLING), stats))
        assert result.average_power_watts is None
        assert "basal_energy" in caplog.text

    def test_source_fields_untouched(self):
        workout = _workout(ActivityType.RUNNING, distance=1000)
        result = _run(enrich(workout, StatStub()))
        assert result.id == workout.id
        assert result.total_distance_meters == 1000
        assert result.start == workout.start


class TestPolicy:
    def test_running_speed_fetched_once(self):
        stats = StatStub({MetricKind.RUNNING_SPEED: 3.0})
        _run(enrich(_workout(ActivityType.RUNNING), stats))
        assert stats.calls.count(MetricKind.RUNNING_SPEED) == 1

    def test_custom_policy_hides_everything(self):
        stats = StatStub({MetricKind.RUNNING_SPEED: 3.0, MetricKind.FLIGHTS_CLIMBED: 4})
        result = _run(enrich(_workout(ActivityType.RUNNING, distance=1000), stats, lambda a, m: False))

        assert stats.calls == [MetricKind.HEART_RATE, MetricKind.ACTIVE_ENERGY]
        assert result.average_pace_sec_per_meter is None
        assert result.average_cadence_spm is None
        assert result.elevation_gain_feet is None
