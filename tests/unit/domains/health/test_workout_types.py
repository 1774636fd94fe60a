"""Tests for activity types, metric visibility and workout grouping."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from basal.domains.health.domain_logic.sample_models import WorkoutRecord
from basal.domains.health.domain_logic.workout_types import (
    ActivityType,
    WorkoutMetric,
    group_by_day,
    should_show_metric,
    visible_metrics,
    workouts_in_month,
    workouts_on,
)


def _workout(start: datetime, activity: ActivityType = ActivityType.RUNNING) -> WorkoutRecord:
    return WorkoutRecord(
        id=start.isoformat(),
        activity_type=activity,
        start=start,
        end=start + timedelta(minutes=30),
        duration_seconds=1800,
        source="Apple Watch",
    )


class TestActivityType:
    def test_from_export_prefix(self):
        assert ActivityType.from_export("HKWorkoutActivityTypeRunning") is ActivityType.RUNNING

    def test_from_bare_name(self):
        assert ActivityType.from_export("Yoga") is ActivityType.YOGA

    def test_unknown_maps_to_other(self):
        assert ActivityType.from_export("HKWorkoutActivityTypeUnderwaterHockey") is ActivityType.OTHER

    def test_full_platform_set(self):
        assert len(ActivityType) >= 80


class TestMetricVisibility:
    @pytest.mark.parametrize("activity", [ActivityType.RUNNING, ActivityType.WALKING, ActivityType.HIKING])
    def test_pace_for_foot_activities(self, activity):
        assert should_show_metric(activity, WorkoutMetric.PACE)

    def test_no_pace_for_cycling(self):
        assert not should_show_metric(ActivityType.CYCLING, WorkoutMetric.PACE)

    def test_power_for_strength(self):
        assert should_show_metric(ActivityType.TRADITIONAL_STRENGTH_TRAINING, WorkoutMetric.POWER)
        assert should_show_metric(ActivityType.FUNCTIONAL_STRENGTH_TRAINING, WorkoutMetric.POWER)
        assert not should_show_metric(ActivityType.RUNNING, WorkoutMetric.POWER)

    def test_cadence(self):
        assert should_show_metric(ActivityType.CYCLING, WorkoutMetric.CADENCE)
        assert not should_show_metric(ActivityType.SWIMMING, WorkoutMetric.CADENCE)

    def test_distance_for_swimming_not_elevation(self):
        assert should_show_metric(ActivityType.SWIMMING, WorkoutMetric.DISTANCE)
        assert not should_show_metric(ActivityType.SWIMMING, WorkoutMetric.ELEVATION_GAIN)

    def test_universal_metrics_always_shown(self):
        for activity in ActivityType:
            for metric in (WorkoutMetric.HEART_RATE, WorkoutMetric.WORKOUT_TIME, WorkoutMetric.TOTAL_CALORIES):
                assert should_show_metric(activity, metric)

    def test_visible_metrics_for_yoga(self):
        metrics = visible_metrics(ActivityType.YOGA)
        assert WorkoutMetric.HEART_RATE in metrics
        assert WorkoutMetric.DISTANCE not in metrics
        assert WorkoutMetric.PACE not in metrics


class TestGrouping:
    def test_group_by_local_day(self):
        tz = timezone(timedelta(hours=-5))
        # 02:00 UTC on the 3rd is 21:00 on the 2nd at UTC-5
        late = _workout(datetime(2026, 3, 3, 2, 0, tzinfo=timezone.utc))
        morning = _workout(datetime(2026, 3, 3, 14, 0, tzinfo=timezone.utc))

        grouped = group_by_day([late, morning], tz)
        assert grouped[date(2026, 3, 2)] == [late]
        assert grouped[date(2026, 3, 3)] == [morning]

    def test_workouts_on(self):
        first = _workout(datetime(2026, 3, 2, 7, 0, tzinfo=timezone.utc))
        second = _workout(datetime(2026, 3, 3, 7, 0, tzinfo=timezone.utc))
        assert workouts_on([first, second], date(2026, 3, 3), timezone.utc) == [second]

    def test_workouts_in_month(self):
        feb = _workout(datetime(2026, 2, 28, 7, 0, tzinfo=timezone.utc))
        mar = _workout(datetime(2026, 3, 1, 7, 0, tzinfo=timezone.utc))
        assert workouts_in_month([feb, mar], 2026, 3, timezone.utc) == [mar]
