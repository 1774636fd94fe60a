"""Concrete HealthDataStore implementations."""

from __future__ import annotations

import statistics
from datetime import date, datetime, timedelta, tzinfo
from typing import Iterable, Iterator

from basal.domains.health.connectors.apple_health_parser import QuantityRecord
from basal.domains.health.connectors.mock_data import MockDay, get_mock_day
from basal.domains.health.domain_logic.sample_models import (
    Aggregation,
    MetricKind,
    Observation,
    SleepSample,
    WorkoutRecord,
)


class MockHealthDataStore:
    """Uses mock data generators. Always available."""

    def __init__(self, tz: tzinfo) -> None:
        self._tz = tz
        self._days: dict[date, MockDay] = {}

    async def query_statistic(
        self, kind: MetricKind, aggregation: Aggregation, start: datetime, end: datetime
    ) -> float:
        return self._aggregate(kind, aggregation, start, end) or 0.0

    async def query_workout_statistic(
        self, kind: MetricKind, aggregation: Aggregation, start: datetime, end: datetime
    ) -> float | None:
        return self._aggregate(kind, aggregation, start, end)

    async def query_samples(
        self, kind: MetricKind, start: datetime, end: datetime
    ) -> list[Observation]:
        records = sorted(self._quantities(kind, start, end), key=lambda r: r.end, reverse=True)
        return [Observation(r.value, r.end, r.source, r.device_kind) for r in records]

    async def query_sleep_samples(self, start: datetime, end: datetime) -> list[SleepSample]:
        return [
            s for day in self._days_between(start, end)
            for s in day.sleep if start <= s.start < end
        ]

    async def query_workouts(self, start: datetime, end: datetime) -> list[WorkoutRecord]:
        return [
            w for day in self._days_between(start, end)
            for w in day.workouts if start <= w.start < end
        ]

    async def request_authorization(self, read_kinds: Iterable[MetricKind]) -> bool:
        return True

    def is_connected(self) -> bool:
        return False

    @property
    def data_source(self) -> str:
        return "mock"

    def get_provenance(self) -> dict[str, str]:
        return {
            "data_source": self.data_source,
            "data_source_note": (
                "Using simulated health data. "
                "Point APPLE_HEALTH_EXPORT_PATH at an export for real measurements."
            ),
        }

    def _days_between(self, start: datetime, end: datetime) -> Iterator[MockDay]:
        # Nights start the evening before, so look one day either side
        first = start.astimezone(self._tz).date() - timedelta(days=1)
        last = end.astimezone(self._tz).date() + timedelta(days=1)
        current = first
        while current <= last:
            if current not in self._days:
                self._days[current] = get_mock_day(current, self._tz)
            yield self._days[current]
            current += timedelta(days=1)

    def _quantities(self, kind: MetricKind, start: datetime, end: datetime) -> list[QuantityRecord]:
        return [
            r for day in self._days_between(start, end)
            for r in day.quantities.get(kind, []) if start <= r.start < end
        ]

    def _aggregate(
        self, kind: MetricKind, aggregation: Aggregation, start: datetime, end: datetime
    ) -> float | None:
        values = [r.value for r in self._quantities(kind, start, end)]
        if not values:
            return None
        if aggregation is Aggregation.SUM:
            return float(sum(values))
        return float(statistics.mean(values))
