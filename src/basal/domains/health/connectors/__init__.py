"""Health data connectors: abstraction layer over the platform health-data store."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Iterable, Protocol, runtime_checkable

if TYPE_CHECKING:
    from basal.domains.health.domain_logic.sample_models import (
        Aggregation,
        MetricKind,
        Observation,
        SleepSample,
        WorkoutRecord,
    )


class HealthQueryError(Exception):
    """Raised by a store when a single query fails (transport or platform error)."""


@runtime_checkable
class HealthDataStore(Protocol):
    """Read-only interface to typed health samples and statistics.

    The fetch coordinator calls these methods without knowing whether the
    data comes from an on-device store, an export file, or a mock generator.
    Ranges are half-open ``[start, end)`` on the sample start date.
    """

    async def query_statistic(
        self, kind: MetricKind, aggregation: Aggregation, start: datetime, end: datetime
    ) -> float:
        """Sum or average of a metric over a window; 0.0 when there is no data."""
        ...

    async def query_workout_statistic(
        self, kind: MetricKind, aggregation: Aggregation, start: datetime, end: datetime
    ) -> float | None:
        """Sum or average over a workout's extent; None when there are no samples."""
        ...

    async def query_samples(
        self, kind: MetricKind, start: datetime, end: datetime
    ) -> list[Observation]:
        """Individual samples, most recent first."""
        ...

    async def query_sleep_samples(self, start: datetime, end: datetime) -> list[SleepSample]:
        """Sleep-analysis samples with raw stage codes."""
        ...

    async def query_workouts(self, start: datetime, end: datetime) -> list[WorkoutRecord]:
        """Workouts without derived metrics."""
        ...

    async def request_authorization(self, read_kinds: Iterable[MetricKind]) -> bool:
        """Ask for read access. Idempotent; False when access was refused."""
        ...

    @property
    def data_source(self) -> str:
        """Label for the store: 'apple_health' or 'mock'."""
        ...
