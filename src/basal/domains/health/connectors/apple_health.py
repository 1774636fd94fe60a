"""Apple Health data store: serves queries from an exported Health data XML.

Users export via iOS Health app → Share → Export Health Data → produces
export.xml. This store parses that XML once and answers HealthDataStore
queries from memory.
"""

from __future__ import annotations

import logging
import statistics
from datetime import datetime
from pathlib import Path
from typing import Iterable

from basal.domains.health.connectors.apple_health_parser import (
    AppleHealthParseError,
    ParsedExport,
    QuantityRecord,
    parse_apple_health_export,
)
from basal.domains.health.domain_logic.sample_models import (
    Aggregation,
    MetricKind,
    Observation,
    SleepSample,
    WorkoutRecord,
)

logger = logging.getLogger(__name__)


def _aggregate(values: list[float], aggregation: Aggregation) -> float:
    if aggregation is Aggregation.SUM:
        return float(sum(values))
    return float(statistics.mean(values))


class AppleHealthStore:
    """HealthDataStore backed by an Apple Health XML export.

    Usage::

        store = AppleHealthStore("/path/to/export.xml")
        if store.is_connected():
            steps = await store.query_statistic(MetricKind.STEP_COUNT, Aggregation.SUM, start, end)
    """

    def __init__(self, export_path: str, period: str = "last_90_days") -> None:
        self._export_path = export_path
        self._period = period
        self._parsed: ParsedExport | None = None
        self._connected = bool(export_path) and Path(export_path).exists()

    async def query_statistic(
        self, kind: MetricKind, aggregation: Aggregation, start: datetime, end: datetime
    ) -> float:
        values = [r.value for r in self._quantities(kind, start, end)]
        return _aggregate(values, aggregation) if values else 0.0

    async def query_workout_statistic(
        self, kind: MetricKind, aggregation: Aggregation, start: datetime, end: datetime
    ) -> float | None:
        values = [r.value for r in self._quantities(kind, start, end)]
        return _aggregate(values, aggregation) if values else None

    async def query_samples(
        self, kind: MetricKind, start: datetime, end: datetime
    ) -> list[Observation]:
        """Samples in the window, most recent end date first."""
        records = sorted(self._quantities(kind, start, end), key=lambda r: r.end, reverse=True)
        return [Observation(r.value, r.end, r.source, r.device_kind) for r in records]

    async def query_sleep_samples(self, start: datetime, end: datetime) -> list[SleepSample]:
        return [s for s in self._parse().sleep if start <= s.start < end]

    async def query_workouts(self, start: datetime, end: datetime) -> list[WorkoutRecord]:
        return [w for w in self._parse().workouts if start <= w.start < end]

    async def request_authorization(self, read_kinds: Iterable[MetricKind]) -> bool:
        """Exports need no authorization; access is granted if the file exists."""
        return self.is_connected()

    def is_connected(self) -> bool:
        """Check if the export file exists and is readable."""
        return self._connected

    @property
    def data_source(self) -> str:
        return "apple_health"

    def get_provenance(self) -> dict[str, str]:
        return {
            "data_source": self.data_source,
            "data_source_note": "Data from Apple Health export.",
            "export_path": self._export_path,
            "period": self._period,
        }

    def _quantities(
        self, kind: MetricKind, start: datetime, end: datetime
    ) -> list[QuantityRecord]:
        records = self._parse().quantities.get(kind, [])
        return [r for r in records if start <= r.start < end]

    def _parse(self) -> ParsedExport:
        """Parse the export on first use and keep the result."""
        if self._parsed is None:
            if not self._connected:
                self._parsed = ParsedExport()
                return self._parsed
            try:
                self._parsed = parse_apple_health_export(self._export_path, self._period)
            except AppleHealthParseError:
                logger.exception("Failed to parse Apple Health export")
                self._parsed = ParsedExport()
        return self._parsed
