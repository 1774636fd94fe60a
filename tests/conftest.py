"""Shared test fixtures for Basal Health tests."""

from __future__ import annotations

import asyncio
import sys
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable

import pytest

# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HEALTH_SOURCE", "mock")
    monkeypatch.setenv("BASAL_TIMEZONE", "UTC")
    monkeypatch.delenv("APPLE_HEALTH_EXPORT_PATH", raising=False)

# Allow running tests without `pip install -e .` by making `src/` importable.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_SRC_DIR = _PROJECT_ROOT / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from basal.domains.health.connectors import HealthQueryError  # noqa: E402
from basal.domains.health.domain_logic.sample_models import (  # noqa: E402
    Aggregation,
    DeviceKind,
    MetricKind,
    Observation,
    SleepSample,
    WorkoutRecord,
)

UTC = timezone.utc

# "Now" for coordinator tests: midday on 2026-03-10 UTC
NOW = datetime(2026, 3, 10, 12, 0, tzinfo=UTC)
TODAY = NOW.date()

WATCH_BUNDLE = "com.apple.health.0A1B2C3D"


def at(day: date, hour: int, minute: int = 0, second: int = 0) -> datetime:
    """UTC instant on ``day``."""
    return datetime(day.year, day.month, day.day, hour, minute, second, tzinfo=UTC)


def sleep_sample(
    code: int,
    start: datetime,
    minutes: float,
    *,
    source: str = "Apple Watch",
    bundle_id: str | None = WATCH_BUNDLE,
) -> SleepSample:
    return SleepSample(
        code=code,
        start=start,
        end=start + timedelta(minutes=minutes),
        source=source,
        device_kind=DeviceKind.WATCH,
        bundle_id=bundle_id,
    )


# ---------------------------------------------------------------------------
# Recording fake store
# ---------------------------------------------------------------------------

class FakeHealthStore:
    """In-memory HealthDataStore that records every call.

    - ``statistics`` / ``workout_statistics`` hold canned query results.
    - ``failing`` holds ``"<method>:<metric kind>"`` or ``"<method>"`` keys that
      raise HealthQueryError.
    - ``crash_days`` makes ``query_workouts`` raise RuntimeError for those days.
    - ``auth_gate`` blocks ``request_authorization`` until it is set.
    - ``step_gates`` blocks successive STEP_COUNT statistic calls until each
      event is set; the returned value is read before blocking.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, ...]] = []
        self.statistics: dict[MetricKind, float] = {}
        self.workout_statistics: dict[tuple[MetricKind, Aggregation], float] = {}
        self.samples: dict[MetricKind, list[Observation]] = {}
        self.sleep: list[SleepSample] = []
        self.workouts: list[WorkoutRecord] = []
        self.failing: set[str] = set()
        self.crash_days: set[date] = set()
        self.step_gates: list[asyncio.Event] = []
        self.authorized = True
        self.auth_gate: asyncio.Event | None = None

    def _check(self, method: str, kind: MetricKind | None = None) -> None:
        if method in self.failing or (kind is not None and f"{method}:{kind.value}" in self.failing):
            raise HealthQueryError(f"{method} unavailable")

    def count(self, method: str) -> int:
        return sum(1 for call in self.calls if call[0] == method)

    async def query_statistic(self, kind, aggregation, start, end) -> float:
        self.calls.append(("query_statistic", kind.value, start.date().isoformat()))
        self._check("query_statistic", kind)
        value = self.statistics.get(kind, 0.0)
        if kind is MetricKind.STEP_COUNT and self.step_gates:
            gate = self.step_gates.pop(0)
            await gate.wait()
        return value

    async def query_workout_statistic(self, kind, aggregation, start, end):
        self.calls.append(("query_workout_statistic", kind.value, aggregation.value))
        self._check("query_workout_statistic", kind)
        return self.workout_statistics.get((kind, aggregation))

    async def query_samples(self, kind, start, end) -> list[Observation]:
        self.calls.append(("query_samples", kind.value, start.date().isoformat()))
        self._check("query_samples", kind)
        return [s for s in self.samples.get(kind, []) if start <= s.timestamp < end]

    async def query_sleep_samples(self, start, end) -> list[SleepSample]:
        self.calls.append(("query_sleep_samples", start.isoformat(), end.isoformat()))
        self._check("query_sleep_samples")
        return [s for s in self.sleep if start <= s.start < end]

    async def query_workouts(self, start, end) -> list[WorkoutRecord]:
        self.calls.append(("query_workouts", start.date().isoformat()))
        self._check("query_workouts")
        if start.date() in self.crash_days:
            raise RuntimeError("store crashed")
        return [w for w in self.workouts if start <= w.start < end]

    async def request_authorization(self, read_kinds: Iterable[MetricKind]) -> bool:
        self.calls.append(("request_authorization",))
        if self.auth_gate is not None:
            await self.auth_gate.wait()
        return self.authorized

    @property
    def data_source(self) -> str:
        return "fake"


@pytest.fixture
def fake_store() -> FakeHealthStore:
    return FakeHealthStore()


@pytest.fixture
def coordinator(fake_store: FakeHealthStore):
    """A FetchCoordinator over the fake store with the clock pinned to NOW."""
    from basal.domains.health.domain_logic.fetch_coordinator import FetchCoordinator

    return FetchCoordinator(fake_store, tz=UTC, clock=lambda: NOW)
