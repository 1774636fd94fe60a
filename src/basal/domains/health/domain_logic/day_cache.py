"""In-memory per-day cache and fetched-day ledger."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, tzinfo

from basal.domains.health.domain_logic.sample_models import (
    HealthMetric,
    Observation,
    SleepSummary,
    WorkoutRecord,
)


def day_key(value: date | datetime, tz: tzinfo) -> datetime:
    """Normalize a date or instant to local midnight of its calendar day."""
    if isinstance(value, datetime):
        value = value.astimezone(tz).date() if value.tzinfo else value.date()
    return datetime.combine(value, time.min, tzinfo=tz)


def day_window(day: date | datetime, tz: tzinfo) -> tuple[datetime, datetime]:
    """``[midnight, next midnight)`` of a local calendar day.

    Built from wall-clock midnights, so DST transition days are 23 or 25 hours.
    """
    start = day_key(day, tz)
    end = datetime.combine(start.date() + timedelta(days=1), time.min, tzinfo=tz)
    return start, end


@dataclass(frozen=True)
class RawSamples:
    """Time-series samples for one day, most recent first."""

    heart_rate: tuple[Observation, ...] = ()
    steps: tuple[Observation, ...] = ()
    hrv: tuple[Observation, ...] = ()


@dataclass(frozen=True)
class DayCacheEntry:
    day: datetime
    metrics: dict[HealthMetric, float] = field(default_factory=dict, hash=False)
    sleep: SleepSummary = field(default_factory=SleepSummary)
    workouts: tuple[WorkoutRecord, ...] = ()
    samples: RawSamples = field(default_factory=RawSamples)

    @classmethod
    def empty(cls, day: datetime) -> DayCacheEntry:
        return cls(
            day=day,
            metrics={metric: 0.0 for metric in HealthMetric},
            sleep=SleepSummary.empty(day.date()),
        )

    def metric(self, metric: HealthMetric) -> float:
        return self.metrics.get(metric, 0.0)

    @property
    def latest_heart_rate(self) -> float | None:
        return self.samples.heart_rate[0].value if self.samples.heart_rate else None

    @property
    def latest_hrv(self) -> float | None:
        return self.samples.hrv[0].value if self.samples.hrv else None

    @property
    def has_data(self) -> bool:
        return (
            any(v for v in self.metrics.values())
            or self.sleep.has_sleep_data
            or bool(self.workouts)
        )


class DayCache:
    """Per-day entries plus the ledger of days that completed a fetch.

    Entries live for the lifetime of the process. ``put`` replaces a day's
    entry wholesale; nothing is merged field by field.
    """

    def __init__(self, tz: tzinfo) -> None:
        self._tz = tz
        self._entries: dict[datetime, DayCacheEntry] = {}
        self._ledger: set[datetime] = set()

    @property
    def tz(self) -> tzinfo:
        return self._tz

    def key(self, day: date | datetime) -> datetime:
        return day_key(day, self._tz)

    def get(self, day: date | datetime) -> DayCacheEntry | None:
        return self._entries.get(self.key(day))

    def put(self, day: date | datetime, entry: DayCacheEntry) -> None:
        self._entries[self.key(day)] = entry

    def has(self, day: date | datetime) -> bool:
        """Whether the day completed at least one fetch."""
        return self.key(day) in self._ledger

    def mark_fetched(self, day: date | datetime) -> None:
        self._ledger.add(self.key(day))

    def fetched_days(self) -> list[datetime]:
        return sorted(self._ledger)

    def __contains__(self, day: object) -> bool:
        if not isinstance(day, (date, datetime)):
            return False
        return self.key(day) in self._entries

    def __len__(self) -> int:
        return len(self._entries)
