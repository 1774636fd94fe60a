"""Sample and record models shared by the sleep, workout and day-cache logic.

Everything here is a plain container. Stores build these from platform data,
the segmenter and aggregator derive new ones, and the coordinator caches them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Mapping

from basal.domains.health.domain_logic.workout_types import ActivityType


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class DeviceKind(str, Enum):
    """Hardware that recorded a sample."""

    WATCH = "watch"
    PHONE = "phone"
    OTHER = "other"


class MetricKind(str, Enum):
    """Quantity types the core asks the health-data store for."""

    STEP_COUNT = "step_count"
    HEART_RATE = "heart_rate"
    ACTIVE_ENERGY = "active_energy"
    BASAL_ENERGY = "basal_energy"
    RESTING_HEART_RATE = "resting_heart_rate"
    HRV_SDNN = "hrv_sdnn"
    FLIGHTS_CLIMBED = "flights_climbed"
    RUNNING_SPEED = "running_speed"


class Aggregation(str, Enum):
    SUM = "sum"
    AVERAGE = "average"


class HealthMetric(Enum):
    """Whole-day dashboard metrics.

    Each member carries the quantity it reads, how it is aggregated over the
    day, and its display unit and label.
    """

    STEPS = ("steps", MetricKind.STEP_COUNT, Aggregation.SUM, "count", "Steps")
    HEART_RATE = ("heart_rate", MetricKind.HEART_RATE, Aggregation.AVERAGE, "bpm", "Heart Rate")
    ACTIVE_ENERGY = ("active_energy", MetricKind.ACTIVE_ENERGY, Aggregation.SUM, "kcal", "Active Energy")
    RESTING_HEART_RATE = (
        "resting_heart_rate", MetricKind.RESTING_HEART_RATE, Aggregation.AVERAGE, "bpm", "Resting Heart Rate",
    )
    HEART_RATE_VARIABILITY = (
        "heart_rate_variability", MetricKind.HRV_SDNN, Aggregation.AVERAGE, "ms", "Heart Rate Variability",
    )

    def __init__(
        self, key: str, kind: MetricKind, aggregation: Aggregation, unit: str, label: str
    ) -> None:
        self.key = key
        self.kind = kind
        self.aggregation = aggregation
        self.unit = unit
        self.label = label


class SleepStage(str, Enum):
    """Sleep-analysis stages. Values are the display labels."""

    IN_BED = "In Bed"
    AWAKE = "Awake"
    UNSPECIFIED = "Asleep"
    REM = "REM"
    CORE = "Core"
    DEEP = "Deep"


# Raw sleep-analysis codes -> stages. Platforms that only report in-bed /
# asleep / awake use the legacy table; newer ones report all six stages.
CURRENT_STAGE_CODES: Mapping[int, SleepStage] = {
    0: SleepStage.IN_BED,
    1: SleepStage.UNSPECIFIED,
    2: SleepStage.AWAKE,
    3: SleepStage.CORE,
    4: SleepStage.DEEP,
    5: SleepStage.REM,
}

LEGACY_STAGE_CODES: Mapping[int, SleepStage] = {
    0: SleepStage.IN_BED,
    1: SleepStage.UNSPECIFIED,
    2: SleepStage.AWAKE,
}

STAGE_CODE_TABLES: dict[str, Mapping[int, SleepStage]] = {
    "current": CURRENT_STAGE_CODES,
    "legacy": LEGACY_STAGE_CODES,
}

# Stages that count toward total sleep time
ASLEEP_STAGES = frozenset({SleepStage.REM, SleepStage.CORE, SleepStage.DEEP})

# Stages exposed as summary buckets, in display order
EXPOSED_STAGES = (SleepStage.AWAKE, SleepStage.REM, SleepStage.CORE, SleepStage.DEEP)


# ---------------------------------------------------------------------------
# Samples
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Observation:
    """A single quantity sample. ``timestamp`` is the sample's end date."""

    value: float
    timestamp: datetime
    source: str
    device_kind: DeviceKind = DeviceKind.OTHER


@dataclass(frozen=True)
class SleepSample:
    """A sleep-analysis sample carrying the platform's raw stage code."""

    code: int
    start: datetime
    end: datetime
    source: str
    device_kind: DeviceKind = DeviceKind.OTHER
    bundle_id: str | None = None


# ---------------------------------------------------------------------------
# Sleep results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SleepInterval:
    stage: SleepStage
    start: datetime
    end: datetime
    duration_seconds: int
    source: str
    device_kind: DeviceKind = DeviceKind.OTHER

    @classmethod
    def from_bounds(
        cls,
        stage: SleepStage,
        start: datetime,
        end: datetime,
        source: str,
        device_kind: DeviceKind = DeviceKind.OTHER,
    ) -> SleepInterval:
        """Build an interval, clamping inverted bounds to zero duration."""
        duration = max(0, int((end - start).total_seconds()))
        return cls(stage, start, end, duration, source, device_kind)

    @property
    def duration_minutes(self) -> int:
        return self.duration_seconds // 60


@dataclass(frozen=True)
class SleepSession:
    intervals: tuple[SleepInterval, ...]

    @property
    def total_duration(self) -> int:
        return sum(i.duration_seconds for i in self.intervals)

    @property
    def start(self) -> datetime | None:
        return min((i.start for i in self.intervals), default=None)

    @property
    def end(self) -> datetime | None:
        return max((i.end for i in self.intervals), default=None)


@dataclass(frozen=True)
class StageTotal:
    stage: SleepStage
    count: int
    duration_seconds: int


@dataclass(frozen=True)
class SleepSummary:
    """One night of sleep: stage buckets plus the session window."""

    date: date | None = None
    window_start: datetime | None = None
    window_end: datetime | None = None
    awake: tuple[SleepInterval, ...] = ()
    rem: tuple[SleepInterval, ...] = ()
    core: tuple[SleepInterval, ...] = ()
    deep: tuple[SleepInterval, ...] = ()
    total_sleep_seconds: int = 0

    @classmethod
    def empty(cls, for_date: date | None = None) -> SleepSummary:
        """Create the no-data summary."""
        return cls(date=for_date)

    @property
    def has_sleep_data(self) -> bool:
        return self.total_sleep_seconds > 0

    def intervals_for(self, stage: SleepStage) -> tuple[SleepInterval, ...]:
        buckets = {
            SleepStage.AWAKE: self.awake,
            SleepStage.REM: self.rem,
            SleepStage.CORE: self.core,
            SleepStage.DEEP: self.deep,
        }
        return buckets.get(stage, ())

    def stage_totals(self) -> list[StageTotal]:
        """Count and duration per exposed stage, skipping stages with no intervals."""
        totals = []
        for stage in EXPOSED_STAGES:
            intervals = self.intervals_for(stage)
            if intervals:
                totals.append(
                    StageTotal(stage, len(intervals), sum(i.duration_seconds for i in intervals))
                )
        return totals


# ---------------------------------------------------------------------------
# Workouts
# ---------------------------------------------------------------------------

# Metadata key stores use for the elevation-ascended value, in meters
ELEVATION_ASCENDED_KEY = "elevation_ascended_m"


@dataclass(frozen=True)
class WorkoutRecord:
    """A workout as read from the store, optionally enriched with derived metrics.

    Optional metrics are ``None`` when the underlying statistic could not be
    obtained. ``None`` means unknown, never zero.
    """

    id: str
    activity_type: ActivityType
    start: datetime
    end: datetime
    duration_seconds: float
    source: str
    device_kind: DeviceKind = DeviceKind.OTHER
    total_energy_kcal: float | None = None
    total_distance_meters: float | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict, hash=False, compare=False)

    # Derived by the workout aggregator
    average_heart_rate: float | None = None
    active_energy_kcal: float | None = None
    elevation_gain_feet: float | None = None
    average_power_watts: float | None = None
    average_cadence_spm: float | None = None
    average_pace_sec_per_meter: float | None = None

    @property
    def elapsed_seconds(self) -> float:
        return (self.end - self.start).total_seconds()
