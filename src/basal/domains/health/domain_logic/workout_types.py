"""Workout activity types, display metrics and the per-activity visibility policy."""

from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, tzinfo
from enum import Enum
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from basal.domains.health.domain_logic.sample_models import WorkoutRecord

# Apple Health exports prefix activity types with this
_EXPORT_PREFIX = "HKWorkoutActivityType"


class ActivityType(str, Enum):
    """Workout activity types (the HealthKit set).

    Values match the suffix used in Apple Health exports, e.g.
    ``HKWorkoutActivityTypeRunning`` -> ``"Running"``.
    """

    AMERICAN_FOOTBALL = "AmericanFootball"
    ARCHERY = "Archery"
    AUSTRALIAN_FOOTBALL = "AustralianFootball"
    BADMINTON = "Badminton"
    BARRE = "Barre"
    BASEBALL = "Baseball"
    BASKETBALL = "Basketball"
    BOWLING = "Bowling"
    BOXING = "Boxing"
    CARDIO_DANCE = "CardioDance"
    CLIMBING = "Climbing"
    COOLDOWN = "Cooldown"
    CORE_TRAINING = "CoreTraining"
    CRICKET = "Cricket"
    CROSS_COUNTRY_SKIING = "CrossCountrySkiing"
    CROSS_TRAINING = "CrossTraining"
    CURLING = "Curling"
    CYCLING = "Cycling"
    DANCE = "Dance"
    DANCE_INSPIRED_TRAINING = "DanceInspiredTraining"
    DISC_SPORTS = "DiscSports"
    DOWNHILL_SKIING = "DownhillSkiing"
    ELLIPTICAL = "Elliptical"
    EQUESTRIAN_SPORTS = "EquestrianSports"
    FENCING = "Fencing"
    FISHING = "Fishing"
    FITNESS_GAMING = "FitnessGaming"
    FLEXIBILITY = "Flexibility"
    FUNCTIONAL_STRENGTH_TRAINING = "FunctionalStrengthTraining"
    GOLF = "Golf"
    GYMNASTICS = "Gymnastics"
    HAND_CYCLING = "HandCycling"
    HANDBALL = "Handball"
    HIGH_INTENSITY_INTERVAL_TRAINING = "HighIntensityIntervalTraining"
    HIKING = "Hiking"
    HOCKEY = "Hockey"
    HUNTING = "Hunting"
    JUMP_ROPE = "JumpRope"
    KICKBOXING = "Kickboxing"
    LACROSSE = "Lacrosse"
    MARTIAL_ARTS = "MartialArts"
    MIND_AND_BODY = "MindAndBody"
    MIXED_CARDIO = "MixedCardio"
    MIXED_METABOLIC_CARDIO_TRAINING = "MixedMetabolicCardioTraining"
    OTHER = "Other"
    PADDLE_SPORTS = "PaddleSports"
    PICKLEBALL = "Pickleball"
    PILATES = "Pilates"
    PLAY = "Play"
    PREPARATION_AND_RECOVERY = "PreparationAndRecovery"
    RACQUETBALL = "Racquetball"
    ROWING = "Rowing"
    RUGBY = "Rugby"
    RUNNING = "Running"
    SAILING = "Sailing"
    SKATING_SPORTS = "SkatingSports"
    SNOW_SPORTS = "SnowSports"
    SNOWBOARDING = "Snowboarding"
    SOCCER = "Soccer"
    SOCIAL_DANCE = "SocialDance"
    SOFTBALL = "Softball"
    SQUASH = "Squash"
    STAIR_CLIMBING = "StairClimbing"
    STAIRS = "Stairs"
    STEP_TRAINING = "StepTraining"
    SURFING_SPORTS = "SurfingSports"
    SWIM_BIKE_RUN = "SwimBikeRun"
    SWIMMING = "Swimming"
    TABLE_TENNIS = "TableTennis"
    TAI_CHI = "TaiChi"
    TENNIS = "Tennis"
    TRACK_AND_FIELD = "TrackAndField"
    TRADITIONAL_STRENGTH_TRAINING = "TraditionalStrengthTraining"
    TRANSITION = "Transition"
    UNDERWATER_DIVING = "UnderwaterDiving"
    VOLLEYBALL = "Volleyball"
    WALKING = "Walking"
    WATER_FITNESS = "WaterFitness"
    WATER_POLO = "WaterPolo"
    WATER_SPORTS = "WaterSports"
    WHEELCHAIR_RUN_PACE = "WheelchairRunPace"
    WHEELCHAIR_WALK_PACE = "WheelchairWalkPace"
    WRESTLING = "Wrestling"
    YOGA = "Yoga"

    @classmethod
    def from_export(cls, raw: str) -> ActivityType:
        """Parse ``HKWorkoutActivityTypeRunning`` (or ``Running``); unknown -> OTHER."""
        name = raw[len(_EXPORT_PREFIX):] if raw.startswith(_EXPORT_PREFIX) else raw
        try:
            return cls(name)
        except ValueError:
            return cls.OTHER


class WorkoutMetric(str, Enum):
    WORKOUT_TIME = "workout_time"
    ELAPSED_TIME = "elapsed_time"
    DISTANCE = "distance"
    ACTIVE_CALORIES = "active_calories"
    TOTAL_CALORIES = "total_calories"
    ELEVATION_GAIN = "elevation_gain"
    POWER = "power"
    CADENCE = "cadence"
    PACE = "pace"
    HEART_RATE = "heart_rate"


# Metrics that only make sense for some activities. Anything not listed here
# (time, calories, heart rate) is shown for every workout.
METRIC_VISIBILITY: dict[WorkoutMetric, frozenset[ActivityType]] = {
    WorkoutMetric.DISTANCE: frozenset({
        ActivityType.RUNNING, ActivityType.WALKING, ActivityType.CYCLING,
        ActivityType.SWIMMING, ActivityType.HIKING,
    }),
    WorkoutMetric.ELEVATION_GAIN: frozenset({
        ActivityType.RUNNING, ActivityType.WALKING, ActivityType.CYCLING, ActivityType.HIKING,
    }),
    WorkoutMetric.PACE: frozenset({
        ActivityType.RUNNING, ActivityType.WALKING, ActivityType.HIKING,
    }),
    WorkoutMetric.POWER: frozenset({
        ActivityType.CYCLING,
        ActivityType.FUNCTIONAL_STRENGTH_TRAINING,
        ActivityType.TRADITIONAL_STRENGTH_TRAINING,
    }),
    WorkoutMetric.CADENCE: frozenset({ActivityType.RUNNING, ActivityType.CYCLING}),
}


def should_show_metric(activity_type: ActivityType, metric: WorkoutMetric) -> bool:
    """Whether ``metric`` is meaningful for ``activity_type``."""
    allowed = METRIC_VISIBILITY.get(metric)
    return allowed is None or activity_type in allowed


def visible_metrics(activity_type: ActivityType) -> list[WorkoutMetric]:
    return [m for m in WorkoutMetric if should_show_metric(activity_type, m)]


# ---------------------------------------------------------------------------
# Collection helpers
# ---------------------------------------------------------------------------

def _local_date(moment: datetime, tz: tzinfo | None) -> date:
    return moment.astimezone(tz).date() if tz is not None else moment.date()


def group_by_day(
    workouts: Iterable[WorkoutRecord], tz: tzinfo | None = None
) -> dict[date, list[WorkoutRecord]]:
    """Group workouts by the local calendar day they started on."""
    grouped: dict[date, list[WorkoutRecord]] = defaultdict(list)
    for workout in workouts:
        grouped[_local_date(workout.start, tz)].append(workout)
    return dict(grouped)


def workouts_on(
    workouts: Iterable[WorkoutRecord], day: date, tz: tzinfo | None = None
) -> list[WorkoutRecord]:
    return [w for w in workouts if _local_date(w.start, tz) == day]


def workouts_in_month(
    workouts: Iterable[WorkoutRecord], year: int, month: int, tz: tzinfo | None = None
) -> list[WorkoutRecord]:
    result = []
    for workout in workouts:
        started = _local_date(workout.start, tz)
        if started.year == year and started.month == month:
            result.append(workout)
    return result
