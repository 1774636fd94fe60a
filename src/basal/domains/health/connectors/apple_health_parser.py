"""Apple Health XML export parser.

Parses the ``export.xml`` file produced by Apple Health (iOS → Share → Export
Health Data). Supports incremental parsing of large files via iterparse.

HealthKit type mappings:
- HKQuantityTypeIdentifierStepCount → STEP_COUNT
- HKQuantityTypeIdentifierHeartRate → HEART_RATE
- HKQuantityTypeIdentifierActiveEnergyBurned → ACTIVE_ENERGY
- HKQuantityTypeIdentifierBasalEnergyBurned → BASAL_ENERGY
- HKQuantityTypeIdentifierRestingHeartRate → RESTING_HEART_RATE
- HKQuantityTypeIdentifierHeartRateVariabilitySDNN → HRV_SDNN
- HKQuantityTypeIdentifierFlightsClimbed → FLIGHTS_CLIMBED
- HKQuantityTypeIdentifierRunningSpeed → RUNNING_SPEED (m/s)
- HKCategoryTypeIdentifierSleepAnalysis → sleep samples (raw stage codes)
- Workout → WorkoutRecord (without derived metrics)
"""

from __future__ import annotations

import logging
import re
import uuid
import xml.etree.ElementTree as ET
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from basal.domains.health.domain_logic.sample_models import (
    ELEVATION_ASCENDED_KEY,
    DeviceKind,
    MetricKind,
    SleepSample,
    WorkoutRecord,
)
from basal.domains.health.domain_logic.workout_types import ActivityType

logger = logging.getLogger(__name__)

# HealthKit quantity type identifiers
_QUANTITY_TYPES: dict[str, MetricKind] = {
    "HKQuantityTypeIdentifierStepCount": MetricKind.STEP_COUNT,
    "HKQuantityTypeIdentifierHeartRate": MetricKind.HEART_RATE,
    "HKQuantityTypeIdentifierActiveEnergyBurned": MetricKind.ACTIVE_ENERGY,
    "HKQuantityTypeIdentifierBasalEnergyBurned": MetricKind.BASAL_ENERGY,
    "HKQuantityTypeIdentifierRestingHeartRate": MetricKind.RESTING_HEART_RATE,
    "HKQuantityTypeIdentifierHeartRateVariabilitySDNN": MetricKind.HRV_SDNN,
    "HKQuantityTypeIdentifierFlightsClimbed": MetricKind.FLIGHTS_CLIMBED,
    "HKQuantityTypeIdentifierRunningSpeed": MetricKind.RUNNING_SPEED,
}

_SLEEP = "HKCategoryTypeIdentifierSleepAnalysis"

# Category values as written in exports -> raw sleep-analysis codes
_SLEEP_VALUES = {
    "HKCategoryValueSleepAnalysisInBed": 0,
    "HKCategoryValueSleepAnalysisAsleep": 1,
    "HKCategoryValueSleepAnalysisAsleepUnspecified": 1,
    "HKCategoryValueSleepAnalysisAwake": 2,
    "HKCategoryValueSleepAnalysisAsleepCore": 3,
    "HKCategoryValueSleepAnalysisAsleepDeep": 4,
    "HKCategoryValueSleepAnalysisAsleepREM": 5,
}

_DISTANCE_STATISTICS = {
    "HKQuantityTypeIdentifierDistanceWalkingRunning",
    "HKQuantityTypeIdentifierDistanceCycling",
    "HKQuantityTypeIdentifierDistanceSwimming",
    "HKQuantityTypeIdentifierDistanceWheelchair",
}
_ENERGY_STATISTIC = "HKQuantityTypeIdentifierActiveEnergyBurned"
_ELEVATION_METADATA = "HKElevationAscended"

_TO_METERS = {"m": 1.0, "km": 1000.0, "mi": 1609.34, "yd": 0.9144, "ft": 0.3048, "cm": 0.01}
_TO_SECONDS = {"s": 1.0, "min": 60.0, "hr": 3600.0, "h": 3600.0}
_TO_KCAL = {"kcal": 1.0, "Cal": 1.0, "kJ": 1 / 4.184}
_TO_METERS_PER_SECOND = {"m/s": 1.0, "km/hr": 1000 / 3600, "mi/hr": 1609.34 / 3600}

_MODEL_RE = re.compile(r"model:([^,>]+)")
_APPLE_MANUFACTURER = "manufacturer:Apple Inc."

# Bundle id stamped on first-party sleep records
APPLE_HEALTH_BUNDLE = "com.apple.health"

# Namespace for deterministic workout ids
_WORKOUT_NAMESPACE = uuid.UUID("6f1c1e0a-6a53-4c2b-9a3e-2f6f3b8d7c11")


class AppleHealthParseError(Exception):
    """Raised when parsing Apple Health export XML fails."""


@dataclass(frozen=True)
class QuantityRecord:
    """A parsed quantity sample, value already in the metric's canonical unit."""

    value: float
    start: datetime
    end: datetime
    source: str
    device_kind: DeviceKind


@dataclass
class ParsedExport:
    quantities: dict[MetricKind, list[QuantityRecord]] = field(default_factory=dict)
    sleep: list[SleepSample] = field(default_factory=list)
    workouts: list[WorkoutRecord] = field(default_factory=list)


def _parse_date(date_str: str) -> datetime:
    """Parse Apple Health date format: '2025-12-01 08:30:00 -0500'.

    Raises:
        ValueError: If the date is unparseable or carries no UTC offset.
    """
    try:
        return datetime.strptime(date_str, "%Y-%m-%d %H:%M:%S %z")
    except ValueError:
        # Fallback for ISO format
        parsed = datetime.fromisoformat(date_str)
    if parsed.tzinfo is None:
        raise ValueError(f"Date without UTC offset: {date_str!r}")
    return parsed


def _period_to_cutoff(period: str) -> datetime:
    """Convert period string to UTC cutoff datetime."""
    now = datetime.now(timezone.utc)
    days_map = {
        "last_7_days": 7,
        "last_30_days": 30,
        "last_90_days": 90,
        "last_180_days": 180,
        "last_365_days": 365,
    }
    days = days_map.get(period, 90)
    return now - timedelta(days=days)


def device_kind_for(device: str | None, source_name: str = "") -> DeviceKind:
    """Classify the recording hardware from the export's ``device`` attribute.

    Without device info, falls back to the source name.
    """
    if device:
        match = _MODEL_RE.search(device)
        model = match.group(1).strip() if match else ""
        if "Watch" in model:
            return DeviceKind.WATCH
        if "iPhone" in model:
            return DeviceKind.PHONE
        return DeviceKind.OTHER
    if "Watch" in source_name:
        return DeviceKind.WATCH
    if "iPhone" in source_name or source_name == "Health":
        return DeviceKind.PHONE
    return DeviceKind.OTHER


def first_party_bundle(device: str | None, source_name: str = "") -> str | None:
    """Bundle id for records written by Apple hardware or the Health app.

    Exports carry no bundle ids, so first-party records are recognized from
    the device manufacturer, or from the source name when there is no device.
    Third-party records get ``None``.
    """
    if device:
        if _APPLE_MANUFACTURER in device:
            return APPLE_HEALTH_BUNDLE
        if device_kind_for(device) is not DeviceKind.OTHER:
            return APPLE_HEALTH_BUNDLE
        return None
    if device_kind_for(None, source_name) is not DeviceKind.OTHER:
        return APPLE_HEALTH_BUNDLE
    return None


def _convert(value: float, unit: str, table: dict[str, float]) -> float:
    return value * table.get(unit, 1.0)


def _quantity_value(kind: MetricKind, value: float, unit: str) -> float:
    if kind in (MetricKind.ACTIVE_ENERGY, MetricKind.BASAL_ENERGY):
        return _convert(value, unit, _TO_KCAL)
    if kind is MetricKind.RUNNING_SPEED:
        return _convert(value, unit, _TO_METERS_PER_SECOND)
    return value


def _sleep_code(raw: str) -> int | None:
    if raw in _SLEEP_VALUES:
        return _SLEEP_VALUES[raw]
    try:
        return int(raw)
    except ValueError:
        return None


def _metadata_meters(raw: str) -> float | None:
    """Parse a metadata quantity such as '1520 cm' into meters."""
    parts = raw.split()
    try:
        value = float(parts[0])
    except (IndexError, ValueError):
        return None
    unit = parts[1] if len(parts) > 1 else "m"
    return _convert(value, unit, _TO_METERS)


def _optional_float(raw: str | None) -> float | None:
    if raw in (None, ""):
        return None
    try:
        return float(raw)
    except ValueError:
        return None


def _parse_workout(elem: ET.Element) -> WorkoutRecord:
    start = _parse_date(elem.get("startDate", ""))
    end = _parse_date(elem.get("endDate", ""))
    source = elem.get("sourceName", "")
    raw_type = elem.get("workoutActivityType", "")

    duration = _optional_float(elem.get("duration"))
    if duration is None:
        duration_seconds = (end - start).total_seconds()
    else:
        duration_seconds = _convert(duration, elem.get("durationUnit", "min"), _TO_SECONDS)

    distance = _optional_float(elem.get("totalDistance"))
    if distance is not None:
        distance = _convert(distance, elem.get("totalDistanceUnit", "km"), _TO_METERS)
    energy = _optional_float(elem.get("totalEnergyBurned"))
    if energy is not None:
        energy = _convert(energy, elem.get("totalEnergyBurnedUnit", "kcal"), _TO_KCAL)

    metadata: dict[str, Any] = {}
    for child in elem:
        if child.tag == "MetadataEntry" and child.get("key") == _ELEVATION_METADATA:
            meters = _metadata_meters(child.get("value", ""))
            if meters is not None:
                metadata[ELEVATION_ASCENDED_KEY] = meters
        elif child.tag == "WorkoutStatistics":
            stat_type = child.get("type", "")
            total = _optional_float(child.get("sum"))
            if total is None:
                continue
            unit = child.get("unit", "")
            # Newer exports only carry totals as statistics
            if stat_type in _DISTANCE_STATISTICS and distance is None:
                distance = _convert(total, unit or "km", _TO_METERS)
            elif stat_type == _ENERGY_STATISTIC and energy is None:
                energy = _convert(total, unit or "kcal", _TO_KCAL)

    workout_id = uuid.uuid5(_WORKOUT_NAMESPACE, f"{source}|{raw_type}|{start.isoformat()}")
    return WorkoutRecord(
        id=str(workout_id),
        activity_type=ActivityType.from_export(raw_type),
        start=start,
        end=end,
        duration_seconds=duration_seconds,
        source=source,
        device_kind=device_kind_for(elem.get("device"), source),
        total_energy_kcal=energy,
        total_distance_meters=distance,
        metadata=metadata,
    )


def parse_apple_health_export(
    export_path: str | Path,
    period: str = "last_90_days",
) -> ParsedExport:
    """Parse an Apple Health export.xml into typed samples and workouts.

    Uses iterparse for memory-efficient processing of large exports.

    Args:
        export_path: Path to the Apple Health export.xml file.
        period: Look-back filter (e.g., 'last_30_days').

    Returns:
        ParsedExport with quantity samples per metric, sleep samples and workouts.

    Raises:
        AppleHealthParseError: If the file cannot be parsed.
    """
    path = Path(export_path)
    if not path.exists():
        raise AppleHealthParseError(f"Export file not found: {path}")

    cutoff = _period_to_cutoff(period)
    quantities: dict[MetricKind, list[QuantityRecord]] = defaultdict(list)
    sleep: list[SleepSample] = []
    workouts: list[WorkoutRecord] = []
    skipped = 0

    try:
        for _event, elem in ET.iterparse(str(path), events=("end",)):
            tag = elem.tag

            if tag == "Record":
                rec_type = elem.get("type", "")
                kind = _QUANTITY_TYPES.get(rec_type)

                if kind is not None or rec_type == _SLEEP:
                    try:
                        start = _parse_date(elem.get("startDate", ""))
                        end = _parse_date(elem.get("endDate", ""))
                        in_period = start >= cutoff
                    except (ValueError, TypeError):
                        skipped += 1
                        elem.clear()
                        continue

                    if in_period:
                        source = elem.get("sourceName", "")
                        device = elem.get("device")
                        device_kind = device_kind_for(device, source)
                        raw_value = elem.get("value", "")

                        # Quantity records
                        if kind is not None:
                            value = _optional_float(raw_value)
                            if value is None:
                                skipped += 1
                            else:
                                quantities[kind].append(QuantityRecord(
                                    value=_quantity_value(kind, value, elem.get("unit", "")),
                                    start=start,
                                    end=end,
                                    source=source,
                                    device_kind=device_kind,
                                ))

                        # Sleep records (category type)
                        else:
                            code = _sleep_code(raw_value)
                            if code is None:
                                skipped += 1
                            else:
                                sleep.append(SleepSample(
                                    code=code,
                                    start=start,
                                    end=end,
                                    source=source,
                                    device_kind=device_kind,
                                    bundle_id=first_party_bundle(device, source),
                                ))

                elem.clear()

            elif tag == "Workout":
                try:
                    workout = _parse_workout(elem)
                    in_period = workout.start >= cutoff
                except (ValueError, TypeError):
                    skipped += 1
                else:
                    if in_period:
                        workouts.append(workout)
                elem.clear()

    except ET.ParseError as exc:
        raise AppleHealthParseError(f"Invalid XML: {exc}") from exc

    if skipped:
        logger.warning("Skipped %d malformed records in %s", skipped, path)
    logger.info(
        "Parsed Apple Health export: %d metric types, %d sleep samples, %d workouts",
        len(quantities), len(sleep), len(workouts),
    )
    return ParsedExport(quantities=dict(quantities), sleep=sleep, workouts=workouts)
