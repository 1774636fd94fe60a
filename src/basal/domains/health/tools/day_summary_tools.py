"""MCP tools for the per-day health dashboard.

Each day tool is a foreground fetch: it selects the day, loads it (or replays
it from the cache) and returns the day's section as JSON.
"""

from __future__ import annotations

import json
import logging
from datetime import date, datetime
from typing import TYPE_CHECKING, Any

from fastmcp import FastMCP

from basal.domains.health.domain_logic.sample_models import (
    HealthMetric,
    SleepInterval,
    SleepSummary,
    WorkoutRecord,
)
from basal.domains.health.domain_logic.workout_types import WorkoutMetric, should_show_metric

if TYPE_CHECKING:
    from basal.domains.health.domain_logic.day_cache import DayCacheEntry
    from basal.domains.health.domain_logic.fetch_coordinator import FetchCoordinator

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Argument and payload helpers
# ---------------------------------------------------------------------------

def _parse_day(value: str | None, coordinator: FetchCoordinator) -> date:
    """Parse a tool's ``date`` argument; empty or 'today' means today."""
    if value in (None, "", "today"):
        return coordinator.today().date()
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValueError("date must be formatted YYYY-MM-DD") from None


def _iso(moment: datetime | None) -> str | None:
    return moment.isoformat() if moment is not None else None


def _interval_payload(interval: SleepInterval) -> dict[str, Any]:
    return {
        "stage": interval.stage.value,
        "start": interval.start.isoformat(),
        "end": interval.end.isoformat(),
        "duration_seconds": interval.duration_seconds,
        "source": interval.source,
        "device_kind": interval.device_kind.value,
    }


def sleep_payload(summary: SleepSummary) -> dict[str, Any]:
    if not summary.has_sleep_data:
        return {"status": "no_data", "date": summary.date.isoformat() if summary.date else None}
    return {
        "status": "ok",
        "date": summary.date.isoformat() if summary.date else None,
        "window_start": _iso(summary.window_start),
        "window_end": _iso(summary.window_end),
        "total_sleep_seconds": summary.total_sleep_seconds,
        "stages": [
            {"stage": t.stage.value, "count": t.count, "duration_seconds": t.duration_seconds}
            for t in summary.stage_totals()
        ],
        "intervals": {
            "awake": [_interval_payload(i) for i in summary.awake],
            "rem": [_interval_payload(i) for i in summary.rem],
            "core": [_interval_payload(i) for i in summary.core],
            "deep": [_interval_payload(i) for i in summary.deep],
        },
    }


# Derived fields and the display metric that gates each of them
_GATED_FIELDS = {
    "total_distance_meters": WorkoutMetric.DISTANCE,
    "elevation_gain_feet": WorkoutMetric.ELEVATION_GAIN,
    "average_pace_sec_per_meter": WorkoutMetric.PACE,
    "average_power_watts": WorkoutMetric.POWER,
    "average_cadence_spm": WorkoutMetric.CADENCE,
}


def workout_payload(workout: WorkoutRecord) -> dict[str, Any]:
    """Serialize a workout, leaving out metrics hidden for its activity type."""
    payload: dict[str, Any] = {
        "id": workout.id,
        "activity_type": workout.activity_type.value,
        "start": workout.start.isoformat(),
        "end": workout.end.isoformat(),
        "duration_seconds": workout.duration_seconds,
        "elapsed_seconds": workout.elapsed_seconds,
        "total_energy_kcal": workout.total_energy_kcal,
        "active_energy_kcal": workout.active_energy_kcal,
        "average_heart_rate": workout.average_heart_rate,
        "source": workout.source,
        "device_kind": workout.device_kind.value,
    }
    for name, metric in _GATED_FIELDS.items():
        if should_show_metric(workout.activity_type, metric):
            payload[name] = getattr(workout, name)
    return payload


def day_payload(entry: DayCacheEntry) -> dict[str, Any]:
    return {
        "date": entry.day.date().isoformat(),
        "status": "ok" if entry.has_data else "no_data",
        "metrics": {
            metric.key: {
                "label": metric.label,
                "value": round(entry.metric(metric), 2),
                "unit": metric.unit,
            }
            for metric in HealthMetric
        },
        "latest_heart_rate": entry.latest_heart_rate,
        "latest_hrv": entry.latest_hrv,
        "sample_counts": {
            "heart_rate": len(entry.samples.heart_rate),
            "steps": len(entry.samples.steps),
            "hrv": len(entry.samples.hrv),
        },
        "sleep": sleep_payload(entry.sleep),
        "workouts": [workout_payload(w) for w in entry.workouts],
    }


# ---------------------------------------------------------------------------
# Tool registration
# ---------------------------------------------------------------------------

def register_day_summary_tools(mcp: FastMCP, coordinator: FetchCoordinator) -> None:
    """Register the per-day dashboard tools on the MCP server."""

    @mcp.tool
    async def day_summary(date: str | None = None) -> str:
        """Show the health dashboard for one day: metrics, sleep and workouts.

        Args:
            date: Day to show as YYYY-MM-DD (default: today).
        """
        day = _parse_day(date, coordinator)
        entry = await coordinator.fetch_health_data(day)
        return json.dumps(day_payload(entry), indent=2)

    @mcp.tool
    async def sleep_summary(date: str | None = None) -> str:
        """Show the night of sleep that ended on the morning of a day.

        Args:
            date: Day to show as YYYY-MM-DD (default: today).
        """
        day = _parse_day(date, coordinator)
        entry = await coordinator.fetch_health_data(day)
        return json.dumps(sleep_payload(entry.sleep), indent=2)

    @mcp.tool
    async def workouts_for_day(date: str | None = None) -> str:
        """List a day's workouts with the metrics that make sense for each activity.

        Args:
            date: Day to show as YYYY-MM-DD (default: today).
        """
        day = _parse_day(date, coordinator)
        entry = await coordinator.fetch_health_data(day)
        return json.dumps({
            "date": day.isoformat(),
            "workout_count": len(entry.workouts),
            "workouts": [workout_payload(w) for w in entry.workouts],
        }, indent=2)

    @mcp.tool
    async def backfill_history() -> str:
        """Fetch the previous weeks of history in the background and wait for it."""
        fetched = await coordinator.on_app_foreground()
        return json.dumps({
            "fetched_count": len(fetched),
            "fetched_days": [d.date().isoformat() for d in fetched],
            "cached_days": len(coordinator.cache),
        })

    @mcp.tool
    def fetch_status() -> dict:
        """Report which days are cached and whether anything is loading."""
        displayed = coordinator.displayed
        return {
            "today": coordinator.today().date().isoformat(),
            "selected_day": displayed.selected_day.date().isoformat() if displayed.selected_day else None,
            "is_loading": coordinator.is_loading,
            "backfill_running": coordinator.backfill_running,
            "fetched_days": [d.date().isoformat() for d in coordinator.cache.fetched_days()],
        }
