"""MCP Resources for fetched-day discovery."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from fastmcp import FastMCP

if TYPE_CHECKING:
    from basal.domains.health.domain_logic.fetch_coordinator import FetchCoordinator


def register_fetch_ledger_resources(mcp: FastMCP, coordinator: FetchCoordinator) -> None:
    """Register the fetched-day ledger resource on the MCP server."""

    @mcp.resource("ledger://health/fetched-days")
    def fetched_days_resource() -> str:
        """Discover which days are already cached and can be shown without a fetch."""
        cache = coordinator.cache
        days = []
        for day in cache.fetched_days():
            entry = cache.get(day)
            days.append({
                "date": day.date().isoformat(),
                "has_data": entry.has_data if entry is not None else False,
                "has_sleep": entry.sleep.has_sleep_data if entry is not None else False,
                "workout_count": len(entry.workouts) if entry is not None else 0,
            })
        return json.dumps(
            {
                "today": coordinator.today().date().isoformat(),
                "day_count": len(days),
                "days": days,
            },
            indent=2,
        )
