"""Basal Health MCP Server: application factory.

This module provides:
- create_app() for testability (integration tests create fresh server instances)
- Module-level `mcp` variable for FastMCP discovery
"""

from __future__ import annotations

import logging
from datetime import datetime

from fastmcp import FastMCP

from basal.core.config.settings import get_settings
from basal.domains.health.connectors import HealthDataStore
from basal.domains.health.connectors.apple_health import AppleHealthStore
from basal.domains.health.connectors.providers import MockHealthDataStore
from basal.domains.health.domain_logic.fetch_coordinator import FetchCoordinator
from basal.domains.health.domain_logic.sleep_segmenter import SleepSegmenter
from basal.domains.health.prompts.health_prompts import register_health_prompts
from basal.domains.health.resources.fetch_ledger import register_fetch_ledger_resources
from basal.domains.health.tools.day_summary_tools import register_day_summary_tools

logger = logging.getLogger(__name__)


def create_app(
    *,
    store_override: HealthDataStore | None = None,
    coordinator_override: FetchCoordinator | None = None,
) -> FastMCP:
    """Create and configure the Basal Health MCP server.

    This is the main application factory. It:
    1. Creates the FastMCP server instance
    2. Initializes the health data store (Apple Health export or mock)
    3. Builds the sleep segmenter from the configured stage table and sources
    4. Creates the fetch coordinator that owns the per-day cache
    5. Registers all tools, resources, and prompts
    """
    settings = get_settings()
    tz = settings.tz() or datetime.now().astimezone().tzinfo

    # --- Server instance ---
    server = FastMCP(
        "Basal Health",
        instructions=(
            "Personal health dashboard server. Provides per-day health metrics, "
            "reconstructed nightly sleep and enriched workouts read from a "
            "health data store, with an in-memory per-day cache."
        ),
    )

    # --- Initialize health data store ---
    if coordinator_override is not None:
        coordinator = coordinator_override
        store_source = "override"
    else:
        if store_override is not None:
            store = store_override
        elif settings.health_source == "apple_health":
            apple_store = AppleHealthStore(
                settings.apple_health_export_path, settings.apple_health_period
            )
            if apple_store.is_connected():
                store = apple_store
                logger.info("Using Apple Health export at %s", settings.apple_health_export_path)
            else:
                logger.warning(
                    "Apple Health export not found at '%s'; falling back to mock data",
                    settings.apple_health_export_path,
                )
                store = MockHealthDataStore(tz)
        else:
            store = MockHealthDataStore(tz)
            logger.info("Using mock health data store")
        store_source = store.data_source

        segmenter = SleepSegmenter(
            stage_codes=settings.stage_code_table(),
            trusted=settings.trusted_sleep(),
            session_gap_seconds=settings.sleep_session_gap_seconds,
        )
        coordinator = FetchCoordinator(
            store,
            segmenter=segmenter,
            tz=tz,
            backfill_days=settings.backfill_days,
        )

    # --- Register tools ---
    @server.tool
    def health_check() -> dict:
        """Check server health and return basic status information."""
        return {
            "status": "ok",
            "server": "Basal Health",
            "version": "0.1.0",
            "data_source": store_source,
            "sleep_stage_codes": settings.sleep_stage_codes,
            "cached_days": len(coordinator.cache),
        }

    register_day_summary_tools(server, coordinator)
    logger.info("Day summary tools registered")

    # --- Register resources ---
    register_fetch_ledger_resources(server, coordinator)

    # --- Register prompts ---
    register_health_prompts(server)

    return server


# Module-level instance for FastMCP discovery ("...app.py:mcp").
# Lazy: only created when this module is loaded directly (not when tests import create_app).
def __getattr__(name: str):
    if name == "mcp":
        global mcp  # noqa: PLW0603
        mcp = create_app()
        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
