"""Application settings loaded from environment variables."""

from __future__ import annotations

from datetime import tzinfo
from typing import Literal
from zoneinfo import ZoneInfo

from pydantic_settings import BaseSettings

from basal.domains.health.domain_logic.sample_models import STAGE_CODE_TABLES, SleepStage
from basal.domains.health.domain_logic.sleep_segmenter import TrustedSources


class Settings(BaseSettings):
    """Basal Health server configuration."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Server
    # Default to loopback to avoid accidentally exposing personal health data
    # to your LAN/WAN. Opt into `0.0.0.0` explicitly when you intend remote access.
    basal_host: str = "127.0.0.1"
    basal_port: int = 8001
    basal_log_level: str = "info"
    # Additional explicit guard: if binding to non-loopback, refuse to start unless
    # this is set true (there is currently no auth layer).
    basal_allow_insecure_bind: bool = False

    # Health data store
    health_source: Literal["mock", "apple_health"] = "mock"
    apple_health_export_path: str = ""
    apple_health_period: str = "last_90_days"

    # Calendar days are cut at local midnight in this zone; empty = system local time
    basal_timezone: str = ""

    # Fetching
    backfill_days: int = 29

    # Sleep segmentation
    sleep_session_gap_seconds: int = 3600
    sleep_stage_codes: Literal["current", "legacy"] = "current"
    trusted_sleep_bundle_prefixes: list[str] = ["com.apple.health"]
    # Exports carry no bundle ids; list watch/phone source names here to trust them
    trusted_sleep_sources: list[str] = []

    def tz(self) -> tzinfo | None:
        """Configured zone, or None for the system's local time."""
        return ZoneInfo(self.basal_timezone) if self.basal_timezone else None

    def stage_code_table(self) -> dict[int, SleepStage]:
        return dict(STAGE_CODE_TABLES[self.sleep_stage_codes])

    def trusted_sleep(self) -> TrustedSources:
        return TrustedSources(
            bundle_prefixes=tuple(self.trusted_sleep_bundle_prefixes),
            source_names=frozenset(self.trusted_sleep_sources),
        )


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()
