"""Per-day fetch coordination: caching, historical backfill and the displayed day.

The coordinator is the single owner of the day cache, the fetched-day ledger
and the displayed-day projection. It runs on one asyncio event loop and only
suspends inside store calls, so every mutation below happens between awaits
and is serialized by the loop.

Write discipline:

- Every request for a day takes a new generation number. A finished fetch is
  written only if its generation is still the newest for that day, so the
  cache always reflects the most recently requested fetch.
- Background fetches never start while a foreground fetch for the same day is
  in flight, which gives foreground requests precedence.
- Written entries are published as ``DayUpdated`` events. The displayed
  projection applies foreground and replay events for the selected day only.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, tzinfo
from enum import Enum
from typing import Any, Awaitable, Callable, TypeVar

from basal.domains.health.connectors import HealthDataStore, HealthQueryError
from basal.domains.health.domain_logic.day_cache import (
    DayCache,
    DayCacheEntry,
    RawSamples,
    day_window,
)
from basal.domains.health.domain_logic.sample_models import (
    Aggregation,
    HealthMetric,
    MetricKind,
    Observation,
    SleepSample,
    SleepSummary,
    WorkoutRecord,
)
from basal.domains.health.domain_logic.sleep_segmenter import SleepSegmenter
from basal.domains.health.domain_logic.workout_aggregator import FetchStat, enrich

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Days before today covered by the background backfill
BACKFILL_DAYS = 29

# The night belonging to day D is read from noon of D-1 to noon of D
SLEEP_WINDOW_HOUR = 12

READ_KINDS = frozenset(MetricKind)


class FetchIntent(str, Enum):
    FOREGROUND = "foreground"
    BACKGROUND = "background"
    REPLAY = "replay"


@dataclass(frozen=True)
class DayUpdated:
    """Published whenever a day's entry is written or replayed from cache."""

    day: datetime
    entry: DayCacheEntry
    intent: FetchIntent


class DisplayedDay:
    """Live projection of the day the user is looking at."""

    def __init__(self) -> None:
        self.selected_day: datetime | None = None
        self.entry: DayCacheEntry | None = None
        self.loading_day: datetime | None = None

    @property
    def is_loading(self) -> bool:
        """True while the selected day's own foreground fetch is running."""
        return self.loading_day is not None and self.loading_day == self.selected_day

    def select(self, day: datetime) -> None:
        if day != self.selected_day:
            self.selected_day = day
            self.entry = None

    def apply(self, event: DayUpdated) -> bool:
        """Show ``event`` if it is a foreground or replay update for the selected day."""
        if event.intent is FetchIntent.BACKGROUND or event.day != self.selected_day:
            return False
        self.entry = event.entry
        return True


Listener = Callable[[DayUpdated], Any]


def sleep_window(day: datetime, tz: tzinfo) -> tuple[datetime, datetime]:
    noon = time(SLEEP_WINDOW_HOUR)
    start = datetime.combine(day.date() - timedelta(days=1), noon, tzinfo=tz)
    end = datetime.combine(day.date(), noon, tzinfo=tz)
    return start, end


def _local_tz() -> tzinfo:
    return datetime.now().astimezone().tzinfo  # type: ignore[return-value]


class FetchCoordinator:
    """Decides which days to fetch, fetches them, and keeps the cache and view in sync.

    Usage::

        coordinator = FetchCoordinator(store, tz=ZoneInfo("Europe/Berlin"))
        entry = await coordinator.fetch_health_data(date(2026, 3, 2))
        coordinator.on_app_foreground()  # starts the 29-day backfill
    """

    def __init__(
        self,
        store: HealthDataStore,
        *,
        cache: DayCache | None = None,
        segmenter: SleepSegmenter | None = None,
        tz: tzinfo | None = None,
        clock: Callable[[], datetime] | None = None,
        backfill_days: int = BACKFILL_DAYS,
    ) -> None:
        self._store = store
        self._tz = tz or (cache.tz if cache is not None else _local_tz())
        self._cache = cache or DayCache(self._tz)
        self._segmenter = segmenter or SleepSegmenter()
        self._clock = clock or (lambda: datetime.now(self._tz))
        self._backfill_days = backfill_days

        self._displayed = DisplayedDay()
        self._listeners: list[Listener] = [self._displayed.apply]
        self._generations: dict[datetime, int] = {}
        self._in_flight: Counter[datetime] = Counter()
        self._foreground_in_flight: Counter[datetime] = Counter()
        self._backfill_task: asyncio.Task[list[datetime]] | None = None
        self._authorized: bool | None = None
        self._authorization: asyncio.Task[bool] | None = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def cache(self) -> DayCache:
        return self._cache

    @property
    def displayed(self) -> DisplayedDay:
        return self._displayed

    @property
    def is_loading(self) -> bool:
        return self._displayed.is_loading

    @property
    def backfill_running(self) -> bool:
        return self._backfill_task is not None and not self._backfill_task.done()

    def today(self) -> datetime:
        return self._cache.key(self._clock())

    def is_today(self, day: date | datetime) -> bool:
        return self._cache.key(day) == self.today()

    def needs_fetch(self, day: date | datetime) -> bool:
        """Today is always stale; any other day is fetched at most once."""
        return self.is_today(day) or not self._cache.has(day)

    def is_fetching(self, day: date | datetime) -> bool:
        return self._in_flight[self._cache.key(day)] > 0

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a ``DayUpdated`` listener; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # Public fetch operations
    # ------------------------------------------------------------------

    async def fetch_health_data(self, day: date | datetime) -> DayCacheEntry:
        """Foreground fetch: select ``day`` for display and load it.

        Days already in the ledger (other than today) are replayed from the
        cache without touching the store.
        """
        key = self._cache.key(day)
        self._displayed.select(key)

        if not self.needs_fetch(key):
            cached = self._cache.get(key)
            if cached is not None:
                self._publish(DayUpdated(key, cached, FetchIntent.REPLAY))
                return cached

        self._displayed.loading_day = key
        self._foreground_in_flight[key] += 1
        try:
            return await self._run_fetch(key, FetchIntent.FOREGROUND)
        finally:
            self._foreground_in_flight[key] -= 1
            if self._foreground_in_flight[key] <= 0:
                del self._foreground_in_flight[key]
                if self._displayed.loading_day == key:
                    self._displayed.loading_day = None

    async def fetch_health_data_if_needed(
        self,
        day: date | datetime,
        intent: FetchIntent = FetchIntent.BACKGROUND,
    ) -> DayCacheEntry | None:
        """Fetch ``day`` unless the ledger already covers it.

        A background request yields to a foreground fetch already in flight
        for the same day and returns whatever is cached.
        """
        if intent is FetchIntent.FOREGROUND:
            return await self.fetch_health_data(day)

        key = self._cache.key(day)
        if not self.needs_fetch(key):
            return self._cache.get(key)
        if self._foreground_in_flight[key] > 0:
            logger.debug("Skipping background fetch for %s: foreground fetch in flight", key.date())
            return self._cache.get(key)
        return await self._run_fetch(key, intent)

    async def backfill_history(self) -> list[datetime]:
        """Fetch the days before today that have never been fetched, newest first.

        Days run one at a time in the background. A failing day is logged and
        skipped; it never stops the rest of the window.
        """
        today = self.today()
        fetched: list[datetime] = []

        for offset in range(1, self._backfill_days + 1):
            key = self._cache.key(today.date() - timedelta(days=offset))
            if self._cache.has(key) or self.is_fetching(key):
                logger.debug("Backfill skipping %s", key.date())
                continue
            try:
                await self._run_fetch(key, FetchIntent.BACKGROUND)
            except Exception:
                logger.exception("Background fetch failed for %s", key.date())
                continue
            fetched.append(key)

        logger.info(
            "Backfill finished: %d of %d days fetched", len(fetched), self._backfill_days
        )
        return fetched

    def on_app_foreground(self) -> asyncio.Task[list[datetime]]:
        """Start the historical backfill unless one is already running.

        Must be called from inside the running event loop.
        """
        if not self.backfill_running:
            loop = asyncio.get_running_loop()
            self._backfill_task = loop.create_task(self.backfill_history())
        assert self._backfill_task is not None
        return self._backfill_task

    async def ensure_authorized(self) -> bool:
        """Request read access once. A refusal simply means no data.

        Concurrent first callers share a single in-flight request.
        """
        if self._authorized is not None:
            return self._authorized
        if self._authorization is None:
            loop = asyncio.get_running_loop()
            self._authorization = loop.create_task(self._request_authorization())
        return await asyncio.shield(self._authorization)

    async def _request_authorization(self) -> bool:
        try:
            granted = await self._store.request_authorization(READ_KINDS)
        except HealthQueryError as exc:
            logger.warning("Authorization request failed: %s", exc)
            granted = False
        if not granted:
            logger.info("Health data access not granted; days will read as empty")
        self._authorized = bool(granted)
        return self._authorized

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _publish(self, event: DayUpdated) -> None:
        for listener in list(self._listeners):
            listener(event)

    async def _run_fetch(self, key: datetime, intent: FetchIntent) -> DayCacheEntry:
        generation = self._generations.get(key, 0) + 1
        self._generations[key] = generation
        self._in_flight[key] += 1
        try:
            entry = await self._load_day(key)
        finally:
            self._in_flight[key] -= 1
            if self._in_flight[key] <= 0:
                del self._in_flight[key]

        if self._generations[key] != generation:
            logger.debug(
                "Dropping superseded %s fetch for %s (generation %d < %d)",
                intent.value, key.date(), generation, self._generations[key],
            )
            return self._cache.get(key) or entry

        self._cache.put(key, entry)
        self._cache.mark_fetched(key)
        self._publish(DayUpdated(key, entry, intent))
        return entry

    async def _guarded(self, label: str, key: datetime, call: Awaitable[T], default: T) -> T:
        try:
            return await call
        except HealthQueryError as exc:
            logger.warning("%s query failed for %s: %s", label, key.date(), exc)
            return default

    async def _load_day(self, key: datetime) -> DayCacheEntry:
        """Query everything for one day concurrently and build its entry."""
        await self.ensure_authorized()
        start, end = day_window(key, self._tz)
        night_start, night_end = sleep_window(key, self._tz)
        metrics = list(HealthMetric)

        metric_values, (heart_rate, steps, hrv, sleep, workouts) = await asyncio.gather(
            asyncio.gather(*(self._metric(metric, key, start, end) for metric in metrics)),
            asyncio.gather(
                self._samples(MetricKind.HEART_RATE, key, start, end),
                self._samples(MetricKind.STEP_COUNT, key, start, end),
                self._samples(MetricKind.HRV_SDNN, key, start, end),
                self._sleep(key, night_start, night_end),
                self._workouts(key, start, end),
            ),
        )

        return DayCacheEntry(
            day=key,
            metrics=dict(zip(metrics, metric_values)),
            sleep=sleep,
            workouts=workouts,
            samples=RawSamples(heart_rate=heart_rate, steps=steps, hrv=hrv),
        )

    async def _metric(
        self, metric: HealthMetric, key: datetime, start: datetime, end: datetime
    ) -> float:
        value = await self._guarded(
            metric.label, key,
            self._store.query_statistic(metric.kind, metric.aggregation, start, end),
            0.0,
        )
        return value or 0.0

    async def _samples(
        self, kind: MetricKind, key: datetime, start: datetime, end: datetime
    ) -> tuple[Observation, ...]:
        samples = await self._guarded(
            f"{kind.value} samples", key, self._store.query_samples(kind, start, end), []
        )
        return tuple(sorted(samples, key=lambda s: s.timestamp, reverse=True))

    async def _sleep(self, key: datetime, start: datetime, end: datetime) -> SleepSummary:
        samples: list[SleepSample] = await self._guarded(
            "Sleep", key, self._store.query_sleep_samples(start, end), []
        )
        return self._segmenter.segment(samples, key.date())

    async def _workouts(
        self, key: datetime, start: datetime, end: datetime
    ) -> tuple[WorkoutRecord, ...]:
        workouts: list[WorkoutRecord] = await self._guarded(
            "Workouts", key, self._store.query_workouts(start, end), []
        )
        enriched = await asyncio.gather(
            *(enrich(workout, self._workout_stats(workout)) for workout in workouts)
        )
        return tuple(sorted(enriched, key=lambda w: w.start))

    def _workout_stats(self, workout: WorkoutRecord) -> FetchStat:
        async def fetch_stat(kind: MetricKind, aggregation: Aggregation) -> float | None:
            return await self._store.query_workout_statistic(
                kind, aggregation, workout.start, workout.end
            )

        return fetch_stat
