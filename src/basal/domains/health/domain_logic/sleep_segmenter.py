"""Sleep-session segmentation.

Turns an unordered pile of sleep-analysis samples, possibly from several
devices and apps, into one night's summary:

1. Keep trusted first-party samples only.
2. Map raw stage codes through the active stage-code table.
3. Sort by start and split into sessions wherever coverage has a gap longer
   than the session-gap threshold.
4. Pick the longest session (earliest wins a tie).
5. Bucket its intervals by stage and total up REM + Core + Deep.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Mapping, Sequence

from basal.domains.health.domain_logic.sample_models import (
    ASLEEP_STAGES,
    CURRENT_STAGE_CODES,
    SleepInterval,
    SleepSample,
    SleepSession,
    SleepStage,
    SleepSummary,
)

logger = logging.getLogger(__name__)

# Longest gap (seconds) between consecutive samples that still belong to one session
SESSION_GAP_SECONDS = 3600

# First-party health apps on the platform write under this bundle prefix
DEFAULT_TRUSTED_BUNDLE_PREFIXES = ("com.apple.health",)


@dataclass(frozen=True)
class TrustedSources:
    """Allowlist of recording sources whose sleep data is segmented.

    A sample is trusted when its bundle id starts with one of
    ``bundle_prefixes`` or its source name is listed in ``source_names``.
    """

    bundle_prefixes: tuple[str, ...] = DEFAULT_TRUSTED_BUNDLE_PREFIXES
    source_names: frozenset[str] = field(default_factory=frozenset)

    def is_trusted(self, sample: SleepSample) -> bool:
        if sample.bundle_id and sample.bundle_id.startswith(self.bundle_prefixes):
            return True
        return sample.source in self.source_names


def partition_sessions(
    intervals: Sequence[SleepInterval], gap_seconds: int = SESSION_GAP_SECONDS
) -> list[SleepSession]:
    """Split start-sorted intervals into sessions in a single pass.

    A new session starts when the next interval begins more than
    ``gap_seconds`` after the latest end seen in the current session.
    """
    sessions: list[SleepSession] = []
    current: list[SleepInterval] = []
    covered_until = None

    for interval in intervals:
        if current and (interval.start - covered_until).total_seconds() > gap_seconds:
            sessions.append(SleepSession(tuple(current)))
            current = []
            covered_until = None
        current.append(interval)
        if covered_until is None or interval.end > covered_until:
            covered_until = interval.end

    if current:
        sessions.append(SleepSession(tuple(current)))
    return sessions


def select_session(sessions: Sequence[SleepSession]) -> SleepSession | None:
    """Return the session with the largest total duration.

    Sessions are in chronological order, so on a tie the earliest one wins.
    """
    best: SleepSession | None = None
    for session in sessions:
        if best is None or session.total_duration > best.total_duration:
            best = session
    return best


def summarize_session(session: SleepSession, reference_date: date | None = None) -> SleepSummary:
    """Bucket a session's intervals by stage and compute the night's totals."""
    buckets: dict[SleepStage, list[SleepInterval]] = {
        SleepStage.AWAKE: [],
        SleepStage.REM: [],
        SleepStage.CORE: [],
        SleepStage.DEEP: [],
    }
    for interval in session.intervals:
        # In-bed and unspecified intervals only shape the window
        if interval.stage in buckets:
            buckets[interval.stage].append(interval)

    total = sum(i.duration_seconds for i in session.intervals if i.stage in ASLEEP_STAGES)

    return SleepSummary(
        date=reference_date,
        window_start=session.start,
        window_end=session.end,
        awake=tuple(buckets[SleepStage.AWAKE]),
        rem=tuple(buckets[SleepStage.REM]),
        core=tuple(buckets[SleepStage.CORE]),
        deep=tuple(buckets[SleepStage.DEEP]),
        total_sleep_seconds=total,
    )


class SleepSegmenter:
    """Reconstructs a night's sleep from raw sleep-analysis samples.

    Usage::

        segmenter = SleepSegmenter(stage_codes=LEGACY_STAGE_CODES)
        summary = segmenter.segment(samples, date(2026, 3, 2))
    """

    def __init__(
        self,
        stage_codes: Mapping[int, SleepStage] = CURRENT_STAGE_CODES,
        trusted: TrustedSources | None = None,
        session_gap_seconds: int = SESSION_GAP_SECONDS,
    ) -> None:
        self._stage_codes = dict(stage_codes)
        self._trusted = trusted or TrustedSources()
        self._gap = session_gap_seconds

    def to_intervals(self, samples: Iterable[SleepSample]) -> list[SleepInterval]:
        """Filter to trusted samples with known codes and sort them by start."""
        intervals = []
        skipped_untrusted = 0
        for sample in samples:
            if not self._trusted.is_trusted(sample):
                skipped_untrusted += 1
                continue
            stage = self._stage_codes.get(sample.code)
            if stage is None:
                logger.debug("Dropping sleep sample with unmapped code %r", sample.code)
                continue
            intervals.append(
                SleepInterval.from_bounds(
                    stage, sample.start, sample.end, sample.source, sample.device_kind
                )
            )
        if skipped_untrusted:
            logger.debug("Ignored %d sleep samples from untrusted sources", skipped_untrusted)
        intervals.sort(key=lambda i: (i.start, i.end))
        return intervals

    def sessions(self, samples: Iterable[SleepSample]) -> list[SleepSession]:
        return partition_sessions(self.to_intervals(samples), self._gap)

    def segment(
        self, samples: Iterable[SleepSample], reference_date: date | None = None
    ) -> SleepSummary:
        """Return the summary of the longest trusted session, or the empty summary."""
        session = select_session(self.sessions(samples))
        if session is None:
            return SleepSummary.empty(reference_date)
        return summarize_session(session, reference_date)


def segment_sleep(
    samples: Iterable[SleepSample],
    reference_date: date | None = None,
    *,
    stage_codes: Mapping[int, SleepStage] = CURRENT_STAGE_CODES,
    trusted: TrustedSources | None = None,
    session_gap_seconds: int = SESSION_GAP_SECONDS,
) -> SleepSummary:
    """One-shot wrapper around :class:`SleepSegmenter`."""
    segmenter = SleepSegmenter(stage_codes, trusted, session_gap_seconds)
    return segmenter.segment(samples, reference_date)
