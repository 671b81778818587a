"""Majority-vote status over time windows."""

from __future__ import annotations

from bisect import bisect_left
from collections import Counter
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from jamwatch.config import settings
from jamwatch.domain import Direction, IncidentType, Observation, Street, SummaryStatus, TimeBucket, TrafficStatus
from jamwatch.storage.reports import ReportStore
from jamwatch.timeutil import local_datetime, local_midnight, to_local, to_utc, utcnow

# Ties go to the more congested state.
STATUS_PRIORITY: tuple[TrafficStatus, ...] = (TrafficStatus.STOI, TrafficStatus.TOCZY_SIE, TrafficStatus.JEDZIE)


def majority_status(statuses: Iterable[TrafficStatus]) -> SummaryStatus:
    """Most frequent status, `neutral` for no input, ties broken by STATUS_PRIORITY."""
    counts = Counter(statuses)
    if not counts:
        return SummaryStatus.NEUTRAL
    top = max(counts.values())
    return next(SummaryStatus.from_traffic(status) for status in STATUS_PRIORITY if counts[status] == top)


def in_window(
    observations: Sequence[Observation],
    start: datetime,
    end: datetime,
    keys: Sequence[datetime] | None = None,
) -> Sequence[Observation]:
    """Slice of time-sorted observations with reported_at in [start, end)."""
    if keys is None:
        keys = [obs.reported_at for obs in observations]
    return observations[bisect_left(keys, start) : bisect_left(keys, end)]


@dataclass(frozen=True)
class CurrentStatus:
    status: SummaryStatus
    window_start: datetime
    window_end: datetime


@dataclass(frozen=True)
class DayBlocks:
    day: date
    blocks: list[TimeBucket]


class Aggregator:
    def __init__(self, store: ReportStore | None = None, *, clock: Callable[[], datetime] = utcnow) -> None:
        self._store = store or ReportStore()
        self._clock = clock

    def status_in_window(
        self, street: Street, direction: Direction, window_start: datetime, window_end: datetime
    ) -> SummaryStatus:
        observations = self._store.observations(street, direction, window_start, window_end)
        return majority_status(obs.status for obs in observations)

    def current_status(
        self,
        street: Street,
        direction: Direction,
        now: datetime | None = None,
        lookback_minutes: Sequence[int] | None = None,
    ) -> CurrentStatus:
        """Status over the shortest lookback window that has any reports."""
        now = to_utc(now or self._clock())
        steps = sorted(lookback_minutes or settings.current_status_lookback_minutes)
        observations = self._store.observations(street, direction, now - timedelta(minutes=steps[-1]), now)

        for minutes in steps:
            start = now - timedelta(minutes=minutes)
            window = in_window(observations, start, now)
            if window:
                return CurrentStatus(majority_status(obs.status for obs in window), start, now)
        return CurrentStatus(SummaryStatus.NEUTRAL, now - timedelta(minutes=steps[-1]), now)

    def bucketed_timeline(
        self,
        street: Street,
        direction: Direction,
        start: datetime,
        bucket: timedelta,
        count: int,
    ) -> list[TimeBucket]:
        start = to_utc(start)
        observations = self._store.observations(street, direction, start, start + bucket * count)
        buckets: list[TimeBucket] = []
        for index in range(count):
            bucket_start = start + bucket * index
            bucket_end = bucket_start + bucket
            window = in_window(observations, bucket_start, bucket_end)
            buckets.append(TimeBucket(bucket_start, bucket_end, majority_status(obs.status for obs in window)))
        return buckets

    def today_timeline(self, street: Street, direction: Direction, now: datetime | None = None) -> list[TimeBucket]:
        """24 hourly buckets from local midnight."""
        today = to_local(now or self._clock()).date()
        return self.bucketed_timeline(street, direction, local_midnight(today), timedelta(hours=1), 24)

    def week_timeline(self, street: Street, direction: Direction, now: datetime | None = None) -> list[TimeBucket]:
        """7 x 24 hourly buckets ending with today."""
        today = to_local(now or self._clock()).date()
        start = local_midnight(today - timedelta(days=6))
        return self.bucketed_timeline(street, direction, start, timedelta(hours=1), 7 * 24)

    def weekly_grid(
        self,
        street: Street,
        direction: Direction,
        now: datetime | None = None,
        *,
        start_hour: int = 5,
        end_hour: int = 22,
        block_minutes: int = 30,
    ) -> list[DayBlocks]:
        """Daytime blocks for each of the last seven days, today excluded."""
        today = to_local(now or self._clock()).date()
        block = timedelta(minutes=block_minutes)
        per_day = (end_hour - start_hour) * 60 // block_minutes
        grid: list[DayBlocks] = []
        for offset in range(7, 0, -1):
            day = today - timedelta(days=offset)
            start = local_datetime(day, time(start_hour, 0))
            grid.append(DayBlocks(day, self.bucketed_timeline(street, direction, start, block, per_day)))
        return grid

    def recent_incidents(
        self, street: Street, hours: float = 1.0, now: datetime | None = None
    ) -> dict[IncidentType, int]:
        since = to_utc(now or self._clock()) - timedelta(hours=hours)
        return self._store.incident_counts(street, since)
