"""Near-future status projection from same-time-of-day history.

For each future bucket we look at the same local time of day on past
days, newest day first, and take the first day that has any reports
inside the tolerance window. Those reports are majority-voted exactly
like a historical window.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from jamwatch.config import settings
from jamwatch.domain import Direction, Observation, Street, SummaryStatus
from jamwatch.status.aggregate import in_window, majority_status
from jamwatch.storage.reports import ReportStore
from jamwatch.timeutil import floor_to_minutes, local_datetime, local_midnight, to_local, to_utc, utcnow

ONE_DAY = timedelta(days=1)


@dataclass(frozen=True)
class ForecastBucket:
    time: datetime
    status: SummaryStatus
    source_day: date | None = None


@dataclass(frozen=True)
class StatusRange:
    start: datetime
    end: datetime
    duration_minutes: int
    status: SummaryStatus


@dataclass(frozen=True)
class WeekdayStatus:
    day: date
    status: SummaryStatus


def default_tolerance(interval_minutes: int) -> timedelta:
    return timedelta(minutes=max(interval_minutes / 2, settings.forecast_min_tolerance_minutes))


def bucket_times(start: datetime, step: timedelta, count: int) -> list[datetime]:
    """Bucket instants; whole-day steps keep the local wall-clock time across DST changes."""
    start = to_utc(start)
    if step % ONE_DAY == timedelta(0):
        local_start = to_local(start)
        wall_clock = local_start.time()
        return [local_datetime(local_start.date() + step * index, wall_clock) for index in range(count)]
    return [start + step * index for index in range(count)]


def group_into_ranges(buckets: Sequence[ForecastBucket], interval: timedelta) -> list[StatusRange]:
    """Collapse runs of equal status into ranges."""
    if not buckets:
        return []

    ranges: list[StatusRange] = []
    range_start = buckets[0].time
    current = buckets[0].status
    for bucket in buckets[1:]:
        if bucket.status != current:
            ranges.append(_status_range(range_start, bucket.time, current))
            range_start = bucket.time
            current = bucket.status
    ranges.append(_status_range(range_start, buckets[-1].time + interval, current))
    return ranges


def _status_range(start: datetime, end: datetime, status: SummaryStatus) -> StatusRange:
    return StatusRange(start, end, int((end - start).total_seconds() // 60), status)


class Forecaster:
    def __init__(self, store: ReportStore | None = None, *, clock: Callable[[], datetime] = utcnow) -> None:
        self._store = store or ReportStore()
        self._clock = clock

    def forecast(
        self,
        street: Street,
        direction: Direction,
        start_time: datetime,
        interval_minutes: int,
        count: int,
        *,
        tolerance: timedelta | None = None,
        before: timedelta | None = None,
        after: timedelta | None = None,
        weekday_aware: bool = False,
        lookback_days: int | None = None,
        now: datetime | None = None,
    ) -> list[ForecastBucket]:
        """Exactly `count` buckets spaced `interval_minutes` apart from `start_time`.

        The candidate window around each bucket's time of day is
        [t - before, t + after); both default to the tolerance. History is
        limited to reports before `now`, on local days back to
        `lookback_days` before it.
        """
        if interval_minutes <= 0:
            raise ValueError("interval_minutes must be positive")
        if count < 0:
            raise ValueError("count must not be negative")

        now = to_utc(now or self._clock())
        tolerance = default_tolerance(interval_minutes) if tolerance is None else tolerance
        before = tolerance if before is None else before
        after = tolerance if after is None else after
        lookback_days = settings.forecast_lookback_days if lookback_days is None else lookback_days

        today = to_local(now).date()
        days = [today - timedelta(days=offset) for offset in range(lookback_days + 1)]
        history = self._store.observations(street, direction, local_midnight(days[-1]) - before, now)
        keys = [obs.reported_at for obs in history]

        buckets: list[ForecastBucket] = []
        for target in bucket_times(start_time, timedelta(minutes=interval_minutes), count):
            status, source_day = self._status_for(history, keys, target, days, before, after, weekday_aware)
            buckets.append(ForecastBucket(target, status, source_day))
        return buckets

    def _status_for(
        self,
        history: Sequence[Observation],
        keys: Sequence[datetime],
        target: datetime,
        days: Sequence[date],
        before: timedelta,
        after: timedelta,
        weekday_aware: bool,
    ) -> tuple[SummaryStatus, date | None]:
        local_target = to_local(target)
        wall_clock: time = local_target.time()
        for day in days:
            if weekday_aware and day.weekday() != local_target.weekday():
                continue
            center = local_datetime(day, wall_clock)
            candidates = in_window(history, center - before, center + after, keys)
            if candidates:
                return majority_status(obs.status for obs in candidates), day
        return SummaryStatus.NEUTRAL, None

    def short_forecast(self, street: Street, direction: Direction, now: datetime | None = None) -> list[ForecastBucket]:
        """Next hour in fine steps, starting at the current step boundary."""
        now = to_utc(now or self._clock())
        interval = settings.short_forecast_interval_minutes
        start = floor_to_minutes(now, interval)
        return self.forecast(street, direction, start, interval, settings.short_forecast_count, now=now)

    def extended_forecast(
        self, street: Street, direction: Direction, now: datetime | None = None
    ) -> list[ForecastBucket]:
        """Coarser steps starting one hour out."""
        now = to_utc(now or self._clock())
        start = floor_to_minutes(now + timedelta(minutes=settings.extended_forecast_offset_minutes), 1)
        return self.forecast(
            street,
            direction,
            start,
            settings.extended_forecast_interval_minutes,
            settings.extended_forecast_count,
            now=now,
        )

    def weekday_comparison(
        self,
        street: Street,
        direction: Direction,
        hour: int,
        minute: int,
        now: datetime | None = None,
    ) -> dict[int, WeekdayStatus]:
        """Status at a fixed time of day on each of the last seven days (Monday = 0).

        A daily-step forecast over the past week where every bucket only
        sees its own weekday, using the slot that starts at the target time.
        """
        now = to_utc(now or self._clock())
        today = to_local(now).date()
        start = local_datetime(today - timedelta(days=7), time(hour, minute))
        buckets = self.forecast(
            street,
            direction,
            start,
            interval_minutes=24 * 60,
            count=7,
            before=timedelta(0),
            after=timedelta(minutes=settings.commute_slot_minutes),
            weekday_aware=True,
            lookback_days=7,
            now=local_midnight(today),
        )
        result: dict[int, WeekdayStatus] = {}
        for bucket in buckets:
            local = to_local(bucket.time)
            result[local.weekday()] = WeekdayStatus(local.date(), bucket.status)
        return result
