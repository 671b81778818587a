"""Tests for same-time-of-day forecasting."""

from datetime import UTC, date, datetime, time, timedelta

import pytest

from jamwatch.domain import Direction, Street, SummaryStatus, TrafficStatus
from jamwatch.status.forecast import (
    ForecastBucket,
    Forecaster,
    bucket_times,
    default_tolerance,
    group_into_ranges,
)
from jamwatch.timeutil import local_datetime, to_local

NOW = datetime(2026, 10, 14, 6, 0, tzinfo=UTC)  # Wednesday 08:00 in Warsaw
TODAY = date(2026, 10, 14)

STREET = Street.BOROWSKA
DIRECTION = Direction.TO_CENTER


def at(day: date, hour: int, minute: int) -> datetime:
    return local_datetime(day, time(hour, minute))


def days_ago(n: int) -> date:
    return TODAY - timedelta(days=n)


class TestHelpers:
    def test_default_tolerance(self):
        assert default_tolerance(5) == timedelta(minutes=5)
        assert default_tolerance(20) == timedelta(minutes=10)
        assert default_tolerance(2) == timedelta(minutes=5)

    def test_bucket_times_fixed_step(self):
        times = bucket_times(NOW, timedelta(minutes=20), 3)

        assert times == [NOW, NOW + timedelta(minutes=20), NOW + timedelta(minutes=40)]

    def test_daily_steps_keep_wall_clock_across_dst(self):
        # Warsaw leaves summer time on 2026-10-25
        times = bucket_times(at(date(2026, 10, 24), 8, 0), timedelta(days=1), 3)

        assert [to_local(t).strftime("%H:%M") for t in times] == ["08:00", "08:00", "08:00"]
        assert [t.hour for t in times] == [6, 7, 7]

    def test_group_into_ranges(self):
        t = at(TODAY, 8, 0)
        buckets = [
            ForecastBucket(t, SummaryStatus.STOI),
            ForecastBucket(t + timedelta(minutes=5), SummaryStatus.STOI),
            ForecastBucket(t + timedelta(minutes=10), SummaryStatus.NEUTRAL),
        ]

        ranges = group_into_ranges(buckets, timedelta(minutes=5))

        assert [(r.status, r.duration_minutes) for r in ranges] == [
            (SummaryStatus.STOI, 10),
            (SummaryStatus.NEUTRAL, 5),
        ]
        assert ranges[0].end == ranges[1].start
        assert ranges[-1].end == t + timedelta(minutes=15)

    def test_group_into_ranges_empty(self):
        assert group_into_ranges([], timedelta(minutes=5)) == []


class TestForecaster:
    def test_no_history_gives_neutral_buckets(self, store):
        buckets = Forecaster(store).forecast(STREET, DIRECTION, NOW, 5, 12, now=NOW)

        assert len(buckets) == 12
        assert all(b.status == SummaryStatus.NEUTRAL for b in buckets)
        assert all(b.source_day is None for b in buckets)
        assert [b.time - NOW for b in buckets] == [timedelta(minutes=5 * i) for i in range(12)]

    def test_zero_count(self, store):
        assert Forecaster(store).forecast(STREET, DIRECTION, NOW, 5, 0, now=NOW) == []

    def test_invalid_arguments(self, store):
        forecaster = Forecaster(store)

        with pytest.raises(ValueError):
            forecaster.forecast(STREET, DIRECTION, NOW, 0, 12, now=NOW)
        with pytest.raises(ValueError):
            forecaster.forecast(STREET, DIRECTION, NOW, 5, -1, now=NOW)

    def test_uses_same_time_yesterday(self, store, add_reports):
        add_reports([(TrafficStatus.STOI, at(days_ago(1), 8, 2))])

        buckets = Forecaster(store).short_forecast(STREET, DIRECTION, now=NOW)

        assert buckets[0].time == at(TODAY, 8, 0)
        assert [b.status for b in buckets[:3]] == [SummaryStatus.STOI, SummaryStatus.STOI, SummaryStatus.NEUTRAL]
        assert buckets[0].source_day == days_ago(1)

    def test_prefers_most_recent_day(self, store, add_reports):
        add_reports(
            [
                (TrafficStatus.JEDZIE, at(days_ago(1), 8, 1)),
                (TrafficStatus.STOI, at(days_ago(2), 8, 1)),
                (TrafficStatus.STOI, at(days_ago(2), 8, 2)),
            ]
        )

        bucket = Forecaster(store).forecast(STREET, DIRECTION, NOW, 5, 1, now=NOW)[0]

        assert bucket.status == SummaryStatus.JEDZIE
        assert bucket.source_day == days_ago(1)

    def test_falls_back_to_older_day(self, store, add_reports):
        add_reports([(TrafficStatus.TOCZY_SIE, at(days_ago(4), 8, 0))])

        bucket = Forecaster(store).forecast(STREET, DIRECTION, NOW, 5, 1, now=NOW)[0]

        assert bucket.status == SummaryStatus.TOCZY_SIE
        assert bucket.source_day == days_ago(4)

    def test_majority_within_source_day(self, store, add_reports):
        add_reports(
            [
                (TrafficStatus.JEDZIE, at(days_ago(1), 7, 57)),
                (TrafficStatus.STOI, at(days_ago(1), 8, 0)),
                (TrafficStatus.STOI, at(days_ago(1), 8, 3)),
            ]
        )

        bucket = Forecaster(store).forecast(STREET, DIRECTION, NOW, 5, 1, now=NOW)[0]

        assert bucket.status == SummaryStatus.STOI

    def test_ignores_reports_after_now(self, store, add_reports):
        add_reports([(TrafficStatus.STOI, at(TODAY, 8, 3))])

        bucket = Forecaster(store).forecast(STREET, DIRECTION, NOW, 5, 1, now=NOW)[0]

        assert bucket.status == SummaryStatus.NEUTRAL

    def test_history_older_than_lookback_ignored(self, store, add_reports):
        add_reports([(TrafficStatus.STOI, at(days_ago(29), 8, 0))])

        bucket = Forecaster(store).forecast(STREET, DIRECTION, NOW, 5, 1, now=NOW, lookback_days=28)[0]

        assert bucket.status == SummaryStatus.NEUTRAL

    def test_weekday_aware_skips_other_weekdays(self, store, add_reports):
        add_reports(
            [
                (TrafficStatus.STOI, at(days_ago(1), 8, 0)),
                (TrafficStatus.JEDZIE, at(days_ago(7), 8, 0)),
            ]
        )

        bucket = Forecaster(store).forecast(STREET, DIRECTION, NOW, 5, 1, weekday_aware=True, now=NOW)[0]

        assert bucket.status == SummaryStatus.JEDZIE
        assert bucket.source_day == days_ago(7)

    def test_extended_forecast_shape(self, store):
        buckets = Forecaster(store).extended_forecast(STREET, DIRECTION, now=NOW)

        assert len(buckets) == 30
        assert buckets[0].time == at(TODAY, 9, 0)
        assert buckets[1].time - buckets[0].time == timedelta(minutes=20)

    def test_short_forecast_floors_start(self, store):
        buckets = Forecaster(store).short_forecast(STREET, DIRECTION, now=NOW + timedelta(minutes=7, seconds=12))

        assert buckets[0].time == at(TODAY, 8, 5)
        assert len(buckets) == 12


class TestWeekdayComparison:
    def test_one_entry_per_weekday(self, store):
        result = Forecaster(store).weekday_comparison(STREET, DIRECTION, 8, 0, now=NOW)

        assert sorted(result) == list(range(7))
        assert {entry.day for entry in result.values()} == {days_ago(n) for n in range(1, 8)}
        assert all(entry.status == SummaryStatus.NEUTRAL for entry in result.values())

    def test_slot_starts_at_target_time(self, store, add_reports):
        sunday = date(2026, 10, 11)
        monday = date(2026, 10, 12)
        tuesday = date(2026, 10, 13)
        add_reports(
            [
                (TrafficStatus.STOI, at(sunday, 8, 10)),
                (TrafficStatus.STOI, at(monday, 8, 40)),
                (TrafficStatus.STOI, at(tuesday, 7, 55)),
            ]
        )

        result = Forecaster(store).weekday_comparison(STREET, DIRECTION, 8, 0, now=NOW)

        assert result[sunday.weekday()].day == sunday
        assert result[sunday.weekday()].status == SummaryStatus.STOI
        assert result[monday.weekday()].status == SummaryStatus.NEUTRAL
        assert result[tuesday.weekday()].status == SummaryStatus.NEUTRAL

    def test_today_not_included(self, store, add_reports):
        add_reports([(TrafficStatus.STOI, at(TODAY, 5, 10))])

        result = Forecaster(store).weekday_comparison(STREET, DIRECTION, 5, 0, now=NOW)

        assert result[TODAY.weekday()].day == days_ago(7)
        assert result[TODAY.weekday()].status == SummaryStatus.NEUTRAL
