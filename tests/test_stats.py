"""Tests for the streak and monthly-total computation."""

import random
from datetime import date, timedelta
from types import SimpleNamespace

from models import Checkin, PracticeEntry
from stats import (
    StatsResult,
    active_days,
    compute_stats,
    month_grid,
    normalize,
    weekly_minutes,
)

AS_OF = date(2024, 3, 15)


def minutes(day, meditation=0, prayer=0, reading=0):
    return PracticeEntry(date=day, meditation_minutes=meditation,
                         prayer_minutes=prayer, reading_minutes=reading)


def days_ago(n):
    return AS_OF - timedelta(days=n)


class TestNormalize:
    def test_minutes_entry_sums_kinds(self):
        day = normalize(minutes(AS_OF, 20, 0, 10))
        assert day.amount == 30
        assert day.active

    def test_minutes_entry_treats_missing_as_zero(self):
        day = normalize(PracticeEntry(date=AS_OF))
        assert day.amount == 0
        assert not day.active

    def test_checkin_counts_one_when_any_flag_set(self):
        assert normalize(Checkin(date=AS_OF, prayer=True)).amount == 1
        assert normalize(Checkin(date=AS_OF, meditation=False, prayer=False, reading=False)).amount == 0

    def test_plain_objects_are_accepted(self):
        entry = SimpleNamespace(date=AS_OF, meditation=False, prayer=False, reading=True)
        assert normalize(entry).active


class TestComputeStats:
    def test_empty_history(self):
        assert compute_stats([], AS_OF) == StatsResult(0, 0, 0)

    def test_seven_consecutive_days_ending_today(self):
        entries = [minutes(days_ago(i), meditation=10) for i in range(7)]
        result = compute_stats(entries, AS_OF)
        assert result.current_streak == 7
        assert result.best_streak == 7

    def test_missing_day_breaks_both_streaks(self):
        entries = [minutes(days_ago(i), prayer=5) for i in (0, 1, 2, 4)]
        result = compute_stats(entries, AS_OF)
        assert result.best_streak == 3
        assert result.current_streak == 3

    def test_inactive_day_breaks_both_streaks(self):
        entries = [minutes(days_ago(i), prayer=5) for i in (0, 1, 2, 4)]
        entries.append(minutes(days_ago(3)))
        result = compute_stats(entries, AS_OF)
        assert result.best_streak == 3
        assert result.current_streak == 3

    def test_streak_ending_yesterday_is_still_current(self):
        entries = [minutes(days_ago(i), reading=15) for i in (1, 2)]
        assert compute_stats(entries, AS_OF).current_streak == 2

    def test_stale_streak_is_not_current(self):
        entries = [minutes(days_ago(i), reading=15) for i in (2, 3, 4)]
        result = compute_stats(entries, AS_OF)
        assert result.current_streak == 0
        assert result.best_streak == 3

    def test_best_streak_found_deeper_in_history(self):
        entries = [minutes(days_ago(0), meditation=5)]
        entries += [minutes(days_ago(i), meditation=5) for i in range(10, 15)]
        result = compute_stats(entries, AS_OF)
        assert result.current_streak == 1
        assert result.best_streak == 5

    def test_inactive_today_stops_current_streak(self):
        entries = [minutes(days_ago(0))] + [minutes(days_ago(i), prayer=10) for i in (1, 2)]
        result = compute_stats(entries, AS_OF)
        assert result.current_streak == 0
        assert result.best_streak == 2

    def test_future_dated_newest_entry_zeroes_current_streak(self):
        entries = [minutes(AS_OF + timedelta(days=1), meditation=10)]
        entries += [minutes(days_ago(i), meditation=10) for i in (0, 1)]
        result = compute_stats(entries, AS_OF)
        assert result.current_streak == 0
        assert result.best_streak == 3

    def test_monthly_total_only_counts_reference_month(self):
        entries = [
            minutes(date(2024, 3, 1), meditation=30),
            minutes(date(2024, 2, 1), meditation=100),
            minutes(date(2023, 3, 10), meditation=100),
        ]
        assert compute_stats(entries, AS_OF).monthly_total == 30

    def test_concrete_scenario(self):
        entries = [
            minutes(days_ago(0), meditation=20, prayer=0, reading=10),
            minutes(days_ago(1), meditation=0, prayer=15, reading=0),
            minutes(days_ago(2)),
        ]
        assert compute_stats(entries, AS_OF) == StatsResult(
            current_streak=2, best_streak=2, monthly_total=45)

    def test_order_independence_and_idempotence(self):
        entries = [minutes(days_ago(i), reading=i + 1) for i in (0, 1, 2, 5, 6, 9)]
        expected = compute_stats(entries, AS_OF)
        shuffled = list(entries)
        random.Random(7).shuffle(shuffled)
        assert compute_stats(shuffled, AS_OF) == expected
        assert compute_stats(entries, AS_OF) == expected

    def test_checkins_count_active_days_in_month(self):
        entries = [
            Checkin(date=days_ago(0), meditation=True),
            Checkin(date=days_ago(1), reading=True, prayer=True),
            Checkin(date=days_ago(2)),
        ]
        result = compute_stats(entries, AS_OF)
        assert result == StatsResult(current_streak=2, best_streak=2, monthly_total=2)

    def test_to_dict_keys(self):
        assert StatsResult(1, 2, 3).to_dict() == {
            "currentStreak": 1, "bestStreak": 2, "monthlyTotal": 3}


def test_weekly_minutes_fills_missing_days():
    entries = [minutes(days_ago(0), meditation=10), minutes(days_ago(3), prayer=25),
               minutes(days_ago(9), reading=50)]
    week = weekly_minutes(entries, AS_OF)
    assert [d for d, _ in week] == [days_ago(i) for i in range(6, -1, -1)]
    assert [m for _, m in week] == [0, 0, 0, 25, 0, 0, 10]


def test_active_days_in_month():
    entries = [minutes(date(2024, 3, 2), reading=5), minutes(date(2024, 3, 3)),
               minutes(date(2024, 4, 2), reading=5)]
    assert active_days(entries, 2024, 3) == {date(2024, 3, 2)}


def test_month_grid_starts_sunday_and_covers_month():
    weeks = month_grid(2024, 3)
    assert weeks[0][0] == date(2024, 2, 25)
    assert weeks[-1][-1] == date(2024, 4, 6)
    assert all(len(w) == 7 for w in weeks)
    assert all(w[0].weekday() == 6 for w in weeks)
