"""
Practice statistics: streaks, monthly totals and the small per-day summaries
used by the dashboard and calendar.

Everything here is pure. Callers fetch entries from the database and pass
the reference date in explicitly; nothing reads the clock.
"""
from dataclasses import dataclass
from datetime import date, timedelta

ACTIVITY_KINDS = ("meditation", "prayer", "reading")

ONE_DAY = timedelta(days=1)


@dataclass(frozen=True)
class DayActivity:
    """One entry reduced to what the statistics need."""
    date: date
    amount: int

    @property
    def active(self) -> bool:
        return self.amount > 0


@dataclass(frozen=True)
class StatsResult:
    current_streak: int = 0
    best_streak: int = 0
    monthly_total: int = 0

    def to_dict(self):
        return {
            "currentStreak": self.current_streak,
            "bestStreak": self.best_streak,
            "monthlyTotal": self.monthly_total,
        }


def normalize(entry) -> DayActivity:
    """Reduce a minutes entry or a yes/no check-in to a DayActivity.

    Minutes entries carry ``<kind>_minutes`` attributes and count their summed
    minutes; check-ins carry one boolean per kind and count 1 when any is set.
    """
    if hasattr(entry, "meditation_minutes"):
        amount = sum(max(0, getattr(entry, f"{k}_minutes") or 0) for k in ACTIVITY_KINDS)
    else:
        amount = 1 if any(getattr(entry, k, False) for k in ACTIVITY_KINDS) else 0
    return DayActivity(date=entry.date, amount=amount)


def compute_stats(entries, as_of: date) -> StatsResult:
    """Current streak, best streak and monthly total for one user's history.

    The current streak only counts while the walk (newest first) stays live:
    the newest entry must fall on ``as_of`` or the day before, and every
    following active entry must be exactly one day older than the last.
    An inactive entry or a missing day resets the running count.
    """
    days = sorted((normalize(e) for e in entries), key=lambda d: d.date, reverse=True)

    current = best = run = monthly = 0
    tracking = True
    previous = None

    for day in days:
        if day.date.year == as_of.year and day.date.month == as_of.month:
            monthly += day.amount

        if not day.active:
            run = 0
            tracking = False
            previous = day.date
            continue

        contiguous = previous is not None and previous - day.date == ONE_DAY
        if previous is not None and not contiguous:
            run = 0
        run += 1
        best = max(best, run)

        if tracking:
            if previous is None:
                eligible = day.date in (as_of, as_of - ONE_DAY)
            else:
                eligible = contiguous
            if eligible:
                current = run
            else:
                tracking = False

        previous = day.date

    return StatsResult(current_streak=current, best_streak=best, monthly_total=monthly)


def weekly_minutes(entries, as_of: date):
    """[(date, amount), ...] for the seven days ending at ``as_of``, oldest first."""
    by_date = {}
    for e in entries:
        day = normalize(e)
        by_date[day.date] = day.amount
    start = as_of - timedelta(days=6)
    return [(start + timedelta(days=i), by_date.get(start + timedelta(days=i), 0)) for i in range(7)]


def active_days(entries, year: int, month: int):
    """Dates in the given month whose entry counts as practice."""
    result = set()
    for e in entries:
        day = normalize(e)
        if day.active and day.date.year == year and day.date.month == month:
            result.add(day.date)
    return result


def month_grid(year: int, month: int):
    """Weeks (Sunday first) covering the month, padded with neighbouring days."""
    first = date(year, month, 1)
    nxt = date(year + (month == 12), month % 12 + 1, 1)
    last = nxt - ONE_DAY
    # date.weekday(): Monday=0; shift so the grid starts on Sunday
    start = first - timedelta(days=(first.weekday() + 1) % 7)
    end = last + timedelta(days=(5 - last.weekday()) % 7)
    weeks, day = [], start
    while day <= end:
        weeks.append([day + timedelta(days=i) for i in range(7)])
        day += timedelta(days=7)
    return weeks
