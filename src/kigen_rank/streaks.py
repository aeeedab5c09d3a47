"""Points streak tracking for kigen-rank."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta


@dataclass
class PointsStreak:
    current: int
    best: int
    last_date: str | None  # YYYY-MM-DD, most recent day of the current streak


def _parse_date(d: str) -> date:
    """Parse a YYYY-MM-DD string to a date object."""
    return date.fromisoformat(d)


def count_back(date_set: set[date], start: date) -> int:
    """Count consecutive days in date_set going backwards from start."""
    streak = 0
    current = start
    while current in date_set:
        streak += 1
        current -= timedelta(days=1)
    return streak


def longest_run(sorted_dates: list[date]) -> int:
    """Longest run of consecutive calendar days in an ascending list."""
    if not sorted_dates:
        return 0
    longest = 1
    streak = 1
    for prev, curr in zip(sorted_dates, sorted_dates[1:]):
        if (curr - prev).days == 1:
            streak += 1
        else:
            streak = 1
        longest = max(longest, streak)
    return longest


def calculate_points_streak(daily_totals: dict[str, int], today: str) -> PointsStreak:
    """Streak of consecutive days that earned points.

    Rules:
    - Earning day = a date whose total is > 0
    - Current streak ends today, or yesterday when today has no points yet
    - Best streak is the longest run anywhere in the history
    """
    earning = {_parse_date(d) for d, total in daily_totals.items() if total > 0}
    if not earning:
        return PointsStreak(current=0, best=0, last_date=None)

    today_date = _parse_date(today)
    start = today_date if today_date in earning else today_date - timedelta(days=1)
    current = count_back(earning, start)
    best = max(longest_run(sorted(earning)), current)

    return PointsStreak(
        current=current,
        best=best,
        last_date=start.isoformat() if current else None,
    )
