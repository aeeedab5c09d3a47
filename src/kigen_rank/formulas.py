"""Stat formula engine for kigen-rank.

Pure functions that convert aggregated activity counters into the eight
category scores. Per-unit-of-time bonuses round up (math.ceil); per-threshold
chunks round down (math.floor). Every score is clamped at zero.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, fields
from enum import Enum

from kigen_rank.activity import DailyActivity, FocusKind


class Category(str, Enum):
    DIS = "DIS"  # Discipline
    FOC = "FOC"  # Focus
    JOU = "JOU"  # Journaling
    DET = "DET"  # Determination
    MEN = "MEN"  # Mentality
    PHY = "PHY"  # Physical
    SOC = "SOC"  # Social
    PRD = "PRD"  # Productivity


CATEGORY_NAMES: dict[Category, str] = {
    Category.DIS: "Discipline",
    Category.FOC: "Focus",
    Category.JOU: "Journaling",
    Category.DET: "Determination",
    Category.MEN: "Mentality",
    Category.PHY: "Physical",
    Category.SOC: "Social",
    Category.PRD: "Productivity",
}

# Discipline
DIS_PER_SESSION = 5
DIS_PER_GOAL = 10
DIS_PER_JOURNAL = 5
DIS_PER_BODY_HOUR = 10
DIS_PER_ABORTED = 5
DIS_SOCIAL_MEDIA_CHUNK = 10  # minutes per -1 point

# Focus
FOC_PER_HOUR = 10
FOC_PER_FLOW_HOUR = 10

# Journaling
DAILY_JOURNAL_CAP = 1
JOU_PER_ENTRY = 20

# Determination: (chunk size, points per chunk)
DET_GOALS = (10, 20)
DET_JOURNAL = (10, 15)
DET_SESSIONS = (10, 50)
DET_PER_ACHIEVEMENT = 5
DET_PER_STREAK_WEEK = 50
DET_PER_TODO = 5
PHONE_USAGE_THRESHOLD_HOURS = 3
DET_UNDER_THRESHOLD_BONUS = 10
DET_PER_HOUR_OVER = 5
DET_PER_NOTECH_HOUR = 5

# Mentality
MEN_PER_MEDITATION_MINUTE = 2

# Physical
PHY_PER_BLOCK = 20
PHY_BLOCK_MINUTES = 30

# Social
SOC_PER_OUTSIDE_HOUR = 10
SOC_PER_FRIENDS_HOUR = 15

# Productivity
PRD_PER_GOAL = 15
PRD_PER_JOURNAL = 10
PRD_PER_FOCUS_HOUR = 10

# Focus sessions shorter than this credit no minutes; meditation is exempt.
MIN_SESSION_MINUTES = 5


@dataclass(frozen=True)
class CategoryStats:
    """One integer score per category."""

    DIS: int = 0
    FOC: int = 0
    JOU: int = 0
    DET: int = 0
    MEN: int = 0
    PHY: int = 0
    SOC: int = 0
    PRD: int = 0

    @classmethod
    def zero(cls) -> CategoryStats:
        return cls()

    def __add__(self, other: CategoryStats) -> CategoryStats:
        return CategoryStats(**{f.name: getattr(self, f.name) + getattr(other, f.name) for f in fields(self)})

    def __sub__(self, other: CategoryStats) -> CategoryStats:
        return CategoryStats(**{f.name: getattr(self, f.name) - getattr(other, f.name) for f in fields(self)})

    def total(self) -> int:
        """Sum of all eight scores."""
        return sum(getattr(self, f.name) for f in fields(self))

    def overall(self) -> int:
        """Mean of the eight scores, rounded half up."""
        return math.floor(self.total() / len(Category) + 0.5)

    def get(self, category: Category | str) -> int:
        return getattr(self, Category(category).value)

    def as_dict(self) -> dict[str, int]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: dict) -> CategoryStats:
        """Build from a code-keyed dict. Missing categories default to 0."""
        return cls(**{c.value: int(data.get(c.value, 0) or 0) for c in Category})


def sum_stats(items) -> CategoryStats:
    """Element-wise sum of an iterable of CategoryStats."""
    result = CategoryStats.zero()
    for item in items:
        result = result + item
    return result


def _clamp_non_negative(value: int) -> int:
    return max(0, value)


def calculate_discipline_points(
    completed_sessions: int,
    completed_goals: int,
    journal_entries: int,
    body_focus_minutes: int,
    aborted_sessions: int,
    social_media_minutes: int,
) -> int:
    points = completed_sessions * DIS_PER_SESSION
    points += completed_goals * DIS_PER_GOAL
    points += min(journal_entries, DAILY_JOURNAL_CAP) * DIS_PER_JOURNAL
    points += math.ceil(body_focus_minutes / 60) * DIS_PER_BODY_HOUR
    points -= aborted_sessions * DIS_PER_ABORTED
    points -= math.floor(social_media_minutes / DIS_SOCIAL_MEDIA_CHUNK)
    return _clamp_non_negative(points)


def calculate_focus_points(focus_minutes: int, flow_focus_minutes: int) -> int:
    """+10 per started hour in the structured modes, +10 per started flow hour.

    focus_minutes excludes flow so a flow hour is not counted twice.
    """
    points = math.ceil(focus_minutes / 60) * FOC_PER_HOUR
    points += math.ceil(flow_focus_minutes / 60) * FOC_PER_FLOW_HOUR
    return _clamp_non_negative(points)


def calculate_journaling_points(journal_entries: int) -> int:
    """+20 per entry, capped at one entry per day."""
    return min(_clamp_non_negative(journal_entries), DAILY_JOURNAL_CAP) * JOU_PER_ENTRY


def calculate_determination_points(
    completed_goals: int,
    journal_entries: int,
    completed_sessions: int,
    achievements_unlocked: int,
    habit_streak_weeks: int,
    completed_todos: int,
    phone_usage_minutes: int = 0,
    notech_minutes: int = 0,
    has_usage_access: bool = False,
) -> int:
    """Weighted mix of achievement-style signals.

    Phone usage only adjusts the score when usage access was granted.
    """
    points = (completed_goals // DET_GOALS[0]) * DET_GOALS[1]
    points += (journal_entries // DET_JOURNAL[0]) * DET_JOURNAL[1]
    points += (completed_sessions // DET_SESSIONS[0]) * DET_SESSIONS[1]
    points += achievements_unlocked * DET_PER_ACHIEVEMENT
    points += habit_streak_weeks * DET_PER_STREAK_WEEK
    points += completed_todos * DET_PER_TODO

    if has_usage_access:
        phone_hours = phone_usage_minutes / 60
        if phone_hours <= PHONE_USAGE_THRESHOLD_HOURS:
            points += DET_UNDER_THRESHOLD_BONUS
        else:
            points -= math.ceil(phone_hours - PHONE_USAGE_THRESHOLD_HOURS) * DET_PER_HOUR_OVER
        points += math.ceil(notech_minutes / 60) * DET_PER_NOTECH_HOUR

    return _clamp_non_negative(points)


def calculate_mentality_points(meditation_minutes: int) -> int:
    """+2 per meditated minute."""
    return _clamp_non_negative(meditation_minutes) * MEN_PER_MEDITATION_MINUTE


def calculate_physical_points(body_focus_minutes: int) -> int:
    """+20 per full 30 minutes of body focus."""
    return math.floor(_clamp_non_negative(body_focus_minutes) / PHY_BLOCK_MINUTES) * PHY_PER_BLOCK


def calculate_social_points(outside_minutes: int, friends_minutes: int) -> int:
    points = math.ceil(_clamp_non_negative(outside_minutes) / 60) * SOC_PER_OUTSIDE_HOUR
    points += math.ceil(_clamp_non_negative(friends_minutes) / 60) * SOC_PER_FRIENDS_HOUR
    return points


def calculate_productivity_points(completed_goals: int, journal_entries: int, total_focus_minutes: int) -> int:
    points = completed_goals * PRD_PER_GOAL
    points += journal_entries * PRD_PER_JOURNAL
    points += math.floor(total_focus_minutes / 60) * PRD_PER_FOCUS_HOUR
    return _clamp_non_negative(points)


def credited_focus_minutes(kind: FocusKind | str, minutes: int) -> int:
    """Minutes a finished session credits. Short sessions count zero except meditation."""
    minutes = _clamp_non_negative(minutes)
    if FocusKind(kind) is FocusKind.MEDITATION:
        return minutes
    return minutes if minutes >= MIN_SESSION_MINUTES else 0


def calculate_stats(activity: DailyActivity, has_usage_access: bool = False) -> CategoryStats:
    """Score one day of activity."""
    flow = activity.focus(FocusKind.FLOW)
    body = activity.focus(FocusKind.BODY)
    meditation = activity.focus(FocusKind.MEDITATION)
    notech = activity.focus(FocusKind.NOTECH)
    total_focus = activity.total_focus_minutes

    return CategoryStats(
        DIS=calculate_discipline_points(
            activity.completed_sessions,
            activity.completed_goals,
            activity.journal_entries,
            body,
            activity.aborted_sessions,
            activity.social_media_minutes,
        ),
        FOC=calculate_focus_points(total_focus - flow, flow),
        JOU=calculate_journaling_points(activity.journal_entries),
        DET=calculate_determination_points(
            activity.completed_goals,
            activity.journal_entries,
            activity.completed_sessions,
            activity.achievements_unlocked,
            activity.habit_streak_weeks,
            activity.completed_todos,
            phone_usage_minutes=activity.phone_usage_minutes,
            notech_minutes=notech,
            has_usage_access=has_usage_access,
        ),
        MEN=calculate_mentality_points(meditation),
        PHY=calculate_physical_points(body),
        SOC=calculate_social_points(activity.outside_minutes, activity.friends_minutes),
        PRD=calculate_productivity_points(activity.completed_goals, activity.journal_entries, total_focus),
    )
