"""Per-day activity counters, keyed by local calendar date."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterator
from dataclasses import asdict, dataclass, field, fields
from datetime import date, datetime
from enum import Enum

from kigen_rank.db import KeyValueStore

logger = logging.getLogger(__name__)

DAILY_ACTIVITY_PREFIX = "daily_activity_"


class FocusKind(str, Enum):
    FLOW = "flow"
    MEDITATION = "meditation"
    BODY = "body"
    NOTECH = "notech"


def _zero_focus() -> dict[str, int]:
    return {kind.value: 0 for kind in FocusKind}


@dataclass
class DailyActivity:
    date: str  # YYYY-MM-DD, local calendar day
    journal_entries: int = 0
    completed_sessions: int = 0
    aborted_sessions: int = 0
    completed_goals: int = 0
    created_goals: int = 0
    achievements_unlocked: int = 0
    habit_streak_weeks: int = 0
    completed_todos: int = 0
    created_todos: int = 0
    focus_minutes: dict[str, int] = field(default_factory=_zero_focus)
    phone_usage_minutes: int = 0
    social_media_minutes: int = 0
    outside_minutes: int = 0
    friends_minutes: int = 0

    def focus(self, kind: FocusKind | str) -> int:
        """Minutes focused in one mode."""
        key = kind.value if isinstance(kind, FocusKind) else kind
        return self.focus_minutes.get(key, 0)

    @property
    def total_focus_minutes(self) -> int:
        return sum(self.focus_minutes.values())

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> DailyActivity:
        """Build from stored JSON, ignoring unknown keys and filling gaps with zeros."""
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in known}
        focus = _zero_focus()
        for kind, minutes in (data.get("focus_minutes") or {}).items():
            focus[kind] = int(minutes)
        kwargs["focus_minutes"] = focus
        return cls(**kwargs)


def _clamp(activity: DailyActivity) -> DailyActivity:
    """Replace negative counters with zero."""
    for f in fields(activity):
        value = getattr(activity, f.name)
        if isinstance(value, int) and value < 0:
            setattr(activity, f.name, 0)
    activity.focus_minutes = {k: max(0, v) for k, v in activity.focus_minutes.items()}
    return activity


class ActivityStore:
    """Owns every DailyActivity record. No other component writes them."""

    def __init__(self, store: KeyValueStore, clock: Callable[[], datetime] | None = None) -> None:
        self.store = store
        self.clock = clock or datetime.now

    def today(self) -> str:
        """Today's date in the caller's local calendar."""
        return self.clock().date().isoformat()

    @staticmethod
    def _key(day: str) -> str:
        return f"{DAILY_ACTIVITY_PREFIX}{day}"

    def get_daily_activity(self, day: str | date) -> DailyActivity:
        """Return the activity for a day, creating and persisting zeros if absent.

        A store read or parse failure yields the zero default without raising.
        """
        day_str = day.isoformat() if isinstance(day, date) else day
        try:
            raw = self.store.get(self._key(day_str))
            if raw:
                return DailyActivity.from_dict(json.loads(raw))
        except Exception:
            logger.warning("Unreadable daily activity for %s, using zeros", day_str, exc_info=True)
            return DailyActivity(date=day_str)

        activity = DailyActivity(date=day_str)
        try:
            self.save_daily_activity(activity)
        except Exception:
            logger.warning("Could not persist default activity for %s", day_str, exc_info=True)
        return activity

    def peek_daily_activity(self, day: str) -> DailyActivity:
        """Like get_daily_activity but never writes. Used by read-only scans."""
        try:
            raw = self.store.get(self._key(day))
            if raw:
                return DailyActivity.from_dict(json.loads(raw))
        except Exception:
            logger.warning("Unreadable daily activity for %s, using zeros", day, exc_info=True)
        return DailyActivity(date=day)

    def save_daily_activity(self, activity: DailyActivity) -> None:
        """Full overwrite by date key."""
        _clamp(activity)
        self.store.set(self._key(activity.date), json.dumps(activity.to_dict()))

    def get_today_activity(self) -> DailyActivity:
        return self.get_daily_activity(self.today())

    def update_today_activity(self, **changes: int | dict) -> DailyActivity:
        """Read-modify-write today's record with the given field values."""
        activity = self.get_today_activity()
        for name, value in changes.items():
            if not hasattr(activity, name) or name == "date":
                raise AttributeError(f"DailyActivity has no field {name!r}")
            setattr(activity, name, value)
        self.save_daily_activity(activity)
        return activity

    def list_activity_dates(self) -> list[str]:
        """All dates with a stored record, ascending."""
        return [k[len(DAILY_ACTIVITY_PREFIX):] for k in self.store.list_keys(DAILY_ACTIVITY_PREFIX)]

    def get_month_activities(self, month: str, through: str | None = None) -> list[DailyActivity]:
        """Stored activities for a YYYY-MM month, optionally up to a date inclusive."""
        result = []
        for day in self.list_activity_dates():
            if not day.startswith(month):
                continue
            if through is not None and day > through:
                continue
            result.append(self.peek_daily_activity(day))
        return result

    def iter_all_activities(self) -> Iterator[DailyActivity]:
        for day in self.list_activity_dates():
            yield self.peek_daily_activity(day)

    def reset(self) -> int:
        """Delete every stored activity. Returns the number removed."""
        keys = self.store.list_keys(DAILY_ACTIVITY_PREFIX)
        for key in keys:
            self.store.remove(key)
        return len(keys)
