"""Points ledger: append-only history of point awards plus per-day rollups.

History is stored newest first under ``points_history`` and truncated to a
retention ceiling after every append. Daily summaries live under
``daily_summaries`` and are updated incrementally, so pruning old history
never changes a summary that was already committed.
"""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum

from kigen_rank.db import KeyValueStore
from kigen_rank.formulas import Category
from kigen_rank.streaks import PointsStreak, calculate_points_streak

logger = logging.getLogger(__name__)

POINTS_HISTORY_KEY = "points_history"
DAILY_SUMMARIES_KEY = "daily_summaries"
DEFAULT_RETENTION = 1000


class PointSource(str, Enum):
    JOURNAL = "journal"
    GOAL_COMPLETED = "goal_completed"
    GOAL_CREATED = "goal_created"
    FOCUS_SESSION = "focus_session"
    REMINDER_COMPLETED = "reminder_completed"
    TODO_COMPLETED = "todo_completed"
    TODO_CREATED = "todo_created"
    SOCIAL_INTERACTION = "social_interaction"
    TIME_OUTSIDE = "time_outside"
    TIME_WITH_FRIENDS = "time_with_friends"
    HABIT_STREAK = "habit_streak"
    ACHIEVEMENT_UNLOCKED = "achievement_unlocked"
    DAILY_BONUS = "daily_bonus"
    WEEKLY_BONUS = "weekly_bonus"
    MONTHLY_BONUS = "monthly_bonus"


@dataclass(frozen=True)
class PointHistoryEntry:
    id: str
    source: PointSource
    points: int
    category: Category
    description: str
    timestamp: str  # local ISO-8601 with offset
    metadata: dict | None = None

    @property
    def date(self) -> str:
        """Local calendar day the award was made on."""
        return self.timestamp[:10]

    def to_dict(self) -> dict:
        data = asdict(self)
        data["source"] = self.source.value
        data["category"] = self.category.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> PointHistoryEntry:
        return cls(
            id=data["id"],
            source=PointSource(data["source"]),
            points=int(data["points"]),
            category=Category(data["category"]),
            description=data.get("description", ""),
            timestamp=data["timestamp"],
            metadata=data.get("metadata"),
        )


@dataclass
class DailyPointsSummary:
    date: str
    total_points: int = 0
    points_by_category: dict[str, int] = field(default_factory=dict)
    points_by_source: dict[str, int] = field(default_factory=dict)
    entry_count: int = 0
    top_source: str = PointSource.JOURNAL.value

    def add(self, entry: PointHistoryEntry) -> None:
        self.total_points += entry.points
        self.entry_count += 1
        cat = entry.category.value
        src = entry.source.value
        self.points_by_category[cat] = self.points_by_category.get(cat, 0) + entry.points
        self.points_by_source[src] = self.points_by_source.get(src, 0) + entry.points
        self.top_source = max(self.points_by_source, key=self.points_by_source.__getitem__)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> DailyPointsSummary:
        return cls(
            date=data["date"],
            total_points=int(data.get("total_points", 0)),
            points_by_category=dict(data.get("points_by_category") or {}),
            points_by_source=dict(data.get("points_by_source") or {}),
            entry_count=int(data.get("entry_count", 0)),
            top_source=data.get("top_source", PointSource.JOURNAL.value),
        )


@dataclass
class WeeklyPointsSummary:
    week_start: str
    total_points: int
    daily_breakdown: list[DailyPointsSummary]
    average_per_day: float
    best_day: str
    worst_day: str


class PointsLedger:
    def __init__(
        self,
        store: KeyValueStore,
        clock: Callable[[], datetime] | None = None,
        retention: int = DEFAULT_RETENTION,
    ) -> None:
        self.store = store
        self.clock = clock or datetime.now
        self.retention = retention

    # -- storage -------------------------------------------------------

    def _load_history(self) -> list[dict]:
        try:
            raw = self.store.get(POINTS_HISTORY_KEY)
            data = json.loads(raw) if raw else []
            return data if isinstance(data, list) else []
        except Exception:
            logger.warning("Unreadable points history, treating as empty", exc_info=True)
            return []

    def _load_summaries(self) -> dict[str, dict]:
        try:
            raw = self.store.get(DAILY_SUMMARIES_KEY)
            data = json.loads(raw) if raw else {}
            return data if isinstance(data, dict) else {}
        except Exception:
            logger.warning("Unreadable daily summaries, treating as empty", exc_info=True)
            return {}

    # -- writes --------------------------------------------------------

    def record_points(
        self,
        source: PointSource | str,
        amount: int,
        category: Category | str,
        description: str,
        metadata: dict | None = None,
    ) -> PointHistoryEntry:
        """Append one award, prune to the retention window, update the day's summary."""
        entry = PointHistoryEntry(
            id=uuid.uuid4().hex,
            source=PointSource(source),
            points=int(amount),
            category=Category(category),
            description=description,
            timestamp=self.clock().astimezone().isoformat(),
            metadata=metadata,
        )
        try:
            history = self._load_history()
            history.insert(0, entry.to_dict())
            self.store.set(POINTS_HISTORY_KEY, json.dumps(history[: self.retention]))
            self._update_daily_summary(entry)
        except Exception:
            logger.exception("Failed to record %s points from %s", amount, entry.source.value)
            return entry

        logger.debug("Points recorded: +%d %s (%s) %s", entry.points, entry.category.value, entry.source.value, description)
        return entry

    def _update_daily_summary(self, entry: PointHistoryEntry) -> None:
        summaries = self._load_summaries()
        existing = summaries.get(entry.date)
        summary = DailyPointsSummary.from_dict(existing) if existing else DailyPointsSummary(date=entry.date)
        summary.add(entry)
        summaries[entry.date] = summary.to_dict()
        self.store.set(DAILY_SUMMARIES_KEY, json.dumps(summaries))

    def clear_all_history(self) -> None:
        self.store.remove(POINTS_HISTORY_KEY)
        self.store.remove(DAILY_SUMMARIES_KEY)
        logger.info("Points history cleared")

    # -- reads ---------------------------------------------------------

    def get_points_history(
        self,
        limit: int = 50,
        source: PointSource | str | None = None,
        category: Category | str | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> list[PointHistoryEntry]:
        """Filtered entries, newest first. Date bounds are inclusive local days."""
        if limit <= 0:
            return []
        entries = []
        for raw in self._load_history():
            try:
                entry = PointHistoryEntry.from_dict(raw)
            except (KeyError, ValueError, TypeError):
                logger.warning("Skipping malformed history entry %r", raw)
                continue
            if source is not None and entry.source != PointSource(source):
                continue
            if category is not None and entry.category != Category(category):
                continue
            if start_date is not None and entry.date < start_date:
                continue
            if end_date is not None and entry.date > end_date:
                continue
            entries.append(entry)
            if len(entries) >= limit:
                break
        return entries

    def get_daily_summary(self, day: str) -> DailyPointsSummary | None:
        data = self._load_summaries().get(day)
        return DailyPointsSummary.from_dict(data) if data else None

    def get_recent_daily_summaries(self, days: int = 7) -> list[DailyPointsSummary]:
        """The most recent summaries that exist, newest first."""
        summaries = self._load_summaries()
        return [DailyPointsSummary.from_dict(summaries[d]) for d in sorted(summaries, reverse=True)[:days]]

    def generate_weekly_summary(self, week_start: str) -> WeeklyPointsSummary:
        """Roll up seven days starting at week_start. Average is over all seven days."""
        start = date.fromisoformat(week_start)
        summaries = self._load_summaries()
        breakdown = []
        for offset in range(7):
            day = (start + timedelta(days=offset)).isoformat()
            if day in summaries:
                breakdown.append(DailyPointsSummary.from_dict(summaries[day]))

        total = sum(s.total_points for s in breakdown)
        best = max(breakdown, key=lambda s: s.total_points, default=None)
        worst = min(breakdown, key=lambda s: s.total_points, default=None)
        return WeeklyPointsSummary(
            week_start=week_start,
            total_points=total,
            daily_breakdown=breakdown,
            average_per_day=total / 7 if breakdown else 0.0,
            best_day=best.date if best else week_start,
            worst_day=worst.date if worst else week_start,
        )

    def get_total_points_for_range(self, start_date: str, end_date: str) -> int:
        history = self.get_points_history(self.retention, start_date=start_date, end_date=end_date)
        return sum(e.points for e in history)

    def get_category_breakdown(self, start_date: str, end_date: str) -> dict[str, int]:
        breakdown: dict[str, int] = {}
        for e in self.get_points_history(self.retention, start_date=start_date, end_date=end_date):
            breakdown[e.category.value] = breakdown.get(e.category.value, 0) + e.points
        return breakdown

    def get_source_breakdown(self, start_date: str, end_date: str) -> dict[str, int]:
        breakdown: dict[str, int] = {}
        for e in self.get_points_history(self.retention, start_date=start_date, end_date=end_date):
            breakdown[e.source.value] = breakdown.get(e.source.value, 0) + e.points
        return breakdown

    def get_points_streak(self) -> PointsStreak:
        totals = {d: int(s.get("total_points", 0)) for d, s in self._load_summaries().items()}
        return calculate_points_streak(totals, self.clock().date().isoformat())
