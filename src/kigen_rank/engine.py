"""StatsEngine: the explicitly constructed rating engine.

Every recording operation follows the same sequence while holding the lock
for today's date: update the day's activity, append one ledger entry per
category that gained points, merge into the monthly record, invalidate the
rating cache. Achievement checks and leaderboard pushes are then handed to
the background runner.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from kigen_rank.activity import ActivityStore, DailyActivity, FocusKind
from kigen_rank.aggregator import PeriodAggregator, StaticUsagePermission, UsagePermissionProvider
from kigen_rank.background import BackgroundTasks
from kigen_rank.cache import DEFAULT_TTL_HOURS, RatingCache, RatingSnapshot
from kigen_rank.db import KeyValueStore
from kigen_rank.formulas import CATEGORY_NAMES, Category, CategoryStats, calculate_stats, credited_focus_minutes
from kigen_rank.leaderboard import LeaderboardSync, RankingService
from kigen_rank.ledger import DEFAULT_RETENTION, PointSource, PointsLedger
from kigen_rank.tiers import BASE_TIER, is_demotion

logger = logging.getLogger(__name__)

USER_PROFILE_KEY = "user_profile"
LEADERBOARD_LAST_SYNCED_KEY = "leaderboard_last_synced"
SOCIAL_KINDS = {"outside": PointSource.TIME_OUTSIDE, "friends": PointSource.TIME_WITH_FRIENDS}


class StatsEngine:
    def __init__(
        self,
        store: KeyValueStore,
        clock: Callable[[], datetime] | None = None,
        usage: UsagePermissionProvider | None = None,
        ranking: RankingService | None = None,
        achievement_checker: Callable[[], object] | None = None,
        tasks: BackgroundTasks | None = None,
        cache_ttl_hours: float = DEFAULT_TTL_HOURS,
        ledger_retention: int = DEFAULT_RETENTION,
    ) -> None:
        self.store = store
        self.clock = clock or datetime.now
        self.usage = usage or StaticUsagePermission(False)
        self.activities = ActivityStore(store, self.clock)
        self.ledger = PointsLedger(store, self.clock, retention=ledger_retention)
        self.aggregator = PeriodAggregator(store, self.activities, self.usage, self.clock)
        self.cache = RatingCache(store, self.aggregator, self.clock, ttl_hours=cache_ttl_hours)
        self.leaderboard = LeaderboardSync(ranking) if ranking is not None else None
        self.achievement_checker = achievement_checker
        self.tasks = tasks or BackgroundTasks()
        self._date_locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._sync_lock = threading.Lock()

    def _lock_for(self, day: str) -> threading.Lock:
        with self._locks_guard:
            return self._date_locks.setdefault(day, threading.Lock())

    # -- mutation pipeline ---------------------------------------------

    def _mutate(
        self,
        change: Callable[[DailyActivity], None],
        source: PointSource,
        description: str,
        metadata: dict | None = None,
    ) -> CategoryStats:
        """Apply change to today's activity and propagate it. Returns the score delta."""
        today = self.activities.today()
        with self._lock_for(today):
            granted = self.aggregator.has_usage_access()
            activity = self.activities.get_daily_activity(today)
            before = calculate_stats(activity, granted)
            change(activity)
            self.activities.save_daily_activity(activity)
            delta = calculate_stats(activity, granted) - before

            for category in Category:
                points = delta.get(category)
                if points > 0:
                    self.ledger.record_points(
                        source, points, category, f"{description} ({CATEGORY_NAMES[category]})", metadata
                    )
            self.aggregator.update_monthly_accumulation()
            self.cache.invalidate()

        if self.achievement_checker is not None and source is not PointSource.ACHIEVEMENT_UNLOCKED:
            self.tasks.submit("achievement-check", self.achievement_checker)
        if delta.total() > 0:
            self.sync_user_to_leaderboard()
        return delta

    def record_journal_entry(self) -> CategoryStats:
        def change(a: DailyActivity) -> None:
            a.journal_entries += 1

        return self._mutate(change, PointSource.JOURNAL, "Journal entry")

    def record_focus_session(self, kind: FocusKind | str, minutes: int, completed: bool = True) -> CategoryStats:
        """Record a finished or aborted focus session.

        Completed sessions shorter than the minimum are ignored, except meditation.
        """
        kind = FocusKind(kind)
        credited = credited_focus_minutes(kind, minutes)

        def change(a: DailyActivity) -> None:
            if not completed:
                a.aborted_sessions += 1
                return
            if credited == 0:
                return
            a.completed_sessions += 1
            a.focus_minutes[kind.value] = a.focus(kind) + credited

        label = f"{kind.value.capitalize()} session, {minutes} min" if completed else f"Aborted {kind.value} session"
        return self._mutate(
            change,
            PointSource.FOCUS_SESSION,
            label,
            {"session_duration": minutes, "activity_type": kind.value, "completed": completed},
        )

    def record_goal_completion(self, title: str | None = None) -> CategoryStats:
        def change(a: DailyActivity) -> None:
            a.completed_goals += 1

        return self._mutate(change, PointSource.GOAL_COMPLETED, "Goal completed", {"goal_title": title} if title else None)

    def record_goal_created(self, title: str | None = None) -> CategoryStats:
        def change(a: DailyActivity) -> None:
            a.created_goals += 1

        return self._mutate(change, PointSource.GOAL_CREATED, "Goal created", {"goal_title": title} if title else None)

    def record_todo_completion(self, title: str | None = None) -> CategoryStats:
        def change(a: DailyActivity) -> None:
            a.completed_todos += 1

        return self._mutate(change, PointSource.TODO_COMPLETED, "Todo completed", {"task_title": title} if title else None)

    def record_todo_created(self, title: str | None = None) -> CategoryStats:
        def change(a: DailyActivity) -> None:
            a.created_todos += 1

        return self._mutate(change, PointSource.TODO_CREATED, "Todo created", {"task_title": title} if title else None)

    def record_social_time(self, kind: str, minutes: int) -> CategoryStats:
        """Time spent outside or with friends."""
        if kind not in SOCIAL_KINDS:
            raise ValueError(f"Unknown social kind {kind!r}, expected one of {sorted(SOCIAL_KINDS)}")
        minutes = max(0, int(minutes))

        def change(a: DailyActivity) -> None:
            if kind == "outside":
                a.outside_minutes += minutes
            else:
                a.friends_minutes += minutes

        return self._mutate(
            change, SOCIAL_KINDS[kind], f"Time {kind}, {minutes} min", {"hours_spent": round(minutes / 60, 2)}
        )

    def record_achievement_unlocked(self, achievement_id: str | None = None) -> CategoryStats:
        def change(a: DailyActivity) -> None:
            a.achievements_unlocked += 1

        return self._mutate(
            change,
            PointSource.ACHIEVEMENT_UNLOCKED,
            "Achievement unlocked",
            {"achievement_id": achievement_id} if achievement_id else None,
        )

    def record_habit_streak_week(self, streak_count: int | None = None) -> CategoryStats:
        def change(a: DailyActivity) -> None:
            a.habit_streak_weeks += 1

        return self._mutate(
            change, PointSource.HABIT_STREAK, "Habit streak week", {"streak_count": streak_count} if streak_count else None
        )

    def update_phone_usage(self, phone_minutes: int, social_media_minutes: int | None = None) -> CategoryStats:
        """Set today's phone and social-media usage totals as reported by the collector."""

        def change(a: DailyActivity) -> None:
            a.phone_usage_minutes = max(0, int(phone_minutes))
            if social_media_minutes is not None:
                a.social_media_minutes = max(0, int(social_media_minutes))

        return self._mutate(change, PointSource.DAILY_BONUS, "Phone usage update")

    # -- reads ---------------------------------------------------------

    def get_current_rating(self) -> RatingSnapshot:
        """Current snapshot. Logs a warning if the tier went down since the last read."""
        snapshot = self.cache.get_current_rating()
        try:
            profile = self.ensure_user_profile()
            previous = profile.get("tier")
            if is_demotion(previous, snapshot.tier):
                logger.warning(
                    "Tier demotion detected: %s -> %s at %d points", previous, snapshot.tier, snapshot.total_points
                )
            if previous != snapshot.tier:
                profile["tier"] = snapshot.tier
                self._save_profile(profile)
        except Exception:
            logger.warning("Could not update profile tier", exc_info=True)
        return snapshot

    def get_daily_stats(self, day: str | None = None) -> CategoryStats:
        return self.aggregator.daily_stats(day)

    def get_monthly_stats(self, month: str | None = None) -> CategoryStats:
        return self.aggregator.monthly_stats(month)

    def get_lifetime_stats(self) -> CategoryStats:
        return self.aggregator.lifetime_stats()

    # -- profile & leaderboard -----------------------------------------

    def _load_profile(self) -> dict | None:
        raw = self.store.get(USER_PROFILE_KEY)
        if not raw:
            return None
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("Unreadable user profile, recreating")
            return None
        return data if isinstance(data, dict) else None

    def _save_profile(self, profile: dict) -> None:
        profile["last_updated"] = self.clock().astimezone().isoformat()
        self.store.set(USER_PROFILE_KEY, json.dumps(profile))

    def ensure_user_profile(self, username: str | None = None) -> dict:
        """Return the local profile, creating it on first use. A username overwrites the stored one."""
        profile = self._load_profile()
        if profile is None:
            profile = {
                "id": uuid.uuid4().hex,
                "username": username,
                "tier": BASE_TIER,
                "created_at": self.clock().astimezone().isoformat(),
            }
            self._save_profile(profile)
        elif username and profile.get("username") != username:
            profile["username"] = username
            self._save_profile(profile)
        return profile

    def push_leaderboard(self, force: bool = False) -> dict | None:
        """Push the current snapshot if total points grew since the last push.

        Returns the pushed entry, or None when skipped. Raises ValueError when
        no username is configured.
        """
        if self.leaderboard is None:
            return None
        with self._sync_lock:
            profile = self.ensure_user_profile()
            snapshot = self.get_current_rating()
            last = self.store.get(LEADERBOARD_LAST_SYNCED_KEY)
            if not force and last is not None and snapshot.total_points <= int(last):
                logger.debug("Leaderboard already at %s points, skipping push", last)
                return None
            entry = self.leaderboard.sync(profile, snapshot)
            self.store.set(LEADERBOARD_LAST_SYNCED_KEY, str(snapshot.total_points))
            return entry

    def sync_user_to_leaderboard(self) -> None:
        """Schedule a leaderboard push and return immediately."""
        if self.leaderboard is None:
            return
        profile = self._load_profile()
        if not profile or not profile.get("username"):
            logger.debug("No leaderboard username set, skipping sync")
            return
        self.tasks.submit("leaderboard-sync", self.push_leaderboard)

    # -- lifecycle -----------------------------------------------------

    def reset_all(self) -> None:
        """Delete all activity, history, monthly records and cached state. Keeps the profile."""
        today = self.activities.today()
        with self._lock_for(today):
            removed = self.activities.reset()
            self.ledger.clear_all_history()
            self.aggregator.reset()
            self.cache.invalidate()
            self.store.remove(LEADERBOARD_LAST_SYNCED_KEY)
            reset_checker = getattr(self.achievement_checker, "reset", None)
            if reset_checker is not None:
                reset_checker()
            profile = self._load_profile()
            if profile is not None:
                profile["tier"] = BASE_TIER
                self._save_profile(profile)
        logger.info("Reset removed %d days of activity", removed)

    def close(self) -> None:
        self.tasks.wait()
        self.tasks.shutdown()
        close = getattr(self.store, "close", None)
        if close is not None:
            close()


def build_engine(
    db_path: Path | None = None,
    config_path: Path | None = None,
    store: KeyValueStore | None = None,
) -> StatsEngine:
    """Wire a StatsEngine from the config file and the default database."""
    from kigen_rank.achievements import AchievementChecker
    from kigen_rank.config import get_cache_ttl_hours, get_leaderboard_dir, get_ledger_retention, get_usage_access
    from kigen_rank.db import Database
    from kigen_rank.leaderboard import DirectoryRankingService

    store = store or Database(db_path)
    lb_dir = get_leaderboard_dir(config_path)
    engine = StatsEngine(
        store,
        usage=StaticUsagePermission(get_usage_access(config_path)),
        ranking=DirectoryRankingService(lb_dir) if lb_dir else None,
        cache_ttl_hours=get_cache_ttl_hours(config_path),
        ledger_retention=get_ledger_retention(config_path),
    )
    engine.achievement_checker = AchievementChecker(
        store,
        engine.activities,
        engine.ledger,
        on_unlock=lambda definition: engine.record_achievement_unlocked(definition.id),
    )
    return engine
