"""Achievement definitions and checking for kigen-rank."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from kigen_rank.activity import ActivityStore
from kigen_rank.db import KeyValueStore
from kigen_rank.ledger import PointsLedger

logger = logging.getLogger(__name__)

ACHIEVEMENTS_KEY = "achievements"


class Rarity(str, Enum):
    COMMON = "common"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"


@dataclass
class AchievementDef:
    id: str
    name: str
    description: str
    rarity: Rarity
    target: float
    check_field: str


@dataclass
class AchievementStatus:
    definition: AchievementDef
    progress: float  # 0.0 to 1.0
    unlocked: bool
    unlocked_at: str | None  # YYYY-MM-DD or None


ACHIEVEMENTS: list[AchievementDef] = [
    AchievementDef("focus_1h", "First Step", "Complete your first hour of focus", Rarity.COMMON, 1, "focus_hours"),
    AchievementDef("focus_10h", "Getting Serious", "Accumulate 10 hours of focused work", Rarity.COMMON, 10, "focus_hours"),
    AchievementDef("focus_50h", "Focus Warrior", "Conquer 50 hours of concentrated effort", Rarity.RARE, 50, "focus_hours"),
    AchievementDef("focus_100h", "Century Master", "100 hours of unwavering dedication", Rarity.EPIC, 100, "focus_hours"),
    AchievementDef("focus_1000h", "The Thousand", "1000 hours of focus", Rarity.LEGENDARY, 1000, "focus_hours"),
    AchievementDef("journal_1", "First Words", "Write your first journal entry", Rarity.COMMON, 1, "journal_entries"),
    AchievementDef("journal_30", "Chronicler", "Write 30 journal entries", Rarity.RARE, 30, "journal_entries"),
    AchievementDef("goal_1", "Goal Getter", "Complete your first goal", Rarity.COMMON, 1, "completed_goals"),
    AchievementDef("goal_25", "Achiever", "Complete 25 goals", Rarity.RARE, 25, "completed_goals"),
    AchievementDef("body_10", "Strength Builder", "Log 10 hours of body focus", Rarity.RARE, 10, "body_hours"),
    AchievementDef("streak_7", "Week Warrior", "Earn points 7 days in a row", Rarity.COMMON, 7, "best_streak"),
    AchievementDef("streak_30", "Monthly Master", "Earn points 30 days in a row", Rarity.EPIC, 30, "best_streak"),
]


def check_achievements(stats: dict) -> list[AchievementStatus]:
    """Check all achievements against lifetime counters.

    stats keys match check_field values: focus_hours, body_hours,
    journal_entries, completed_goals, best_streak.
    """
    results: list[AchievementStatus] = []
    for achievement in ACHIEVEMENTS:
        current_value = stats.get(achievement.check_field, 0)
        progress = min(current_value / achievement.target, 1.0) if achievement.target > 0 else 0.0
        results.append(
            AchievementStatus(
                definition=achievement,
                progress=progress,
                unlocked=progress >= 1.0,
                unlocked_at=None,
            )
        )
    return results


def lifetime_counters(activities: ActivityStore, ledger: PointsLedger) -> dict:
    """Totals across every stored day, keyed the way check_achievements expects."""
    focus = body = journal = goals = 0
    for activity in activities.iter_all_activities():
        focus += activity.total_focus_minutes
        body += activity.focus("body")
        journal += activity.journal_entries
        goals += activity.completed_goals
    return {
        "focus_hours": focus // 60,
        "body_hours": body // 60,
        "journal_entries": journal,
        "completed_goals": goals,
        "best_streak": ledger.get_points_streak().best,
    }


class AchievementChecker:
    """Unlocks achievements and reports each new one through on_unlock."""

    def __init__(
        self,
        store: KeyValueStore,
        activities: ActivityStore,
        ledger: PointsLedger,
        on_unlock: Callable[[AchievementDef], None] | None = None,
    ) -> None:
        self.store = store
        self.activities = activities
        self.ledger = ledger
        self.on_unlock = on_unlock

    def unlocked(self) -> dict[str, str]:
        """Map achievement id -> unlock date."""
        raw = self.store.get(ACHIEVEMENTS_KEY)
        if not raw:
            return {}
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("Unreadable achievements record, treating as empty")
            return {}
        return data if isinstance(data, dict) else {}

    def statuses(self) -> list[AchievementStatus]:
        unlocked = self.unlocked()
        result = check_achievements(lifetime_counters(self.activities, self.ledger))
        for status in result:
            if status.definition.id in unlocked:
                status.unlocked = True
                status.progress = 1.0
                status.unlocked_at = unlocked[status.definition.id]
        return result

    def __call__(self) -> list[AchievementDef]:
        """Persist and announce newly reached achievements. Returns them."""
        unlocked = self.unlocked()
        today = self.activities.today()
        new = [
            s.definition
            for s in check_achievements(lifetime_counters(self.activities, self.ledger))
            if s.unlocked and s.definition.id not in unlocked
        ]
        if not new:
            return []
        for definition in new:
            unlocked[definition.id] = today
        self.store.set(ACHIEVEMENTS_KEY, json.dumps(unlocked))
        for definition in new:
            logger.info("Achievement unlocked: %s", definition.name)
            if self.on_unlock is not None:
                self.on_unlock(definition)
        return new

    def reset(self) -> None:
        self.store.remove(ACHIEVEMENTS_KEY)
