"""Period aggregation: daily, monthly and lifetime CategoryStats.

The open (current) month is always computed live from the activity store.
Closed months come from their persisted MonthlyRecord, which is built by
adding each day's independently scored stats into a running sum.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from kigen_rank.activity import ActivityStore
from kigen_rank.db import KeyValueStore
from kigen_rank.formulas import CategoryStats, calculate_stats, sum_stats
from kigen_rank.tiers import tier_from_points

logger = logging.getLogger(__name__)

MONTHLY_RECORD_PREFIX = "monthly_record_"
MONTHLY_UPDATED_PREFIX = "monthly_updated_"


class UsagePermissionProvider(Protocol):
    def has_usage_access_permission(self) -> bool: ...


class StaticUsagePermission:
    """Permission answer fixed at construction, usually from config."""

    def __init__(self, granted: bool = False) -> None:
        self.granted = granted

    def has_usage_access_permission(self) -> bool:
        return self.granted


@dataclass
class MonthlyRecord:
    month: str  # YYYY-MM
    stats: CategoryStats = field(default_factory=CategoryStats.zero)
    total_points: int = 0
    tier: str = "Bronze"
    # The most recent day merged in and what it contributed at the time.
    # Replaced by that day's final score on the next merge.
    last_day: str | None = None
    last_day_stats: CategoryStats = field(default_factory=CategoryStats.zero)
    closed: bool = False

    def refresh_totals(self) -> None:
        self.total_points = self.stats.total()
        self.tier = tier_from_points(self.total_points)

    def to_dict(self) -> dict:
        return {
            "month": self.month,
            "stats": self.stats.as_dict(),
            "total_points": self.total_points,
            "tier": self.tier,
            "last_day": self.last_day,
            "last_day_stats": self.last_day_stats.as_dict(),
            "closed": self.closed,
        }

    @classmethod
    def from_dict(cls, data: dict) -> MonthlyRecord:
        record = cls(
            month=data["month"],
            stats=CategoryStats.from_dict(data.get("stats") or {}),
            last_day=data.get("last_day"),
            last_day_stats=CategoryStats.from_dict(data.get("last_day_stats") or {}),
            closed=bool(data.get("closed", False)),
        )
        record.refresh_totals()
        return record


class PeriodAggregator:
    def __init__(
        self,
        store: KeyValueStore,
        activities: ActivityStore,
        usage: UsagePermissionProvider | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.activities = activities
        self.usage = usage or StaticUsagePermission(False)
        self.clock = clock or activities.clock

    def today(self) -> str:
        return self.clock().date().isoformat()

    def current_month(self) -> str:
        return self.today()[:7]

    def has_usage_access(self) -> bool:
        try:
            return bool(self.usage.has_usage_access_permission())
        except Exception:
            logger.warning("Usage permission check failed, assuming not granted", exc_info=True)
            return False

    # -- periods -------------------------------------------------------

    def daily_stats(self, day: str | None = None) -> CategoryStats:
        """Live score for one day (today by default)."""
        activity = self.activities.peek_daily_activity(day or self.today())
        return calculate_stats(activity, self.has_usage_access())

    def _live_month(self, month: str, through: str | None = None) -> CategoryStats:
        granted = self.has_usage_access()
        return sum_stats(
            calculate_stats(a, granted) for a in self.activities.get_month_activities(month, through)
        )

    def monthly_stats(self, month: str | None = None) -> CategoryStats:
        """Month-to-date for the open month, the persisted record for past ones.

        A past record that was never closed still holds its last merged day
        as a partial; it is settled in memory here, not persisted.
        """
        current = self.current_month()
        month = month or current
        if month == current:
            return self._live_month(month, through=self.today())
        record = self.get_monthly_record(month)
        if record is not None:
            if not record.closed:
                self._settle(record)
            return record.stats
        return self._live_month(month)

    def known_months(self) -> list[str]:
        """Every month that has a record or any stored activity, ascending."""
        months = {r.month for r in self.get_monthly_records()}
        months.update(d[:7] for d in self.activities.list_activity_dates())
        return sorted(months)

    def lifetime_stats(self) -> CategoryStats:
        """Every closed month plus the live open month, each counted once."""
        current = self.current_month()
        past = [self.monthly_stats(m) for m in self.known_months() if m < current]
        return sum_stats(past) + self.monthly_stats(current)

    # -- monthly records -----------------------------------------------

    @staticmethod
    def _record_key(month: str) -> str:
        return f"{MONTHLY_RECORD_PREFIX}{month}"

    @staticmethod
    def _marker_key(month: str) -> str:
        return f"{MONTHLY_UPDATED_PREFIX}{month}"

    def get_monthly_record(self, month: str) -> MonthlyRecord | None:
        try:
            raw = self.store.get(self._record_key(month))
            return MonthlyRecord.from_dict(json.loads(raw)) if raw else None
        except Exception:
            logger.warning("Unreadable monthly record for %s", month, exc_info=True)
            return None

    def get_monthly_records(self) -> list[MonthlyRecord]:
        records = []
        for key in self.store.list_keys(MONTHLY_RECORD_PREFIX):
            record = self.get_monthly_record(key[len(MONTHLY_RECORD_PREFIX):])
            if record is not None:
                records.append(record)
        return records

    def save_monthly_record(self, record: MonthlyRecord) -> None:
        record.refresh_totals()
        self.store.set(self._record_key(record.month), json.dumps(record.to_dict()))

    def _settle(self, record: MonthlyRecord, upto: str | None = None) -> None:
        """Swap the last merged day's partial contribution for its final score."""
        if record.last_day is None or record.last_day == upto:
            return
        final = self.daily_stats(record.last_day)
        record.stats = record.stats - record.last_day_stats + final
        record.last_day_stats = final

    def process_month_end(self, month: str | None = None) -> MonthlyRecord | None:
        """Settle and freeze a month's record. Returns None if it has none."""
        month = month or self.current_month()
        record = self.get_monthly_record(month)
        if record is None or record.closed:
            return record
        self._settle(record)
        record.closed = True
        self.save_monthly_record(record)
        logger.info("Closed month %s at %d points (%s)", month, record.total_points, record.tier)
        return record

    def update_monthly_accumulation(self) -> bool:
        """Merge today's stats into this month's record at most once per day.

        Returns True if the record changed, False on the idempotent no-op path.
        """
        today = self.today()
        month = today[:7]
        try:
            if self.store.get(self._marker_key(month)) == today:
                return False

            for old in self.get_monthly_records():
                if old.month < month and not old.closed:
                    self.process_month_end(old.month)

            today_stats = self.daily_stats(today)
            record = self.get_monthly_record(month)
            if record is None:
                record = MonthlyRecord(month=month, stats=today_stats)
            else:
                self._settle(record, upto=today)
                record.stats = record.stats + today_stats
            record.last_day = today
            record.last_day_stats = today_stats
            self.save_monthly_record(record)
            self.store.set(self._marker_key(month), today)
        except Exception:
            logger.exception("Monthly accumulation failed for %s", month)
            return False
        return True

    def reset(self) -> None:
        for prefix in (MONTHLY_RECORD_PREFIX, MONTHLY_UPDATED_PREFIX):
            for key in self.store.list_keys(prefix):
                self.store.remove(key)
