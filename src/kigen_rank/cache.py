"""Time-bounded cache of the current rating snapshot."""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from kigen_rank.aggregator import PeriodAggregator
from kigen_rank.db import KeyValueStore
from kigen_rank.formulas import CategoryStats
from kigen_rank.tiers import BASE_TIER, tier_from_points

logger = logging.getLogger(__name__)

RATING_CACHE_KEY = "rating_cache"
DEFAULT_TTL_HOURS = 24


@dataclass(frozen=True)
class RatingSnapshot:
    stats: CategoryStats = field(default_factory=CategoryStats.zero)  # month to date
    overall_rating: int = 0
    total_points: int = 0  # lifetime
    monthly_points: int = 0
    tier: str = BASE_TIER
    captured_at: str = ""

    def to_dict(self) -> dict:
        return {
            "stats": self.stats.as_dict(),
            "overall_rating": self.overall_rating,
            "total_points": self.total_points,
            "monthly_points": self.monthly_points,
            "tier": self.tier,
            "captured_at": self.captured_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> RatingSnapshot:
        return cls(
            stats=CategoryStats.from_dict(data["stats"]),
            overall_rating=int(data["overall_rating"]),
            total_points=int(data["total_points"]),
            monthly_points=int(data["monthly_points"]),
            tier=str(data["tier"]),
            captured_at=str(data["captured_at"]),
        )


class RatingCache:
    def __init__(
        self,
        store: KeyValueStore,
        aggregator: PeriodAggregator,
        clock: Callable[[], datetime] | None = None,
        ttl_hours: float = DEFAULT_TTL_HOURS,
    ) -> None:
        self.store = store
        self.aggregator = aggregator
        self.clock = clock or aggregator.clock
        self.ttl = timedelta(hours=ttl_hours)
        self._lock = threading.Lock()
        # Bumped by invalidate(); a recompute that spans a bump is not stored.
        self._generation = 0

    def _now(self) -> datetime:
        return self.clock().astimezone()

    def _load(self) -> RatingSnapshot | None:
        """Stored snapshot, or None when absent or malformed."""
        raw = self.store.get(RATING_CACHE_KEY)
        if not raw:
            return None
        try:
            return RatingSnapshot.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError, AttributeError):
            logger.warning("Malformed rating cache, recomputing")
            return None

    def _is_fresh(self, snapshot: RatingSnapshot) -> bool:
        try:
            age = self._now() - datetime.fromisoformat(snapshot.captured_at)
        except (ValueError, TypeError):
            return False
        return timedelta(0) <= age < self.ttl

    def compute(self) -> RatingSnapshot:
        """Recompute from the aggregator with a fresh capture time."""
        monthly = self.aggregator.monthly_stats()
        lifetime = self.aggregator.lifetime_stats()
        total = lifetime.total()
        return RatingSnapshot(
            stats=monthly,
            overall_rating=monthly.overall(),
            total_points=total,
            monthly_points=monthly.total(),
            tier=tier_from_points(total),
            captured_at=self._now().isoformat(),
        )

    def get_current_rating(self) -> RatingSnapshot:
        """Cached snapshot while fresh, otherwise recompute and store. Never raises."""
        try:
            with self._lock:
                cached = self._load()
                if cached is not None and self._is_fresh(cached):
                    return cached
                generation = self._generation
            snapshot = self.compute()
            with self._lock:
                if generation != self._generation:
                    logger.debug("Rating cache invalidated during recompute, not storing")
                    return snapshot
                self.store.set(RATING_CACHE_KEY, json.dumps(snapshot.to_dict()))
            logger.debug("Rating recomputed: %d points, tier %s", snapshot.total_points, snapshot.tier)
            return snapshot
        except Exception:
            logger.exception("Rating computation failed, returning zero snapshot")
            return RatingSnapshot()

    def invalidate(self) -> None:
        try:
            with self._lock:
                self._generation += 1
                self.store.remove(RATING_CACHE_KEY)
        except Exception:
            logger.exception("Could not clear rating cache")
