"""Consistency checks over the engine's derived state.

Read-only apart from the cache probe, which clears the rating cache once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from kigen_rank.cache import RATING_CACHE_KEY
from kigen_rank.engine import StatsEngine
from kigen_rank.formulas import Category, CategoryStats

logger = logging.getLogger(__name__)


@dataclass
class ValidationReport:
    month: str
    monthly: CategoryStats
    lifetime: CategoryStats
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.errors


@dataclass
class CacheProbeResult:
    repeat_read_identical: bool
    cleared_by_invalidate: bool
    recomputed_matches_live: bool

    @property
    def passed(self) -> bool:
        return self.repeat_read_identical and self.cleared_by_invalidate and self.recomputed_matches_live


def find_anomalies(monthly: CategoryStats, lifetime: CategoryStats) -> list[str]:
    """Per-category violations of lifetime >= monthly >= 0."""
    errors = []
    for category in Category:
        m = monthly.get(category)
        lt = lifetime.get(category)
        if m < 0:
            errors.append(f"{category.value}: monthly({m}) < 0")
        if lt < m:
            errors.append(f"{category.value}: lifetime({lt}) < monthly({m})")
    return errors


def validate_stats_consistency(engine: StatsEngine) -> ValidationReport:
    aggregator = engine.aggregator
    month = aggregator.current_month()
    report = ValidationReport(
        month=month,
        monthly=aggregator.monthly_stats(),
        lifetime=aggregator.lifetime_stats(),
    )
    report.errors.extend(find_anomalies(report.monthly, report.lifetime))

    for record in aggregator.get_monthly_records():
        if record.month > month:
            report.errors.append(f"{record.month}: record is dated after the current month")
        if not record.closed or record.month == month:
            continue
        live = aggregator._live_month(record.month)
        if live != record.stats:
            # DET depends on the usage permission at scoring time, so drift is possible.
            report.warnings.append(
                f"{record.month}: stored total {record.total_points} differs from live recompute {live.total()}"
            )

    for message in report.errors:
        logger.warning("Validation error: %s", message)
    return report


def probe_cache_invalidation(engine: StatsEngine) -> CacheProbeResult:
    """Check cache hits are stable, invalidate clears, and a recompute is current."""
    cache = engine.cache
    first = cache.get_current_rating()
    second = cache.get_current_rating()
    cache.invalidate()
    cleared = engine.store.get(RATING_CACHE_KEY) is None
    fresh = cache.get_current_rating()
    return CacheProbeResult(
        repeat_read_identical=first == second,
        cleared_by_invalidate=cleared,
        recomputed_matches_live=fresh.stats == engine.aggregator.monthly_stats(),
    )
