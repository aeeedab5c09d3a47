"""Tests for the points ledger."""

import json
from datetime import datetime
from unittest.mock import MagicMock

import pytest

from kigen_rank.formulas import Category
from kigen_rank.ledger import (
    DAILY_SUMMARIES_KEY,
    POINTS_HISTORY_KEY,
    PointHistoryEntry,
    PointSource,
    PointsLedger,
)


@pytest.fixture
def ledger(store, clock):
    return PointsLedger(store, clock)


class TestRecordPoints:
    def test_returns_entry(self, ledger):
        entry = ledger.record_points(PointSource.JOURNAL, 20, Category.JOU, "Journal entry")
        assert entry.points == 20
        assert entry.source is PointSource.JOURNAL
        assert entry.category is Category.JOU
        assert entry.date == "2025-03-10"

    def test_accepts_string_enums(self, ledger):
        entry = ledger.record_points("focus_session", 10, "FOC", "Flow")
        assert entry.source is PointSource.FOCUS_SESSION

    def test_timestamp_carries_offset(self, ledger):
        entry = ledger.record_points("journal", 20, "JOU", "x")
        assert datetime.fromisoformat(entry.timestamp).tzinfo is not None

    def test_newest_first(self, ledger, clock):
        ledger.record_points("journal", 20, "JOU", "first")
        clock.advance(minutes=1)
        ledger.record_points("journal", 5, "DIS", "second")
        history = ledger.get_points_history()
        assert [e.description for e in history] == ["second", "first"]

    def test_retention_prunes_oldest(self, store, clock):
        ledger = PointsLedger(store, clock, retention=3)
        for i in range(5):
            ledger.record_points("journal", i + 1, "JOU", f"e{i}")
        history = ledger.get_points_history(limit=10)
        assert [e.description for e in history] == ["e4", "e3", "e2"]
        assert len(json.loads(store.get(POINTS_HISTORY_KEY))) == 3

    def test_summary_survives_retention(self, store, clock):
        ledger = PointsLedger(store, clock, retention=2)
        for _ in range(5):
            ledger.record_points("journal", 10, "PRD", "x")
        summary = ledger.get_daily_summary("2025-03-10")
        assert summary.total_points == 50
        assert summary.entry_count == 5

    def test_storage_error_is_swallowed(self, clock):
        broken = MagicMock()
        broken.get.return_value = None
        broken.set.side_effect = OSError("full")
        entry = PointsLedger(broken, clock).record_points("journal", 20, "JOU", "x")
        assert entry.points == 20


class TestDailySummary:
    def test_incremental_rollup(self, ledger):
        ledger.record_points("journal", 20, "JOU", "a")
        ledger.record_points("journal", 10, "PRD", "b")
        ledger.record_points("focus_session", 10, "FOC", "c")
        summary = ledger.get_daily_summary("2025-03-10")
        assert summary.total_points == 40
        assert summary.entry_count == 3
        assert summary.points_by_category == {"JOU": 20, "PRD": 10, "FOC": 10}
        assert summary.points_by_source == {"journal": 30, "focus_session": 10}
        assert summary.top_source == "journal"

    def test_missing_day_is_none(self, ledger):
        assert ledger.get_daily_summary("2020-01-01") is None

    def test_recent_summaries_newest_first(self, ledger, clock):
        for _ in range(3):
            ledger.record_points("journal", 20, "JOU", "x")
            clock.advance(days=1)
        recent = ledger.get_recent_daily_summaries(2)
        assert [s.date for s in recent] == ["2025-03-12", "2025-03-11"]

    def test_corrupt_summaries_treated_as_empty(self, ledger, store):
        store.set(DAILY_SUMMARIES_KEY, "[[[")
        assert ledger.get_recent_daily_summaries() == []


class TestHistoryFilters:
    @pytest.fixture
    def filled(self, ledger, clock):
        ledger.record_points("journal", 20, "JOU", "d1")
        clock.advance(days=1)
        ledger.record_points("focus_session", 10, "FOC", "d2")
        clock.advance(days=1)
        ledger.record_points("journal", 10, "PRD", "d3")
        return ledger

    def test_limit(self, filled):
        assert len(filled.get_points_history(limit=2)) == 2

    def test_zero_or_negative_limit(self, filled):
        assert filled.get_points_history(limit=0) == []
        assert filled.get_points_history(limit=-1) == []
        assert filled.get_points_history(limit=0, source="journal") == []

    def test_source_filter(self, filled):
        assert [e.description for e in filled.get_points_history(source="journal")] == ["d3", "d1"]

    def test_category_filter(self, filled):
        assert [e.description for e in filled.get_points_history(category=Category.FOC)] == ["d2"]

    def test_inclusive_date_bounds(self, filled):
        entries = filled.get_points_history(start_date="2025-03-11", end_date="2025-03-12")
        assert [e.description for e in entries] == ["d3", "d2"]

    def test_range_and_breakdowns(self, filled):
        assert filled.get_total_points_for_range("2025-03-10", "2025-03-11") == 30
        assert filled.get_category_breakdown("2025-03-10", "2025-03-12") == {"JOU": 20, "FOC": 10, "PRD": 10}
        assert filled.get_source_breakdown("2025-03-10", "2025-03-12") == {"journal": 30, "focus_session": 10}

    def test_malformed_entry_skipped(self, filled, store):
        history = json.loads(store.get(POINTS_HISTORY_KEY))
        history.insert(0, {"id": "bad"})
        store.set(POINTS_HISTORY_KEY, json.dumps(history))
        assert len(filled.get_points_history()) == 3


class TestWeeklyAndStreak:
    def test_weekly_summary(self, ledger, clock):
        ledger.record_points("journal", 20, "JOU", "mon")
        clock.advance(days=2)
        ledger.record_points("journal", 50, "PRD", "wed")
        week = ledger.generate_weekly_summary("2025-03-10")
        assert week.total_points == 70
        assert week.average_per_day == 10.0
        assert week.best_day == "2025-03-12"
        assert week.worst_day == "2025-03-10"
        assert len(week.daily_breakdown) == 2

    def test_empty_week(self, ledger):
        week = ledger.generate_weekly_summary("2025-01-06")
        assert week.total_points == 0
        assert week.best_day == "2025-01-06"

    def test_points_streak(self, ledger, clock):
        for _ in range(3):
            ledger.record_points("journal", 20, "JOU", "x")
            clock.advance(days=1)
        streak = ledger.get_points_streak()
        assert streak.current == 3  # today empty, counts back from yesterday
        assert streak.best == 3


class TestClear:
    def test_clear_all_history(self, ledger):
        ledger.record_points("journal", 20, "JOU", "x")
        ledger.clear_all_history()
        assert ledger.get_points_history() == []
        assert ledger.get_daily_summary("2025-03-10") is None


class TestEntrySerialization:
    def test_from_dict_requires_known_source(self):
        with pytest.raises(ValueError):
            PointHistoryEntry.from_dict(
                {"id": "1", "source": "nope", "points": 1, "category": "JOU", "timestamp": "2025-03-10T09:00:00"}
            )
