"""Tests for CLI commands and display helpers."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from kigen_rank.achievements import AchievementChecker
from kigen_rank.background import InlineTasks
from kigen_rank.cli import (
    build_parser,
    do_achievements,
    do_card,
    do_focus,
    do_goal,
    do_history,
    do_journal,
    do_leaderboard_setup,
    do_leaderboard_show,
    do_leaderboard_sync,
    do_months,
    do_phone,
    do_reset,
    do_social,
    do_summary,
    do_todo,
    do_validate,
    main,
)
from kigen_rank.display import format_number
from kigen_rank.engine import StatsEngine
from kigen_rank.leaderboard import DirectoryRankingService


@pytest.fixture
def lb_engine(store, clock, tmp_path):
    """Engine wired to a leaderboard directory under tmp_path."""
    eng = StatsEngine(store, clock=clock, tasks=InlineTasks(), ranking=DirectoryRankingService(tmp_path / "lb"))
    yield eng
    eng.close()


# ── Argument Parsing ──────────────────────────────────────────────────────────


class TestArgumentParsing:
    def test_no_args_defaults_to_none_command(self):
        args = build_parser().parse_args([])
        assert args.command is None
        assert args.verbose is False

    def test_focus_command(self):
        args = build_parser().parse_args(["focus", "--kind", "body", "-m", "45"])
        assert args.command == "focus"
        assert args.kind == "body"
        assert args.minutes == 45
        assert args.aborted is False

    def test_focus_defaults_to_flow(self):
        args = build_parser().parse_args(["focus", "-m", "30", "--aborted"])
        assert args.kind == "flow"
        assert args.aborted is True

    def test_focus_rejects_unknown_kind(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["focus", "--kind", "nap", "-m", "30"])

    def test_social_requires_kind(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["social", "-m", "30"])

    def test_history_filters(self):
        args = build_parser().parse_args(["history", "--source", "journal", "--category", "JOU", "-n", "5"])
        assert args.source == "journal"
        assert args.category == "JOU"
        assert args.limit == 5

    def test_card_lifetime(self):
        args = build_parser().parse_args(["card", "--lifetime"])
        assert args.lifetime is True

    def test_verbose_flag(self):
        args = build_parser().parse_args(["-v", "journal"])
        assert args.verbose is True

    def test_leaderboard_setup(self):
        args = build_parser().parse_args(["leaderboard", "setup", "--username", "alice", "--dir", "/tmp/lb"])
        assert args.lb_command == "setup"
        assert args.username == "alice"
        assert args.dir == "/tmp/lb"

    def test_invalid_command_raises(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["nonexistent"])


# ── Number Formatting ─────────────────────────────────────────────────────────


class TestFormatNumber:
    def test_small_number(self):
        assert format_number(42) == "42"

    def test_number_with_commas(self):
        assert format_number(1200) == "1,200"

    def test_ten_thousand(self):
        assert format_number(10000) == "10.0K"

    def test_million(self):
        assert format_number(1234567) == "1.2M"

    def test_zero(self):
        assert format_number(0) == "0"


# ── Recording Commands ────────────────────────────────────────────────────────


class TestRecordingCommands:
    def test_journal(self, engine):
        result = do_journal(engine)
        assert result["ok"] is True
        assert result["delta"] == {"DIS": 5, "FOC": 0, "JOU": 20, "DET": 0, "MEN": 0, "PHY": 0, "SOC": 0, "PRD": 10}

    def test_focus(self, engine):
        result = do_focus(engine, kind="flow", minutes=30)
        assert result["delta"]["FOC"] == 10

    def test_focus_aborted(self, engine):
        do_focus(engine, kind="flow", minutes=30, aborted=True)
        assert engine.activities.get_today_activity().aborted_sessions == 1

    def test_goal_and_todo(self, engine):
        assert do_goal(engine)["delta"]["PRD"] == 15
        assert do_goal(engine, created=True, title="x")["delta"]["PRD"] == 0
        assert do_todo(engine)["delta"]["DET"] == 5
        do_todo(engine, created=True)
        assert engine.activities.get_today_activity().created_todos == 1

    def test_social(self, engine):
        assert do_social(engine, kind="outside", minutes=60)["delta"]["SOC"] == 10

    def test_phone(self, engine):
        assert do_phone(engine, minutes=90, social_minutes=20)["ok"] is True
        activity = engine.activities.get_today_activity()
        assert activity.phone_usage_minutes == 90
        assert activity.social_media_minutes == 20


# ── Read Commands ─────────────────────────────────────────────────────────────


class TestCard:
    def test_empty_card(self, engine):
        data = do_card(engine)
        assert data["total_points"] == 0
        assert data["tier"] == "Bronze"
        assert data["username"] is None

    def test_month_card(self, engine):
        engine.record_journal_entry()
        engine.record_focus_session("flow", 30)
        data = do_card(engine)
        assert data["title"] == "THIS MONTH"
        assert data["monthly_points"] == 50
        assert data["overall_rating"] == 6

    def test_lifetime_card(self, engine, clock):
        engine.record_journal_entry()
        clock.advance(days=30)
        engine.record_journal_entry()
        data = do_card(engine, lifetime=True)
        assert data["title"] == "LIFETIME"
        assert data["total_points"] == 70
        assert data["monthly_points"] is None


class TestHistoryAndSummary:
    def test_history(self, engine):
        engine.record_journal_entry()
        engine.record_focus_session("flow", 30)
        result = do_history(engine)
        assert result["count"] == 5
        assert result["entries"][0]["source"] == "focus_session"

    def test_history_filtered(self, engine):
        engine.record_journal_entry()
        engine.record_focus_session("flow", 30)
        assert do_history(engine, category="DIS")["count"] == 2
        assert do_history(engine, source="journal")["count"] == 3

    def test_summary(self, engine, clock):
        engine.record_journal_entry()
        clock.advance(days=1)
        engine.record_journal_entry()
        result = do_summary(engine)
        assert [s["date"] for s in result["summaries"]] == ["2025-03-11", "2025-03-10"]
        assert result["streak"]["current"] == 2

    def test_months(self, engine):
        engine.record_journal_entry()
        result = do_months(engine)
        assert [m["month"] for m in result["months"]] == ["2025-03"]


class TestAchievementsCommand:
    def test_without_checker(self, engine):
        assert do_achievements(engine) == {"ok": True, "unlocked_count": 0, "total_count": 0}

    def test_with_checker(self, engine, store):
        engine.achievement_checker = AchievementChecker(store, engine.activities, engine.ledger)
        engine.record_journal_entry()
        result = do_achievements(engine)
        assert result["unlocked_count"] == 1
        assert result["total_count"] > 1


class TestValidateCommand:
    def test_passes_on_recorded_data(self, engine):
        engine.record_journal_entry()
        result = do_validate(engine)
        assert result["ok"] is True
        assert result["errors"] == []


class TestResetCommand:
    def test_requires_confirmation(self, engine):
        engine.record_journal_entry()
        assert do_reset(engine) == {"ok": False, "reason": "not_confirmed"}
        assert engine.get_daily_stats().total() == 35

    def test_confirmed(self, engine):
        engine.record_journal_entry()
        assert do_reset(engine, confirmed=True) == {"ok": True}
        assert engine.get_daily_stats().total() == 0


# ── Leaderboard ───────────────────────────────────────────────────────────────


class TestLeaderboardCommands:
    def test_setup_stores_username(self, engine):
        result = do_leaderboard_setup(engine, username="alice")
        assert result["ok"] is True
        assert engine.ensure_user_profile()["username"] == "alice"

    def test_setup_stores_dir(self, engine, tmp_path):
        with patch("kigen_rank.cli.set_leaderboard_dir") as mock_set:
            result = do_leaderboard_setup(engine, username="alice", leaderboard_dir=str(tmp_path))
        mock_set.assert_called_once_with(tmp_path.resolve())
        assert result["leaderboard_dir"] == str(tmp_path.resolve())

    def test_sync_without_dir(self, engine):
        assert do_leaderboard_sync(engine) == {"ok": False, "reason": "no_dir"}

    def test_sync_without_username(self, lb_engine):
        assert do_leaderboard_sync(lb_engine) == {"ok": False, "reason": "no_username"}

    def test_sync_pushes_entry(self, lb_engine, tmp_path):
        lb_engine.ensure_user_profile("alice")
        lb_engine.record_journal_entry()
        result = do_leaderboard_sync(lb_engine)
        assert result["ok"] is True
        assert result["entry"]["total_points"] == 35
        assert len(list((tmp_path / "lb").glob("*.leaderboard.json"))) == 1

    def test_show_without_dir(self, engine):
        with patch("kigen_rank.cli.get_leaderboard_dir", return_value=None):
            assert do_leaderboard_show(engine) == {"ok": False, "reason": "no_dir"}

    def test_show_missing_dir(self, engine, tmp_path):
        result = do_leaderboard_show(engine, directory=str(tmp_path / "absent"))
        assert result == {"ok": False, "reason": "dir_not_found"}

    def test_show_lists_entries(self, lb_engine, tmp_path):
        lb_engine.ensure_user_profile("alice")
        lb_engine.record_journal_entry()
        with patch("kigen_rank.cli.get_leaderboard_dir", return_value=tmp_path / "lb"):
            result = do_leaderboard_show(lb_engine)
        assert result["ok"] is True
        assert result["count"] == 1
        assert result["entries"][0]["username"] == "alice"
        assert result["entries"][0]["rank"] == 1


# ── Entry Point ───────────────────────────────────────────────────────────────


class TestMain:
    @patch("kigen_rank.cli.setup_logging")
    @patch("kigen_rank.cli.build_engine")
    def test_dispatches_and_closes(self, mock_build, mock_logging, store, clock):
        eng = StatsEngine(store, clock=clock, tasks=InlineTasks())
        mock_build.return_value = eng
        with patch.object(eng, "close", wraps=eng.close) as mock_close:
            main(["journal"])
        assert eng.get_daily_stats().JOU == 20
        mock_close.assert_called_once()
        mock_logging.assert_called_once_with(False)

    @patch("kigen_rank.cli.setup_logging")
    @patch("kigen_rank.cli.build_engine")
    def test_default_command_is_card(self, mock_build, mock_logging, engine):
        mock_build.return_value = engine
        with patch("kigen_rank.cli.do_card") as mock_card:
            main([])
        mock_card.assert_called_once_with(engine, lifetime=False)
