"""CLI commands for kigen-rank."""

from __future__ import annotations

import argparse
from pathlib import Path

from kigen_rank.activity import FocusKind
from kigen_rank.config import get_leaderboard_dir, set_leaderboard_dir, setup_logging
from kigen_rank.display import (
    console,
    print_achievements,
    print_card,
    print_delta,
    print_history,
    print_leaderboard,
    print_leaderboard_setup_result,
    print_months,
    print_summaries,
    print_validation,
)
from kigen_rank.engine import StatsEngine, build_engine
from kigen_rank.formulas import Category
from kigen_rank.leaderboard import DirectoryRankingService
from kigen_rank.ledger import PointSource
from kigen_rank.tiers import tier_from_points
from kigen_rank.validator import probe_cache_invalidation, validate_stats_consistency


def build_parser() -> argparse.ArgumentParser:
    """Build and return the argument parser."""
    parser = argparse.ArgumentParser(
        prog="kigen-rank",
        description="Turn daily discipline into a rating card",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command")

    card_p = subparsers.add_parser("card", help="Show the rating card")
    card_p.add_argument("--lifetime", action="store_true", help="Show lifetime stats instead of this month")

    subparsers.add_parser("journal", help="Record a journal entry")

    focus_p = subparsers.add_parser("focus", help="Record a focus session")
    focus_p.add_argument("--kind", "-k", choices=[k.value for k in FocusKind], default=FocusKind.FLOW.value)
    focus_p.add_argument("--minutes", "-m", type=int, required=True)
    focus_p.add_argument("--aborted", action="store_true", help="Session was abandoned")

    goal_p = subparsers.add_parser("goal", help="Record a completed goal")
    goal_p.add_argument("--created", action="store_true", help="Record a new goal instead")
    goal_p.add_argument("--title", "-t", default=None)

    todo_p = subparsers.add_parser("todo", help="Record a completed todo")
    todo_p.add_argument("--created", action="store_true", help="Record a new todo instead")
    todo_p.add_argument("--title", "-t", default=None)

    social_p = subparsers.add_parser("social", help="Record time outside or with friends")
    social_p.add_argument("--kind", "-k", choices=["outside", "friends"], required=True)
    social_p.add_argument("--minutes", "-m", type=int, required=True)

    phone_p = subparsers.add_parser("phone", help="Set today's phone usage")
    phone_p.add_argument("--minutes", "-m", type=int, required=True)
    phone_p.add_argument("--social-minutes", type=int, default=None)

    history_p = subparsers.add_parser("history", help="Points history")
    history_p.add_argument("--limit", "-n", type=int, default=20)
    history_p.add_argument("--source", choices=[s.value for s in PointSource], default=None)
    history_p.add_argument("--category", choices=[c.value for c in Category], default=None)

    summary_p = subparsers.add_parser("summary", help="Recent daily summaries and streak")
    summary_p.add_argument("--days", "-d", type=int, default=7)

    subparsers.add_parser("months", help="Monthly records")
    subparsers.add_parser("achievements", help="List all achievements")
    subparsers.add_parser("validate", help="Run consistency checks")

    lb_parser = subparsers.add_parser("leaderboard", help="Shared leaderboard (opt-in)")
    lb_sub = lb_parser.add_subparsers(dest="lb_command")
    lb_setup_p = lb_sub.add_parser("setup", help="Configure username and shared directory")
    lb_setup_p.add_argument("--username", "-u", required=True, help="Your display name")
    lb_setup_p.add_argument("--dir", "-d", default=None, help="Path to shared leaderboard directory")
    lb_sub.add_parser("sync", help="Push your current rating now")
    lb_show_p = lb_sub.add_parser("show", help="Show the leaderboard")
    lb_show_p.add_argument("--dir", "-d", default=None, help="Override leaderboard directory")

    reset_p = subparsers.add_parser("reset", help="Delete all recorded activity")
    reset_p.add_argument("--yes", action="store_true", help="Confirm the reset")
    return parser


def main(argv: list[str] | None = None) -> None:
    """Entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)
    command = args.command or "card"

    engine = build_engine()
    try:
        if command == "card":
            do_card(engine, lifetime=getattr(args, "lifetime", False))
        elif command == "journal":
            do_journal(engine)
        elif command == "focus":
            do_focus(engine, kind=args.kind, minutes=args.minutes, aborted=args.aborted)
        elif command == "goal":
            do_goal(engine, created=args.created, title=args.title)
        elif command == "todo":
            do_todo(engine, created=args.created, title=args.title)
        elif command == "social":
            do_social(engine, kind=args.kind, minutes=args.minutes)
        elif command == "phone":
            do_phone(engine, minutes=args.minutes, social_minutes=args.social_minutes)
        elif command == "history":
            do_history(engine, limit=args.limit, source=args.source, category=args.category)
        elif command == "summary":
            do_summary(engine, days=args.days)
        elif command == "months":
            do_months(engine)
        elif command == "achievements":
            do_achievements(engine)
        elif command == "validate":
            do_validate(engine)
        elif command == "leaderboard":
            lb_cmd = getattr(args, "lb_command", None)
            if lb_cmd == "setup":
                do_leaderboard_setup(engine, username=args.username, leaderboard_dir=args.dir)
            elif lb_cmd == "sync":
                do_leaderboard_sync(engine)
            else:
                do_leaderboard_show(engine, directory=getattr(args, "dir", None))
        elif command == "reset":
            do_reset(engine, confirmed=args.yes)
    finally:
        engine.close()


def do_card(engine: StatsEngine, lifetime: bool = False) -> dict:
    """Show the monthly card, or the lifetime card."""
    profile = engine.ensure_user_profile()
    if lifetime:
        stats = engine.get_lifetime_stats()
        total = stats.total()
        data = {
            "title": "LIFETIME",
            "stats": stats,
            "overall_rating": stats.overall(),
            "total_points": total,
            "monthly_points": None,
            "tier": tier_from_points(total),
        }
    else:
        snapshot = engine.get_current_rating()
        data = {
            "title": "THIS MONTH",
            "stats": snapshot.stats,
            "overall_rating": snapshot.overall_rating,
            "total_points": snapshot.total_points,
            "monthly_points": snapshot.monthly_points,
            "tier": snapshot.tier,
        }
    data["username"] = profile.get("username")
    print_card(data)
    return data


def do_journal(engine: StatsEngine) -> dict:
    delta = engine.record_journal_entry()
    print_delta("Journal entry", delta)
    return {"ok": True, "delta": delta.as_dict()}


def do_focus(engine: StatsEngine, kind: str, minutes: int, aborted: bool = False) -> dict:
    delta = engine.record_focus_session(kind, minutes, completed=not aborted)
    print_delta(f"{kind} session", delta)
    return {"ok": True, "delta": delta.as_dict()}


def do_goal(engine: StatsEngine, created: bool = False, title: str | None = None) -> dict:
    if created:
        delta = engine.record_goal_created(title)
    else:
        delta = engine.record_goal_completion(title)
    print_delta("Goal created" if created else "Goal completed", delta)
    return {"ok": True, "delta": delta.as_dict()}


def do_todo(engine: StatsEngine, created: bool = False, title: str | None = None) -> dict:
    if created:
        delta = engine.record_todo_created(title)
    else:
        delta = engine.record_todo_completion(title)
    print_delta("Todo created" if created else "Todo completed", delta)
    return {"ok": True, "delta": delta.as_dict()}


def do_social(engine: StatsEngine, kind: str, minutes: int) -> dict:
    delta = engine.record_social_time(kind, minutes)
    print_delta(f"Time {kind}", delta)
    return {"ok": True, "delta": delta.as_dict()}


def do_phone(engine: StatsEngine, minutes: int, social_minutes: int | None = None) -> dict:
    delta = engine.update_phone_usage(minutes, social_minutes)
    print_delta("Phone usage", delta)
    return {"ok": True, "delta": delta.as_dict()}


def do_history(
    engine: StatsEngine, limit: int = 20, source: str | None = None, category: str | None = None
) -> dict:
    entries = engine.ledger.get_points_history(limit=limit, source=source, category=category)
    print_history(entries)
    return {"ok": True, "count": len(entries), "entries": [e.to_dict() for e in entries]}


def do_summary(engine: StatsEngine, days: int = 7) -> dict:
    summaries = engine.ledger.get_recent_daily_summaries(days)
    streak = engine.ledger.get_points_streak()
    print_summaries(summaries, streak)
    return {
        "ok": True,
        "summaries": [s.to_dict() for s in summaries],
        "streak": {"current": streak.current, "best": streak.best, "last_date": streak.last_date},
    }


def do_months(engine: StatsEngine) -> dict:
    records = engine.aggregator.get_monthly_records()
    print_months(records)
    return {"ok": True, "months": [r.to_dict() for r in records]}


def do_achievements(engine: StatsEngine) -> dict:
    checker = engine.achievement_checker
    statuses = checker.statuses() if hasattr(checker, "statuses") else []
    print_achievements(statuses)
    return {"ok": True, "unlocked_count": sum(1 for s in statuses if s.unlocked), "total_count": len(statuses)}


def do_validate(engine: StatsEngine) -> dict:
    report = validate_stats_consistency(engine)
    probe = probe_cache_invalidation(engine)
    print_validation(report, probe)
    return {"ok": report.passed and probe.passed, "errors": report.errors, "warnings": report.warnings}


def do_leaderboard_setup(engine: StatsEngine, username: str, leaderboard_dir: str | None = None) -> dict:
    """Configure leaderboard username and shared directory."""
    engine.ensure_user_profile(username)
    result: dict = {"ok": True, "username": username, "leaderboard_dir": None}
    if leaderboard_dir:
        expanded = Path(leaderboard_dir).expanduser().resolve()
        set_leaderboard_dir(expanded)
        result["leaderboard_dir"] = str(expanded)
    print_leaderboard_setup_result(result)
    return result


def do_leaderboard_sync(engine: StatsEngine) -> dict:
    """Push the current rating to the configured directory, even if unchanged."""
    if engine.leaderboard is None:
        console.print(
            "[red]No leaderboard directory configured. "
            "Run: kigen-rank leaderboard setup --username <name> --dir <path>[/]"
        )
        return {"ok": False, "reason": "no_dir"}
    try:
        entry = engine.push_leaderboard(force=True)
    except ValueError as exc:
        console.print(f"[red]{exc}[/]")
        return {"ok": False, "reason": "no_username"}
    console.print(f"[green]Pushed {entry['total_points']} points as {entry['username']}[/]")
    return {"ok": True, "entry": entry}


def do_leaderboard_show(engine: StatsEngine, directory: str | None = None) -> dict:
    """Show the leaderboard from the shared directory."""
    if directory:
        lb_dir = Path(directory).expanduser().resolve()
    else:
        lb_dir = get_leaderboard_dir()

    if lb_dir is None:
        console.print(
            "[red]No leaderboard directory configured. "
            "Run: kigen-rank leaderboard setup --dir <path>[/]"
        )
        return {"ok": False, "reason": "no_dir"}

    if not lb_dir.is_dir():
        console.print(f"[red]Directory not found: {lb_dir}[/]")
        return {"ok": False, "reason": "dir_not_found"}

    ranked = DirectoryRankingService(lb_dir).top(50)
    username = engine.ensure_user_profile().get("username")
    print_leaderboard(ranked, highlight_username=username)
    return {"ok": True, "entries": ranked, "count": len(ranked)}


def do_reset(engine: StatsEngine, confirmed: bool = False) -> dict:
    if not confirmed:
        console.print("[yellow]This deletes all activity and history. Re-run with --yes to confirm.[/]")
        return {"ok": False, "reason": "not_confirmed"}
    engine.reset_all()
    console.print("[green]All activity and history cleared.[/]")
    return {"ok": True}
