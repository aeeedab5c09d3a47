"""MCP server for kigen-rank.

Exposes read-only rating queries as MCP tools.
Run via: python3 -m kigen_rank.mcp_server
"""
from __future__ import annotations

from pathlib import Path
from typing import Any

from mcp.server.fastmcp import FastMCP

mcp = FastMCP(name="kigen-rank")


def _get_engine():
    from kigen_rank.engine import build_engine
    return build_engine()


@mcp.tool()
def get_rating() -> dict[str, Any]:
    """Get the current month's rating: category stats, overall rating, points and tier."""
    engine = _get_engine()
    try:
        snapshot = engine.get_current_rating()
        return snapshot.to_dict()
    finally:
        engine.close()


@mcp.tool()
def get_lifetime_stats() -> dict[str, Any]:
    """Get lifetime category stats across every month."""
    engine = _get_engine()
    try:
        from kigen_rank.tiers import tier_from_points
        stats = engine.get_lifetime_stats()
        total = stats.total()
        return {
            "stats": stats.as_dict(),
            "overall_rating": stats.overall(),
            "total_points": total,
            "tier": tier_from_points(total),
        }
    finally:
        engine.close()


@mcp.tool()
def get_points_history(limit: int = 20, source: str = "", category: str = "") -> dict[str, Any]:
    """Get recent point awards, newest first.

    source: optional point source filter (e.g. journal, focus_session).
    category: optional category code filter (DIS, FOC, JOU, DET, MEN, PHY, SOC, PRD).
    """
    from kigen_rank.formulas import Category
    from kigen_rank.ledger import PointSource

    if source and source not in {s.value for s in PointSource}:
        return {"error": f"Unknown source: {source}"}
    if category and category not in {c.value for c in Category}:
        return {"error": f"Unknown category: {category}"}
    engine = _get_engine()
    try:
        entries = engine.ledger.get_points_history(
            limit=max(1, limit), source=source or None, category=category or None
        )
        return {"entries": [e.to_dict() for e in entries], "count": len(entries)}
    finally:
        engine.close()


@mcp.tool()
def get_daily_summaries(days: int = 7) -> dict[str, Any]:
    """Get per-day point summaries for the most recent days plus the points streak."""
    engine = _get_engine()
    try:
        summaries = engine.ledger.get_recent_daily_summaries(max(1, days))
        streak = engine.ledger.get_points_streak()
        return {
            "summaries": [s.to_dict() for s in summaries],
            "streak": {"current": streak.current, "best": streak.best, "last_date": streak.last_date},
        }
    finally:
        engine.close()


@mcp.tool()
def get_leaderboard(directory: str = "", limit: int = 10) -> dict[str, Any]:
    """Read the leaderboard from a shared directory.

    directory: path to a directory of *.leaderboard.json files.
               If empty, uses the configured leaderboard directory.
    """
    from kigen_rank.config import get_leaderboard_dir
    from kigen_rank.leaderboard import DirectoryRankingService

    lb_dir = Path(directory) if directory else get_leaderboard_dir()
    if lb_dir is None or not lb_dir.is_dir():
        return {
            "error": "No leaderboard directory found. "
            "Run: kigen-rank leaderboard setup --username <name> --dir /path/to/shared/dir"
        }

    ranked = DirectoryRankingService(lb_dir).top(max(1, limit))

    your_rank = None
    engine = _get_engine()
    try:
        username = engine.ensure_user_profile().get("username")
    finally:
        engine.close()
    if username:
        for e in ranked:
            if e.get("username") == username:
                your_rank = e.get("rank")
                break

    return {"entries": ranked, "count": len(ranked), "your_rank": your_rank}


def main() -> None:
    mcp.run()


if __name__ == "__main__":
    main()
