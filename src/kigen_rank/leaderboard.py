"""Leaderboard entries, the shared-directory ranking service, and sync.

The ranking service is an upsert-by-user-id store with a "top N" query.
The shipped implementation keeps one ``<user_id>.leaderboard.json`` file per
user in a shared directory (a synced folder, a network share, ...).
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from kigen_rank.cache import RatingSnapshot

logger = logging.getLogger(__name__)

LEADERBOARD_SCHEMA_VERSION = 1
LEADERBOARD_FILE_SUFFIX = ".leaderboard.json"


class RankingService(Protocol):
    def upsert(self, user_id: str, entry: dict) -> None: ...

    def top(self, n: int = 10) -> list[dict]: ...


def build_entry(profile: dict, snapshot: RatingSnapshot) -> dict:
    """Construct a leaderboard entry from the user profile and a rating snapshot.

    Raises ValueError if the profile has no username.
    """
    username = profile.get("username")
    if not username:
        raise ValueError(
            "No username configured. Run: kigen-rank leaderboard setup --username <name>"
        )
    return {
        "schema_version": LEADERBOARD_SCHEMA_VERSION,
        "user_id": profile.get("id", username),
        "username": username,
        "total_points": snapshot.total_points,
        "monthly_points": snapshot.monthly_points,
        "overall_rating": snapshot.overall_rating,
        "tier": snapshot.tier,
        "last_updated": datetime.now(tz=timezone.utc).isoformat(),
    }


def write_entry(entry: dict, output_path: Path) -> None:
    """Write a leaderboard entry JSON to output_path using atomic write."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_fd, tmp_path = tempfile.mkstemp(dir=output_path.parent, suffix=".tmp")
    try:
        with os.fdopen(tmp_fd, "w", encoding="utf-8") as f:
            json.dump(entry, f, indent=2)
            f.write("\n")
        os.replace(tmp_path, output_path)
    except Exception:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def read_entry(path: Path) -> dict | None:
    """Read and validate one .leaderboard.json file.

    Returns None if the file is missing, unreadable, or fails validation.
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None
    if not isinstance(data, dict):
        return None
    if data.get("schema_version") != LEADERBOARD_SCHEMA_VERSION:
        return None
    if "username" not in data or not isinstance(data.get("total_points"), int):
        return None
    return data


def rank_entries(entries: list[dict]) -> list[dict]:
    """Sort by total_points descending and add a 1-based 'rank' key.

    Tie-break: monthly_points desc, then username asc.
    """
    sorted_entries = sorted(
        entries,
        key=lambda e: (-e.get("total_points", 0), -e.get("monthly_points", 0), e.get("username", "")),
    )
    for i, entry in enumerate(sorted_entries):
        entry["rank"] = i + 1
    return sorted_entries


class DirectoryRankingService:
    """RankingService over a shared directory of per-user JSON files."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def path_for(self, user_id: str) -> Path:
        return self.directory / f"{user_id}{LEADERBOARD_FILE_SUFFIX}"

    def upsert(self, user_id: str, entry: dict) -> None:
        write_entry(entry, self.path_for(user_id))

    def load_all(self) -> list[dict]:
        if not self.directory.is_dir():
            return []
        entries = []
        for path in sorted(self.directory.glob(f"*{LEADERBOARD_FILE_SUFFIX}")):
            entry = read_entry(path)
            if entry is not None:
                entries.append(entry)
        return entries

    def top(self, n: int = 10) -> list[dict]:
        return rank_entries(self.load_all())[:n]


class LeaderboardSync:
    """Pushes the current summary to a ranking service."""

    def __init__(self, service: RankingService) -> None:
        self.service = service

    def sync(self, profile: dict, snapshot: RatingSnapshot) -> dict:
        entry = build_entry(profile, snapshot)
        self.service.upsert(entry["user_id"], entry)
        logger.info("Leaderboard updated for %s: %d points", entry["username"], entry["total_points"])
        return entry
