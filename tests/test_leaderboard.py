"""Tests for the leaderboard module."""
import json

import pytest

from kigen_rank.cache import RatingSnapshot
from kigen_rank.formulas import CategoryStats
from kigen_rank.leaderboard import (
    LEADERBOARD_FILE_SUFFIX,
    LEADERBOARD_SCHEMA_VERSION,
    DirectoryRankingService,
    LeaderboardSync,
    build_entry,
    rank_entries,
    read_entry,
    write_entry,
)


def _snapshot(total=2500, monthly=300, overall=12, tier="Silver"):
    return RatingSnapshot(
        stats=CategoryStats(JOU=monthly),
        overall_rating=overall,
        total_points=total,
        monthly_points=monthly,
        tier=tier,
        captured_at="2025-03-10T09:00:00+00:00",
    )


def _entry(username, total, monthly=0):
    return {
        "schema_version": LEADERBOARD_SCHEMA_VERSION,
        "user_id": username,
        "username": username,
        "total_points": total,
        "monthly_points": monthly,
        "overall_rating": 0,
        "tier": "Bronze",
    }


class TestBuildEntry:
    def test_builds_valid_entry(self):
        entry = build_entry({"id": "u1", "username": "alice"}, _snapshot())
        assert entry["schema_version"] == LEADERBOARD_SCHEMA_VERSION
        assert entry["user_id"] == "u1"
        assert entry["username"] == "alice"
        assert entry["total_points"] == 2500
        assert entry["monthly_points"] == 300
        assert entry["overall_rating"] == 12
        assert entry["tier"] == "Silver"
        assert "last_updated" in entry

    def test_raises_without_username(self):
        with pytest.raises(ValueError, match="No username configured"):
            build_entry({"id": "u1"}, _snapshot())

    def test_raises_with_empty_username(self):
        with pytest.raises(ValueError):
            build_entry({"id": "u1", "username": ""}, _snapshot())


class TestWriteReadEntry:
    def test_round_trip(self, tmp_path):
        path = tmp_path / f"alice{LEADERBOARD_FILE_SUFFIX}"
        entry = _entry("alice", 100)
        write_entry(entry, path)
        assert read_entry(path) == entry

    def test_write_creates_parent_dirs(self, tmp_path):
        path = tmp_path / "deep" / "dir" / "a.leaderboard.json"
        write_entry(_entry("a", 1), path)
        assert path.exists()

    def test_no_tmp_files_left(self, tmp_path):
        write_entry(_entry("a", 1), tmp_path / "a.leaderboard.json")
        assert list(tmp_path.glob("*.tmp")) == []

    def test_read_missing_returns_none(self, tmp_path):
        assert read_entry(tmp_path / "nope.json") is None

    def test_read_invalid_json_returns_none(self, tmp_path):
        path = tmp_path / "bad.leaderboard.json"
        path.write_text("{broken")
        assert read_entry(path) is None

    def test_read_wrong_schema_returns_none(self, tmp_path):
        path = tmp_path / "old.leaderboard.json"
        path.write_text(json.dumps({**_entry("a", 1), "schema_version": 99}))
        assert read_entry(path) is None

    def test_read_missing_points_returns_none(self, tmp_path):
        path = tmp_path / "x.leaderboard.json"
        data = _entry("a", 1)
        del data["total_points"]
        path.write_text(json.dumps(data))
        assert read_entry(path) is None


class TestRankEntries:
    def test_sorted_by_total_points(self):
        ranked = rank_entries([_entry("a", 10), _entry("b", 30), _entry("c", 20)])
        assert [e["username"] for e in ranked] == ["b", "c", "a"]
        assert [e["rank"] for e in ranked] == [1, 2, 3]

    def test_tie_break_monthly_then_name(self):
        ranked = rank_entries([_entry("z", 10, 5), _entry("b", 10, 9), _entry("a", 10, 5)])
        assert [e["username"] for e in ranked] == ["b", "a", "z"]

    def test_empty(self):
        assert rank_entries([]) == []


class TestDirectoryRankingService:
    def test_upsert_writes_one_file_per_user(self, tmp_path):
        service = DirectoryRankingService(tmp_path)
        service.upsert("u1", _entry("alice", 10))
        service.upsert("u1", _entry("alice", 20))
        assert len(list(tmp_path.glob(f"*{LEADERBOARD_FILE_SUFFIX}"))) == 1
        assert service.top()[0]["total_points"] == 20

    def test_top_n(self, tmp_path):
        service = DirectoryRankingService(tmp_path)
        for i in range(5):
            service.upsert(f"u{i}", _entry(f"user{i}", i * 10))
        top = service.top(2)
        assert [e["username"] for e in top] == ["user4", "user3"]

    def test_skips_invalid_files(self, tmp_path):
        (tmp_path / f"junk{LEADERBOARD_FILE_SUFFIX}").write_text("nope")
        service = DirectoryRankingService(tmp_path)
        service.upsert("u1", _entry("alice", 10))
        assert len(service.load_all()) == 1

    def test_missing_directory_is_empty(self, tmp_path):
        assert DirectoryRankingService(tmp_path / "absent").top() == []


class TestLeaderboardSync:
    def test_sync_upserts_by_user_id(self, tmp_path):
        service = DirectoryRankingService(tmp_path)
        entry = LeaderboardSync(service).sync({"id": "u1", "username": "alice"}, _snapshot())
        assert (tmp_path / f"u1{LEADERBOARD_FILE_SUFFIX}").exists()
        assert entry["total_points"] == 2500

    def test_sync_without_username_raises(self, tmp_path):
        with pytest.raises(ValueError):
            LeaderboardSync(DirectoryRankingService(tmp_path)).sync({"id": "u1"}, _snapshot())
