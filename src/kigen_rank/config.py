"""Configuration file management for kigen-rank.

Reads and writes ~/.kigen-rank/config.json for settings that don't belong in
the key-value store (shared directory paths, tuning knobs, permissions).
"""
from __future__ import annotations

import json
import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

DEFAULT_CONFIG_PATH: Path = Path.home() / ".kigen-rank" / "config.json"

DEFAULT_CACHE_TTL_HOURS = 24.0
DEFAULT_LEDGER_RETENTION = 1000


def load_config(config_path: Path | None = None) -> dict:
    """Load config from JSON file. Returns {} if file missing or invalid."""
    path = config_path or DEFAULT_CONFIG_PATH
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError):
        return {}
    return data if isinstance(data, dict) else {}


def save_config(data: dict, config_path: Path | None = None) -> None:
    """Write config dict to JSON file. Creates parent dirs if needed."""
    path = config_path or DEFAULT_CONFIG_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")


def get_leaderboard_dir(config_path: Path | None = None) -> Path | None:
    """Return the configured leaderboard directory, or None if not set."""
    raw = load_config(config_path).get("leaderboard_dir")
    if raw:
        return Path(raw)
    return None


def set_leaderboard_dir(directory: Path, config_path: Path | None = None) -> None:
    """Persist the leaderboard directory path to config."""
    config = load_config(config_path)
    config["leaderboard_dir"] = str(directory)
    save_config(config, config_path)


def get_cache_ttl_hours(config_path: Path | None = None) -> float:
    raw = load_config(config_path).get("cache_ttl_hours", DEFAULT_CACHE_TTL_HOURS)
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return DEFAULT_CACHE_TTL_HOURS
    return value if value > 0 else DEFAULT_CACHE_TTL_HOURS


def get_ledger_retention(config_path: Path | None = None) -> int:
    raw = load_config(config_path).get("ledger_retention", DEFAULT_LEDGER_RETENTION)
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return DEFAULT_LEDGER_RETENTION
    return value if value > 0 else DEFAULT_LEDGER_RETENTION


def get_usage_access(config_path: Path | None = None) -> bool:
    """Whether the user granted phone-usage tracking."""
    return load_config(config_path).get("usage_access") is True


def set_usage_access(granted: bool, config_path: Path | None = None) -> None:
    config = load_config(config_path)
    config["usage_access"] = bool(granted)
    save_config(config, config_path)


def setup_logging(verbose: bool = False) -> None:
    """Route log records through rich on stderr. Called once by entry points."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=verbose)],
        force=True,
    )
