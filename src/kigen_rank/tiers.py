"""Tier classification from total points. Pure functions, no side effects."""

TIERS: list[dict] = [
    {"tier": 1, "name": "Bronze", "min_points": 0, "color": "#cd7f32"},
    {"tier": 2, "name": "Silver", "min_points": 2000, "color": "#c0c0c0"},
    {"tier": 3, "name": "Gold", "min_points": 4000, "color": "#ffd700"},
    {"tier": 4, "name": "Platinum", "min_points": 6000, "color": "#5fd7d7"},
    {"tier": 5, "name": "Diamond", "min_points": 8000, "color": "#87d7ff"},
    {"tier": 6, "name": "Carbon", "min_points": 10000, "color": "#5f5f5f"},
    {"tier": 7, "name": "Obsidian", "min_points": 12001, "color": "#8700af"},
]

BASE_TIER: str = TIERS[0]["name"]


def tier_info(total_points: int) -> dict:
    """Return the highest tier whose threshold is <= total_points."""
    current = TIERS[0]
    for tier in TIERS:
        if total_points >= tier["min_points"]:
            current = tier
        else:
            break
    return current


def tier_from_points(total_points: int) -> str:
    """Tier name for a total-points value. Below every threshold gives the base tier."""
    return tier_info(total_points)["name"]


def tier_index(name: str) -> int:
    """0-based position of a tier name. Unknown names rank as the base tier."""
    for i, tier in enumerate(TIERS):
        if tier["name"] == name:
            return i
    return 0


def tier_color(name: str) -> str:
    return TIERS[tier_index(name)]["color"]


def is_demotion(previous: str | None, current: str) -> bool:
    """True if moving from previous to current lowers the tier."""
    if previous is None:
        return False
    return tier_index(current) < tier_index(previous)


def points_to_next_tier(total_points: int) -> tuple[str | None, int]:
    """Return (next tier name, points still needed). At the top tier returns (None, 0)."""
    current = tier_info(total_points)
    if current["tier"] == len(TIERS):
        return (None, 0)
    nxt = TIERS[current["tier"]]
    return (nxt["name"], nxt["min_points"] - total_points)
