"""Rich terminal display for kigen-rank."""

from __future__ import annotations

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from kigen_rank.formulas import CATEGORY_NAMES, Category, CategoryStats
from kigen_rank.tiers import points_to_next_tier, tier_color

console = Console()


def format_number(n: int) -> str:
    """Format large numbers: 421543 -> '421.5K', 1200 -> '1,200', 1234567 -> '1.2M'."""
    if n >= 1_000_000:
        value = n / 1_000_000
        if value >= 100:
            return f"{value:.0f}M"
        return f"{value:.1f}M"
    if n >= 10_000:
        value = n / 1_000
        if value >= 1000:
            return f"{value:.0f}K"
        return f"{value:.1f}K"
    return f"{n:,}"


def _bar(current: int, total: int, width: int = 20) -> str:
    """Render a progress bar as text: [████████░░░░░░░░░░░░]."""
    if total <= 0:
        return "[" + "█" * width + "]"
    ratio = min(max(current, 0) / total, 1.0)
    filled = int(ratio * width)
    return "[" + "█" * filled + "░" * (width - filled) + "]"


def _stat_lines(stats: CategoryStats) -> list[str]:
    """Two columns of four categories, card style."""
    codes = list(Category)
    lines = []
    for left, right in zip(codes[:4], codes[4:]):
        lines.append(
            f"  [bold]{stats.get(left):>5}[/] {left.value}"
            f"        [bold]{stats.get(right):>5}[/] {right.value}"
        )
    return lines


def print_card(data: dict) -> None:
    """Print the rating card.

    data keys: title, stats (CategoryStats), overall_rating, total_points,
    monthly_points, tier, username.
    """
    stats: CategoryStats = data["stats"]
    tier = data.get("tier", "Bronze")
    color = tier_color(tier)
    total = data.get("total_points", 0)
    next_tier, needed = points_to_next_tier(total)

    lines: list[str] = [""]
    lines.append(f"  [bold {color}]{data.get('overall_rating', 0)} OVR  -  {tier}[/]")
    if data.get("username"):
        lines.append(f"  {data['username']}")
    lines.append("")
    lines.extend(_stat_lines(stats))
    lines.append("")
    if data.get("monthly_points") is not None:
        lines.append(f"  This month: [bold]{format_number(data['monthly_points'])}[/] pts")
    lines.append(f"  Total: [bold]{format_number(total)}[/] pts")
    if next_tier:
        target = total + needed
        lines.append(f"  {_bar(total, target)} {format_number(needed)} to {next_tier}")
    else:
        lines.append(f"  {_bar(1, 1)} TOP TIER")
    lines.append("")

    panel = Panel(
        "\n".join(lines),
        title=f"[bold]{data.get('title', 'KIGEN RANK')}[/]",
        box=box.ROUNDED,
        border_style=color,
        width=50,
    )
    console.print(panel)


def print_delta(label: str, delta: CategoryStats) -> None:
    """One line per category that changed after a recorded action."""
    changed = [(c, delta.get(c)) for c in Category if delta.get(c)]
    if not changed:
        console.print(f"[grey50]{label}: no rating change[/]")
        return
    parts = ", ".join(f"{'+' if v > 0 else ''}{v} {c.value}" for c, v in changed)
    console.print(f"[green]{label}:[/] {parts}")


def print_history(entries: list) -> None:
    """Print ledger entries, newest first."""
    table = Table(title="Points History", box=box.ROUNDED, show_header=True, header_style="bold")
    table.add_column("When", width=16)
    table.add_column("Source")
    table.add_column("Cat", width=4)
    table.add_column("Points", justify="right")
    table.add_column("Description")

    for entry in entries:
        table.add_row(
            entry.timestamp[:16].replace("T", " "),
            entry.source.value,
            entry.category.value,
            f"+{entry.points}",
            entry.description,
        )
    if not entries:
        table.add_row("", "[grey50]No points recorded yet[/]", "", "", "")
    console.print(table)


def print_summaries(summaries: list, streak) -> None:
    """Print recent daily summaries and the points streak."""
    table = Table(title="Daily Summaries", box=box.ROUNDED, show_header=True, header_style="bold")
    table.add_column("Date", width=12)
    table.add_column("Points", justify="right")
    table.add_column("Entries", justify="right")
    table.add_column("Top Source")
    table.add_column("By Category")

    for s in summaries:
        by_cat = " ".join(f"{k}:{v}" for k, v in sorted(s.points_by_category.items()))
        table.add_row(s.date, format_number(s.total_points), str(s.entry_count), s.top_source, by_cat)
    console.print(table)
    console.print(f"  \U0001f525 Streak: {streak.current} days  |  Best: {streak.best} days")


def print_months(records: list) -> None:
    table = Table(title="Monthly Records", box=box.ROUNDED, show_header=True, header_style="bold")
    table.add_column("Month", width=8)
    for category in Category:
        table.add_column(category.value, justify="right")
    table.add_column("Total", justify="right")
    table.add_column("Tier")
    table.add_column("", width=6)

    for r in records:
        table.add_row(
            r.month,
            *(str(r.stats.get(c)) for c in Category),
            format_number(r.total_points),
            f"[{tier_color(r.tier)}]{r.tier}[/]",
            "closed" if r.closed else "open",
        )
    console.print(table)


def print_validation(report, probe) -> None:
    """Print consistency check results."""
    table = Table(title=f"Validation ({report.month})", box=box.ROUNDED, show_header=True, header_style="bold")
    table.add_column("Category")
    table.add_column("Monthly", justify="right")
    table.add_column("Lifetime", justify="right")
    for category in Category:
        table.add_row(
            f"{category.value} {CATEGORY_NAMES[category]}",
            str(report.monthly.get(category)),
            str(report.lifetime.get(category)),
        )
    table.add_section()
    table.add_row("[bold]OVR[/]", str(report.monthly.overall()), str(report.lifetime.overall()))
    console.print(table)

    for message in report.errors:
        console.print(f"  [red]✗ {message}[/]")
    for message in report.warnings:
        console.print(f"  [yellow]! {message}[/]")
    if report.passed:
        console.print("  [green]✓ Lifetime stats >= monthly stats[/]")
    if probe.passed:
        console.print("  [green]✓ Rating cache invalidation working[/]")
    else:
        console.print("  [red]✗ Rating cache probe failed[/]")


def print_achievements(statuses: list) -> None:
    """Print achievements with progress bars, unlocked first."""
    rarity_colors = {"common": "white", "rare": "blue", "epic": "magenta", "legendary": "yellow"}
    ordered = sorted(statuses, key=lambda s: (not s.unlocked, -s.progress))

    table = Table(title="Achievements", box=box.ROUNDED, show_header=True, header_style="bold")
    table.add_column("", width=2)
    table.add_column("Achievement", min_width=20)
    table.add_column("Rarity", width=10)
    table.add_column("Progress", min_width=18)
    table.add_column("Date", width=12)

    for s in ordered:
        rarity = s.definition.rarity.value
        color = rarity_colors.get(rarity, "white")
        table.add_row(
            "✅" if s.unlocked else "⏳",
            f"[bold]{s.definition.name}[/]\n{s.definition.description}",
            f"[{color}]{rarity.upper()}[/{color}]",
            f"{_bar(int(s.progress * 100), 100, width=10)} {int(s.progress * 100)}%",
            s.unlocked_at or "",
        )
    console.print(table)


def print_leaderboard_setup_result(result: dict) -> None:
    lines = ["", f"  Username: [bold]{result.get('username', '')}[/]"]
    if result.get("leaderboard_dir"):
        lines.append(f"  Directory: {result['leaderboard_dir']}")
    lines.append("")
    console.print(
        Panel("\n".join(lines), title="[bold]Leaderboard Configured[/]", box=box.ROUNDED, border_style="green", width=50)
    )


def print_leaderboard(entries: list[dict], highlight_username: str | None = None) -> None:
    """Print ranked leaderboard entries, highlighting the local user."""
    table = Table(title="Leaderboard", box=box.ROUNDED, show_header=True, header_style="bold")
    table.add_column("#", justify="right", width=4)
    table.add_column("User", min_width=12)
    table.add_column("Tier")
    table.add_column("OVR", justify="right")
    table.add_column("Month", justify="right")
    table.add_column("Total", justify="right")

    for e in entries:
        style = "bold reverse" if highlight_username and e.get("username") == highlight_username else None
        tier = e.get("tier", "Bronze")
        table.add_row(
            str(e.get("rank", "")),
            e.get("username", "?"),
            f"[{tier_color(tier)}]{tier}[/]",
            str(e.get("overall_rating", 0)),
            format_number(e.get("monthly_points", 0)),
            format_number(e.get("total_points", 0)),
            style=style,
        )
    if not entries:
        table.add_row("", "[grey50]No entries yet[/]", "", "", "", "")
    console.print(table)
