from __future__ import annotations

from collections import Counter
from typing import Any, Dict, Optional

from rich import box
from rich.console import Console
from rich.table import Table

from seeder.domain.models import GenerationReport

MAX_FAILURE_ROWS = 10


def _mb(value: Optional[int]) -> str:
    if not value:
        return "N/A"
    return f"{value / (1024 * 1024):.2f}"


def print_report(report: GenerationReport, console: Optional[Console] = None) -> None:
    """
    Render a generation report as rich tables.

    The summary table is always shown; a failure breakdown (by entity and
    error kind) and a sample of failure messages follow when anything failed.
    """
    console = console or Console()
    summary = report.summary

    title = "Seeding Results"
    if report.cancelled:
        title = f"{title}\n[yellow]Run cancelled before all batches were admitted[/yellow]"
    if report.message:
        title = f"{title}\n[dim]{report.message}[/dim]"

    table = Table(title=title, box=box.ROUNDED)
    table.add_column("Metric", style="cyan", no_wrap=True)
    table.add_column("Value", justify="right", style="magenta")

    table.add_row("Customers requested", f"{summary.customers_requested:,}")
    table.add_row("Customers created", f"{summary.customers_created:,}")
    table.add_row("Customers processed", f"{summary.customers_processed:,}")
    table.add_row("Accounts requested", f"{summary.accounts_requested:,}")
    table.add_row("Accounts created", f"{summary.accounts_created:,}")
    table.add_row("Avg accounts / customer", f"{summary.average_accounts_per_customer:.2f}")
    table.add_row("Failed", f"[red]{summary.failed:,}[/red]" if summary.failed else "0")
    table.add_row("Duration (s)", f"{summary.elapsed_seconds:.2f}")
    table.add_row("Throughput (records/s)", f"[bold green]{summary.records_per_second:,.2f}[/bold green]")
    table.add_row("Peak Memory (MB)", _mb(summary.peak_rss_bytes))
    console.print(table)

    if not report.failures:
        return

    breakdown = Counter((f.entity, f.kind) for f in report.failures)
    failures = Table(title="Failures", box=box.ROUNDED)
    failures.add_column("Entity", style="cyan")
    failures.add_column("Kind", style="yellow")
    failures.add_column("Count", justify="right", style="red")
    for (entity, kind), count in breakdown.most_common():
        failures.add_row(entity, kind, str(count))
    console.print(failures)

    for failure in report.failures[:MAX_FAILURE_ROWS]:
        console.print(f"[dim]- {failure.entity}: {failure.message}[/dim]")
    if len(report.failures) > MAX_FAILURE_ROWS:
        console.print(f"[dim]... {len(report.failures) - MAX_FAILURE_ROWS} more[/dim]")


def print_statistics(stats: Dict[str, Any], console: Optional[Console] = None) -> None:
    console = console or Console()
    table = Table(title="Seeder Statistics", box=box.ROUNDED)
    table.add_column("Metric", style="cyan", no_wrap=True)
    table.add_column("Value", justify="right", style="magenta")
    for key, value in stats.items():
        label = key.replace("_", " ").capitalize()
        table.add_row(label, f"{value:,}" if isinstance(value, int) else str(value))
    console.print(table)
