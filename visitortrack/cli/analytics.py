# ==============================================================================
# Analytics and Live Commands
# ==============================================================================
"""
Dashboard views in the terminal: merged analytics and the live visitor list.
"""

import json
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.table import Table

from visitortrack.cli.shared import C, I, format_duration, open_services
from visitortrack.core.errors import InvalidRangeError


def _ranked_table(title: str, entries) -> Table:
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("Key")
    table.add_column("Count", justify="right")
    for entry in entries:
        table.add_row(entry.key, f"{entry.count:,}")
    return table


def show_analytics(
    start: Annotated[
        Optional[str], typer.Option("--start", "-s", help="First day (YYYY-MM-DD)")
    ] = None,
    end: Annotated[Optional[str], typer.Option("--end", "-e", help="Last day (YYYY-MM-DD)")] = None,
    json_output: Annotated[
        bool, typer.Option("--json", "-j", help="Output as JSON for scripting")
    ] = False,
) -> None:
    """Show merged visitor analytics for a date range.

    Without --start/--end the range covers every recorded day.

    Examples:
        visitortrack analytics
        visitortrack analytics --start 2024-06-01 --end 2024-06-30
        visitortrack analytics --json
    """
    services = open_services()
    try:
        report = services.queries.get_analytics(start, end)
    except InvalidRangeError as e:
        raise typer.BadParameter(str(e)) from e
    finally:
        services.close()

    if json_output:
        print(report.model_dump_json(by_alias=True, indent=2))
        return

    if report.start_date is None:
        print(f"\n  {C.BRIGHT_YELLOW}{I.WARN} No analytics recorded yet{C.RESET}\n")
        return

    console = Console()
    summary = Table(
        title=f"Visitors {report.start_date} to {report.end_date} ({report.days} days)",
        show_header=False,
    )
    summary.add_column("Metric")
    summary.add_column("Value", justify="right")
    summary.add_row("Visitors", f"{report.total_visitors:,}")
    summary.add_row("  New", f"{report.new_visitors:,}")
    summary.add_row("  Returning", f"{report.returning_visitors:,}")
    summary.add_row("Page views", f"{report.total_page_views:,}")
    summary.add_row("Form submissions", f"{report.form_submissions:,}")
    summary.add_row("Leads", f"{report.leads_generated:,}")
    summary.add_row("Avg. time on site", format_duration(report.avg_time_on_site))

    print()
    console.print(summary)
    console.print(_ranked_table("Top pages", report.top_pages))
    console.print(_ranked_table("Top countries", report.top_countries))
    console.print(_ranked_table("Top devices", report.top_devices))
    print()


def show_live(
    search: Annotated[
        Optional[str], typer.Option("--search", "-q", help="Filter by name, email, location or page")
    ] = None,
    json_output: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
) -> None:
    """List live visitors, most recently active first.

    Examples:
        visitortrack live
        visitortrack live --search pricing
    """
    services = open_services()
    try:
        visitors = services.queries.get_live_visitors(search)
    finally:
        services.close()

    if json_output:
        print(json.dumps([v.model_dump(mode="json", by_alias=True) for v in visitors], indent=2))
        return

    if not visitors:
        print(f"\n  {C.DIM}No live visitors{C.RESET}\n")
        return

    console = Console()
    table = Table(title=f"Live visitors ({len(visitors)})", show_header=True, header_style="bold")
    table.add_column("Visitor")
    table.add_column("Name / Email")
    table.add_column("Location")
    table.add_column("Device")
    table.add_column("Page")
    table.add_column("Views", justify="right")
    table.add_column("Time", justify="right")

    for v in visitors:
        location = ", ".join(part for part in (v.city, v.country) if part) or "-"
        who = v.name or v.email or "-"
        table.add_row(
            v.visitor_id,
            who,
            location,
            f"{v.device} / {v.browser}",
            v.current_page or "-",
            str(v.page_views),
            format_duration(v.time_on_site),
        )

    print()
    console.print(table)
    print()
