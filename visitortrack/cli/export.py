# ==============================================================================
# Export Command
# ==============================================================================
"""
Writes an event export (CSV or Excel) to a local file.

The export is streamed into a hidden sibling file and renamed into place
once complete, so a failed run never leaves a partial file at the target.
"""

from pathlib import Path
from typing import Annotated, Optional

import typer

from visitortrack.cli.shared import C, I, open_services
from visitortrack.core.errors import InvalidRangeError, TrackingError
from visitortrack.core.models import ExportFormat


def export_data(
    fmt: Annotated[
        ExportFormat, typer.Option("--format", "-f", help="Output format")
    ] = ExportFormat.CSV,
    start: Annotated[
        Optional[str], typer.Option("--start", "-s", help="First day (YYYY-MM-DD)")
    ] = None,
    end: Annotated[Optional[str], typer.Option("--end", "-e", help="Last day (YYYY-MM-DD)")] = None,
    output: Annotated[
        Optional[Path], typer.Option("--output", "-o", help="Output file (default: dated name)")
    ] = None,
) -> None:
    """Export page views and form submissions.

    Examples:
        visitortrack export
        visitortrack export --format excel --start 2024-06-01 -o june.xlsx
    """
    services = open_services()
    try:
        path = output or Path(services.exports.filename(fmt))
        try:
            chunks = services.exports.stream(fmt, start, end)
        except InvalidRangeError as e:
            raise typer.BadParameter(str(e)) from e

        partial = path.with_name(f".{path.name}.partial")
        written = 0
        try:
            with partial.open("wb") as f:
                for chunk in chunks:
                    f.write(chunk)
                    written += len(chunk)
            partial.replace(path)
        except TrackingError as e:
            print(f"{C.BRIGHT_RED}{I.CROSS} Export failed, {path} was not written: {e}{C.RESET}")
            print(f"  {C.DIM}The store may be briefly unavailable. Retry the export.{C.RESET}")
            raise typer.Exit(1) from e
        finally:
            # gone already after a successful rename
            partial.unlink(missing_ok=True)
    finally:
        services.close()

    print(f"{C.BRIGHT_GREEN}{I.CHECK} Wrote {written:,} bytes to {C.WHITE}{path}{C.RESET}")
