# ==============================================================================
# Sweeper Commands
# ==============================================================================
"""
Run the idle-session sweeper standalone (when the API runs with
API_RUN_SWEEPER=false) or trigger a single sweep.
"""

import json
import signal
from typing import Annotated

import typer

from visitortrack.cli.shared import C, I, configure_logging, open_services


def sweeper_run() -> None:
    """Run the sweeper loop in the foreground until interrupted."""
    configure_logging()
    services = open_services()

    def _signal_handler(signum, frame):
        services.sweeper.stop(timeout=None)

    signal.signal(signal.SIGTERM, _signal_handler)
    signal.signal(signal.SIGINT, _signal_handler)

    try:
        services.sweeper.run()
    finally:
        services.close()


def sweeper_once(
    json_output: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
) -> None:
    """Run a single sweep now.

    Examples:
        visitortrack sweeper once
        visitortrack sweeper once --json
    """
    services = open_services()
    try:
        result = services.sweeper.run_once()
    finally:
        services.close()

    if json_output:
        print(
            json.dumps(
                {
                    "candidates": result.candidates,
                    "ended": result.ended,
                    "skipped": result.skipped,
                    "events_trimmed": result.events_trimmed,
                    "visitors_trimmed": result.visitors_trimmed,
                    "archived": result.archived,
                }
            )
        )
        return

    print()
    print(f"{C.BRIGHT_GREEN}{I.CHECK} Sweep complete{C.RESET} ({result.duration_ms:.1f}ms)")
    print(f"  Idle sessions ended:  {C.WHITE}{result.ended}{C.RESET}")
    print(f"  Skipped (changed):    {C.WHITE}{result.skipped}{C.RESET}")
    print(f"  Events trimmed:       {C.WHITE}{result.events_trimmed}{C.RESET}")
    print(f"  Visitors trimmed:     {C.WHITE}{result.visitors_trimmed}{C.RESET}")
    print(f"  Sessions archived:    {C.WHITE}{result.archived}{C.RESET}")
    print()
