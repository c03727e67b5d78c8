# ==============================================================================
# Config Commands
# ==============================================================================
"""
Configuration display for the visitor tracking CLI.
"""

import json
from typing import Annotated

import typer

from visitortrack.cli.shared import C
from visitortrack.utils.config import get_settings


def config_show(
    json_output: Annotated[
        bool, typer.Option("--json", "-j", help="Output configuration as JSON")
    ] = False,
) -> None:
    """Display current configuration (includes secrets in JSON mode)."""
    settings = get_settings()

    if json_output:
        print(json.dumps(settings.model_dump(mode="json"), indent=2))
        return

    tracking = settings.tracking
    print()
    print(f"{C.BOLD}Configuration{C.RESET}")
    print()

    print(f"{C.CYAN}Valkey{C.RESET}")
    print(f"  Host:       {C.WHITE}{settings.valkey.host}:{settings.valkey.port}{C.RESET}")
    print(f"  SSL:        {C.WHITE}{'enabled' if settings.valkey.ssl else 'disabled'}{C.RESET}")
    print(f"  Prefix:     {C.WHITE}{settings.valkey.key_prefix}{C.RESET}")
    print()

    print(f"{C.CYAN}Tracking{C.RESET}")
    print(f"  Idle:       {C.WHITE}{tracking.idle_timeout_seconds}s{C.RESET}")
    print(f"  Debounce:   {C.WHITE}{tracking.debounce_ms}ms{C.RESET}")
    print(f"  Sweep:      {C.WHITE}every {tracking.sweep_interval_seconds}s{C.RESET}")
    print(f"  Top-N:      {C.WHITE}{tracking.top_n}{C.RESET}")
    print(f"  Timezone:   {C.WHITE}{tracking.timezone or 'server local'}{C.RESET}")
    print(
        f"  Retention:  {C.WHITE}{tracking.session_retention_days}d sessions, "
        f"{tracking.event_retention_days}d events{C.RESET}"
    )
    print()

    print(f"{C.CYAN}API{C.RESET}")
    print(f"  Listen:     {C.WHITE}{settings.api.host}:{settings.api.port}{C.RESET}")
    print(f"  Prefix:     {C.WHITE}{settings.api.prefix}{C.RESET}")
    print(f"  Sweeper:    {C.WHITE}{'in-process' if settings.api.run_sweeper else 'external'}{C.RESET}")
    print()

    print(f"{C.CYAN}Archive{C.RESET}")
    print(f"  Status:     {C.WHITE}{'enabled' if settings.archive.enabled else 'disabled'}{C.RESET}")
    print(f"  Database:   {C.WHITE}{settings.postgres.host}:{settings.postgres.port}/{settings.postgres.database}{C.RESET}")
    print(f"  Schema:     {C.WHITE}{settings.postgres.schema_name}{C.RESET}")
    print()

    print(f"{C.CYAN}GeoIP{C.RESET}")
    print(f"  Database:   {C.WHITE}{settings.geoip.db_path or 'not configured'}{C.RESET}")
    print()
