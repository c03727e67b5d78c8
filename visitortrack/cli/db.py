# ==============================================================================
# Database Commands
# ==============================================================================
"""
PostgreSQL session archive schema management.
"""

from typing import Annotated

import psycopg2
import typer

from visitortrack.cli.shared import C, I
from visitortrack.utils.config import get_settings


def db_init() -> None:
    """Create the archive schema and tables (idempotent)."""
    from visitortrack.utils.db import ensure_schema

    settings = get_settings()
    try:
        ensure_schema(settings)
    except (RuntimeError, psycopg2.Error) as e:
        print(f"{C.BRIGHT_RED}{I.CROSS} Schema initialization failed: {e}{C.RESET}")
        raise typer.Exit(1)
    print(
        f"{C.BRIGHT_GREEN}{I.CHECK} Schema '{settings.postgres.schema_name}' ready{C.RESET}"
    )


def db_reset(
    confirm: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt")] = False,
) -> None:
    """Drop and recreate the archive schema (deletes archived sessions)."""
    from visitortrack.utils.db import reset_schema

    settings = get_settings()
    if not confirm:
        typer.confirm(
            f"Drop schema '{settings.postgres.schema_name}' and all archived sessions?",
            abort=True,
        )
    try:
        reset_schema(settings)
    except (RuntimeError, psycopg2.Error) as e:
        print(f"{C.BRIGHT_RED}{I.CROSS} {e}{C.RESET}")
        raise typer.Exit(1)
    print(f"{C.BRIGHT_GREEN}{I.CHECK} Schema '{settings.postgres.schema_name}' reset{C.RESET}")
