# ==============================================================================
# Data Commands
# ==============================================================================
"""
Data management commands: wipe every tracking key from Valkey.
"""

from typing import Annotated

import typer

from visitortrack.cli.shared import C, I, open_services
from visitortrack.utils.config import get_settings


def data_reset(
    confirm: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt")] = False,
) -> None:
    """Delete all sessions, events and rollups from Valkey.

    Only keys under the configured prefix (VALKEY_KEY_PREFIX) are removed.
    The PostgreSQL archive is left alone; use 'db reset' for that.

    Examples:
        visitortrack data reset       # With confirmation prompt
        visitortrack data reset -y    # Skip confirmation
    """
    prefix = get_settings().valkey.key_prefix
    if not confirm:
        typer.confirm(f"Delete every '{prefix}:*' key from Valkey?", abort=True)

    services = open_services()
    try:
        deleted = services.store.clear_all()
    finally:
        services.close()
    print(f"{C.BRIGHT_GREEN}{I.CHECK} Deleted {deleted:,} keys{C.RESET}")
