# ==============================================================================
# Shared Utilities for CLI Commands
# ==============================================================================
"""
Shared utilities, constants, and helper functions used across CLI command modules.

This module provides:
- ANSI color codes and status icons
- Logging setup for long-running commands
- Service graph construction with a friendly error when Valkey is down
"""

import logging

import typer

from visitortrack.infrastructure.valkey import check_valkey_connection, get_request_client
from visitortrack.services import Services, build_services
from visitortrack.utils.config import get_settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


# ==============================================================================
# ANSI Colors and Icons
# ==============================================================================


class Colors:
    """ANSI color codes for terminal output."""

    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    CYAN = "\033[36m"
    WHITE = "\033[37m"

    BRIGHT_RED = "\033[91m"
    BRIGHT_GREEN = "\033[92m"
    BRIGHT_YELLOW = "\033[93m"


class Icons:
    """Status icons using Unicode symbols."""

    CHECK = "✓"
    CROSS = "✗"
    WARN = "!"
    CIRCLE = "●"


# Module-level aliases for convenience
C, I = Colors, Icons


# ==============================================================================
# Helpers
# ==============================================================================


def configure_logging(level: str | None = None) -> None:
    """Console logging for long-running commands (serve, sweeper run)."""
    settings = get_settings()
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format=LOG_FORMAT,
    )
    # Suppress noisy third-party loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("redis").setLevel(logging.WARNING)


def open_services() -> Services:
    """Build the service graph, exiting with a message if Valkey is unreachable."""
    settings = get_settings()
    client = get_request_client(settings)
    if not check_valkey_connection(client):
        print(
            f"{C.BRIGHT_RED}{I.CROSS} Valkey is not reachable at "
            f"{settings.valkey.host}:{settings.valkey.port}{C.RESET}"
        )
        raise typer.Exit(1)
    return build_services(settings, client=client)


def format_duration(seconds: int) -> str:
    """Seconds as m:ss (or h:mm:ss)."""
    minutes, secs = divmod(int(seconds), 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"
