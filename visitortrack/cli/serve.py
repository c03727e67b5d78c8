# ==============================================================================
# Serve Command
# ==============================================================================
"""
Runs the HTTP API (and, unless disabled, the sweeper thread) under uvicorn.
"""

from typing import Annotated, Optional

import typer
import uvicorn

from visitortrack.cli.shared import configure_logging
from visitortrack.utils.config import get_settings


def serve(
    host: Annotated[Optional[str], typer.Option("--host", help="Bind address")] = None,
    port: Annotated[Optional[int], typer.Option("--port", "-p", help="Bind port")] = None,
    no_sweeper: Annotated[
        bool, typer.Option("--no-sweeper", help="Do not run the sweeper in this process")
    ] = False,
) -> None:
    """Start the tracking API.

    Examples:
        visitortrack serve
        visitortrack serve --port 9000 --no-sweeper
    """
    from visitortrack.api import create_app

    settings = get_settings()
    configure_logging()

    app = create_app(run_sweeper=False if no_sweeper else None)
    uvicorn.run(
        app,
        host=host or settings.api.host,
        port=port or settings.api.port,
        log_config=None,
    )
