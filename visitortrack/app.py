# ==============================================================================
# Visitor Tracking CLI
# ==============================================================================
"""
Command-line interface for the visitor tracking service.

Usage:
    visitortrack --help
    visitortrack serve
    visitortrack sweeper run
    visitortrack sweeper once
    visitortrack live --search pricing
    visitortrack analytics --start 2024-06-01 --end 2024-06-30
    visitortrack export --format excel
    visitortrack db init
    visitortrack data reset -y
    visitortrack config show
"""

import os

import typer

# ==============================================================================
# App Configuration
# ==============================================================================
# Set consistent terminal width for help output formatting
if "COLUMNS" not in os.environ:
    os.environ["COLUMNS"] = "115"

app = typer.Typer(
    name="visitortrack",
    help="Visitor session tracking and analytics CLI",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# Serve command is imported from visitortrack.cli.serve
from visitortrack.cli.serve import serve

app.command("serve")(serve)

sweeper_app = typer.Typer(
    help="Idle session sweeper",
    no_args_is_help=True,
)
app.add_typer(sweeper_app, name="sweeper")

from visitortrack.cli.sweeper import sweeper_once, sweeper_run

sweeper_app.command("run")(sweeper_run)
sweeper_app.command("once")(sweeper_once)

# Dashboard views
from visitortrack.cli.analytics import show_analytics, show_live

app.command("analytics")(show_analytics)
app.command("live")(show_live)

from visitortrack.cli.export import export_data

app.command("export")(export_data)

db_app = typer.Typer(
    help="Session archive (PostgreSQL) operations",
    no_args_is_help=True,
)
app.add_typer(db_app, name="db")

from visitortrack.cli.db import db_init, db_reset

db_app.command("init")(db_init)
db_app.command("reset")(db_reset)

data_app = typer.Typer(
    help="Data management operations",
    no_args_is_help=True,
)
app.add_typer(data_app, name="data")

from visitortrack.cli.data import data_reset

data_app.command("reset")(data_reset)

config_app = typer.Typer(
    help="Configuration management",
    no_args_is_help=True,
)
app.add_typer(config_app, name="config")

from visitortrack.cli.config import config_show

config_app.command("show")(config_show)


# ==============================================================================
# Entry Point
# ==============================================================================


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
