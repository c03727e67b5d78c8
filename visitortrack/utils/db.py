# ==============================================================================
# Database Utilities
# ==============================================================================
"""
Schema initialization for the PostgreSQL session archive.

Includes retry logic with exponential backoff for network resilience.
"""

import logging
from pathlib import Path

import psycopg2
from jinja2 import Template

from visitortrack.utils.config import Settings, get_settings
from visitortrack.utils.paths import get_init_sql_path
from visitortrack.utils.retry import POSTGRES_RETRY_EXCEPTIONS, retry_standard

logger = logging.getLogger(__name__)


def get_schema_file() -> Path | None:
    """Get the schema init.sql path, or None if not found."""
    path = get_init_sql_path()
    if path.exists():
        return path
    # Fallback to current directory
    cwd_path = Path.cwd() / "schema" / "init.sql"
    if cwd_path.exists():
        return cwd_path
    return None


def render_schema_sql(schema_name: str) -> str:
    """Render the schema SQL template with the given schema name."""
    schema_file = get_schema_file()
    if not schema_file:
        raise RuntimeError(
            "Schema file (schema/init.sql) not found. "
            "Make sure you're running from the project root."
        )

    template = Template(schema_file.read_text())
    return template.render(schema_name=schema_name)


@retry_standard(POSTGRES_RETRY_EXCEPTIONS, logger)
def ensure_schema(settings: Settings | None = None) -> None:
    """
    Create the archive schema and tables if they do not exist.

    Idempotent: every statement in init.sql uses IF NOT EXISTS.

    Raises:
        RuntimeError: If the schema file is missing or a statement fails
    """
    settings = settings or get_settings()
    schema_name = settings.postgres.schema_name
    schema_sql = render_schema_sql(schema_name)

    logger.info("Initializing database schema '%s'...", schema_name)
    try:
        with psycopg2.connect(settings.postgres.connection_string, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute(schema_sql)
            conn.commit()
    except POSTGRES_RETRY_EXCEPTIONS:
        raise
    except psycopg2.Error as e:
        raise RuntimeError(f"Failed to initialize schema: {e}") from e
    logger.info("Database schema '%s' initialized.", schema_name)


def reset_schema(settings: Settings | None = None) -> None:
    """
    Drop and recreate the archive schema.

    WARNING: This deletes all archived sessions!
    """
    settings = settings or get_settings()
    schema_name = settings.postgres.schema_name

    try:
        schema_sql = render_schema_sql(schema_name)
        with psycopg2.connect(settings.postgres.connection_string, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute(f"DROP SCHEMA IF EXISTS {schema_name} CASCADE")
                cur.execute(schema_sql)
            conn.commit()
    except psycopg2.Error as e:
        raise RuntimeError(f"Failed to reset schema: {e}") from e
