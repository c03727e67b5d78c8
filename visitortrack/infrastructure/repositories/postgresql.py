# ==============================================================================
# PostgreSQL Repository Implementations
# ==============================================================================
"""
PostgreSQL implementation of the SessionArchive interface.

Ended sessions live in Valkey only for the retention window; the sweeper
copies them here for long-term reporting when archiving is enabled.
"""

import logging
from datetime import UTC, datetime

import psycopg2
from psycopg2.extras import execute_batch

from visitortrack.base.repositories import SessionArchive
from visitortrack.utils.config import Settings, get_settings
from visitortrack.utils.retry import POSTGRES_RETRY_EXCEPTIONS, retry_light

logger = logging.getLogger(__name__)

# Batch size for execute_batch
PAGE_SIZE = 1000

# Connection timeout
CONNECT_TIMEOUT = 10


def _add_connect_timeout(conn_string: str) -> str:
    """Add connect_timeout to connection string if not present."""
    if "connect_timeout" not in conn_string:
        separator = "&" if "?" in conn_string else "?"
        return f"{conn_string}{separator}connect_timeout={CONNECT_TIMEOUT}"
    return conn_string


def _timestamp(value: int | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000.0, tz=UTC)


def to_archive_row(session: dict) -> dict:
    """Map a session record onto the visitor_sessions columns."""
    return {
        "session_id": session["session_id"],
        "visitor_id": session["visitor_id"],
        "session_num": session.get("session_num"),
        "ip_address": session.get("ip_address"),
        "country": session.get("country"),
        "city": session.get("city"),
        "device": session.get("device"),
        "browser": session.get("browser"),
        "os": session.get("os"),
        "email": session.get("email"),
        "name": session.get("name"),
        "entry_page": session.get("entry_page"),
        "exit_page": session.get("current_page"),
        "page_views": session.get("page_views") or 0,
        "session_start": _timestamp(session["session_start"]),
        "last_activity_at": _timestamp(session["last_activity_at"]),
        "ended_at": _timestamp(session.get("ended_at")),
        "time_on_site": session.get("time_on_site") or 0,
    }


class PostgreSQLSessionArchive(SessionArchive):
    """
    PostgreSQL implementation of SessionArchive.

    Uses psycopg2.extras.execute_batch() for bulk upserts. A session that is
    archived twice (the sweeper crashed between save and queue trim) simply
    overwrites its earlier row.
    """

    def __init__(self, settings: Settings | None = None):
        """
        Initialize the session archive.

        Args:
            settings: Application settings. If None, uses get_settings().
        """
        self._settings = settings or get_settings()
        self._conn: psycopg2.extensions.connection | None = None
        self._schema = self._settings.postgres.schema_name

    @property
    def schema(self) -> str:
        """Get the database schema name."""
        return self._schema

    @property
    def connected(self) -> bool:
        return self._conn is not None and not self._conn.closed

    @retry_light(POSTGRES_RETRY_EXCEPTIONS, logger)
    def connect(self) -> None:
        """Establish connection to PostgreSQL."""
        conn_string = _add_connect_timeout(self._settings.postgres.connection_string)
        self._conn = psycopg2.connect(conn_string)
        logger.info("PostgreSQLSessionArchive connected (schema=%s)", self._schema)

    def save(self, sessions: list[dict]) -> int:
        """
        Upsert ended sessions into {schema}.visitor_sessions.

        Args:
            sessions: Session records as stored in Valkey

        Returns:
            Count of sessions saved
        """
        if self._conn is None:
            raise RuntimeError("PostgreSQL connection not established. Call connect() first.")

        if not sessions:
            return 0

        rows = [to_archive_row(session) for session in sessions]
        try:
            with self._conn.cursor() as cur:
                execute_batch(
                    cur,
                    f"""
                    INSERT INTO {self._schema}.visitor_sessions (
                        session_id, visitor_id, session_num, ip_address, country, city,
                        device, browser, os, email, name, entry_page, exit_page,
                        page_views, session_start, last_activity_at, ended_at, time_on_site
                    ) VALUES (
                        %(session_id)s, %(visitor_id)s, %(session_num)s, %(ip_address)s,
                        %(country)s, %(city)s, %(device)s, %(browser)s, %(os)s,
                        %(email)s, %(name)s, %(entry_page)s, %(exit_page)s,
                        %(page_views)s, %(session_start)s, %(last_activity_at)s,
                        %(ended_at)s, %(time_on_site)s
                    )
                    ON CONFLICT (session_id) DO UPDATE SET
                        email = COALESCE({self._schema}.visitor_sessions.email, EXCLUDED.email),
                        name = COALESCE({self._schema}.visitor_sessions.name, EXCLUDED.name),
                        exit_page = EXCLUDED.exit_page,
                        page_views = EXCLUDED.page_views,
                        last_activity_at = EXCLUDED.last_activity_at,
                        ended_at = EXCLUDED.ended_at,
                        time_on_site = EXCLUDED.time_on_site
                    """,
                    rows,
                    page_size=PAGE_SIZE,
                )
            self._conn.commit()
        except psycopg2.Error:
            self.rollback()
            raise
        logger.debug("Upserted %d sessions", len(rows))
        return len(rows)

    def rollback(self) -> None:
        """Rollback current transaction."""
        if self._conn and not self._conn.closed:
            try:
                self._conn.rollback()
            except psycopg2.Error as e:
                logger.warning("Rollback failed: %s", e)

    def close(self) -> None:
        """Close connection and release resources."""
        if self._conn:
            try:
                self._conn.close()
                logger.info("PostgreSQLSessionArchive connection closed")
            except psycopg2.Error as e:
                logger.warning("Error closing connection: %s", e)
            finally:
                self._conn = None


def check_postgresql_connection(settings: Settings | None = None) -> bool:
    """
    Check if PostgreSQL is reachable.

    Args:
        settings: Application settings. If None, uses get_settings().

    Returns:
        True if connection successful, False otherwise
    """
    try:
        settings = settings or get_settings()
        conn_string = _add_connect_timeout(settings.postgres.connection_string)
        conn = psycopg2.connect(conn_string)
        conn.close()
        return True
    except psycopg2.Error:
        return False
