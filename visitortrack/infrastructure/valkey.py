# ==============================================================================
# Valkey Connection and Key Layout
# ==============================================================================
"""
Valkey/Redis client factory, key naming, and error translation shared by the
session store, event log and rollup store.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date

import redis
from redis.backoff import ExponentialBackoff
from redis.retry import Retry

from visitortrack.core.errors import StoreUnavailableError
from visitortrack.utils.config import Settings, get_settings
from visitortrack.utils.retry import REDIS_RETRY_EXCEPTIONS, VALKEY_RETRIES

logger = logging.getLogger(__name__)


def get_valkey_client(
    url: str | None = None,
    socket_timeout: float = 10,
    retries: int = VALKEY_RETRIES,
    backoff_cap: float = 32,
) -> redis.Redis:
    """
    Get a Valkey/Redis client connection.

    Defaults suit background work:
    - 10 second socket timeouts
    - 10 automatic retries with exponential backoff (capped at 32s)
    - Health check interval to keep connections alive

    Request paths should use get_request_client() instead.

    Returns:
        redis.Redis client instance
    """
    if url is None:
        url = get_settings().valkey.url

    retry = Retry(ExponentialBackoff(cap=backoff_cap, base=min(1, backoff_cap)), retries=retries)

    return redis.from_url(
        url,
        decode_responses=True,
        socket_timeout=socket_timeout,
        socket_connect_timeout=socket_timeout,
        retry=retry,
        retry_on_error=list(REDIS_RETRY_EXCEPTIONS),
        health_check_interval=30,
    )


def get_request_client(settings: Settings | None = None) -> redis.Redis:
    """
    Client for the API and CLI, where every call runs inside a request.

    Timeouts and retries come from VALKEY_SOCKET_TIMEOUT, VALKEY_RETRIES and
    VALKEY_BACKOFF_CAP. With the store down a call fails within a few
    seconds, so callers can answer 503 instead of holding a worker.
    """
    valkey = (settings or get_settings()).valkey
    return get_valkey_client(
        valkey.url,
        socket_timeout=valkey.socket_timeout,
        retries=valkey.retries,
        backoff_cap=valkey.backoff_cap,
    )


def check_valkey_connection(client: redis.Redis | None = None) -> bool:
    """
    Check if Valkey is reachable.

    Returns:
        True if Valkey responds to ping, False otherwise
    """
    try:
        client = client or redis.from_url(
            get_settings().valkey.url,
            decode_responses=True,
            socket_timeout=5,
            socket_connect_timeout=5,
        )
        return bool(client.ping())
    except REDIS_RETRY_EXCEPTIONS:
        return False


@contextmanager
def store_errors(operation: str) -> Iterator[None]:
    """Translate redis-py connection failures into StoreUnavailableError."""
    try:
        yield
    except REDIS_RETRY_EXCEPTIONS as e:
        logger.warning("Valkey unavailable during %s: %s", operation, e)
        raise StoreUnavailableError(f"Valkey unavailable during {operation}") from e


class Keys:
    """
    Key layout. Everything lives under one prefix so a data reset can scan
    and delete it without touching other tenants of the same database.

    {p}:session:{session_id}                 hash, one session record
    {p}:sessions:active                      zset, session_id -> last_activity_at
    {p}:visitor:{visitor_id}:active          string, current session id
    {p}:visitor:{visitor_id}:sessions        string, sessions started so far
    {p}:visitor:{visitor_id}:first_seen      string, ms of first session start
    {p}:visitor:{visitor_id}:seen_day        string, last day counted as unique
    {p}:visitor:{visitor_id}:history         zset, session_id -> session_start
    {p}:visitor:{visitor_id}:profile         hash, latest contact, location and device
    {p}:visitors                             zset, visitor_id -> last activity
    {p}:events                               zset (lex), event log
    {p}:daily:{day}                          hash, rollup counters
    {p}:daily:{day}:top:{dimension}          zset, bounded top-N map
    {p}:days                                 set, days with rollup data
    {p}:archive:pending                      list, ended sessions awaiting archive
    """

    def __init__(self, prefix: str = "vt"):
        self.prefix = prefix

    def session(self, session_id: str) -> str:
        return f"{self.prefix}:session:{session_id}"

    @property
    def active_sessions(self) -> str:
        return f"{self.prefix}:sessions:active"

    def visitor_active(self, visitor_id: str) -> str:
        return f"{self.prefix}:visitor:{visitor_id}:active"

    def visitor_session_count(self, visitor_id: str) -> str:
        return f"{self.prefix}:visitor:{visitor_id}:sessions"

    def visitor_first_seen(self, visitor_id: str) -> str:
        return f"{self.prefix}:visitor:{visitor_id}:first_seen"

    def visitor_seen_day(self, visitor_id: str) -> str:
        return f"{self.prefix}:visitor:{visitor_id}:seen_day"

    def visitor_history(self, visitor_id: str) -> str:
        return f"{self.prefix}:visitor:{visitor_id}:history"

    def visitor_profile(self, visitor_id: str) -> str:
        return f"{self.prefix}:visitor:{visitor_id}:profile"

    @property
    def visitors(self) -> str:
        return f"{self.prefix}:visitors"

    @property
    def events(self) -> str:
        return f"{self.prefix}:events"

    def daily(self, day: date) -> str:
        return f"{self.prefix}:daily:{day.isoformat()}"

    def daily_top(self, day: date, dimension: str) -> str:
        return f"{self.prefix}:daily:{day.isoformat()}:top:{dimension}"

    @property
    def days(self) -> str:
        return f"{self.prefix}:days"

    @property
    def archive_pending(self) -> str:
        return f"{self.prefix}:archive:pending"

    @property
    def pattern(self) -> str:
        return f"{self.prefix}:*"
