# ==============================================================================
# Domain Exceptions
# ==============================================================================
"""
Exceptions raised by the tracking core.

Infrastructure adapters translate client library failures (redis-py,
psycopg2) into StoreUnavailableError so the API layer can map them to a
retryable response without knowing which backend failed.
"""


class TrackingError(Exception):
    """Base class for every tracking error."""


class InvalidEventError(TrackingError):
    """An ingest payload could not be normalized into an event."""


class StoreUnavailableError(TrackingError):
    """The backing store could not be reached or timed out."""


class ConcurrentUpdateError(TrackingError):
    """A session kept changing underneath an optimistic transaction."""

    def __init__(self, session_key: str, attempts: int):
        super().__init__(f"Gave up on {session_key} after {attempts} conflicting attempts")
        self.session_key = session_key
        self.attempts = attempts


class ExportError(TrackingError):
    """An export could not be produced. Always safe to retry."""

    retryable = True


class InvalidRangeError(TrackingError):
    """A requested date range is malformed (start after end, bad date)."""
