# ==============================================================================
# Session Store Abstract Base Class
# ==============================================================================
"""
Abstract interface for the session store.

The store is the only writer of session records. Every mutation runs under
the owning session's lock (or optimistic transaction): re-read, decide with
SessionProcessor, then commit the session write, its event log entry and its
rollup counters together.

Timestamps are Unix milliseconds; `now` is always passed in so callers (and
tests) control the clock.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field


@dataclass
class Outcome:
    """
    Result of an ingest mutation.

    Attributes:
        session: Session record after the write
        created: A new session was started for this event
        counted: The event changed counters (False for collapsed duplicates)
        ended: Sessions finalized as a side effect (stale predecessors)
    """

    session: dict
    created: bool = False
    counted: bool = True
    ended: list[dict] = field(default_factory=list)


class SessionStore(ABC):
    """Keyed table of session records with row-level mutation."""

    @abstractmethod
    def record_page_view(
        self,
        visitor_id: str,
        path: str,
        title: str | None,
        now: int,
        enrich: Callable[[], dict],
        email: str | None = None,
        name: str | None = None,
    ) -> Outcome:
        """
        Attach a page view to the visitor's live session, creating one if needed.

        Args:
            visitor_id: Stable browser identity
            path: Page path
            title: Page title
            now: Event time (ms)
            enrich: Called only when a session is created; returns network
                    and device fields
            email: Volunteered identity to merge (set-once)
            name: Volunteered identity to merge (set-once)
        """
        ...

    @abstractmethod
    def heartbeat(
        self,
        visitor_id: str,
        session_id: str | None,
        now: int,
        enrich: Callable[[], dict],
        path: str | None = None,
        title: str | None = None,
    ) -> Outcome:
        """Refresh last activity; unknown or ended sessions start a new one."""
        ...

    @abstractmethod
    def record_form_submission(
        self,
        visitor_id: str,
        session_id: str | None,
        form_type: str,
        now: int,
        enrich: Callable[[], dict],
        form_name: str | None = None,
        path: str | None = None,
        email: str | None = None,
        name: str | None = None,
    ) -> Outcome:
        """Append a form submission, merge identity and count the lead."""
        ...

    @abstractmethod
    def end_session(self, session_id: str, now: int) -> dict | None:
        """
        Explicitly end a session.

        Returns:
            The finalized record, the unchanged record if it had already
            ended, or None if the session is unknown
        """
        ...

    @abstractmethod
    def sweep_session(self, session_id: str, now: int) -> bool:
        """
        End the session if, on a fresh read under its lock, it is still
        active and idle past the timeout.

        Returns:
            True if the session was ended by this call
        """
        ...

    @abstractmethod
    def idle_candidates(self, cutoff: int) -> list[str]:
        """Session ids whose last indexed activity is older than cutoff (ms)."""
        ...

    @abstractmethod
    def get_session(self, session_id: str) -> dict | None:
        """Read one session record."""
        ...

    @abstractmethod
    def get_sessions(self, session_ids: list[str]) -> dict[str, dict]:
        """Read several session records at once, keyed by id (missing ids omitted)."""
        ...

    @abstractmethod
    def get_active_sessions(self) -> list[dict]:
        """All sessions currently flagged active, most recent activity first."""
        ...

    @abstractmethod
    def get_visitor_sessions(self, visitor_id: str, limit: int = 10) -> list[dict]:
        """The visitor's most recent sessions, newest first."""
        ...

    @abstractmethod
    def get_visitor_info(self, visitor_id: str) -> dict | None:
        """First-seen timestamp and session count, or None for unknown visitors."""
        ...

    @abstractmethod
    def list_visitors(
        self,
        offset: int,
        limit: int,
        email: str | None = None,
        country: str | None = None,
    ) -> tuple[list[dict], int]:
        """
        Visitors ordered by last activity, newest first.

        Args:
            offset: Matching visitors to skip
            limit: Page size
            email: Case-insensitive substring filter on the known email
            country: Case-insensitive exact filter on the latest country

        Returns:
            (visitor profiles for the page, total matching visitors)
        """
        ...
