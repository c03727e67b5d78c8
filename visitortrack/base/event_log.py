# ==============================================================================
# Event Log Abstract Base Class
# ==============================================================================
"""
Abstract interface for the append-only event log.

Page views and form submissions are appended by the session store in the
same transaction as the session write. Entries are never updated; they are
only removed by retention trimming.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterator

from visitortrack.core.models import FormSubmissionEvent, PageViewEvent

Event = PageViewEvent | FormSubmissionEvent


class EventLog(ABC):
    """Append-only log of page-view and form-submission events."""

    @abstractmethod
    def iter_pages(
        self,
        start_ms: int,
        end_ms: int,
        page_size: int = 500,
    ) -> Iterator[list[Event]]:
        """
        Yield events in time order, one page at a time.

        Each page is fetched with a cursor positioned after the previous
        page's last entry, so no read holds the whole range and writers are
        never blocked.

        Args:
            start_ms: Inclusive lower bound (ms)
            end_ms: Inclusive upper bound (ms)
            page_size: Maximum events per page
        """
        ...

    @abstractmethod
    def trim_before(self, cutoff_ms: int) -> int:
        """
        Drop entries older than the cutoff.

        Returns:
            Count of entries removed
        """
        ...
