# ==============================================================================
# Repository Abstract Base Classes
# ==============================================================================
"""
Repository ABCs for long-term persistence.

These define the "what" (save ended sessions) not the "how" (insert vs upsert).
Concrete implementations in infrastructure/ handle the specifics.

Note: the session store, event log and rollup store are separate modules
(session_store.py, event_log.py, rollups.py) since they hold live state
rather than archived collections.
"""

from abc import ABC, abstractmethod


class SessionArchive(ABC):
    """Repository for ended sessions."""

    @abstractmethod
    def connect(self) -> None:
        """Establish connection to the data store."""
        ...

    @abstractmethod
    def save(self, sessions: list[dict]) -> int:
        """
        Persist ended sessions.

        Args:
            sessions: Session records (see SessionProcessor)

        Returns:
            Count of sessions saved
        """
        ...

    @abstractmethod
    def close(self) -> None:
        """Close connection and release resources."""
        ...
