# ==============================================================================
# Base Abstract Classes
# ==============================================================================
"""
Abstract base classes defining the storage contracts (ports-and-adapters).

Concrete Valkey and PostgreSQL adapters live in visitortrack/infrastructure.
"""

from visitortrack.base.event_log import Event, EventLog
from visitortrack.base.repositories import SessionArchive
from visitortrack.base.rollups import RollupStore
from visitortrack.base.session_store import Outcome, SessionStore

__all__ = [
    "Event",
    "EventLog",
    "Outcome",
    "RollupStore",
    "SessionArchive",
    "SessionStore",
]
