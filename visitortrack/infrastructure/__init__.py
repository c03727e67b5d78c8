# ==============================================================================
# Infrastructure Adapters
# ==============================================================================
"""
Adapters for external services (ports-and-adapters architecture).

- valkey.py - Client factory, key layout, error translation
- session_store.py - Session records with per-session transactions
- event_log.py - Append-only event log with cursor pagination
- aggregates.py - Daily counters and bounded top-N maps
- repositories/ - Long-term session archive (PostgreSQL)
"""

from visitortrack.infrastructure.aggregates import ValkeyRollupStore
from visitortrack.infrastructure.event_log import ValkeyEventLog
from visitortrack.infrastructure.repositories import (
    PostgreSQLSessionArchive,
    check_postgresql_connection,
)
from visitortrack.infrastructure.session_store import ValkeySessionStore
from visitortrack.infrastructure.valkey import (
    Keys,
    check_valkey_connection,
    get_request_client,
    get_valkey_client,
    store_errors,
)

__all__ = [
    # Valkey
    "Keys",
    "ValkeyEventLog",
    "ValkeyRollupStore",
    "ValkeySessionStore",
    "check_valkey_connection",
    "get_request_client",
    "get_valkey_client",
    "store_errors",
    # Repositories
    "PostgreSQLSessionArchive",
    "check_postgresql_connection",
]
