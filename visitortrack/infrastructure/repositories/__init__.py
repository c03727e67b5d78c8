# ==============================================================================
# Database Repository Adapters
# ==============================================================================
"""
Database adapters implementing the repository interfaces from base/repositories.py.

Currently supported:
- PostgreSQL (postgresql.py)
"""

from visitortrack.infrastructure.repositories.postgresql import (
    PostgreSQLSessionArchive,
    check_postgresql_connection,
)

__all__ = [
    "PostgreSQLSessionArchive",
    "check_postgresql_connection",
]
