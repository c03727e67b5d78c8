# ==============================================================================
# Core Domain Logic
# ==============================================================================
"""
Pure domain logic with no storage dependencies.

This module contains:
- Domain models (payloads, events, read models)
- Session lifecycle logic (idle timeout, debounce, finalization)
- Aggregation helpers (bounded top-N, new vs returning, range merges)
- Enrichment (user agent parsing, GeoIP lookups)

All code here is framework-agnostic and easily unit-testable.
"""

from visitortrack.core.aggregation import classify_visitor, matches_search, merge_daily, rank
from visitortrack.core.enrichment import Enricher, GeoLocator, parse_user_agent
from visitortrack.core.errors import (
    ConcurrentUpdateError,
    ExportError,
    InvalidEventError,
    InvalidRangeError,
    StoreUnavailableError,
    TrackingError,
)
from visitortrack.core.models import (
    AnalyticsReport,
    DailyAggregate,
    EventType,
    ExportFormat,
    FormSubmissionEvent,
    PageViewEvent,
    StatsSummary,
    VisitorProfile,
    VisitorSession,
)
from visitortrack.core.session_processor import SessionProcessor

__all__ = [
    # Aggregation
    "classify_visitor",
    "matches_search",
    "merge_daily",
    "rank",
    # Enrichment
    "Enricher",
    "GeoLocator",
    "parse_user_agent",
    # Errors
    "ConcurrentUpdateError",
    "ExportError",
    "InvalidEventError",
    "InvalidRangeError",
    "StoreUnavailableError",
    "TrackingError",
    # Models
    "AnalyticsReport",
    "DailyAggregate",
    "EventType",
    "ExportFormat",
    "FormSubmissionEvent",
    "PageViewEvent",
    "StatsSummary",
    "VisitorProfile",
    "VisitorSession",
    # Processing
    "SessionProcessor",
]
