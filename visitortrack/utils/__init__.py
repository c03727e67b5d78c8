# ==============================================================================
# Visitor Tracking Utilities
# ==============================================================================
"""
Shared utilities: configuration, clock helpers, retry policies, schema setup.
"""

from visitortrack.utils.clock import Clock, day_for, now_ms
from visitortrack.utils.config import (
    ApiSettings,
    ArchiveSettings,
    GeoIPSettings,
    PostgresSettings,
    Settings,
    TrackingSettings,
    ValkeySettings,
    get_settings,
)

__all__ = [
    # Clock
    "Clock",
    "day_for",
    "now_ms",
    # Config
    "ApiSettings",
    "ArchiveSettings",
    "GeoIPSettings",
    "PostgresSettings",
    "Settings",
    "TrackingSettings",
    "ValkeySettings",
    "get_settings",
]
