# ==============================================================================
# Visitor Tracking
# ==============================================================================
"""
Visitor session tracking and real-time analytics.

Browsers report page views, heartbeats and form submissions; sessions live
in Valkey with per-session optimistic transactions, a sweeper ends idle
sessions, and daily rollups back the dashboard's analytics and exports.
"""

__version__ = "0.1.0"
