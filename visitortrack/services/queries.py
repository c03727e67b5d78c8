# ==============================================================================
# Dashboard Query Service
# ==============================================================================
"""
Read-only views served to the dashboard.

- Live tier: a direct filter over active sessions (no caching)
- Rollup tier: per-day aggregates merged across a date range

Past days never change once the day is over (counters are always written
against the current day), so their aggregates are memoized in-process.
Today is always read fresh.
"""

import logging
import math
import threading
from datetime import date

from visitortrack.base.rollups import RollupStore
from visitortrack.base.session_store import SessionStore
from visitortrack.core.aggregation import DEFAULT_TOP_N, matches_search, merge_daily
from visitortrack.core.errors import InvalidRangeError
from visitortrack.core.models import (
    AnalyticsReport,
    DailyAggregate,
    StatsSummary,
    VisitorPage,
    VisitorProfile,
    VisitorSession,
    VisitorSummary,
)
from visitortrack.core.session_processor import SessionProcessor
from visitortrack.utils.clock import Clock, day_for, now_ms, to_datetime

logger = logging.getLogger(__name__)

DEFAULT_PAGE_LIMIT = 20
MAX_PAGE_LIMIT = 100


def parse_date(value: str | date | None, label: str) -> date | None:
    """Parse an ISO date (YYYY-MM-DD, a datetime prefix is accepted)."""
    if value is None or isinstance(value, date):
        return value
    value = value.strip()
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError as e:
        raise InvalidRangeError(f"{label} must be an ISO date, got {value!r}") from e


class QueryService:
    """Live visitors, stats summary, analytics and visitor detail."""

    def __init__(
        self,
        store: SessionStore,
        rollups: RollupStore,
        processor: SessionProcessor | None = None,
        clock: Clock = now_ms,
        tz: str | None = None,
        top_n: int = DEFAULT_TOP_N,
    ):
        self._store = store
        self._rollups = rollups
        self._processor = processor or SessionProcessor()
        self._clock = clock
        self._tz = tz
        self._top_n = top_n
        self._past_days: dict[date, DailyAggregate] = {}
        self._memo_lock = threading.Lock()

    def _to_view(self, record: dict, now: int) -> VisitorSession:
        return VisitorSession.from_record(record, self._processor.time_on_site(record, now))

    def _get_day(self, day: date, today: date) -> DailyAggregate:
        if day >= today:
            return self._rollups.get_day(day)
        with self._memo_lock:
            cached = self._past_days.get(day)
        if cached is None:
            cached = self._rollups.get_day(day)
            with self._memo_lock:
                self._past_days[day] = cached
        return cached

    def clear_cache(self) -> None:
        with self._memo_lock:
            self._past_days.clear()

    # ==========================================================================
    # Live Tier
    # ==========================================================================

    def get_live_visitors(self, search: str | None = None) -> list[VisitorSession]:
        """Active sessions matching `search`, most recent activity first."""
        now = self._clock()
        return [
            self._to_view(session, now)
            for session in self._store.get_active_sessions()
            if matches_search(session, search)
        ]

    def get_stats_summary(self) -> StatsSummary:
        now = self._clock()
        live = len(self._store.get_active_sessions())
        today = self._rollups.get_day(day_for(now, self._tz))
        return StatsSummary(
            live_visitors=live,
            today_visitors=today.unique_visitors,
            today_page_views=today.page_views,
            today_leads=today.leads_generated,
            avg_time_on_site=today.avg_time_on_site,
        )

    # ==========================================================================
    # Rollup Tier
    # ==========================================================================

    def get_analytics(
        self,
        start: str | date | None = None,
        end: str | date | None = None,
    ) -> AnalyticsReport:
        """
        Merge daily aggregates over [start, end].

        Either bound may be omitted: the range then extends to the first or
        last recorded day. Days with no data contribute zeros.

        Raises:
            InvalidRangeError: Unparseable dates or start after end
        """
        start = parse_date(start, "startDate")
        end = parse_date(end, "endDate")
        if start and end and start > end:
            raise InvalidRangeError(f"startDate {start} is after endDate {end}")

        today = day_for(self._clock(), self._tz)
        recorded = [
            day
            for day in self._rollups.list_days()
            if (start is None or day >= start) and (end is None or day <= end)
        ]
        aggregates = [self._get_day(day, today) for day in recorded]

        if start is None and recorded:
            start = recorded[0]
        if end is None:
            end = recorded[-1] if recorded else start
        return merge_daily(aggregates, start, end, limit=self._top_n)

    # ==========================================================================
    # Visitors
    # ==========================================================================

    def get_visitor(self, visitor_id: str, limit: int = 10) -> VisitorProfile | None:
        """A visitor's first-seen time, visit count and recent sessions."""
        info = self._store.get_visitor_info(visitor_id)
        if info is None:
            return None
        now = self._clock()
        sessions = [self._to_view(s, now) for s in self._store.get_visitor_sessions(visitor_id, limit)]
        email = next((s.email for s in sessions if s.email), None)
        name = next((s.name for s in sessions if s.name), None)
        return VisitorProfile(
            visitor_id=visitor_id,
            first_seen=to_datetime(info["first_seen"], "UTC"),
            total_sessions=info["total_sessions"],
            email=email,
            name=name,
            sessions=sessions,
        )

    def list_visitors(
        self,
        page: int = 1,
        limit: int = DEFAULT_PAGE_LIMIT,
        email: str | None = None,
        country: str | None = None,
    ) -> VisitorPage:
        """Visitors by last activity, newest first, optionally filtered by email or country."""
        page = max(page, 1)
        limit = max(1, min(limit, MAX_PAGE_LIMIT))
        records, total = self._store.list_visitors((page - 1) * limit, limit, email, country)
        return VisitorPage(
            visitors=[VisitorSummary.from_record(r) for r in records],
            total=total,
            pages=math.ceil(total / limit),
            current_page=page,
        )
