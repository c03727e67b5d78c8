# ==============================================================================
# Aggregation - Pure Domain Logic
# ==============================================================================
"""
Pure aggregation helpers shared by the rollup store and the query layer.

- Re-ranking top-N frequency maps after a merge
- New vs returning classification
- Merging per-day aggregates into a range report
- Live-tier search and visitor listing filters

Nothing here touches storage. The daily top-N maps themselves are bounded
in Valkey (see infrastructure/aggregates.py).
"""

from collections.abc import Iterable
from datetime import date

from visitortrack.core.models import AnalyticsReport, DailyAggregate, RankedEntry
from visitortrack.utils.clock import day_for

DEFAULT_TOP_N = 10

SEARCH_FIELDS = ("name", "email", "country", "city", "current_page", "page_title")


def rank(counts: dict[str, int], limit: int = DEFAULT_TOP_N) -> list[RankedEntry]:
    """Order a frequency map by count (desc), ties by key, truncated to `limit`."""
    ordered = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [RankedEntry(key=key, count=count) for key, count in ordered[:limit]]


def merge_counts(maps: Iterable[dict[str, int]]) -> dict[str, int]:
    """Sum several frequency maps key by key."""
    merged: dict[str, int] = {}
    for counts in maps:
        for key, count in counts.items():
            merged[key] = merged.get(key, 0) + count
    return merged


def classify_visitor(first_seen_ms: int, day: date, tz: str | None = None) -> str:
    """
    Classify a visitor for a given day.

    A visitor is "new" on the day their first-ever session started and
    "returning" on every later day.
    """
    return "new" if day_for(first_seen_ms, tz) >= day else "returning"


def merge_daily(
    aggregates: list[DailyAggregate],
    start: date | None = None,
    end: date | None = None,
    limit: int = DEFAULT_TOP_N,
) -> AnalyticsReport:
    """
    Merge per-day aggregates into one report.

    Top-N maps are summed across days and then re-ranked, so a page that
    was second on every day can still come out first overall.

    Visitors are summed per day: someone who visits on two days counts
    twice in the range total.
    """
    unique = sum(a.unique_visitors for a in aggregates)
    total_time = sum(a.total_time_on_site_seconds for a in aggregates)

    if aggregates:
        start = start or min(a.day for a in aggregates)
        end = end or max(a.day for a in aggregates)
    days = (end - start).days + 1 if start and end else 0

    return AnalyticsReport(
        start_date=start,
        end_date=end,
        days=days,
        total_visitors=unique,
        new_visitors=sum(a.new_visitors for a in aggregates),
        returning_visitors=sum(a.returning_visitors for a in aggregates),
        total_page_views=sum(a.page_views for a in aggregates),
        form_submissions=sum(a.form_submissions for a in aggregates),
        leads_generated=sum(a.leads_generated for a in aggregates),
        avg_time_on_site=round(total_time / unique) if unique else 0,
        top_pages=rank(merge_counts(a.top_pages for a in aggregates), limit),
        top_countries=rank(merge_counts(a.top_countries for a in aggregates), limit),
        top_devices=rank(merge_counts(a.top_devices for a in aggregates), limit),
    )


def matches_search(session: dict, query: str | None) -> bool:
    """Case-insensitive substring match over the dashboard's searchable fields."""
    if not query:
        return True
    needle = query.strip().lower()
    if not needle:
        return True
    for field in SEARCH_FIELDS:
        value = session.get(field)
        if value and needle in str(value).lower():
            return True
    return False


def matches_visitor(profile: dict, email: str | None = None, country: str | None = None) -> bool:
    """Visitor listing filters: email substring, exact country, both case-insensitive."""
    if email and email.strip():
        known = profile.get("email")
        if not known or email.strip().lower() not in known.lower():
            return False
    if country and country.strip():
        if (profile.get("country") or "").lower() != country.strip().lower():
            return False
    return True
