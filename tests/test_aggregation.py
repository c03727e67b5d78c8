# ==============================================================================
# Tests for Aggregation Helpers
# ==============================================================================
"""
Unit tests for top-N ranking, visitor classification, range merges and
live search matching.
"""

from datetime import date

from visitortrack.core.aggregation import (
    classify_visitor,
    matches_search,
    merge_counts,
    merge_daily,
    rank,
)
from visitortrack.core.models import DailyAggregate

# 2024-06-03 10:00:00 UTC
T0 = 1_717_408_800_000


# ==============================================================================
# Top-N maps
# ==============================================================================


class TestRank:
    def test_orders_by_count_then_key(self):
        ranked = rank({"/b": 2, "/a": 2, "/c": 5})
        assert [(r.key, r.count) for r in ranked] == [("/c", 5), ("/a", 2), ("/b", 2)]

    def test_truncates(self):
        ranked = rank({f"/{i}": i for i in range(20)}, limit=3)
        assert [r.key for r in ranked] == ["/19", "/18", "/17"]


class TestMergeCounts:
    def test_sums_keys(self):
        assert merge_counts([{"a": 1, "b": 2}, {"b": 3, "c": 1}]) == {"a": 1, "b": 5, "c": 1}


# ==============================================================================
# Visitor classification
# ==============================================================================


class TestClassifyVisitor:
    def test_new_on_first_day(self):
        assert classify_visitor(T0, date(2024, 6, 3), "UTC") == "new"

    def test_returning_later(self):
        assert classify_visitor(T0, date(2024, 6, 4), "UTC") == "returning"

    def test_timezone_shifts_day(self):
        """10:00 UTC on June 3 is still June 3 in Los Angeles (03:00)."""
        assert classify_visitor(T0, date(2024, 6, 3), "America/Los_Angeles") == "new"


# ==============================================================================
# Range merge
# ==============================================================================


class TestMergeDaily:
    def _day(self, d, **kwargs):
        return DailyAggregate(day=d, **kwargs)

    def test_sums_counters(self):
        report = merge_daily(
            [
                self._day(date(2024, 6, 1), unique_visitors=3, page_views=10, leads_generated=1),
                self._day(date(2024, 6, 2), unique_visitors=2, page_views=5),
            ]
        )
        assert report.total_visitors == 5
        assert report.total_page_views == 15
        assert report.leads_generated == 1
        assert report.start_date == date(2024, 6, 1)
        assert report.end_date == date(2024, 6, 2)
        assert report.days == 2

    def test_reranks_merged_top_pages(self):
        """A page that is second every day can come out first overall."""
        report = merge_daily(
            [
                self._day(date(2024, 6, 1), top_pages={"/a": 10, "/pricing": 8}),
                self._day(date(2024, 6, 2), top_pages={"/b": 10, "/pricing": 8}),
            ]
        )
        assert report.top_pages[0].key == "/pricing"
        assert report.top_pages[0].count == 16

    def test_average_time_on_site(self):
        report = merge_daily(
            [
                self._day(date(2024, 6, 1), unique_visitors=2, total_time_on_site_seconds=100),
                self._day(date(2024, 6, 2), unique_visitors=2, total_time_on_site_seconds=300),
            ]
        )
        assert report.avg_time_on_site == 100

    def test_empty(self):
        report = merge_daily([])
        assert report.total_visitors == 0
        assert report.avg_time_on_site == 0
        assert report.days == 0
        assert report.top_pages == []

    def test_explicit_bounds_kept(self):
        report = merge_daily([], date(2024, 6, 1), date(2024, 6, 7))
        assert report.days == 7


# ==============================================================================
# Live search
# ==============================================================================


class TestMatchesSearch:
    SESSION = {
        "name": "Ana Lopez",
        "email": "ana@example.com",
        "country": "ES",
        "city": "Madrid",
        "current_page": "/pricing",
        "page_title": "Plans",
    }

    def test_empty_query_matches(self):
        assert matches_search(self.SESSION, None)
        assert matches_search(self.SESSION, "   ")

    def test_case_insensitive(self):
        assert matches_search(self.SESSION, "MADRID")
        assert matches_search(self.SESSION, "lopez")

    def test_page(self):
        assert matches_search(self.SESSION, "pric")

    def test_no_match(self):
        assert not matches_search(self.SESSION, "berlin")

    def test_missing_fields(self):
        assert not matches_search({"name": None}, "ana")
