# ==============================================================================
# Tests for ValkeySessionStore
# ==============================================================================
"""
Unit tests for the Valkey session store.

Tests cover:
- Session creation, page views and duplicate collapsing
- Heartbeats (including unknown and ended session ids)
- Form submissions and lead capture
- Explicit end signals
- Rollup and event log writes made in the same transaction
- Optimistic transaction retries under concurrent writes

All tests use fakeredis via the fixtures in conftest.py.
"""

from datetime import date

import pytest

from conftest import BASE_TIME_MS, DAY, SECOND
from visitortrack.core.errors import ConcurrentUpdateError
from visitortrack.infrastructure.session_store import ValkeySessionStore

TODAY = date(2024, 6, 3)


class InterferingStore(ValkeySessionStore):
    """Runs `interfere` from inside the transaction, after the record was read."""

    interfere = None
    repeat = False

    def _read(self, conn, session_id):
        record = super()._read(conn, session_id)
        if self.interfere is not None:
            action = self.interfere
            if not self.repeat:
                self.interfere = None
            action()
        return record


@pytest.fixture()
def interfering_store(fake_redis, services, keys):
    return InterferingStore(
        fake_redis,
        processor=services.store.processor,
        rollups=services.rollups,
        event_log=services.event_log,
        keys=keys,
        tz="UTC",
        max_attempts=3,
    )


# ==============================================================================
# record_page_view
# ==============================================================================


class TestRecordPageView:
    def test_first_view_creates_session(self, store, clock, enrich):
        outcome = store.record_page_view("v1", "/home", "Home", clock(), enrich)

        assert outcome.created
        assert outcome.counted
        session = store.get_session("v1_1")
        assert session["visitor_id"] == "v1"
        assert session["page_views"] == 1
        assert session["is_active"] is True
        assert session["country"] == "US"
        assert session["city"] == "Austin"
        assert session["session_start"] == BASE_TIME_MS

    def test_session_indexed_as_active(self, store, clock, enrich, fake_redis, keys):
        store.record_page_view("v1", "/home", None, clock(), enrich)
        assert fake_redis.zscore(keys.active_sessions, "v1_1") == BASE_TIME_MS
        assert fake_redis.get(keys.visitor_active("v1")) == "v1_1"

    def test_next_view_joins_session(self, store, clock, enrich):
        store.record_page_view("v1", "/home", None, clock(), enrich)
        clock.advance(seconds=30)
        outcome = store.record_page_view("v1", "/pricing", "Pricing", clock(), enrich)

        assert not outcome.created
        session = store.get_session("v1_1")
        assert session["page_views"] == 2
        assert session["current_page"] == "/pricing"
        assert session["entry_page"] == "/home"
        assert session["last_activity_at"] == BASE_TIME_MS + 30 * SECOND

    def test_duplicate_view_counted_once(self, services, store, clock, enrich):
        """/contact twice 200ms apart is one page view everywhere."""
        store.record_page_view("v1", "/contact", None, clock(), enrich)
        clock.advance(200)
        outcome = store.record_page_view("v1", "/contact", None, clock(), enrich)

        assert not outcome.counted
        assert store.get_session("v1_1")["page_views"] == 1
        assert services.event_log.count() == 1
        day = services.rollups.get_day(TODAY)
        assert day.page_views == 1
        assert day.top_pages == {"/contact": 1}

    def test_enrichment_only_on_creation(self, store, clock):
        calls = []

        def enrich():
            calls.append(1)
            return {}

        store.record_page_view("v1", "/a", None, clock(), enrich)
        clock.advance(seconds=5)
        store.record_page_view("v1", "/b", None, clock(), enrich)
        assert len(calls) == 1

    def test_stale_session_replaced(self, store, clock, enrich, fake_redis, keys):
        """A view after the idle timeout ends the old session and starts a new one."""
        store.record_page_view("v1", "/home", None, clock(), enrich)
        clock.advance(seconds=301)
        outcome = store.record_page_view("v1", "/blog", None, clock(), enrich)

        assert outcome.created
        assert outcome.session["session_id"] == "v1_2"
        assert [s["session_id"] for s in outcome.ended] == ["v1_1"]
        old = store.get_session("v1_1")
        assert old["is_active"] is False
        assert old["time_on_site"] == 0
        assert fake_redis.zscore(keys.active_sessions, "v1_1") is None

    def test_lead_info_merged(self, store, clock, enrich):
        store.record_page_view(
            "v1", "/thanks", None, clock(), enrich, email="ana@example.com", name="Ana"
        )
        session = store.get_session("v1_1")
        assert session["email"] == "ana@example.com"
        assert session["name"] == "Ana"

    def test_event_log_entry(self, services, store, clock, enrich):
        store.record_page_view("v1", "/home", "Home", clock(), enrich)
        pages = list(services.event_log.iter_pages(0, clock()))
        assert len(pages) == 1
        event = pages[0][0]
        assert event.path == "/home"
        assert event.title == "Home"
        assert event.session_id == "v1_1"
        assert event.timestamp == BASE_TIME_MS


# ==============================================================================
# Daily visitor counting
# ==============================================================================


class TestVisitorCounting:
    def test_unique_once_per_day(self, services, store, clock, enrich):
        for path in ("/a", "/b", "/c"):
            store.record_page_view("v1", path, None, clock(), enrich)
            clock.advance(seconds=10)
        store.record_page_view("v2", "/a", None, clock(), enrich)

        day = services.rollups.get_day(TODAY)
        assert day.unique_visitors == 2
        assert day.new_visitors == 2
        assert day.returning_visitors == 0
        assert day.top_countries == {"US": 2}
        assert day.top_devices == {"Desktop": 2}

    def test_returning_next_day(self, services, store, clock, enrich):
        store.record_page_view("v1", "/a", None, clock(), enrich)
        clock.advance(DAY)
        store.record_page_view("v1", "/a", None, clock(), enrich)

        tomorrow = services.rollups.get_day(date(2024, 6, 4))
        assert tomorrow.unique_visitors == 1
        assert tomorrow.returning_visitors == 1
        assert tomorrow.new_visitors == 0

    def test_top_pages_bounded(self, services, store, clock, enrich):
        for i in range(12):
            store.record_page_view("v1", f"/p{i}", None, clock.advance(SECOND), enrich)
        store.record_page_view("v1", "/p3", None, clock.advance(SECOND), enrich)

        top_pages = services.rollups.get_day(TODAY).top_pages
        assert len(top_pages) == 10
        assert top_pages["/p3"] == 2

    def test_days_listed(self, services, store, clock, enrich):
        store.record_page_view("v1", "/a", None, clock(), enrich)
        assert services.rollups.list_days() == [TODAY]


# ==============================================================================
# heartbeat
# ==============================================================================


class TestHeartbeat:
    def test_updates_activity_only(self, store, clock, enrich):
        store.record_page_view("v1", "/home", None, clock(), enrich)
        clock.advance(seconds=60)
        outcome = store.heartbeat("v1", "v1_1", clock(), enrich)

        assert not outcome.created
        session = store.get_session("v1_1")
        assert session["last_activity_at"] == BASE_TIME_MS + 60 * SECOND
        assert session["page_views"] == 1

    def test_unknown_session_creates_one(self, store, clock, enrich):
        outcome = store.heartbeat("v1", "does-not-exist", clock(), enrich, path="/docs")

        assert outcome.created
        assert outcome.session["session_id"] == "v1_1"
        assert outcome.session["current_page"] == "/docs"

    def test_ended_session_starts_new_one(self, store, clock, enrich):
        store.record_page_view("v1", "/pricing", None, clock(), enrich)
        store.end_session("v1_1", clock())
        clock.advance(seconds=5)
        outcome = store.heartbeat("v1", "v1_1", clock(), enrich)

        assert outcome.created
        assert outcome.session["session_id"] == "v1_2"
        assert outcome.session["current_page"] == "/pricing"

    def test_other_visitors_session_ignored(self, store, clock, enrich):
        store.record_page_view("v1", "/home", None, clock(), enrich)
        clock.advance(seconds=10)
        outcome = store.heartbeat("v2", "v1_1", clock(), enrich)

        assert outcome.session["visitor_id"] == "v2"
        assert store.get_session("v1_1")["last_activity_at"] == BASE_TIME_MS


# ==============================================================================
# record_form_submission
# ==============================================================================


class TestFormSubmission:
    def test_email_makes_a_lead(self, services, store, clock, enrich):
        store.record_page_view("v1", "/contact", None, clock(), enrich)
        clock.advance(seconds=20)
        store.record_form_submission(
            "v1", "v1_1", "contact", clock(), enrich, email="ana@example.com", name="Ana"
        )

        session = store.get_session("v1_1")
        assert session["email"] == "ana@example.com"
        day = services.rollups.get_day(TODAY)
        assert day.form_submissions == 1
        assert day.leads_generated == 1

    def test_without_email_not_a_lead(self, services, store, clock, enrich):
        store.record_page_view("v1", "/search", None, clock(), enrich)
        store.record_form_submission("v1", "v1_1", "search", clock(), enrich)

        day = services.rollups.get_day(TODAY)
        assert day.form_submissions == 1
        assert day.leads_generated == 0

    def test_identity_set_once(self, store, clock, enrich):
        store.record_page_view("v1", "/contact", None, clock(), enrich)
        store.record_form_submission("v1", "v1_1", "contact", clock(), enrich, email="a@x.io")
        store.record_form_submission("v1", "v1_1", "contact", clock(), enrich, email="b@x.io")
        assert store.get_session("v1_1")["email"] == "a@x.io"

    def test_logged_as_event(self, services, store, clock, enrich):
        store.record_page_view("v1", "/contact", None, clock(), enrich)
        clock.advance(seconds=1)
        store.record_form_submission(
            "v1", "v1_1", "newsletter", clock(), enrich, form_name="footer", email="a@x.io"
        )
        events = [e for page in services.event_log.iter_pages(0, clock()) for e in page]
        form = events[-1]
        assert form.form_type == "newsletter"
        assert form.form_name == "footer"
        assert form.path == "/contact"
        assert form.is_lead


# ==============================================================================
# end_session
# ==============================================================================


class TestEndSession:
    def test_finalizes(self, services, store, clock, enrich, fake_redis, keys):
        store.record_page_view("v1", "/home", None, clock(), enrich)
        clock.advance(seconds=90)
        store.heartbeat("v1", "v1_1", clock(), enrich)
        clock.advance(seconds=10)
        session = store.end_session("v1_1", clock())

        assert session["is_active"] is False
        assert session["time_on_site"] == 90
        assert fake_redis.zscore(keys.active_sessions, "v1_1") is None
        assert fake_redis.ttl(keys.session("v1_1")) > 0
        assert services.rollups.get_day(TODAY).total_time_on_site_seconds == 90

    def test_second_end_is_noop(self, services, store, clock, enrich):
        store.record_page_view("v1", "/home", None, clock(), enrich)
        clock.advance(seconds=30)
        store.heartbeat("v1", "v1_1", clock(), enrich)
        store.end_session("v1_1", clock())
        clock.advance(seconds=500)
        session = store.end_session("v1_1", clock())

        assert session["time_on_site"] == 30
        assert services.rollups.get_day(TODAY).total_time_on_site_seconds == 30

    def test_unknown_session(self, store, clock):
        assert store.end_session("nope", clock()) is None


# ==============================================================================
# Reads
# ==============================================================================


class TestReads:
    def test_active_sessions_most_recent_first(self, store, clock, enrich):
        store.record_page_view("v1", "/a", None, clock(), enrich)
        clock.advance(seconds=1)
        store.record_page_view("v2", "/b", None, clock(), enrich)
        clock.advance(seconds=1)
        store.heartbeat("v1", "v1_1", clock(), enrich)

        ids = [s["session_id"] for s in store.get_active_sessions()]
        assert ids == ["v1_1", "v2_1"]

    def test_visitor_info(self, store, clock, enrich):
        store.record_page_view("v1", "/a", None, clock(), enrich)
        store.end_session("v1_1", clock())
        clock.advance(seconds=5)
        store.record_page_view("v1", "/b", None, clock(), enrich)

        info = store.get_visitor_info("v1")
        assert info["first_seen"] == BASE_TIME_MS
        assert info["total_sessions"] == 2
        sessions = store.get_visitor_sessions("v1")
        assert [s["session_id"] for s in sessions] == ["v1_2", "v1_1"]

    def test_unknown_visitor(self, store):
        assert store.get_visitor_info("ghost") is None

    def test_get_sessions_skips_missing(self, store, clock, enrich):
        store.record_page_view("v1", "/a", None, clock(), enrich)
        sessions = store.get_sessions(["v1_1", "missing"])
        assert list(sessions) == ["v1_1"]

    def test_clear_all(self, store, clock, enrich, fake_redis):
        store.record_page_view("v1", "/a", None, clock(), enrich)
        fake_redis.set("other:key", "kept")
        assert store.clear_all() > 0
        assert fake_redis.keys("vt:*") == []
        assert fake_redis.get("other:key") == "kept"


# ==============================================================================
# Concurrency
# ==============================================================================


class TestOptimisticTransactions:
    def test_conflict_is_retried(self, store, interfering_store, clock, enrich):
        """A write that lands mid-transaction forces a re-read, not a lost update."""
        store.record_page_view("v1", "/home", None, clock(), enrich)
        heartbeat_at = clock.advance(seconds=4)
        interfering_store.interfere = lambda: store.heartbeat("v1", "v1_1", heartbeat_at, enrich)

        clock.advance(seconds=1)
        interfering_store.record_page_view("v1", "/pricing", None, clock(), enrich)

        session = store.get_session("v1_1")
        assert session["page_views"] == 2
        assert session["current_page"] == "/pricing"
        assert session["last_activity_at"] == BASE_TIME_MS + 5 * SECOND

    def test_gives_up_after_max_attempts(self, store, interfering_store, clock, enrich):
        store.record_page_view("v1", "/home", None, clock(), enrich)
        interfering_store.repeat = True
        page_view_at = clock.advance(1000)
        interfering_store.interfere = lambda: store.heartbeat(
            "v1", "v1_1", clock.advance(1000), enrich
        )

        with pytest.raises(ConcurrentUpdateError):
            interfering_store.record_page_view("v1", "/pricing", None, page_view_at, enrich)
        assert store.get_session("v1_1")["page_views"] == 1
