# ==============================================================================
# Tests for the Event Ingest Service
# ==============================================================================
"""
Unit tests for TrackingService payload validation and dispatch.
"""

import pytest

from conftest import BASE_TIME_MS
from visitortrack.core.errors import InvalidEventError


@pytest.fixture()
def tracking(services):
    return services.tracking


class TestValidation:
    @pytest.mark.parametrize(
        "payload",
        [
            {},
            {"visitorId": "v1"},
            {"visitorId": "   ", "path": "/"},
            {"visitorId": "v1", "path": ""},
            ["not", "an", "object"],
        ],
    )
    def test_bad_page_view(self, tracking, payload):
        with pytest.raises(InvalidEventError):
            tracking.track_page_view(payload)

    def test_error_names_fields(self, tracking):
        with pytest.raises(InvalidEventError, match="path"):
            tracking.track_page_view({"visitorId": "v1"})

    def test_form_requires_type(self, tracking):
        with pytest.raises(InvalidEventError):
            tracking.track_form_submission({"visitorId": "v1"})

    def test_end_requires_session(self, tracking):
        with pytest.raises(InvalidEventError):
            tracking.end_session({"visitorId": "v1"})


class TestDispatch:
    def test_page_view_uses_request_fallbacks(self, tracking, store):
        tracking.track_page_view(
            {"visitorId": " v1 ", "path": "/home"}, ip="81.2.69.142", user_agent="Firefox/125.0"
        )
        session = store.get_session("v1_1")
        assert session["ip_address"] == "81.2.69.142"
        assert session["browser"] == "Firefox"
        assert session["session_start"] == BASE_TIME_MS

    def test_payload_values_win(self, tracking, store):
        tracking.track_page_view(
            {"visitorId": "v1", "path": "/", "ip": "198.51.100.9"}, ip="81.2.69.142"
        )
        assert store.get_session("v1_1")["ip_address"] == "198.51.100.9"

    def test_blank_lead_fields_ignored(self, tracking, store):
        tracking.track_page_view(
            {"visitorId": "v1", "path": "/", "leadInfo": {"email": "  ", "name": "Ana"}}
        )
        session = store.get_session("v1_1")
        assert session["email"] is None
        assert session["name"] == "Ana"

    def test_end_unknown_session(self, tracking):
        assert tracking.end_session({"sessionId": "nope"}) is None
