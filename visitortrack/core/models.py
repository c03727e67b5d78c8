# ==============================================================================
# Visitor Tracking Domain Models
# ==============================================================================
"""
Pydantic models for visitor tracking events, sessions and aggregates.

These models are used for:
- Validating ingest payloads sent by visiting browsers
- Serializing/deserializing event log entries
- Shaping the dashboard's read responses (camelCase on the wire)

This module is part of the core domain layer and has no external dependencies
beyond Pydantic.
"""

from datetime import date, datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

CAMEL_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EventType(str, Enum):
    """Entries in the append-only event log."""

    PAGE_VIEW = "pageview"
    FORM_SUBMISSION = "form"


class ExportFormat(str, Enum):
    CSV = "csv"
    EXCEL = "excel"


def _ms_to_datetime(value: int | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)


# ==============================================================================
# Ingest Payloads
# ==============================================================================


class LeadInfo(BaseModel):
    """Identity a visitor volunteers by submitting a form."""

    model_config = CAMEL_CONFIG

    email: str | None = None
    name: str | None = None

    @field_validator("email", "name")
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        return value or None


class _TrackingPayload(BaseModel):
    model_config = CAMEL_CONFIG

    visitor_id: str = Field(..., min_length=1, max_length=128)

    @field_validator("visitor_id")
    @classmethod
    def _strip_visitor_id(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("visitorId must not be blank")
        return value


class PageViewPayload(_TrackingPayload):
    """A navigation reported by the browser."""

    path: str = Field(..., min_length=1, max_length=2048)
    title: str | None = Field(default=None, max_length=512)
    ip: str | None = None
    user_agent: str | None = None
    lead_info: LeadInfo | None = None


class HeartbeatPayload(_TrackingPayload):
    """Periodic keep-alive from a foregrounded tab."""

    session_id: str | None = None
    path: str | None = Field(default=None, max_length=2048)
    title: str | None = Field(default=None, max_length=512)
    ip: str | None = None
    user_agent: str | None = None


class FormSubmissionPayload(_TrackingPayload):
    """A form submitted on the marketing site."""

    session_id: str | None = None
    form_type: str = Field(..., min_length=1, max_length=64)
    form_name: str | None = Field(default=None, max_length=128)
    path: str | None = Field(default=None, max_length=2048)
    lead_info: LeadInfo | None = None


class EndSessionPayload(BaseModel):
    """Best-effort tab close signal."""

    model_config = CAMEL_CONFIG

    session_id: str = Field(..., min_length=1)
    visitor_id: str | None = None


# ==============================================================================
# Event Log Entries
# ==============================================================================


class PageViewEvent(BaseModel):
    """
    A page view appended to the event log.

    Attributes:
        session_id: Owning session
        visitor_id: Stable browser identity
        path: Page path
        title: Document title, if reported
        timestamp: Unix timestamp in milliseconds
    """

    session_id: str
    visitor_id: str
    path: str
    title: str | None = None
    timestamp: int

    def to_stream_fields(self) -> dict:
        """Serialize for the event log stream entry."""
        return {
            "type": EventType.PAGE_VIEW.value,
            "session_id": self.session_id,
            "visitor_id": self.visitor_id,
            "path": self.path,
            "title": self.title or "",
            "timestamp": str(self.timestamp),
        }


class FormSubmissionEvent(BaseModel):
    """A form submission appended to the event log."""

    session_id: str
    visitor_id: str
    form_type: str
    form_name: str | None = None
    path: str | None = None
    email: str | None = None
    name: str | None = None
    timestamp: int

    @property
    def is_lead(self) -> bool:
        return self.email is not None

    def to_stream_fields(self) -> dict:
        """Serialize for the event log stream entry."""
        return {
            "type": EventType.FORM_SUBMISSION.value,
            "session_id": self.session_id,
            "visitor_id": self.visitor_id,
            "form_type": self.form_type,
            "form_name": self.form_name or "",
            "path": self.path or "",
            "email": self.email or "",
            "name": self.name or "",
            "timestamp": str(self.timestamp),
        }


def event_from_stream_fields(fields: dict) -> PageViewEvent | FormSubmissionEvent:
    """Deserialize an event log stream entry."""
    if fields.get("type") == EventType.FORM_SUBMISSION.value:
        return FormSubmissionEvent(
            session_id=fields["session_id"],
            visitor_id=fields["visitor_id"],
            form_type=fields["form_type"],
            form_name=fields.get("form_name") or None,
            path=fields.get("path") or None,
            email=fields.get("email") or None,
            name=fields.get("name") or None,
            timestamp=int(fields["timestamp"]),
        )
    return PageViewEvent(
        session_id=fields["session_id"],
        visitor_id=fields["visitor_id"],
        path=fields["path"],
        title=fields.get("title") or None,
        timestamp=int(fields["timestamp"]),
    )


# ==============================================================================
# Read Models
# ==============================================================================


class VisitorSession(BaseModel):
    """
    A visitor session as shown on the dashboard.

    Built from a session record (see SessionProcessor) with time_on_site
    resolved against the read time.
    """

    model_config = CAMEL_CONFIG

    session_id: str
    visitor_id: str
    session_num: int
    ip_address: str | None = None
    country: str | None = None
    city: str | None = None
    device: str = "Desktop"
    browser: str = "Unknown"
    os: str = "Unknown"
    email: str | None = None
    name: str | None = None
    entry_page: str | None = None
    current_page: str | None = None
    page_title: str | None = None
    page_views: int
    session_start: datetime
    last_activity_at: datetime
    ended_at: datetime | None = None
    time_on_site: int = Field(..., description="Seconds")
    is_active: bool

    @classmethod
    def from_record(cls, record: dict, time_on_site: int) -> "VisitorSession":
        return cls(
            session_id=record["session_id"],
            visitor_id=record["visitor_id"],
            session_num=record["session_num"],
            ip_address=record.get("ip_address"),
            country=record.get("country"),
            city=record.get("city"),
            device=record.get("device") or "Desktop",
            browser=record.get("browser") or "Unknown",
            os=record.get("os") or "Unknown",
            email=record.get("email"),
            name=record.get("name"),
            entry_page=record.get("entry_page"),
            current_page=record.get("current_page"),
            page_title=record.get("page_title"),
            page_views=record["page_views"],
            session_start=_ms_to_datetime(record["session_start"]),
            last_activity_at=_ms_to_datetime(record["last_activity_at"]),
            ended_at=_ms_to_datetime(record.get("ended_at")),
            time_on_site=time_on_site,
            is_active=record["is_active"],
        )


class RankedEntry(BaseModel):
    """One row of a top-N breakdown."""

    model_config = CAMEL_CONFIG

    key: str
    count: int


class DailyAggregate(BaseModel):
    """
    Rollup counters for one calendar day.

    Average time on site is derived at read time from the two running
    sums so it can never go stale.
    """

    model_config = CAMEL_CONFIG

    day: date
    unique_visitors: int = 0
    new_visitors: int = 0
    returning_visitors: int = 0
    page_views: int = 0
    form_submissions: int = 0
    leads_generated: int = 0
    total_time_on_site_seconds: int = 0
    top_pages: dict[str, int] = Field(default_factory=dict)
    top_countries: dict[str, int] = Field(default_factory=dict)
    top_devices: dict[str, int] = Field(default_factory=dict)

    @property
    def avg_time_on_site(self) -> int:
        if self.unique_visitors <= 0:
            return 0
        return round(self.total_time_on_site_seconds / self.unique_visitors)


class StatsSummary(BaseModel):
    """The dashboard's five headline numbers."""

    model_config = CAMEL_CONFIG

    live_visitors: int
    today_visitors: int
    today_page_views: int
    today_leads: int
    avg_time_on_site: int


class AnalyticsReport(BaseModel):
    """Aggregates merged across a date range."""

    model_config = CAMEL_CONFIG

    start_date: date | None
    end_date: date | None
    days: int
    total_visitors: int
    new_visitors: int
    returning_visitors: int
    total_page_views: int
    form_submissions: int
    leads_generated: int
    avg_time_on_site: int
    top_pages: list[RankedEntry]
    top_countries: list[RankedEntry]
    top_devices: list[RankedEntry]


class VisitorProfile(BaseModel):
    """A visitor with their most recent sessions."""

    model_config = CAMEL_CONFIG

    visitor_id: str
    first_seen: datetime | None
    total_sessions: int
    email: str | None = None
    name: str | None = None
    sessions: list[VisitorSession]


class VisitorSummary(BaseModel):
    """One row of the visitor listing."""

    model_config = CAMEL_CONFIG

    visitor_id: str
    first_seen: datetime | None
    last_visit: datetime
    total_sessions: int
    email: str | None = None
    name: str | None = None
    country: str | None = None
    city: str | None = None
    device: str | None = None
    browser: str | None = None

    @classmethod
    def from_record(cls, record: dict) -> "VisitorSummary":
        return cls(
            visitor_id=record["visitor_id"],
            first_seen=_ms_to_datetime(record.get("first_seen")),
            last_visit=_ms_to_datetime(record["last_visit"]),
            total_sessions=record.get("total_sessions", 0),
            email=record.get("email"),
            name=record.get("name"),
            country=record.get("country"),
            city=record.get("city"),
            device=record.get("device"),
            browser=record.get("browser"),
        )


class VisitorPage(BaseModel):
    """A page of the visitor listing."""

    model_config = CAMEL_CONFIG

    visitors: list[VisitorSummary]
    total: int
    pages: int
    current_page: int
