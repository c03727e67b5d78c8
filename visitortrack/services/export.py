# ==============================================================================
# Export Service
# ==============================================================================
"""
Streams historical events as CSV or Excel.

Rows come from the event log one page at a time (cursor pagination), each
joined with its owning session's attributes. Nothing is held in memory
beyond the current page:

- CSV: every page is encoded and yielded as it is read
- Excel: rows go into an openpyxl write-only workbook spooled to a
  temporary file; an empty chunk is yielded after each page so the caller
  can stop between pages, then the finished file is yielded in blocks

The first yielded chunk is produced only after the first page was read, so
a store failure surfaces before any byte reaches the client.

Column order is append-only. Adding a column means appending it to
EXPORT_COLUMNS and bumping EXPORT_SCHEMA_VERSION.
"""

import csv
import io
import logging
import tempfile
from collections.abc import Iterator
from datetime import date

from openpyxl import Workbook

from visitortrack.base.event_log import EventLog
from visitortrack.base.session_store import SessionStore
from visitortrack.core.errors import InvalidRangeError
from visitortrack.core.models import ExportFormat, FormSubmissionEvent
from visitortrack.services.queries import parse_date
from visitortrack.utils.clock import Clock, day_end_ms, day_for, day_start_ms, now_ms, to_datetime

logger = logging.getLogger(__name__)

EXPORT_SCHEMA_VERSION = 1

EXPORT_COLUMNS = (
    "Timestamp",
    "Event Type",
    "Visitor ID",
    "Session ID",
    "Page",
    "Page Title",
    "Form Type",
    "Form Name",
    "Email",
    "Name",
    "Country",
    "City",
    "Device",
    "Browser",
    "OS",
    "IP Address",
    "Session Start",
    "Time On Site (s)",
)

CONTENT_TYPES = {
    ExportFormat.CSV: "text/csv; charset=utf-8",
    ExportFormat.EXCEL: "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}

FILE_EXTENSIONS = {
    ExportFormat.CSV: "csv",
    ExportFormat.EXCEL: "xlsx",
}

SPOOL_MAX_BYTES = 8 * 1024 * 1024
READ_BLOCK_BYTES = 64 * 1024
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class ExportService:
    """Paged, cancellable event exports."""

    def __init__(
        self,
        event_log: EventLog,
        store: SessionStore,
        page_size: int = 500,
        tz: str | None = None,
        clock: Clock = now_ms,
    ):
        self._event_log = event_log
        self._store = store
        self._page_size = page_size
        self._tz = tz
        self._clock = clock

    # ==========================================================================
    # Metadata
    # ==========================================================================

    def filename(self, fmt: ExportFormat) -> str:
        today = day_for(self._clock(), self._tz)
        return f"visitors-export-{today.isoformat()}.{FILE_EXTENSIONS[fmt]}"

    @staticmethod
    def content_type(fmt: ExportFormat) -> str:
        return CONTENT_TYPES[fmt]

    def resolve_range(
        self,
        start: str | date | None = None,
        end: str | date | None = None,
    ) -> tuple[int, int]:
        """
        Convert inclusive calendar days to a millisecond window.

        An open start means the beginning of the log; an open end means now.
        """
        start_day = parse_date(start, "startDate")
        end_day = parse_date(end, "endDate")
        if start_day and end_day and start_day > end_day:
            raise InvalidRangeError(f"startDate {start_day} is after endDate {end_day}")
        start_ms = day_start_ms(start_day, self._tz) if start_day else 0
        end_ms = day_end_ms(end_day, self._tz) if end_day else self._clock()
        return start_ms, end_ms

    # ==========================================================================
    # Rows
    # ==========================================================================

    def _format_time(self, timestamp_ms: int | None) -> str:
        if timestamp_ms is None:
            return ""
        return to_datetime(timestamp_ms, self._tz).strftime(TIMESTAMP_FORMAT)

    def _row(self, event, session: dict | None) -> list:
        session = session or {}
        is_form = isinstance(event, FormSubmissionEvent)
        return [
            self._format_time(event.timestamp),
            "form" if is_form else "pageview",
            event.visitor_id,
            event.session_id,
            event.path or "",
            "" if is_form else event.title or "",
            event.form_type if is_form else "",
            (event.form_name or "") if is_form else "",
            (event.email if is_form else None) or session.get("email") or "",
            (event.name if is_form else None) or session.get("name") or "",
            session.get("country") or "",
            session.get("city") or "",
            session.get("device") or "",
            session.get("browser") or "",
            session.get("os") or "",
            session.get("ip_address") or "",
            self._format_time(session.get("session_start")),
            session.get("time_on_site") if session.get("time_on_site") is not None else "",
        ]

    def iter_rows(self, start_ms: int, end_ms: int) -> Iterator[list[list]]:
        """Yield pages of export rows in event time order."""
        for page in self._event_log.iter_pages(start_ms, end_ms, self._page_size):
            sessions = self._store.get_sessions(sorted({event.session_id for event in page}))
            yield [self._row(event, sessions.get(event.session_id)) for event in page]

    # ==========================================================================
    # Encoders
    # ==========================================================================

    def stream(
        self,
        fmt: ExportFormat,
        start: str | date | None = None,
        end: str | date | None = None,
    ) -> Iterator[bytes]:
        """
        Encode the range in the given format.

        Raises:
            InvalidRangeError: Bad dates (raised eagerly, before any read)
        """
        start_ms, end_ms = self.resolve_range(start, end)
        fmt = ExportFormat(fmt)
        logger.info("Export started (%s, %d..%d)", fmt.value, start_ms, end_ms)
        if fmt is ExportFormat.EXCEL:
            return self._stream_excel(start_ms, end_ms)
        return self._stream_csv(start_ms, end_ms)

    def _stream_csv(self, start_ms: int, end_ms: int) -> Iterator[bytes]:
        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(EXPORT_COLUMNS)
        rows_written = 0

        for rows in self.iter_rows(start_ms, end_ms):
            writer.writerows(rows)
            rows_written += len(rows)
            yield buffer.getvalue().encode("utf-8")
            buffer.seek(0)
            buffer.truncate(0)

        if rows_written == 0:
            yield buffer.getvalue().encode("utf-8")
        logger.info("CSV export finished (%d rows)", rows_written)

    def _stream_excel(self, start_ms: int, end_ms: int) -> Iterator[bytes]:
        workbook = Workbook(write_only=True)
        sheet = workbook.create_sheet("Visitors")
        sheet.append(list(EXPORT_COLUMNS))
        rows_written = 0

        for rows in self.iter_rows(start_ms, end_ms):
            for row in rows:
                sheet.append(row)
            rows_written += len(rows)
            yield b""

        with tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_BYTES) as spool:
            workbook.save(spool)
            spool.seek(0)
            while True:
                block = spool.read(READ_BLOCK_BYTES)
                if not block:
                    break
                yield block
        logger.info("Excel export finished (%d rows)", rows_written)
