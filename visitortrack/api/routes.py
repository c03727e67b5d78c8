# ==============================================================================
# HTTP Routes
# ==============================================================================
"""
Tracking (ingest) and dashboard (read) endpoints.

Ingest endpoints always answer 202 {"success": true}: the tracking script
fires and forgets, so malformed payloads and store failures are logged and
dropped here rather than surfaced to the browser.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.concurrency import run_in_threadpool

from visitortrack.core.errors import ExportError, TrackingError
from visitortrack.core.models import (
    AnalyticsReport,
    ExportFormat,
    StatsSummary,
    VisitorPage,
    VisitorProfile,
    VisitorSession,
)
from visitortrack.infrastructure.valkey import check_valkey_connection
from visitortrack.services import Services
from visitortrack.services.export import EXPORT_SCHEMA_VERSION
from visitortrack.services.queries import DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT

logger = logging.getLogger(__name__)

router = APIRouter(tags=["visitor-tracking"])

ACCEPTED = {"success": True}


def get_services(request: Request) -> Services:
    return request.app.state.services


def client_ip(request: Request) -> str | None:
    """First X-Forwarded-For hop, else the peer address."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    return request.client.host if request.client else None


async def _ingest(request: Request, handler) -> JSONResponse:
    try:
        payload = await request.json()
    except ValueError:
        logger.warning("Dropped malformed JSON on %s", request.url.path)
        return JSONResponse(ACCEPTED, status_code=202)

    try:
        await run_in_threadpool(
            handler, payload, client_ip(request), request.headers.get("user-agent")
        )
    except TrackingError as e:
        logger.warning("Dropped event on %s: %s", request.url.path, e)
    return JSONResponse(ACCEPTED, status_code=202)


# ==============================================================================
# Ingest
# ==============================================================================


@router.post("/track", status_code=202)
async def track_page_view(request: Request, services: Services = Depends(get_services)):
    return await _ingest(request, services.tracking.track_page_view)


@router.post("/track/heartbeat", status_code=202)
async def track_heartbeat(request: Request, services: Services = Depends(get_services)):
    return await _ingest(request, services.tracking.heartbeat)


@router.post("/track/form", status_code=202)
async def track_form(request: Request, services: Services = Depends(get_services)):
    return await _ingest(request, services.tracking.track_form_submission)


@router.post("/track/end", status_code=202)
async def track_end(request: Request, services: Services = Depends(get_services)):
    return await _ingest(
        request, lambda payload, ip, user_agent: services.tracking.end_session(payload)
    )


# ==============================================================================
# Dashboard
# ==============================================================================


@router.get("/live", response_model=list[VisitorSession])
def live_visitors(
    search: str | None = Query(default=None, max_length=200),
    services: Services = Depends(get_services),
):
    return services.queries.get_live_visitors(search)


@router.get("/stats-summary", response_model=StatsSummary)
def stats_summary(services: Services = Depends(get_services)):
    return services.queries.get_stats_summary()


@router.get("/analytics", response_model=AnalyticsReport)
def analytics(
    start_date: str | None = Query(default=None, alias="startDate"),
    end_date: str | None = Query(default=None, alias="endDate"),
    services: Services = Depends(get_services),
):
    return services.queries.get_analytics(start_date, end_date)


@router.get("/visitors", response_model=VisitorPage)
def list_visitors(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    email: str | None = Query(default=None, max_length=200),
    country: str | None = Query(default=None, max_length=100),
    services: Services = Depends(get_services),
):
    return services.queries.list_visitors(page, limit, email=email, country=country)


@router.get("/visitors/{visitor_id}", response_model=VisitorProfile)
def visitor_detail(visitor_id: str, services: Services = Depends(get_services)):
    profile = services.queries.get_visitor(visitor_id)
    if profile is None:
        raise HTTPException(status_code=404, detail=f"Visitor {visitor_id} not found")
    return profile


@router.get("/export")
async def export(
    request: Request,
    format: ExportFormat = Query(default=ExportFormat.CSV),
    start_date: str | None = Query(default=None, alias="startDate"),
    end_date: str | None = Query(default=None, alias="endDate"),
    services: Services = Depends(get_services),
):
    exports = services.exports
    chunks = exports.stream(format, start_date, end_date)

    # Read the first page before committing to a 200 so store failures
    # still get a retryable status.
    try:
        first = await run_in_threadpool(next, chunks, None)
    except TrackingError as e:
        chunks.close()
        if isinstance(e, ExportError):
            raise
        raise ExportError(str(e)) from e

    async def body():
        try:
            if first:
                yield first
            while True:
                # checked before every page so a gone client stops the reads
                if await request.is_disconnected():
                    logger.info("Export cancelled by client")
                    return
                chunk = await run_in_threadpool(next, chunks, None)
                if chunk is None:
                    return
                if chunk:
                    yield chunk
        except TrackingError as e:
            # headers are already sent: abort the connection
            logger.error("Export failed mid-stream: %s", e)
            raise
        finally:
            chunks.close()

    return StreamingResponse(
        body(),
        media_type=exports.content_type(format),
        headers={
            "Content-Disposition": f'attachment; filename="{exports.filename(format)}"',
            "X-Export-Schema-Version": str(EXPORT_SCHEMA_VERSION),
        },
    )


# ==============================================================================
# Operations
# ==============================================================================


@router.post("/cleanup")
def cleanup(services: Services = Depends(get_services)):
    """Run one sweep now."""
    result = services.sweeper.run_once()
    return {
        "success": True,
        "ended": result.ended,
        "skipped": result.skipped,
        "eventsTrimmed": result.events_trimmed,
        "visitorsTrimmed": result.visitors_trimmed,
        "archived": result.archived,
    }


@router.get("/health")
def health(services: Services = Depends(get_services)):
    healthy = check_valkey_connection(services.client)
    return JSONResponse(
        {"success": healthy, "valkey": "up" if healthy else "down"},
        status_code=200 if healthy else 503,
    )
