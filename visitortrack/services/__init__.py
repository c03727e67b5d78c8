# ==============================================================================
# Application Services
# ==============================================================================
"""
Service layer wiring the core and infrastructure together.

- tracking.py - Event ingest (page views, heartbeats, forms, end signals)
- sweeper.py - Idle session finalization, retention, archive drain
- queries.py - Live visitors, stats summary, analytics, visitor detail
- export.py - Streaming CSV / Excel export

build_services() assembles the whole graph from Settings; the API, the CLI
and the tests all go through it.
"""

from dataclasses import dataclass

import redis

from visitortrack.core.enrichment import Enricher, GeoLocator
from visitortrack.core.session_processor import SessionProcessor
from visitortrack.infrastructure.aggregates import ValkeyRollupStore
from visitortrack.infrastructure.event_log import ValkeyEventLog
from visitortrack.infrastructure.repositories import PostgreSQLSessionArchive
from visitortrack.infrastructure.session_store import ValkeySessionStore
from visitortrack.infrastructure.valkey import Keys, get_request_client
from visitortrack.services.export import ExportService
from visitortrack.services.queries import QueryService
from visitortrack.services.sweeper import Sweeper
from visitortrack.services.tracking import TrackingService
from visitortrack.utils.clock import Clock, now_ms
from visitortrack.utils.config import Settings, get_settings


@dataclass
class Services:
    """Every long-lived object of a running tracker."""

    settings: Settings
    client: redis.Redis
    store: ValkeySessionStore
    event_log: ValkeyEventLog
    rollups: ValkeyRollupStore
    geo: GeoLocator
    tracking: TrackingService
    queries: QueryService
    exports: ExportService
    sweeper: Sweeper

    def close(self) -> None:
        self.sweeper.stop()
        self.geo.close()
        self.client.close()


def build_services(
    settings: Settings | None = None,
    client: redis.Redis | None = None,
    clock: Clock = now_ms,
) -> Services:
    """
    Build the service graph.

    Args:
        settings: Application settings. If None, uses get_settings().
        client: Redis client. If None, a request-path client is created from settings.
        clock: Millisecond clock shared by every component
    """
    settings = settings or get_settings()
    tracking = settings.tracking
    client = client or get_request_client(settings)
    keys = Keys(settings.valkey.key_prefix)

    processor = SessionProcessor(
        idle_timeout_seconds=tracking.idle_timeout_seconds,
        debounce_ms=tracking.debounce_ms,
    )
    rollups = ValkeyRollupStore(client, keys, top_n=tracking.top_n)
    event_log = ValkeyEventLog(client, keys)
    store = ValkeySessionStore(
        client,
        processor=processor,
        rollups=rollups,
        event_log=event_log,
        keys=keys,
        tz=tracking.timezone,
        max_attempts=tracking.ingest_max_attempts,
        session_ttl_seconds=tracking.session_retention_days * 86400,
        archive_enabled=settings.archive.enabled,
    )
    geo = GeoLocator(settings.geoip.db_path)
    archive = PostgreSQLSessionArchive(settings) if settings.archive.enabled else None

    return Services(
        settings=settings,
        client=client,
        store=store,
        event_log=event_log,
        rollups=rollups,
        geo=geo,
        tracking=TrackingService(store, Enricher(geo), clock=clock),
        queries=QueryService(
            store, rollups, processor, clock=clock, tz=tracking.timezone, top_n=tracking.top_n
        ),
        exports=ExportService(
            event_log, store, page_size=tracking.export_page_size, tz=tracking.timezone, clock=clock
        ),
        sweeper=Sweeper(
            store,
            event_log,
            archive=archive,
            interval_seconds=tracking.sweep_interval_seconds,
            event_retention_days=tracking.event_retention_days,
            archive_batch_size=settings.archive.batch_size,
            clock=clock,
        ),
    )


__all__ = [
    "ExportService",
    "QueryService",
    "Services",
    "Sweeper",
    "TrackingService",
    "build_services",
]
