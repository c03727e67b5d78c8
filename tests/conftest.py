# ==============================================================================
# Shared Test Fixtures
# ==============================================================================
"""
Pytest fixtures shared across all test modules.

Provides:
- A clean fakeredis instance per test
- A controllable millisecond clock
- A fully wired service graph (store, rollups, event log, services)
  backed by fakeredis, with daily rollups pinned to UTC
"""

import fakeredis
import pytest

from visitortrack.infrastructure.valkey import Keys
from visitortrack.services import build_services
from visitortrack.utils.config import (
    ApiSettings,
    ArchiveSettings,
    GeoIPSettings,
    Settings,
    TrackingSettings,
    ValkeySettings,
)

# 2024-06-03 10:00:00 UTC (a Monday)
BASE_TIME_MS = 1_717_408_800_000

SECOND = 1000
MINUTE = 60 * SECOND
DAY = 24 * 60 * MINUTE


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, now: int = BASE_TIME_MS):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int = 0, seconds: float = 0) -> int:
        self.now += ms + int(seconds * 1000)
        return self.now


@pytest.fixture()
def fake_redis():
    """A clean fakeredis instance for each test.

    Uses decode_responses=True to match the real client behavior.
    """
    server = fakeredis.FakeServer()
    client = fakeredis.FakeRedis(server=server, decode_responses=True)
    yield client
    client.flushall()
    client.close()


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def settings():
    """Settings with library defaults, UTC rollups and no in-process sweeper."""
    return Settings(
        valkey=ValkeySettings(key_prefix="vt"),
        archive=ArchiveSettings(enabled=False),
        tracking=TrackingSettings(
            idle_timeout_seconds=300,
            debounce_ms=1000,
            top_n=10,
            timezone="UTC",
            export_page_size=500,
        ),
        api=ApiSettings(run_sweeper=False, retry_after_seconds=7),
        geoip=GeoIPSettings(db_path=None),
    )


@pytest.fixture()
def services(fake_redis, clock, settings):
    """The whole service graph on fakeredis, sharing the fake clock."""
    return build_services(settings, client=fake_redis, clock=clock)


@pytest.fixture()
def store(services):
    return services.store


@pytest.fixture()
def keys(settings):
    return Keys(settings.valkey.key_prefix)


@pytest.fixture()
def enrich():
    """Fixed enrichment callable for direct store calls."""
    return lambda: {"ip_address": "203.0.113.7", "country": "US", "city": "Austin", "device": "Desktop"}
