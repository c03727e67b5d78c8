# ==============================================================================
# Tests for Network and Device Enrichment
# ==============================================================================
"""
Unit tests for user agent classification, GeoIP lookups and the Enricher.

GeoIP lookups use a stub reader object in place of a GeoLite2 database.
"""

from types import SimpleNamespace

import geoip2.errors
import pytest

from visitortrack.core.enrichment import Enricher, GeoLocator, parse_user_agent

CHROME_WINDOWS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)
SAFARI_IPHONE = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_4 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.4 Mobile/15E148 Safari/604.1"
)
EDGE_MAC = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36 Edg/124.0.2478.51"
)
FIREFOX_LINUX = "Mozilla/5.0 (X11; Linux x86_64; rv:125.0) Gecko/20100101 Firefox/125.0"
ANDROID_TABLET = (
    "Mozilla/5.0 (Linux; Android 13; SM-X700) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)
ANDROID_PHONE = (
    "Mozilla/5.0 (Linux; Android 14; Pixel 8) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Mobile Safari/537.36"
)


# ==============================================================================
# User agents
# ==============================================================================


class TestParseUserAgent:
    @pytest.mark.parametrize(
        "user_agent, expected",
        [
            (CHROME_WINDOWS, ("Desktop", "Chrome", "Windows")),
            (SAFARI_IPHONE, ("Mobile", "Safari", "iOS")),
            (EDGE_MAC, ("Desktop", "Edge", "macOS")),
            (FIREFOX_LINUX, ("Desktop", "Firefox", "Linux")),
            (ANDROID_TABLET, ("Tablet", "Chrome", "Android")),
            (ANDROID_PHONE, ("Mobile", "Chrome", "Android")),
        ],
    )
    def test_classification(self, user_agent, expected):
        result = parse_user_agent(user_agent)
        assert (result["device"], result["browser"], result["os"]) == expected

    def test_missing(self):
        assert parse_user_agent(None) == {"device": "Desktop", "browser": "Unknown", "os": "Unknown"}

    def test_unrecognized(self):
        result = parse_user_agent("curl/8.5.0")
        assert result["browser"] == "Unknown"
        assert result["os"] == "Unknown"


# ==============================================================================
# GeoIP
# ==============================================================================


class StubReader:
    def __init__(self, cities=None, error=None):
        self.cities = cities or {}
        self.error = error
        self.closed = False

    def city(self, ip):
        if self.error is not None:
            raise self.error
        if ip not in self.cities:
            raise geoip2.errors.AddressNotFoundError(f"{ip} not found")
        country, city = self.cities[ip]
        return SimpleNamespace(
            country=SimpleNamespace(iso_code=country), city=SimpleNamespace(name=city)
        )

    def close(self):
        self.closed = True


class TestGeoLocator:
    def test_lookup(self):
        geo = GeoLocator(reader=StubReader({"81.2.69.142": ("GB", "London")}))
        assert geo.lookup("81.2.69.142") == {"country": "GB", "city": "London"}

    def test_not_found(self):
        geo = GeoLocator(reader=StubReader())
        assert geo.lookup("81.2.69.142") == {"country": None, "city": None}

    def test_private_and_invalid_skipped(self):
        reader = StubReader(error=AssertionError("reader must not be called"))
        geo = GeoLocator(reader=reader)
        for ip in ("10.0.0.1", "127.0.0.1", "not-an-ip", None, ""):
            assert geo.lookup(ip) == {"country": None, "city": None}

    def test_disabled_without_database(self):
        assert GeoLocator().lookup("81.2.69.142") == {"country": None, "city": None}

    def test_missing_database_disables(self, tmp_path):
        geo = GeoLocator(str(tmp_path / "missing.mmdb"))
        assert geo.lookup("81.2.69.142") == {"country": None, "city": None}
        assert geo._disabled

    def test_close(self):
        reader = StubReader()
        geo = GeoLocator(reader=reader)
        geo.close()
        assert reader.closed


# ==============================================================================
# Enricher
# ==============================================================================


class TestEnricher:
    def test_combines_fields(self):
        enricher = Enricher(GeoLocator(reader=StubReader({"81.2.69.142": ("GB", "London")})))
        fields = enricher.enrich("81.2.69.142", SAFARI_IPHONE)
        assert fields == {
            "ip_address": "81.2.69.142",
            "country": "GB",
            "city": "London",
            "device": "Mobile",
            "browser": "Safari",
            "os": "iOS",
        }

    def test_geo_failure_tolerated(self):
        enricher = Enricher(GeoLocator(reader=StubReader(error=RuntimeError("corrupt"))))
        fields = enricher.enrich("81.2.69.142", CHROME_WINDOWS)
        assert fields["country"] is None
        assert fields["browser"] == "Chrome"
