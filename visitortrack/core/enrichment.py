# ==============================================================================
# Network and Device Enrichment
# ==============================================================================
"""
Derive location and device fields for a new session.

- IP -> country/city via a local MaxMind GeoLite2 database (geoip2)
- User agent -> device class, browser and OS (coarse keyword classification)

Every lookup degrades to None / "Unknown"; enrichment never blocks
session creation.
"""

import ipaddress
import logging

import geoip2.database
import geoip2.errors
from maxminddb.errors import InvalidDatabaseError

logger = logging.getLogger(__name__)

UNKNOWN = "Unknown"

_TABLET_MARKERS = ("ipad", "tablet", "kindle", "silk", "playbook")
_MOBILE_MARKERS = ("mobi", "iphone", "ipod", "android", "blackberry", "opera mini", "windows phone")


def parse_user_agent(user_agent: str | None) -> dict:
    """
    Classify a user agent string.

    Returns:
        Dict with device (Desktop/Mobile/Tablet), browser and os
    """
    ua = (user_agent or "").lower()
    if not ua:
        return {"device": "Desktop", "browser": UNKNOWN, "os": UNKNOWN}

    # device: Android tablets omit "mobile"
    if any(marker in ua for marker in _TABLET_MARKERS) or ("android" in ua and "mobile" not in ua):
        device = "Tablet"
    elif any(marker in ua for marker in _MOBILE_MARKERS):
        device = "Mobile"
    else:
        device = "Desktop"

    # browser (order matters: Edge and Opera also claim Chrome, Chrome claims Safari)
    if "edg" in ua:
        browser = "Edge"
    elif "opr/" in ua or "opera" in ua:
        browser = "Opera"
    elif "samsungbrowser" in ua:
        browser = "Samsung Internet"
    elif "firefox" in ua or "fxios" in ua:
        browser = "Firefox"
    elif "chrome" in ua or "crios" in ua or "chromium" in ua:
        browser = "Chrome"
    elif "safari" in ua:
        browser = "Safari"
    else:
        browser = UNKNOWN

    # OS
    if "windows" in ua:
        os_name = "Windows"
    elif "iphone" in ua or "ipad" in ua or "ipod" in ua:
        os_name = "iOS"
    elif "mac os x" in ua or "macintosh" in ua:
        os_name = "macOS"
    elif "android" in ua:
        os_name = "Android"
    elif "cros" in ua:
        os_name = "ChromeOS"
    elif "linux" in ua:
        os_name = "Linux"
    else:
        os_name = UNKNOWN

    return {"device": device, "browser": browser, "os": os_name}


class GeoLocator:
    """
    Country/city lookups against a GeoLite2-City database.

    The reader is opened lazily on first use. A missing or unreadable
    database disables lookups for the life of the process.
    """

    def __init__(self, db_path: str | None = None, reader=None):
        self._db_path = db_path
        self._reader = reader
        self._disabled = reader is None and not db_path

    def _get_reader(self):
        if self._reader is None and not self._disabled:
            try:
                self._reader = geoip2.database.Reader(self._db_path)
            except (OSError, InvalidDatabaseError) as e:
                logger.warning("GeoIP database %s unavailable, lookups disabled: %s", self._db_path, e)
                self._disabled = True
        return self._reader

    def lookup(self, ip: str | None) -> dict:
        """
        Resolve an IP address.

        Returns:
            Dict with country (ISO code) and city; values are None when unknown
        """
        result = {"country": None, "city": None}
        if not ip:
            return result
        try:
            address = ipaddress.ip_address(ip)
        except ValueError:
            return result
        if address.is_private or address.is_loopback:
            return result

        reader = self._get_reader()
        if reader is None:
            return result
        try:
            response = reader.city(ip)
        except (geoip2.errors.AddressNotFoundError, ValueError):
            return result
        except geoip2.errors.GeoIP2Error as e:
            logger.debug("GeoIP lookup failed for %s: %s", ip, e)
            return result

        result["country"] = response.country.iso_code
        result["city"] = response.city.name
        return result

    def close(self) -> None:
        if self._reader is not None:
            self._reader.close()
            self._reader = None


class Enricher:
    """Combines the geo and user agent lookups into session fields."""

    def __init__(self, geo: GeoLocator | None = None):
        self._geo = geo or GeoLocator()

    def enrich(self, ip: str | None, user_agent: str | None) -> dict:
        fields = {"ip_address": ip or None}
        try:
            fields.update(self._geo.lookup(ip))
        except Exception as e:
            # a corrupt database can raise anything; the session still gets created
            logger.warning("Geo enrichment failed for %s: %s", ip, e)
            fields.update({"country": None, "city": None})
        fields.update(parse_user_agent(user_agent))
        return fields
