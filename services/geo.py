"""
Best-effort location labels for analytics sessions.

The geo database is optional: when it is not configured the resolver falls
back to the locale embedded in the user agent, then to a fixed label. The
labels are advisory only and never used for access control.
"""
import ipaddress
import logging
import re
from pathlib import Path
from typing import Optional, Protocol

import geoip2.database
import geoip2.errors
import pycountry
from maxminddb import InvalidDatabaseError

logger = logging.getLogger(__name__)

UNKNOWN_LOCATION = "Unknown"

LOCALE_PATTERN = re.compile(r"(?<![A-Za-z0-9])([a-z]{2,3})[-_]([A-Za-z]{2})(?![A-Za-z0-9])")


class GeoLookup(Protocol):
    def lookup(self, ip: str) -> Optional[str]:
        ...


class NullGeoLookup:
    def lookup(self, ip: str) -> Optional[str]:
        return None


class GeoIP2Lookup:
    """City-level lookups against a local MaxMind database."""

    def __init__(self, database_path: str):
        self._reader = geoip2.database.Reader(database_path)

    def lookup(self, ip: str) -> Optional[str]:
        try:
            response = self._reader.city(ip)
        except (geoip2.errors.AddressNotFoundError, ValueError):
            return None
        parts = [
            response.city.name,
            response.subdivisions.most_specific.name,
            response.country.name,
        ]
        label = ", ".join(part for part in parts if part)
        return label or None

    def close(self):
        self._reader.close()


def build_geo_lookup(database_path: Optional[str]) -> GeoLookup:
    """Pick the geo collaborator once at startup."""
    if not database_path:
        logger.info("No geo database configured, locations fall back to user-agent locale")
        return NullGeoLookup()
    if not Path(database_path).is_file():
        logger.warning(f"Geo database {database_path} not found, using locale fallback")
        return NullGeoLookup()
    try:
        return GeoIP2Lookup(database_path)
    except (OSError, InvalidDatabaseError) as e:
        logger.warning(f"Could not open geo database {database_path}: {e}")
        return NullGeoLookup()


def normalize_ip(raw: Optional[str]) -> Optional[str]:
    """Strip brackets, port suffixes and the IPv4-mapped IPv6 prefix."""
    if not raw:
        return None
    value = raw.split(",")[0].strip()
    if value.startswith("["):
        value = value[1:].split("]", 1)[0]
    elif value.count(":") == 1:
        value = value.split(":", 1)[0]
    if value.lower().startswith("::ffff:"):
        value = value[7:]
    try:
        return str(ipaddress.ip_address(value))
    except ValueError:
        return None


def region_from_user_agent(user_agent: Optional[str]) -> Optional[str]:
    if not user_agent:
        return None
    for _, region in LOCALE_PATTERN.findall(user_agent):
        country = pycountry.countries.get(alpha_2=region.upper())
        if country is not None:
            return getattr(country, "common_name", None) or country.name
    return None


class LocationResolver:
    def __init__(self, geo: Optional[GeoLookup] = None):
        self.geo = geo or NullGeoLookup()

    def resolve(self, ip: Optional[str] = None, user_agent: Optional[str] = None) -> str:
        """Return the most specific label available; never raises."""
        try:
            address = normalize_ip(ip)
            if address:
                label = self.geo.lookup(address)
                if label:
                    return label
        except Exception as e:
            logger.debug(f"Geo lookup failed for {ip}: {e}")
        try:
            return region_from_user_agent(user_agent) or UNKNOWN_LOCATION
        except Exception as e:
            logger.debug(f"Locale parsing failed for {user_agent!r}: {e}")
            return UNKNOWN_LOCATION
