import pytest

from services.geo import (
    UNKNOWN_LOCATION, LocationResolver, NullGeoLookup, build_geo_lookup, normalize_ip,
    region_from_user_agent,
)


class RaisingGeo:
    def lookup(self, ip):
        raise RuntimeError("reader closed")


class StaticGeo:
    def lookup(self, ip):
        return "Madrid, Spain" if ip == "203.0.113.7" else None


@pytest.mark.parametrize("raw, expected", [
    ("203.0.113.7", "203.0.113.7"),
    ("203.0.113.7:8080", "203.0.113.7"),
    ("::ffff:203.0.113.7", "203.0.113.7"),
    ("[2001:db8::1]:443", "2001:db8::1"),
    ("203.0.113.7, 10.0.0.1", "203.0.113.7"),
    ("not-an-ip", None),
    ("", None),
    (None, None),
])
def test_normalize_ip(raw, expected):
    assert normalize_ip(raw) == expected


def test_region_from_user_agent():
    assert region_from_user_agent("Mozilla/5.0 (Linux; Android 13; es-ES)") == "Spain"
    assert region_from_user_agent("Mozilla/5.0 (Windows NT 10.0)") is None
    assert region_from_user_agent(None) is None


def test_resolver_prefers_geo_database():
    resolver = LocationResolver(StaticGeo())
    assert resolver.resolve("::ffff:203.0.113.7", "Mozilla/5.0 (fr-FR)") == "Madrid, Spain"


def test_resolver_falls_back_to_locale_then_unknown():
    resolver = LocationResolver(StaticGeo())
    assert resolver.resolve("198.51.100.1", "Mozilla/5.0 (fr-FR)") == "France"
    assert resolver.resolve("198.51.100.1", "curl/8.0") == UNKNOWN_LOCATION
    assert resolver.resolve(None, None) == UNKNOWN_LOCATION


def test_resolver_never_raises():
    resolver = LocationResolver(RaisingGeo())
    assert resolver.resolve("203.0.113.7", None) == UNKNOWN_LOCATION


def test_missing_database_uses_null_lookup(tmp_path):
    assert isinstance(build_geo_lookup(None), NullGeoLookup)
    assert isinstance(build_geo_lookup(str(tmp_path / "missing.mmdb")), NullGeoLookup)


def test_unreadable_database_uses_null_lookup(tmp_path):
    broken = tmp_path / "broken.mmdb"
    broken.write_bytes(b"not a maxmind database")
    assert isinstance(build_geo_lookup(str(broken)), NullGeoLookup)
