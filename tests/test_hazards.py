import asyncio
from types import SimpleNamespace

import aiohttp
import pytest

from app.core import hazards as hazards_module
from app.core.geofencing import HazardZone, InvalidInput, Severity
from app.core.hazards import (
    DEFAULT_HAZARD_ZONES,
    HazardRegistry,
    parse_feed,
    zone_from_record,
)


class FakeResponse:
    def __init__(self, status=200, payload=None, error=None):
        self.status = status
        self._payload = payload
        self._error = error

    async def __aenter__(self):
        if self._error is not None:
            raise self._error
        return self

    async def __aexit__(self, *exc):
        return False

    async def text(self):
        return "error body"

    async def json(self, content_type=None):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class FakeSession:
    def __init__(self, response):
        self.response = response
        self.requested = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def get(self, url, **kwargs):
        self.requested.append(url)
        return self.response


def _patch_session(monkeypatch, response):
    session = FakeSession(response)
    monkeypatch.setattr(hazards_module.aiohttp, "ClientSession", lambda *a, **kw: session)
    return session


FEED = {
    "zones": [
        {"id": "flood", "title": "Flood plain", "lat": 12.0, "lng": 77.0, "radius_meters": 500, "severity": "HIGH"},
        {"id": "fog", "name": "Fog belt", "latitude": 13.0, "longitude": 78.0, "radius": 900, "severity": "low"},
    ]
}


def test_default_registry_serves_builtin_zones():
    registry = HazardRegistry()

    ids = {zone.id for zone in registry.snapshot()}

    assert ids == set(DEFAULT_HAZARD_ZONES)
    assert registry.get("baga_riptide").severity == Severity.MEDIUM


def test_parse_feed_accepts_both_shapes_and_aliases():
    from_dict = parse_feed(FEED)
    from_list = parse_feed(FEED["zones"])

    assert from_dict == from_list
    flood, fog = from_dict
    assert flood.severity == Severity.HIGH
    assert fog.title == "Fog belt"
    assert fog.radius_meters == 900.0


def test_parse_feed_skips_bad_rows():
    rows = [
        "not an object",
        {"id": "a", "lat": 1, "lng": 1, "radius_meters": 100, "severity": "low"},
        {"id": "a", "lat": 2, "lng": 2, "radius_meters": 100, "severity": "low"},
        {"id": "b", "lat": 1, "lng": 1, "radius_meters": -5, "severity": "low"},
        {"id": "c", "lat": 1, "lng": 1, "radius_meters": 100, "severity": "catastrophic"},
        {"id": "d", "lat": 1, "radius_meters": 100, "severity": "low"},
        {"id": "e", "lat": 100, "lng": 1, "radius_meters": 100, "severity": "low"},
    ]

    zones = parse_feed(rows)

    assert [(zone.id, zone.latitude) for zone in zones] == [("a", 1.0)]


def test_parse_feed_rejects_non_list():
    with pytest.raises(InvalidInput):
        parse_feed({"zones": "nope"})


def test_parse_feed_rejects_error_body_without_zones():
    with pytest.raises(InvalidInput):
        parse_feed({"error": "rate limited"})


def test_parse_feed_rejects_payload_with_no_valid_rows():
    with pytest.raises(InvalidInput):
        parse_feed([{"id": "a", "lat": 1, "lng": 1, "radius_meters": 0, "severity": "low"}, "junk"])


def test_explicitly_empty_feed_clears_zones():
    assert parse_feed({"zones": []}) == []
    assert parse_feed([]) == []


def test_replace_swaps_the_whole_base_set():
    registry = HazardRegistry()
    before = registry.snapshot()

    registry.replace(parse_feed(FEED))

    assert {zone.id for zone in registry.snapshot()} == {"flood", "fog"}
    # Snapshots already handed out are unaffected
    assert {zone.id for zone in before} == set(DEFAULT_HAZARD_ZONES)


def test_managed_zone_overrides_base_zone_with_same_id():
    registry = HazardRegistry(defaults={})
    registry.replace(parse_feed(FEED))
    override = HazardZone("flood", "Flood plain (closed)", 12.0, 77.0, 1500.0, Severity.HIGH)

    registry.replace_managed([override])

    snapshot = registry.snapshot()
    assert len(snapshot) == 2
    assert registry.get("flood").radius_meters == 1500.0
    assert registry.get("missing") is None


def test_zone_from_record():
    record = SimpleNamespace(
        id="5f0c", zone_key=None, title="Protest", description=None,
        latitude=28.6, longitude=77.2, radius_meters=300.0, severity="medium",
    )

    zone = zone_from_record(record)

    assert zone == HazardZone("5f0c", "Protest", 28.6, 77.2, 300.0, Severity.MEDIUM, "")


def test_record_with_zone_key_overrides_builtin_zone():
    record = SimpleNamespace(
        id="5f0c", zone_key="baga_riptide", title="Baga Beach closed", description="Red flag",
        latitude=15.5553, longitude=73.7517, radius_meters=2000.0, severity="high",
    )
    registry = HazardRegistry()

    registry.replace_managed([zone_from_record(record)])

    assert len(registry.snapshot()) == len(DEFAULT_HAZARD_ZONES)
    assert registry.get("baga_riptide").severity == Severity.HIGH


@pytest.mark.asyncio
async def test_refresh_from_feed_replaces_zones(monkeypatch):
    session = _patch_session(monkeypatch, FakeResponse(payload=FEED))
    registry = HazardRegistry()

    assert await registry.refresh_from_feed("http://feed.test/zones") is True

    assert session.requested == ["http://feed.test/zones"]
    assert {zone.id for zone in registry.snapshot()} == {"flood", "fog"}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        FakeResponse(status=503),
        FakeResponse(payload=ValueError("bad json")),
        FakeResponse(payload={"zones": 42}),
        FakeResponse(payload={"error": "rate limited"}),
        FakeResponse(payload={"zones": [{"id": "broken", "lat": 1}]}),
        FakeResponse(error=aiohttp.ClientConnectionError("refused")),
        FakeResponse(error=asyncio.TimeoutError()),
    ],
)
async def test_failed_refresh_keeps_previous_zones(monkeypatch, response):
    _patch_session(monkeypatch, response)
    registry = HazardRegistry()

    assert await registry.refresh_from_feed("http://feed.test/zones") is False

    assert {zone.id for zone in registry.snapshot()} == set(DEFAULT_HAZARD_ZONES)
