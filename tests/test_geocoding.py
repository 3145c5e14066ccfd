import aiohttp
import pytest

from app.utils import geocoding as geocoding_module
from app.utils.geocoding import GeocodeResult, Geocoder

NOMINATIM_REPLY = [
    {"lat": "27.1751448", "lon": "78.0421422", "display_name": "Taj Mahal, Agra, Uttar Pradesh, India"},
    {"lat": "0", "lon": "0", "display_name": "Somewhere else"},
]


class FakeResponse:
    def __init__(self, status=200, payload=None):
        self.status = status
        self.payload = payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def json(self, content_type=None):
        return self.payload


class FakeSession:
    def __init__(self, responses):
        self.responses = list(responses)
        self.queries = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def get(self, url, params=None, **kwargs):
        self.queries.append(params["q"])
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def fake_session(monkeypatch):
    def install(*responses):
        session = FakeSession(responses)
        monkeypatch.setattr(geocoding_module.aiohttp, "ClientSession", lambda *a, **kw: session)
        return session
    return install


def test_parse_response_takes_first_match():
    result = Geocoder.parse_response(NOMINATIM_REPLY)

    assert result == GeocodeResult(27.1751448, 78.0421422, "Taj Mahal, Agra, Uttar Pradesh, India")


@pytest.mark.parametrize("payload", [[], {}, None, [{"display_name": "no coordinates"}], [{"lat": "x", "lon": "1"}]])
def test_parse_response_without_usable_match(payload):
    assert Geocoder.parse_response(payload) is None


def test_cache_key_normalises_whitespace_and_case():
    assert Geocoder.cache_key("  Taj   MAHAL ") == "taj mahal"


@pytest.mark.asyncio
async def test_geocode_caches_answers(fake_session):
    session = fake_session(FakeResponse(payload=NOMINATIM_REPLY))
    geocoder = Geocoder(url="http://geo.test/search", user_agent="tests", timeout_seconds=1)

    first = await geocoder.geocode("Taj Mahal")
    second = await geocoder.geocode("taj  mahal")

    assert first == second
    assert first.latitude == pytest.approx(27.1751448)
    assert session.queries == ["Taj Mahal"]


@pytest.mark.asyncio
async def test_geocode_does_not_cache_failures(fake_session):
    session = fake_session(
        FakeResponse(status=503),
        aiohttp.ClientConnectionError("refused"),
        FakeResponse(payload=NOMINATIM_REPLY),
    )
    geocoder = Geocoder(url="http://geo.test/search", user_agent="tests", timeout_seconds=1)

    assert await geocoder.geocode("Taj Mahal") is None
    assert await geocoder.geocode("Taj Mahal") is None
    assert (await geocoder.geocode("Taj Mahal")).display_name.startswith("Taj Mahal")
    assert len(session.queries) == 3


@pytest.mark.asyncio
async def test_blank_query_is_not_sent(fake_session):
    session = fake_session()
    geocoder = Geocoder(url="http://geo.test/search", user_agent="tests", timeout_seconds=1)

    assert await geocoder.geocode("   ") is None
    assert session.queries == []
