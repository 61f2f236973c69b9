import asyncio

import aiohttp
import pytest

from poi_discovery.exceptions import (
    ProviderNotAvailableError,
    ProviderRateLimitError,
    ProviderResponseError,
    ProviderTimeoutError,
)
from poi_discovery.models import PoiCategory, PoiGroup, SourceTag
from poi_discovery.providers import (
    GooglePlacesProvider,
    OverpassProvider,
    ProviderStatus,
    WikidataProvider,
    WikipediaGeosearchProvider,
)
from poi_discovery.providers.google_places_provider import DEFAULT_INCLUDED_TYPES
from poi_discovery.providers.overpass_provider import build_query as build_overpass
from poi_discovery.providers.utils import RateLimiter, fetch_json
from poi_discovery.providers.wikidata_provider import build_query as build_sparql, unique_places
from poi_discovery.services.session_manager import SessionManager

from conftest import ORIGIN, FakeAdapter, FakeResponse, FakeSession, osm_element, wiki_page, wikidata_binding


def _no_wait_limiter():
    return RateLimiter(0.0)


# fetch_json

@pytest.mark.asyncio
async def test_fetch_json_returns_decoded_body():
    session = FakeSession(FakeResponse(payload={"ok": True}))
    data = await fetch_json("GET", "https://api.example/x", "example", params={"q": "1"}, session=session)
    assert data == {"ok": True}
    method, url, kwargs = session.requests[0]
    assert (method, url) == ("GET", "https://api.example/x")
    assert kwargs["params"] == {"q": "1"}
    assert kwargs["timeout"].total == 15.0


@pytest.mark.asyncio
@pytest.mark.parametrize("status,error", [
    (429, ProviderRateLimitError),
    (502, ProviderNotAvailableError),
    (503, ProviderNotAvailableError),
    (504, ProviderTimeoutError),
    (500, ProviderResponseError),
    (404, ProviderResponseError),
])
async def test_fetch_json_maps_http_status(status, error):
    session = FakeSession(FakeResponse(status=status, text="upstream says no"))
    with pytest.raises(error) as excinfo:
        await fetch_json("GET", "https://api.example/x", "example", session=session)
    assert excinfo.value.provider_name == "example"
    assert excinfo.value.details["status"] == status


@pytest.mark.asyncio
async def test_fetch_json_invalid_body():
    session = FakeSession(FakeResponse(bad_json=True))
    with pytest.raises(ProviderResponseError):
        await fetch_json("GET", "https://api.example/x", "example", session=session)


@pytest.mark.asyncio
async def test_fetch_json_connection_error():
    session = FakeSession(exc=aiohttp.ClientConnectionError("connection refused"))
    with pytest.raises(ProviderNotAvailableError):
        await fetch_json("GET", "https://api.example/x", "example", session=session)


@pytest.mark.asyncio
async def test_fetch_json_timeout():
    session = FakeSession(exc=asyncio.TimeoutError())
    with pytest.raises(ProviderTimeoutError):
        await fetch_json("GET", "https://api.example/x", "example", timeout=3.0, session=session)


@pytest.mark.asyncio
async def test_rate_limiter_spaces_requests():
    now = [0.0]
    slept = []

    async def fake_sleep(seconds):
        slept.append(seconds)
        now[0] += seconds

    limiter = RateLimiter(1.0, clock=lambda: now[0], sleep=fake_sleep)
    await limiter.wait()
    now[0] = 0.3
    await limiter.wait()
    assert slept == [pytest.approx(0.7)]

    now[0] = 5.0
    await limiter.wait()
    assert len(slept) == 1


# Wikipedia

@pytest.mark.asyncio
async def test_wikipedia_flattens_and_sorts_pages():
    payload = {"query": {"pages": [
        {
            "pageid": 1, "title": "Far Away",
            "coordinates": [{"lat": 48.87, "lon": 2.35, "primary": True, "dist": 1500.0}],
        },
        {
            "pageid": 2, "title": "Close By",
            "coordinates": [{"lat": 48.857, "lon": 2.352, "primary": True, "dist": 40.0}],
            "pageprops": {"wikibase_item": "Q42"},
        },
    ]}}
    session = FakeSession(FakeResponse(payload=payload))
    provider = WikipediaGeosearchProvider(session=session, user_agent="tests/1.0")

    candidates = await provider.fetch_nearby(ORIGIN, 2000)

    assert [c.payload["title"] for c in candidates] == ["Close By", "Far Away"]
    assert all(c.source is SourceTag.WIKIPEDIA_GEOSEARCH for c in candidates)
    assert candidates[0].payload["lat"] == 48.857
    assert "coordinates" not in candidates[0].payload
    _, url, kwargs = session.requests[0]
    assert url == "https://en.wikipedia.org/w/api.php"
    assert kwargs["params"]["ggscoord"] == "48.8566|2.3522"
    assert kwargs["headers"] == {"User-Agent": "tests/1.0"}


def test_wikipedia_radius_is_capped():
    provider = WikipediaGeosearchProvider()
    assert provider.build_params(ORIGIN, 25000)["ggsradius"] == "10000"
    assert provider.build_params(ORIGIN, 2)["ggsradius"] == "10"


@pytest.mark.asyncio
async def test_wikipedia_api_error():
    payload = {"error": {"code": "badcoord", "info": "Invalid coordinate provided"}}
    provider = WikipediaGeosearchProvider(session=FakeSession(FakeResponse(payload=payload)))
    with pytest.raises(ProviderResponseError, match="Invalid coordinate"):
        await provider.fetch_nearby(ORIGIN, 1000)


@pytest.mark.asyncio
async def test_wikipedia_nothing_nearby():
    provider = WikipediaGeosearchProvider(session=FakeSession(FakeResponse(payload={"batchcomplete": True})))
    assert await provider.fetch_nearby(ORIGIN, 1000) == []


# Overpass

@pytest.mark.asyncio
async def test_overpass_posts_query():
    payload = {"elements": [osm_element("Louvre", 48.8606, 2.3376, tourism="museum"), "junk"]}
    session = FakeSession(FakeResponse(payload=payload))
    provider = OverpassProvider(session=session, rate_limiter=_no_wait_limiter())

    candidates = await provider.fetch_nearby(ORIGIN, 1500)

    assert len(candidates) == 1
    assert candidates[0].source is SourceTag.OVERPASS
    method, _, kwargs = session.requests[0]
    assert method == "POST"
    query = kwargs["data"]["data"]
    assert "around:1500,48.8566,2.3522" in query
    assert query.endswith("out center tags;")


def test_overpass_query_follows_category_groups():
    default = build_overpass(ORIGIN, 1000)
    assert 'nwr["historic"~' in default
    assert '"shop"' not in default

    commercial = build_overpass(ORIGIN, 1000, groups={PoiGroup.COMMERCIAL})
    assert 'nwr["shop"~"^(bakery|supermarket|hardware|doityourself|chemist)$"]["name"](around:1000,48.8566,2.3522);' in commercial
    assert '"historic"' not in commercial

    both = build_overpass(ORIGIN, 1000, groups=set(PoiGroup))
    assert both.count("nwr[") == 7


@pytest.mark.asyncio
async def test_overpass_commercial_pass_asks_for_shops():
    session = FakeSession(FakeResponse(payload={"elements": []}))
    provider = OverpassProvider(session=session, rate_limiter=_no_wait_limiter())
    provider.set_categories({PoiCategory.SUPERMARKET})

    await provider.fetch_nearby(ORIGIN, 1500)

    query = session.requests[0][2]["data"]["data"]
    assert '"shop"~' in query
    assert '"tourism"~"^(hotel|hostel|guest_house)$"' in query
    assert '"historic"' not in query


@pytest.mark.asyncio
async def test_overpass_runtime_error_remark():
    payload = {"elements": [], "remark": "runtime error: Query timed out in \"query\" at line 3"}
    provider = OverpassProvider(session=FakeSession(FakeResponse(payload=payload)), rate_limiter=_no_wait_limiter())
    with pytest.raises(ProviderResponseError):
        await provider.fetch_nearby(ORIGIN, 1000)


@pytest.mark.asyncio
async def test_overpass_rate_limited():
    session = FakeSession(FakeResponse(status=429, text="Too Many Requests"))
    provider = OverpassProvider(session=session, rate_limiter=_no_wait_limiter())
    with pytest.raises(ProviderRateLimitError):
        await provider.fetch_nearby(ORIGIN, 1000)


# Wikidata

@pytest.mark.asyncio
async def test_wikidata_keeps_one_binding_per_place():
    bindings = [
        wikidata_binding("Louvre", 48.8606, 2.3376, qid="Q19675", instanceLabel="art museum"),
        wikidata_binding("Louvre", 48.8606, 2.3376, qid="Q19675", instanceLabel="national museum"),
        wikidata_binding("Pont Neuf", 48.8570, 2.3414, qid="Q201812"),
    ]
    session = FakeSession(FakeResponse(payload={"head": {}, "results": {"bindings": bindings}}))
    provider = WikidataProvider(session=session, language="fr")

    candidates = await provider.fetch_nearby(ORIGIN, 1500)

    assert len(candidates) == 2
    assert candidates[0].payload["instanceLabel"]["value"] == "art museum"
    _, _, kwargs = session.requests[0]
    assert kwargs["params"]["format"] == "json"
    assert 'wikibase:language "fr,en"' in kwargs["params"]["query"]


@pytest.mark.asyncio
async def test_wikidata_without_bindings_is_an_error():
    provider = WikidataProvider(session=FakeSession(FakeResponse(payload={"head": {}})))
    with pytest.raises(ProviderResponseError):
        await provider.fetch_nearby(ORIGIN, 1000)


def test_sparql_query():
    query = build_sparql(ORIGIN, 1500)
    assert "wikibase:around" in query
    assert '"Point(2.3522 48.8566)"' in query
    assert 'wikibase:radius "1.5"' in query
    assert query.endswith("LIMIT 100")


def test_unique_places_skips_non_mappings():
    assert unique_places(["nope", wikidata_binding("A", 1, 1)]) == [wikidata_binding("A", 1, 1)]


# Google Places

@pytest.mark.asyncio
async def test_google_without_key_makes_no_request():
    session = FakeSession()
    provider = GooglePlacesProvider(api_key=None, session=session)
    with pytest.raises(ProviderNotAvailableError):
        await provider.fetch_nearby(ORIGIN, 1000)
    assert session.requests == []


@pytest.mark.asyncio
async def test_google_request_shape():
    place = {"id": "abc", "displayName": {"text": "Louvre"}, "location": {"latitude": 48.86, "longitude": 2.33}}
    session = FakeSession(FakeResponse(payload={"places": [place]}))
    provider = GooglePlacesProvider(api_key="secret", session=session)

    candidates = await provider.fetch_nearby(ORIGIN, 80000)

    assert [c.payload["id"] for c in candidates] == ["abc"]
    method, _, kwargs = session.requests[0]
    assert method == "POST"
    assert kwargs["headers"]["X-Goog-Api-Key"] == "secret"
    assert "places.rating" in kwargs["headers"]["X-Goog-FieldMask"]
    circle = kwargs["json"]["locationRestriction"]["circle"]
    assert circle["radius"] == 50000.0
    assert circle["center"] == {"latitude": 48.8566, "longitude": 2.3522}


def test_google_included_types_follow_categories():
    provider = GooglePlacesProvider(api_key="secret")
    assert provider.build_body(ORIGIN, 1000)["includedTypes"] == list(DEFAULT_INCLUDED_TYPES)

    provider.set_categories({PoiCategory.SUPERMARKET, PoiCategory.PHARMACY})
    assert provider.build_body(ORIGIN, 1000)["includedTypes"] == ["supermarket", "grocery_store", "pharmacy", "drugstore"]

    provider.set_categories({PoiCategory.OTHER})
    assert provider.included_types == list(DEFAULT_INCLUDED_TYPES)
    provider.set_categories(None)
    assert provider.included_types == list(DEFAULT_INCLUDED_TYPES)


def test_attraction_only_sources():
    for provider in (WikipediaGeosearchProvider(), WikidataProvider()):
        assert provider.serves(None)
        assert provider.serves({PoiCategory.MUSEUM, PoiCategory.CAFE})
        assert not provider.serves({PoiCategory.CAFE})
    for provider in (OverpassProvider(), GooglePlacesProvider(api_key=None)):
        assert provider.serves({PoiCategory.CAFE})
        assert provider.serves(None)


@pytest.mark.asyncio
async def test_google_empty_result():
    provider = GooglePlacesProvider(api_key="secret", session=FakeSession(FakeResponse(payload={})))
    assert await provider.fetch_nearby(ORIGIN, 1000) == []


# Health checks and sessions

@pytest.mark.asyncio
async def test_health_check_healthy():
    adapter = FakeAdapter(SourceTag.WIKIPEDIA_GEOSEARCH, [wiki_page("Eiffel Tower", 48.8584, 2.2945)])
    result = await adapter.health_check()
    assert result.is_healthy
    assert result.details["results"] == 1
    assert await adapter.is_available()


@pytest.mark.asyncio
async def test_health_check_unhealthy():
    adapter = FakeAdapter(SourceTag.OVERPASS, error=ProviderNotAvailableError("down", "overpass"))
    result = await adapter.health_check()
    assert result.status is ProviderStatus.UNHEALTHY
    assert result.details["error_type"] == "ProviderNotAvailableError"


@pytest.mark.asyncio
async def test_session_manager_reuses_and_closes_session():
    manager = SessionManager(user_agent="tests/1.0")
    assert manager.closed
    first = await manager.get_session()
    second = await manager.get_session()
    assert first is second
    assert first.headers["User-Agent"] == "tests/1.0"
    await manager.close()
    assert manager.closed
    assert first.closed


@pytest.mark.asyncio
async def test_session_context_closes_on_exit():
    manager = SessionManager()
    async with manager.session_context() as session:
        assert not session.closed
    assert session.closed
