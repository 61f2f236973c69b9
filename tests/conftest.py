"""
Pytest configuration for POI discovery tests.

Shared fakes: ``FakeAdapter`` stands in for a source adapter, and
``FakeSession``/``FakeResponse`` stand in for an aiohttp session so the
provider modules can be exercised without network access.
"""
import asyncio
import json
from datetime import datetime, timezone

import pytest

from poi_discovery.models import POI, PoiCategory, RawCandidate, SourceTag, make_poi_id
from poi_discovery.providers.base import SourceAdapter
from poi_discovery.utils.geo import Coordinate, haversine_meters

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
ORIGIN = Coordinate(48.8566, 2.3522)

CONFIG_ENV_VARS = (
    "ENVIRONMENT",
    "POI_SEARCH_RADIUS_M",
    "POI_DEDUP_DISTANCE_M",
    "POI_NAME_SIMILARITY",
    "POI_RESULT_LIMIT",
    "POI_MAX_CANDIDATES",
    "POI_CACHE_CAPACITY",
    "POI_MAX_ATTEMPTS",
    "POI_RETRY_DELAY",
    "TIMEOUT_FAST_SOURCE",
    "TIMEOUT_ENRICHMENT",
    "GOOGLE_PLACES_API_KEY",
    "POI_LANGUAGE",
    "OVERPASS_MIN_INTERVAL",
    "HTTP_USER_AGENT",
    "LOG_LEVEL",
    "LOG_FORMAT",
    "LOG_FILE",
    "LOG_MAX_BYTES",
    "LOG_BACKUP_COUNT",
)


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every configuration variable so defaults apply."""
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def make_poi(
    name,
    lat=48.8584,
    lon=2.2945,
    source=SourceTag.OVERPASS,
    score=50,
    discovered_at=None,
    category=PoiCategory.TOURIST_ATTRACTION,
    **optional,
):
    coord = Coordinate(lat, lon)
    sources = optional.pop("sources", (source,))
    return POI(
        id=make_poi_id(name, coord),
        name=name,
        category=category,
        latitude=lat,
        longitude=lon,
        distance_m=haversine_meters(ORIGIN, coord),
        sources=tuple(sources),
        notability_score=score,
        discovered_at=discovered_at or BASE_TIME,
        **optional,
    )


# Raw record builders, one per provider schema

def wiki_page(title, lat, lon, wikidata=None, thumbnail=None, pageid=None):
    page = {"pageid": pageid or 1, "title": title, "lat": lat, "lon": lon, "dist": 0.0}
    if wikidata:
        page["pageprops"] = {"wikibase_item": wikidata}
    if thumbnail:
        page["thumbnail"] = {"source": thumbnail, "width": 400, "height": 300}
    return page


def osm_element(name, lat, lon, element_id=1, element_type="node", **tags):
    element = {"type": element_type, "id": element_id, "tags": dict(tags)}
    if name is not None:
        element["tags"]["name"] = name
    if element_type == "node":
        element["lat"] = lat
        element["lon"] = lon
    else:
        element["center"] = {"lat": lat, "lon": lon}
    return element


def wikidata_binding(name, lat, lon, qid="Q1", **extra):
    binding = {
        "place": {"type": "uri", "value": f"http://www.wikidata.org/entity/{qid}"},
        "placeLabel": {"type": "literal", "value": name},
        "coord": {"type": "literal", "value": f"Point({lon} {lat})"},
    }
    for key, value in extra.items():
        binding[key] = {"type": "literal", "value": str(value)}
    return binding


def google_place(name, lat, lon, place_id="p1", **fields):
    place = {"id": place_id, "displayName": {"text": name}, "location": {"latitude": lat, "longitude": lon}}
    place.update(fields)
    return place


def location_key(coordinate):
    return (round(coordinate.latitude, 4), round(coordinate.longitude, 4))


class FakeAdapter(SourceAdapter):
    """Source adapter returning canned records.

    Args:
        source: Tag reported by the adapter
        records: Either a list of payloads, or a dict of ``location_key`` to payloads
        error: Raised on every call
        errors: Raised one per call, in order, before succeeding
        delay: Seconds to sleep before answering
        gates: One optional ``asyncio.Event`` per call, awaited before answering
        groups: Category groups the adapter serves; all of them when omitted
    """

    def __init__(self, source, records=None, error=None, errors=None, delay=0.0, gates=None, groups=None):
        super().__init__()
        self.source = source
        if groups is not None:
            self.supported_groups = frozenset(groups)
        self.records = records if records is not None else []
        self.error = error
        self.errors = list(errors or [])
        self.delay = delay
        self.gates = list(gates or [])
        self.calls = []

    async def fetch_nearby(self, coordinate, radius_m):
        self.calls.append((coordinate, radius_m))
        gate = self.gates.pop(0) if self.gates else None
        if gate is not None:
            await gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.errors:
            raise self.errors.pop(0)
        if self.error is not None:
            raise self.error
        records = self.records
        if isinstance(records, dict):
            records = records.get(location_key(coordinate), [])
        return [RawCandidate(self.source, record) for record in records]


class FakeResponse:
    def __init__(self, status=200, payload=None, text=None, bad_json=False):
        self.status = status
        self.payload = payload
        self._text = text
        self.bad_json = bad_json

    async def json(self, content_type=None):
        if self.bad_json:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self.payload

    async def text(self):
        if self._text is not None:
            return self._text
        return json.dumps(self.payload)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """Records requests; answers with ``response`` or raises ``exc``."""

    def __init__(self, response=None, exc=None):
        self.response = response or FakeResponse(payload={})
        self.exc = exc
        self.requests = []

    def request(self, method, url, **kwargs):
        self.requests.append((method, url, kwargs))
        if self.exc is not None:
            raise self.exc
        return self.response
