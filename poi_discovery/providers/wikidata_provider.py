"""Wikidata provider for notable places around a coordinate.

Uses the Wikidata SPARQL endpoint with the ``wikibase:around`` geo service.
No API key required; the endpoint answers 429 when throttled and 500/503
when a query runs past its server-side time limit.
"""

from typing import Any, Dict, List, Optional

import aiohttp

from poi_discovery.exceptions import ProviderResponseError
from poi_discovery.models import PoiGroup, RawCandidate, SourceTag
from poi_discovery.providers.base import SourceAdapter
from poi_discovery.providers.utils import fetch_json
from poi_discovery.utils.geo import Coordinate

WIKIDATA_SPARQL_URL = "https://query.wikidata.org/sparql"

RESULT_LIMIT = 100

NEARBY_PLACES_QUERY = """
SELECT DISTINCT ?place ?placeLabel ?coord ?wikipedia ?description ?inception
       ?visitorCount ?heritageStatus ?image ?website ?instanceLabel
WHERE {{
  SERVICE wikibase:around {{
    ?place wdt:P625 ?coord .
    bd:serviceParam wikibase:center "Point({lon} {lat})"^^geo:wktLiteral .
    bd:serviceParam wikibase:radius "{radius_km}" .
    bd:serviceParam wikibase:distance ?dist .
  }}

  VALUES ?placeType {{
    wd:Q570116    # tourist attraction
    wd:Q33506     # museum
    wd:Q4989906   # monument
    wd:Q839954    # archaeological site
    wd:Q23413     # castle
    wd:Q16560     # palace
    wd:Q12518     # tower
    wd:Q16970     # church building
    wd:Q44539     # temple
    wd:Q34627     # synagogue
    wd:Q32815     # mosque
    wd:Q22698     # park
  }}
  ?place wdt:P31/wdt:P279* ?placeType .
  ?place wdt:P31 ?instance .

  OPTIONAL {{
    ?wikipedia schema:about ?place ;
               schema:isPartOf <https://{language}.wikipedia.org/> .
  }}
  OPTIONAL {{
    ?place schema:description ?description .
    FILTER(LANG(?description) = "{language}")
  }}
  OPTIONAL {{ ?place wdt:P571 ?inception . }}
  OPTIONAL {{ ?place wdt:P1174 ?visitorCount . }}
  OPTIONAL {{
    ?place wdt:P1435 ?heritage .
    ?heritage rdfs:label ?heritageStatus .
    FILTER(LANG(?heritageStatus) = "{language}")
  }}
  OPTIONAL {{ ?place wdt:P18 ?image . }}
  OPTIONAL {{ ?place wdt:P856 ?website . }}

  SERVICE wikibase:label {{ bd:serviceParam wikibase:language "{language},en" . }}
}}
ORDER BY ?dist
LIMIT {limit}
"""


def build_query(coordinate: Coordinate, radius_m: int, language: str = "en", limit: int = RESULT_LIMIT) -> str:
    return NEARBY_PLACES_QUERY.format(
        lat=coordinate.latitude,
        lon=coordinate.longitude,
        radius_km=round(radius_m / 1000.0, 3),
        language=language,
        limit=limit,
    ).strip()


class WikidataProvider(SourceAdapter):
    """SPARQL result bindings, one per distinct place."""

    source = SourceTag.WIKIDATA
    supported_groups = frozenset({PoiGroup.ATTRACTION})

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 30.0,
        language: str = "en",
        user_agent: Optional[str] = None,
        limit: int = RESULT_LIMIT,
    ):
        super().__init__(session=session, timeout=timeout)
        self.language = language
        self.user_agent = user_agent
        self.limit = limit

    async def fetch_nearby(self, coordinate: Coordinate, radius_m: int) -> List[RawCandidate]:
        headers = {"Accept": "application/sparql-results+json"}
        if self.user_agent:
            headers["User-Agent"] = self.user_agent
        data = await fetch_json(
            "GET",
            WIKIDATA_SPARQL_URL,
            self.name,
            params={
                "query": build_query(coordinate, radius_m, self.language, self.limit),
                "format": "json",
            },
            headers=headers,
            timeout=self.timeout,
            session=self.session,
        )
        results = data.get("results") if isinstance(data, dict) else None
        bindings = results.get("bindings") if isinstance(results, dict) else None
        if not isinstance(bindings, list):
            raise ProviderResponseError("Wikidata response has no result bindings", self.name)
        records = unique_places(bindings)
        self.logger.debug("Wikidata returned %d bindings for %d places", len(bindings), len(records))
        return self._wrap(records)


def unique_places(bindings: List[Any]) -> List[Dict[str, Any]]:
    """Keep the first binding per place URI.

    The instance and heritage joins fan out into one row per combination.
    """
    seen = set()
    unique: List[Dict[str, Any]] = []
    for binding in bindings:
        if not isinstance(binding, dict):
            continue
        place = binding.get("place")
        key = place.get("value") if isinstance(place, dict) else None
        if key is not None:
            if key in seen:
                continue
            seen.add(key)
        unique.append(binding)
    return unique
