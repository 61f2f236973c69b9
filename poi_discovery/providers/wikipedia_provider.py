"""Wikipedia geosearch provider.

Uses the MediaWiki ``list=geosearch`` generator to find articles with
coordinates near a point. Fast and keyless, so it is the discovery pass's
fast source.
"""

from typing import Any, Dict, List, Optional

import aiohttp

from poi_discovery.exceptions import ProviderResponseError
from poi_discovery.models import PoiGroup, RawCandidate, SourceTag
from poi_discovery.providers.base import SourceAdapter
from poi_discovery.providers.utils import fetch_json
from poi_discovery.utils.geo import Coordinate

WIKIPEDIA_API_URL = "https://{language}.wikipedia.org/w/api.php"

MAX_RADIUS_M = 10000  # API hard limit
RESULT_LIMIT = 50


class WikipediaGeosearchProvider(SourceAdapter):
    """Nearby encyclopedia articles, with page props and thumbnails."""

    source = SourceTag.WIKIPEDIA_GEOSEARCH
    supported_groups = frozenset({PoiGroup.ATTRACTION})

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 10.0,
        language: str = "en",
        user_agent: Optional[str] = None,
        limit: int = RESULT_LIMIT,
    ):
        super().__init__(session=session, timeout=timeout)
        self.language = language
        self.user_agent = user_agent
        self.limit = limit

    @property
    def url(self) -> str:
        return WIKIPEDIA_API_URL.format(language=self.language)

    def build_params(self, coordinate: Coordinate, radius_m: int) -> Dict[str, Any]:
        radius = max(10, min(int(radius_m), MAX_RADIUS_M))
        return {
            "action": "query",
            "format": "json",
            "formatversion": "2",
            "generator": "geosearch",
            "ggscoord": f"{coordinate.latitude}|{coordinate.longitude}",
            "ggsradius": str(radius),
            "ggslimit": str(self.limit),
            "ggsnamespace": "0",
            "prop": "coordinates|pageprops|pageimages|description",
            "ppprop": "wikibase_item",
            "piprop": "thumbnail",
            "pithumbsize": "400",
            "colimit": str(self.limit),
            "codistancefrompoint": f"{coordinate.latitude}|{coordinate.longitude}",
        }

    async def fetch_nearby(self, coordinate: Coordinate, radius_m: int) -> List[RawCandidate]:
        headers = {"User-Agent": self.user_agent} if self.user_agent else None
        data = await fetch_json(
            "GET",
            self.url,
            self.name,
            params=self.build_params(coordinate, radius_m),
            headers=headers,
            timeout=self.timeout,
            session=self.session,
        )
        if not isinstance(data, dict):
            raise ProviderResponseError("Wikipedia response is not an object", self.name)
        if "error" in data:
            error = data["error"] if isinstance(data["error"], dict) else {}
            raise ProviderResponseError(
                f"Wikipedia API error: {error.get('info') or error.get('code') or data['error']}",
                self.name,
                {"error": data["error"]},
            )
        query = data.get("query") or {}
        pages = query.get("pages") if isinstance(query, dict) else None
        if not pages:
            # no articles nearby
            return []
        if not isinstance(pages, list):
            raise ProviderResponseError("Wikipedia pages is not a list", self.name)

        records = [flatten_page(page) for page in pages if isinstance(page, dict)]
        records.sort(key=lambda r: r.get("dist") if isinstance(r.get("dist"), (int, float)) else float("inf"))
        self.logger.debug("Wikipedia geosearch returned %d pages", len(records))
        return self._wrap(records)


def flatten_page(page: Dict[str, Any]) -> Dict[str, Any]:
    """Lift the first coordinate onto the page: ``{title, lat, lon, dist, ...}``."""
    record = {key: value for key, value in page.items() if key != "coordinates"}
    coordinates = page.get("coordinates")
    if isinstance(coordinates, list) and coordinates and isinstance(coordinates[0], dict):
        first = coordinates[0]
        record["lat"] = first.get("lat")
        record["lon"] = first.get("lon")
        if "dist" in first:
            record["dist"] = first.get("dist")
    return record
