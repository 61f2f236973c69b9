"""OpenStreetMap Overpass provider.

Posts an Overpass QL query around a point. Attraction passes ask for
tourism, historic and cultural features; commercial passes ask for food,
shop, fuel and lodging features.

The public endpoint asks for at most one request per second per client,
which ``RateLimiter`` enforces across all calls made through one provider
instance.
"""

from typing import FrozenSet, Iterable, List, Optional

import aiohttp

from poi_discovery.exceptions import ProviderResponseError
from poi_discovery.models import PoiGroup, RawCandidate, SourceTag, groups_for
from poi_discovery.providers.base import SourceAdapter
from poi_discovery.providers.utils import RateLimiter, fetch_json
from poi_discovery.utils.geo import Coordinate

OVERPASS_URL = "https://overpass-api.de/api/interpreter"

QUERY_TIMEOUT_S = 25

OVERPASS_QUERY = """
[out:json][timeout:{timeout}];
(
{clauses}
);
out center tags;
"""

# (key, value regex) per group; every clause also requires a name
CLAUSES = {
    PoiGroup.ATTRACTION: (
        ("tourism", "attraction|museum|monument|artwork|viewpoint|gallery|zoo|aquarium|theme_park"),
        ("historic", "monument|memorial|archaeological_site|castle|ruins|fort|manor|palace|church"),
        ("amenity", "theatre|arts_centre|place_of_worship|library"),
        ("leisure", "park|garden"),
    ),
    PoiGroup.COMMERCIAL: (
        ("amenity", "restaurant|cafe|bar|pub|fast_food|pharmacy|fuel"),
        ("shop", "bakery|supermarket|hardware|doityourself|chemist"),
        ("tourism", "hotel|hostel|guest_house"),
    ),
}


def build_query(
    coordinate: Coordinate,
    radius_m: int,
    timeout: int = QUERY_TIMEOUT_S,
    groups: Optional[Iterable[PoiGroup]] = None,
) -> str:
    """Overpass QL for the given category groups; attractions when omitted."""
    wanted: FrozenSet[PoiGroup] = frozenset(groups) if groups is not None else frozenset({PoiGroup.ATTRACTION})
    around = f"(around:{int(radius_m)},{coordinate.latitude},{coordinate.longitude})"
    clauses = [
        f'  nwr["{key}"~"^({values})$"]["name"]{around};'
        for group in PoiGroup if group in wanted
        for key, values in CLAUSES[group]
    ]
    return OVERPASS_QUERY.format(timeout=timeout, clauses="\n".join(clauses)).strip()


class OverpassProvider(SourceAdapter):
    """Named OSM nodes, ways and relations; ways and relations carry a ``center``."""

    source = SourceTag.OVERPASS

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 30.0,
        url: str = OVERPASS_URL,
        min_interval: float = 1.0,
        user_agent: Optional[str] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        super().__init__(session=session, timeout=timeout)
        self.url = url
        self.user_agent = user_agent
        self.rate_limiter = rate_limiter or RateLimiter(min_interval)

    async def fetch_nearby(self, coordinate: Coordinate, radius_m: int) -> List[RawCandidate]:
        query = build_query(coordinate, radius_m, groups=groups_for(self.categories))
        headers = {"User-Agent": self.user_agent} if self.user_agent else None
        await self.rate_limiter.wait()
        data = await fetch_json(
            "POST",
            self.url,
            self.name,
            data={"data": query},
            headers=headers,
            timeout=self.timeout,
            session=self.session,
        )
        if not isinstance(data, dict):
            raise ProviderResponseError("Overpass response is not an object", self.name)
        remark = data.get("remark")
        if isinstance(remark, str) and "error" in remark.lower():
            # runtime errors come back as HTTP 200 with a remark
            raise ProviderResponseError(f"Overpass error: {remark}", self.name, {"remark": remark})
        elements = data.get("elements")
        if elements is None:
            return []
        if not isinstance(elements, list):
            raise ProviderResponseError("Overpass elements is not a list", self.name)
        self.logger.debug("Overpass returned %d elements", len(elements))
        return self._wrap(elements)
