"""
Core data model for POI discovery.

Defines the source tags, the closed category enumeration, the raw candidate
records produced by source adapters, the canonical ``POI`` entity and the
rules for collapsing duplicate POIs into one (``merge_pois``).
"""
import hashlib
from dataclasses import asdict, dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Tuple, TypeVar

from poi_discovery.exceptions import InvalidArgument
from poi_discovery.utils.geo import Coordinate
from poi_discovery.utils.text import normalize_name

T = TypeVar("T")


class SourceTag(Enum):
    """Data provider a POI observation came from."""
    WIKIPEDIA_GEOSEARCH = "wikipedia_geosearch"
    OVERPASS = "overpass"
    WIKIDATA = "wikidata"
    GOOGLE_PLACES = "google_places"

    @property
    def priority(self) -> int:
        """Merge preference, higher wins: Google Places > Wikipedia > Wikidata > Overpass."""
        return _SOURCE_PRIORITY[self]

    @property
    def base_score(self) -> int:
        return _SOURCE_BASE_SCORE[self]

    @property
    def trust_weight(self) -> int:
        """Bonus granted when a record cross-references a knowledge-graph item."""
        return _SOURCE_TRUST_WEIGHT[self]

    @property
    def display_name(self) -> str:
        return _SOURCE_DISPLAY_NAME[self]

    @property
    def requires_api_key(self) -> bool:
        return self is SourceTag.GOOGLE_PLACES


_SOURCE_PRIORITY = {
    SourceTag.GOOGLE_PLACES: 4,
    SourceTag.WIKIPEDIA_GEOSEARCH: 3,
    SourceTag.WIKIDATA: 2,
    SourceTag.OVERPASS: 1,
}

_SOURCE_BASE_SCORE = {
    SourceTag.WIKIPEDIA_GEOSEARCH: 75,
    SourceTag.OVERPASS: 50,
    SourceTag.WIKIDATA: 60,
    SourceTag.GOOGLE_PLACES: 50,
}

_SOURCE_TRUST_WEIGHT = {
    SourceTag.WIKIPEDIA_GEOSEARCH: 15,
    SourceTag.OVERPASS: 20,
    SourceTag.WIKIDATA: 0,
    SourceTag.GOOGLE_PLACES: 15,
}

_SOURCE_DISPLAY_NAME = {
    SourceTag.WIKIPEDIA_GEOSEARCH: "Wikipedia",
    SourceTag.OVERPASS: "OpenStreetMap",
    SourceTag.WIKIDATA: "Wikidata",
    SourceTag.GOOGLE_PLACES: "Google Places",
}


class PoiGroup(Enum):
    ATTRACTION = "attraction"
    COMMERCIAL = "commercial"


class PoiCategory(Enum):
    """Closed set of POI categories. Unknown vocabularies map to OTHER."""
    MONUMENT = "monument"
    MUSEUM = "museum"
    RELIGIOUS_SITE = "religious_site"
    PARK = "park"
    VIEWPOINT = "viewpoint"
    TOURIST_ATTRACTION = "tourist_attraction"
    HISTORIC_SITE = "historic_site"
    RESTAURANT = "restaurant"
    CAFE = "cafe"
    BAKERY = "bakery"
    SUPERMARKET = "supermarket"
    HARDWARE_STORE = "hardware_store"
    PHARMACY = "pharmacy"
    GAS_STATION = "gas_station"
    HOTEL = "hotel"
    BAR = "bar"
    FAST_FOOD = "fast_food"
    OTHER = "other"

    @property
    def group(self) -> PoiGroup:
        if self in _COMMERCIAL_CATEGORIES:
            return PoiGroup.COMMERCIAL
        return PoiGroup.ATTRACTION

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()


_COMMERCIAL_CATEGORIES = frozenset({
    PoiCategory.RESTAURANT,
    PoiCategory.CAFE,
    PoiCategory.BAKERY,
    PoiCategory.SUPERMARKET,
    PoiCategory.HARDWARE_STORE,
    PoiCategory.PHARMACY,
    PoiCategory.GAS_STATION,
    PoiCategory.HOTEL,
    PoiCategory.BAR,
    PoiCategory.FAST_FOOD,
})


def groups_for(categories: Optional[Iterable[PoiCategory]]) -> FrozenSet[PoiGroup]:
    """Groups a category filter asks for; no filter means the attraction pass."""
    if categories is None:
        return frozenset({PoiGroup.ATTRACTION})
    return frozenset(category.group for category in categories)


@dataclass(frozen=True)
class RawCandidate:
    """An unmerged record exactly as a source adapter received it.

    ``payload`` keeps the provider's own schema; the mapping function selected
    by ``source`` turns it into a POI.
    """
    source: SourceTag
    payload: Mapping[str, Any]


@dataclass(frozen=True)
class Location:
    """The place discovery runs around (a city or any selected location)."""
    id: str
    name: str
    latitude: float
    longitude: float
    country: Optional[str] = None

    def __post_init__(self):
        coord = Coordinate(self.latitude, self.longitude)
        object.__setattr__(self, "latitude", coord.latitude)
        object.__setattr__(self, "longitude", coord.longitude)

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(self.latitude, self.longitude)


def make_poi_id(name: str, coordinate: Coordinate) -> str:
    """Deterministic identifier from the normalised name and a ~10 m grid cell."""
    lat_cell = round(coordinate.latitude * 10000)
    lon_cell = round(coordinate.longitude * 10000)
    raw = f"{normalize_name(name)}|{lat_cell}|{lon_cell}".encode("utf-8")
    return hashlib.sha1(raw).hexdigest()[:16]


@dataclass(frozen=True)
class POI:
    """Canonical, possibly merged, point of interest."""
    id: str
    name: str
    category: PoiCategory
    latitude: float
    longitude: float
    distance_m: float
    sources: Tuple[SourceTag, ...]
    notability_score: int
    discovered_at: datetime
    description: Optional[str] = None
    wikipedia_title: Optional[str] = None
    wikidata_id: Optional[str] = None
    osm_id: Optional[str] = None
    place_id: Optional[str] = None
    image_url: Optional[str] = None
    website: Optional[str] = None
    opening_hours: Optional[str] = None
    formatted_address: Optional[str] = None
    rating: Optional[float] = None
    review_count: Optional[int] = None
    price_level: Optional[str] = None

    def __post_init__(self):
        Coordinate(self.latitude, self.longitude)
        if not self.id:
            raise InvalidArgument("POI id must not be empty")
        if not self.name:
            raise InvalidArgument("POI name must not be empty")
        if not self.sources:
            raise InvalidArgument("POI must have at least one source")
        if self.distance_m < 0:
            raise InvalidArgument(f"Distance must be non-negative, got {self.distance_m}")
        if not 0 <= self.notability_score <= 100:
            raise InvalidArgument(f"Notability score must be between 0 and 100, got {self.notability_score}")
        object.__setattr__(self, "sources", tuple(self.sources))

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(self.latitude, self.longitude)

    @property
    def top_priority(self) -> int:
        return max(source.priority for source in self.sources)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["category"] = self.category.value
        data["sources"] = [source.value for source in self.sources]
        data["discovered_at"] = self.discovered_at.isoformat()
        return data


# Optional scalar fields resolved by "first non-empty value in priority order".
_PICK_FIRST_FIELDS = (
    "description",
    "wikipedia_title",
    "wikidata_id",
    "osm_id",
    "place_id",
    "image_url",
    "website",
    "opening_hours",
    "formatted_address",
    "price_level",
)


def _merge_order_key(poi: POI):
    return (-poi.top_priority, poi.discovered_at, poi.id, poi.name)


def _first_present(values: Iterable[Optional[T]]) -> Optional[T]:
    for value in values:
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def merge_pois(group: Sequence[POI]) -> POI:
    """Collapse a group of duplicate POIs into one.

    The member carrying the highest-priority source is the primary and
    supplies identity, name, category, coordinate and distance. Ties fall
    back to the earliest ``discovered_at``, so the result does not depend on
    the order of ``group``.

    Raises:
        InvalidArgument: If ``group`` is empty
    """
    if not group:
        raise InvalidArgument("Cannot merge empty list of POIs")
    if len(group) == 1:
        return group[0]

    ordered: List[POI] = sorted(group, key=_merge_order_key)
    primary = ordered[0]

    sources = sorted(
        {source for poi in ordered for source in poi.sources},
        key=lambda s: s.priority,
        reverse=True,
    )

    picked = {
        name: _first_present(getattr(poi, name) for poi in ordered)
        for name in _PICK_FIRST_FIELDS
    }

    ratings = [poi.rating for poi in ordered if poi.rating is not None]
    review_counts = [poi.review_count for poi in ordered if poi.review_count is not None]

    return replace(
        primary,
        sources=tuple(sources),
        notability_score=max(poi.notability_score for poi in ordered),
        discovered_at=min(poi.discovered_at for poi in ordered),
        rating=max(ratings) if ratings else None,
        review_count=sum(review_counts) if review_counts else None,
        **picked,
    )
