"""
Per-source mapping from raw provider records to canonical POIs.

Each ``SourceTag`` has exactly one pure mapping function registered in
``MAPPERS``. ``from_raw_candidate`` selects it by tag; nothing else in the
package branches on source identity.
"""
import logging
import re
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple
from urllib.parse import unquote

from poi_discovery.exceptions import InvalidArgument, InvalidCoordinate, MalformedRecordError
from poi_discovery.models import POI, PoiCategory, RawCandidate, SourceTag, make_poi_id
from poi_discovery.scoring import finite_number, notability_score
from poi_discovery.utils.geo import Coordinate, haversine_meters

logger = logging.getLogger(__name__)

_WKT_POINT = re.compile(r"Point\(\s*([-+\d.eE]+)\s+([-+\d.eE]+)\s*\)")

# OSM tag vocabularies, checked in this key order
_OSM_HISTORIC_MONUMENTS = {"monument", "memorial"}
_OSM_TOURISM = {
    "museum": PoiCategory.MUSEUM,
    "gallery": PoiCategory.MUSEUM,
    "viewpoint": PoiCategory.VIEWPOINT,
    "hotel": PoiCategory.HOTEL,
    "hostel": PoiCategory.HOTEL,
    "guest_house": PoiCategory.HOTEL,
}
_OSM_LEISURE = {
    "park": PoiCategory.PARK,
    "garden": PoiCategory.PARK,
    "nature_reserve": PoiCategory.PARK,
}
_OSM_AMENITY = {
    "place_of_worship": PoiCategory.RELIGIOUS_SITE,
    "restaurant": PoiCategory.RESTAURANT,
    "cafe": PoiCategory.CAFE,
    "bar": PoiCategory.BAR,
    "pub": PoiCategory.BAR,
    "fast_food": PoiCategory.FAST_FOOD,
    "pharmacy": PoiCategory.PHARMACY,
    "fuel": PoiCategory.GAS_STATION,
}
_OSM_SHOP = {
    "bakery": PoiCategory.BAKERY,
    "supermarket": PoiCategory.SUPERMARKET,
    "hardware": PoiCategory.HARDWARE_STORE,
    "doityourself": PoiCategory.HARDWARE_STORE,
    "chemist": PoiCategory.PHARMACY,
}

_GOOGLE_TYPES = {
    "museum": PoiCategory.MUSEUM,
    "art_gallery": PoiCategory.MUSEUM,
    "historical_landmark": PoiCategory.HISTORIC_SITE,
    "monument": PoiCategory.MONUMENT,
    "park": PoiCategory.PARK,
    "national_park": PoiCategory.PARK,
    "church": PoiCategory.RELIGIOUS_SITE,
    "mosque": PoiCategory.RELIGIOUS_SITE,
    "synagogue": PoiCategory.RELIGIOUS_SITE,
    "hindu_temple": PoiCategory.RELIGIOUS_SITE,
    "place_of_worship": PoiCategory.RELIGIOUS_SITE,
    "observation_deck": PoiCategory.VIEWPOINT,
    "tourist_attraction": PoiCategory.TOURIST_ATTRACTION,
    "fast_food_restaurant": PoiCategory.FAST_FOOD,
    "meal_takeaway": PoiCategory.FAST_FOOD,
    "restaurant": PoiCategory.RESTAURANT,
    "cafe": PoiCategory.CAFE,
    "coffee_shop": PoiCategory.CAFE,
    "bakery": PoiCategory.BAKERY,
    "supermarket": PoiCategory.SUPERMARKET,
    "grocery_store": PoiCategory.SUPERMARKET,
    "hardware_store": PoiCategory.HARDWARE_STORE,
    "home_goods_store": PoiCategory.HARDWARE_STORE,
    "pharmacy": PoiCategory.PHARMACY,
    "drugstore": PoiCategory.PHARMACY,
    "gas_station": PoiCategory.GAS_STATION,
    "hotel": PoiCategory.HOTEL,
    "lodging": PoiCategory.HOTEL,
    "bar": PoiCategory.BAR,
    "night_club": PoiCategory.BAR,
}

# Wikidata instance labels are free text; first keyword hit wins.
_WIKIDATA_KEYWORDS: Tuple[Tuple[str, PoiCategory], ...] = (
    ("museum", PoiCategory.MUSEUM),
    ("gallery", PoiCategory.MUSEUM),
    ("monument", PoiCategory.MONUMENT),
    ("memorial", PoiCategory.MONUMENT),
    ("statue", PoiCategory.MONUMENT),
    ("church", PoiCategory.RELIGIOUS_SITE),
    ("cathedral", PoiCategory.RELIGIOUS_SITE),
    ("basilica", PoiCategory.RELIGIOUS_SITE),
    ("mosque", PoiCategory.RELIGIOUS_SITE),
    ("synagogue", PoiCategory.RELIGIOUS_SITE),
    ("temple", PoiCategory.RELIGIOUS_SITE),
    ("chapel", PoiCategory.RELIGIOUS_SITE),
    ("park", PoiCategory.PARK),
    ("garden", PoiCategory.PARK),
    ("viewpoint", PoiCategory.VIEWPOINT),
    ("observation", PoiCategory.VIEWPOINT),
    ("castle", PoiCategory.HISTORIC_SITE),
    ("palace", PoiCategory.HISTORIC_SITE),
    ("fort", PoiCategory.HISTORIC_SITE),
    ("ruin", PoiCategory.HISTORIC_SITE),
    ("archaeological", PoiCategory.HISTORIC_SITE),
    ("hotel", PoiCategory.HOTEL),
    ("tower", PoiCategory.TOURIST_ATTRACTION),
    ("bridge", PoiCategory.TOURIST_ATTRACTION),
    ("square", PoiCategory.TOURIST_ATTRACTION),
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _text(value: Any) -> Optional[str]:
    """Strip strings; anything blank or non-string becomes None."""
    if value is None:
        return None
    if not isinstance(value, str):
        value = str(value)
    value = value.strip()
    return value or None


def _binding(binding: Mapping[str, Any], key: str) -> Optional[str]:
    cell = binding.get(key)
    if isinstance(cell, Mapping):
        return _text(cell.get("value"))
    return _text(cell)


def _coordinate(lat: Any, lon: Any, source: SourceTag) -> Coordinate:
    if lat is None or lon is None:
        raise MalformedRecordError(f"{source.value} record has no coordinate")
    return Coordinate(lat, lon)


def _require_name(name: Optional[str], source: SourceTag) -> str:
    if not name:
        raise MalformedRecordError(f"{source.value} record has no name")
    return name


def parse_wkt_point(wkt: str) -> Tuple[float, float]:
    """Parse a WKT ``Point(lon lat)`` literal into ``(lat, lon)``.

    Raises:
        MalformedRecordError: If the literal is not a point
    """
    match = _WKT_POINT.search(wkt or "")
    if match is None:
        raise MalformedRecordError(f"Invalid WKT coordinate: {wkt!r}")
    try:
        lon = float(match.group(1))
        lat = float(match.group(2))
    except ValueError:
        raise MalformedRecordError(f"Invalid WKT coordinate: {wkt!r}")
    return lat, lon


def wikipedia_title_from_tag(tag: Optional[str]) -> Optional[str]:
    """OSM ``wikipedia`` tags look like ``en:Eiffel Tower``."""
    if not tag:
        return None
    _, sep, title = tag.partition(":")
    if not sep:
        return _text(tag)
    return _text(title)


def wikipedia_title_from_url(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    last = url.rstrip("/").rsplit("/", 1)[-1]
    return _text(unquote(last).replace("_", " "))


def entity_id_from_uri(uri: Optional[str]) -> Optional[str]:
    if not uri:
        return None
    return _text(uri.rstrip("/").rsplit("/", 1)[-1])


def category_from_osm_tags(tags: Mapping[str, Any]) -> PoiCategory:
    historic = _text(tags.get("historic"))
    if historic:
        if historic in _OSM_HISTORIC_MONUMENTS:
            return PoiCategory.MONUMENT
        return PoiCategory.HISTORIC_SITE
    tourism = _text(tags.get("tourism"))
    if tourism:
        return _OSM_TOURISM.get(tourism, PoiCategory.TOURIST_ATTRACTION)
    for key, vocabulary in (("leisure", _OSM_LEISURE), ("amenity", _OSM_AMENITY), ("shop", _OSM_SHOP)):
        value = _text(tags.get(key))
        if value and value in vocabulary:
            return vocabulary[value]
    return PoiCategory.OTHER


def category_from_google_types(primary_type: Optional[str], types: Iterable[Any]) -> PoiCategory:
    candidates: List[Any] = [primary_type] if primary_type else []
    candidates.extend(types or ())
    for place_type in candidates:
        if isinstance(place_type, str) and place_type in _GOOGLE_TYPES:
            return _GOOGLE_TYPES[place_type]
    return PoiCategory.OTHER


def google_types_for(categories: Iterable[PoiCategory]) -> List[str]:
    """Google place types that map to any of ``categories``, in vocabulary order."""
    wanted = set(categories)
    return [place_type for place_type, category in _GOOGLE_TYPES.items() if category in wanted]


def category_from_wikidata_label(label: Optional[str]) -> PoiCategory:
    if not label:
        return PoiCategory.OTHER
    lowered = label.lower()
    for keyword, category in _WIKIDATA_KEYWORDS:
        if keyword in lowered:
            return category
    return PoiCategory.OTHER


def _build(
    source: SourceTag,
    name: str,
    coordinate: Coordinate,
    origin: Coordinate,
    category: PoiCategory,
    payload: Mapping[str, Any],
    discovered_at: datetime,
    **optional: Any,
) -> POI:
    return POI(
        id=make_poi_id(name, coordinate),
        name=name,
        category=category,
        latitude=coordinate.latitude,
        longitude=coordinate.longitude,
        distance_m=haversine_meters(origin, coordinate),
        sources=(source,),
        notability_score=notability_score(payload, source),
        discovered_at=discovered_at,
        **optional,
    )


def map_wikipedia(payload: Mapping[str, Any], origin: Coordinate, discovered_at: datetime) -> POI:
    source = SourceTag.WIKIPEDIA_GEOSEARCH
    name = _require_name(_text(payload.get("title")), source)
    coordinate = _coordinate(payload.get("lat"), payload.get("lon"), source)
    pageprops = payload.get("pageprops") if isinstance(payload.get("pageprops"), Mapping) else {}
    thumbnail = payload.get("thumbnail") if isinstance(payload.get("thumbnail"), Mapping) else {}
    return _build(
        source, name, coordinate, origin, PoiCategory.TOURIST_ATTRACTION, payload, discovered_at,
        wikipedia_title=name,
        wikidata_id=_text(pageprops.get("wikibase_item")),
        image_url=_text(thumbnail.get("source")),
        description=_text(payload.get("description")),
    )


def map_overpass(payload: Mapping[str, Any], origin: Coordinate, discovered_at: datetime) -> POI:
    source = SourceTag.OVERPASS
    tags = payload.get("tags") if isinstance(payload.get("tags"), Mapping) else {}
    name = _require_name(_text(tags.get("name")), source)
    lat, lon = payload.get("lat"), payload.get("lon")
    center = payload.get("center")
    if (lat is None or lon is None) and isinstance(center, Mapping):
        lat, lon = center.get("lat"), center.get("lon")
    coordinate = _coordinate(lat, lon, source)
    element_type = _text(payload.get("type")) or "node"
    element_id = _text(payload.get("id"))
    return _build(
        source, name, coordinate, origin, category_from_osm_tags(tags), payload, discovered_at,
        description=_text(tags.get("description")),
        wikipedia_title=wikipedia_title_from_tag(_text(tags.get("wikipedia"))),
        wikidata_id=_text(tags.get("wikidata")),
        osm_id=f"{element_type}/{element_id}" if element_id else None,
        website=_text(tags.get("website")) or _text(tags.get("contact:website")),
        opening_hours=_text(tags.get("opening_hours")),
        image_url=_text(tags.get("image")),
    )


def map_wikidata(payload: Mapping[str, Any], origin: Coordinate, discovered_at: datetime) -> POI:
    source = SourceTag.WIKIDATA
    name = _require_name(_binding(payload, "placeLabel"), source)
    wkt = _binding(payload, "coord")
    if wkt is None:
        raise MalformedRecordError("wikidata record has no coordinate")
    lat, lon = parse_wkt_point(wkt)
    coordinate = Coordinate(lat, lon)
    wikidata_id = entity_id_from_uri(_binding(payload, "place"))
    # an unlabelled item comes back labelled with its own Q-id
    if wikidata_id and name == wikidata_id:
        raise MalformedRecordError(f"wikidata item {wikidata_id} has no label")
    return _build(
        source, name, coordinate, origin,
        category_from_wikidata_label(_binding(payload, "instanceLabel")),
        payload, discovered_at,
        description=_binding(payload, "description"),
        wikipedia_title=wikipedia_title_from_url(_binding(payload, "wikipedia")),
        wikidata_id=wikidata_id,
        image_url=_binding(payload, "image"),
        website=_binding(payload, "website"),
    )


def map_google_places(payload: Mapping[str, Any], origin: Coordinate, discovered_at: datetime) -> POI:
    source = SourceTag.GOOGLE_PLACES
    display_name = payload.get("displayName")
    if isinstance(display_name, Mapping):
        name = _text(display_name.get("text"))
    else:
        name = _text(display_name)
    name = _require_name(name, source)
    location = payload.get("location") if isinstance(payload.get("location"), Mapping) else {}
    coordinate = _coordinate(location.get("latitude"), location.get("longitude"), source)
    summary = payload.get("editorialSummary")
    rating = finite_number(payload.get("rating"))
    if rating is not None and not 0 <= rating <= 5:
        rating = None
    review_count = finite_number(payload.get("userRatingCount"))
    if review_count is not None and review_count < 0:
        review_count = None
    types = payload.get("types") if isinstance(payload.get("types"), list) else []
    return _build(
        source, name, coordinate, origin,
        category_from_google_types(_text(payload.get("primaryType")), types),
        payload, discovered_at,
        place_id=_text(payload.get("id")),
        description=_text(summary.get("text")) if isinstance(summary, Mapping) else None,
        website=_text(payload.get("websiteUri")),
        formatted_address=_text(payload.get("formattedAddress")),
        rating=rating,
        review_count=int(review_count) if review_count is not None else None,
        price_level=_text(payload.get("priceLevel")),
    )


Mapper = Callable[[Mapping[str, Any], Coordinate, datetime], POI]

MAPPERS: Dict[SourceTag, Mapper] = {
    SourceTag.WIKIPEDIA_GEOSEARCH: map_wikipedia,
    SourceTag.OVERPASS: map_overpass,
    SourceTag.WIKIDATA: map_wikidata,
    SourceTag.GOOGLE_PLACES: map_google_places,
}


def from_raw_candidate(
    candidate: RawCandidate,
    origin: Coordinate,
    discovered_at: Optional[datetime] = None,
) -> POI:
    """Map one raw source record to a POI.

    Distance is always recomputed from ``origin``; provider-reported
    distances are ignored so every source measures the same way.

    Args:
        candidate: Raw record and its source tag
        origin: Coordinate discovery is centred on
        discovered_at: Observation time, defaults to now (UTC)

    Returns:
        Single-source POI

    Raises:
        MalformedRecordError: Name or coordinate missing or unparsable
        InvalidCoordinate: Coordinate out of range
    """
    if not isinstance(candidate.payload, Mapping):
        raise MalformedRecordError(f"{candidate.source.value} record is not an object")
    mapper = MAPPERS[candidate.source]
    return mapper(candidate.payload, origin, discovered_at or utcnow())


def map_candidates(
    candidates: Iterable[RawCandidate],
    origin: Coordinate,
    discovered_at: Optional[datetime] = None,
) -> List[POI]:
    """Map a batch of records, skipping the ones that cannot be mapped."""
    stamp = discovered_at or utcnow()
    pois: List[POI] = []
    for candidate in candidates:
        try:
            pois.append(from_raw_candidate(candidate, origin, stamp))
        except (MalformedRecordError, InvalidCoordinate, InvalidArgument) as e:
            logger.debug("Dropping %s record: %s", candidate.source.value, e)
    return pois
