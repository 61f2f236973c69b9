"""Google Places (API v1) nearby search provider.

Requires an API key; without one the provider reports itself as not
available instead of issuing requests.
"""

from typing import Iterable, List, Optional, Sequence

import aiohttp

from poi_discovery.exceptions import ProviderNotAvailableError, ProviderResponseError
from poi_discovery.models import PoiCategory, RawCandidate, SourceTag
from poi_discovery.normalize import google_types_for
from poi_discovery.providers.base import SourceAdapter
from poi_discovery.providers.utils import fetch_json
from poi_discovery.utils.geo import Coordinate

SEARCH_NEARBY_URL = "https://places.googleapis.com/v1/places:searchNearby"

MIN_RADIUS_M = 1
MAX_RADIUS_M = 50000
MAX_RESULTS = 20

FIELD_MASK = ",".join([
    "places.id",
    "places.displayName",
    "places.formattedAddress",
    "places.location",
    "places.types",
    "places.primaryType",
    "places.rating",
    "places.userRatingCount",
    "places.priceLevel",
    "places.websiteUri",
    "places.editorialSummary",
])

DEFAULT_INCLUDED_TYPES = (
    "tourist_attraction",
    "museum",
    "historical_landmark",
    "park",
    "church",
)


class GooglePlacesProvider(SourceAdapter):
    """Place records with ratings and review counts.

    ``included_types`` is used for unfiltered passes. With a category filter
    the request asks for the Google types of the enabled categories instead.
    """

    source = SourceTag.GOOGLE_PLACES

    def __init__(
        self,
        api_key: Optional[str],
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 30.0,
        language: str = "en",
        included_types: Sequence[str] = DEFAULT_INCLUDED_TYPES,
    ):
        super().__init__(session=session, timeout=timeout)
        self.api_key = api_key
        self.language = language
        self.default_types = list(included_types)
        self.included_types = list(included_types)

    def set_categories(self, categories: Optional[Iterable[PoiCategory]]):
        super().set_categories(categories)
        types = google_types_for(self.categories) if self.categories is not None else []
        # OTHER has no Google type of its own
        self.included_types = types or list(self.default_types)

    def build_body(self, coordinate: Coordinate, radius_m: int) -> dict:
        radius = float(max(MIN_RADIUS_M, min(int(radius_m), MAX_RADIUS_M)))
        return {
            "includedTypes": self.included_types,
            "maxResultCount": MAX_RESULTS,
            "languageCode": self.language,
            "rankPreference": "POPULARITY",
            "locationRestriction": {
                "circle": {
                    "center": {"latitude": coordinate.latitude, "longitude": coordinate.longitude},
                    "radius": radius,
                }
            },
        }

    async def fetch_nearby(self, coordinate: Coordinate, radius_m: int) -> List[RawCandidate]:
        if not self.api_key:
            raise ProviderNotAvailableError("Google Places API key not configured", self.name)
        data = await fetch_json(
            "POST",
            SEARCH_NEARBY_URL,
            self.name,
            json_data=self.build_body(coordinate, radius_m),
            headers={
                "Content-Type": "application/json",
                "X-Goog-Api-Key": self.api_key,
                "X-Goog-FieldMask": FIELD_MASK,
            },
            timeout=self.timeout,
            session=self.session,
        )
        if not isinstance(data, dict):
            raise ProviderResponseError("Google Places response is not an object", self.name)
        # an empty result set omits "places" entirely
        places = data.get("places", [])
        if not isinstance(places, list):
            raise ProviderResponseError("Google Places 'places' is not a list", self.name)
        self.logger.debug("Google Places returned %d places", len(places))
        return self._wrap(places)
