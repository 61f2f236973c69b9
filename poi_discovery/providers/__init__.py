"""Source adapters for the discovery orchestrator."""
from poi_discovery.providers.base import HealthCheckResult, ProviderStatus, SourceAdapter
from poi_discovery.providers.google_places_provider import GooglePlacesProvider
from poi_discovery.providers.overpass_provider import OverpassProvider
from poi_discovery.providers.wikidata_provider import WikidataProvider
from poi_discovery.providers.wikipedia_provider import WikipediaGeosearchProvider

__all__ = [
    "GooglePlacesProvider",
    "HealthCheckResult",
    "OverpassProvider",
    "ProviderStatus",
    "SourceAdapter",
    "WikidataProvider",
    "WikipediaGeosearchProvider",
]
