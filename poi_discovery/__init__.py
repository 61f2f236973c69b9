"""Multi-source point-of-interest discovery, deduplication and ranking."""
from poi_discovery.dedup import deduplicate
from poi_discovery.models import POI, Location, PoiCategory, PoiGroup, RawCandidate, SourceTag, merge_pois
from poi_discovery.normalize import from_raw_candidate
from poi_discovery.orchestrator import DiscoveryOrchestrator, DiscoveryPhase, DiscoverySnapshot
from poi_discovery.scoring import notability_score
from poi_discovery.utils.geo import Coordinate, haversine_meters
from poi_discovery.utils.poi_cache import DiscoveryCache

__version__ = "1.0.0"

__all__ = [
    "Coordinate",
    "DiscoveryCache",
    "DiscoveryOrchestrator",
    "DiscoveryPhase",
    "DiscoverySnapshot",
    "Location",
    "POI",
    "PoiCategory",
    "PoiGroup",
    "RawCandidate",
    "SourceTag",
    "deduplicate",
    "from_raw_candidate",
    "haversine_meters",
    "merge_pois",
    "notability_score",
]
