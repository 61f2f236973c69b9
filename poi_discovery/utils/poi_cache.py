"""In-process LRU cache of completed discovery results, keyed by location id.

Entries never expire; only capacity evicts them. The orchestrator is the
only writer and stores a result once its pass reaches COMPLETE.
"""
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Tuple

from poi_discovery.exceptions import InvalidArgument
from poi_discovery.models import POI, SourceTag

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 10


@dataclass(frozen=True)
class CacheEntry:
    """Terminal result of one discovery pass."""
    location_id: str
    pois: Tuple[POI, ...]
    succeeded_sources: Tuple[SourceTag, ...] = ()
    failed_sources: Tuple[SourceTag, ...] = ()
    candidate_count: int = 0
    completed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class DiscoveryCache:
    """Bounded least-recently-used map of location id to ``CacheEntry``."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise InvalidArgument(f"Cache capacity must be at least 1, got {capacity}")
        self.capacity = capacity
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()

    def get(self, location_id: str) -> Optional[CacheEntry]:
        """Look up a location and mark it most recently used."""
        entry = self._entries.get(location_id)
        if entry is None:
            return None
        self._entries.move_to_end(location_id)
        logger.debug(f"[CACHE] Hit for {location_id} ({len(entry.pois)} POIs)")
        return entry

    def put(self, entry: CacheEntry):
        self._entries[entry.location_id] = entry
        self._entries.move_to_end(entry.location_id)
        while len(self._entries) > self.capacity:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f"[CACHE] Evicted {evicted}")
        logger.info(f"[CACHE] Stored {len(entry.pois)} POIs for {entry.location_id}")

    def clear(self):
        self._entries.clear()
        logger.info("[CACHE] Cleared")

    def keys(self) -> Tuple[str, ...]:
        """Location ids, least recently used first."""
        return tuple(self._entries)

    def __contains__(self, location_id: str) -> bool:
        return location_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)
