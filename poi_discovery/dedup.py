"""
Two-phase duplicate detection across sources.

Phase 1 links every pair of POIs within the proximity threshold and takes
connected components of that graph. Phase 2 re-partitions each component by
the "names are similar enough" relation, again by connected components, so
neighbouring but differently named places stay apart. Each final group is
collapsed with ``merge_pois``.

Both phases use union-find over input indices, which makes the grouping
independent of input order; output order follows the smallest input index
of each group.
"""
import logging
from typing import Callable, Dict, List, Sequence

from poi_discovery.models import POI, merge_pois
from poi_discovery.utils.geo import haversine_meters
from poi_discovery.utils.text import name_similarity

logger = logging.getLogger(__name__)

DEFAULT_PROXIMITY_THRESHOLD_M = 50.0
DEFAULT_SIMILARITY_THRESHOLD = 0.70


class _DisjointSet:
    def __init__(self, size: int):
        self.parent = list(range(size))

    def find(self, i: int) -> int:
        root = i
        while self.parent[root] != root:
            root = self.parent[root]
        while self.parent[i] != root:
            self.parent[i], i = root, self.parent[i]
        return root

    def union(self, a: int, b: int):
        ra, rb = self.find(a), self.find(b)
        if ra == rb:
            return
        # smaller index stays root so groups are keyed by first member
        if ra < rb:
            self.parent[rb] = ra
        else:
            self.parent[ra] = rb

    def groups(self) -> List[List[int]]:
        by_root: Dict[int, List[int]] = {}
        for i in range(len(self.parent)):
            by_root.setdefault(self.find(i), []).append(i)
        return [by_root[root] for root in sorted(by_root)]


def _components(indices: Sequence[int], linked: Callable[[int, int], bool]) -> List[List[int]]:
    local = _DisjointSet(len(indices))
    for a in range(len(indices)):
        for b in range(a + 1, len(indices)):
            if linked(indices[a], indices[b]):
                local.union(a, b)
    return [[indices[i] for i in group] for group in local.groups()]


def cluster_by_proximity(pois: Sequence[POI], threshold_m: float = DEFAULT_PROXIMITY_THRESHOLD_M) -> List[List[int]]:
    """Connected components of the "within threshold_m" graph, as index lists."""
    coords = [poi.coordinate for poi in pois]
    return _components(
        list(range(len(pois))),
        lambda a, b: haversine_meters(coords[a], coords[b]) <= threshold_m,
    )


def split_by_name_similarity(
    pois: Sequence[POI],
    group: Sequence[int],
    threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
) -> List[List[int]]:
    """Re-partition a proximity group by confirmed (similar-name) pairs."""
    if len(group) < 2:
        return [list(group)]
    return _components(
        list(group),
        lambda a, b: name_similarity(pois[a].name, pois[b].name) >= threshold,
    )


def find_duplicate_groups(
    pois: Sequence[POI],
    proximity_threshold_m: float = DEFAULT_PROXIMITY_THRESHOLD_M,
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
) -> List[List[int]]:
    groups: List[List[int]] = []
    for cluster in cluster_by_proximity(pois, proximity_threshold_m):
        groups.extend(split_by_name_similarity(pois, cluster, similarity_threshold))
    groups.sort(key=lambda g: g[0])
    return groups


def deduplicate(
    pois: Sequence[POI],
    proximity_threshold_m: float = DEFAULT_PROXIMITY_THRESHOLD_M,
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
) -> List[POI]:
    """Collapse duplicate POIs from one discovery pass.

    Args:
        pois: Candidate POIs from every source
        proximity_threshold_m: Max distance for two POIs to be duplicate candidates
        similarity_threshold: Min name similarity to confirm a duplicate pair

    Returns:
        Deduplicated POIs, one per final group
    """
    if not pois:
        return []
    groups = find_duplicate_groups(pois, proximity_threshold_m, similarity_threshold)
    merged = [merge_pois([pois[i] for i in group]) for group in groups]
    if len(merged) != len(pois):
        logger.debug("Deduplicated %d candidates into %d POIs", len(pois), len(merged))
    return merged
