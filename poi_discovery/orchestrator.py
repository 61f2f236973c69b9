"""
Staged, cancellable, cached multi-source discovery.

One ``DiscoveryOrchestrator`` owns the discovery session of the currently
selected location. A pass calls the fast source first and publishes what it
found, then calls every enrichment source concurrently and republishes the
merged, deduplicated and ranked list as each one answers. The terminal
snapshot is COMPLETE (cached) or, only when every source failed, ERROR.

The category filter also picks the sources: a pass that enables only
commercial categories skips the attraction-only adapters (Wikipedia and
Wikidata), and adapters that build their query from the filter are told
about every change.

Cancellation is cooperative: each pass is tagged with a generation number
and drops its results on arrival once a newer pass (or ``clear()``) has
started.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from poi_discovery.config import DiscoveryConfig
from poi_discovery.dedup import deduplicate
from poi_discovery.exceptions import (
    AllSourcesFailedError,
    ProviderError,
    ProviderRateLimitError,
    ProviderTimeoutError,
)
from poi_discovery.models import POI, Location, PoiCategory, RawCandidate, SourceTag
from poi_discovery.normalize import map_candidates
from poi_discovery.providers.base import SourceAdapter
from poi_discovery.utils.geo import Coordinate
from poi_discovery.utils.poi_cache import CacheEntry, DiscoveryCache

logger = logging.getLogger(__name__)


class DiscoveryPhase(Enum):
    IDLE = "idle"
    FAST_SOURCE_LOADING = "fast_source_loading"
    FAST_SOURCE_READY = "fast_source_ready"
    ENRICHMENT_LOADING = "enrichment_loading"
    COMPLETE = "complete"
    ERROR = "error"

    @property
    def is_loading(self) -> bool:
        return self in (
            DiscoveryPhase.FAST_SOURCE_LOADING,
            DiscoveryPhase.FAST_SOURCE_READY,
            DiscoveryPhase.ENRICHMENT_LOADING,
        )

    @property
    def is_terminal(self) -> bool:
        return self in (DiscoveryPhase.COMPLETE, DiscoveryPhase.ERROR)


@dataclass(frozen=True)
class DiscoverySnapshot:
    """Immutable view of a session, handed to subscribers."""
    location_id: Optional[str]
    generation: int
    phase: DiscoveryPhase
    pois: Tuple[POI, ...] = ()
    error: Optional[str] = None
    succeeded_sources: Tuple[SourceTag, ...] = ()
    failed_sources: Tuple[SourceTag, ...] = ()
    candidate_count: int = 0
    from_cache: bool = False


@dataclass
class DiscoverySession:
    """Mutable state of one discovery pass; only the orchestrator touches it."""
    location: Location
    generation: int
    phase: DiscoveryPhase = DiscoveryPhase.IDLE
    candidates: Dict[SourceTag, List[POI]] = field(default_factory=dict)
    errors: Dict[SourceTag, ProviderError] = field(default_factory=dict)
    pois: Tuple[POI, ...] = ()
    candidate_count: int = 0
    error: Optional[str] = None
    from_cache: bool = False

    def all_candidates(self) -> List[POI]:
        return [poi for pois in self.candidates.values() for poi in pois]

    def snapshot(self) -> DiscoverySnapshot:
        return DiscoverySnapshot(
            location_id=self.location.id,
            generation=self.generation,
            phase=self.phase,
            pois=self.pois,
            error=self.error,
            succeeded_sources=tuple(self.candidates),
            failed_sources=tuple(self.errors),
            candidate_count=self.candidate_count,
            from_cache=self.from_cache,
        )


Subscriber = Callable[[DiscoverySnapshot], None]
FetchOutcome = Union[List[RawCandidate], ProviderError]


def rank_key(poi: POI):
    return (-poi.notability_score, poi.distance_m, poi.name, poi.id)


def rank_pois(pois: Iterable[POI]) -> List[POI]:
    """Notability descending, then nearest first; name and id break exact ties."""
    return sorted(pois, key=rank_key)


class DiscoveryOrchestrator:
    """Runs discovery passes and publishes ``DiscoverySnapshot`` values.

    Args:
        fast_source: Adapter called first, on its own
        enrichment_sources: Adapters called concurrently after the fast source
        cache: Completed results by location id; a private one is created if omitted
        settings: Radius, thresholds, limits, timeouts and retry policy
        enabled_categories: Only these categories are published, and only sources serving
            their groups are called; ``None`` keeps all and runs an attraction pass
    """

    def __init__(
        self,
        fast_source: SourceAdapter,
        enrichment_sources: Sequence[SourceAdapter] = (),
        cache: Optional[DiscoveryCache] = None,
        settings: Optional[DiscoveryConfig] = None,
        enabled_categories: Optional[Iterable[PoiCategory]] = None,
    ):
        self.settings = settings or DiscoveryConfig()
        self.fast_source = fast_source
        self.enrichment_sources = list(enrichment_sources)
        self.cache = cache if cache is not None else DiscoveryCache(self.settings.cache_capacity)
        self.enabled_categories = frozenset(enabled_categories) if enabled_categories is not None else None
        self._push_categories()
        self._generation = 0
        self._session: Optional[DiscoverySession] = None
        self._subscribers: List[Subscriber] = []
        self._snapshot = DiscoverySnapshot(location_id=None, generation=0, phase=DiscoveryPhase.IDLE)

    # Observable state

    @property
    def snapshot(self) -> DiscoverySnapshot:
        return self._snapshot

    @property
    def phase(self) -> DiscoveryPhase:
        return self._snapshot.phase

    @property
    def pois(self) -> Tuple[POI, ...]:
        return self._snapshot.pois

    @property
    def error(self) -> Optional[str]:
        return self._snapshot.error

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def current_location(self) -> Optional[Location]:
        return self._session.location if self._session else None

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback for every published snapshot.

        Returns:
            A callable that removes the subscription
        """
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    # Operations

    async def discover(self, location: Location) -> Optional[DiscoverySnapshot]:
        """Run a discovery pass for ``location``.

        Returns:
            The terminal snapshot (COMPLETE or ERROR), the cached snapshot on a
            cache hit, or ``None`` if a newer pass superseded this one
        """
        self._generation += 1
        generation = self._generation
        session = DiscoverySession(location=location, generation=generation)
        self._session = session

        cached = self.cache.get(location.id)
        if cached is not None:
            logger.info("Using cached POIs for %s (%d)", location.id, len(cached.pois))
            session.phase = DiscoveryPhase.COMPLETE
            session.pois = cached.pois
            session.candidate_count = cached.candidate_count
            session.from_cache = True
            snapshot = DiscoverySnapshot(
                location_id=location.id,
                generation=generation,
                phase=DiscoveryPhase.COMPLETE,
                pois=cached.pois,
                succeeded_sources=cached.succeeded_sources,
                failed_sources=cached.failed_sources,
                candidate_count=cached.candidate_count,
                from_cache=True,
            )
            self._publish(snapshot)
            return snapshot

        origin = location.coordinate
        logger.info("Discovering POIs near %s (generation %d)", location.name, generation)
        self._transition(session, DiscoveryPhase.FAST_SOURCE_LOADING)

        if self.fast_source.serves(self.enabled_categories):
            adapter, outcome = await self._fetch(self.fast_source, origin, self.settings.fast_source_timeout)
            if self._is_stale(generation):
                logger.debug("Dropping %s result for superseded generation %d", adapter.name, generation)
                return None
            self._record(session, adapter, outcome, origin)
        else:
            logger.info("Skipping %s: no enabled category it serves", self.fast_source.name)
        self._transition(session, DiscoveryPhase.FAST_SOURCE_READY)

        enrichment = [source for source in self.enrichment_sources if source.serves(self.enabled_categories)]
        if enrichment:
            self._transition(session, DiscoveryPhase.ENRICHMENT_LOADING)
            tasks = [
                asyncio.ensure_future(self._fetch(source, origin, self.settings.enrichment_timeout))
                for source in enrichment
            ]
            try:
                for next_done in asyncio.as_completed(tasks):
                    adapter, outcome = await next_done
                    if self._is_stale(generation):
                        logger.debug("Dropping %s result for superseded generation %d", adapter.name, generation)
                        return None
                    self._record(session, adapter, outcome, origin)
                    self._rebuild(session)
                    self._publish(session.snapshot())
            finally:
                for task in tasks:
                    if not task.done():
                        task.cancel()

        return self._finish(session)

    async def switch_location(self, location: Location) -> Optional[DiscoverySnapshot]:
        """Invalidate any pass in flight and discover ``location``."""
        previous = self.current_location
        if previous is not None and previous.id != location.id:
            logger.info("Switching location from %s to %s", previous.id, location.id)
        return await self.discover(location)

    async def retry(self, location: Location) -> Optional[DiscoverySnapshot]:
        return await self.discover(location)

    def clear(self):
        """Drop the current session; the cache is kept."""
        self._generation += 1
        self._session = None
        self._publish(DiscoverySnapshot(location_id=None, generation=self._generation, phase=DiscoveryPhase.IDLE))

    def clear_cache(self):
        self.cache.clear()

    def set_enabled_categories(self, categories: Optional[Iterable[PoiCategory]]):
        """Change the category filter; cached results were filtered with the old one."""
        self.enabled_categories = frozenset(categories) if categories is not None else None
        self._push_categories()
        self.cache.clear()

    # Internals

    def _push_categories(self):
        for adapter in [self.fast_source, *self.enrichment_sources]:
            adapter.set_categories(self.enabled_categories)

    def _is_stale(self, generation: int) -> bool:
        return generation != self._generation

    def _transition(self, session: DiscoverySession, phase: DiscoveryPhase):
        session.phase = phase
        if phase is DiscoveryPhase.FAST_SOURCE_READY:
            self._rebuild(session)
        logger.debug("Generation %d -> %s", session.generation, phase.value)
        self._publish(session.snapshot())

    def _publish(self, snapshot: DiscoverySnapshot):
        self._snapshot = snapshot
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception:
                logger.exception("Subscriber %r failed", callback)

    async def _fetch(
        self,
        adapter: SourceAdapter,
        origin: Coordinate,
        timeout: float,
    ) -> Tuple[SourceAdapter, FetchOutcome]:
        """Call one adapter within its budget; failures are returned, not raised."""
        try:
            result = await asyncio.wait_for(self._fetch_with_retry(adapter, origin), timeout)
        except asyncio.TimeoutError:
            error: ProviderError = ProviderTimeoutError(
                f"{adapter.name} did not answer within {timeout}s", adapter.name
            )
        except ProviderError as e:
            error = e
        except Exception as e:
            logger.exception("Unexpected error from %s", adapter.name)
            error = ProviderError(f"{adapter.name} failed: {e}", adapter.name)
        else:
            return adapter, result
        logger.warning("Source %s failed: %s", adapter.name, error)
        return adapter, error

    async def _fetch_with_retry(self, adapter: SourceAdapter, origin: Coordinate) -> List[RawCandidate]:
        settings = self.settings
        radius = settings.search_radius_m
        attempt = 1
        while True:
            try:
                return await adapter.fetch_nearby(origin, radius)
            except ProviderRateLimitError:
                raise
            except ProviderError as e:
                if attempt >= settings.max_attempts:
                    raise
                delay = settings.retry_delay * attempt
                radius = max(radius - settings.retry_radius_step_m, min(radius, settings.min_retry_radius_m))
                logger.info(
                    "Retrying %s in %.1fs with radius %dm (attempt %d/%d): %s",
                    adapter.name, delay, radius, attempt + 1, settings.max_attempts, e,
                )
                await asyncio.sleep(delay)
                attempt += 1

    def _record(self, session: DiscoverySession, adapter: SourceAdapter, outcome: FetchOutcome, origin: Coordinate):
        if isinstance(outcome, ProviderError):
            session.errors[adapter.source] = outcome
            return
        pois = map_candidates(outcome, origin)
        dropped = len(outcome) - len(pois)
        if dropped:
            logger.debug("%s: dropped %d malformed records", adapter.name, dropped)
        session.candidates[adapter.source] = pois
        logger.info("%s returned %d POIs", adapter.name, len(pois))

    def _rebuild(self, session: DiscoverySession):
        """Cap, deduplicate, filter, rank and truncate everything received so far."""
        settings = self.settings
        candidates = rank_pois(session.all_candidates())[:settings.max_candidates]
        merged = deduplicate(
            candidates,
            proximity_threshold_m=settings.proximity_threshold_m,
            similarity_threshold=settings.name_similarity_threshold,
        )
        if self.enabled_categories is not None:
            merged = [poi for poi in merged if poi.category in self.enabled_categories]
        session.pois = tuple(rank_pois(merged)[:settings.result_limit])
        session.candidate_count = len(candidates)

    def _finish(self, session: DiscoverySession) -> DiscoverySnapshot:
        if session.errors and not session.candidates:
            failure = AllSourcesFailedError({tag.value: e for tag, e in session.errors.items()})
            logger.error("Discovery for %s failed: %s", session.location.id, failure)
            session.pois = ()
            session.error = str(failure)
            session.phase = DiscoveryPhase.ERROR
            snapshot = session.snapshot()
            self._publish(snapshot)
            return snapshot

        self._rebuild(session)
        session.phase = DiscoveryPhase.COMPLETE
        snapshot = session.snapshot()
        self.cache.put(CacheEntry(
            location_id=session.location.id,
            pois=snapshot.pois,
            succeeded_sources=snapshot.succeeded_sources,
            failed_sources=snapshot.failed_sources,
            candidate_count=snapshot.candidate_count,
        ))
        logger.info(
            "Discovery for %s complete: %d POIs from %d candidates",
            session.location.id, len(snapshot.pois), snapshot.candidate_count,
        )
        self._publish(snapshot)
        return snapshot
