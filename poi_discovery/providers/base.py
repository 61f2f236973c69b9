"""
Source adapter base interface.

Every data provider implements ``SourceAdapter.fetch_nearby`` and is
consumed identically by the orchestrator, whatever its wire protocol.
Adapters own their protocol, auth and rate-limit compliance, and report
failures only through the ``ProviderError`` hierarchy.
"""

from abc import ABC, abstractmethod
from typing import Optional, List, Dict, Any, FrozenSet, Iterable
from dataclasses import dataclass
from enum import Enum
import time
import logging

import aiohttp

from poi_discovery.exceptions import ProviderError
from poi_discovery.models import PoiCategory, PoiGroup, RawCandidate, SourceTag, groups_for
from poi_discovery.utils.geo import Coordinate

# Used by health checks: the Eiffel Tower has results in every source.
HEALTH_CHECK_COORDINATE = Coordinate(48.8584, 2.2945)
HEALTH_CHECK_RADIUS_M = 1000


class ProviderStatus(Enum):
    """Provider health status."""
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


@dataclass
class HealthCheckResult:
    """Result of a provider health check."""
    status: ProviderStatus
    latency_ms: float
    message: str
    details: Optional[Dict[str, Any]] = None

    @property
    def is_healthy(self) -> bool:
        """Check if provider is healthy."""
        return self.status == ProviderStatus.HEALTHY


class SourceAdapter(ABC):
    """Base source adapter interface.

    Subclasses set ``source`` and implement ``fetch_nearby``. Adapters that
    only know about attractions narrow ``supported_groups``; the orchestrator
    skips them for passes that ask for none of their groups.
    """

    source: SourceTag
    supported_groups: FrozenSet[PoiGroup] = frozenset(PoiGroup)

    def __init__(self, session: Optional[aiohttp.ClientSession] = None, timeout: float = 15.0):
        """Initialize the adapter.

        Args:
            session: Shared HTTP session; a throwaway one is used per call when omitted
            timeout: Per-request timeout in seconds
        """
        self.session = session
        self.timeout = timeout
        self.categories: Optional[FrozenSet[PoiCategory]] = None
        self.logger = logging.getLogger(self.__class__.__name__)

    @property
    def name(self) -> str:
        return self.source.value

    def serves(self, categories: Optional[Iterable[PoiCategory]]) -> bool:
        return bool(groups_for(categories) & self.supported_groups)

    def set_categories(self, categories: Optional[Iterable[PoiCategory]]):
        """Remember the category filter of upcoming passes.

        Adapters whose query depends on the filter override this.
        """
        self.categories = frozenset(categories) if categories is not None else None

    @abstractmethod
    async def fetch_nearby(self, coordinate: Coordinate, radius_m: int) -> List[RawCandidate]:
        """Fetch raw records around a coordinate.

        Args:
            coordinate: Search centre
            radius_m: Search radius in meters

        Returns:
            Raw records tagged with this adapter's source

        Raises:
            ProviderTimeoutError: Request exceeded its budget
            ProviderRateLimitError: Provider throttled us
            ProviderResponseError: Body could not be understood
            ProviderNotAvailableError: Provider unreachable or not configured
        """

    def _wrap(self, records: List[Dict[str, Any]]) -> List[RawCandidate]:
        return [RawCandidate(self.source, record) for record in records if isinstance(record, dict)]

    async def health_check(self) -> HealthCheckResult:
        """Check provider health with a small nearby search.

        Returns:
            Health check result
        """
        start_time = time.time()
        try:
            results = await self.fetch_nearby(HEALTH_CHECK_COORDINATE, HEALTH_CHECK_RADIUS_M)
            latency_ms = (time.time() - start_time) * 1000
            return HealthCheckResult(
                status=ProviderStatus.HEALTHY,
                latency_ms=latency_ms,
                message=f"Provider {self.__class__.__name__} is healthy",
                details={"latency_ms": latency_ms, "results": len(results)},
            )
        except ProviderError as e:
            latency_ms = (time.time() - start_time) * 1000
            return HealthCheckResult(
                status=ProviderStatus.UNHEALTHY,
                latency_ms=latency_ms,
                message=f"Provider health check failed: {str(e)}",
                details={"error": str(e), "error_type": type(e).__name__},
            )

    async def is_available(self) -> bool:
        result = await self.health_check()
        return result.is_healthy
