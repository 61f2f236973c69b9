"""
Exception hierarchy for POI discovery.

Per-source failures (``ProviderError`` and its subclasses) are recoverable:
the orchestrator logs them and carries on with the sources that answered.
``AllSourcesFailedError`` is terminal for a discovery session.
"""
from typing import Dict, Optional


class DiscoveryError(Exception):
    """Base exception for the discovery engine."""


class InvalidCoordinate(DiscoveryError, ValueError):
    """Raised when a latitude/longitude pair is out of range or not a number."""


class InvalidArgument(DiscoveryError, ValueError):
    """Raised on programming errors such as merging an empty group."""


class MalformedRecordError(DiscoveryError):
    """Raised when a single raw source record cannot be mapped to a POI."""


class ProviderError(DiscoveryError):
    """Base exception for source adapter errors."""

    def __init__(self, message: str, provider_name: Optional[str] = None, details: Optional[Dict] = None):
        """Initialize provider error.

        Args:
            message: Error message
            provider_name: Name of the provider that failed
            details: Additional error details
        """
        super().__init__(message)
        self.provider_name = provider_name
        self.details = details or {}


class ProviderNotAvailableError(ProviderError):
    """Raised when a provider is not available."""
    pass


class ProviderRateLimitError(ProviderError):
    """Raised when provider rate limit is exceeded."""
    pass


class ProviderTimeoutError(ProviderError):
    """Raised when provider request times out."""
    pass


class ProviderResponseError(ProviderError):
    """Raised when a provider answers with something we cannot parse."""
    pass


class AllSourcesFailedError(DiscoveryError):
    """Raised when every source of a discovery pass failed."""

    def __init__(self, errors: Dict[str, ProviderError]):
        self.errors = dict(errors)
        names = ", ".join(sorted(self.errors)) or "none"
        super().__init__(f"Unable to discover nearby places: all sources failed ({names})")
