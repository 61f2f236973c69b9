"""
Centralized configuration management with validation and type conversion.

All tunables of the discovery engine (radius, thresholds, limits, timeouts,
retry policy) and of the source adapters are read from environment
variables here, converted to the right type and validated once.
"""

import os
import logging
from typing import Optional, Dict, Any
from dataclasses import dataclass, asdict
from enum import Enum

from poi_discovery.exceptions import InvalidArgument


class Environment(Enum):
    """Application environment types."""
    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"


@dataclass
class DiscoveryConfig:
    """Tunables of one discovery pass."""
    search_radius_m: int = 10000
    proximity_threshold_m: float = 50.0
    name_similarity_threshold: float = 0.70
    result_limit: int = 25
    max_candidates: int = 200
    cache_capacity: int = 10
    max_attempts: int = 3
    retry_delay: float = 0.5
    retry_radius_step_m: int = 500
    min_retry_radius_m: int = 1000
    fast_source_timeout: float = 10.0
    enrichment_timeout: float = 30.0

    def __post_init__(self):
        if self.search_radius_m <= 0:
            raise InvalidArgument(f"Invalid search radius: {self.search_radius_m}")
        if self.proximity_threshold_m < 0:
            raise InvalidArgument(f"Invalid proximity threshold: {self.proximity_threshold_m}")
        if not 0 < self.name_similarity_threshold <= 1:
            raise InvalidArgument(f"Name similarity threshold must be in (0, 1], got {self.name_similarity_threshold}")
        for attr_name in ['result_limit', 'max_candidates', 'cache_capacity', 'max_attempts']:
            value = getattr(self, attr_name)
            if value < 1:
                raise InvalidArgument(f"Invalid {attr_name}: {value}")
        if self.retry_delay < 0:
            raise InvalidArgument(f"Invalid retry delay: {self.retry_delay}")
        for attr_name in ['fast_source_timeout', 'enrichment_timeout']:
            timeout = getattr(self, attr_name)
            if timeout <= 0:
                raise InvalidArgument(f"Invalid timeout for {attr_name}: {timeout}")


@dataclass
class ProviderConfig:
    """Source adapter configuration."""
    google_places_api_key: Optional[str] = None
    language: str = "en"
    overpass_min_interval: float = 1.0
    user_agent: str = "poi-discovery/1.0"

    @property
    def google_places_enabled(self) -> bool:
        return bool(self.google_places_api_key)


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: Optional[str] = None
    max_bytes: int = 10485760  # 10MB
    backup_count: int = 5


class Config:
    """Centralized configuration with validation and type conversion."""

    def __init__(self):
        """Initialize configuration from environment variables."""
        self.environment = self._get_environment()

        self.discovery = DiscoveryConfig(
            search_radius_m=self._get_int("POI_SEARCH_RADIUS_M", 10000),
            proximity_threshold_m=self._get_float("POI_DEDUP_DISTANCE_M", 50.0),
            name_similarity_threshold=self._get_float("POI_NAME_SIMILARITY", 0.70),
            result_limit=self._get_int("POI_RESULT_LIMIT", 25),
            max_candidates=self._get_int("POI_MAX_CANDIDATES", 200),
            cache_capacity=self._get_int("POI_CACHE_CAPACITY", 10),
            max_attempts=self._get_int("POI_MAX_ATTEMPTS", 3),
            retry_delay=self._get_float("POI_RETRY_DELAY", 0.5),
            fast_source_timeout=self._get_float("TIMEOUT_FAST_SOURCE", 10.0),
            enrichment_timeout=self._get_float("TIMEOUT_ENRICHMENT", 30.0),
        )

        self.providers = ProviderConfig(
            google_places_api_key=self._get_optional("GOOGLE_PLACES_API_KEY"),
            language=self._get_str("POI_LANGUAGE", "en"),
            overpass_min_interval=self._get_float("OVERPASS_MIN_INTERVAL", 1.0),
            user_agent=self._get_str("HTTP_USER_AGENT", "poi-discovery/1.0"),
        )

        self.logging_config = LoggingConfig(
            level=self._get_str("LOG_LEVEL", self._default_log_level()),
            format=self._get_str("LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"),
            file=self._get_optional("LOG_FILE"),
            max_bytes=self._get_int("LOG_MAX_BYTES", 10485760),
            backup_count=self._get_int("LOG_BACKUP_COUNT", 5),
        )

        self._validate()

    def _get_environment(self) -> Environment:
        """Get application environment."""
        env_str = self._get_str("ENVIRONMENT", "development").lower()
        try:
            return Environment(env_str)
        except ValueError:
            raise ValueError(f"Invalid environment: {env_str}")

    def _default_log_level(self) -> str:
        """Testing and production log warnings and up unless LOG_LEVEL says otherwise."""
        if self.is_testing() or self.is_production():
            return "WARNING"
        return "INFO"

    def _get_optional(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Get optional environment variable; blank values count as unset."""
        value = os.getenv(key)
        if value is None or not value.strip():
            return default
        return value.strip()

    def _get_str(self, key: str, default: str) -> str:
        return os.getenv(key, default)

    def _get_int(self, key: str, default: int) -> int:
        """Get integer environment variable with default.

        Args:
            key: Environment variable name
            default: Default value

        Returns:
            Environment variable value or default

        Raises:
            ValueError: If value cannot be converted to int
        """
        value = os.getenv(key)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            raise ValueError(f"Invalid integer for {key}: {value}")

    def _get_float(self, key: str, default: float) -> float:
        """Get float environment variable with default.

        Raises:
            ValueError: If value cannot be converted to float
        """
        value = os.getenv(key)
        if value is None:
            return default
        try:
            return float(value)
        except ValueError:
            raise ValueError(f"Invalid float for {key}: {value}")

    def _validate(self):
        """Validate configuration values."""
        level = self.logging_config.level.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Invalid log level: {self.logging_config.level}")

        if self.providers.overpass_min_interval < 0:
            raise ValueError(f"Invalid Overpass interval: {self.providers.overpass_min_interval}")

        if not self.providers.language.strip():
            raise ValueError("POI_LANGUAGE must not be empty")

        # Optional API key warnings (don't crash)
        if not self.providers.google_places_enabled:
            logging.getLogger(__name__).info("GOOGLE_PLACES_API_KEY not set - Google Places enrichment disabled")

    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == Environment.DEVELOPMENT

    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == Environment.PRODUCTION

    def is_testing(self) -> bool:
        """Check if running in testing environment."""
        return self.environment == Environment.TESTING

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary for debugging.

        The Google Places key is reported as set/unset only.
        """
        providers = asdict(self.providers)
        providers['google_places_api_key'] = 'set' if self.providers.google_places_enabled else None
        return {
            'environment': self.environment.value,
            'discovery': asdict(self.discovery),
            'providers': providers,
            'logging': asdict(self.logging_config),
        }


_config: Optional[Config] = None


def get_config(reload: bool = False) -> Config:
    """Get the global configuration instance.

    The environment is read on first use (or when ``reload`` is set) so
    that a ``.env`` file loaded by the CLI is taken into account.

    Returns:
        Configuration instance
    """
    global _config
    if _config is None or reload:
        _config = Config()
    return _config


def setup_logging(config: Optional[Config] = None, level: Optional[str] = None):
    """Set up logging based on configuration.

    Args:
        config: Configuration to use, defaults to the global one
        level: Overrides the configured level (e.g. from ``--log-level``)
    """
    from logging.handlers import RotatingFileHandler

    config = config or get_config()
    level_name = (level or config.logging_config.level).upper()

    logging.basicConfig(
        level=getattr(logging, level_name),
        format=config.logging_config.format,
    )

    if config.logging_config.file:
        file_handler = RotatingFileHandler(
            config.logging_config.file,
            maxBytes=config.logging_config.max_bytes,
            backupCount=config.logging_config.backup_count,
        )
        file_handler.setFormatter(logging.Formatter(config.logging_config.format))
        logging.getLogger().addHandler(file_handler)

    logging.getLogger('aiohttp').setLevel(logging.WARNING)
    logging.getLogger('asyncio').setLevel(logging.WARNING)
