"""Command-line discovery of POIs around a coordinate.

Usage:
  poi-discovery --lat 48.8584 --lon 2.2945 --name Paris
  poi-discovery --lat 48.8584 --lon 2.2945 --radius 2000 --limit 10 --json
  poi-discovery --lat 48.8584 --lon 2.2945 --category cafe --category bakery

Loads ``.env`` (without overriding the real environment), builds the source
adapters from configuration and prints each snapshot as it is published.
"""
import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional, Sequence, Tuple

import aiohttp
from dotenv import find_dotenv, load_dotenv

from poi_discovery.config import Config, get_config, setup_logging
from poi_discovery.exceptions import InvalidCoordinate
from poi_discovery.models import Location, PoiCategory
from poi_discovery.orchestrator import DiscoveryOrchestrator, DiscoveryPhase, DiscoverySnapshot
from poi_discovery.providers.base import SourceAdapter
from poi_discovery.providers.google_places_provider import GooglePlacesProvider
from poi_discovery.providers.overpass_provider import OverpassProvider
from poi_discovery.providers.wikidata_provider import WikidataProvider
from poi_discovery.providers.wikipedia_provider import WikipediaGeosearchProvider
from poi_discovery.services.session_manager import SessionManager

logger = logging.getLogger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def build_sources(config: Config, session: Optional[aiohttp.ClientSession] = None) -> Tuple[SourceAdapter, List[SourceAdapter]]:
    """Wikipedia is the fast source; Google Places joins only with an API key."""
    discovery = config.discovery
    providers = config.providers
    fast = WikipediaGeosearchProvider(
        session=session,
        timeout=discovery.fast_source_timeout,
        language=providers.language,
        user_agent=providers.user_agent,
    )
    enrichment: List[SourceAdapter] = [
        OverpassProvider(
            session=session,
            timeout=discovery.enrichment_timeout,
            min_interval=providers.overpass_min_interval,
            user_agent=providers.user_agent,
        ),
        WikidataProvider(
            session=session,
            timeout=discovery.enrichment_timeout,
            language=providers.language,
            user_agent=providers.user_agent,
        ),
    ]
    if providers.google_places_enabled:
        enrichment.append(GooglePlacesProvider(
            api_key=providers.google_places_api_key,
            session=session,
            timeout=discovery.enrichment_timeout,
            language=providers.language,
        ))
    return fast, enrichment


def format_progress(snapshot: DiscoverySnapshot) -> str:
    line = f"[{snapshot.phase.value}] {len(snapshot.pois)} POIs"
    if snapshot.succeeded_sources:
        line += " from " + ", ".join(tag.display_name for tag in snapshot.succeeded_sources)
    if snapshot.failed_sources:
        line += " (failed: " + ", ".join(tag.display_name for tag in snapshot.failed_sources) + ")"
    if snapshot.from_cache:
        line += " [cached]"
    elif snapshot.phase.is_loading:
        line += " ..."
    return line


def format_results(snapshot: DiscoverySnapshot) -> str:
    if snapshot.phase is DiscoveryPhase.ERROR:
        return f"Error: {snapshot.error}"
    lines = []
    for rank, poi in enumerate(snapshot.pois, 1):
        sources = ", ".join(tag.display_name for tag in poi.sources)
        lines.append(
            f"{rank:2d}. {poi.name} [{poi.category.display_name}] "
            f"score={poi.notability_score} {poi.distance_m:.0f}m ({sources})"
        )
    if not lines:
        lines.append("No places found.")
    return "\n".join(lines)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="poi-discovery", description="Discover notable places near a coordinate")
    p.add_argument("--lat", type=float, required=True, help="Latitude of the search centre")
    p.add_argument("--lon", type=float, required=True, help="Longitude of the search centre")
    p.add_argument("--name", type=str, default=None, help="Display name of the location")
    p.add_argument("--id", dest="location_id", type=str, default=None, help="Location id used as cache key")
    p.add_argument("--radius", type=int, default=None, help="Search radius in meters")
    p.add_argument("--limit", type=int, default=None, help="Number of results to keep")
    p.add_argument("--category", dest="categories", action="append", default=None,
                   choices=[category.value for category in PoiCategory],
                   help="Only keep this category; repeat for several")
    p.add_argument("--json", action="store_true", help="Print the terminal result as JSON")
    p.add_argument("--log-level", type=str.upper, choices=LOG_LEVELS, default=None, help="Override LOG_LEVEL")
    args = p.parse_args(argv)
    if args.radius is not None and args.radius <= 0:
        p.error("--radius must be positive")
    if args.limit is not None and args.limit <= 0:
        p.error("--limit must be positive")
    try:
        args.location = Location(
            id=args.location_id or f"{args.lat:.4f},{args.lon:.4f}",
            name=args.name or f"{args.lat:.4f}, {args.lon:.4f}",
            latitude=args.lat,
            longitude=args.lon,
        )
    except InvalidCoordinate as e:
        p.error(str(e))
    return args


async def _run(args: argparse.Namespace, config: Config) -> int:
    if args.radius is not None:
        config.discovery.search_radius_m = args.radius
    if args.limit is not None:
        config.discovery.result_limit = args.limit

    manager = SessionManager(user_agent=config.providers.user_agent, timeout=config.discovery.enrichment_timeout)
    async with manager.session_context() as session:
        fast, enrichment = build_sources(config, session)
        categories = [PoiCategory(value) for value in args.categories] if args.categories else None
        orchestrator = DiscoveryOrchestrator(fast, enrichment, settings=config.discovery, enabled_categories=categories)
        if not args.json:
            orchestrator.subscribe(lambda snapshot: print(format_progress(snapshot), file=sys.stderr))
        snapshot = await orchestrator.discover(args.location)

    if snapshot is None:
        # only another discover() on the same orchestrator can supersede this one
        return 1
    if args.json:
        print(json.dumps({
            "location": args.location.id,
            "phase": snapshot.phase.value,
            "error": snapshot.error,
            "sources": [tag.value for tag in snapshot.succeeded_sources],
            "failed_sources": [tag.value for tag in snapshot.failed_sources],
            "pois": [poi.to_dict() for poi in snapshot.pois],
        }, ensure_ascii=False, indent=2))
    else:
        print(format_results(snapshot))
    return 0 if snapshot.phase is DiscoveryPhase.COMPLETE else 1


def main(argv: Optional[Sequence[str]] = None) -> int:
    load_dotenv(find_dotenv(usecwd=True), override=False)
    args = parse_args(argv)
    try:
        config = get_config(reload=True)
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2
    setup_logging(config, level=args.log_level)
    logger.debug("Configuration: %s", config.to_dict())
    return asyncio.run(_run(args, config))


if __name__ == "__main__":
    sys.exit(main())
