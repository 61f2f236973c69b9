"""Notability scoring for raw source records.

Every source has its own additive heuristic starting from the tag's base
score. All functions here are pure: the same payload always yields the same
integer in [0, 100].
"""
from typing import Any, Callable, Dict, Mapping, Optional

from poi_discovery.models import RawCandidate, SourceTag

MIN_SCORE = 0
MAX_SCORE = 100

WIKIPEDIA_LINK_BONUS = 15
HERITAGE_INTERNATIONAL_BONUS = 30
HERITAGE_NATIONAL_BONUS = 15
WEBSITE_BONUS = 5
IMAGE_BONUS = 5
OPENING_HOURS_BONUS = 3
INCEPTION_BONUS = 5
VISITOR_COUNT_BONUS = 10
VISITOR_COUNT_THRESHOLD = 1_000_000
RATING_WEIGHT = 5.0

# (minimum exclusive review count, bonus), checked top-down
REVIEW_COUNT_TIERS = (
    (10_000, 25),
    (1_000, 15),
    (100, 10),
    (10, 5),
)

_INTERNATIONAL_HERITAGE_MARKERS = ("unesco", "world heritage")


def clamp_score(value: float) -> int:
    return int(max(MIN_SCORE, min(MAX_SCORE, round(value))))


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def finite_number(value: Any) -> Optional[float]:
    """Numeric value as a float; booleans, junk, NaN and infinities become None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if number != number or number in (float("inf"), float("-inf")):
        return None
    return number


def _binding_value(binding: Mapping[str, Any], key: str) -> Optional[str]:
    """SPARQL JSON bindings wrap every value as {"type": ..., "value": ...}."""
    cell = binding.get(key)
    if isinstance(cell, Mapping):
        value = cell.get("value")
    else:
        value = cell
    if value is None:
        return None
    return str(value)


def review_count_bonus(review_count: Any) -> int:
    count = finite_number(review_count)
    if count is None:
        return 0
    for threshold, bonus in REVIEW_COUNT_TIERS:
        if count > threshold:
            return bonus
    return 0


def _score_wikipedia(payload: Mapping[str, Any]) -> int:
    score = SourceTag.WIKIPEDIA_GEOSEARCH.base_score
    pageprops = payload.get("pageprops")
    if isinstance(pageprops, Mapping) and _present(pageprops.get("wikibase_item")):
        score += SourceTag.WIKIPEDIA_GEOSEARCH.trust_weight
    thumbnail = payload.get("thumbnail")
    if isinstance(thumbnail, Mapping) and _present(thumbnail.get("source")):
        score += IMAGE_BONUS
    return clamp_score(score)


def _score_overpass(payload: Mapping[str, Any]) -> int:
    tags = payload.get("tags")
    if not isinstance(tags, Mapping):
        tags = {}
    score = SourceTag.OVERPASS.base_score
    if _present(tags.get("wikidata")):
        score += SourceTag.OVERPASS.trust_weight
    if _present(tags.get("wikipedia")):
        score += WIKIPEDIA_LINK_BONUS
    if _present(tags.get("website")) or _present(tags.get("contact:website")):
        score += WEBSITE_BONUS
    if _present(tags.get("opening_hours")):
        score += OPENING_HOURS_BONUS
    heritage = str(tags.get("heritage") or "").strip()
    if heritage == "1" or _present(tags.get("unesco")) or _present(tags.get("whc")):
        score += HERITAGE_INTERNATIONAL_BONUS
    elif heritage:
        score += HERITAGE_NATIONAL_BONUS
    return clamp_score(score)


def _score_wikidata(payload: Mapping[str, Any]) -> int:
    score = SourceTag.WIKIDATA.base_score
    if _present(_binding_value(payload, "wikipedia")):
        score += WIKIPEDIA_LINK_BONUS
    heritage = _binding_value(payload, "heritageStatus")
    if _present(heritage):
        lowered = heritage.lower()
        if any(marker in lowered for marker in _INTERNATIONAL_HERITAGE_MARKERS):
            score += HERITAGE_INTERNATIONAL_BONUS
        else:
            score += HERITAGE_NATIONAL_BONUS
    visitors = finite_number(_binding_value(payload, "visitorCount"))
    if visitors is not None and visitors > VISITOR_COUNT_THRESHOLD:
        score += VISITOR_COUNT_BONUS
    if _present(_binding_value(payload, "inception")):
        score += INCEPTION_BONUS
    if _present(_binding_value(payload, "image")):
        score += IMAGE_BONUS
    return clamp_score(score)


def _score_google_places(payload: Mapping[str, Any]) -> int:
    score = float(SourceTag.GOOGLE_PLACES.base_score)
    rating = finite_number(payload.get("rating"))
    if rating is not None and 0 <= rating <= 5:
        score += rating * RATING_WEIGHT
    score += review_count_bonus(payload.get("userRatingCount"))
    if _present(payload.get("websiteUri")):
        score += WEBSITE_BONUS
    return clamp_score(score)


_SCORERS: Dict[SourceTag, Callable[[Mapping[str, Any]], int]] = {
    SourceTag.WIKIPEDIA_GEOSEARCH: _score_wikipedia,
    SourceTag.OVERPASS: _score_overpass,
    SourceTag.WIKIDATA: _score_wikidata,
    SourceTag.GOOGLE_PLACES: _score_google_places,
}


def notability_score(payload: Mapping[str, Any], source: SourceTag) -> int:
    """Score a raw record of the given source.

    Args:
        payload: Record as returned by the provider
        source: Which provider produced it

    Returns:
        Integer score clamped to [0, 100]
    """
    if not isinstance(payload, Mapping):
        return clamp_score(source.base_score)
    return _SCORERS[source](payload)


def score_candidate(candidate: RawCandidate) -> int:
    return notability_score(candidate.payload, candidate.source)
