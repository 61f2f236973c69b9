"""Name normalisation and lexical similarity used for POI identity."""
import re
from typing import FrozenSet

# word separators become spaces, other punctuation is dropped
_SEPARATORS = re.compile(r"[-_/\u2010-\u2015]+")
_PUNCTUATION = re.compile(r"[^\w\s]+", re.UNICODE)
_WHITESPACE = re.compile(r"\s+")


def normalize_name(name: str) -> str:
    """Lower-case, strip punctuation and collapse whitespace.

    >>> normalize_name("  St. Paul's   Cathedral ")
    'st pauls cathedral'
    >>> normalize_name("Notre-Dame de Paris")
    'notre dame de paris'
    """
    if not name:
        return ""
    s = _SEPARATORS.sub(" ", name.lower())
    s = _PUNCTUATION.sub("", s)
    return _WHITESPACE.sub(" ", s).strip()


def name_tokens(name: str) -> FrozenSet[str]:
    normalized = normalize_name(name)
    if not normalized:
        return frozenset()
    return frozenset(normalized.split(" "))


def name_similarity(a: str, b: str) -> float:
    """Token overlap between two names as a Sorensen-Dice coefficient in [0, 1].

    "Eiffel Tower" vs "The Eiffel Tower" scores 0.8, while
    "Central Park" vs "Central Station" scores 0.5.
    """
    norm_a = normalize_name(a)
    norm_b = normalize_name(b)
    if not norm_a or not norm_b:
        return 0.0
    if norm_a == norm_b:
        return 1.0
    tokens_a = frozenset(norm_a.split(" "))
    tokens_b = frozenset(norm_b.split(" "))
    shared = len(tokens_a & tokens_b)
    return 2.0 * shared / (len(tokens_a) + len(tokens_b))
