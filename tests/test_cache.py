import pytest

from poi_discovery.exceptions import InvalidArgument
from poi_discovery.models import SourceTag
from poi_discovery.utils.poi_cache import CacheEntry, DiscoveryCache

from conftest import make_poi


def _entry(location_id, *names):
    return CacheEntry(location_id, tuple(make_poi(name) for name in names))


def test_get_and_put():
    cache = DiscoveryCache(capacity=2)
    assert cache.get("paris") is None
    entry = CacheEntry(
        "paris",
        (make_poi("Eiffel Tower"),),
        succeeded_sources=(SourceTag.WIKIPEDIA_GEOSEARCH,),
        candidate_count=1,
    )
    cache.put(entry)
    assert cache.get("paris") is entry
    assert "paris" in cache
    assert len(cache) == 1


def test_least_recently_used_is_evicted():
    cache = DiscoveryCache(capacity=2)
    cache.put(_entry("paris", "Louvre"))
    cache.put(_entry("rome", "Colosseum"))
    # touching paris makes rome the eviction candidate
    cache.get("paris")
    cache.put(_entry("london", "Big Ben"))
    assert cache.keys() == ("paris", "london")
    assert "rome" not in cache


def test_put_replaces_existing_entry():
    cache = DiscoveryCache(capacity=2)
    cache.put(_entry("paris", "Louvre"))
    cache.put(_entry("rome", "Colosseum"))
    replacement = _entry("paris", "Louvre", "Pantheon")
    cache.put(replacement)
    assert len(cache) == 2
    assert cache.get("paris") is replacement
    assert cache.keys() == ("rome", "paris")


def test_clear():
    cache = DiscoveryCache()
    cache.put(_entry("paris", "Louvre"))
    cache.clear()
    assert len(cache) == 0
    assert cache.get("paris") is None


@pytest.mark.parametrize("capacity", [0, -3])
def test_capacity_must_be_positive(capacity):
    with pytest.raises(InvalidArgument):
        DiscoveryCache(capacity=capacity)
