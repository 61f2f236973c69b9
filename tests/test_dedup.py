import itertools

from poi_discovery.dedup import cluster_by_proximity, deduplicate, split_by_name_similarity
from poi_discovery.models import SourceTag

from conftest import make_poi


def test_eiffel_tower_variants_merge():
    wiki = make_poi("Eiffel Tower", source=SourceTag.WIKIPEDIA_GEOSEARCH, score=90)
    osm = make_poi("The Eiffel Tower", source=SourceTag.OVERPASS, score=70)
    result = deduplicate([wiki, osm])
    assert len(result) == 1
    assert set(result[0].sources) == {SourceTag.WIKIPEDIA_GEOSEARCH, SourceTag.OVERPASS}
    assert result[0].name == "Eiffel Tower"
    assert result[0].notability_score == 90


def test_close_but_differently_named_stay_apart():
    park = make_poi("Central Park", lat=40.7812, lon=-73.9665)
    station = make_poi("Central Station", lat=40.7812, lon=-73.9665, source=SourceTag.WIKIDATA)
    result = deduplicate([park, station])
    assert sorted(p.name for p in result) == ["Central Park", "Central Station"]


def test_same_name_far_apart_stays_apart():
    a = make_poi("Starbucks", lat=48.8500, lon=2.3500)
    b = make_poi("Starbucks", lat=48.8510, lon=2.3500, source=SourceTag.GOOGLE_PLACES)
    assert len(deduplicate([a, b])) == 2


def test_proximity_clustering_is_transitive():
    # a-b and b-c are ~40 m apart, a-c ~80 m
    a = make_poi("Pont Neuf", lat=48.85700, lon=2.3414, source=SourceTag.OVERPASS)
    b = make_poi("Pont Neuf", lat=48.85736, lon=2.3414, source=SourceTag.WIKIDATA)
    c = make_poi("Pont-Neuf", lat=48.85772, lon=2.3414, source=SourceTag.WIKIPEDIA_GEOSEARCH)
    assert cluster_by_proximity([a, b, c]) == [[0, 1, 2]]
    result = deduplicate([a, b, c])
    assert len(result) == 1
    assert result[0].sources == (SourceTag.WIKIPEDIA_GEOSEARCH, SourceTag.WIKIDATA, SourceTag.OVERPASS)


def test_name_split_inside_proximity_group():
    pois = [
        make_poi("Central Park", lat=40.7812, lon=-73.9665),
        make_poi("Central Park Zoo", lat=40.7812, lon=-73.9665, source=SourceTag.WIKIDATA),
        make_poi("Central Station", lat=40.7812, lon=-73.9665, source=SourceTag.GOOGLE_PLACES),
        make_poi("Central Station", lat=40.7812, lon=-73.9665, source=SourceTag.WIKIPEDIA_GEOSEARCH),
    ]
    groups = split_by_name_similarity(pois, [0, 1, 2, 3])
    # "central park" vs "central park zoo" scores 0.8
    assert groups == [[0, 1], [2, 3]]


def test_deduplication_is_order_independent():
    pois = [
        make_poi("Eiffel Tower", source=SourceTag.WIKIPEDIA_GEOSEARCH, description="wiki"),
        make_poi("The Eiffel Tower", source=SourceTag.OVERPASS, website="https://toureiffel.paris"),
        make_poi("Champ de Mars", lat=48.8556, lon=2.2986, source=SourceTag.OVERPASS),
        make_poi("Champ-de-Mars", lat=48.8556, lon=2.2986, source=SourceTag.WIKIDATA),
        make_poi("Trocadero", lat=48.8616, lon=2.2893, source=SourceTag.WIKIDATA),
    ]
    expected = {(p.id, p.sources, p.website) for p in deduplicate(pois)}
    assert len(expected) == 3
    for permutation in itertools.permutations(pois):
        assert {(p.id, p.sources, p.website) for p in deduplicate(list(permutation))} == expected


def test_custom_thresholds():
    a = make_poi("Louvre", lat=48.8606, lon=2.3376)
    b = make_poi("Louvre Museum", lat=48.8606, lon=2.3376, source=SourceTag.WIKIDATA)
    # 2/3 similarity: below the default, above a looser threshold
    assert len(deduplicate([a, b])) == 2
    assert len(deduplicate([a, b], similarity_threshold=0.6)) == 1
    assert len(deduplicate([a, b], proximity_threshold_m=0.0, similarity_threshold=0.6)) == 1


def test_empty_and_single_inputs():
    assert deduplicate([]) == []
    poi = make_poi("Solo")
    assert deduplicate([poi]) == [poi]
