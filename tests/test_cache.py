from decimal import Decimal

import pytest

from storefront.services.cache import (
    CATEGORIES,
    LISTINGS,
    LOOKUP,
    MISS,
    SEARCH,
    CatalogCache,
    make_key,
)


def test_get_returns_miss_until_put(cache):
    key = make_key(0, 20)
    assert cache.get(LISTINGS, key) is MISS

    cache.put(LISTINGS, key, ["a", "b"])

    assert cache.get(LISTINGS, key) == ["a", "b"]


def test_cached_value_is_a_snapshot(cache):
    value = {"items": [1, 2]}
    cache.put(LOOKUP, make_key(1), value)
    value["items"].append(3)

    first = cache.get(LOOKUP, make_key(1))
    first["items"].append(4)

    assert cache.get(LOOKUP, make_key(1)) == {"items": [1, 2]}


def test_invalidate_only_clears_named_partitions(cache):
    cache.put(LISTINGS, make_key(0, 20), "listing")
    cache.put(SEARCH, make_key("A"), "search")
    cache.put(CATEGORIES, make_key(), ["A"])

    cache.invalidate(LISTINGS, SEARCH)

    assert cache.get(LISTINGS, make_key(0, 20)) is MISS
    assert cache.get(SEARCH, make_key("A")) is MISS
    assert cache.get(CATEGORIES, make_key()) == ["A"]


def test_clear_drops_everything(cache):
    for partition in (LISTINGS, LOOKUP, SEARCH, CATEGORIES):
        cache.put(partition, make_key(1), partition)

    cache.clear()

    assert all(s["size"] == 0 for s in cache.stats().values())


def test_partition_is_lru_bounded():
    cache = CatalogCache(max_entries=2, enabled=True)
    cache.put(LOOKUP, make_key(1), "one")
    cache.put(LOOKUP, make_key(2), "two")
    cache.get(LOOKUP, make_key(1))  # 2 is now least recently used
    cache.put(LOOKUP, make_key(3), "three")

    assert cache.get(LOOKUP, make_key(2)) is MISS
    assert cache.get(LOOKUP, make_key(1)) == "one"
    assert cache.get(LOOKUP, make_key(3)) == "three"


def test_put_with_outdated_generation_is_dropped(cache):
    generation = cache.generation(SEARCH)
    cache.invalidate(SEARCH)

    cache.put(SEARCH, make_key("A"), "computed before the write", generation=generation)

    assert cache.get(SEARCH, make_key("A")) is MISS


def test_put_with_current_generation_is_kept(cache):
    generation = cache.generation(SEARCH)
    cache.put(SEARCH, make_key("A"), "fresh", generation=generation)
    assert cache.get(SEARCH, make_key("A")) == "fresh"


def test_disabled_cache_never_hits():
    cache = CatalogCache(enabled=False)
    cache.put(LISTINGS, make_key(0, 20), "listing")
    assert cache.get(LISTINGS, make_key(0, 20)) is MISS


def test_unknown_partition_is_rejected(cache):
    with pytest.raises(KeyError):
        cache.get("orders", make_key(1))


def test_stats_count_hits_and_misses(cache):
    cache.get(LOOKUP, make_key(1))
    cache.put(LOOKUP, make_key(1), "x")
    cache.get(LOOKUP, make_key(1))

    assert cache.stats()[LOOKUP] == {"size": 1, "hits": 1, "misses": 1}


class TestMakeKey:
    def test_none_markers_are_part_of_the_key(self):
        assert make_key("A", None, 0, 20) != make_key(None, "A", 0, 20)

    def test_distinct_filters_give_distinct_keys(self):
        assert make_key("Books", None) != make_key("Games", None)

    def test_equal_decimals_share_a_key(self):
        assert make_key(Decimal("10"), 0) == make_key(Decimal("10.00"), 0)

    def test_string_and_number_do_not_collide(self):
        assert make_key("1") != make_key(1)
