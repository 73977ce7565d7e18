"""QueryCache behaviour: hierarchical invalidation, copies, TTL."""

import time

from repairdesk.query_cache import QueryCache, freeze


def test_get_or_load_calls_loader_once():
    cache = QueryCache()
    calls = []

    def loader():
        calls.append(1)
        return [{"id": 1}]

    assert cache.get_or_load(("sales", "list"), loader) == [{"id": 1}]
    assert cache.get_or_load(("sales", "list"), loader) == [{"id": 1}]
    assert len(calls) == 1
    assert cache.hits == 1
    assert cache.misses == 1


def test_invalidate_drops_every_key_under_prefix():
    cache = QueryCache()
    cache.set(("sales", "list", ()), [1])
    cache.set(("sales", "detail", 4), {"id": 4})
    cache.set(("sales-persons",), [2])
    cache.set(("inventory", "all"), [3])

    removed = cache.invalidate("sales")

    assert removed == 2
    assert cache.get(("sales", "detail", 4)) is None
    # prefix matching is per key element, not per string
    assert cache.get(("sales-persons",)) == [2]
    assert cache.get(("inventory", "all")) == [3]


def test_returned_values_are_copies():
    cache = QueryCache()
    cache.set("rows", [{"id": 1}])
    rows = cache.get("rows")
    rows[0]["id"] = 99
    assert cache.get("rows") == [{"id": 1}]


def test_ttl_expiry():
    cache = QueryCache(ttl_seconds=0.01)
    cache.set("k", 1)
    time.sleep(0.05)
    assert cache.get("k") is None


def test_disabled_cache_always_loads():
    cache = QueryCache(enabled=False)
    calls = []
    cache.get_or_load("k", lambda: calls.append(1))
    cache.get_or_load("k", lambda: calls.append(1))
    assert len(calls) == 2
    assert len(cache) == 0


def test_freeze_is_order_independent():
    assert freeze({"b": 1, "a": [1, 2]}) == freeze({"a": [1, 2], "b": 1})
    hash(freeze({"a": {"nested": [1, {"x": None}]}}))
