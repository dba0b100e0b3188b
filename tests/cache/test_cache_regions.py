import os
import sys
import itertools

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import pytest
import redis

from common import cache
from common.cache import CacheRegion


def counting_loader(value):
    calls = []

    def load():
        calls.append(1)
        return value

    return load, calls


def test_get_or_load_caches_until_evicted():
    region = CacheRegion("rooms")
    load, calls = counting_loader([{"id": 1}])

    assert region.get_or_load("available", load) == [{"id": 1}]
    assert region.get_or_load("available", load) == [{"id": 1}]
    assert len(calls) == 1

    region.evict_all()
    assert region.get("available") is None
    assert region.get_or_load("available", load) == [{"id": 1}]
    assert len(calls) == 2


def test_regions_are_independent():
    rooms = CacheRegion("rooms")
    bookings = CacheRegion("bookings")
    rooms.set("available", [])
    bookings.set("1", {"id": 1})

    rooms.evict_all()

    assert rooms.get("available") is None
    assert bookings.get("1") == {"id": 1}


def test_entries_expire_after_write(fake_redis):
    region = CacheRegion("bookings", ttl_seconds=600)
    region.set("7", {"id": 7})

    ttl = fake_redis.ttl("cache:bookings:0:entry:7")
    assert 0 < ttl <= 600


def test_least_recently_used_entry_is_dropped():
    ticks = itertools.count()
    region = CacheRegion("bookings", max_entries=2, clock=lambda: float(next(ticks)))

    region.set("a", 1)
    region.set("b", 2)
    assert region.get("a") == 1  # "b" is now the least recently used
    region.set("c", 3)

    assert region.get("b") is None
    assert region.get("a") == 1
    assert region.get("c") == 3


def test_expired_entries_do_not_count_against_the_bound(fake_redis):
    ticks = itertools.count()
    region = CacheRegion("bookings", max_entries=2, clock=lambda: float(next(ticks)))

    region.set("a", 1)
    region.set("b", 2)
    assert region.get("a") == 1
    # "a" times out while still the most recently used index member
    fake_redis.delete("cache:bookings:0:entry:a")
    region.set("c", 3)

    assert region.get("b") == 2
    assert region.get("c") == 3
    assert fake_redis.zrange("cache:bookings:0:lru", 0, -1) == ["b", "c"]


def test_value_loaded_before_eviction_is_not_served_after():
    region = CacheRegion("rooms")

    def stale_load():
        # a write commits and evicts while this reader is still loading
        region.evict_all()
        return ["stale"]

    assert region.get_or_load("available", stale_load) == ["stale"]

    fresh, calls = counting_loader(["fresh"])
    assert region.get_or_load("available", fresh) == ["fresh"]
    assert len(calls) == 1


def test_caching_disabled_without_redis(monkeypatch):
    monkeypatch.setattr(cache, "_redis_client", None)
    monkeypatch.delenv("REDIS_URL", raising=False)
    region = CacheRegion("rooms")
    load, calls = counting_loader(["x"])

    region.get_or_load("available", load)
    region.get_or_load("available", load)
    region.evict_all()

    assert len(calls) == 2
    assert region.get("available") is None


def test_eviction_errors_propagate(monkeypatch, fake_redis):
    def broken_incr(*args, **kwargs):
        raise redis.ConnectionError("redis went away")

    monkeypatch.setattr(fake_redis, "incr", broken_incr)

    with pytest.raises(redis.ConnectionError):
        CacheRegion("rooms").evict_all()
