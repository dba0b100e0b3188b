# common/cache.py
import json
import logging
import os
import time
from typing import Any, Callable, Optional

import redis

logger = logging.getLogger(__name__)

CACHE_TTL_SECONDS = int(os.getenv("CACHE_TTL_SECONDS", "600"))
CACHE_MAX_ENTRIES = int(os.getenv("CACHE_MAX_ENTRIES", "100"))

_redis_client: Optional[redis.Redis] = None


def get_redis_client() -> Optional[redis.Redis]:
    """
    Return a Redis client if REDIS_URL is configured, otherwise None.
    Fails gracefully (no caching) if Redis is not reachable.
    """
    global _redis_client

    if _redis_client is not None:
        return _redis_client

    redis_url = os.getenv("REDIS_URL")
    if not redis_url:
        return None

    try:
        client = redis.from_url(redis_url, decode_responses=True)
        # Lightweight health check
        client.ping()
    except redis.RedisError as exc:
        logger.warning("Redis at %s not reachable, caching disabled: %s", redis_url, exc)
        _redis_client = None
        return None

    _redis_client = client
    return _redis_client


class CacheRegion:
    """
    A named, independently evictable group of cached JSON values.

    Every entry expires ``ttl_seconds`` after it was written, and the region
    never holds more than ``max_entries`` live entries: the least recently
    used ones are dropped first. Recency is tracked in a sorted set scored by
    last access time.

    Eviction bumps a per-region generation counter with a single ``INCR``.
    Keys embed the generation they were written under, so everything written
    before an eviction becomes unreachable at once, including values a
    concurrent reader loaded before the eviction and stores after it.

    Parameters
    ----------
    name : str
        Region name, used as the key namespace (e.g. 'rooms').
    ttl_seconds : int
        Expire-after-write window for each entry.
    max_entries : int
        Upper bound on entries kept per generation.
    clock : Callable[[], float]
        Source of access timestamps for LRU ordering.
    """

    def __init__(
        self,
        name: str,
        ttl_seconds: int = CACHE_TTL_SECONDS,
        max_entries: int = CACHE_MAX_ENTRIES,
        clock: Callable[[], float] = time.time,
    ):
        self.name = name
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self.clock = clock

    @property
    def generation_key(self) -> str:
        return f"cache:{self.name}:gen"

    def _entry_key(self, generation: int, key: str) -> str:
        return f"cache:{self.name}:{generation}:entry:{key}"

    def _index_key(self, generation: int) -> str:
        return f"cache:{self.name}:{generation}:lru"

    def _generation(self, client: redis.Redis) -> int:
        raw = client.get(self.generation_key)
        return int(raw) if raw is not None else 0

    def get(self, key: str) -> Optional[Any]:
        client = get_redis_client()
        if client is None:
            return None
        return self._get(client, self._generation(client), key)

    def _get(self, client: redis.Redis, generation: int, key: str) -> Optional[Any]:
        raw = client.get(self._entry_key(generation, key))
        if raw is None:
            return None
        # touch for LRU ordering
        client.zadd(self._index_key(generation), {key: self.clock()})
        return json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        client = get_redis_client()
        if client is None:
            return
        self._set(client, self._generation(client), key, value)

    def _set(self, client: redis.Redis, generation: int, key: str, value: Any) -> None:
        index_key = self._index_key(generation)

        pipe = client.pipeline(transaction=True)
        pipe.setex(self._entry_key(generation, key), self.ttl_seconds, json.dumps(value, default=str))
        pipe.zadd(index_key, {key: self.clock()})
        pipe.expire(index_key, self.ttl_seconds)
        pipe.execute()

        self._drop_expired(client, generation)
        size = client.zcard(index_key)

        overflow = size - self.max_entries
        if overflow > 0:
            # ZPOPMIN is atomic, so concurrent writers never drop the same entry twice
            dropped = client.zpopmin(index_key, overflow)
            if dropped:
                client.delete(*[self._entry_key(generation, member) for member, _ in dropped])
                logger.debug("Cache region %s dropped %d LRU entries", self.name, len(dropped))

    def _drop_expired(self, client: redis.Redis, generation: int) -> None:
        # index members outlive their entries once the entry TTL fires
        index_key = self._index_key(generation)
        members = client.zrange(index_key, 0, -1)
        if not members:
            return

        pipe = client.pipeline(transaction=False)
        for member in members:
            pipe.exists(self._entry_key(generation, member))
        gone = [member for member, alive in zip(members, pipe.execute()) if not alive]
        if gone:
            client.zrem(index_key, *gone)

    def get_or_load(self, key: str, loader: Callable[[], Any]) -> Any:
        """
        Return the cached value for ``key`` or compute, store and return it.

        The generation is read before ``loader`` runs, so a value loaded from
        data that an eviction has since invalidated is stored under the old
        generation and never served.
        """
        client = get_redis_client()
        if client is None:
            return loader()

        generation = self._generation(client)
        cached = self._get(client, generation, key)
        if cached is not None:
            logger.debug("Cache hit %s:%s", self.name, key)
            return cached

        value = loader()
        self._set(client, generation, key, value)
        return value

    def evict_all(self) -> None:
        """
        Evict every entry of the region.

        Redis errors propagate to the caller.
        """
        client = get_redis_client()
        if client is None:
            return

        new_generation = client.incr(self.generation_key)
        old_index = self._index_key(new_generation - 1)

        # Old entries are already unreachable; this only frees memory early.
        members = client.zrange(old_index, 0, -1)
        keys = [self._entry_key(new_generation - 1, member) for member in members]
        client.delete(old_index, *keys)
        logger.info("Cache region %s evicted (generation %d)", self.name, new_generation)


rooms_cache = CacheRegion("rooms")
bookings_cache = CacheRegion("bookings")
