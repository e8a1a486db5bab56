"""
Response cache for public catalog reads (categories, products).

The cache is never the source of truth; Postgres is. Entries expire after
CACHE_TTL_SECONDS and every mutating handler invalidates its resource family:

- /api/categories  → admin category create/update/delete, import creating categories
- /api/products    → admin product create/update/delete/import, category
                     changes, order placement and cancellation (stock moves)

Keys are the request path plus the sorted query string, so
/api/products?page=1&limit=12 and /api/products?limit=12&page=1 share an entry.

Two backends share the ResponseCache interface:
- MemoryResponseCache: process-local dict (default)
- RedisResponseCache:  shared across workers, used when REDIS_URL or
                       UPSTASH_REDIS_URL is set
"""

import json
import logging
import time
from typing import Any, Callable, Dict, Optional, Tuple
from urllib.parse import urlencode

import redis
from fastapi.encoders import jsonable_encoder
from starlette.requests import Request

from taphoa import config

logger = logging.getLogger("taphoa.cache")

CATEGORIES = "/api/categories"
PRODUCTS = "/api/products"


def make_cache_key(path: str, query_items=()) -> str:
    """Deterministic key: path plus query parameters sorted by name then value."""
    items = sorted((str(k), str(v)) for k, v in query_items)
    if not items:
        return path
    return f"{path}?{urlencode(items)}"


class ResponseCache:
    """Interface shared by the cache backends."""

    ttl_seconds: int

    def get(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    def set(self, key: str, value: Any) -> None:
        raise NotImplementedError

    def invalidate(self, prefix: Optional[str] = None) -> int:
        """Drop entries whose key starts with prefix (all entries when None). Returns count dropped."""
        raise NotImplementedError

    def clear(self) -> None:
        self.invalidate(None)


class MemoryResponseCache(ResponseCache):
    """
    Process-local map of key → (value, inserted_at).

    No lock around check-then-set: concurrent handlers can at worst serve or
    store a slightly stale payload, which the TTL already allows.
    """

    def __init__(self, ttl_seconds: int = 60, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[Any, float]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, inserted_at = entry
        if self._clock() - inserted_at > self.ttl_seconds:
            self._entries.pop(key, None)
            return None
        return value

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = (value, self._clock())

    def invalidate(self, prefix: Optional[str] = None) -> int:
        if prefix is None:
            count = len(self._entries)
            self._entries.clear()
            return count
        doomed = [k for k in list(self._entries) if k.startswith(prefix)]
        for k in doomed:
            self._entries.pop(k, None)
        return len(doomed)


class RedisResponseCache(ResponseCache):
    """
    Redis-backed cache with SETEX expiry.

    Redis errors are logged and treated as a miss; the request then falls
    through to Postgres.
    """

    def __init__(self, client: "redis.Redis", ttl_seconds: int = 60, namespace: str = "taphoa:resp"):
        self.client = client
        self.ttl_seconds = ttl_seconds
        self.namespace = namespace

    def _key(self, key: str) -> str:
        """Prefix key with namespace."""
        return f"{self.namespace}:{key}"

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except Exception:
            return False

    def get(self, key: str) -> Optional[Any]:
        full_key = self._key(key)
        try:
            cached = self.client.get(full_key)
            if cached:
                return json.loads(cached)
            return None
        except Exception as e:
            logger.warning("cache: method=get key=%s result=error error=%s", full_key, e)
            return None

    def set(self, key: str, value: Any) -> None:
        full_key = self._key(key)
        try:
            self.client.setex(full_key, self.ttl_seconds, json.dumps(value, default=str))
        except Exception as e:
            logger.warning("cache: method=set key=%s result=error error=%s", full_key, e)

    def invalidate(self, prefix: Optional[str] = None) -> int:
        pattern = self._key(f"{prefix or ''}*")
        try:
            keys = list(self.client.scan_iter(match=pattern, count=100))
            if keys:
                return int(self.client.delete(*keys))
            return 0
        except Exception as e:
            logger.warning("cache: method=invalidate pattern=%s result=error error=%s", pattern, e)
            return 0


def build_response_cache() -> ResponseCache:
    """Redis when a URL is configured and reachable, else process memory."""
    if config.REDIS_URL:
        client = redis.from_url(
            config.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
        )
        redis_cache = RedisResponseCache(client, ttl_seconds=config.CACHE_TTL_SECONDS)
        if redis_cache.ping():
            logger.info("cache: using Redis response cache")
            return redis_cache
        logger.warning("cache: Redis unreachable, falling back to in-process cache")
    return MemoryResponseCache(ttl_seconds=config.CACHE_TTL_SECONDS)


response_cache: ResponseCache = build_response_cache()


def get_response_cache() -> ResponseCache:
    """FastAPI dependency returning the process-wide cache."""
    return response_cache


def invalidate_products(cache: ResponseCache) -> None:
    dropped = cache.invalidate(PRODUCTS)
    logger.debug("cache: method=invalidate family=products dropped=%s", dropped)


def invalidate_categories(cache: ResponseCache) -> None:
    """Category rows are embedded in product payloads, so both families go."""
    dropped = cache.invalidate(CATEGORIES) + cache.invalidate(PRODUCTS)
    logger.debug("cache: method=invalidate family=categories dropped=%s", dropped)


def cached_payload(cache: ResponseCache, request: Request, loader: Callable[[], Any]) -> Any:
    """Serve request from cache, or build it with loader and store the JSON-ready result."""
    key = make_cache_key(request.url.path, request.query_params.multi_items())
    cached = cache.get(key)
    if cached is not None:
        return cached
    payload = jsonable_encoder(loader())
    cache.set(key, payload)
    return payload
