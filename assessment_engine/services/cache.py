"""
Cache Service Singleton - Assessment Engine
assessment_engine/services/cache.py

Shared RedisCache instance, key builders and TTLs for the two cached reads:
aggregate profiles (invalidated on recompute) and published graphs
(immutable). Callers treat a None cache as "serve uncached".
"""
import logging
import time
from typing import Optional

import redis

from assessment_engine.config import settings
from assessment_engine.services.redis_cache import RedisCache

logger = logging.getLogger(__name__)

TTL_AGGREGATE = settings.CACHE_TTL_AGGREGATE
TTL_GRAPH = 86400  # published graphs never change

# After a failed connect, stay uncached this long before trying again
RECONNECT_COOLDOWN_SECONDS = 30.0

AGGREGATE_KEY_PREFIX = "aggregate"
GRAPH_KEY_PREFIX = "graph"

_cache: Optional[RedisCache] = None
_unavailable_since: Optional[float] = None


def aggregate_key(subject_id: str) -> str:
    return f"{AGGREGATE_KEY_PREFIX}:{subject_id}"


def graph_key(graph_id: str) -> str:
    return f"{GRAPH_KEY_PREFIX}:{graph_id}"


def get_cache() -> Optional[RedisCache]:
    """
    Connected cache, or None while Redis is unreachable.

    A failed connect is not retried on every call; the next attempt waits
    for RECONNECT_COOLDOWN_SECONDS.
    """
    global _cache, _unavailable_since
    if _cache is not None:
        return _cache

    now = time.monotonic()
    if _unavailable_since is not None and now - _unavailable_since < RECONNECT_COOLDOWN_SECONDS:
        return None

    try:
        cache = RedisCache()
        cache.ping()
    except (redis.RedisError, ConnectionError) as e:
        if _unavailable_since is None:
            logger.warning(f"Redis unavailable, serving uncached: {e}")
        _unavailable_since = now
        return None

    if _unavailable_since is not None:
        logger.info("Redis reachable again, cache re-enabled")
    _cache, _unavailable_since = cache, None
    return _cache


def reset_cache() -> None:
    """Forget the connection and any cooldown."""
    global _cache, _unavailable_since
    _cache = None
    _unavailable_since = None
