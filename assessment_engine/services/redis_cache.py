"""
Redis Cache - Assessment Engine
assessment_engine/services/redis_cache.py

Thin pydantic-aware wrapper over a redis client. Values are stored as model
JSON; an entry that no longer parses as the requested model is evicted and
reported as a miss.
"""
import logging
from typing import Optional, TypeVar, Type

import redis
from pydantic import BaseModel, ValidationError

from assessment_engine.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


class RedisCache:
    def __init__(self, url: Optional[str] = None):
        self.client = redis.from_url(
            url or settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=5,
        )

    def ping(self) -> bool:
        return bool(self.client.ping())

    def get(self, key: str, model: Type[T]) -> Optional[T]:
        """Read ``key`` as ``model``. Missing or stale entries return None."""
        data = self.client.get(key)
        if not data:
            return None
        try:
            return model.model_validate_json(data)
        except ValidationError:
            logger.info(f"Evicting stale cache entry {key} ({model.__name__} changed shape)")
            self.client.delete(key)
            return None

    def set(self, key: str, value: BaseModel, ttl_seconds: int) -> None:
        self.client.setex(key, ttl_seconds, value.model_dump_json())

    def delete(self, key: str) -> None:
        self.client.delete(key)
