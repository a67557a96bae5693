"""
Services module for the Assessment Engine.
"""

from assessment_engine.services.cache import get_cache
from assessment_engine.services.redis_cache import RedisCache
from assessment_engine.services.snowflake import get_snowflake_connection
from assessment_engine.services.llm_client import GenerationResult, LLMClient, get_llm_client
from assessment_engine.services.background import BackgroundTaskRunner, get_background_runner

__all__ = [
    # Infrastructure
    "get_cache",
    "RedisCache",
    "get_snowflake_connection",

    # Text generation
    "GenerationResult",
    "LLMClient",
    "get_llm_client",

    # Background jobs
    "BackgroundTaskRunner",
    "get_background_runner",
]
