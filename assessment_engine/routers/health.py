"""
Health Check Router - Assessment Engine
assessment_engine/routers/health.py

Liveness of the store, the cache and the text-generation gateway settings,
plus background job counters.
"""
from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from typing import Dict
from datetime import datetime, timezone

from assessment_engine.config import settings
from assessment_engine.core.exceptions import NotFoundError
from assessment_engine.services.background import get_background_runner

router = APIRouter(tags=["Health"])

# Cache is optional: a down Redis degrades, it does not fail the check
REQUIRED_DEPENDENCIES = ("snowflake", "llm_gateway")


#  Schemas


class BackgroundStats(BaseModel):
    pending_jobs: int
    dead_letters: int


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    version: str
    dependencies: Dict[str, str]
    background: BackgroundStats


class DependencyStatus(BaseModel):
    service: str
    status: str
    is_healthy: bool
    timestamp: datetime


#  Dependency Health Checks


def _short(e: Exception) -> str:
    msg = str(e)
    return msg[:100] + "..." if len(msg) > 100 else msg


async def check_snowflake() -> str:
    """Open a connection and read the session schema."""
    if not (settings.SNOWFLAKE_ACCOUNT and settings.SNOWFLAKE_USER):
        return "unhealthy: SNOWFLAKE_ACCOUNT / SNOWFLAKE_USER not set"

    try:
        from assessment_engine.services.snowflake import get_snowflake_connection

        conn = get_snowflake_connection()
        try:
            cursor = conn.cursor()
            cursor.execute("SELECT CURRENT_SCHEMA()")
            schema = cursor.fetchone()[0]
            cursor.close()
        finally:
            conn.close()
        return f"healthy (schema: {schema})"

    except Exception as e:
        return f"unhealthy: {_short(e)}"


async def check_redis() -> str:
    """Ping through the shared cache client."""
    from assessment_engine.services.cache import get_cache

    cache = get_cache()
    if cache is None:
        return "unhealthy: unreachable, serving uncached"
    try:
        cache.ping()
        return "healthy"
    except Exception as e:
        return f"unhealthy: {_short(e)}"


async def check_llm_gateway() -> str:
    """Configuration only; no completion is spent on a health probe."""
    if settings.LLM_API_KEY is None:
        return "unhealthy: LLM_API_KEY not set"
    return f"healthy ({settings.LLM_BASE_URL}, default model {settings.LLM_DEFAULT_MODEL})"


def dependency_checks():
    return {
        "snowflake": check_snowflake,
        "redis": check_redis,
        "llm_gateway": check_llm_gateway,
    }


#  Routes


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={
        200: {"description": "Required dependencies healthy (cache may be degraded)"},
        503: {"description": "Store or text-generation gateway unavailable"},
    },
    summary="Health check",
)
async def health_check():
    dependencies = {name: await check() for name, check in dependency_checks().items()}
    required_ok = all(dependencies[name].startswith("healthy") for name in REQUIRED_DEPENDENCIES)
    all_ok = all(v.startswith("healthy") for v in dependencies.values())

    runner = get_background_runner()
    response = HealthResponse(
        status="healthy" if all_ok else ("degraded" if required_ok else "unhealthy"),
        timestamp=datetime.now(timezone.utc),
        version=settings.APP_VERSION,
        dependencies=dependencies,
        background=BackgroundStats(pending_jobs=runner.pending, dead_letters=len(runner.dead_letters)),
    )

    if required_ok:
        return response
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=response.model_dump(mode="json"),
    )


@router.get(
    "/health/{dependency}",
    response_model=DependencyStatus,
    summary="Check a single dependency",
    description="dependency is one of: snowflake, redis, llm_gateway.",
)
async def health_dependency(dependency: str) -> DependencyStatus:
    check = dependency_checks().get(dependency)
    if check is None:
        raise NotFoundError("HealthCheck", dependency)
    result = await check()
    return DependencyStatus(
        service=dependency,
        status=result,
        is_healthy=result.startswith("healthy"),
        timestamp=datetime.now(timezone.utc),
    )
