"""
Maintenance Router - Assessment Engine
assessment_engine/routers/maintenance.py

Operational endpoints: abandoned-session sweep and background failures.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Query
from pydantic import BaseModel

from assessment_engine.core.dependencies import get_session_service
from assessment_engine.models.session import SweepRequest, SweepResponse
from assessment_engine.routers.common import error_responses
from assessment_engine.services.background import BackgroundTaskRunner, get_background_runner
from assessment_engine.services.session_service import SessionService

router = APIRouter(prefix="/api/v1/maintenance", tags=["Maintenance"])


class DeadLetterResponse(BaseModel):
    job: str
    error: str
    context: Dict[str, Any]
    failed_at: datetime


@router.post(
    "/sweep-abandoned",
    response_model=SweepResponse,
    responses=error_responses(422, 500),
    summary="Abandon idle sessions",
    description="Marks started/in-progress sessions idle longer than the threshold (default 24h) as abandoned. Safe to repeat.",
)
async def sweep_abandoned(
    payload: Optional[SweepRequest] = Body(default=None),
    session_service: SessionService = Depends(get_session_service),
) -> SweepResponse:
    threshold = payload.threshold_hours if payload else None
    return session_service.sweep_abandoned(threshold)


@router.get(
    "/dead-letters",
    response_model=List[DeadLetterResponse],
    summary="Recent background job failures",
)
async def list_dead_letters(
    limit: int = Query(default=20, ge=1, le=200),
    runner: BackgroundTaskRunner = Depends(get_background_runner),
) -> List[DeadLetterResponse]:
    return [
        DeadLetterResponse(job=d.job, error=d.error, context=d.context, failed_at=d.failed_at)
        for d in runner.recent_failures(limit)
    ]
