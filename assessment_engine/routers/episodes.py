"""
Observation Episode Router - Assessment Engine
assessment_engine/routers/episodes.py

Submit meeting observations for behavioral scoring and follow their status.
Scoring runs in the background; submit and retry return 202.
"""

from fastapi import APIRouter, Depends, status

from assessment_engine.core.dependencies import get_episode_service
from assessment_engine.models.scoring import (
    EpisodeStatusResponse,
    ObservationEpisode,
    SubmitEpisodeRequest,
)
from assessment_engine.routers.common import error_responses
from assessment_engine.services.episode_service import EpisodeService

router = APIRouter(prefix="/api/v1/episodes", tags=["Episodes"])


@router.post(
    "",
    response_model=ObservationEpisode,
    status_code=status.HTTP_202_ACCEPTED,
    responses=error_responses(400, 409, 422, 500),
    summary="Submit an observation episode",
    description="Stores a pending episode for the occasion and schedules its scoring. One episode per occasion.",
)
async def submit_episode(
    payload: SubmitEpisodeRequest,
    episode_service: EpisodeService = Depends(get_episode_service),
) -> ObservationEpisode:
    return await episode_service.submit_episode(
        occasion_id=payload.occasion_id,
        subject_id=payload.subject_id,
        notes=payload.notes,
        agreements=payload.agreements,
    )


@router.post(
    "/{occasion_id}/retry",
    response_model=ObservationEpisode,
    status_code=status.HTTP_202_ACCEPTED,
    responses=error_responses(404, 409, 500),
    summary="Retry episode scoring",
    description="Deletes the occasion's episode and scores the same notes again.",
)
async def retry_episode(
    occasion_id: str,
    episode_service: EpisodeService = Depends(get_episode_service),
) -> ObservationEpisode:
    return await episode_service.retry_episode(occasion_id)


@router.get(
    "/{occasion_id}/status",
    response_model=EpisodeStatusResponse,
    responses=error_responses(500),
    summary="Get episode status",
)
async def get_episode_status(
    occasion_id: str,
    episode_service: EpisodeService = Depends(get_episode_service),
) -> EpisodeStatusResponse:
    return episode_service.get_episode_status(occasion_id)
