"""
Subject Profile Router - Assessment Engine
assessment_engine/routers/profiles.py

Per-subject derived data: decayed aggregate, context fingerprint and the
narrative regeneration gate.
"""

from fastapi import APIRouter, Depends, Query

from assessment_engine.core.dependencies import (
    get_aggregate_service,
    get_artifact_repository,
    get_fingerprint_service,
    get_narrative_service,
)
from assessment_engine.core.exceptions import NotFoundError
from assessment_engine.models.scoring import (
    AggregateProfile,
    FingerprintResponse,
    NarrativeArtifact,
    RegenerationCheckResponse,
)
from assessment_engine.repositories.artifact_repository import ArtifactRepository
from assessment_engine.routers.common import error_responses
from assessment_engine.services.aggregate_service import AggregateService
from assessment_engine.services.fingerprint_service import FingerprintService
from assessment_engine.services.narrative_service import NarrativeService

router = APIRouter(prefix="/api/v1/subjects", tags=["Subject Profiles"])


@router.get(
    "/{subject_id}/aggregate",
    response_model=AggregateProfile,
    responses=error_responses(404, 500),
    summary="Get decayed aggregate profile",
    description="Per-dimension decayed scores over the newest completed episodes. Null means not observed.",
)
async def get_aggregate(
    subject_id: str,
    aggregate_service: AggregateService = Depends(get_aggregate_service),
) -> AggregateProfile:
    return aggregate_service.get_aggregate(subject_id)


@router.post(
    "/{subject_id}/aggregate/recompute",
    response_model=AggregateProfile,
    responses=error_responses(500),
    summary="Recompute aggregate profile",
    description="Rebuilds the profile from stored episodes. Recomputing unchanged data yields an identical row.",
)
async def recompute_aggregate(
    subject_id: str,
    aggregate_service: AggregateService = Depends(get_aggregate_service),
) -> AggregateProfile:
    return aggregate_service.recompute(subject_id)


@router.get(
    "/{subject_id}/fingerprint",
    response_model=FingerprintResponse,
    responses=error_responses(500),
    summary="Compute context fingerprint",
)
async def compute_fingerprint(
    subject_id: str,
    fingerprint_service: FingerprintService = Depends(get_fingerprint_service),
) -> FingerprintResponse:
    return FingerprintResponse(
        subject_id=subject_id,
        fingerprint=fingerprint_service.compute_fingerprint(subject_id),
    )


@router.get(
    "/{subject_id}/regeneration-check",
    response_model=RegenerationCheckResponse,
    responses=error_responses(500),
    summary="Check whether the narrative is stale",
)
async def regeneration_check(
    subject_id: str,
    fingerprint_service: FingerprintService = Depends(get_fingerprint_service),
) -> RegenerationCheckResponse:
    return fingerprint_service.needs_regeneration(subject_id)


@router.get(
    "/{subject_id}/narrative",
    response_model=NarrativeArtifact,
    responses=error_responses(404, 500),
    summary="Get the latest narrative",
)
async def get_narrative(
    subject_id: str,
    artifact_repo: ArtifactRepository = Depends(get_artifact_repository),
) -> NarrativeArtifact:
    artifact = artifact_repo.get(subject_id)
    if artifact is None:
        raise NotFoundError("NarrativeArtifact", subject_id)
    return artifact


@router.post(
    "/{subject_id}/narrative/regenerate",
    response_model=RegenerationCheckResponse,
    responses=error_responses(500),
    summary="Regenerate the narrative if stale",
    description="Runs the regeneration gate now. force=true ignores the fingerprint.",
)
async def regenerate_narrative(
    subject_id: str,
    force: bool = Query(default=False),
    narrative_service: NarrativeService = Depends(get_narrative_service),
    fingerprint_service: FingerprintService = Depends(get_fingerprint_service),
) -> RegenerationCheckResponse:
    await narrative_service.regenerate_if_stale(subject_id, force=force)
    return fingerprint_service.needs_regeneration(subject_id)
