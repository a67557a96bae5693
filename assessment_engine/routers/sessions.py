"""
Session Router - Assessment Engine
assessment_engine/routers/sessions.py

Walks a respondent through a navigation graph: start, answer, resume,
complete, abandon.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, status

from assessment_engine.core.dependencies import get_session_service
from assessment_engine.models.session import (
    Session,
    SessionStepResponse,
    StartSessionRequest,
    SubmitAnswerRequest,
)
from assessment_engine.routers.common import error_responses
from assessment_engine.services.session_service import SessionService

router = APIRouter(prefix="/api/v1/sessions", tags=["Sessions"])


@router.post(
    "",
    response_model=SessionStepResponse,
    status_code=status.HTTP_201_CREATED,
    responses=error_responses(400, 404, 409, 422, 500),
    summary="Start a session",
    description="Creates a session on an active graph and returns the first question.",
)
async def start_session(
    payload: StartSessionRequest,
    session_service: SessionService = Depends(get_session_service),
) -> SessionStepResponse:
    return await session_service.start_session(
        graph_id=payload.graph_id,
        subject_id=payload.subject_id,
        context_id=payload.context_id,
    )


@router.get(
    "/{session_id}",
    response_model=Session,
    responses=error_responses(404, 422, 500),
    summary="Get session by ID",
    description="Returns the stored session including answers and derived metadata.",
)
async def get_session(
    session_id: UUID,
    session_service: SessionService = Depends(get_session_service),
) -> Session:
    return session_service.get_session(session_id)


@router.post(
    "/{session_id}/answers",
    response_model=SessionStepResponse,
    responses=error_responses(400, 404, 409, 422, 500),
    summary="Submit an answer",
    description=(
        "Answers the current question and advances the session. Answering the last question "
        "completes the session and runs reconciliation before responding. A 409 with "
        "error_code CONCURRENT_MODIFICATION is safe to retry."
    ),
)
async def submit_answer(
    session_id: UUID,
    payload: SubmitAnswerRequest,
    session_service: SessionService = Depends(get_session_service),
) -> SessionStepResponse:
    return await session_service.submit_answer(
        session_id=session_id,
        question_id=payload.question_id,
        value=payload.value,
        traits=payload.traits,
    )


@router.get(
    "/{session_id}/resume",
    response_model=SessionStepResponse,
    responses=error_responses(404, 409, 422, 500),
    summary="Resume a session",
    description="Returns the current question and progress of an open session.",
)
async def resume_session(
    session_id: UUID,
    session_service: SessionService = Depends(get_session_service),
) -> SessionStepResponse:
    return await session_service.resume_session(session_id)


@router.post(
    "/{session_id}/complete",
    response_model=SessionStepResponse,
    responses=error_responses(404, 409, 422, 500),
    summary="Force-complete a session",
    description="Completes an open session with the answers given so far and runs reconciliation.",
)
async def force_complete(
    session_id: UUID,
    session_service: SessionService = Depends(get_session_service),
) -> SessionStepResponse:
    return await session_service.force_complete(session_id)


@router.post(
    "/{session_id}/abandon",
    response_model=Session,
    responses=error_responses(404, 409, 422, 500),
    summary="Abandon a session",
)
async def abandon_session(
    session_id: UUID,
    session_service: SessionService = Depends(get_session_service),
) -> Session:
    return session_service.mark_abandoned(session_id)
