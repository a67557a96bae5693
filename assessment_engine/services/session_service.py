"""
Session Service - Assessment Engine
assessment_engine/services/session_service.py

State machine for questionnaire sessions:

    started -> in_progress -> completed
                           -> abandoned
    started -> completed | abandoned

Every write is conditional on the version read at the start of the call; a
lost race raises OptimisticLockError and the caller retries. Completing a
session runs answer reconciliation before the call returns, then schedules a
narrative regeneration check in the background.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional
from uuid import UUID

import structlog

from assessment_engine.config import get_settings
from assessment_engine.core.exceptions import ConflictError, NotFoundError, OptimisticLockError
from assessment_engine.models.enumerations import DiscTrait, ProcessingStatus, SessionStatus
from assessment_engine.models.questionnaire import NavigationGraph
from assessment_engine.models.session import (
    Answer,
    Session,
    SessionStepResponse,
    SweepResponse,
)
from assessment_engine.questionnaire.answer_validator import validate_answer
from assessment_engine.questionnaire.navigation import END, calculate_progress, resolve_next
from assessment_engine.repositories.session_repository import SessionRepository
from assessment_engine.services.background import BackgroundTaskRunner
from assessment_engine.services.graph_service import GraphService
from assessment_engine.services.narrative_service import NarrativeService
from assessment_engine.services.reconciliation_service import ReconciliationService

logger = structlog.get_logger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SessionService:
    """Start, advance, resume, complete and abandon sessions."""

    def __init__(
        self,
        graph_service: GraphService,
        session_repo: SessionRepository,
        reconciliation: ReconciliationService,
        background: Optional[BackgroundTaskRunner] = None,
        narrative: Optional[NarrativeService] = None,
    ):
        self.graph_service = graph_service
        self.session_repo = session_repo
        self.reconciliation = reconciliation
        self.background = background
        self.narrative = narrative

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def start_session(
        self,
        graph_id: str,
        subject_id: Optional[str] = None,
        context_id: Optional[str] = None,
    ) -> SessionStepResponse:
        graph = self.graph_service.get_graph(graph_id)
        if not graph.is_active:
            raise ConflictError(f"Navigation graph {graph_id} is not active", details={"graph_id": graph_id})

        now = _now()
        session = Session(
            graph_id=graph.id,
            subject_id=subject_id,
            context_id=context_id,
            status=SessionStatus.STARTED,
            current_question_id=graph.start_question_id,
            started_at=now,
            last_activity_at=now,
        )
        self.session_repo.create(session)

        logger.info("session_started", session_id=str(session.id), graph_id=graph.id, subject_id=subject_id)
        return self._step(session, graph)

    async def submit_answer(
        self,
        session_id: UUID,
        question_id: str,
        value: Any,
        traits: Optional[List[DiscTrait]] = None,
    ) -> SessionStepResponse:
        """
        Validate and store one answer, then advance the pointer.

        Raises:
            NotFoundError: unknown session
            ConflictError: session is completed/abandoned, or question_id is not current
            AnswerValidationError: the value breaks the question's rules
            OptimisticLockError: the session changed since it was read
        """
        session = self.get_session(session_id)
        if session.is_terminal:
            raise ConflictError(
                f"Session {session_id} is {session.status.value}",
                details={"session_id": str(session_id), "status": session.status.value},
            )
        if question_id != session.current_question_id:
            raise ConflictError(
                f"Question {question_id} is not the current question",
                details={"expected": session.current_question_id, "received": question_id},
            )

        graph = self.graph_service.get_graph(session.graph_id)
        question = graph.get_question(question_id)
        if question is None:
            raise ConflictError(
                f"Question {question_id} is not part of graph {graph.id}",
                details={"graph_id": graph.id, "question_id": question_id},
            )

        normalized = validate_answer(question, value)

        expected_version = session.version
        now = _now()
        if normalized is not None:
            session.upsert_answer(
                Answer(
                    question_id=question.id,
                    question_type=question.type,
                    value=normalized,
                    traits=traits,
                    submitted_at=now,
                )
            )

        stored_values = {a.question_id: a.value for a in session.answers}
        next_id = resolve_next(graph, question, normalized, stored_values)

        session.last_activity_at = now
        if next_id == END:
            self._mark_completed(session, now)
        else:
            session.status = SessionStatus.IN_PROGRESS
            session.current_question_id = next_id

        self._save(session, expected_version)
        logger.info(
            "answer_submitted",
            session_id=str(session.id),
            question_id=question_id,
            next_question_id=next_id,
            answered=len(session.answers),
        )

        if session.status == SessionStatus.COMPLETED:
            session = await self._after_completion(session, graph)
        return self._step(session, graph)

    async def force_complete(self, session_id: UUID) -> SessionStepResponse:
        """Complete an open session with whatever answers it has."""
        session = self.get_session(session_id)
        if session.is_terminal:
            raise ConflictError(
                f"Session {session_id} is {session.status.value}",
                details={"session_id": str(session_id), "status": session.status.value},
            )

        graph = self.graph_service.get_graph(session.graph_id)
        expected_version = session.version
        now = _now()
        session.last_activity_at = now
        self._mark_completed(session, now)
        self._save(session, expected_version)

        logger.info("session_force_completed", session_id=str(session.id), answered=len(session.answers))
        session = await self._after_completion(session, graph)
        return self._step(session, graph)

    async def resume_session(self, session_id: UUID) -> SessionStepResponse:
        """Return the question at the pointer. Completed/abandoned sessions cannot resume."""
        session = self.get_session(session_id)
        if session.is_terminal:
            raise ConflictError(
                f"Session {session_id} is {session.status.value} and cannot be resumed",
                details={"session_id": str(session_id), "status": session.status.value},
            )
        graph = self.graph_service.get_graph(session.graph_id)
        return self._step(session, graph)

    def get_session(self, session_id: UUID) -> Session:
        session = self.session_repo.get_by_id(session_id)
        if session is None:
            raise NotFoundError("Session", str(session_id))
        return session

    def sweep_abandoned(self, threshold_hours: Optional[float] = None) -> SweepResponse:
        """Abandon open sessions idle for longer than the threshold. Idempotent."""
        hours = threshold_hours or get_settings().ABANDON_THRESHOLD_HOURS
        cutoff = _now() - timedelta(hours=hours)
        abandoned = self.session_repo.abandon_idle(cutoff)
        logger.info("abandoned_sessions_swept", abandoned=abandoned, threshold_hours=hours)
        return SweepResponse(abandoned=abandoned, threshold_hours=hours, cutoff=cutoff)

    def mark_abandoned(self, session_id: UUID) -> Session:
        session = self.get_session(session_id)
        if session.is_terminal or not self.session_repo.mark_abandoned(session_id):
            raise ConflictError(
                f"Session {session_id} is {session.status.value}",
                details={"session_id": str(session_id), "status": session.status.value},
            )
        logger.info("session_abandoned", session_id=str(session_id))
        return self.get_session(session_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _mark_completed(self, session: Session, now: datetime) -> None:
        session.status = SessionStatus.COMPLETED
        session.completed_at = now
        session.current_question_id = None
        session.metadata = {
            **session.metadata,
            "reconciliation": {"status": ProcessingStatus.PENDING.value},
        }

    def _save(self, session: Session, expected_version: int) -> None:
        if not self.session_repo.update_if_version(session, expected_version):
            raise OptimisticLockError("Session", str(session.id))
        session.version = expected_version + 1

    async def _after_completion(self, session: Session, graph: NavigationGraph) -> Session:
        session = await self.reconciliation.reconcile(session, graph)
        if session.subject_id and self.background is not None and self.narrative is not None:
            subject_id = session.subject_id
            self.background.submit(
                "narrative_regeneration",
                lambda: self.narrative.regenerate_if_stale(subject_id),
                subject_id=subject_id,
                trigger="session_completed",
            )
        return session

    def _step(self, session: Session, graph: NavigationGraph) -> SessionStepResponse:
        completed = session.status == SessionStatus.COMPLETED
        question = None if session.is_terminal else graph.get_question(session.current_question_id)
        return SessionStepResponse(
            session_id=session.id,
            status=session.status,
            question=question,
            progress=calculate_progress(graph, len(session.answers), completed=completed),
            completed=completed,
            version=session.version,
        )
