"""
Observation Episode Service - Assessment Engine
assessment_engine/services/episode_service.py

Lifecycle of one behavioral observation per occasion:

    pending -> processing -> completed | failed

Submission only stores the pending row; scoring runs as a background job,
then refreshes the subject's aggregate and narrative. Retry deletes the
episode and scores the same input again.
"""

from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID

import structlog

from assessment_engine.core.exceptions import (
    ConflictError,
    DuplicateEntityException,
    ExternalServiceError,
    NotFoundError,
)
from assessment_engine.models.enumerations import EpisodeStatus
from assessment_engine.models.scoring import EpisodeStatusResponse, ObservationEpisode
from assessment_engine.repositories.episode_repository import EpisodeRepository
from assessment_engine.services.aggregate_service import AggregateService
from assessment_engine.services.background import BackgroundTaskRunner
from assessment_engine.services.behavior_analyzer import BehaviorAnalyzer
from assessment_engine.services.narrative_service import NarrativeService

logger = structlog.get_logger(__name__)


class EpisodeService:
    def __init__(
        self,
        episode_repo: EpisodeRepository,
        analyzer: BehaviorAnalyzer,
        aggregates: AggregateService,
        background: Optional[BackgroundTaskRunner] = None,
        narrative: Optional[NarrativeService] = None,
    ):
        self.episode_repo = episode_repo
        self.analyzer = analyzer
        self.aggregates = aggregates
        self.background = background
        self.narrative = narrative

    async def submit_episode(
        self,
        occasion_id: str,
        subject_id: str,
        notes: str = "",
        agreements: Optional[List[str]] = None,
    ) -> ObservationEpisode:
        """
        Store a pending episode and schedule its scoring.

        Raises:
            ConflictError: the occasion already has an episode
        """
        episode = ObservationEpisode(
            occasion_id=occasion_id,
            subject_id=subject_id,
            notes=notes,
            agreements=list(agreements or []),
        )
        try:
            self.episode_repo.create(episode)
        except DuplicateEntityException as e:
            raise ConflictError(e.message, details={"occasion_id": occasion_id})

        logger.info("episode_submitted", episode_id=str(episode.id), occasion_id=occasion_id, subject_id=subject_id)
        await self._schedule(episode)
        return episode

    async def retry_episode(self, occasion_id: str) -> ObservationEpisode:
        """
        Delete the occasion's episode and score it again from the same input.

        Raises:
            NotFoundError: no episode for the occasion
            ConflictError: the episode is currently being scored
        """
        existing = self.episode_repo.get_by_occasion(occasion_id)
        if existing is None:
            raise NotFoundError("ObservationEpisode", occasion_id)
        if existing.status == EpisodeStatus.PROCESSING:
            raise ConflictError(
                f"Episode for occasion {occasion_id} is being processed",
                details={"occasion_id": occasion_id, "status": existing.status.value},
            )

        self.episode_repo.delete(existing.id)
        if existing.status == EpisodeStatus.COMPLETED:
            self.aggregates.try_recompute(existing.subject_id)

        logger.info("episode_retry", occasion_id=occasion_id, previous_status=existing.status.value)
        return await self.submit_episode(
            occasion_id=existing.occasion_id,
            subject_id=existing.subject_id,
            notes=existing.notes,
            agreements=existing.agreements,
        )

    def get_episode_status(self, occasion_id: str) -> EpisodeStatusResponse:
        episode = self.episode_repo.get_by_occasion(occasion_id)
        if episode is None:
            return EpisodeStatusResponse(occasion_id=occasion_id, exists=False)
        return EpisodeStatusResponse(
            occasion_id=occasion_id,
            exists=True,
            episode_id=episode.id,
            status=episode.status,
            error_message=episode.error_message,
        )

    async def process_episode(self, episode_id: UUID) -> Optional[ObservationEpisode]:
        """Score a pending episode. Gateway failures leave it failed with the message."""
        episode = self.episode_repo.get_by_id(episode_id)
        if episode is None:
            logger.warning("episode_missing", episode_id=str(episode_id))
            return None

        log = logger.bind(episode_id=str(episode.id), occasion_id=episode.occasion_id)
        if not self.episode_repo.update_status(episode.id, (EpisodeStatus.PENDING,), EpisodeStatus.PROCESSING):
            log.warning("episode_not_pending", status=episode.status.value)
            return None

        try:
            analysis = await self.analyzer.analyze(episode.notes, episode.agreements)
        except ExternalServiceError as e:
            log.error("episode_scoring_failed", error=e.message)
            self.episode_repo.update_status(episode.id, (EpisodeStatus.PROCESSING,), EpisodeStatus.FAILED, e.message)
            return None
        except Exception as e:
            self.episode_repo.update_status(episode.id, (EpisodeStatus.PROCESSING,), EpisodeStatus.FAILED, str(e))
            raise

        completed_at = datetime.now(timezone.utc)
        if not self.episode_repo.complete(
            episode.id,
            scores=analysis.scores,
            model=analysis.model,
            generation_metadata=analysis.metadata,
            completed_at=completed_at,
        ):
            log.warning("episode_completion_rejected", reason="no longer processing")
            return None
        episode.status = EpisodeStatus.COMPLETED
        episode.scores = analysis.scores
        episode.model = analysis.model
        episode.generation_metadata = analysis.metadata
        episode.completed_at = completed_at
        log.info("episode_completed", model=analysis.model)

        self.aggregates.try_recompute(episode.subject_id)
        if self.narrative is not None:
            await self.narrative.regenerate_if_stale(episode.subject_id)
        return episode

    async def _schedule(self, episode: ObservationEpisode) -> None:
        if self.background is None:
            await self.process_episode(episode.id)
            return
        self.background.submit(
            "episode_scoring",
            lambda: self.process_episode(episode.id),
            occasion_id=episode.occasion_id,
            subject_id=episode.subject_id,
        )
