"""
Aggregate Service - Assessment Engine
assessment_engine/services/aggregate_service.py

Recomputes and serves a subject's decayed behavioral profile. The stored row
is replaced wholesale; Redis holds a copy per subject.
"""

from typing import Optional

import structlog

from assessment_engine.core.exceptions import NotFoundError
from assessment_engine.models.scoring import AggregateProfile
from assessment_engine.repositories.aggregate_repository import AggregateRepository
from assessment_engine.repositories.episode_repository import EpisodeRepository
from assessment_engine.scoring.decay_aggregator import MAX_EPISODES, DecayAggregator, EpisodeScores
from assessment_engine.services.cache import TTL_AGGREGATE, aggregate_key, get_cache

logger = structlog.get_logger(__name__)


class AggregateService:
    def __init__(
        self,
        episode_repo: EpisodeRepository,
        aggregate_repo: AggregateRepository,
        aggregator: Optional[DecayAggregator] = None,
    ):
        self.episode_repo = episode_repo
        self.aggregate_repo = aggregate_repo
        self.aggregator = aggregator or DecayAggregator()

    def build_profile(self, subject_id: str) -> AggregateProfile:
        """Fold the newest completed episodes into a profile without storing it."""
        episodes = self.episode_repo.list_completed_for_subject(subject_id, limit=MAX_EPISODES)
        result = self.aggregator.calculate(
            [EpisodeScores(completed_at=e.completed_at, scores=e.score_values()) for e in episodes]
        )
        return AggregateProfile(
            subject_id=subject_id,
            scores=result.scores,
            episode_count=result.episode_count,
            last_updated_at=result.last_updated_at,
        )


    def recompute(self, subject_id: str) -> AggregateProfile:
        """Rebuild the subject's profile and store it."""
        profile = self.build_profile(subject_id)
        self.aggregate_repo.upsert(profile)
        self._invalidate(subject_id)

        logger.info("aggregate_recomputed", subject_id=subject_id, episode_count=profile.episode_count)
        return profile

    def try_recompute(self, subject_id: str) -> Optional[AggregateProfile]:
        """Background variant: failures are logged, never raised."""
        try:
            return self.recompute(subject_id)
        except Exception as e:
            logger.error("aggregate_recompute_failed", subject_id=subject_id, error=str(e))
            return None

    def get_aggregate(self, subject_id: str) -> AggregateProfile:
        cache = get_cache()
        if cache:
            try:
                cached = cache.get(aggregate_key(subject_id), AggregateProfile)
                if cached:
                    return cached
            except Exception as e:
                logger.warning("aggregate_cache_read_failed", subject_id=subject_id, error=str(e))

        profile = self.aggregate_repo.get(subject_id)
        if profile is None:
            raise NotFoundError("AggregateProfile", subject_id)

        if cache:
            try:
                cache.set(aggregate_key(subject_id), profile, TTL_AGGREGATE)
            except Exception as e:
                logger.warning("aggregate_cache_write_failed", subject_id=subject_id, error=str(e))
        return profile

    def _invalidate(self, subject_id: str) -> None:
        cache = get_cache()
        if cache:
            try:
                cache.delete(aggregate_key(subject_id))
            except Exception as e:
                logger.warning("aggregate_cache_invalidate_failed", subject_id=subject_id, error=str(e))
