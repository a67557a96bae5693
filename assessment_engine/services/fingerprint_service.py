"""
Fingerprint Service - Assessment Engine
assessment_engine/services/fingerprint_service.py

Decides whether a subject's stored narrative is stale.
"""

from datetime import datetime, timezone
from typing import Optional

import structlog

from assessment_engine.models.scoring import RegenerationCheckResponse
from assessment_engine.repositories.artifact_repository import ArtifactRepository
from assessment_engine.repositories.episode_repository import EpisodeRepository
from assessment_engine.repositories.session_repository import SessionRepository
from assessment_engine.scoring.fingerprint import FingerprintInputs, compute_digest

logger = structlog.get_logger(__name__)

REASON_NO_ARTIFACT = "no_artifact"
REASON_NO_FINGERPRINT = "no_fingerprint"
REASON_FINGERPRINT_CHANGED = "fingerprint_changed"
REASON_NEWER_ACTIVITY = "newer_activity"
REASON_UP_TO_DATE = "up_to_date"


def _utc(ts: Optional[datetime]) -> Optional[datetime]:
    if ts is not None and ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


class FingerprintService:
    def __init__(
        self,
        session_repo: SessionRepository,
        episode_repo: EpisodeRepository,
        artifact_repo: ArtifactRepository,
    ):
        self.session_repo = session_repo
        self.episode_repo = episode_repo
        self.artifact_repo = artifact_repo

    def inputs(self, subject_id: str) -> FingerprintInputs:
        sessions, latest_session = self.session_repo.completed_stats(subject_id)
        episodes, latest_episode = self.episode_repo.completed_stats(subject_id)
        return FingerprintInputs(
            completed_sessions=sessions,
            latest_session_at=latest_session,
            completed_episodes=episodes,
            latest_episode_at=latest_episode,
        )

    def compute_fingerprint(self, subject_id: str) -> str:
        """Pure function of the subject's persisted sessions and episodes."""
        return compute_digest(self.inputs(subject_id))

    def needs_regeneration(self, subject_id: str) -> RegenerationCheckResponse:
        """
        Stale when there is no artifact, no stored digest, a different digest,
        or a session/episode completed after the artifact was written.
        """
        inputs = self.inputs(subject_id)
        digest = compute_digest(inputs)
        artifact = self.artifact_repo.get(subject_id)

        stored = artifact.fingerprint if artifact else None
        if artifact is None:
            reason = REASON_NO_ARTIFACT
        elif not artifact.fingerprint:
            reason = REASON_NO_FINGERPRINT
        elif artifact.fingerprint != digest:
            reason = REASON_FINGERPRINT_CHANGED
        elif any(
            latest is not None and _utc(latest) > _utc(artifact.updated_at)
            for latest in (inputs.latest_session_at, inputs.latest_episode_at)
        ):
            reason = REASON_NEWER_ACTIVITY
        else:
            reason = REASON_UP_TO_DATE

        check = RegenerationCheckResponse(
            subject_id=subject_id,
            needs_regeneration=reason != REASON_UP_TO_DATE,
            reason=reason,
            fingerprint=digest,
            stored_fingerprint=stored,
        )
        logger.info(
            "regeneration_checked",
            subject_id=subject_id,
            needs_regeneration=check.needs_regeneration,
            reason=reason,
        )
        return check
