"""
Observation Episode Repository - Assessment Engine
assessment_engine/repositories/episode_repository.py

Data access layer for behavioral observation episodes (one per occasion).
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from assessment_engine.core.exceptions import DuplicateEntityException
from assessment_engine.models.enumerations import EpisodeStatus
from assessment_engine.models.scoring import DimensionScore, ObservationEpisode
from assessment_engine.repositories.base import BaseRepository

_SELECT_COLUMNS = """
    ID, OCCASION_ID, SUBJECT_ID, STATUS, NOTES, AGREEMENTS, SCORES,
    ERROR_MESSAGE, MODEL, GENERATION_METADATA, CREATED_AT, COMPLETED_AT
"""


class EpisodeRepository(BaseRepository):
    """Repository for ObservationEpisode persistence."""

    TABLE_NAME = "OBSERVATION_EPISODES"

    def create(self, episode: ObservationEpisode) -> ObservationEpisode:
        """
        Insert a new episode.

        Raises:
            DuplicateEntityException: if the occasion already has an episode
        """
        sql = """
            INSERT INTO OBSERVATION_EPISODES (ID, OCCASION_ID, SUBJECT_ID, STATUS, NOTES, AGREEMENTS,
                                              SCORES, ERROR_MESSAGE, MODEL, GENERATION_METADATA,
                                              CREATED_AT, COMPLETED_AT)
            SELECT %s, %s, %s, %s, %s, PARSE_JSON(%s), PARSE_JSON(%s), %s, %s, PARSE_JSON(%s), %s, %s
            WHERE NOT EXISTS (SELECT 1 FROM OBSERVATION_EPISODES WHERE OCCASION_ID = %s)
        """
        params = (
            str(episode.id),
            episode.occasion_id,
            episode.subject_id,
            episode.status.value,
            episode.notes,
            self.to_variant(episode.agreements),
            self._scores_json(episode.scores),
            episode.error_message,
            episode.model,
            self.to_variant(episode.generation_metadata),
            episode.created_at,
            episode.completed_at,
            episode.occasion_id,
        )
        if not self.execute_conditional(sql, params):
            raise DuplicateEntityException(f"Occasion {episode.occasion_id} already has an episode")
        return episode

    def get_by_id(self, episode_id: UUID) -> Optional[ObservationEpisode]:
        sql = f"SELECT {_SELECT_COLUMNS} FROM OBSERVATION_EPISODES WHERE ID = %s"
        row = self.execute_query(sql, (str(episode_id),), fetch_one=True)
        return self._row_to_episode(row) if row else None

    def get_by_occasion(self, occasion_id: str) -> Optional[ObservationEpisode]:
        sql = f"SELECT {_SELECT_COLUMNS} FROM OBSERVATION_EPISODES WHERE OCCASION_ID = %s"
        row = self.execute_query(sql, (occasion_id,), fetch_one=True)
        return self._row_to_episode(row) if row else None

    def update_status(
        self,
        episode_id: UUID,
        from_statuses: Sequence[EpisodeStatus],
        status: EpisodeStatus,
        error_message: Optional[str] = None,
    ) -> bool:
        """
        Move the episode to ``status`` only if it is currently in one of
        ``from_statuses``.

        Returns:
            False when the episode is missing or in another status
        """
        placeholders = ", ".join(["%s"] * len(from_statuses))
        sql = f"""
            UPDATE OBSERVATION_EPISODES
            SET STATUS = %s, ERROR_MESSAGE = %s
            WHERE ID = %s AND STATUS IN ({placeholders})
        """
        params = (status.value, error_message, str(episode_id), *(s.value for s in from_statuses))
        return self.execute_conditional(sql, params)

    def complete(
        self,
        episode_id: UUID,
        scores: Dict[str, DimensionScore],
        model: Optional[str],
        generation_metadata: Dict[str, Any],
        completed_at: datetime,
    ) -> bool:
        sql = """
            UPDATE OBSERVATION_EPISODES
            SET STATUS = %s,
                SCORES = PARSE_JSON(%s),
                MODEL = %s,
                GENERATION_METADATA = PARSE_JSON(%s),
                ERROR_MESSAGE = NULL,
                COMPLETED_AT = %s
            WHERE ID = %s AND STATUS = %s
        """
        params = (
            EpisodeStatus.COMPLETED.value,
            self._scores_json(scores),
            model,
            self.to_variant(generation_metadata),
            completed_at,
            str(episode_id),
            EpisodeStatus.PROCESSING.value,
        )
        return self.execute_conditional(sql, params)

    def delete(self, episode_id: UUID) -> bool:
        sql = "DELETE FROM OBSERVATION_EPISODES WHERE ID = %s"
        return self.execute_conditional(sql, (str(episode_id),))

    def list_completed_for_subject(self, subject_id: str, limit: int = 6) -> List[ObservationEpisode]:
        """Completed episodes, newest first."""
        sql = f"""
            SELECT {_SELECT_COLUMNS}
            FROM OBSERVATION_EPISODES
            WHERE SUBJECT_ID = %s AND STATUS = %s
            ORDER BY COMPLETED_AT DESC, ID DESC
            LIMIT %s
        """
        rows = self.execute_query(
            sql, (subject_id, EpisodeStatus.COMPLETED.value, limit), fetch_all=True
        ) or []
        return [self._row_to_episode(row) for row in rows]

    def completed_stats(self, subject_id: str) -> Tuple[int, Optional[datetime]]:
        sql = """
            SELECT COUNT(*) AS TOTAL, MAX(COMPLETED_AT) AS LATEST
            FROM OBSERVATION_EPISODES
            WHERE SUBJECT_ID = %s AND STATUS = %s
        """
        row = self.execute_query(sql, (subject_id, EpisodeStatus.COMPLETED.value), fetch_one=True)
        if not row:
            return 0, None
        return int(row["TOTAL"] or 0), self.normalize_timestamp(row["LATEST"])

    def list_subject_ids(self) -> List[str]:
        """Subjects with at least one completed episode."""
        sql = """
            SELECT DISTINCT SUBJECT_ID
            FROM OBSERVATION_EPISODES
            WHERE STATUS = %s
            ORDER BY SUBJECT_ID
        """
        rows = self.execute_query(sql, (EpisodeStatus.COMPLETED.value,), fetch_all=True) or []
        return [row["SUBJECT_ID"] for row in rows]

    def _scores_json(self, scores: Dict[str, DimensionScore]) -> str:
        return self.to_variant({dim: s.model_dump() for dim, s in scores.items()})

    def _row_to_episode(self, row: Dict[str, Any]) -> ObservationEpisode:
        """Convert Snowflake row to ObservationEpisode."""
        raw_scores = self.from_variant(row["SCORES"], {})
        return ObservationEpisode(
            id=UUID(row["ID"]),
            occasion_id=row["OCCASION_ID"],
            subject_id=row["SUBJECT_ID"],
            status=EpisodeStatus(row["STATUS"]),
            notes=row["NOTES"] or "",
            agreements=self.from_variant(row["AGREEMENTS"], []),
            scores={dim: DimensionScore.model_validate(s) for dim, s in raw_scores.items()},
            error_message=row["ERROR_MESSAGE"],
            model=row["MODEL"],
            generation_metadata=self.from_variant(row["GENERATION_METADATA"], {}),
            created_at=self.normalize_timestamp(row["CREATED_AT"]),
            completed_at=self.normalize_timestamp(row["COMPLETED_AT"]),
        )
