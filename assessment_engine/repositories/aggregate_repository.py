"""
Aggregate Profile Repository - Assessment Engine
assessment_engine/repositories/aggregate_repository.py

One row per subject, replaced wholesale on every recompute.
"""

from typing import Any, Dict, Optional

from assessment_engine.models.scoring import AggregateProfile
from assessment_engine.repositories.base import BaseRepository


class AggregateRepository(BaseRepository):
    """Repository for decayed subject profiles."""

    TABLE_NAME = "SUBJECT_AGGREGATES"

    def upsert(self, profile: AggregateProfile) -> AggregateProfile:
        sql = """
            MERGE INTO SUBJECT_AGGREGATES t
            USING (SELECT %s AS SUBJECT_ID) s
            ON t.SUBJECT_ID = s.SUBJECT_ID
            WHEN NOT MATCHED THEN INSERT (SUBJECT_ID, SCORES, EPISODE_COUNT, LAST_UPDATED_AT)
                VALUES (%s, PARSE_JSON(%s), %s, %s)
            WHEN MATCHED THEN UPDATE SET
                SCORES = PARSE_JSON(%s),
                EPISODE_COUNT = %s,
                LAST_UPDATED_AT = %s
        """
        scores_json = self.to_variant(profile.scores)
        params = (
            profile.subject_id,
            # INSERT values
            profile.subject_id, scores_json, profile.episode_count, profile.last_updated_at,
            # UPDATE values
            scores_json, profile.episode_count, profile.last_updated_at,
        )
        self.execute_query(sql, params, commit=True)
        return profile

    def get(self, subject_id: str) -> Optional[AggregateProfile]:
        sql = """
            SELECT SUBJECT_ID, SCORES, EPISODE_COUNT, LAST_UPDATED_AT
            FROM SUBJECT_AGGREGATES
            WHERE SUBJECT_ID = %s
        """
        row = self.execute_query(sql, (subject_id,), fetch_one=True)
        if not row:
            return None
        return self._row_to_profile(row)

    def _row_to_profile(self, row: Dict[str, Any]) -> AggregateProfile:
        return AggregateProfile(
            subject_id=row["SUBJECT_ID"],
            scores=self.from_variant(row["SCORES"], {}),
            episode_count=int(row["EPISODE_COUNT"] or 0),
            last_updated_at=self.normalize_timestamp(row["LAST_UPDATED_AT"]),
        )
