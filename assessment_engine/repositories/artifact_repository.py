"""
Narrative Artifact Repository - Assessment Engine
assessment_engine/repositories/artifact_repository.py

Latest generated narrative per subject, stored with its context fingerprint.
"""

from typing import Any, Dict, Optional

from assessment_engine.models.scoring import NarrativeArtifact
from assessment_engine.repositories.base import BaseRepository


class ArtifactRepository(BaseRepository):
    """Repository for NarrativeArtifact rows."""

    TABLE_NAME = "NARRATIVE_ARTIFACTS"

    def upsert(self, artifact: NarrativeArtifact) -> NarrativeArtifact:
        sql = """
            MERGE INTO NARRATIVE_ARTIFACTS t
            USING (SELECT %s AS SUBJECT_ID) s
            ON t.SUBJECT_ID = s.SUBJECT_ID
            WHEN NOT MATCHED THEN INSERT (SUBJECT_ID, CONTENT, FINGERPRINT, MODEL, UPDATED_AT)
                VALUES (%s, %s, %s, %s, %s)
            WHEN MATCHED THEN UPDATE SET
                CONTENT = %s,
                FINGERPRINT = %s,
                MODEL = %s,
                UPDATED_AT = %s
        """
        params = (
            artifact.subject_id,
            # INSERT values
            artifact.subject_id, artifact.content, artifact.fingerprint,
            artifact.model, artifact.updated_at,
            # UPDATE values
            artifact.content, artifact.fingerprint, artifact.model, artifact.updated_at,
        )
        self.execute_query(sql, params, commit=True)
        return artifact

    def get(self, subject_id: str) -> Optional[NarrativeArtifact]:
        sql = """
            SELECT SUBJECT_ID, CONTENT, FINGERPRINT, MODEL, UPDATED_AT
            FROM NARRATIVE_ARTIFACTS
            WHERE SUBJECT_ID = %s
        """
        row = self.execute_query(sql, (subject_id,), fetch_one=True)
        if not row:
            return None
        return self._row_to_artifact(row)

    def _row_to_artifact(self, row: Dict[str, Any]) -> NarrativeArtifact:
        return NarrativeArtifact(
            subject_id=row["SUBJECT_ID"],
            content=row["CONTENT"] or "",
            fingerprint=row["FINGERPRINT"],
            model=row["MODEL"],
            updated_at=self.normalize_timestamp(row["UPDATED_AT"]),
        )
