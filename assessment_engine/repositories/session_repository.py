"""
Session Repository - Assessment Engine
assessment_engine/repositories/session_repository.py

Data access layer for questionnaire sessions. Every mutation is conditional on
the VERSION read by the caller.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from assessment_engine.models.enumerations import SessionStatus
from assessment_engine.models.session import Answer, Session
from assessment_engine.repositories.base import BaseRepository

_SELECT_COLUMNS = """
    ID, GRAPH_ID, SUBJECT_ID, CONTEXT_ID, STATUS, CURRENT_QUESTION_ID,
    ANSWERS, METADATA, STARTED_AT, COMPLETED_AT, LAST_ACTIVITY_AT, VERSION
"""


class SessionRepository(BaseRepository):
    """Repository for Session persistence."""

    TABLE_NAME = "ASSESSMENT_SESSIONS"

    def create(self, session: Session) -> Session:
        sql = """
            INSERT INTO ASSESSMENT_SESSIONS (ID, GRAPH_ID, SUBJECT_ID, CONTEXT_ID, STATUS,
                                             CURRENT_QUESTION_ID, ANSWERS, METADATA,
                                             STARTED_AT, COMPLETED_AT, LAST_ACTIVITY_AT, VERSION)
            SELECT %s, %s, %s, %s, %s, %s, PARSE_JSON(%s), PARSE_JSON(%s), %s, %s, %s, %s
        """
        params = (
            str(session.id),
            session.graph_id,
            session.subject_id,
            session.context_id,
            session.status.value,
            session.current_question_id,
            self._answers_json(session.answers),
            self.to_variant(session.metadata),
            session.started_at,
            session.completed_at,
            session.last_activity_at,
            session.version,
        )
        self.execute_query(sql, params, commit=True)
        return session

    def get_by_id(self, session_id: UUID) -> Optional[Session]:
        sql = f"SELECT {_SELECT_COLUMNS} FROM ASSESSMENT_SESSIONS WHERE ID = %s"
        row = self.execute_query(sql, (str(session_id),), fetch_one=True)
        if not row:
            return None
        return self._row_to_session(row)

    def update_if_version(self, session: Session, expected_version: int) -> bool:
        """
        Write all mutable fields and bump VERSION, only if VERSION is unchanged.

        Returns:
            True when the row was updated, False on a concurrent modification
        """
        sql = """
            UPDATE ASSESSMENT_SESSIONS
            SET STATUS = %s,
                CURRENT_QUESTION_ID = %s,
                ANSWERS = PARSE_JSON(%s),
                METADATA = PARSE_JSON(%s),
                COMPLETED_AT = %s,
                LAST_ACTIVITY_AT = %s,
                VERSION = VERSION + 1
            WHERE ID = %s AND VERSION = %s
        """
        params = (
            session.status.value,
            session.current_question_id,
            self._answers_json(session.answers),
            self.to_variant(session.metadata),
            session.completed_at,
            session.last_activity_at,
            str(session.id),
            expected_version,
        )
        return self.execute_conditional(sql, params)

    def update_metadata(self, session_id: UUID, metadata: Dict[str, Any], expected_version: int) -> bool:
        """Metadata-only write, used by reconciliation after completion."""
        sql = """
            UPDATE ASSESSMENT_SESSIONS
            SET METADATA = PARSE_JSON(%s), VERSION = VERSION + 1
            WHERE ID = %s AND VERSION = %s
        """
        params = (self.to_variant(metadata), str(session_id), expected_version)
        return self.execute_conditional(sql, params)

    def mark_abandoned(self, session_id: UUID) -> bool:
        """Flip one open session to abandoned. Touches only STATUS and VERSION."""
        sql = """
            UPDATE ASSESSMENT_SESSIONS
            SET STATUS = %s, VERSION = VERSION + 1
            WHERE ID = %s AND STATUS IN (%s, %s)
        """
        params = (
            SessionStatus.ABANDONED.value,
            str(session_id),
            SessionStatus.STARTED.value,
            SessionStatus.IN_PROGRESS.value,
        )
        return self.execute_conditional(sql, params)

    def abandon_idle(self, cutoff: datetime) -> int:
        """
        Abandon every open session idle since before ``cutoff``.

        Single status-guarded statement, so re-running it is a no-op.
        """
        sql = """
            UPDATE ASSESSMENT_SESSIONS
            SET STATUS = %s, VERSION = VERSION + 1
            WHERE STATUS IN (%s, %s) AND LAST_ACTIVITY_AT < %s
        """
        params = (
            SessionStatus.ABANDONED.value,
            SessionStatus.STARTED.value,
            SessionStatus.IN_PROGRESS.value,
            cutoff,
        )
        return self.execute_query(sql, params, commit=True) or 0

    def completed_stats(self, subject_id: str) -> Tuple[int, Optional[datetime]]:
        """Count and latest COMPLETED_AT of a subject's completed sessions."""
        sql = """
            SELECT COUNT(*) AS TOTAL, MAX(COMPLETED_AT) AS LATEST
            FROM ASSESSMENT_SESSIONS
            WHERE SUBJECT_ID = %s AND STATUS = %s
        """
        row = self.execute_query(sql, (subject_id, SessionStatus.COMPLETED.value), fetch_one=True)
        if not row:
            return 0, None
        return int(row["TOTAL"] or 0), self.normalize_timestamp(row["LATEST"])

    def list_completed_for_subject(self, subject_id: str, limit: int = 20) -> List[Session]:
        sql = f"""
            SELECT {_SELECT_COLUMNS}
            FROM ASSESSMENT_SESSIONS
            WHERE SUBJECT_ID = %s AND STATUS = %s
            ORDER BY COMPLETED_AT DESC
            LIMIT %s
        """
        rows = self.execute_query(
            sql, (subject_id, SessionStatus.COMPLETED.value, limit), fetch_all=True
        ) or []
        return [self._row_to_session(row) for row in rows]

    def _answers_json(self, answers: List[Answer]) -> str:
        return self.to_variant([a.model_dump(mode="json") for a in answers])

    def _row_to_session(self, row: Dict[str, Any]) -> Session:
        """Convert Snowflake row to Session."""
        return Session(
            id=UUID(row["ID"]),
            graph_id=row["GRAPH_ID"],
            subject_id=row["SUBJECT_ID"],
            context_id=row["CONTEXT_ID"],
            status=SessionStatus(row["STATUS"]),
            current_question_id=row["CURRENT_QUESTION_ID"],
            answers=[Answer.model_validate(a) for a in self.from_variant(row["ANSWERS"], [])],
            metadata=self.from_variant(row["METADATA"], {}),
            started_at=self.normalize_timestamp(row["STARTED_AT"]),
            completed_at=self.normalize_timestamp(row["COMPLETED_AT"]),
            last_activity_at=self.normalize_timestamp(row["LAST_ACTIVITY_AT"]),
            version=int(row["VERSION"]),
        )
