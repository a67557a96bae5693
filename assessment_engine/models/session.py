from pydantic import BaseModel, Field
from uuid import UUID, uuid4
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from assessment_engine.models.enumerations import DiscTrait, QuestionType, SessionStatus
from assessment_engine.models.questionnaire import Question


# Order matters for smart-mode matching: exact types win, "3" stays a string
AnswerValue = Union[str, List[str], int, float]

TERMINAL_STATUSES = (SessionStatus.COMPLETED, SessionStatus.ABANDONED)


class Answer(BaseModel):
    """
    One stored answer. At most one per question id within a session.
    """

    question_id: str = Field(..., min_length=1)
    question_type: QuestionType
    value: AnswerValue
    traits: Optional[List[DiscTrait]] = Field(
        default=None,
        description="Explicit trait letters supplied with the answer",
    )
    submitted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Session(BaseModel):
    """
    A respondent's walk through one navigation graph.
    """

    id: UUID = Field(default_factory=uuid4)
    graph_id: str
    subject_id: Optional[str] = None
    context_id: Optional[str] = None
    status: SessionStatus = SessionStatus.STARTED
    current_question_id: Optional[str] = None
    answers: List[Answer] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None
    last_activity_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    version: int = Field(default=0, ge=0, description="Optimistic concurrency counter")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def answer_for(self, question_id: str) -> Optional[Answer]:
        for answer in self.answers:
            if answer.question_id == question_id:
                return answer
        return None

    def answers_by_question(self) -> Dict[str, Answer]:
        return {a.question_id: a for a in self.answers}

    def upsert_answer(self, answer: Answer) -> None:
        """Replace the answer for the same question, or append."""
        for index, existing in enumerate(self.answers):
            if existing.question_id == answer.question_id:
                self.answers[index] = answer
                return
        self.answers.append(answer)


class Progress(BaseModel):
    current: int = Field(..., ge=0)
    total: int = Field(..., ge=1)
    percentage: int = Field(..., ge=0, le=100)


class StartSessionRequest(BaseModel):
    graph_id: str = Field(..., min_length=1)
    subject_id: Optional[str] = Field(default=None, max_length=100)
    context_id: Optional[str] = Field(default=None, max_length=100)


class SubmitAnswerRequest(BaseModel):
    question_id: str = Field(..., min_length=1)
    value: Optional[AnswerValue] = None
    traits: Optional[List[DiscTrait]] = None


class SessionStepResponse(BaseModel):
    """
    Returned by start/submit/resume: where the respondent is now.
    """

    session_id: UUID
    status: SessionStatus
    question: Optional[Question] = None
    progress: Progress
    completed: bool = False
    version: int


class SweepRequest(BaseModel):
    threshold_hours: Optional[float] = Field(default=None, gt=0)


class SweepResponse(BaseModel):
    abandoned: int
    threshold_hours: float
    cutoff: datetime
