from pydantic import BaseModel, Field, model_validator
from uuid import UUID, uuid4
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from assessment_engine.models.enumerations import BehaviorDimension, EpisodeStatus


ALL_DIMENSIONS: List[str] = [d.value for d in BehaviorDimension]


class DimensionScore(BaseModel):
    """
    Score for one behavioral dimension. Both fields are null when not observed.
    """

    score: Optional[int] = Field(default=None, ge=1, le=5)
    evidence: Optional[str] = Field(default=None, max_length=200)

    @model_validator(mode="after")
    def evidence_requires_score(self):
        if self.score is None:
            self.evidence = None
        return self


def empty_score_sheet() -> Dict[str, DimensionScore]:
    return {dim: DimensionScore() for dim in ALL_DIMENSIONS}


class ObservationEpisode(BaseModel):
    """
    One periodic behavioral scoring event, unique per occasion.
    """

    id: UUID = Field(default_factory=uuid4)
    occasion_id: str = Field(..., min_length=1, max_length=100)
    subject_id: str = Field(..., min_length=1, max_length=100)
    status: EpisodeStatus = EpisodeStatus.PENDING
    notes: str = Field(default="")
    agreements: List[str] = Field(default_factory=list)
    scores: Dict[str, DimensionScore] = Field(default_factory=empty_score_sheet)
    error_message: Optional[str] = None
    model: Optional[str] = None
    generation_metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None

    def score_values(self) -> Dict[str, Optional[int]]:
        return {dim: self.scores.get(dim, DimensionScore()).score for dim in ALL_DIMENSIONS}


class SubmitEpisodeRequest(BaseModel):
    occasion_id: str = Field(..., min_length=1, max_length=100)
    subject_id: str = Field(..., min_length=1, max_length=100)
    notes: str = Field(default="", max_length=50000)
    agreements: List[str] = Field(default_factory=list)


class EpisodeStatusResponse(BaseModel):
    occasion_id: str
    exists: bool
    episode_id: Optional[UUID] = None
    status: Optional[EpisodeStatus] = None
    error_message: Optional[str] = None


class AggregateProfile(BaseModel):
    """
    Decayed rolling profile for a subject. Replaced wholesale on recompute.
    """

    subject_id: str
    scores: Dict[str, Optional[float]] = Field(default_factory=dict)
    episode_count: int = Field(default=0, ge=0, le=6)
    last_updated_at: Optional[datetime] = None


class NarrativeArtifact(BaseModel):
    """
    Latest downstream narrative for a subject plus the digest it was built from.
    """

    subject_id: str
    content: str
    fingerprint: Optional[str] = None
    model: Optional[str] = None
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class FingerprintResponse(BaseModel):
    subject_id: str
    fingerprint: str


class RegenerationCheckResponse(BaseModel):
    subject_id: str
    needs_regeneration: bool
    reason: str
    fingerprint: str
    stored_fingerprint: Optional[str] = None
