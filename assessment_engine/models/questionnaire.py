import re
from pydantic import BaseModel, Field, field_validator, model_validator
from datetime import datetime, timezone
from typing import Annotated, Any, List, Literal, Optional, Union

from assessment_engine.models.enumerations import ConditionOperator, DiscTrait


# Branch target that terminates the session
END_OF_GRAPH = "end"

# Graph-level tags that switch on the closed-form scorers
GRAPH_TAG_BIG_FIVE = "big-five"
GRAPH_TAG_DISC = "disc"
DISC_TAG_PREFIX = "disc:"


class ChoiceOption(BaseModel):
    """
    One selectable option of a choice question.
    """

    value: str = Field(..., min_length=1, max_length=255, description="Stored answer value")
    label: str = Field(..., min_length=1, description="Display label")
    traits: Optional[List[DiscTrait]] = Field(
        default=None,
        description="Explicit trait letters this option votes for",
    )
    next_question_id: Optional[str] = Field(
        default=None,
        description="Branch target used when this option is selected and no condition matched",
    )


class BranchCondition(BaseModel):
    """
    Conditional branch rule. Rules are evaluated in declaration order.
    """

    operator: ConditionOperator
    value: Any = Field(..., description="Comparison operand")
    question_id: Optional[str] = Field(
        default=None,
        description="Evaluate against this question's stored answer instead of the submitted value",
    )
    next_question_id: str = Field(..., min_length=1, description="Target question id or 'end'")


class RatingScale(BaseModel):
    min: int = Field(default=1)
    max: int = Field(default=5)
    min_label: Optional[str] = None
    max_label: Optional[str] = None

    @model_validator(mode="after")
    def validate_bounds(self):
        if self.max <= self.min:
            raise ValueError("scale.max must be greater than scale.min")
        return self


class QuestionBase(BaseModel):
    """
    Fields shared by every question variant.
    """

    id: str = Field(..., min_length=1, max_length=100, description="Stable question key")
    text: str = Field(..., min_length=1, description="Question wording")
    required: bool = Field(default=True)
    section_id: Optional[str] = Field(default=None)
    tags: List[str] = Field(default_factory=list, description="Routing tags, e.g. 'disc:leadership'")
    next_question_id: Optional[str] = Field(
        default=None,
        description="Default next question when no rule matched",
    )
    conditions: List[BranchCondition] = Field(default_factory=list)

    def disc_contexts(self) -> List[str]:
        """Contexts named by 'disc:<context>' tags."""
        return [t[len(DISC_TAG_PREFIX):] for t in self.tags if t.startswith(DISC_TAG_PREFIX)]


class SingleChoiceQuestion(QuestionBase):
    type: Literal["single_choice"] = "single_choice"
    options: List[ChoiceOption] = Field(..., min_length=1)

    def option_for(self, value: Any) -> Optional[ChoiceOption]:
        for option in self.options:
            if option.value == value:
                return option
        return None


class MultipleChoiceQuestion(QuestionBase):
    type: Literal["multiple_choice"] = "multiple_choice"
    options: List[ChoiceOption] = Field(..., min_length=1)
    min_selections: Optional[int] = Field(default=None, ge=0)
    max_selections: Optional[int] = Field(default=None, ge=1)

    def option_for(self, value: Any) -> Optional[ChoiceOption]:
        for option in self.options:
            if option.value == value:
                return option
        return None

    @model_validator(mode="after")
    def validate_selection_bounds(self):
        if (
            self.min_selections is not None
            and self.max_selections is not None
            and self.max_selections < self.min_selections
        ):
            raise ValueError("max_selections must be >= min_selections")
        return self


class RatingQuestion(QuestionBase):
    type: Literal["rating"] = "rating"
    scale: RatingScale = Field(default_factory=RatingScale)
    reverse_scored: bool = Field(default=False, description="Score is mirrored on the scale")


class ShortTextQuestion(QuestionBase):
    type: Literal["short_text"] = "short_text"
    min_length: Optional[int] = Field(default=None, ge=0)
    max_length: Optional[int] = Field(default=500, ge=1)
    pattern: Optional[str] = Field(default=None, description="Regex searched in the answer")


class LongTextQuestion(QuestionBase):
    type: Literal["long_text"] = "long_text"
    min_length: Optional[int] = Field(default=None, ge=0)
    max_length: Optional[int] = Field(default=5000, ge=1)
    pattern: Optional[str] = Field(default=None)


Question = Annotated[
    Union[
        SingleChoiceQuestion,
        MultipleChoiceQuestion,
        RatingQuestion,
        ShortTextQuestion,
        LongTextQuestion,
    ],
    Field(discriminator="type"),
]

ChoiceQuestion = (SingleChoiceQuestion, MultipleChoiceQuestion)
TextQuestion = (ShortTextQuestion, LongTextQuestion)


class NavigationGraph(BaseModel):
    """
    Published questionnaire. Questions are immutable once stored.
    """

    id: str = Field(..., min_length=1, max_length=100)
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    questions: List[Question] = Field(..., min_length=1)
    start_question_id: str = Field(..., min_length=1)
    end_question_ids: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, v: List[str]) -> List[str]:
        return [t.strip().lower() for t in v if t.strip()]

    def get_question(self, question_id: Optional[str]) -> Optional[Question]:
        if question_id is None:
            return None
        for question in self.questions:
            if question.id == question_id:
                return question
        return None

    @property
    def question_ids(self) -> List[str]:
        return [q.id for q in self.questions]

    @property
    def is_big_five(self) -> bool:
        return GRAPH_TAG_BIG_FIVE in self.tags

    @property
    def is_disc(self) -> bool:
        return GRAPH_TAG_DISC in self.tags or any(q.disc_contexts() for q in self.questions)

    def structural_problems(self) -> List[str]:
        """
        Check the publish-time invariants.

        Returns:
            List of human-readable problems; empty when the graph is valid
        """
        problems: List[str] = []
        ids = self.question_ids
        known = set(ids)

        seen = set()
        for qid in ids:
            if qid in seen:
                problems.append(f"duplicate question id '{qid}'")
            seen.add(qid)

        if self.start_question_id not in known:
            problems.append(f"start_question_id '{self.start_question_id}' does not exist")

        for end_id in self.end_question_ids:
            if end_id not in known:
                problems.append(f"end question '{end_id}' does not exist")

        for question in self.questions:
            if question.next_question_id and target_missing(question.next_question_id, known):
                problems.append(
                    f"question '{question.id}' default target '{question.next_question_id}' does not exist"
                )
            for index, rule in enumerate(question.conditions):
                if target_missing(rule.next_question_id, known):
                    problems.append(
                        f"question '{question.id}' rule {index} target '{rule.next_question_id}' does not exist"
                    )
                if rule.question_id and rule.question_id not in known:
                    problems.append(
                        f"question '{question.id}' rule {index} references unknown question '{rule.question_id}'"
                    )
            if isinstance(question, ChoiceQuestion):
                values = [o.value for o in question.options]
                if len(values) != len(set(values)):
                    problems.append(f"question '{question.id}' has duplicate option values")
                for option in question.options:
                    if option.next_question_id and target_missing(option.next_question_id, known):
                        problems.append(
                            f"question '{question.id}' option '{option.value}' target "
                            f"'{option.next_question_id}' does not exist"
                        )
            if isinstance(question, TextQuestion) and question.pattern:
                try:
                    re.compile(question.pattern)
                except re.error as e:
                    problems.append(f"question '{question.id}' has an invalid pattern: {e}")

        return problems


def target_missing(target: str, known: set) -> bool:
    return target != END_OF_GRAPH and target not in known


class GraphSummary(BaseModel):
    id: str
    title: str
    question_count: int
    tags: List[str]
    is_active: bool

