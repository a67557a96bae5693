from enum import Enum

class QuestionType(str, Enum):
    SINGLE_CHOICE = "single_choice"
    MULTIPLE_CHOICE = "multiple_choice"
    RATING = "rating"
    SHORT_TEXT = "short_text"
    LONG_TEXT = "long_text"

class SessionStatus(str, Enum):
    STARTED = "started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABANDONED = "abandoned"

class ProcessingStatus(str, Enum):
    """Reconciliation status kept in session metadata."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"

class EpisodeStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

class ConditionOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    GREATER_OR_EQUAL = "greater_or_equal"
    LESS_OR_EQUAL = "less_or_equal"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    IN = "in"
    NOT_IN = "not_in"

class DiscTrait(str, Enum):
    D = "D"   # Dominance
    I = "I"   # Influence
    S = "S"   # Steadiness
    C = "C"   # Conscientiousness

class BigFiveFactor(str, Enum):
    OPENNESS = "op"
    CONSCIENTIOUSNESS = "co"
    EXTRAVERSION = "ex"
    AGREEABLENESS = "ag"
    NEUROTICISM = "ne"

class ProfileHintKind(str, Enum):
    PURE = "pure"
    BLENDED = "blended"
    INCONCLUSIVE = "inconclusive"

class BehaviorDimension(str, Enum):
    PROBLEM_ARTICULATION = "problem_articulation"
    INTEREST_ARTICULATION = "interest_articulation"
    PROACTIVE_COMMUNICATION = "proactive_communication"
    COLLABORATIVE_BEHAVIOR = "collaborative_behavior"
    FEEDBACK_RECEPTIVITY = "feedback_receptivity"
    TASK_OWNERSHIP = "task_ownership"
    GOAL_ALIGNMENT = "goal_alignment"
    LEARNING_AGILITY = "learning_agility"
    DECISION_QUALITY = "decision_quality"
    EMOTIONAL_INTELLIGENCE = "emotional_intelligence"
    COMMITMENT_TO_AGREEMENTS = "commitment_to_agreements"
    STRATEGIC_THINKING = "strategic_thinking"
