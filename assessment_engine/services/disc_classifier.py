"""
DISC Open-Answer Classifier - Assessment Engine
assessment_engine/services/disc_classifier.py

Asks the text-generation gateway to map one open-text answer to a single DISC
letter. The indicator block depends on the question's ``disc:<context>`` tag:

    leadership   leading people and taking initiative
    obstacle     overcoming obstacles
    difficult    working with difficult people
    (other)      generic indicators
"""

import asyncio
from dataclasses import dataclass
from typing import Optional

import structlog

from assessment_engine.config import get_settings
from assessment_engine.core.exceptions import ExternalServiceError, GenerationCancelledError
from assessment_engine.scoring.trait_resolver import parse_classifier_label
from assessment_engine.services.llm_client import LLMClient

logger = structlog.get_logger(__name__)

SYSTEM_PROMPT = (
    "You are an assessment model. Your task is to interpret an employee's open answer "
    "to a situational question and relate it to the DISC indicators "
    "(D - Dominance, I - Influence, S - Steadiness, C - Conscientiousness). "
    "Reply with EXACTLY ONE Latin letter: D or I or S or C. "
    "Nothing else: no text, no explanation, no punctuation."
)

PROMPT_INTRO = "Analyze the employee's open one-to-one answer and relate it to the DISC indicators."
PROMPT_OUTRO = "Return ONLY ONE LETTER from the list: D, I, S or C. No additional text!"

DISC_INDICATORS = {
    "leadership": (
        "D: Focus on results, fast decisions, control of the process\n"
        "I: Motivating the team, involving people, enthusiasm\n"
        "S: Teamwork, support, steady gradual progress\n"
        "C: Planning, quality, risk analysis"
    ),
    "obstacle": (
        "D: Aggressive approach, fast action, tackling the problem head-on\n"
        "I: Seeking support, using connections, positive attitude\n"
        "S: Patient solution, asking for help, gradual progress\n"
        "C: Systematic analysis, root-cause search, methodical approach"
    ),
    "difficult": (
        "D: Direct confrontation, setting boundaries, demanding results\n"
        "I: Building rapport, finding common interests, charisma\n"
        "S: Patience, understanding, gradually building trust\n"
        "C: Focus on facts, structured approach, avoiding emotions"
    ),
}

GENERIC_INDICATORS = (
    "D: Decisive, results-oriented, direct\n"
    "I: Sociable, persuasive, optimistic\n"
    "S: Calm, supportive, consistent\n"
    "C: Analytical, precise, careful"
)


@dataclass
class ClassifierOutcome:
    question_id: str
    label: Optional[str]
    raw_text: str
    model: Optional[str]
    error: Optional[str] = None


def build_user_prompt(context: str, answer_text: str) -> str:
    indicators = DISC_INDICATORS.get(context, GENERIC_INDICATORS)
    return (
        f"{PROMPT_INTRO}\n\nIndicators:\n{indicators}\n\n{PROMPT_OUTRO}"
        f'\n\nEmployee\'s open answer: "{answer_text}"'
    )


class DiscClassifier:
    """One gateway call per open-text answer."""

    def __init__(self, llm: LLMClient, model: Optional[str] = None):
        self.llm = llm
        self.model = model or get_settings().model_for("disc")

    async def classify(
        self,
        question_id: str,
        answer_text: str,
        context: str,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ClassifierOutcome:
        """
        Classify one answer. Gateway failures, malformed responses and
        unparseable replies give a None label. Only cancellation propagates.
        """
        try:
            result = await self.llm.generate(
                SYSTEM_PROMPT,
                build_user_prompt(context, answer_text),
                model=self.model,
                cancel_event=cancel_event,
            )
        except GenerationCancelledError:
            raise
        except ExternalServiceError as e:
            logger.warning("disc_classifier_failed", question_id=question_id, context=context, error=e.message)
            return ClassifierOutcome(question_id, None, "", self.model, error=e.message)
        except Exception as e:
            logger.warning(
                "disc_classifier_error", question_id=question_id, context=context, error=str(e), exc_info=True
            )
            return ClassifierOutcome(question_id, None, "", self.model, error=str(e) or type(e).__name__)

        label = parse_classifier_label(result.text)
        if label is None:
            logger.warning("disc_classifier_unparseable", question_id=question_id, raw=result.text[:50])
        return ClassifierOutcome(question_id, label, result.text, result.model)
