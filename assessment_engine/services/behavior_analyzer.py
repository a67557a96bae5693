"""
Behavior Analyzer - Assessment Engine
assessment_engine/services/behavior_analyzer.py

Scores one observation episode (notes + agreements from a one-to-one
meeting) on the 12 behavioral dimensions, 1-5 each, via the
text-generation gateway.

Reply handling:
  1. take the ```json fenced block, else the outermost {...}
  2. parse; on failure strip trailing commas, // comments and control
     characters and parse again
  3. keep scores in [1, 5] (rounded to int); evidence only next to a score,
     trimmed to 200 characters
"""

import json
import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import structlog

from assessment_engine.config import get_settings
from assessment_engine.core.exceptions import ExternalServiceError
from assessment_engine.models.enumerations import BehaviorDimension
from assessment_engine.models.scoring import ALL_DIMENSIONS, DimensionScore, empty_score_sheet
from assessment_engine.services.llm_client import LLMClient

logger = structlog.get_logger(__name__)

MIN_NOTES_LENGTH = 10
EVIDENCE_MAX_LENGTH = 200

ANALYZER_TEMPERATURE = 0.2
ANALYZER_MAX_TOKENS = 2500
ANALYZER_TIMEOUT_SECONDS = 30.0

DIMENSION_DESCRIPTIONS: Dict[BehaviorDimension, str] = {
    BehaviorDimension.PROBLEM_ARTICULATION: "states problems clearly and concretely",
    BehaviorDimension.INTEREST_ARTICULATION: "expresses own interests, needs and preferences",
    BehaviorDimension.PROACTIVE_COMMUNICATION: "raises topics and shares information without being asked",
    BehaviorDimension.COLLABORATIVE_BEHAVIOR: "works with others, seeks joint solutions",
    BehaviorDimension.FEEDBACK_RECEPTIVITY: "accepts and acts on feedback",
    BehaviorDimension.TASK_OWNERSHIP: "takes responsibility for tasks and outcomes",
    BehaviorDimension.GOAL_ALIGNMENT: "connects own work with team and company goals",
    BehaviorDimension.LEARNING_AGILITY: "is willing to learn and adapt",
    BehaviorDimension.DECISION_QUALITY: "makes reasoned, well-founded decisions",
    BehaviorDimension.EMOTIONAL_INTELLIGENCE: "recognizes and manages emotions, own and others'",
    BehaviorDimension.COMMITMENT_TO_AGREEMENTS: "keeps earlier agreements and commitments",
    BehaviorDimension.STRATEGIC_THINKING: "thinks beyond the current task, long-term view",
}

SYSTEM_PROMPT = (
    "You are an expert in the Behavioral Observation Scale (BOS) method. "
    "Rate the employee's behavior observed in a one-to-one meeting using only "
    "the manager's notes and the agreements provided.\n\n"
    "Scale: 1 - behavior clearly absent or negative, 2 - weak, 3 - moderate, "
    "4 - clearly present, 5 - outstanding.\n"
    "If a behavior cannot be observed from the data, use null for both score and evidence. "
    "Evidence is a short quote or fact from the notes, at most 200 characters.\n\n"
    "Behaviors:\n"
    + "\n".join(f"- {dim.value}: {text}" for dim, text in DIMENSION_DESCRIPTIONS.items())
    + "\n\nAnswer with JSON only, in the form:\n"
    '{"scores": {"<behavior>": {"score": 1-5 or null, "evidence": "..." or null}, ...}}'
)

_FENCED_JSON = re.compile(r"```json\s*([\s\S]*?)```", re.IGNORECASE)
_BRACE_JSON = re.compile(r"\{[\s\S]*\}")
_TRAILING_COMMA = re.compile(r",\s*([}\]])")
_LINE_COMMENT = re.compile(r"//[^\n]*")
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")


@dataclass
class AnalysisResult:
    scores: Dict[str, DimensionScore]
    model: Optional[str]
    metadata: Dict[str, Any] = field(default_factory=dict)


def extract_json(raw: str) -> Optional[str]:
    fenced = _FENCED_JSON.search(raw)
    if fenced:
        return fenced.group(1).strip()
    brace = _BRACE_JSON.search(raw)
    if brace:
        return brace.group(0).strip()
    return None


def clean_json(text: str) -> str:
    text = _TRAILING_COMMA.sub(r"\1", text)
    text = _LINE_COMMENT.sub("", text)
    return _CONTROL_CHARS.sub("", text)


def validate_scores(raw_scores: Any) -> Dict[str, DimensionScore]:
    """Normalize a raw score map; unknown keys are dropped, missing ones stay null."""
    scores = empty_score_sheet()
    if not isinstance(raw_scores, dict):
        return scores

    for dim in ALL_DIMENSIONS:
        raw = raw_scores.get(dim)
        if not isinstance(raw, dict):
            continue

        score: Optional[int] = None
        value = raw.get("score")
        if value is not None and not isinstance(value, bool):
            try:
                number = float(value)
            except (TypeError, ValueError):
                number = None
            if number is not None and 1 <= number <= 5:
                score = int(number + 0.5)

        evidence = raw.get("evidence")
        if score is None or not isinstance(evidence, str) or not evidence.strip():
            evidence = None
        else:
            evidence = evidence.strip()[:EVIDENCE_MAX_LENGTH]

        scores[dim] = DimensionScore(score=score, evidence=evidence)
    return scores


def parse_reply(text: str) -> Dict[str, DimensionScore]:
    """
    Raises:
        ValueError: no JSON object in the reply, or it cannot be parsed
    """
    json_text = extract_json(text)
    if json_text is None:
        raise ValueError("No JSON object found in analyzer reply")
    try:
        parsed = json.loads(json_text)
    except json.JSONDecodeError:
        parsed = json.loads(clean_json(json_text))
    if not isinstance(parsed, dict):
        raise ValueError("Analyzer reply is not a JSON object")
    return validate_scores(parsed.get("scores"))


def build_user_prompt(notes: str, agreements: List[str]) -> str:
    agreement_lines = "\n".join(f"- {a}" for a in agreements) or "-"
    return f"# Meeting notes\n{notes.strip() or '-'}\n\n# Agreements\n{agreement_lines}"


def has_enough_input(notes: str, agreements: List[str]) -> bool:
    return len(notes.strip()) > MIN_NOTES_LENGTH or bool(agreements)


class BehaviorAnalyzer:
    """Turns episode notes into a 12-dimension score sheet."""

    def __init__(self, llm: LLMClient, model: Optional[str] = None):
        self.llm = llm
        self.model = model or get_settings().model_for("episode")

    async def analyze(self, notes: str, agreements: List[str]) -> AnalysisResult:
        """
        Raises:
            ExternalServiceError: gateway failure or unparseable reply
        """
        input_data = {"notes_length": len(notes), "agreements_count": len(agreements)}
        if not has_enough_input(notes, agreements):
            logger.info("behavior_analysis_skipped", reason="insufficient_input", **input_data)
            return AnalysisResult(
                scores=empty_score_sheet(),
                model=None,
                metadata={"skipped": "insufficient_input", "input_data": input_data},
            )

        started = time.monotonic()
        result = await self.llm.generate(
            SYSTEM_PROMPT,
            build_user_prompt(notes, agreements),
            model=self.model,
            temperature=ANALYZER_TEMPERATURE,
            max_tokens=ANALYZER_MAX_TOKENS,
            timeout_seconds=ANALYZER_TIMEOUT_SECONDS,
        )
        duration_ms = int((time.monotonic() - started) * 1000)

        try:
            scores = parse_reply(result.text)
        except ValueError as e:
            logger.warning("behavior_analysis_unparseable", error=str(e), reply=result.text[:200])
            raise ExternalServiceError(f"Behavior analysis reply could not be parsed: {e}")

        logger.info(
            "behavior_analysis_completed",
            model=result.model,
            duration_ms=duration_ms,
            scored_dimensions=sum(1 for s in scores.values() if s.score is not None),
        )
        return AnalysisResult(
            scores=scores,
            model=result.model,
            metadata={
                "generation_time_ms": duration_ms,
                "finish_reason": result.finish_reason,
                "input_data": input_data,
            },
        )
