"""
Answer Reconciliation Service - Assessment Engine
assessment_engine/services/reconciliation_service.py

Runs once a session completes:

  1. DISC: per answered question pick one trait source, in precedence order
       explicit   answer traits, option traits, or the resolution table
       classifier open-text answer tagged disc:<context> (calls run concurrently)
       fallback   the answer text itself is a single letter code
     then tally the votes.
  2. Big Five: reverse-code and average the rating battery.
  3. Ask the text-generation gateway for a description; failure is logged and
     the numeric result kept.

Progress is tracked in session.metadata["reconciliation"]["status"]:
pending -> in_progress -> completed | failed
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import structlog

from assessment_engine.config import get_settings
from assessment_engine.core.exceptions import ExternalServiceError
from assessment_engine.models.enumerations import ProcessingStatus
from assessment_engine.models.questionnaire import (
    ChoiceQuestion,
    NavigationGraph,
    Question,
    RatingQuestion,
    TextQuestion,
)
from assessment_engine.models.session import Answer, Session
from assessment_engine.repositories.session_repository import SessionRepository
from assessment_engine.scoring.bigfive_calculator import BigFiveCalculator, BigFiveResult, RatingItem
from assessment_engine.scoring.disc_tally import DiscTally, DiscTallyCalculator
from assessment_engine.scoring.trait_resolver import as_traits, extract_letter_code, resolve_traits
from assessment_engine.services.disc_classifier import ClassifierOutcome, DiscClassifier
from assessment_engine.services.llm_client import LLMClient

logger = structlog.get_logger(__name__)

SOURCE_EXPLICIT = "explicit"
SOURCE_CLASSIFIER = "classifier"
SOURCE_FALLBACK = "fallback"

DESCRIPTION_SYSTEM_PROMPT = (
    "You are an experienced HR business partner and organizational psychologist. "
    "Using only the assessment results provided, write a practical profile description "
    "for the employee's manager. Be professional and neutral. Avoid medical or "
    "psychiatric interpretations, moral judgements and categorical wording. Do not draw "
    "conclusions about ability, IQ or ethics and do not give personnel recommendations."
)
DESCRIPTION_FORMAT = (
    "Output format (Markdown):\n"
    "1) Behavioral profile (4-6 sentences)\n"
    "2) Strengths (4-7 bullets)\n"
    "3) Risks and triggers (4-6 bullets)\n"
    "4) Recommendations for the manager (7-10 bullets)\n"
    "Length: 350-600 words, short paragraphs and bullets."
)
DESCRIPTION_TEMPERATURE = 0.5
DESCRIPTION_MAX_TOKENS = 2000
DESCRIPTION_TOP_P = 0.9


def _now() -> datetime:
    return datetime.now(timezone.utc)


def explicit_traits(question: Optional[Question], answer: Answer) -> List[str]:
    """Deterministic traits: answer traits, then option traits, then the resolution table."""
    traits = as_traits(answer.traits)
    if traits:
        return traits

    if question is not None and isinstance(question, ChoiceQuestion):
        selected = answer.value if isinstance(answer.value, list) else [answer.value]
        option_traits: List[str] = []
        for value in selected:
            option = question.option_for(value)
            for trait in as_traits(option.traits if option else None):
                if trait not in option_traits:
                    option_traits.append(trait)
        if option_traits:
            return option_traits

    if isinstance(question, RatingQuestion):
        return []
    return resolve_traits(answer.value)


class ReconciliationService:
    """Derives trait tallies for a completed session and stores them in its metadata."""

    def __init__(
        self,
        session_repo: SessionRepository,
        llm: LLMClient,
        classifier: Optional[DiscClassifier] = None,
        disc_calculator: Optional[DiscTallyCalculator] = None,
        bigfive_calculator: Optional[BigFiveCalculator] = None,
    ):
        self.session_repo = session_repo
        self.llm = llm
        self.classifier = classifier or DiscClassifier(llm)
        self.disc_calculator = disc_calculator or DiscTallyCalculator()
        self.bigfive_calculator = bigfive_calculator or BigFiveCalculator()

    async def reconcile(self, session: Session, graph: NavigationGraph) -> Session:
        """
        Compute and persist derived results for a completed session.

        Never raises for scoring problems: the session is marked failed instead.
        Returns the session as stored after the last metadata write.
        """
        log = logger.bind(session_id=str(session.id), graph_id=graph.id)

        metadata = dict(session.metadata)
        metadata["reconciliation"] = {
            "status": ProcessingStatus.IN_PROGRESS.value,
            "started_at": _now().isoformat(),
        }
        if not self._write_metadata(session, metadata):
            log.warning("reconciliation_superseded", stage="start")
            return self.session_repo.get_by_id(session.id) or session

        try:
            disc: Optional[DiscTally] = None
            bigfive: Optional[BigFiveResult] = None

            if graph.is_disc:
                disc, by_question = await self.tally_disc(graph, session)
                metadata["disc"] = {**disc.to_dict(), "by_question": by_question}

            if graph.is_big_five:
                bigfive, context_lines = self.score_bigfive(graph, session)
                metadata["bigfive"] = bigfive.to_dict()
            else:
                context_lines = []

            if disc is not None or bigfive is not None:
                description = await self.describe(disc, bigfive, context_lines)
                if description is not None:
                    metadata["description"] = description

            metadata["reconciliation"] = {
                **metadata["reconciliation"],
                "status": ProcessingStatus.COMPLETED.value,
                "completed_at": _now().isoformat(),
            }
            log.info("reconciliation_completed", disc=disc is not None, bigfive=bigfive is not None)
        except Exception as e:
            log.error("reconciliation_failed", error=str(e), exc_info=True)
            metadata["reconciliation"] = {
                **metadata["reconciliation"],
                "status": ProcessingStatus.FAILED.value,
                "error": str(e),
                "completed_at": _now().isoformat(),
            }

        if not self._write_metadata(session, metadata):
            log.warning("reconciliation_superseded", stage="finish")
            return self.session_repo.get_by_id(session.id) or session
        return session

    async def tally_disc(
        self,
        graph: NavigationGraph,
        session: Session,
    ) -> Tuple[DiscTally, Dict[str, Dict[str, Any]]]:
        """
        Resolve one vote source per answered question, then tally.

        Returns:
            (DiscTally, question_id -> {traits, source, label, model, raw_text})
        """
        votes: Dict[str, List[str]] = {}
        sources: Dict[str, str] = {}
        by_question: Dict[str, Dict[str, Any]] = {}
        to_classify: List[Tuple[Answer, str]] = []

        for answer in session.answers:
            question = graph.get_question(answer.question_id)
            traits = explicit_traits(question, answer)
            if traits:
                votes[answer.question_id] = traits
                sources[answer.question_id] = SOURCE_EXPLICIT
                continue

            contexts = question.disc_contexts() if question is not None else []
            if (
                contexts
                and isinstance(question, TextQuestion)
                and isinstance(answer.value, str)
                and answer.value.strip()
            ):
                to_classify.append((answer, contexts[0]))
                continue

            letter = extract_letter_code(answer.value)
            if letter:
                votes[answer.question_id] = [letter]
                sources[answer.question_id] = SOURCE_FALLBACK

        outcomes: List[ClassifierOutcome] = []
        if to_classify:
            outcomes = await asyncio.gather(
                *(self.classifier.classify(a.question_id, a.value, ctx) for a, ctx in to_classify)
            )

        for (answer, _), outcome in zip(to_classify, outcomes):
            qid = answer.question_id
            by_question[qid] = {
                "label": outcome.label,
                "model": outcome.model,
                "raw_text": outcome.raw_text,
                "error": outcome.error,
            }
            if outcome.label:
                votes[qid] = [outcome.label]
                sources[qid] = SOURCE_CLASSIFIER
                continue
            letter = extract_letter_code(answer.value)
            if letter:
                votes[qid] = [letter]
                sources[qid] = SOURCE_FALLBACK

        for qid, traits in votes.items():
            by_question.setdefault(qid, {})
            by_question[qid].update({"traits": traits, "source": sources[qid]})

        return self.disc_calculator.calculate(votes, sources), by_question

    def score_bigfive(
        self,
        graph: NavigationGraph,
        session: Session,
    ) -> Tuple[BigFiveResult, List[Tuple[str, float]]]:
        """Big Five averages plus (question text, raw score) lines for the description."""
        items: List[RatingItem] = []
        lines: List[Tuple[str, float]] = []
        for answer in session.answers:
            question = graph.get_question(answer.question_id)
            if not isinstance(question, RatingQuestion) or isinstance(answer.value, (str, list)):
                continue
            items.append(
                RatingItem(
                    question_id=question.id,
                    score=float(answer.value),
                    scale_min=question.scale.min,
                    scale_max=question.scale.max,
                    reverse_scored=question.reverse_scored,
                )
            )
            lines.append((question.text, float(answer.value)))
        return self.bigfive_calculator.calculate(items), lines

    async def describe(
        self,
        disc: Optional[DiscTally],
        bigfive: Optional[BigFiveResult],
        context_lines: List[Tuple[str, float]],
    ) -> Optional[Dict[str, Any]]:
        """Request a narrative description. Returns None when the gateway fails."""
        sections: List[str] = []
        if bigfive is not None:
            profile = "\n".join(
                f"{name}: {avg:.1f} ({bigfive.bands[name]})"
                for name, avg in bigfive.averages.items()
                if avg is not None
            )
            sections.append(f"# Big Five profile (averages)\n{profile or 'no answered items'}")
            if context_lines:
                sections.append(
                    "# Answers (question -> 1-5 and wording)\n"
                    + self.bigfive_calculator.answers_context(context_lines)
                )
        if disc is not None:
            counts = ", ".join(f"{t}={n}" for t, n in disc.counts.items())
            sections.append(
                f"# DISC tally\n{counts}\nPrimary: {', '.join(disc.primary_traits) or '-'}\n"
                f"Profile hint: {disc.profile_hint.kind.value} {' '.join(disc.profile_hint.traits)}".rstrip()
            )
        prompt = "\n\n".join(sections) + "\n\nWrite the description strictly following the output format."

        purpose = "bigfive" if bigfive is not None else "disc"
        try:
            result = await self.llm.generate(
                f"{DESCRIPTION_SYSTEM_PROMPT}\n\n{DESCRIPTION_FORMAT}",
                prompt,
                model=get_settings().model_for(purpose),
                temperature=DESCRIPTION_TEMPERATURE,
                max_tokens=DESCRIPTION_MAX_TOKENS,
                top_p=DESCRIPTION_TOP_P,
            )
        except ExternalServiceError as e:
            logger.warning("reconciliation_description_failed", error=e.message)
            return None

        return {
            "text": result.text,
            "model": result.model,
            "created_at": _now().isoformat(),
        }

    def _write_metadata(self, session: Session, metadata: Dict[str, Any]) -> bool:
        if not self.session_repo.update_metadata(session.id, metadata, session.version):
            return False
        session.metadata = metadata
        session.version += 1
        return True
