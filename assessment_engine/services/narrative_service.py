"""
Narrative Regeneration Service - Assessment Engine
assessment_engine/services/narrative_service.py

Keeps each subject's narrative in step with their data:

  1. skip when a regeneration for the subject is already running in this
     worker (advisory, per process)
  2. skip when the stored fingerprint still matches
  3. gather trait tallies, Big Five averages, the aggregate profile and
     episode evidence, hand them to the composer
  4. upsert the artifact together with the fingerprint it was built from
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol, Set

import structlog

from assessment_engine.config import get_settings
from assessment_engine.core.exceptions import ExternalServiceError
from assessment_engine.models.scoring import AggregateProfile, NarrativeArtifact
from assessment_engine.repositories.aggregate_repository import AggregateRepository
from assessment_engine.repositories.artifact_repository import ArtifactRepository
from assessment_engine.repositories.episode_repository import EpisodeRepository
from assessment_engine.repositories.session_repository import SessionRepository
from assessment_engine.services.fingerprint_service import FingerprintService
from assessment_engine.services.llm_client import LLMClient

logger = structlog.get_logger(__name__)

INSUFFICIENT_DATA_TEXT = (
    "Not enough data to describe this person yet. Hold a one-to-one meeting "
    "or ask them to complete a questionnaire."
)

SESSION_HISTORY_LIMIT = 20
EVIDENCE_PER_DIMENSION = 3

COMPOSER_TEMPERATURE = 0.2
COMPOSER_MAX_TOKENS = 1000

COMPOSER_SYSTEM_PROMPT = (
    "You are an HR analyst writing a concise working characteristic of an employee for "
    "their manager. Use only the data provided. Be neutral and specific, cite observed "
    "behavior where evidence exists, and do not speculate about health, ability or ethics. "
    "If a previous characteristic is given, keep what is still supported and update the rest."
)


@dataclass
class NarrativeInput:
    """Everything a composer may use for one subject."""
    subject_id: str
    disc: List[Dict[str, Any]] = field(default_factory=list)
    bigfive: List[Dict[str, Any]] = field(default_factory=list)
    aggregate: Optional[AggregateProfile] = None
    evidence: Dict[str, List[str]] = field(default_factory=dict)
    previous: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        has_aggregate = self.aggregate is not None and self.aggregate.episode_count > 0
        return not (self.disc or self.bigfive or has_aggregate)


@dataclass
class Composition:
    text: str
    model: Optional[str]


class NarrativeComposer(Protocol):
    async def compose(self, data: NarrativeInput) -> Composition:
        ...


class LLMNarrativeComposer:
    """Default composer: one chat completion over a structured summary."""

    def __init__(self, llm: LLMClient, model: Optional[str] = None):
        self.llm = llm
        self.model = model or get_settings().model_for("narrative")

    def build_prompt(self, data: NarrativeInput) -> str:
        sections: List[str] = []
        for index, tally in enumerate(data.disc, start=1):
            counts = ", ".join(f"{t}={n}" for t, n in tally.get("counts", {}).items())
            hint = tally.get("profile_hint", {})
            sections.append(
                f"# DISC questionnaire {index}\n{counts}\n"
                f"Primary: {', '.join(tally.get('primary_traits', [])) or '-'}; "
                f"hint: {hint.get('kind', '-')} {' '.join(hint.get('traits', []))}".rstrip()
            )
        for index, result in enumerate(data.bigfive, start=1):
            averages = "\n".join(
                f"{name}: {avg:.1f} ({result.get('bands', {}).get(name)})"
                for name, avg in result.get("averages", {}).items()
                if avg is not None
            )
            sections.append(f"# Big Five questionnaire {index}\n{averages or '-'}")
        if data.aggregate is not None and data.aggregate.episode_count:
            scores = "\n".join(
                f"{dim}: {score:.1f}" for dim, score in data.aggregate.scores.items() if score is not None
            )
            sections.append(
                f"# Observed behavior over {data.aggregate.episode_count} meetings (1-5)\n{scores or '-'}"
            )
        if data.evidence:
            lines = "\n".join(
                f"- {dim}: " + " | ".join(quotes) for dim, quotes in data.evidence.items()
            )
            sections.append(f"# Evidence from meetings\n{lines}")
        if data.previous:
            sections.append(f"# Previous characteristic\n{data.previous}")
        return "\n\n".join(sections)

    async def compose(self, data: NarrativeInput) -> Composition:
        result = await self.llm.generate(
            COMPOSER_SYSTEM_PROMPT,
            self.build_prompt(data),
            model=self.model,
            temperature=COMPOSER_TEMPERATURE,
            max_tokens=COMPOSER_MAX_TOKENS,
        )
        return Composition(text=result.text.strip(), model=result.model or self.model)


class NarrativeService:
    def __init__(
        self,
        fingerprints: FingerprintService,
        session_repo: SessionRepository,
        episode_repo: EpisodeRepository,
        aggregate_repo: AggregateRepository,
        artifact_repo: ArtifactRepository,
        composer: NarrativeComposer,
    ):
        self.fingerprints = fingerprints
        self.session_repo = session_repo
        self.episode_repo = episode_repo
        self.aggregate_repo = aggregate_repo
        self.artifact_repo = artifact_repo
        self.composer = composer
        self._in_flight: Set[str] = set()

    def is_in_flight(self, subject_id: str) -> bool:
        return subject_id in self._in_flight

    async def regenerate_if_stale(self, subject_id: str, force: bool = False) -> Optional[NarrativeArtifact]:
        """
        Returns:
            The new artifact, or None when skipped or when the composer failed
        """
        if subject_id in self._in_flight:
            logger.info("narrative_regeneration_skipped", subject_id=subject_id, reason="in_flight")
            return None

        self._in_flight.add(subject_id)
        try:
            check = self.fingerprints.needs_regeneration(subject_id)
            if not check.needs_regeneration and not force:
                logger.info("narrative_regeneration_skipped", subject_id=subject_id, reason=check.reason)
                return None

            data = self.gather(subject_id)
            if data.is_empty:
                content, model = INSUFFICIENT_DATA_TEXT, None
            else:
                try:
                    composition = await self.composer.compose(data)
                except ExternalServiceError as e:
                    logger.warning("narrative_composition_failed", subject_id=subject_id, error=e.message)
                    return None
                content, model = composition.text, composition.model

            artifact = NarrativeArtifact(
                subject_id=subject_id,
                content=content,
                fingerprint=check.fingerprint,
                model=model,
                updated_at=datetime.now(timezone.utc),
            )
            self.artifact_repo.upsert(artifact)
            logger.info("narrative_regenerated", subject_id=subject_id, reason=check.reason, model=model)
            return artifact
        finally:
            self._in_flight.discard(subject_id)

    def gather(self, subject_id: str) -> NarrativeInput:
        sessions = self.session_repo.list_completed_for_subject(subject_id, limit=SESSION_HISTORY_LIMIT)
        disc = [s.metadata["disc"] for s in sessions if isinstance(s.metadata.get("disc"), dict)]
        bigfive = [s.metadata["bigfive"] for s in sessions if isinstance(s.metadata.get("bigfive"), dict)]

        evidence: Dict[str, List[str]] = {}
        for episode in self.episode_repo.list_completed_for_subject(subject_id):
            for dim, score in episode.scores.items():
                quotes = evidence.setdefault(dim, [])
                if score.evidence and len(quotes) < EVIDENCE_PER_DIMENSION:
                    quotes.append(score.evidence)
        evidence = {dim: quotes for dim, quotes in evidence.items() if quotes}

        previous = self.artifact_repo.get(subject_id)
        return NarrativeInput(
            subject_id=subject_id,
            disc=disc,
            bigfive=bigfive,
            aggregate=self.aggregate_repo.get(subject_id),
            evidence=evidence,
            # placeholder artifacts carry no model
            previous=previous.content if previous and previous.model else None,
        )
