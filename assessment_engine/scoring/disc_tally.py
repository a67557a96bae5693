"""
DISC Trait Tally
assessment_engine/scoring/disc_tally.py

Turns per-question trait votes into counts, percentages, level labels and a
profile hint.

    points[t]   = number of answered questions voting for t (one per question)
    percent[t]  = 100 * points[t] / Σ points, one decimal
    primary     = every trait at the maximum count

Level labels (per trait count):
    >= 6  strongly expressed
    >= 4  moderately expressed
    >= 2  weakly expressed
    else  not characteristic

Profile hint:
    top >= 6 and top > runner-up    -> pure type
    top - runner-up <= 1            -> blended type (both named)
    otherwise                       -> inconclusive
"""

import structlog
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Mapping, Optional, Sequence

from assessment_engine.models.enumerations import ProfileHintKind
from assessment_engine.scoring.trait_resolver import DISC_LETTERS
from assessment_engine.scoring.utils import round_half_up

logger = structlog.get_logger(__name__)

LEVEL_THRESHOLDS = (
    (6, "strongly expressed"),
    (4, "moderately expressed"),
    (2, "weakly expressed"),
)
LEVEL_NONE = "not characteristic"

PURE_TYPE_MIN_POINTS = 6
BLEND_MAX_GAP = 1


@dataclass
class ProfileHint:
    kind: ProfileHintKind
    traits: List[str] = field(default_factory=list)


@dataclass
class DiscTally:
    """Output of DiscTallyCalculator.calculate()."""
    counts: Dict[str, int]
    total_answered: int          # questions that contributed at least one vote
    total_votes: int             # Σ counts, multi-letter answers vote several times
    percentages: Dict[str, float]
    primary_traits: List[str]
    levels: Dict[str, str]
    profile_hint: ProfileHint
    sources: Dict[str, str] = field(default_factory=dict)  # question_id -> explicit|classifier|fallback

    def to_dict(self) -> dict:
        return {
            "counts": dict(self.counts),
            "total_answered": self.total_answered,
            "total_votes": self.total_votes,
            "percentages": dict(self.percentages),
            "primary_traits": list(self.primary_traits),
            "levels": dict(self.levels),
            "profile_hint": {
                "kind": self.profile_hint.kind.value,
                "traits": list(self.profile_hint.traits),
            },
            "sources": dict(self.sources),
        }


def level_label(points: int) -> str:
    for threshold, label in LEVEL_THRESHOLDS:
        if points >= threshold:
            return label
    return LEVEL_NONE


def profile_hint(counts: Mapping[str, int]) -> ProfileHint:
    """Classify the tally shape. Ties keep D-I-S-C order."""
    ranked = sorted(DISC_LETTERS, key=lambda t: (-counts.get(t, 0), DISC_LETTERS.index(t)))
    top, runner_up = ranked[0], ranked[1]
    top_points, runner_points = counts.get(top, 0), counts.get(runner_up, 0)

    if top_points == 0:
        return ProfileHint(kind=ProfileHintKind.INCONCLUSIVE)
    if top_points >= PURE_TYPE_MIN_POINTS and top_points > runner_points:
        return ProfileHint(kind=ProfileHintKind.PURE, traits=[top])
    if top_points - runner_points <= BLEND_MAX_GAP:
        return ProfileHint(kind=ProfileHintKind.BLENDED, traits=[top, runner_up])
    return ProfileHint(kind=ProfileHintKind.INCONCLUSIVE)


class DiscTallyCalculator:
    """Aggregate per-question DISC votes."""

    def calculate(
        self,
        votes: Mapping[str, Sequence[str]],
        sources: Optional[Mapping[str, str]] = None,
    ) -> DiscTally:
        """
        Args:
            votes: question_id -> trait letters resolved for that answer
            sources: question_id -> which precedence tier produced the letters

        Returns:
            DiscTally with counts, percentages, levels and hint
        """
        counts: Dict[str, int] = {t: 0 for t in DISC_LETTERS}
        answered = 0

        for question_id, traits in votes.items():
            distinct = [t for t in dict.fromkeys(traits) if t in counts]
            if not distinct:
                continue
            answered += 1
            for trait in distinct:
                counts[trait] += 1

        total_votes = sum(counts.values())
        if total_votes:
            percentages = {
                t: float(round_half_up(Decimal(counts[t]) * 100 / Decimal(total_votes), 1))
                for t in DISC_LETTERS
            }
            max_points = max(counts.values())
            primary = [t for t in DISC_LETTERS if counts[t] == max_points]
        else:
            percentages = {t: 0.0 for t in DISC_LETTERS}
            primary = []

        tally = DiscTally(
            counts=counts,
            total_answered=answered,
            total_votes=total_votes,
            percentages=percentages,
            primary_traits=primary,
            levels={t: level_label(counts[t]) for t in DISC_LETTERS},
            profile_hint=profile_hint(counts),
            sources=dict(sources or {}),
        )

        logger.info(
            "disc_tally_calculated",
            counts=counts,
            total_answered=answered,
            total_votes=total_votes,
            primary_traits=primary,
            profile_hint=tally.profile_hint.kind.value,
        )
        return tally
