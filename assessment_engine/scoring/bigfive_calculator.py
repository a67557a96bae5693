"""
Big Five Calculator
assessment_engine/scoring/bigfive_calculator.py

Averages a rating battery into the five factors.

    score' = (scale_max + scale_min) - score     for reverse-coded items
    factor = mean(score' of items whose id starts with the factor prefix)

Reverse-coded items: the fixed set below, plus any question flagged
reverse_scored. Averages are rounded to one decimal; an empty factor is None.

Bands on the average:
    >= 4.0  strongly expressed
    >= 3.0  moderately expressed
    >= 2.0  weakly expressed
    else    practically absent
"""

import structlog
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from assessment_engine.models.enumerations import BigFiveFactor
from assessment_engine.scoring.utils import mean

logger = structlog.get_logger(__name__)

REVERSED_ITEMS: FrozenSet[str] = frozenset(
    {"op6", "co5", "ex4", "ex8", "ag4", "ne3", "ne5", "ne8"}
)

FACTOR_NAMES: Dict[BigFiveFactor, str] = {
    BigFiveFactor.OPENNESS: "openness",
    BigFiveFactor.CONSCIENTIOUSNESS: "conscientiousness",
    BigFiveFactor.EXTRAVERSION: "extraversion",
    BigFiveFactor.AGREEABLENESS: "agreeableness",
    BigFiveFactor.NEUROTICISM: "neuroticism",
}

BAND_THRESHOLDS = (
    (4.0, "strongly expressed"),
    (3.0, "moderately expressed"),
    (2.0, "weakly expressed"),
)
BAND_NONE = "practically absent"

LIKERT_LABELS: Dict[int, str] = {
    1: "disagree",
    2: "somewhat disagree",
    3: "neutral",
    4: "somewhat agree",
    5: "agree",
}


@dataclass
class RatingItem:
    """One answered rating question as seen by the calculator."""
    question_id: str
    score: float
    scale_min: int = 1
    scale_max: int = 5
    reverse_scored: bool = False


@dataclass
class BigFiveResult:
    """Output of BigFiveCalculator.calculate()."""
    averages: Dict[str, Optional[float]]
    bands: Dict[str, Optional[str]]
    item_counts: Dict[str, int]
    summary: str
    recoded: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "averages": dict(self.averages),
            "bands": dict(self.bands),
            "item_counts": dict(self.item_counts),
            "summary": self.summary,
            "recoded": dict(self.recoded),
        }


def band_label(average: Optional[float]) -> Optional[str]:
    if average is None:
        return None
    for threshold, label in BAND_THRESHOLDS:
        if average >= threshold:
            return label
    return BAND_NONE


def likert_label(score: float) -> str:
    return LIKERT_LABELS.get(int(score), str(score)) if float(score).is_integer() else str(score)


def factor_for(question_id: str) -> Optional[BigFiveFactor]:
    qid = question_id.lower()
    for factor in BigFiveFactor:
        if qid.startswith(factor.value):
            return factor
    return None


class BigFiveCalculator:
    """Reverse-code, bucket and average a Big Five battery."""

    def recode(self, item: RatingItem) -> float:
        if item.reverse_scored or item.question_id.lower() in REVERSED_ITEMS:
            return (item.scale_max + item.scale_min) - item.score
        return item.score

    def calculate(self, items: Iterable[RatingItem]) -> BigFiveResult:
        """
        Args:
            items: Answered rating questions; ids without a factor prefix are ignored

        Returns:
            BigFiveResult with per-factor averages (None when no items) and bands
        """
        buckets: Dict[str, List[float]] = {name: [] for name in FACTOR_NAMES.values()}
        recoded: Dict[str, float] = {}

        for item in items:
            factor = factor_for(item.question_id)
            if factor is None:
                continue
            value = self.recode(item)
            recoded[item.question_id] = value
            buckets[FACTOR_NAMES[factor]].append(value)

        averages: Dict[str, Optional[float]] = {}
        for name, values in buckets.items():
            avg = mean(values, places=1)
            averages[name] = float(avg) if avg is not None else None

        bands = {name: band_label(avg) for name, avg in averages.items()}
        summary = self.summarize(averages, bands)

        logger.info(
            "bigfive_calculated",
            averages=averages,
            item_counts={name: len(values) for name, values in buckets.items()},
        )

        return BigFiveResult(
            averages=averages,
            bands=bands,
            item_counts={name: len(values) for name, values in buckets.items()},
            summary=summary,
            recoded=recoded,
        )

    def summarize(
        self,
        averages: Dict[str, Optional[float]],
        bands: Dict[str, Optional[str]],
    ) -> str:
        parts: List[str] = []
        for name in FACTOR_NAMES.values():
            avg = averages.get(name)
            if avg is None:
                parts.append(f"{name.capitalize()}: n/a")
            else:
                parts.append(f"{name.capitalize()}: {avg:.1f} ({bands[name]})")
        return ". ".join(parts)

    def answers_context(self, lines: Iterable[Tuple[str, float]]) -> str:
        """Render (question text, raw score) pairs with their Likert wording."""
        return "\n".join(f"- {title}: {score:g} ({likert_label(score)})" for title, score in lines)
