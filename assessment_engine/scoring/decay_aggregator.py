"""
Decay Aggregator
assessment_engine/scoring/decay_aggregator.py

Rolling behavioral profile over the newest completed episodes.

Formula (per dimension, episodes newest first, at most 6):
    score = Σ (score_i × w_i) / Σ w_i      over episodes where the dimension is scored
    w     = [0.50, 0.25, 0.13, 0.06, 0.03, 0.015]

Weights are normalized by the weights actually used, so a dimension seen only
in older episodes is not dragged towards zero. No observations -> None.
Result is rounded half-up to one decimal.
"""

import structlog
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Mapping, Optional, Sequence

from assessment_engine.models.scoring import ALL_DIMENSIONS
from assessment_engine.scoring.utils import weighted_mean

logger = structlog.get_logger(__name__)

DECAY_WEIGHTS: List[Decimal] = [
    Decimal("0.50"),
    Decimal("0.25"),
    Decimal("0.13"),
    Decimal("0.06"),
    Decimal("0.03"),
    Decimal("0.015"),
]
MAX_EPISODES = len(DECAY_WEIGHTS)


@dataclass
class EpisodeScores:
    """Scores of one completed episode as seen by the aggregator."""
    completed_at: Optional[datetime]
    scores: Mapping[str, Optional[int]]


@dataclass
class DecayResult:
    """Output of DecayAggregator.calculate()."""
    scores: Dict[str, Optional[float]]
    episode_count: int
    last_updated_at: Optional[datetime]


class DecayAggregator:
    """Exponentially decayed per-dimension average."""

    def __init__(self, dimensions: Sequence[str] = ALL_DIMENSIONS):
        self.dimensions = list(dimensions)

    def dimension_score(
        self,
        episodes: Sequence[EpisodeScores],
        dimension: str,
    ) -> Optional[Decimal]:
        values: List[Decimal] = []
        weights: List[Decimal] = []
        for weight, episode in zip(DECAY_WEIGHTS, episodes[:MAX_EPISODES]):
            score = episode.scores.get(dimension)
            if score is None:
                continue
            values.append(Decimal(str(score)))
            weights.append(weight)
        return weighted_mean(values, weights, places=1)

    def calculate(self, episodes: Sequence[EpisodeScores]) -> DecayResult:
        """
        Args:
            episodes: Completed episodes ordered newest first

        Returns:
            DecayResult; last_updated_at is the newest folded episode's
            completion time so recomputing unchanged input is identical
        """
        folded = list(episodes[:MAX_EPISODES])

        scores: Dict[str, Optional[float]] = {}
        for dimension in self.dimensions:
            value = self.dimension_score(folded, dimension)
            scores[dimension] = float(value) if value is not None else None

        result = DecayResult(
            scores=scores,
            episode_count=len(folded),
            last_updated_at=folded[0].completed_at if folded else None,
        )

        logger.info(
            "decay_aggregate_calculated",
            episode_count=result.episode_count,
            scored_dimensions=sum(1 for v in scores.values() if v is not None),
        )
        return result
