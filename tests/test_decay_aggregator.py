# tests/test_decay_aggregator.py

"""
Decay Aggregator Tests - weighted rolling profile over observation episodes
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from assessment_engine.models.scoring import ALL_DIMENSIONS
from assessment_engine.scoring.decay_aggregator import (
    DECAY_WEIGHTS,
    MAX_EPISODES,
    DecayAggregator,
    EpisodeScores,
)
from assessment_engine.scoring.utils import mean, round_half_up, round_half_up_int, weighted_mean

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def episodes(*values, dimension="task_ownership"):
    """Newest first, one week apart."""
    return [
        EpisodeScores(completed_at=NOW - timedelta(weeks=i), scores={dimension: v})
        for i, v in enumerate(values)
    ]


class TestDecayAggregator:

    def setup_method(self):
        self.aggregator = DecayAggregator()

    def test_weights(self):
        assert MAX_EPISODES == 6
        assert [float(w) for w in DECAY_WEIGHTS] == [0.5, 0.25, 0.13, 0.06, 0.03, 0.015]

    def test_single_episode_keeps_its_score(self):
        result = self.aggregator.calculate(episodes(5))
        assert result.scores["task_ownership"] == 5.0
        assert result.episode_count == 1

    def test_full_window(self):
        result = self.aggregator.calculate(episodes(5, 5, 4, 4, 3, 3))
        assert result.scores["task_ownership"] == 4.7

    def test_two_episodes(self):
        # (4*0.5 + 2*0.25) / 0.75
        result = self.aggregator.calculate(episodes(4, 2))
        assert result.scores["task_ownership"] == 3.3

    def test_only_the_newest_six_count(self):
        result = self.aggregator.calculate(episodes(3, 3, 3, 3, 3, 3, 1))
        assert result.scores["task_ownership"] == 3.0
        assert result.episode_count == 6

    def test_unobserved_dimension_is_null_not_zero(self):
        result = self.aggregator.calculate(episodes(4))
        assert result.scores["strategic_thinking"] is None

    def test_gaps_do_not_drag_towards_zero(self):
        result = self.aggregator.calculate(episodes(None, None, 2))
        assert result.scores["task_ownership"] == 2.0

    def test_two_newest_observed_across_five_dimensions(self):
        dimensions = ALL_DIMENSIONS[:5]
        data = [
            EpisodeScores(completed_at=NOW - timedelta(weeks=i), scores={d: v for d in dimensions})
            for i, v in enumerate([5, 5, None, None, None, None])
        ]

        result = self.aggregator.calculate(data)

        assert result.episode_count == 6
        assert [result.scores[d] for d in dimensions] == [5.0] * 5
        assert all(result.scores[d] is None for d in ALL_DIMENSIONS[5:])

    def test_every_dimension_present(self):
        result = self.aggregator.calculate(episodes(4))
        assert len(result.scores) == 12

    def test_last_updated_is_newest_completion(self):
        result = self.aggregator.calculate(episodes(4, 3))
        assert result.last_updated_at == NOW

    def test_no_episodes(self):
        result = self.aggregator.calculate([])
        assert result.episode_count == 0
        assert result.last_updated_at is None
        assert all(v is None for v in result.scores.values())

    def test_recalculation_is_identical(self):
        data = episodes(5, 2, 4)
        assert self.aggregator.calculate(data) == self.aggregator.calculate(data)


class TestDecimalHelpers:

    def test_weighted_mean_normalizes_by_supplied_weights(self):
        assert weighted_mean([4, 2], [0.5, 0.25]) == Decimal("3.3")

    def test_weighted_mean_without_weight(self):
        assert weighted_mean([], []) is None
        assert weighted_mean([3], [0]) is None

    def test_round_half_up(self):
        assert round_half_up(2.25) == Decimal("2.3")
        assert round_half_up(Decimal("2.35")) == Decimal("2.4")
        assert round_half_up_int(2.5) == 3

    def test_mean(self):
        assert mean([1, 2, 2]) == Decimal("1.7")
        assert mean([]) is None
