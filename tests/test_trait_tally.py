# tests/test_trait_tally.py

"""
DISC Tests - resolution table, classifier reply parsing and the tally
"""

import pytest

from assessment_engine.models.enumerations import DiscTrait, ProfileHintKind
from assessment_engine.scoring.disc_tally import DiscTallyCalculator, level_label, profile_hint
from assessment_engine.scoring.trait_resolver import (
    as_traits,
    extract_letter_code,
    parse_classifier_label,
    resolve_traits,
)


# =============================================================================
# RESOLUTION TABLE
# =============================================================================

class TestResolveTraits:

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("a", ["D"]),
            ("B", ["I"]),
            ("c", ["S"]),
            ("d", ["C"]),
            ("C", ["C"]),
            ("I", ["I"]),
            ("people", ["I", "S"]),
            ("Работа с людьми", ["I", "S"]),
            ("«Tasks»", ["D", "C"]),
            ("initiator", ["D", "I"]),
            ("вдумчивый исполнитель", ["S", "C"]),
            ("fast", ["D", "I"]),
            ("thoughtful", ["S", "C"]),
        ],
    )
    def test_table(self, value, expected):
        assert resolve_traits(value) == expected

    def test_multi_select_union_keeps_first_seen_order(self):
        assert resolve_traits(["people", "tasks", "a"]) == ["I", "S", "D", "C"]

    @pytest.mark.parametrize("value", [None, 4, 3.5, True, "", "maybe", "С"])
    def test_unresolvable(self, value):
        assert resolve_traits(value) == []

    def test_explicit_traits_dedupe(self):
        assert as_traits([DiscTrait.S, DiscTrait.D, DiscTrait.S]) == ["S", "D"]
        assert as_traits(None) == []


class TestClassifierLabel:

    @pytest.mark.parametrize(
        "reply,expected",
        [
            ("D", "D"),
            ("  i\n", "I"),
            ("С", "C"),
            ("S.", "S"),
            ("Type: C", "C"),
            ("", None),
            ("none", None),
            (None, None),
        ],
    )
    def test_parse(self, reply, expected):
        assert parse_classifier_label(reply) == expected

    def test_first_character_wins(self):
        assert parse_classifier_label("I think D") == "I"


class TestLetterFallback:

    @pytest.mark.parametrize(
        "value,expected",
        [("С", "C"), (" d ", "D"), ("s.", "S"), ("DI", None), ("x", None), (5, None)],
    )
    def test_extract(self, value, expected):
        assert extract_letter_code(value) == expected


# =============================================================================
# TALLY
# =============================================================================

class TestDiscTally:

    def setup_method(self):
        self.calculator = DiscTallyCalculator()

    def test_counts_one_vote_per_question_per_trait(self):
        tally = self.calculator.calculate({"q1": ["D"], "q2": ["I", "S"], "q3": ["D", "D"]})

        assert tally.counts == {"D": 2, "I": 1, "S": 1, "C": 0}
        assert tally.total_answered == 3
        assert tally.total_votes == 4
        assert tally.percentages == {"D": 50.0, "I": 25.0, "S": 25.0, "C": 0.0}
        assert tally.primary_traits == ["D"]

    def test_percentages_round_to_one_decimal(self):
        tally = self.calculator.calculate({"q1": ["D"], "q2": ["I"], "q3": ["S"]})
        assert tally.percentages["D"] == 33.3

    def test_tied_primary_traits(self):
        tally = self.calculator.calculate({"q1": ["S"], "q2": ["C"]})
        assert tally.primary_traits == ["S", "C"]

    def test_empty_votes(self):
        tally = self.calculator.calculate({"q1": []})
        assert tally.total_answered == 0
        assert tally.primary_traits == []
        assert tally.profile_hint.kind == ProfileHintKind.INCONCLUSIVE

    def test_sources_are_kept(self):
        tally = self.calculator.calculate({"q1": ["D"]}, {"q1": "explicit"})
        assert tally.to_dict()["sources"] == {"q1": "explicit"}

    @pytest.mark.parametrize(
        "points,label",
        [(7, "strongly expressed"), (6, "strongly expressed"), (4, "moderately expressed"),
         (2, "weakly expressed"), (1, "not characteristic"), (0, "not characteristic")],
    )
    def test_levels(self, points, label):
        assert level_label(points) == label


class TestProfileHint:

    def test_pure_type(self):
        hint = profile_hint({"D": 7, "I": 2, "S": 1, "C": 0})
        assert hint.kind == ProfileHintKind.PURE
        assert hint.traits == ["D"]

    def test_blended_type(self):
        hint = profile_hint({"D": 2, "I": 5, "S": 4, "C": 0})
        assert hint.kind == ProfileHintKind.BLENDED
        assert hint.traits == ["I", "S"]

    def test_tie_keeps_disc_order(self):
        hint = profile_hint({"D": 0, "I": 3, "S": 0, "C": 3})
        assert hint.traits == ["I", "C"]

    def test_tie_at_six_is_blended_not_pure(self):
        hint = profile_hint({"D": 6, "I": 6, "S": 0, "C": 0})
        assert hint.kind == ProfileHintKind.BLENDED

    def test_wide_gap_below_six_is_inconclusive(self):
        hint = profile_hint({"D": 5, "I": 1, "S": 0, "C": 0})
        assert hint.kind == ProfileHintKind.INCONCLUSIVE
