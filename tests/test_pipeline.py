"""Tests for joker selection and the vote pipeline."""

import dataclasses
import logging
import random

import pytest

from balatro_poker.jokers import (
    BALATRO_CATALOG,
    STANDARD_CATALOG,
    DelegateEffect,
    DelegateKind,
    JokerDefinition,
    JokerPosition,
    unknown_joker,
)
from balatro_poker.models import Card, Player, Suit
from balatro_poker.pipeline import VoteContext, apply_jokers, arrange_jokers, select_jokers


def std(*names: str) -> list[JokerDefinition]:
    return [STANDARD_CATALOG.get(n) for n in names]


def pipeline(jokers, votes, players=()) -> list[int]:
    ctx = VoteContext(votes=votes, players=players, active_jokers=jokers, rng=random.Random(0))
    return apply_jokers(ctx)


class TestVoteContext:
    """Test statistics and derived contexts."""

    def test_statistics(self):
        ctx = VoteContext(votes=[1, 3, 8, 21])
        assert ctx.min == 1
        assert ctx.max == 21
        assert ctx.average == 8.25
        assert ctx.median == 8

    def test_median_odd_length(self):
        assert VoteContext(votes=[5, 1, 3]).median == 3

    def test_statistics_empty(self):
        ctx = VoteContext(votes=[])
        assert (ctx.min, ctx.max, ctx.average, ctx.median) == (0, 0, 0.0, 0)

    def test_is_immutable(self):
        ctx = VoteContext(votes=[1, 2])
        assert ctx.votes == (1, 2)
        with pytest.raises(dataclasses.FrozenInstanceError):
            ctx.votes = (3,)

    def test_with_votes_leaves_original(self):
        ctx = VoteContext(votes=[1, 2])
        other = ctx.with_votes([5, 6])
        assert ctx.votes == (1, 2)
        assert other.votes == (5, 6)

    def test_from_players_uses_original_votes(self):
        players = [
            Player(name="a", has_voted=True, original_vote=3, final_vote=99),
            Player(name="b", has_voted=True, original_vote=8),
        ]
        ctx = VoteContext.from_players(players, std("The Multiplier"))
        assert ctx.votes == (3, 8)
        assert len(ctx.active_jokers) == 1

    def test_cards_for(self):
        player = Player(name="a", selected_cards=[Card(2, Suit.HEARTS)])
        ctx = VoteContext(votes=[2], players=[player])
        assert ctx.cards_for(0) == (Card(2, Suit.HEARTS),)
        assert ctx.cards_for(1) == ()

    def test_delegation_guard(self):
        ctx = VoteContext(votes=[1], active_jokers=std("The Copycat", "The Multiplier"))
        assert not ctx.can_delegate_to(0)
        assert ctx.can_delegate_to(1)
        assert not ctx.can_delegate_to(2)
        assert not ctx.delegate(1).can_delegate_to(1)

    def test_at_step_resets_delegation(self):
        ctx = VoteContext(votes=[1], active_jokers=std("The Copycat", "The Multiplier"))
        step = ctx.delegate(1).at_step(1, [4])
        assert step.current_index == 1
        assert step.delegation_path == ()
        assert step.votes == (4,)


class TestArrangeJokers:
    """Test positional ordering."""

    def test_left_first_right_last(self):
        jokers = std("The Mirror", "The Multiplier", "The Copycat", "The Halver")
        assert [j.name for j in arrange_jokers(jokers)] == [
            "The Copycat", "The Multiplier", "The Halver", "The Mirror",
        ]

    def test_anywhere_order_is_kept(self):
        jokers = std("The Halver", "The Multiplier", "The Incrementor")
        assert arrange_jokers(jokers) == jokers


class TestSelectJokers:
    """Test random joker selection."""

    def test_zero_count(self):
        assert select_jokers(0, 3, rng=random.Random(1)) == []

    def test_single_joker_never_needs_siblings(self):
        for seed in range(30):
            drawn = select_jokers(1, 1, rng=random.Random(seed))
            assert len(drawn) == 1
            assert drawn[0].min_active_jokers == 1

    def test_over_request_returns_all_eligible(self):
        assert len(select_jokers(50, 1, rng=random.Random(2))) == 11
        assert len(select_jokers(50, 2, rng=random.Random(2))) == 17

    def test_drawn_jokers_are_distinct(self):
        drawn = select_jokers(5, 5, rng=random.Random(3))
        assert len({j.name for j in drawn}) == 5

    def test_drawn_jokers_are_arranged(self):
        drawn = select_jokers(50, 2, rng=random.Random(4))
        assert drawn[0].position is JokerPosition.LEFT
        assert drawn[-1].position is JokerPosition.RIGHT
        assert drawn == arrange_jokers(drawn)

    def test_catalog_choice(self):
        drawn = select_jokers(50, 5, BALATRO_CATALOG, random.Random(5))
        assert {j.name for j in drawn} == set(BALATRO_CATALOG.names())

    def test_seeded_selection_is_reproducible(self):
        first = select_jokers(3, 3, rng=random.Random(7))
        second = select_jokers(3, 3, rng=random.Random(7))
        assert first == second


class TestApplyJokers:
    """Test the left-to-right fold."""

    def test_no_jokers(self):
        assert pipeline([], [3, 5]) == [3, 5]

    def test_order_matters(self):
        assert pipeline(std("The Incrementor", "The Multiplier"), [3]) == [16]
        assert pipeline(std("The Multiplier", "The Incrementor"), [3]) == [11]

    def test_statistics_follow_previous_joker(self):
        """Minimalist sees the doubled votes."""
        assert pipeline(std("The Multiplier", "The Minimalist"), [2, 5]) == [4, 4]

    def test_copycat_copies_right_neighbour(self):
        assert pipeline(std("The Copycat", "The Multiplier"), [5]) == [20]

    def test_mirror_repeats_left_neighbour(self):
        assert pipeline(std("The Incrementor", "The Mirror"), [1]) == [16]

    def test_lone_positional_jokers_do_nothing(self):
        assert pipeline(std("The Copycat"), [5]) == [5]
        assert pipeline(std("The Mirror"), [5]) == [5]

    def test_delegation_cycle_terminates(self):
        """Copycat and Mirror only point at each other."""
        assert pipeline(std("The Copycat", "The Mirror"), [5]) == [5]

    def test_mutual_copiers_terminate(self):
        copy_right = JokerDefinition("Right", "", DelegateEffect(DelegateKind.COPY_RIGHT))
        repeat_left = JokerDefinition("Left", "", DelegateEffect(DelegateKind.REPEAT_LEFT))
        copy_first = JokerDefinition("First", "", DelegateEffect(DelegateKind.COPY_LEFTMOST))
        assert pipeline([copy_right, repeat_left, copy_first], [7, 2]) == [7, 2]

    def test_brainstorm_copies_leftmost(self):
        jokers = [BALATRO_CATALOG.get(n) for n in ("Joker", "Gros Michel", "Brainstorm")]
        assert pipeline(jokers, [1]) == [24]

    def test_blueprint_copies_card_bonus(self):
        jokers = [BALATRO_CATALOG.get(n) for n in ("Blueprint", "Fibonacci")]
        player = Player(name="a", selected_cards=[Card(2), Card(3)], has_voted=True, original_vote=5)
        assert pipeline(jokers, [5], [player]) == [37]

    def test_unknown_joker_is_skipped(self, caplog):
        jokers = [unknown_joker("Retired"), STANDARD_CATALOG.get("The Multiplier")]
        with caplog.at_level(logging.WARNING):
            assert pipeline(jokers, [3]) == [6]
        assert "Retired" in caplog.text

    def test_result_is_index_aligned(self):
        assert pipeline(std("The Reverser"), [1, 5, 8]) == [8, 5, 1]

    def test_input_context_is_unchanged(self):
        ctx = VoteContext(votes=[2], active_jokers=std("The Multiplier"))
        apply_jokers(ctx)
        assert ctx.votes == (2,)
