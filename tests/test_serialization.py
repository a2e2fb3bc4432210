"""Tests for snapshots and per-viewer game views."""

import json
import logging

import pytest

from balatro_poker.jokers import BALATRO_CATALOG, STANDARD_CATALOG
from balatro_poker.models import Card, GamePhase, GameState, Player, Suit
from balatro_poker.serialization import (
    admin_view,
    card_from_dict,
    card_to_dict,
    game_from_dict,
    game_to_dict,
    joker_to_dict,
    player_view,
)


def make_game(phase: GamePhase = GamePhase.VOTING) -> GameState:
    game = GameState(game_id="g1", admin_code="ADMINCODE1", player_code="PLAYERCODE", phase=phase)
    game.players = [
        Player(
            name="Ada",
            hand=[Card(2, Suit.HEARTS), Card(10, Suit.CLUBS, "K")],
            selected_cards=[Card(2, Suit.HEARTS)],
            has_voted=True,
            original_vote=2,
            final_vote=7,
        ),
        Player(name="Bob", hand=[Card(3, Suit.SPADES)]),
    ]
    game.active_jokers = [STANDARD_CATALOG.get("The Incrementor")]
    return game


class TestCards:
    """Test card encoding."""

    def test_card_dict(self):
        assert card_to_dict(Card(10, Suit.DIAMONDS, "Q")) == {
            "value": 10, "suit": "DIAMONDS", "face_label": "Q",
        }

    def test_card_from_dict(self):
        card = card_from_dict({"value": 1, "suit": "hearts"})
        assert card == Card(1, Suit.HEARTS)

    def test_invalid_suit(self):
        with pytest.raises(ValueError):
            card_from_dict({"value": 3, "suit": "STARS"})

    def test_card_must_be_dict(self):
        with pytest.raises(ValueError):
            card_from_dict("A")

    def test_invalid_value(self):
        with pytest.raises(ValueError):
            card_from_dict({"value": 12, "suit": "CLUBS"})


class TestSnapshots:
    """Test full game snapshots."""

    def test_snapshot_is_json(self):
        data = game_to_dict(make_game())
        assert json.loads(json.dumps(data)) == data

    def test_jokers_stored_by_name(self):
        assert game_to_dict(make_game())["active_jokers"] == ["The Incrementor"]

    def test_restore(self):
        game = make_game()
        restored = game_from_dict(game_to_dict(game))
        assert restored.game_id == game.game_id
        assert restored.phase is GamePhase.VOTING
        assert restored.players[0].hand == game.players[0].hand
        assert restored.players[0].id == game.players[0].id
        assert restored.players[0].final_vote == 7
        assert restored.created_at == game.created_at
        assert restored.active_jokers[0] is STANDARD_CATALOG.get("The Incrementor")

    def test_restore_other_catalog(self):
        game = make_game()
        game.catalog_name = "balatro"
        game.active_jokers = [BALATRO_CATALOG.get("Blueprint"), BALATRO_CATALOG.get("Joker")]
        restored = game_from_dict(game_to_dict(game))
        assert restored.active_jokers == game.active_jokers

    def test_unknown_joker_name(self, caplog):
        data = game_to_dict(make_game())
        data["active_jokers"] = ["The Incrementor", "Retired Joker"]
        with caplog.at_level(logging.WARNING):
            restored = game_from_dict(data)
        assert [j.name for j in restored.active_jokers] == ["The Incrementor", "Retired Joker"]
        assert restored.active_jokers[1].is_unknown
        assert "Retired Joker" in caplog.text

    def test_unknown_catalog_falls_back(self, caplog):
        data = game_to_dict(make_game())
        data["catalog_name"] = "gone"
        with caplog.at_level(logging.WARNING):
            restored = game_from_dict(data)
        assert restored.catalog_name == "standard"
        assert not restored.active_jokers[0].is_unknown


class TestJokerDisplay:
    """Test joker display dicts."""

    def test_known_joker(self):
        assert joker_to_dict(STANDARD_CATALOG.get("The Copycat")) == {
            "name": "The Copycat",
            "description": "Copies the right joker's effect",
            "position": "left",
            "known": True,
        }

    def test_unknown_joker(self):
        joker = STANDARD_CATALOG.restore_jokers(["Old"])[0]
        assert joker_to_dict(joker)["known"] is False


class TestAdminView:
    """Test the admin's view."""

    def test_shows_codes_and_votes(self):
        view = admin_view(make_game())
        assert view["admin_code"] == "ADMINCODE1"
        assert view["player_code"] == "PLAYERCODE"
        assert view["players"][0]["original_vote"] == 2
        assert view["players"][1]["hand"] == [card_to_dict(Card(3, Suit.SPADES))]
        assert "average_vote" not in view

    def test_statistics_when_revealed(self):
        view = admin_view(make_game(GamePhase.REVEALED))
        assert view["average_vote"] == 7.0
        assert view["min_vote"] == 7
        assert view["max_vote"] == 7


class TestPlayerView:
    """Test what each player can see."""

    def test_hides_admin_code(self):
        view = player_view(make_game())
        assert "admin_code" not in view
        assert "ADMINCODE1" not in json.dumps(view)

    def test_only_viewer_sees_hand(self):
        game = make_game()
        view = player_view(game, game.players[1].id)
        ada, bob = view["players"]
        assert "hand" not in ada
        assert bob["hand"] == [card_to_dict(Card(3, Suit.SPADES))]

    def test_votes_hidden_until_reveal(self):
        game = make_game()
        view = player_view(game, game.players[1].id)
        ada = view["players"][0]
        assert ada["has_voted"]
        assert "selected_cards" not in ada
        assert "original_vote" not in ada
        assert "final_vote" not in ada

    def test_viewer_sees_own_selection(self):
        game = make_game()
        ada = player_view(game, game.players[0].id)["players"][0]
        assert ada["selected_cards"] == [card_to_dict(Card(2, Suit.HEARTS))]
        assert ada["original_vote"] == 2
        assert "final_vote" not in ada

    def test_everything_shown_after_reveal(self):
        game = make_game(GamePhase.REVEALED)
        view = player_view(game)
        ada = view["players"][0]
        assert ada["final_vote"] == 7
        assert ada["original_vote"] == 2
        assert view["average_vote"] == 7.0
        assert view["active_jokers"][0]["name"] == "The Incrementor"
