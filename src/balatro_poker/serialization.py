"""
Game state serialization and views.

Snapshots are plain JSON-safe dicts. Jokers are stored by name only and
re-bound through their catalog on load.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from .jokers import DEFAULT_CATALOG_NAME, CATALOGS, JokerDefinition, get_catalog
from .models import Card, GamePhase, GameState, Player, Suit

logger = logging.getLogger(__name__)


def card_to_dict(card: Card) -> Dict[str, Any]:
    return {"value": card.value, "suit": card.suit.name, "face_label": card.face_label}


def card_from_dict(data: Dict[str, Any]) -> Card:
    """Parse a card; raises ValueError for an unknown suit or bad value."""
    if not isinstance(data, dict):
        raise ValueError(f"Card must be an object, got {data!r}")
    suit_name = str(data.get("suit", "")).upper()
    if suit_name not in Suit.__members__:
        raise ValueError(f"Invalid suit: {data.get('suit')}")
    return Card(
        value=int(data["value"]),
        suit=Suit[suit_name],
        face_label=data.get("face_label"),
    )


def player_to_dict(player: Player) -> Dict[str, Any]:
    return {
        "id": player.id,
        "name": player.name,
        "hand": [card_to_dict(c) for c in player.hand],
        "selected_cards": [card_to_dict(c) for c in player.selected_cards],
        "has_voted": player.has_voted,
        "original_vote": player.original_vote,
        "final_vote": player.final_vote,
    }


def player_from_dict(data: Dict[str, Any]) -> Player:
    return Player(
        id=data["id"],
        name=data["name"],
        hand=[card_from_dict(c) for c in data.get("hand", [])],
        selected_cards=[card_from_dict(c) for c in data.get("selected_cards", [])],
        has_voted=bool(data.get("has_voted", False)),
        original_vote=int(data.get("original_vote", 0)),
        final_vote=int(data.get("final_vote", 0)),
    )


def joker_to_dict(joker: JokerDefinition) -> Dict[str, Any]:
    """Display form of a joker (never used for snapshots)."""
    return {
        "name": joker.name,
        "description": joker.description,
        "position": joker.position.value,
        "known": not joker.is_unknown,
    }


def game_to_dict(game: GameState) -> Dict[str, Any]:
    """Full snapshot of a game. Jokers are stored by name."""
    return {
        "game_id": game.game_id,
        "admin_code": game.admin_code,
        "player_code": game.player_code,
        "phase": game.phase.value,
        "allowed_values": list(game.allowed_values),
        "joker_count": game.joker_count,
        "catalog_name": game.catalog_name,
        "players": [player_to_dict(p) for p in game.players],
        "active_jokers": [j.name for j in game.active_jokers],
        "created_at": game.created_at.isoformat(),
        "last_update": game.last_update.isoformat(),
    }


def game_from_dict(data: Dict[str, Any]) -> GameState:
    """Rebuild a game from a snapshot, re-binding joker effects by name."""
    catalog_name = data.get("catalog_name", DEFAULT_CATALOG_NAME)
    if catalog_name not in CATALOGS:
        logger.warning(
            f"Game {data.get('game_id')} uses unknown catalog '{catalog_name}', "
            f"restoring jokers from '{DEFAULT_CATALOG_NAME}'"
        )
        catalog_name = DEFAULT_CATALOG_NAME
    catalog = get_catalog(catalog_name)

    game = GameState(
        game_id=data["game_id"],
        admin_code=data["admin_code"],
        player_code=data["player_code"],
        phase=GamePhase(data.get("phase", GamePhase.SETUP.value)),
        allowed_values=[int(v) for v in data.get("allowed_values", [])],
        joker_count=int(data.get("joker_count", 0)),
        catalog_name=catalog_name,
        players=[player_from_dict(p) for p in data.get("players", [])],
        active_jokers=catalog.restore_jokers(data.get("active_jokers", [])),
    )
    if "created_at" in data:
        game.created_at = datetime.fromisoformat(data["created_at"])
    if "last_update" in data:
        game.last_update = datetime.fromisoformat(data["last_update"])
    return game


def _game_summary(game: GameState) -> Dict[str, Any]:
    return {
        "game_id": game.game_id,
        "phase": game.phase.value,
        "allowed_values": list(game.allowed_values),
        "joker_count": game.joker_count,
        "catalog_name": game.catalog_name,
        "active_jokers": [joker_to_dict(j) for j in game.active_jokers],
        "all_players_voted": game.all_players_voted,
    }


def admin_view(game: GameState) -> Dict[str, Any]:
    """Everything the admin sees: codes, every player's cards and votes."""
    view = _game_summary(game)
    view["admin_code"] = game.admin_code
    view["player_code"] = game.player_code
    view["players"] = [player_to_dict(p) for p in game.players]
    if game.phase is GamePhase.REVEALED:
        view["average_vote"] = game.average_vote
        view["min_vote"] = game.min_vote
        view["max_vote"] = game.max_vote
    return view


def player_view(game: GameState, viewer_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Sanitize game state for a player.

    Args:
        game: Game to describe
        viewer_id: ID of the player viewing the state (to show their hand)

    Returns:
        View without the admin code. Other players' selections and votes
        are hidden until the round is revealed.
    """
    revealed = game.phase is GamePhase.REVEALED
    view = _game_summary(game)
    view["player_code"] = game.player_code

    players = []
    for player in game.players:
        entry: Dict[str, Any] = {
            "id": player.id,
            "name": player.name,
            "has_voted": player.has_voted,
        }
        if player.id == viewer_id:
            entry["hand"] = [card_to_dict(c) for c in player.hand]
        if revealed or player.id == viewer_id:
            entry["selected_cards"] = [card_to_dict(c) for c in player.selected_cards]
            entry["original_vote"] = player.original_vote
        if revealed:
            entry["final_vote"] = player.final_vote
        players.append(entry)
    view["players"] = players

    if revealed:
        view["average_vote"] = game.average_vote
        view["min_vote"] = game.min_vote
        view["max_vote"] = game.max_vote
    return view
