"""Game orchestration for Balatro Poker.

Owns the game/player/vote lifecycle and runs the joker pipeline at reveal.

Key design decisions:
- Every mutation of a game runs under that game's lock, so a reveal sees
  a consistent snapshot of votes and no vote lands halfway through it
- One injectable random source for hands, joker draws and random jokers
- Player-facing failures are returned as ActionResult, not raised
- Game events are logged as "METRIC: <event>, key=value" lines
"""

import logging
import random
import secrets
import string
import threading
import uuid
from collections import Counter, defaultdict
from dataclasses import dataclass
from typing import Iterable

from balatro_poker.jokers import CATALOGS, DEFAULT_CATALOG_NAME, get_catalog
from balatro_poker.models import (
    DEFAULT_ALLOWED_VALUES,
    DEFAULT_JOKER_COUNT,
    Card,
    GamePhase,
    GameState,
    Player,
    create_player_hand,
)
from balatro_poker.pipeline import VoteContext, apply_jokers, select_jokers
from balatro_poker.storage import InMemoryGameStore

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 10
MAX_NAME_LENGTH = 40


@dataclass
class ActionResult:
    """Result of a game operation."""

    success: bool
    message: str
    game: GameState | None = None
    player: Player | None = None


def _metric(event: str, **fields) -> None:
    details = ", ".join(f"{key}={value}" for key, value in fields.items())
    logger.info(f"METRIC: {event}, {details}")


def _join(values: Iterable) -> str:
    return ",".join(str(v) for v in values)


def _is_int(value) -> bool:
    # bool is an int subclass; JSON true/false are not counts
    return isinstance(value, int) and not isinstance(value, bool)


def _validate_settings(allowed_values: list[int] | None, joker_count: int | None) -> str | None:
    """Return an error message, or None when the settings are usable."""
    if allowed_values is not None:
        if not allowed_values:
            return "Allowed values cannot be empty"
        if any(not _is_int(v) or v < 1 for v in allowed_values):
            return "Allowed values must be positive integers"
    if joker_count is not None and (not _is_int(joker_count) or joker_count < 0):
        return "Joker count must be a non-negative integer"
    return None


class GameService:
    """Creates games and runs every game operation.

    Games are independent: each one has its own lock and no operation
    touches more than one game.
    """

    def __init__(self, store: InMemoryGameStore | None = None, rng: random.Random | None = None):
        self.store = store if store is not None else InMemoryGameStore()
        self.rng = rng if rng is not None else random.Random()
        self._registry_lock = threading.Lock()
        self._game_locks: defaultdict[str, threading.Lock] = defaultdict(threading.Lock)

    def _lock_for(self, game_id: str) -> threading.Lock:
        with self._registry_lock:
            return self._game_locks[game_id]

    def _save(self, game: GameState) -> None:
        game.touch()
        self.store.put(game)

    # =========================================================================
    # Lookup
    # =========================================================================

    def get_game(self, game_id: str) -> GameState | None:
        return self.store.get(game_id)

    def get_game_by_admin_code(self, admin_code: str) -> GameState | None:
        for game in self.store.all():
            if game.admin_code == admin_code:
                return game
        return None

    def get_game_by_player_code(self, player_code: str) -> GameState | None:
        for game in self.store.all():
            if game.player_code == player_code:
                return game
        return None

    def _new_code(self) -> str:
        taken = {code for g in self.store.all() for code in (g.admin_code, g.player_code)}
        while True:
            code = "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))
            if code not in taken:
                return code

    # =========================================================================
    # Setup
    # =========================================================================

    def create_game(
        self,
        allowed_values: list[int] | None = None,
        joker_count: int = DEFAULT_JOKER_COUNT,
        catalog_name: str = DEFAULT_CATALOG_NAME,
        phase: GamePhase = GamePhase.VOTING,
    ) -> ActionResult:
        """Create a game with fresh admin and player codes."""
        values = list(allowed_values) if allowed_values is not None else list(DEFAULT_ALLOWED_VALUES)
        error = _validate_settings(values, joker_count)
        if error:
            logger.warning(f"Rejected game creation: {error}")
            return ActionResult(False, error)
        if catalog_name not in CATALOGS:
            logger.warning(f"Rejected game creation: unknown catalog {catalog_name}")
            return ActionResult(False, f"Unknown joker catalog: {catalog_name}")

        with self._registry_lock:
            admin_code = self._new_code()
            player_code = self._new_code()
            while True:
                game_id = uuid.uuid4().hex[:8]
                if self.store.get(game_id) is None:
                    break
            game = GameState(
                game_id=game_id,
                admin_code=admin_code,
                player_code=player_code,
                phase=phase,
                allowed_values=sorted(set(values)),
                joker_count=joker_count,
                catalog_name=catalog_name,
            )
            self.store.put(game)

        logger.info(f"Game created with ID {game.game_id}")
        _metric(
            "game_created",
            game_id=game.game_id,
            allowed_values=_join(game.allowed_values),
            joker_count=joker_count,
        )
        return ActionResult(True, "Game created", game=game)

    def update_settings(
        self,
        admin_code: str,
        allowed_values: list[int] | None = None,
        joker_count: int | None = None,
    ) -> ActionResult:
        """Change allowed values and/or joker count. Applies from the next vote/reveal."""
        game = self.get_game_by_admin_code(admin_code)
        if game is None:
            logger.warning(f"Game not found for admin code {admin_code} when updating settings")
            return ActionResult(False, "Invalid admin code")

        error = _validate_settings(allowed_values, joker_count)
        if error:
            logger.warning(f"Rejected settings for game {game.game_id}: {error}")
            return ActionResult(False, error, game=game)

        with self._lock_for(game.game_id):
            if allowed_values is not None:
                game.allowed_values = sorted(set(allowed_values))
            if joker_count is not None:
                game.joker_count = joker_count
            self._save(game)

        logger.info(
            f"Settings updated for game {game.game_id}: "
            f"allowed={game.allowed_values}, jokers={game.joker_count}"
        )
        return ActionResult(True, "Settings updated", game=game)

    def add_player(self, player_code: str, name: str) -> ActionResult:
        """Join a game. A case-insensitive name match returns the existing player."""
        logger.debug(f"Attempting to add player {name} to game with player code {player_code}")
        if name is not None and not isinstance(name, str):
            return ActionResult(False, "Player name must be a string")
        name = (name or "").strip()
        if not name:
            return ActionResult(False, "Player name cannot be empty")
        if len(name) > MAX_NAME_LENGTH:
            return ActionResult(False, f"Player name longer than {MAX_NAME_LENGTH} characters")

        game = self.get_game_by_player_code(player_code)
        if game is None:
            logger.warning(f"Game not found for player code {player_code} when adding player {name}")
            return ActionResult(False, "Invalid player code")

        with self._lock_for(game.game_id):
            existing = game.find_player_by_name(name)
            if existing is not None:
                logger.info(f"Player {name} already exists in game {game.game_id}, returning existing player")
                return ActionResult(True, "Player already joined", game=game, player=existing)

            player = Player(name=name, hand=create_player_hand(self.rng))
            game.players.append(player)
            self._save(game)

        logger.info(f"Player {name} joined game {game.game_id}")
        _metric("player_joined", game_id=game.game_id, player_name=name, player_count=len(game.players))
        return ActionResult(True, "Player joined", game=game, player=player)

    # =========================================================================
    # Round
    # =========================================================================

    def start_voting(self, admin_code: str) -> ActionResult:
        """Move a game from SETUP to VOTING."""
        game = self.get_game_by_admin_code(admin_code)
        if game is None:
            logger.warning(f"Game not found for admin code {admin_code} when starting voting")
            return ActionResult(False, "Invalid admin code")

        with self._lock_for(game.game_id):
            if game.phase is GamePhase.REVEALED:
                return ActionResult(False, "Round already revealed, start a new round", game=game)
            previous = game.phase
            game.phase = GamePhase.VOTING
            self._save(game)

        logger.info(
            f"Voting started for game {game.game_id} "
            f"(changed from {previous.value} to {game.phase.value}). Players: {len(game.players)}"
        )
        _metric("voting_started", game_id=game.game_id, player_count=len(game.players))
        return ActionResult(True, "Voting started", game=game)

    def submit_vote(self, player_code: str, player_id: str, selected_cards: list[Card]) -> ActionResult:
        """Record a player's card selection as their vote.

        The cards must come from the player's hand and sum to an allowed
        value. A rejected vote leaves the player's previous vote untouched.
        """
        game = self.get_game_by_player_code(player_code)
        if game is None:
            logger.warning(f"Game not found for player code {player_code} during vote submission")
            return ActionResult(False, "Invalid player code")

        with self._lock_for(game.game_id):
            player = game.find_player(player_id)
            if player is None:
                logger.warning(f"Player {player_id} not found in game {game.game_id} during vote submission")
                return ActionResult(False, "Player not found", game=game)

            if game.phase is not GamePhase.VOTING:
                logger.warning(f"Vote by {player.name} rejected, game {game.game_id} is {game.phase.value}")
                return ActionResult(False, "Game is not accepting votes", game=game, player=player)

            missing = Counter(selected_cards) - Counter(player.hand)
            if missing:
                logger.warning(f"Vote by {player.name} uses cards not in hand: {list(missing)}")
                return ActionResult(False, "Selected cards must come from your hand", game=game, player=player)

            total = sum(c.value for c in selected_cards)
            cards_display = "+".join(c.display_value for c in selected_cards)
            if total not in game.allowed_values:
                logger.warning(
                    f"Invalid vote sum {total} (cards: {cards_display}) by player {player.name} "
                    f"in game {game.game_id}. Allowed values: {_join(game.allowed_values)}"
                )
                return ActionResult(
                    False, "Sum must match an allowed value", game=game, player=player,
                )

            player.selected_cards = list(selected_cards)
            player.original_vote = total
            player.final_vote = total
            player.has_voted = True
            self._save(game)

        logger.info(f"Vote submitted by {player.name} in game {game.game_id}: {total} (cards: {cards_display})")
        _metric(
            "vote_submitted",
            game_id=game.game_id,
            player_name=player.name,
            vote_value=total,
            cards_display=cards_display,
            cards_detail=_join(f"{c.display_value}({c.value}){c.suit.name}" for c in selected_cards),
        )
        return ActionResult(True, "Vote submitted", game=game, player=player)

    def reveal(self, admin_code: str) -> ActionResult:
        """Draw jokers, run them over the votes and reveal the round."""
        game = self.get_game_by_admin_code(admin_code)
        if game is None:
            logger.error(f"Game not found for admin code {admin_code}")
            return ActionResult(False, "Invalid admin code")

        with self._lock_for(game.game_id):
            if game.phase is not GamePhase.VOTING:
                logger.warning(f"Game {game.game_id} phase is {game.phase.value}, not voting")
                return ActionResult(False, "Game is not in voting phase", game=game)

            catalog = get_catalog(game.catalog_name)
            game.active_jokers = select_jokers(game.joker_count, game.joker_count, catalog, self.rng)
            logger.debug(
                f"Selected {len(game.active_jokers)} jokers: "
                f"{', '.join(j.name for j in game.active_jokers)}"
            )
            for joker in game.active_jokers:
                _metric(
                    "joker_used",
                    game_id=game.game_id,
                    joker_name=joker.name,
                    joker_description=joker.description,
                )

            voted = game.voted_players
            original_votes = [p.original_vote for p in voted]
            logger.debug(f"Original votes: {original_votes}")

            if game.active_jokers and voted:
                context = VoteContext.from_players(voted, game.active_jokers, self.rng)
                final_votes = apply_jokers(context)
                logger.debug(f"Final votes after jokers: {final_votes}")
                for player, final in zip(voted, final_votes):
                    player.final_vote = final
            else:
                logger.debug("No jokers or no votes - copying original to final")
                for player in voted:
                    player.final_vote = player.original_vote

            game.phase = GamePhase.REVEALED
            self._save(game)

        logger.info(f"Round completed for game {game.game_id}")
        _metric(
            "round_completed",
            game_id=game.game_id,
            player_count=len(game.players),
            original_votes=_join(original_votes),
            final_votes=_join(p.final_vote for p in voted),
            jokers_used=_join(j.name for j in game.active_jokers),
        )
        return ActionResult(True, "Cards revealed", game=game)

    def start_new_round(self, admin_code: str) -> ActionResult:
        """Deal new hands, clear votes and jokers, and reopen voting.

        Codes, players and settings are kept.
        """
        game = self.get_game_by_admin_code(admin_code)
        if game is None:
            logger.warning(f"Game not found for admin code {admin_code} when starting new round")
            return ActionResult(False, "Invalid admin code")

        with self._lock_for(game.game_id):
            for player in game.players:
                player.reset_round(create_player_hand(self.rng))
            game.active_jokers = []
            game.phase = GamePhase.VOTING
            self._save(game)

        logger.info(f"New round started for game {game.game_id}")
        return ActionResult(True, "New round started", game=game)
