"""Core data models for Balatro Poker game state."""

import random
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from balatro_poker.jokers import JokerDefinition


# Values a vote can be snapped to; also the pool for random substitution
REFERENCE_VALUES: tuple[int, ...] = (1, 2, 3, 5, 8, 13, 21, 34)

DEFAULT_ALLOWED_VALUES: tuple[int, ...] = (1, 2, 3, 5, 8, 13, 21)
DEFAULT_JOKER_COUNT = 1
HAND_SIZE = 8

MIN_CARD_VALUE = 1
MAX_CARD_VALUE = 10
FACE_LABELS = frozenset({"J", "Q", "K"})


class Suit(Enum):
    """Card suits."""

    HEARTS = "H"
    DIAMONDS = "D"
    CLUBS = "C"
    SPADES = "S"

    def __str__(self) -> str:
        symbols = {"S": "♠", "H": "♥", "C": "♣", "D": "♦"}
        return symbols[self.value]

    @property
    def is_red(self) -> bool:
        return self in (Suit.HEARTS, Suit.DIAMONDS)


class GamePhase(Enum):
    """Lifecycle phase of a game."""

    SETUP = "setup"
    VOTING = "voting"
    REVEALED = "revealed"


@dataclass(frozen=True, slots=True)
class Card:
    """A voting card.

    Aces are worth 1, J/Q/K are worth 10. The face label only changes how
    the card is displayed and whether card-driven jokers see a face card.
    """

    value: int
    suit: Suit = Suit.SPADES
    face_label: str | None = None

    def __post_init__(self) -> None:
        if not MIN_CARD_VALUE <= self.value <= MAX_CARD_VALUE:
            raise ValueError(f"Invalid card value: {self.value}")
        if self.face_label is not None:
            if self.face_label == "A" and self.value != 1:
                raise ValueError("Ace must have value 1")
            if self.face_label in FACE_LABELS and self.value != 10:
                raise ValueError(f"Face card {self.face_label} must have value 10")
            if self.face_label != "A" and self.face_label not in FACE_LABELS:
                raise ValueError(f"Invalid face label: {self.face_label}")

    def __str__(self) -> str:
        return f"{self.display_value}{self.suit}"

    @property
    def display_value(self) -> str:
        if self.face_label:
            return self.face_label
        if self.value == 1:
            return "A"
        return str(self.value)

    @property
    def is_face(self) -> bool:
        """J, Q or K (aces are not face cards)."""
        return self.face_label in FACE_LABELS

    @property
    def is_ace(self) -> bool:
        return self.value == 1


def create_player_hand(rng: random.Random | None = None) -> list[Card]:
    """Deal a fresh hand: A, 2, 3, 5, 8, J, Q, K with random suits."""
    rng = rng or random.Random()
    suits = list(Suit)
    hand = [Card(value, rng.choice(suits)) for value in (1, 2, 3, 5, 8)]
    hand.extend(Card(10, rng.choice(suits), label) for label in ("J", "Q", "K"))
    return hand


@dataclass
class Player:
    """A player in a game and their vote for the current round."""

    name: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    hand: list[Card] = field(default_factory=list)
    selected_cards: list[Card] = field(default_factory=list)
    has_voted: bool = False
    original_vote: int = 0
    final_vote: int = 0

    @property
    def current_sum(self) -> int:
        return sum(c.value for c in self.selected_cards)

    def reset_round(self, hand: list[Card]) -> None:
        """Clear the vote and deal a new hand."""
        self.hand = hand
        self.selected_cards = []
        self.has_voted = False
        self.original_vote = 0
        self.final_vote = 0


@dataclass
class GameState:
    """Complete state of one game.

    Note: active_jokers ORDER matters, it is the pipeline execution order.
    """

    game_id: str
    admin_code: str
    player_code: str
    phase: GamePhase = GamePhase.SETUP
    allowed_values: list[int] = field(default_factory=lambda: list(DEFAULT_ALLOWED_VALUES))
    joker_count: int = DEFAULT_JOKER_COUNT
    catalog_name: str = "standard"
    players: list[Player] = field(default_factory=list)
    active_jokers: list["JokerDefinition"] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_update: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def touch(self) -> None:
        self.last_update = datetime.now(timezone.utc)

    @property
    def voted_players(self) -> list[Player]:
        """Players who have voted, in join order."""
        return [p for p in self.players if p.has_voted]

    @property
    def all_players_voted(self) -> bool:
        return bool(self.players) and all(p.has_voted for p in self.players)

    def find_player(self, player_id: str) -> Player | None:
        for player in self.players:
            if player.id == player_id:
                return player
        return None

    def find_player_by_name(self, name: str) -> Player | None:
        """Case-insensitive name lookup."""
        folded = name.casefold()
        for player in self.players:
            if player.name.casefold() == folded:
                return player
        return None

    @property
    def average_vote(self) -> float:
        voted = self.voted_players
        if not voted:
            return 0.0
        return sum(p.final_vote for p in voted) / len(voted)

    @property
    def min_vote(self) -> int:
        return min((p.final_vote for p in self.voted_players), default=0)

    @property
    def max_vote(self) -> int:
        return max((p.final_vote for p in self.voted_players), default=0)
