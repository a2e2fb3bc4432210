"""Joker selection and the vote pipeline.

CRITICAL: Effect order matters! The full sequence at reveal is:
1. Raw votes of the players who voted (sum of selected card values)
2. Jokers are drawn at random and arranged LEFT -> ANYWHERE -> RIGHT
3. For each joker in order:
   a. It sees the votes produced by the joker before it
   b. Statistics (min, max, average, median) come from those votes
   c. Its result replaces the votes for the next joker
4. The last result is the final vote list, index-aligned with the players

Example of why order matters:
- Joker A: +5 to everyone, Joker B: doubles all votes
- Order [A, B] on [3]: (3 + 5) x 2 = 16
- Order [B, A] on [3]: (3 x 2) + 5 = 11
"""

import logging
import random
from dataclasses import dataclass, field, replace
from typing import Iterable, Sequence

import numpy as np

from balatro_poker.jokers import STANDARD_CATALOG, JokerCatalog, JokerDefinition, JokerPosition
from balatro_poker.models import Card, Player

logger = logging.getLogger(__name__)

POSITION_ORDER = (JokerPosition.LEFT, JokerPosition.ANYWHERE, JokerPosition.RIGHT)


@dataclass(frozen=True)
class VoteContext:
    """Context passed to jokers during the pipeline.

    Immutable: each pipeline step and each delegated call gets a new value.
    votes, players and active_jokers are stored as tuples.
    """

    # Current votes, index-aligned with players
    votes: tuple[int, ...]

    # Voted players (for card-driven effects)
    players: tuple[Player, ...] = ()

    # The full arranged joker list
    active_jokers: tuple[JokerDefinition, ...] = ()

    # Index of the joker currently executing
    current_index: int = 0

    # Source for randomized effects
    rng: random.Random = field(default_factory=random.Random, compare=False, repr=False)

    # Joker indices already entered through delegation at this step
    delegation_path: tuple[int, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "votes", tuple(int(v) for v in self.votes))
        object.__setattr__(self, "players", tuple(self.players))
        object.__setattr__(self, "active_jokers", tuple(self.active_jokers))

    @classmethod
    def from_players(
        cls,
        players: Sequence[Player],
        active_jokers: Sequence[JokerDefinition],
        rng: random.Random | None = None,
    ) -> "VoteContext":
        """Build the initial context from voted players' original votes."""
        return cls(
            votes=tuple(p.original_vote for p in players),
            players=tuple(players),
            active_jokers=tuple(active_jokers),
            rng=rng if rng is not None else random.Random(),
        )

    # -------------------------------------------------------------------------
    # Statistics (always read from the current votes)
    # -------------------------------------------------------------------------

    @property
    def min(self) -> int:
        if not self.votes:
            return 0
        return int(np.min(self.votes))

    @property
    def max(self) -> int:
        if not self.votes:
            return 0
        return int(np.max(self.votes))

    @property
    def average(self) -> float:
        if not self.votes:
            return 0.0
        return float(np.mean(self.votes))

    @property
    def median(self) -> int:
        """Upper median: sorted(votes)[n // 2]."""
        if not self.votes:
            return 0
        return int(np.sort(self.votes)[len(self.votes) // 2])

    # -------------------------------------------------------------------------
    # Derived contexts
    # -------------------------------------------------------------------------

    def cards_for(self, index: int) -> tuple[Card, ...]:
        """Selected cards of the player behind votes[index]."""
        if 0 <= index < len(self.players):
            return tuple(self.players[index].selected_cards)
        return ()

    def with_votes(self, votes: Iterable[int]) -> "VoteContext":
        return replace(self, votes=tuple(votes))

    def at_step(self, index: int, votes: Iterable[int]) -> "VoteContext":
        """Context for running active_jokers[index] on the given votes."""
        return replace(self, votes=tuple(votes), current_index=index, delegation_path=())

    def can_delegate_to(self, index: int) -> bool:
        return (
            0 <= index < len(self.active_jokers)
            and index != self.current_index
            and index not in self.delegation_path
        )

    def delegate(self, index: int) -> "VoteContext":
        """Context for running a sibling's effect from the current position."""
        return replace(self, delegation_path=self.delegation_path + (index,))


def arrange_jokers(jokers: Iterable[JokerDefinition]) -> list[JokerDefinition]:
    """Stable partition into LEFT, ANYWHERE, RIGHT."""
    jokers = list(jokers)
    arranged = []
    for position in POSITION_ORDER:
        arranged.extend(j for j in jokers if j.position is position)
    return arranged


def select_jokers(
    count: int,
    total_enabled: int,
    catalog: JokerCatalog | None = None,
    rng: random.Random | None = None,
) -> list[JokerDefinition]:
    """Draw up to `count` distinct jokers and arrange them by position.

    Jokers needing more active jokers than `total_enabled` are never drawn.
    Asking for more jokers than are eligible returns all eligible ones.

    Args:
        count: Number of jokers wanted
        total_enabled: Number of jokers the game has enabled
        catalog: Catalog to draw from (standard catalog by default)
        rng: Random source (a fresh generator by default)

    Returns:
        Arranged list of joker definitions, possibly empty
    """
    if catalog is None:
        catalog = STANDARD_CATALOG
    if rng is None:
        rng = random.Random()

    available = [j for j in catalog if j.min_active_jokers <= total_enabled]
    if count <= 0 or not available:
        return []

    drawn = rng.sample(available, min(count, len(available)))
    return arrange_jokers(drawn)


def apply_jokers(context: VoteContext) -> list[int]:
    """Fold the active jokers over the context's votes, left to right.

    Args:
        context: Initial context; its votes are the raw votes

    Returns:
        Final votes, index-aligned with context.players
    """
    votes = list(context.votes)
    for index, joker in enumerate(context.active_jokers):
        votes = joker.apply(context.at_step(index, votes))
        logger.debug(f"Joker {index} '{joker.name}' -> {votes}")
    return votes
