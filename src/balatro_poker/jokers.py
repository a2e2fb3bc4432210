"""Joker definitions and effect system.

CRITICAL: Joker order matters for effect resolution. Jokers run left to
right and each one receives the votes produced by the joker before it.

Effect categories (one dataclass and one handler each):
- ArithmeticEffect: the same arithmetic on every vote
- CardBonusEffect: per-player bonus driven by that player's selected cards
- AggregateEffect: rewrites votes from the min/max/average/median of the round
- RandomEffect: draws from the context's random source
- DelegateEffect: runs the effect of a sibling joker

Only joker names are ever persisted. After loading a snapshot the effects
are bound again by name through JokerCatalog.restore_jokers.

Two catalogs are defined here: "standard" (the default) and "balatro".
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum, auto
from typing import TYPE_CHECKING, Callable, Iterable, Iterator

import numpy as np

from balatro_poker.models import REFERENCE_VALUES, Card, Suit

if TYPE_CHECKING:
    from balatro_poker.pipeline import VoteContext

logger = logging.getLogger(__name__)

# Effects that divide or subtract never go below this
VOTE_FLOOR = 1

# The Inverter subtracts votes from the largest reference value
INVERSION_BASE = max(REFERENCE_VALUES)


class JokerPosition(Enum):
    """Where a joker must sit in execution order."""

    ANYWHERE = "anywhere"
    LEFT = "left"  # Runs before every other joker
    RIGHT = "right"  # Runs after every other joker


# =============================================================================
# Effect Variants
# =============================================================================


class ArithmeticKind(Enum):
    ADD = auto()
    MULTIPLY = auto()
    HALVE = auto()
    SUBTRACT_FROM = auto()  # amount - vote
    SQUARE_ROOT = auto()
    ADD_PER_JOKER = auto()  # amount for each active joker
    NEAREST_REFERENCE = auto()


@dataclass(frozen=True)
class ArithmeticEffect:
    """Same arithmetic applied to every vote."""

    kind: ArithmeticKind
    amount: int = 0


@dataclass(frozen=True)
class CardFilter:
    """Predicate over a selected card. Unset fields match everything."""

    suit: Suit | None = None
    values: frozenset[int] | None = None
    face: bool = False
    odd: bool = False

    def matches(self, card: Card) -> bool:
        if self.suit is not None and card.suit != self.suit:
            return False
        if self.values is not None and card.value not in self.values:
            return False
        if self.face and not card.is_face:
            return False
        if self.odd and card.value % 2 == 0:
            return False
        return True


ANY_CARD = CardFilter()


@dataclass(frozen=True)
class CardBonusEffect:
    """Per-player bonus from the player's matching selected cards.

    For each player, with `matched` the selected cards passing the filter
    (only the first one when first_only is set):

        vote = (vote + per_card * len(matched) + repeat_value * sum(values))
               * (multiplier if matched else 1)
    """

    card_filter: CardFilter = ANY_CARD
    per_card: int = 0
    repeat_value: int = 0
    multiplier: int = 1
    first_only: bool = False


class AggregateKind(Enum):
    MINIMUM = auto()
    MAXIMUM = auto()
    AVERAGE = auto()
    CAP_AT_MEDIAN = auto()
    ADD_MAXIMUM = auto()
    DOUBLE_MINIMUM = auto()
    SWAP_EXTREMES = auto()


@dataclass(frozen=True)
class AggregateEffect:
    """Votes rewritten from statistics of the current vote list."""

    kind: AggregateKind


class RandomKind(Enum):
    ADD = auto()
    MULTIPLY = auto()
    REFERENCE_VALUE = auto()


@dataclass(frozen=True)
class RandomEffect:
    """Randomized effect. Bounds are inclusive."""

    kind: RandomKind
    low: int = 0
    high: int = 0


class DelegateKind(Enum):
    COPY_LEFTMOST = auto()
    COPY_RIGHT = auto()
    REPEAT_LEFT = auto()  # Left neighbour's effect applied twice


@dataclass(frozen=True)
class DelegateEffect:
    """Runs the effect of another active joker."""

    kind: DelegateKind


@dataclass(frozen=True)
class UnknownEffect:
    """Bound when a stored joker name no longer exists in the catalog."""

    name: str


JokerEffect = (
    ArithmeticEffect
    | CardBonusEffect
    | AggregateEffect
    | RandomEffect
    | DelegateEffect
    | UnknownEffect
)


@dataclass(frozen=True)
class JokerDefinition:
    """Static definition of a joker."""

    name: str
    description: str
    effect: JokerEffect
    position: JokerPosition = JokerPosition.ANYWHERE
    min_active_jokers: int = 1

    @property
    def is_unknown(self) -> bool:
        return isinstance(self.effect, UnknownEffect)

    def apply(self, ctx: "VoteContext") -> list[int]:
        """Transform the context's votes with this joker's effect."""
        return apply_effect(self.effect, ctx)


def unknown_joker(name: str) -> JokerDefinition:
    """Placeholder for a stored name with no catalog entry."""
    return JokerDefinition(
        name=name,
        description="Unknown joker (no effect)",
        effect=UnknownEffect(name),
    )


# =============================================================================
# Helper Functions
# =============================================================================


def round_vote(value: float) -> int:
    """Round to the nearest integer, ties to even."""
    return int(np.rint(value))


def nearest_reference(value: int) -> int:
    """Closest reference value; ties go to the smaller one."""
    refs = np.asarray(REFERENCE_VALUES)
    return int(refs[np.abs(refs - value).argmin()])


# =============================================================================
# Effect Handlers
# =============================================================================


def _apply_arithmetic(effect: ArithmeticEffect, ctx: "VoteContext") -> list[int]:
    kind = effect.kind
    votes = ctx.votes
    if kind is ArithmeticKind.ADD:
        return [v + effect.amount for v in votes]
    if kind is ArithmeticKind.MULTIPLY:
        return [v * effect.amount for v in votes]
    if kind is ArithmeticKind.HALVE:
        return [max(VOTE_FLOOR, round_vote(v / 2)) for v in votes]
    if kind is ArithmeticKind.SUBTRACT_FROM:
        return [max(VOTE_FLOOR, effect.amount - v) for v in votes]
    if kind is ArithmeticKind.SQUARE_ROOT:
        return [max(VOTE_FLOOR, round_vote(math.sqrt(max(v, 0)))) for v in votes]
    if kind is ArithmeticKind.ADD_PER_JOKER:
        bonus = effect.amount * len(ctx.active_jokers)
        return [v + bonus for v in votes]
    if kind is ArithmeticKind.NEAREST_REFERENCE:
        return [nearest_reference(v) for v in votes]
    return list(votes)


def _apply_card_bonus(effect: CardBonusEffect, ctx: "VoteContext") -> list[int]:
    result = []
    for i, vote in enumerate(ctx.votes):
        matched = [c for c in ctx.cards_for(i) if effect.card_filter.matches(c)]
        if effect.first_only:
            matched = matched[:1]
        bonus = effect.per_card * len(matched)
        bonus += effect.repeat_value * sum(c.value for c in matched)
        factor = effect.multiplier if matched else 1
        result.append((vote + bonus) * factor)
    return result


def _apply_aggregate(effect: AggregateEffect, ctx: "VoteContext") -> list[int]:
    kind = effect.kind
    votes = ctx.votes
    if not votes:
        return []
    if kind is AggregateKind.MINIMUM:
        return [ctx.min] * len(votes)
    if kind is AggregateKind.MAXIMUM:
        return [ctx.max] * len(votes)
    if kind is AggregateKind.AVERAGE:
        return [round_vote(ctx.average)] * len(votes)
    if kind is AggregateKind.CAP_AT_MEDIAN:
        median = ctx.median
        return [min(v, median) for v in votes]
    if kind is AggregateKind.ADD_MAXIMUM:
        top = ctx.max
        return [v + top for v in votes]
    if kind is AggregateKind.DOUBLE_MINIMUM:
        low = ctx.min
        return [v * 2 if v == low else v for v in votes]
    if kind is AggregateKind.SWAP_EXTREMES:
        low, high = ctx.min, ctx.max
        return [high if v == low else low if v == high else v for v in votes]
    return list(votes)


def _apply_random(effect: RandomEffect, ctx: "VoteContext") -> list[int]:
    rng = ctx.rng
    kind = effect.kind
    if kind is RandomKind.ADD:
        return [v + rng.randint(effect.low, effect.high) for v in ctx.votes]
    if kind is RandomKind.MULTIPLY:
        return [v * rng.randint(effect.low, effect.high) for v in ctx.votes]
    if kind is RandomKind.REFERENCE_VALUE:
        return [rng.choice(REFERENCE_VALUES) for _ in ctx.votes]
    return list(ctx.votes)


def _apply_delegate(effect: DelegateEffect, ctx: "VoteContext") -> list[int]:
    if effect.kind is DelegateKind.COPY_LEFTMOST:
        target = 0
    elif effect.kind is DelegateKind.COPY_RIGHT:
        target = ctx.current_index + 1
    else:
        target = ctx.current_index - 1

    if not ctx.can_delegate_to(target):
        return list(ctx.votes)

    sibling = ctx.active_jokers[target]
    delegated = ctx.delegate(target)
    result = sibling.apply(delegated)
    if effect.kind is DelegateKind.REPEAT_LEFT:
        result = sibling.apply(delegated.with_votes(result))
    return result


def _apply_unknown(effect: UnknownEffect, ctx: "VoteContext") -> list[int]:
    logger.warning(f"Joker '{effect.name}' has no known effect, votes unchanged")
    return list(ctx.votes)


EFFECT_HANDLERS: dict[type, Callable] = {
    ArithmeticEffect: _apply_arithmetic,
    CardBonusEffect: _apply_card_bonus,
    AggregateEffect: _apply_aggregate,
    RandomEffect: _apply_random,
    DelegateEffect: _apply_delegate,
    UnknownEffect: _apply_unknown,
}


def apply_effect(effect: JokerEffect, ctx: "VoteContext") -> list[int]:
    """Dispatch an effect to its category handler."""
    handler = EFFECT_HANDLERS.get(type(effect))
    if handler is None:
        logger.warning(f"No handler for effect {effect!r}, votes unchanged")
        return list(ctx.votes)
    return handler(effect, ctx)


# =============================================================================
# Catalog
# =============================================================================


class JokerCatalog:
    """Immutable name-keyed table of joker definitions."""

    def __init__(
        self,
        name: str,
        definitions: Iterable[JokerDefinition],
        aliases: dict[str, str] | None = None,
    ):
        self.name = name
        self._jokers: dict[str, JokerDefinition] = {}
        for definition in definitions:
            if definition.name in self._jokers:
                raise ValueError(f"Duplicate joker in catalog {name}: {definition.name}")
            self._jokers[definition.name] = definition

        # Older spellings still found in stored games
        self._aliases = dict(aliases or {})
        for alias, target in self._aliases.items():
            if target not in self._jokers:
                raise ValueError(f"Alias {alias} points to unknown joker: {target}")

    def __iter__(self) -> Iterator[JokerDefinition]:
        return iter(self._jokers.values())

    def __len__(self) -> int:
        return len(self._jokers)

    def __contains__(self, name: object) -> bool:
        return name in self._jokers

    def __repr__(self) -> str:
        return f"JokerCatalog({self.name!r}, {len(self)} jokers)"

    def get(self, name: str) -> JokerDefinition:
        """Look up a joker by name."""
        if name not in self._jokers:
            raise ValueError(f"Unknown joker: {name}")
        return self._jokers[name]

    def names(self) -> list[str]:
        return list(self._jokers.keys())

    def resolve(self, name: str) -> JokerDefinition:
        """Look up a joker (or an alias), binding an UnknownEffect placeholder if missing."""
        definition = self._jokers.get(self._aliases.get(name, name))
        if definition is None:
            logger.warning(f"Joker '{name}' not in catalog '{self.name}', bound as unknown")
            return unknown_joker(name)
        return definition

    def restore_jokers(self, names: Iterable[str]) -> list[JokerDefinition]:
        """Re-bind persisted joker names to their definitions, keeping order."""
        return [self.resolve(name) for name in names]


def _suit_bonus(name: str, suit: Suit, label: str) -> JokerDefinition:
    return JokerDefinition(
        name=name,
        description=f"Each {label} card gives +3 bonus",
        effect=CardBonusEffect(card_filter=CardFilter(suit=suit), per_card=3),
    )


STANDARD_JOKERS: list[JokerDefinition] = [
    JokerDefinition(
        name="The Multiplier", description="Doubles all votes",
        effect=ArithmeticEffect(ArithmeticKind.MULTIPLY, 2),
    ),
    JokerDefinition(
        name="The Incrementor", description="Add +5 to everyone",
        effect=ArithmeticEffect(ArithmeticKind.ADD, 5),
    ),
    JokerDefinition(
        name="The Halver", description="Cut everything in half",
        effect=ArithmeticEffect(ArithmeticKind.HALVE),
    ),
    JokerDefinition(
        name="The Minimalist", description="Everyone gets minimum",
        effect=AggregateEffect(AggregateKind.MINIMUM),
    ),
    JokerDefinition(
        name="The Maximalist", description="Everyone gets maximum",
        effect=AggregateEffect(AggregateKind.MAXIMUM),
    ),
    JokerDefinition(
        name="The Equalizer", description="Everyone gets average",
        effect=AggregateEffect(AggregateKind.AVERAGE),
    ),
    JokerDefinition(
        name="The Anarchist", description="All votes become random",
        effect=RandomEffect(RandomKind.REFERENCE_VALUE),
    ),
    JokerDefinition(
        name="The Fibonacci Lover", description="Round to nearest Fibonacci",
        effect=ArithmeticEffect(ArithmeticKind.NEAREST_REFERENCE),
    ),
    JokerDefinition(
        name="The Chaos", description="Multiply by random 1-3",
        effect=RandomEffect(RandomKind.MULTIPLY, 1, 3),
    ),
    JokerDefinition(
        name="The Inverter", description=f"{INVERSION_BASE} minus your vote",
        effect=ArithmeticEffect(ArithmeticKind.SUBTRACT_FROM, INVERSION_BASE),
    ),
    JokerDefinition(
        name="The Square Root", description="Square root of all votes",
        effect=ArithmeticEffect(ArithmeticKind.SQUARE_ROOT),
    ),
    JokerDefinition(
        name="The Reverser", description="Swap highest and lowest",
        effect=AggregateEffect(AggregateKind.SWAP_EXTREMES),
        min_active_jokers=2,
    ),
    JokerDefinition(
        name="The Copycat", description="Copies the right joker's effect",
        effect=DelegateEffect(DelegateKind.COPY_RIGHT),
        position=JokerPosition.LEFT, min_active_jokers=2,
    ),
    JokerDefinition(
        name="The Mirror", description="Applies left joker's effect twice",
        effect=DelegateEffect(DelegateKind.REPEAT_LEFT),
        position=JokerPosition.RIGHT, min_active_jokers=2,
    ),
    JokerDefinition(
        name="The Median Seeker", description="Votes > median become median",
        effect=AggregateEffect(AggregateKind.CAP_AT_MEDIAN),
        min_active_jokers=2,
    ),
    JokerDefinition(
        name="The Pessimist", description="Add highest vote to everyone",
        effect=AggregateEffect(AggregateKind.ADD_MAXIMUM),
        min_active_jokers=2,
    ),
    JokerDefinition(
        name="The Duplicator", description="Lowest vote gets doubled",
        effect=AggregateEffect(AggregateKind.DOUBLE_MINIMUM),
        min_active_jokers=2,
    ),
]


BALATRO_JOKERS: list[JokerDefinition] = [
    JokerDefinition(
        name="Joker", description="Adds +4 to each vote",
        effect=ArithmeticEffect(ArithmeticKind.ADD, 4),
    ),
    _suit_bonus("Greedy Joker", Suit.DIAMONDS, "Diamond"),
    _suit_bonus("Lusty Joker", Suit.HEARTS, "Heart"),
    _suit_bonus("Wrathful Joker", Suit.SPADES, "Spade"),
    _suit_bonus("Gluttonous Joker", Suit.CLUBS, "Club"),
    JokerDefinition(
        name="Misprint", description="Random bonus between 1 and 23",
        effect=RandomEffect(RandomKind.ADD, 1, 23),
    ),
    JokerDefinition(
        name="Fibonacci", description="Each card gives +8 bonus",
        effect=CardBonusEffect(per_card=8),
    ),
    JokerDefinition(
        name="Scary Face", description="Each face card gives +30 points",
        effect=CardBonusEffect(card_filter=CardFilter(face=True), per_card=30),
    ),
    JokerDefinition(
        name="Abstract Joker", description="+3 for each active joker",
        effect=ArithmeticEffect(ArithmeticKind.ADD_PER_JOKER, 3),
    ),
    JokerDefinition(
        name="Hack", description="2, 3, and 5 count twice",
        effect=CardBonusEffect(
            card_filter=CardFilter(values=frozenset({2, 3, 5})), repeat_value=1,
        ),
    ),
    JokerDefinition(
        name="Gros Michel", description="+15 bonus to all votes",
        effect=ArithmeticEffect(ArithmeticKind.ADD, 15),
    ),
    JokerDefinition(
        name="Even Steven", description="2 and 8 give +4 bonus",
        effect=CardBonusEffect(card_filter=CardFilter(values=frozenset({2, 8})), per_card=4),
    ),
    JokerDefinition(
        name="Odd Todd", description="Odd cards give +31 points",
        effect=CardBonusEffect(card_filter=CardFilter(odd=True), per_card=31),
    ),
    JokerDefinition(
        name="Scholar", description="Aces give +20 points and multiply by 4",
        effect=CardBonusEffect(
            card_filter=CardFilter(values=frozenset({1})), per_card=20, multiplier=4,
        ),
    ),
    JokerDefinition(
        name="Photograph", description="First face card multiplied by 2",
        effect=CardBonusEffect(card_filter=CardFilter(face=True), multiplier=2, first_only=True),
    ),
    JokerDefinition(
        name="Popcorn", description="+20 bonus to all votes",
        effect=ArithmeticEffect(ArithmeticKind.ADD, 20),
    ),
    JokerDefinition(
        name="Sock and Buskin", description="Face cards count twice",
        effect=CardBonusEffect(card_filter=CardFilter(face=True), repeat_value=1),
    ),
    JokerDefinition(
        name="Hanging Chad", description="First card played three times",
        effect=CardBonusEffect(repeat_value=2, first_only=True),
    ),
    JokerDefinition(
        name="Brainstorm", description="Copies the leftmost joker",
        effect=DelegateEffect(DelegateKind.COPY_LEFTMOST),
        position=JokerPosition.RIGHT, min_active_jokers=2,
    ),
    JokerDefinition(
        name="Blueprint", description="Copies ability of joker to the right",
        effect=DelegateEffect(DelegateKind.COPY_RIGHT),
        position=JokerPosition.LEFT, min_active_jokers=2,
    ),
]


STANDARD_CATALOG = JokerCatalog("standard", STANDARD_JOKERS)
BALATRO_CATALOG = JokerCatalog(
    "balatro", BALATRO_JOKERS, aliases={"Sock and Buscin": "Sock and Buskin"},
)

DEFAULT_CATALOG_NAME = STANDARD_CATALOG.name

CATALOGS: dict[str, JokerCatalog] = {
    STANDARD_CATALOG.name: STANDARD_CATALOG,
    BALATRO_CATALOG.name: BALATRO_CATALOG,
}


def get_catalog(name: str) -> JokerCatalog:
    """Look up a catalog by name."""
    if name not in CATALOGS:
        raise ValueError(f"Unknown joker catalog: {name}")
    return CATALOGS[name]
