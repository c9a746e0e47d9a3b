from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from card_derby.core.cards import Card
from card_derby.core.types import RANKS, SIDE_STACK_SIZE, SUITS

if TYPE_CHECKING:
    from collections.abc import Sequence


class RandomSource(Protocol):
    def randrange(self, stop: int, /) -> int: ...


class EmptyDeckError(IndexError):
    """Raised when drawing from a deck with no cards left."""


class DeckTooSmallError(ValueError):
    """Raised when a deck cannot supply the side stack."""


def canonical_deck() -> list[Card]:
    return [Card(suit, rank) for suit in SUITS for rank in RANKS]


def shuffle(cards: Sequence[Card], rng: RandomSource) -> list[Card]:
    """
    Fisher-Yates shuffle from the end, on a copy.
    Every permutation is reachable given a uniform `rng.randrange`.
    """
    shuffled = list(cards)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randrange(i + 1)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def build_deck(rng: RandomSource) -> list[Card]:
    return shuffle(canonical_deck(), rng)


def split_side_stack(
    deck: Sequence[Card],
    size: int = SIDE_STACK_SIZE,
) -> tuple[list[Card], list[Card]]:
    """Takes the first `size` cards as the side stack; the rest is the racing deck."""
    if len(deck) < size:
        msg = f"Deck has {len(deck)} cards, cannot set aside a side stack of {size}."
        raise DeckTooSmallError(msg)
    return list(deck[:size]), list(deck[size:])


def draw(deck: Sequence[Card]) -> tuple[Card, list[Card]]:
    if not deck:
        raise EmptyDeckError("Cannot draw from an empty deck.")
    return deck[0], list(deck[1:])
