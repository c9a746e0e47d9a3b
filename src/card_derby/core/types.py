from __future__ import annotations

from typing import Literal, get_args

Suit = Literal["♥", "♦", "♣", "♠"]

Rank = Literal[
    "2",
    "3",
    "4",
    "5",
    "6",
    "7",
    "8",
    "9",
    "10",
    "J",
    "Q",
    "K",
    "A",
]

# Canonical enumeration order. Deck building, position iteration and
# winner tie-breaking all follow it.
SUITS: tuple[Suit, ...] = get_args(Suit)
RANKS: tuple[Rank, ...] = get_args(Rank)

SUIT_NAMES: dict[Suit, str] = {
    "♥": "hearts",
    "♦": "diamonds",
    "♣": "clubs",
    "♠": "spades",
}

FINISH_LINE = 5
SIDE_STACK_SIZE = 5
MAX_STAGES = 5

MIN_DRINKS = 1
MAX_DRINKS = 20

AnimationDirection = Literal["advance", "retreat"]

ErrorCode = Literal[
    "DECK_EXHAUSTED",
    "MAX_DRAWS_REACHED",
]
