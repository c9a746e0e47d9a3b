from __future__ import annotations

from dataclasses import dataclass

from typing import cast

from card_derby.core.types import RANKS, SUITS, Rank, Suit


@dataclass(frozen=True, slots=True)
class Card:
    suit: Suit
    rank: Rank

    @property
    def repr(self) -> str:
        return f"{self.suit}{self.rank}"


def parse_card(text: str) -> Card:
    """Parses '♥10', '♠K' etc."""
    text = text.strip()
    suit, rank = text[:1], text[1:].upper()
    if suit not in SUITS or rank not in RANKS:
        msg = f"Invalid card '{text}'. Expected a suit from {''.join(SUITS)} followed by a rank."
        raise ValueError(msg)
    return Card(cast("Suit", suit), cast("Rank", rank))


def parse_cards(text: str) -> list[Card]:
    return [parse_card(token) for token in text.split()]
