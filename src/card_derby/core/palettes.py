from typing import NamedTuple

from card_derby.core.types import Suit


class SuitPalette(NamedTuple):
    primary: str
    outline: str = "#000000"


SUIT_PALETTES: dict[Suit, SuitPalette] = {
    "♥": SuitPalette("#ff4d4f"),  # Red
    "♦": SuitPalette("#ff4d4f"),  # Red
    "♣": SuitPalette("#f5f5f5", "#1f1f1f"),  # Off-white
    "♠": SuitPalette("#f5f5f5", "#1f1f1f"),  # Off-white
}


def get_suit_color(suit: Suit) -> str:
    """Returns the primary hex colour of a suit, white if unknown."""
    palette = SUIT_PALETTES.get(suit)
    if palette is None:
        return "#ffffff"
    return palette.primary
