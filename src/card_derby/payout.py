from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import msgspec

from card_derby.core.types import MAX_DRINKS, MIN_DRINKS, Suit

if TYPE_CHECKING:
    from collections.abc import Sequence


def clamp_drinks(value: float) -> int:
    """Rounds a stake and keeps it inside the allowed drink range."""
    return min(max(round(value), MIN_DRINKS), MAX_DRINKS)


class Bet(msgspec.Struct, frozen=True):
    name: str
    suit: Suit
    drinks: int = MIN_DRINKS

    def __post_init__(self) -> None:
        if not MIN_DRINKS <= self.drinks <= MAX_DRINKS:
            msg = f"Stake of {self.name} must be between {MIN_DRINKS} and {MAX_DRINKS} drinks, got {self.drinks}."
            raise ValueError(msg)

    @property
    def repr(self) -> str:
        return f"{self.name} ({self.suit} x{self.drinks})"


@dataclass(frozen=True, slots=True)
class PayoutResult:
    winner: Suit
    # Winning bettors and the drinks each of them hands out
    handouts: dict[str, int] = field(default_factory=dict)
    # Group share when nobody picked the winner
    everyone_drinks: int = 0

    @property
    def has_winners(self) -> bool:
        return bool(self.handouts)

    def lines(self) -> list[str]:
        if self.has_winners:
            return [f"{name}: {drinks} drinks" for name, drinks in self.handouts.items()]
        return [f"No one picked {self.winner}. Everyone drinks {self.everyone_drinks}!"]


def compute_payouts(winner: Suit, bets: Sequence[Bet]) -> PayoutResult:
    """
    Bettors on the winning suit hand out double their stake.
    If nobody picked the winner, everyone drinks one per player.
    """
    handouts = {bet.name: bet.drinks * 2 for bet in bets if bet.suit == winner}
    if handouts:
        return PayoutResult(winner, handouts)
    return PayoutResult(winner, everyone_drinks=len(bets))
