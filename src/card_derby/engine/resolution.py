from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from card_derby.core.events import (
    AdvanceEvent,
    ResolutionEvent,
    RetreatEvent,
    RevealStageEvent,
    WinnerDeterminedEvent,
)
from card_derby.core.types import FINISH_LINE, MAX_STAGES, SUITS

if TYPE_CHECKING:
    from collections.abc import Mapping

    from card_derby.core.cards import Card
    from card_derby.core.state import RaceState
    from card_derby.core.types import Suit


@dataclass(frozen=True, slots=True)
class Resolution:
    """The full, synchronously computed outcome of one draw."""

    card: Card | None
    positions: dict[Suit, int]
    revealed_count: int
    winner: Suit | None
    events: list[ResolutionEvent] = field(default_factory=list)

    @property
    def stages_revealed(self) -> int:
        return sum(1 for e in self.events if isinstance(e, RevealStageEvent))

    @property
    def is_noop(self) -> bool:
        return not self.events


def find_winner(positions: Mapping[Suit, int]) -> Suit | None:
    """First suit in canonical order standing on or past the finish line."""
    return next((s for s in SUITS if positions.get(s, 0) >= FINISH_LINE), None)


def resolve_draw(state: RaceState, card: Card) -> Resolution:
    """
    Compute every consequence of drawing `card` against `state`.

    1. The card's horse advances one slot.
    2. While the slowest horse stands past the next unrevealed stage, that
       stage's side card is revealed and its horse retreats one slot
       (never below 0). A retreat can lower the minimum, so the check runs
       again after each stage and several stages may cascade from one draw.
    3. The first horse in canonical suit order on or past the finish line
       wins.

    `state` is never mutated. A race that already has a winner resolves to
    an empty outcome.
    """
    positions = {suit: state.positions.get(suit, 0) for suit in SUITS}

    if state.winner is not None:
        return Resolution(
            card=None,
            positions=positions,
            revealed_count=state.revealed_count,
            winner=state.winner,
        )

    events: list[ResolutionEvent] = [AdvanceEvent(card.suit)]
    positions[card.suit] += 1

    revealed_count = state.revealed_count
    stage_idx = revealed_count
    max_stages = min(len(state.side_stack), MAX_STAGES)

    while stage_idx < max_stages and min(positions.values()) > stage_idx:
        stage_card = state.side_stack[stage_idx]
        events.append(RevealStageEvent(stage_idx, stage_card))
        revealed_count += 1

        if positions[stage_card.suit] > 0:
            events.append(RetreatEvent(stage_card.suit))
            positions[stage_card.suit] -= 1

        stage_idx += 1

    winner = find_winner(positions)
    if winner is not None:
        events.append(WinnerDeterminedEvent(winner))

    return Resolution(
        card=card,
        positions=positions,
        revealed_count=revealed_count,
        winner=winner,
        events=events,
    )
