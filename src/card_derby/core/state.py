from __future__ import annotations

from dataclasses import dataclass, field

from card_derby.core.cards import Card
from card_derby.core.types import FINISH_LINE, SUITS, AnimationDirection, Suit


def starting_positions() -> dict[Suit, int]:
    return dict.fromkeys(SUITS, 0)


@dataclass(slots=True)
class RaceRules:
    # Timeline pacing in milliseconds
    base_delay_ms: int = 450
    settle_delay_ms: int = 350


@dataclass(frozen=True, slots=True)
class HorseAnimation:
    """Cosmetic signal: which horse is currently moving and which way."""

    suit: Suit
    direction: AnimationDirection
    key: int


@dataclass(slots=True)
class RaceState:
    positions: dict[Suit, int] = field(default_factory=starting_positions)
    deck: list[Card] = field(default_factory=list)
    side_stack: list[Card] = field(default_factory=list)
    revealed_count: int = 0
    current_card: Card | None = None
    winner: Suit | None = None
    active: bool = False
    draw_count: int = 0

    # Transient, never persisted
    animation: HorseAnimation | None = None
    flashing_stages: list[int] = field(default_factory=list)

    @property
    def revealed_cards(self) -> list[Card]:
        return self.side_stack[: self.revealed_count]

    @property
    def finished(self) -> bool:
        return self.winner is not None

    @property
    def can_draw(self) -> bool:
        if not self.active or self.finished or not self.deck:
            return False
        # A horse on the line always ends the race, winner declared or not
        return max(self.positions.values(), default=0) < FINISH_LINE


@dataclass(frozen=True, slots=True)
class RaceSnapshot:
    """Immutable view handed to observers after every state change."""

    positions: dict[Suit, int]
    revealed_cards: tuple[Card, ...]
    side_stack_size: int
    current_card: Card | None
    winner: Suit | None
    deck_size: int
    animation: HorseAnimation | None
    flashing_stages: tuple[int, ...]
    is_animating: bool

    @classmethod
    def capture(cls, state: RaceState, *, is_animating: bool) -> RaceSnapshot:
        return cls(
            positions=dict(state.positions),
            revealed_cards=tuple(state.revealed_cards),
            side_stack_size=len(state.side_stack),
            current_card=state.current_card,
            winner=state.winner,
            deck_size=len(state.deck),
            animation=state.animation,
            flashing_stages=tuple(state.flashing_stages),
            is_animating=is_animating,
        )


@dataclass(slots=True)
class LogContext:
    """Per-race logging state."""

    draw_number: int = 0
    draw_log_count: int = 0
    current_card_repr: str = "_"
    race_id: int = 0

    def start_draw_log(self, card_repr: str):
        self.draw_number += 1
        self.draw_log_count = 0
        self.current_card_repr = card_repr

    def inc_log_count(self):
        self.draw_log_count += 1

    def reset(self):
        self.draw_number = 0
        self.draw_log_count = 0
        self.current_card_repr = "_"
