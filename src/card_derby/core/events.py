from __future__ import annotations

from abc import ABC
from dataclasses import dataclass
from functools import cached_property
from typing import TYPE_CHECKING, Literal, Self

if TYPE_CHECKING:
    from card_derby.core.cards import Card
    from card_derby.core.types import Suit


@dataclass(frozen=True)
class ResolutionEvent(ABC):
    """One atomic, ordered consequence of a single card draw."""


@dataclass(frozen=True)
class HasTargetSuit:
    """Mixin for events that move or name a horse"""

    suit: Suit


@dataclass(frozen=True)
class AdvanceEvent(ResolutionEvent, HasTargetSuit): ...


@dataclass(frozen=True)
class RevealStageEvent(ResolutionEvent):
    index: int
    card: Card


@dataclass(frozen=True)
class RetreatEvent(ResolutionEvent, HasTargetSuit): ...


@dataclass(frozen=True)
class WinnerDeterminedEvent(ResolutionEvent, HasTargetSuit): ...


StepKind = Literal["advance", "reveal", "retreat", "settle"]


@dataclass(order=False)
class ScheduledStep:
    """
    A single entry of an animation timeline.

    `offset_ms` is relative to the moment the timeline was scheduled. The
    settle step closes every timeline; it carries the WinnerDeterminedEvent
    when the draw produced one.
    """

    offset_ms: int
    serial: int
    kind: StepKind
    event: ResolutionEvent | None = None
    stage: int | None = None

    @cached_property
    def sort_key(self) -> tuple[int, int]:
        return (self.offset_ms, self.serial)

    def __lt__(self, other: Self) -> bool:
        return self.sort_key < other.sort_key
