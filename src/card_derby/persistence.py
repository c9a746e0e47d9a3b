"""Snapshot and restore of race state as plain JSON (msgspec)."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import msgspec

from card_derby.core.cards import Card
from card_derby.core.state import RaceState
from card_derby.core.types import FINISH_LINE, MAX_STAGES, SUITS, Suit
from card_derby.engine.resolution import find_winner

if TYPE_CHECKING:
    from card_derby.engine.race import RaceController

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


class PersistenceError(Exception):
    """Raised when a race cannot be saved or a saved race cannot be decoded."""


class PersistedRace(msgspec.Struct, kw_only=True):
    """
    Wire format of a saved race.
    Positions and winner are loosely typed so corrupted saves can be repaired
    instead of rejected.
    """

    version: int = FORMAT_VERSION
    positions: dict[str, int] = msgspec.field(default_factory=dict)
    deck: list[Card] = msgspec.field(default_factory=list)
    side_stack: list[Card] = msgspec.field(default_factory=list)
    revealed_count: int = 0
    current_card: Card | None = None
    winner: str | None = None
    active: bool = False
    draw_count: int = 0


@dataclass(slots=True)
class RestoredRace:
    state: RaceState
    corrections: list[str] = field(default_factory=list)

    @property
    def repaired(self) -> bool:
        return bool(self.corrections)


def to_record(state: RaceState) -> PersistedRace:
    return PersistedRace(
        positions=dict(state.positions),
        deck=list(state.deck),
        side_stack=list(state.side_stack),
        revealed_count=state.revealed_count,
        current_card=state.current_card,
        winner=state.winner,
        active=state.active,
        draw_count=state.draw_count,
    )


def snapshot_state(state: RaceState) -> bytes:
    return msgspec.json.encode(to_record(state))


def restore_state(data: bytes | str) -> RestoredRace:
    try:
        record = msgspec.json.decode(data, type=PersistedRace)
    except msgspec.DecodeError as e:
        msg = f"Saved race could not be decoded: {e}"
        raise PersistenceError(msg) from e
    return from_record(record)


def from_record(record: PersistedRace) -> RestoredRace:
    """
    Builds a RaceState from a decoded record, clamping anything out of range.
    Every correction is logged and reported so the caller can offer a reset.
    """
    corrections: list[str] = []

    def flag(msg: str) -> None:
        logger.warning(f"Repairing saved race: {msg}")
        corrections.append(msg)

    positions: dict[Suit, int] = {}
    for suit in SUITS:
        if suit not in record.positions:
            flag(f"missing position for {suit}, using 0")
            positions[suit] = 0
            continue
        value = record.positions[suit]
        clamped = min(max(value, 0), FINISH_LINE)
        if clamped != value:
            flag(f"position of {suit} was {value}, clamped to {clamped}")
        positions[suit] = clamped

    for key in sorted(record.positions.keys() - set(SUITS)):
        flag(f"dropped position for unknown suit {key!r}")

    max_revealed = min(len(record.side_stack), MAX_STAGES)
    revealed_count = min(max(record.revealed_count, 0), max_revealed)
    if revealed_count != record.revealed_count:
        flag(f"revealed count was {record.revealed_count}, clamped to {revealed_count}")

    winner: Suit | None = None
    if record.winner is not None:
        if record.winner in SUITS:
            winner = next(s for s in SUITS if s == record.winner)
        else:
            flag(f"dropped unknown winner {record.winner!r}")

    if winner is None and (finisher := find_winner(positions)) is not None:
        flag(f"{finisher} stands on the finish line without a winner, declaring it")
        winner = finisher

    state = RaceState(
        positions=positions,
        deck=list(record.deck),
        side_stack=list(record.side_stack),
        revealed_count=revealed_count,
        current_card=record.current_card,
        winner=winner,
        active=record.active,
        draw_count=max(record.draw_count, 0),
    )
    return RestoredRace(state, corrections)


def snapshot_race(race: RaceController) -> bytes:
    """
    Snapshot of a settled race. Mid-timeline states hold only part of a
    draw and would not replay like the uninterrupted race.
    """
    if race.is_animating:
        msg = "Cannot save a race while a draw is still animating"
        raise PersistenceError(msg)
    return snapshot_state(race.state)


def save_race(path: Path, race: RaceController) -> None:
    data = snapshot_race(race)
    path.parent.mkdir(parents=True, exist_ok=True)
    # atomic replace
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_bytes(data)
    tmp.replace(path)


def load_race(path: Path) -> RestoredRace:
    if not path.exists():
        msg = f"No saved race at {path}"
        raise PersistenceError(msg)
    return restore_state(path.read_bytes())
