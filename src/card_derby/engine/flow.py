from __future__ import annotations

from typing import TYPE_CHECKING

from card_derby.core.events import (
    AdvanceEvent,
    RetreatEvent,
    RevealStageEvent,
    WinnerDeterminedEvent,
)
from card_derby.core.state import HorseAnimation
from card_derby.core.types import SUIT_NAMES, SUITS

if TYPE_CHECKING:
    from card_derby.core.events import ResolutionEvent
    from card_derby.engine.race import RaceController


def apply_event(race: RaceController, event: ResolutionEvent) -> None:
    """
    Applies one resolution event to the race state.
    This is the only place where positions, reveals and the winner change.
    """
    state = race.state
    match event:
        case AdvanceEvent(suit=suit):
            state.positions[suit] = state.positions.get(suit, 0) + 1
            state.animation = HorseAnimation(suit, "advance", race.next_animation_key())
            race.log_info(f"Advance {suit} -> {state.positions[suit]}")

        case RevealStageEvent(index=index, card=card):
            # Stages are a prefix; replaying an already revealed stage is harmless
            if state.revealed_count <= index:
                state.revealed_count = index + 1
            if index not in state.flashing_stages:
                state.flashing_stages.append(index)
            race.log_info(f"Reveal stage {index + 1}: {card.repr}")

        case RetreatEvent(suit=suit):
            current = state.positions.get(suit, 0)
            state.positions[suit] = current - 1 if current > 0 else 0
            state.animation = HorseAnimation(suit, "retreat", race.next_animation_key())
            race.log_info(f"Retreat {suit} -> {state.positions[suit]}")

        case WinnerDeterminedEvent(suit=suit):
            if state.winner is None:
                state.winner = suit
                race.log_info(f"!!! {suit} ({SUIT_NAMES[suit]}) WINS THE RACE !!!")
                log_final_standings(race)

        case _:
            race.log_warning(f"Ignoring unknown event {event!r}")


def end_stage_flash(race: RaceController, stage: int) -> None:
    if stage in race.state.flashing_stages:
        race.state.flashing_stages.remove(stage)


def settle(race: RaceController) -> None:
    """Clears the cosmetic animation state at the end of a timeline."""
    race.state.animation = None
    race.state.flashing_stages.clear()


def log_final_standings(race: RaceController):
    if not race.verbose:
        return
    state = race.state
    race.log_info(f"{'':>15}=== FINAL STANDINGS ===")
    for rank, suit in enumerate(
        sorted(SUITS, key=lambda s: state.positions.get(s, 0), reverse=True),
        start=1,
    ):
        status = "🏆" if suit == state.winner else ""
        race.log_info(
            f"{'':>1}{rank}•{suit} {SUIT_NAMES[suit]:<9} Pos: {state.positions.get(suit, 0):<3} {status}",
        )
    race.log_info(
        f"Draws: {state.draw_count}  Stages revealed: {state.revealed_count}/{len(state.side_stack)}",
    )
