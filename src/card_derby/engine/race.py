from __future__ import annotations

import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from card_derby.core.events import WinnerDeterminedEvent
from card_derby.core.state import (
    LogContext,
    RaceRules,
    RaceSnapshot,
    RaceState,
    starting_positions,
)
from card_derby.engine import deck as deck_ops
from card_derby.engine.flow import apply_event, end_stage_flash, settle
from card_derby.engine.logging import LOGGER_NAME, ContextFilter
from card_derby.engine.resolution import Resolution, find_winner, resolve_draw
from card_derby.engine.scheduler import AnimationScheduler, ManualTimers, TimerBackend

if TYPE_CHECKING:
    import random

    from card_derby.core.events import ResolutionEvent, ScheduledStep
    from card_derby.engine.scheduler import TimelineHandle


Observer = Callable[[RaceSnapshot], None]


@dataclass
class RaceController:
    """
    Single owner of the race state.

    A draw resolves synchronously through `resolve_draw`; the resulting
    events are then replayed by the scheduler, and every replayed step goes
    through `apply_event`.
    """

    rng: random.Random
    rules: RaceRules = field(default_factory=RaceRules)
    timers: TimerBackend = field(default_factory=ManualTimers)
    state: RaceState = field(default_factory=RaceState)
    log_context: LogContext = field(default_factory=LogContext)
    observers: list[Observer] = field(default_factory=list)

    # Callback for external observers of every replayed event
    on_event_applied: Callable[[RaceController, ResolutionEvent], None] | None = None
    verbose: bool = True
    last_resolution: Resolution | None = None
    _scheduler: AnimationScheduler = field(init=False, repr=False)
    _logger: logging.Logger = field(init=False, repr=False)
    _animation_keys: itertools.count[int] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        base = logging.getLogger(LOGGER_NAME)
        self._logger = base.getChild(f"race.{id(self)}")
        self.log_context.race_id = id(self) % 10_000

        if self.verbose:
            self._logger.addFilter(ContextFilter(self))

        self._animation_keys = itertools.count(1)
        self._scheduler = AnimationScheduler(
            on_step=self._run_step,
            timers=self.timers,
            rules=self.rules,
        )

    # --- Lifecycle ---
    def start_race(self) -> None:
        """Deals a fresh deck and side stack and puts every horse at the start."""
        self.cancel_animation()
        side_stack, racing_deck = deck_ops.split_side_stack(deck_ops.build_deck(self.rng))
        self.state = RaceState(
            positions=starting_positions(),
            deck=racing_deck,
            side_stack=side_stack,
            active=True,
        )
        self.last_resolution = None
        self.log_context.reset()
        self.log_info(
            f"=== RACE START: {len(racing_deck)} cards, side stack of {len(side_stack)} ===",
        )
        self._notify()

    def reset(self) -> None:
        self.cancel_animation()
        self.state = RaceState()
        self.last_resolution = None
        self.log_context.reset()
        self.log_info("Race reset.")
        self._notify()

    def close(self) -> None:
        """Teardown. Pending steps must never touch a state nobody observes."""
        self._scheduler.cancel()
        self.observers.clear()

    def restore(self, state: RaceState) -> None:
        self.cancel_animation()
        state.animation = None
        state.flashing_stages = []
        self.state = state
        self.last_resolution = None
        self.log_context.reset()
        self.log_context.draw_number = state.draw_count
        self.log_info(
            f"Race restored at draw {state.draw_count} ({len(state.deck)} cards left)",
        )
        self._notify()

    # --- Drawing ---
    @property
    def is_animating(self) -> bool:
        return self._scheduler.is_animating

    @property
    def can_draw(self) -> bool:
        return self.state.can_draw and not self.is_animating

    @property
    def timeline(self) -> TimelineHandle | None:
        return self._scheduler.current

    def draw(self) -> Resolution | None:
        """
        Draws the top card and plays out its consequences.
        Returns None when no draw is allowed.
        """
        self._declare_stranded_winner()
        if (reason := self._draw_blocked_reason()) is not None:
            self.log_debug(f"Draw ignored: {reason}")
            return None

        card, rest = deck_ops.draw(self.state.deck)
        self.state.deck = rest
        self.state.current_card = card
        self.state.draw_count += 1
        self.log_context.start_draw_log(card.repr)

        resolution = resolve_draw(self.state, card)
        self.last_resolution = resolution
        self.log_debug(f"Resolved {card.repr}: {resolution.events}")

        self._scheduler.schedule(resolution.events)
        return resolution

    def _declare_stranded_winner(self) -> None:
        """A cancelled timeline can leave a horse on the line before its winner step."""
        if self.state.winner is not None or self.is_animating:
            return
        if (suit := find_winner(self.state.positions)) is not None:
            self.log_warning(f"{suit} stands on the finish line without a result, declaring it the winner")
            self.apply_event(WinnerDeterminedEvent(suit))
            self._notify()

    def _draw_blocked_reason(self) -> str | None:
        if not self.state.active:
            return "race not active"
        if self.state.finished:
            return "race finished"
        if not self.state.deck:
            return "deck empty"
        if self.is_animating:
            return "animation running"
        return None

    def cancel_animation(self) -> None:
        if self._scheduler.current is None:
            return
        self._scheduler.cancel()
        settle(self)
        self._notify()

    # --- Event application ---
    def apply_event(self, event: ResolutionEvent) -> None:
        apply_event(self, event)
        if self.on_event_applied:
            self.on_event_applied(self, event)

    def _run_step(self, step: ScheduledStep) -> None:
        match step.kind:
            case "retreat":
                if step.stage is not None:
                    end_stage_flash(self, step.stage)
                if step.event is not None:
                    self.apply_event(step.event)
            case "settle":
                settle(self)
                if step.event is not None:
                    self.apply_event(step.event)
            case _:
                if step.event is not None:
                    self.apply_event(step.event)
        self._notify()

    def next_animation_key(self) -> int:
        return next(self._animation_keys)

    # --- Observers ---
    def subscribe(self, observer: Observer) -> Callable[[], None]:
        self.observers.append(observer)

        def unsubscribe() -> None:
            if observer in self.observers:
                self.observers.remove(observer)

        return unsubscribe

    def snapshot(self) -> RaceSnapshot:
        return RaceSnapshot.capture(self.state, is_animating=self.is_animating)

    def _notify(self) -> None:
        if not self.observers:
            return
        snap = self.snapshot()
        for observer in list(self.observers):
            observer(snap)

    # -- Logging --
    def _log(self, level: int, msg: str, *args: Any, **kwargs: Any) -> None:
        """Core logging helper; respects race verbosity."""
        if not self.verbose:
            return
        self._logger.log(level, msg, *args, **kwargs)

    def log_debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.DEBUG, msg, *args, **kwargs)

    def log_info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.INFO, msg, *args, **kwargs)

    def log_warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.WARNING, msg, *args, **kwargs)

    def log_error(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.ERROR, msg, *args, **kwargs)
