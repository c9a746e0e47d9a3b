from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, Self

from card_derby.core.events import (
    AdvanceEvent,
    RetreatEvent,
    RevealStageEvent,
    ScheduledStep,
    WinnerDeterminedEvent,
)
from card_derby.core.state import RaceRules

if TYPE_CHECKING:
    from collections.abc import Sequence

    from card_derby.core.events import ResolutionEvent

logger = logging.getLogger(__name__)

StepCallback = Callable[[ScheduledStep], None]


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class TimerBackend(Protocol):
    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> TimerHandle: ...


# --- Timer backends ---


@dataclass(order=False)
class ManualTimer:
    fire_at: int
    serial: int
    callback: Callable[[], None]
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True

    def __lt__(self, other: Self) -> bool:
        return (self.fire_at, self.serial) < (other.fire_at, other.serial)


@dataclass
class ManualTimers:
    """
    Virtual clock. Nothing fires until `advance` moves time forward, which
    makes timelines fully deterministic for tests and headless runs.
    """

    now_ms: int = 0
    _queue: list[ManualTimer] = field(default_factory=list)
    _serial: itertools.count[int] = field(default_factory=itertools.count)

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(self.now_ms + max(0, delay_ms), next(self._serial), callback)
        heapq.heappush(self._queue, timer)
        return timer

    @property
    def pending(self) -> int:
        return sum(1 for t in self._queue if not t.cancelled)

    def advance(self, delta_ms: int) -> int:
        """Moves the clock forward, firing due timers in time order. Returns the number fired."""
        target = self.now_ms + delta_ms
        fired = 0
        while self._queue and self._queue[0].fire_at <= target:
            timer = heapq.heappop(self._queue)
            if timer.cancelled:
                continue
            self.now_ms = timer.fire_at
            timer.callback()
            fired += 1
        self.now_ms = target
        return fired

    def run_all(self) -> int:
        """Advances until no live timer is left, including ones scheduled while firing."""
        fired = 0
        while self.pending:
            latest = max(t.fire_at for t in self._queue)
            fired += self.advance(latest - self.now_ms)
        self._queue.clear()
        return fired


class AsyncioTimers:
    """Wall-clock timers on the running asyncio loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return self.loop.call_later(max(0, delay_ms) / 1000, callback)


# --- Timeline construction ---


def build_timeline(
    events: Sequence[ResolutionEvent],
    rules: RaceRules | None = None,
) -> list[ScheduledStep]:
    """
    Lays out the events of one resolution on a timeline.

    - The advance fires at 0.
    - Stage k (0-indexed within this list) reveals at base*(k+1) and its
      paired retreat fires one base delay later. A stage whose horse was
      already at 0 still gets the retreat slot with no event, which ends
      the stage flash.
    - The settle step always closes the timeline and carries the winner:
      at `settle` without stages, else at base*n + settle + base.
    """
    rules = rules or RaceRules()
    base = rules.base_delay_ms
    serial = itertools.count()
    steps: list[ScheduledStep] = []
    winner: WinnerDeterminedEvent | None = None
    stage_count = 0

    i = 0
    while i < len(events):
        event = events[i]
        match event:
            case AdvanceEvent():
                steps.append(ScheduledStep(0, next(serial), "advance", event))
            case RevealStageEvent(index=index):
                reveal_at = base * (stage_count + 1)
                steps.append(
                    ScheduledStep(reveal_at, next(serial), "reveal", event, stage=index),
                )
                retreat: ResolutionEvent | None = None
                if i + 1 < len(events) and isinstance(events[i + 1], RetreatEvent):
                    retreat = events[i + 1]
                    i += 1
                steps.append(
                    ScheduledStep(
                        reveal_at + base,
                        next(serial),
                        "retreat",
                        retreat,
                        stage=index,
                    ),
                )
                stage_count += 1
            case WinnerDeterminedEvent():
                winner = event
            case _:
                logger.warning(f"Unpaired event {event!r} left off the timeline")
        i += 1

    if stage_count == 0:
        settle_at = rules.settle_delay_ms
    else:
        settle_at = base * stage_count + rules.settle_delay_ms + base
    steps.append(ScheduledStep(settle_at, next(serial), "settle", winner))

    steps.sort()
    return steps


# --- Scheduler ---


@dataclass(eq=False)
class TimelineHandle:
    """Handle to one scheduled timeline. `cancel` is idempotent."""

    scheduler: AnimationScheduler
    steps: list[ScheduledStep]
    timers: dict[int, TimerHandle] = field(default_factory=dict)
    fired: set[int] = field(default_factory=set)
    cancelled: bool = False
    completed: bool = False

    @property
    def active(self) -> bool:
        return not self.cancelled and not self.completed

    @property
    def pending_steps(self) -> list[ScheduledStep]:
        return [s for s in self.steps if s.serial not in self.fired]

    def cancel(self) -> None:
        self.scheduler.cancel(self)


@dataclass
class AnimationScheduler:
    """
    Plays resolution events over time. At most one timeline is active; the
    scheduler never computes positions itself, it only hands each step to
    `on_step` at its scheduled instant.
    """

    on_step: StepCallback
    timers: TimerBackend = field(default_factory=ManualTimers)
    rules: RaceRules = field(default_factory=RaceRules)
    current: TimelineHandle | None = None

    @property
    def is_animating(self) -> bool:
        return self.current is not None and self.current.active

    def schedule(self, events: Sequence[ResolutionEvent]) -> TimelineHandle:
        if self.current is not None:
            self.cancel(self.current)

        handle = TimelineHandle(self, build_timeline(events, self.rules))
        self.current = handle
        logger.debug(
            f"Scheduling {len(handle.steps)} steps, settle at {handle.steps[-1].offset_ms}ms",
        )

        for step in handle.steps:
            if step.offset_ms == 0:
                self._fire(handle, step)
            else:
                handle.timers[step.serial] = self.timers.call_later(
                    step.offset_ms,
                    lambda step=step: self._fire(handle, step),
                )
        return handle

    def cancel(self, handle: TimelineHandle | None = None) -> None:
        handle = handle if handle is not None else self.current
        if handle is None or not handle.active:
            return

        handle.cancelled = True
        for serial, timer in handle.timers.items():
            if serial not in handle.fired:
                timer.cancel()

        # A revealed stage always gets its retreat, never half a stage
        revealed = {s.stage for s in handle.steps if s.kind == "reveal" and s.serial in handle.fired}
        for step in handle.pending_steps:
            if step.kind == "retreat" and step.stage in revealed:
                handle.fired.add(step.serial)
                self.on_step(step)
            elif step.kind == "settle" and step.event is not None:
                # The advance is already applied, so its winner must land too
                handle.fired.add(step.serial)
                self.on_step(step)

        if self.current is handle:
            self.current = None
        logger.debug(f"Cancelled timeline with {len(handle.pending_steps)} steps discarded")

    def _fire(self, handle: TimelineHandle, step: ScheduledStep) -> None:
        if not handle.active or step.serial in handle.fired:
            return
        handle.fired.add(step.serial)
        if step.kind == "settle":
            handle.completed = True
            if self.current is handle:
                self.current = None
        self.on_step(step)
