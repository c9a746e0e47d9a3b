"""Core simulation execution logic."""

from __future__ import annotations

import random
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

import polars as pl

from card_derby.core.events import RetreatEvent
from card_derby.engine.race import RaceController
from card_derby.engine.scheduler import ManualTimers
from card_derby.payout import PayoutResult, compute_payouts
from card_derby.simulation.config import build_rules

if TYPE_CHECKING:
    from collections.abc import Iterable

    from card_derby.core.events import ResolutionEvent
    from card_derby.core.types import ErrorCode, Suit
    from card_derby.simulation.config import RaceConfig


@dataclass(slots=True)
class RaceResult:
    """Result of a single headless race."""

    config_hash: str
    seed: int
    timestamp: float
    execution_time_ms: float
    error_code: ErrorCode | None
    winner: Suit | None
    draw_count: int
    stages_revealed: int
    retreats: int
    payout: PayoutResult | None = None


def run_single_race(
    config: RaceConfig,
    max_draws: int,
    verbose: bool = False,
) -> RaceResult:
    """
    Plays one race to the end on a virtual clock and reports the outcome.
    """
    start_time = time.perf_counter()
    timestamp = time.time()

    timers = ManualTimers()
    race = RaceController(
        rng=random.Random(config.seed),
        rules=build_rules(config.rules),
        timers=timers,
        verbose=verbose,
    )
    retreats = 0

    def on_event(_: RaceController, event: ResolutionEvent) -> None:
        nonlocal retreats
        if isinstance(event, RetreatEvent):
            retreats += 1

    race.on_event_applied = on_event
    race.start_race()

    error_code: ErrorCode | None = None
    while not race.state.finished:
        if not race.state.deck:
            error_code = "DECK_EXHAUSTED"
            break
        if race.state.draw_count >= max_draws:
            error_code = "MAX_DRAWS_REACHED"
            break
        if race.draw() is None:
            break
        timers.run_all()

    race.close()
    state = race.state
    payout = (
        compute_payouts(state.winner, config.bets)
        if state.winner is not None and config.bets
        else None
    )

    return RaceResult(
        config_hash=config.compute_hash(),
        seed=config.seed,
        timestamp=timestamp,
        execution_time_ms=(time.perf_counter() - start_time) * 1000,
        error_code=error_code,
        winner=state.winner,
        draw_count=state.draw_count,
        stages_revealed=state.revealed_count,
        retreats=retreats,
        payout=payout,
    )


def results_frame(results: Iterable[RaceResult]) -> pl.DataFrame:
    return pl.DataFrame(
        [
            {
                "config_hash": r.config_hash,
                "seed": r.seed,
                "winner": r.winner,
                "draw_count": r.draw_count,
                "stages_revealed": r.stages_revealed,
                "retreats": r.retreats,
                "error_code": r.error_code,
                "execution_time_ms": r.execution_time_ms,
                "winning_bettors": len(r.payout.handouts) if r.payout else None,
                "drinks_handed_out": sum(r.payout.handouts.values()) if r.payout else None,
                "everyone_drinks": r.payout.everyone_drinks if r.payout else None,
            }
            for r in results
        ],
        schema={
            "config_hash": pl.String,
            "seed": pl.Int64,
            "winner": pl.String,
            "draw_count": pl.Int64,
            "stages_revealed": pl.Int64,
            "retreats": pl.Int64,
            "error_code": pl.String,
            "execution_time_ms": pl.Float64,
            "winning_bettors": pl.Int64,
            "drinks_handed_out": pl.Int64,
            "everyone_drinks": pl.Int64,
        },
    )


def summarize_results(df: pl.DataFrame) -> pl.DataFrame:
    """Win rate and race length per winning suit, finished races only."""
    finished = df.filter(pl.col("winner").is_not_null())
    total = finished.height
    if total == 0:
        return pl.DataFrame(
            schema={
                "winner": pl.String,
                "wins": pl.UInt32,
                "win_rate": pl.Float64,
                "avg_draws": pl.Float64,
                "avg_stages": pl.Float64,
                "avg_retreats": pl.Float64,
            },
        )
    return (
        finished.group_by("winner")
        .agg(
            pl.len().alias("wins"),
            pl.col("draw_count").mean().alias("avg_draws"),
            pl.col("stages_revealed").mean().alias("avg_stages"),
            pl.col("retreats").mean().alias("avg_retreats"),
        )
        .with_columns((pl.col("wins") / total).alias("win_rate"))
        .select("winner", "wins", "win_rate", "avg_draws", "avg_stages", "avg_retreats")
        .sort("winner")
    )


def summarize_payouts(df: pl.DataFrame) -> pl.DataFrame:
    """How often the bettors picked the winner and what it cost the table on average."""
    paid = df.filter(pl.col("winning_bettors").is_not_null())
    return paid.select(
        pl.len().alias("races"),
        (pl.col("winning_bettors") > 0).sum().alias("races_with_winners"),
        pl.col("drinks_handed_out").mean().alias("avg_drinks_handed_out"),
        pl.col("everyone_drinks").mean().alias("avg_everyone_drinks"),
    )
