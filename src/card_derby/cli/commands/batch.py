"""CLI command for batch simulations."""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from pathlib import Path  # cappa needs this at runtime
from typing import TYPE_CHECKING, Annotated

import cappa
from rich.console import Console
from rich.table import Table
from tqdm import tqdm

from card_derby.cli.converters import parse_bets, parse_house_rules
from card_derby.engine.logging import LOGGER_NAME
from card_derby.simulation.config import RaceConfig, SimulationConfig, build_rules
from card_derby.simulation.runner import (
    RaceResult,
    results_frame,
    run_single_race,
    summarize_payouts,
    summarize_results,
)

if TYPE_CHECKING:
    import polars as pl


def _render_summary(summary: pl.DataFrame, total: int) -> Table:
    table = Table(title=f"Card Derby - {total} races")
    for col in ("Suit", "Wins", "Win rate", "Avg draws", "Avg stages", "Avg retreats"):
        table.add_column(col, justify="right")
    for row in summary.iter_rows(named=True):
        table.add_row(
            row["winner"],
            str(row["wins"]),
            f"{row['win_rate']:.1%}",
            f"{row['avg_draws']:.1f}",
            f"{row['avg_stages']:.2f}",
            f"{row['avg_retreats']:.2f}",
        )
    return table


def _render_payouts(summary: pl.DataFrame) -> Table:
    table = Table(title="Payouts")
    for col in ("Races", "Bettors won", "Avg drinks handed out", "Avg everyone drinks"):
        table.add_column(col, justify="right")
    for row in summary.iter_rows(named=True):
        table.add_row(
            str(row["races"]),
            str(row["races_with_winners"]),
            f"{row['avg_drinks_handed_out'] or 0:.2f}",
            f"{row['avg_everyone_drinks'] or 0:.2f}",
        )
    return table


@cappa.command(name="batch", help="Simulate many seeded races and summarise win rates.")
@dataclass
class BatchCommand:
    config: Annotated[
        Path | None,
        cappa.Arg(short="-c", long="--config", help="Path to TOML configuration file."),
    ] = None
    races: Annotated[
        int | None,
        cappa.Arg(short="-n", long="--races", help="Override: number of races."),
    ] = None
    seed_offset: Annotated[
        int | None,
        cappa.Arg(long="--seed-offset", help="Starting seed value."),
    ] = None
    bets: Annotated[
        list[str] | None,
        cappa.Arg(short="-b", long="--bet", num_args=-1, help="Bets as NAME:SUIT[:DRINKS], placed on every race."),
    ] = None
    house_rules: Annotated[
        list[str] | None,
        cappa.Arg(short="-H", long="--houserule", num_args=-1, help="House rules as key=value."),
    ] = None
    output: Annotated[
        Path | None,
        cappa.Arg(short="-o", long="--output", help="Write per-race results as parquet."),
    ] = None

    def __call__(self) -> int:
        # Suppress per-race logs
        logging.getLogger(LOGGER_NAME).setLevel(logging.CRITICAL)

        if self.config is not None:
            if not self.config.exists():
                tqdm.write(f"Error: Config file not found: {self.config}", file=sys.stderr)
                return 1
            sim_config = SimulationConfig.from_toml(str(self.config))
        else:
            sim_config = SimulationConfig()

        races = self.races if self.races is not None else sim_config.races
        seed_offset = self.seed_offset if self.seed_offset is not None else sim_config.seed_offset
        rules = dict(sim_config.rules)
        if self.house_rules:
            rules.update(parse_house_rules(self.house_rules))
        try:
            build_rules(rules)
        except (TypeError, ValueError) as e:
            msg = f"Invalid house rules: {e}"
            raise cappa.Exit(msg, code=1)  # noqa: B904
        bets = tuple(parse_bets(self.bets) if self.bets else sim_config.bets)

        results: list[RaceResult] = []
        aborted = 0
        with tqdm(desc="Simulating", unit="race", total=races, dynamic_ncols=True) as pbar:
            for seed in range(seed_offset, seed_offset + races):
                result = run_single_race(
                    RaceConfig(seed=seed, bets=bets, rules=rules),
                    max_draws=sim_config.max_draws_per_race,
                )
                if result.error_code is not None:
                    aborted += 1
                results.append(result)
                pbar.update(1)

        df = results_frame(results)
        if self.output is not None:
            self.output.parent.mkdir(parents=True, exist_ok=True)
            df.write_parquet(self.output)
            tqdm.write(f"Wrote {df.height} results to {self.output}")

        console = Console()
        console.print(_render_summary(summarize_results(df), races))
        if bets:
            console.print(_render_payouts(summarize_payouts(df)))
        if aborted:
            tqdm.write(f"Aborted: {aborted}")
        return 0
