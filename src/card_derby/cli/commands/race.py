"""CLI command for playing a single race."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from pathlib import Path  # cappa needs this at runtime
from typing import Annotated

import cappa
import msgspec

from card_derby.cli.converters import parse_bets, parse_house_rules
from card_derby.engine.race import RaceController
from card_derby.engine.scheduler import AsyncioTimers, ManualTimers
from card_derby.payout import Bet, compute_payouts
from card_derby.persistence import PersistenceError, load_race, save_race
from card_derby.simulation.config import PartialRaceConfig, RaceConfig, build_rules

logger = logging.getLogger(__name__)

# Poll interval while waiting for a realtime timeline to settle
POLL_INTERVAL_S = 0.05


def _print_config(config: RaceConfig) -> None:
    logger.log(logging.INFO, config.repr)
    if config.rules:
        logger.log(logging.INFO, f"House Rules: {config.rules}")


def _print_payout(race: RaceController, bets: tuple[Bet, ...]) -> None:
    winner = race.state.winner
    if winner is None:
        logger.warning("Race ended without a winner.")
        return
    if not bets:
        return
    logger.log(logging.INFO, "=== PAYOUT ===")
    for line in compute_payouts(winner, bets).lines():
        logger.log(logging.INFO, line)


def _prepare_race(
    config: RaceConfig,
    realtime: bool,
    resume: Path | None,
) -> tuple[RaceController, ManualTimers | None]:
    manual = None if realtime else ManualTimers()
    race = RaceController(
        rng=random.Random(config.seed),
        rules=build_rules(config.rules),
        timers=manual or AsyncioTimers(),
    )

    if resume is None:
        race.start_race()
        return race, manual

    try:
        restored = load_race(resume)
    except PersistenceError as e:
        raise cappa.Exit(str(e), code=1) from e
    if restored.repaired:
        logger.warning(
            f"Saved race needed {len(restored.corrections)} repairs. Start a new race if it looks wrong.",
        )
    race.restore(restored.state)
    if not race.state.active:
        race.start_race()
    return race, manual


def run_console_race(
    config: RaceConfig,
    realtime: bool = False,
    save: Path | None = None,
    resume: Path | None = None,
) -> RaceController:
    """
    Play a race to the end and print the results.

    Without `realtime` the timelines run on a virtual clock and the race
    finishes instantly; with it every step waits its real delay.
    """
    _print_config(config)
    logger.log(logging.INFO, "-" * 20)

    race, manual = _prepare_race(config, realtime, resume)

    async def play_realtime() -> None:
        while race.can_draw:
            race.draw()
            while race.is_animating:
                await asyncio.sleep(POLL_INTERVAL_S)
            if save:
                save_race(save, race)

    try:
        if manual is None:
            asyncio.run(play_realtime())
        else:
            while race.can_draw:
                race.draw()
                manual.run_all()
                if save:
                    save_race(save, race)
    except Exception:
        logger.exception("Race Error")
        raise
    finally:
        race.close()

    logger.log(logging.INFO, "-" * 20)
    _print_payout(race, config.bets)
    return race


@cappa.command(
    name="race",
    help="Play a single race. Picks a random seed if not specified.",
)
@dataclass
class RaceCommand:
    bets: Annotated[
        list[str] | None,
        cappa.Arg(
            short="-b",
            long="--bet",
            num_args=-1,
            help="Bets as NAME:SUIT[:DRINKS], e.g. Anna:hearts:3.",
        ),
    ] = None
    seed: Annotated[
        int | None,
        cappa.Arg(short="-s", long="--seed", help="RNG seed for the shuffle."),
    ] = None

    config_file: Annotated[
        Path | None,
        cappa.Arg(short="-c", long="--config", help="Path to TOML config file."),
    ] = None
    encoding: Annotated[
        str | None,
        cappa.Arg(short="-e", long="--encoding", help="Base64 encoded configuration."),
    ] = None

    house_rules: Annotated[
        list[str] | None,
        cappa.Arg(
            short="-H",
            long="--houserule",
            num_args=-1,
            help="House rules as key=value (base_delay_ms, settle_delay_ms).",
        ),
    ] = None

    realtime: Annotated[
        bool,
        cappa.Arg(long="--realtime", help="Play the animation timeline in real time."),
    ] = False
    save: Annotated[
        Path | None,
        cappa.Arg(long="--save", help="Save the race after every draw."),
    ] = None
    resume: Annotated[
        Path | None,
        cappa.Arg(long="--resume", help="Resume a saved race."),
    ] = None

    def __call__(self):
        final_bets: list[Bet] = []
        final_seed: int = random.randint(0, 1000000)
        final_rules: dict[str, int | float | str | bool] = {}

        # 1. Load File (Middle Priority)
        if self.config_file:
            if not self.config_file.exists():
                msg = f"Config file not found: {self.config_file}"
                raise cappa.Exit(msg, code=1)
            try:
                with Path.open(self.config_file, "rb") as f:
                    file_conf = msgspec.toml.decode(f.read(), type=PartialRaceConfig)
            except msgspec.DecodeError as e:
                msg = f"Invalid TOML config: {e}"
                raise cappa.Exit(msg, code=1)  # noqa: B904

            if file_conf.bets:
                final_bets = file_conf.bets
            if file_conf.seed is not None:
                final_seed = file_conf.seed
            if file_conf.rules:
                final_rules.update(file_conf.rules)

        # 2. Load Encoding (High Priority - Overrides File)
        if self.encoding:
            try:
                decoded = RaceConfig.from_encoded(self.encoding)
            except Exception as e:  # noqa: BLE001
                msg = f"Invalid encoding: {e}"
                raise cappa.Exit(msg, code=1)  # noqa: B904
            final_bets = list(decoded.bets)
            final_seed = decoded.seed
            if decoded.rules:
                final_rules.update(decoded.rules)

        # 3. CLI Args (Highest Priority - Overrides Everything)
        if self.bets:
            final_bets = parse_bets(self.bets)
        if self.seed is not None:
            final_seed = self.seed
        if self.house_rules:
            final_rules.update(parse_house_rules(self.house_rules))

        try:
            build_rules(final_rules)
        except (TypeError, ValueError) as e:
            msg = f"Invalid house rules: {e}"
            raise cappa.Exit(msg, code=1)  # noqa: B904

        config = RaceConfig(
            seed=final_seed,
            bets=tuple(final_bets),
            rules=final_rules,
        )

        run_console_race(
            config,
            realtime=self.realtime,
            save=self.save,
            resume=self.resume,
        )
