from __future__ import annotations

from dataclasses import dataclass

import cappa

from card_derby.cli.commands.batch import BatchCommand  # noqa: TC001
from card_derby.cli.commands.race import (
    RaceCommand,  # noqa: TC001 # cappa needs to know about this at runtime
)
from card_derby.engine.logging import configure_logging


@dataclass
class Main:
    subcommand: cappa.Subcommands[RaceCommand | BatchCommand]


def main():
    configure_logging()
    cappa.invoke(Main)


if __name__ == "__main__":
    main()
