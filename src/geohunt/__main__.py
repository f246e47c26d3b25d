from __future__ import annotations

from dataclasses import dataclass

import cappa

from geohunt.cli.commands.replay import (
    ReplayCommand,  # noqa: TC001 # cappa needs to know about this at runtime
)


@dataclass
class Main:
    subcommand: cappa.Subcommands[ReplayCommand]


def main():
    cappa.invoke(Main)


if __name__ == "__main__":
    main()
