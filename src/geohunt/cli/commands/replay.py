"""CLI command for replaying a recorded game."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path  # cappa needs this at runtime
from typing import Annotated

import cappa
import msgspec

from geohunt.engine.geo import format_distance, haversine_meters
from geohunt.engine.logging import configure_logging
from geohunt.simulation.config import GameConfig
from geohunt.simulation.runner import ReplayResult, run_replay

logger = logging.getLogger(__name__)


def _print_results(config: GameConfig, result: ReplayResult) -> None:
    logger.info(config.repr)
    logger.info("-" * 20)
    for rank, team in enumerate(result.standings, start=1):
        logger.info(
            f"{rank}. {team.team_id}:{team.name} {team.score} pts, "
            f"{len(team.completed_task_ids)} tasks, "
            f"-{team.zone_penalty_total} pts in zones, {team.hints_used} hints",
        )
        if team.impossible_travel_count:
            logger.warning(
                f"!!! {team.team_id} flagged for impossible travel "
                f"{team.impossible_travel_count}x",
            )
    for task_id, team_id in result.first_completions.items():
        logger.info(f"Task[{task_id}] first completed by {team_id}")
    if result.skipped_actions:
        logger.warning(f"{result.skipped_actions} recorded actions had no effect")
    logger.info(
        f"Replayed {result.simulated_ms / 1000:.1f}s in "
        f"{result.execution_time_ms:.0f}ms (config {result.config_hash[:12]})",
    )


def _describe_tasks(config: GameConfig) -> None:
    if not config.game.tasks:
        return
    origin = config.game.tasks[0].geofence.center
    for task in config.game.tasks:
        spread = format_distance(haversine_meters(origin, task.geofence.center))
        logger.debug(f"Task[{task.id}] at {task.geofence.center.repr} ({spread} from first)")


@cappa.command(
    name="replay",
    help="Replay a recorded game from a TOML file and print the standings.",
)
@dataclass
class ReplayCommand:
    config_file: Annotated[
        Path,
        cappa.Arg(help="Path to the TOML recording."),
    ]
    duration: Annotated[
        int | None,
        cappa.Arg(
            short="-d",
            long="--duration",
            help="Override the replay length in seconds.",
        ),
    ] = None
    verbose: Annotated[
        bool,
        cappa.Arg(short="-v", long="--verbose", help="Log every engine event."),
    ] = False
    progress: Annotated[
        bool,
        cappa.Arg(long="--progress", help="Show a progress bar."),
    ] = False

    def __call__(self):
        configure_logging(logging.DEBUG if self.verbose else logging.INFO)

        if not self.config_file.exists():
            msg = f"Config file not found: {self.config_file}"
            raise cappa.Exit(msg, code=1)
        try:
            config = GameConfig.from_toml(self.config_file)
        except (msgspec.DecodeError, msgspec.ValidationError) as e:
            msg = f"Invalid TOML config: {e}"
            raise cappa.Exit(msg, code=1)  # noqa: B904

        if self.duration is not None:
            config = msgspec.structs.replace(config, duration_ms=self.duration * 1000)

        _describe_tasks(config)
        try:
            result = run_replay(config, verbose=self.verbose, progress=self.progress)
        except Exception:
            logger.exception("Replay Error")
            raise

        _print_results(config, result)
