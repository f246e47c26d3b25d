"""Deterministic replay of recorded tracks and actions."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from tqdm import tqdm

from geohunt.core.events import (
    HintUsed,
    ImpossibleTravelDetected,
    ZonePenaltyApplied,
)
from geohunt.engine.scenario import GameScenario

if TYPE_CHECKING:
    from geohunt.engine.session import TeamSession
    from geohunt.simulation.config import Action, GameConfig, TrackSample

logger = logging.getLogger(__name__)

PROGRESS_STEP_MS = 1000


@dataclass(slots=True)
class TeamResult:
    team_id: str
    name: str
    score: int
    completed_task_ids: list[str]
    zone_penalty_total: int
    hints_used: int
    impossible_travel_count: int


@dataclass(slots=True)
class ReplayResult:
    """Result of a single replay."""

    config_hash: str
    timestamp: float
    execution_time_ms: float
    simulated_ms: int
    teams: list[TeamResult]
    first_completions: dict[str, str]
    skipped_actions: int = 0

    @property
    def standings(self) -> list[TeamResult]:
        # Score descending, then most tasks completed
        return sorted(
            self.teams,
            key=lambda t: (t.score, len(t.completed_task_ids)),
            reverse=True,
        )


def _schedule_sample(session: TeamSession, scenario: GameScenario, sample: TrackSample):
    def _feed(_: int) -> None:
        session.update_position(sample.position, sample.accuracy)

    _ = scenario.scheduler.call_at(sample.at_ms, _feed, name=f"{session.team.id}:sample")


def _run_action(session: TeamSession, action: Action) -> bool:
    match action.kind:
        case "activate":
            return session.activate(action.task_id, action.method, action.code)
        case "answer":
            _ = session.submit_answer(action.task_id, action.correct)
            return True
        case "hint":
            _ = session.use_hint(action.task_id)
            return True
        case "close":
            session.close_task(action.task_id)
            return True
        case _:
            return False


def run_replay(
    config: GameConfig,
    verbose: bool = False,
    progress: bool = True,
) -> ReplayResult:
    """
    Replay one recorded game on a virtual clock and collect per-team results.
    """
    start_time = time.perf_counter()
    timestamp = time.time()

    scenario = GameScenario(
        game=config.game,
        teams=config.teams,
        settings=config.settings.to_engine(),
        start_ms=config.start_ms,
        verbose=verbose,
    )

    for track in config.tracks:
        session = scenario.session(track.team_id)
        for sample in sorted(track.samples, key=lambda s: s.at_ms):
            _schedule_sample(session, scenario, sample)

    skipped = 0

    def _make_action(action: Action):
        def _fire(_: int) -> None:
            nonlocal skipped
            try:
                ok = _run_action(scenario.session(action.team_id), action)
            except ValueError as e:
                logger.warning(f"Skipping {action.kind} on {action.task_id}: {e}")
                ok = False
            if not ok:
                skipped += 1

        return _fire

    for action in sorted(config.actions, key=lambda a: a.at_ms):
        _ = scenario.scheduler.call_at(
            action.at_ms,
            _make_action(action),
            name=f"{action.team_id}:{action.kind}",
        )

    end_ms = config.end_ms
    with tqdm(
        desc="Replaying",
        unit="s",
        total=max(0, end_ms - config.start_ms) // PROGRESS_STEP_MS,
        disable=not progress,
        dynamic_ncols=True,
    ) as pbar:
        while scenario.now_ms() < end_ms:
            target = min(end_ms, scenario.now_ms() + PROGRESS_STEP_MS)
            scenario.advance_to(target)
            pbar.update(1)

    scenario.stop_all()

    teams = [
        TeamResult(
            team_id=team_id,
            name=session.team.name,
            score=session.team.score,
            completed_task_ids=sorted(session.team.completed_task_ids),
            zone_penalty_total=sum(
                e.amount for e in scenario.events_of(ZonePenaltyApplied, team_id)
            ),
            hints_used=len(scenario.events_of(HintUsed, team_id)),
            impossible_travel_count=len(
                scenario.events_of(ImpossibleTravelDetected, team_id),
            ),
        )
        for team_id, session in scenario.sessions.items()
    ]

    first_completions: dict[str, str] = {}
    for task in config.game.tasks:
        if (first := scenario.attempts.first_to_complete(task.id)) is not None:
            first_completions[task.id] = first.team_id

    return ReplayResult(
        config_hash=config.compute_hash(),
        timestamp=timestamp,
        execution_time_ms=(time.perf_counter() - start_time) * 1000,
        simulated_ms=scenario.now_ms() - config.start_ms,
        teams=teams,
        first_completions=first_completions,
        skipped_actions=skipped,
    )
