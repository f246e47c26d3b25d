"""Readiness of tasks that need several distinct teams on site at once."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from geohunt.engine.geo import is_within_radius

if TYPE_CHECKING:
    from collections.abc import Iterable

    from geohunt.core.models import Coordinate, TaskPoint
    from geohunt.core.types import Millis, TaskId, TeamId

logger = logging.getLogger(__name__)

DEFAULT_STALE_AFTER_MS = 120_000


@dataclass(frozen=True, slots=True)
class GateProgress:
    current_count: int
    required_count: int

    @property
    def ready(self) -> bool:
        return self.current_count >= self.required_count


@dataclass(slots=True)
class TeamSnapshot:
    """Last broadcast position of a team, stamped by the server."""

    team_id: TeamId
    position: Coordinate | None
    stamped_at: Millis


@dataclass
class MultiTeamGate:
    """
    Tracks which teams are inside each gated task's geofence.

    Membership is instantaneous: it is recomputed from the latest snapshot of
    every team whenever any team broadcasts, and a team drops out as soon as
    its last position leaves the radius, is lost, or goes stale.
    """

    tasks: dict[TaskId, TaskPoint] = field(default_factory=dict)
    stale_after_ms: int = DEFAULT_STALE_AFTER_MS
    snapshots: dict[TeamId, TeamSnapshot] = field(default_factory=dict)
    active_teams: dict[TaskId, frozenset[TeamId]] = field(default_factory=dict)

    @classmethod
    def for_tasks(
        cls,
        tasks: Iterable[TaskPoint],
        stale_after_ms: int = DEFAULT_STALE_AFTER_MS,
    ) -> MultiTeamGate:
        gated = {t.id: t for t in tasks if t.is_gated}
        gate = cls(tasks=gated, stale_after_ms=stale_after_ms)
        gate.active_teams = {task_id: frozenset() for task_id in gated}
        return gate

    def observe(
        self,
        team_id: TeamId,
        position: Coordinate | None,
        stamped_at: Millis,
        now_ms: Millis,
    ) -> list[TaskId]:
        """
        Record a position broadcast and recompute all gates.

        Broadcasts older than the team's last accepted stamp are ignored.

        Returns:
            Ids of gated tasks whose readiness flipped.
        """
        previous = self.snapshots.get(team_id)
        if previous is not None and stamped_at < previous.stamped_at:
            logger.debug(
                f"Ignoring out-of-order broadcast from {team_id} "
                f"({stamped_at} < {previous.stamped_at})",
            )
            return []

        self.snapshots[team_id] = TeamSnapshot(team_id, position, stamped_at)
        return self.recompute(now_ms)

    def forget(self, team_id: TeamId, now_ms: Millis) -> list[TaskId]:
        _ = self.snapshots.pop(team_id, None)
        return self.recompute(now_ms)

    def prune_stale(self, now_ms: Millis) -> list[TeamId]:
        dead = [
            team_id
            for team_id, snap in self.snapshots.items()
            if now_ms - snap.stamped_at >= self.stale_after_ms
        ]
        for team_id in dead:
            del self.snapshots[team_id]
        return dead

    def recompute(self, now_ms: Millis) -> list[TaskId]:
        _ = self.prune_stale(now_ms)

        flipped: list[TaskId] = []
        for task_id, task in self.tasks.items():
            inside = frozenset(
                snap.team_id
                for snap in self.snapshots.values()
                if is_within_radius(
                    snap.position,
                    task.geofence.center,
                    task.geofence.radius_meters,
                )
            )
            before = self.progress(task_id).ready
            self.active_teams[task_id] = inside
            if self.progress(task_id).ready != before:
                flipped.append(task_id)
        return flipped

    def progress(self, task_id: TaskId) -> GateProgress:
        task = self.tasks.get(task_id)
        if task is None:
            # Ungated tasks are trivially ready.
            return GateProgress(current_count=1, required_count=1)
        return GateProgress(
            current_count=len(self.active_teams.get(task_id, frozenset())),
            required_count=task.required_team_count,
        )

    def is_ready(self, task_id: TaskId) -> bool:
        return self.progress(task_id).ready
