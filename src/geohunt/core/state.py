from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from geohunt.core.models import Coordinate, DangerZone
    from geohunt.core.types import (
        AttemptStatus,
        DeviceId,
        Millis,
        ScoreReason,
        TaskId,
        TeamId,
        ZonePhase,
    )


@dataclass(frozen=True, slots=True)
class PositionSample:
    """One fix from the GPS source. `position=None` means the fix is lost."""

    at_ms: Millis
    position: Coordinate | None
    accuracy: float | None = None


@dataclass(slots=True)
class TeamState:
    id: TeamId
    name: str
    score: int = 0
    completed_task_ids: set[TaskId] = field(default_factory=set)
    position: Coordinate | None = None
    members: set[DeviceId] = field(default_factory=set)
    start_ms: Millis | None = None

    @property
    def repr(self) -> str:
        return f"{self.id}:{self.name}"


@dataclass(slots=True)
class ZoneSession:
    """
    Transient occupancy of one danger zone by one team.

    Created on entry and discarded on exit, so its lifetime is one continuous
    occupancy interval.
    """

    zone: DangerZone
    entered_at: Millis
    phase: ZonePhase = "IN_GRACE"
    elapsed_seconds: int = 0
    total_deducted: int = 0
    ticks_applied: int = 0

    @property
    def grace_ms(self) -> int:
        return self.zone.grace_seconds * 1000

    @property
    def penalty_started_at(self) -> Millis:
        return self.entered_at + self.grace_ms

    def grace_seconds_left(self, now_ms: Millis) -> int:
        if self.zone.penalty_type != "time_based":
            return 0
        remaining = self.penalty_started_at - now_ms
        return max(0, -(-remaining // 1000))


@dataclass(frozen=True, slots=True)
class ScoreDelta:
    team_id: TeamId
    amount: int
    reason: ScoreReason
    at_ms: Millis
    source_id: str | None = None
    device_id: str = ""

    @property
    def repr(self) -> str:
        sign = "+" if self.amount >= 0 else "-"
        return f"{sign}{abs(self.amount)} pts ({self.reason})"


@dataclass(frozen=True, slots=True)
class LedgerState:
    team_id: TeamId
    score: int = 0
    revision: int = 0
    updated_at: Millis = 0
    updated_by: str = ""


@dataclass(frozen=True, slots=True)
class TaskAttempt:
    """Append-only audit record. `stamped_at` comes from the server clock."""

    sequence: int
    team_id: TeamId
    task_id: TaskId
    position: Coordinate | None
    status: AttemptStatus
    stamped_at: Millis


@dataclass(slots=True)
class LogContext:
    """Per-session logging state."""

    clock_ms: Millis = 0
    team_repr: str = "_"
    log_count: int = 0

    def set_time(self, now_ms: Millis):
        self.clock_ms = now_ms

    def inc_log_count(self):
        self.log_count += 1
