from __future__ import annotations

from abc import ABC
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from geohunt.core.models import Coordinate
    from geohunt.core.types import (
        ActivationType,
        AttemptStatus,
        Millis,
        ScoreReason,
        TaskId,
        TeamId,
        ZoneId,
    )


@dataclass(frozen=True)
class EngineEvent(ABC):
    team_id: TeamId
    at_ms: Millis


@dataclass(frozen=True)
class HasTask:
    """Mixin for events that concern a single task"""

    task_id: TaskId


@dataclass(frozen=True)
class HasZone:
    """Mixin for events that concern a single danger zone"""

    zone_id: ZoneId


@dataclass(frozen=True, kw_only=True)
class PositionUpdated(EngineEvent):
    position: Coordinate
    accuracy: float | None = None


@dataclass(frozen=True, kw_only=True)
class PositionLost(EngineEvent): ...


@dataclass(frozen=True, kw_only=True)
class TaskDiscovered(EngineEvent, HasTask):
    distance_meters: float


@dataclass(frozen=True, kw_only=True)
class ActivatableTasksChanged(EngineEvent):
    """The sorted list of proximity-activatable tasks changed."""

    task_ids: tuple[TaskId, ...]
    nearest_distance: float | None


@dataclass(frozen=True, kw_only=True)
class GateReadinessChanged(EngineEvent, HasTask):
    current_count: int
    required_count: int
    ready: bool


@dataclass(frozen=True, kw_only=True)
class ZoneEntered(EngineEvent, HasZone): ...


@dataclass(frozen=True, kw_only=True)
class ZoneExited(EngineEvent, HasZone):
    elapsed_seconds: int
    total_deducted: int


@dataclass(frozen=True, kw_only=True)
class GracePeriodEnded(EngineEvent, HasZone): ...


@dataclass(frozen=True, kw_only=True)
class ZonePenaltyApplied(EngineEvent, HasZone):
    amount: int
    total_deducted: int


@dataclass(frozen=True, kw_only=True)
class ScoreChanged(EngineEvent):
    old_score: int
    new_score: int
    reason: ScoreReason

    @property
    def gain(self) -> int:
        return self.new_score - self.old_score


@dataclass(frozen=True, kw_only=True)
class ScoreSynced(EngineEvent):
    """Score adopted from another device of the same team."""

    old_score: int
    new_score: int


@dataclass(frozen=True, kw_only=True)
class TaskActivated(EngineEvent, HasTask):
    method: ActivationType


@dataclass(frozen=True, kw_only=True)
class TaskAttempted(EngineEvent, HasTask):
    status: AttemptStatus
    sequence: int


@dataclass(frozen=True, kw_only=True)
class TaskCompleted(EngineEvent, HasTask):
    reward_points: int


@dataclass(frozen=True, kw_only=True)
class HintUsed(EngineEvent, HasTask):
    cost: int


@dataclass(frozen=True, kw_only=True)
class ImpossibleTravelDetected(EngineEvent):
    speed_mps: float
    distance_meters: float
    elapsed_ms: int
    previous: Coordinate
    current: Coordinate
