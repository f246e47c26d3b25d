"""Immutable game configuration supplied by the editor/persistence layer."""

from __future__ import annotations

from typing import Annotated

import msgspec

from geohunt.core.types import (
    ActivationType,
    CompletionPolicy,
    PenaltyType,
    ScheduleMode,
    TimerMode,
)

Latitude = Annotated[float, msgspec.Meta(ge=-90.0, le=90.0)]
Longitude = Annotated[float, msgspec.Meta(ge=-180.0, le=180.0)]
NonNegativeInt = Annotated[int, msgspec.Meta(ge=0)]
NonNegativeFloat = Annotated[float, msgspec.Meta(ge=0.0)]


class Coordinate(msgspec.Struct, frozen=True):
    """WGS84 position in degrees."""

    lat: Latitude
    lng: Longitude

    @property
    def repr(self) -> str:
        return f"({self.lat:.5f}, {self.lng:.5f})"


class GeoFence(msgspec.Struct, frozen=True):
    center: Coordinate
    radius_meters: NonNegativeFloat


class Schedule(msgspec.Struct, frozen=True, kw_only=True):
    """
    Time based visibility rule for a task.

    Absolute bounds are epoch milliseconds; offsets are minutes.
    """

    enabled: bool = False
    mode: ScheduleMode = "absolute_window"
    show_at: int | None = None
    hide_at: int | None = None
    show_after_minutes: NonNegativeFloat | None = None
    show_before_end_minutes: NonNegativeFloat | None = None


class TimerConfig(msgspec.Struct, frozen=True, kw_only=True):
    mode: TimerMode = "none"
    duration_minutes: NonNegativeFloat | None = None
    # Wall clock "HH:MM", resolved on the calendar day of `now` in `timezone`.
    end_time: str | None = None
    timezone: str | None = None
    title: str | None = None


class TaskPoint(msgspec.Struct, frozen=True, kw_only=True):
    id: str
    geofence: GeoFence
    title: str = ""
    activation_types: frozenset[ActivationType] = frozenset({"proximity"})
    required_team_count: Annotated[int, msgspec.Meta(ge=1)] = 1
    schedule: Schedule | None = None
    completion_policy: CompletionPolicy = "remove_on_any_answer"
    reward_points: int = 0
    hint_cost: NonNegativeInt = 0
    manual_unlock_code: str | None = None
    is_unlocked: bool = False
    is_completed: bool = False

    @property
    def is_gated(self) -> bool:
        return self.required_team_count > 1


class DangerZone(msgspec.Struct, frozen=True, kw_only=True):
    id: str
    center: Coordinate
    radius_meters: NonNegativeFloat
    penalty_type: PenaltyType = "time_based"
    penalty_magnitude: NonNegativeInt = 0
    grace_seconds: NonNegativeInt = 0
    title: str = ""

    @property
    def repr(self) -> str:
        return f"Zone[{self.title or self.id}]"

    def __post_init__(self) -> None:
        # Meta bounds only apply when decoding; direct construction is checked here.
        if self.penalty_magnitude < 0:
            msg = f"{self.repr}: penalty_magnitude must be >= 0, got {self.penalty_magnitude}"
            raise ValueError(msg)
        if self.grace_seconds < 0:
            msg = f"{self.repr}: grace_seconds must be >= 0, got {self.grace_seconds}"
            raise ValueError(msg)


class GameDefinition(msgspec.Struct, frozen=True, kw_only=True):
    """Per-game configuration: ordered tasks, danger zones and the game timer."""

    game_id: str
    tasks: tuple[TaskPoint, ...] = ()
    danger_zones: tuple[DangerZone, ...] = ()
    timer: TimerConfig | None = None

    def task(self, task_id: str) -> TaskPoint:
        for task in self.tasks:
            if task.id == task_id:
                return task
        msg = f"Unknown task {task_id!r} in game {self.game_id!r}"
        raise ValueError(msg)


class TeamSetup(msgspec.Struct, frozen=True, kw_only=True):
    """Roster entry. `start_ms=None` means the team has not started yet."""

    id: str
    name: str = ""
    members: tuple[str, ...] = ("device-0",)
    start_ms: int | None = None
    initial_score: NonNegativeInt = 0
