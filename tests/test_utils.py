"""Builders shared by the test suite. Positions are metric offsets from ORIGIN."""

from __future__ import annotations

import math
from typing import Any

from geohunt.core.models import (
    Coordinate,
    DangerZone,
    GameDefinition,
    GeoFence,
    TaskPoint,
    TeamSetup,
    TimerConfig,
)
from geohunt.engine.geo import EARTH_RADIUS_METERS
from geohunt.engine.scenario import GameScenario

ORIGIN = Coordinate(lat=52.520008, lng=13.404954)


def offset_meters(origin: Coordinate, north: float = 0.0, east: float = 0.0) -> Coordinate:
    """Coordinate displaced from `origin` by metric offsets on the sphere."""
    d_lat = math.degrees(north / EARTH_RADIUS_METERS)
    d_lng = math.degrees(east / (EARTH_RADIUS_METERS * math.cos(math.radians(origin.lat))))
    return Coordinate(lat=origin.lat + d_lat, lng=origin.lng + d_lng)


def at(north: float = 0.0, east: float = 0.0) -> Coordinate:
    return offset_meters(ORIGIN, north=north, east=east)


def make_task(
    task_id: str,
    north: float = 0.0,
    east: float = 0.0,
    radius: float = 50.0,
    **kwargs: Any,
) -> TaskPoint:
    return TaskPoint(
        id=task_id,
        geofence=GeoFence(center=at(north, east), radius_meters=radius),
        **kwargs,
    )


def make_zone(
    zone_id: str,
    north: float = 0.0,
    east: float = 0.0,
    radius: float = 30.0,
    **kwargs: Any,
) -> DangerZone:
    return DangerZone(id=zone_id, center=at(north, east), radius_meters=radius, **kwargs)


def make_game(
    tasks: tuple[TaskPoint, ...] = (),
    zones: tuple[DangerZone, ...] = (),
    timer: TimerConfig | None = None,
    game_id: str = "game-1",
) -> GameDefinition:
    return GameDefinition(game_id=game_id, tasks=tasks, danger_zones=zones, timer=timer)


def make_teams(*team_ids: str, score: int = 0, start_ms: int | None = 0) -> list[TeamSetup]:
    return [
        TeamSetup(
            id=team_id,
            name=team_id.title(),
            members=(f"{team_id}-phone",),
            start_ms=start_ms,
            initial_score=score,
        )
        for team_id in team_ids
    ]


def build_scenario(
    tasks: tuple[TaskPoint, ...] = (),
    zones: tuple[DangerZone, ...] = (),
    teams: tuple[str, ...] = ("alpha",),
    score: int = 0,
    **kwargs: Any,
) -> GameScenario:
    timer = kwargs.pop("timer", None)
    start_ms = kwargs.pop("team_start_ms", 0)
    return GameScenario(
        game=make_game(tasks, zones, timer=timer),
        teams=make_teams(*teams, score=score, start_ms=start_ms),
        **kwargs,
    )
