"""Great-circle distance and proximity evaluation against task geofences."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from geohunt.core.models import Coordinate, TaskPoint

EARTH_RADIUS_METERS = 6_371_000.0


def haversine_meters(a: Coordinate, b: Coordinate) -> float:
    """Spherical-earth haversine distance, no ellipsoidal correction."""
    d_lat = math.radians(b.lat - a.lat)
    d_lng = math.radians(b.lng - a.lng)
    lat1 = math.radians(a.lat)
    lat2 = math.radians(b.lat)

    x = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
    # Float noise can push x marginally above 1 for antipodal points.
    return 2 * EARTH_RADIUS_METERS * math.asin(math.sqrt(min(1.0, x)))


def is_within_radius(
    position: Coordinate | None,
    center: Coordinate | None,
    radius_meters: float,
) -> bool:
    if position is None or center is None:
        return False
    return haversine_meters(position, center) <= radius_meters


def format_distance(meters: float) -> str:
    if meters >= 1000:
        return f"{meters / 1000:.1f} km"
    return f"{round(meters)} m"


@dataclass(frozen=True, slots=True)
class TaskInRange:
    task: TaskPoint
    distance_meters: float


@dataclass(frozen=True, slots=True)
class ProximityResult:
    activatable: tuple[TaskInRange, ...]
    nearest_distance: float | None
    nearest_task_id: str | None = None

    @property
    def task_ids(self) -> tuple[str, ...]:
        return tuple(t.task.id for t in self.activatable)

    @property
    def nearest_repr(self) -> str:
        if self.nearest_distance is None:
            return "-"
        return format_distance(self.nearest_distance)


EMPTY_PROXIMITY = ProximityResult(activatable=(), nearest_distance=None)


def distances_to(
    position: Coordinate,
    tasks: Iterable[TaskPoint],
) -> list[tuple[TaskPoint, float]]:
    return [(task, haversine_meters(position, task.geofence.center)) for task in tasks]


def evaluate_proximity(
    position: Coordinate | None,
    tasks: Sequence[TaskPoint],
) -> ProximityResult:
    """
    Compute which candidate tasks are proximity-activatable from `position`.

    Args:
        position: Current fix, or None if unavailable.
        tasks: Schedule-visible, still-open candidates in configuration order.

    Returns:
        In-range tasks carrying the `proximity` activation type, nearest first
        (ties keep configuration order), plus the distance to the nearest
        candidate regardless of radius or activation type.
    """
    if position is None or not tasks:
        return EMPTY_PROXIMITY

    measured = distances_to(position, tasks)

    in_range = [
        TaskInRange(task, distance)
        for task, distance in measured
        if "proximity" in task.activation_types
        and distance <= task.geofence.radius_meters
    ]
    # sorted() is stable, so equal distances keep insertion order.
    in_range.sort(key=lambda t: t.distance_meters)

    nearest_task, nearest_distance = min(measured, key=lambda pair: pair[1])
    return ProximityResult(
        activatable=tuple(in_range),
        nearest_distance=nearest_distance,
        nearest_task_id=nearest_task.id,
    )
