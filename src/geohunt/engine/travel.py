from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from geohunt.core.events import ImpossibleTravelDetected
from geohunt.engine.geo import haversine_meters

if TYPE_CHECKING:
    from geohunt.core.state import PositionSample
    from geohunt.core.types import TeamId

# Fast walk / jog, ~9 km/h.
DEFAULT_MAX_SPEED_MPS = 2.5


@dataclass
class TravelMonitor:
    """Flags consecutive fixes that imply a speed no team on foot can reach."""

    team_id: TeamId
    max_speed_mps: float = DEFAULT_MAX_SPEED_MPS
    last: PositionSample | None = None

    def observe(self, sample: PositionSample) -> ImpossibleTravelDetected | None:
        if sample.position is None:
            return None

        previous, self.last = self.last, sample
        if previous is None or previous.position is None:
            return None

        elapsed_ms = sample.at_ms - previous.at_ms
        if elapsed_ms <= 0:
            return None

        distance = haversine_meters(previous.position, sample.position)
        speed = distance / (elapsed_ms / 1000)
        if speed <= self.max_speed_mps:
            return None

        return ImpossibleTravelDetected(
            team_id=self.team_id,
            at_ms=sample.at_ms,
            speed_mps=speed,
            distance_meters=distance,
            elapsed_ms=elapsed_ms,
            previous=previous.position,
            current=sample.position,
        )
