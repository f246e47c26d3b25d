"""Per-team danger zone occupancy and penalty accrual.

The machine has three phases:

- OUTSIDE: no zone contains the team's last position.
- IN_GRACE: inside a zone, no timed penalty is accruing yet. Fixed-penalty
  zones stay here for the whole occupancy after their one-time deduction.
- PENALTY_ACTIVE: inside a time-based zone after the grace period; every whole
  second deducts `penalty_magnitude`.

Leaving every zone discards the session, so re-entering restarts the grace
period and `total_deducted` from zero.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from geohunt.core.events import (
    GracePeriodEnded,
    ZoneEntered,
    ZoneExited,
    ZonePenaltyApplied,
)
from geohunt.core.state import ZoneSession
from geohunt.engine.geo import haversine_meters

if TYPE_CHECKING:
    from collections.abc import Sequence

    from geohunt.core.events import EngineEvent
    from geohunt.core.models import Coordinate, DangerZone
    from geohunt.core.types import Millis, TeamId, ZonePhase


@dataclass(frozen=True, slots=True)
class ZoneWarning:
    """Payload for the "you are in a danger zone" UI."""

    zone: DangerZone
    phase: ZonePhase
    elapsed_seconds: int
    total_deducted: int
    grace_seconds_left: int


def nearest_containing_zone(
    position: Coordinate,
    zones: Sequence[DangerZone],
) -> DangerZone | None:
    """Nearest zone whose radius contains `position`; earlier zones win ties."""
    best: DangerZone | None = None
    best_distance = float("inf")
    for zone in zones:
        distance = haversine_meters(position, zone.center)
        if distance <= zone.radius_meters and distance < best_distance:
            best = zone
            best_distance = distance
    return best


@dataclass
class DangerZoneStateMachine:
    team_id: TeamId
    zones: tuple[DangerZone, ...] = ()
    session: ZoneSession | None = None

    @property
    def phase(self) -> ZonePhase:
        if self.session is None:
            return "OUTSIDE"
        return self.session.phase

    @property
    def current_zone(self) -> DangerZone | None:
        return self.session.zone if self.session else None

    # --- Detection poll ---
    def detect(self, position: Coordinate | None, now_ms: Millis) -> list[EngineEvent]:
        """Re-evaluate occupancy for the latest fix. Leaving settles owed seconds first."""
        if position is None:
            return self.leave(now_ms)

        zone = nearest_containing_zone(position, self.zones)
        if zone is None:
            return self.leave(now_ms)

        if self.session is not None and self.session.zone.id == zone.id:
            return self._refresh(now_ms)

        # Entering fresh, or moving straight from one zone into another.
        events = self.leave(now_ms)
        events.extend(self._enter(zone, now_ms))
        events.extend(self._refresh(now_ms))
        return events

    # --- Penalty tick ---
    def tick(self, now_ms: Millis) -> list[EngineEvent]:
        """Accrue one deduction per whole second spent past the grace period."""
        session = self.session
        if session is None or session.zone.penalty_type != "time_based":
            return []

        events = self._refresh(now_ms)
        if session.phase != "PENALTY_ACTIVE":
            return events

        owed = (now_ms - session.penalty_started_at) // 1000 - session.ticks_applied
        for _ in range(max(0, owed)):
            session.ticks_applied += 1
            session.total_deducted += session.zone.penalty_magnitude
            events.append(
                ZonePenaltyApplied(
                    team_id=self.team_id,
                    at_ms=now_ms,
                    zone_id=session.zone.id,
                    amount=session.zone.penalty_magnitude,
                    total_deducted=session.total_deducted,
                ),
            )
        return events

    def leave(self, now_ms: Millis) -> list[EngineEvent]:
        """Settle every whole second completed inside the zone, then reset."""
        events = self.tick(now_ms)
        events.extend(self.reset(now_ms))
        return events

    def reset(self, now_ms: Millis) -> list[EngineEvent]:
        if self.session is None:
            return []
        session = self.session
        self.session = None
        return [
            ZoneExited(
                team_id=self.team_id,
                at_ms=now_ms,
                zone_id=session.zone.id,
                elapsed_seconds=session.elapsed_seconds,
                total_deducted=session.total_deducted,
            ),
        ]

    def warning(self, now_ms: Millis) -> ZoneWarning | None:
        if (session := self.session) is None:
            return None
        return ZoneWarning(
            zone=session.zone,
            phase=session.phase,
            elapsed_seconds=session.elapsed_seconds,
            total_deducted=session.total_deducted,
            grace_seconds_left=session.grace_seconds_left(now_ms),
        )

    def _enter(self, zone: DangerZone, now_ms: Millis) -> list[EngineEvent]:
        self.session = ZoneSession(zone=zone, entered_at=now_ms)
        events: list[EngineEvent] = [
            ZoneEntered(team_id=self.team_id, at_ms=now_ms, zone_id=zone.id),
        ]
        if zone.penalty_type == "fixed" and zone.penalty_magnitude > 0:
            self.session.total_deducted = zone.penalty_magnitude
            events.append(
                ZonePenaltyApplied(
                    team_id=self.team_id,
                    at_ms=now_ms,
                    zone_id=zone.id,
                    amount=zone.penalty_magnitude,
                    total_deducted=zone.penalty_magnitude,
                ),
            )
        return events

    def _refresh(self, now_ms: Millis) -> list[EngineEvent]:
        session = self.session
        if session is None:
            return []

        session.elapsed_seconds = max(0, (now_ms - session.entered_at) // 1000)
        if (
            session.zone.penalty_type == "time_based"
            and session.phase == "IN_GRACE"
            and now_ms >= session.penalty_started_at
        ):
            session.phase = "PENALTY_ACTIVE"
            return [
                GracePeriodEnded(
                    team_id=self.team_id,
                    at_ms=now_ms,
                    zone_id=session.zone.id,
                ),
            ]
        return []
