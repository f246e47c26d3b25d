"""Replay configuration schema using msgspec."""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Annotated, Literal

import msgspec

from geohunt.core.models import (
    Coordinate,
    GameDefinition,
    Latitude,
    Longitude,
    TeamSetup,
)
from geohunt.core.types import ActivationType
from geohunt.engine.session import EngineSettings

ActionKind = Literal["activate", "answer", "hint", "close"]
PositiveInt = Annotated[int, msgspec.Meta(gt=0)]


class TrackSample(msgspec.Struct, frozen=True, kw_only=True):
    """One recorded fix. Omitting lat/lng records a lost fix."""

    at_ms: int
    lat: Latitude | None = None
    lng: Longitude | None = None
    accuracy: float | None = None

    @property
    def position(self) -> Coordinate | None:
        if self.lat is None or self.lng is None:
            return None
        return Coordinate(lat=self.lat, lng=self.lng)


class Track(msgspec.Struct, frozen=True, kw_only=True):
    team_id: str
    samples: list[TrackSample] = msgspec.field(default_factory=list)


class Action(msgspec.Struct, frozen=True, kw_only=True):
    at_ms: int
    team_id: str
    kind: ActionKind
    task_id: str
    method: ActivationType = "qr"
    code: str | None = None
    # None submits the answer for manual review.
    correct: bool | None = None


class SettingsConfig(msgspec.Struct, frozen=True, kw_only=True):
    detection_interval_ms: PositiveInt = 500
    penalty_interval_ms: PositiveInt = 1000
    stale_after_ms: PositiveInt = 120_000
    max_speed_mps: float = 2.5
    heartbeat_interval_ms: PositiveInt = 5000

    def to_engine(self) -> EngineSettings:
        return EngineSettings(
            detection_interval_ms=self.detection_interval_ms,
            penalty_interval_ms=self.penalty_interval_ms,
            stale_after_ms=self.stale_after_ms,
            max_speed_mps=self.max_speed_mps,
            heartbeat_interval_ms=self.heartbeat_interval_ms,
        )


class GameConfig(msgspec.Struct, frozen=True, kw_only=True):
    """
    TOML-backed description of one recorded game: the game definition, the
    roster, every team's GPS track and the timed player actions.
    """

    game: GameDefinition
    teams: list[TeamSetup] = msgspec.field(default_factory=list)
    tracks: list[Track] = msgspec.field(default_factory=list)
    actions: list[Action] = msgspec.field(default_factory=list)
    settings: SettingsConfig = msgspec.field(default_factory=SettingsConfig)
    start_ms: int = 0
    duration_ms: int | None = None

    @classmethod
    def from_toml(cls, path: str | Path) -> GameConfig:
        """Load configuration from a TOML file path."""
        with Path(path).open("rb") as f:
            return msgspec.toml.decode(f.read(), type=cls)

    def compute_hash(self) -> str:
        """Stable SHA-256 of the canonical JSON encoding."""
        return hashlib.sha256(msgspec.json.encode(self)).hexdigest()

    @property
    def end_ms(self) -> int:
        """Explicit duration, else one second after the last recorded input."""
        if self.duration_ms is not None:
            return self.start_ms + self.duration_ms
        last = [s.at_ms for t in self.tracks for s in t.samples]
        last.extend(a.at_ms for a in self.actions)
        return max(last, default=self.start_ms) + 1000

    @property
    def repr(self) -> str:
        return (
            f"{self.game.game_id}: {len(self.teams)} teams, "
            f"{len(self.game.tasks)} tasks, {len(self.game.danger_zones)} zones"
        )
