from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING, TypeVar

from geohunt.core.models import Coordinate
from geohunt.core.state import TeamState
from geohunt.engine.attempts import TaskAttemptLog
from geohunt.engine.ledger import ScoreLedger
from geohunt.engine.scheduler import VirtualScheduler
from geohunt.engine.session import EngineSettings, TeamSession
from geohunt.sync.channel import InMemorySyncChannel

if TYPE_CHECKING:
    from collections.abc import Sequence

    from geohunt.core.events import EngineEvent
    from geohunt.core.models import GameDefinition, TeamSetup
    from geohunt.core.types import Millis, TeamId

E = TypeVar("E", bound="EngineEvent")


class GameScenario:
    """
    A whole multi-team game on a virtual clock.

    Every team gets one running TeamSession (plus any extra devices added
    later), all sharing one in-memory sync channel and one server-side
    attempt log.
    """

    def __init__(
        self,
        game: GameDefinition,
        teams: Sequence[TeamSetup],
        settings: EngineSettings | None = None,
        start_ms: Millis = 0,
        verbose: bool = True,
        with_channel: bool = True,
    ):
        self.game: GameDefinition = game
        self.settings: EngineSettings = settings or EngineSettings()
        self.verbose: bool = verbose
        self.scheduler: VirtualScheduler = VirtualScheduler(start_ms=start_ms)
        self.channel: InMemorySyncChannel | None = (
            InMemorySyncChannel(clock=self.scheduler) if with_channel else None
        )
        self.attempts: TaskAttemptLog = TaskAttemptLog(clock=self.scheduler)

        self.sessions: dict[TeamId, TeamSession] = {}
        self.devices: dict[TeamId, list[TeamSession]] = defaultdict(list)
        self.events: list[EngineEvent] = []
        self.score_changes: dict[TeamId, list[int]] = defaultdict(list)

        for setup in teams:
            team = TeamState(
                id=setup.id,
                name=setup.name or setup.id,
                score=setup.initial_score,
                members=set(setup.members),
                start_ms=setup.start_ms,
            )
            device_id = setup.members[0] if setup.members else "device-0"
            session = self._build_session(team, device_id)
            self.sessions[setup.id] = session
            session.start()

    def _build_session(self, team: TeamState, device_id: str) -> TeamSession:
        session = TeamSession(
            team=team,
            game=self.game,
            scheduler=self.scheduler,
            channel=self.channel,
            ledger=ScoreLedger(),
            attempts=self.attempts,
            device_id=device_id,
            settings=self.settings,
            on_event_processed=self._on_event,
            verbose=self.verbose,
        )
        session.on_score_change = self.score_changes[team.id].append
        self.devices[team.id].append(session)
        return session

    def add_device(self, team_id: TeamId, device_id: str) -> TeamSession:
        """Start a second device for a team with its own copy of the team state."""
        primary = self.team(team_id)
        team = TeamState(
            id=primary.id,
            name=primary.name,
            score=primary.score,
            completed_task_ids=set(primary.completed_task_ids),
            members=set(primary.members) | {device_id},
            start_ms=primary.start_ms,
        )
        session = self._build_session(team, device_id)
        session.start()
        return session

    def _on_event(self, _: TeamSession, event: EngineEvent) -> None:
        self.events.append(event)

    # --- Driving the game ---
    def move(self, team_id: TeamId, position: Coordinate | None, accuracy: float | None = None):
        self.session(team_id).update_position(position, accuracy)

    def move_to(self, team_id: TeamId, lat: float, lng: float):
        self.move(team_id, Coordinate(lat=lat, lng=lng))

    def lose_fix(self, team_id: TeamId):
        self.move(team_id, None)

    def advance(self, delta_ms: int):
        self.scheduler.advance(delta_ms)

    def advance_to(self, target_ms: Millis):
        self.scheduler.advance_to(target_ms)

    def stop_all(self):
        for sessions in self.devices.values():
            for session in sessions:
                session.stop()

    # --- Getters ---
    def session(self, team_id: TeamId) -> TeamSession:
        if (session := self.sessions.get(team_id)) is None:
            msg = f"Unknown team {team_id!r}"
            raise ValueError(msg)
        return session

    def team(self, team_id: TeamId) -> TeamState:
        return self.session(team_id).team

    def score(self, team_id: TeamId) -> int:
        return self.team(team_id).score

    def now_ms(self) -> Millis:
        return self.scheduler.now_ms()

    def events_of(self, event_type: type[E], team_id: TeamId | None = None) -> list[E]:
        return [
            e
            for e in self.events
            if isinstance(e, event_type) and (team_id is None or e.team_id == team_id)
        ]
