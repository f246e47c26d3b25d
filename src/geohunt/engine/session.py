from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

from geohunt.core.events import (
    ActivatableTasksChanged,
    EngineEvent,
    GateReadinessChanged,
    GracePeriodEnded,
    HintUsed,
    ImpossibleTravelDetected,
    PositionLost,
    PositionUpdated,
    ScoreChanged,
    ScoreSynced,
    TaskActivated,
    TaskAttempted,
    TaskCompleted,
    TaskDiscovered,
    ZoneEntered,
    ZoneExited,
    ZonePenaltyApplied,
)
from geohunt.core.state import LogContext, PositionSample
from geohunt.engine.attempts import TaskAttemptLog
from geohunt.engine.danger import DangerZoneStateMachine
from geohunt.engine.gate import DEFAULT_STALE_AFTER_MS, MultiTeamGate
from geohunt.engine.geo import EMPTY_PROXIMITY, evaluate_proximity, format_distance
from geohunt.engine.ledger import ScoreLedger
from geohunt.engine.logging import LOGGER_NAME, ContextFilter
from geohunt.engine.schedule import filter_by_schedule
from geohunt.engine.travel import DEFAULT_MAX_SPEED_MPS, TravelMonitor
from geohunt.sync.channel import (
    ChatBroadcast,
    PositionBroadcast,
    ScoreBroadcast,
)

if TYPE_CHECKING:
    from geohunt.core.models import Coordinate, GameDefinition, TaskPoint
    from geohunt.core.state import TeamState
    from geohunt.core.types import ActivationType, Millis, ScoreReason, TaskId
    from geohunt.engine.danger import ZoneWarning
    from geohunt.engine.gate import GateProgress
    from geohunt.engine.geo import ProximityResult
    from geohunt.engine.scheduler import Scheduler, TimerHandle
    from geohunt.sync.channel import AnyBroadcast, Subscription, TeamSyncChannel


@dataclass(frozen=True, slots=True)
class EngineSettings:
    detection_interval_ms: int = 500
    penalty_interval_ms: int = 1000
    stale_after_ms: int = DEFAULT_STALE_AFTER_MS
    max_speed_mps: float = DEFAULT_MAX_SPEED_MPS
    # Re-share an unchanged position so other teams do not see it go stale.
    heartbeat_interval_ms: int = 5000


@dataclass
class TeamSession:
    """
    Runtime engine for one team on one device.

    Owns the team's danger zone state and local score view, runs the
    detection poll and the penalty tick on the injected scheduler, and talks
    to other teams only through broadcast snapshots on the sync channel.
    """

    team: TeamState
    game: GameDefinition
    scheduler: Scheduler
    channel: TeamSyncChannel | None = None
    ledger: ScoreLedger = field(default_factory=ScoreLedger)
    attempts: TaskAttemptLog | None = None
    device_id: str = "device-0"
    settings: EngineSettings = field(default_factory=EngineSettings)

    # Callbacks for external observers
    on_score_change: Callable[[int], None] | None = None
    on_event_processed: Callable[[TeamSession, EngineEvent], None] | None = None
    verbose: bool = True

    gate: MultiTeamGate = field(init=False)
    danger: DangerZoneStateMachine = field(init=False)
    travel: TravelMonitor = field(init=False)
    proximity: ProximityResult = field(init=False, default=EMPTY_PROXIMITY)
    scoreboard: dict[str, int] = field(init=False, default_factory=dict)
    discovered: set[TaskId] = field(init=False, default_factory=set)
    activated: set[TaskId] = field(init=False, default_factory=set)
    closed: set[TaskId] = field(init=False, default_factory=set)
    hints_used: set[TaskId] = field(init=False, default_factory=set)
    log_context: LogContext = field(init=False, default_factory=LogContext)
    running: bool = field(init=False, default=False)
    _last_shared_at: int | None = field(init=False, default=None, repr=False)
    _poll_handle: TimerHandle | None = field(init=False, default=None, repr=False)
    _tick_handle: TimerHandle | None = field(init=False, default=None, repr=False)
    _subscription: Subscription | None = field(init=False, default=None, repr=False)
    _logger: logging.Logger = field(init=False, repr=False)

    def __post_init__(self) -> None:
        base = logging.getLogger(LOGGER_NAME)
        self._logger = base.getChild(f"session.{self.team.id}.{id(self)}")
        self.log_context.team_repr = self.team.repr
        if self.verbose:
            self._logger.addFilter(ContextFilter(self.log_context))

        if self.attempts is None:
            self.attempts = TaskAttemptLog(clock=self.scheduler)

        self.gate = MultiTeamGate.for_tasks(
            self.game.tasks,
            stale_after_ms=self.settings.stale_after_ms,
        )
        self.danger = DangerZoneStateMachine(
            team_id=self.team.id,
            zones=tuple(self.game.danger_zones),
        )
        self.travel = TravelMonitor(
            team_id=self.team.id,
            max_speed_mps=self.settings.max_speed_mps,
        )
        _ = self.ledger.open_account(self.team.id, self.team.score)
        self.team.score = self.ledger.score(self.team.id)
        self.ledger.on_score_change = self._on_ledger_change

    # --- Lifecycle ---
    def start(self) -> None:
        if self.running:
            return
        self.running = True
        self._tick_time()
        if self.channel is not None:
            self._subscription = self.channel.subscribe(
                self.game.game_id,
                self._on_broadcast,
            )
        self.log_info(f"Session started on {self.device_id} (score {self.team.score})")
        if self.team.position is not None:
            self.update_position(self.team.position)

    def stop(self) -> None:
        """Tear down timers and transient state. Safe to call twice."""
        if not self.running:
            return
        now = self._tick_time()
        self._stop_timers()
        self._handle_events(self.danger.leave(now))
        if self._last_shared_at is not None:
            self._share_position(None, None, now)
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        self._set_proximity(EMPTY_PROXIMITY, now)
        self.running = False
        self.log_info("Session stopped.")

    def _start_timers(self) -> None:
        if self._poll_handle is not None:
            return
        self._poll_handle = self.scheduler.call_every(
            self.settings.detection_interval_ms,
            self._on_detection_poll,
            name=f"{self.team.id}:detect",
        )
        self._tick_handle = self.scheduler.call_every(
            self.settings.penalty_interval_ms,
            self._on_penalty_tick,
            name=f"{self.team.id}:penalty",
        )

    def _stop_timers(self) -> None:
        self.scheduler.cancel(self._poll_handle)
        self.scheduler.cancel(self._tick_handle)
        self._poll_handle = None
        self._tick_handle = None

    @property
    def timers_running(self) -> bool:
        return self._poll_handle is not None and self._tick_handle is not None

    # --- Position input ---
    def update_position(
        self,
        position: Coordinate | None,
        accuracy: float | None = None,
    ) -> None:
        """
        Feed one GPS sample. `None` means the fix is unavailable: all transient
        state is reset and both timers are cancelled until a fix returns.
        """
        if not self.running:
            msg = f"Session for {self.team.repr} is not running"
            raise ValueError(msg)

        now = self._tick_time()
        sample = PositionSample(at_ms=now, position=position, accuracy=accuracy)

        if position is None:
            self._lose_position(now)
            return

        self.team.position = position
        events: list[EngineEvent] = [
            PositionUpdated(
                team_id=self.team.id,
                at_ms=now,
                position=position,
                accuracy=accuracy,
            ),
        ]
        if (travel := self.travel.observe(sample)) is not None:
            events.append(travel)
        self._handle_events(events)

        self._start_timers()
        self._share_position(position, accuracy, now)
        self._handle_events(self.danger.detect(position, now))
        self._refresh_tasks(now)

    def _lose_position(self, now: Millis) -> None:
        had_fix = self.team.position is not None
        self.team.position = None
        self._stop_timers()
        self.travel.last = None
        self._handle_events(self.danger.leave(now))
        self._set_proximity(EMPTY_PROXIMITY, now)
        if had_fix:
            self._share_position(None, None, now)
        self._handle_events([PositionLost(team_id=self.team.id, at_ms=now)])

    def _share_position(
        self,
        position: Coordinate | None,
        accuracy: float | None,
        now: Millis,
    ) -> None:
        self._last_shared_at = now if position is not None else None
        if self.channel is None:
            self._observe_gate(self.team.id, position, now, now)
            return
        self.channel.publish(
            self.team.id,
            PositionBroadcast(
                game_id=self.game.game_id,
                team_id=self.team.id,
                device_id=self.device_id,
                position=position,
                accuracy=accuracy,
                name=self.team.name,
            ),
        )

    # --- Recurring callbacks ---
    def _on_detection_poll(self, now: Millis) -> None:
        self._tick_time(now)
        if (
            self.team.position is not None
            and self._last_shared_at is not None
            and now - self._last_shared_at >= self.settings.heartbeat_interval_ms
        ):
            self._share_position(self.team.position, None, now)
        for task_id in self.gate.recompute(now):
            self._emit_gate_change(task_id, now)
        self._handle_events(self.danger.detect(self.team.position, now))
        self._refresh_tasks(now)

    def _on_penalty_tick(self, now: Millis) -> None:
        self._tick_time(now)
        self._handle_events(self.danger.tick(now))

    # --- Broadcast input ---
    def _on_broadcast(self, message: AnyBroadcast) -> None:
        now = self._tick_time()
        match message:
            case PositionBroadcast():
                self._observe_gate(
                    message.team_id,
                    message.position,
                    message.stamped_at,
                    now,
                )
            case ScoreBroadcast():
                self._on_score_broadcast(message)
            case ChatBroadcast():
                if message.target_team_id in (None, self.team.id):
                    urgent = "!!! " if message.is_urgent else ""
                    self.log_info(f"{urgent}Chat from {message.sender}: {message.message}")
            case _:
                pass

    def _observe_gate(
        self,
        team_id: str,
        position: Coordinate | None,
        stamped_at: Millis,
        now: Millis,
    ) -> None:
        flipped = self.gate.observe(team_id, position, stamped_at, now)
        for task_id in flipped:
            self._emit_gate_change(task_id, now)
        if flipped:
            self._refresh_tasks(now)

    def _on_score_broadcast(self, message: ScoreBroadcast) -> None:
        if message.team_id != self.team.id:
            self.scoreboard[message.team_id] = message.score
            return
        if message.device_id == self.device_id:
            return
        old = self.team.score
        if self.ledger.adopt(
            self.team.id,
            message.score,
            message.stamped_at,
            message.revision,
            message.device_id,
        ):
            self.team.score = self.ledger.score(self.team.id)
            self._handle_events(
                [
                    ScoreSynced(
                        team_id=self.team.id,
                        at_ms=message.stamped_at,
                        old_score=old,
                        new_score=self.team.score,
                    ),
                ],
            )

    def _emit_gate_change(self, task_id: TaskId, now: Millis) -> None:
        progress = self.gate.progress(task_id)
        self._handle_events(
            [
                GateReadinessChanged(
                    team_id=self.team.id,
                    at_ms=now,
                    task_id=task_id,
                    current_count=progress.current_count,
                    required_count=progress.required_count,
                    ready=progress.ready,
                ),
            ],
        )

    # --- Task candidates ---
    def has_completed(self, task_id: TaskId) -> bool:
        """Completed by this team on any of its devices."""
        assert self.attempts is not None
        return task_id in self.team.completed_task_ids or self.attempts.has_correct(
            self.team.id,
            task_id,
        )

    def is_open(self, task: TaskPoint) -> bool:
        """Whether the completion policy still offers `task` to this team."""
        if task.is_completed:
            return False
        assert self.attempts is not None
        answered = self.attempts.has_answered(self.team.id, task.id)
        completed = self.has_completed(task.id)

        match task.completion_policy:
            case "keep_always":
                return True
            case "keep_until_correct":
                return not completed
            case "remove_on_any_answer":
                return not (answered or completed)
            case "allow_close_without_answer":
                return not (answered or completed or task.id in self.closed)
            case _:
                self.log_warning(
                    f"Unknown completion policy {task.completion_policy!r} on "
                    f"Task[{task.id}]; keeping it open.",
                )
                return True

    def candidate_tasks(self, now: Millis | None = None) -> list[TaskPoint]:
        now = self.scheduler.now_ms() if now is None else now
        visible = filter_by_schedule(
            self.game.tasks,
            self.team.start_ms,
            self.game.timer,
            now,
        )
        return [task for task in visible if self.is_open(task)]

    def _refresh_tasks(self, now: Millis) -> None:
        if self.team.position is None:
            self._set_proximity(EMPTY_PROXIMITY, now)
            return

        result = evaluate_proximity(self.team.position, self.candidate_tasks(now))

        discoveries: list[EngineEvent] = []
        for hit in result.activatable:
            if hit.task.id not in self.discovered:
                self.discovered.add(hit.task.id)
                discoveries.append(
                    TaskDiscovered(
                        team_id=self.team.id,
                        at_ms=now,
                        task_id=hit.task.id,
                        distance_meters=hit.distance_meters,
                    ),
                )
        self._handle_events(discoveries)

        # Gated tasks only become activatable once enough teams are on site.
        ready = tuple(t for t in result.activatable if self.gate.is_ready(t.task.id))
        self._set_proximity(replace(result, activatable=ready), now)

    def _set_proximity(self, result: ProximityResult, now: Millis) -> None:
        changed = result.task_ids != self.proximity.task_ids
        self.proximity = result
        if changed:
            self._handle_events(
                [
                    ActivatableTasksChanged(
                        team_id=self.team.id,
                        at_ms=now,
                        task_ids=result.task_ids,
                        nearest_distance=result.nearest_distance,
                    ),
                ],
            )

    # --- Player actions ---
    def activate(
        self,
        task_id: TaskId,
        method: ActivationType,
        code: str | None = None,
    ) -> bool:
        task = self.game.task(task_id)
        now = self._tick_time()

        if method not in task.activation_types:
            self.log_warning(f"Task[{task_id}] does not accept {method!r} activation.")
            return False
        if task_id not in {t.id for t in self.candidate_tasks(now)}:
            return False
        if not self.gate.is_ready(task_id):
            progress = self.gate.progress(task_id)
            self.log_info(
                f"Task[{task_id}] waiting for teams: Gate {progress.current_count}/{progress.required_count}",
            )
            return False

        match method:
            case "proximity":
                if task_id not in self.proximity.task_ids:
                    return False
            case "manual_code":
                expected = (task.manual_unlock_code or "").strip().casefold()
                if not expected or (code or "").strip().casefold() != expected:
                    self.log_info(f"Wrong unlock code for Task[{task_id}].")
                    return False
            case "qr" | "nfc":
                pass
            case _:
                return False

        self.activated.add(task_id)
        self._handle_events(
            [TaskActivated(team_id=self.team.id, at_ms=now, task_id=task_id, method=method)],
        )
        return True

    def submit_answer(self, task_id: TaskId, correct: bool | None) -> bool:
        """
        Record an answer. `correct=None` means submitted for manual review.

        Returns:
            True if this answer completed the task for the team.
        """
        task = self.game.task(task_id)
        if not (task.is_unlocked or task_id in self.activated):
            msg = f"Task {task_id!r} has not been activated by {self.team.repr}"
            raise ValueError(msg)

        now = self._tick_time()
        already = self.has_completed(task_id)
        status = "submitted" if correct is None else ("correct" if correct else "wrong")
        assert self.attempts is not None
        attempt = self.attempts.record(self.team.id, task_id, self.team.position, status)
        events: list[EngineEvent] = [
            TaskAttempted(
                team_id=self.team.id,
                at_ms=now,
                task_id=task_id,
                status=status,
                sequence=attempt.sequence,
            ),
        ]
        self._handle_events(events)

        completed = False
        if already:
            # Rewarded once per team, possibly on another device.
            self.team.completed_task_ids.add(task_id)
        elif correct:
            self.team.completed_task_ids.add(task_id)
            self._apply(task.reward_points, "task_reward", now, task_id)
            self._handle_events(
                [
                    TaskCompleted(
                        team_id=self.team.id,
                        at_ms=now,
                        task_id=task_id,
                        reward_points=task.reward_points,
                    ),
                ],
            )
            completed = True

        self._refresh_tasks(now)
        return completed

    def close_task(self, task_id: TaskId) -> None:
        """Close a task without answering it."""
        _ = self.game.task(task_id)
        self.closed.add(task_id)
        self.activated.discard(task_id)
        self._refresh_tasks(self._tick_time())

    def use_hint(self, task_id: TaskId) -> int:
        """Charge the task's hint cost once per team. Returns the points charged."""
        task = self.game.task(task_id)
        if task_id in self.hints_used:
            return 0
        now = self._tick_time()
        self.hints_used.add(task_id)
        if task.hint_cost > 0:
            self._apply(-task.hint_cost, "hint_cost", now, task_id)
        self._handle_events(
            [HintUsed(team_id=self.team.id, at_ms=now, task_id=task_id, cost=task.hint_cost)],
        )
        return task.hint_cost

    # --- Scoring ---
    def _apply(
        self,
        amount: int,
        reason: ScoreReason,
        now: Millis,
        source_id: str | None = None,
    ) -> None:
        old = self.team.score
        _ = self.ledger.apply(
            self.team.id,
            amount,
            reason,
            now,
            source_id,
            device_id=self.device_id,
        )
        self._handle_events(
            [
                ScoreChanged(
                    team_id=self.team.id,
                    at_ms=now,
                    old_score=old,
                    new_score=self.team.score,
                    reason=reason,
                ),
            ],
        )

    def _on_ledger_change(self, team_id: str, new_score: int) -> None:
        if team_id != self.team.id:
            return
        self.team.score = new_score
        if self.on_score_change:
            self.on_score_change(new_score)
        if self.channel is not None:
            self.channel.publish(
                self.team.id,
                ScoreBroadcast(
                    game_id=self.game.game_id,
                    team_id=self.team.id,
                    device_id=self.device_id,
                    score=new_score,
                    revision=self.ledger.state(team_id).revision,
                ),
            )

    # --- Event dispatch ---
    def _handle_events(self, events: list[EngineEvent]) -> None:
        for event in events:
            self._handle_event(event)

    def _handle_event(self, event: EngineEvent) -> None:
        match event:
            case ZonePenaltyApplied():
                zone = self.danger.current_zone
                label = zone.repr if zone else f"Zone[{event.zone_id}]"
                self.log_info(
                    f"PENALTY {label} -{event.amount} pts (total {event.total_deducted})",
                )
                self._apply(-event.amount, "zone_penalty", event.at_ms, event.zone_id)
            case ZoneEntered():
                zone = self.danger.current_zone
                label = zone.repr if zone else f"Zone[{event.zone_id}]"
                self.log_info(f"Entered {label}")
            case GracePeriodEnded():
                self.log_info(f"GRACE over in Zone[{event.zone_id}]")
            case ZoneExited():
                self.log_info(
                    f"Left Zone[{event.zone_id}] after {event.elapsed_seconds}s, "
                    f"deducted {event.total_deducted}",
                )
            case ScoreChanged():
                sign = "+" if event.gain >= 0 else "-"
                self.log_info(
                    f"Score {event.old_score} -> {event.new_score} "
                    f"({sign}{abs(event.gain)} pts, {event.reason})",
                )
            case TaskDiscovered():
                self.log_info(
                    f"Discovered Task[{event.task_id}] at {format_distance(event.distance_meters)}",
                )
            case GateReadinessChanged():
                state = "ready" if event.ready else "waiting"
                self.log_info(
                    f"Task[{event.task_id}] Gate {event.current_count}/{event.required_count} {state}",
                )
            case ImpossibleTravelDetected():
                self.log_warning(
                    f"!!! Impossible travel: {event.distance_meters:.0f} m in "
                    f"{event.elapsed_ms / 1000:.1f}s ({event.speed_mps:.1f} m/s)",
                )
            case TaskCompleted():
                self.log_info(f"Completed Task[{event.task_id}] +{event.reward_points} pts")
            case ActivatableTasksChanged():
                self.log_debug(f"Activatable: {list(event.task_ids)}")
            case PositionLost():
                self.log_info("Position unavailable; zone and task state reset.")
            case _:
                self.log_debug(f"{event}")

        if self.on_event_processed:
            self.on_event_processed(self, event)

    # -- Getters for convenience --
    @property
    def activatable_tasks(self) -> list[TaskPoint]:
        return [hit.task for hit in self.proximity.activatable]

    @property
    def nearest_distance(self) -> float | None:
        return self.proximity.nearest_distance

    def zone_warning(self) -> ZoneWarning | None:
        return self.danger.warning(self.scheduler.now_ms())

    def gate_progress(self, task_id: TaskId) -> GateProgress:
        return self.gate.progress(task_id)

    def _tick_time(self, now: Millis | None = None) -> Millis:
        now = self.scheduler.now_ms() if now is None else now
        self.log_context.set_time(now)
        return now

    # -- Logging --
    def _log(self, level: int, msg: str, *args: Any, **kwargs: Any) -> None:
        """Core logging helper; respects session verbosity."""
        if not self.verbose:
            return
        self._logger.log(level, msg, *args, **kwargs)

    def log_debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.DEBUG, msg, *args, **kwargs)

    def log_info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.INFO, msg, *args, **kwargs)

    def log_warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.WARNING, msg, *args, **kwargs)

    def log_error(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.ERROR, msg, *args, **kwargs)
