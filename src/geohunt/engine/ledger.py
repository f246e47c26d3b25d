"""Score ledger: a pure reducer plus a small holder that fires change callbacks."""

from __future__ import annotations

import functools
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING

from geohunt.core.state import LedgerState, ScoreDelta

if TYPE_CHECKING:
    from collections.abc import Iterable

    from geohunt.core.types import Millis, ScoreReason, TeamId

ScoreChangeCallback = Callable[[str, int], None]


def clamp_score(value: int) -> int:
    return max(0, int(value))


def apply_delta(state: LedgerState, delta: ScoreDelta) -> LedgerState:
    """(state, delta) -> new state. Scores never drop below zero."""
    if delta.team_id != state.team_id:
        msg = f"Delta for team {delta.team_id} applied to ledger of team {state.team_id}"
        raise ValueError(msg)
    return replace(
        state,
        score=clamp_score(state.score + delta.amount),
        revision=state.revision + 1,
        updated_at=delta.at_ms,
        updated_by=delta.device_id,
    )


def version_of(state: LedgerState) -> tuple[Millis, int, str]:
    return (state.updated_at, state.revision, state.updated_by)


def replay(initial: LedgerState, deltas: Iterable[ScoreDelta]) -> LedgerState:
    return functools.reduce(apply_delta, deltas, initial)


@dataclass
class ScoreLedger:
    """
    Authoritative in-memory scores.

    Deltas are applied strictly in the order received. After every mutation
    `on_score_change(team_id, new_score)` fires synchronously so the caller
    can persist or broadcast; the ledger itself does no I/O.
    """

    states: dict[TeamId, LedgerState] = field(default_factory=dict)
    journal: list[ScoreDelta] = field(default_factory=list)
    on_score_change: ScoreChangeCallback | None = None

    def open_account(self, team_id: TeamId, initial_score: int = 0) -> LedgerState:
        state = self.states.get(team_id)
        if state is None:
            state = LedgerState(team_id=team_id, score=clamp_score(initial_score))
            self.states[team_id] = state
        return state

    def score(self, team_id: TeamId) -> int:
        return self._state(team_id).score

    def state(self, team_id: TeamId) -> LedgerState:
        return self._state(team_id)

    def apply(
        self,
        team_id: TeamId,
        amount: int,
        reason: ScoreReason,
        at_ms: Millis,
        source_id: str | None = None,
        device_id: str = "",
    ) -> LedgerState:
        delta = ScoreDelta(
            team_id=team_id,
            amount=amount,
            reason=reason,
            at_ms=at_ms,
            source_id=source_id,
            device_id=device_id,
        )
        return self.apply_delta(delta)

    def apply_delta(self, delta: ScoreDelta) -> LedgerState:
        new_state = apply_delta(self._state(delta.team_id), delta)
        self.states[delta.team_id] = new_state
        self.journal.append(delta)
        if self.on_score_change:
            self.on_score_change(delta.team_id, new_state.score)
        return new_state

    def adopt(
        self,
        team_id: TeamId,
        score: int,
        stamped_at: Millis,
        revision: int = 0,
        device_id: str = "",
    ) -> bool:
        """
        Take over a score broadcast by another device of the same team.

        Snapshots are ordered by `(stamped_at, revision, device_id)` and only
        one above the local state is adopted, so devices that write at the
        same instant still settle on a single winner. Adoption does not fire
        `on_score_change` so it is never echoed back onto the channel.
        """
        state = self._state(team_id)
        if (stamped_at, revision, device_id) <= version_of(state):
            return False
        self.states[team_id] = replace(
            state,
            score=clamp_score(score),
            revision=revision,
            updated_at=stamped_at,
            updated_by=device_id,
        )
        return True

    def deltas_for(self, team_id: TeamId) -> list[ScoreDelta]:
        return [d for d in self.journal if d.team_id == team_id]

    def _state(self, team_id: TeamId) -> LedgerState:
        if (state := self.states.get(team_id)) is None:
            msg = f"No ledger account for team {team_id}"
            raise ValueError(msg)
        return state
