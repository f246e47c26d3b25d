from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from geohunt.core.state import TaskAttempt

if TYPE_CHECKING:
    from collections.abc import Iterator

    from geohunt.core.models import Coordinate
    from geohunt.core.types import AttemptStatus, TaskId, TeamId
    from geohunt.engine.scheduler import Clock


@dataclass
class TaskAttemptLog:
    """
    Append-only audit log of task answers.

    Records are stamped with the server clock at append time. "First to
    complete" is decided from those stamps, never from the order in which a
    client happened to receive broadcasts.
    """

    clock: Clock
    _records: list[TaskAttempt] = field(default_factory=list)
    _by_task: dict[TaskId, list[TaskAttempt]] = field(
        default_factory=lambda: defaultdict(list),
    )

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[TaskAttempt]:
        return iter(tuple(self._records))

    def record(
        self,
        team_id: TeamId,
        task_id: TaskId,
        position: Coordinate | None,
        status: AttemptStatus,
        stamped_at: int | None = None,
    ) -> TaskAttempt:
        attempt = TaskAttempt(
            sequence=len(self._records),
            team_id=team_id,
            task_id=task_id,
            position=position,
            status=status,
            stamped_at=self.clock.now_ms() if stamped_at is None else stamped_at,
        )
        self._records.append(attempt)
        self._by_task[task_id].append(attempt)
        return attempt

    def attempts_for(self, team_id: TeamId) -> list[TaskAttempt]:
        return [a for a in self._records if a.team_id == team_id]

    def attempts_on(self, task_id: TaskId) -> list[TaskAttempt]:
        return list(self._by_task.get(task_id, ()))

    def completed_by(self, task_id: TaskId) -> list[TeamId]:
        """Teams with a correct answer on `task_id`, earliest server stamp first."""
        seen: set[TeamId] = set()
        ordered: list[TeamId] = []
        for attempt in self._correct_in_order(task_id):
            if attempt.team_id not in seen:
                seen.add(attempt.team_id)
                ordered.append(attempt.team_id)
        return ordered

    def first_to_complete(self, task_id: TaskId) -> TaskAttempt | None:
        correct = self._correct_in_order(task_id)
        return correct[0] if correct else None

    def has_answered(self, team_id: TeamId, task_id: TaskId) -> bool:
        return any(a.team_id == team_id for a in self._by_task.get(task_id, ()))

    def has_correct(self, team_id: TeamId, task_id: TaskId) -> bool:
        return any(
            a.team_id == team_id and a.status == "correct"
            for a in self._by_task.get(task_id, ())
        )

    def _correct_in_order(self, task_id: TaskId) -> list[TaskAttempt]:
        return sorted(
            (a for a in self._by_task.get(task_id, ()) if a.status == "correct"),
            key=lambda a: (a.stamped_at, a.sequence),
        )
