"""Run report — per-task terminal states and the aggregated outcome.

``TaskExecution`` is the per-task state machine record the executor drives::

    PENDING → DIFFING → DONE                              (no change)
                      → CHANGES_PENDING → APPLYING → DONE
                                                   → PENDING (NotReady, requeued)
            → FAILED | BLOCKED | TIMED_OUT

``RunReport`` aggregates them so a caller can tell "one independent resource
failed" apart from "nothing could be applied".

Example::

    report = executor.run(tasks)
    print(report.summary())
    report.raise_for_status()
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from infraspine.core.errors import InfraError
from infraspine.orchestration.exceptions import RunFailedError
from infraspine.tasks.changeset import ChangeKind, Changeset


class TaskState(str, Enum):
    """Lifecycle state of one task within a run."""

    PENDING = "pending"
    DIFFING = "diffing"
    CHANGES_PENDING = "changes_pending"
    APPLYING = "applying"
    DONE = "done"
    FAILED = "failed"
    BLOCKED = "blocked"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES

    @property
    def is_failure(self) -> bool:
        return self in (TaskState.FAILED, TaskState.BLOCKED, TaskState.TIMED_OUT)


TERMINAL_STATES = frozenset({TaskState.DONE, TaskState.FAILED, TaskState.BLOCKED, TaskState.TIMED_OUT})


class RunStatus(str, Enum):
    """Overall outcome of a run."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class TaskExecution:
    """State machine record for one task."""

    name: str
    kind: str
    wave: int
    state: TaskState = TaskState.PENDING
    history: list[TaskState] = field(default_factory=lambda: [TaskState.PENDING])
    changeset: Changeset | None = None
    attempts: int = 0
    error: Exception | None = None
    blocked_by: str | None = None
    outputs: dict[str, Any] = field(default_factory=dict)
    started_at: datetime | None = None
    completed_at: datetime | None = None

    def transition(self, state: TaskState) -> None:
        self.state = state
        self.history.append(state)
        if self.started_at is None and state is not TaskState.PENDING:
            self.started_at = datetime.now(UTC)
        if state.is_terminal:
            self.completed_at = datetime.now(UTC)

    def finish(self, outputs: dict[str, Any]) -> None:
        self.outputs = dict(outputs)
        self.transition(TaskState.DONE)

    def fail(self, error: Exception) -> None:
        self.error = error
        self.transition(TaskState.FAILED)

    def block(self, dependency: str) -> None:
        self.blocked_by = dependency
        self.transition(TaskState.BLOCKED)

    def time_out(self, error: Exception) -> None:
        self.error = error
        self.transition(TaskState.TIMED_OUT)

    @property
    def changed(self) -> bool:
        return self.state is TaskState.DONE and self.changeset is not None and self.changeset.has_changes

    @property
    def duration_seconds(self) -> float | None:
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "name": self.name,
            "kind": self.kind,
            "wave": self.wave,
            "state": self.state.value,
            "attempts": self.attempts,
        }
        if self.changeset is not None:
            result["changeset"] = self.changeset.to_dict()
        if self.blocked_by is not None:
            result["blocked_by"] = self.blocked_by
        if self.error is not None:
            if isinstance(self.error, InfraError):
                result["error"] = self.error.to_dict()
            else:
                result["error"] = {"error_type": type(self.error).__name__, "message": str(self.error)}
        return result


@dataclass
class RunReport:
    """Aggregated result of one run."""

    run_id: str
    target: str
    waves: list[list[str]]
    tasks: dict[str, TaskExecution]
    started_at: datetime
    completed_at: datetime | None = None
    artifacts: list[str] = field(default_factory=list)

    @property
    def status(self) -> RunStatus:
        if any(record.state.is_failure for record in self.tasks.values()):
            return RunStatus.FAILED
        return RunStatus.SUCCEEDED

    @property
    def succeeded(self) -> bool:
        return self.status is RunStatus.SUCCEEDED

    def _in_state(self, state: TaskState) -> list[str]:
        return sorted(name for name, record in self.tasks.items() if record.state is state)

    @property
    def done_tasks(self) -> list[str]:
        return self._in_state(TaskState.DONE)

    @property
    def failed_tasks(self) -> list[str]:
        return self._in_state(TaskState.FAILED)

    @property
    def blocked_tasks(self) -> list[str]:
        return self._in_state(TaskState.BLOCKED)

    @property
    def timed_out_tasks(self) -> list[str]:
        return self._in_state(TaskState.TIMED_OUT)

    def state_of(self, name: str) -> TaskState:
        return self.tasks[name].state

    def change_counts(self) -> dict[str, int]:
        """Number of tasks per change kind, for tasks that got as far as diffing."""
        counts = {kind.value: 0 for kind in ChangeKind}
        for record in self.tasks.values():
            if record.changeset is not None:
                counts[record.changeset.kind.value] += 1
        return counts

    @property
    def duration_seconds(self) -> float | None:
        if self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def raise_for_status(self) -> None:
        """Raise RunFailedError if any task failed, was blocked or timed out."""
        if self.succeeded:
            return
        failed = sorted(name for name, record in self.tasks.items() if record.state.is_failure)
        raise RunFailedError(
            f"Run {self.run_id} failed: "
            f"{len(self.failed_tasks)} failed, {len(self.blocked_tasks)} blocked, "
            f"{len(self.timed_out_tasks)} timed out",
            failed=failed,
        )

    def summary(self) -> str:
        lines = [
            f"Run {self.run_id} ({self.target}): {self.status.value}",
            f"  waves: {len(self.waves)}  tasks: {len(self.tasks)}",
        ]
        counts = self.change_counts()
        lines.append("  changes: " + ", ".join(f"{kind}={counts[kind]}" for kind in sorted(counts)))
        for name in sorted(self.tasks):
            record = self.tasks[name]
            line = f"  [{record.state.value}] {record.kind}/{name}"
            if record.blocked_by:
                line += f" (blocked by {record.blocked_by})"
            elif record.error is not None:
                line += f": {record.error}"
            lines.append(line)
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "target": self.target,
            "status": self.status.value,
            "waves": self.waves,
            "changes": self.change_counts(),
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "artifacts": self.artifacts,
            "tasks": {name: self.tasks[name].to_dict() for name in sorted(self.tasks)},
        }
