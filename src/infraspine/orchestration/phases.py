"""Phase selection and lifecycle overrides applied before a run.

A cluster is typically brought up in phases (network, then security, then
cluster). Running a later phase must not touch resources owned by an earlier
one, but it still needs their outputs, so earlier-phase tasks stay in the run
as verify-only. Later-phase tasks are left out entirely.

Both adjustments produce shallow copies; the caller's task objects are never
mutated.
"""

from __future__ import annotations

import copy

from infraspine.core.logging import get_logger
from infraspine.core.settings import Settings
from infraspine.tasks.task import Lifecycle, Phase, Task

logger = get_logger(__name__)


def _with_lifecycle(task: Task, lifecycle: Lifecycle) -> Task:
    if task.lifecycle is lifecycle:
        return task
    clone = copy.copy(task)
    clone.lifecycle = lifecycle
    return clone


def apply_lifecycle_overrides(tasks: list[Task], overrides: dict[str, Lifecycle]) -> list[Task]:
    """Replace the lifecycle of every task whose kind has an override."""
    if not overrides:
        return list(tasks)
    return [_with_lifecycle(task, overrides[task.kind]) if task.kind in overrides else task for task in tasks]


def select_phase(tasks: list[Task], phase: Phase | None) -> list[Task]:
    """
    Restrict a run to ``phase``.

    Tasks of earlier phases are kept with ``MUST_EXIST_AND_VERIFY``; tasks of
    later phases are dropped; tasks without a phase are kept unchanged.
    """
    if phase is None:
        return list(tasks)

    selected: list[Task] = []
    for task in tasks:
        if task.phase is None or task.phase is phase:
            selected.append(task)
        elif task.phase.order < phase.order:
            selected.append(_with_lifecycle(task, Lifecycle.MUST_EXIST_AND_VERIFY))
    return selected


def prepare_tasks(tasks: list[Task], settings: Settings) -> list[Task]:
    """Apply lifecycle overrides, then phase selection."""
    prepared = apply_lifecycle_overrides(tasks, settings.lifecycle_overrides)
    prepared = select_phase(prepared, settings.phase)
    if len(prepared) != len(tasks) or settings.lifecycle_overrides:
        logger.debug(
            "phases.prepared",
            phase=settings.phase.value if settings.phase else None,
            kept=len(prepared),
            dropped=len(tasks) - len(prepared),
            overrides=sorted(settings.lifecycle_overrides),
        )
    return prepared
