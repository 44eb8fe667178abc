"""Direct target — apply changes against the provider API."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from infraspine.core.logging import get_logger
from infraspine.core.settings import TargetKind
from infraspine.providers.base import CloudProvider
from infraspine.tasks.changeset import ChangeKind, Changeset
from infraspine.tasks.task import Lifecycle, Reference, Task
from infraspine.targets.base import Target

if TYPE_CHECKING:
    from infraspine.orchestration.context import RunContext

logger = get_logger(__name__)


class DirectTarget(Target):
    """
    Live-apply target.

    Creates and updates resources through the provider, and publishes the
    provider's returned attributes as the task's outputs so dependents see
    real ids. Drift on a MUST_EXIST_AND_WARN_ON_DRIFT task is logged as a
    warning and then applied.
    """

    kind = TargetKind.DIRECT
    discovers = True

    def __init__(self, provider: CloudProvider):
        self.provider = provider

    def resolve(self, requester: Task, reference: Reference, context: RunContext) -> Any:
        return context.output(requester, reference)

    def apply(
        self,
        task: Task,
        changeset: Changeset,
        actual: dict[str, Any] | None,
        desired: dict[str, Any],
        context: RunContext,
    ) -> dict[str, Any]:
        if changeset.kind is ChangeKind.CREATE:
            logger.info("direct.create", task=task.name, kind=task.kind)
            return task.create(self.provider, desired)

        if changeset.kind is ChangeKind.UPDATE and actual is not None:
            if task.lifecycle is Lifecycle.MUST_EXIST_AND_WARN_ON_DRIFT:
                logger.warning(
                    "direct.drift_detected",
                    task=task.name,
                    kind=task.kind,
                    fields=changeset.changed_fields(),
                )
            else:
                logger.info("direct.update", task=task.name, kind=task.kind, fields=changeset.changed_fields())
            return task.update(self.provider, actual, desired, changeset)

        raise ValueError(f"DirectTarget cannot apply {changeset.kind.value} for task {task.name}")
