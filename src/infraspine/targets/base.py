"""Target — the polymorphic sink a run is bound to.

The executor drives every task through the same steps regardless of target;
only the target decides what "resolve a reference", "classify a change" and
"apply" mean:

==============  ===================  ===========================  ====================
Target          references           apply                        discovers state
==============  ===================  ===========================  ====================
direct          real output values   provider create/update       yes
dryrun          values/placeholders  record the changeset         yes (if provider)
terraform       ``${type.name.attr}``  add resource block         no
cloudformation  ``Ref`` / ``GetAtt``   add template resource      no
==============  ===================  ===========================  ====================

A target is chosen once, at construction, for the whole run.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Any, ClassVar

from infraspine.core.logging import get_logger
from infraspine.core.settings import TargetKind
from infraspine.orchestration.exceptions import RenderError
from infraspine.tasks.changeset import ChangeKind, Changeset, classify
from infraspine.tasks.task import Lifecycle, Reference, Task

if TYPE_CHECKING:
    from infraspine.orchestration.context import RunContext
    from infraspine.providers.base import CloudProvider

logger = get_logger(__name__)


class Target(ABC):
    """Abstract execution/rendering backend."""

    kind: ClassVar[TargetKind]
    discovers: ClassVar[bool] = False
    provider: CloudProvider | None = None

    @abstractmethod
    def resolve(self, requester: Task, reference: Reference, context: RunContext) -> Any:
        """Value (or symbolic expression) that ``requester`` sees for ``reference``."""

    def plan_change(
        self,
        task: Task,
        desired: dict[str, Any],
        actual: dict[str, Any] | None,
    ) -> Changeset:
        """Classify the change the task needs."""
        return classify(task.lifecycle, desired, actual)

    def unchanged_outputs(self, task: Task, actual: dict[str, Any] | None) -> dict[str, Any]:
        """Outputs of a task that needs no change."""
        return dict(actual or {})

    @abstractmethod
    def apply(
        self,
        task: Task,
        changeset: Changeset,
        actual: dict[str, Any] | None,
        desired: dict[str, Any],
        context: RunContext,
    ) -> dict[str, Any]:
        """Carry out ``changeset`` and return the task's outputs."""

    def begin(self, context: RunContext) -> None:
        """Reset per-run state before the first wave; a target may serve many runs."""

    def files(self) -> dict[str, bytes]:
        """Rendered artifacts keyed by path relative to the output directory."""
        return {}

    def finish(self, context: RunContext) -> list[Path]:
        """Flush artifacts at the end of a successful run; returns written paths."""
        return []


class RenderingTarget(Target):
    """
    Shared behaviour of the static document renderers.

    Renderers never consult the provider. Tasks with a SYNC lifecycle are
    always rendered as new resources; tasks that must already exist are not
    rendered and their literal properties stand in for their outputs.
    """

    discovers = False

    def __init__(self, out_dir: Path | str | None = None):
        self.out_dir = Path(out_dir) if out_dir is not None else None

    def plan_change(
        self,
        task: Task,
        desired: dict[str, Any],
        actual: dict[str, Any] | None,
    ) -> Changeset:
        if task.lifecycle is Lifecycle.SYNC:
            return Changeset(ChangeKind.CREATE)
        return Changeset(ChangeKind.NO_CHANGE, reason="not managed by the rendered document")

    def unchanged_outputs(self, task: Task, actual: dict[str, Any] | None) -> dict[str, Any]:
        return task.unmanaged_outputs()

    def unmanaged_value(self, requester: Task, reference: Reference, context: RunContext) -> Any:
        """Literal output of a referenced task the document does not manage."""
        outputs = context.outputs_of(reference.task) or {}
        if reference.attribute not in outputs:
            raise RenderError(
                f"Task '{requester.name}' references {reference}, but '{reference.task}' is not managed "
                f"by the rendered document and does not declare '{reference.attribute}'",
                task_name=requester.name,
            )
        return outputs[reference.attribute]

    def is_managed(self, task: Task) -> bool:
        return task.lifecycle is Lifecycle.SYNC

    def finish(self, context: RunContext) -> list[Path]:
        if self.out_dir is None:
            return []

        written: list[Path] = []
        for relative, content in sorted(self.files().items()):
            path = self.out_dir / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)
            written.append(path)

        logger.info(
            "target.render.written",
            target=self.kind.value,
            out_dir=str(self.out_dir),
            files=[str(p.relative_to(self.out_dir)) for p in written],
        )
        return written
