"""Dry-Run target — report what would change without mutating anything.

WHY
───
Before applying against a live account, operators need to see which
resources would be created or modified and which fields would change. The
dry-run target runs the same graph, the same discovery and the same diffing
as a live run, but ``apply`` only records the changeset.

ARCHITECTURE
────────────
::

    DryRunTarget(provider=None)
    │
    ├── resolve()      ── known output, else placeholder "<task.attribute>"
    ├── apply()        ── record PlannedChange, return synthesized outputs
    │
    ▼
    render_plan() → str
      Will create resources:
        VPC/network
          cidr_block  10.0.0.0/16

      Will modify resources:
        Subnet/subnet-a
          cidr_block  10.0.1.0/24 -> 10.0.2.0/24

Without a provider every resource is treated as absent, so SYNC tasks plan a
create and MUST_EXIST tasks fail their lifecycle check.
"""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from infraspine.core.logging import get_logger
from infraspine.core.settings import TargetKind
from infraspine.providers.base import CloudProvider
from infraspine.tasks.changeset import ChangeKind, Changeset
from infraspine.tasks.task import BootstrapData, Reference, Task
from infraspine.targets.base import Target

if TYPE_CHECKING:
    from infraspine.orchestration.context import RunContext

logger = get_logger(__name__)


def placeholder(reference: Reference) -> str:
    """Synthesized value for an output that only exists after a real apply."""
    return f"<{reference.task}.{reference.attribute}>"


@dataclass(frozen=True)
class PlannedChange:
    """A change the dry run would have applied."""

    task: str
    kind: str
    changeset: Changeset
    desired: dict[str, Any]


def _format_value(value: Any) -> str:
    if isinstance(value, BootstrapData):
        return f"<{len(value.data)} bytes>"
    if isinstance(value, str):
        return value
    return json.dumps(value, sort_keys=True, default=str)


class DryRunTarget(Target):
    """Plan-only target; never mutates the provider."""

    kind = TargetKind.DRY_RUN
    discovers = True

    def __init__(self, provider: CloudProvider | None = None):
        self.provider = provider
        self._lock = threading.Lock()
        self._planned: dict[str, PlannedChange] = {}

    def begin(self, context: RunContext) -> None:
        with self._lock:
            self._planned.clear()

    def resolve(self, requester: Task, reference: Reference, context: RunContext) -> Any:
        context.require_edge(requester, reference)
        outputs = context.outputs_of(reference.task) or {}
        if reference.attribute in outputs:
            return outputs[reference.attribute]
        return placeholder(reference)

    def apply(
        self,
        task: Task,
        changeset: Changeset,
        actual: dict[str, Any] | None,
        desired: dict[str, Any],
        context: RunContext,
    ) -> dict[str, Any]:
        with self._lock:
            self._planned[task.name] = PlannedChange(
                task=task.name,
                kind=task.kind,
                changeset=changeset,
                desired=desired,
            )

        logger.debug("dryrun.planned", task=task.name, change=changeset.kind.value)
        return {**(actual or {}), **desired}

    @property
    def planned(self) -> list[PlannedChange]:
        with self._lock:
            return [self._planned[name] for name in sorted(self._planned)]

    def render_plan(self) -> str:
        """Human-readable plan, sorted by kind and name."""
        planned = sorted(self.planned, key=lambda p: (p.kind, p.task))
        creates = [p for p in planned if p.changeset.kind is ChangeKind.CREATE]
        updates = [p for p in planned if p.changeset.kind is ChangeKind.UPDATE]

        if not creates and not updates:
            return "No changes need to be applied\n"

        lines: list[str] = []
        if creates:
            lines.append("Will create resources:")
            for change in creates:
                lines.append(f"  {change.kind}/{change.task}")
                width = max((len(key) for key in change.desired), default=0)
                for key in sorted(change.desired):
                    lines.append(f"    {key.ljust(width)}  {_format_value(change.desired[key])}")
            lines.append("")

        if updates:
            lines.append("Will modify resources:")
            for change in updates:
                lines.append(f"  {change.kind}/{change.task}")
                width = max((len(key) for key in change.changeset.changes), default=0)
                for key in change.changeset.changed_fields():
                    field_change = change.changeset.changes[key]
                    lines.append(
                        f"    {key.ljust(width)}  "
                        f"{_format_value(field_change.actual)} -> {_format_value(field_change.desired)}"
                    )
            lines.append("")

        return "\n".join(lines)

    def finish(self, context: RunContext) -> list[Path]:
        logger.info(
            "dryrun.plan",
            creates=sum(1 for p in self.planned if p.changeset.kind is ChangeKind.CREATE),
            updates=sum(1 for p in self.planned if p.changeset.kind is ChangeKind.UPDATE),
        )
        return []
