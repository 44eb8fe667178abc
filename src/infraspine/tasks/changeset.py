"""Changeset — classify desired vs actual state.

Only keys present in the desired payload are compared; attributes the
provider adds on its own (ids, ARNs, timestamps) never show up as drift.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from infraspine.tasks.task import Lifecycle


class ChangeKind(str, Enum):
    """What applying a task would do."""

    NO_CHANGE = "no_change"
    CREATE = "create"
    UPDATE = "update"
    FORBIDDEN = "forbidden"


@dataclass(frozen=True)
class FieldChange:
    """A single differing field."""

    field: str
    actual: Any
    desired: Any


@dataclass(frozen=True)
class Changeset:
    """
    Result of diffing one task.

    Attributes:
        kind: Classification of the change
        changes: Differing fields, keyed by field name
        reason: Why the change is forbidden (FORBIDDEN only)
    """

    kind: ChangeKind
    changes: dict[str, FieldChange] = field(default_factory=dict)
    reason: str | None = None

    @property
    def has_changes(self) -> bool:
        return self.kind in (ChangeKind.CREATE, ChangeKind.UPDATE)

    def changed_fields(self) -> list[str]:
        return sorted(self.changes)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"kind": self.kind.value, "fields": self.changed_fields()}
        if self.reason:
            result["reason"] = self.reason
        return result


def _normalize(value: Any) -> Any:
    # Local import: task.py imports this module.
    from infraspine.tasks.task import BootstrapData

    if isinstance(value, BootstrapData):
        return value.data
    if isinstance(value, dict):
        return {k: _normalize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize(v) for v in value]
    return value


def _equal(desired: Any, actual: Any) -> bool:
    desired = _normalize(desired)
    actual = _normalize(actual)
    if isinstance(desired, bytes) and isinstance(actual, str):
        return desired in (actual.encode("utf-8"), _b64decode(actual))
    return desired == actual


def _b64decode(value: str) -> bytes | None:
    try:
        return base64.b64decode(value, validate=True)
    except ValueError:
        return None


def compute_changes(desired: dict[str, Any], actual: dict[str, Any]) -> dict[str, FieldChange]:
    """Return the fields of ``desired`` whose value differs in ``actual``."""
    changes: dict[str, FieldChange] = {}
    for key in sorted(desired):
        actual_value = actual.get(key)
        if not _equal(desired[key], actual_value):
            changes[key] = FieldChange(field=key, actual=actual_value, desired=desired[key])
    return changes


def classify(
    lifecycle: Lifecycle,
    desired: dict[str, Any],
    actual: dict[str, Any] | None,
) -> Changeset:
    """
    Build the changeset for a task.

    Absent state is a CREATE unless the lifecycle forbids creation; drift is
    an UPDATE unless the lifecycle only verifies.
    """
    if actual is None:
        if lifecycle.allows_create:
            return Changeset(ChangeKind.CREATE)
        return Changeset(
            ChangeKind.FORBIDDEN,
            reason=f"resource does not exist and lifecycle {lifecycle.value} forbids creating it",
        )

    changes = compute_changes(desired, actual)
    if not changes:
        return Changeset(ChangeKind.NO_CHANGE)
    if not lifecycle.allows_update:
        return Changeset(
            ChangeKind.FORBIDDEN,
            changes=changes,
            reason=f"resource differs in {', '.join(sorted(changes))} and lifecycle {lifecycle.value} forbids changes",
        )
    return Changeset(ChangeKind.UPDATE, changes=changes)
