"""Task model: desired-state units, references and changesets."""

from infraspine.tasks.changeset import ChangeKind, Changeset, FieldChange, classify, compute_changes
from infraspine.tasks.task import (
    BootstrapData,
    Lifecycle,
    Phase,
    Reference,
    ResourceTask,
    Task,
    pascal_case,
    ref,
)

__all__ = [
    "BootstrapData",
    "ChangeKind",
    "Changeset",
    "FieldChange",
    "Lifecycle",
    "Phase",
    "Reference",
    "ResourceTask",
    "Task",
    "classify",
    "compute_changes",
    "pascal_case",
    "ref",
]
