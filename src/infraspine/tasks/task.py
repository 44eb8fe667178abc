"""Task — desired-state unit for one infrastructure object.

The engine only reads a task's identity, lifecycle and declared references.
Everything else (finding actual state, resolving the payload, applying,
rendering) is delegated back to the task, which in turn calls into the
provider or the active target.

ARCHITECTURE
────────────
::

    Task (ABC)
      ├── name / kind / lifecycle / phase
      ├── references()           ── explicit edge declaration
      ├── find(provider)         ── discover actual state
      ├── desired(resolve)       ── payload with references resolved
      ├── create / update        ── live apply via the provider
      └── render_terraform / render_cloudformation

    ResourceTask                 ── generic dict-backed implementation

Example::

    from infraspine.tasks import ResourceTask, ref

    vpc = ResourceTask(
        name="network",
        kind="VPC",
        terraform_type="aws_vpc",
        cloudformation_type="AWS::EC2::VPC",
        properties={"cidr_block": "10.0.0.0/16"},
    )
    subnet = ResourceTask(
        name="subnet-a",
        kind="Subnet",
        terraform_type="aws_subnet",
        cloudformation_type="AWS::EC2::Subnet",
        properties={"vpc_id": ref("network"), "cidr_block": "10.0.1.0/24"},
    )
"""

from __future__ import annotations

import base64
import re
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from infraspine.tasks.changeset import Changeset

if TYPE_CHECKING:
    from infraspine.providers.base import CloudProvider
    from infraspine.targets.cloudformation import CloudFormationTarget
    from infraspine.targets.terraform import TerraformTarget


class Lifecycle(str, Enum):
    """How the engine treats absent, existing and drifted actual state."""

    SYNC = "Sync"
    MUST_EXIST = "MustExist"
    MUST_EXIST_AND_WARN_ON_DRIFT = "MustExistAndWarnOnDrift"
    MUST_EXIST_AND_VERIFY = "MustExistAndVerify"

    @property
    def allows_create(self) -> bool:
        return self is Lifecycle.SYNC

    @property
    def allows_update(self) -> bool:
        return self is not Lifecycle.MUST_EXIST_AND_VERIFY


class Phase(str, Enum):
    """Provisioning phases, in execution order."""

    NETWORK = "network"
    SECURITY = "security"
    CLUSTER = "cluster"

    @property
    def order(self) -> int:
        return list(Phase).index(self)


@dataclass(frozen=True)
class Reference:
    """
    Link from one task to another.

    Attributes:
        task: Name of the referenced task
        attribute: Output attribute needed from the referenced task.
            ``None`` means an ordering-only (hard) dependency.
    """

    task: str
    attribute: str | None = None

    @property
    def is_value(self) -> bool:
        return self.attribute is not None

    def __str__(self) -> str:
        if self.attribute is None:
            return self.task
        return f"{self.task}.{self.attribute}"


def ref(task: str, attribute: str = "id") -> Reference:
    """Shorthand for a deferred-value reference."""
    return Reference(task=task, attribute=attribute)


@dataclass(frozen=True)
class BootstrapData:
    """Binary bootstrap/user-data payload (cloud-init, startup scripts)."""

    data: bytes

    @classmethod
    def from_text(cls, text: str) -> BootstrapData:
        return cls(text.encode("utf-8"))

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def __repr__(self) -> str:
        return f"BootstrapData({len(self.data)} bytes)"


class Task(ABC):
    """
    Contract between a desired-state unit and the engine.

    Subclasses must provide ``name``, ``kind``, ``lifecycle`` and ``phase``
    attributes plus the abstract operations below. ``outputs`` is filled in by
    the executor once the task completes.
    """

    name: str
    kind: str
    lifecycle: Lifecycle
    phase: Phase | None
    terraform_type: str | None
    cloudformation_type: str | None
    outputs: dict[str, Any]

    @abstractmethod
    def references(self) -> list[Reference]:
        """Every task this one depends on, value and ordering-only alike."""

    @property
    def cache_key(self) -> tuple[str, str]:
        """Identity of the underlying resource for found-state lookups."""
        return (self.kind, self.name)

    @abstractmethod
    def find(self, provider: CloudProvider) -> dict[str, Any] | None:
        """Return the actual state of the resource, or None if absent."""

    @abstractmethod
    def desired(self, resolve: Callable[[Reference], Any]) -> dict[str, Any]:
        """Return the desired payload with every reference resolved."""

    @abstractmethod
    def create(self, provider: CloudProvider, desired: dict[str, Any]) -> dict[str, Any]:
        """Create the resource and return its output attributes."""

    @abstractmethod
    def update(
        self,
        provider: CloudProvider,
        actual: dict[str, Any],
        desired: dict[str, Any],
        changeset: Changeset,
    ) -> dict[str, Any]:
        """Update the resource and return its output attributes."""

    @abstractmethod
    def render_terraform(self, target: TerraformTarget, desired: dict[str, Any]) -> None:
        """Emit this task's resource block into the Terraform document."""

    @abstractmethod
    def render_cloudformation(self, target: CloudFormationTarget, desired: dict[str, Any]) -> None:
        """Emit this task's resource into the CloudFormation template."""

    def unmanaged_outputs(self) -> dict[str, Any]:
        """Known outputs of a resource that renderers do not manage (shared/existing)."""
        return {}


_SNAKE_KEY = re.compile(r"^[a-z][a-z0-9]*(_[a-z0-9]+)*$")


def pascal_case(key: str) -> str:
    """``cidr_block`` -> ``CidrBlock``; keys that are not snake_case pass through."""
    if not _SNAKE_KEY.match(key):
        return key
    return "".join(part[:1].upper() + part[1:] for part in key.split("_"))


def _substitute(value: Any, resolve: Callable[[Reference], Any]) -> Any:
    if isinstance(value, Reference):
        return resolve(value)
    if isinstance(value, dict):
        return {k: _substitute(v, resolve) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_substitute(v, resolve) for v in value]
    return value


def _collect_references(value: Any, found: list[Reference]) -> None:
    if isinstance(value, Reference):
        found.append(value)
    elif isinstance(value, dict):
        for key in sorted(value):
            _collect_references(value[key], found)
    elif isinstance(value, (list, tuple)):
        for item in value:
            _collect_references(item, found)


def _pascalize(value: Any) -> Any:
    if isinstance(value, dict):
        return {pascal_case(k): _pascalize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_pascalize(v) for v in value]
    return value


@dataclass
class ResourceTask(Task):
    """
    Generic dict-backed task.

    ``properties`` holds the desired payload in snake_case; values may be
    ``Reference`` objects (resolved per target) or ``BootstrapData``.
    ``depends_on`` lists ordering-only dependencies.

    Override ``terraform_properties`` / ``cloudformation_properties`` when a
    resource needs format-specific shaping.
    """

    name: str
    kind: str
    properties: dict[str, Any] = field(default_factory=dict)
    lifecycle: Lifecycle = Lifecycle.SYNC
    phase: Phase | None = None
    depends_on: list[str] = field(default_factory=list)
    terraform_type: str | None = None
    cloudformation_type: str | None = None
    outputs: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    def references(self) -> list[Reference]:
        found: list[Reference] = []
        _collect_references(self.properties, found)
        found.extend(Reference(task=name) for name in self.depends_on)

        unique: list[Reference] = []
        for reference in found:
            if reference not in unique:
                unique.append(reference)
        return unique

    def find(self, provider: CloudProvider) -> dict[str, Any] | None:
        return provider.find(self.kind, self.name)

    def desired(self, resolve: Callable[[Reference], Any]) -> dict[str, Any]:
        return _substitute(self.properties, resolve)

    def create(self, provider: CloudProvider, desired: dict[str, Any]) -> dict[str, Any]:
        return provider.create(self.kind, self.name, desired)

    def update(
        self,
        provider: CloudProvider,
        actual: dict[str, Any],
        desired: dict[str, Any],
        changeset: Changeset,
    ) -> dict[str, Any]:
        changes = {name: change.desired for name, change in changeset.changes.items()}
        return provider.update(self.kind, self.name, desired, changes)

    def terraform_properties(self, desired: dict[str, Any]) -> dict[str, Any]:
        return desired

    def cloudformation_properties(self, desired: dict[str, Any]) -> dict[str, Any]:
        return _pascalize(desired)

    def render_terraform(self, target: TerraformTarget, desired: dict[str, Any]) -> None:
        target.add_resource(self, self.terraform_type, self.terraform_properties(desired))

    def render_cloudformation(self, target: CloudFormationTarget, desired: dict[str, Any]) -> None:
        target.add_resource(self, self.cloudformation_type, self.cloudformation_properties(desired))

    def unmanaged_outputs(self) -> dict[str, Any]:
        return {k: v for k, v in self.properties.items() if not isinstance(v, Reference)}
