"""Terraform target — render the run as a single Terraform document.

Nothing is applied. Every managed task contributes one ``resource`` block;
references between tasks become interpolation expressions that Terraform
resolves when the document is applied later.

ARCHITECTURE
────────────
::

    TerraformTarget(out_dir, json_output=False, providers=None)
    │
    ├── resolve()        ── ${aws_vpc.network.id}  (TerraformExpression)
    ├── apply()          ── task.render_terraform(target, desired)
    │                          └── add_resource(task, type, properties)
    ├── render()         ── HCL or JSON text, byte-identical per input
    └── files()          ── kubernetes.tf | kubernetes.tf.json
                            data/<type>_<name>_<property>

Bootstrap payloads are never inlined: each ``BootstrapData`` value is written
to ``data/`` and referenced through ``filebase64("${path.module}/data/...")``.

Example output (HCL)::

    resource "aws_subnet" "subnet-a" {
      cidr_block = "10.0.1.0/24"
      vpc_id     = aws_vpc.network.id
    }
"""

from __future__ import annotations

import json
import math
import re
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from infraspine.core.logging import get_logger
from infraspine.core.settings import TargetKind
from infraspine.orchestration.exceptions import RenderError
from infraspine.tasks.changeset import Changeset
from infraspine.tasks.task import BootstrapData, Reference, Task
from infraspine.targets.base import RenderingTarget

if TYPE_CHECKING:
    from infraspine.orchestration.context import RunContext
    from infraspine.orchestration.resolver import TaskGraph

logger = get_logger(__name__)

REQUIRED_VERSION = ">= 0.15.0"
HCL_FILENAME = "kubernetes.tf"
JSON_FILENAME = "kubernetes.tf.json"

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9_-]")
_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_-]*$")


def terraform_name(name: str) -> str:
    """Resource name usable in a Terraform address (``a.b/c`` -> ``a-b-c``)."""
    safe = _UNSAFE_NAME_CHARS.sub("-", name)
    if not safe or not (safe[0].isalpha() or safe[0] == "_"):
        safe = "_" + safe
    return safe


@dataclass(frozen=True)
class TerraformExpression:
    """A Terraform expression that must not be quoted as a literal string."""

    expr: str

    def __str__(self) -> str:
        return "${" + self.expr + "}"


@dataclass
class _Resource:
    type: str
    name: str
    properties: dict[str, Any]
    depends_on: list[str] = field(default_factory=list)

    @property
    def address(self) -> str:
        return f"{self.type}.{self.name}"


def _escape_literal(value: str) -> str:
    # Terraform interpolates "${" and "%{" in every string, HCL and JSON alike.
    return value.replace("${", "$${").replace("%{", "%%{")


def _check_scalar(value: Any, path: str) -> None:
    if isinstance(value, float) and not math.isfinite(value):
        raise RenderError(f"Cannot render non-finite number at {path}")


class TerraformTarget(RenderingTarget):
    """Static renderer producing ``kubernetes.tf`` (or its JSON variant)."""

    kind = TargetKind.TERRAFORM

    def __init__(
        self,
        out_dir: Path | str | None = None,
        json_output: bool = False,
        providers: dict[str, dict[str, Any]] | None = None,
    ):
        super().__init__(out_dir)
        self.json_output = json_output
        self.providers = dict(providers or {})
        self._lock = threading.Lock()
        self._resources: dict[tuple[str, str], _Resource] = {}
        self._data_files: dict[str, bytes] = {}
        self._graph: TaskGraph | None = None

    # =========================================================================
    # Target interface
    # =========================================================================

    def begin(self, context: RunContext) -> None:
        with self._lock:
            self._resources.clear()
            self._data_files.clear()
            self._graph = context.graph

    def resolve(self, requester: Task, reference: Reference, context: RunContext) -> Any:
        context.require_edge(requester, reference)
        referenced = context.graph.task(reference.task)
        if not self.is_managed(referenced):
            return self.unmanaged_value(requester, reference, context)
        return TerraformExpression(f"{self._address_of(referenced)}.{reference.attribute}")

    def apply(
        self,
        task: Task,
        changeset: Changeset,
        actual: dict[str, Any] | None,
        desired: dict[str, Any],
        context: RunContext,
    ) -> dict[str, Any]:
        self._graph = context.graph
        task.render_terraform(self, desired)
        return {}

    # =========================================================================
    # Document building
    # =========================================================================

    def add_resource(self, task: Task, resource_type: str | None, properties: dict[str, Any]) -> None:
        """Add one ``resource`` block for ``task``."""
        if not resource_type:
            raise RenderError(f"Task '{task.name}' has no Terraform resource type", task_name=task.name)

        name = terraform_name(task.name)
        for key in properties:
            if not _IDENTIFIER.match(key):
                raise RenderError(
                    f"Task '{task.name}': '{key}' is not a valid Terraform attribute name",
                    task_name=task.name,
                )

        data_files: dict[str, bytes] = {}
        try:
            body = {
                key: self._convert(value, f"{resource_type}_{name}_{key}", data_files)
                for key, value in properties.items()
            }
        except RenderError as e:
            raise RenderError(f"Task '{task.name}': {e}", task_name=task.name) from e

        resource = _Resource(
            type=resource_type,
            name=name,
            properties=body,
            depends_on=self._ordering_dependencies(task),
        )

        with self._lock:
            key = (resource_type, name)
            if key in self._resources:
                raise RenderError(
                    f"Task '{task.name}' renders duplicate resource {resource.address}",
                    task_name=task.name,
                )
            self._resources[key] = resource
            self._data_files.update(data_files)

        logger.debug("terraform.resource.added", task=task.name, address=resource.address)

    def _address_of(self, task: Task) -> str:
        if not task.terraform_type:
            raise RenderError(f"Task '{task.name}' has no Terraform resource type", task_name=task.name)
        return f"{task.terraform_type}.{terraform_name(task.name)}"

    def _ordering_dependencies(self, task: Task) -> list[str]:
        if self._graph is None:
            return []
        addresses = set()
        for reference in task.references():
            if reference.is_value:
                continue
            dependency = self._graph.task(reference.task)
            if self.is_managed(dependency):
                addresses.add(self._address_of(dependency))
        return sorted(addresses)

    def _convert(self, value: Any, path: str, data_files: dict[str, bytes]) -> Any:
        """Validate a payload value and move bootstrap data into side files."""
        if isinstance(value, BootstrapData):
            data_files[path] = value.data
            return TerraformExpression(f'filebase64("${{path.module}}/data/{path}")')
        if isinstance(value, (TerraformExpression, str, bool, int)) or value is None:
            return value
        if isinstance(value, float):
            _check_scalar(value, path)
            return value
        if isinstance(value, dict):
            converted = {}
            for key, item in value.items():
                if not isinstance(key, str):
                    raise RenderError(f"Map keys must be strings at {path}, got {type(key).__name__}")
                converted[key] = self._convert(item, f"{path}_{key}", data_files)
            return converted
        if isinstance(value, (list, tuple)):
            return [self._convert(item, f"{path}_{i}", data_files) for i, item in enumerate(value)]
        raise RenderError(f"Cannot render {type(value).__name__} value at {path}")

    # =========================================================================
    # Serialization
    # =========================================================================

    def _sorted_resources(self) -> list[_Resource]:
        with self._lock:
            return [self._resources[key] for key in sorted(self._resources)]

    def render(self) -> str:
        """The document text; identical input always yields identical output."""
        if self.json_output:
            return self._render_json()
        return self._render_hcl()

    def _render_hcl(self) -> str:
        blocks: list[str] = []
        for provider in sorted(self.providers):
            blocks.append(_hcl_block(f'provider "{provider}"', self.providers[provider], indent=0))

        for resource in self._sorted_resources():
            body = dict(resource.properties)
            lines = _hcl_body(body, indent=2)
            if resource.depends_on:
                lines.append("  depends_on = [" + ", ".join(resource.depends_on) + "]")
            blocks.append(_hcl_block_text(f'resource "{resource.type}" "{resource.name}"', lines))

        blocks.append(f'terraform {{\n  required_version = "{REQUIRED_VERSION}"\n}}')
        return "\n\n".join(blocks) + "\n"

    def _render_json(self) -> str:
        document: dict[str, Any] = {}
        if self.providers:
            document["provider"] = {name: _json_value(cfg) for name, cfg in self.providers.items()}

        resources: dict[str, dict[str, Any]] = {}
        for resource in self._sorted_resources():
            body = {key: _json_value(value) for key, value in resource.properties.items()}
            if resource.depends_on:
                body["depends_on"] = list(resource.depends_on)
            resources.setdefault(resource.type, {})[resource.name] = body
        if resources:
            document["resource"] = resources

        document["terraform"] = {"required_version": REQUIRED_VERSION}
        return json.dumps(document, indent=2, sort_keys=True, ensure_ascii=False) + "\n"

    def files(self) -> dict[str, bytes]:
        filename = JSON_FILENAME if self.json_output else HCL_FILENAME
        result = {filename: self.render().encode("utf-8")}
        with self._lock:
            for name in sorted(self._data_files):
                result[f"data/{name}"] = self._data_files[name]
        return result


# =============================================================================
# HCL / JSON value writers
# =============================================================================


def _json_value(value: Any) -> Any:
    if isinstance(value, TerraformExpression):
        return str(value)
    if isinstance(value, str):
        return _escape_literal(value)
    if isinstance(value, dict):
        return {key: _json_value(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_json_value(item) for item in value]
    return value


def _hcl_value(value: Any, indent: int) -> str:
    if isinstance(value, TerraformExpression):
        return value.expr
    if isinstance(value, str):
        return json.dumps(_escape_literal(value), ensure_ascii=False)
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, list):
        if not value:
            return "[]"
        if not any(isinstance(item, (dict, list)) for item in value):
            return "[" + ", ".join(_hcl_value(item, indent) for item in value) + "]"
        pad = " " * (indent + 2)
        items = "".join(f"{pad}{_hcl_value(item, indent + 2)},\n" for item in value)
        return "[\n" + items + " " * indent + "]"
    if isinstance(value, dict):
        if not value:
            return "{}"
        pad = " " * (indent + 2)
        width = max(len(json.dumps(key)) for key in value)
        lines = [
            f"{pad}{json.dumps(key).ljust(width)} = {_hcl_value(value[key], indent + 2)}"
            for key in sorted(value)
        ]
        return "{\n" + "\n".join(lines) + "\n" + " " * indent + "}"
    raise RenderError(f"Cannot render {type(value).__name__} value")


def _hcl_body(attributes: dict[str, Any], indent: int) -> list[str]:
    if not attributes:
        return []
    pad = " " * indent
    width = max(len(key) for key in attributes)
    return [f"{pad}{key.ljust(width)} = {_hcl_value(attributes[key], indent)}" for key in sorted(attributes)]


def _hcl_block_text(header: str, lines: list[str]) -> str:
    if not lines:
        return header + " {\n}"
    return header + " {\n" + "\n".join(lines) + "\n}"


def _hcl_block(header: str, attributes: dict[str, Any], indent: int) -> str:
    return _hcl_block_text(header, _hcl_body(attributes, indent + 2))
