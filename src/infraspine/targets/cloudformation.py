"""CloudFormation target — render the run as one template object graph.

Each managed task becomes an entry in ``Resources`` keyed by its logical id.
References become intrinsic functions that CloudFormation resolves at stack
creation time:

==========================  ======================================
reference                   rendered as
==========================  ======================================
``ref("network")``          ``{"Ref": "AWSEC2VPCnetwork"}``
``ref("network", "arn")``   ``{"Fn::GetAtt": ["AWSEC2VPCnetwork", "Arn"]}``
==========================  ======================================

Bootstrap payloads are embedded as base64 strings. ``extract_user_data``
reverses that for review and comparison: it decodes every ``UserData`` blob
into a YAML document and leaves an ``"extracted"`` marker in its place.
"""

from __future__ import annotations

import base64
import binascii
import json
import math
import re
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

from infraspine.core.logging import get_logger
from infraspine.core.settings import TargetKind
from infraspine.orchestration.exceptions import RenderError
from infraspine.tasks.changeset import Changeset
from infraspine.tasks.task import BootstrapData, Reference, Task, pascal_case
from infraspine.targets.base import RenderingTarget

if TYPE_CHECKING:
    from infraspine.orchestration.context import RunContext
    from infraspine.orchestration.resolver import TaskGraph

logger = get_logger(__name__)

TEMPLATE_FILENAME = "kubernetes.json"
EXTRACTED = "extracted"

_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")


def logical_id(resource_type: str, name: str) -> str:
    """``AWS::EC2::VPC`` + ``my-vpc.example`` -> ``AWSEC2VPCmyvpcexample``."""
    return resource_type.replace("::", "") + _NON_ALNUM.sub("", name)


class CloudFormationTarget(RenderingTarget):
    """Static renderer producing ``kubernetes.json``."""

    kind = TargetKind.CLOUDFORMATION

    def __init__(self, out_dir: Path | str | None = None):
        super().__init__(out_dir)
        self._lock = threading.Lock()
        self._resources: dict[str, dict[str, Any]] = {}
        self._graph: TaskGraph | None = None

    def begin(self, context: RunContext) -> None:
        with self._lock:
            self._resources.clear()
            self._graph = context.graph

    def resolve(self, requester: Task, reference: Reference, context: RunContext) -> Any:
        context.require_edge(requester, reference)
        referenced = context.graph.task(reference.task)
        if not self.is_managed(referenced):
            return self.unmanaged_value(requester, reference, context)

        resource_id = self._logical_id_of(referenced)
        if reference.attribute == "id":
            return {"Ref": resource_id}
        return {"Fn::GetAtt": [resource_id, pascal_case(reference.attribute or "")]}

    def apply(
        self,
        task: Task,
        changeset: Changeset,
        actual: dict[str, Any] | None,
        desired: dict[str, Any],
        context: RunContext,
    ) -> dict[str, Any]:
        self._graph = context.graph
        task.render_cloudformation(self, desired)
        return {}

    def add_resource(self, task: Task, resource_type: str | None, properties: dict[str, Any]) -> None:
        """Add one entry to the template's ``Resources`` map."""
        if not resource_type:
            raise RenderError(f"Task '{task.name}' has no CloudFormation resource type", task_name=task.name)

        resource_id = logical_id(resource_type, task.name)
        try:
            body = {key: _convert(value, f"{resource_id}.{key}") for key, value in properties.items()}
        except RenderError as e:
            raise RenderError(f"Task '{task.name}': {e}", task_name=task.name) from e

        resource: dict[str, Any] = {"Type": resource_type, "Properties": body}
        depends_on = self._ordering_dependencies(task)
        if depends_on:
            resource["DependsOn"] = depends_on

        with self._lock:
            if resource_id in self._resources:
                raise RenderError(
                    f"Task '{task.name}' renders duplicate logical id {resource_id}",
                    task_name=task.name,
                )
            self._resources[resource_id] = resource

        logger.debug("cloudformation.resource.added", task=task.name, logical_id=resource_id)

    def _logical_id_of(self, task: Task) -> str:
        if not task.cloudformation_type:
            raise RenderError(f"Task '{task.name}' has no CloudFormation resource type", task_name=task.name)
        return logical_id(task.cloudformation_type, task.name)

    def _ordering_dependencies(self, task: Task) -> list[str]:
        if self._graph is None:
            return []
        ids = set()
        for reference in task.references():
            if reference.is_value:
                continue
            dependency = self._graph.task(reference.task)
            if self.is_managed(dependency):
                ids.add(self._logical_id_of(dependency))
        return sorted(ids)

    def template(self) -> dict[str, Any]:
        with self._lock:
            return {"Resources": {key: self._resources[key] for key in sorted(self._resources)}}

    def render(self) -> str:
        return json.dumps(self.template(), indent=2, sort_keys=True, ensure_ascii=False) + "\n"

    def files(self) -> dict[str, bytes]:
        return {TEMPLATE_FILENAME: self.render().encode("utf-8")}


def _convert(value: Any, path: str) -> Any:
    if isinstance(value, BootstrapData):
        return value.to_base64()
    if isinstance(value, (str, bool, int)) or value is None:
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise RenderError(f"Cannot render non-finite number at {path}")
        return value
    if isinstance(value, dict):
        converted = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise RenderError(f"Map keys must be strings at {path}, got {type(key).__name__}")
            converted[key] = _convert(item, f"{path}.{key}")
        return converted
    if isinstance(value, (list, tuple)):
        return [_convert(item, f"{path}[{i}]") for i, item in enumerate(value)]
    raise RenderError(f"Cannot render {type(value).__name__} value at {path}")


# =============================================================================
# UserData extraction
# =============================================================================


def extract_user_data(document: str) -> tuple[str, str]:
    """
    Split embedded ``UserData`` payloads out of a rendered template.

    Every ``UserData`` string in ``Resources`` is base64-decoded and replaced
    with ``"extracted"``. Returns the rewritten template (same formatting as
    ``CloudFormationTarget.render``) and a YAML document mapping
    ``<LogicalId>.Properties.<path>.UserData`` to the decoded text, with
    carriage returns removed.

    Raises:
        RenderError: If the document is not a template or a payload is not
            valid base64 UTF-8.
    """
    try:
        template = json.loads(document)
    except json.JSONDecodeError as e:
        raise RenderError(f"Not a JSON template: {e}") from e
    if not isinstance(template, dict):
        raise RenderError("Template must be a JSON object")

    extracted: dict[str, str] = {}
    for resource_id, resource in sorted((template.get("Resources") or {}).items()):
        if isinstance(resource, dict):
            _extract(resource, resource_id, extracted)

    rewritten = json.dumps(template, indent=2, sort_keys=True, ensure_ascii=False) + "\n"
    dump = yaml.safe_dump(extracted, default_flow_style=False, sort_keys=True, allow_unicode=True)
    return rewritten, dump


def _extract(node: Any, path: str, extracted: dict[str, str]) -> None:
    if isinstance(node, dict):
        for key in sorted(node):
            child_path = f"{path}.{key}"
            if key == "UserData" and isinstance(node[key], str):
                extracted[child_path] = _decode(node[key], child_path)
                node[key] = EXTRACTED
            else:
                _extract(node[key], child_path, extracted)
    elif isinstance(node, list):
        for i, item in enumerate(node):
            _extract(item, f"{path}[{i}]", extracted)


def _decode(value: str, path: str) -> str:
    try:
        return base64.b64decode(value, validate=True).decode("utf-8").replace("\r", "")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise RenderError(f"UserData at {path} is not base64-encoded UTF-8: {e}") from e
