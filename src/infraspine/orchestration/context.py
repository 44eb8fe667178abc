"""Run context — everything one execution shares, discarded afterward.

The context owns the outputs of completed tasks. Dependents read them only
through ``output()``, which refuses reads that are not backed by a declared
reference, so a task can never observe state it isn't ordered after.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from infraspine.core.settings import Settings
from infraspine.execution.timeout import Deadline
from infraspine.orchestration.exceptions import OutputUnavailableError
from infraspine.orchestration.found_state import FoundStateCache
from infraspine.orchestration.resolver import TaskGraph
from infraspine.tasks.task import Reference, Task

if TYPE_CHECKING:
    from infraspine.providers.base import CloudProvider
    from infraspine.targets.base import Target


@dataclass
class RunContext:
    """
    Per-run state shared by the executor, the target and the tasks.

    Attributes:
        run_id: Identifier bound into every log line of the run
        target: The single target this run is bound to
        graph: Validated task graph
        settings: Run settings (concurrency, retry policy, ...)
        deadline: Run-wide wall-clock deadline
        cache: Found-State Cache for this run
        provider: Provider used for discovery (None for static renderers)
    """

    run_id: str
    target: Target
    graph: TaskGraph
    settings: Settings
    deadline: Deadline
    cache: FoundStateCache = field(default_factory=FoundStateCache)
    provider: CloudProvider | None = None
    _outputs: dict[str, dict[str, Any]] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    # =========================================================================
    # Outputs
    # =========================================================================

    def record_outputs(self, name: str, outputs: dict[str, Any]) -> None:
        """Publish a completed task's outputs (once, after success)."""
        with self._lock:
            self._outputs[name] = dict(outputs)
        task = self.graph.tasks.get(name)
        if task is not None:
            task.outputs = dict(outputs)

    def outputs_of(self, name: str) -> dict[str, Any] | None:
        with self._lock:
            outputs = self._outputs.get(name)
            return dict(outputs) if outputs is not None else None

    def require_edge(self, requester: Task, reference: Reference) -> None:
        if not self.graph.has_edge(requester.name, reference.task):
            raise OutputUnavailableError(
                f"Task '{requester.name}' reads '{reference}' without declaring a reference to it",
                task_name=requester.name,
            )

    def output(self, requester: Task, reference: Reference) -> Any:
        """Real output value of a referenced task (live execution)."""
        self.require_edge(requester, reference)
        outputs = self.outputs_of(reference.task)
        if outputs is None:
            raise OutputUnavailableError(
                f"Task '{reference.task}' has not completed; '{requester.name}' cannot read {reference}",
                task_name=requester.name,
            )
        if reference.attribute not in outputs:
            raise OutputUnavailableError(
                f"Task '{reference.task}' has no output '{reference.attribute}'",
                task_name=requester.name,
            )
        return outputs[reference.attribute]

    # =========================================================================
    # Helpers for the executor
    # =========================================================================

    def resolver_for(self, task: Task) -> Callable[[Reference], Any]:
        """Reference resolver handed to ``task.desired()``; delegates to the target."""

        def resolve(reference: Reference) -> Any:
            return self.target.resolve(task, reference, self)

        return resolve

    def found_state(self, task: Task) -> dict[str, Any] | None:
        """Actual state of the task's resource, looked up once per run."""
        if self.provider is None:
            return None
        provider = self.provider
        return self.cache.get_or_load(task.cache_key, lambda: task.find(provider))
