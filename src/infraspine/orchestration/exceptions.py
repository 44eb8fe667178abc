"""Orchestration exceptions — structured error hierarchy.

Hierarchy::

    OrchestrationError  (from infraspine.core.errors)
      └── GraphError                    ── base for task graph errors
            ├── DuplicateIdentityError    ── two tasks share a name
            ├── DependencyError           ── reference to an unknown task
            └── GraphCycleError           ── dependency graph has a cycle
      ├── LifecycleViolation            ── lifecycle forbids the required change
      ├── OutputUnavailableError        ── referenced output missing or unreachable
      ├── TaskTimedOut                  ── retry bound or deadline exceeded
      └── RunFailedError                ── raised by RunReport.raise_for_status()

    RenderingError (from infraspine.core.errors)
      └── RenderError                   ── unsupported payload for a renderer
"""

from __future__ import annotations

from infraspine.core.errors import ErrorCategory, OrchestrationError, RenderingError


class GraphError(OrchestrationError):
    """Base exception for errors detected while building the task graph."""

    pass


class DuplicateIdentityError(GraphError):
    """Raised when two tasks in one run share a name."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Duplicate task name: {name}")


class DependencyError(GraphError):
    """Raised when a task references tasks that are not part of the run."""

    def __init__(self, task_name: str, missing_deps: list[str]):
        self.task_name = task_name
        self.missing_deps = missing_deps
        deps_str = ", ".join(missing_deps)
        super().__init__(f"Task '{task_name}' references unknown tasks: {deps_str}")


class GraphCycleError(GraphError):
    """Raised when the dependency graph contains a cycle."""

    def __init__(self, cycle: list[str]):
        self.cycle = cycle
        cycle_str = " -> ".join(cycle + cycle[:1])
        super().__init__(f"Cycle detected in task graph: {cycle_str}")


class LifecycleViolation(OrchestrationError):
    """Raised when a task's lifecycle forbids the change its state requires."""

    default_category = ErrorCategory.LIFECYCLE

    def __init__(self, task_name: str, reason: str):
        self.task_name = task_name
        self.reason = reason
        super().__init__(f"Task '{task_name}': {reason}")


class OutputUnavailableError(OrchestrationError):
    """Raised when a referenced output is missing or read across a missing edge."""

    def __init__(self, message: str, task_name: str | None = None):
        self.task_name = task_name
        super().__init__(message)


class TaskTimedOut(OrchestrationError):
    """Raised when a task exhausts its retries, its duration or the run deadline."""

    default_category = ErrorCategory.TIMEOUT

    def __init__(self, task_name: str, reason: str, attempts: int = 0):
        self.task_name = task_name
        self.reason = reason
        self.attempts = attempts
        super().__init__(f"Task '{task_name}' timed out after {attempts} attempt(s): {reason}")


class RunFailedError(OrchestrationError):
    """Raised by ``RunReport.raise_for_status`` when any task did not succeed."""

    def __init__(self, message: str, failed: list[str]):
        self.failed = failed
        super().__init__(message)


class RenderError(RenderingError):
    """Raised by a static renderer on an unsupported payload shape."""

    def __init__(self, message: str, task_name: str | None = None):
        self.task_name = task_name
        super().__init__(message)
