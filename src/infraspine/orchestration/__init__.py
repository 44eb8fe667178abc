"""
Orchestration — task graph resolution, wave scheduling and execution.

- ``DependencyResolver``: tasks → validated ``TaskGraph``
- ``WaveScheduler``: ``TaskGraph`` → ordered waves of independent tasks
- ``Executor``: runs the waves against one target, returns a ``RunReport``
- ``FoundStateCache``: per-run single-flight cache of discovered state
- ``prepare_tasks``: phase selection and lifecycle overrides
"""

from infraspine.orchestration.context import RunContext
from infraspine.orchestration.exceptions import (
    DependencyError,
    DuplicateIdentityError,
    GraphCycleError,
    GraphError,
    LifecycleViolation,
    OutputUnavailableError,
    RenderError,
    RunFailedError,
    TaskTimedOut,
)
from infraspine.orchestration.executor import Executor
from infraspine.orchestration.found_state import FoundStateCache
from infraspine.orchestration.phases import apply_lifecycle_overrides, prepare_tasks, select_phase
from infraspine.orchestration.report import RunReport, RunStatus, TaskExecution, TaskState
from infraspine.orchestration.resolver import DependencyResolver, TaskGraph
from infraspine.orchestration.scheduler import Wave, WaveScheduler

__all__ = [
    # Graph
    "DependencyResolver",
    "TaskGraph",
    "Wave",
    "WaveScheduler",
    # Execution
    "Executor",
    "FoundStateCache",
    "RunContext",
    "prepare_tasks",
    "apply_lifecycle_overrides",
    "select_phase",
    # Report
    "RunReport",
    "RunStatus",
    "TaskExecution",
    "TaskState",
    # Errors
    "DependencyError",
    "DuplicateIdentityError",
    "GraphCycleError",
    "GraphError",
    "LifecycleViolation",
    "OutputUnavailableError",
    "RenderError",
    "RunFailedError",
    "TaskTimedOut",
]
