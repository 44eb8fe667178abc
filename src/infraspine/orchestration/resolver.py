"""
Dependency Resolver - turns a task set into a validated DAG.

This is the first stage of every run:
1. Reject duplicate task names
2. Collect edges from every task's declared references
3. Validate every reference points at a task in the run
4. Validate the graph is a DAG (no cycles)
5. Return a TaskGraph ready for wave partitioning

Design Principles:
- Pure functions where possible (testable, deterministic)
- No provider access and no execution (that's for the Executor)
- Deterministic: nodes and edges are visited in lexicographic order, so the
  same task set always yields the same graph and the same cycle report
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field

from infraspine.core.logging import get_logger
from infraspine.orchestration.exceptions import (
    DependencyError,
    DuplicateIdentityError,
    GraphCycleError,
)
from infraspine.tasks.task import Reference, Task

logger = get_logger(__name__)


@dataclass
class TaskGraph:
    """
    Directed acyclic graph of tasks.

    Attributes:
        tasks: Tasks keyed by name
        dependencies: name -> names it depends on
        dependents: name -> names depending on it
        references: name -> declared references (value and ordering-only)
    """

    tasks: dict[str, Task]
    dependencies: dict[str, set[str]] = field(default_factory=dict)
    dependents: dict[str, set[str]] = field(default_factory=dict)
    references: dict[str, list[Reference]] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.tasks)

    def names(self) -> list[str]:
        return sorted(self.tasks)

    def task(self, name: str) -> Task:
        return self.tasks[name]

    def has_edge(self, dependent: str, dependency: str) -> bool:
        """True if ``dependent`` declares a direct reference to ``dependency``."""
        return dependency in self.dependencies.get(dependent, set())

    def edges(self) -> list[tuple[str, str]]:
        """All ``(dependency, dependent)`` pairs, sorted."""
        return sorted((dep, name) for name, deps in self.dependencies.items() for dep in deps)

    def transitive_dependents(self, name: str) -> set[str]:
        """Every task that directly or indirectly depends on ``name``."""
        seen: set[str] = set()
        queue = deque(sorted(self.dependents.get(name, ())))
        while queue:
            node = queue.popleft()
            if node in seen:
                continue
            seen.add(node)
            queue.extend(sorted(self.dependents.get(node, ())))
        return seen

    def topological_order(self) -> list[str]:
        """Return task names in dependency order (Kahn's algorithm, ties by name)."""
        in_degree = {name: len(deps) for name, deps in self.dependencies.items()}
        ready = sorted(name for name, degree in in_degree.items() if degree == 0)
        result: list[str] = []

        while ready:
            node = ready.pop(0)
            result.append(node)
            released = []
            for dependent in self.dependents.get(node, ()):
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    released.append(dependent)
            ready = sorted(ready + released)

        return result


class DependencyResolver:
    """
    Resolves a task set into a TaskGraph.

    Thread-safe: No mutable state, each resolve() call is independent.

    Example:
        graph = DependencyResolver().resolve([network, subnet, instance])
        graph.topological_order()   # ['network', 'subnet', 'instance']
    """

    def resolve(self, tasks: Iterable[Task]) -> TaskGraph:
        """
        Build and validate the task graph.

        Raises:
            DuplicateIdentityError: If two tasks share a name
            DependencyError: If a task references an unknown task
            GraphCycleError: If references form a cycle
        """
        by_name: dict[str, Task] = {}
        for task in tasks:
            if task.name in by_name:
                raise DuplicateIdentityError(task.name)
            by_name[task.name] = task

        graph = TaskGraph(tasks=by_name)
        for name in sorted(by_name):
            declared = by_name[name].references()
            graph.references[name] = declared
            graph.dependencies[name] = {reference.task for reference in declared}
            graph.dependents.setdefault(name, set())

        self._validate_dependencies(graph)

        for name, deps in graph.dependencies.items():
            for dep in deps:
                graph.dependents[dep].add(name)

        self._validate_no_cycles(graph)

        logger.debug(
            "resolver.resolved",
            task_count=len(graph),
            edge_count=len(graph.edges()),
        )
        return graph

    def _validate_dependencies(self, graph: TaskGraph) -> None:
        """Validate all references point at tasks in the run."""
        for name in graph.names():
            missing = sorted(dep for dep in graph.dependencies[name] if dep not in graph.tasks)
            if missing:
                raise DependencyError(name, missing)

    def _validate_no_cycles(self, graph: TaskGraph) -> None:
        """
        Validate the dependency graph is a DAG (no cycles).

        Uses depth-first search with three-color marking:
        - WHITE (0): Unvisited
        - GRAY (1): Currently visiting (on current path)
        - BLACK (2): Finished visiting

        If we encounter a GRAY node, we've found a cycle. The path is kept
        explicitly (no recursion) so deep graphs don't hit the recursion limit.
        """
        WHITE, GRAY, BLACK = 0, 1, 2
        color = {name: WHITE for name in graph.tasks}

        for root in graph.names():
            if color[root] != WHITE:
                continue

            path: list[str] = [root]
            stack = [iter(sorted(graph.dependencies[root]))]
            color[root] = GRAY

            while stack:
                neighbor = next(stack[-1], None)
                if neighbor is None:
                    color[path.pop()] = BLACK
                    stack.pop()
                    continue

                if color[neighbor] == GRAY:
                    cycle = path[path.index(neighbor):]
                    logger.error("resolver.cycle_detected", cycle=cycle)
                    raise GraphCycleError(cycle)

                if color[neighbor] == WHITE:
                    color[neighbor] = GRAY
                    path.append(neighbor)
                    stack.append(iter(sorted(graph.dependencies[neighbor])))
