"""Wave Scheduler — partition a TaskGraph into execution waves.

Wave 0 holds every task without dependencies; wave k holds the tasks whose
dependencies all sit in earlier waves. Tasks in one wave are independent of
each other and may run concurrently. Names inside a wave are sorted so that
renderers see tasks in the same order on every run.

Example::

    graph = DependencyResolver().resolve(tasks)
    waves = WaveScheduler().schedule(graph)
    for wave in waves:
        print(wave.index, wave.tasks)
"""

from __future__ import annotations

from dataclasses import dataclass

from infraspine.core.logging import get_logger
from infraspine.orchestration.resolver import TaskGraph

logger = get_logger(__name__)


@dataclass(frozen=True)
class Wave:
    """A set of mutually independent tasks."""

    index: int
    tasks: tuple[str, ...]

    def __len__(self) -> int:
        return len(self.tasks)

    def __iter__(self):
        return iter(self.tasks)


class WaveScheduler:
    """Orders a validated TaskGraph into waves (longest-path layering)."""

    def schedule(self, graph: TaskGraph) -> list[Wave]:
        level: dict[str, int] = {}
        for name in graph.topological_order():
            deps = graph.dependencies[name]
            level[name] = 1 + max((level[dep] for dep in deps), default=-1)

        buckets: dict[int, list[str]] = {}
        for name, index in level.items():
            buckets.setdefault(index, []).append(name)

        waves = [Wave(index=i, tasks=tuple(sorted(buckets[i]))) for i in sorted(buckets)]

        logger.debug(
            "scheduler.waves",
            wave_count=len(waves),
            sizes=[len(w) for w in waves],
        )
        return waves
