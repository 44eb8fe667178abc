"""
Executor - drives a task graph through one target, wave by wave.

Manifesto:
    A run must make as much progress as the infrastructure allows. One broken
    resource must not stop unrelated resources from converging, and a resource
    that is merely not ready yet must be retried without tying up a worker.

    - **Wave barrier:** wave N+1 starts only after every task of wave N is
      terminal, so a dependent never observes a half-applied dependency
    - **Bounded concurrency:** at most ``max_concurrency`` attempts in flight
    - **Requeue, don't sleep:** NotReady puts the task back in the wave's
      queue with a backoff delay; the worker is released immediately
    - **Failure isolation:** FAILED/TIMED_OUT tasks block their dependents,
      independent branches continue
    - **One deadline:** a run-wide wall-clock budget; in-flight attempts are
      never interrupted, queued attempts are timed out once it passes

Architecture:
    ::

        Executor.run(tasks)
        │
        ├── prepare_tasks()        phase selection + lifecycle overrides
        ├── DependencyResolver     → TaskGraph (cycles/duplicates/unknown refs fatal)
        ├── WaveScheduler          → [Wave 0, Wave 1, ...]
        │
        ├── for wave in waves:                     ThreadPoolExecutor(max_concurrency)
        │     blocked?  → BLOCKED (no worker used)
        │     queue (ready_at, name) ──submit──► _attempt(task)
        │                                          PENDING → DIFFING
        │                                          desired = task.desired(target.resolve)
        │                                          actual  = found-state cache (if discovering)
        │                                          changeset = target.plan_change()
        │                                          NO_CHANGE → DONE
        │                                          else CHANGES_PENDING → APPLYING → DONE
        │     NotReady  → PENDING, requeue after backoff (until retries/duration/deadline)
        │     error     → FAILED
        │
        └── target.finish()        write rendered documents (successful runs only)

Examples:
    >>> from infraspine.orchestration import Executor
    >>> from infraspine.providers import InMemoryProvider
    >>> from infraspine.targets import DirectTarget
    >>>
    >>> report = Executor(DirectTarget(InMemoryProvider())).run(tasks)
    >>> report.raise_for_status()

Guardrails:
    ❌ DON'T: Sleep inside a task to wait for eventual consistency
    ✅ DO: Raise NotReadyError and let the executor requeue the task

    ❌ DON'T: Read another task's outputs without declaring a reference
    ✅ DO: Put ``ref("other")`` in the task's properties

Tags:
    executor, waves, concurrency, retry, deadline, orchestration
"""

from __future__ import annotations

import contextvars
import heapq
import math
import time
import uuid
from collections.abc import Callable, Iterable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from infraspine.core.errors import InfraError, is_retryable
from infraspine.core.logging import LogContext, get_logger
from infraspine.core.settings import Settings, get_settings
from infraspine.execution.retry import RetryStrategy
from infraspine.execution.timeout import Deadline
from infraspine.orchestration.context import RunContext
from infraspine.orchestration.exceptions import LifecycleViolation, TaskTimedOut
from infraspine.orchestration.phases import prepare_tasks
from infraspine.orchestration.report import RunReport, TaskExecution, TaskState
from infraspine.orchestration.resolver import DependencyResolver, TaskGraph
from infraspine.orchestration.scheduler import Wave, WaveScheduler
from infraspine.tasks.changeset import ChangeKind
from infraspine.tasks.task import Task

if TYPE_CHECKING:
    from infraspine.targets.base import Target

logger = get_logger(__name__)


class Executor:
    """
    Runs tasks against a single target.

    Args:
        target: Backend the run is bound to
        settings: Run settings; defaults to ``get_settings()``
        retry_strategy: NotReady backoff policy; defaults to
            ``settings.retry_strategy()``
        clock: Monotonic time source (seconds)
        sleep: Called while every queued task is backing off
    """

    def __init__(
        self,
        target: Target,
        settings: Settings | None = None,
        retry_strategy: RetryStrategy | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.target = target
        self.settings = settings or get_settings()
        self.retry_strategy = retry_strategy or self.settings.retry_strategy()
        self._clock = clock
        self._sleep = sleep
        self._resolver = DependencyResolver()
        self._scheduler = WaveScheduler()
        self._transient_codes = frozenset(self.settings.transient_error_codes)

    def run(self, tasks: Iterable[Task], run_id: str | None = None) -> RunReport:
        """
        Execute ``tasks`` and return the run report.

        Graph errors (cycle, duplicate name, unknown reference) are raised
        before anything is executed. Task-level failures never raise; they
        are recorded in the report.

        Outputs of completed tasks are published on the task objects passed
        in, even when phase selection or a lifecycle override ran a copy.
        """
        run_id = run_id or uuid.uuid4().hex[:12]

        with LogContext(run_id=run_id, target=self.target.kind.value):
            originals = list(tasks)
            prepared = prepare_tasks(originals, self.settings)
            graph = self._resolver.resolve(prepared)
            waves = self._scheduler.schedule(graph)

            context = RunContext(
                run_id=run_id,
                target=self.target,
                graph=graph,
                settings=self.settings,
                deadline=Deadline.after(self.settings.deadline_seconds, operation="run", clock=self._clock),
                provider=self.target.provider if self.target.discovers else None,
            )
            records = {
                name: TaskExecution(name=name, kind=graph.task(name).kind, wave=wave.index)
                for wave in waves
                for name in wave
            }
            report = RunReport(
                run_id=run_id,
                target=self.target.kind.value,
                waves=[list(wave.tasks) for wave in waves],
                tasks=records,
                started_at=datetime.now(UTC),
            )

            logger.info(
                "executor.run.start",
                tasks=len(graph),
                waves=len(waves),
                max_concurrency=self.settings.max_concurrency,
            )

            self.target.begin(context)

            with ThreadPoolExecutor(
                max_workers=self.settings.max_concurrency,
                thread_name_prefix="infraspine",
            ) as pool:
                for wave in waves:
                    self._run_wave(pool, wave, context, records)

            for task in originals:
                outputs = context.outputs_of(task.name)
                if outputs is not None:
                    task.outputs = outputs

            if report.succeeded:
                report.artifacts = [str(path) for path in self.target.finish(context)]

            report.completed_at = datetime.now(UTC)
            logger.info(
                "executor.run.complete",
                status=report.status.value,
                duration_seconds=report.duration_seconds,
                done=len(report.done_tasks),
                failed=len(report.failed_tasks),
                blocked=len(report.blocked_tasks),
                timed_out=len(report.timed_out_tasks),
                found_state_lookups=context.cache.lookups,
            )
            return report

    # =========================================================================
    # Waves
    # =========================================================================

    def _run_wave(
        self,
        pool: ThreadPoolExecutor,
        wave: Wave,
        context: RunContext,
        records: dict[str, TaskExecution],
    ) -> None:
        graph = context.graph
        limit = self.settings.max_concurrency
        queue: list[tuple[float, str]] = []
        retries: dict[str, int] = {}
        task_deadlines: dict[str, Deadline] = {}
        in_flight: dict[Future, str] = {}

        logger.debug("executor.wave.start", wave=wave.index, tasks=list(wave.tasks))

        for name in wave:
            blocker = self._blocker(name, graph, records)
            if blocker is not None:
                records[name].block(blocker)
                logger.warning("executor.task.blocked", task=name, blocked_by=blocker)
                continue
            heapq.heappush(queue, (self._clock(), name))

        while queue or in_flight:
            if queue and context.deadline.is_expired():
                while queue:
                    _, name = heapq.heappop(queue)
                    self._time_out(records[name], "run deadline exceeded")

            now = self._clock()
            while queue and len(in_flight) < limit and queue[0][0] <= now:
                _, name = heapq.heappop(queue)
                record = records[name]
                task_deadline = task_deadlines.setdefault(
                    name,
                    Deadline.after(self.settings.max_task_duration_seconds, operation=name, clock=self._clock),
                )
                if task_deadline.is_expired():
                    self._time_out(record, "maximum task duration exceeded")
                    continue

                record.attempts += 1
                task = graph.task(name)
                run_attempt = contextvars.copy_context().run
                future = pool.submit(run_attempt, self._attempt, task, record, context)
                in_flight[future] = name

            if not in_flight:
                if queue:
                    self._sleep(self._backoff_wait(queue, context))
                continue

            timeout = self._wait_timeout(queue, in_flight, limit, context)
            done, _ = wait(in_flight, timeout=timeout, return_when=FIRST_COMPLETED)
            for future in done:
                name = in_flight.pop(future)
                self._settle(future, records[name], retries, task_deadlines[name], queue, context)

        logger.debug(
            "executor.wave.complete",
            wave=wave.index,
            done=sum(1 for name in wave if records[name].state is TaskState.DONE),
        )

    def _settle(
        self,
        future: Future,
        record: TaskExecution,
        retries: dict[str, int],
        task_deadline: Deadline,
        queue: list[tuple[float, str]],
        context: RunContext,
    ) -> None:
        """Turn a finished attempt into DONE, a requeue, TIMED_OUT or FAILED."""
        error = future.exception()
        if error is None:
            logger.info(
                "executor.task.done",
                task=record.name,
                change=record.changeset.kind.value if record.changeset else None,
                attempts=record.attempts,
            )
            return

        if not is_retryable(error, self._transient_codes):
            if isinstance(error, InfraError):
                error.with_context(
                    task=record.name,
                    kind=record.kind,
                    target=self.target.kind.value,
                    run_id=context.run_id,
                )
            record.fail(error)
            logger.error(
                "executor.task.failed",
                task=record.name,
                error=str(error),
                error_type=type(error).__name__,
            )
            return

        attempt = retries.get(record.name, 0)
        if not self.retry_strategy.should_retry(attempt, error):
            self._time_out(record, f"still not ready after {record.attempts} attempt(s): {error}")
            return

        delay = self.retry_strategy.next_delay(attempt)
        if delay >= context.deadline.remaining():
            self._time_out(record, f"run deadline exceeded while not ready: {error}")
            return
        if delay >= task_deadline.remaining():
            self._time_out(record, f"maximum task duration exceeded while not ready: {error}")
            return

        retries[record.name] = attempt + 1
        record.transition(TaskState.PENDING)
        heapq.heappush(queue, (self._clock() + delay, record.name))
        logger.info(
            "executor.task.retry",
            task=record.name,
            attempt=record.attempts,
            delay_seconds=round(delay, 3),
            reason=str(error),
        )

    def _time_out(self, record: TaskExecution, reason: str) -> None:
        record.time_out(TaskTimedOut(record.name, reason, attempts=record.attempts))
        logger.error("executor.task.timed_out", task=record.name, reason=reason, attempts=record.attempts)

    @staticmethod
    def _blocker(name: str, graph: TaskGraph, records: dict[str, TaskExecution]) -> str | None:
        for dependency in sorted(graph.dependencies[name]):
            if records[dependency].state.is_failure:
                return dependency
        return None

    def _backoff_wait(self, queue: list[tuple[float, str]], context: RunContext) -> float:
        delay = queue[0][0] - self._clock()
        remaining = context.deadline.remaining()
        return max(0.0, min(delay, remaining))

    def _wait_timeout(
        self,
        queue: list[tuple[float, str]],
        in_flight: dict[Future, str],
        limit: int,
        context: RunContext,
    ) -> float | None:
        timeout: float | None = None
        if queue and len(in_flight) < limit:
            timeout = max(0.0, queue[0][0] - self._clock())
        if queue and not context.deadline.is_expired():
            remaining = context.deadline.remaining()
            if not math.isinf(remaining):
                timeout = remaining if timeout is None else min(timeout, remaining)
        return timeout

    # =========================================================================
    # One attempt (runs in a worker thread)
    # =========================================================================

    def _attempt(self, task: Task, record: TaskExecution, context: RunContext) -> None:
        with LogContext(task=task.name):
            record.transition(TaskState.DIFFING)
            desired = task.desired(context.resolver_for(task))
            actual = context.found_state(task) if self.target.discovers else None

            changeset = self.target.plan_change(task, desired, actual)
            record.changeset = changeset
            logger.debug("executor.task.diffed", change=changeset.kind.value, fields=changeset.changed_fields())

            if changeset.kind is ChangeKind.FORBIDDEN:
                raise LifecycleViolation(task.name, changeset.reason or f"{task.lifecycle.value} forbids this change")

            if changeset.kind is ChangeKind.NO_CHANGE:
                outputs = self.target.unchanged_outputs(task, actual)
            else:
                record.transition(TaskState.CHANGES_PENDING)
                record.transition(TaskState.APPLYING)
                outputs = self.target.apply(task, changeset, actual, desired, context)

            context.record_outputs(task.name, outputs)
            record.finish(outputs)
