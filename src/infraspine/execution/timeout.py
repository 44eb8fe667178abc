"""Deadline tracking for runs.

A run has a single wall-clock budget. The executor consults the deadline
before starting a wave, before submitting each attempt and while waiting for
in-flight attempts; it never interrupts an attempt that is already running.

Examples:
    >>> deadline = Deadline.after(30.0, operation="run")
    >>> deadline.is_expired()
    False
    >>> deadline.remaining() <= 30.0
    True

    Unbounded deadline:

    >>> Deadline.unbounded().remaining()
    inf

Tags:
    timeout, deadline, execution
"""

from __future__ import annotations

import math
import time
from collections.abc import Callable
from dataclasses import dataclass, field


class DeadlineExceeded(TimeoutError):
    """Raised by ``Deadline.check`` once the budget is spent.

    Inherits from built-in TimeoutError for broad exception handling.
    """

    def __init__(self, timeout: float, elapsed: float, operation: str = "operation"):
        self.timeout = timeout
        self.elapsed = elapsed
        self.operation = operation
        super().__init__(f"Operation '{operation}' exceeded its {timeout}s deadline (ran for {elapsed:.2f}s)")


@dataclass
class Deadline:
    """
    Absolute deadline on a monotonic clock.

    Attributes:
        deadline: Absolute deadline timestamp (``clock`` units)
        timeout_seconds: Original budget in seconds
        operation: Name of the bounded operation
        clock: Time source; injectable for tests
    """

    deadline: float
    timeout_seconds: float
    operation: str = "operation"
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)
    start_time: float = field(default=0.0)

    @classmethod
    def after(
        cls,
        seconds: float | None,
        operation: str = "operation",
        clock: Callable[[], float] = time.monotonic,
    ) -> Deadline:
        """Deadline ``seconds`` from now; ``None`` means no deadline."""
        now = clock()
        if seconds is None:
            return cls(deadline=math.inf, timeout_seconds=math.inf, operation=operation, clock=clock, start_time=now)
        return cls(deadline=now + seconds, timeout_seconds=seconds, operation=operation, clock=clock, start_time=now)

    @classmethod
    def unbounded(cls, operation: str = "operation") -> Deadline:
        return cls.after(None, operation=operation)

    def remaining(self) -> float:
        """Seconds left; negative once expired."""
        return self.deadline - self.clock()

    @property
    def elapsed(self) -> float:
        return self.clock() - self.start_time

    def is_expired(self) -> bool:
        return self.clock() >= self.deadline

    def check(self) -> None:
        """Raise DeadlineExceeded if the deadline has passed."""
        if self.is_expired():
            raise DeadlineExceeded(self.timeout_seconds, self.elapsed, self.operation)

    def earliest(self, other: Deadline) -> Deadline:
        """The tighter of two deadlines."""
        return self if self.deadline <= other.deadline else other
