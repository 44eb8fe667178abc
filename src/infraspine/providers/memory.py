"""In-memory cloud provider.

Stores resources in a dict and assigns deterministic ids, so live-apply runs
can be exercised end to end without a cloud account. Eventual consistency and
API failures can be injected per resource.

Example::

    provider = InMemoryProvider()
    provider.seed("VPC", "shared", {"id": "vpc-shared", "cidr_block": "10.0.0.0/16"})
    provider.fail_not_ready("Subnet", "subnet-a", times=2)

    executor = Executor(DirectTarget(provider), settings=settings)
    report = executor.run(tasks)

    provider.calls   # [("find", "VPC", "shared"), ("create", "Subnet", "subnet-a"), ...]
"""

from __future__ import annotations

import copy
import threading
from collections import defaultdict
from typing import Any

from infraspine.core.errors import NotReadyError, ProviderAPIError
from infraspine.core.logging import get_logger

logger = get_logger(__name__)


class InMemoryProvider:
    """Thread-safe in-memory implementation of ``CloudProvider``."""

    def __init__(self, id_prefix: str | None = None):
        self._lock = threading.Lock()
        self._resources: dict[tuple[str, str], dict[str, Any]] = {}
        self._counters: dict[str, int] = defaultdict(int)
        self._not_ready: dict[tuple[str, str], int] = {}
        self._errors: dict[tuple[str, str], list[Exception]] = defaultdict(list)
        self._id_prefix = id_prefix
        self.calls: list[tuple[str, str, str]] = []

    # =========================================================================
    # Test setup
    # =========================================================================

    def seed(self, kind: str, name: str, state: dict[str, Any]) -> None:
        """Register a resource that already exists."""
        with self._lock:
            self._resources[(kind, name)] = copy.deepcopy(state)

    def fail_not_ready(self, kind: str, name: str, times: int) -> None:
        """Make the next ``times`` create/update calls for a resource raise NotReadyError."""
        with self._lock:
            self._not_ready[(kind, name)] = times

    def fail_with(self, kind: str, name: str, error: Exception) -> None:
        """Make the next create/update call for a resource raise ``error``."""
        with self._lock:
            self._errors[(kind, name)].append(error)

    def resources(self) -> dict[tuple[str, str], dict[str, Any]]:
        with self._lock:
            return copy.deepcopy(self._resources)

    def calls_for(self, operation: str) -> list[tuple[str, str]]:
        with self._lock:
            return [(kind, name) for op, kind, name in self.calls if op == operation]

    # =========================================================================
    # CloudProvider
    # =========================================================================

    def find(self, kind: str, name: str) -> dict[str, Any] | None:
        with self._lock:
            self.calls.append(("find", kind, name))
            state = self._resources.get((kind, name))
            return copy.deepcopy(state) if state is not None else None

    def create(self, kind: str, name: str, properties: dict[str, Any]) -> dict[str, Any]:
        key = (kind, name)
        with self._lock:
            self.calls.append(("create", kind, name))
            self._raise_injected(key)
            if key in self._resources:
                raise ProviderAPIError(f"{kind} {name} already exists", code="AlreadyExists")

            state = copy.deepcopy(properties)
            state["id"] = self._next_id(kind)
            self._resources[key] = state
            logger.debug("provider.memory.create", kind=kind, name=name, id=state["id"])
            return copy.deepcopy(state)

    def update(
        self,
        kind: str,
        name: str,
        properties: dict[str, Any],
        changes: dict[str, Any],
    ) -> dict[str, Any]:
        key = (kind, name)
        with self._lock:
            self.calls.append(("update", kind, name))
            self._raise_injected(key)
            if key not in self._resources:
                raise ProviderAPIError(f"{kind} {name} does not exist", code="NotFound")

            state = self._resources[key]
            state.update(copy.deepcopy(changes))
            logger.debug("provider.memory.update", kind=kind, name=name, fields=sorted(changes))
            return copy.deepcopy(state)

    # =========================================================================
    # Helpers (caller must hold lock)
    # =========================================================================

    def _raise_injected(self, key: tuple[str, str]) -> None:
        remaining = self._not_ready.get(key, 0)
        if remaining > 0:
            self._not_ready[key] = remaining - 1
            raise NotReadyError(f"{key[0]} {key[1]} has not converged yet")

        if self._errors.get(key):
            raise self._errors[key].pop(0)

    def _next_id(self, kind: str) -> str:
        self._counters[kind] += 1
        prefix = self._id_prefix or kind.lower()
        return f"{prefix}-{self._counters[kind]:04d}"
