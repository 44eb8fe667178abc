"""
Found-State Cache - per-run memoization of "what currently exists".

The first task to ask for a resource identity performs the provider lookup;
concurrent askers for the same identity wait for that lookup instead of
issuing their own, and later waves reuse the result. Absence (``None``) is a
valid cached result. A lookup that raises is not cached, so the next caller
(usually the same task on retry) performs it again.

Architecture:
    ::

        FoundStateCache
        ├── get_or_load(key, loader) → value | None    (single-flight per key)
        ├── peek(key)                → value | None    (never loads)
        ├── __contains__ / __len__
        └── lookups                  → provider lookups performed

Examples:
    >>> cache = FoundStateCache()
    >>> cache.get_or_load(("VPC", "network"), lambda: {"id": "vpc-1"})
    {'id': 'vpc-1'}
    >>> cache.get_or_load(("VPC", "network"), lambda: {"id": "other"})
    {'id': 'vpc-1'}
    >>> cache.lookups
    1

Guardrails:
    ❌ DON'T: Mutate values returned by the cache (they are shared)
    ✅ DO: Build a new dict when a task needs a modified copy

    ❌ DON'T: Share one cache between runs
    ✅ DO: Let the executor create one per run

Tags:
    cache, found-state, single-flight, concurrency
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Hashable
from dataclasses import dataclass, field
from typing import Any


@dataclass
class _Entry:
    event: threading.Event = field(default_factory=threading.Event)
    loaded: bool = False
    value: Any = None


class FoundStateCache:
    """Read-shared, write-once-per-key cache of discovered resource state."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[Hashable, _Entry] = {}
        self._lookups = 0

    def get_or_load(self, key: Hashable, loader: Callable[[], Any]) -> Any:
        """Return the cached value for ``key``, loading it on first use."""
        while True:
            with self._lock:
                entry = self._entries.get(key)
                owner = entry is None
                if owner:
                    entry = _Entry()
                    self._entries[key] = entry
                    self._lookups += 1

            if owner:
                return self._load(key, entry, loader)

            entry.event.wait()
            if entry.loaded:
                return entry.value
            # The owning lookup failed; compete to become the new owner.

    def _load(self, key: Hashable, entry: _Entry, loader: Callable[[], Any]) -> Any:
        try:
            value = loader()
        except BaseException:
            with self._lock:
                self._entries.pop(key, None)
            entry.event.set()
            raise

        entry.value = value
        entry.loaded = True
        entry.event.set()
        return value

    def peek(self, key: Hashable) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
        if entry is None or not entry.loaded:
            return None
        return entry.value

    @property
    def lookups(self) -> int:
        with self._lock:
            return self._lookups

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            entry = self._entries.get(key)
        return entry is not None and entry.loaded

    def __len__(self) -> int:
        with self._lock:
            return sum(1 for entry in self._entries.values() if entry.loaded)
