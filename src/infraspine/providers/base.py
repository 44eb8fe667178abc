"""
Cloud provider port.

The engine never talks to a cloud SDK directly. Live and dry-run targets go
through an object satisfying ``CloudProvider``; real SDK adapters live
outside this package.

Design Decisions:
- Uses Protocol for structural typing (no inheritance needed)
- Resources are addressed by ``(kind, name)``; values are plain dicts
- ``create``/``update`` return the resource's output attributes (ids, ARNs)
- Convergence delays are reported as ``NotReadyError`` or as
  ``ProviderAPIError`` with a transient code
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class CloudProvider(Protocol):
    """Port for create/read/update operations per resource kind."""

    def find(self, kind: str, name: str) -> dict[str, Any] | None:
        """Return the current state of a resource, or None if it does not exist."""
        ...

    def create(self, kind: str, name: str, properties: dict[str, Any]) -> dict[str, Any]:
        """Create a resource and return its output attributes."""
        ...

    def update(
        self,
        kind: str,
        name: str,
        properties: dict[str, Any],
        changes: dict[str, Any],
    ) -> dict[str, Any]:
        """Apply ``changes`` to a resource and return its output attributes."""
        ...
