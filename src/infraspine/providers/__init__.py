"""Cloud provider port and the in-memory implementation."""

from infraspine.providers.base import CloudProvider
from infraspine.providers.memory import InMemoryProvider

__all__ = ["CloudProvider", "InMemoryProvider"]
