"""Tests for infraspine.orchestration.found_state — single-flight lookups."""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from infraspine.core.errors import NotReadyError
from infraspine.orchestration.found_state import FoundStateCache


class TestFoundStateCache:
    """Tests for FoundStateCache."""

    def test_loads_once(self):
        cache = FoundStateCache()
        calls = []

        def loader():
            calls.append(1)
            return {"id": "vpc-1"}

        assert cache.get_or_load(("VPC", "a"), loader) == {"id": "vpc-1"}
        assert cache.get_or_load(("VPC", "a"), loader) == {"id": "vpc-1"}
        assert len(calls) == 1
        assert cache.lookups == 1

    def test_absence_is_cached(self):
        cache = FoundStateCache()
        calls = []

        def loader():
            calls.append(1)
            return None

        assert cache.get_or_load("k", loader) is None
        assert cache.get_or_load("k", loader) is None
        assert len(calls) == 1
        assert "k" in cache

    def test_failures_are_not_cached(self):
        cache = FoundStateCache()

        def failing():
            raise NotReadyError("eventual consistency")

        with pytest.raises(NotReadyError):
            cache.get_or_load("k", failing)
        assert "k" not in cache
        assert cache.get_or_load("k", lambda: {"id": 1}) == {"id": 1}

    def test_peek_never_loads(self):
        cache = FoundStateCache()
        assert cache.peek("k") is None
        cache.get_or_load("k", lambda: {"id": 1})
        assert cache.peek("k") == {"id": 1}
        assert len(cache) == 1

    def test_concurrent_callers_share_one_lookup(self):
        cache = FoundStateCache()
        calls = []

        def slow_loader():
            calls.append(1)
            time.sleep(0.05)
            return {"id": "shared"}

        with ThreadPoolExecutor(max_workers=8) as pool:
            futures = [pool.submit(cache.get_or_load, "k", slow_loader) for _ in range(8)]
            results = [f.result(timeout=5) for f in futures]

        assert results == [{"id": "shared"}] * 8
        assert len(calls) == 1
        assert cache.lookups == 1
