"""Tests for infraspine.orchestration.resolver — graph building and validation."""

from __future__ import annotations

import pytest

from infraspine.orchestration.exceptions import (
    DependencyError,
    DuplicateIdentityError,
    GraphCycleError,
    GraphError,
)
from infraspine.orchestration.resolver import DependencyResolver
from infraspine.tasks.task import Reference, ref


@pytest.fixture
def resolver() -> DependencyResolver:
    return DependencyResolver()


class TestGraphBuilding:
    """Tests for edges derived from references."""

    def test_edges_from_references(self, resolver, three_tier_tasks):
        graph = resolver.resolve(three_tier_tasks)
        assert graph.edges() == [("network", "subnet-a"), ("subnet-a", "instance")]

    def test_dependents_are_filled(self, resolver, three_tier_tasks):
        graph = resolver.resolve(three_tier_tasks)
        assert graph.dependents["network"] == {"subnet-a"}
        assert graph.dependents["instance"] == set()

    def test_ordering_only_reference_is_an_edge(self, resolver, task_factory):
        graph = resolver.resolve([task_factory("a"), task_factory("b", depends_on=["a"])])
        assert graph.has_edge("b", "a")
        assert graph.references["b"] == [Reference("a")]

    def test_has_edge_is_direct_only(self, resolver, three_tier_tasks):
        graph = resolver.resolve(three_tier_tasks)
        assert graph.has_edge("instance", "subnet-a")
        assert not graph.has_edge("instance", "network")

    def test_transitive_dependents(self, resolver, three_tier_tasks):
        graph = resolver.resolve(three_tier_tasks)
        assert graph.transitive_dependents("network") == {"subnet-a", "instance"}

    def test_topological_order(self, resolver, three_tier_tasks):
        graph = resolver.resolve(reversed(three_tier_tasks))
        assert graph.topological_order() == ["network", "subnet-a", "instance"]

    def test_empty_task_set(self, resolver):
        graph = resolver.resolve([])
        assert len(graph) == 0
        assert graph.topological_order() == []


class TestValidation:
    """Tests for pre-execution graph errors."""

    def test_duplicate_names_rejected(self, resolver, task_factory):
        with pytest.raises(DuplicateIdentityError) as exc_info:
            resolver.resolve([task_factory("a"), task_factory("a", "Subnet")])
        assert exc_info.value.name == "a"

    def test_unknown_reference_rejected(self, resolver, task_factory):
        with pytest.raises(DependencyError) as exc_info:
            resolver.resolve([task_factory("b", properties={"vpc_id": ref("missing")})])
        assert exc_info.value.task_name == "b"
        assert exc_info.value.missing_deps == ["missing"]

    def test_cycle_reported_with_path(self, resolver, task_factory):
        tasks = [
            task_factory("a", properties={"x": ref("b")}),
            task_factory("b", properties={"x": ref("c")}),
            task_factory("c", properties={"x": ref("a")}),
        ]
        with pytest.raises(GraphCycleError) as exc_info:
            resolver.resolve(tasks)
        assert exc_info.value.cycle == ["a", "b", "c"]
        assert "a -> b -> c -> a" in str(exc_info.value)

    def test_self_reference_is_a_cycle(self, resolver, task_factory):
        with pytest.raises(GraphCycleError) as exc_info:
            resolver.resolve([task_factory("a", depends_on=["a"])])
        assert exc_info.value.cycle == ["a"]

    def test_cycle_report_is_deterministic(self, resolver, task_factory):
        def build():
            return [
                task_factory("z", properties={"x": ref("y")}),
                task_factory("y", properties={"x": ref("z")}),
                task_factory("free"),
            ]

        with pytest.raises(GraphCycleError) as exc_info:
            resolver.resolve(build())
        first = exc_info.value.cycle
        with pytest.raises(GraphCycleError) as exc_info:
            resolver.resolve(list(reversed(build())))
        second = exc_info.value.cycle
        assert first == second == ["y", "z"]

    def test_graph_errors_share_a_base(self):
        assert issubclass(GraphCycleError, GraphError)
        assert issubclass(DependencyError, GraphError)
        assert issubclass(DuplicateIdentityError, GraphError)
