"""
Shared pytest fixtures and configuration for infraspine tests.

This module provides:
- Zero-delay settings so NotReady retries don't slow the suite
- An in-memory cloud provider
- The three-tier network/subnet/instance task set used across tests
- A fake clock for deadline tests

Usage:
    Fixtures are auto-discovered by pytest. Use them as function arguments.
"""

from __future__ import annotations

import threading
from pathlib import Path

import pytest

from infraspine.core.settings import Settings
from infraspine.execution.retry import ConstantBackoff
from infraspine.providers.memory import InMemoryProvider
from infraspine.tasks.task import BootstrapData, Lifecycle, ResourceTask, ref

# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)

        if "integration" in str(test_path):
            item.add_marker(pytest.mark.integration)

        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration", "slow"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Settings / retry
# =============================================================================


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings isolated from the environment, with instant retries."""
    return Settings(
        _env_file=None,
        out_dir=tmp_path / "out",
        max_concurrency=2,
        deadline_seconds=None,
        max_task_duration_seconds=None,
        retry_max_attempts=5,
        retry_base_delay=0.0,
        retry_max_delay=0.0,
        retry_jitter=False,
    )


@pytest.fixture
def instant_retry() -> ConstantBackoff:
    return ConstantBackoff(max_retries=5, delay=0.0)


# =============================================================================
# Provider / tasks
# =============================================================================


@pytest.fixture
def provider() -> InMemoryProvider:
    return InMemoryProvider()


def make_task(name: str, kind: str = "VPC", **kwargs) -> ResourceTask:
    """Build a ResourceTask with AWS resource types filled in from the kind."""
    types = {
        "VPC": ("aws_vpc", "AWS::EC2::VPC"),
        "Subnet": ("aws_subnet", "AWS::EC2::Subnet"),
        "Instance": ("aws_instance", "AWS::EC2::Instance"),
        "SecurityGroup": ("aws_security_group", "AWS::EC2::SecurityGroup"),
        "IAMRole": ("aws_iam_role", "AWS::IAM::Role"),
    }
    terraform_type, cloudformation_type = types.get(kind, (None, None))
    kwargs.setdefault("terraform_type", terraform_type)
    kwargs.setdefault("cloudformation_type", cloudformation_type)
    return ResourceTask(name=name, kind=kind, **kwargs)


@pytest.fixture
def task_factory():
    """Factory for ResourceTasks: ``task_factory("network", "VPC", properties=...)``."""
    return make_task


@pytest.fixture
def three_tier_tasks() -> list[ResourceTask]:
    """Network -> Subnet -> Instance, the canonical three-wave graph."""
    return [
        make_task("network", "VPC", properties={"cidr_block": "10.0.0.0/16"}),
        make_task(
            "subnet-a",
            "Subnet",
            properties={"vpc_id": ref("network"), "cidr_block": "10.0.1.0/24"},
        ),
        make_task(
            "instance",
            "Instance",
            properties={
                "subnet_id": ref("subnet-a"),
                "instance_type": "t3.medium",
                "user_data": BootstrapData.from_text("#!/bin/bash\necho hello\n"),
            },
        ),
    ]


@pytest.fixture
def shared_vpc_task() -> ResourceTask:
    """An existing VPC the run must not manage."""
    return make_task(
        "shared-vpc",
        "VPC",
        lifecycle=Lifecycle.MUST_EXIST,
        properties={"id": "vpc-12345678", "cidr_block": "172.20.0.0/16"},
    )


# =============================================================================
# Fake clock
# =============================================================================


class FakeClock:
    """Monotonic clock that only moves when told to; ``sleep`` advances it."""

    def __init__(self, start: float = 1000.0):
        self._now = start
        self._lock = threading.Lock()
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        with self._lock:
            return self._now

    def advance(self, seconds: float) -> None:
        with self._lock:
            self._now += seconds

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(seconds)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()
