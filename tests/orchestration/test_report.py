"""Tests for infraspine.orchestration.report — task records and run outcome."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from infraspine.core.errors import ProviderAPIError
from infraspine.orchestration.exceptions import RunFailedError
from infraspine.orchestration.report import RunReport, RunStatus, TaskExecution, TaskState
from infraspine.tasks.changeset import ChangeKind, Changeset


def _report(**records: TaskExecution) -> RunReport:
    return RunReport(
        run_id="r1",
        target="direct",
        waves=[sorted(records)],
        tasks=records,
        started_at=datetime.now(UTC),
    )


class TestTaskState:
    def test_terminal_states(self):
        terminal = {state for state in TaskState if state.is_terminal}
        assert terminal == {TaskState.DONE, TaskState.FAILED, TaskState.BLOCKED, TaskState.TIMED_OUT}

    def test_failure_states(self):
        assert not TaskState.DONE.is_failure
        assert TaskState.BLOCKED.is_failure


class TestTaskExecution:
    """Tests for the per-task state record."""

    def test_transitions_are_recorded(self):
        record = TaskExecution(name="a", kind="VPC", wave=0)
        record.transition(TaskState.DIFFING)
        record.finish({"id": "vpc-1"})
        assert record.history == [TaskState.PENDING, TaskState.DIFFING, TaskState.DONE]
        assert record.outputs == {"id": "vpc-1"}
        assert record.duration_seconds is not None

    def test_block(self):
        record = TaskExecution(name="b", kind="Subnet", wave=1)
        record.block("a")
        assert record.state is TaskState.BLOCKED
        assert record.to_dict()["blocked_by"] == "a"

    def test_error_serialization(self):
        record = TaskExecution(name="a", kind="VPC", wave=0)
        record.fail(ProviderAPIError("denied", code="UnauthorizedOperation"))
        data = record.to_dict()
        assert data["state"] == "failed"
        assert data["error"]["code"] == "UnauthorizedOperation"

    def test_plain_exception_serialization(self):
        record = TaskExecution(name="a", kind="VPC", wave=0)
        record.fail(ValueError("bad"))
        assert record.to_dict()["error"] == {"error_type": "ValueError", "message": "bad"}

    def test_changed(self):
        record = TaskExecution(name="a", kind="VPC", wave=0)
        record.changeset = Changeset(ChangeKind.CREATE)
        record.finish({})
        assert record.changed is True


class TestRunReport:
    """Tests for the aggregated run outcome."""

    def test_all_done_succeeds(self):
        a = TaskExecution(name="a", kind="VPC", wave=0)
        a.finish({})
        report = _report(a=a)
        assert report.status is RunStatus.SUCCEEDED
        report.raise_for_status()

    def test_any_failure_fails_the_run(self):
        a = TaskExecution(name="a", kind="VPC", wave=0)
        a.finish({})
        b = TaskExecution(name="b", kind="VPC", wave=0)
        b.time_out(RuntimeError("slow"))
        report = _report(a=a, b=b)
        assert report.status is RunStatus.FAILED
        assert report.timed_out_tasks == ["b"]
        with pytest.raises(RunFailedError, match="1 timed out"):
            report.raise_for_status()

    def test_change_counts(self):
        a = TaskExecution(name="a", kind="VPC", wave=0)
        a.changeset = Changeset(ChangeKind.CREATE)
        b = TaskExecution(name="b", kind="VPC", wave=0)
        b.changeset = Changeset(ChangeKind.NO_CHANGE)
        counts = _report(a=a, b=b).change_counts()
        assert counts["create"] == 1
        assert counts["no_change"] == 1
        assert counts["update"] == 0

    def test_summary_lists_every_task(self):
        a = TaskExecution(name="a", kind="VPC", wave=0)
        a.fail(ValueError("boom"))
        b = TaskExecution(name="b", kind="Subnet", wave=1)
        b.block("a")
        summary = _report(a=a, b=b).summary()
        assert "[failed] VPC/a: boom" in summary
        assert "[blocked] Subnet/b (blocked by a)" in summary

    def test_to_dict(self):
        a = TaskExecution(name="a", kind="VPC", wave=0)
        a.finish({})
        data = _report(a=a).to_dict()
        assert data["status"] == "succeeded"
        assert data["tasks"]["a"]["state"] == "done"
