"""Tests for infraspine.tasks.changeset — diffing and lifecycle classification."""

from __future__ import annotations

import base64

import pytest

from infraspine.tasks.changeset import ChangeKind, Changeset, FieldChange, classify, compute_changes
from infraspine.tasks.task import BootstrapData, Lifecycle


class TestComputeChanges:
    """Tests for field-level diffing."""

    def test_identical_payload_has_no_changes(self):
        assert compute_changes({"cidr_block": "10.0.0.0/16"}, {"cidr_block": "10.0.0.0/16"}) == {}

    def test_only_desired_keys_are_compared(self):
        """Provider-assigned attributes such as ``id`` are not drift."""
        changes = compute_changes({"cidr_block": "10.0.0.0/16"}, {"cidr_block": "10.0.0.0/16", "id": "vpc-1"})
        assert changes == {}

    def test_differing_field_is_reported(self):
        changes = compute_changes({"cidr_block": "10.0.2.0/24"}, {"cidr_block": "10.0.1.0/24"})
        assert changes == {
            "cidr_block": FieldChange(field="cidr_block", actual="10.0.1.0/24", desired="10.0.2.0/24"),
        }

    def test_missing_actual_field_is_a_change(self):
        changes = compute_changes({"tags": {"Name": "a"}}, {})
        assert changes["tags"].actual is None

    def test_bootstrap_data_matches_base64_actual(self):
        payload = BootstrapData.from_text("#!/bin/bash\n")
        actual = {"user_data": base64.b64encode(b"#!/bin/bash\n").decode()}
        assert compute_changes({"user_data": payload}, actual) == {}

    def test_bootstrap_data_matches_plain_text_actual(self):
        payload = BootstrapData.from_text("#!/bin/bash\n")
        assert compute_changes({"user_data": payload}, {"user_data": "#!/bin/bash\n"}) == {}

    def test_bootstrap_data_drift(self):
        payload = BootstrapData.from_text("new")
        changes = compute_changes({"user_data": payload}, {"user_data": "old"})
        assert list(changes) == ["user_data"]


class TestClassify:
    """Tests for the lifecycle × state classification table."""

    @pytest.mark.parametrize(
        ("lifecycle", "expected"),
        [
            (Lifecycle.SYNC, ChangeKind.CREATE),
            (Lifecycle.MUST_EXIST, ChangeKind.FORBIDDEN),
            (Lifecycle.MUST_EXIST_AND_WARN_ON_DRIFT, ChangeKind.FORBIDDEN),
            (Lifecycle.MUST_EXIST_AND_VERIFY, ChangeKind.FORBIDDEN),
        ],
    )
    def test_absent_resource(self, lifecycle, expected):
        assert classify(lifecycle, {"a": 1}, None).kind is expected

    @pytest.mark.parametrize("lifecycle", list(Lifecycle))
    def test_matching_resource_is_no_change(self, lifecycle):
        assert classify(lifecycle, {"a": 1}, {"a": 1, "id": "x"}).kind is ChangeKind.NO_CHANGE

    @pytest.mark.parametrize(
        ("lifecycle", "expected"),
        [
            (Lifecycle.SYNC, ChangeKind.UPDATE),
            (Lifecycle.MUST_EXIST, ChangeKind.UPDATE),
            (Lifecycle.MUST_EXIST_AND_WARN_ON_DRIFT, ChangeKind.UPDATE),
            (Lifecycle.MUST_EXIST_AND_VERIFY, ChangeKind.FORBIDDEN),
        ],
    )
    def test_drifted_resource(self, lifecycle, expected):
        assert classify(lifecycle, {"a": 2}, {"a": 1}).kind is expected

    def test_forbidden_create_has_reason(self):
        changeset = classify(Lifecycle.MUST_EXIST, {"a": 1}, None)
        assert "MustExist" in changeset.reason
        assert "does not exist" in changeset.reason

    def test_forbidden_drift_keeps_changes(self):
        changeset = classify(Lifecycle.MUST_EXIST_AND_VERIFY, {"a": 2}, {"a": 1})
        assert changeset.changed_fields() == ["a"]


class TestChangeset:
    """Tests for the Changeset value object."""

    def test_no_change_has_no_changes(self):
        assert Changeset(ChangeKind.NO_CHANGE).has_changes is False

    def test_create_has_changes(self):
        assert Changeset(ChangeKind.CREATE).has_changes is True

    def test_to_dict(self):
        changeset = classify(Lifecycle.SYNC, {"a": 2}, {"a": 1})
        data = changeset.to_dict()
        assert data["kind"] == "update"
        assert data["fields"] == ["a"]
