"""
End-to-end cluster update scenarios.

A minimal cluster (network, security, cluster phases) is applied live against
the in-memory provider, planned with the dry-run target and rendered to
Terraform (HCL and JSON) and CloudFormation, mirroring how an operator would
drive ``update cluster`` against each target.
"""

from __future__ import annotations

import json

import pytest
import yaml

from infraspine.orchestration.exceptions import LifecycleViolation
from infraspine.orchestration.executor import Executor
from infraspine.orchestration.report import TaskState
from infraspine.targets import (
    CloudFormationTarget,
    DirectTarget,
    DryRunTarget,
    TerraformTarget,
    extract_user_data,
)
from infraspine.tasks.task import BootstrapData, Lifecycle, Phase, ref

CLUSTER = "minimal.example.com"


@pytest.fixture
def cluster_tasks(task_factory):
    """Minimal cluster: one VPC, subnet, security group, IAM role and master instance."""
    tags = {"KubernetesCluster": CLUSTER}
    return [
        task_factory(
            "network",
            "VPC",
            phase=Phase.NETWORK,
            properties={"cidr_block": "172.20.0.0/16", "tags": tags},
        ),
        task_factory(
            "subnet-a",
            "Subnet",
            phase=Phase.NETWORK,
            properties={"vpc_id": ref("network"), "cidr_block": "172.20.32.0/19", "tags": tags},
        ),
        task_factory(
            "masters-sg",
            "SecurityGroup",
            phase=Phase.SECURITY,
            properties={"vpc_id": ref("network"), "description": "Security group for masters"},
        ),
        task_factory(
            "masters-role",
            "IAMRole",
            phase=Phase.SECURITY,
            properties={"path": "/"},
        ),
        task_factory(
            "master",
            "Instance",
            phase=Phase.CLUSTER,
            properties={
                "subnet_id": ref("subnet-a"),
                "security_group_ids": [ref("masters-sg")],
                "iam_role": ref("masters-role"),
                "instance_type": "m3.medium",
                "user_data": BootstrapData.from_text("#!/bin/bash\r\nnodeup --conf=/etc/kops.yaml\r\n"),
            },
        ),
    ]


def _apply(provider, settings, tasks, **updates):
    return Executor(DirectTarget(provider), settings.model_copy(update=updates)).run(tasks)


class TestLiveApply:
    """Applying the cluster through the provider."""

    def test_full_run(self, provider, settings, cluster_tasks):
        report = _apply(provider, settings, cluster_tasks)

        assert report.succeeded, report.summary()
        assert report.waves == [["masters-role", "network"], ["masters-sg", "subnet-a"], ["master"]]
        master = provider.find("Instance", "master")
        assert master["subnet_id"] == "subnet-0001"
        assert master["security_group_ids"] == ["securitygroup-0001"]
        assert master["iam_role"] == "iamrole-0001"

    def test_second_run_changes_nothing(self, provider, settings, cluster_tasks):
        _apply(provider, settings, cluster_tasks)
        creates = len(provider.calls_for("create"))

        report = _apply(provider, settings, cluster_tasks)

        assert report.succeeded, report.summary()
        assert report.change_counts()["no_change"] == 5
        assert len(provider.calls_for("create")) == creates
        assert provider.calls_for("update") == []

    def test_dry_run_after_apply(self, provider, settings, cluster_tasks):
        _apply(provider, settings, cluster_tasks)
        target = DryRunTarget(provider)

        report = Executor(target, settings).run(cluster_tasks)

        assert report.succeeded, report.summary()
        assert target.render_plan() == "No changes need to be applied\n"

    def test_eventual_consistency(self, provider, settings, cluster_tasks):
        provider.fail_not_ready("Subnet", "subnet-a", times=2)

        report = _apply(provider, settings, cluster_tasks)

        assert report.succeeded, report.summary()
        assert report.tasks["subnet-a"].attempts == 3
        assert report.state_of("master") is TaskState.DONE


class TestPhases:
    """Bringing the cluster up one phase at a time."""

    def test_phases_in_order(self, provider, settings, cluster_tasks):
        network = _apply(provider, settings, cluster_tasks, phase=Phase.NETWORK)
        assert sorted(network.tasks) == ["network", "subnet-a"]
        assert network.succeeded

        security = _apply(provider, settings, cluster_tasks, phase=Phase.SECURITY)
        assert sorted(security.tasks) == ["masters-role", "masters-sg", "network", "subnet-a"]
        assert security.tasks["network"].changeset.kind.value == "no_change"
        assert security.tasks["masters-sg"].changeset.kind.value == "create"

        cluster = _apply(provider, settings, cluster_tasks, phase=Phase.CLUSTER)
        assert cluster.succeeded, cluster.summary()
        assert cluster.done_tasks == ["master", "masters-role", "masters-sg", "network", "subnet-a"]
        assert provider.calls_for("create")[-1] == ("Instance", "master")

    def test_later_phase_without_earlier_phase(self, provider, settings, cluster_tasks):
        report = _apply(provider, settings, cluster_tasks, phase=Phase.SECURITY)

        assert isinstance(report.tasks["network"].error, LifecycleViolation)
        assert report.state_of("masters-sg") is TaskState.BLOCKED
        assert report.state_of("masters-role") is TaskState.DONE
        assert provider.find("VPC", "network") is None

    def test_caller_tasks_untouched(self, provider, settings, cluster_tasks):
        _apply(provider, settings, cluster_tasks, phase=Phase.CLUSTER)
        assert {task.lifecycle for task in cluster_tasks} == {Lifecycle.SYNC}


class TestLifecycleOverrides:
    """Overriding the lifecycle of a resource kind on an existing cluster."""

    @pytest.fixture
    def drifted(self, provider, settings, cluster_tasks):
        assert _apply(provider, settings, cluster_tasks).succeeded
        provider.update("IAMRole", "masters-role", {}, {"path": "/legacy/"})
        return provider

    def test_warn_on_drift_applies(self, drifted, settings, cluster_tasks):
        report = _apply(
            drifted,
            settings,
            cluster_tasks,
            lifecycle_overrides={"IAMRole": Lifecycle.MUST_EXIST_AND_WARN_ON_DRIFT},
        )

        assert report.succeeded, report.summary()
        assert report.tasks["masters-role"].changeset.changed_fields() == ["path"]
        assert drifted.find("IAMRole", "masters-role")["path"] == "/"

    def test_verify_rejects_drift(self, drifted, settings, cluster_tasks):
        report = _apply(
            drifted,
            settings,
            cluster_tasks,
            lifecycle_overrides={"IAMRole": Lifecycle.MUST_EXIST_AND_VERIFY},
        )

        assert isinstance(report.tasks["masters-role"].error, LifecycleViolation)
        assert report.state_of("master") is TaskState.BLOCKED
        assert drifted.find("IAMRole", "masters-role")["path"] == "/legacy/"


class TestRenderedDocuments:
    """Rendering the same cluster to Terraform and CloudFormation."""

    def test_terraform_hcl(self, settings, cluster_tasks, tmp_path):
        target = TerraformTarget(out_dir=tmp_path / "tf", providers={"aws": {"region": "us-test-1"}})
        report = Executor(target, settings).run(cluster_tasks)

        assert report.succeeded, report.summary()
        document = (tmp_path / "tf" / "kubernetes.tf").read_text()
        assert document.startswith('provider "aws" {')
        assert "aws_security_group.masters-sg.id" in document
        assert "subnet_id          = aws_subnet.subnet-a.id" in document
        assert (tmp_path / "tf" / "data" / "aws_instance_master_user_data").read_bytes().startswith(b"#!/bin/bash")

    def test_terraform_json(self, settings, cluster_tasks, tmp_path):
        target = TerraformTarget(out_dir=tmp_path / "tfjson", json_output=True)
        assert Executor(target, settings).run(cluster_tasks).succeeded

        document = json.loads((tmp_path / "tfjson" / "kubernetes.tf.json").read_text())
        master = document["resource"]["aws_instance"]["master"]
        assert master["subnet_id"] == "${aws_subnet.subnet-a.id}"
        assert master["security_group_ids"] == ["${aws_security_group.masters-sg.id}"]
        assert master["user_data"] == '${filebase64("${path.module}/data/aws_instance_master_user_data")}'
        assert document["terraform"] == {"required_version": ">= 0.15.0"}

    def test_terraform_is_deterministic(self, settings, cluster_tasks):
        first = TerraformTarget()
        second = TerraformTarget()
        Executor(first, settings).run(cluster_tasks)
        Executor(second, settings).run(list(reversed(cluster_tasks)))
        assert first.files() == second.files()

    def test_cloudformation_with_extracted_user_data(self, settings, cluster_tasks, tmp_path):
        target = CloudFormationTarget(out_dir=tmp_path / "cfn")
        assert Executor(target, settings).run(cluster_tasks).succeeded

        rendered = (tmp_path / "cfn" / "kubernetes.json").read_text()
        template, user_data = extract_user_data(rendered)

        resources = json.loads(template)["Resources"]
        assert sorted(resources) == [
            "AWSEC2Instancemaster",
            "AWSEC2SecurityGroupmasterssg",
            "AWSEC2Subnetsubneta",
            "AWSEC2VPCnetwork",
            "AWSIAMRolemastersrole",
        ]
        assert resources["AWSEC2Instancemaster"]["Properties"]["SecurityGroupIds"] == [
            {"Ref": "AWSEC2SecurityGroupmasterssg"},
        ]
        assert yaml.safe_load(user_data) == {
            "AWSEC2Instancemaster.Properties.UserData": "#!/bin/bash\nnodeup --conf=/etc/kops.yaml\n",
        }
