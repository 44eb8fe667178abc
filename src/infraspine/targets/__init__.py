"""
Targets — where a run's changes go.

A run is bound to exactly one target for its whole duration:

- ``DirectTarget``: apply changes live through a ``CloudProvider``
- ``DryRunTarget``: diff against actual state and report, never mutate
- ``TerraformTarget``: render ``kubernetes.tf`` / ``kubernetes.tf.json``
- ``CloudFormationTarget``: render ``kubernetes.json``

Use ``build_target(settings, provider)`` to choose from configuration.
"""

from infraspine.targets.base import RenderingTarget, Target
from infraspine.targets.cloudformation import CloudFormationTarget, extract_user_data, logical_id
from infraspine.targets.direct import DirectTarget
from infraspine.targets.dry_run import DryRunTarget, PlannedChange, placeholder
from infraspine.targets.factory import build_target
from infraspine.targets.terraform import TerraformExpression, TerraformTarget, terraform_name

__all__ = [
    "CloudFormationTarget",
    "DirectTarget",
    "DryRunTarget",
    "PlannedChange",
    "RenderingTarget",
    "Target",
    "TerraformExpression",
    "TerraformTarget",
    "build_target",
    "extract_user_data",
    "logical_id",
    "placeholder",
    "terraform_name",
]
