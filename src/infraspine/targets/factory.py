"""Target factory — the single construction-time choice of backend."""

from __future__ import annotations

from typing import Any

from infraspine.core.errors import ConfigError
from infraspine.core.settings import Settings, TargetKind
from infraspine.providers.base import CloudProvider
from infraspine.targets.base import Target
from infraspine.targets.cloudformation import CloudFormationTarget
from infraspine.targets.direct import DirectTarget
from infraspine.targets.dry_run import DryRunTarget
from infraspine.targets.terraform import TerraformTarget


def build_target(
    settings: Settings,
    provider: CloudProvider | None = None,
    terraform_providers: dict[str, dict[str, Any]] | None = None,
) -> Target:
    """
    Build the target named by ``settings.target``.

    Args:
        settings: Run settings; ``target``, ``out_dir`` and
            ``terraform_json_output`` are read
        provider: Required for the direct target, optional for the dry run,
            ignored by the renderers
        terraform_providers: ``provider`` blocks for the Terraform document

    Raises:
        ConfigError: If the direct target is requested without a provider
    """
    kind = settings.target

    if kind is TargetKind.DIRECT:
        if provider is None:
            raise ConfigError("The direct target needs a cloud provider")
        return DirectTarget(provider)

    if kind is TargetKind.DRY_RUN:
        return DryRunTarget(provider)

    if kind is TargetKind.TERRAFORM:
        return TerraformTarget(
            out_dir=settings.out_dir,
            json_output=settings.terraform_json_output,
            providers=terraform_providers,
        )

    if kind is TargetKind.CLOUDFORMATION:
        return CloudFormationTarget(out_dir=settings.out_dir)

    raise ConfigError(f"Unknown target: {kind}")
