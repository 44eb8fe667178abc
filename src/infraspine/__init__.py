"""
infraspine - cloud infrastructure task graph engine.

Declare the resources a cluster needs as tasks, link them with references,
and run the graph against one target: apply live through a cloud provider,
preview a dry run, or render a Terraform / CloudFormation document.

Example::

    from infraspine import Executor, ResourceTask, ref
    from infraspine.providers import InMemoryProvider
    from infraspine.targets import DirectTarget

    tasks = [
        ResourceTask(name="network", kind="VPC", properties={"cidr_block": "10.0.0.0/16"}),
        ResourceTask(name="subnet-a", kind="Subnet", properties={"vpc_id": ref("network")}),
    ]
    report = Executor(DirectTarget(InMemoryProvider())).run(tasks)
    print(report.summary())
"""

__version__ = "0.1.0"

from infraspine.core.errors import InfraError, NotReadyError, ProviderAPIError
from infraspine.core.settings import Settings, TargetKind, get_settings
from infraspine.orchestration import Executor, RunReport, TaskState
from infraspine.tasks import BootstrapData, Lifecycle, Phase, Reference, ResourceTask, Task, ref

__all__ = [
    "BootstrapData",
    "Executor",
    "InfraError",
    "Lifecycle",
    "NotReadyError",
    "Phase",
    "ProviderAPIError",
    "Reference",
    "ResourceTask",
    "RunReport",
    "Settings",
    "TargetKind",
    "Task",
    "TaskState",
    "get_settings",
    "ref",
    "__version__",
]
