from .computenode_spec import (
    PortBinding,
    LabelSelector,
    ComputeNodeProbes,
    ComputeNodeBootstrap,
    ComputeNodeSpec,
)
from .computenode_resources import ComputeNodeResources
from .reconcile_result import ReconcileResult

__all__ = [
    "PortBinding",
    "LabelSelector",
    "ComputeNodeProbes",
    "ComputeNodeBootstrap",
    "ComputeNodeSpec",
    "ComputeNodeResources",
    "ReconcileResult",
]
