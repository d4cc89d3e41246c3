from .computenode_spec import (
    PortBindingSchema,
    LabelSelectorSchema,
    ComputeNodeProbesSchema,
    ComputeNodeBootstrapSchema,
    ComputeNodeSpecSchema,
)

__all__ = [
    "PortBindingSchema",
    "LabelSelectorSchema",
    "ComputeNodeProbesSchema",
    "ComputeNodeBootstrapSchema",
    "ComputeNodeSpecSchema",
]
