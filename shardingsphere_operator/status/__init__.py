from .conditions import (
    CONDITION_TYPES,
    classify_pod,
    new_condition,
    rollup_conditions,
    merge_conditions,
)
from .projector import count_ready_proxy_instances, project_status

__all__ = [
    "CONDITION_TYPES",
    "classify_pod",
    "new_condition",
    "rollup_conditions",
    "merge_conditions",
    "count_ready_proxy_instances",
    "project_status",
]
