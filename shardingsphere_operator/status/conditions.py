"""ComputeNode condition derivation.

Each pod is classified into a single condition type, the per-pod types are
rolled up into one summary condition for the ComputeNode, and the summary is
merged into the condition history kept in the ComputeNode's status.

All functions here are pure: timestamps are passed in and histories are
returned as new lists, never modified in place.
"""
from datetime import datetime
from typing import Dict, Iterable, List, Optional
from kubernetes_asyncio.client import V1Pod
from shardingsphere_operator.utils.helpers import format_timestamp

# Condition types
CONDITION_UNKNOWN = "Unknown"
CONDITION_PENDING = "Pending"
CONDITION_DEPLOYED = "Deployed"
CONDITION_INITIALIZED = "Initialized"
CONDITION_STARTED = "Started"
CONDITION_READY = "Ready"
CONDITION_FAILED = "Failed"

CONDITION_TYPES = (
    CONDITION_UNKNOWN,
    CONDITION_PENDING,
    CONDITION_DEPLOYED,
    CONDITION_INITIALIZED,
    CONDITION_STARTED,
    CONDITION_READY,
    CONDITION_FAILED,
)

STATUS_TRUE = "True"
STATUS_FALSE = "False"

# Pod phases
POD_PHASE_UNKNOWN = "Unknown"
POD_PHASE_PENDING = "Pending"
POD_PHASE_RUNNING = "Running"
POD_PHASE_SUCCEEDED = "Succeeded"
POD_PHASE_FAILED = "Failed"

# Pod condition types
POD_SCHEDULED = "PodScheduled"
POD_INITIALIZED = "Initialized"
POD_CONTAINERS_READY = "ContainersReady"
POD_READY = "Ready"

# Pod condition type -> ComputeNode condition type, highest priority first.
_POD_CONDITION_PRIORITY = (
    (POD_READY, CONDITION_READY),
    (POD_CONTAINERS_READY, CONDITION_STARTED),
    (POD_INITIALIZED, CONDITION_INITIALIZED),
    (POD_SCHEDULED, CONDITION_DEPLOYED),
)

_POD_PHASE_CONDITIONS = {
    POD_PHASE_UNKNOWN: CONDITION_UNKNOWN,
    POD_PHASE_PENDING: CONDITION_PENDING,
    POD_PHASE_FAILED: CONDITION_FAILED,
}

# Rollup order after the "all unknown" check: (type, reason, message).
_ROLLUP_PRIORITY = (
    (CONDITION_READY, "PodReady", "Some pods are ready"),
    (CONDITION_STARTED, "PodStarted", "Some pods are started"),
    (CONDITION_INITIALIZED, "PodInitialized", "Some pods are initialized"),
    (CONDITION_DEPLOYED, "PodDeployed", "Some pods are deployed"),
    (CONDITION_PENDING, "PodPending", "Some pods are pending"),
    (CONDITION_FAILED, "PodFailed", "Some pods are failed"),
)


def new_condition(condition_type: str, reason: str, message: str, now: datetime) -> Dict:
    """Build an asserted condition of the given type."""
    if condition_type not in CONDITION_TYPES:
        raise ValueError(f"Unsupported condition type: {condition_type}")
    ts = format_timestamp(now)
    return {
        "type": condition_type,
        "status": STATUS_TRUE,
        "lastUpdateTime": ts,
        "lastTransitionTime": ts,
        "reason": reason,
        "message": message,
    }


def pod_condition_is_true(pod: V1Pod, condition_type: str) -> bool:
    conditions = (pod.status.conditions if pod.status else None) or []
    return any(
        c.type == condition_type and c.status == STATUS_TRUE for c in conditions
    )


def classify_pod(pod: V1Pod) -> Optional[str]:
    """Return the condition type that best describes a single pod.

    Returns None when the pod is running (or succeeded) but has not yet
    reported any of the conditions we look at.
    """
    phase = pod.status.phase if pod.status else None
    if phase in _POD_PHASE_CONDITIONS:
        return _POD_PHASE_CONDITIONS[phase]

    for pod_condition, condition_type in _POD_CONDITION_PRIORITY:
        if pod_condition_is_true(pod, pod_condition):
            return condition_type
    return None


def rollup_conditions(pods: Iterable[V1Pod], now: datetime) -> Optional[Dict]:
    """Summarize the pods of a ComputeNode into one condition.

    A single ready pod is enough for the ComputeNode to report Ready.
    """
    classified = [classify_pod(pod) for pod in pods]
    if not classified:
        return new_condition(
            CONDITION_UNKNOWN, "PodNotFound", "No pod was found", now
        )

    if all(t == CONDITION_UNKNOWN for t in classified):
        return new_condition(
            CONDITION_UNKNOWN, "PodUnknown", "All pods are unknown", now
        )

    for condition_type, reason, message in _ROLLUP_PRIORITY:
        if condition_type in classified:
            return new_condition(condition_type, reason, message, now)
    return None


def merge_conditions(conditions: Optional[List[Dict]], cond: Optional[Dict]) -> List[Dict]:
    """Merge a summary condition into an ordered condition history.

    An entry of the same type is replaced in place, otherwise the condition is
    appended. Unknown retires every other entry; any other type retires a
    previous Unknown entry. Untouched entries get their update time refreshed.
    """
    merged = [dict(c) for c in (conditions or [])]
    if cond is None:
        return merged

    found = False
    for idx, existing in enumerate(merged):
        if existing.get("type") == cond["type"]:
            merged[idx] = dict(cond)
            found = True
            continue
        if cond["type"] == CONDITION_UNKNOWN or existing.get("type") == CONDITION_UNKNOWN:
            existing["status"] = STATUS_FALSE
        existing["lastUpdateTime"] = cond["lastUpdateTime"]

    if not found:
        merged.append(dict(cond))
    return merged
