from datetime import datetime
from typing import Dict, Iterable, List, Optional
from kubernetes_asyncio.client import V1Pod
from shardingsphere_operator.types.models import ComputeNodeSpec
from shardingsphere_operator.status.conditions import (
    POD_PHASE_RUNNING,
    POD_READY,
    pod_condition_is_true,
    rollup_conditions,
    merge_conditions,
)

PHASE_READY = "Ready"
PHASE_NOT_READY = "NotReady"


def proxy_container_ready(pod: V1Pod, container_name: str) -> bool:
    statuses = (pod.status.container_statuses if pod.status else None) or []
    return any(s.name == container_name and s.ready for s in statuses)


def count_ready_proxy_instances(pods: Iterable[V1Pod], container_name: str) -> int:
    """Count running, ready pods whose proxy container reports ready."""
    return sum(
        1
        for pod in pods
        if pod.status
        and pod.status.phase == POD_PHASE_RUNNING
        and pod_condition_is_true(pod, POD_READY)
        and proxy_container_ready(pod, container_name)
    )


def project_status(
    spec: ComputeNodeSpec,
    pods: List[V1Pod],
    load_balancer: Dict,
    conditions: Optional[List[Dict]],
    now: datetime,
    container_name: str,
) -> Dict:
    """Compute the ComputeNode status from live pods and the service load balancer."""
    ready = count_ready_proxy_instances(pods, container_name)
    return {
        "phase": PHASE_READY if ready > 0 else PHASE_NOT_READY,
        "readyInstances": ready,
        "ready": f"{ready}/{spec.replicas}",
        "loadBalancer": load_balancer,
        "conditions": merge_conditions(conditions, rollup_conditions(pods, now)),
    }
