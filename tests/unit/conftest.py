"""Shared fixtures for ComputeNode operator unit tests."""

import copy
import pytest
from unittest.mock import AsyncMock, MagicMock
from kubernetes_asyncio.client import (
    V1ContainerStatus,
    V1LoadBalancerIngress,
    V1LoadBalancerStatus,
    V1ObjectMeta,
    V1Pod,
    V1PodCondition,
    V1PodStatus,
    V1Service,
    V1ServicePort,
    V1ServiceSpec,
    V1ServiceStatus,
)
from kubernetes_asyncio.client.api_client import ApiClient
from shardingsphere_operator.resources.computenode import ComputeNode
from shardingsphere_operator.types.settings import Settings

PROXY_CONTAINER = "shardingsphere-proxy"

COMPUTE_NODE_BODY = {
    "apiVersion": "shardingsphere.apache.org/v1alpha1",
    "kind": "ComputeNode",
    "metadata": {
        "name": "proxy",
        "namespace": "default",
        "uid": "0c2f5a4e-uid",
        "generation": 2,
        "resourceVersion": "100",
    },
    "spec": {
        "replicas": 3,
        "serviceType": "NodePort",
        "serverVersion": "5.3.1",
        "selector": {"matchLabels": {"app": "proxy"}},
        "portBindings": [
            {
                "name": "server",
                "containerPort": 3307,
                "servicePort": 3307,
                "protocol": "TCP",
            }
        ],
        "bootstrap": {
            "serverConfig": {
                "authority": {"users": [{"user": "root@%", "password": "root"}]},
                "props": {"proxy-frontend-database-protocol-type": "MySQL"},
            }
        },
    },
}


@pytest.fixture
def make_pod():
    """Factory for pods with a given phase, pod conditions and proxy readiness."""

    def _make_pod(phase="Running", true_conditions=(), false_conditions=(), proxy_ready=None, container=PROXY_CONTAINER):
        conditions = [V1PodCondition(type=t, status="True") for t in true_conditions]
        conditions += [V1PodCondition(type=t, status="False") for t in false_conditions]
        container_statuses = None
        if proxy_ready is not None:
            container_statuses = [
                V1ContainerStatus(
                    name=container,
                    ready=proxy_ready,
                    image="apache/shardingsphere-proxy:5.3.1",
                    image_id="",
                    restart_count=0,
                )
            ]
        return V1Pod(
            metadata=V1ObjectMeta(name="proxy-pod", namespace="default"),
            status=V1PodStatus(
                phase=phase,
                conditions=conditions or None,
                container_statuses=container_statuses,
            ),
        )

    return _make_pod


@pytest.fixture
def make_service():
    """Factory for a live service as read from the cluster."""

    def _make_service(service_type="NodePort", ports=None, cluster_ip="10.96.0.12", cluster_ips=None, ingress_ip=None):
        ingress = [V1LoadBalancerIngress(ip=ingress_ip)] if ingress_ip else None
        return V1Service(
            metadata=V1ObjectMeta(
                name="proxy",
                namespace="default",
                uid="svc-uid",
                resource_version="55",
                labels={"app": "proxy"},
            ),
            spec=V1ServiceSpec(
                type=service_type,
                cluster_ip=cluster_ip,
                cluster_ips=cluster_ips or [cluster_ip],
                ports=ports
                if ports is not None
                else [V1ServicePort(name="server", port=3307, node_port=30080)],
            ),
            status=V1ServiceStatus(load_balancer=V1LoadBalancerStatus(ingress=ingress)),
        )

    return _make_service


@pytest.fixture
def compute_node_body():
    return copy.deepcopy(COMPUTE_NODE_BODY)


@pytest.fixture
async def api_client():
    client = ApiClient()
    yield client
    await client.close()


@pytest.fixture
def make_compute_node(compute_node_body, api_client):
    """Factory for a ComputeNode wired to mocked API clients."""

    def _make_compute_node(spec_overrides=None, body=None):
        body = body or compute_node_body
        body["spec"].update(spec_overrides or {})
        node = ComputeNode.from_body(body)
        node.conf = Settings(status_update_max_retries=3, requeue_delay_seconds=10.0)
        node.sensor = MagicMock()
        node._api_client = api_client
        node._apps_v1_api = AsyncMock()
        node._core_v1_api = AsyncMock()
        node._custom_objects_api = AsyncMock()
        return node

    return _make_compute_node


@pytest.fixture
def compute_node(make_compute_node):
    return make_compute_node()
