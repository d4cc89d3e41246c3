import copy
import kopf
import yaml
import logging
from logging import Logger
from typing import Any, Awaitable, Dict, List, Optional
from kubernetes_asyncio.client import (
    ApiException,
    AppsV1Api,
    CoreV1Api,
    CustomObjectsApi,
    V1ObjectMeta,
    V1OwnerReference,
    V1Deployment,
    V1DeploymentSpec,
    V1LabelSelector,
    V1PodTemplateSpec,
    V1PodSpec,
    V1Container,
    V1ContainerPort,
    V1EnvVar,
    V1ResourceRequirements,
    V1Volume,
    V1VolumeMount,
    V1ConfigMapVolumeSource,
    V1ConfigMap,
    V1Service,
    V1ServiceSpec,
    V1ServicePort,
)
from kubernetes_asyncio.client.api_client import ApiClient

from shardingsphere_operator.resources.base import BaseResource
from shardingsphere_operator.common.models.labels import Labels
from shardingsphere_operator.sensors import OperatorSensor
from shardingsphere_operator.status import project_status
from shardingsphere_operator.types.settings import Settings
from shardingsphere_operator.types.models import (
    ComputeNodeResources,
    ComputeNodeSpec,
    PortBinding,
)
from shardingsphere_operator.types.schemas import (
    ComputeNodeSpecSchema,
    PortBindingSchema,
)
from shardingsphere_operator.utils.errors import conflict_error
from shardingsphere_operator.utils.helpers import utc_now

SERVICE_TYPE_CLUSTER_IP = "ClusterIP"
SERVICE_TYPE_NODE_PORT = "NodePort"
SERVICE_TYPE_LOAD_BALANCER = "LoadBalancer"

DEFAULT_LOGBACK_CONFIG = """<?xml version="1.0"?>
<configuration>
    <appender name="console" class="ch.qos.logback.core.ConsoleAppender">
        <encoder>
            <pattern>[%-5level] %d{yyyy-MM-dd HH:mm:ss.SSS} [%thread] %logger{36} - %msg%n</pattern>
        </encoder>
    </appender>
    <logger name="org.apache.shardingsphere" level="info" additivity="false">
        <appender-ref ref="console" />
    </logger>
    <root>
        <level value="info" />
        <appender-ref ref="console" />
    </root>
</configuration>
"""


def _node_port(binding: PortBinding) -> int:
    return binding.node_port or 0


def clear_node_ports(bindings: List[PortBinding]) -> List[PortBinding]:
    """Reset every assigned node port; ClusterIP services publish none."""
    return [b.replace(node_port=0) if _node_port(b) else b for b in bindings]


def adopt_node_ports(
    bindings: List[PortBinding], service_ports: Optional[List[V1ServicePort]]
) -> List[PortBinding]:
    """Take over node ports the cluster allocated for bindings that left it open."""
    allocated = {p.name: p.node_port for p in service_ports or [] if p.node_port}
    return [
        b.replace(node_port=allocated[b.name])
        if not _node_port(b) and b.name in allocated
        else b
        for b in bindings
    ]


def join_node_ports(
    bindings: List[PortBinding], service_ports: Optional[List[V1ServicePort]]
) -> List[V1ServicePort]:
    """Service ports for bindings that match a live port by name.

    Live node ports are carried over so the cluster keeps its allocation.
    """
    ports = []
    for binding in bindings:
        for live in service_ports or []:
            if binding.name != live.name:
                continue
            ports.append(
                V1ServicePort(
                    name=binding.name,
                    port=binding.service_port,
                    target_port=binding.container_port,
                    protocol=binding.protocol,
                    node_port=live.node_port or None,
                )
            )
    return ports


class ComputeNode(BaseResource):
    """ShardingSphere ComputeNode kubernetes resource."""

    logger: Logger
    conf: Settings = Settings()
    sensor: OperatorSensor = OperatorSensor()
    shared_api_client: ApiClient = None  # Shared across all ComputeNode instances

    KIND = "ComputeNode"
    GROUP_NAME = "shardingsphere.apache.org"
    GROUP_VERSION = "v1alpha1"
    PLURAL_NAME = "computenodes"
    COMPONENT_TYPE = "proxy"

    DEFAULT_SERVER_VERSION = "5.3.1"
    CONFIG_VOLUME_NAME = "shardingsphere-proxy-config"
    CONFIG_MOUNT_PATH = "/opt/shardingsphere-proxy/conf"
    SERVER_CONFIG_KEY = "server.yaml"
    LOGBACK_CONFIG_KEY = "logback.xml"

    deployment_name: str
    service_name: str
    config_map_name: str

    body: Optional[Dict] = None
    spec: Optional[ComputeNodeSpec] = None

    # k8s api clients
    _api_client: ApiClient = None
    _apps_v1_api: AppsV1Api = None
    _core_v1_api: CoreV1Api = None
    _custom_objects_api: CustomObjectsApi = None

    def __init__(self, name: str, namespace: str, logger: Logger = None):
        labels = Labels.generate_default_labels(
            name,
            self.KIND,
            self.COMPONENT_TYPE,
            self.OPERATOR_NAME,
        )
        super().__init__(name=name, namespace=namespace, labels=labels)
        self.logger = logger or logging.getLogger(__name__)
        self.deployment_name = ComputeNodeResources.deployment_name(name)
        self.service_name = ComputeNodeResources.service_name(name)
        self.config_map_name = ComputeNodeResources.config_map_name(name)

    @classmethod
    def from_body(cls, body: Dict, logger: Logger = None) -> "ComputeNode":
        """Build a ComputeNode from a custom object as returned by the API."""
        metadata = body.get("metadata") or {}
        node = ComputeNode(metadata.get("name"), metadata.get("namespace"), logger)
        return node.load(body)

    def load(self, body: Dict) -> "ComputeNode":
        self.body = body
        self.spec = ComputeNodeSpecSchema().load(body.get("spec") or {})
        return self

    async def fetch(self) -> Optional["ComputeNode"]:
        """Fetch actual ComputeNode in kubernetes, None if it is gone."""
        body = await self.fetch_body()
        if body is None:
            return None
        return self.load(body)

    async def fetch_body(self) -> Optional[Dict]:
        return await self.get_custom_object(
            self.custom_objects_api,
            namespace=self.namespace,
            group=self.GROUP_NAME,
            version=self.GROUP_VERSION,
            plural=self.PLURAL_NAME,
            name=self.name,
        )

    @property
    def metadata(self) -> Dict:
        return (self.body or {}).get("metadata") or {}

    @property
    def uid(self) -> Optional[str]:
        return self.metadata.get("uid")

    @property
    def generation(self) -> Optional[int]:
        return self.metadata.get("generation")

    @property
    def selector_labels(self) -> Dict[str, str]:
        """Labels that select the proxy pods of this ComputeNode."""
        match_labels = dict(self.spec.selector.match_labels or {})
        if not match_labels:
            match_labels = {Labels.SHARDINGSPHERE_NAME_LABEL: self.name}
        return match_labels

    @property
    def resource_labels(self) -> Dict[str, str]:
        return {**self.labels.as_dict(), **self.selector_labels}

    # =============================================================================
    # Builders
    # =============================================================================

    def prepare_image(self) -> str:
        """Container image to use."""
        if self.spec.image:
            return self.spec.image
        version = self.spec.server_version or self.DEFAULT_SERVER_VERSION
        return f"{self.conf.proxy_image}:{version}"

    def prepare_owner_references(self) -> Optional[List[V1OwnerReference]]:
        if not self.uid:
            return None
        return [
            V1OwnerReference(
                api_version=f"{self.GROUP_NAME}/{self.GROUP_VERSION}",
                kind=self.KIND,
                name=self.name,
                uid=self.uid,
                controller=True,
                block_owner_deletion=True,
            )
        ]

    def prepare_metadata(self, name: str) -> V1ObjectMeta:
        return V1ObjectMeta(
            name=name,
            namespace=self.namespace,
            labels=self.resource_labels,
            owner_references=self.prepare_owner_references(),
        )

    def prepare_config_map_data(self) -> Dict[str, str]:
        bootstrap = self.spec.bootstrap
        server_config = (bootstrap.server_config if bootstrap else None) or {}
        logback_config = (bootstrap.logback_config if bootstrap else None) or DEFAULT_LOGBACK_CONFIG
        return {
            self.SERVER_CONFIG_KEY: yaml.safe_dump(
                dict(server_config), default_flow_style=False, sort_keys=False
            ),
            self.LOGBACK_CONFIG_KEY: logback_config,
        }

    def prepare_config_map(self) -> V1ConfigMap:
        """Build the proxy configuration bundle."""
        return V1ConfigMap(
            api_version="v1",
            kind="ConfigMap",
            metadata=self.prepare_metadata(self.config_map_name),
            data=self.prepare_config_map_data(),
        )

    def prepare_container_ports(self) -> List[V1ContainerPort]:
        return [
            V1ContainerPort(
                name=binding.name,
                container_port=binding.container_port,
                protocol=binding.protocol,
            )
            for binding in self.spec.port_bindings
        ]

    def prepare_env_vars(self) -> Optional[List[V1EnvVar]]:
        if not self.spec.env:
            return None
        return [
            V1EnvVar(
                name=env["name"],
                value=env.get("value"),
                value_from=env.get("valueFrom"),
            )
            for env in self.spec.env
        ]

    def prepare_container_resource_requirements(self) -> Optional[V1ResourceRequirements]:
        resources = self.spec.resources
        if not resources:
            return None
        return V1ResourceRequirements(
            limits=resources.get("limits"),
            requests=resources.get("requests"),
        )

    def prepare_container_probes(self) -> Dict[str, Any]:
        probes = self.spec.probes
        if probes is None:
            return {}
        return {
            "liveness_probe": probes.liveness_probe,
            "readiness_probe": probes.readiness_probe,
            "startup_probe": probes.startup_probe,
        }

    def prepare_proxy_container(self) -> V1Container:
        return V1Container(
            name=self.conf.proxy_container_name,
            image=self.prepare_image(),
            image_pull_policy="IfNotPresent",
            ports=self.prepare_container_ports(),
            env=self.prepare_env_vars(),
            resources=self.prepare_container_resource_requirements(),
            volume_mounts=[
                V1VolumeMount(
                    name=self.CONFIG_VOLUME_NAME,
                    mount_path=self.CONFIG_MOUNT_PATH,
                )
            ],
            **self.prepare_container_probes(),
        )

    def prepare_pod_template(self) -> V1PodTemplateSpec:
        # Pods roll whenever the configuration bundle changes
        annotations = self.prepare_hash_annotation(
            self.compute_hash(self.prepare_config_map_data())
        )
        return V1PodTemplateSpec(
            metadata=V1ObjectMeta(
                labels=self.resource_labels,
                annotations=annotations,
            ),
            spec=V1PodSpec(
                containers=[self.prepare_proxy_container()],
                volumes=[
                    V1Volume(
                        name=self.CONFIG_VOLUME_NAME,
                        config_map=V1ConfigMapVolumeSource(name=self.config_map_name),
                    )
                ],
            ),
        )

    def prepare_deployment(self) -> V1Deployment:
        """Build deployment resource."""
        return V1Deployment(
            api_version="apps/v1",
            kind="Deployment",
            metadata=self.prepare_metadata(self.deployment_name),
            spec=V1DeploymentSpec(
                replicas=self.spec.replicas,
                selector=V1LabelSelector(match_labels=self.selector_labels),
                template=self.prepare_pod_template(),
            ),
        )

    def prepare_service_ports(self) -> List[V1ServicePort]:
        publishes_node_ports = self.spec.service_type in (
            SERVICE_TYPE_NODE_PORT,
            SERVICE_TYPE_LOAD_BALANCER,
        )
        return [
            V1ServicePort(
                name=binding.name,
                port=binding.service_port,
                target_port=binding.container_port,
                protocol=binding.protocol,
                node_port=_node_port(binding) if publishes_node_ports and _node_port(binding) else None,
            )
            for binding in self.spec.port_bindings
        ]

    def prepare_service(self) -> V1Service:
        """Build service resource."""
        return V1Service(
            api_version="v1",
            kind="Service",
            metadata=self.prepare_metadata(self.service_name),
            spec=V1ServiceSpec(
                selector=self.selector_labels,
                type=self.spec.service_type,
                ports=self.prepare_service_ports(),
            ),
        )

    def prepare_existing_metadata(
        self, existing: V1ObjectMeta, keep_resource_version: bool = False
    ) -> V1ObjectMeta:
        """Copy of live metadata to carry into a replacement."""
        metadata = copy.deepcopy(existing)
        if not keep_resource_version:
            metadata.resource_version = None
        return metadata

    def prepare_load_balancer_status(self, service: V1Service) -> Dict:
        ingress = None
        if service.status and service.status.load_balancer:
            ingress = service.status.load_balancer.ingress
        return {
            "clusterIP": service.spec.cluster_ip if service.spec else None,
            "ingress": self.serialize(ingress or []),
        }

    def serialize(self, obj: Any) -> Any:
        """Convert kubernetes models to their JSON form, keyed by API field names."""
        return self.api_client.sanitize_for_serialization(obj)

    # =============================================================================
    # Drift detection
    # =============================================================================

    def prepare_deployment_watch_fields(self, deployment: V1Deployment) -> Dict:
        template = deployment.spec.template
        containers = (template.spec.containers if template.spec else None) or []
        proxy = next(
            (c for c in containers if c.name == self.conf.proxy_container_name), None
        )
        return {
            "replicas": deployment.spec.replicas,
            "image": proxy.image if proxy else None,
            "ports": self.serialize(proxy.ports) if proxy else None,
            "annotations": dict((template.metadata.annotations if template.metadata else None) or {}),
        }

    def prepare_service_watch_fields(self, service: V1Service) -> Dict:
        return {
            "type": service.spec.type,
            "ports": [
                {"name": p.name, "port": p.port, "nodePort": p.node_port}
                for p in service.spec.ports or []
            ],
        }

    def prepare_config_map_watch_fields(self, config_map: V1ConfigMap) -> Dict:
        return {"data": dict(config_map.data or {})}

    def detect_drift(
        self, resource_type: str, resource_name: str, actual: Dict, desired: Dict
    ) -> List[str]:
        """Report fields whose live value differs from the desired one."""
        if self.compute_hash(actual) == self.compute_hash(desired):
            return []
        drift_fields = sorted(
            key for key in desired if actual.get(key) != desired.get(key)
        )
        self.logger.info(
            f"Drift detected in {resource_type} {resource_name}: {', '.join(drift_fields)}"
        )
        self.sensor.on_resource_drift_detected(
            self.name, resource_name, self.namespace, resource_type, drift_fields
        )
        return drift_fields

    # =============================================================================
    # Reconcilers
    # =============================================================================

    async def synchronize(
        self, resource_type: str, resource_name: str, operation: str, call: Awaitable
    ) -> Any:
        """Await a store write, reporting it to the sensor."""
        sensor_state = self.sensor.on_resource_sync_start(
            self.name, resource_name, self.namespace, resource_type
        )
        success, error = False, None
        try:
            result = await call
            success = True
            return result
        except Exception as ex:
            error = ex
            raise
        finally:
            self.sensor.on_resource_sync_complete(
                self.name,
                resource_name,
                self.namespace,
                resource_type,
                sensor_state,
                operation,
                success,
                error,
            )

    async def reconcile_deployment(self):
        """Create the proxy deployment or bring it in line with the ComputeNode spec."""
        deployment = await self.fetch_deployment(
            self.apps_v1_api, self.deployment_name, self.namespace
        )
        desired = self.prepare_deployment()
        if deployment is None:
            self.logger.info(f"Creating deployment {self.deployment_name}")
            await self.synchronize(
                "deployment",
                self.deployment_name,
                "create",
                self.create_deployment(self.apps_v1_api, self.namespace, desired),
            )
            return

        self.detect_drift(
            "deployment",
            self.deployment_name,
            self.prepare_deployment_watch_fields(deployment),
            self.prepare_deployment_watch_fields(desired),
        )
        desired.metadata = self.prepare_existing_metadata(deployment.metadata)
        await self.synchronize(
            "deployment",
            self.deployment_name,
            "replace",
            self.replace_deployment(
                self.apps_v1_api, self.deployment_name, self.namespace, desired
            ),
        )

    async def reconcile_config_map(self):
        """Create the configuration bundle or bring it in line with the ComputeNode spec."""
        config_map = await self.fetch_config_map(
            self.core_v1_api, self.config_map_name, self.namespace
        )
        desired = self.prepare_config_map()
        if config_map is None:
            self.logger.info(f"Creating config map {self.config_map_name}")
            await self.synchronize(
                "config_map",
                self.config_map_name,
                "create",
                self.create_config_map(self.core_v1_api, self.namespace, desired),
            )
            return

        self.detect_drift(
            "config_map",
            self.config_map_name,
            self.prepare_config_map_watch_fields(config_map),
            self.prepare_config_map_watch_fields(desired),
        )
        desired.metadata = self.prepare_existing_metadata(config_map.metadata)
        await self.synchronize(
            "config_map",
            self.config_map_name,
            "replace",
            self.replace_config_map(
                self.core_v1_api, self.config_map_name, self.namespace, desired
            ),
        )

    async def reconcile_service(self):
        """Create the proxy service or bring it in line with the ComputeNode spec.

        Node ports are reconciled against the live service first and written
        back to the ComputeNode, so the rebuilt service keeps the ports the
        cluster handed out.
        """
        service = await self.fetch_service(
            self.core_v1_api, self.service_name, self.namespace
        )
        if service is None:
            self.logger.info(f"Creating service {self.service_name}")
            await self.synchronize(
                "service",
                self.service_name,
                "create",
                self.create_service(
                    self.core_v1_api, self.namespace, self.prepare_service()
                ),
            )
            return

        live_ports = service.spec.ports if service.spec else None
        if self.spec.service_type == SERVICE_TYPE_CLUSTER_IP:
            bindings = clear_node_ports(self.spec.port_bindings)
        else:
            bindings = adopt_node_ports(self.spec.port_bindings, live_ports)
        if bindings != self.spec.port_bindings:
            await self.persist_port_bindings(bindings)

        desired = self.prepare_service()
        desired.metadata = self.prepare_existing_metadata(
            service.metadata, keep_resource_version=True
        )
        desired.spec.cluster_ip = service.spec.cluster_ip
        desired.spec.cluster_ips = service.spec.cluster_ips
        if self.spec.service_type == SERVICE_TYPE_NODE_PORT:
            desired.spec.ports = join_node_ports(self.spec.port_bindings, live_ports)

        self.detect_drift(
            "service",
            self.service_name,
            self.prepare_service_watch_fields(service),
            self.prepare_service_watch_fields(desired),
        )
        await self.synchronize(
            "service",
            self.service_name,
            "replace",
            self.replace_service(
                self.core_v1_api, self.service_name, self.namespace, desired
            ),
        )

    async def persist_port_bindings(self, bindings: List[PortBinding]):
        """Write port bindings back to the ComputeNode spec."""
        body = copy.deepcopy(self.body)
        body.setdefault("spec", {})["portBindings"] = PortBindingSchema(many=True).dump(
            bindings
        )
        self.logger.info(f"Updating port bindings of {self.KIND} {self.name}")
        updated = await self.replace_custom_object(
            self.custom_objects_api,
            namespace=self.namespace,
            group=self.GROUP_NAME,
            version=self.GROUP_VERSION,
            plural=self.PLURAL_NAME,
            name=self.name,
            body=body,
        )
        self.body = updated or body
        self.spec = self.spec.replace(port_bindings=bindings)

    async def reconcile_status(self):
        """Project observed state into the ComputeNode status.

        A write that loses a race with another writer is retried against a
        fresh copy of the ComputeNode, a bounded number of times.
        """
        pods = await self.list_pods(self.core_v1_api, self.namespace, self.selector_labels)
        service = await self.fetch_service(
            self.core_v1_api, self.service_name, self.namespace
        )
        if service is None:
            raise kopf.TemporaryError(
                f"Service {self.service_name} not found, status not updated",
                delay=self.conf.error_requeue_delay_seconds,
            )

        load_balancer = self.prepare_load_balancer_status(service)
        body, spec = self.body, self.spec
        max_attempts = max(1, self.conf.status_update_max_retries)
        for attempt in range(1, max_attempts + 1):
            status = project_status(
                spec,
                pods.items or [],
                load_balancer,
                (body.get("status") or {}).get("conditions"),
                utc_now(),
                self.conf.proxy_container_name,
            )
            try:
                updated = await self.replace_custom_object_status(
                    self.custom_objects_api,
                    namespace=self.namespace,
                    group=self.GROUP_NAME,
                    version=self.GROUP_VERSION,
                    plural=self.PLURAL_NAME,
                    name=self.name,
                    body=dict(body, status=status),
                )
                break
            except ApiException as ex:
                if not conflict_error(ex):
                    raise
                self.sensor.on_status_conflict(self.name, self.namespace, attempt)
                if attempt >= max_attempts:
                    raise
                self.logger.info(
                    f"Status of {self.KIND} {self.name} changed concurrently, retrying ({attempt}/{max_attempts})"
                )
                body = await self.fetch_body()
                if body is None:
                    return
                spec = ComputeNodeSpecSchema().load(body.get("spec") or {})

        self.sync_resource_version(body, spec, updated)
        self.sensor.on_status_update(
            self.name, self.namespace, status["phase"], status["readyInstances"]
        )

    def sync_resource_version(
        self, body: Dict, spec: ComputeNodeSpec, updated: Optional[Dict]
    ):
        """Adopt the ComputeNode the status was written against, at its new resource version.

        `body` is the copy the write succeeded with, which after a conflict is a
        fresh read. Its metadata is kept whole so later writes of the ComputeNode
        spec never restore what another writer changed. Nothing is adopted when
        the generation moved.
        """
        written = (body or {}).get("metadata") or {}
        metadata = (updated or {}).get("metadata") or {}
        if not written or metadata.get("generation") != written.get("generation"):
            return
        if metadata.get("resourceVersion"):
            self.body = dict(
                body,
                metadata=dict(written, resourceVersion=metadata["resourceVersion"]),
            )
            self.spec = spec

    # =============================================================================
    # API clients
    # =============================================================================

    @property
    def api_client(self) -> ApiClient:
        if self._api_client is None:
            # Use the shared API client if available, otherwise create a new one
            if self.shared_api_client is not None:
                self._api_client = self.shared_api_client
            else:
                self._api_client = ApiClient()
        return self._api_client

    @property
    def apps_v1_api(self) -> AppsV1Api:
        if self._apps_v1_api is None:
            self._apps_v1_api = AppsV1Api(self.api_client)
        return self._apps_v1_api

    @property
    def core_v1_api(self) -> CoreV1Api:
        if self._core_v1_api is None:
            self._core_v1_api = CoreV1Api(self.api_client)
        return self._core_v1_api

    @property
    def custom_objects_api(self) -> CustomObjectsApi:
        if self._custom_objects_api is None:
            self._custom_objects_api = CustomObjectsApi(self.api_client)
        return self._custom_objects_api
