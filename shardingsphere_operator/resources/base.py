import mmh3
import hashlib
from typing import Any, Dict, Optional
from shardingsphere_operator.utils.helpers import canonicalize_dict, selector_to_str
from shardingsphere_operator.common.models.labels import Labels
from shardingsphere_operator.utils.errors import already_exists_error, not_found_error
from kubernetes_asyncio.client import (
    ApiException,
    AppsV1Api,
    CoreV1Api,
    CustomObjectsApi,
    V1ConfigMap,
    V1Deployment,
    V1PodList,
    V1Service,
)


class BaseResource:
    """Base resource model.

    Wraps the cluster store calls used to converge owned resources. Reads
    return None when the object does not exist; creates treat an object
    created concurrently by someone else as success. Every other API error is
    raised to the caller.
    """

    OPERATOR_NAME = "shardingsphere-operator"

    _name: str
    _namespace: str
    _labels: Labels

    def __init__(self, name: str, namespace: str, labels: Labels):
        self._name = name
        self._namespace = namespace
        self._labels = labels

    @property
    def name(self) -> str:
        return self._name

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def labels(self) -> Labels:
        return self._labels

    def compute_hash(self, data: Any) -> str:
        """Compute a murmur3 hash."""
        if isinstance(data, dict):
            _data = canonicalize_dict(data)
        elif isinstance(data, str):
            _data = data.encode()
        else:
            raise ValueError(f"Hash of {type(data)} is not supported.")
        mumur_str = str(mmh3.hash128(_data))

        # Return first 16 characters for readability in labels/annotations
        return hashlib.sha256(mumur_str.encode("utf-8")).hexdigest()[:16]

    def prepare_hash_annotation(self, hash: str) -> Dict[str, str]:
        """Annotation carrying the hash of the proxy configuration bundle."""
        return {"shardingsphere.apache.org/config-hash": str(hash)}

    async def fetch_deployment(
        self, apps_v1_api: AppsV1Api, name: str, namespace: str
    ) -> Optional[V1Deployment]:
        try:
            return await apps_v1_api.read_namespaced_deployment(
                name=name, namespace=namespace
            )
        except ApiException as ex:
            if not_found_error(ex):
                return None
            raise

    async def create_deployment(
        self, apps_v1_api: AppsV1Api, namespace: str, deployment: V1Deployment
    ) -> None:
        try:
            await apps_v1_api.create_namespaced_deployment(
                namespace=namespace, body=deployment
            )
        except ApiException as ex:
            if not already_exists_error(ex):
                raise

    async def replace_deployment(
        self, apps_v1_api: AppsV1Api, name: str, namespace: str, deployment: V1Deployment
    ) -> V1Deployment:
        return await apps_v1_api.replace_namespaced_deployment(
            name=name, namespace=namespace, body=deployment
        )

    async def fetch_service(
        self, core_v1_api: CoreV1Api, name: str, namespace: str
    ) -> Optional[V1Service]:
        """Retrieve the latest state of a service"""
        try:
            return await core_v1_api.read_namespaced_service(name=name, namespace=namespace)
        except ApiException as ex:
            if not_found_error(ex):
                return None
            raise

    async def create_service(
        self, core_v1_api: CoreV1Api, namespace: str, service: V1Service
    ) -> None:
        try:
            await core_v1_api.create_namespaced_service(namespace=namespace, body=service)
        except ApiException as ex:
            if not already_exists_error(ex):
                raise

    async def replace_service(
        self, core_v1_api: CoreV1Api, name: str, namespace: str, service: V1Service
    ) -> V1Service:
        return await core_v1_api.replace_namespaced_service(
            name=name,
            namespace=namespace,
            body=service,
        )

    async def fetch_config_map(
        self, core_v1_api: CoreV1Api, name: str, namespace: str
    ) -> Optional[V1ConfigMap]:
        try:
            return await core_v1_api.read_namespaced_config_map(name=name, namespace=namespace)
        except ApiException as ex:
            if not_found_error(ex):
                return None
            raise

    async def create_config_map(
        self, core_v1_api: CoreV1Api, namespace: str, config_map: V1ConfigMap
    ) -> None:
        try:
            await core_v1_api.create_namespaced_config_map(
                namespace=namespace, body=config_map
            )
        except ApiException as ex:
            if not already_exists_error(ex):
                raise

    async def replace_config_map(
        self, core_v1_api: CoreV1Api, name: str, namespace: str, config_map: V1ConfigMap
    ) -> V1ConfigMap:
        return await core_v1_api.replace_namespaced_config_map(
            name=name,
            namespace=namespace,
            body=config_map,
        )

    async def list_pods(
        self, core_v1_api: CoreV1Api, namespace: str, label_selector: Dict[str, str] = None
    ) -> V1PodList:
        """List pods in namespace, optionally filtered by label selector.

        Args:
            core_v1_api: CoreV1Api instance
            namespace: Namespace to list pods in
            label_selector: Dictionary of label key-value pairs to filter pods

        Returns:
            V1PodList object containing matching pods
        """
        return await core_v1_api.list_namespaced_pod(
            namespace=namespace,
            label_selector=selector_to_str(label_selector) or None,
        )

    async def get_custom_object(
        self,
        custom_objects_api: CustomObjectsApi,
        namespace: str,
        group: str,
        version: str,
        plural: str,
        name: str,
    ) -> Optional[Dict]:
        try:
            return await custom_objects_api.get_namespaced_custom_object(
                group=group,
                version=version,
                namespace=namespace,
                plural=plural,
                name=name,
            )
        except ApiException as ex:
            if not_found_error(ex):
                return None
            raise

    async def replace_custom_object(
        self,
        custom_objects_api: CustomObjectsApi,
        namespace: str,
        group: str,
        version: str,
        plural: str,
        name: str,
        body: Dict,
    ) -> Dict:
        return await custom_objects_api.replace_namespaced_custom_object(
            group=group,
            version=version,
            namespace=namespace,
            plural=plural,
            name=name,
            body=body,
        )

    async def replace_custom_object_status(
        self,
        custom_objects_api: CustomObjectsApi,
        namespace: str,
        group: str,
        version: str,
        plural: str,
        name: str,
        body: Dict,
    ) -> Dict:
        return await custom_objects_api.replace_namespaced_custom_object_status(
            group=group,
            version=version,
            namespace=namespace,
            plural=plural,
            name=name,
            body=body,
        )
