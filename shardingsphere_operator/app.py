import kopf
import logging
import shardingsphere_operator.handlers.computenode as computenode
import shardingsphere_operator.handlers.probes as probes
from shardingsphere_operator.types.settings import Settings
from shardingsphere_operator.resources.computenode import ComputeNode
from shardingsphere_operator.sensors import init_metrics_server, SensorDelegate, PrometheusMonitor
from kubernetes_asyncio import config
from kubernetes_asyncio.client.api_client import ApiClient


# Configure Kopf settings
@kopf.on.startup()
async def setup(
    settings: kopf.OperatorSettings, memo: kopf.Memo, logger: logging.Logger, **kwargs
):
    # Load Kubernetes config - try in-cluster first (for production), then local kubeconfig (for dev)
    try:
        config.load_incluster_config()
        logger.info("Loaded in-cluster Kubernetes configuration")
    except config.ConfigException:
        logger.info("In-cluster config not found, trying local kubeconfig")
        try:
            await config.load_kube_config()
            logger.info("Loaded local Kubernetes configuration")
        except config.ConfigException as e:
            logger.error(f"Failed to load Kubernetes configuration: {e}")
            raise

    memo.conf = Settings()
    ComputeNode.conf = memo.conf

    # One ApiClient shared by every ComputeNode pass
    ComputeNode.shared_api_client = ApiClient()
    logger.info("Shared Kubernetes API client initialized")

    # Initialize sensor infrastructure
    sensor_delegate = SensorDelegate()
    sensor_delegate.add(PrometheusMonitor())
    memo.sensor = sensor_delegate
    ComputeNode.sensor = sensor_delegate
    logger.info("Sensor infrastructure initialized with PrometheusMonitor")

    # Initialize Prometheus metrics server
    try:
        init_metrics_server()
    except Exception as e:
        logger.error(f"Failed to start metrics server: {e}")
        logger.warning("Continuing without metrics server")

    # Limit the number of ComputeNodes reconciled concurrently
    settings.batching.worker_limit = memo.conf.worker_limit

    # Handler progress lives in annotations; the status subresource belongs to the reconciler
    settings.persistence.progress_storage = kopf.AnnotationsProgressStorage(
        prefix=ComputeNode.GROUP_NAME
    )
    settings.persistence.diffbase_storage = kopf.AnnotationsDiffBaseStorage(
        prefix=ComputeNode.GROUP_NAME
    )

    # Post log records of WARNING and above as Kubernetes events
    settings.posting.enabled = True
    settings.posting.level = logging.WARNING


@kopf.on.cleanup()
async def cleanup(logger: logging.Logger, **kwargs):
    """Cleanup handler for operator shutdown."""
    logger.info("Shutting down operator...")

    if ComputeNode.shared_api_client:
        await ComputeNode.shared_api_client.close()
        logger.info("Shared API client closed")

    logger.info("Operator shutdown complete")


__all__ = [
    "computenode",
    "probes",
]
