"""Prometheus monitoring backend for the ComputeNode operator.

PrometheusMonitor collects operator lifecycle events and exposes them as
Prometheus metrics in two groups:

1. Reconciliation Loop Health - Duration, throughput, errors
2. Kubernetes Resource Sync - Operation counts, latency, drift, status writes
"""

from typing import Dict, List, Optional, Any
import time
import logging

from prometheus_client import Counter, Histogram, Gauge

from shardingsphere_operator.sensors.base import OperatorSensor

logger = logging.getLogger(__name__)


class PrometheusMonitor(OperatorSensor):
    """Prometheus metrics monitor for the ComputeNode operator.

    Metrics are organized into:
    - ssop_reconcile_* - Reconciliation loop metrics
    - ssop_resource_* - Kubernetes resource sync metrics
    - ssop_status_* / ssop_ready_instances - Status metrics
    """

    def __init__(self, registry=None):
        """Initialize Prometheus metrics."""
        super().__init__()
        kwargs = {"registry": registry} if registry is not None else {}

        # =============================================================================
        # Reconciliation Loop Metrics
        # =============================================================================

        self.reconcile_duration = Histogram(
            'ssop_reconcile_duration_seconds',
            'Time spent in a reconcile pass',
            labelnames=['name', 'namespace', 'trigger_source', 'result'],
            buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
            **kwargs,
        )

        self.reconcile_total = Counter(
            'ssop_reconcile_total',
            'Total number of reconcile passes',
            labelnames=['name', 'namespace', 'trigger_source', 'result'],
            **kwargs,
        )

        self.reconcile_errors = Counter(
            'ssop_reconcile_errors_total',
            'Total number of reconcile passes that ended with an error',
            labelnames=['name', 'namespace', 'error_type'],
            **kwargs,
        )

        # =============================================================================
        # Kubernetes Resource Sync Metrics
        # =============================================================================

        self.resource_sync_duration = Histogram(
            'ssop_resource_sync_duration_seconds',
            'Time spent syncing owned Kubernetes resources',
            labelnames=['name', 'resource_name', 'namespace', 'resource_type', 'operation', 'result'],
            buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0],
            **kwargs,
        )

        self.resource_sync_total = Counter(
            'ssop_resource_sync_total',
            'Total number of owned resource sync operations',
            labelnames=['name', 'resource_name', 'namespace', 'resource_type', 'operation', 'result'],
            **kwargs,
        )

        self.resource_sync_errors = Counter(
            'ssop_resource_sync_errors_total',
            'Total number of owned resource sync errors',
            labelnames=['name', 'resource_name', 'namespace', 'resource_type', 'error_type'],
            **kwargs,
        )

        self.resource_drift_detected = Counter(
            'ssop_resource_drift_detected_total',
            'Total number of owned resource drift detections',
            labelnames=['name', 'resource_name', 'namespace', 'resource_type', 'drift_field'],
            **kwargs,
        )

        # =============================================================================
        # Status Metrics
        # =============================================================================

        self.status_updates = Counter(
            'ssop_status_updates_total',
            'Total number of ComputeNode status writes',
            labelnames=['name', 'namespace', 'phase'],
            **kwargs,
        )

        self.status_conflicts = Counter(
            'ssop_status_conflicts_total',
            'Total number of status writes rejected because of a concurrent writer',
            labelnames=['name', 'namespace'],
            **kwargs,
        )

        self.ready_instances = Gauge(
            'ssop_ready_instances',
            'Number of ready proxy instances per ComputeNode',
            labelnames=['name', 'namespace'],
            **kwargs,
        )

        logger.info("PrometheusMonitor initialized with all metrics")

    # =============================================================================
    # Reconciliation Lifecycle Hooks
    # =============================================================================

    def on_reconcile_start(
        self,
        name: str,
        namespace: str,
        trigger_source: str,
    ) -> Optional[Dict[str, Any]]:
        """Record reconcile start time."""
        return {
            'start_time': time.time(),
            'trigger_source': trigger_source,
        }

    def on_reconcile_complete(
        self,
        name: str,
        namespace: str,
        state: Optional[Dict[str, Any]],
        success: bool,
        error: Optional[Exception] = None,
    ) -> None:
        """Record reconcile duration and result."""
        if state:
            duration = time.time() - state['start_time']
            trigger_source = state['trigger_source']
            result = 'success' if success else 'failure'

            self.reconcile_duration.labels(
                name=name,
                namespace=namespace,
                trigger_source=trigger_source,
                result=result,
            ).observe(duration)

            self.reconcile_total.labels(
                name=name,
                namespace=namespace,
                trigger_source=trigger_source,
                result=result,
            ).inc()

        if error:
            self.reconcile_errors.labels(
                name=name,
                namespace=namespace,
                error_type=error.__class__.__name__,
            ).inc()

    # =============================================================================
    # Resource Operation Hooks
    # =============================================================================

    def on_resource_sync_start(
        self,
        name: str,
        resource_name: str,
        namespace: str,
        resource_type: str,
    ) -> Optional[Dict[str, Any]]:
        """Record resource sync start time."""
        return {'start_time': time.time()}

    def on_resource_sync_complete(
        self,
        name: str,
        resource_name: str,
        namespace: str,
        resource_type: str,
        state: Optional[Dict[str, Any]],
        operation: str,
        success: bool,
        error: Optional[Exception] = None,
    ) -> None:
        """Record resource sync duration and result."""
        result = 'success' if success else 'failure'
        if state:
            self.resource_sync_duration.labels(
                name=name,
                resource_name=resource_name,
                namespace=namespace,
                resource_type=resource_type,
                operation=operation,
                result=result,
            ).observe(time.time() - state['start_time'])

        self.resource_sync_total.labels(
            name=name,
            resource_name=resource_name,
            namespace=namespace,
            resource_type=resource_type,
            operation=operation,
            result=result,
        ).inc()

        if error:
            self.resource_sync_errors.labels(
                name=name,
                resource_name=resource_name,
                namespace=namespace,
                resource_type=resource_type,
                error_type=error.__class__.__name__,
            ).inc()

    def on_resource_drift_detected(
        self,
        name: str,
        resource_name: str,
        namespace: str,
        resource_type: str,
        drift_fields: List[str],
    ) -> None:
        """Record resource drift detection."""
        for field in drift_fields:
            self.resource_drift_detected.labels(
                name=name,
                resource_name=resource_name,
                namespace=namespace,
                resource_type=resource_type,
                drift_field=field,
            ).inc()

    def on_status_update(
        self,
        name: str,
        namespace: str,
        phase: str,
        ready_instances: int,
    ) -> None:
        """Record status write."""
        self.status_updates.labels(name=name, namespace=namespace, phase=phase).inc()
        self.ready_instances.labels(name=name, namespace=namespace).set(ready_instances)

    def on_status_conflict(self, name: str, namespace: str, attempt: int) -> None:
        self.status_conflicts.labels(name=name, namespace=namespace).inc()

    def asdict(self) -> Dict[str, Any]:
        return {'backend': 'prometheus'}
