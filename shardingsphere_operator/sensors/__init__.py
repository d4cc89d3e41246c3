"""ComputeNode operator sensor framework.

Hook-based instrumentation of operator lifecycle events:

- OperatorSensor: Base class defining lifecycle hooks
- SensorDelegate: Fan-out of events to multiple sensor backends
- PrometheusMonitor: Prometheus metrics exporter
"""

from shardingsphere_operator.sensors.base import OperatorSensor
from shardingsphere_operator.sensors.delegate import SensorDelegate
from shardingsphere_operator.sensors.prometheus import PrometheusMonitor
from shardingsphere_operator.sensors.server import init_metrics_server

__all__ = [
    'OperatorSensor',
    'SensorDelegate',
    'PrometheusMonitor',
    'init_metrics_server',
]
