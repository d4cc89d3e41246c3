import asyncio
import kopf
from logging import Logger
from collections import defaultdict
from typing import Dict, Optional, Tuple
from shardingsphere_operator.resources import ComputeNode
from shardingsphere_operator.sensors import OperatorSensor
from shardingsphere_operator.types.models import ReconcileResult
from shardingsphere_operator.types.settings import REQUEUE_DELAY_SECONDS

KIND = ComputeNode.KIND

# Serializes passes of the same ComputeNode across create, update and timer handlers
reconciliation_locks: Dict[Tuple[str, str], asyncio.Lock] = defaultdict(asyncio.Lock)


def get_sensor() -> OperatorSensor:
    """Get sensor from ComputeNode class."""
    return ComputeNode.sensor


async def reconcile(
    name: str,
    namespace: str,
    logger: Logger,
    node: Optional[ComputeNode] = None,
    trigger_source: str = "manual",
) -> ReconcileResult:
    """Run one reconcile pass of a ComputeNode.

    The status is projected first and never aborts the pass. The deployment,
    service and config map are then reconciled in that order; every one of
    them runs even if an earlier one fails, and the first failure is
    returned.
    """
    sensor = get_sensor()
    sensor_state = sensor.on_reconcile_start(name, namespace, trigger_source)
    result = None
    try:
        result = await _reconcile(name, namespace, logger, node)
        return result
    finally:
        sensor.on_reconcile_complete(
            name,
            namespace,
            sensor_state,
            result is not None and result.error is None,
            result.error if result is not None else None,
        )


async def _reconcile(
    name: str, namespace: str, logger: Logger, node: Optional[ComputeNode]
) -> ReconcileResult:
    conf = ComputeNode.conf
    node = node or ComputeNode(name, namespace, logger=logger)
    try:
        found = await node.fetch()
    except Exception as e:
        logger.error(f"Failed to get the compute node: {e}")
        return ReconcileResult.retry_now(e)
    if found is None:
        logger.debug(f"{KIND} {namespace}/{name} not found.")
        return ReconcileResult.retry_after(conf.requeue_delay_seconds)

    try:
        await node.reconcile_status()
    except Exception as e:
        logger.error(f"Failed to reconcile status: {e}")

    errors = []
    for resource_type, reconciler in (
        ("deployment", node.reconcile_deployment),
        ("service", node.reconcile_service),
        ("configmap", node.reconcile_config_map),
    ):
        try:
            await reconciler()
        except Exception as e:
            logger.error(f"Failed to reconcile {resource_type}: {e}")
            errors.append(e)

    if errors:
        return ReconcileResult.retry_now(errors[0])
    return ReconcileResult.retry_after(conf.requeue_delay_seconds)


async def request_reconciliation(
    name: str, namespace: str, logger: Logger, trigger_source: str
):
    """Run a pass under the ComputeNode's lock and hand its outcome to kopf.

    An error outcome or a pass exceeding its time budget is raised as a
    temporary error so kopf retries the handler.
    """
    conf = ComputeNode.conf
    async with reconciliation_locks[(namespace, name)]:
        try:
            result = await asyncio.wait_for(
                reconcile(name, namespace, logger, trigger_source=trigger_source),
                timeout=conf.reconcile_timeout_seconds,
            )
        except asyncio.TimeoutError:
            raise kopf.TemporaryError(
                f"Reconciliation of {KIND} {name} timed out after {conf.reconcile_timeout_seconds}s",
                delay=conf.error_requeue_delay_seconds,
            )

    if result.requeue:
        raise kopf.TemporaryError(
            f"Reconciliation of {KIND} {name} failed: {result.error}",
            delay=conf.error_requeue_delay_seconds,
        )
    logger.debug(f"Reconciled {KIND} {namespace}/{name}, next pass in {result.requeue_after}s.")


@kopf.on.resume(kind=KIND)
@kopf.on.create(kind=KIND)
@kopf.on.update(kind=KIND, field="spec")
async def on_change(name, namespace, logger: Logger, reason=None, **kwargs):
    """Reconcile a ComputeNode on create, resume and spec change."""
    await request_reconciliation(name, namespace, logger, str(reason or "change"))


@kopf.timer(kind=KIND, interval=REQUEUE_DELAY_SECONDS, initial_delay=REQUEUE_DELAY_SECONDS)
async def periodic_reconciliation(name, namespace, logger: Logger, **kwargs):
    """Reconcile a ComputeNode periodically."""
    await request_reconciliation(name, namespace, logger, "timer")


@kopf.on.delete(kind=KIND, optional=True)
async def on_delete(name, namespace, **kwargs):
    """Forget per-object state of a deleted ComputeNode.

    Owned resources are removed by the garbage collector through their owner
    references.
    """
    reconciliation_locks.pop((namespace, name), None)
