"""Unit tests for the ComputeNode reconcile pass and its kopf binding."""

import asyncio
import logging
import kopf
import pytest
from unittest.mock import AsyncMock, MagicMock
from kubernetes_asyncio.client import ApiException
from shardingsphere_operator.handlers import computenode as handlers
from shardingsphere_operator.handlers.computenode import (
    on_delete,
    reconcile,
    reconciliation_locks,
    request_reconciliation,
)
from shardingsphere_operator.resources.computenode import ComputeNode
from shardingsphere_operator.types.models import ReconcileResult
from shardingsphere_operator.types.settings import Settings

logger = logging.getLogger("test")


@pytest.fixture(autouse=True)
def conf(monkeypatch):
    conf = Settings(
        requeue_delay_seconds=10.0,
        error_requeue_delay_seconds=1.0,
        reconcile_timeout_seconds=5.0,
    )
    monkeypatch.setattr(ComputeNode, "conf", conf)
    return conf


@pytest.fixture(autouse=True)
def clear_locks():
    reconciliation_locks.clear()
    yield
    reconciliation_locks.clear()


@pytest.fixture
def sensor(monkeypatch):
    sensor = MagicMock()
    monkeypatch.setattr(ComputeNode, "sensor", sensor)
    return sensor


@pytest.fixture
def calls():
    return []


@pytest.fixture
def node(calls):
    """ComputeNode double recording the order of reconciler calls."""
    node = MagicMock()
    node.fetch = AsyncMock(return_value=node)

    def record(step):
        async def _record():
            calls.append(step)

        return _record

    node.reconcile_status = AsyncMock(side_effect=record("status"))
    node.reconcile_deployment = AsyncMock(side_effect=record("deployment"))
    node.reconcile_service = AsyncMock(side_effect=record("service"))
    node.reconcile_config_map = AsyncMock(side_effect=record("configmap"))
    return node


class TestReconcile:
    async def test_success_requeues_after_delay(self, node, calls):
        result = await reconcile("proxy", "default", logger, node=node)

        assert result == ReconcileResult(requeue=False, requeue_after=10.0, error=None)
        assert calls == ["status", "deployment", "service", "configmap"]

    async def test_not_found_requeues_after_delay(self, node):
        node.fetch.return_value = None

        result = await reconcile("proxy", "default", logger, node=node)

        assert result == ReconcileResult(requeue_after=10.0)
        node.reconcile_status.assert_not_called()
        node.reconcile_deployment.assert_not_called()

    async def test_fetch_error_requeues_now(self, node):
        error = ApiException(status=500, reason="Internal Server Error")
        node.fetch.side_effect = error

        result = await reconcile("proxy", "default", logger, node=node)

        assert result.requeue is True
        assert result.error is error
        node.reconcile_deployment.assert_not_called()

    async def test_status_failure_does_not_abort_pass(self, node, calls):
        node.reconcile_status.side_effect = RuntimeError("status failed")

        result = await reconcile("proxy", "default", logger, node=node)

        assert result == ReconcileResult(requeue_after=10.0)
        assert calls == ["deployment", "service", "configmap"]

    async def test_every_reconciler_runs_and_first_error_wins(self, node, calls):
        deployment_error = ApiException(status=422, reason="Unprocessable Entity")
        config_error = ApiException(status=500, reason="Internal Server Error")
        node.reconcile_deployment.side_effect = deployment_error
        node.reconcile_config_map.side_effect = config_error

        result = await reconcile("proxy", "default", logger, node=node)

        assert result.requeue is True
        assert result.error is deployment_error
        assert calls == ["status", "service"]
        node.reconcile_config_map.assert_awaited_once()

    async def test_cancellation_propagates(self, node):
        node.reconcile_service.side_effect = asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            await reconcile("proxy", "default", logger, node=node)
        node.reconcile_config_map.assert_not_called()

    async def test_reports_pass_to_sensor(self, node, sensor):
        error = RuntimeError("boom")
        node.reconcile_service.side_effect = error

        await reconcile("proxy", "default", logger, node=node, trigger_source="timer")

        sensor.on_reconcile_start.assert_called_once_with("proxy", "default", "timer")
        args = sensor.on_reconcile_complete.call_args.args
        assert args[0:2] == ("proxy", "default")
        assert args[3:] == (False, error)


class TestRequestReconciliation:
    async def test_delay_directive_completes(self, monkeypatch):
        monkeypatch.setattr(
            handlers, "reconcile", AsyncMock(return_value=ReconcileResult.retry_after(10.0))
        )

        await request_reconciliation("proxy", "default", logger, "create")

        handlers.reconcile.assert_awaited_once_with(
            "proxy", "default", logger, trigger_source="create"
        )

    async def test_error_directive_is_retried_by_kopf(self, monkeypatch):
        monkeypatch.setattr(
            handlers,
            "reconcile",
            AsyncMock(return_value=ReconcileResult.retry_now(RuntimeError("boom"))),
        )

        with pytest.raises(kopf.TemporaryError) as excinfo:
            await request_reconciliation("proxy", "default", logger, "update")
        assert excinfo.value.delay == 1.0
        assert "boom" in str(excinfo.value)

    async def test_pass_exceeding_timeout_is_retried(self, monkeypatch, conf):
        conf.reconcile_timeout_seconds = 0.01

        async def slow_reconcile(*args, **kwargs):
            await asyncio.sleep(1)

        monkeypatch.setattr(handlers, "reconcile", slow_reconcile)

        with pytest.raises(kopf.TemporaryError):
            await request_reconciliation("proxy", "default", logger, "timer")

    async def test_passes_of_one_object_are_serialized(self, monkeypatch):
        running = []
        overlapped = []

        async def tracking_reconcile(name, namespace, *args, **kwargs):
            if running:
                overlapped.append(name)
            running.append(name)
            await asyncio.sleep(0.01)
            running.remove(name)
            return ReconcileResult.retry_after(10.0)

        monkeypatch.setattr(handlers, "reconcile", tracking_reconcile)

        await asyncio.gather(
            request_reconciliation("proxy", "default", logger, "create"),
            request_reconciliation("proxy", "default", logger, "timer"),
        )

        assert overlapped == []

    async def test_delete_forgets_lock(self):
        reconciliation_locks[("default", "gone")]

        await on_delete(name="gone", namespace="default")

        assert ("default", "gone") not in reconciliation_locks
