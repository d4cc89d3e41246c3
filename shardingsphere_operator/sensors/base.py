"""Base sensor classes for operator monitoring.

This module defines the base OperatorSensor class that provides lifecycle hooks
for monitoring operator events. All hooks are no-ops by default, allowing
subclasses to override only the events they care about.

Hooks come in pairs where an operation has a duration: on_X_start() returns an
optional state dict that is handed back to the matching on_X_complete().
"""

from typing import Dict, List, Optional, Any
import logging

logger = logging.getLogger(__name__)


class OperatorSensor:
    """Base sensor class for ComputeNode operator monitoring.

    Hooks cover two categories:
    1. Reconciliation lifecycle (one full reconcile pass)
    2. Resource operations (owned resource sync and status writes)
    """

    # =============================================================================
    # Reconciliation Lifecycle Hooks
    # =============================================================================

    def on_reconcile_start(
        self,
        name: str,
        namespace: str,
        trigger_source: str,
    ) -> Optional[Dict[str, Any]]:
        """Called when a reconcile pass begins.

        Args:
            name: ComputeNode name
            namespace: Kubernetes namespace
            trigger_source: What triggered the pass (create, update, timer, ...)

        Returns:
            Optional state dict passed to on_reconcile_complete
        """
        pass

    def on_reconcile_complete(
        self,
        name: str,
        namespace: str,
        state: Optional[Dict[str, Any]],
        success: bool,
        error: Optional[Exception] = None,
    ) -> None:
        """Called when a reconcile pass completes.

        Args:
            name: ComputeNode name
            namespace: Kubernetes namespace
            state: State dict returned from on_reconcile_start
            success: Whether the pass converged all owned resources
            error: First error of the pass, if any
        """
        pass

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
        """Called before an owned resource is created or updated.

        Args:
            name: ComputeNode name
            resource_name: Name of the owned resource
            namespace: Kubernetes namespace
            resource_type: deployment, service or config_map
        """
        pass

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
        """Called after an owned resource create/update finished.

        Args:
            operation: create or replace
        """
        pass

    def on_resource_drift_detected(
        self,
        name: str,
        resource_name: str,
        namespace: str,
        resource_type: str,
        drift_fields: List[str],
    ) -> None:
        """Called when the live state of an owned resource differs from the desired one."""
        pass

    def on_status_update(
        self,
        name: str,
        namespace: str,
        phase: str,
        ready_instances: int,
    ) -> None:
        """Called after the ComputeNode status was written."""
        pass

    def on_status_conflict(
        self,
        name: str,
        namespace: str,
        attempt: int,
    ) -> None:
        """Called when a status write lost a race with another writer."""
        pass

    def asdict(self) -> Dict[str, Any]:
        """Return sensor state as dictionary (for debugging/introspection)."""
        return {}
