"""Component health probing.

Classifies a component as healthy, degraded or absent from its workload's
ready replicas and, where configured, a live probe command run inside the
first running pod. Probing never mutates the cluster and never raises for
cluster errors: anything unexpected reads as degraded.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from infra_reconciler.integrations.kubernetes.exceptions import KubernetesError
from infra_reconciler.services.reconcile.models import (
    HealthStatus,
    ManagedComponent,
    ProbeResult,
)

if TYPE_CHECKING:
    from infra_reconciler.services.kubernetes.cluster_state import ClusterStateClient

logger = structlog.get_logger()


class HealthProber:
    """Read-only health checks for managed components."""

    def __init__(self, cluster: ClusterStateClient, probe_timeout: int = 15) -> None:
        self._cluster = cluster
        self._probe_timeout = probe_timeout

    def ready_replicas(self, component: ManagedComponent) -> int | None:
        """Ready replica count of the component's workload.

        Returns:
            The count, or None when the workload does not exist.

        Raises:
            KubernetesError: If the workload cannot be read.
        """
        workload = self._cluster.workloads.get_workload(
            component.workload.kind, component.workload.name, component.namespace
        )
        return None if workload is None else workload.ready_replicas

    def probe(self, component: ManagedComponent) -> ProbeResult:
        """Classify a component's health.

        Args:
            component: Component to probe.

        Returns:
            Health status with the observed and required ready replicas.
        """
        log = logger.bind(component=component.name)
        required = component.min_ready_replicas
        try:
            ready = self.ready_replicas(component)
        except KubernetesError as e:
            log.warning("health_probe_failed", error=str(e))
            return ProbeResult(HealthStatus.DEGRADED, 0, required, f"API error: {e}")

        if ready is None:
            log.debug("health_probed", status=HealthStatus.ABSENT.value)
            return ProbeResult(
                HealthStatus.ABSENT,
                0,
                required,
                f"{component.workload.kind} {component.workload.name} not found",
            )

        if ready < required:
            log.debug("health_probed", status=HealthStatus.DEGRADED.value, ready=ready)
            return ProbeResult(HealthStatus.DEGRADED, ready, required, "not enough ready replicas")

        if component.health_check == "replicas+probe":
            detail = self._live_probe(component)
            if detail:
                log.info("live_probe_failed", detail=detail)
                return ProbeResult(HealthStatus.DEGRADED, ready, required, detail)

        log.debug("health_probed", status=HealthStatus.HEALTHY.value, ready=ready)
        return ProbeResult(HealthStatus.HEALTHY, ready, required)

    def _live_probe(self, component: ManagedComponent) -> str | None:
        """Run the probe command; return a failure description or None."""
        try:
            pods = self._cluster.workloads.list_pods(
                component.namespace, label_selector=component.selector
            )
            running = next((p for p in pods if p.is_running), None)
            if running is None:
                return "no running pod for live probe"
            result = self._cluster.streaming.exec_capture(
                running.name,
                component.namespace,
                command=list(component.probe_command),
                container=component.probe_container,
                timeout=self._probe_timeout,
            )
        except KubernetesError as e:
            return f"live probe error: {e}"
        if not result.ok:
            return f"live probe exited {result.returncode}"
        return None
