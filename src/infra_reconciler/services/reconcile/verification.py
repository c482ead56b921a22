"""Post-action verification and failure diagnostics."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from types import TracebackType
from typing import TYPE_CHECKING

import structlog

from infra_reconciler.integrations.kubernetes.exceptions import KubernetesError
from infra_reconciler.services.reconcile.models import (
    Diagnostics,
    ManagedComponent,
    VerificationResult,
)

if TYPE_CHECKING:
    from infra_reconciler.integrations.kubernetes.models.workloads import PodSummary
    from infra_reconciler.services.kubernetes.cluster_state import ClusterStateClient
    from infra_reconciler.services.reconcile.health import HealthProber

logger = structlog.get_logger()

LOG_TAIL_LINES = 50
EVENT_TAIL = 10


def _describe_pod(pod: PodSummary) -> str:
    line = f"{pod.name} {pod.phase} ready={pod.ready} restarts={pod.restarts}"
    if pod.waiting:
        line += f" waiting={','.join(pod.waiting)}"
    return line


class Verifier:
    """Waits for a component to become ready after a Helm action."""

    def __init__(
        self,
        cluster: ClusterStateClient,
        prober: HealthProber,
        interval: float = 5.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._cluster = cluster
        self._prober = prober
        self._interval = interval
        self._sleep = sleep
        self._clock = clock

    def _ready(self, component: ManagedComponent) -> int:
        try:
            return self._prober.ready_replicas(component) or 0
        except KubernetesError as e:
            logger.debug("verify_poll_failed", component=component.name, error=str(e))
            return 0

    def verify(
        self,
        component: ManagedComponent,
        timeout: float,
        action_log: list[str] | None = None,
    ) -> VerificationResult:
        """Poll ready replicas until the component is ready or time runs out.

        Args:
            component: Component to verify.
            timeout: Seconds to wait.
            action_log: Output of the actions taken, tailed into diagnostics.

        Returns:
            The verification result; diagnostics are attached on timeout.
        """
        log = logger.bind(component=component.name)
        required = component.min_ready_replicas
        start = self._clock()
        log.info("verifying_component", required=required, timeout=timeout)

        while True:
            ready = self._ready(component)
            elapsed = self._clock() - start
            if ready >= required:
                log.info("component_ready", ready=ready, elapsed=round(elapsed, 1))
                return VerificationResult(True, ready, required, elapsed)
            if elapsed >= timeout:
                break
            self._sleep(min(self._interval, timeout - elapsed))

        log.error("component_not_ready", ready=ready, required=required, timeout=timeout)
        return VerificationResult(
            False,
            ready,
            required,
            elapsed,
            diagnostics=self.collect_diagnostics(component, action_log or []),
        )

    def collect_diagnostics(
        self, component: ManagedComponent, action_log: list[str]
    ) -> Diagnostics:
        """Gather evidence for why a component did not come up.

        Each source is collected independently; a failing source is left
        empty.
        """
        ns = component.namespace
        diagnostics = Diagnostics(log_tail=action_log[-LOG_TAIL_LINES:])

        try:
            pods = self._cluster.workloads.list_pods(ns, label_selector=component.selector)
            diagnostics.pods = [_describe_pod(pod) for pod in pods]
        except KubernetesError as e:
            logger.debug("diagnostics_pods_failed", component=component.name, error=str(e))

        try:
            events = [
                evt
                for evt in self._cluster.namespaces.list_events(ns)
                if component.name in (evt.involved_object_name or "")
            ]
            diagnostics.events = [
                f"{evt.type} {evt.reason} {evt.involved_object_kind}/{evt.involved_object_name}: "
                f"{evt.message}"
                for evt in events[-EVENT_TAIL:]
            ]
        except KubernetesError as e:
            logger.debug("diagnostics_events_failed", component=component.name, error=str(e))

        try:
            claims = self._cluster.storage.list_persistent_volume_claims(
                ns, label_selector=component.selector
            )
            diagnostics.pending_claims = [
                f"{claim.name} {claim.status}" for claim in claims if not claim.is_bound
            ]
        except KubernetesError as e:
            logger.debug("diagnostics_claims_failed", component=component.name, error=str(e))

        return diagnostics


class ProgressPoller:
    """Logs ready replicas on a background thread while a Helm call blocks.

    Example:
        >>> with ProgressPoller(prober, component, interval=10):
        ...     helm.upgrade(...)
    """

    def __init__(
        self,
        prober: HealthProber,
        component: ManagedComponent,
        interval: float = 10.0,
    ) -> None:
        self._prober = prober
        self._component = component
        self._interval = interval
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self.samples: list[int] = []

    def _run(self) -> None:
        log = logger.bind(component=self._component.name)
        while not self._stop.wait(self._interval):
            try:
                ready = self._prober.ready_replicas(self._component) or 0
            except KubernetesError as e:
                log.debug("progress_poll_failed", error=str(e))
                continue
            self.samples.append(ready)
            log.info(
                "rollout_progress",
                ready=ready,
                required=self._component.min_ready_replicas,
            )

    def __enter__(self) -> ProgressPoller:
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        # A poll already in flight finishes before the Helm result is acted on
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
