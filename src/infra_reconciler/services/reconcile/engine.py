"""Reconciliation decision engine.

Drives every configured component, in declared order, from its observed
state to the desired state:

* A pending Helm lock is cleared before anything else is looked at.
* An absent component is installed, a degraded one has its leftover
  objects adopted and is upgraded, and a healthy one only has its
  credential synchronized.
* In destructive-reprovision mode every component is torn down and
  installed fresh.

Every action is followed by verification. Failures are recorded per
component and the run moves on to the next one.
"""

from __future__ import annotations

import contextlib
import time
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import SecretStr

from infra_reconciler.integrations.kubernetes.exceptions import (
    KubernetesConnectionError,
    KubernetesError,
)
from infra_reconciler.integrations.kubernetes.models.cluster import NodeSummary
from infra_reconciler.integrations.kubernetes.models.helm import HelmCommandResult
from infra_reconciler.services.kubernetes.workload_manager import WORKLOAD_KINDS
from infra_reconciler.services.reconcile.adoption import OrphanAdopter
from infra_reconciler.services.reconcile.config import ReconcilerConfig, resolve_desired_credentials
from infra_reconciler.services.reconcile.credentials import CredentialSynchronizer
from infra_reconciler.services.reconcile.exceptions import (
    EscalationRequiredError,
    ReconcileError,
    VerificationTimeoutError,
)
from infra_reconciler.services.reconcile.health import HealthProber
from infra_reconciler.services.reconcile.models import (
    ActionKind,
    ComponentResult,
    HealthStatus,
    ManagedComponent,
    ObservedState,
    OperationLock,
    ReconcileAction,
    ReconcileMode,
    RunReport,
    SyncOutcome,
    UnlockOutcome,
)
from infra_reconciler.services.reconcile.recovery import StuckOperationRecovery
from infra_reconciler.services.reconcile.verification import ProgressPoller, Verifier

if TYPE_CHECKING:
    from infra_reconciler.services.kubernetes.cluster_state import ClusterStateClient

logger = structlog.get_logger()


class ReconciliationEngine:
    """Chooses and executes one action per component."""

    def __init__(
        self,
        cluster: ClusterStateClient,
        config: ReconcilerConfig,
        *,
        prober: HealthProber | None = None,
        synchronizer: CredentialSynchronizer | None = None,
        recovery: StuckOperationRecovery | None = None,
        adopter: OrphanAdopter | None = None,
        verifier: Verifier | None = None,
        desired_credentials: dict[str, SecretStr | None] | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        progress_interval: float | None = None,
    ) -> None:
        """Initialize the engine.

        Collaborators not given are built from ``cluster`` and ``config``.

        Args:
            cluster: Cluster state client.
            config: Reconciler configuration.
            prober: Health prober.
            synchronizer: Credential drift synchronizer.
            recovery: Stuck-operation recovery.
            adopter: Orphan adopter.
            verifier: Post-action verifier.
            desired_credentials: Desired credential per component name;
                read from the environment when omitted.
            sleep: Sleep function, replaceable in tests.
            clock: Monotonic clock, replaceable in tests.
            progress_interval: Seconds between rollout progress log lines
                while a Helm call blocks; disabled when None.
        """
        timeouts = config.timeouts
        self._cluster = cluster
        self._config = config
        self._prober = prober or HealthProber(cluster, probe_timeout=timeouts.probe)
        self._synchronizer = synchronizer or CredentialSynchronizer(cluster)
        self._recovery = recovery or StuckOperationRecovery(
            cluster, timeouts, config.recovery, sleep=sleep
        )
        self._adopter = adopter or OrphanAdopter(cluster)
        self._verifier = verifier or Verifier(
            cluster, self._prober, interval=timeouts.verify_interval, sleep=sleep, clock=clock
        )
        self._desired = (
            desired_credentials
            if desired_credentials is not None
            else resolve_desired_credentials(config.components)
        )
        self._clock = clock
        self._progress_interval = progress_interval

    @property
    def destructive(self) -> bool:
        return self._config.mode == ReconcileMode.DESTRUCTIVE

    # =========================================================================
    # Run
    # =========================================================================

    def preflight(self) -> list[NodeSummary]:
        """Check the cluster API answers and summarize node readiness.

        Returns:
            The cluster's nodes.

        Raises:
            KubernetesConnectionError: If the API server is unreachable.
        """
        if not self._cluster.check_connection():
            raise KubernetesConnectionError("Cluster API server is unreachable")
        try:
            nodes = self._cluster.namespaces.list_nodes()
        except KubernetesError as e:
            logger.warning("node_listing_failed", error=str(e))
            return []
        ready = [node for node in nodes if node.is_ready]
        if not ready:
            logger.warning("no_ready_nodes", total=len(nodes))
        else:
            logger.info("cluster_nodes", ready=len(ready), total=len(nodes))
        return nodes

    def add_repositories(self) -> None:
        """Add the configured chart repositories and refresh their indexes."""
        repositories = self._config.repositories
        if not repositories:
            return
        for repo in repositories:
            try:
                self._cluster.helm.repo_add(repo.name, repo.url)
            except KubernetesError as e:
                logger.warning("helm_repo_add_failed", name=repo.name, error=str(e))
        try:
            self._cluster.helm.repo_update()
        except KubernetesError as e:
            logger.warning("helm_repo_update_failed", error=str(e))

    def run(self, components: Sequence[ManagedComponent] | None = None) -> RunReport:
        """Reconcile components in order within the run budget.

        Components not started before the run budget is spent are reported
        as aborted; completed ones are left as they are.

        Args:
            components: Components to process; all configured ones when None.

        Returns:
            Per-component results.
        """
        queue = list(self._config.components if components is None else components)
        report = RunReport(mode=self._config.mode)
        deadline = self._clock() + self._config.timeouts.run
        logger.info("reconcile_started", mode=self._config.mode.value, components=len(queue))

        self.add_repositories()

        for component in queue:
            if self._clock() >= deadline:
                logger.error("component_aborted", component=component.name)
                report.results.append(
                    ComponentResult(
                        component=component.name,
                        reason="run timeout exceeded",
                        aborted=True,
                    )
                )
                continue
            report.results.append(self.reconcile_component(component))

        logger.info(
            "reconcile_finished",
            succeeded=report.succeeded,
            failed=[r.component for r in report.results if not r.succeeded],
        )
        return report

    def reconcile_component(self, component: ManagedComponent) -> ComponentResult:
        """Reconcile one component, recording rather than raising failures."""
        log = logger.bind(component=component.name)
        result = ComponentResult(component=component.name)
        action_log: list[str] = []
        try:
            self._reconcile(component, result, action_log)
        except ReconcileError as e:
            log.error("component_failed", error=str(e))
            result.error = str(e)
        except KubernetesError as e:
            log.error("component_api_error", error=str(e))
            result.error = str(e)
        return result

    def observe(self, component: ManagedComponent) -> ObservedState:
        """Read-only snapshot of a component's cluster state.

        Raises:
            KubernetesError: If the release record cannot be read.
        """
        log = logger.bind(component=component.name)
        try:
            ready = self._prober.ready_replicas(component)
        except KubernetesError as e:
            log.warning("observe_workload_failed", error=str(e))
            ready = None

        lock = self._recovery.lock_state(component)

        stored = False
        try:
            stored = self._synchronizer.stored_credential(component) is not None
        except KubernetesError as e:
            log.warning("observe_credential_failed", error=str(e))

        return ObservedState(
            workload_exists=ready is not None,
            ready_replicas=ready or 0,
            release_status=lock.status,
            release_revision=lock.revision,
            stored_credential_present=stored,
            resources=self._adopter.discover(component),
        )

    # =========================================================================
    # Decision
    # =========================================================================

    def decide(self, component: ManagedComponent, result: ComponentResult) -> ReconcileAction:
        """Choose the action for a component from its observed state.

        Records the health, sync outcome and adoption report on ``result``.
        """
        if self.destructive:
            return ReconcileAction(ActionKind.REINSTALL, "destructive-reprovision mode")

        probe = self._prober.probe(component)
        result.health = probe.status

        if probe.status == HealthStatus.ABSENT:
            return ReconcileAction(ActionKind.INSTALL, probe.detail or "workload not found")

        if probe.status == HealthStatus.DEGRADED:
            result.adoption = self._adopter.adopt_component(component)
            return ReconcileAction(
                ActionKind.UPGRADE,
                f"degraded ({probe.ready}/{probe.required} ready): {probe.detail}".rstrip(": "),
            )

        sync = self._synchronizer.sync(component, self._desired.get(component.name), probe.status)
        result.sync = sync
        if sync == SyncOutcome.FAILED:
            return ReconcileAction(ActionKind.UPGRADE, "credential sync failed")
        if component.force_upgrade:
            return ReconcileAction(ActionKind.UPGRADE, "force_upgrade set")
        if sync == SyncOutcome.UPDATED:
            return ReconcileAction(ActionKind.SKIP, "healthy, credential updated")
        return ReconcileAction(ActionKind.SKIP, "healthy")

    def _reconcile(
        self,
        component: ManagedComponent,
        result: ComponentResult,
        action_log: list[str],
    ) -> None:
        log = logger.bind(component=component.name)

        if not self.destructive:
            self._ensure_unlocked(component, result)

        action = self.decide(component, result)
        result.action = action.kind
        result.reason = action.reason
        log.info("action_chosen", action=action.kind.value, reason=action.reason)

        if action.kind == ActionKind.SKIP:
            return

        if action.kind == ActionKind.REINSTALL:
            self._teardown_release(component, result, action_log)
        else:
            self._ensure_unlocked(component, result)

        self._execute(component, action.kind, action_log)

        verification = self._verifier.verify(component, self._config.timeouts.verify, action_log)
        result.verification = verification
        if verification.healthy:
            result.health = HealthStatus.HEALTHY
            return
        result.health = HealthStatus.DEGRADED
        raise VerificationTimeoutError(component.name, self._config.timeouts.verify)

    def _ensure_unlocked(
        self, component: ManagedComponent, result: ComponentResult
    ) -> OperationLock:
        """Clear a pending lock, failing the component if it will not clear.

        Raises:
            EscalationRequiredError: If the lock is still held after unlock.
        """
        lock = self._recovery.lock_state(component)
        if not lock.is_pending:
            return lock
        outcome = self._recovery.unlock_release(component)
        result.unlock = outcome
        if outcome == UnlockOutcome.ESCALATED:
            raise EscalationRequiredError(
                f"Release '{component.release}' is still {lock.status} after unlock",
                component=component.name,
            )
        return self._recovery.lock_state(component)

    # =========================================================================
    # Execution
    # =========================================================================

    def _teardown_release(
        self,
        component: ManagedComponent,
        result: ComponentResult,
        action_log: list[str],
    ) -> None:
        """Remove a component's release, workloads and volume claims."""
        log = logger.bind(component=component.name)
        ns = component.namespace
        workloads = self._cluster.workloads

        if workloads.scale_workload(component.workload.kind, component.workload.name, 0, ns):
            action_log.append(f"scaled {component.workload.kind} {component.workload.name} to 0")

        self._ensure_unlocked(component, result)

        try:
            if self._cluster.helm.uninstall(
                component.release, namespace=ns, timeout=self._config.timeouts.helm_action
            ):
                action_log.append(f"uninstalled release {component.release}")
        except KubernetesError as e:
            log.warning("helm_uninstall_failed", error=str(e))
            action_log.append(f"helm uninstall failed: {e}")

        for kind in WORKLOAD_KINDS:
            for workload in workloads.list_workloads(kind, ns, label_selector=component.selector):
                if workloads.delete_workload(kind, workload.name, ns):
                    action_log.append(f"deleted {kind} {workload.name}")

        storage = self._cluster.storage
        for claim in storage.list_persistent_volume_claims(ns, label_selector=component.selector):
            if storage.delete_persistent_volume_claim(claim.name, ns):
                action_log.append(f"deleted PersistentVolumeClaim {claim.name}")

        result.adoption = self._adopter.adopt_component(component, destructive=True)
        action_log.append(f"leftovers: {result.adoption.summary()}")

    def _set_values(self, component: ManagedComponent) -> list[str]:
        """Static values plus those whose CRD is installed."""
        values = list(component.set_values)
        for conditional in component.conditional_values:
            try:
                present = self._cluster.resources.crd_exists(conditional.crd)
            except KubernetesError as e:
                logger.warning(
                    "crd_check_failed",
                    component=component.name,
                    crd=conditional.crd,
                    error=str(e),
                )
                continue
            if present:
                values.extend(conditional.set_values)
        return values

    def _execute(
        self, component: ManagedComponent, kind: ActionKind, action_log: list[str]
    ) -> None:
        """Provision credentials and run the Helm action for ``kind``.

        Helm failures are logged into ``action_log``; verification decides
        whether the component came up regardless.
        """
        log = logger.bind(component=component.name)
        ns = component.namespace
        helm = self._cluster.helm

        if self._cluster.namespaces.ensure_namespace(ns):
            action_log.append(f"created namespace {ns}")
        credential = component.credential
        desired = self._desired.get(component.name)
        if credential and self._synchronizer.provision(component, desired):
            action_log.append(f"provisioned credential {credential.secret_name}")

        has_record = self._recovery.lock_state(component).exists
        common: dict[str, Any] = {
            "namespace": ns,
            "values_files": list(component.values_files),
            "set_values": self._set_values(component),
            "version": component.chart_version,
            "timeout": self._config.timeouts.helm_action,
        }

        log.info("executing_action", action=kind.value, release_record=has_record)
        try:
            with self._progress(component):
                output: HelmCommandResult
                if kind == ActionKind.UPGRADE or has_record:
                    output = helm.upgrade(
                        component.release,
                        component.chart,
                        install=not has_record or kind != ActionKind.UPGRADE,
                        **common,
                    )
                else:
                    output = helm.install(component.release, component.chart, **common)
        except KubernetesError as e:
            log.warning("helm_action_failed", action=kind.value, error=str(e))
            action_log.append(f"helm {kind.value} failed: {e}")
            stderr = getattr(e, "stderr", None)
            if stderr:
                action_log.extend(stderr.splitlines())
            return

        action_log.extend(output.stdout.splitlines())
        log.info("action_executed", action=kind.value)

    def _progress(self, component: ManagedComponent) -> contextlib.AbstractContextManager[object]:
        if self._progress_interval is None:
            return contextlib.nullcontext()
        return ProgressPoller(self._prober, component, interval=self._progress_interval)

