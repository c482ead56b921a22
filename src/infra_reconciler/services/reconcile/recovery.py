"""Stuck-operation recovery.

Two procedures that free resources left wedged by an interrupted operation:

* Release unlock: a Helm release stuck in a ``pending-*`` status refuses every
  further install, upgrade or rollback. The lock is cleared by killing the
  pods of the half-finished rollout, removing Helm's pending release storage
  secrets and rolling back to the last deployed revision.
* Namespace teardown: a namespace stuck in ``Terminating`` is released by
  stripping its own finalizers and those of every object still inside it.

Both are bounded and idempotent; neither raises for cluster errors it can
report through its outcome instead.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import TYPE_CHECKING

import structlog

from infra_reconciler.integrations.kubernetes.exceptions import KubernetesError
from infra_reconciler.integrations.kubernetes.models.resources import INSTANCE_LABEL
from infra_reconciler.services.reconcile.config import RecoveryConfig, TimeoutsConfig
from infra_reconciler.services.reconcile.exceptions import ProtectedNamespaceError
from infra_reconciler.services.reconcile.models import (
    ManagedComponent,
    NamespaceLifecycleState,
    OperationLock,
    UnlockOutcome,
)

if TYPE_CHECKING:
    from infra_reconciler.services.kubernetes.cluster_state import ClusterStateClient

logger = structlog.get_logger()


class StuckOperationRecovery:
    """Clears pending Helm locks and namespaces wedged in Terminating."""

    def __init__(
        self,
        cluster: ClusterStateClient,
        timeouts: TimeoutsConfig | None = None,
        recovery: RecoveryConfig | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize recovery.

        Args:
            cluster: Cluster state client.
            timeouts: Lock-clear wait and rollback bounds.
            recovery: Namespace teardown budget and protected namespaces.
            sleep: Sleep function, replaceable in tests.
        """
        self._cluster = cluster
        self._timeouts = timeouts or TimeoutsConfig()
        self._recovery = recovery or RecoveryConfig()
        self._sleep = sleep

    # =========================================================================
    # Release lock
    # =========================================================================

    def read_lock(self, release: str, namespace: str) -> OperationLock:
        """Read a release's status and revision history.

        Args:
            release: Release name.
            namespace: Release namespace.

        Returns:
            The lock view; ``status`` is None when no release record exists.
        """
        status = self._cluster.helm.release_status(release, namespace=namespace)
        if status is None:
            return OperationLock(status=None)
        history = self._cluster.helm.history(release, namespace=namespace)
        return OperationLock(status=status.status, revision=status.revision, history=history)

    def lock_state(self, component: ManagedComponent) -> OperationLock:
        """Read the operation lock of a component's release."""
        return self.read_lock(component.release, component.namespace)

    def unlock_release(self, component: ManagedComponent) -> UnlockOutcome:
        """Clear a pending lock on a component's release.

        Returns:
            RESOLVED when no pending status remains, ESCALATED otherwise.
        """
        return self.unlock(component.release, component.namespace, selector=component.selector)

    def unlock(
        self,
        release: str,
        namespace: str,
        *,
        selector: str | None = None,
    ) -> UnlockOutcome:
        """Clear a pending lock on a release.

        Args:
            release: Release name.
            namespace: Release namespace.
            selector: Pod selector of the release's workload; defaults to
                the ``app.kubernetes.io/instance`` label.

        Returns:
            RESOLVED when no pending status remains, ESCALATED otherwise.
        """
        log = logger.bind(release=release, namespace=namespace)
        lock = self.read_lock(release, namespace)
        if not lock.is_pending:
            log.debug("release_not_locked", status=lock.status)
            return UnlockOutcome.RESOLVED

        log.warning("unlocking_release", status=lock.status, revision=lock.revision)
        pod_selector = selector or f"{INSTANCE_LABEL}={release}"
        try:
            deleted = self._cluster.workloads.force_delete_pods(
                namespace, label_selector=pod_selector
            )
            log.info("release_pods_force_deleted", count=deleted)
        except KubernetesError as e:
            log.warning("release_pod_delete_failed", error=str(e))

        self._sleep(self._timeouts.lock_clear_wait)

        lock = self.read_lock(release, namespace)
        if lock.is_pending:
            self._clear_lock_secrets(release, namespace, lock.status or "")
            self._rollback(release, namespace, lock)
            lock = self.read_lock(release, namespace)

        if lock.is_pending:
            log.error("release_lock_escalated", status=lock.status)
            return UnlockOutcome.ESCALATED

        log.info("release_unlocked", status=lock.status, revision=lock.revision)
        return UnlockOutcome.RESOLVED

    def _clear_lock_secrets(self, release: str, namespace: str, status: str) -> None:
        selector = f"owner=helm,name={release},status={status}"
        try:
            count = self._cluster.secrets.delete_secrets(namespace, label_selector=selector)
        except KubernetesError as e:
            logger.warning(
                "lock_secret_delete_failed", release=release, namespace=namespace, error=str(e)
            )
            return
        logger.info("lock_secrets_deleted", release=release, namespace=namespace, count=count)

    def _rollback(self, release: str, namespace: str, lock: OperationLock) -> None:
        revision = lock.last_deployed_revision
        if revision is None:
            logger.warning("no_deployed_revision", release=release, namespace=namespace)
            return
        try:
            self._cluster.helm.rollback(
                release, revision, namespace=namespace, timeout=self._timeouts.rollback
            )
        except KubernetesError as e:
            logger.warning(
                "release_rollback_failed",
                release=release,
                namespace=namespace,
                revision=revision,
                error=str(e),
            )
            return
        logger.info("release_rolled_back", release=release, namespace=namespace, revision=revision)

    # =========================================================================
    # Namespace teardown
    # =========================================================================

    def namespace_state(self, name: str) -> NamespaceLifecycleState:
        """Lifecycle state of a namespace."""
        namespace = self._cluster.namespaces.get_namespace(name)
        if namespace is None:
            return NamespaceLifecycleState.GONE
        if namespace.is_terminating:
            return NamespaceLifecycleState.TERMINATING
        return NamespaceLifecycleState.ACTIVE

    def teardown_namespace(self, name: str) -> UnlockOutcome:
        """Delete a namespace, stripping finalizers until it is gone.

        Args:
            name: Namespace to remove.

        Returns:
            RESOLVED once the namespace is gone, ESCALATED when the attempt
            budget runs out.

        Raises:
            ProtectedNamespaceError: If the namespace is a system namespace.
        """
        if name in self._recovery.protected_namespaces:
            raise ProtectedNamespaceError(name)

        log = logger.bind(namespace=name)
        attempts = self._recovery.namespace_attempts
        for attempt in range(1, attempts + 1):
            state = self._read_namespace_state(name, attempt)
            if state is None:
                self._sleep(self._recovery.namespace_delay)
                continue

            if state == NamespaceLifecycleState.GONE:
                log.info("namespace_gone", attempt=attempt)
                return UnlockOutcome.RESOLVED

            log.info("tearing_down_namespace", attempt=attempt, state=state.value)
            try:
                self._cluster.namespaces.delete_namespace(name)
            except KubernetesError as e:
                log.warning("namespace_delete_failed", error=str(e))

            if state == NamespaceLifecycleState.TERMINATING:
                self._strip_namespace_finalizers(name)
                self._strip_resource_finalizers(name)

            self._sleep(self._recovery.namespace_delay)

        # The last strip gets one more look before giving up
        if self._read_namespace_state(name, attempts + 1) == NamespaceLifecycleState.GONE:
            log.info("namespace_gone", attempt=attempts)
            return UnlockOutcome.RESOLVED

        log.error("namespace_teardown_escalated", attempts=attempts)
        return UnlockOutcome.ESCALATED

    def _read_namespace_state(self, name: str, attempt: int) -> NamespaceLifecycleState | None:
        try:
            return self.namespace_state(name)
        except KubernetesError as e:
            logger.warning("namespace_read_failed", namespace=name, attempt=attempt, error=str(e))
            return None

    def _strip_namespace_finalizers(self, name: str) -> None:
        try:
            self._cluster.namespaces.patch_namespace_finalizers(name)
        except KubernetesError as e:
            logger.warning("namespace_finalizer_patch_failed", namespace=name, error=str(e))
        try:
            self._cluster.namespaces.finalize_namespace(name)
        except KubernetesError as e:
            logger.warning("namespace_finalize_failed", namespace=name, error=str(e))
        logger.info("namespace_finalizers_stripped", namespace=name)

    def _strip_resource_finalizers(self, name: str) -> None:
        resources = self._cluster.resources
        for ref in resources.list_finalizer_bearing(name):
            try:
                resources.clear_finalizers(ref.kind, ref.name, name)
                resources.delete_resource(ref.kind, ref.name, name)
            except KubernetesError as e:
                logger.warning(
                    "resource_finalizer_strip_failed",
                    namespace=name,
                    kind=ref.kind,
                    resource=ref.name,
                    error=str(e),
                )
