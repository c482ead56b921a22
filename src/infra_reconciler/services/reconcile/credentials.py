"""Credential drift synchronization.

Keeps a component's stored credential record in line with the desired
credential without ever losing access to the running service: the live
service is switched first (authenticating with the old credential) and
the record is overwritten only after that succeeds.
"""

from __future__ import annotations

import secrets
import string
from collections.abc import Callable
from typing import TYPE_CHECKING

import structlog
from pydantic import SecretStr

from infra_reconciler.integrations.kubernetes.exceptions import KubernetesError
from infra_reconciler.services.reconcile.exceptions import CredentialUpdateError
from infra_reconciler.services.reconcile.models import (
    CredentialSpec,
    HealthStatus,
    ManagedComponent,
    SyncOutcome,
)

if TYPE_CHECKING:
    from infra_reconciler.services.kubernetes.cluster_state import ClusterStateClient

logger = structlog.get_logger()

PASSWORD_ALPHABET = string.ascii_letters + string.digits


def generate_password(length: int = 25) -> str:
    """Random alphanumeric password."""
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))


def _sql_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def _sql_identifier(value: str) -> str:
    return '"' + value.replace('"', '""') + '"'


class CredentialSynchronizer:
    """Detects and resolves drift between desired and stored credentials."""

    def __init__(
        self,
        cluster: ClusterStateClient,
        exec_timeout: int = 30,
        password_generator: Callable[[int], str] = generate_password,
    ) -> None:
        self._cluster = cluster
        self._exec_timeout = exec_timeout
        self._generate = password_generator

    # =========================================================================
    # Stored record
    # =========================================================================

    def stored_credential(self, component: ManagedComponent) -> str | None:
        """Current value of the record's primary key, None when absent.

        Raises:
            KubernetesError: If the record cannot be read.
        """
        spec = component.credential
        if spec is None:
            return None
        data = self._cluster.secrets.get_secret_data(spec.secret_name, component.namespace)
        if not data:
            return None
        return data.get(spec.keys[0]) or None

    def _write_record(self, component: ManagedComponent, spec: CredentialSpec, value: str) -> None:
        self._cluster.secrets.upsert_secret(
            spec.secret_name,
            component.namespace,
            data={key: value for key in spec.keys},
            labels={"app.kubernetes.io/part-of": component.release},
        )

    # =========================================================================
    # Drift resolution
    # =========================================================================

    def sync(
        self,
        component: ManagedComponent,
        desired: SecretStr | None,
        health: HealthStatus,
    ) -> SyncOutcome:
        """Bring the running service and stored record to the desired credential.

        Args:
            component: Component whose credential to check.
            desired: Desired credential; empty or None never erases a stored one.
            health: Current health of the component.

        Returns:
            UNCHANGED when nothing needed doing, UPDATED after a live update
            and record overwrite, FAILED when the live update (or reading the
            record) failed, DEFERRED when the component is not healthy.
        """
        spec = component.credential
        log = logger.bind(component=component.name)
        new = desired.get_secret_value() if desired is not None else ""
        if spec is None or not new:
            return SyncOutcome.UNCHANGED

        try:
            old = self.stored_credential(component)
        except KubernetesError as e:
            log.warning("credential_read_failed", error=str(e))
            return SyncOutcome.FAILED

        if old == new:
            log.debug("credential_in_sync")
            return SyncOutcome.UNCHANGED

        if health != HealthStatus.HEALTHY:
            log.info("credential_sync_deferred", health=health.value)
            return SyncOutcome.DEFERRED

        if old is None and spec.updater != "none":
            log.warning("credential_record_missing", secret=spec.secret_name)
            return SyncOutcome.FAILED

        log.info("credential_drift_detected", updater=spec.updater, new_length=len(new))
        try:
            self._live_update(component, spec, old or "", new)
        except (CredentialUpdateError, KubernetesError) as e:
            log.warning("credential_live_update_failed", error=str(e))
            return SyncOutcome.FAILED

        try:
            self._write_record(component, spec, new)
        except KubernetesError as e:
            log.error(
                "credential_record_write_failed",
                secret=spec.secret_name,
                error=str(e),
            )
            return SyncOutcome.FAILED

        log.info("credential_updated", secret=spec.secret_name, keys=list(spec.keys))
        return SyncOutcome.UPDATED

    def provision(self, component: ManagedComponent, desired: SecretStr | None) -> bool:
        """Write the desired credential to the record ahead of a Helm action.

        With no desired credential an existing record is kept as is, and a
        missing one is created with a generated password.

        Returns:
            True if the record was written.

        Raises:
            KubernetesError: If the record cannot be read or written.
        """
        spec = component.credential
        if spec is None:
            return False
        log = logger.bind(component=component.name)
        new = desired.get_secret_value() if desired is not None else ""
        old = self.stored_credential(component)

        if not new:
            if old is not None:
                return False
            new = self._generate(spec.generate_length)
            log.info("credential_generated", secret=spec.secret_name, length=len(new))
        elif old == new:
            return False

        self._write_record(component, spec, new)
        log.info("credential_provisioned", secret=spec.secret_name)
        return True

    # =========================================================================
    # Live updaters
    # =========================================================================

    def _live_update(
        self, component: ManagedComponent, spec: CredentialSpec, old: str, new: str
    ) -> None:
        if spec.updater == "none":
            return
        pod = self._target_pod(component)
        if spec.updater == "postgres":
            self._update_postgres(component, spec, pod, old, new)
        elif spec.updater == "redis":
            self._update_redis(component, spec, pod, old, new)
        elif spec.updater == "rabbitmq":
            self._update_rabbitmq(component, spec, pod, new)

    def _target_pod(self, component: ManagedComponent) -> str:
        pods = self._cluster.workloads.list_pods(
            component.namespace, label_selector=component.selector
        )
        running = next((p for p in pods if p.is_running), None)
        if running is None:
            raise CredentialUpdateError("No running pod to update", component=component.name)
        return running.name

    def _exec(
        self, component: ManagedComponent, spec: CredentialSpec, pod: str, command: list[str]
    ) -> str:
        result = self._cluster.streaming.exec_capture(
            pod,
            component.namespace,
            command=command,
            container=spec.container,
            timeout=self._exec_timeout,
        )
        if not result.ok:
            raise CredentialUpdateError(
                f"{command[0]} exited {result.returncode}",
                component=component.name,
                details=result.stderr.strip(),
            )
        return result.stdout

    def _update_postgres(
        self, component: ManagedComponent, spec: CredentialSpec, pod: str, old: str, new: str
    ) -> None:
        """Change every listed user's password in one transaction.

        The session authenticates as ``postgres`` with the old password once,
        so rotating ``postgres`` itself cannot lock out the remaining users.
        """
        statements = "; ".join(
            f"ALTER USER {_sql_identifier(user)} WITH PASSWORD {_sql_literal(new)}"
            for user in spec.users
        )
        self._exec(
            component,
            spec,
            pod,
            [
                "env",
                f"PGPASSWORD={old}",
                "psql",
                "-U",
                "postgres",
                "-d",
                "postgres",
                "-v",
                "ON_ERROR_STOP=1",
                "--single-transaction",
                "-c",
                statements,
            ],
        )

    def _update_redis(
        self, component: ManagedComponent, spec: CredentialSpec, pod: str, old: str, new: str
    ) -> None:
        output = self._exec(
            component,
            spec,
            pod,
            ["redis-cli", "--no-auth-warning", "-a", old, "CONFIG", "SET", "requirepass", new],
        )
        if output.strip() != "OK":
            raise CredentialUpdateError(
                "redis rejected CONFIG SET requirepass",
                component=component.name,
                details=output.strip(),
            )

    def _update_rabbitmq(
        self, component: ManagedComponent, spec: CredentialSpec, pod: str, new: str
    ) -> None:
        username = spec.username or ""
        self._exec(component, spec, pod, ["rabbitmqctl", "change_password", username, new])
