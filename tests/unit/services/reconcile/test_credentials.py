"""Unit tests for CredentialSynchronizer."""

from __future__ import annotations

import re
from collections.abc import Callable
from typing import Any
from unittest.mock import MagicMock

import pytest
from pydantic import SecretStr

from infra_reconciler.integrations.kubernetes.exceptions import KubernetesError
from infra_reconciler.integrations.kubernetes.models.workloads import PodSummary
from infra_reconciler.services.kubernetes.streaming_manager import ExecResult
from infra_reconciler.services.reconcile.credentials import (
    CredentialSynchronizer,
    generate_password,
)
from infra_reconciler.services.reconcile.models import (
    HealthStatus,
    ManagedComponent,
    SyncOutcome,
)


@pytest.fixture
def running_cluster(mock_cluster: MagicMock) -> MagicMock:
    """Cluster with one running pod and a stored password of 'old'."""
    mock_cluster.workloads.list_pods.return_value = [
        PodSummary(name="postgresql-0", phase="Running")
    ]
    mock_cluster.secrets.get_secret_data.return_value = {
        "postgres-password": "old",
        "password": "old",
    }
    mock_cluster.streaming.exec_capture.return_value = ExecResult(0, "ALTER ROLE", "")
    return mock_cluster


class FakePostgres:
    """In-memory postgres users and credential record behind a cluster double.

    ``psql`` only logs in when PGPASSWORD matches the live ``postgres``
    password, and a session's statements apply together or not at all.
    """

    ALTER = re.compile(r"ALTER USER \"(?P<user>[^\"]+)\" WITH PASSWORD '(?P<password>[^']*)'")

    def __init__(
        self, cluster: MagicMock, component: ManagedComponent, password: str | None
    ) -> None:
        assert component.credential is not None
        self.live = dict.fromkeys(component.credential.users, password or "")
        self.record: dict[str, str] = {}
        if password is not None:
            self.record = dict.fromkeys(component.credential.keys, password)
        cluster.workloads.list_pods.return_value = [
            PodSummary(name="postgresql-0", phase="Running")
        ]
        cluster.streaming.exec_capture.side_effect = self.exec_capture
        cluster.secrets.get_secret_data.side_effect = lambda *_args: dict(self.record) or None
        cluster.secrets.upsert_secret.side_effect = self.upsert_secret

    def exec_capture(
        self, pod: str, namespace: str, *, command: list[str], **_: Any
    ) -> ExecResult:
        if command[1] != f"PGPASSWORD={self.live['postgres']}":
            return ExecResult(2, "", 'FATAL: password authentication failed for user "postgres"')
        changes = [match.groupdict() for match in self.ALTER.finditer(command[-1])]
        for change in changes:
            self.live[change["user"]] = change["password"]
        return ExecResult(0, "ALTER ROLE\n" * len(changes), "")

    def upsert_secret(
        self, name: str, namespace: str, *, data: dict[str, str], **_: Any
    ) -> None:
        self.record.update(data)


@pytest.fixture
def redis_component(make_component: Callable[..., ManagedComponent]) -> ManagedComponent:
    return make_component(
        name="redis",
        release="redis",
        workload={"name": "redis-master"},
        credential={"secret_name": "redis", "keys": ["redis-password"], "updater": "redis"},
    )


@pytest.mark.unit
@pytest.mark.reconcile
class TestSync:
    """Tests for drift detection and live rotation."""

    def test_rotates_live_then_stores(
        self, running_cluster: MagicMock, component: ManagedComponent
    ) -> None:
        """Should authenticate with the old password, then store the new one."""
        sync = CredentialSynchronizer(running_cluster)

        outcome = sync.sync(component, SecretStr("new"), HealthStatus.HEALTHY)

        assert outcome == SyncOutcome.UPDATED
        command = running_cluster.streaming.exec_capture.call_args.kwargs["command"]
        assert command[:2] == ["env", "PGPASSWORD=old"]
        assert command[-1] == "ALTER USER \"postgres\" WITH PASSWORD 'new'"
        running_cluster.secrets.upsert_secret.assert_called_once_with(
            "postgresql",
            "infra",
            data={"postgres-password": "new", "password": "new"},
            labels={"app.kubernetes.io/part-of": "postgresql"},
        )

    def test_quotes_escaped(self, running_cluster: MagicMock, component: ManagedComponent) -> None:
        """Should double single quotes inside the SQL literal."""
        CredentialSynchronizer(running_cluster).sync(
            component, SecretStr("it's"), HealthStatus.HEALTHY
        )

        command = running_cluster.streaming.exec_capture.call_args.kwargs["command"]
        assert command[-1].endswith("PASSWORD 'it''s'")

    def test_in_sync(self, running_cluster: MagicMock, component: ManagedComponent) -> None:
        """Should do nothing when stored and desired match."""
        outcome = CredentialSynchronizer(running_cluster).sync(
            component, SecretStr("old"), HealthStatus.HEALTHY
        )

        assert outcome == SyncOutcome.UNCHANGED
        running_cluster.streaming.exec_capture.assert_not_called()
        running_cluster.secrets.upsert_secret.assert_not_called()

    @pytest.mark.parametrize("desired", [None, SecretStr("")])
    def test_empty_desired_never_overwrites(
        self,
        running_cluster: MagicMock,
        component: ManagedComponent,
        desired: SecretStr | None,
    ) -> None:
        """An empty desired credential should leave the record alone."""
        outcome = CredentialSynchronizer(running_cluster).sync(
            component, desired, HealthStatus.HEALTHY
        )

        assert outcome == SyncOutcome.UNCHANGED
        running_cluster.secrets.get_secret_data.assert_not_called()

    def test_deferred_when_unhealthy(
        self, running_cluster: MagicMock, component: ManagedComponent
    ) -> None:
        """Should not rotate a component that is not healthy."""
        outcome = CredentialSynchronizer(running_cluster).sync(
            component, SecretStr("new"), HealthStatus.DEGRADED
        )

        assert outcome == SyncOutcome.DEFERRED
        running_cluster.streaming.exec_capture.assert_not_called()

    def test_live_update_failure_keeps_record(
        self, running_cluster: MagicMock, component: ManagedComponent
    ) -> None:
        """A failed live update must not overwrite the stored record."""
        running_cluster.streaming.exec_capture.return_value = ExecResult(
            2, "", "password authentication failed"
        )

        outcome = CredentialSynchronizer(running_cluster).sync(
            component, SecretStr("new"), HealthStatus.HEALTHY
        )

        assert outcome == SyncOutcome.FAILED
        running_cluster.secrets.upsert_secret.assert_not_called()

    def test_missing_record_with_updater(
        self, running_cluster: MagicMock, component: ManagedComponent
    ) -> None:
        """Should fail without an old password to authenticate with."""
        running_cluster.secrets.get_secret_data.return_value = None

        outcome = CredentialSynchronizer(running_cluster).sync(
            component, SecretStr("new"), HealthStatus.HEALTHY
        )

        assert outcome == SyncOutcome.FAILED

    def test_record_read_error(
        self, running_cluster: MagicMock, component: ManagedComponent
    ) -> None:
        """Should fail when the record cannot be read."""
        running_cluster.secrets.get_secret_data.side_effect = KubernetesError("forbidden")

        outcome = CredentialSynchronizer(running_cluster).sync(
            component, SecretStr("new"), HealthStatus.HEALTHY
        )

        assert outcome == SyncOutcome.FAILED

    def test_no_running_pod(
        self, running_cluster: MagicMock, component: ManagedComponent
    ) -> None:
        """Should fail without a pod to run the update in."""
        running_cluster.workloads.list_pods.return_value = [
            PodSummary(name="postgresql-0", phase="Pending")
        ]

        outcome = CredentialSynchronizer(running_cluster).sync(
            component, SecretStr("new"), HealthStatus.HEALTHY
        )

        assert outcome == SyncOutcome.FAILED
        running_cluster.secrets.upsert_secret.assert_not_called()

    def test_redis_requires_ok(
        self, running_cluster: MagicMock, redis_component: ManagedComponent
    ) -> None:
        """Should fail when redis does not answer OK."""
        running_cluster.secrets.get_secret_data.return_value = {"redis-password": "old"}
        running_cluster.streaming.exec_capture.return_value = ExecResult(
            0, "(error) WRONGPASS", ""
        )

        outcome = CredentialSynchronizer(running_cluster).sync(
            redis_component, SecretStr("new"), HealthStatus.HEALTHY
        )

        assert outcome == SyncOutcome.FAILED

    def test_redis_rotation(
        self, running_cluster: MagicMock, redis_component: ManagedComponent
    ) -> None:
        """Should set requirepass authenticating with the old password."""
        running_cluster.secrets.get_secret_data.return_value = {"redis-password": "old"}
        running_cluster.streaming.exec_capture.return_value = ExecResult(0, "OK\n", "")

        outcome = CredentialSynchronizer(running_cluster).sync(
            redis_component, SecretStr("new"), HealthStatus.HEALTHY
        )

        assert outcome == SyncOutcome.UPDATED
        command = running_cluster.streaming.exec_capture.call_args.kwargs["command"]
        assert command == [
            "redis-cli",
            "--no-auth-warning",
            "-a",
            "old",
            "CONFIG",
            "SET",
            "requirepass",
            "new",
        ]

    def test_rabbitmq_rotation(
        self, running_cluster: MagicMock, make_component: Callable[..., ManagedComponent]
    ) -> None:
        """Should change the configured user's password."""
        rabbitmq = make_component(
            name="rabbitmq",
            release="rabbitmq",
            workload={"name": "rabbitmq"},
            credential={
                "secret_name": "rabbitmq",
                "keys": ["rabbitmq-password"],
                "updater": "rabbitmq",
                "username": "admin",
            },
        )
        running_cluster.secrets.get_secret_data.return_value = {"rabbitmq-password": "old"}

        outcome = CredentialSynchronizer(running_cluster).sync(
            rabbitmq, SecretStr("new"), HealthStatus.HEALTHY
        )

        assert outcome == SyncOutcome.UPDATED
        command = running_cluster.streaming.exec_capture.call_args.kwargs["command"]
        assert command == ["rabbitmqctl", "change_password", "admin", "new"]


@pytest.fixture
def two_user_component(make_component: Callable[..., ManagedComponent]) -> ManagedComponent:
    """PostgreSQL component rotating both the superuser and an admin user."""
    return make_component(
        credential={
            "secret_name": "postgresql",
            "keys": ["postgres-password", "password", "admin-user-password"],
            "env": "POSTGRES_PASSWORD",
            "updater": "postgres",
            "users": ["postgres", "admin_user"],
        }
    )


@pytest.mark.unit
@pytest.mark.reconcile
class TestPostgresUsers:
    """Rotating several postgres users through one superuser login."""

    def test_rotates_every_user(
        self, mock_cluster: MagicMock, two_user_component: ManagedComponent
    ) -> None:
        """Rotating the superuser first must not lock out the next user."""
        postgres = FakePostgres(mock_cluster, two_user_component, "old")

        outcome = CredentialSynchronizer(mock_cluster).sync(
            two_user_component, SecretStr("new"), HealthStatus.HEALTHY
        )

        assert outcome == SyncOutcome.UPDATED
        assert postgres.live == {"postgres": "new", "admin_user": "new"}
        assert set(postgres.record.values()) == {"new"}
        mock_cluster.streaming.exec_capture.assert_called_once()

    def test_rejected_login_changes_nothing(
        self, mock_cluster: MagicMock, two_user_component: ManagedComponent
    ) -> None:
        """A stale record should leave both the users and the record untouched."""
        postgres = FakePostgres(mock_cluster, two_user_component, "old")
        postgres.live["postgres"] = "rotated-by-hand"

        outcome = CredentialSynchronizer(mock_cluster).sync(
            two_user_component, SecretStr("new"), HealthStatus.HEALTHY
        )

        assert outcome == SyncOutcome.FAILED
        assert postgres.live == {"postgres": "rotated-by-hand", "admin_user": "old"}
        assert set(postgres.record.values()) == {"old"}

    def test_single_transaction(
        self, running_cluster: MagicMock, two_user_component: ManagedComponent
    ) -> None:
        """Every ALTER USER should travel in one psql transaction."""
        running_cluster.secrets.get_secret_data.return_value = {"postgres-password": "old"}

        CredentialSynchronizer(running_cluster).sync(
            two_user_component, SecretStr("new"), HealthStatus.HEALTHY
        )

        command = running_cluster.streaming.exec_capture.call_args.kwargs["command"]
        assert "--single-transaction" in command
        assert command[-1] == (
            "ALTER USER \"postgres\" WITH PASSWORD 'new'; "
            "ALTER USER \"admin_user\" WITH PASSWORD 'new'"
        )


@pytest.mark.unit
@pytest.mark.reconcile
class TestNoCredentialLoss:
    """The record ends at the last non-empty desired value, whatever came between."""

    DESIRED = ["a", None, "", "b", None]

    @staticmethod
    def _secret(value: str | None) -> SecretStr | None:
        return None if value is None else SecretStr(value)

    def test_sync_sequence(
        self, mock_cluster: MagicMock, two_user_component: ManagedComponent
    ) -> None:
        """Should rotate live and stored credentials only on non-empty values."""
        postgres = FakePostgres(mock_cluster, two_user_component, "seed")
        sync = CredentialSynchronizer(mock_cluster)

        outcomes = [
            sync.sync(two_user_component, self._secret(value), HealthStatus.HEALTHY)
            for value in self.DESIRED
        ]

        assert outcomes == [
            SyncOutcome.UPDATED,
            SyncOutcome.UNCHANGED,
            SyncOutcome.UNCHANGED,
            SyncOutcome.UPDATED,
            SyncOutcome.UNCHANGED,
        ]
        assert set(postgres.record.values()) == {"b"}
        assert postgres.live == {"postgres": "b", "admin_user": "b"}

    def test_provision_sequence(
        self, mock_cluster: MagicMock, two_user_component: ManagedComponent
    ) -> None:
        """Empty desired values should never replace a provisioned record."""
        postgres = FakePostgres(mock_cluster, two_user_component, None)
        sync = CredentialSynchronizer(mock_cluster, password_generator=lambda n: "g" * n)

        written = [sync.provision(two_user_component, self._secret(v)) for v in self.DESIRED]

        assert written == [True, False, False, True, False]
        assert set(postgres.record.values()) == {"b"}


@pytest.mark.unit
@pytest.mark.reconcile
class TestProvision:
    """Tests for writing the record ahead of a Helm action."""

    def test_generates_when_missing(
        self, mock_cluster: MagicMock, component: ManagedComponent
    ) -> None:
        """Should generate a password when nothing is stored or desired."""
        sync = CredentialSynchronizer(mock_cluster, password_generator=lambda n: "g" * n)

        assert sync.provision(component, None) is True

        data = mock_cluster.secrets.upsert_secret.call_args.kwargs["data"]
        assert data == {"postgres-password": "g" * 25, "password": "g" * 25}

    def test_keeps_existing_without_desired(
        self, running_cluster: MagicMock, component: ManagedComponent
    ) -> None:
        """Should keep a stored password when none is desired."""
        assert CredentialSynchronizer(running_cluster).provision(component, None) is False
        running_cluster.secrets.upsert_secret.assert_not_called()

    def test_writes_desired(self, running_cluster: MagicMock, component: ManagedComponent) -> None:
        """Should write a desired password that differs from the record."""
        assert CredentialSynchronizer(running_cluster).provision(component, SecretStr("new"))
        running_cluster.streaming.exec_capture.assert_not_called()

    def test_no_credential(
        self, mock_cluster: MagicMock, make_component: Callable[..., ManagedComponent]
    ) -> None:
        """Should do nothing for a component without a credential."""
        assert CredentialSynchronizer(mock_cluster).provision(make_component(), None) is False


@pytest.mark.unit
@pytest.mark.reconcile
class TestGeneratePassword:
    """Tests for generate_password."""

    def test_alphanumeric(self) -> None:
        """Should generate an alphanumeric password of the given length."""
        password = generate_password(32)
        assert len(password) == 32
        assert password.isalnum()
