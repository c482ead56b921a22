"""Shared fixtures for reconciliation service tests."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any
from unittest.mock import MagicMock

import pytest

from infra_reconciler.integrations.kubernetes.models.helm import (
    HelmCommandResult,
    HelmReleaseHistory,
    HelmReleaseStatus,
)
from infra_reconciler.integrations.kubernetes.models.workloads import WorkloadSummary
from infra_reconciler.services.reconcile.models import ManagedComponent


def release_status(status: str = "deployed", revision: int = 1) -> HelmReleaseStatus:
    return HelmReleaseStatus(
        name="postgresql",
        namespace="infra",
        revision=revision,
        status=status,
        description="",
    )


def history_entry(revision: int, status: str) -> HelmReleaseHistory:
    return HelmReleaseHistory(
        revision=revision,
        status=status,
        chart="chart-1.0.0",
        app_version="1.0.0",
        description="",
        updated="",
    )


@pytest.fixture
def make_component() -> Callable[..., ManagedComponent]:
    """Factory for components, defaulting to a PostgreSQL StatefulSet."""

    def _make(**overrides: Any) -> ManagedComponent:
        data: dict[str, Any] = {
            "name": "postgresql",
            "namespace": "infra",
            "release": "postgresql",
            "chart": "bitnami/postgresql",
            "workload": {"kind": "StatefulSet", "name": "postgresql"},
        }
        data.update(overrides)
        return ManagedComponent.model_validate(data)

    return _make


@pytest.fixture
def component(make_component: Callable[..., ManagedComponent]) -> ManagedComponent:
    """PostgreSQL component with a postgres-updated credential."""
    return make_component(
        credential={
            "secret_name": "postgresql",
            "keys": ["postgres-password", "password"],
            "env": "POSTGRES_PASSWORD",
            "updater": "postgres",
            "users": ["postgres"],
        }
    )


@pytest.fixture
def mock_cluster() -> MagicMock:
    """Cluster state client double describing a healthy, deployed release.

    Mutating calls return their "nothing to do" values so tests can assert
    on exactly the calls they care about.
    """
    cluster = MagicMock()
    cluster.check_connection.return_value = True

    cluster.workloads.get_workload.return_value = WorkloadSummary(
        name="postgresql", namespace="infra", kind="StatefulSet", replicas=1, ready_replicas=1
    )
    cluster.workloads.list_pods.return_value = []
    cluster.workloads.list_workloads.return_value = []
    cluster.workloads.force_delete_pods.return_value = 0
    cluster.workloads.scale_workload.return_value = False

    cluster.helm.release_status.return_value = release_status("deployed", 1)
    cluster.helm.history.return_value = [history_entry(1, "deployed")]
    cluster.helm.install.return_value = HelmCommandResult(success=True, stdout="STATUS: deployed")
    cluster.helm.upgrade.return_value = HelmCommandResult(success=True, stdout="STATUS: deployed")
    cluster.helm.uninstall.return_value = False

    cluster.namespaces.ensure_namespace.return_value = False
    cluster.namespaces.list_nodes.return_value = []
    cluster.namespaces.list_events.return_value = []

    cluster.secrets.get_secret_data.return_value = None
    cluster.secrets.delete_secrets.return_value = 0

    cluster.storage.list_persistent_volume_claims.return_value = []

    cluster.resources.list_resources.return_value = []
    cluster.resources.get_resource.return_value = None
    cluster.resources.list_finalizer_bearing.return_value = []
    cluster.resources.crd_exists.return_value = False
    return cluster
