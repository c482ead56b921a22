"""Kubernetes snapshot models."""

from infra_reconciler.integrations.kubernetes.models.cluster import (
    EventSummary,
    NamespaceSummary,
    NodeSummary,
)
from infra_reconciler.integrations.kubernetes.models.helm import (
    PENDING_STATUSES,
    HelmCommandResult,
    HelmReleaseHistory,
    HelmReleaseStatus,
)
from infra_reconciler.integrations.kubernetes.models.resources import ResourceRef
from infra_reconciler.integrations.kubernetes.models.storage import (
    PersistentVolumeClaimSummary,
)
from infra_reconciler.integrations.kubernetes.models.workloads import (
    PodSummary,
    WorkloadSummary,
)

__all__ = [
    "PENDING_STATUSES",
    "EventSummary",
    "HelmCommandResult",
    "HelmReleaseHistory",
    "HelmReleaseStatus",
    "NamespaceSummary",
    "NodeSummary",
    "PersistentVolumeClaimSummary",
    "PodSummary",
    "ResourceRef",
    "WorkloadSummary",
]
