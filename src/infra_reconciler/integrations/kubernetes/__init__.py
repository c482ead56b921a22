"""Kubernetes integration - API client, Helm CLI client and configuration models."""

from infra_reconciler.integrations.kubernetes.client import KubernetesClient
from infra_reconciler.integrations.kubernetes.config import ClusterConfig, RetryConfig
from infra_reconciler.integrations.kubernetes.exceptions import (
    KubernetesAuthError,
    KubernetesConflictError,
    KubernetesConnectionError,
    KubernetesError,
    KubernetesNotFoundError,
    KubernetesTimeoutError,
    KubernetesTransientError,
    KubernetesValidationError,
)
from infra_reconciler.integrations.kubernetes.helm_client import (
    HelmBinaryNotFoundError,
    HelmClient,
    HelmCommandError,
    HelmError,
    HelmReleaseNotFoundError,
)

__all__ = [
    "ClusterConfig",
    "HelmBinaryNotFoundError",
    "HelmClient",
    "HelmCommandError",
    "HelmError",
    "HelmReleaseNotFoundError",
    "KubernetesAuthError",
    "KubernetesClient",
    "KubernetesConflictError",
    "KubernetesConnectionError",
    "KubernetesError",
    "KubernetesNotFoundError",
    "KubernetesTimeoutError",
    "KubernetesTransientError",
    "KubernetesValidationError",
    "RetryConfig",
]
