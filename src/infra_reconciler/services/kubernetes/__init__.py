"""Kubernetes service module.

Resource managers over the Kubernetes API and the Helm CLI, bundled by
``ClusterStateClient``.
"""

from infra_reconciler.services.kubernetes.cluster_state import ClusterStateClient
from infra_reconciler.services.kubernetes.configuration_manager import ConfigurationManager
from infra_reconciler.services.kubernetes.helm_manager import HelmManager
from infra_reconciler.services.kubernetes.namespace_manager import NamespaceClusterManager
from infra_reconciler.services.kubernetes.resource_manager import ResourceManager
from infra_reconciler.services.kubernetes.storage_manager import StorageManager
from infra_reconciler.services.kubernetes.streaming_manager import StreamingManager
from infra_reconciler.services.kubernetes.workload_manager import WorkloadManager

__all__ = [
    "ClusterStateClient",
    "ConfigurationManager",
    "HelmManager",
    "NamespaceClusterManager",
    "ResourceManager",
    "StorageManager",
    "StreamingManager",
    "WorkloadManager",
]
