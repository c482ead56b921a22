"""Cluster state client.

Single entry point bundling the API-backed managers and the Helm manager,
so the reconcile services depend on one object they can replace with a
double in tests.
"""

from __future__ import annotations

from typing import Any

import structlog

from infra_reconciler.integrations.kubernetes.client import KubernetesClient
from infra_reconciler.integrations.kubernetes.config import ClusterConfig, RetryConfig
from infra_reconciler.integrations.kubernetes.helm_client import HelmClient
from infra_reconciler.services.kubernetes.configuration_manager import ConfigurationManager
from infra_reconciler.services.kubernetes.helm_manager import HelmManager
from infra_reconciler.services.kubernetes.namespace_manager import NamespaceClusterManager
from infra_reconciler.services.kubernetes.resource_manager import ResourceManager
from infra_reconciler.services.kubernetes.storage_manager import StorageManager
from infra_reconciler.services.kubernetes.streaming_manager import StreamingManager
from infra_reconciler.services.kubernetes.workload_manager import WorkloadManager

logger = structlog.get_logger()


class ClusterStateClient:
    """Facade over every manager the reconciler reads and mutates through.

    Attributes:
        workloads: StatefulSets, Deployments and pods.
        namespaces: Namespaces, nodes and events.
        secrets: Credential records and Helm storage secrets.
        storage: PersistentVolumeClaims.
        streaming: Exec inside containers.
        resources: Kind-generic metadata, finalizer and delete operations.
        helm: Helm releases and repositories.
    """

    def __init__(
        self,
        client: KubernetesClient,
        helm_client: HelmClient | None = None,
        retry: RetryConfig | None = None,
    ) -> None:
        self.client = client
        self.workloads = WorkloadManager(client, retry)
        self.namespaces = NamespaceClusterManager(client, retry)
        self.secrets = ConfigurationManager(client, retry)
        self.storage = StorageManager(client, retry)
        self.streaming = StreamingManager(client, retry)
        self.resources = ResourceManager(client, retry)
        self.helm = HelmManager(client, helm_client, retry)

    @classmethod
    def connect(
        cls,
        cluster: ClusterConfig,
        retry: RetryConfig | None = None,
        helm_binary: str | None = None,
    ) -> ClusterStateClient:
        """Load cluster credentials and locate the helm binary.

        Raises:
            KubernetesConnectionError: If no kubeconfig can be loaded.
            HelmBinaryNotFoundError: If helm is not installed.
        """
        client = KubernetesClient(cluster)
        helm_client = HelmClient(
            helm_binary,
            kubeconfig=cluster.kubeconfig,
            kube_context=cluster.context,
        )
        logger.debug("cluster_state_client_connected", context=client.current_context)
        return cls(client, helm_client, retry)

    def check_connection(self) -> bool:
        """Check the API server answers."""
        return self.client.check_connection()

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> ClusterStateClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
