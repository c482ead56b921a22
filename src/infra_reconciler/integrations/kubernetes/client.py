"""Connection to one Kubernetes cluster.

Loads kubeconfig (falling back to the in-cluster service account), hands
out API group objects on first use, and maps client exceptions onto the
integration error hierarchy. Retries live in the service managers.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from infra_reconciler.integrations.kubernetes.config import ClusterConfig
from infra_reconciler.integrations.kubernetes.exceptions import (
    KubernetesAuthError,
    KubernetesConflictError,
    KubernetesConnectionError,
    KubernetesError,
    KubernetesNotFoundError,
    KubernetesTransientError,
    KubernetesValidationError,
)

if TYPE_CHECKING:
    from kubernetes.client import (
        ApiextensionsV1Api,
        AppsV1Api,
        BatchV1Api,
        CoreV1Api,
        CustomObjectsApi,
        NetworkingV1Api,
        PolicyV1Api,
        VersionApi,
    )

logger = structlog.get_logger()

# Status 0 is what the client reports when the request never got an answer
TRANSIENT_STATUS_CODES = frozenset({0, 429, 500, 502, 503, 504})


class KubernetesClient:
    """API access for a single kubeconfig context.

    Usable as a context manager; leaving the block drops the cached API
    group objects.
    """

    def __init__(self, cluster_config: ClusterConfig | None = None) -> None:
        """Load cluster credentials.

        Args:
            cluster_config: Kubeconfig path, context and default namespace.

        Raises:
            KubernetesConnectionError: If neither kubeconfig nor in-cluster
                credentials can be loaded.
        """
        self._config = cluster_config or ClusterConfig()
        self._apis: dict[str, Any] = {}
        self._current_context = self._load_credentials()
        logger.info(
            "kubernetes_client_initialized",
            context=self._current_context,
            default_namespace=self._config.namespace,
        )

    def _load_credentials(self) -> str:
        from kubernetes import config
        from kubernetes.config import ConfigException

        try:
            config.load_kube_config(
                config_file=self._config.kubeconfig, context=self._config.context
            )
        except ConfigException:
            pass
        else:
            logger.debug("loaded_kubeconfig", kubeconfig=self._config.kubeconfig)
            return self._config.context or "current-context"

        try:
            config.load_incluster_config()
        except ConfigException as e:
            raise KubernetesConnectionError(
                message="Cannot load Kubernetes configuration. "
                "Ensure kubeconfig exists or running inside a cluster.",
                original_error=e,
            ) from e
        logger.debug("loaded_incluster_config")
        return "in-cluster"

    def _api(self, class_name: str) -> Any:
        if class_name not in self._apis:
            from kubernetes import client

            self._apis[class_name] = getattr(client, class_name)()
        return self._apis[class_name]

    # -- API groups ---------------------------------------------------------

    @property
    def core_v1(self) -> CoreV1Api:
        """Pods, services, namespaces, secrets, PVCs, events, nodes."""
        return self._api("CoreV1Api")

    @property
    def apps_v1(self) -> AppsV1Api:
        """StatefulSets, Deployments, ReplicaSets and DaemonSets."""
        return self._api("AppsV1Api")

    @property
    def batch_v1(self) -> BatchV1Api:
        """Jobs and CronJobs."""
        return self._api("BatchV1Api")

    @property
    def policy_v1(self) -> PolicyV1Api:
        return self._api("PolicyV1Api")

    @property
    def networking_v1(self) -> NetworkingV1Api:
        return self._api("NetworkingV1Api")

    @property
    def apiextensions_v1(self) -> ApiextensionsV1Api:
        return self._api("ApiextensionsV1Api")

    @property
    def custom_objects(self) -> CustomObjectsApi:
        """Namespaced custom resources such as ServiceMonitors."""
        return self._api("CustomObjectsApi")

    @property
    def version_api(self) -> VersionApi:
        return self._api("VersionApi")

    # -- errors -------------------------------------------------------------

    @staticmethod
    def translate_api_exception(
        e: Exception,
        resource_type: str | None = None,
        resource_name: str | None = None,
        namespace: str | None = None,
    ) -> KubernetesError:
        """Map a client exception onto the integration error hierarchy.

        Transport failures, rate limiting and 5xx answers all become
        :class:`KubernetesTransientError`, which the managers retry.

        Args:
            e: Exception raised by the kubernetes client (or anything else).
            resource_type: Kind of the object the request was about.
            resource_name: Name of that object.
            namespace: Namespace of that object.

        Returns:
            The translated error; ``e`` itself when it already is one.
        """
        from kubernetes.client import ApiException
        from urllib3.exceptions import HTTPError

        location = {
            "resource_type": resource_type,
            "resource_name": resource_name,
            "namespace": namespace,
        }

        if isinstance(e, KubernetesError):
            return e
        if isinstance(e, HTTPError | ConnectionError | TimeoutError):
            return KubernetesTransientError(
                message=f"Kubernetes API unreachable: {e}", original_error=e
            )
        if not isinstance(e, ApiException):
            return KubernetesError(message=str(e), **location)

        status = e.status or 0
        if status in TRANSIENT_STATUS_CODES:
            return KubernetesTransientError(
                message=e.reason or f"Transient Kubernetes API error: {status}",
                original_error=e,
                status_code=status or None,
            )
        if status in (401, 403):
            return KubernetesAuthError(
                message=e.reason or "Authentication/authorization failed",
                status_code=status,
                reason=e.reason,
            )
        if status == 404:
            return KubernetesNotFoundError(**location)
        if status == 409:
            return KubernetesConflictError(**location)
        if status in (400, 422):
            return KubernetesValidationError(
                message=e.reason or "Validation failed", status_code=status
            )
        return KubernetesError(
            message=e.reason or f"Kubernetes API error: {status}", status_code=status, **location
        )

    # -- connectivity -------------------------------------------------------

    def check_connection(self) -> bool:
        """Whether the API server answers a version request."""
        try:
            self.version_api.get_code()
        except Exception as e:
            logger.debug("cluster_unreachable", error=str(e))
            return False
        return True

    @property
    def default_namespace(self) -> str:
        return self._config.namespace

    @property
    def current_context(self) -> str:
        """Loaded context name; ``in-cluster`` inside a pod."""
        return self._current_context

    def close(self) -> None:
        self._apis.clear()
        logger.debug("kubernetes_client_closed")

    def __enter__(self) -> KubernetesClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
