"""Generic namespaced resource manager.

Addresses objects of several kinds through one interface so ownership
adoption and finalizer cleanup can treat Services, ConfigMaps,
ServiceMonitors and the rest uniformly.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from infra_reconciler.integrations.kubernetes.exceptions import (
    KubernetesError,
    KubernetesNotFoundError,
)
from infra_reconciler.integrations.kubernetes.models.resources import ResourceRef
from infra_reconciler.services.kubernetes.base import K8sBaseManager, query


@dataclass(frozen=True)
class KindSpec:
    """How to reach one kind through the kubernetes client.

    Built-in kinds use ``<verb>_namespaced_<suffix>`` on the ``api`` group
    attribute; custom resources use the CustomObjectsApi with
    group/version/plural.
    """

    api: str
    suffix: str = ""
    group: str | None = None
    version: str | None = None
    plural: str | None = None

    @property
    def is_custom(self) -> bool:
        return self.plural is not None


KIND_REGISTRY: dict[str, KindSpec] = {
    "Pod": KindSpec("core_v1", "pod"),
    "Service": KindSpec("core_v1", "service"),
    "ConfigMap": KindSpec("core_v1", "config_map"),
    "Secret": KindSpec("core_v1", "secret"),
    "ServiceAccount": KindSpec("core_v1", "service_account"),
    "PersistentVolumeClaim": KindSpec("core_v1", "persistent_volume_claim"),
    "StatefulSet": KindSpec("apps_v1", "stateful_set"),
    "Deployment": KindSpec("apps_v1", "deployment"),
    "ReplicaSet": KindSpec("apps_v1", "replica_set"),
    "DaemonSet": KindSpec("apps_v1", "daemon_set"),
    "Job": KindSpec("batch_v1", "job"),
    "CronJob": KindSpec("batch_v1", "cron_job"),
    "PodDisruptionBudget": KindSpec("policy_v1", "pod_disruption_budget"),
    "NetworkPolicy": KindSpec("networking_v1", "network_policy"),
    "ServiceMonitor": KindSpec(
        "custom_objects",
        group="monitoring.coreos.com",
        version="v1",
        plural="servicemonitors",
    ),
    "Application": KindSpec(
        "custom_objects", group="argoproj.io", version="v1alpha1", plural="applications"
    ),
    "Certificate": KindSpec(
        "custom_objects", group="cert-manager.io", version="v1", plural="certificates"
    ),
}


class ResourceManager(K8sBaseManager):
    """Manager for metadata-level operations across resource kinds."""

    _entity_name = "resource"

    @staticmethod
    def _spec(kind: str) -> KindSpec:
        try:
            return KIND_REGISTRY[kind]
        except KeyError:
            raise ValueError(f"Unsupported resource kind: {kind}") from None

    def _invoke(self, kind: str, verb: str, namespace: str, **kwargs: Any) -> Any:
        spec = self._spec(kind)
        api = getattr(self._client, spec.api)
        if spec.is_custom:
            method = getattr(api, f"{verb}_namespaced_custom_object")
            return method(
                group=spec.group,
                version=spec.version,
                namespace=namespace,
                plural=spec.plural,
                **kwargs,
            )
        method = getattr(api, f"{verb}_namespaced_{spec.suffix}")
        return method(namespace=namespace, **kwargs)

    def list_resources(
        self,
        kind: str,
        namespace: str | None = None,
        *,
        label_selector: str | None = None,
    ) -> list[ResourceRef]:
        """List objects of one kind.

        A custom kind whose CRD is not installed lists as empty.

        Args:
            kind: Resource kind (see ``KIND_REGISTRY``).
            namespace: Target namespace.
            label_selector: Filter by label selector.

        Returns:
            References to the matching objects.
        """
        ns = self._resolve_namespace(namespace)
        params = query(label_selector=label_selector)
        try:
            result = self._call(lambda: self._invoke(kind, "list", ns, **params), kind, None, ns)
        except KubernetesNotFoundError:
            if self._spec(kind).is_custom:
                return []
            raise

        items = result.get("items", []) if isinstance(result, dict) else result.items
        return [ResourceRef.from_k8s_object(item, kind) for item in items]

    def get_resource(
        self, kind: str, name: str, namespace: str | None = None
    ) -> ResourceRef | None:
        """Get one object by kind and name.

        Returns:
            Reference to the object, or None if it does not exist.
        """
        ns = self._resolve_namespace(namespace)
        verb = "get" if self._spec(kind).is_custom else "read"
        try:
            result = self._call(lambda: self._invoke(kind, verb, ns, name=name), kind, name, ns)
        except KubernetesNotFoundError:
            return None
        return ResourceRef.from_k8s_object(result, kind)

    def list_finalizer_bearing(self, namespace: str) -> list[ResourceRef]:
        """Find every object in a namespace that still carries finalizers.

        Kinds that cannot be listed are logged and skipped.

        Args:
            namespace: Namespace to scan.

        Returns:
            References with a non-empty finalizer list.
        """
        found: list[ResourceRef] = []
        for kind in KIND_REGISTRY:
            try:
                refs = self.list_resources(kind, namespace)
            except KubernetesError as e:
                self._log.warning(
                    "finalizer_scan_failed", kind=kind, namespace=namespace, error=str(e)
                )
                continue
            found.extend(ref for ref in refs if ref.finalizers)
        return found

    def crd_exists(self, name: str) -> bool:
        """Check whether a CustomResourceDefinition is installed.

        Args:
            name: CRD name (e.g. ``servicemonitors.monitoring.coreos.com``).
        """
        return self._call_if_present(
            lambda: self._client.apiextensions_v1.read_custom_resource_definition(name=name),
            "CustomResourceDefinition",
            name,
        )

    def patch_metadata(
        self,
        kind: str,
        name: str,
        namespace: str | None = None,
        *,
        labels: dict[str, str] | None = None,
        annotations: dict[str, str] | None = None,
    ) -> None:
        """Merge labels and annotations into an object's metadata.

        Args:
            kind: Resource kind.
            name: Object name.
            namespace: Target namespace.
            labels: Labels to set (existing values are overwritten).
            annotations: Annotations to set (existing values are overwritten).
        """
        ns = self._resolve_namespace(namespace)
        metadata: dict[str, Any] = {}
        if labels:
            metadata["labels"] = labels
        if annotations:
            metadata["annotations"] = annotations
        self._log.info("patching_metadata", kind=kind, name=name, namespace=ns)
        self._call(
            lambda: self._invoke(kind, "patch", ns, name=name, body={"metadata": metadata}),
            kind,
            name,
            ns,
        )

    def clear_finalizers(self, kind: str, name: str, namespace: str | None = None) -> bool:
        """Remove every finalizer from an object.

        Returns:
            True if patched, False if the object was already gone.
        """
        ns = self._resolve_namespace(namespace)
        self._log.info("clearing_finalizers", kind=kind, name=name, namespace=ns)
        body = {"metadata": {"finalizers": None}}
        return self._call_if_present(
            lambda: self._invoke(kind, "patch", ns, name=name, body=body), kind, name, ns
        )

    def delete_resource(self, kind: str, name: str, namespace: str | None = None) -> bool:
        """Delete an object, treating an already-missing object as success.

        Returns:
            True if a delete was issued, False if the object was already gone.
        """
        ns = self._resolve_namespace(namespace)
        self._log.info("deleting_resource", kind=kind, name=name, namespace=ns)
        return self._call_if_present(
            lambda: self._invoke(kind, "delete", ns, name=name), kind, name, ns
        )
