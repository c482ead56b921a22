"""Namespaces, nodes and events.

Besides plain namespace lifecycle this covers the two ways of unwedging a
namespace stuck in Terminating: patching its finalizers away, and the
``/finalize`` sub-resource for the spec finalizers a patch cannot touch.
"""

from __future__ import annotations

from infra_reconciler.integrations.kubernetes.exceptions import (
    KubernetesConflictError,
    KubernetesNotFoundError,
)
from infra_reconciler.integrations.kubernetes.models.cluster import (
    EventSummary,
    NamespaceSummary,
    NodeSummary,
)
from infra_reconciler.services.kubernetes.base import K8sBaseManager, query


class NamespaceClusterManager(K8sBaseManager):
    """Cluster-scoped reads and namespace lifecycle."""

    _entity_name = "namespace"

    def get_namespace(self, name: str) -> NamespaceSummary | None:
        try:
            obj = self._call(
                lambda: self._client.core_v1.read_namespace(name=name), "Namespace", name
            )
        except KubernetesNotFoundError:
            return None
        return NamespaceSummary.from_k8s_object(obj)

    def ensure_namespace(self, name: str) -> bool:
        """Create ``name`` unless it exists.

        Returns:
            True only when this call created it.
        """
        from kubernetes.client import V1Namespace, V1ObjectMeta

        if self.get_namespace(name) is not None:
            return False
        body = V1Namespace(metadata=V1ObjectMeta(name=name))
        try:
            self._call(lambda: self._client.core_v1.create_namespace(body=body), "Namespace", name)
        except KubernetesConflictError:
            # Created concurrently
            return False
        self._log.info("created_namespace", name=name)
        return True

    def delete_namespace(self, name: str) -> bool:
        """Request deletion without waiting; False if it was already gone."""
        self._log.info("deleting_namespace", name=name)
        return self._call_if_present(
            lambda: self._client.core_v1.delete_namespace(name=name), "Namespace", name
        )

    def patch_namespace_finalizers(self, name: str) -> None:
        """Null out both ``metadata.finalizers`` and ``spec.finalizers``."""
        self._log.info("patching_namespace_finalizers", name=name)
        body = {"metadata": {"finalizers": None}, "spec": {"finalizers": None}}
        self._call(
            lambda: self._client.core_v1.patch_namespace(name=name, body=body), "Namespace", name
        )

    def finalize_namespace(self, name: str) -> None:
        """Empty ``spec.finalizers`` through ``PUT /namespaces/{name}/finalize``."""
        self._log.info("finalizing_namespace", name=name)
        body = {
            "apiVersion": "v1",
            "kind": "Namespace",
            "metadata": {"name": name},
            "spec": {"finalizers": []},
        }
        self._call(
            lambda: self._client.core_v1.replace_namespace_finalize(name=name, body=body),
            "Namespace",
            name,
        )

    def list_nodes(self, *, label_selector: str | None = None) -> list[NodeSummary]:
        params = query(label_selector=label_selector)
        result = self._call(lambda: self._client.core_v1.list_node(**params), "Node")
        return [NodeSummary.from_k8s_object(node) for node in result.items]

    def list_events(
        self,
        namespace: str | None = None,
        *,
        field_selector: str | None = None,
    ) -> list[EventSummary]:
        """Events in a namespace, oldest first."""
        ns = self._resolve_namespace(namespace)
        params = query(namespace=ns, field_selector=field_selector)
        result = self._call(
            lambda: self._client.core_v1.list_namespaced_event(**params), "Event", None, ns
        )
        events = [EventSummary.from_k8s_object(evt) for evt in result.items]
        return sorted(events, key=lambda evt: evt.last_timestamp or "")
