"""StatefulSets, Deployments and their pods.

Used by health probes (ready replicas), lock recovery (force-deleting
stuck pods) and destructive reprovisioning (scale to zero, delete).
"""

from __future__ import annotations

from typing import Any

from infra_reconciler.integrations.kubernetes.exceptions import KubernetesNotFoundError
from infra_reconciler.integrations.kubernetes.models.workloads import (
    PodSummary,
    WorkloadSummary,
)
from infra_reconciler.services.kubernetes.base import K8sBaseManager, query

WORKLOAD_KINDS = ("StatefulSet", "Deployment")

_API_SUFFIX = {"StatefulSet": "stateful_set", "Deployment": "deployment"}


class WorkloadManager(K8sBaseManager):
    """Replica-bearing workloads and pods."""

    _entity_name = "workload"

    def _apps(self, verb: str, kind: str, subresource: str = "") -> Any:
        """AppsV1Api method such as ``patch_namespaced_stateful_set_scale``."""
        suffix = _API_SUFFIX.get(kind)
        if suffix is None:
            raise ValueError(f"Unsupported workload kind: {kind}")
        return getattr(self._client.apps_v1, f"{verb}_namespaced_{suffix}{subresource}")

    def get_workload(
        self, kind: str, name: str, namespace: str | None = None
    ) -> WorkloadSummary | None:
        """One StatefulSet or Deployment, or None if it does not exist."""
        ns = self._resolve_namespace(namespace)
        read = self._apps("read", kind)
        try:
            obj = self._call(lambda: read(name=name, namespace=ns), kind, name, ns)
        except KubernetesNotFoundError:
            return None
        return WorkloadSummary.from_k8s_object(obj, kind)

    def list_workloads(
        self,
        kind: str,
        namespace: str | None = None,
        *,
        label_selector: str | None = None,
    ) -> list[WorkloadSummary]:
        ns = self._resolve_namespace(namespace)
        list_kind = self._apps("list", kind)
        params = query(namespace=ns, label_selector=label_selector)
        result = self._call(lambda: list_kind(**params), kind, None, ns)
        return [WorkloadSummary.from_k8s_object(obj, kind) for obj in result.items]

    def scale_workload(
        self, kind: str, name: str, replicas: int, namespace: str | None = None
    ) -> bool:
        """Patch the scale sub-resource.

        Returns:
            False if the workload does not exist.
        """
        ns = self._resolve_namespace(namespace)
        patch_scale = self._apps("patch", kind, "_scale")
        body = {"spec": {"replicas": replicas}}
        self._log.info("scaling_workload", kind=kind, name=name, namespace=ns, replicas=replicas)
        return self._call_if_present(
            lambda: patch_scale(name=name, namespace=ns, body=body), kind, name, ns
        )

    def delete_workload(self, kind: str, name: str, namespace: str | None = None) -> bool:
        """Delete a workload; False if it was already gone."""
        ns = self._resolve_namespace(namespace)
        delete = self._apps("delete", kind)
        self._log.info("deleting_workload", kind=kind, name=name, namespace=ns)
        return self._call_if_present(lambda: delete(name=name, namespace=ns), kind, name, ns)

    def list_pods(
        self,
        namespace: str | None = None,
        *,
        label_selector: str | None = None,
    ) -> list[PodSummary]:
        ns = self._resolve_namespace(namespace)
        params = query(namespace=ns, label_selector=label_selector)
        result = self._call(
            lambda: self._client.core_v1.list_namespaced_pod(**params), "Pod", None, ns
        )
        return [PodSummary.from_k8s_object(pod) for pod in result.items]

    def force_delete_pods(self, namespace: str | None = None, *, label_selector: str) -> int:
        """Delete every matching pod with a zero grace period.

        A pod that disappears between listing and deletion is not counted.

        Returns:
            Number of pods deleted.
        """
        ns = self._resolve_namespace(namespace)
        core = self._client.core_v1
        deleted = 0
        for pod in self.list_pods(ns, label_selector=label_selector):
            self._log.info("force_deleting_pod", name=pod.name, namespace=ns)
            if self._call_if_present(
                lambda name=pod.name: core.delete_namespaced_pod(
                    name=name, namespace=ns, grace_period_seconds=0
                ),
                "Pod",
                pod.name,
                ns,
            ):
                deleted += 1
        return deleted
