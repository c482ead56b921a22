"""PersistentVolumeClaims of managed components.

Claims are only ever deleted by destructive reprovisioning; adoption and
normal reconciles leave data volumes alone.
"""

from __future__ import annotations

from infra_reconciler.integrations.kubernetes.models.storage import (
    PersistentVolumeClaimSummary,
)
from infra_reconciler.services.kubernetes.base import K8sBaseManager, query


class StorageManager(K8sBaseManager):
    _entity_name = "storage"

    def list_persistent_volume_claims(
        self,
        namespace: str | None = None,
        *,
        label_selector: str | None = None,
    ) -> list[PersistentVolumeClaimSummary]:
        ns = self._resolve_namespace(namespace)
        params = query(namespace=ns, label_selector=label_selector)
        result = self._call(
            lambda: self._client.core_v1.list_namespaced_persistent_volume_claim(**params),
            "PersistentVolumeClaim",
            None,
            ns,
        )
        return [PersistentVolumeClaimSummary.from_k8s_object(pvc) for pvc in result.items]

    def delete_persistent_volume_claim(self, name: str, namespace: str | None = None) -> bool:
        """Delete a claim; False if it was already gone."""
        ns = self._resolve_namespace(namespace)
        self._log.info("deleting_pvc", name=name, namespace=ns)
        return self._call_if_present(
            lambda: self._client.core_v1.delete_namespaced_persistent_volume_claim(
                name=name, namespace=ns
            ),
            "PersistentVolumeClaim",
            name,
            ns,
        )
