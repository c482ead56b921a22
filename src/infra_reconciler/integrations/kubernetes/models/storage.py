"""PersistentVolumeClaim snapshot."""

from __future__ import annotations

from typing import Any

from infra_reconciler.integrations.kubernetes.models.base import Snapshot, dig, metadata_of


class PersistentVolumeClaimSummary(Snapshot):
    """A claim's phase and, once bound, its size."""

    status: str = "Pending"
    capacity: str | None = None

    @property
    def is_bound(self) -> bool:
        return self.status == "Bound"

    @classmethod
    def from_k8s_object(cls, obj: Any) -> PersistentVolumeClaimSummary:
        allocated = dig(obj, "status", "capacity")
        size = allocated.get("storage") if isinstance(allocated, dict) else None
        return cls(
            **metadata_of(obj),
            status=dig(obj, "status", "phase", default="Pending"),
            capacity=str(size) if size else None,
        )
