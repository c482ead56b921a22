"""Generic namespaced resource references used for ownership and cleanup."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from infra_reconciler.integrations.kubernetes.models.base import dig

RELEASE_NAME_ANNOTATION = "meta.helm.sh/release-name"
RELEASE_NAMESPACE_ANNOTATION = "meta.helm.sh/release-namespace"
MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
INSTANCE_LABEL = "app.kubernetes.io/instance"


@dataclass
class ResourceRef:
    """A namespaced object addressed by kind and name."""

    kind: str
    name: str
    namespace: str
    finalizers: list[str] = field(default_factory=list)
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)

    @property
    def owner_release(self) -> str | None:
        """Release named by the Helm ownership annotation."""
        return self.annotations.get(RELEASE_NAME_ANNOTATION)

    @property
    def owner_namespace(self) -> str | None:
        """Namespace named by the Helm ownership annotation."""
        return self.annotations.get(RELEASE_NAMESPACE_ANNOTATION)

    @property
    def managed_by(self) -> str | None:
        return self.labels.get(MANAGED_BY_LABEL)

    def is_owned_by(self, release: str, namespace: str) -> bool:
        """Whether Helm would accept this object as part of ``release``."""
        return (
            self.owner_release == release
            and self.owner_namespace == namespace
            and self.managed_by == "Helm"
        )

    @classmethod
    def from_k8s_object(cls, obj: Any, kind: str) -> ResourceRef:
        """Create from a kubernetes SDK object or a custom-object dict."""
        if isinstance(obj, dict):
            metadata = obj.get("metadata") or {}
            return cls(
                kind=kind,
                name=metadata.get("name", ""),
                namespace=metadata.get("namespace", ""),
                finalizers=list(metadata.get("finalizers") or []),
                labels=dict(metadata.get("labels") or {}),
                annotations=dict(metadata.get("annotations") or {}),
            )
        meta = getattr(obj, "metadata", None)
        return cls(
            kind=kind,
            name=dig(meta, "name", default=""),
            namespace=dig(meta, "namespace", default=""),
            finalizers=list(dig(meta, "finalizers", default=[])),
            labels=dict(dig(meta, "labels", default={})),
            annotations=dict(dig(meta, "annotations", default={})),
        )
